"""Fuel node GraphQL client.

- Read chain parameters, gas price and spendable coins

- Submit transactions and poll their status until committed, with a deadline

Only the queries the deployment needs are implemented.

Example:

.. code-block:: python

    node = connect("https://testnet.fuel.network")
    chain = node.chain_info()
    print(f"Connected to {chain.name}, chain id {chain.chain_id}")
"""

import datetime
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional, Union

import requests
from eth_utils import encode_hex

from fuel_deploy.config import get_graphql_url
from fuel_deploy.errors import DeployError

logger = logging.getLogger(__name__)

#: Default per request HTTP timeout, seconds
DEFAULT_REQUEST_TIMEOUT = 30


class NodeCommunicationError(DeployError):
    """Could not talk to the node: connection, HTTP or malformed response."""


class NodeQueryError(NodeCommunicationError):
    """Node answered with GraphQL errors."""


@dataclass(slots=True, frozen=True)
class SubmittedStatus:
    """Transaction is in the pool, not yet executed."""

    time: str | None = None


@dataclass(slots=True, frozen=True)
class SuccessStatus:
    """Transaction was included in a block and succeeded."""

    block_height: int


@dataclass(slots=True, frozen=True)
class FailureStatus:
    """Transaction was included in a block and reverted, or the node refused it."""

    reason: str

    block_height: int | None = None


@dataclass(slots=True, frozen=True)
class SqueezedOutStatus:
    """Transaction was dropped from the pool."""

    reason: str


TransactionStatus = Union[SubmittedStatus, SuccessStatus, FailureStatus, SqueezedOutStatus]


@dataclass(slots=True, frozen=True)
class ChainInfo:
    """Subset of the consensus parameters we care about."""

    name: str

    chain_id: int

    #: Hex asset id used to pay fees
    base_asset_id: str

    gas_price_factor: int

    gas_per_byte: int

    #: Largest contract the chain accepts, bytes
    contract_max_size: int | None = None


@dataclass(slots=True, frozen=True)
class Coin:
    """A spendable UTXO."""

    utxo_id: str

    owner: str

    amount: int

    asset_id: str


_STATUS_FRAGMENT = """
    status {
        __typename
        ... on SubmittedStatus { time }
        ... on SuccessStatus { block { height } }
        ... on FailureStatus { block { height } reason }
        ... on SqueezedOutStatus { reason }
    }
"""


def parse_transaction_status(data: dict | None) -> TransactionStatus | None:
    """Convert GraphQL `status` object to our status classes.

    :return:
        `None` if the node does not know the transaction (yet)
    """
    if not data:
        return None

    kind = data["__typename"]
    match kind:
        case "SubmittedStatus":
            return SubmittedStatus(time=data.get("time"))
        case "SuccessStatus":
            return SuccessStatus(block_height=int(data["block"]["height"]))
        case "FailureStatus":
            block = data.get("block")
            return FailureStatus(reason=data.get("reason", ""), block_height=int(block["height"]) if block else None)
        case "SqueezedOutStatus":
            return SqueezedOutStatus(reason=data.get("reason", ""))
        case _:
            raise NodeCommunicationError(f"Unknown transaction status: {kind}")


class FuelNodeClient:
    """Talk to a Fuel node over GraphQL.

    .. note ::

        Not thread safe. One client per deployment run.
    """

    def __init__(self, url: str, session: Optional[requests.Session] = None, request_timeout: float = DEFAULT_REQUEST_TIMEOUT):
        """
        :param url:
            Node base URL, GraphQL path is added if missing

        :param session:
            Give your own session for connection pooling or testing
        """
        self.url = url
        self.endpoint = get_graphql_url(url)
        self.session = session or requests.Session()
        self.request_timeout = request_timeout

    def __repr__(self):
        return f"<FuelNodeClient {self.endpoint}>"

    def _query(self, query: str, variables: dict[str, Any] | None = None, timeout: float | None = None) -> dict[str, Any]:
        """Execute a GraphQL query or mutation.

        :raise requests.Timeout:
            Read timeout, passed through so callers running against a deadline can tell it apart

        :raise NodeCommunicationError:
            On any other transport problem, connect timeouts included

        :raise NodeQueryError:
            If the node returns GraphQL errors
        """
        try:
            response = self.session.post(
                self.endpoint,
                json={"query": query, "variables": variables or {}},
                headers={"Content-Type": "application/json"},
                timeout=timeout or self.request_timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.ConnectTimeout as e:
            # Nothing reached the node
            raise NodeCommunicationError(f"Node {self.endpoint} connection timed out: {e}") from e
        except requests.Timeout:
            raise
        except (requests.RequestException, ValueError) as e:
            raise NodeCommunicationError(f"Node {self.endpoint} request failed: {e}") from e

        if data.get("errors"):
            errors = ", ".join(err.get("message", str(err)) for err in data["errors"])
            raise NodeQueryError(f"Node {self.endpoint} returned errors: {errors}")

        return data.get("data") or {}

    def query(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        """Execute a GraphQL query, wrapping timeouts as communication errors."""
        try:
            return self._query(query, variables)
        except requests.Timeout as e:
            raise NodeCommunicationError(f"Node {self.endpoint} timed out: {e}") from e

    def chain_info(self) -> ChainInfo:
        data = self.query(
            """
            query {
                chain {
                    name
                    consensusParameters {
                        chainId
                        baseAssetId
                        feeParams { gasPriceFactor gasPerByte }
                        contractParams { contractMaxSize }
                    }
                }
            }
            """
        )
        chain = data["chain"]
        params = chain["consensusParameters"]
        contract_params = params.get("contractParams") or {}
        max_size = contract_params.get("contractMaxSize")
        return ChainInfo(
            name=chain.get("name", ""),
            chain_id=int(params["chainId"]),
            base_asset_id=params["baseAssetId"],
            gas_price_factor=int(params["feeParams"]["gasPriceFactor"]),
            gas_per_byte=int(params["feeParams"]["gasPerByte"]),
            contract_max_size=int(max_size) if max_size is not None else None,
        )

    def latest_gas_price(self) -> int:
        data = self.query("query { latestGasPrice { gasPrice } }")
        return int(data["latestGasPrice"]["gasPrice"])

    def balance(self, owner: str, asset_id: str) -> int:
        data = self.query(
            "query($owner: Address!, $assetId: AssetId!) { balance(owner: $owner, assetId: $assetId) { amount } }",
            {"owner": owner, "assetId": asset_id},
        )
        return int(data["balance"]["amount"])

    def coins_to_spend(self, owner: str, asset_id: str, amount: int) -> list[Coin]:
        """Ask the node to pick coins covering `amount`.

        :raise NodeQueryError:
            Not enough funds
        """
        data = self.query(
            """
            query($owner: Address!, $queryPerAsset: [SpendQueryElementInput!]!) {
                coinsToSpend(owner: $owner, queryPerAsset: $queryPerAsset) {
                    ... on Coin { utxoId owner amount assetId }
                }
            }
            """,
            {"owner": owner, "queryPerAsset": [{"assetId": asset_id, "amount": str(amount)}]},
        )
        coins = []
        for per_asset in data["coinsToSpend"]:
            for c in per_asset:
                coins.append(Coin(utxo_id=c["utxoId"], owner=c["owner"], amount=int(c["amount"]), asset_id=c["assetId"]))
        return coins

    def get_contract(self, contract_id: bytes) -> str | None:
        """Check if a contract exists.

        :return:
            Hex contract id as the node reports it, or `None`
        """
        data = self.query("query($id: ContractId!) { contract(id: $id) { id } }", {"id": encode_hex(contract_id)})
        contract = data.get("contract")
        return contract["id"] if contract else None

    def submit(self, tx_bytes: bytes, timeout: float | None = None) -> str:
        """Put a signed transaction into the pool.

        :return:
            Transaction id as hex
        """
        data = self._query("mutation($tx: HexString!) { submit(tx: $tx) { id } }", {"tx": encode_hex(tx_bytes)}, timeout=timeout)
        return data["submit"]["id"]

    def transaction_status(self, tx_id: str, timeout: float | None = None) -> TransactionStatus | None:
        data = self._query(f"query($id: TransactionId!) {{ transaction(id: $id) {{ {_STATUS_FRAGMENT} }} }}", {"id": tx_id}, timeout=timeout)
        tx = data.get("transaction")
        return parse_transaction_status(tx["status"]) if tx else None

    def submit_and_await_commit(
        self,
        tx_bytes: bytes,
        timeout=datetime.timedelta(seconds=30),
        poll_delay=datetime.timedelta(seconds=1),
    ) -> TransactionStatus:
        """Submit a transaction and wait until it is executed.

        The whole submit + wait is bounded by `timeout`.

        :return:
            The final status.

            :py:class:`SubmittedStatus` if we ran out of time before the transaction was executed:
            the outcome is unknown, the transaction may still land later.

            :py:class:`FailureStatus` if the node refused the transaction at submit.

        :raise NodeCommunicationError:
            Transport failure
        """
        assert isinstance(timeout, datetime.timedelta)
        assert isinstance(poll_delay, datetime.timedelta)

        deadline = time.monotonic() + timeout.total_seconds()

        def remaining() -> float:
            return max(deadline - time.monotonic(), 0.001)

        try:
            tx_id = self.submit(tx_bytes, timeout=remaining())
        except NodeQueryError as e:
            # Validity checks failed, the transaction never entered the pool
            return FailureStatus(reason=str(e))
        except requests.Timeout:
            logger.warning("Submit timed out after %s, transaction may have been dropped", timeout)
            return SubmittedStatus()

        logger.info("Submitted transaction %s, waiting up to %s for commit", tx_id, timeout)

        status: TransactionStatus | None = None
        while True:
            try:
                status = self.transaction_status(tx_id, timeout=remaining())
            except requests.Timeout:
                status = None

            logger.debug("Transaction %s status %s", tx_id, status)

            if status is not None and not isinstance(status, SubmittedStatus):
                return status

            if time.monotonic() >= deadline:
                return status or SubmittedStatus()

            time.sleep(min(poll_delay.total_seconds(), remaining()))


def connect(url: str) -> FuelNodeClient:
    """Create a client for a node URL."""
    return FuelNodeClient(url)
