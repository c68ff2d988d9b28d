"""Deploy a single contract.

- Compute the contract id before anything goes on chain, see :py:func:`prepare_deployment`

- Build, fund, sign and submit the create transaction, see :py:func:`submit_deployment`

- Wait for the commit under one deadline and tell the outcomes apart, see :py:func:`classify_status`

- Leave a :py:class:`fuel_deploy.artifact.DeploymentArtifact` behind on success

Nothing is retried. A deployment that timed out may still land later,
so we must not blindly send it again.
"""

import enum
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from fuel_deploy.artifact import DeploymentArtifact
from fuel_deploy.config import get_node_url
from fuel_deploy.context import DeploymentContext
from fuel_deploy.errors import DeployError
from fuel_deploy.identity import ContractId, StorageSlot, compute_code_root, compute_contract_id, compute_state_root, format_contract_id
from fuel_deploy.node import ChainInfo, FailureStatus, FuelNodeClient, NodeCommunicationError, SqueezedOutStatus, SubmittedStatus, SuccessStatus, TransactionStatus
from fuel_deploy.package import BuiltPackage
from fuel_deploy.salt import format_salt
from fuel_deploy.tx import Transaction, CreateTransaction
from fuel_deploy.wallet import FuelWallet, SignerResolutionError

logger = logging.getLogger(__name__)

#: Gas charged for any transaction on top of its size
BASE_TX_GAS = 10_000

#: Bytes added to the transaction by the fee inputs, change output and witness
FEE_PAYMENT_OVERHEAD = 512


class SubmissionTimeoutError(DeployError):
    """The deadline passed while the transaction was still pending.

    The outcome is unknown.
    """


class NodeRejectionError(DeployError):
    """The node refused or reverted the transaction. The outcome is definitive."""


class ContractIdMismatchError(DeployError):
    """The node reports success but does not know the contract id we computed."""


class OutcomeKind(enum.Enum):
    success = "success"
    rejected = "rejected"
    timeout = "timeout"
    communication_error = "communication_error"


@dataclass(slots=True, frozen=True)
class SubmissionOutcome:
    """What happened to a submitted transaction."""

    kind: OutcomeKind

    #: Block height for successful transactions
    block_height: int | None = None

    #: Failure reason for anything else
    detail: str = ""


@dataclass(slots=True, frozen=True)
class PreparedDeployment:
    """Everything about a deployment that can be computed offline."""

    contract_id: ContractId

    code_root: bytes

    state_root: bytes

    salt: bytes

    #: Sorted by key
    storage_slots: tuple[StorageSlot, ...]

    @property
    def hex_contract_id(self) -> str:
        return format_contract_id(self.contract_id)


@dataclass(slots=True, frozen=True)
class DeploymentResult:
    """A committed deployment."""

    contract_id: ContractId

    artifact: DeploymentArtifact

    artifact_path: Path


def prepare_deployment(package: BuiltPackage, salt: bytes, storage_slots: Iterable[StorageSlot] | None = None) -> PreparedDeployment:
    """Compute the id `package` will get when deployed with `salt`.

    :param storage_slots:
        Use these instead of the compiled storage slots
    """
    slots = tuple(sorted(package.storage_slots if storage_slots is None else storage_slots))
    code_root = compute_code_root(package.bytecode)
    state_root = compute_state_root(slots)
    contract_id = compute_contract_id(code_root, salt, state_root)
    return PreparedDeployment(
        contract_id=contract_id,
        code_root=code_root,
        state_root=state_root,
        salt=salt,
        storage_slots=slots,
    )


def classify_status(status: TransactionStatus | None, error: NodeCommunicationError | None = None) -> SubmissionOutcome:
    """Map the final status of the bounded wait to an outcome.

    :param status:
        Last status seen before the deadline, `None` if we never got one

    :param error:
        Transport failure that ended the wait
    """
    if error is not None:
        return SubmissionOutcome(OutcomeKind.communication_error, detail=str(error))

    match status:
        case SuccessStatus(block_height=height):
            return SubmissionOutcome(OutcomeKind.success, block_height=height)
        case FailureStatus(reason=reason):
            return SubmissionOutcome(OutcomeKind.rejected, detail=reason)
        case SqueezedOutStatus(reason=reason):
            return SubmissionOutcome(OutcomeKind.rejected, detail=f"Squeezed out: {reason}")
        case SubmittedStatus() | None:
            return SubmissionOutcome(OutcomeKind.timeout)
        case _:
            raise AssertionError(f"Unknown status {status}")


def raise_for_outcome(outcome: SubmissionOutcome, contract_id: str, action: str = "deploy"):
    """Turn a non-successful outcome into the matching exception.

    :param contract_id:
        Hex id of the contract the transaction was about

    :param action:
        Used in the error messages
    """
    match outcome.kind:
        case OutcomeKind.success:
            return
        case OutcomeKind.rejected:
            raise NodeRejectionError(f"Node rejected the transaction to {action} contract {contract_id}: {outcome.detail}", contract_id=contract_id)
        case OutcomeKind.timeout:
            raise SubmissionTimeoutError(f"Timed out waiting for contract {contract_id} to {action}. The transaction may have been dropped.", contract_id=contract_id)
        case OutcomeKind.communication_error:
            raise NodeCommunicationError(f"Lost connection to the node while waiting for contract {contract_id} to {action}: {outcome.detail}", contract_id=contract_id)


def adjust_for_fee(tx: Transaction, node: FuelNodeClient, chain: ChainInfo, owner: str) -> int:
    """Set the max fee policy and add coins paying for it.

    :return:
        The max fee
    """
    gas_price = node.latest_gas_price()
    assert chain.gas_price_factor > 0, f"Bad gas price factor {chain.gas_price_factor}"

    size = len(tx.encode()) + FEE_PAYMENT_OVERHEAD
    gas = size * chain.gas_per_byte + BASE_TX_GAS
    # Round up
    max_fee = -(-gas * gas_price // chain.gas_price_factor)
    tx.max_fee = max_fee

    coins = node.coins_to_spend(owner, chain.base_asset_id, max(max_fee, 1))
    tx.add_fee_inputs(coins, owner, chain.base_asset_id)

    logger.debug("Max fee %d at gas price %d, paid with %d coins", max_fee, gas_price, len(coins))
    return max_fee


def sign_and_submit(
    ctx: DeploymentContext,
    node: FuelNodeClient,
    chain: ChainInfo,
    tx: Transaction,
    secret_key: bytes,
) -> tuple[str, SubmissionOutcome]:
    """Pay, sign and send a transaction, then wait for it.

    :return:
        Tuple (hex transaction id, outcome)
    """
    wallet = FuelWallet.from_private_key(secret_key)
    adjust_for_fee(tx, node, chain, wallet.address)
    tx_id = tx.hex_id(chain.chain_id)
    wallet.sign_transaction(tx, chain.chain_id)

    try:
        status = node.submit_and_await_commit(
            tx.encode(),
            timeout=ctx.config.submit_timeout,
            poll_delay=ctx.config.poll_delay,
        )
        outcome = classify_status(status)
    except NodeCommunicationError as e:
        outcome = classify_status(None, error=e)

    logger.info("Transaction %s outcome %s", tx_id, outcome.kind.value)
    return tx_id, outcome


def submit_deployment(ctx: DeploymentContext, package: BuiltPackage, prepared: PreparedDeployment, node_url: str) -> DeploymentResult:
    """Send a create transaction and wait until the contract exists.

    :raise SignerResolutionError:
        Nothing to sign with

    :raise NodeRejectionError:
        The node refused the deployment

    :raise SubmissionTimeoutError:
        The deployment did not commit in time

    :raise NodeCommunicationError:
        Transport failure

    :raise ContractIdMismatchError:
        The node does not have the contract after a successful commit
    """
    contract_id = prepared.hex_contract_id
    node = ctx.get_node(node_url)
    chain = node.chain_info()

    secret_key = ctx.get_secret_key(node)
    if secret_key is None:
        raise SignerResolutionError(
            f"No signer for deploying {package.name}: use --default-signer, --signing-key or a forc-wallet",
            contract_id=contract_id,
        )

    tx = CreateTransaction(
        bytecode=package.bytecode,
        contract_id=prepared.contract_id,
        state_root=prepared.state_root,
        salt=prepared.salt,
        storage_slots=list(prepared.storage_slots),
    )

    tx_id, outcome = sign_and_submit(ctx, node, chain, tx, secret_key)
    raise_for_outcome(outcome, contract_id)

    reported_id = node.get_contract(prepared.contract_id)
    if reported_id is None:
        raise ContractIdMismatchError(
            f"Transaction {tx_id} succeeded but the node does not know contract {contract_id}",
            contract_id=contract_id,
        )

    if reported_id.lower() != contract_id.lower():
        raise ContractIdMismatchError(
            f"Transaction {tx_id} succeeded but the node reports contract {reported_id}, we computed {contract_id}",
            contract_id=contract_id,
        )

    artifact = DeploymentArtifact(
        transaction_id=tx_id,
        salt=format_salt(prepared.salt),
        network_endpoint=node_url,
        chain_id=chain.chain_id,
        contract_id=contract_id,
        deployment_size=len(package.bytecode),
        deployed_block_height=outcome.block_height,
    )
    output_dir = ctx.config.output_directory or package.get_default_output_directory()
    artifact_path = artifact.to_file(output_dir, package.name, contract_id)

    logger.info("Contract %s deployed to %s at block %d", package.name, contract_id, outcome.block_height)
    return DeploymentResult(contract_id=prepared.contract_id, artifact=artifact, artifact_path=artifact_path)


def deploy_pkg(ctx: DeploymentContext, package: BuiltPackage, salt: bytes, storage_slots: Iterable[StorageSlot] | None = None) -> ContractId:
    """Deploy one package to the node its manifest points to.

    :return:
        Id of the deployed contract
    """
    prepared = prepare_deployment(package, salt, storage_slots)
    manifest = package.get_manifest()
    node_url = get_node_url(ctx.config, manifest.network_url if manifest else None)

    logger.info(
        "Deploying %s (%d bytes) as %s with salt %s to %s",
        package.name,
        len(package.bytecode),
        prepared.hex_contract_id,
        format_salt(salt),
        node_url,
    )

    result = submit_deployment(ctx, package, prepared, node_url)
    return result.contract_id
