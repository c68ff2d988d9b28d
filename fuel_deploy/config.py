"""Deployment run configuration and node selection."""

import datetime
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from fuel_deploy.errors import DeployError
from fuel_deploy.package import DEFAULT_BUILD_PROFILE

logger = logging.getLogger(__name__)

#: Used when neither the command line nor the manifest names a node
DEFAULT_NODE_URL = "http://127.0.0.1:4000"

#: Known public networks.
#:
#: Manually maintained. Name -> node URL.
NODE_TARGETS = {
    "local": DEFAULT_NODE_URL,
    "devnet": "https://devnet.fuel.network",
    "testnet": "https://testnet.fuel.network",
    "mainnet": "https://mainnet.fuel.network",
}

#: GraphQL endpoint path of a Fuel node
GRAPHQL_PATH = "/v1/graphql"

#: Bytecode larger than this is deployed in chunks behind a loader contract
DEFAULT_MAX_CONTRACT_SIZE = 480

#: How long we wait for a single deployment transaction to be committed
DEFAULT_SUBMIT_TIMEOUT = datetime.timedelta(seconds=30)

#: Transaction status poll interval
DEFAULT_POLL_DELAY = datetime.timedelta(seconds=1)


class NodeTargetError(DeployError):
    """Node was selected in more than one way."""


@dataclass(slots=True)
class DeployConfig:
    """Everything a deployment run needs to know.

    Mirrors the command line options of :py:mod:`fuel_deploy.cli`.
    """

    #: Project or workspace folder
    path: Path = field(default_factory=Path.cwd)

    #: `--salt` values
    salt: list[str] | None = None

    #: Use the zero salt for every contract
    default_salt: bool = False

    #: Sign with the funded default test account
    default_signer: bool = False

    #: Hex private key to sign with
    signing_key: str | None = None

    #: Deprecated, same as `default_signer`
    unsigned: bool = False

    node_url: str | None = None

    #: Shortcut for `target="testnet"`
    testnet: bool = False

    #: One of :py:data:`NODE_TARGETS`
    target: str | None = None

    #: JSON file replacing the compiled storage slots
    override_storage_slots: Path | None = None

    #: Artifacts go under `<output_directory>/deployments`
    output_directory: Path | None = None

    build_profile: str = DEFAULT_BUILD_PROFILE

    #: Chunking threshold in bytes
    max_contract_size: int = DEFAULT_MAX_CONTRACT_SIZE

    submit_timeout: datetime.timedelta = DEFAULT_SUBMIT_TIMEOUT

    poll_delay: datetime.timedelta = DEFAULT_POLL_DELAY

    #: Owner of new proxy contracts.
    #:
    #: If not given, the signer address is used.
    proxy_owner: str | None = None

    #: Password of the forc-wallet keystore
    wallet_password: str | None = None

    #: Which forc-wallet account signs
    wallet_account_index: int = 0

    #: Keystore location, default `~/.fuel/wallets/.wallet`
    wallet_path: Path | None = None

    def __post_init__(self):
        assert self.max_contract_size > 0, f"Bad max_contract_size {self.max_contract_size}"
        assert isinstance(self.submit_timeout, datetime.timedelta)
        assert isinstance(self.poll_delay, datetime.timedelta)

    @property
    def uses_manual_signing(self) -> bool:
        """Signing key or default signer, no wallet password prompt needed."""
        return self.default_signer or self.unsigned or self.signing_key is not None

    @staticmethod
    def from_environment(**kwargs) -> "DeployConfig":
        """Fill in node and signer options from environment variables.

        - `FUEL_NODE_URL`
        - `SIGNING_KEY`
        - `FUEL_WALLET_PASSWORD`

        Explicit keyword arguments win.
        """
        env = {
            "node_url": os.environ.get("FUEL_NODE_URL"),
            "signing_key": os.environ.get("SIGNING_KEY"),
            "wallet_password": os.environ.get("FUEL_WALLET_PASSWORD"),
        }
        for key, value in env.items():
            if kwargs.get(key) is None and value:
                kwargs[key] = value
        return DeployConfig(**kwargs)


def get_graphql_url(node_url: str) -> str:
    """Add the GraphQL path to a bare node URL."""
    url = node_url.rstrip("/")
    if url.endswith(GRAPHQL_PATH):
        return url
    return url + GRAPHQL_PATH


def get_node_url(config: DeployConfig, manifest_network_url: str | None = None) -> str:
    """Resolve the node to deploy to.

    Priority: `--testnet`, `--target` or `--node-url` (only one of them),
    then the manifest `[network] url`, then the local node.

    :raise NodeTargetError:
        More than one of the command line options given, or unknown target

    :return:
        Node base URL, without GraphQL path
    """
    given = [x for x in (config.testnet, config.target, config.node_url) if x]
    if len(given) > 1:
        raise NodeTargetError("Only one of `--testnet`, `--target`, or `--node-url` should be specified")

    if config.testnet:
        return NODE_TARGETS["testnet"]

    if config.target:
        target = config.target.lower()
        if target not in NODE_TARGETS:
            raise NodeTargetError(f"Unknown target {config.target}, known targets are: {', '.join(NODE_TARGETS)}")
        return NODE_TARGETS[target]

    if config.node_url:
        return config.node_url

    return manifest_network_url or DEFAULT_NODE_URL
