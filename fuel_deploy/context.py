"""State shared by all packages of one deployment run."""

import logging
from dataclasses import dataclass, field
from typing import Callable

from fuel_deploy.builder import ContractBuilder
from fuel_deploy.config import DeployConfig
from fuel_deploy.identity import StorageSlot
from fuel_deploy.node import FuelNodeClient
from fuel_deploy.wallet import SignerResolutionError, WalletSelectionMode, address_from_private_key, select_secret_key

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DeploymentContext:
    """Passed through the package loop of :py:func:`fuel_deploy.deploy.deploy`.

    Everything here is resolved once and read afterwards.
    """

    config: DeployConfig

    builder: ContractBuilder

    wallet_mode: WalletSelectionMode

    #: Node URL -> client factory, replaced in tests
    connect: Callable[[str], FuelNodeClient]

    #: Replaces compiled storage slots of top-level deployments
    storage_slot_override: list[StorageSlot] | None = None

    #: Owner of new proxies, resolved from the signer on first use
    owner_address: str | None = None

    _nodes: dict[str, FuelNodeClient] = field(default_factory=dict, repr=False)

    _secret_key: bytes | None = field(default=None, repr=False)

    @property
    def default_signer(self) -> bool:
        # --unsigned is the deprecated spelling of --default-signer
        return self.config.default_signer or self.config.unsigned

    def get_node(self, url: str) -> FuelNodeClient:
        """One client per node URL for the whole run."""
        node = self._nodes.get(url)
        if node is None:
            node = self.connect(url)
            self._nodes[url] = node
        return node

    def get_secret_key(self, node: FuelNodeClient, non_interactive: bool = False) -> bytes | None:
        """Resolve the signing key.

        The wallet is unlocked only once per run.
        """
        if non_interactive:
            return select_secret_key(self.wallet_mode, self.default_signer, self.config.signing_key, node, non_interactive=True)

        if self._secret_key is None:
            self._secret_key = select_secret_key(self.wallet_mode, self.default_signer, self.config.signing_key, node)
        return self._secret_key

    def get_owner_address(self, node: FuelNodeClient) -> str:
        """Owner of newly deployed proxies.

        `--proxy-owner` if given, otherwise the address of the signer.

        :raise SignerResolutionError:
            No owner given and no signer to derive it from
        """
        if self.owner_address is None:
            if self.config.proxy_owner:
                self.owner_address = self.config.proxy_owner
            else:
                key = self.get_secret_key(node)
                if key is None:
                    raise SignerResolutionError("Cannot resolve the proxy owner: no signer available, pass --proxy-owner, --signing-key or --default-signer")
                self.owner_address = address_from_private_key(key)
            logger.info("Proxy owner is %s", self.owner_address)
        return self.owner_address
