"""Deploy every contract of a project or workspace.

Example:

.. code-block:: python

    from fuel_deploy.config import DeployConfig
    from fuel_deploy.deploy import deploy

    config = DeployConfig(path=Path("my-workspace"), default_signer=True, default_salt=True)
    for contract in deploy(config):
        print(f"Deployed {contract.name} at 0x{contract.id.hex()}")

Packages are deployed one at a time in the manifest order.
The first failure stops the run. Deployment artifacts of the contracts
deployed before the failure stay on disk.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable

from fuel_deploy.builder import ContractBuilder, TemplateContractBuilder
from fuel_deploy.chunk import deploy_chunked
from fuel_deploy.config import DeployConfig
from fuel_deploy.context import DeploymentContext
from fuel_deploy.errors import DeployError
from fuel_deploy.identity import ContractId, format_contract_id
from fuel_deploy.node import FuelNodeClient, connect as connect_node
from fuel_deploy.package import BuiltPackage, load_built_packages, read_storage_slots
from fuel_deploy.proxy import handle_proxy
from fuel_deploy.salt import check_salt_mode, resolve_salt_map, select_salt
from fuel_deploy.submit import deploy_pkg
from fuel_deploy.wallet import DEFAULT_WALLET_PATH, ForcWalletMode, ManualMode, SignerResolutionError, WalletSelectionMode

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class DeployedContract:
    """Result of deploying one package."""

    #: Package name
    name: str

    #: Contract id users call: the contract itself, or the loader for chunked contracts
    id: ContractId

    #: Proxy in front of the contract, if the package has one
    proxy: ContractId | None = None

    #: Chunk contracts behind the loader, empty for direct deployments
    chunk_ids: tuple[ContractId, ...] = field(default_factory=tuple)

    def __repr__(self):
        proxy = f" proxy {format_contract_id(self.proxy)}" if self.proxy else ""
        return f"<DeployedContract {self.name} {format_contract_id(self.id)}{proxy}>"


def select_wallet_mode(config: DeployConfig) -> WalletSelectionMode:
    """Forc-wallet unless the user gave a key or asked for the default signer."""
    if config.uses_manual_signing:
        return ManualMode()

    if config.wallet_password is None:
        raise SignerResolutionError("Signing with forc-wallet needs the wallet password, or use --signing-key or --default-signer")

    return ForcWalletMode(
        password=config.wallet_password,
        account_index=config.wallet_account_index,
        wallet_path=config.wallet_path or DEFAULT_WALLET_PATH,
    )


def deploy_package(ctx: DeploymentContext, package: BuiltPackage, salt: bytes) -> DeployedContract:
    """Deploy one user package and its proxy."""
    if len(package.bytecode) > ctx.config.max_contract_size:
        contract_id, chunk_ids = deploy_chunked(ctx, package, salt)
    else:
        contract_id = deploy_pkg(ctx, package, salt, storage_slots=ctx.storage_slot_override)
        chunk_ids = []

    proxy_id = handle_proxy(ctx, package, contract_id, salt)

    return DeployedContract(
        name=package.name,
        id=contract_id,
        proxy=proxy_id,
        chunk_ids=tuple(chunk_ids),
    )


def deploy(
    config: DeployConfig,
    packages: list[BuiltPackage] | None = None,
    *,
    connect: Callable[[str], FuelNodeClient] = connect_node,
    builder: ContractBuilder | None = None,
) -> list[DeployedContract]:
    """Deploy all contracts.

    :param packages:
        Already built packages.

        If not given, read the build output under `config.path`.

    :param connect:
        Node client factory

    :param builder:
        Builds loader and proxy contracts, :py:class:`TemplateContractBuilder` by default

    :raise DeployError:
        On the first failure, with :py:attr:`DeployError.package_name` set

    :return:
        One entry per deployed contract, in deployment order
    """
    if config.unsigned:
        logger.warning("--unsigned flag is deprecated, please prefer using --default-signer. Assuming `--default-signer` is passed. This means your transaction will be signed by an account that is funded by fuel-core by default for testing purposes.")

    if packages is None:
        packages = load_built_packages(config.path, config.build_profile)

    contracts = [p for p in packages if p.is_contract]
    if not contracts:
        logger.warning("No deployable contracts found in %s", config.path)
        return []

    # Non-contract members count too: their manifests can pin dependency salts
    salt_map = resolve_salt_map(config.salt, packages)
    check_salt_mode(salt_map, config.default_salt)

    storage_slot_override = None
    if config.override_storage_slots:
        storage_slot_override = read_storage_slots(config.override_storage_slots)
        logger.info("Using %d storage slots from %s", len(storage_slot_override), config.override_storage_slots)

    ctx = DeploymentContext(
        config=config,
        builder=builder or TemplateContractBuilder(),
        wallet_mode=select_wallet_mode(config),
        connect=connect,
        storage_slot_override=storage_slot_override,
    )

    deployed = []
    for package in contracts:
        try:
            salt = select_salt(salt_map, package.name, config.default_salt)
            deployed.append(deploy_package(ctx, package, salt))
        except DeployError as e:
            e.package_name = package.name
            logger.error("Deploying %s failed, %d of %d contracts deployed", package.name, len(deployed), len(contracts))
            raise

    logger.info("Deployed %d contracts", len(deployed))
    return deployed
