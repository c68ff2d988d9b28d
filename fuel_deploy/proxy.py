"""Proxy contracts in front of deployed implementations.

A package opts in with its manifest:

.. code-block:: toml

    [proxy]
    enabled = true

- First run: a new proxy is deployed pointing to the implementation,
  and its id is written to `[proxy] address`

- Later runs: the existing proxy is repointed to the new implementation

The proxy id users call stays the same across upgrades.
"""

import logging

from eth_utils import decode_hex

from fuel_deploy.builder import SET_PROXY_TARGET
from fuel_deploy.config import get_node_url
from fuel_deploy.context import DeploymentContext
from fuel_deploy.identity import ContractId, format_contract_id
from fuel_deploy.manifest import ManifestError
from fuel_deploy.package import BuiltPackage
from fuel_deploy.submit import deploy_pkg, raise_for_outcome, sign_and_submit
from fuel_deploy.tx import CallTransaction
from fuel_deploy.wallet import SignerResolutionError

logger = logging.getLogger(__name__)


def update_proxy_contract_target(ctx: DeploymentContext, package: BuiltPackage, proxy_id: ContractId, implementation_id: ContractId):
    """Call `set_proxy_target` of an existing proxy.

    Needs a key given directly, the forc-wallet cannot be used here.

    :raise SignerResolutionError:
        Only the password protected wallet is available
    """
    manifest = package.get_manifest()
    node_url = get_node_url(ctx.config, manifest.network_url if manifest else None)
    node = ctx.get_node(node_url)

    secret_key = ctx.get_secret_key(node, non_interactive=True)
    if secret_key is None:
        raise SignerResolutionError("proxy contract deployments are not supported with manual prompt based signing")

    chain = node.chain_info()
    tx = CallTransaction(contract_id=proxy_id, function_name=SET_PROXY_TARGET, arguments=implementation_id)

    logger.info("Updating proxy %s of %s to target %s", format_contract_id(proxy_id), package.name, format_contract_id(implementation_id))
    _, outcome = sign_and_submit(ctx, node, chain, tx, secret_key)
    raise_for_outcome(outcome, format_contract_id(proxy_id), action="update its proxy target")


def deploy_new_proxy(ctx: DeploymentContext, package: BuiltPackage, implementation_id: ContractId, salt: bytes) -> ContractId:
    """Deploy a proxy owned by the run owner and record it in the manifest.

    :raise ManifestRewriteError:
        The proxy is deployed but the manifest could not be updated
    """
    manifest = package.get_manifest()
    node_url = get_node_url(ctx.config, manifest.network_url if manifest else None)
    owner = ctx.get_owner_address(ctx.get_node(node_url))

    logger.info("Creating proxy contract for %s, owner %s", package.name, owner)
    proxy = ctx.builder.build_proxy_contract(package, owner, implementation_id)
    proxy_id = deploy_pkg(ctx, proxy, salt)

    if manifest is not None:
        manifest.update_proxy_address(format_contract_id(proxy_id))
    else:
        logger.warning("Package %s has no manifest, proxy address %s is not recorded", package.name, format_contract_id(proxy_id))

    return proxy_id


def handle_proxy(ctx: DeploymentContext, package: BuiltPackage, implementation_id: ContractId, salt: bytes) -> ContractId | None:
    """Create or update the proxy of a package, as its manifest asks.

    ============================  ===============================
    `[proxy]`                     Action
    ============================  ===============================
    missing or `enabled = false`  nothing, returns `None`
    enabled, `address` set        repoint the existing proxy
    enabled, no `address`         deploy a new proxy
    ============================  ===============================

    :return:
        Proxy contract id or `None`
    """
    manifest = package.get_manifest()
    proxy_config = manifest.proxy if manifest else None

    if proxy_config is None or not proxy_config.enabled:
        return None

    if proxy_config.address:
        try:
            proxy_id = decode_hex(proxy_config.address)
        except ValueError as e:
            raise ManifestError(f"Bad proxy address {proxy_config.address} in {manifest.path}") from e
        if len(proxy_id) != 32:
            raise ManifestError(f"Bad proxy address {proxy_config.address} in {manifest.path}, expected 32 bytes")
        update_proxy_contract_target(ctx, package, proxy_id, implementation_id)
        return proxy_id

    return deploy_new_proxy(ctx, package, implementation_id, salt)
