"""fuel-deploy command line.

Deploy the built contracts of the project in the current folder to a local node,
signing with the funded test account:

.. code-block:: shell

    forc build
    fuel-deploy --default-signer

Deploy a workspace to the testnet, with pinned salts, signing with the forc-wallet:

.. code-block:: shell

    export FUEL_WALLET_PASSWORD=...
    fuel-deploy my-workspace --testnet --salt counter:0x01 --salt token:0x02
"""

import datetime
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.markup import escape

from fuel_deploy.config import DEFAULT_MAX_CONTRACT_SIZE, DEFAULT_SUBMIT_TIMEOUT, DeployConfig
from fuel_deploy.deploy import deploy
from fuel_deploy.errors import DeployError
from fuel_deploy.utils import format_deployed_contracts, setup_console_logging

logger = logging.getLogger(__name__)

app = typer.Typer()

console = Console()


@app.command()
def main(
    path: Path = typer.Argument(Path("."), help="Project or workspace folder"),
    salt: Optional[List[str]] = typer.Option(None, "--salt", help="Contract salt, <CONTRACT_NAME>:<SALT> for workspaces. Can be given multiple times"),
    default_salt: bool = typer.Option(False, "--default-salt", help="Use the zero salt for all contracts"),
    default_signer: bool = typer.Option(False, "--default-signer", help="Sign with the account a local node funds for testing"),
    signing_key: Optional[str] = typer.Option(None, "--signing-key", envvar="SIGNING_KEY", help="Hex private key to sign with"),
    unsigned: bool = typer.Option(False, "--unsigned", help="Deprecated, use --default-signer"),
    node_url: Optional[str] = typer.Option(None, "--node-url", envvar="FUEL_NODE_URL", help="Node to deploy to"),
    testnet: bool = typer.Option(False, "--testnet", help="Deploy to the public testnet"),
    target: Optional[str] = typer.Option(None, "--target", help="Named network: local, devnet, testnet, mainnet"),
    override_storage_slots: Optional[Path] = typer.Option(None, "--override-storage-slots", help="JSON file replacing the compiled storage slots"),
    output_directory: Optional[Path] = typer.Option(None, "--output-directory", help="Deployment artifacts go under <dir>/deployments"),
    release: bool = typer.Option(False, "--release", help="Deploy the release build"),
    max_contract_size: int = typer.Option(DEFAULT_MAX_CONTRACT_SIZE, "--max-contract-size", help="Larger contracts are deployed in chunks, bytes"),
    submit_timeout: int = typer.Option(int(DEFAULT_SUBMIT_TIMEOUT.total_seconds()), "--submit-timeout", help="How long to wait for each transaction, seconds"),
    proxy_owner: Optional[str] = typer.Option(None, "--proxy-owner", help="Owner address of new proxy contracts, signer address by default"),
    account_index: int = typer.Option(0, "--account-index", help="forc-wallet account to sign with"),
    wallet_password: Optional[str] = typer.Option(None, envvar="FUEL_WALLET_PASSWORD", hidden=True),
):
    """Deploy built contracts to a Fuel node."""
    setup_console_logging(console=console)

    config = DeployConfig(
        path=path,
        salt=salt or None,
        default_salt=default_salt,
        default_signer=default_signer,
        signing_key=signing_key,
        unsigned=unsigned,
        node_url=node_url,
        testnet=testnet,
        target=target,
        override_storage_slots=override_storage_slots,
        output_directory=output_directory,
        build_profile="release" if release else "debug",
        max_contract_size=max_contract_size,
        submit_timeout=datetime.timedelta(seconds=submit_timeout),
        proxy_owner=proxy_owner,
        wallet_password=wallet_password,
        wallet_account_index=account_index,
    )

    if not config.uses_manual_signing and config.wallet_password is None:
        config.wallet_password = typer.prompt("Please provide the password of your encrypted wallet vault", hide_input=True)

    try:
        contracts = deploy(config)
    except DeployError as e:
        where = f" while deploying {e.package_name}" if e.package_name else ""
        console.print(f"[red]Error{where}:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)

    if contracts:
        console.print(format_deployed_contracts(contracts))


if __name__ == "__main__":
    app()
