"""Logging and console output helpers."""

import logging
import os

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from fuel_deploy.identity import format_contract_id


def setup_console_logging(default_log_level="info", console: Console | None = None) -> logging.Logger:
    """Set up coloured log output.

    - Level comes from `LOG_LEVEL` environment variable, or `default_log_level`

    - Tune down some noisy dependency library logging

    :return:
        Root logger
    """
    level = os.environ.get("LOG_LEVEL", default_log_level).upper()
    numeric_level = getattr(logging, level, None)
    assert isinstance(numeric_level, int), f"No level: {level}"

    logging.basicConfig(
        level=numeric_level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )

    # Mute noise
    logging.getLogger("urllib3.connectionpool").setLevel(logging.WARNING)
    return logging.getLogger()


def format_deployed_contracts(contracts: list) -> Table:
    """Table of :py:class:`fuel_deploy.deploy.DeployedContract` for the terminal."""
    table = Table(title="Deployed contracts")
    table.add_column("Contract")
    table.add_column("Contract id")
    table.add_column("Proxy")
    table.add_column("Chunks", justify="right")

    for contract in contracts:
        table.add_row(
            contract.name,
            format_contract_id(contract.id),
            format_contract_id(contract.proxy) if contract.proxy else "-",
            str(len(contract.chunk_ids)) if contract.chunk_ids else "-",
        )
    return table
