"""Shared fixtures: fake node, deployment context and on-disk projects."""

import datetime
import json
from pathlib import Path

import pytest

from fuel_deploy.builder import TemplateContractBuilder
from fuel_deploy.config import DeployConfig
from fuel_deploy.context import DeploymentContext
from fuel_deploy.identity import StorageSlot
from fuel_deploy.package import BuiltPackage
from fuel_deploy.wallet import ManualMode
from tests.fake_node import FakeNode

#: A Fuel program ABI, good enough for loaders
CONTRACT_ABI = {"programType": "contract", "specVersion": "1", "encodingVersion": "1", "functions": []}


def write_project(
    root: Path,
    name: str,
    bytecode: bytes,
    abi: dict | list | None = None,
    storage_slots: list[StorageSlot] | None = None,
    manifest_extra: str = "",
    profile: str = "debug",
) -> Path:
    """Create a project folder with a manifest and build output, as the compiler would.

    :return:
        Project folder
    """
    project = root / name
    out = project / "out" / profile
    out.mkdir(parents=True)

    (project / "Forc.toml").write_text(f'[project]\nname = "{name}"\nentry = "main.sw"\n{manifest_extra}', encoding="utf-8")
    (out / f"{name}.bin").write_bytes(bytecode)
    (out / f"{name}-abi.json").write_text(json.dumps(CONTRACT_ABI if abi is None else abi), encoding="utf-8")
    (out / f"{name}-storage_slots.json").write_text(json.dumps([s.as_json_friendly_dict() for s in storage_slots or []]), encoding="utf-8")
    return project


def make_package(name: str = "counter", bytecode: bytes = b"\x01" * 64, **kwargs) -> BuiltPackage:
    """Package not backed by any file."""
    kwargs.setdefault("storage_slots", [])
    kwargs.setdefault("abi", CONTRACT_ABI)
    return BuiltPackage(name=name, bytecode=bytecode, **kwargs)


@pytest.fixture()
def fake_node() -> FakeNode:
    return FakeNode()


@pytest.fixture()
def deploy_config(tmp_path) -> DeployConfig:
    """Default signer, zero salt, no waiting between polls."""
    return DeployConfig(
        path=tmp_path,
        default_signer=True,
        default_salt=True,
        output_directory=tmp_path / "out",
        poll_delay=datetime.timedelta(0),
    )


@pytest.fixture()
def ctx(deploy_config, fake_node) -> DeploymentContext:
    return DeploymentContext(
        config=deploy_config,
        builder=TemplateContractBuilder(),
        wallet_mode=ManualMode(),
        connect=lambda url: fake_node,
    )
