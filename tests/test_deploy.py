"""Whole deployment runs over projects and workspaces on disk."""

import datetime
import json
import logging

import pytest

from fuel_deploy.config import DeployConfig
from fuel_deploy.deploy import deploy, select_wallet_mode
from fuel_deploy.identity import StorageSlot, predict_contract_id
from fuel_deploy.manifest import ManifestError
from fuel_deploy.node import FailureStatus
from fuel_deploy.salt import ZERO_SALT, SaltConflictError, SaltFormatError, SaltModeConflictError, parse_salt
from fuel_deploy.submit import NodeRejectionError
from fuel_deploy.wallet import ForcWalletMode, ManualMode, SignerResolutionError
from tests.conftest import write_project


def write_workspace(root, members: list[str]):
    root.mkdir(parents=True, exist_ok=True)
    members_toml = ", ".join(f'"{m}"' for m in members)
    (root / "Forc.toml").write_text(f"[workspace]\nmembers = [{members_toml}]\n", encoding="utf-8")


def make_config(path, **kwargs) -> DeployConfig:
    kwargs.setdefault("default_signer", True)
    kwargs.setdefault("output_directory", path / "artifacts")
    return DeployConfig(path=path, poll_delay=datetime.timedelta(0), **kwargs)


def test_deploy_single_project(tmp_path, fake_node):
    project = write_project(tmp_path, "counter", b"\x01" * 64)

    contracts = deploy(make_config(project, default_salt=True), connect=lambda url: fake_node)

    assert len(contracts) == 1
    assert contracts[0].name == "counter"
    assert contracts[0].id == predict_contract_id(b"\x01" * 64, ZERO_SALT)
    assert contracts[0].proxy is None
    assert contracts[0].chunk_ids == ()


def test_deploy_workspace_in_member_order(tmp_path, fake_node):
    workspace = tmp_path / "ws"
    write_workspace(workspace, ["token", "counter"])
    write_project(workspace, "token", b"\x02" * 64)
    write_project(workspace, "counter", b"\x01" * 64)

    config = make_config(workspace, salt=["counter:0x01", "token:0x02"])
    contracts = deploy(config, connect=lambda url: fake_node)

    assert [c.name for c in contracts] == ["token", "counter"]
    assert contracts[0].id == predict_contract_id(b"\x02" * 64, parse_salt("0x02"))
    assert contracts[1].id == predict_contract_id(b"\x01" * 64, parse_salt("0x01"))


def test_deploy_chunked_and_proxied(tmp_path, fake_node):
    """Oversized contract goes through the loader, then gets a proxy pointing to the loader."""
    bytecode = bytes(i % 251 for i in range(1000))
    project = write_project(tmp_path, "big", bytecode, manifest_extra="\n[proxy]\nenabled = true\n")

    contracts = deploy(make_config(project, default_salt=True), connect=lambda url: fake_node)

    contract = contracts[0]
    assert len(contract.chunk_ids) == 3
    assert contract.proxy is not None
    # 3 chunks, loader, proxy
    assert len(fake_node.created) == 5
    assert fake_node.created[3].contract_id == contract.id
    assert fake_node.created[4].contract_id == contract.proxy
    slots = {s.key: s.value for s in fake_node.created[4].storage_slots}
    assert contract.id in slots.values()


def test_max_contract_size_is_configurable(tmp_path, fake_node):
    project = write_project(tmp_path, "counter", bytes(range(100)))

    contracts = deploy(make_config(project, default_salt=True, max_contract_size=40), connect=lambda url: fake_node)

    assert len(contracts[0].chunk_ids) == 3


def test_empty_workspace(tmp_path, fake_node, caplog):
    write_workspace(tmp_path / "ws", [])

    with caplog.at_level(logging.WARNING):
        assert deploy(make_config(tmp_path / "ws"), connect=lambda url: fake_node) == []

    assert "No deployable contracts" in caplog.text
    assert fake_node.submitted == []


def test_salt_and_default_salt_conflict_before_deploying(tmp_path, fake_node):
    project = write_project(tmp_path, "counter", b"\x01" * 64)

    with pytest.raises(SaltModeConflictError):
        deploy(make_config(project, salt=["0x01"], default_salt=True), connect=lambda url: fake_node)

    assert fake_node.submitted == []


def test_salt_redeclaration_before_deploying(tmp_path, fake_node):
    workspace = tmp_path / "ws"
    write_workspace(workspace, ["contract_with_dep", "contract_with_dep_dep"])
    write_project(
        workspace,
        "contract_with_dep",
        b"\x01" * 64,
        manifest_extra='\n[contract-dependencies]\ncontract_with_dep_dep = { path = "../contract_with_dep_dep", salt = "0x0000000000000000000000000000000000000000000000000000000000000000" }\n',
    )
    write_project(workspace, "contract_with_dep_dep", b"\x02" * 64)

    with pytest.raises(SaltConflictError):
        deploy(make_config(workspace, salt=["contract_with_dep_dep:0x01"]), connect=lambda url: fake_node)

    assert fake_node.submitted == []


def test_salt_pinned_by_script_member(tmp_path, fake_node):
    """A script depending on a contract pins its salt as much as a contract would."""
    workspace = tmp_path / "ws"
    write_workspace(workspace, ["runner", "token"])
    write_project(
        workspace,
        "runner",
        b"\x03" * 64,
        abi={"programType": "script", "functions": []},
        manifest_extra='\n[contract-dependencies]\ntoken = { path = "../token", salt = "0x0000000000000000000000000000000000000000000000000000000000000000" }\n',
    )
    write_project(workspace, "token", b"\x02" * 64)

    with pytest.raises(SaltConflictError) as e:
        deploy(make_config(workspace, salt=["token:0x01"]), connect=lambda url: fake_node)

    assert "runner" in str(e.value)
    assert fake_node.submitted == []


def test_script_and_contract_is_a_workspace_run(tmp_path, fake_node):
    """One contract plus a script still needs labeled salts."""
    workspace = tmp_path / "ws"
    write_workspace(workspace, ["runner", "token"])
    write_project(workspace, "runner", b"\x03" * 64, abi={"programType": "script", "functions": []})
    write_project(workspace, "token", b"\x02" * 64)

    with pytest.raises(SaltFormatError):
        deploy(make_config(workspace, salt=["0x01"]), connect=lambda url: fake_node)

    assert fake_node.submitted == []


def test_first_failure_aborts_run(tmp_path, fake_node):
    workspace = tmp_path / "ws"
    write_workspace(workspace, ["a", "b", "c"])
    for i, name in enumerate(["a", "b", "c"]):
        write_project(workspace, name, bytes([i + 1]) * 64)

    fake_node.statuses = [None, FailureStatus(reason="Revert")]
    config = make_config(workspace, default_salt=True)

    with pytest.raises(NodeRejectionError) as e:
        deploy(config, connect=lambda url: fake_node)

    assert e.value.package_name == "b"
    assert len(fake_node.submitted) == 2

    # Artifact of the package deployed before the failure stays
    artifacts = list((config.output_directory / "deployments").iterdir())
    assert len(artifacts) == 1
    assert artifacts[0].name.startswith("a-deployment-0x")


def test_unsigned_is_default_signer(tmp_path, fake_node, caplog):
    project = write_project(tmp_path, "counter", b"\x01" * 64)
    config = make_config(project, default_signer=False, unsigned=True, default_salt=True)

    with caplog.at_level(logging.WARNING):
        contracts = deploy(config, connect=lambda url: fake_node)

    assert len(contracts) == 1
    assert "--unsigned flag is deprecated" in caplog.text


def test_override_storage_slots(tmp_path, fake_node):
    compiled = [StorageSlot(key=b"\x01" * 32, value=b"\x01" * 32)]
    override = [StorageSlot(key=b"\x02" * 32, value=b"\x02" * 32)]
    project = write_project(tmp_path, "counter", b"\x01" * 64, storage_slots=compiled)
    override_file = tmp_path / "override.json"
    override_file.write_text(json.dumps([s.as_json_friendly_dict() for s in override]))

    contracts = deploy(make_config(project, default_salt=True, override_storage_slots=override_file), connect=lambda url: fake_node)

    assert fake_node.created[0].storage_slots == override
    assert contracts[0].id == predict_contract_id(b"\x01" * 64, ZERO_SALT, override)


def test_override_storage_slots_wrong_size(tmp_path, fake_node):
    project = write_project(tmp_path, "counter", b"\x01" * 64)
    override_file = tmp_path / "override.json"
    override_file.write_text(json.dumps([{"key": "0x01", "value": "0x" + "02" * 32}]))

    with pytest.raises(ManifestError):
        deploy(make_config(project, default_salt=True, override_storage_slots=override_file), connect=lambda url: fake_node)

    assert fake_node.submitted == []


def test_release_profile(tmp_path, fake_node):
    project = write_project(tmp_path, "counter", b"\x09" * 64, profile="release")

    contracts = deploy(make_config(project, default_salt=True, build_profile="release"), connect=lambda url: fake_node)

    assert contracts[0].id == predict_contract_id(b"\x09" * 64, ZERO_SALT)


def test_manifest_network_url_is_used(tmp_path, fake_node):
    project = write_project(tmp_path, "counter", b"\x01" * 64, manifest_extra='\n[network]\nurl = "https://custom.example"\n')
    urls = []

    def connect(url):
        urls.append(url)
        return fake_node

    deploy(make_config(project, default_salt=True), connect=connect)

    assert urls == ["https://custom.example"]


def test_select_wallet_mode(tmp_path):
    assert isinstance(select_wallet_mode(make_config(tmp_path)), ManualMode)
    assert isinstance(select_wallet_mode(make_config(tmp_path, default_signer=False, signing_key="0x01")), ManualMode)

    mode = select_wallet_mode(make_config(tmp_path, default_signer=False, wallet_password="pw", wallet_account_index=2))
    assert isinstance(mode, ForcWalletMode)
    assert mode.account_index == 2

    with pytest.raises(SignerResolutionError):
        select_wallet_mode(make_config(tmp_path, default_signer=False))
