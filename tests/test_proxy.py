"""Proxy creation and target updates."""

import pytest
import tomlkit
from eth_utils import decode_hex

from fuel_deploy.builder import PROXY_OWNER_KEY, PROXY_TARGET_KEY, SET_PROXY_TARGET
from fuel_deploy.identity import format_contract_id
from fuel_deploy.manifest import PackageManifest
from fuel_deploy.package import BuiltPackage, load_built_package
from fuel_deploy.proxy import handle_proxy
from fuel_deploy.salt import ZERO_SALT
from fuel_deploy.wallet import DEFAULT_PRIVATE_KEY, ForcWalletMode, SignerResolutionError, address_from_private_key
from tests.conftest import write_project

IMPLEMENTATION_ID = b"\x42" * 32

EXISTING_PROXY = "0x" + "ab" * 32


def load(project) -> BuiltPackage:
    return load_built_package(PackageManifest.from_file(project / "Forc.toml"))


def test_no_proxy_section(ctx, fake_node, tmp_path):
    package = load(write_project(tmp_path, "counter", b"\x01" * 16))
    assert handle_proxy(ctx, package, IMPLEMENTATION_ID, ZERO_SALT) is None
    assert fake_node.submitted == []


def test_proxy_disabled(ctx, fake_node, tmp_path):
    package = load(write_project(tmp_path, "counter", b"\x01" * 16, manifest_extra="\n[proxy]\nenabled = false\n"))
    assert handle_proxy(ctx, package, IMPLEMENTATION_ID, ZERO_SALT) is None
    assert fake_node.submitted == []


def test_new_proxy_is_deployed_and_recorded(ctx, fake_node, tmp_path):
    project = write_project(tmp_path, "counter", b"\x01" * 16, manifest_extra="\n# Upgradeable\n[proxy]\nenabled = true\n")
    package = load(project)

    proxy_id = handle_proxy(ctx, package, IMPLEMENTATION_ID, ZERO_SALT)

    assert len(fake_node.created) == 1
    proxy = fake_node.created[0]
    assert proxy.contract_id == proxy_id
    assert proxy.salt == ZERO_SALT

    owner = address_from_private_key(decode_hex(DEFAULT_PRIVATE_KEY))
    slots = {s.key: s.value for s in proxy.storage_slots}
    assert slots[PROXY_TARGET_KEY] == IMPLEMENTATION_ID
    assert slots[PROXY_OWNER_KEY] == decode_hex(owner)

    text = (project / "Forc.toml").read_text()
    assert "# Upgradeable" in text
    assert tomlkit.parse(text)["proxy"]["address"] == format_contract_id(proxy_id)
    assert package.manifest.proxy.address == format_contract_id(proxy_id)

    assert (tmp_path / "out" / "deployments" / f"counter_proxy-deployment-{format_contract_id(proxy_id)}.json").exists()


def test_new_proxy_uses_given_owner(ctx, fake_node, tmp_path):
    owner = "0x" + "cd" * 32
    ctx.config.proxy_owner = owner
    package = load(write_project(tmp_path, "counter", b"\x01" * 16, manifest_extra="\n[proxy]\nenabled = true\n"))

    handle_proxy(ctx, package, IMPLEMENTATION_ID, ZERO_SALT)

    slots = {s.key: s.value for s in fake_node.created[0].storage_slots}
    assert slots[PROXY_OWNER_KEY] == decode_hex(owner)
    assert ctx.owner_address == owner


def test_existing_proxy_is_updated(ctx, fake_node, tmp_path):
    project = write_project(tmp_path, "counter", b"\x01" * 16, manifest_extra=f'\n[proxy]\nenabled = true\naddress = "{EXISTING_PROXY}"\n')
    package = load(project)
    before = (project / "Forc.toml").read_text()

    proxy_id = handle_proxy(ctx, package, IMPLEMENTATION_ID, ZERO_SALT)

    assert proxy_id == decode_hex(EXISTING_PROXY)
    assert fake_node.created == []
    assert len(fake_node.calls) == 1
    call = fake_node.calls[0]
    assert call.contract_id == decode_hex(EXISTING_PROXY)
    assert call.function_name == SET_PROXY_TARGET
    assert call.arguments == IMPLEMENTATION_ID
    assert (project / "Forc.toml").read_text() == before


def test_existing_proxy_with_forc_wallet_fails(ctx, fake_node, tmp_path):
    ctx.config.default_signer = False
    ctx.wallet_mode = ForcWalletMode(password="secret", wallet_path=tmp_path / ".wallet")
    package = load(write_project(tmp_path, "counter", b"\x01" * 16, manifest_extra=f'\n[proxy]\nenabled = true\naddress = "{EXISTING_PROXY}"\n'))

    with pytest.raises(SignerResolutionError) as e:
        handle_proxy(ctx, package, IMPLEMENTATION_ID, ZERO_SALT)

    assert str(e.value) == "proxy contract deployments are not supported with manual prompt based signing"
    assert fake_node.submitted == []


def test_owner_resolved_once(ctx, fake_node, tmp_path):
    """The owner is resolved for the first proxy and reused for the next ones."""
    first = load(write_project(tmp_path, "first", b"\x01" * 16, manifest_extra="\n[proxy]\nenabled = true\n"))
    second = load(write_project(tmp_path, "second", b"\x02" * 16, manifest_extra="\n[proxy]\nenabled = true\n"))

    handle_proxy(ctx, first, IMPLEMENTATION_ID, ZERO_SALT)
    owner = ctx.owner_address
    ctx.config.signing_key = "0x" + "77" * 32

    handle_proxy(ctx, second, b"\x43" * 32, ZERO_SALT)

    assert ctx.owner_address == owner
    slots = {s.key: s.value for s in fake_node.created[1].storage_slots}
    assert slots[PROXY_OWNER_KEY] == decode_hex(owner)
