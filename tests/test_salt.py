"""Salt parsing, conflicts and selection."""

from pathlib import Path

import pytest

from fuel_deploy.manifest import ContractDependency, PackageManifest
from fuel_deploy.salt import (
    ZERO_SALT,
    SaltConflictError,
    SaltFormatError,
    SaltModeConflictError,
    SaltUsageError,
    check_salt_mode,
    format_salt,
    parse_salt,
    resolve_salt_map,
    select_salt,
    validate_and_parse_salts,
)
from tests.conftest import make_package


def manifest(name: str, deps: list[ContractDependency] | None = None) -> PackageManifest:
    return PackageManifest(path=Path(f"/workspace/{name}/Forc.toml"), project_name=name, contract_dependencies=deps or [])


@pytest.mark.parametrize(
    "value",
    [
        "0x" + "ab" * 32,
        "0x" + "00" * 32,
        "0x" + "00" * 31 + "01",
    ],
)
def test_parse_format_round_trip(value):
    assert format_salt(parse_salt(value)) == value


def test_parse_salt_without_prefix_and_short():
    assert parse_salt("01") == bytes(31) + b"\x01"
    assert parse_salt("0x00") == ZERO_SALT


@pytest.mark.parametrize("value", ["", "0x", "0xzz", "0x" + "00" * 33])
def test_parse_salt_invalid(value):
    with pytest.raises(SaltFormatError):
        parse_salt(value)


def test_workspace_salts():
    salt_map = validate_and_parse_salts(["a:0x01", "b:0x02"], [manifest("a"), manifest("b")])
    assert salt_map == {"a": parse_salt("0x01"), "b": parse_salt("0x02")}

    # Frozen after validation
    with pytest.raises(TypeError):
        salt_map["c"] = ZERO_SALT


def test_workspace_salt_needs_name():
    with pytest.raises(SaltFormatError) as e:
        validate_and_parse_salts(["0x01"], [manifest("a")])
    assert str(e.value) == "Invalid salt provided - salt must be in the form <CONTRACT_NAME>:<SALT> when deploying a workspace"


def test_duplicate_salt_quotes_both_values():
    """The same contract named twice fails and quotes both salts verbatim."""
    with pytest.raises(SaltConflictError) as e:
        validate_and_parse_salts(["a:0x00", "a:0x00"], [manifest("a")])
    assert str(e.value) == "2 salts provided for contract 'a':\n  0x00\n  0x00"


def test_redeclaration_of_pinned_dependency_salt():
    pinned = "0x" + "00" * 32
    supplied = "0x" + "00" * 31 + "01"
    manifests = [
        manifest("contract_with_dep", [ContractDependency(name="contract_with_dep_dep", salt=pinned)]),
        manifest("contract_with_dep_dep"),
    ]

    with pytest.raises(SaltConflictError) as e:
        validate_and_parse_salts([f"contract_with_dep_dep:{supplied}"], manifests)

    message = str(e.value)
    assert message == (
        "Redeclaration of salt using the option '--salt' while a salt exists for contract 'contract_with_dep_dep' "
        "under the contract dependencies of the Forc.toml manifest for 'contract_with_dep'\n"
        f"Existing salt: '{pinned}',\n"
        f"You declared: '{supplied}'\n"
    )
    assert message.index(pinned) < message.index(supplied)


def test_dependency_without_salt_does_not_conflict():
    manifests = [manifest("a", [ContractDependency(name="b")]), manifest("b")]
    salt_map = validate_and_parse_salts(["b:0x02"], manifests)
    assert salt_map["b"] == parse_salt("0x02")


def test_renamed_dependency_conflicts_by_package_name():
    manifests = [manifest("a", [ContractDependency(name="alias", package="b", salt="0x01")]), manifest("b")]
    with pytest.raises(SaltConflictError):
        validate_and_parse_salts(["b:0x02"], manifests)


def test_unknown_salt_name_warns(caplog):
    validate_and_parse_salts(["nope:0x01"], [manifest("a")])
    assert "nope" in caplog.text


def test_single_package_accepts_bare_salt():
    salt_map = resolve_salt_map(["0x05"], [make_package("counter")])
    assert salt_map == {"counter": parse_salt("0x05")}


def test_single_package_accepts_labeled_salt():
    salt_map = resolve_salt_map(["counter:0x05"], [make_package("counter")])
    assert salt_map == {"counter": parse_salt("0x05")}


def test_single_package_rejects_other_label():
    with pytest.raises(SaltFormatError):
        resolve_salt_map(["token:0x05"], [make_package("counter")])


def test_single_package_rejects_many_salts():
    with pytest.raises(SaltUsageError) as e:
        resolve_salt_map(["0x01", "0x02"], [make_package("counter")])
    assert str(e.value) == "More than 1 salt was specified when deploying a single contract"


def test_no_salts_no_map():
    assert resolve_salt_map(None, [make_package()]) is None
    assert resolve_salt_map([], [make_package()]) is None


def test_select_salt_from_map():
    salt_map = {"counter": parse_salt("0x07")}
    assert select_salt(salt_map, "counter", default_salt=False) == parse_salt("0x07")


def test_select_salt_default():
    assert select_salt(None, "counter", default_salt=True) == ZERO_SALT


def test_select_salt_random():
    first = select_salt(None, "counter", default_salt=False)
    second = select_salt(None, "counter", default_salt=False)
    assert len(first) == 32
    assert first != second


def test_select_salt_map_without_entry_is_random():
    salt = select_salt({"token": ZERO_SALT}, "counter", default_salt=False)
    assert len(salt) == 32
    assert salt != ZERO_SALT


def test_salt_map_and_default_salt_conflict():
    with pytest.raises(SaltModeConflictError):
        check_salt_mode({"counter": ZERO_SALT}, default_salt=True)

    with pytest.raises(SaltModeConflictError):
        select_salt({"counter": ZERO_SALT}, "counter", default_salt=True)

    check_salt_mode(None, default_salt=True)
    check_salt_mode({"counter": ZERO_SALT}, default_salt=False)
