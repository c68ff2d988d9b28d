"""Deployment salt parsing and validation.

The salt is mixed into the contract id, see :py:mod:`fuel_deploy.identity`.
Deploying the same bytecode with different salts gives different contracts.

Salts come from

- `--salt` command line options: `<name>:<hex>` for workspaces, bare `<hex>` for a single contract

- `--default-salt`: all zero salt

- otherwise a random salt is generated for each contract

Salts pinned in `[contract-dependencies]` of a workspace member must not be overridden
from the command line, because the depending contract was compiled against that id.
"""

import logging
import secrets
from types import MappingProxyType
from typing import Iterable, Mapping, Sequence, TypeAlias

from eth_typing import HexStr
from eth_utils import encode_hex

from fuel_deploy.errors import DeployError
from fuel_deploy.manifest import PackageManifest

logger = logging.getLogger(__name__)

#: Salt size in bytes
SALT_SIZE = 32

#: Used with `--default-salt`
ZERO_SALT = bytes(SALT_SIZE)

#: Contract name -> salt, frozen after validation
ContractSaltMap: TypeAlias = Mapping[str, bytes]


class SaltFormatError(DeployError):
    """Salt argument cannot be parsed."""


class SaltConflictError(DeployError):
    """Two different sources try to set the salt of the same contract."""


class SaltUsageError(DeployError):
    """Salt options do not fit the packages being deployed."""


class SaltModeConflictError(DeployError):
    """Both explicit salts and `--default-salt` were given."""


def parse_salt(value: str) -> bytes:
    """Parse a hex salt.

    - `0x` prefix is optional

    - Short values are left-padded with zeros: `0x01` is the salt with the last byte set

    :raise SaltFormatError:
        Not hex or longer than 32 bytes
    """
    text = value.strip()
    if text.startswith(("0x", "0X")):
        text = text[2:]

    if not text or len(text) > SALT_SIZE * 2:
        raise SaltFormatError(f"Invalid salt {value!r}: expected up to {SALT_SIZE} bytes of hex")

    try:
        raw = bytes.fromhex(text.rjust(SALT_SIZE * 2, "0"))
    except ValueError as e:
        raise SaltFormatError(f"Invalid salt {value!r}: {e}") from e

    return raw


def format_salt(salt: bytes) -> HexStr:
    """`0x` + 64 hex digits."""
    assert len(salt) == SALT_SIZE, f"Bad salt {salt!r}"
    return encode_hex(salt)


def generate_random_salt() -> bytes:
    return secrets.token_bytes(SALT_SIZE)


def validate_and_parse_salts(
    salt_args: Sequence[str],
    manifests: Iterable[PackageManifest],
) -> ContractSaltMap:
    """Turn workspace `--salt` options into a salt map.

    Example:

    .. code-block:: python

        salt_map = validate_and_parse_salts(
            ["counter:0x01", "token:0x02"],
            [pkg.manifest for pkg in packages],
        )
        assert salt_map["counter"] == parse_salt("0x01")

    :param salt_args:
        `<CONTRACT_NAME>:<SALT>` strings

    :param manifests:
        Manifests of all workspace members

    :raise SaltFormatError:
        An argument is not `<name>:<salt>`

    :raise SaltConflictError:
        A contract got two salts, or the salt is already pinned by a contract dependency

    :return:
        Read-only mapping of contract name -> salt
    """
    contract_salt_map: dict[str, bytes] = {}
    raw_values: dict[str, str] = {}

    # Parse all the salt arguments first, and bail out on the first error
    for salt_arg in salt_args:
        if ":" not in salt_arg:
            raise SaltFormatError("Invalid salt provided - salt must be in the form <CONTRACT_NAME>:<SALT> when deploying a workspace")

        given_contract_name, raw_salt = salt_arg.split(":", 1)
        salt = parse_salt(raw_salt)

        if given_contract_name in contract_salt_map:
            old = raw_values[given_contract_name]
            raise SaltConflictError(f"2 salts provided for contract '{given_contract_name}':\n  {old}\n  {raw_salt}")

        contract_salt_map[given_contract_name] = salt
        raw_values[given_contract_name] = raw_salt

    manifests = list(manifests)

    for manifest in manifests:
        for dep in manifest.contract_dependencies:
            if dep.salt is None:
                continue

            declared_salt = contract_salt_map.get(dep.package_name)
            if declared_salt is not None:
                existing_salt = parse_salt(dep.salt)
                raise SaltConflictError(
                    f"Redeclaration of salt using the option '--salt' while a salt exists for contract '{dep.package_name}' "
                    f"under the contract dependencies of the Forc.toml manifest for '{manifest.project_name}'\n"
                    f"Existing salt: '{format_salt(existing_salt)}',\n"
                    f"You declared: '{format_salt(declared_salt)}'\n"
                )

    known_names = {m.project_name for m in manifests}
    for name in contract_salt_map:
        if name not in known_names:
            logger.warning("Salt given for contract %s which is not part of this workspace", name)

    return MappingProxyType(contract_salt_map)


def resolve_salt_map(salt_args: Sequence[str] | None, packages: Sequence) -> ContractSaltMap | None:
    """Build the salt map for a deployment run.

    - Workspace runs need `<name>:<salt>` for every salt

    - A single package run accepts one bare salt, or one labeled with the package name

    :param packages:
        Every :py:class:`fuel_deploy.package.BuiltPackage` of the run, scripts and predicates included.

    :return:
        `None` when no salts were given
    """
    if not salt_args:
        return None

    if len(packages) > 1:
        manifests = [p.manifest for p in packages if p.manifest is not None]
        return validate_and_parse_salts(salt_args, manifests)

    if len(salt_args) > 1:
        raise SaltUsageError("More than 1 salt was specified when deploying a single contract")

    assert len(packages) == 1, "Cannot take a salt without packages"
    package_name = packages[0].name
    salt_arg = salt_args[0]

    if ":" in salt_arg:
        given_contract_name, raw_salt = salt_arg.split(":", 1)
        if given_contract_name != package_name:
            raise SaltFormatError(f"Salt given for contract '{given_contract_name}' but deploying '{package_name}'")
    else:
        raw_salt = salt_arg

    return MappingProxyType({package_name: parse_salt(raw_salt)})


def check_salt_mode(salt_map: ContractSaltMap | None, default_salt: bool):
    """Explicit salts and `--default-salt` exclude each other.

    Checked before anything is deployed.
    """
    if salt_map is not None and default_salt:
        raise SaltModeConflictError("Both `--salt` and `--default-salt` were specified: must choose one")


def select_salt(salt_map: ContractSaltMap | None, package_name: str, default_salt: bool) -> bytes:
    """Pick the salt of one contract.

    ============  =============  ===============
    Salt map      Default salt   Result
    ============  =============  ===============
    has entry     off            the entry
    no entry      off            random
    None          on             zero
    None          off            random
    given         on             error
    ============  =============  ===============
    """
    check_salt_mode(salt_map, default_salt)

    if salt_map is not None:
        salt = salt_map.get(package_name)
        if salt is not None:
            return salt
        logger.info("No salt given for %s, using a random salt", package_name)
        return generate_random_salt()

    if default_salt:
        return ZERO_SALT

    return generate_random_salt()
