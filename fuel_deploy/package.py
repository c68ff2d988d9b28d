"""Compiled packages handed over by the build pipeline.

The compiler writes its output next to each project:

.. code-block:: text

    counter/
        Forc.toml
        out/
            debug/
                counter.bin
                counter-abi.json
                counter-storage_slots.json

We read those files into :py:class:`BuiltPackage` instances. Nothing here compiles anything.
"""

import enum
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

from fuel_deploy.identity import StorageSlot
from fuel_deploy.manifest import ManifestError, PackageManifest, WorkspaceManifest, load_manifest

logger = logging.getLogger(__name__)

#: Build profile used when nothing else is asked
DEFAULT_BUILD_PROFILE = "debug"


class ProgramType(enum.Enum):
    """What the compiler produced."""

    contract = "contract"
    script = "script"
    predicate = "predicate"
    library = "library"


class BuildTarget(enum.Enum):
    """Which VM the bytecode was compiled for."""

    fuel = "fuel"
    evm = "evm"


@dataclass(slots=True)
class BuiltPackage:
    """A compiled package ready to be deployed.

    Immutable from the deployment point of view.
    """

    name: str

    bytecode: bytes

    storage_slots: list[StorageSlot]

    #: JSON ABI.
    #:
    #: A dict for the Fuel program ABI, a list for EVM ABI.
    abi: dict | list

    program_type: ProgramType = ProgramType.contract

    target: BuildTarget = BuildTarget.fuel

    #: Source manifest, `None` for packages synthesised during deployment
    manifest: PackageManifest | None = None

    #: Where deployment artifacts go if the user did not ask otherwise
    output_directory: Path | None = None

    #: Chunk or loader packages point back to the package they were made from
    parent: "BuiltPackage | None" = field(default=None, repr=False)

    def __repr__(self):
        return f"<BuiltPackage {self.name} {self.program_type.value}, {len(self.bytecode):,} bytes>"

    @property
    def is_contract(self) -> bool:
        return self.program_type == ProgramType.contract

    @property
    def root(self) -> "BuiltPackage":
        """The user package this package was derived from."""
        return self.parent.root if self.parent else self

    def get_manifest(self) -> PackageManifest | None:
        return self.root.manifest

    def get_default_output_directory(self) -> Path:
        """`<project>/out` unless given at construction."""
        root = self.root
        if root.output_directory:
            return root.output_directory
        if root.manifest:
            return root.manifest.dir / "out"
        return Path("out")


def read_storage_slots(path: Path) -> list[StorageSlot]:
    """Read a `*-storage_slots.json` file.

    Also used for `--override-storage-slots`.
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return [StorageSlot.from_json(item) for item in data]
    except (OSError, ValueError, KeyError) as e:
        raise ManifestError(f"Could not read storage slots from {path}: {e}") from e


def detect_program_type(abi: dict | list) -> ProgramType:
    if isinstance(abi, list):
        # EVM ABI has no notion of program type, only contracts are compiled to EVM
        return ProgramType.contract
    return ProgramType(abi.get("programType", "contract"))


def load_built_package(manifest: PackageManifest, profile: str = DEFAULT_BUILD_PROFILE) -> BuiltPackage:
    """Read the compiler output of a single project.

    :raise ManifestError:
        The project has not been built with this profile
    """
    name = manifest.project_name
    out = manifest.dir / "out" / profile
    bin_path = out / f"{name}.bin"
    abi_path = out / f"{name}-abi.json"
    storage_path = out / f"{name}-storage_slots.json"

    if not bin_path.exists():
        raise ManifestError(f"Package {name} has no build output at {bin_path}, build it first with profile {profile}")

    try:
        bytecode = bin_path.read_bytes()
        abi = json.loads(abi_path.read_text(encoding="utf-8")) if abi_path.exists() else {}
    except (OSError, ValueError) as e:
        raise ManifestError(f"Could not read build output of {name}: {e}") from e

    storage_slots = read_storage_slots(storage_path) if storage_path.exists() else []

    target = BuildTarget.evm if isinstance(abi, list) else BuildTarget.fuel

    return BuiltPackage(
        name=name,
        bytecode=bytecode,
        storage_slots=storage_slots,
        abi=abi,
        program_type=detect_program_type(abi),
        target=target,
        manifest=manifest,
    )


def load_built_packages(path: Path, profile: str = DEFAULT_BUILD_PROFILE) -> list[BuiltPackage]:
    """Read a project or every member of a workspace.

    Workspace members come in the order of `members` in the workspace manifest.
    """
    manifest = load_manifest(path)
    if isinstance(manifest, WorkspaceManifest):
        packages = []
        for member in manifest.members:
            member_manifest = load_manifest(member)
            assert isinstance(member_manifest, PackageManifest), f"Nested workspaces are not supported: {member}"
            packages.append(load_built_package(member_manifest, profile))
        logger.info("Loaded %d packages from workspace %s", len(packages), manifest.path)
        return packages

    return [load_built_package(manifest, profile)]
