"""Forc.toml manifest reading and rewriting.

We only read the parts of the manifest the deployment needs:

.. code-block:: toml

    [project]
    name = "counter"

    [network]
    url = "https://testnet.fuel.network"

    [proxy]
    enabled = true
    address = "0x..."   # Written by us after a new proxy is deployed

    [contract-dependencies]
    token = { path = "../token", salt = "0x0000..." }

A workspace manifest lists its members instead:

.. code-block:: toml

    [workspace]
    members = ["counter", "token"]

Rewriting uses :py:mod:`tomlkit` so comments and formatting of the user's file survive.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

import tomlkit
from tomlkit.exceptions import TOMLKitError

from fuel_deploy.errors import DeployError

logger = logging.getLogger(__name__)

#: The manifest file name in every project and workspace folder
MANIFEST_FILE_NAME = "Forc.toml"


class ManifestError(DeployError):
    """Manifest or build output cannot be read."""


class ManifestRewriteError(DeployError):
    """Could not write the new proxy address back to the manifest."""


@dataclass(slots=True, frozen=True)
class ProxyConfig:
    """`[proxy]` section of a package manifest."""

    #: Deploy or update a proxy in front of the contract
    enabled: bool = False

    #: Existing proxy contract id.
    #:
    #: `None` means a new proxy is deployed on the next run.
    address: str | None = None


@dataclass(slots=True, frozen=True)
class ContractDependency:
    """One `[contract-dependencies]` entry."""

    #: Dependency name as written in the manifest
    name: str

    #: `package = "..."` renaming, if any
    package: str | None = None

    #: Salt pinned in the manifest as a hex string, if any
    salt: str | None = None

    @property
    def package_name(self) -> str:
        return self.package or self.name


@dataclass(slots=True)
class PackageManifest:
    """Parsed `Forc.toml` of a single project."""

    #: Path to the Forc.toml file
    path: Path

    project_name: str

    #: `[network] url`, if set
    network_url: str | None = None

    #: `None` if there is no `[proxy]` section
    proxy: ProxyConfig | None = None

    contract_dependencies: list[ContractDependency] = field(default_factory=list)

    @property
    def dir(self) -> Path:
        """Project folder."""
        return self.path.parent

    @staticmethod
    def from_file(path: Path) -> "PackageManifest":
        data = _read_toml(path)

        project = data.get("project")
        if not project or "name" not in project:
            raise ManifestError(f"{path} has no [project] name")

        network = data.get("network") or {}

        proxy = None
        if "proxy" in data:
            proxy_data = data["proxy"]
            proxy = ProxyConfig(
                enabled=bool(proxy_data.get("enabled", False)),
                address=proxy_data.get("address"),
            )

        deps = []
        for dep_name, dep in (data.get("contract-dependencies") or {}).items():
            if isinstance(dep, dict):
                deps.append(ContractDependency(name=dep_name, package=dep.get("package"), salt=dep.get("salt")))
            else:
                # Version string dependency, nothing pinned
                deps.append(ContractDependency(name=dep_name))

        return PackageManifest(
            path=path,
            project_name=project["name"],
            network_url=network.get("url"),
            proxy=proxy,
            contract_dependencies=deps,
        )

    def update_proxy_address(self, address: str):
        """Record a freshly deployed proxy in `[proxy] address`.

        The next deployment run then updates this proxy instead of deploying a new one.

        :raise ManifestRewriteError:
            If the file cannot be read back or written
        """
        try:
            doc = tomlkit.parse(self.path.read_text(encoding="utf-8"))
            if "proxy" not in doc:
                doc["proxy"] = tomlkit.table()
            doc["proxy"]["address"] = address
            self.path.write_text(tomlkit.dumps(doc), encoding="utf-8")
        except (OSError, TOMLKitError) as e:
            raise ManifestRewriteError(f"Could not update proxy address {address} in {self.path}: {e}") from e

        enabled = self.proxy.enabled if self.proxy else True
        self.proxy = ProxyConfig(enabled=enabled, address=address)
        logger.info("Updated proxy address in %s to %s", self.path, address)


@dataclass(slots=True)
class WorkspaceManifest:
    """Parsed `Forc.toml` with a `[workspace]` section."""

    path: Path

    #: Member project folders, in the manifest order
    members: list[Path]

    @property
    def dir(self) -> Path:
        return self.path.parent

    @staticmethod
    def from_file(path: Path) -> "WorkspaceManifest":
        data = _read_toml(path)
        members = data.get("workspace", {}).get("members", [])
        return WorkspaceManifest(path=path, members=[path.parent / m for m in members])


def _read_toml(path: Path) -> dict:
    try:
        return tomlkit.parse(path.read_text(encoding="utf-8")).unwrap()
    except (OSError, TOMLKitError) as e:
        raise ManifestError(f"Could not read manifest {path}: {e}") from e


def find_manifest(path: Path) -> Path:
    """Resolve a project folder or a manifest file to the manifest file."""
    if path.is_dir():
        path = path / MANIFEST_FILE_NAME

    if not path.exists():
        raise ManifestError(f"No {MANIFEST_FILE_NAME} found at {path}")

    return path


def load_manifest(path: Path) -> PackageManifest | WorkspaceManifest:
    """Load a project or a workspace manifest."""
    path = find_manifest(path)
    data = _read_toml(path)
    if "workspace" in data:
        return WorkspaceManifest.from_file(path)
    return PackageManifest.from_file(path)
