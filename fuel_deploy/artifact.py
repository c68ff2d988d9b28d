"""Deployment artifacts.

After every committed deployment we leave a JSON file behind:

.. code-block:: text

    <output_dir>/deployments/<package>-deployment-0x<contract_id>.json

The files are the recovery checkpoint of a multi-package run:
if the run aborts halfway, the already deployed contracts can be found from here.
"""

import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path

from fuel_deploy.errors import DeployError

logger = logging.getLogger(__name__)

#: Subfolder of the output directory
DEPLOYMENTS_FOLDER = "deployments"


class ArtifactWriteError(DeployError):
    """Deployment succeeded but we could not write the artifact file."""


def get_artifact_path(output_dir: Path, pkg_name: str, contract_id: str) -> Path:
    """Where the artifact of a deployment goes.

    :param contract_id:
        Hex contract id, with or without `0x`
    """
    contract_id = contract_id.removeprefix("0x")
    return output_dir / DEPLOYMENTS_FOLDER / f"{pkg_name}-deployment-0x{contract_id}.json"


@dataclass(slots=True, frozen=True)
class DeploymentArtifact:
    """A committed deployment.

    All binary values are 0x hex strings, so the artifact is directly JSON serialisable.
    """

    transaction_id: str

    salt: str

    #: Node URL the deployment was sent to
    network_endpoint: str

    chain_id: int

    contract_id: str

    #: Bytecode size in bytes
    deployment_size: int

    deployed_block_height: int

    def to_file(self, output_dir: Path, pkg_name: str, contract_id: str) -> Path:
        """Write the artifact as pretty printed JSON.

        :raise ArtifactWriteError:
            Directory cannot be created or the file written

        :return:
            Path of the written file
        """
        path = get_artifact_path(output_dir, pkg_name, contract_id)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("wt", encoding="utf-8") as f:
                json.dump(asdict(self), f, indent=2)
        except OSError as e:
            raise ArtifactWriteError(f"Could not write deployment artifact {path}: {e}", contract_id=contract_id) from e

        logger.info("Wrote deployment artifact %s", path)
        return path

    @staticmethod
    def from_file(path: Path) -> "DeploymentArtifact":
        with path.open("rt", encoding="utf-8") as f:
            data = json.load(f)
        return DeploymentArtifact(**data)
