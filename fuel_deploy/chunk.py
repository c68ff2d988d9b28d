"""Deploy contracts larger than the chain allows.

Oversized bytecode is cut into chunks, each chunk is deployed as its own contract,
and a small loader contract referring to the chunks in order becomes the contract users call.

.. code-block:: text

    bytecode (1000 bytes), limit 480

    counter_chunk_0  480 bytes  -> 0xaa...
    counter_chunk_1  480 bytes  -> 0xbb...
    counter_chunk_2   40 bytes  -> 0xcc...

    counter (loader) -> [0xaa..., 0xbb..., 0xcc...]

All chunks and the loader use the same salt.
They still get distinct ids because their bytecode differs.
"""

import logging
from dataclasses import dataclass

from fuel_deploy.context import DeploymentContext
from fuel_deploy.errors import DeployError
from fuel_deploy.identity import ContractId
from fuel_deploy.package import BuildTarget, BuiltPackage, ProgramType
from fuel_deploy.submit import deploy_pkg

logger = logging.getLogger(__name__)


class UnsupportedChunkingTargetError(DeployError):
    """Loader contracts need the Fuel program ABI."""


@dataclass(slots=True, frozen=True)
class ContractChunk:
    """A slice of the original bytecode."""

    #: Position of the chunk, the loader joins chunks in this order
    index: int

    bytecode: bytes

    def get_package_name(self, parent_name: str) -> str:
        return f"{parent_name}_chunk_{self.index}"


def split_into_chunks(bytecode: bytes, max_size: int) -> list[ContractChunk]:
    """Cut bytecode into pieces of at most `max_size` bytes.

    `ceil(len(bytecode) / max_size)` chunks, joined in order they give back the bytecode.
    """
    assert max_size > 0, f"Bad chunk size {max_size}"
    return [ContractChunk(index=i, bytecode=bytecode[offset : offset + max_size]) for i, offset in enumerate(range(0, len(bytecode), max_size))]


def check_chunking_target(package: BuiltPackage):
    """Fail before anything is deployed if the loader cannot be built.

    :raise UnsupportedChunkingTargetError:
        The ABI is not the Fuel program ABI
    """
    if package.target != BuildTarget.fuel or not isinstance(package.abi, dict):
        raise UnsupportedChunkingTargetError(f"Deploying {package.name} in chunks needs a Fuel program ABI, the {package.target.value} target does not support loader contracts")


def deploy_chunked(ctx: DeploymentContext, package: BuiltPackage, salt: bytes) -> tuple[ContractId, list[ContractId]]:
    """Deploy the chunks of `package`, then a loader over them.

    Chunks are deployed one by one. If a chunk fails, the run aborts
    and the loader is never deployed.

    :return:
        Tuple (loader contract id, chunk contract ids in order)
    """
    check_chunking_target(package)

    chunks = split_into_chunks(package.bytecode, ctx.config.max_contract_size)
    logger.info("Contract %s is %d bytes, deploying in %d chunks of at most %d bytes", package.name, len(package.bytecode), len(chunks), ctx.config.max_contract_size)

    chunk_ids = []
    for chunk in chunks:
        chunk_package = BuiltPackage(
            name=chunk.get_package_name(package.name),
            bytecode=chunk.bytecode,
            storage_slots=[],
            abi={},
            program_type=ProgramType.contract,
            target=package.target,
            parent=package,
        )
        chunk_id = deploy_pkg(ctx, chunk_package, salt, storage_slots=[])
        chunk_ids.append(chunk_id)

    loader = ctx.builder.build_loader_contract(package, chunk_ids)
    loader_id = deploy_pkg(ctx, loader, salt, storage_slots=ctx.storage_slot_override)

    logger.info("Loader for %s deployed over %d chunks", package.name, len(chunk_ids))
    return loader_id, chunk_ids
