"""Synthesised contracts: chunk loaders and proxies.

The deployment needs two kinds of contracts the user never compiled:

- a loader that stitches deployed bytecode chunks back together

- a proxy that forwards calls to the current implementation

:py:class:`ContractBuilder` is the seam where these are produced.
:py:class:`TemplateContractBuilder` fills prebuilt program templates with
the values of the deployment, no compiler is invoked.
"""

import hashlib
import logging
from typing import Protocol, Sequence

from eth_utils import decode_hex

from fuel_deploy.identity import ContractId, StorageSlot
from fuel_deploy.package import BuiltPackage, ProgramType

logger = logging.getLogger(__name__)

#: Loader program template.
#:
#: Loads the chunk contracts listed after it, in order, and jumps to the start of the joined code.
LOADER_PREAMBLE = bytes.fromhex("1a403000504100305d4100001a4410005d451000504940105d4d20001a50d000")

#: Proxy program template.
#:
#: Reads the target from storage and forwards the call frame to it.
PROXY_PREAMBLE = bytes.fromhex("1a403000504100305d4100001a44d0005d491000504d201072502000")

#: Storage key holding the proxy target contract id
PROXY_TARGET_KEY = hashlib.sha256(b"storage_SRC14_0").digest()

#: Storage key holding the proxy owner address
PROXY_OWNER_KEY = hashlib.sha256(b"storage_SRC14_1").digest()

#: ABI of :py:data:`PROXY_PREAMBLE` programs
PROXY_ABI = {
    "programType": "contract",
    "specVersion": "1",
    "encodingVersion": "1",
    "functions": [
        {
            "name": "set_proxy_target",
            "inputs": [{"name": "new_target", "concreteTypeId": "ContractId"}],
            "output": "()",
            "attributes": [{"name": "storage", "arguments": ["read", "write"]}],
        },
        {
            "name": "proxy_target",
            "inputs": [],
            "output": "Option<ContractId>",
            "attributes": [{"name": "storage", "arguments": ["read"]}],
        },
        {
            "name": "proxy_owner",
            "inputs": [],
            "output": "State",
            "attributes": [{"name": "storage", "arguments": ["read"]}],
        },
    ],
}

#: Function repointing a proxy
SET_PROXY_TARGET = "set_proxy_target"


class ContractBuilder(Protocol):
    """Produce loader and proxy packages for a user package."""

    def build_loader_contract(self, package: BuiltPackage, chunk_ids: Sequence[ContractId]) -> BuiltPackage:
        """Loader joining the deployed chunks of `package`, keeping its ABI."""

    def build_proxy_contract(self, package: BuiltPackage, owner: str, implementation_id: ContractId) -> BuiltPackage:
        """Proxy owned by `owner`, forwarding to `implementation_id`."""


class TemplateContractBuilder:
    """Build loaders and proxies from fixed program templates.

    - Loader bytecode is the preamble, the chunk count as big endian u64 and the chunk ids

    - Proxy bytecode is the preamble, the target and the owner go to storage
    """

    def __init__(self, loader_preamble: bytes = LOADER_PREAMBLE, proxy_preamble: bytes = PROXY_PREAMBLE):
        assert len(loader_preamble) % 4 == 0, "Instructions are 4 bytes"
        self.loader_preamble = loader_preamble
        self.proxy_preamble = proxy_preamble

    def build_loader_contract(self, package: BuiltPackage, chunk_ids: Sequence[ContractId]) -> BuiltPackage:
        assert chunk_ids, f"No chunks to load for {package.name}"
        for chunk_id in chunk_ids:
            assert len(chunk_id) == 32, f"Bad chunk id {chunk_id!r}"

        bytecode = self.loader_preamble + len(chunk_ids).to_bytes(8, "big") + b"".join(chunk_ids)
        logger.debug("Built loader for %s over %d chunks, %d bytes", package.name, len(chunk_ids), len(bytecode))
        return BuiltPackage(
            name=package.name,
            bytecode=bytecode,
            storage_slots=list(package.storage_slots),
            abi=package.abi,
            program_type=ProgramType.contract,
            target=package.target,
            parent=package,
        )

    def build_proxy_contract(self, package: BuiltPackage, owner: str, implementation_id: ContractId) -> BuiltPackage:
        owner_bytes = decode_hex(owner)
        assert len(owner_bytes) == 32, f"Bad owner address {owner}"
        assert len(implementation_id) == 32, f"Bad implementation id {implementation_id!r}"

        storage_slots = [
            StorageSlot(key=PROXY_TARGET_KEY, value=implementation_id),
            StorageSlot(key=PROXY_OWNER_KEY, value=owner_bytes),
        ]
        return BuiltPackage(
            name=f"{package.name}_proxy",
            bytecode=self.proxy_preamble,
            storage_slots=sorted(storage_slots),
            abi=PROXY_ABI,
            program_type=ProgramType.contract,
            target=package.target,
            parent=package,
        )
