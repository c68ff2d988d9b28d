"""Contract id derivation.

A contract id is a pure function of the bytecode, the salt and the initial storage:

.. code-block:: text

    contract_id = sha256(b"FUEL" || salt || code_root || state_root)

- `code_root` is a binary Merkle root over the bytecode, see :py:func:`compute_code_root`

- `state_root` is a sparse Merkle root over the storage slots, see :py:func:`compute_state_root`

Use :py:func:`predict_contract_id` to know the address of a contract before deploying it:

.. code-block:: python

    from fuel_deploy.identity import predict_contract_id

    contract_id = predict_contract_id(package.bytecode, salt, package.storage_slots)
    print(f"Contract will be deployed at 0x{contract_id.hex()}")

"""

import hashlib
from dataclasses import dataclass
from typing import Iterable, TypeAlias

from eth_typing import HexStr
from eth_utils import decode_hex, encode_hex

#: 32 bytes contract address
ContractId: TypeAlias = bytes

#: Seed mixed into every contract id
CONTRACT_ID_SEED = b"FUEL"

#: Bytecode is hashed in leaves of this size
LEAF_SIZE = 16 * 1024

#: The final leaf is zero-padded to a multiple of a VM word
WORD_SIZE = 8

#: Root of a sparse Merkle tree with no leaves
EMPTY_STATE_ROOT = bytes(32)

_LEAF_PREFIX = b"\x00"
_NODE_PREFIX = b"\x01"


@dataclass(slots=True, frozen=True, order=True)
class StorageSlot:
    """One key/value pair of the initial contract storage.

    Ordering compares keys first, so `sorted(slots)` gives the canonical order.
    """

    key: bytes

    value: bytes

    def __post_init__(self):
        assert type(self.key) == bytes and len(self.key) == 32, f"Storage slot key must be 32 bytes, got {self.key!r}"
        assert type(self.value) == bytes and len(self.value) == 32, f"Storage slot value must be 32 bytes, got {self.value!r}"

    @staticmethod
    def from_json(data: dict) -> "StorageSlot":
        """Read the compiler `*-storage_slots.json` entry format.

        :raise ValueError:
            Key or value is not 32 bytes of hex
        """
        key = decode_hex(data["key"])
        value = decode_hex(data["value"])
        if len(key) != 32 or len(value) != 32:
            raise ValueError(f"Storage slot key and value must be 32 bytes, got {data['key']!r}: {data['value']!r}")
        return StorageSlot(key=key, value=value)

    def as_json_friendly_dict(self) -> dict:
        return {"key": encode_hex(self.key), "value": encode_hex(self.value)}


def _sha256(*parts: bytes) -> bytes:
    h = hashlib.sha256()
    for p in parts:
        h.update(p)
    return h.digest()


def _binary_merkle_root(leaves: list[bytes]) -> bytes:
    if len(leaves) == 0:
        return _sha256(b"")

    if len(leaves) == 1:
        return _sha256(_LEAF_PREFIX, leaves[0])

    # Split at the largest power of two smaller than the leaf count
    split = 1
    while split * 2 < len(leaves):
        split *= 2

    return _sha256(_NODE_PREFIX, _binary_merkle_root(leaves[:split]), _binary_merkle_root(leaves[split:]))


def compute_code_root(bytecode: bytes) -> bytes:
    """Calculate the Merkle root of the contract bytecode.

    :param bytecode:
        Raw contract bytecode

    :return:
        32 bytes root
    """
    assert isinstance(bytecode, (bytes, bytearray)), f"Got {type(bytecode)}"

    leaves = []
    for offset in range(0, len(bytecode), LEAF_SIZE):
        leaf = bytes(bytecode[offset : offset + LEAF_SIZE])
        remainder = len(leaf) % WORD_SIZE
        if remainder:
            leaf += bytes(WORD_SIZE - remainder)
        leaves.append(leaf)

    return _binary_merkle_root(leaves)


def _bit(key: bytes, index: int) -> int:
    return (key[index // 8] >> (7 - index % 8)) & 1


def _sparse_merkle_root(leaves: list[tuple[bytes, bytes]], depth: int) -> bytes:
    if len(leaves) == 0:
        return EMPTY_STATE_ROOT

    if len(leaves) == 1:
        return leaves[0][1]

    left = [leaf for leaf in leaves if _bit(leaf[0], depth) == 0]
    right = [leaf for leaf in leaves if _bit(leaf[0], depth) == 1]
    return _sha256(_NODE_PREFIX, _sparse_merkle_root(left, depth + 1), _sparse_merkle_root(right, depth + 1))


def compute_state_root(storage_slots: Iterable[StorageSlot]) -> bytes:
    """Calculate the initial state root of a contract.

    - Slots are sorted by key first, so the input order does not matter

    - An empty storage gives :py:data:`EMPTY_STATE_ROOT`

    :param storage_slots:
        Initial storage of the contract

    :return:
        32 bytes root
    """
    slots = sorted(storage_slots)

    # Duplicate keys collapse into a single leaf
    by_key = {slot.key: slot.value for slot in slots}

    leaves = [(key, _sha256(_LEAF_PREFIX, key, _sha256(value))) for key, value in by_key.items()]
    return _sparse_merkle_root(leaves, 0)


def compute_contract_id(code_root: bytes, salt: bytes, state_root: bytes) -> ContractId:
    """Derive the contract id.

    Same inputs always give the same id.
    """
    assert len(code_root) == 32, f"Bad code root {code_root!r}"
    assert len(salt) == 32, f"Bad salt {salt!r}"
    assert len(state_root) == 32, f"Bad state root {state_root!r}"
    return _sha256(CONTRACT_ID_SEED, salt, code_root, state_root)


def predict_contract_id(bytecode: bytes, salt: bytes, storage_slots: Iterable[StorageSlot] = ()) -> ContractId:
    """Calculate where a contract will land without touching the network."""
    return compute_contract_id(compute_code_root(bytecode), salt, compute_state_root(storage_slots))


def format_contract_id(contract_id: ContractId) -> HexStr:
    """Human readable `0x` prefixed contract id."""
    return encode_hex(contract_id)
