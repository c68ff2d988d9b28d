"""Transaction building and canonical encoding.

Two transaction kinds are needed for deployments:

- :py:class:`CreateTransaction` deploys a contract

- :py:class:`CallTransaction` calls a method of a deployed contract, used to repoint proxies

The transaction id is `sha256(chain_id || encoded transaction without witnesses)`,
so the same transaction on another chain has another id and signatures cannot be replayed.
"""

import hashlib
from dataclasses import dataclass, field
from typing import Union

from eth_utils import decode_hex, encode_hex

from fuel_deploy.identity import ContractId, StorageSlot


class TransactionType:
    create = 1
    call = 2


@dataclass(slots=True)
class CoinInput:
    """Spend a coin to pay the fee."""

    utxo_id: str

    owner: str

    amount: int

    asset_id: str

    witness_index: int = 0

    def encode(self) -> bytes:
        return _u64(0) + _var(decode_hex(self.utxo_id)) + decode_hex(self.owner) + _u64(self.amount) + decode_hex(self.asset_id) + _u64(self.witness_index)


@dataclass(slots=True)
class ContractInput:
    """Make a contract readable and writable by the transaction."""

    contract_id: ContractId

    def encode(self) -> bytes:
        return _u64(1) + self.contract_id


@dataclass(slots=True)
class ChangeOutput:
    """Return unspent fee coins to the signer."""

    to: str

    asset_id: str

    def encode(self) -> bytes:
        return _u64(0) + decode_hex(self.to) + decode_hex(self.asset_id)


@dataclass(slots=True)
class ContractCreatedOutput:
    """Marks the contract a create transaction produces."""

    contract_id: ContractId

    state_root: bytes

    def encode(self) -> bytes:
        return _u64(1) + self.contract_id + self.state_root


@dataclass(slots=True)
class ContractOutput:
    """Contract state after a call, pairs with :py:class:`ContractInput`."""

    input_index: int

    def encode(self) -> bytes:
        return _u64(2) + _u64(self.input_index)


Input = Union[CoinInput, ContractInput]
Output = Union[ChangeOutput, ContractCreatedOutput, ContractOutput]


def _u64(value: int) -> bytes:
    return value.to_bytes(8, "big")


def _var(data: bytes) -> bytes:
    return _u64(len(data)) + data


@dataclass(slots=True, kw_only=True)
class _BaseTransaction:
    inputs: list[Input] = field(default_factory=list)

    outputs: list[Output] = field(default_factory=list)

    #: Signatures, filled by :py:meth:`fuel_deploy.wallet.FuelWallet.sign_transaction`
    witnesses: list[bytes] = field(default_factory=list)

    #: Max fee policy in base asset units
    max_fee: int = 0

    def _encode_common(self) -> bytes:
        parts = [_u64(self.max_fee), _u64(len(self.inputs))]
        parts += [i.encode() for i in self.inputs]
        parts.append(_u64(len(self.outputs)))
        parts += [o.encode() for o in self.outputs]
        return b"".join(parts)

    def _encode_body(self) -> bytes:
        raise NotImplementedError()

    def encode(self, include_witnesses=True) -> bytes:
        """Canonical bytes, as submitted to the node."""
        data = self._encode_body() + self._encode_common()
        if include_witnesses:
            data += _u64(len(self.witnesses)) + b"".join(_var(w) for w in self.witnesses)
        return data

    def id(self, chain_id: int) -> bytes:
        """Transaction id signed by the witnesses."""
        return hashlib.sha256(_u64(chain_id) + self.encode(include_witnesses=False)).digest()

    def hex_id(self, chain_id: int) -> str:
        return encode_hex(self.id(chain_id))

    def add_fee_inputs(self, coins: list, owner: str, asset_id: str, witness_index: int = 0):
        """Pay the fee from these coins and send the change back to `owner`."""
        for coin in coins:
            self.inputs.append(CoinInput(utxo_id=coin.utxo_id, owner=coin.owner, amount=coin.amount, asset_id=coin.asset_id, witness_index=witness_index))
        self.outputs.append(ChangeOutput(to=owner, asset_id=asset_id))


@dataclass(slots=True, kw_only=True)
class CreateTransaction(_BaseTransaction):
    """Deploy a contract.

    Storage slots are kept sorted by key, the node rejects unsorted slots.
    """

    bytecode: bytes

    contract_id: ContractId

    state_root: bytes

    salt: bytes

    storage_slots: list[StorageSlot] = field(default_factory=list)

    def __post_init__(self):
        self.storage_slots = sorted(self.storage_slots)
        if not any(isinstance(o, ContractCreatedOutput) for o in self.outputs):
            self.outputs.insert(0, ContractCreatedOutput(contract_id=self.contract_id, state_root=self.state_root))

    def _encode_body(self) -> bytes:
        slots = b"".join(slot.key + slot.value for slot in self.storage_slots)
        return _u64(TransactionType.create) + _var(self.bytecode) + self.salt + _u64(len(self.storage_slots)) + slots


@dataclass(slots=True, kw_only=True)
class CallTransaction(_BaseTransaction):
    """Call `function_name` on `contract_id` with ABI encoded `arguments`."""

    contract_id: ContractId

    function_name: str

    arguments: bytes = b""

    def __post_init__(self):
        if not any(isinstance(i, ContractInput) for i in self.inputs):
            self.inputs.insert(0, ContractInput(contract_id=self.contract_id))
            self.outputs.insert(0, ContractOutput(input_index=0))

    @property
    def script_data(self) -> bytes:
        """Contract id, length prefixed function selector, arguments."""
        return self.contract_id + _var(self.function_name.encode("utf-8")) + self.arguments

    def _encode_body(self) -> bytes:
        return _u64(TransactionType.call) + _var(self.script_data)


Transaction = Union[CreateTransaction, CallTransaction]
