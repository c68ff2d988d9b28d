"""Signer selection and transaction signing.

- Wrap a secp256k1 private key in :py:class:`FuelWallet` and sign transactions with it

- Pick the signing key for a deployment run, see :py:func:`select_secret_key`

There are two ways to get a signer:

- The forc-wallet keystore, unlocked with a password.
  This is the interactive default when no key is given on the command line.

- Manual: an explicit signing key or the funded default test account of a local node.

Example:

.. code-block:: python

    wallet = FuelWallet.from_private_key(os.environ["SIGNING_KEY"])
    print(f"Deploying as {wallet.address}")
"""

import hashlib
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_keys import keys
from eth_typing import HexStr
from eth_utils import decode_hex, encode_hex
from hexbytes import HexBytes

from fuel_deploy.errors import DeployError
from fuel_deploy.tx import Transaction

logger = logging.getLogger(__name__)

#: The account a local node funds at genesis, for testing only
DEFAULT_PRIVATE_KEY = "0xde97d8624a438121b86a1956544bd72ed68cd69f2c99555b08b1e8c51ffd511c"

#: Where forc-wallet keeps its keystore
DEFAULT_WALLET_PATH = Path.home() / ".fuel" / "wallets" / ".wallet"

#: BIP-44 derivation path of forc-wallet accounts
FUEL_DERIVATION_PATH = "m/44'/1179993420'/{index}'/0/0"

#: secp256k1 curve order
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


class SignerResolutionError(DeployError):
    """No signer available for what we are trying to do."""


def address_from_private_key(private_key: bytes) -> HexStr:
    """Fuel address: sha256 of the uncompressed public key."""
    public_key = keys.PrivateKey(private_key).public_key
    return encode_hex(hashlib.sha256(public_key.to_bytes()).digest())


def sign_hash(private_key: bytes, message_hash: bytes) -> bytes:
    """Create a 64 bytes compact signature.

    The recovery id is stored in the highest bit of `s`.
    """
    assert len(message_hash) == 32, f"Can only sign 32 bytes hashes, got {len(message_hash)}"
    signature = keys.PrivateKey(private_key).sign_msg_hash(message_hash)
    s, v = signature.s, signature.v
    if s > SECP256K1_N // 2:
        # High s would overlap the recovery bit
        s, v = SECP256K1_N - s, v ^ 1
    r = signature.r.to_bytes(32, "big")
    s = bytearray(s.to_bytes(32, "big"))
    s[0] |= v << 7
    return r + bytes(s)


def recover_address(message_hash: bytes, compact_signature: bytes) -> HexStr:
    """Get the signer address back from a compact signature."""
    assert len(compact_signature) == 64, f"Bad signature length {len(compact_signature)}"
    r = compact_signature[:32]
    s = bytearray(compact_signature[32:])
    v = s[0] >> 7
    s[0] &= 0x7F
    signature = keys.Signature(r + bytes(s) + bytes([v]))
    public_key = signature.recover_public_key_from_msg_hash(message_hash)
    return encode_hex(hashlib.sha256(public_key.to_bytes()).digest())


class FuelWallet:
    """Sign transactions with a private key kept in the process memory.

    - Uses :py:class:`eth_account.signers.local.LocalAccount` to hold the key

    - Addresses are Fuel addresses, not Ethereum addresses
    """

    def __init__(self, account: LocalAccount):
        self.account = account

    def __repr__(self):
        return f"<Fuel wallet {self.address}>"

    @property
    def private_key(self) -> HexBytes:
        """The private key as plain text."""
        return HexBytes(self.account.key)

    @property
    def address(self) -> HexStr:
        """0x prefixed Fuel address of the wallet."""
        return address_from_private_key(bytes(self.account.key))

    def sign_transaction(self, tx: Transaction, chain_id: int) -> bytes:
        """Add our signature as a witness.

        Call after all inputs, outputs and the fee policy are set,
        as they are covered by the signature.

        :return:
            Transaction id that was signed
        """
        tx_id = tx.id(chain_id)
        tx.witnesses.append(sign_hash(bytes(self.account.key), tx_id))
        return tx_id

    @staticmethod
    def from_private_key(key: str | bytes) -> "FuelWallet":
        """Create a wallet from a hex or raw private key."""
        if isinstance(key, str):
            key = decode_hex(key)
        assert len(key) == 32, f"Private key must be 32 bytes, got {len(key)}"
        return FuelWallet(Account.from_key(key))

    @staticmethod
    def create_for_testing() -> "FuelWallet":
        """Random throwaway wallet."""
        return FuelWallet(Account.create())


@dataclass(slots=True, frozen=True)
class ForcWalletMode:
    """Sign with an account of the password protected forc-wallet keystore."""

    password: str = field(repr=False)

    account_index: int = 0

    wallet_path: Path = DEFAULT_WALLET_PATH


@dataclass(slots=True, frozen=True)
class ManualMode:
    """Sign with `--signing-key` or `--default-signer`."""


WalletSelectionMode = Union[ForcWalletMode, ManualMode]


def select_manual_secret_key(default_signer: bool, signing_key: str | bytes | None) -> bytes | None:
    """Pick the key for manual signing.

    An explicit signing key wins over the default signer.

    :return:
        `None` if neither was given
    """
    if isinstance(signing_key, str):
        signing_key = decode_hex(signing_key)

    if default_signer and signing_key:
        logger.warning("Signing key is provided while requesting to sign with a default signer. Using signing key")
        return signing_key

    if signing_key:
        return signing_key

    if default_signer:
        return decode_hex(DEFAULT_PRIVATE_KEY)

    return None


def read_forc_wallet_account(wallet_path: Path, password: str, account_index: int = 0) -> LocalAccount:
    """Unlock one account of the forc-wallet keystore.

    The keystore is a standard encrypted keystore file holding either the mnemonic phrase
    or a single raw private key.

    :raise SignerResolutionError:
        Missing keystore, wrong password or bad account index
    """
    if not wallet_path.exists():
        raise SignerResolutionError(f"No wallet found at {wallet_path}. Create one with `forc wallet new` or pass --signing-key / --default-signer")

    try:
        keystore = json.loads(wallet_path.read_text(encoding="utf-8"))
        secret = bytes(Account.decrypt(keystore, password))
    except (OSError, ValueError) as e:
        raise SignerResolutionError(f"Could not unlock wallet {wallet_path}: {e}") from e

    if len(secret) == 32:
        if account_index != 0:
            raise SignerResolutionError(f"Wallet {wallet_path} holds a single key, account index {account_index} does not exist")
        return Account.from_key(secret)

    Account.enable_unaudited_hdwallet_features()
    phrase = secret.decode("utf-8").strip()
    return Account.from_mnemonic(phrase, account_path=FUEL_DERIVATION_PATH.format(index=account_index))


def select_secret_key(
    wallet_mode: WalletSelectionMode,
    default_signer: bool,
    signing_key: str | bytes | None,
    node,
    non_interactive: bool = False,
) -> bytes | None:
    """Resolve the private key signing the next transaction.

    :param node:
        :py:class:`fuel_deploy.node.FuelNodeClient` used to check the wallet has funds

    :param non_interactive:
        The caller cannot work with a password unlocked wallet.

        Proxy target updates require a key given directly.

    :raise SignerResolutionError:
        The forc-wallet could not be used

    :return:
        Private key or `None` if manual mode has nothing to sign with
    """
    if isinstance(wallet_mode, ForcWalletMode):
        if non_interactive:
            raise SignerResolutionError("proxy contract deployments are not supported with manual prompt based signing")

        account = read_forc_wallet_account(wallet_mode.wallet_path, wallet_mode.password, wallet_mode.account_index)
        key = bytes(account.key)
        address = address_from_private_key(key)

        chain = node.chain_info()
        balance = node.balance(address, chain.base_asset_id)
        if balance == 0:
            raise SignerResolutionError(
                f"Your wallet does not have any funds to pay for the transaction.\n\n"
                f"Account {address} has no {chain.base_asset_id} on {chain.name or node.url}.\n"
                f"If you are interacting with a testnet consider using the faucet. "
                f"If you are interacting with a local node, consider providing a chain config which funds your account."
            )

        logger.info("Signing with wallet account #%d %s, balance %d", wallet_mode.account_index, address, balance)
        return key

    return select_manual_secret_key(default_signer, signing_key)
