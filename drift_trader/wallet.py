"""Wallet provider: ed25519 keypairs in Solana layout.

A Solana secret key is 64 bytes: the 32-byte ed25519 seed followed by the
32-byte public key. Addresses are the base58 encoding of the public key.

Examples:
    >>> identity = generate_keypair()
    >>> restored = load_main_keypair(identity.secret_hex)
    >>> restored.address == identity.address
    True
"""
import binascii
import json
import string
from pathlib import Path
from typing import List

import base58
from nacl.signing import SigningKey

SEED_LENGTH = 32
SECRET_KEY_LENGTH = 64


class WalletIdentity:
    """A public key plus signing capability."""

    def __init__(self, signing_key: SigningKey):
        self._signing_key = signing_key

    @classmethod
    def from_secret_bytes(cls, secret: bytes) -> "WalletIdentity":
        """Build an identity from a 32-byte seed or a 64-byte Solana secret key.

        Raises:
            ValueError: If the length is wrong or the embedded public key does
                        not match the seed
        """
        if len(secret) == SEED_LENGTH:
            return cls(SigningKey(bytes(secret)))
        if len(secret) != SECRET_KEY_LENGTH:
            raise ValueError(
                f"Secret key must be {SEED_LENGTH} or {SECRET_KEY_LENGTH} bytes, got {len(secret)}"
            )
        identity = cls(SigningKey(bytes(secret[:SEED_LENGTH])))
        if identity.public_key != bytes(secret[SEED_LENGTH:]):
            raise ValueError("Secret key is corrupt: public key half does not match the seed")
        return identity

    @property
    def public_key(self) -> bytes:
        return self._signing_key.verify_key.encode()

    @property
    def address(self) -> str:
        return base58.b58encode(self.public_key).decode("ascii")

    @property
    def secret_key(self) -> bytes:
        return bytes(self._signing_key) + self.public_key

    @property
    def secret_hex(self) -> str:
        return self.secret_key.hex()

    def sign(self, message: bytes) -> bytes:
        return self._signing_key.sign(message).signature

    def __eq__(self, other):
        if not isinstance(other, WalletIdentity):
            return NotImplemented
        return self.public_key == other.public_key

    def __hash__(self):
        return hash(self.public_key)

    def __repr__(self):
        # never include key material
        return f"WalletIdentity(address={self.address})"


def _parse_byte_list(text: str) -> bytes:
    values: List[int] = json.loads(text) if text.startswith("[") else [
        int(part) for part in text.split(",") if part.strip()
    ]
    if any(not 0 <= v <= 255 for v in values):
        raise ValueError("Byte values must be between 0 and 255")
    return bytes(values)


def _looks_like_byte_list(text: str) -> bool:
    return text.startswith("[") or "," in text


def decode_secret(secret: str) -> bytes:
    """Decode a secret in any of the supported encodings.

    Accepted: path to a keypair file (JSON byte array as written by
    ``solana-keygen``), JSON byte array, comma-separated bytes, hex, base58.
    """
    text = secret.strip()
    if not text:
        raise ValueError("Secret is empty")

    if not _looks_like_byte_list(text):
        path = Path(text).expanduser()
        try:
            if path.is_file():
                text = path.read_text().strip()
        except OSError:
            # names longer than the OS limit are secrets, not paths
            pass

    if _looks_like_byte_list(text):
        try:
            return _parse_byte_list(text)
        except (json.JSONDecodeError, TypeError) as e:
            raise ValueError(f"Malformed byte-array secret: {e}")

    if len(text) in (2 * SEED_LENGTH, 2 * SECRET_KEY_LENGTH) and all(
        c in string.hexdigits for c in text
    ):
        return binascii.unhexlify(text)

    try:
        return base58.b58decode(text)
    except ValueError as e:
        raise ValueError(f"Secret is neither hex, base58 nor a byte array: {e}")


def load_keypair(secret: str) -> WalletIdentity:
    return WalletIdentity.from_secret_bytes(decode_secret(secret))


def load_main_keypair(secret: str) -> WalletIdentity:
    """Resolve the main wallet identity from its secret."""
    return load_keypair(secret)


def generate_keypair() -> WalletIdentity:
    """Generate a fresh keypair from the OS random source."""
    return WalletIdentity(SigningKey.generate())
