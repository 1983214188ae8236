"""Ed25519 key pairs with prefixed, checksummed base32 text encodings."""

from __future__ import annotations

import base64
import binascii
import enum

import nacl.exceptions
import nacl.signing

_SEED_PREFIX = 18 << 3
_SEED_LENGTH = 32
_CHECKSUM_LENGTH = 2


class KeyError_(Exception):
    """Raised for malformed keys, bad signatures and missing seeds."""


class KeyPrefix(enum.IntEnum):
    """Role of a key, stored as the first byte of its public encoding."""

    OPERATOR = 14 << 3
    SERVER = 13 << 3
    CLUSTER = 2 << 3
    ACCOUNT = 0
    USER = 20 << 3
    MODULE = 12 << 3
    SERVICE = 21 << 3


def _crc16(data: bytes) -> int:
    crc = 0
    for byte in data:
        crc ^= byte << 8
        for _ in range(8):
            crc = ((crc << 1) ^ 0x1021) if crc & 0x8000 else (crc << 1)
            crc &= 0xFFFF
    return crc


def _encode(raw: bytes) -> str:
    payload = raw + _crc16(raw).to_bytes(_CHECKSUM_LENGTH, "little")
    return base64.b32encode(payload).decode("ascii").rstrip("=")


def _decode(text: str) -> bytes:
    if not isinstance(text, str) or not text:
        raise KeyError_("key text must be a non-empty string")
    padded = text + "=" * (-len(text) % 8)
    try:
        payload = base64.b32decode(padded.encode("ascii"))
    except (binascii.Error, UnicodeEncodeError, ValueError) as exc:
        raise KeyError_(f"invalid key encoding: {exc}") from exc
    if len(payload) <= _CHECKSUM_LENGTH:
        raise KeyError_("key is too short")
    body, checksum = payload[:-_CHECKSUM_LENGTH], payload[-_CHECKSUM_LENGTH:]
    if _crc16(body) != int.from_bytes(checksum, "little"):
        raise KeyError_("key checksum does not match")
    return body


def _prefix_from_byte(value: int) -> KeyPrefix:
    try:
        return KeyPrefix(value)
    except ValueError as exc:
        raise KeyError_(f"unknown key prefix byte {value}") from exc


class KeyPair:
    """An Ed25519 key pair tagged with a role prefix.

    A pair built from a public key alone can verify but not sign.
    """

    def __init__(self, prefix, seed_bytes):
        prefix = prefix if isinstance(prefix, KeyPrefix) else _prefix_from_byte(prefix)
        seed_bytes = bytes(seed_bytes)
        if len(seed_bytes) != _SEED_LENGTH:
            raise KeyError_(f"seed must be {_SEED_LENGTH} bytes, got {len(seed_bytes)}")
        self._prefix = prefix
        self._signing_key: nacl.signing.SigningKey | None = nacl.signing.SigningKey(seed_bytes)
        self._verify_key = self._signing_key.verify_key

    @classmethod
    def _generate(cls, prefix: KeyPrefix) -> KeyPair:
        return cls(prefix, bytes(nacl.signing.SigningKey.generate()))

    @classmethod
    def new_account(cls) -> KeyPair:
        """Create a fresh random account key pair."""
        return cls._generate(KeyPrefix.ACCOUNT)

    @classmethod
    def new_service(cls) -> KeyPair:
        """Create a fresh random service key pair."""
        return cls._generate(KeyPrefix.SERVICE)

    @classmethod
    def from_seed(cls, seed) -> KeyPair:
        """Rebuild a full key pair from its encoded seed."""
        raw = _decode(seed)
        if len(raw) != 2 + _SEED_LENGTH:
            raise KeyError_("encoded seed has the wrong length")
        first, second = raw[0], raw[1]
        if first & 0xF8 != _SEED_PREFIX:
            raise KeyError_("text is not an encoded seed")
        prefix = _prefix_from_byte(((first & 0x07) << 5) | ((second & 0xF8) >> 3))
        return cls(prefix, raw[2:])

    @classmethod
    def from_public_key(cls, public_key) -> KeyPair:
        """Build a verify-only key pair from an encoded public key."""
        raw = _decode(public_key)
        if len(raw) != 1 + _SEED_LENGTH:
            raise KeyError_("encoded public key has the wrong length")
        prefix = _prefix_from_byte(raw[0])
        pair = cls.__new__(cls)
        pair._prefix = prefix
        pair._signing_key = None
        try:
            pair._verify_key = nacl.signing.VerifyKey(raw[1:])
        except (nacl.exceptions.CryptoError, ValueError, TypeError) as exc:
            raise KeyError_(f"invalid public key: {exc}") from exc
        return pair

    @property
    def prefix(self) -> KeyPrefix:
        return self._prefix

    def public_key(self) -> str:
        """The encoded public key."""
        return _encode(bytes([self._prefix]) + bytes(self._verify_key))

    def seed(self) -> str:
        """The encoded seed; raises KeyError_ for a verify-only pair."""
        if self._signing_key is None:
            raise KeyError_("key pair holds no seed")
        first = _SEED_PREFIX | (self._prefix >> 5)
        second = (self._prefix & 0x1F) << 3
        return _encode(bytes([first, second]) + bytes(self._signing_key))

    def sign(self, data) -> bytes:
        """Return the 64-byte Ed25519 signature of data."""
        if self._signing_key is None:
            raise KeyError_("cannot sign with a verify-only key pair")
        return self._signing_key.sign(bytes(data)).signature

    def verify(self, data, signature) -> None:
        """Raise KeyError_ unless signature is valid for data."""
        try:
            self._verify_key.verify(bytes(data), bytes(signature))
        except (nacl.exceptions.BadSignatureError, ValueError, TypeError) as exc:
            raise KeyError_("signature verification failed") from exc

    def __repr__(self) -> str:
        return f"KeyPair({self._prefix.name}, {self.public_key()})"