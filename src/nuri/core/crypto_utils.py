"""Helpers for secp256k1 key handling and the AES-GCM envelope."""

from __future__ import annotations

import base58
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from nuri.core.codec import strip_hex_prefix
from nuri.core.config import NetworkType
from nuri.core.exceptions import DecryptionError, UnsealError

_CURVE = ec.SECP256K1()
_CURVE_ORDER = int("FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16)

AES_KEY_BYTES = 32
AES_GCM_NONCE_BYTES = 12

_WIF_PREFIX = {
    NetworkType.MAINNET: b"\x80",
    NetworkType.TESTNET: b"\xef",
    NetworkType.SIGNET: b"\xef",
}


def validate_private_key(raw: bytes) -> bytes:
    """
    Ensure ``raw`` is a usable secp256k1 scalar.

    Raises:
        UnsealError: If the length is not 32 bytes or the value is outside [1, n).
    """
    if len(raw) != 32:
        raise UnsealError(
            "Recovered private key has the wrong length",
            details={"length": len(raw)},
        )
    value = int.from_bytes(raw, "big")
    if not (1 <= value < _CURVE_ORDER):
        raise UnsealError("Recovered private key is outside the secp256k1 range")
    return bytes(raw)


def load_private_key(raw: bytes) -> ec.EllipticCurvePrivateKey:
    return ec.derive_private_key(int.from_bytes(validate_private_key(raw), "big"), _CURVE)


def public_key_uncompressed(raw_private: bytes) -> bytes:
    """65-byte SEC1 uncompressed point (``04 || X || Y``)."""
    return load_private_key(raw_private).public_key().public_bytes(
        serialization.Encoding.X962,
        serialization.PublicFormat.UncompressedPoint,
    )


def public_key_compressed(raw_private: bytes) -> bytes:
    """33-byte SEC1 compressed point."""
    return load_private_key(raw_private).public_key().public_bytes(
        serialization.Encoding.X962,
        serialization.PublicFormat.CompressedPoint,
    )


def public_key_matches(raw_private: bytes, known_public_hex: str) -> bool:
    """
    Compare the public key of ``raw_private`` with a wallet's known public key.

    The comparison is case-insensitive hex and follows the encoding of the known
    key: 65 bytes uncompressed, 33 bytes compressed, or 32 bytes x-only.
    """
    known = strip_hex_prefix(known_public_hex.strip()).lower()
    compressed = public_key_compressed(raw_private)
    if len(known) == 130:
        candidate = public_key_uncompressed(raw_private).hex()
    elif len(known) == 66:
        candidate = compressed.hex()
    elif len(known) == 64:
        candidate = compressed[1:].hex()
    else:
        return False
    return candidate == known


def private_key_to_wif(raw_private: bytes, network: NetworkType = NetworkType.MAINNET) -> str:
    """Wallet Import Format for a compressed-pubkey key."""
    payload = _WIF_PREFIX[network] + validate_private_key(raw_private) + b"\x01"
    return base58.b58encode_check(payload).decode("ascii")


def aes_gcm_encrypt(key: bytes, nonce: bytes, plaintext: bytes) -> bytes:
    """Encrypt with AES-256-GCM; the result is ``ciphertext || tag``."""
    if len(key) != AES_KEY_BYTES:
        raise ValueError(f"AES key must be {AES_KEY_BYTES} bytes, got {len(key)}")
    if len(nonce) != AES_GCM_NONCE_BYTES:
        raise ValueError(f"AES-GCM nonce must be {AES_GCM_NONCE_BYTES} bytes, got {len(nonce)}")
    return AESGCM(bytes(key)).encrypt(bytes(nonce), bytes(plaintext), None)


def aes_gcm_decrypt(key: bytes, nonce: bytes, ciphertext: bytes) -> bytes:
    """
    Decrypt AES-256-GCM ``ciphertext || tag``.

    Raises:
        DecryptionError: If the tag does not verify.
    """
    if len(key) != AES_KEY_BYTES:
        raise DecryptionError("Derived secret has the wrong length", details={"length": len(key)})
    if len(nonce) != AES_GCM_NONCE_BYTES:
        raise DecryptionError("IV has the wrong length", details={"length": len(nonce)})
    try:
        return AESGCM(bytes(key)).decrypt(bytes(nonce), bytes(ciphertext), None)
    except InvalidTag as exc:
        raise DecryptionError(
            "Decryption failed: wrong passkey credential or tampered payload"
        ) from exc
