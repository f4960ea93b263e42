"""
Unwrapping of the identity provider's sealed key blob.

The provider seals exported keys with HPKE
(DHKEM_P256_HKDF_SHA256 / HKDF_SHA256 / CHACHA20_POLY1305, base mode). Opening
that seal is the provider's scheme, not ours, so the step is pluggable: a
deployment supplies an Unsealer that speaks the real format.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from nuri.core.crypto_utils import validate_private_key
from nuri.core.exceptions import UnsealError

logger = logging.getLogger(__name__)

PRIVATE_KEY_BYTES = 32
P256_ENCAPSULATED_KEY_BYTES = 65


def split_sealed_blob(blob: bytes, encapsulated_key_len: int = P256_ENCAPSULATED_KEY_BYTES) -> tuple[bytes, bytes]:
    """Split ``ciphertext || encapsulated_key`` back into its two parts."""
    if len(blob) <= encapsulated_key_len:
        raise UnsealError(
            "Sealed blob is too short",
            details={"length": len(blob), "encapsulated_key_len": encapsulated_key_len},
        )
    return blob[:-encapsulated_key_len], blob[-encapsulated_key_len:]


class Unsealer(ABC):
    """Recovers the raw private key from the decrypted sealed blob."""

    @abstractmethod
    async def unseal(self, sealed_blob: bytes) -> bytes:
        """
        Return the 32-byte private key.

        Raises:
            UnsealError: If the blob cannot be opened.
        """
        pass


class TrailingKeyUnsealer(Unsealer):
    """
    Treats the last 32 bytes of the blob as the private key.

    This mirrors the placeholder the first mobile client shipped with. It is
    not how HPKE works and will not open a real provider export; keep it only
    for fixtures built the same way.
    """

    async def unseal(self, sealed_blob: bytes) -> bytes:
        logger.warning(
            "Using placeholder unsealer; replace with the provider's HPKE scheme",
            extra={"event": "unseal.placeholder", "blob_len": len(sealed_blob)},
        )
        if len(sealed_blob) < PRIVATE_KEY_BYTES:
            raise UnsealError("Sealed blob too short or invalid", details={"length": len(sealed_blob)})
        return validate_private_key(sealed_blob[-PRIVATE_KEY_BYTES:])
