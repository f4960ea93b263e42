"""Byte/text conversion helpers shared by every other component."""

from __future__ import annotations

import base64
import binascii
import secrets
from typing import Iterable


def bytes_to_base64url(data: bytes) -> str:
    """URL-safe base64 without ``=`` padding."""
    return base64.urlsafe_b64encode(bytes(data)).rstrip(b"=").decode("ascii")


def base64url_to_bytes(text: str) -> bytes:
    """Inverse of :func:`bytes_to_base64url`; padding is restored before decoding."""
    if not isinstance(text, str):
        raise ValueError("base64url input must be a string")
    padded = text + "=" * (-len(text) % 4)
    try:
        return base64.b64decode(padded, altchars=b"-_", validate=True)
    except binascii.Error as exc:
        raise ValueError(f"Invalid base64url data: {exc}") from exc


def btoa_arr(data: bytes) -> str:
    """Standard padded base64."""
    return base64.b64encode(bytes(data)).decode("ascii")


def atob_arr(text: str) -> bytes:
    """Inverse of :func:`btoa_arr` with strict alphabet validation."""
    if not isinstance(text, str):
        raise ValueError("base64 input must be a string")
    try:
        return base64.b64decode(text, validate=True)
    except binascii.Error as exc:
        raise ValueError(f"Invalid base64 data: {exc}") from exc


def buf2hex(data: bytes) -> str:
    return bytes(data).hex()


def hex_to_bytes(text: str) -> bytes:
    """Decode hex, tolerating an optional ``0x`` prefix."""
    if text[:2].lower() == "0x":
        text = text[2:]
    return bytes.fromhex(text)


def strip_hex_prefix(text: str) -> str:
    return text[2:] if text[:2].lower() == "0x" else text


def concat_bytes(chunks: Iterable[bytes]) -> bytes:
    return b"".join(bytes(chunk) for chunk in chunks)


def random_bytes(length: int) -> bytes:
    if length < 0:
        raise ValueError("length must be non-negative")
    return secrets.token_bytes(length)
