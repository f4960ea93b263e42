"""
Bitcoin address validation and scriptPubKey derivation.

Validation is a textual pattern check run before any network call; script
derivation fully decodes the address (bech32/bech32m or Base58Check).
"""

from __future__ import annotations

import re
from typing import Union

import base58
import bech32

from nuri.core.codec import hex_to_bytes
from nuri.core.config import NetworkType
from nuri.core.exceptions import InvalidAddressError

_BECH32_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
_BASE58_CHARSET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"

_MAINNET_PATTERNS = (
    re.compile(rf"^bc1[{_BECH32_CHARSET}]{{8,87}}$", re.IGNORECASE),
    re.compile(rf"^[13][{_BASE58_CHARSET}]{{25,34}}$"),
)
_TESTNET_PATTERNS = (
    re.compile(rf"^(tb1|bcrt1)[{_BECH32_CHARSET}]{{8,87}}$", re.IGNORECASE),
    re.compile(rf"^[mn2][{_BASE58_CHARSET}]{{25,34}}$"),
)

# Base58Check version bytes
_P2PKH_VERSION = {NetworkType.MAINNET: 0x00, NetworkType.TESTNET: 0x6F, NetworkType.SIGNET: 0x6F}
_P2SH_VERSION = {NetworkType.MAINNET: 0x05, NetworkType.TESTNET: 0xC4, NetworkType.SIGNET: 0xC4}

OP_0 = 0x00
OP_1 = 0x51
OP_DUP = 0x76
OP_HASH160 = 0xA9
OP_EQUAL = 0x87
OP_EQUALVERIFY = 0x88
OP_CHECKSIG = 0xAC


def _patterns(network: NetworkType):
    return _MAINNET_PATTERNS if network == NetworkType.MAINNET else _TESTNET_PATTERNS


def validate_address(address: str, network: NetworkType = NetworkType.MAINNET) -> str:
    """
    Check that ``address`` looks like a Bitcoin address for ``network``.

    Returns the stripped address.

    Raises:
        InvalidAddressError: Neither a Bech32 nor a Base58 address form, or a
            Bech32 address in mixed case.
    """
    candidate = address.strip() if isinstance(address, str) else ""
    bech32_pattern, base58_pattern = _patterns(network)
    if bech32_pattern.match(candidate):
        # BIP-173: all lowercase or all uppercase
        valid = candidate in (candidate.lower(), candidate.upper())
    else:
        valid = bool(base58_pattern.match(candidate))
    if not valid:
        raise InvalidAddressError(
            "Invalid Bitcoin address format.",
            details={"address": address, "network": network.value},
        )
    return candidate


def _segwit_hrps(network: NetworkType) -> tuple[str, ...]:
    return ("bc",) if network == NetworkType.MAINNET else ("tb", "bcrt")


def _witness_script(version: int, program: bytes) -> bytes:
    opcode = OP_0 if version == 0 else OP_1 + version - 1
    return bytes([opcode, len(program)]) + program


def taproot_script_pubkey(xonly: Union[bytes, str]) -> bytes:
    """``OP_1 <32-byte output key>``"""
    key = hex_to_bytes(xonly) if isinstance(xonly, str) else bytes(xonly)
    if len(key) != 32:
        raise InvalidAddressError("Taproot output key must be 32 bytes", details={"length": len(key)})
    return _witness_script(1, key)


def xonly_public_key(public_key: Union[bytes, str]) -> bytes:
    """Reduce an SEC1 (33 or 65 byte) or x-only (32 byte) public key to its x coordinate."""
    key = hex_to_bytes(public_key) if isinstance(public_key, str) else bytes(public_key)
    if len(key) == 32:
        return key
    if len(key) == 33 and key[0] in (0x02, 0x03):
        return key[1:]
    if len(key) == 65 and key[0] == 0x04:
        return key[1:33]
    raise ValueError(f"Unsupported public key length {len(key)}")


def address_to_script_pubkey(address: str, network: NetworkType = NetworkType.MAINNET) -> bytes:
    """
    Decode ``address`` into the output script that pays it.

    Raises:
        InvalidAddressError: Bad checksum, wrong network or unknown version.
    """
    address = validate_address(address, network)

    if address[0] not in "123mn":
        lowered = address.lower()
        hrp = lowered.split("1", 1)[0]
        if hrp in _segwit_hrps(network):
            version, program = bech32.decode(hrp, lowered)
            if version is None or program is None:
                raise InvalidAddressError("Invalid bech32 address checksum.", details={"address": address})
            program = bytes(program)
            if version == 1 and len(program) == 32:
                return taproot_script_pubkey(program)
            return _witness_script(version, program)

    try:
        decoded = base58.b58decode_check(address)
    except ValueError as exc:
        raise InvalidAddressError("Invalid Base58Check address.", details={"address": address}) from exc
    if len(decoded) != 21:
        raise InvalidAddressError("Invalid Base58Check payload length.", details={"address": address})

    version, digest = decoded[0], decoded[1:]
    if version == _P2PKH_VERSION[network]:
        return bytes([OP_DUP, OP_HASH160, 20]) + digest + bytes([OP_EQUALVERIFY, OP_CHECKSIG])
    if version == _P2SH_VERSION[network]:
        return bytes([OP_HASH160, 20]) + digest + bytes([OP_EQUAL])
    raise InvalidAddressError(
        "Address version does not match the network.",
        details={"address": address, "version": version, "network": network.value},
    )
