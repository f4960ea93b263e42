"""
BIP-174 (version 0) PSBT construction for Taproot key-path spends.

Layout:
    magic "psbt\\xff"
    global map:   0x00 unsigned transaction
    input maps:   0x01 witness UTXO, 0x16 taproot BIP32 derivation,
                  0x17 taproot internal key
    output maps:  empty
"""

from __future__ import annotations

import base64
import struct
from dataclasses import dataclass, field
from typing import List

from nuri.core.codec import hex_to_bytes
from nuri.core.config import NetworkType

PSBT_MAGIC = b"psbt\xff"
PSBT_SEPARATOR = b"\x00"

PSBT_GLOBAL_UNSIGNED_TX = 0x00
PSBT_IN_WITNESS_UTXO = 0x01
PSBT_IN_TAP_BIP32_DERIVATION = 0x16
PSBT_IN_TAP_INTERNAL_KEY = 0x17

TX_VERSION = 2
DEFAULT_SEQUENCE = 0xFFFFFFFD  # opt-in RBF
HARDENED = 0x80000000


def compact_size(n: int) -> bytes:
    if n < 0xFD:
        return bytes([n])
    if n <= 0xFFFF:
        return b"\xfd" + struct.pack("<H", n)
    if n <= 0xFFFFFFFF:
        return b"\xfe" + struct.pack("<I", n)
    return b"\xff" + struct.pack("<Q", n)


def _key_value(key_type: int, value: bytes, key_data: bytes = b"") -> bytes:
    key = bytes([key_type]) + key_data
    return compact_size(len(key)) + key + compact_size(len(value)) + value


def _serialize_output(value: int, script_pubkey: bytes) -> bytes:
    return struct.pack("<q", value) + compact_size(len(script_pubkey)) + script_pubkey


@dataclass(frozen=True)
class TaprootDerivation:
    """Master key fingerprint plus BIP32 path of a Taproot internal key."""
    fingerprint: bytes
    path: tuple[int, ...]

    @classmethod
    def parse(cls, path: str, fingerprint: bytes | str = b"\x00\x00\x00\x00") -> "TaprootDerivation":
        """Parse ``m/86'/0'/0'/0/0`` style paths (``'`` or ``h`` marks hardened)."""
        fp = hex_to_bytes(fingerprint) if isinstance(fingerprint, str) else bytes(fingerprint)
        if len(fp) != 4:
            raise ValueError("Fingerprint must be 4 bytes")

        parts = path.strip().split("/")
        if not parts or parts[0] not in ("m", "M"):
            raise ValueError(f"Derivation path must start with 'm': {path!r}")

        indexes = []
        for part in parts[1:]:
            hardened = part.endswith(("'", "h", "H"))
            digits = part[:-1] if hardened else part
            if not digits.isdigit() or int(digits) >= HARDENED:
                raise ValueError(f"Invalid derivation path component {part!r}")
            indexes.append(int(digits) + (HARDENED if hardened else 0))
        return cls(fingerprint=fp, path=tuple(indexes))

    def serialize(self) -> bytes:
        """Value of PSBT_IN_TAP_BIP32_DERIVATION for a key-path spend (no leaf hashes)."""
        return compact_size(0) + self.fingerprint + b"".join(struct.pack("<I", index) for index in self.path)

    def __str__(self) -> str:
        parts = ["m"]
        for index in self.path:
            parts.append(f"{index - HARDENED}'" if index >= HARDENED else str(index))
        return "/".join(parts)


def synthesize_derivation(network: NetworkType = NetworkType.MAINNET) -> TaprootDerivation:
    """BIP-86 first receive key of account 0 with an unknown (zero) fingerprint."""
    coin_type = 0 if network == NetworkType.MAINNET else 1
    return TaprootDerivation.parse(f"m/86'/{coin_type}'/0'/0/0")


@dataclass
class PsbtInput:
    txid: str
    vout: int
    value: int
    script_pubkey: bytes
    internal_key: bytes
    derivation: TaprootDerivation
    sequence: int = DEFAULT_SEQUENCE

    def serialize_outpoint(self) -> bytes:
        return hex_to_bytes(self.txid)[::-1] + struct.pack("<I", self.vout)

    def serialize_map(self) -> bytes:
        return (
            _key_value(PSBT_IN_WITNESS_UTXO, _serialize_output(self.value, self.script_pubkey))
            + _key_value(PSBT_IN_TAP_BIP32_DERIVATION, self.derivation.serialize(), key_data=self.internal_key)
            + _key_value(PSBT_IN_TAP_INTERNAL_KEY, self.internal_key)
            + PSBT_SEPARATOR
        )


@dataclass
class PsbtOutput:
    value: int
    script_pubkey: bytes


@dataclass
class Psbt:
    inputs: List[PsbtInput] = field(default_factory=list)
    outputs: List[PsbtOutput] = field(default_factory=list)
    version: int = TX_VERSION
    locktime: int = 0

    def unsigned_tx(self) -> bytes:
        raw = struct.pack("<I", self.version)
        raw += compact_size(len(self.inputs))
        for tx_input in self.inputs:
            raw += tx_input.serialize_outpoint()
            raw += b"\x00"  # empty scriptSig
            raw += struct.pack("<I", tx_input.sequence)
        raw += compact_size(len(self.outputs))
        for output in self.outputs:
            raw += _serialize_output(output.value, output.script_pubkey)
        raw += struct.pack("<I", self.locktime)
        return raw

    def serialize(self) -> bytes:
        if not self.inputs or not self.outputs:
            raise ValueError("PSBT needs at least one input and one output")
        buf = PSBT_MAGIC
        buf += _key_value(PSBT_GLOBAL_UNSIGNED_TX, self.unsigned_tx())
        buf += PSBT_SEPARATOR
        for tx_input in self.inputs:
            buf += tx_input.serialize_map()
        buf += PSBT_SEPARATOR * len(self.outputs)
        return buf

    def to_hex(self) -> str:
        return self.serialize().hex()

    def to_base64(self) -> str:
        return base64.b64encode(self.serialize()).decode("ascii")

    @property
    def input_value(self) -> int:
        return sum(tx_input.value for tx_input in self.inputs)

    @property
    def output_value(self) -> int:
        return sum(output.value for output in self.outputs)

    @property
    def fee(self) -> int:
        return self.input_value - self.output_value
