"""
Export payload wire format.

    {"credId": base64url, "salt": base64, "iv": base64, "blob": base64}

The field names and encodings are the compatibility contract between export
and recovery and must not change.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict

from nuri.core.codec import atob_arr, base64url_to_bytes, btoa_arr, bytes_to_base64url
from nuri.core.crypto_utils import AES_GCM_NONCE_BYTES
from nuri.core.exceptions import InvalidPayloadError

SALT_BYTES = 32
PAYLOAD_FIELDS = ("credId", "salt", "iv", "blob")


@dataclass(frozen=True)
class DecodedPayload:
    credential_id: bytes
    salt: bytes
    iv: bytes
    blob: bytes


@dataclass(frozen=True)
class ExportPayload:
    cred_id: str
    salt: str
    iv: str
    blob: str

    @classmethod
    def from_bytes(cls, credential_id: bytes, salt: bytes, iv: bytes, blob: bytes) -> "ExportPayload":
        return cls(
            cred_id=bytes_to_base64url(credential_id),
            salt=btoa_arr(salt),
            iv=btoa_arr(iv),
            blob=btoa_arr(blob),
        )

    def to_dict(self) -> Dict[str, str]:
        return {"credId": self.cred_id, "salt": self.salt, "iv": self.iv, "blob": self.blob}

    def to_json(self, indent: int | None = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_dict(cls, data: Any) -> "ExportPayload":
        if not isinstance(data, dict):
            raise InvalidPayloadError("Invalid export payload structure.")
        missing = [name for name in PAYLOAD_FIELDS if not isinstance(data.get(name), str) or not data.get(name)]
        if missing:
            raise InvalidPayloadError(
                "Invalid export payload structure.",
                details={"missing": missing},
            )
        return cls(cred_id=data["credId"], salt=data["salt"], iv=data["iv"], blob=data["blob"])

    @classmethod
    def from_json(cls, text: str) -> "ExportPayload":
        """
        Parse a pasted payload.

        Raises:
            InvalidPayloadError: Not JSON, not an object, or a field is missing.
        """
        if not isinstance(text, str) or not text.strip():
            raise InvalidPayloadError("Please paste the export payload.")
        try:
            data = json.loads(text)
        except ValueError as exc:
            raise InvalidPayloadError("Invalid JSON payload.") from exc
        return cls.from_dict(data)

    def decode(self) -> DecodedPayload:
        """
        Decode every field to bytes.

        Raises:
            InvalidPayloadError: Undecodable field or wrong salt/iv length.
        """
        try:
            decoded = DecodedPayload(
                credential_id=base64url_to_bytes(self.cred_id),
                salt=atob_arr(self.salt),
                iv=atob_arr(self.iv),
                blob=atob_arr(self.blob),
            )
        except ValueError as exc:
            raise InvalidPayloadError(f"Export payload field is not valid base64: {exc}") from exc

        if not decoded.credential_id:
            raise InvalidPayloadError("Export payload has an empty credential id")
        if len(decoded.salt) != SALT_BYTES:
            raise InvalidPayloadError("Export payload salt must be 32 bytes", details={"length": len(decoded.salt)})
        if len(decoded.iv) != AES_GCM_NONCE_BYTES:
            raise InvalidPayloadError("Export payload iv must be 12 bytes", details={"length": len(decoded.iv)})
        return decoded
