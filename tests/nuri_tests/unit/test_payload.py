"""
Unit tests for the export payload wire format and sealed blob unwrapping.
"""

import json

import pytest

from nuri.core.codec import btoa_arr
from nuri.core.exceptions import InvalidPayloadError, UnsealError
from nuri.mobile.payload import ExportPayload
from nuri.mobile.unsealing import TrailingKeyUnsealer, split_sealed_blob


def _payload(**overrides):
    payload = ExportPayload.from_bytes(b"\xfa\xfb\xfc", b"\x01" * 32, b"\x02" * 12, b"\x03" * 48)
    data = payload.to_dict()
    data.update(overrides)
    return data


class TestExportPayloadFormat:
    def test_field_names_and_encodings(self):
        payload = ExportPayload.from_bytes(b"\xfa\xfb\xfc", b"\x01" * 32, b"\x02" * 12, b"\xff\xfe")
        data = json.loads(payload.to_json())

        assert list(data) == ["credId", "salt", "iv", "blob"]
        assert data["credId"] == "-vv8"
        assert data["blob"] == "//4="

    def test_parse_and_decode(self):
        decoded = ExportPayload.from_json(json.dumps(_payload())).decode()

        assert decoded.credential_id == b"\xfa\xfb\xfc"
        assert decoded.salt == b"\x01" * 32
        assert decoded.iv == b"\x02" * 12
        assert decoded.blob == b"\x03" * 48

    def test_to_json_compact(self):
        text = ExportPayload.from_dict(_payload()).to_json(indent=None)
        assert "\n" not in text


class TestExportPayloadErrors:
    @pytest.mark.parametrize("text", ["", "   \n"])
    def test_empty_input(self, text):
        with pytest.raises(InvalidPayloadError, match="Please paste the export payload."):
            ExportPayload.from_json(text)

    def test_not_json(self):
        with pytest.raises(InvalidPayloadError, match="Invalid JSON payload."):
            ExportPayload.from_json("not json")

    @pytest.mark.parametrize("text", ["[]", '"credId"', "42"])
    def test_not_an_object(self, text):
        with pytest.raises(InvalidPayloadError, match="Invalid export payload structure."):
            ExportPayload.from_json(text)

    @pytest.mark.parametrize("field", ["credId", "salt", "iv", "blob"])
    def test_missing_field(self, field):
        data = _payload()
        del data[field]
        with pytest.raises(InvalidPayloadError) as excinfo:
            ExportPayload.from_json(json.dumps(data))
        assert excinfo.value.details["missing"] == [field]

    def test_non_string_field(self):
        with pytest.raises(InvalidPayloadError):
            ExportPayload.from_dict(_payload(iv=12))

    def test_undecodable_field(self):
        with pytest.raises(InvalidPayloadError, match="not valid base64"):
            ExportPayload.from_dict(_payload(blob="***")).decode()

    def test_wrong_salt_length(self):
        with pytest.raises(InvalidPayloadError, match="salt must be 32 bytes"):
            ExportPayload.from_dict(_payload(salt=btoa_arr(b"\x01" * 16))).decode()

    def test_wrong_iv_length(self):
        with pytest.raises(InvalidPayloadError, match="iv must be 12 bytes"):
            ExportPayload.from_dict(_payload(iv=btoa_arr(b"\x01" * 16))).decode()


class TestUnsealing:
    def test_split_sealed_blob(self):
        ciphertext, encapsulated = split_sealed_blob(b"c" * 10 + b"k" * 65)
        assert ciphertext == b"c" * 10
        assert encapsulated == b"k" * 65

    def test_split_too_short(self):
        with pytest.raises(UnsealError):
            split_sealed_blob(b"k" * 65)

    @pytest.mark.asyncio
    async def test_trailing_key_unsealer(self):
        key = b"\x11" * 32
        assert await TrailingKeyUnsealer().unseal(b"prefix-bytes" + key) == key

    @pytest.mark.asyncio
    async def test_trailing_key_unsealer_rejects_short_blob(self):
        with pytest.raises(UnsealError):
            await TrailingKeyUnsealer().unseal(b"\x11" * 31)

    @pytest.mark.asyncio
    async def test_trailing_key_unsealer_rejects_invalid_scalar(self):
        with pytest.raises(UnsealError):
            await TrailingKeyUnsealer().unseal(b"prefix" + bytes(32))
