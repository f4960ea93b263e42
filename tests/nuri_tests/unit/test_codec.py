"""
Unit tests for byte/text codecs.
"""

import pytest

from nuri.core.codec import (
    atob_arr,
    base64url_to_bytes,
    btoa_arr,
    buf2hex,
    bytes_to_base64url,
    concat_bytes,
    hex_to_bytes,
    random_bytes,
    strip_hex_prefix,
)


class TestBase64Url:
    def test_encode_strips_padding(self):
        assert bytes_to_base64url(b"\xff") == "_w"
        assert bytes_to_base64url(b"\xfb\xff") == "-_8"
        assert "=" not in bytes_to_base64url(b"abcd")

    def test_decode_restores_padding(self):
        assert base64url_to_bytes("_w") == b"\xff"
        assert base64url_to_bytes("-_8") == b"\xfb\xff"

    def test_empty(self):
        assert bytes_to_base64url(b"") == ""
        assert base64url_to_bytes("") == b""

    def test_rejects_invalid_characters(self):
        with pytest.raises(ValueError):
            base64url_to_bytes("ab!d")

    def test_rejects_non_string(self):
        with pytest.raises(ValueError):
            base64url_to_bytes(b"AAAA")


class TestStandardBase64:
    def test_known_vectors(self):
        assert btoa_arr(b"") == ""
        assert btoa_arr(b"f") == "Zg=="
        assert btoa_arr(b"fo") == "Zm8="
        assert btoa_arr(b"foo") == "Zm9v"

    def test_decode(self):
        assert atob_arr("Zm8=") == b"fo"

    def test_decode_rejects_garbage(self):
        with pytest.raises(ValueError):
            atob_arr("not base64!")


class TestHexHelpers:
    def test_buf2hex_lowercase(self):
        assert buf2hex(b"\xde\xad\xBE\xef") == "deadbeef"

    def test_hex_to_bytes_accepts_prefix(self):
        assert hex_to_bytes("0xDEAD") == b"\xde\xad"
        assert hex_to_bytes("dead") == b"\xde\xad"

    def test_strip_hex_prefix(self):
        assert strip_hex_prefix("0Xabc") == "abc"
        assert strip_hex_prefix("abc") == "abc"


def test_concat_bytes():
    assert concat_bytes([b"ab", bytearray(b"cd"), b""]) == b"abcd"


def test_random_bytes_length_and_freshness():
    first = random_bytes(32)
    assert len(first) == 32
    assert first != random_bytes(32)
    assert random_bytes(0) == b""
    with pytest.raises(ValueError):
        random_bytes(-1)
