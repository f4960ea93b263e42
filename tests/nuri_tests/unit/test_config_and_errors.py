"""
Unit tests for environment configuration helpers and the error taxonomy.
"""

import pytest

from nuri.core import config
from nuri.core.config import FeePriority, NetworkType
from nuri.core.exceptions import (
    AccessTokenError,
    BroadcastError,
    ConfigurationError,
    DecryptionError,
    DustLimitError,
    InsufficientFundsError,
    NetworkError,
    TransactionError,
    UnsealError,
    WalletError,
)


class TestEnvHelpers:
    def test_get_enum_reads_env(self, monkeypatch):
        monkeypatch.setenv("NURI_TEST_NETWORK", " signet ")
        assert config._get_enum("NURI_TEST_NETWORK", NetworkType, "mainnet") == NetworkType.SIGNET

    def test_get_enum_default(self, monkeypatch):
        monkeypatch.delenv("NURI_TEST_PRIORITY", raising=False)
        assert config._get_enum("NURI_TEST_PRIORITY", FeePriority, "hourFee") == FeePriority.HOUR

    def test_get_enum_rejects_unknown_value(self, monkeypatch):
        monkeypatch.setenv("NURI_TEST_NETWORK", "regtest-ish")
        with pytest.raises(ConfigurationError) as excinfo:
            config._get_enum("NURI_TEST_NETWORK", NetworkType, "mainnet")
        assert "mainnet, testnet, signet" in str(excinfo.value)
        assert excinfo.value.recoverable is False

    def test_get_int(self, monkeypatch):
        monkeypatch.setenv("NURI_TEST_INT", "42")
        assert config._get_int("NURI_TEST_INT", 7) == 42
        monkeypatch.setenv("NURI_TEST_INT", "")
        assert config._get_int("NURI_TEST_INT", 7) == 7
        monkeypatch.setenv("NURI_TEST_INT", "forty-two")
        with pytest.raises(ConfigurationError):
            config._get_int("NURI_TEST_INT", 7)


class TestDefaults:
    def test_send_policy_constants(self):
        assert config.DUST_LIMIT_SATS == 330
        assert config.CREDENTIAL_ID_STORE_KEY == "passkeyCredentialId"

    def test_mempool_base_per_network(self):
        assert config.mempool_api_base(NetworkType.MAINNET) == "https://mempool.space/api"
        assert config.mempool_api_base(NetworkType.SIGNET).endswith("/signet/api")

    def test_require_privy_app_id(self):
        assert config.require_privy_app_id(" app-123 ") == "app-123"
        with pytest.raises(ConfigurationError):
            config.require_privy_app_id("   ")


class TestExceptions:
    def test_to_dict(self):
        error = WalletError("boom", details={"wallet_id": "w1"})
        assert error.to_dict() == {
            "error": "WalletError",
            "message": "boom",
            "details": {"wallet_id": "w1"},
            "recoverable": True,
        }

    def test_network_error_records_status(self):
        error = NetworkError("bad gateway", status=502, details={"path": "/tx"})
        assert error.status == 502
        assert error.details == {"path": "/tx", "status": 502}

    def test_hierarchy(self):
        assert issubclass(UnsealError, DecryptionError)
        assert issubclass(AccessTokenError, NetworkError)
        assert issubclass(BroadcastError, NetworkError)
        assert issubclass(DustLimitError, TransactionError)
        assert issubclass(TransactionError, WalletError)

    def test_insufficient_funds_carries_amounts(self):
        error = InsufficientFundsError("short", available=100, required=500)
        assert (error.available, error.required) == (100, 500)
