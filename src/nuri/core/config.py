"""
Nuri Wallet Configuration

All settings are read from ``NURI_*`` environment variables once, at import.
Components take explicit constructor overrides, so these constants are only
defaults.

SECURITY NOTICE:
- The identity-provider app id is not a secret but must match the deployment
- Never put access tokens or key material in environment variables
"""

from __future__ import annotations

import logging
import os
from enum import Enum

from nuri.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class NetworkType(Enum):
    MAINNET = "mainnet"
    TESTNET = "testnet"
    SIGNET = "signet"


class FeePriority(Enum):
    """Fee-rate buckets exposed by the mempool.space recommendation endpoint."""
    FASTEST = "fastestFee"
    HALF_HOUR = "halfHourFee"
    HOUR = "hourFee"
    ECONOMY = "economyFee"
    MINIMUM = "minimumFee"


def _get_enum(env_var: str, enum_cls: type[Enum], default: str) -> Enum:
    raw = os.getenv(env_var, default).strip()
    try:
        return enum_cls(raw)
    except ValueError as exc:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ConfigurationError(
            f"{env_var}={raw!r} is not valid; expected one of: {allowed}",
            details={"env_var": env_var},
        ) from exc


def _get_int(env_var: str, default: int) -> int:
    raw = os.getenv(env_var, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(
            f"{env_var} must be an integer, got {raw!r}",
            details={"env_var": env_var},
        ) from exc


NETWORK = _get_enum("NURI_NETWORK", NetworkType, "mainnet")

# Identity / wallet provider
PRIVY_APP_ID = os.getenv("NURI_PRIVY_APP_ID", "").strip()
PRIVY_API_BASE = os.getenv("NURI_PRIVY_API_BASE", "https://auth.privy.io").rstrip("/")

# The export endpoint requires a recipient key in the request body even though the
# sealed result is never opened with it on this client.
EXPORT_RECIPIENT_PUBLIC_KEY = os.getenv(
    "NURI_EXPORT_RECIPIENT_PUBLIC_KEY",
    "BMRL4A8B2vN+n8fJ3jA0Tj7Zc9fX2oH7Y9c3gJ5sX3k=",
)

# Passkey relying party
PASSKEY_RP_ID = os.getenv("NURI_PASSKEY_RP_ID", "nuri.com")
PASSKEY_RP_NAME = os.getenv("NURI_PASSKEY_RP_NAME", "Nuri Wallet App")
PASSKEY_USER_NAME = os.getenv("NURI_PASSKEY_USER_NAME", "user@example.com")
PASSKEY_USER_DISPLAY_NAME = os.getenv("NURI_PASSKEY_USER_DISPLAY_NAME", "Nuri Wallet User")
PASSKEY_TIMEOUT_MS = _get_int("NURI_PASSKEY_TIMEOUT_MS", 60000)
PASSKEY_USER_VERIFICATION = os.getenv("NURI_PASSKEY_USER_VERIFICATION", "required")
CREDENTIAL_ID_STORE_KEY = "passkeyCredentialId"

# Recovered keys are wiped from memory after this many seconds
KEY_DISPLAY_TIMEOUT_SECONDS = _get_int("NURI_KEY_DISPLAY_TIMEOUT", 60)

# Chain data provider
_MEMPOOL_DEFAULTS = {
    NetworkType.MAINNET: "https://mempool.space/api",
    NetworkType.TESTNET: "https://mempool.space/testnet4/api",
    NetworkType.SIGNET: "https://mempool.space/signet/api",
}
MEMPOOL_API_BASE = os.getenv("NURI_MEMPOOL_API_BASE", _MEMPOOL_DEFAULTS[NETWORK]).rstrip("/")
HTTP_TIMEOUT_SECONDS = _get_int("NURI_HTTP_TIMEOUT", 15)

# Send policy
DUST_LIMIT_SATS = 330  # standard relay threshold for P2TR outputs
ESTIMATED_TX_VBYTES = _get_int("NURI_ESTIMATED_TX_VBYTES", 200)
FEE_PRIORITY = _get_enum("NURI_FEE_PRIORITY", FeePriority, "halfHourFee")
CHANGE_POLICY = os.getenv("NURI_CHANGE_POLICY", "forfeit").strip().lower()
if CHANGE_POLICY not in ("forfeit", "return"):
    raise ConfigurationError(
        f"NURI_CHANGE_POLICY={CHANGE_POLICY!r} is not valid; expected 'forfeit' or 'return'",
        details={"env_var": "NURI_CHANGE_POLICY"},
    )

# Logging
LOG_LEVEL = os.getenv("NURI_LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("NURI_LOG_FILE", "").strip() or None
ENVIRONMENT = os.getenv("NURI_ENVIRONMENT", "production")


def mempool_api_base(network: NetworkType) -> str:
    """Default mempool.space base URL for ``network`` (ignores NURI_MEMPOOL_API_BASE)."""
    return _MEMPOOL_DEFAULTS[network]


def require_privy_app_id(app_id: str | None = None) -> str:
    """Return the configured identity-provider app id or raise ConfigurationError."""
    value = (app_id if app_id is not None else PRIVY_APP_ID).strip()
    if not value:
        raise ConfigurationError(
            "Privy App ID not configured. Set NURI_PRIVY_APP_ID.",
            details={"env_var": "NURI_PRIVY_APP_ID"},
        )
    return value
