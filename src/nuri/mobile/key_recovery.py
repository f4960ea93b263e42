"""
Wallet key recovery from an ExportPayload.

Pipeline:
    parse payload -> re-derive PRF secret (same credential + salt) -> AES-GCM
    decrypt -> unseal -> verify against the active wallet's public key

A recovered key is held in memory only while it is displayed: it is wiped
after ``display_timeout`` seconds, when the app backgrounds, or when the view
is closed, whichever comes first.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from nuri.core import config
from nuri.core.config import NetworkType
from nuri.core.crypto_utils import aes_gcm_decrypt, private_key_to_wif, public_key_matches, validate_private_key
from nuri.core.exceptions import KeyMismatchError, WalletError, WalletUnavailableError
from nuri.core.logging_config import ErrorCallback, report_error
from nuri.mobile.identity import CHAIN_ETHEREUM, IdentitySession, require_embedded_wallet
from nuri.mobile.passkey import PasskeySecretService
from nuri.mobile.payload import ExportPayload
from nuri.mobile.unsealing import Unsealer

module_logger = logging.getLogger(__name__)


class KeyMatchStatus(Enum):
    MATCHED = "matched"
    MISMATCHED = "mismatched"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class DecryptedKeyInfo:
    hex: str
    wif: str

    def __repr__(self) -> str:
        return "DecryptedKeyInfo(hex=<redacted>, wif=<redacted>)"


class WalletKeyRecovery:
    """
    Decrypts an export payload and verifies it belongs to the active wallet.

    Must be driven from a running event loop; the auto-clear timer is
    scheduled on it.

    Usage:
        recovery = WalletKeyRecovery(passkeys, session, unsealer)
        info = await recovery.recover_wallet_key(pasted_json)
        ...
        recovery.clear_sensitive_data()
    """

    def __init__(
        self,
        passkeys: PasskeySecretService,
        session: IdentitySession,
        unsealer: Unsealer,
        chain_type: str = CHAIN_ETHEREUM,
        network: NetworkType = config.NETWORK,
        display_timeout: float = config.KEY_DISPLAY_TIMEOUT_SECONDS,
        logger: Optional[logging.Logger] = None,
        on_error: Optional[ErrorCallback] = None,
    ):
        self.passkeys = passkeys
        self.session = session
        self.unsealer = unsealer
        self.chain_type = chain_type
        self.network = network
        self.display_timeout = display_timeout
        self.logger = logger or module_logger
        self.on_error = on_error

        self._decrypted_key_info: Optional[DecryptedKeyInfo] = None
        self._key_match_status = KeyMatchStatus.UNKNOWN
        self._clear_handle: Optional[asyncio.TimerHandle] = None
        self._recovering = False

    @property
    def decrypted_key_info(self) -> Optional[DecryptedKeyInfo]:
        return self._decrypted_key_info

    @property
    def key_match_status(self) -> KeyMatchStatus:
        return self._key_match_status

    @property
    def recovering(self) -> bool:
        return self._recovering

    async def recover_wallet_key(self, payload_json: str) -> DecryptedKeyInfo:
        """
        Recover and verify the private key carried by ``payload_json``.

        Raises:
            InvalidPayloadError, WalletUnavailableError, PrfDerivationError,
            DecryptionError, UnsealError, KeyMismatchError
        """
        if self._recovering:
            error = WalletError("A recovery is already in progress.")
            report_error(self.logger, error, self.on_error, "recovery.busy")
            raise error
        self._recovering = True

        self._cancel_auto_clear()
        self._decrypted_key_info = None
        self._key_match_status = KeyMatchStatus.UNKNOWN
        try:
            info = await self._recover(payload_json)
        except KeyMismatchError as exc:
            self._decrypted_key_info = None
            self._key_match_status = KeyMatchStatus.MISMATCHED
            report_error(self.logger, exc, self.on_error, "recovery.key_mismatch")
            raise
        except WalletError as exc:
            self._reset_state()
            report_error(self.logger, exc, self.on_error, "recovery.failed")
            raise
        except Exception as exc:
            self._reset_state()
            error = WalletError(f"Recovery failed: {exc}", details={"cause": type(exc).__name__})
            report_error(self.logger, error, self.on_error, "recovery.failed")
            raise error from exc
        finally:
            self._recovering = False

        self._decrypted_key_info = info
        self._key_match_status = KeyMatchStatus.MATCHED
        self._schedule_auto_clear()
        return info

    async def _recover(self, payload_json: str) -> DecryptedKeyInfo:
        decoded = ExportPayload.from_json(payload_json).decode()

        wallet = await require_embedded_wallet(self.session, self.chain_type)
        if not wallet.public_key:
            raise WalletUnavailableError("Current wallet public key not available.")

        secret = await self.passkeys.derive_secret(decoded.credential_id, decoded.salt)
        sealed_blob = aes_gcm_decrypt(secret, decoded.iv, decoded.blob)
        del secret
        self.logger.debug(
            "Envelope decrypted",
            extra={"event": "recovery.decrypted", "sealed_blob_len": len(sealed_blob)},
        )

        private_key = bytearray(validate_private_key(await self.unsealer.unseal(sealed_blob)))
        try:
            if not public_key_matches(bytes(private_key), wallet.public_key):
                raise KeyMismatchError(
                    "Key mismatch: Decrypted key does not match current wallet.",
                    details={"wallet_id": wallet.id},
                )
            info = DecryptedKeyInfo(
                hex=bytes(private_key).hex(),
                wif=private_key_to_wif(bytes(private_key), self.network),
            )
        finally:
            for index in range(len(private_key)):
                private_key[index] = 0

        self.logger.info(
            "Recovered key matches current wallet",
            extra={"event": "recovery.verified", "wallet_id": wallet.id},
        )
        return info

    def clear_sensitive_data(self) -> None:
        """Discard the recovered key. Safe to call at any time, any number of times."""
        self._cancel_auto_clear()
        if self._decrypted_key_info is not None:
            self._decrypted_key_info = None
            self.logger.info("Decrypted key info cleared", extra={"event": "recovery.cleared"})

    def reset(self) -> None:
        """Clear the key and forget the match status (view closed)."""
        self.clear_sensitive_data()
        self._key_match_status = KeyMatchStatus.UNKNOWN

    def on_app_background(self) -> None:
        if self._decrypted_key_info is not None:
            self.logger.info(
                "App backgrounded, clearing decrypted key",
                extra={"event": "recovery.background_clear"},
            )
            self.clear_sensitive_data()

    def _reset_state(self) -> None:
        self._cancel_auto_clear()
        self._decrypted_key_info = None
        self._key_match_status = KeyMatchStatus.UNKNOWN

    def _schedule_auto_clear(self) -> None:
        loop = asyncio.get_running_loop()
        self._clear_handle = loop.call_later(self.display_timeout, self._expire)

    def _cancel_auto_clear(self) -> None:
        if self._clear_handle is not None:
            self._clear_handle.cancel()
            self._clear_handle = None

    def _expire(self) -> None:
        self._clear_handle = None
        if self._decrypted_key_info is not None:
            self._decrypted_key_info = None
            self.logger.info("Decrypted key info expired", extra={"event": "recovery.expired"})
