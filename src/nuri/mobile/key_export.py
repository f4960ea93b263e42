"""
Wallet key export under passkey-derived encryption.

Pipeline:
    passkey credential -> fresh salt -> PRF secret -> sealed export from the
    identity provider -> AES-GCM envelope -> ExportPayload

The payload is self-sufficient: with access to the same passkey (on any device
it syncs to) it can be decrypted again by WalletKeyRecovery.
"""

from __future__ import annotations

import logging
from typing import Optional

from nuri.core import config
from nuri.core.codec import random_bytes
from nuri.core.crypto_utils import AES_GCM_NONCE_BYTES, aes_gcm_encrypt
from nuri.core.exceptions import WalletError
from nuri.core.logging_config import ErrorCallback, report_error
from nuri.mobile.identity import (
    CHAIN_ETHEREUM,
    IdentitySession,
    PrivyWalletApi,
    require_access_token,
    require_embedded_wallet,
)
from nuri.mobile.passkey import PasskeySecretService
from nuri.mobile.payload import SALT_BYTES, ExportPayload

module_logger = logging.getLogger(__name__)


class WalletKeyExporter:
    """
    Produces an ExportPayload for the user's embedded wallet.

    Usage:
        exporter = WalletKeyExporter(passkeys, session, PrivyWalletApi())
        payload = await exporter.export_wallet_key()
        show(payload.to_json())
    """

    def __init__(
        self,
        passkeys: PasskeySecretService,
        session: IdentitySession,
        wallet_api: PrivyWalletApi,
        chain_type: str = CHAIN_ETHEREUM,
        recipient_public_key: str = config.EXPORT_RECIPIENT_PUBLIC_KEY,
        logger: Optional[logging.Logger] = None,
        on_error: Optional[ErrorCallback] = None,
    ):
        self.passkeys = passkeys
        self.session = session
        self.wallet_api = wallet_api
        self.chain_type = chain_type
        self.recipient_public_key = recipient_public_key
        self.logger = logger or module_logger
        self.on_error = on_error
        self._exporting = False

    @property
    def exporting(self) -> bool:
        return self._exporting

    async def export_wallet_key(self) -> ExportPayload:
        """
        Export the embedded wallet key wrapped under a fresh passkey secret.

        Raises:
            WalletUnavailableError, CredentialCreationError, PrfDerivationError,
            AccessTokenError, NetworkError, MalformedProviderResponseError
        """
        if self._exporting:
            error = WalletError("An export is already in progress.")
            report_error(self.logger, error, self.on_error, "export.busy")
            raise error
        self._exporting = True
        try:
            return await self._export()
        except WalletError as exc:
            report_error(self.logger, exc, self.on_error, "export.failed")
            raise
        except Exception as exc:
            error = WalletError(f"Export failed: {exc}", details={"cause": type(exc).__name__})
            report_error(self.logger, error, self.on_error, "export.failed")
            raise error from exc
        finally:
            self._exporting = False

    async def _export(self) -> ExportPayload:
        wallet = await require_embedded_wallet(self.session, self.chain_type)
        self.logger.info("Export started", extra={"event": "export.start", "wallet_id": wallet.id})

        credential_id = await self.passkeys.get_or_create_credential()
        salt = random_bytes(SALT_BYTES)
        secret = await self.passkeys.derive_secret(credential_id, salt)
        self.logger.debug("PRF secret derived", extra={"event": "export.secret_derived"})

        access_token = await require_access_token(self.session)
        sealed = await self.wallet_api.export_wallet(wallet.id, access_token, self.recipient_public_key)
        sealed_blob = sealed.to_blob()

        iv = random_bytes(AES_GCM_NONCE_BYTES)
        encrypted = aes_gcm_encrypt(secret, iv, sealed_blob)
        del secret

        payload = ExportPayload.from_bytes(credential_id, salt, iv, encrypted)
        self.logger.info(
            "Export payload generated",
            extra={"event": "export.complete", "blob_len": len(encrypted)},
        )
        return payload
