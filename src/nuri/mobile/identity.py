"""
Identity / embedded-wallet provider integration.

The app-side SDK session supplies the authenticated user, access tokens and
wallet creation; the provider's REST API performs the HPKE-sealed key export
and remote transaction signing. Both are opaque services: this module only
defines their contracts and the HTTP calls this client makes.
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import aiohttp

from nuri.core import config
from nuri.core.codec import atob_arr, concat_bytes
from nuri.core.exceptions import (
    AccessTokenError,
    MalformedProviderResponseError,
    NetworkError,
    WalletUnavailableError,
)
from nuri.wallet.transaction_builder import TransactionSigner

logger = logging.getLogger(__name__)

CHAIN_ETHEREUM = "ethereum"
CHAIN_BITCOIN_TAPROOT = "bitcoin-taproot"
CHAIN_BITCOIN_SEGWIT = "bitcoin-segwit"
EMBEDDED_WALLET_CLIENT = "privy"


@dataclass
class EmbeddedWallet:
    """A custodial embedded wallet linked to the user."""
    id: str
    address: str
    public_key: Optional[str]
    chain_type: str = CHAIN_ETHEREUM
    wallet_client_type: str = EMBEDDED_WALLET_CLIENT
    derivation_path: Optional[str] = None
    type: str = "wallet"


@dataclass
class IdentityUser:
    id: str
    linked_accounts: List[Any] = field(default_factory=list)


@dataclass(frozen=True)
class SealedExport:
    """The provider's sealed representation of a private key."""
    ciphertext: bytes
    encapsulated_key: bytes

    def to_blob(self) -> bytes:
        """``ciphertext || encapsulated_key``"""
        return concat_bytes([self.ciphertext, self.encapsulated_key])


class IdentitySession(ABC):
    """Authenticated SDK session of the identity provider."""

    @abstractmethod
    async def get_user(self) -> Optional[IdentityUser]:
        """Currently authenticated user, or None when logged out."""
        pass

    @abstractmethod
    async def get_access_token(self) -> Optional[str]:
        """Short-lived bearer token, or None if the session has expired."""
        pass

    @abstractmethod
    async def create_wallet(self, chain_type: str) -> Optional[EmbeddedWallet]:
        """Create an embedded wallet of ``chain_type`` for the user."""
        pass


def find_embedded_wallet(user: Optional[IdentityUser], chain_type: str = CHAIN_ETHEREUM) -> Optional[EmbeddedWallet]:
    """Return the user's embedded wallet for ``chain_type``, if any."""
    if user is None:
        return None
    for account in user.linked_accounts:
        if (
            isinstance(account, EmbeddedWallet)
            and account.type == "wallet"
            and account.wallet_client_type == EMBEDDED_WALLET_CLIENT
            and account.chain_type == chain_type
            and account.address
        ):
            return account
    return None


def has_embedded_wallet(user: Optional[IdentityUser], chain_type: str = CHAIN_ETHEREUM) -> bool:
    return find_embedded_wallet(user, chain_type) is not None


async def require_embedded_wallet(session: IdentitySession, chain_type: str = CHAIN_ETHEREUM) -> EmbeddedWallet:
    """
    Resolve the authenticated user's embedded wallet.

    Raises:
        WalletUnavailableError: No user, or no embedded wallet of that chain.
    """
    user = await session.get_user()
    if user is None:
        raise WalletUnavailableError("User or wallet not available.")
    wallet = find_embedded_wallet(user, chain_type)
    if wallet is None:
        raise WalletUnavailableError(
            "Could not find embedded wallet.",
            details={"chain_type": chain_type},
        )
    return wallet


async def require_access_token(session: IdentitySession) -> str:
    token = await session.get_access_token()
    if not token:
        raise AccessTokenError("Could not retrieve access token for the identity provider.")
    return token


async def create_bitcoin_wallet(session: IdentitySession) -> EmbeddedWallet:
    """
    Create the user's embedded Bitcoin Taproot wallet.

    The provider derives Bitcoin wallets from the primary Ethereum wallet, so
    one must exist first.
    """
    user = await session.get_user()
    if not has_embedded_wallet(user, CHAIN_ETHEREUM):
        raise WalletUnavailableError(
            "Please create an Ethereum wallet first. Bitcoin wallet creation requires a primary Ethereum wallet."
        )

    existing = find_embedded_wallet(user, CHAIN_BITCOIN_TAPROOT)
    if existing is not None:
        return existing

    wallet = await session.create_wallet(CHAIN_BITCOIN_TAPROOT)
    if wallet is None or not wallet.address:
        raise MalformedProviderResponseError("Bitcoin wallet created, but no address was returned.")
    logger.info(
        "Bitcoin wallet created",
        extra={"event": "identity.bitcoin_wallet_created", "address": wallet.address},
    )
    return wallet


class PrivyWalletApi:
    """
    REST client for the identity provider's wallet endpoints.

    No retries: every failure is surfaced to the caller immediately.
    """

    def __init__(
        self,
        app_id: Optional[str] = None,
        base_url: str = config.PRIVY_API_BASE,
        timeout: float = config.HTTP_TIMEOUT_SECONDS,
    ):
        self.app_id = config.require_privy_app_id(app_id)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _headers(self, access_token: str) -> Dict[str, str]:
        return {
            "privy-app-id": self.app_id,
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }

    async def _post(self, path: str, access_token: str, body: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    url,
                    headers=self._headers(access_token),
                    json=body,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    text = await response.text()
                    status = response.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise NetworkError(
                f"Identity provider request failed: {exc}",
                details={"path": path},
            ) from exc

        if not 200 <= status < 300:
            if status == 401:
                raise AccessTokenError(
                    f"Identity provider rejected the access token: {status} {text}",
                    status=status,
                    details={"path": path, "body": text},
                )
            raise NetworkError(
                f"Identity provider request failed: {status} {text}",
                status=status,
                details={"path": path, "body": text},
            )

        try:
            data = json.loads(text)
        except ValueError as exc:
            raise MalformedProviderResponseError(
                "Identity provider returned a non-JSON response",
                details={"path": path},
            ) from exc
        if not isinstance(data, dict):
            raise MalformedProviderResponseError(
                "Identity provider returned an unexpected response shape",
                details={"path": path},
            )
        return data

    async def export_wallet(
        self,
        wallet_id: str,
        access_token: str,
        recipient_public_key: str = config.EXPORT_RECIPIENT_PUBLIC_KEY,
    ) -> SealedExport:
        """
        Request an HPKE-sealed export of the embedded wallet's private key.

        Raises:
            NetworkError: Transport failure or non-2xx response.
            MalformedProviderResponseError: Missing or undecodable
                ``ciphertext`` / ``encapsulated_key``.
        """
        data = await self._post(
            f"/api/v1/wallets/{wallet_id}/export",
            access_token,
            {"encryption_type": "HPKE", "recipient_public_key": recipient_public_key},
        )
        ciphertext_b64 = data.get("ciphertext")
        encapsulated_b64 = data.get("encapsulated_key")
        if not ciphertext_b64 or not encapsulated_b64:
            raise MalformedProviderResponseError(
                "Export response missing ciphertext or encapsulated_key",
                details={"fields": sorted(data.keys())},
            )
        try:
            sealed = SealedExport(
                ciphertext=atob_arr(ciphertext_b64),
                encapsulated_key=atob_arr(encapsulated_b64),
            )
        except ValueError as exc:
            raise MalformedProviderResponseError("Export response fields are not valid base64") from exc

        logger.debug(
            "Sealed export received",
            extra={
                "event": "identity.export_received",
                "ciphertext_len": len(sealed.ciphertext),
                "encapsulated_key_len": len(sealed.encapsulated_key),
            },
        )
        return sealed

    async def sign_psbt(self, wallet_id: str, access_token: str, psbt_hex: str) -> str:
        """Have the provider sign ``psbt_hex``; returns the signed transaction hex."""
        data = await self._post(
            f"/api/v1/wallets/{wallet_id}/rpc",
            access_token,
            {"method": "signTransaction", "params": {"psbt": psbt_hex}},
        )
        result = data.get("data")
        signed = result.get("signed_transaction") if isinstance(result, dict) else None
        if not isinstance(signed, str) or not signed:
            raise MalformedProviderResponseError(
                "Signing response missing signed_transaction",
                details={"fields": sorted(data.keys())},
            )
        return signed


class RemoteWalletSigner(TransactionSigner):
    """Signs PSBTs with the provider, using a fresh access token per request."""

    def __init__(self, api: PrivyWalletApi, session: IdentitySession, wallet_id: str):
        self.api = api
        self.session = session
        self.wallet_id = wallet_id

    async def sign_psbt(self, psbt_hex: str) -> str:
        token = await require_access_token(self.session)
        return await self.api.sign_psbt(self.wallet_id, token, psbt_hex)
