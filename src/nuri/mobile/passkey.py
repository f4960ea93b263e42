"""
Passkey Secret Service

Derives a symmetric secret from a platform passkey via the WebAuthn PRF
extension:
- One discoverable, user-verified credential per installation
- Credential id cached in the secure store under a fixed key
- PRF output is deterministic in (credential, salt), so the same salt
  re-derives the same 32-byte secret on any device the passkey syncs to

Platform Integration:
- iOS 18+: ASAuthorizationPlatformPublicKeyCredentialProvider (PRF)
- Android: Credential Manager with the PRF / hmac-secret extension
- React Native: react-native-passkeys bridge

The service never caches or alters PRF output; determinism is the
authenticator's guarantee.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from nuri.core import config
from nuri.core.codec import base64url_to_bytes, bytes_to_base64url, random_bytes
from nuri.core.exceptions import CredentialCreationError, PrfDerivationError
from nuri.mobile.secure_store import SecureStore

logger = logging.getLogger(__name__)

PRF_SECRET_BYTES = 32
CHALLENGE_BYTES = 32
USER_HANDLE_BYTES = 16

COSE_ALG_ES256 = -7
COSE_ALG_RS256 = -257


class PrfResultShape(Enum):
    """Where the authenticator placed the PRF output."""
    RESULTS = "results"   # extensions.prf.results.first (WebAuthn Level 3)
    DIRECT = "direct"     # extensions.prf.first (older bridges)


@dataclass(frozen=True)
class PrfOutput:
    shape: PrfResultShape
    first: bytes


@dataclass
class RelyingParty:
    id: str
    name: str


@dataclass
class PasskeyUser:
    id: bytes
    name: str
    display_name: str


@dataclass
class PasskeyCreationOptions:
    """Options for the credential-creation (registration) ceremony."""
    challenge: bytes
    rp: RelyingParty
    user: PasskeyUser
    pub_key_cred_algs: List[int] = field(default_factory=lambda: [COSE_ALG_ES256, COSE_ALG_RS256])
    resident_key: str = "required"
    require_resident_key: bool = True
    user_verification: str = "required"
    prf_enabled: bool = True
    timeout_ms: int = 60000
    attestation: str = "none"

    def to_dict(self) -> Dict[str, Any]:
        """WebAuthn JSON form (binary fields base64url) for platform bridges."""
        return {
            "challenge": bytes_to_base64url(self.challenge),
            "rp": {"id": self.rp.id, "name": self.rp.name},
            "user": {
                "id": bytes_to_base64url(self.user.id),
                "name": self.user.name,
                "displayName": self.user.display_name,
            },
            "pubKeyCredParams": [{"type": "public-key", "alg": alg} for alg in self.pub_key_cred_algs],
            "authenticatorSelection": {
                "residentKey": self.resident_key,
                "requireResidentKey": self.require_resident_key,
                "userVerification": self.user_verification,
            },
            "extensions": {"prf": {}} if self.prf_enabled else {},
            "timeout": self.timeout_ms,
            "attestation": self.attestation,
        }


@dataclass
class PasskeyRequestOptions:
    """Options for the assertion ceremony with a PRF evaluation request."""
    challenge: bytes
    rp_id: str
    allow_credentials: List[bytes]
    prf_salt: bytes
    user_verification: str = "required"
    timeout_ms: int = 60000

    def to_dict(self) -> Dict[str, Any]:
        return {
            "challenge": bytes_to_base64url(self.challenge),
            "rpId": self.rp_id,
            "allowCredentials": [
                {"type": "public-key", "id": bytes_to_base64url(cred)} for cred in self.allow_credentials
            ],
            "userVerification": self.user_verification,
            "extensions": {"prf": {"eval": {"first": bytes_to_base64url(self.prf_salt)}}},
            "timeout": self.timeout_ms,
        }


@dataclass
class PasskeyCredential:
    """Result of a creation ceremony."""
    raw_id: Optional[bytes]
    extension_results: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PasskeyAssertion:
    """Result of an assertion ceremony."""
    credential_id: bytes
    extension_results: Dict[str, Any] = field(default_factory=dict)

    def get_extension_results(self) -> Dict[str, Any]:
        return self.extension_results


class AuthenticatorError(Exception):
    """
    Ceremony failure reported by the platform.

    ``name`` follows the DOMException names WebAuthn uses, e.g.
    ``NotAllowedError`` for a cancelled or denied prompt.
    """

    def __init__(self, name: str, message: str = ""):
        super().__init__(f"{name}: {message}" if message else name)
        self.name = name
        self.message = message


class PasskeyAuthenticator(ABC):
    """
    Abstract platform passkey authenticator.

    Implementations raise AuthenticatorError for failed ceremonies.
    """

    @abstractmethod
    async def create(self, options: PasskeyCreationOptions) -> Optional[PasskeyCredential]:
        """Run the registration ceremony."""
        pass

    @abstractmethod
    async def get(self, options: PasskeyRequestOptions) -> Optional[PasskeyAssertion]:
        """Run the assertion ceremony."""
        pass


def _coerce_prf_bytes(value: Any) -> Optional[bytes]:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str) and value:
        # JSON bridges hand binary values over as base64url text
        try:
            return base64url_to_bytes(value)
        except ValueError:
            return None
    return None


def parse_prf_output(extension_results: Optional[Dict[str, Any]]) -> Optional[PrfOutput]:
    """
    Resolve the PRF output from either result shape.

    ``prf.results.first`` is preferred; ``prf.first`` is accepted for bridges
    that flatten the structure. Returns None when neither carries a value.
    """
    if not isinstance(extension_results, dict):
        return None
    prf = extension_results.get("prf")
    if not isinstance(prf, dict):
        return None

    results = prf.get("results")
    if isinstance(results, dict):
        first = _coerce_prf_bytes(results.get("first"))
        if first is not None:
            return PrfOutput(PrfResultShape.RESULTS, first)

    first = _coerce_prf_bytes(prf.get("first"))
    if first is not None:
        return PrfOutput(PrfResultShape.DIRECT, first)
    return None


class PasskeySecretService:
    """
    Owns the installation's passkey credential and derives PRF secrets from it.

    Usage:
        service = PasskeySecretService(authenticator, secure_store)
        cred_id = await service.get_or_create_credential()
        secret = await service.derive_secret(cred_id, salt)   # 32 bytes
    """

    def __init__(
        self,
        authenticator: PasskeyAuthenticator,
        store: SecureStore,
        rp_id: str = config.PASSKEY_RP_ID,
        rp_name: str = config.PASSKEY_RP_NAME,
        user_name: str = config.PASSKEY_USER_NAME,
        user_display_name: str = config.PASSKEY_USER_DISPLAY_NAME,
        user_verification: str = config.PASSKEY_USER_VERIFICATION,
        timeout_ms: int = config.PASSKEY_TIMEOUT_MS,
        store_key: str = config.CREDENTIAL_ID_STORE_KEY,
    ):
        self.authenticator = authenticator
        self.store = store
        self.rp = RelyingParty(id=rp_id, name=rp_name)
        self.user_name = user_name
        self.user_display_name = user_display_name
        self.user_verification = user_verification
        self.timeout_ms = timeout_ms
        self.store_key = store_key

    async def get_or_create_credential(self) -> bytes:
        """
        Return the cached credential id, creating a passkey on first use.

        Raises:
            CredentialCreationError: Ceremony cancelled/denied, no id returned,
                or the cached id cannot be decoded.
        """
        cached = await self.store.get_item(self.store_key)
        if cached:
            try:
                credential_id = base64url_to_bytes(cached)
            except ValueError as exc:
                raise CredentialCreationError(
                    "Stored passkey credential id is corrupted",
                    details={"store_key": self.store_key},
                ) from exc
            logger.debug(
                "Using cached passkey credential",
                extra={"event": "passkey.credential_cached", "credential_id_len": len(credential_id)},
            )
            return credential_id

        logger.info("No cached credential, creating passkey", extra={"event": "passkey.create_start"})
        options = PasskeyCreationOptions(
            challenge=random_bytes(CHALLENGE_BYTES),
            rp=self.rp,
            user=PasskeyUser(
                id=secrets.token_bytes(USER_HANDLE_BYTES),
                name=self.user_name,
                display_name=self.user_display_name,
            ),
            user_verification=self.user_verification,
            timeout_ms=self.timeout_ms,
        )

        try:
            credential = await self.authenticator.create(options)
        except AuthenticatorError as exc:
            if exc.name == "NotAllowedError":
                raise CredentialCreationError(
                    "Passkey operation was not allowed. User might have cancelled.",
                    details={"authenticator_error": exc.name},
                ) from exc
            raise CredentialCreationError(
                f"Passkey creation failed: {exc}",
                details={"authenticator_error": exc.name},
            ) from exc

        if credential is None or not credential.raw_id:
            raise CredentialCreationError("Passkey creation failed or rawId is missing.")

        credential_id = bytes(credential.raw_id)
        await self.store.set_item(self.store_key, bytes_to_base64url(credential_id))
        logger.info(
            "Passkey created and credential id persisted",
            extra={"event": "passkey.created", "credential_id_len": len(credential_id)},
        )
        return credential_id

    async def derive_secret(self, credential_id: bytes, salt: bytes) -> bytes:
        """
        Evaluate the PRF extension for (credential_id, salt).

        Returns:
            32-byte secret

        Raises:
            PrfDerivationError: Ceremony denied/cancelled, no PRF result, or a
                result of unexpected length.
        """
        options = PasskeyRequestOptions(
            challenge=random_bytes(CHALLENGE_BYTES),
            rp_id=self.rp.id,
            allow_credentials=[bytes(credential_id)],
            prf_salt=bytes(salt),
            user_verification=self.user_verification,
            timeout_ms=self.timeout_ms,
        )
        logger.debug(
            "Requesting PRF evaluation",
            extra={"event": "passkey.prf_start", "credential_id_len": len(credential_id), "salt_len": len(salt)},
        )

        try:
            assertion = await self.authenticator.get(options)
        except AuthenticatorError as exc:
            if exc.name == "NotAllowedError":
                raise PrfDerivationError(
                    "Passkey PRF derivation was not allowed. User might have cancelled.",
                    details={"authenticator_error": exc.name},
                ) from exc
            raise PrfDerivationError(
                f"PRF derivation failed: {exc}",
                details={"authenticator_error": exc.name},
            ) from exc

        output = parse_prf_output(assertion.get_extension_results() if assertion else None)
        if output is None:
            raise PrfDerivationError("PRF extension result not found in assertion.")
        if len(output.first) != PRF_SECRET_BYTES:
            raise PrfDerivationError(
                "PRF output has unexpected length",
                details={"length": len(output.first)},
            )

        logger.debug(
            "PRF secret derived",
            extra={"event": "passkey.prf_derived", "shape": output.shape.value},
        )
        return output.first


class MockPasskeyAuthenticator(PasskeyAuthenticator):
    """
    Mock authenticator for testing and development.

    PRF output follows the WebAuthn construction:
    HMAC-SHA256(credential_secret, SHA-256("WebAuthn PRF" || 0x00 || salt)).

    DO NOT USE IN PRODUCTION.
    """

    def __init__(self, result_shape: PrfResultShape = PrfResultShape.RESULTS):
        self.result_shape = result_shape
        self._credentials: Dict[bytes, bytes] = {}
        self._cancel_next = False
        self._prf_supported = True
        self._omit_raw_id = False
        self.create_calls = 0
        self.get_calls = 0
        self.last_creation_options: Optional[PasskeyCreationOptions] = None
        self.last_request_options: Optional[PasskeyRequestOptions] = None

    async def create(self, options: PasskeyCreationOptions) -> Optional[PasskeyCredential]:
        self.create_calls += 1
        self.last_creation_options = options
        self._raise_if_cancelled()

        raw_id = secrets.token_bytes(16)
        self._credentials[raw_id] = secrets.token_bytes(32)
        if self._omit_raw_id:
            return PasskeyCredential(raw_id=None)
        return PasskeyCredential(raw_id=raw_id, extension_results={"prf": {"enabled": self._prf_supported}})

    async def get(self, options: PasskeyRequestOptions) -> Optional[PasskeyAssertion]:
        self.get_calls += 1
        self.last_request_options = options
        self._raise_if_cancelled()

        credential_id = next((cred for cred in options.allow_credentials if cred in self._credentials), None)
        if credential_id is None:
            raise AuthenticatorError("NotAllowedError", "No matching credential on this device")

        if not self._prf_supported:
            return PasskeyAssertion(credential_id=credential_id, extension_results={})

        first = self.evaluate_prf(credential_id, options.prf_salt)
        if self.result_shape is PrfResultShape.RESULTS:
            prf: Dict[str, Any] = {"results": {"first": first}}
        else:
            prf = {"first": first}
        return PasskeyAssertion(credential_id=credential_id, extension_results={"prf": prf})

    def evaluate_prf(self, credential_id: bytes, salt: bytes) -> bytes:
        secret = self._credentials[credential_id]
        hashed_salt = hashlib.sha256(b"WebAuthn PRF\x00" + salt).digest()
        return hmac.new(secret, hashed_salt, hashlib.sha256).digest()

    def _raise_if_cancelled(self) -> None:
        if self._cancel_next:
            self._cancel_next = False
            raise AuthenticatorError("NotAllowedError", "The operation either timed out or was not allowed")

    # Mock-specific methods for testing
    def set_cancel_next(self, cancel: bool = True):
        """Make the next ceremony fail as if the user dismissed the prompt."""
        self._cancel_next = cancel

    def set_prf_supported(self, supported: bool = True):
        """Simulate an authenticator without PRF support."""
        self._prf_supported = supported

    def set_omit_raw_id(self, omit: bool = True):
        """Simulate a creation ceremony that returns no credential id."""
        self._omit_raw_id = omit

    def synced_copy(self) -> "MockPasskeyAuthenticator":
        """Another device holding the same synced passkeys."""
        other = MockPasskeyAuthenticator(result_shape=self.result_shape)
        other._credentials = dict(self._credentials)
        return other
