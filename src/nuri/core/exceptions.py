"""
Wallet-specific exception hierarchy for Nuri.

Every pipeline operation (export, recovery, send) surfaces exactly one of these
typed errors to its caller. None of them are fatal to the process: each one is a
per-operation failure the user may retry.
"""

from __future__ import annotations
from typing import Optional, Any, Dict


class WalletError(Exception):
    """Base exception for all wallet errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error (never secrets)
        recoverable: Whether the user can retry the operation
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


class ConfigurationError(WalletError):
    """Raised when required configuration is missing or invalid."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        kwargs.setdefault("recoverable", False)
        super().__init__(message, **kwargs)


class WalletUnavailableError(WalletError):
    """Raised when no authenticated user or embedded wallet is available."""
    pass


# ==================== Passkey Errors ====================


class PasskeyError(WalletError):
    """Raised when a platform passkey ceremony fails."""
    pass


class CredentialCreationError(PasskeyError):
    """Raised when the credential-creation ceremony is cancelled, denied, or returns no id."""
    pass


class PrfDerivationError(PasskeyError):
    """Raised when the PRF extension result is absent or the assertion is denied."""
    pass


# ==================== Payload / Decryption Errors ====================


class InvalidPayloadError(WalletError):
    """Raised when an export payload is not valid JSON or misses a field."""
    pass


class DecryptionError(WalletError):
    """Raised when AES-GCM authentication fails.

    Causes: wrong derived secret, wrong credential, or a tampered payload.
    """
    pass


class UnsealError(DecryptionError):
    """Raised when the inner sealed blob does not yield a valid private key."""
    pass


class KeyMismatchError(WalletError):
    """Raised when the recovered key does not belong to the active wallet."""
    pass


# ==================== Provider Errors ====================


class NetworkError(WalletError):
    """Raised when an identity-provider or chain-API request fails."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.status = status
        if status is not None:
            self.details.setdefault("status", status)


class AccessTokenError(NetworkError):
    """Raised when the identity provider hands out no (or an expired) access token."""
    pass


class BroadcastError(NetworkError):
    """Raised when the broadcast endpoint rejects a transaction.

    ``message`` carries the provider's error text verbatim.
    """
    pass


class MalformedProviderResponseError(WalletError):
    """Raised when a provider response is missing required fields."""
    pass


# ==================== Transaction Errors ====================


class TransactionError(WalletError):
    """Raised when an outbound Bitcoin payment cannot be built."""
    pass


class InsufficientFundsError(TransactionError):
    """Raised when available UTXOs cannot cover amount plus fee."""

    def __init__(
        self,
        message: str,
        available: Optional[int] = None,
        required: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.available = available
        self.required = required


class DustLimitError(TransactionError):
    """Raised when the send amount is below the relay dust threshold."""
    pass


class InvalidAddressError(TransactionError):
    """Raised when a recipient address is not a recognised Bitcoin address."""
    pass


class TransactionStateError(TransactionError):
    """Raised when a send attempt is driven out of order."""
    pass
