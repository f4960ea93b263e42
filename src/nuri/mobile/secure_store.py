"""
Secure credential store interface.

Platform integration:
- iOS: Keychain (kSecClassGenericPassword)
- Android: EncryptedSharedPreferences backed by the Keystore
- React Native / Expo: expo-secure-store

Only one slot is used by this package: the passkey credential id.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class SecureStore(ABC):
    """Durable key-value storage for small strings."""

    @abstractmethod
    async def get_item(self, key: str) -> Optional[str]:
        """Return the stored value or None when the key is absent."""
        pass

    @abstractmethod
    async def set_item(self, key: str, value: str) -> None:
        """Persist ``value`` under ``key``, replacing any previous value."""
        pass


class InMemorySecureStore(SecureStore):
    """
    Dictionary-backed store for testing and development.

    DO NOT USE IN PRODUCTION.
    """

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._items: Dict[str, str] = dict(initial or {})
        self.reads = 0
        self.writes = 0

    async def get_item(self, key: str) -> Optional[str]:
        self.reads += 1
        return self._items.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self.writes += 1
        self._items[key] = value
        logger.debug("Secure store item written", extra={"event": "secure_store.set", "key": key})

    def snapshot(self) -> Dict[str, str]:
        return dict(self._items)
