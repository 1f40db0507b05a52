"""Credential store collaborator used by plugins that need an API token."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, Optional

from pydantic import SecretStr

from .config import Settings


class CredentialStore(ABC):
    """Get/set secret tokens by key.

    The storage mechanics (keychain, preferences file, ...) belong to the
    application; plugins only see this interface.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[SecretStr]:
        ...

    @abstractmethod
    def set(self, key: str, value: Optional[str]) -> None:
        ...


class MemoryCredentialStore(CredentialStore):
    """Process-local store, seeded from settings when given."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._tokens: Dict[str, SecretStr] = {
            key: SecretStr(value) for key, value in (initial or {}).items() if value
        }

    @classmethod
    def from_settings(cls, settings: Settings) -> "MemoryCredentialStore":
        store = cls()
        if settings.ads_api_token is not None:
            store.set("ads_api_token", settings.ads_api_token.get_secret_value())
        return store

    def get(self, key: str) -> Optional[SecretStr]:
        return self._tokens.get(key)

    def set(self, key: str, value: Optional[str]) -> None:
        if value:
            self._tokens[key] = SecretStr(value)
        else:
            self._tokens.pop(key, None)


__all__ = ["CredentialStore", "MemoryCredentialStore"]
