"""API credential providers.

Credentials come from an ordered list of providers; the first one that
yields a non-empty value wins. The static config value outranks the key a
user saved at runtime, matching how the extension's bundled config file
overrides the popup field.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import aiosqlite
import structlog

from brevity.config import API_KEY_PLACEHOLDER

if TYPE_CHECKING:
    from collections.abc import Sequence

    from brevity.protocols import CredentialProvider

log = structlog.get_logger()

# Outside the cache namespace: sweep and clear never match it.
STORED_API_KEY = "api_key"


class ConfigCredentialProvider:
    """Static credential from settings. Empty and placeholder values count as absent."""

    source = "config"

    def __init__(self, api_key: str) -> None:
        self._api_key = api_key.strip()

    async def get_credential(self) -> str | None:
        if not self._api_key or self._api_key == API_KEY_PLACEHOLDER:
            return None
        return self._api_key


class StoredCredentialProvider:
    """User-supplied credential persisted in the ``kv_store`` table."""

    source = "storage"

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def get_credential(self) -> str | None:
        try:
            cursor = await self._db.execute(
                "SELECT value FROM kv_store WHERE key = ?", (STORED_API_KEY,)
            )
            row = await cursor.fetchone()
        except aiosqlite.Error:
            log.warning("credential_read_error", exc_info=True)
            return None
        if row is None or not row[0].strip():
            return None
        return row[0].strip()

    async def save(self, api_key: str) -> None:
        """Persist a new key. Raises ``aiosqlite.Error`` on failure."""
        await self._db.execute(
            "INSERT OR REPLACE INTO kv_store (key, value) VALUES (?, ?)",
            (STORED_API_KEY, api_key.strip()),
        )
        await self._db.commit()
        log.info("credential_saved", source=self.source)


class CredentialChain:
    """Queries providers in priority order and memoizes the first hit."""

    def __init__(self, providers: Sequence[CredentialProvider]) -> None:
        self._providers = list(providers)
        self._resolved: str | None = None

    async def resolve(self) -> str | None:
        """Return the active credential, or ``None`` when no provider has one."""
        if self._resolved is not None:
            return self._resolved
        for provider in self._providers:
            credential = await provider.get_credential()
            if credential:
                log.debug("credential_resolved", source=provider.source)
                self._resolved = credential
                return credential
        return None

    def invalidate(self) -> None:
        """Forget the memoized credential so the next call re-queries providers."""
        self._resolved = None

    async def active_source(self) -> str:
        """Name of the tier that supplies the credential.

        Reports ``"config"`` only when the static tier holds a usable value,
        otherwise ``"storage"`` (even when storage is empty too), so the UI
        knows where a user-entered key would go.
        """
        for provider in self._providers:
            if provider.source == "config" and await provider.get_credential():
                return "config"
        return "storage"
