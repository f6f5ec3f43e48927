from __future__ import annotations

import asyncio
import json

from pydantic import ValidationError

from storefront.core.config import settings
from storefront.core.logging import get_logger
from storefront.core.storage import KeyValueStorage
from storefront.schemas.auth import Credential
from storefront.services.exceptions import CredentialStorageError

logger = get_logger("storefront.credentials")


def _decode(raw: str) -> Credential | None:
    raw = raw.strip()
    if not raw:
        return None
    if raw.startswith("{"):
        try:
            return Credential.model_validate(json.loads(raw))
        except (ValueError, ValidationError):
            return None
    # Versiones anteriores guardaban solo el token plano
    return Credential(token=raw)


class CredentialStore:
    """Owns the bearer credential: in-memory cache in front of persistent storage.

    Reads fail open (an unreadable credential behaves as absent, so the app
    falls back to the guest identity). Writes and removals fail loudly, since a
    lost ``clear`` would leave a stale credential behind.
    """

    def __init__(self, storage: KeyValueStorage, key: str | None = None) -> None:
        self._storage = storage
        self._key = key or settings.CREDENTIAL_STORAGE_KEY
        self._cached: Credential | None = None
        self._lock = asyncio.Lock()

    async def get(self) -> Credential | None:
        if self._cached is not None:
            return self._cached
        async with self._lock:
            # A set() may have completed while we waited for the lock
            if self._cached is not None:
                return self._cached
            try:
                raw = await self._storage.get(self._key)
            except Exception as exc:
                logger.warning(
                    "Credential read failed, continuing unauthenticated",
                    extra={"error": str(exc)},
                )
                return None
            if raw is None:
                return None
            credential = _decode(raw)
            if credential is None:
                logger.warning("Stored credential could not be decoded, ignoring it")
                return None
            self._cached = credential
            return credential

    async def set(self, credential: Credential) -> None:
        async with self._lock:
            try:
                await self._storage.set(self._key, credential.model_dump_json())
            except Exception as exc:
                raise CredentialStorageError(f"Could not persist credential: {exc}") from exc
            self._cached = credential

    async def clear(self) -> None:
        async with self._lock:
            self._cached = None
            try:
                await self._storage.remove(self._key)
            except Exception as exc:
                raise CredentialStorageError(f"Could not remove credential: {exc}") from exc
