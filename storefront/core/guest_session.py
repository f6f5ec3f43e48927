from __future__ import annotations

import asyncio
import time
import uuid

from storefront.core.config import settings
from storefront.core.logging import get_logger
from storefront.core.storage import KeyValueStorage
from storefront.services.exceptions import StorageError

logger = get_logger("storefront.guest_session")


def generate_session_id(prefix: str | None = None) -> str:
    """Timestamp plus random component; unique across installs in practice."""
    prefix = settings.GUEST_SESSION_PREFIX if prefix is None else prefix
    return f"{prefix}-{int(time.time() * 1000)}-{uuid.uuid4().hex}"


class GuestIdentityProvider:
    """Lazily creates and persists the anonymous cart addressing key.

    The id is not a secret and never goes through the credential store. Once
    persisted it is reused forever, including after logout: a new id would
    orphan whatever the guest cart still holds.
    """

    def __init__(self, storage: KeyValueStorage, key: str | None = None, prefix: str | None = None) -> None:
        self._storage = storage
        self._key = key or settings.GUEST_SESSION_STORAGE_KEY
        self._prefix = prefix
        self._session_id: str | None = None
        self._lock = asyncio.Lock()

    async def _load(self) -> str | None:
        try:
            stored = await self._storage.get(self._key)
        except Exception as exc:
            raise StorageError(f"Could not read guest session id: {exc}") from exc
        if stored and stored.strip():
            return stored.strip()
        return None

    async def peek_session_id(self) -> str | None:
        if self._session_id:
            return self._session_id
        async with self._lock:
            if not self._session_id:
                self._session_id = await self._load()
            return self._session_id

    async def get_or_create_session_id(self) -> str:
        if self._session_id:
            return self._session_id
        async with self._lock:
            if self._session_id:
                return self._session_id
            session_id = await self._load()
            if session_id is None:
                session_id = generate_session_id(self._prefix)
                try:
                    await self._storage.set(self._key, session_id)
                except Exception as exc:
                    raise StorageError(f"Could not persist guest session id: {exc}") from exc
                logger.info("Created guest session", extra={"guest_session_id": session_id})
            self._session_id = session_id
            return session_id
