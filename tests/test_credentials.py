import asyncio
import json

import pytest

from storefront.core.credentials import CredentialStore
from storefront.core.guest_session import GuestIdentityProvider, generate_session_id
from storefront.core.storage import JsonFileStorage, MemoryStorage
from storefront.schemas.auth import Credential
from storefront.services.exceptions import CredentialStorageError, StorageError


class FailingStorage(MemoryStorage):
    """Storage que falla en las operaciones indicadas."""

    def __init__(self, *, fail_get=False, fail_set=False, fail_remove=False, initial=None):
        super().__init__(initial)
        self.fail_get = fail_get
        self.fail_set = fail_set
        self.fail_remove = fail_remove

    async def get(self, key):
        if self.fail_get:
            raise OSError("disk unavailable")
        return await super().get(key)

    async def set(self, key, value):
        if self.fail_set:
            raise OSError("disk full")
        await super().set(key, value)

    async def remove(self, key):
        if self.fail_remove:
            raise OSError("read-only filesystem")
        await super().remove(key)


class SlowReadStorage(MemoryStorage):
    def __init__(self, initial=None):
        super().__init__(initial)
        self.release = asyncio.Event()

    async def get(self, key):
        value = await super().get(key)
        await self.release.wait()
        return value


# ---------- CredentialStore ----------

@pytest.mark.asyncio
async def test_credential_roundtrip_survives_restart():
    storage = MemoryStorage()
    store = CredentialStore(storage, "auth_token")
    assert await store.get() is None

    await store.set(Credential(token="tok-1", user_id="u-1"))
    assert await store.get() == Credential(token="tok-1", user_id="u-1")

    # Una instancia nueva sobre el mismo storage simula un reinicio del proceso
    restarted = CredentialStore(storage, "auth_token")
    assert await restarted.get() == Credential(token="tok-1", user_id="u-1")

    await restarted.clear()
    assert await restarted.get() is None
    assert await storage.get("auth_token") is None


@pytest.mark.asyncio
async def test_legacy_plain_token_is_accepted():
    store = CredentialStore(MemoryStorage({"auth_token": "legacy-token"}), "auth_token")
    credential = await store.get()
    assert credential.token == "legacy-token"
    assert credential.user_id is None


@pytest.mark.asyncio
async def test_undecodable_credential_is_absent():
    store = CredentialStore(MemoryStorage({"auth_token": '{"user_id": "u-1"}'}), "auth_token")
    assert await store.get() is None


@pytest.mark.asyncio
async def test_read_failure_fails_open():
    store = CredentialStore(FailingStorage(fail_get=True, initial={"auth_token": "tok"}), "auth_token")
    assert await store.get() is None


@pytest.mark.asyncio
async def test_write_failure_is_surfaced_and_cache_untouched():
    storage = FailingStorage(fail_set=True)
    store = CredentialStore(storage, "auth_token")
    with pytest.raises(CredentialStorageError):
        await store.set(Credential(token="tok", user_id="u"))
    assert await store.get() is None


@pytest.mark.asyncio
async def test_clear_failure_is_surfaced():
    storage = FailingStorage(fail_remove=True)
    store = CredentialStore(storage, "auth_token")
    await store.set(Credential(token="tok", user_id="u"))
    with pytest.raises(CredentialStorageError):
        await store.clear()


@pytest.mark.asyncio
async def test_get_never_returns_stale_value_after_set():
    storage = SlowReadStorage({"auth_token": json.dumps({"token": "old", "user_id": "u"})})
    store = CredentialStore(storage, "auth_token")

    pending_get = asyncio.create_task(store.get())
    await asyncio.sleep(0)
    pending_set = asyncio.create_task(store.set(Credential(token="new", user_id="u")))
    await asyncio.sleep(0)
    storage.release.set()
    await asyncio.gather(pending_get, pending_set)

    # El get arrancó antes del set; cualquier get posterior ve el valor nuevo
    assert (await store.get()).token == "new"


def test_credential_repr_hides_token():
    assert "secret-token" not in repr(Credential(token="secret-token", user_id="u"))


# ---------- GuestIdentityProvider ----------

@pytest.mark.asyncio
async def test_guest_session_created_once_and_persisted():
    storage = MemoryStorage()
    provider = GuestIdentityProvider(storage, "guest_session_id", "guest")
    assert await provider.peek_session_id() is None

    first = await provider.get_or_create_session_id()
    second = await provider.get_or_create_session_id()
    assert first == second
    assert first.startswith("guest-")
    assert await storage.get("guest_session_id") == first

    restarted = GuestIdentityProvider(storage, "guest_session_id", "guest")
    assert await restarted.get_or_create_session_id() == first
    assert await restarted.peek_session_id() == first


@pytest.mark.asyncio
async def test_concurrent_first_calls_share_one_session():
    provider = GuestIdentityProvider(MemoryStorage(), "guest_session_id")
    ids = await asyncio.gather(*(provider.get_or_create_session_id() for _ in range(5)))
    assert len(set(ids)) == 1


@pytest.mark.asyncio
async def test_guest_session_read_failure_does_not_regenerate():
    provider = GuestIdentityProvider(FailingStorage(fail_get=True), "guest_session_id")
    with pytest.raises(StorageError):
        await provider.get_or_create_session_id()


@pytest.mark.asyncio
async def test_guest_session_persist_failure_is_raised():
    provider = GuestIdentityProvider(FailingStorage(fail_set=True), "guest_session_id")
    with pytest.raises(StorageError):
        await provider.get_or_create_session_id()
    assert await provider.peek_session_id() is None


def test_generated_session_ids_are_unique():
    ids = {generate_session_id("guest") for _ in range(200)}
    assert len(ids) == 200


# ---------- JsonFileStorage ----------

@pytest.mark.asyncio
async def test_file_storage_persists_between_instances(tmp_path):
    path = tmp_path / "state" / "storage.json"
    storage = JsonFileStorage(path)
    assert await storage.get("auth_token") is None

    await storage.set("auth_token", "tok")
    await storage.set("guest_session_id", "guest-1")
    reopened = JsonFileStorage(path)
    assert await reopened.get("auth_token") == "tok"

    await reopened.remove("auth_token")
    assert await JsonFileStorage(path).get("auth_token") is None
    assert await JsonFileStorage(path).get("guest_session_id") == "guest-1"
