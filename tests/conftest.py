# tests/conftest.py
import sys
from pathlib import Path

# --- Configuración del Path ---
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from typing import Callable

import httpx
import pytest
import pytest_asyncio

from storefront.client import StorefrontClient
from storefront.core.storage import MemoryStorage
from storefront.sandbox import SandboxStore, create_app
from storefront.sandbox.store import SandboxUser

SHOPPER_EMAIL = "shopper@example.com"
SHOPPER_PASSWORD = "Shopper1234"


# ---------- Fixtures ----------

@pytest.fixture
def sandbox_store() -> SandboxStore:
    """Catálogo mínimo del backend sandbox."""
    store = SandboxStore()
    store.add_variant("var-a", "10.00", stock=10)
    store.add_variant("var-b", "25.50", stock=5)
    store.add_variant("var-c", "3.00", stock=100)
    store.add_variant("var-off", "7.00", stock=10, active=False)
    return store


@pytest.fixture
def shopper(sandbox_store: SandboxStore) -> SandboxUser:
    """Usuario registrado directamente en el sandbox."""
    user, _ = sandbox_store.register(SHOPPER_EMAIL, SHOPPER_PASSWORD, "Test Shopper")
    return user


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def request_log() -> list:
    """Cada request que sale hacia el sandbox, en orden."""
    return []


@pytest_asyncio.fixture
async def http_client(sandbox_store: SandboxStore, request_log: list):
    """AsyncClient enlazado al sandbox vía ASGITransport."""

    async def record(request: httpx.Request) -> None:
        request_log.append(request)

    app = create_app(sandbox_store)
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test/api",
        event_hooks={"request": [record]},
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def engine(http_client: httpx.AsyncClient, storage: MemoryStorage):
    """Motor completo arrancado como invitado."""
    client = StorefrontClient(storage=storage, http_client=http_client)
    await client.start()
    yield client
    await client.aclose()


@pytest.fixture
def mock_http() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """Construye un AsyncClient sobre httpx.MockTransport con el handler dado."""

    def build(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test/api")

    return build
