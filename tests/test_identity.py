import httpx
import pytest

from storefront.client import StorefrontClient
from storefront.core.storage import MemoryStorage
from storefront.domain.enums import AuthPhase, CartPhase, ErrorKind, IdentityKind
from storefront.domain.identity import GuestIdentity
from storefront.sandbox.store import SandboxError, UserOwner
from storefront.schemas.auth import Credential
from storefront.services.cart_state import SESSION_EXPIRED_MESSAGE


def _quantities(engine: StorefrontClient) -> dict:
    return {item.variant_id: item.quantity for item in engine.current_state().items}


async def _login(engine: StorefrontClient, shopper):
    result = await engine.auth.login(shopper.email, shopper.password)
    assert result.ok, result
    return result.data


@pytest.mark.asyncio
async def test_starts_as_guest(engine):
    assert engine.coordinator.phase is AuthPhase.anonymous
    assert isinstance(engine.coordinator.identity, GuestIdentity)
    state = engine.current_state()
    assert state.phase is CartPhase.idle
    assert state.identity_kind is IdentityKind.guest
    assert state.snapshot.is_empty


@pytest.mark.asyncio
async def test_login_merges_guest_cart(engine, sandbox_store, shopper):
    # Carrito previo del usuario: {var-a: 1, var-b: 3}
    sandbox_store.add_item(UserOwner(shopper.id), "var-a", 1)
    sandbox_store.add_item(UserOwner(shopper.id), "var-b", 3)

    await engine.add_item("var-a", 2)
    assert _quantities(engine) == {"var-a": 2}

    outcome = await _login(engine, shopper)

    assert outcome.merged is True
    assert outcome.warning is None
    assert engine.coordinator.phase is AuthPhase.authenticated
    assert _quantities(engine) == {"var-a": 3, "var-b": 3}
    assert engine.current_state().identity_kind is IdentityKind.user
    assert engine.current_state().phase is CartPhase.idle


@pytest.mark.asyncio
async def test_merge_respects_stock_ceiling(engine, sandbox_store, shopper):
    sandbox_store.variants["var-a"].stock = 2
    sandbox_store.add_item(UserOwner(shopper.id), "var-a", 1)
    sandbox_store.add_item(UserOwner(shopper.id), "var-b", 3)
    await engine.add_item("var-a", 2)

    await _login(engine, shopper)
    assert _quantities(engine) == {"var-a": 2, "var-b": 3}


@pytest.mark.asyncio
async def test_guest_cart_cannot_be_merged_twice(engine, sandbox_store, shopper):
    await engine.add_item("var-c", 4)
    guest_session_id = await engine.guest_sessions.peek_session_id()
    await _login(engine, shopper)
    assert _quantities(engine) == {"var-c": 4}

    again = await engine.gateway.convert_guest_to_user(guest_session_id)
    assert again.ok
    assert {i.variant_id: i.quantity for i in again.data.items} == {"var-c": 4}


@pytest.mark.asyncio
async def test_login_without_guest_session_skips_conversion(http_client, sandbox_store, shopper, request_log):
    engine = StorefrontClient(storage=MemoryStorage(), http_client=http_client)
    await _login(engine, shopper)

    assert not any(req.url.path == "/api/cart/convert" for req in request_log)
    assert engine.current_state().identity_kind is IdentityKind.user
    assert engine.current_state().phase is CartPhase.idle


@pytest.mark.asyncio
async def test_merge_failure_does_not_block_login(engine, sandbox_store, shopper, monkeypatch):
    sandbox_store.add_item(UserOwner(shopper.id), "var-b", 1)
    await engine.add_item("var-a", 2)

    def broken_convert(user_id, session_id):
        raise SandboxError(409, ErrorKind.conflict, "Merge temporarily unavailable")

    monkeypatch.setattr(sandbox_store, "convert", broken_convert)
    outcome = await _login(engine, shopper)

    assert outcome.merged is False
    assert "Merge temporarily unavailable" in outcome.warning
    assert engine.coordinator.phase is AuthPhase.authenticated
    state = engine.current_state()
    assert state.phase is CartPhase.idle
    assert _quantities(engine) == {"var-b": 1}


@pytest.mark.asyncio
async def test_logout_resets_cart_before_network(engine, http_client, shopper):
    await _login(engine, shopper)
    await engine.add_item("var-b", 2)
    assert _quantities(engine) == {"var-b": 2}

    seen = []

    async def capture(request):
        seen.append((request.url.path, engine.current_state()))

    http_client.event_hooks["request"].append(capture)
    result = await engine.auth.logout()
    assert result.ok

    path, state_at_request = seen[0]
    assert path == "/api/auth/logout"
    assert state_at_request.snapshot.is_empty
    assert state_at_request.identity_kind is IdentityKind.guest
    assert engine.coordinator.phase is AuthPhase.anonymous
    assert await engine.credentials.get() is None


@pytest.mark.asyncio
async def test_logout_reuses_guest_session(engine, shopper):
    await engine.add_item("var-a", 1)
    guest_before = engine.coordinator.identity.session_id

    await _login(engine, shopper)
    await engine.auth.logout()

    assert engine.coordinator.identity.session_id == guest_before
    # El carrito invitado ya fue convertido, así que la próxima lectura viene vacía
    result = await engine.cart.ensure_loaded()
    assert result.ok
    assert engine.current_state().snapshot.is_empty


@pytest.mark.asyncio
async def test_rejected_credential_drops_to_guest(engine, sandbox_store, shopper):
    await _login(engine, shopper)
    await engine.add_item("var-a", 1)
    credential = await engine.credentials.get()
    sandbox_store.revoke(credential.token)

    result = await engine.add_item("var-b", 1)

    assert result.error_kind is ErrorKind.auth_rejected
    assert engine.coordinator.phase is AuthPhase.anonymous
    assert await engine.credentials.get() is None
    state = engine.current_state()
    assert state.snapshot.is_empty
    assert state.identity_kind is IdentityKind.guest
    assert state.error == SESSION_EXPIRED_MESSAGE


@pytest.mark.asyncio
async def test_persisted_credential_restores_user(http_client, sandbox_store, shopper):
    _, token = sandbox_store.login(shopper.email, shopper.password)
    sandbox_store.add_item(UserOwner(shopper.id), "var-c", 5)
    storage = MemoryStorage(
        {"auth_token": Credential(token=token, user_id=shopper.id).model_dump_json()}
    )

    async with StorefrontClient(storage=storage, http_client=http_client) as engine:
        assert engine.coordinator.phase is AuthPhase.authenticated
        assert _quantities(engine) == {"var-c": 5}


@pytest.mark.asyncio
async def test_every_request_uses_exactly_one_identity(engine, shopper, request_log):
    await engine.add_item("var-a", 1)
    await _login(engine, shopper)
    await engine.add_item("var-c", 2)
    await engine.auth.logout()
    await engine.add_item("var-b", 1)

    cart_requests = [r for r in request_log if not r.url.path.startswith("/api/auth")]
    assert cart_requests
    for request in cart_requests:
        is_guest_path = request.url.path.startswith("/api/guest-cart/")
        has_bearer = "authorization" in request.headers
        assert is_guest_path != has_bearer, request.url.path


@pytest.mark.asyncio
async def test_login_keeps_user_lines_without_stock(engine, sandbox_store, shopper):
    # La línea propia del usuario no se toca aunque la variante se quedó sin stock
    sandbox_store.add_item(UserOwner(shopper.id), "var-b", 2)
    sandbox_store.variants["var-b"].stock = 0
    await engine.add_item("var-c", 1)

    await _login(engine, shopper)

    assert _quantities(engine) == {"var-b": 2, "var-c": 1}


@pytest.mark.asyncio
async def test_login_rejected_during_merge_is_not_reported_as_success(mock_http):
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/api/auth/login":
            return httpx.Response(200, json={"success": True, "data": {"token": "tok-1", "user": {"id": "u1"}}})
        if path == "/api/cart/convert":
            return httpx.Response(401, json={"success": False, "message": "Token revoked"})
        return httpx.Response(404, json={"success": False, "code": "not_found", "message": "Cart not found"})

    async with StorefrontClient(storage=MemoryStorage(), http_client=mock_http(handler)) as engine:
        result = await engine.auth.login("shopper@example.com", "Shopper1234")

        assert not result.ok
        assert result.error_kind is ErrorKind.auth_rejected
        assert engine.coordinator.phase is AuthPhase.anonymous
        assert await engine.credentials.get() is None
        state = engine.current_state()
        assert state.identity_kind is IdentityKind.guest
        assert state.snapshot.is_empty
