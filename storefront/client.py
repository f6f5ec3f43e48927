from __future__ import annotations

import httpx

from storefront.core.config import Settings, settings as default_settings
from storefront.core.credentials import CredentialStore
from storefront.core.guest_session import GuestIdentityProvider
from storefront.core.storage import KeyValueStorage, build_storage
from storefront.domain.identity import Identity, IdentityResolver
from storefront.schemas.results import OperationResult
from storefront.services.api_client import ApiClient
from storefront.services.auth_service import AuthService
from storefront.services.cart_gateway import CartGateway
from storefront.services.cart_state import CartState, CartStateMachine
from storefront.services.identity import IdentityTransitionCoordinator


class StorefrontClient:
    """Wires the identity and cart engine together; one instance per process.

    ``http_client`` and ``storage`` are injectable so the same wiring runs
    against the sandbox backend in tests.
    """

    def __init__(
        self,
        *,
        config: Settings | None = None,
        storage: KeyValueStorage | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        config = config or default_settings
        self.storage = storage or build_storage(config)
        self.credentials = CredentialStore(self.storage, config.CREDENTIAL_STORAGE_KEY)
        self.guest_sessions = GuestIdentityProvider(
            self.storage, config.GUEST_SESSION_STORAGE_KEY, config.GUEST_SESSION_PREFIX
        )
        self.identities = IdentityResolver(self.credentials, self.guest_sessions)
        self.api = ApiClient(config.API_BASE_URL, timeout=config.REQUEST_TIMEOUT_SECONDS, client=http_client)
        self.gateway = CartGateway(self.api, self.identities)
        self.cart = CartStateMachine(self.gateway, self.identities)
        self.coordinator = IdentityTransitionCoordinator(
            self.credentials, self.guest_sessions, self.gateway, self.cart, self.identities
        )
        self.auth = AuthService(self.api, self.credentials, self.coordinator)

    async def __aenter__(self) -> "StorefrontClient":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def start(self) -> Identity:
        return await self.coordinator.start()

    async def aclose(self) -> None:
        await self.api.aclose()

    # --- UI-facing API ---

    def current_state(self) -> CartState:
        return self.cart.current_state()

    async def add_item(self, variant_id: str, quantity: int = 1) -> OperationResult:
        return await self.cart.add_item(variant_id, quantity)

    async def update_quantity(self, item_id: str, quantity: int) -> OperationResult:
        return await self.cart.update_quantity(item_id, quantity)

    async def remove_item(self, item_id: str) -> OperationResult:
        return await self.cart.remove_item(item_id)

    async def clear(self) -> OperationResult:
        return await self.cart.clear()

    def on_identity_change(self, identity: Identity) -> None:
        self.coordinator.on_identity_change(identity)
