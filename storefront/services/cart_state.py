from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Awaitable, Callable

from storefront.core.logging import get_logger
from storefront.domain.enums import CartPhase, ErrorKind, IdentityKind
from storefront.domain.identity import GuestIdentity, Identity, IdentityResolver, UserIdentity, same_principal
from storefront.schemas.cart import CartItem, CartSnapshot
from storefront.schemas.results import OperationResult, failed, succeeded
from storefront.services.cart_gateway import CartGateway
from storefront.services.exceptions import AuthenticationRejectedError, StorageError, TransportError

logger = get_logger("storefront.cart_state")

SESSION_EXPIRED_MESSAGE = "Your session has expired. Please sign in again."


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CartState:
    """UI-facing projection of the last known-good server cart."""

    phase: CartPhase = CartPhase.idle
    snapshot: CartSnapshot = field(default_factory=CartSnapshot.empty)
    error: str | None = None
    identity_kind: IdentityKind | None = None
    last_updated: datetime | None = None

    @property
    def items(self) -> list[CartItem]:
        return list(self.snapshot.items)

    @property
    def item_count(self) -> int:
        return self.snapshot.totals.item_count

    @property
    def subtotal(self) -> Decimal:
        return self.snapshot.totals.subtotal

    @property
    def is_loading(self) -> bool:
        return self.phase is CartPhase.loading


Listener = Callable[[CartState], None]
AuthRejectedHandler = Callable[[], Awaitable[None]]
GatewayCall = Callable[[Identity], Awaitable[OperationResult]]


class CartStateMachine:
    """Holds the cart state and serializes every intent against the gateway.

    Rules enforced here:

    * one intent at a time: later intents wait on ``_intents`` and are never
      dispatched concurrently;
    * every successful mutation is followed by a reconciling ``read()`` and
      only that read replaces the state;
    * each request is tagged with the identity epoch it was issued under, and a
      result that lands after an identity change is dropped;
    * failures keep the previous snapshot and only attach an error message;
      a mutation whose reconciling read fails returns that failure.
    """

    def __init__(
        self,
        gateway: CartGateway,
        identities: IdentityResolver,
        *,
        on_auth_rejected: AuthRejectedHandler | None = None,
    ) -> None:
        self._gateway = gateway
        self._identities = identities
        self._on_auth_rejected = on_auth_rejected
        self._state = CartState()
        self._identity: Identity | None = None
        self._epoch = 0
        self._needs_load = True
        self._intents = asyncio.Lock()
        self._listeners: list[Listener] = []

    # --- observation ---

    def current_state(self) -> CartState:
        return self._state

    @property
    def identity(self) -> Identity | None:
        return self._identity

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_auth_rejected_handler(self, handler: AuthRejectedHandler | None) -> None:
        self._on_auth_rejected = handler

    def _publish(self, state: CartState) -> None:
        self._state = state
        for listener in list(self._listeners):
            listener(state)

    # --- identity ---

    def on_identity_change(self, identity: Identity) -> None:
        """Switch the identity the cart is addressed under.

        Synchronous on purpose: the reset is visible before any network call
        completes. A refreshed token for the same principal keeps the cart.
        """
        previous = self._identity
        if same_principal(previous, identity):
            self._identity = identity
            return

        self._identity = identity
        self._epoch += 1
        self._needs_load = True
        # Guest -> user stays in loading until the merged cart is adopted
        phase = (
            CartPhase.loading
            if isinstance(previous, GuestIdentity) and isinstance(identity, UserIdentity)
            else CartPhase.idle
        )
        logger.info(
            "Cart identity changed",
            extra={"identity": identity.kind.value, "epoch": self._epoch},
        )
        self._publish(CartState(phase=phase, identity_kind=identity.kind, last_updated=_now()))

    def reset(self) -> None:
        """Forget identity and cart at once; the next intent resolves identity again."""
        self._identity = None
        self._epoch += 1
        self._needs_load = True
        self._publish(CartState(last_updated=_now()))

    async def _active_identity(self) -> Identity:
        if self._identity is None:
            epoch = self._epoch
            identity = await self._identities.current()
            if self._identity is None and epoch == self._epoch:
                self._identity = identity
                self._publish(replace(self._state, identity_kind=identity.kind))
        return self._identity

    def _is_current(self, epoch: int) -> bool:
        return epoch == self._epoch

    # --- transitions ---

    def _apply(self, epoch: int, snapshot: CartSnapshot) -> None:
        if not self._is_current(epoch):
            logger.info("Discarding cart response issued under a previous identity")
            return
        self._needs_load = False
        self._publish(
            CartState(
                phase=CartPhase.idle,
                snapshot=snapshot,
                error=None,
                identity_kind=self._identity.kind if self._identity else None,
                last_updated=_now(),
            )
        )

    def _fail(self, epoch: int, message: str) -> None:
        if not self._is_current(epoch):
            logger.info("Discarding cart failure issued under a previous identity")
            return
        self._publish(replace(self._state, phase=CartPhase.error, error=message))

    async def _run(self, operation: str, call: GatewayCall, *, reconcile: bool) -> OperationResult:
        submitted_epoch = self._epoch
        async with self._intents:
            if not self._is_current(submitted_epoch):
                return failed(ErrorKind.rejected, "Cart identity changed before the request was sent")
            try:
                identity = await self._active_identity()
                epoch = self._epoch
                self._publish(replace(self._state, phase=CartPhase.loading))

                result = await call(identity)
                if not result.ok:
                    self._fail(epoch, result.message)
                    return result
                if not reconcile:
                    self._apply(epoch, result.data)
                    return result
                if not self._is_current(epoch):
                    logger.info("Skipping reconciling read, identity changed", extra={"operation": operation})
                    return result

                fresh = await self._gateway.read(identity)
                if not fresh.ok:
                    # An unconfirmed mutation reports the read failure
                    self._fail(epoch, fresh.message)
                    return fresh
                self._apply(epoch, fresh.data)
                return result
            except AuthenticationRejectedError:
                return await self._handle_auth_rejected(submitted_epoch, operation)
            except (TransportError, StorageError) as exc:
                logger.warning("Cart operation failed", extra={"operation": operation, "error": exc.detail})
                self._fail(submitted_epoch, exc.detail)
                return failed(ErrorKind.transport_error, exc.detail)

    async def _handle_auth_rejected(self, epoch: int, operation: str) -> OperationResult:
        if not self._is_current(epoch):
            return failed(ErrorKind.auth_rejected, SESSION_EXPIRED_MESSAGE)
        logger.warning("Credential rejected during cart operation", extra={"operation": operation})
        self._fail(epoch, SESSION_EXPIRED_MESSAGE)
        if self._on_auth_rejected is not None:
            await self._on_auth_rejected()
            # The handler resets the cart to the guest identity; keep the reason visible
            self._publish(replace(self._state, phase=CartPhase.error, error=SESSION_EXPIRED_MESSAGE))
        return failed(ErrorKind.auth_rejected, SESSION_EXPIRED_MESSAGE)

    # --- intents ---

    async def refresh(self) -> OperationResult:
        return await self._run("read", self._gateway.read, reconcile=False)

    async def ensure_loaded(self) -> OperationResult:
        """Read the cart if nothing has been loaded for the current identity yet."""
        if self._needs_load:
            return await self.refresh()
        return succeeded(self._state.snapshot)

    async def add_item(self, variant_id: str, quantity: int = 1) -> OperationResult:
        async def call(identity: Identity) -> OperationResult:
            return await self._gateway.add_item(variant_id, quantity, identity)

        return await self._run("add_item", call, reconcile=True)

    async def update_quantity(self, item_id: str, quantity: int) -> OperationResult:
        if quantity <= 0:
            # Decrementar a cero es una baja explícita
            return await self.remove_item(item_id)

        async def call(identity: Identity) -> OperationResult:
            return await self._gateway.update_item_quantity(item_id, quantity, identity)

        return await self._run("update_quantity", call, reconcile=True)

    async def remove_item(self, item_id: str) -> OperationResult:
        async def call(identity: Identity) -> OperationResult:
            return await self._gateway.remove_item(item_id, identity)

        return await self._run("remove_item", call, reconcile=True)

    async def clear(self) -> OperationResult:
        return await self._run("clear", self._gateway.clear, reconcile=True)

    async def adopt(self, loader: GatewayCall) -> OperationResult:
        """Replace state with the snapshot ``loader`` returns, serialized like any intent.

        Used for guest-to-user conversion, whose response is already a full
        canonical snapshot.
        """
        return await self._run("adopt", loader, reconcile=False)

    def clear_error(self) -> None:
        if self._state.phase is CartPhase.error:
            self._publish(replace(self._state, phase=CartPhase.idle, error=None))

    # --- helpers ---

    def get_item(self, item_id: str) -> CartItem | None:
        return self._state.snapshot.item(item_id)

    def get_item_by_variant(self, variant_id: str) -> CartItem | None:
        return self._state.snapshot.item_for_variant(variant_id)

    def is_variant_in_cart(self, variant_id: str) -> bool:
        return self.get_item_by_variant(variant_id) is not None

    def variant_quantity(self, variant_id: str) -> int:
        item = self.get_item_by_variant(variant_id)
        return item.quantity if item else 0
