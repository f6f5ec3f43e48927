from __future__ import annotations

from urllib.parse import quote

from storefront.core.logging import get_logger
from storefront.domain.enums import ErrorKind
from storefront.domain.identity import GuestIdentity, Identity, IdentityResolver, UserIdentity
from storefront.schemas.cart import CartSnapshot
from storefront.schemas.results import OperationResult, failed, succeeded
from storefront.services.api_client import ApiClient, ApiEnvelope

logger = get_logger("storefront.cart_gateway")

_CODE_KINDS = {kind.value: kind for kind in ErrorKind}

_STATUS_KINDS = {
    400: ErrorKind.invalid_request,
    404: ErrorKind.not_found,
    409: ErrorKind.conflict,
    422: ErrorKind.invalid_request,
}


def _error_kind(envelope: ApiEnvelope) -> ErrorKind:
    if envelope.success is None:
        return ErrorKind.ambiguous_response
    if envelope.code and envelope.code.lower() in _CODE_KINDS:
        return _CODE_KINDS[envelope.code.lower()]
    return _STATUS_KINDS.get(envelope.status_code, ErrorKind.rejected)


def _to_result(envelope: ApiEnvelope, fallback_message: str) -> OperationResult:
    if envelope.is_success:
        return succeeded(envelope.data)
    kind = _error_kind(envelope)
    if kind is ErrorKind.ambiguous_response:
        message = "Backend response did not confirm the operation"
    else:
        message = envelope.message or fallback_message
    return failed(kind, message)


class CartGateway:
    """Remote cart resource, addressed under exactly one identity per call.

    Callers may pass the identity explicitly (the state machine does, to tag
    in-flight requests); otherwise it is resolved once, at call time, and never
    cached between calls. Business failures come back as ``OperationFailed``;
    only transport problems raise.
    """

    def __init__(self, api: ApiClient, identities: IdentityResolver) -> None:
        self._api = api
        self._identities = identities

    async def _identity(self, identity: Identity | None) -> Identity:
        return identity if identity is not None else await self._identities.current()

    @staticmethod
    def _address(identity: Identity) -> tuple[str, str | None]:
        """Base path and bearer token for an identity. Never both guest path and token."""
        if isinstance(identity, UserIdentity):
            return "/cart", identity.token
        if isinstance(identity, GuestIdentity):
            return f"/guest-cart/{quote(identity.session_id, safe='')}", None
        raise TypeError(f"Unsupported identity: {identity!r}")

    async def read(self, identity: Identity | None = None) -> OperationResult:
        identity = await self._identity(identity)
        base, token = self._address(identity)
        envelope = await self._api.get(base, token=token)
        if envelope.status_code == 404:
            # Todavía no hay carrito para esta identidad
            return succeeded(CartSnapshot.empty())
        result = _to_result(envelope, "Failed to get cart")
        if not result.ok:
            return result
        return succeeded(CartSnapshot.from_payload(envelope.data))

    async def add_item(self, variant_id: str, quantity: int = 1, identity: Identity | None = None) -> OperationResult:
        if quantity < 1:
            return failed(ErrorKind.invalid_quantity, "Quantity must be at least 1")
        identity = await self._identity(identity)
        base, token = self._address(identity)
        envelope = await self._api.post(
            f"{base}/items",
            {"productVariantId": variant_id, "quantity": quantity},
            token=token,
        )
        result = _to_result(envelope, "Failed to add item to cart")
        logger.info(
            "Cart add item",
            extra={"identity": identity.kind.value, "variant_id": variant_id, "quantity": quantity, "ok": result.ok},
        )
        return result

    async def update_item_quantity(
        self, item_id: str, quantity: int, identity: Identity | None = None
    ) -> OperationResult:
        if quantity <= 0:
            return await self.remove_item(item_id, identity)
        identity = await self._identity(identity)
        base, token = self._address(identity)
        envelope = await self._api.put(f"{base}/items/{quote(item_id, safe='')}", {"quantity": quantity}, token=token)
        return _to_result(envelope, "Failed to update cart item")

    async def remove_item(self, item_id: str, identity: Identity | None = None) -> OperationResult:
        identity = await self._identity(identity)
        base, token = self._address(identity)
        envelope = await self._api.delete(f"{base}/items/{quote(item_id, safe='')}", token=token)
        return _to_result(envelope, "Failed to remove cart item")

    async def clear(self, identity: Identity | None = None) -> OperationResult:
        identity = await self._identity(identity)
        base, token = self._address(identity)
        envelope = await self._api.delete(base, token=token)
        return _to_result(envelope, "Failed to clear cart")

    async def convert_guest_to_user(
        self, guest_session_id: str, identity: Identity | None = None
    ) -> OperationResult:
        """Merge the guest cart into the authenticated user's cart.

        The backend owns the merge: same-variant quantities are summed and
        capped at stock, the newer ``priceAtAdd`` wins, and the guest cart is
        emptied so a repeated call merges nothing.
        """
        identity = await self._identity(identity)
        if not isinstance(identity, UserIdentity):
            return failed(ErrorKind.conversion_not_applicable, "User must be authenticated to convert cart")
        if not guest_session_id:
            return failed(ErrorKind.conversion_not_applicable, "No guest session to convert")
        envelope = await self._api.post("/cart/convert", {"sessionId": guest_session_id}, token=identity.token)
        result = _to_result(envelope, "Failed to convert guest cart")
        logger.info("Guest cart conversion", extra={"ok": result.ok, "user_id": identity.user_id})
        if not result.ok:
            return result
        return succeeded(CartSnapshot.from_payload(envelope.data))
