# storefront/schemas/cart.py
from __future__ import annotations

from decimal import Decimal
from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from storefront.services.exceptions import MalformedResponseError


class _WireModel(BaseModel):
    # El backend habla camelCase (productVariantId, priceAtAdd, totalItems)
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class CartItem(_WireModel):
    id: str = Field(..., min_length=1)
    variant_id: str = Field(..., min_length=1, alias="productVariantId")
    quantity: int = Field(..., ge=1)
    # Precio capturado al agregar; puede diferir del precio vigente del SKU
    price_at_add: Decimal = Field(..., ge=0)

    @property
    def line_total(self) -> Decimal:
        return self.price_at_add * self.quantity


class CartTotals(_WireModel):
    item_count: int = Field(default=0, ge=0, alias="totalItems")
    subtotal: Decimal = Field(default=Decimal("0"), ge=0)


class CartSnapshot(_WireModel):
    """Complete, authoritative read of one cart and its totals."""

    cart_id: str | None = None
    items: List[CartItem] = Field(default_factory=list)
    totals: CartTotals = Field(default_factory=CartTotals)

    @classmethod
    def empty(cls) -> "CartSnapshot":
        return cls()

    @property
    def is_empty(self) -> bool:
        return not self.items

    def item(self, item_id: str) -> CartItem | None:
        return next((i for i in self.items if i.id == item_id), None)

    def item_for_variant(self, variant_id: str) -> CartItem | None:
        return next((i for i in self.items if i.variant_id == variant_id), None)

    @classmethod
    def from_payload(cls, data: Any) -> "CartSnapshot":
        """Validate the ``data`` section of a cart response.

        Expected shape: ``{"cart": {"id": ..., "items": [...]} | null,
        "totals": {"subtotal": ..., "totalItems": ...}}``. Anything else is a
        malformed response, never an empty cart.
        """
        if not isinstance(data, dict):
            raise MalformedResponseError("Cart payload is not an object")
        cart = data.get("cart")
        totals = data.get("totals")
        if cart is None:
            if totals not in (None, {}) and not isinstance(totals, dict):
                raise MalformedResponseError("Cart totals are not an object")
            return cls.empty()
        if not isinstance(cart, dict):
            raise MalformedResponseError("Cart section is not an object")
        if "items" not in cart or not isinstance(cart["items"], list):
            raise MalformedResponseError("Cart payload has no items list")
        if not isinstance(totals, dict):
            raise MalformedResponseError("Cart payload has no totals")
        try:
            return cls.model_validate(
                {"cart_id": cart.get("id"), "items": cart["items"], "totals": totals}
            )
        except ValidationError as exc:
            raise MalformedResponseError(f"Invalid cart payload: {exc.error_count()} error(s)") from exc
