from __future__ import annotations

import itertools
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Union

from storefront.domain.enums import ErrorKind
from storefront.domain.merge import MergeLine, merge_cart_lines


class SandboxError(Exception):
    """Business failure rendered as a ``success: false`` envelope."""

    def __init__(self, status_code: int, code: ErrorKind | str, message: str):
        self.status_code = status_code
        self.code = code.value if isinstance(code, ErrorKind) else code
        self.message = message
        super().__init__(message)


@dataclass
class Variant:
    id: str
    price: Decimal
    stock: int
    active: bool = True


@dataclass
class Line:
    id: str
    variant_id: str
    quantity: int
    price_at_add: Decimal
    added_seq: int


@dataclass
class Cart:
    id: str
    lines: list[Line] = field(default_factory=list)


@dataclass
class SandboxUser:
    id: str
    email: str
    password: str
    full_name: str | None = None


@dataclass(frozen=True)
class UserOwner:
    user_id: str


@dataclass(frozen=True)
class GuestOwner:
    session_id: str


Owner = Union[UserOwner, GuestOwner]


class SandboxStore:
    """In-memory state of the sandbox backend: catalog stock, users, tokens and carts."""

    def __init__(self) -> None:
        self.variants: dict[str, Variant] = {}
        self.users: dict[str, SandboxUser] = {}
        self.tokens: dict[str, str] = {}
        self.carts: dict[Owner, Cart] = {}
        self._seq = itertools.count(1)

    # --- catalog ---

    def add_variant(self, variant_id: str, price: Decimal | str | float, stock: int, active: bool = True) -> Variant:
        variant = Variant(id=variant_id, price=Decimal(str(price)), stock=stock, active=active)
        self.variants[variant_id] = variant
        return variant

    def stock_for(self, variant_id: str) -> int | None:
        variant = self.variants.get(variant_id)
        return variant.stock if variant else None

    # --- auth ---

    def _issue_token(self, user: SandboxUser) -> str:
        token = f"tok-{uuid.uuid4().hex}"
        self.tokens[token] = user.id
        return token

    def register(self, email: str, password: str, full_name: str | None = None) -> tuple[SandboxUser, str]:
        email = email.lower()
        if email in self.users:
            raise SandboxError(409, ErrorKind.conflict, "Email already registered")
        user = SandboxUser(id=str(uuid.uuid4()), email=email, password=password, full_name=full_name)
        self.users[email] = user
        return user, self._issue_token(user)

    def login(self, email: str, password: str) -> tuple[SandboxUser, str]:
        user = self.users.get(email.lower())
        if not user or user.password != password:
            raise SandboxError(401, ErrorKind.rejected, "Invalid email or password")
        return user, self._issue_token(user)

    def user_for_token(self, token: str | None) -> SandboxUser | None:
        user_id = self.tokens.get(token or "")
        if user_id is None:
            return None
        return next((u for u in self.users.values() if u.id == user_id), None)

    def refresh(self, token: str) -> tuple[SandboxUser, str]:
        user = self.user_for_token(token)
        if user is None:
            raise SandboxError(401, ErrorKind.rejected, "Could not validate credentials")
        self.revoke(token)
        return user, self._issue_token(user)

    def revoke(self, token: str) -> None:
        self.tokens.pop(token, None)

    # --- carts ---

    def cart_for(self, owner: Owner) -> Cart | None:
        return self.carts.get(owner)

    def _get_or_create(self, owner: Owner) -> Cart:
        cart = self.carts.get(owner)
        if cart is None:
            cart = Cart(id=str(uuid.uuid4()))
            self.carts[owner] = cart
        return cart

    def _require_cart(self, owner: Owner) -> Cart:
        cart = self.carts.get(owner)
        if cart is None:
            raise SandboxError(404, ErrorKind.not_found, "Cart not found")
        return cart

    @staticmethod
    def _line(cart: Cart, item_id: str) -> Line:
        line = next((l for l in cart.lines if l.id == item_id), None)
        if line is None:
            raise SandboxError(404, ErrorKind.not_found, "Cart item not found")
        return line

    def _check_stock(self, variant: Variant, quantity: int) -> None:
        if quantity > variant.stock:
            raise SandboxError(409, ErrorKind.insufficient_stock, f"Only {variant.stock} units available")

    def add_item(self, owner: Owner, variant_id: str, quantity: int) -> Line:
        if quantity < 1:
            raise SandboxError(422, ErrorKind.invalid_quantity, "Quantity must be at least 1")
        variant = self.variants.get(variant_id)
        if variant is None:
            raise SandboxError(404, ErrorKind.not_found, "Variant not found")
        if not variant.active:
            raise SandboxError(422, ErrorKind.variant_inactive, "Variant is not available")

        cart = self._get_or_create(owner)
        existing = next((l for l in cart.lines if l.variant_id == variant_id), None)
        if existing:
            self._check_stock(variant, existing.quantity + quantity)
            existing.quantity += quantity
            return existing
        self._check_stock(variant, quantity)
        line = Line(
            id=str(uuid.uuid4()),
            variant_id=variant_id,
            quantity=quantity,
            price_at_add=variant.price,
            added_seq=next(self._seq),
        )
        cart.lines.append(line)
        return line

    def update_item(self, owner: Owner, item_id: str, quantity: int) -> Line | None:
        cart = self._require_cart(owner)
        line = self._line(cart, item_id)
        if quantity <= 0:
            cart.lines.remove(line)
            return None
        variant = self.variants.get(line.variant_id)
        if variant is not None:
            self._check_stock(variant, quantity)
        line.quantity = quantity
        return line

    def remove_item(self, owner: Owner, item_id: str) -> None:
        cart = self._require_cart(owner)
        cart.lines.remove(self._line(cart, item_id))

    def clear(self, owner: Owner) -> None:
        cart = self._require_cart(owner)
        cart.lines.clear()

    def convert(self, user_id: str, session_id: str) -> Cart:
        """Merge the guest cart into the user cart and delete the guest cart."""
        user_cart = self._get_or_create(UserOwner(user_id))
        guest_cart = self.carts.pop(GuestOwner(session_id), None)
        if guest_cart is None or not guest_cart.lines:
            return user_cart

        merged = merge_cart_lines(
            [_to_merge_line(l) for l in user_cart.lines],
            [_to_merge_line(l) for l in guest_cart.lines],
            self.stock_for,
        )
        user_cart.lines = [
            Line(
                id=m.item_id,
                variant_id=m.variant_id,
                quantity=m.quantity,
                price_at_add=m.price_at_add,
                added_seq=m.added_seq,
            )
            for m in merged
        ]
        return user_cart

    # --- wire format ---

    @staticmethod
    def serialize(cart: Cart | None) -> dict:
        if cart is None:
            return {"cart": None, "totals": {"subtotal": "0", "totalItems": 0}}
        subtotal = sum((l.price_at_add * l.quantity for l in cart.lines), Decimal("0"))
        return {
            "cart": {
                "id": cart.id,
                "items": [
                    {
                        "id": l.id,
                        "productVariantId": l.variant_id,
                        "quantity": l.quantity,
                        "priceAtAdd": str(l.price_at_add),
                    }
                    for l in cart.lines
                ],
            },
            "totals": {"subtotal": str(subtotal), "totalItems": sum(l.quantity for l in cart.lines)},
        }


def _to_merge_line(line: Line) -> MergeLine:
    return MergeLine(
        item_id=line.id,
        variant_id=line.variant_id,
        quantity=line.quantity,
        price_at_add=line.price_at_add,
        added_seq=line.added_seq,
    )
