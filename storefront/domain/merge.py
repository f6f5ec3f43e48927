"""Guest-to-user cart merge policy."""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Callable, Iterable, Optional


@dataclass(frozen=True)
class MergeLine:
    item_id: str
    variant_id: str
    quantity: int
    price_at_add: Decimal
    # Orden de inserción monotónico; mayor = agregado más recientemente
    added_seq: int


def merge_cart_lines(
    user_lines: Iterable[MergeLine],
    guest_lines: Iterable[MergeLine],
    stock_for: Callable[[str], Optional[int]],
) -> list[MergeLine]:
    """Merge a guest cart into a user cart, deterministically.

    - Same variant in both carts: quantities are summed and capped at the
      stock ceiling reported by ``stock_for`` (``None`` means uncapped). The
      merged line keeps the user's item id and takes ``price_at_add`` from
      whichever entry was added more recently; on a tie the guest entry wins.
      A summed line whose ceiling is below 1 is dropped.
    - Variants present in only one cart survive unchanged; the cap only
      applies to quantities produced by the sum.
    - Output order: user lines in their original order, then guest-only lines
      in theirs.
    """
    guest_by_variant: dict[str, MergeLine] = {}
    for line in guest_lines:
        existing = guest_by_variant.get(line.variant_id)
        if existing is None:
            guest_by_variant[line.variant_id] = line
        else:
            guest_by_variant[line.variant_id] = _combine(existing, line, prefer_second_on_tie=True)

    merged: list[MergeLine] = []
    for line in user_lines:
        guest = guest_by_variant.pop(line.variant_id, None)
        if guest is None:
            merged.append(line)
            continue
        combined = _combine(line, guest, prefer_second_on_tie=True)
        ceiling = stock_for(line.variant_id)
        if ceiling is not None and combined.quantity > ceiling:
            if ceiling < 1:
                continue
            combined = replace(combined, quantity=ceiling)
        merged.append(combined)

    merged.extend(guest_by_variant.values())
    return merged


def _combine(first: MergeLine, second: MergeLine, *, prefer_second_on_tie: bool) -> MergeLine:
    if second.added_seq > first.added_seq or (second.added_seq == first.added_seq and prefer_second_on_tie):
        newer = second
    else:
        newer = first
    return MergeLine(
        item_id=first.item_id,
        variant_id=first.variant_id,
        quantity=first.quantity + second.quantity,
        price_at_add=newer.price_at_add,
        added_seq=max(first.added_seq, second.added_seq),
    )
