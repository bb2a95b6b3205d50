# Overview: Pure pricing helpers shared by audit seeding, item-detail edits, purchase folding and maintenance.

"""
Pricing rules (authoritative)

- ItemDetails.total_price == unit_price * (active + broken + inactive),
  rounded to cents (half-up). compute_total_price() is the only place this
  product is taken.
- resolve_unit_price(): latest purchase price, else the item master price,
  else zero. Rows priced from a live Item use its master price first
  (catalog_service.resolve_item_price).
- Purchase folding keeps a quantity-weighted average unit price:
    (old_total + added_cost) / (old_qty + added_qty)
  stored with 12 decimal places so unit * qty still lands on the folded total
  at cent precision.

No I/O here: callers pass plain values or objects exposing unit_price /
purchase_date / id.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable

CENTS = Decimal("0.01")
UNIT_PRICE_SCALE = Decimal("0.000000000001")
ZERO = Decimal("0")


def to_decimal(value: Any) -> Decimal:
    """Coerce None/int/float/str/Decimal into a Decimal (None -> 0)."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize_money(value: Any) -> Decimal:
    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def quantize_unit_price(value: Any) -> Decimal:
    return to_decimal(value).quantize(UNIT_PRICE_SCALE, rounding=ROUND_HALF_UP)


def money_str(value: Any) -> str | None:
    """JSON-safe rendering for Numeric columns (None stays None)."""
    if value is None:
        return None
    return str(to_decimal(value))


def total_quantity(active: int, broken: int, inactive: int) -> int:
    return int(active or 0) + int(broken or 0) + int(inactive or 0)


def resolve_unit_price(purchase_history: Iterable[Any], item_master_price: Any) -> Decimal:
    """
    Pick the unit price for a room/item snapshot.

    purchase_history: purchases of the item in any order; each needs
    unit_price and purchase_date (id breaks ties). The most recent one wins.
    """
    latest = None
    for purchase in purchase_history or ():
        if purchase.unit_price is None:
            continue
        if latest is None or _purchase_sort_key(purchase) > _purchase_sort_key(latest):
            latest = purchase

    if latest is not None:
        return quantize_unit_price(latest.unit_price)
    if item_master_price is not None:
        return quantize_unit_price(item_master_price)
    return quantize_unit_price(ZERO)


def _purchase_sort_key(purchase: Any) -> tuple:
    purchase_date = getattr(purchase, "purchase_date", None)
    return (
        purchase_date is not None,
        purchase_date.isoformat() if purchase_date is not None else "",
        getattr(purchase, "id", None) or 0,
    )


def compute_total_price(unit_price: Any, active: int, broken: int, inactive: int) -> Decimal:
    return quantize_money(to_decimal(unit_price) * total_quantity(active, broken, inactive))


def blend_unit_price(
    old_total_price: Any,
    added_cost: Any,
    old_qty: int,
    added_qty: int,
    incoming_unit_price: Any,
) -> Decimal:
    """Quantity-weighted average cost after adding a purchase to an existing snapshot."""
    new_qty = int(old_qty or 0) + int(added_qty or 0)
    if new_qty <= 0:
        return quantize_unit_price(incoming_unit_price)
    new_total = to_decimal(old_total_price) + to_decimal(added_cost)
    return quantize_unit_price(new_total / new_qty)
