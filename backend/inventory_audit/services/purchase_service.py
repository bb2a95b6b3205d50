# Overview: Service-layer operations for asset purchases; recording, folding into the current audit, and reporting.

"""
Asset Purchase Service

WHY: Purchases are the only way new stock enters a room between audits.
Each purchase is recorded once and folded into the latest audit so the
in-progress count already includes it.

FOLD (create_asset_purchase only):
- Latest audit IN_PROGRESS, row exists for (room, item): active += quantity,
  total_price += total_cost, unit_price = quantity-weighted blend.
- Latest audit IN_PROGRESS, no row: new row at active = quantity priced at
  the purchase price.
- No audit, or latest audit COMPLETED / CANCELED: purchase recorded only.

Creating a purchase overwrites Item.unit_price with its price.

Editing or deleting a purchase never adjusts ItemDetails; the fold is a
one-time effect of creation.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import AssetPurchase, ItemDetails
from ..time_utils import end_of_day, utcnow
from ..validation import parse_optional_datetime, require_positive_int, require_price
from .activity_service import ActionType, diff_fields, entity_ref, quantity_delta, record_activity
from .audit_service import AUDIT_STATUS_IN_PROGRESS, find_latest_audit
from .catalog_service import get_item_or_404, get_room_or_404
from .pricing import ZERO, blend_unit_price, money_str, quantize_money, to_decimal
from .transaction import atomic


PURCHASE_FIELD_LABELS = {
    "room_id": "Room",
    "item_id": "Item",
    "quantity": "Quantity",
    "unit_price": "Unit price",
    "total_cost": "Total cost",
    "purchase_date": "Purchase date",
    "notes": "Notes",
}
PURCHASE_SOURCE = "asset_purchase"


def get_purchase_or_404(purchase_id: int) -> AssetPurchase:
    purchase = db.session.get(AssetPurchase, purchase_id)
    if purchase is None:
        raise NotFoundError("Asset purchase not found")
    return purchase


def _parse_purchase_date(value) -> datetime:
    if value is None or value == "":
        return utcnow()
    parsed = parse_optional_datetime("purchase_date", value)
    return parsed or utcnow()


def _date_bounds(start_date, end_date) -> tuple[datetime | None, datetime | None]:
    """
    Parse an inclusive [start, end] filter.

    A date-only end ("2025-01-31") covers that whole day.
    """
    start = parse_optional_datetime("start_date", start_date or None)
    end = parse_optional_datetime("end_date", end_date or None)
    if end is not None and isinstance(end_date, str) and "T" not in end_date:
        end = end_of_day(end)
    if start is not None and end is not None and start > end:
        raise ValidationError("start_date must be before end_date")
    return start, end


def _fold_into_latest_audit(purchase: AssetPurchase, *, user_id: int | None) -> dict | None:
    """
    Apply the purchase to the latest audit's ItemDetails.

    Returns a description of the effect, or None when nothing was folded.
    """
    audit = find_latest_audit()
    if audit is None:
        current_app.logger.warning(
            "Asset purchase %s not folded: no audit exists", purchase.id
        )
        return None
    if audit.status != AUDIT_STATUS_IN_PROGRESS:
        current_app.logger.warning(
            "Asset purchase %s not folded: latest audit %s is %s",
            purchase.id, audit.label, audit.status,
        )
        return None

    metadata = {
        "audit_id": audit.id,
        "room_id": purchase.room_id,
        "item_id": purchase.item_id,
        "source": PURCHASE_SOURCE,
        "asset_purchase_id": purchase.id,
    }

    detail = db.session.query(ItemDetails).filter_by(
        audit_id=audit.id, room_id=purchase.room_id, item_id=purchase.item_id
    ).first()

    if detail is not None:
        before = detail.to_dict()
        old_quantity = detail.total_quantity
        old_total = to_decimal(detail.total_price)

        detail.active_quantity = detail.active_quantity + purchase.quantity
        detail.total_price = quantize_money(old_total + purchase.total_cost)
        detail.unit_price = blend_unit_price(
            old_total, purchase.total_cost, old_quantity, purchase.quantity, purchase.unit_price
        )
        db.session.flush()

        after = detail.to_dict()
        changes = diff_fields(
            before,
            after,
            {"active_quantity": "Active quantity", "unit_price": "Unit price", "total_price": "Total price"},
        )
        ref = entity_ref(detail)
        record_activity(
            user_id=user_id,
            entity=ref,
            action=ActionType.UPDATE,
            before=before,
            after=after,
            changes=changes,
            total_delta=quantity_delta(before, after, ("active_quantity",)),
            description=f"Added {purchase.quantity} purchased unit(s) to {ref.name} in audit {audit.label}",
            metadata=metadata,
        )
        effect = "updated"
    else:
        detail = ItemDetails(
            audit_id=audit.id,
            room_id=purchase.room_id,
            item_id=purchase.item_id,
            active_quantity=purchase.quantity,
            broken_quantity=0,
            inactive_quantity=0,
            unit_price=to_decimal(purchase.unit_price),
            total_price=quantize_money(purchase.total_cost),
        )
        db.session.add(detail)
        db.session.flush()
        ref = entity_ref(detail)
        record_activity(
            user_id=user_id,
            entity=ref,
            action=ActionType.CREATE,
            after=detail.to_dict(),
            description=f"Added {ref.name} to audit {audit.label} from a purchase of {purchase.quantity}",
            metadata=metadata,
        )
        effect = "created"

    current_app.logger.info(
        "Asset purchase %s folded into audit %s (%s item detail %s)",
        purchase.id, audit.label, effect, detail.id,
    )
    return {"audit_id": audit.id, "item_detail_id": detail.id, "effect": effect}


def _sync_item_price(item, unit_price, *, user_id: int | None) -> bool:
    if item.unit_price is not None and to_decimal(item.unit_price) == unit_price:
        return False

    before = item.to_dict()
    item.unit_price = unit_price
    db.session.flush()
    after = item.to_dict()
    changes = diff_fields(before, after, {"unit_price": "Unit price"})
    record_activity(
        user_id=user_id,
        entity=entity_ref(item),
        action=ActionType.UPDATE,
        before=before,
        after=after,
        changes=changes,
        description=f"Updated item {item.name}: {', '.join(changes)}",
        metadata={"item_id": item.id, "source": PURCHASE_SOURCE},
    )
    return True


def create_asset_purchase(
    *,
    room_id: int,
    item_id: int,
    quantity,
    unit_price,
    purchase_date=None,
    notes: str | None = None,
    user_id: int | None,
) -> dict:
    """
    Record a purchase and fold it into the latest in-progress audit.

    Raises:
        ValidationError: quantity not a positive int, negative price, bad date
        NotFoundError: room or item missing
    """
    quantity = require_positive_int("quantity", quantity)
    unit_price = quantize_money(require_price("unit_price", unit_price))
    purchased_at = _parse_purchase_date(purchase_date)
    room = get_room_or_404(room_id)
    item = get_item_or_404(item_id)

    total_cost = quantize_money(unit_price * quantity)

    with atomic():
        purchase = AssetPurchase(
            room_id=room.id,
            item_id=item.id,
            quantity=quantity,
            unit_price=unit_price,
            total_cost=total_cost,
            purchase_date=purchased_at,
            notes=notes or None,
            added_by_user_id=user_id,
        )
        db.session.add(purchase)
        db.session.flush()

        price_updated = _sync_item_price(item, unit_price, user_id=user_id)
        fold = _fold_into_latest_audit(purchase, user_id=user_id)

        record_activity(
            user_id=user_id,
            entity=entity_ref(purchase),
            action=ActionType.CREATE,
            after=purchase.to_dict(),
            description=(
                f"Purchased {quantity} x {item.name} for {room.name} "
                f"at {money_str(unit_price)} (total {money_str(total_cost)})"
            ),
            metadata={
                "room_id": room.id,
                "item_id": item.id,
                "source": PURCHASE_SOURCE,
                "audit_id": fold["audit_id"] if fold else None,
                "item_price_updated": price_updated,
            },
        )

    return {**purchase.to_dict(include_relations=True), "audit_fold": fold}


def update_asset_purchase(
    purchase_id: int,
    *,
    room_id: int | None = None,
    item_id: int | None = None,
    quantity=None,
    unit_price=None,
    purchase_date=None,
    notes: str | None = None,
    user_id: int | None,
) -> dict:
    """
    Correct a recorded purchase. total_cost is recomputed.

    Audit item details are left untouched.
    """
    purchase = get_purchase_or_404(purchase_id)
    before = purchase.to_dict()

    new_room_id = get_room_or_404(room_id).id if room_id is not None else purchase.room_id
    new_item_id = get_item_or_404(item_id).id if item_id is not None else purchase.item_id
    new_quantity = require_positive_int("quantity", quantity) if quantity is not None else purchase.quantity
    new_price = (
        quantize_money(require_price("unit_price", unit_price))
        if unit_price is not None
        else to_decimal(purchase.unit_price)
    )
    new_date = parse_optional_datetime("purchase_date", purchase_date) if purchase_date else purchase.purchase_date

    with atomic():
        purchase.room_id = new_room_id
        purchase.item_id = new_item_id
        purchase.quantity = new_quantity
        purchase.unit_price = new_price
        purchase.total_cost = quantize_money(new_price * new_quantity)
        purchase.purchase_date = new_date
        if notes is not None:
            purchase.notes = notes or None
        db.session.flush()
        db.session.refresh(purchase)

        after = purchase.to_dict()
        changes = diff_fields(before, after, PURCHASE_FIELD_LABELS)
        if changes:
            record_activity(
                user_id=user_id,
                entity=entity_ref(purchase),
                action=ActionType.UPDATE,
                before=before,
                after=after,
                changes=changes,
                description=f"Updated purchase {entity_ref(purchase).name}: {', '.join(changes)}",
                metadata={"room_id": purchase.room_id, "item_id": purchase.item_id},
            )

    return purchase.to_dict(include_relations=True)


def delete_asset_purchase(purchase_id: int, *, user_id: int | None) -> dict:
    purchase = get_purchase_or_404(purchase_id)
    before = purchase.to_dict(include_relations=True)
    ref = entity_ref(purchase)

    with atomic():
        record_activity(
            user_id=user_id,
            entity=ref,
            action=ActionType.DELETE,
            before=before,
            description=f"Deleted purchase of {purchase.quantity} x {ref.name}",
            metadata={"room_id": purchase.room_id, "item_id": purchase.item_id},
        )
        db.session.delete(purchase)

    return before


# =============================================================================
# READ SIDE
# =============================================================================


def get_asset_purchase(purchase_id: int) -> dict:
    return get_purchase_or_404(purchase_id).to_dict(include_relations=True)


def _filtered_query(*, room_id=None, item_id=None, start_date=None, end_date=None):
    start, end = _date_bounds(start_date, end_date)
    query = db.session.query(AssetPurchase)
    if room_id is not None:
        query = query.filter(AssetPurchase.room_id == room_id)
    if item_id is not None:
        query = query.filter(AssetPurchase.item_id == item_id)
    if start is not None:
        query = query.filter(AssetPurchase.purchase_date >= start)
    if end is not None:
        query = query.filter(AssetPurchase.purchase_date <= end)
    return query


def get_all_asset_purchases(
    *,
    room_id: int | None = None,
    item_id: int | None = None,
    start_date=None,
    end_date=None,
) -> list[dict]:
    """Purchases newest first, optionally filtered by room, item and date range."""
    rows = (
        _filtered_query(room_id=room_id, item_id=item_id, start_date=start_date, end_date=end_date)
        .order_by(AssetPurchase.purchase_date.desc(), AssetPurchase.id.desc())
        .all()
    )
    return [row.to_dict(include_relations=True) for row in rows]


def get_purchase_summary(*, start_date=None, end_date=None, room_id: int | None = None) -> dict:
    """Totals grouped by room and by item for a date range."""
    rows = (
        _filtered_query(room_id=room_id, start_date=start_date, end_date=end_date)
        .order_by(AssetPurchase.purchase_date.asc(), AssetPurchase.id.asc())
        .all()
    )

    total_cost = ZERO
    by_room: dict[int, dict] = {}
    by_item: dict[int, dict] = {}

    for purchase in rows:
        cost = to_decimal(purchase.total_cost)
        total_cost += cost

        room_entry = by_room.setdefault(purchase.room_id, {
            "room_id": purchase.room_id,
            "room_name": purchase.room.name,
            "total_items": 0,
            "total_cost": ZERO,
            "items": {},
        })
        room_entry["total_items"] += purchase.quantity
        room_entry["total_cost"] += cost
        room_item = room_entry["items"].setdefault(purchase.item_id, {
            "item_id": purchase.item_id,
            "item_name": purchase.item.name,
            "quantity": 0,
            "total_cost": ZERO,
        })
        room_item["quantity"] += purchase.quantity
        room_item["total_cost"] += cost

        item_entry = by_item.setdefault(purchase.item_id, {
            "item_id": purchase.item_id,
            "item_name": purchase.item.name,
            "total_quantity": 0,
            "total_cost": ZERO,
            "rooms": {},
        })
        item_entry["total_quantity"] += purchase.quantity
        item_entry["total_cost"] += cost
        item_room = item_entry["rooms"].setdefault(purchase.room_id, {
            "room_id": purchase.room_id,
            "room_name": purchase.room.name,
            "quantity": 0,
            "total_cost": ZERO,
        })
        item_room["quantity"] += purchase.quantity
        item_room["total_cost"] += cost

    def _render(entries, nested_key, sort_key):
        rendered = []
        for entry in sorted(entries.values(), key=sort_key):
            nested = [
                {**child, "total_cost": money_str(child["total_cost"])}
                for child in entry[nested_key].values()
            ]
            rendered.append({**entry, "total_cost": money_str(entry["total_cost"]), nested_key: nested})
        return rendered

    return {
        "total_purchases": len(rows),
        "total_cost": money_str(quantize_money(total_cost)),
        "by_room": _render(by_room, "items", lambda e: (e["room_name"].lower(), e["room_id"])),
        "by_item": _render(by_item, "rooms", lambda e: (e["item_name"].lower(), e["item_id"])),
    }
