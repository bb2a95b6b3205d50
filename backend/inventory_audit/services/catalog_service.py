# Overview: Service-layer operations for rooms and items (shared reference data).

"""
Rooms and items are reference data owned independently of audits.

DELETE POLICY: RESTRICT. A room or item still referenced by any ItemDetails
or AssetPurchase row cannot be deleted; the caller gets a ConflictError and
nothing is removed. Audit snapshots therefore never point at missing rows.

Also serves as the existence oracle (get_room_or_404 / get_item_or_404) and
the price lookup used whenever an ItemDetails unit price is resolved.
"""

from __future__ import annotations

from typing import Iterable

from sqlalchemy import func

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import AssetPurchase, Item, ItemDetails, Room
from .activity_service import ActionType, diff_fields, entity_ref, record_activity
from .pricing import quantize_money, quantize_unit_price, resolve_unit_price
from .transaction import atomic
from ..validation import require_price


ROOM_FIELD_LABELS = {"name": "Name", "floor": "Floor", "department": "Department"}
ITEM_FIELD_LABELS = {"name": "Name", "category": "Category", "unit": "Unit", "unit_price": "Unit price"}


def get_room_or_404(room_id: int) -> Room:
    room = db.session.get(Room, room_id)
    if room is None:
        raise NotFoundError("Room not found")
    return room


def get_item_or_404(item_id: int) -> Item:
    item = db.session.get(Item, item_id)
    if item is None:
        raise NotFoundError("Item not found")
    return item


# =============================================================================
# PRICE LOOKUP
# =============================================================================


def latest_purchases_by_item(item_ids: Iterable[int] | None = None) -> dict[int, AssetPurchase]:
    """Most recent purchase (purchase_date, then id) per item."""
    query = db.session.query(AssetPurchase)
    if item_ids is not None:
        ids = list(set(item_ids))
        if not ids:
            return {}
        query = query.filter(AssetPurchase.item_id.in_(ids))

    latest: dict[int, AssetPurchase] = {}
    for purchase in query.order_by(AssetPurchase.purchase_date.desc(), AssetPurchase.id.desc()):
        latest.setdefault(purchase.item_id, purchase)
    return latest


def resolve_item_price(item: Item, latest_by_item: dict[int, AssetPurchase] | None = None):
    """
    Unit price for a new or recomputed snapshot of `item`.

    The item master price wins. Purchases overwrite it on ingestion, and the
    latest purchase is only consulted when it is unset.
    """
    if item.unit_price is not None:
        return quantize_unit_price(item.unit_price)
    if latest_by_item is None:
        latest_by_item = latest_purchases_by_item([item.id])
    purchase = latest_by_item.get(item.id)
    return resolve_unit_price([purchase] if purchase else [], item.unit_price)


# =============================================================================
# ROOMS
# =============================================================================


def _room_reference_counts(room_id: int) -> tuple[int, int]:
    details = db.session.query(func.count(ItemDetails.id)).filter(ItemDetails.room_id == room_id).scalar()
    purchases = db.session.query(func.count(AssetPurchase.id)).filter(AssetPurchase.room_id == room_id).scalar()
    return int(details or 0), int(purchases or 0)


def list_rooms() -> list[dict]:
    counts = dict(
        db.session.query(ItemDetails.room_id, func.count(ItemDetails.id))
        .group_by(ItemDetails.room_id)
        .all()
    )
    rooms = db.session.query(Room).order_by(Room.name.asc(), Room.id.asc()).all()
    return [{**room.to_dict(), "item_detail_count": int(counts.get(room.id, 0))} for room in rooms]


def get_room(room_id: int) -> dict:
    room = get_room_or_404(room_id)
    details = (
        db.session.query(ItemDetails)
        .filter(ItemDetails.room_id == room_id)
        .order_by(ItemDetails.audit_id.desc(), ItemDetails.id.asc())
        .all()
    )
    return {**room.to_dict(), "item_details": [d.to_dict(include_relations=True) for d in details]}


def create_room(*, name: str, floor: str | None = None, department: str | None = None, user_id: int | None) -> dict:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Room name is required")

    with atomic():
        room = Room(name=name, floor=floor, department=department)
        db.session.add(room)
        db.session.flush()
        record_activity(
            user_id=user_id,
            entity=entity_ref(room),
            action=ActionType.CREATE,
            after=room.to_dict(),
            description=f"Created room {room.name}",
        )
    return room.to_dict()


def update_room(room_id: int, *, patch: dict, user_id: int | None) -> dict:
    """
    Apply a validated patch. An empty name is ignored rather than clearing it.
    """
    room = get_room_or_404(room_id)
    before = room.to_dict()

    if patch.get("name"):
        room.name = patch["name"].strip()
    for field in ("floor", "department"):
        if field in patch:
            setattr(room, field, patch[field])

    changes = diff_fields(before, room.to_dict(), ROOM_FIELD_LABELS)
    if not changes:
        db.session.rollback()
        return before

    with atomic():
        db.session.flush()
        record_activity(
            user_id=user_id,
            entity=entity_ref(room),
            action=ActionType.UPDATE,
            before=before,
            after=room.to_dict(),
            changes=changes,
            description=f"Updated room {room.name}: {', '.join(changes)}",
        )
    return room.to_dict()


def delete_room(room_id: int, *, user_id: int | None) -> dict:
    room = get_room_or_404(room_id)
    detail_count, purchase_count = _room_reference_counts(room_id)
    if detail_count or purchase_count:
        raise ConflictError(
            "Room is still referenced and cannot be deleted",
            details={"item_details": detail_count, "asset_purchases": purchase_count},
        )

    before = room.to_dict()
    with atomic():
        record_activity(
            user_id=user_id,
            entity=entity_ref(room),
            action=ActionType.DELETE,
            before=before,
            description=f"Deleted room {room.name}",
        )
        db.session.delete(room)
    return before


# =============================================================================
# ITEMS
# =============================================================================


def _item_reference_counts(item_id: int) -> tuple[int, int]:
    details = db.session.query(func.count(ItemDetails.id)).filter(ItemDetails.item_id == item_id).scalar()
    purchases = db.session.query(func.count(AssetPurchase.id)).filter(AssetPurchase.item_id == item_id).scalar()
    return int(details or 0), int(purchases or 0)


def list_items() -> list[dict]:
    counts = dict(
        db.session.query(ItemDetails.item_id, func.count(ItemDetails.id))
        .group_by(ItemDetails.item_id)
        .all()
    )
    items = db.session.query(Item).order_by(Item.name.asc(), Item.id.asc()).all()
    return [{**item.to_dict(), "item_detail_count": int(counts.get(item.id, 0))} for item in items]


def get_item(item_id: int) -> dict:
    item = get_item_or_404(item_id)
    details = (
        db.session.query(ItemDetails)
        .filter(ItemDetails.item_id == item_id)
        .order_by(ItemDetails.audit_id.desc(), ItemDetails.id.asc())
        .all()
    )
    return {**item.to_dict(), "item_details": [d.to_dict(include_relations=True) for d in details]}


def create_item(
    *,
    name: str,
    category: str | None = None,
    unit: str | None = None,
    unit_price=None,
    user_id: int | None,
) -> dict:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Name is required")
    price = quantize_money(require_price("unit_price", unit_price)) if unit_price is not None else None

    with atomic():
        item = Item(name=name, category=category, unit=unit, unit_price=price)
        db.session.add(item)
        db.session.flush()
        record_activity(
            user_id=user_id,
            entity=entity_ref(item),
            action=ActionType.CREATE,
            after=item.to_dict(),
            description=f"Created item {item.name}",
        )
    return item.to_dict()


def update_item(item_id: int, *, patch: dict, user_id: int | None) -> dict:
    """Apply a validated patch; empty strings leave the stored value alone."""
    item = get_item_or_404(item_id)
    before = item.to_dict()

    for field in ("name", "category", "unit"):
        value = patch.get(field)
        if value:
            setattr(item, field, value.strip())
    if patch.get("unit_price") is not None:
        item.unit_price = quantize_money(require_price("unit_price", patch["unit_price"]))

    changes = diff_fields(before, item.to_dict(), ITEM_FIELD_LABELS)
    if not changes:
        db.session.rollback()
        return before

    with atomic():
        db.session.flush()
        after = item.to_dict()
        record_activity(
            user_id=user_id,
            entity=entity_ref(item),
            action=ActionType.UPDATE,
            before=before,
            after=after,
            changes=changes,
            description=f"Updated item {item.name}: {', '.join(changes)}",
        )
    return after


def delete_item(item_id: int, *, user_id: int | None) -> dict:
    item = get_item_or_404(item_id)
    detail_count, purchase_count = _item_reference_counts(item_id)
    if detail_count or purchase_count:
        raise ConflictError(
            "Item is still referenced and cannot be deleted",
            details={"item_details": detail_count, "asset_purchases": purchase_count},
        )

    before = item.to_dict()
    with atomic():
        record_activity(
            user_id=user_id,
            entity=entity_ref(item),
            action=ActionType.DELETE,
            before=before,
            description=f"Deleted item {item.name}",
        )
        db.session.delete(item)
    return before
