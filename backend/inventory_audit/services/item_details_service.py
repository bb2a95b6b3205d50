# Overview: Service-layer operations for audit item details; per-room counts and their pricing.

"""
ItemDetails reconciliation.

Every mutation requires the parent audit to be IN_PROGRESS and writes a
history row tagged with metadata.audit_id, so the audit detail view can show
line-level changes. Unit price is re-resolved and total_price recomputed on
every write.
"""

from __future__ import annotations

from collections import OrderedDict

from ..errors import ConflictError, NotFoundError
from ..extensions import db
from ..models import Audit, Item, ItemDetails
from ..validation import require_non_negative_int
from .activity_service import ActionType, diff_fields, entity_ref, quantity_delta, record_activity
from .audit_service import get_audit_or_404, require_in_progress
from .catalog_service import get_item_or_404, get_room_or_404, resolve_item_price
from .pricing import ZERO, compute_total_price, money_str, to_decimal
from .transaction import atomic


QUANTITY_FIELDS = ("active_quantity", "broken_quantity", "inactive_quantity")
QUANTITY_LABELS = {
    "active_quantity": "Active quantity",
    "broken_quantity": "Broken quantity",
    "inactive_quantity": "Inactive quantity",
}
DETAIL_FIELD_LABELS = {**QUANTITY_LABELS, "unit_price": "Unit price", "total_price": "Total price"}
LOCKED_MESSAGE = "Item details can only be changed while the audit is in progress"


def get_item_detail_or_404(detail_id: int) -> ItemDetails:
    detail = db.session.get(ItemDetails, detail_id)
    if detail is None:
        raise NotFoundError("Item detail not found")
    return detail


def _metadata(detail: ItemDetails, **extra) -> dict:
    return {
        "audit_id": detail.audit_id,
        "room_id": detail.room_id,
        "item_id": detail.item_id,
        **extra,
    }


def reprice(detail: ItemDetails, item: Item | None = None) -> None:
    """Re-resolve unit price and recompute total_price in place."""
    item = item or detail.item
    detail.unit_price = resolve_item_price(item)
    detail.total_price = compute_total_price(
        detail.unit_price,
        detail.active_quantity,
        detail.broken_quantity,
        detail.inactive_quantity,
    )


# =============================================================================
# WRITE SIDE
# =============================================================================


def add_item_detail_to_audit(
    audit_id: int,
    *,
    room_id: int,
    item_id: int,
    active_quantity=0,
    broken_quantity=0,
    inactive_quantity=0,
    user_id: int | None,
) -> dict:
    """
    Add a room/item pair to an in-progress audit.

    Raises:
        NotFoundError: audit, room or item missing
        AuditStateError: audit not in progress
        ValidationError: negative or non-integer quantity
        ConflictError: pair already on this audit
    """
    audit = get_audit_or_404(audit_id)
    require_in_progress(audit, LOCKED_MESSAGE)
    room = get_room_or_404(room_id)
    item = get_item_or_404(item_id)

    quantities = {
        "active_quantity": require_non_negative_int("active_quantity", active_quantity if active_quantity is not None else 0),
        "broken_quantity": require_non_negative_int("broken_quantity", broken_quantity if broken_quantity is not None else 0),
        "inactive_quantity": require_non_negative_int("inactive_quantity", inactive_quantity if inactive_quantity is not None else 0),
    }

    existing = db.session.query(ItemDetails.id).filter_by(
        audit_id=audit.id, room_id=room.id, item_id=item.id
    ).first()
    if existing:
        raise ConflictError(
            f"{item.name} is already recorded for {room.name} in audit {audit.label}",
            details={"item_detail_id": existing[0]},
        )

    with atomic("Item detail already exists for this room, item and audit"):
        detail = ItemDetails(audit_id=audit.id, room_id=room.id, item_id=item.id, **quantities)
        detail.room = room
        detail.item = item
        reprice(detail, item)
        db.session.add(detail)
        db.session.flush()
        record_activity(
            user_id=user_id,
            entity=entity_ref(detail),
            action=ActionType.CREATE,
            after=detail.to_dict(),
            description=f"Added {item.name} to {room.name} in audit {audit.label}",
            metadata=_metadata(detail),
        )

    return detail.to_dict(include_relations=True)


def update_item_detail(
    detail_id: int,
    *,
    active_quantity=None,
    broken_quantity=None,
    inactive_quantity=None,
    user_id: int | None,
) -> dict:
    """
    Change any subset of the three quantities.

    Prices are recomputed even when quantities are unchanged; a history row
    is only written when a quantity or price actually moved.
    """
    detail = get_item_detail_or_404(detail_id)
    require_in_progress(detail.audit, LOCKED_MESSAGE)

    patch = {}
    for field, value in zip(QUANTITY_FIELDS, (active_quantity, broken_quantity, inactive_quantity)):
        if value is not None:
            patch[field] = require_non_negative_int(field, value)

    before = detail.to_dict()

    with atomic():
        for field, value in patch.items():
            setattr(detail, field, value)
        reprice(detail)
        after = detail.to_dict()

        changes = diff_fields(before, after, DETAIL_FIELD_LABELS)
        if changes:
            db.session.flush()
            after = detail.to_dict()
            name = entity_ref(detail).name
            record_activity(
                user_id=user_id,
                entity=entity_ref(detail),
                action=ActionType.UPDATE,
                before=before,
                after=after,
                changes=changes,
                total_delta=quantity_delta(before, after, QUANTITY_FIELDS),
                description=f"Updated {name}: {', '.join(changes)}",
                metadata=_metadata(detail),
            )

    return detail.to_dict(include_relations=True)


def delete_item_detail(detail_id: int, *, user_id: int | None) -> dict:
    detail = get_item_detail_or_404(detail_id)
    require_in_progress(detail.audit, LOCKED_MESSAGE)

    before = detail.to_dict(include_relations=True)
    ref = entity_ref(detail)
    metadata = _metadata(detail)

    with atomic():
        record_activity(
            user_id=user_id,
            entity=ref,
            action=ActionType.DELETE,
            before=before,
            description=f"Removed {ref.name} from audit {detail.audit.label}",
            metadata=metadata,
        )
        db.session.delete(detail)

    return before


# =============================================================================
# READ SIDE
# =============================================================================


def get_item_detail(detail_id: int) -> dict:
    return get_item_detail_or_404(detail_id).to_dict(include_relations=True)


def get_item_details(audit_id: int | None = None) -> list[dict]:
    query = db.session.query(ItemDetails)
    if audit_id is not None:
        get_audit_or_404(audit_id)
        query = query.filter(ItemDetails.audit_id == audit_id)
    rows = query.order_by(ItemDetails.audit_id.desc(), ItemDetails.room_id.asc(), ItemDetails.item_id.asc()).all()
    return [row.to_dict(include_relations=True) for row in rows]


def get_item_details_by_room_and_item(room_id: int, item_id: int) -> list[dict]:
    """Every audit's snapshot of one room/item pair, newest audit first."""
    get_room_or_404(room_id)
    get_item_or_404(item_id)
    rows = (
        db.session.query(ItemDetails)
        .join(Audit, Audit.id == ItemDetails.audit_id)
        .filter(ItemDetails.room_id == room_id, ItemDetails.item_id == item_id)
        .order_by(Audit.year.desc(), Audit.month.desc(), ItemDetails.id.desc())
        .all()
    )
    return [row.to_dict(include_relations=True) for row in rows]


def get_item_summary_by_audit_id(audit_id: int) -> list[dict]:
    """
    Per-item totals across all rooms of one audit, sorted by item name.

    total_price is summed from per-row compute_total_price() using the row's
    unit price, falling back to the item master price.
    """
    audit = get_audit_or_404(audit_id)

    summary: "OrderedDict[int, dict]" = OrderedDict()
    rooms_by_item: dict[int, set[int]] = {}
    rows = sorted(audit.item_details, key=lambda d: ((d.item.name or "").lower(), d.item_id))

    for row in rows:
        item = row.item
        entry = summary.get(item.id)
        if entry is None:
            entry = summary[item.id] = {
                "item_id": item.id,
                "item_name": item.name,
                "category": item.category,
                "unit": item.unit,
                "active_quantity": 0,
                "inactive_quantity": 0,
                "damage_quantity": 0,
                "total_quantity": 0,
                "total_price": ZERO,
                "room_count": 0,
            }
            rooms_by_item[item.id] = set()

        entry["active_quantity"] += row.active_quantity
        entry["inactive_quantity"] += row.inactive_quantity
        entry["damage_quantity"] += row.broken_quantity
        entry["total_quantity"] += row.total_quantity

        unit_price = row.unit_price if row.unit_price is not None else item.unit_price
        entry["total_price"] += compute_total_price(
            to_decimal(unit_price),
            row.active_quantity,
            row.broken_quantity,
            row.inactive_quantity,
        )
        rooms_by_item[item.id].add(row.room_id)

    for item_id, entry in summary.items():
        entry["room_count"] = len(rooms_by_item[item_id])
        entry["total_price"] = money_str(entry["total_price"])

    return list(summary.values())
