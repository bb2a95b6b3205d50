# Overview: Service-layer operations for the activity trail; append side and read side.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Mapping

from flask import current_app
from sqlalchemy import and_, func, or_

from ..errors import ValidationError
from ..extensions import db
from ..models import AssetPurchase, Audit, Item, ItemDetails, RecentActivityHistory, Room, User
from ..time_utils import days_ago, start_of_day, utcnow
"""
Activity History Invariants (authoritative)

- Append-only: rows are never updated or deleted.
- record_activity() only adds + flushes; the caller's atomic() block commits,
  so a change and its history row are always observed together.
- CREATE rows carry no `before`; DELETE rows carry no `after`.
- Snapshots are the entity's to_dict() (JSON-safe: money as strings,
  datetimes as ISO-8601 Z).
"""


class EntityType(str, Enum):
    AUDIT = "Audit"
    ITEM_DETAILS = "ItemDetails"
    ITEM = "Item"
    ROOM = "Room"
    USER = "User"
    ASSET_PURCHASE = "AssetPurchase"


class ActionType(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class EntityRef:
    """Typed pointer to the entity a history row is about."""
    kind: EntityType
    id: int | None
    name: str


def _item_details_name(detail: ItemDetails) -> str:
    item_name = detail.item.name if detail.item else f"Item {detail.item_id}"
    room_name = detail.room.name if detail.room else f"Room {detail.room_id}"
    return f"{item_name} - {room_name}"


def _purchase_name(purchase: AssetPurchase) -> str:
    item_name = purchase.item.name if purchase.item else f"Item {purchase.item_id}"
    room_name = purchase.room.name if purchase.room else f"Room {purchase.room_id}"
    return f"{item_name} - {room_name}"


_NAMERS = {
    Audit: (EntityType.AUDIT, lambda audit: f"Audit {audit.label}"),
    ItemDetails: (EntityType.ITEM_DETAILS, _item_details_name),
    Item: (EntityType.ITEM, lambda item: item.name),
    Room: (EntityType.ROOM, lambda room: room.name),
    User: (EntityType.USER, lambda user: user.name),
    AssetPurchase: (EntityType.ASSET_PURCHASE, _purchase_name),
}


def entity_ref(obj: Any) -> EntityRef:
    """Build an EntityRef for any supported model instance."""
    try:
        kind, namer = _NAMERS[type(obj)]
    except KeyError:
        raise TypeError(f"Unsupported history entity: {type(obj).__name__}") from None
    return EntityRef(kind=kind, id=obj.id, name=namer(obj))


def _display(value: Any) -> str:
    if value is None or value == "":
        return "none"
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value) or "none"
    return str(value)


def diff_fields(
    before: Mapping[str, Any],
    after: Mapping[str, Any],
    labels: Mapping[str, str],
) -> list[str]:
    """Render changed fields as "Label: old → new", in the order of `labels`."""
    changes = []
    for field, label in labels.items():
        old, new = before.get(field), after.get(field)
        if old != new:
            changes.append(f"{label}: {_display(old)} → {_display(new)}")
    return changes


def quantity_delta(before: Mapping[str, Any], after: Mapping[str, Any], fields: Iterable[str]) -> int:
    """Sum of absolute changes across numeric fields."""
    return sum(abs(int(after.get(f) or 0) - int(before.get(f) or 0)) for f in fields)


def record_activity(
    *,
    user_id: int | None,
    entity: EntityRef,
    action: ActionType,
    description: str,
    before: dict | None = None,
    after: dict | None = None,
    changes: list[str] | None = None,
    total_delta: int | None = None,
    metadata: dict | None = None,
) -> RecentActivityHistory:
    """
    Append one history row to the current unit of work.

    Never commits; the caller's transaction does.
    """
    change_summary = None
    if changes:
        change_summary = {"changes": list(changes)}
        if total_delta is not None:
            change_summary["total_delta"] = total_delta

    row = RecentActivityHistory(
        user_id=user_id,
        entity_type=entity.kind.value,
        entity_id=entity.id,
        entity_name=entity.name,
        action_type=action.value,
        before=None if action is ActionType.CREATE else before,
        after=None if action is ActionType.DELETE else after,
        change_summary=change_summary,
        description=description,
        metadata_json=metadata or None,
        occurred_at=utcnow(),
    )
    db.session.add(row)
    db.session.flush()
    return row


# =============================================================================
# READ SIDE
# =============================================================================


def _resolve_limit(limit: Any) -> int:
    default = current_app.config.get("ACTIVITY_DEFAULT_LIMIT", 50)
    cap = current_app.config.get("ACTIVITY_MAX_LIMIT", 500)
    if limit is None or limit == "":
        return default
    try:
        value = int(limit)
    except (TypeError, ValueError):
        raise ValidationError("limit must be an integer")
    if value <= 0:
        raise ValidationError("limit must be greater than 0")
    return min(value, cap)


def get_recent_activity(
    *,
    limit: Any = None,
    entity_type: str | None = None,
    entity_id: int | None = None,
    user_id: int | None = None,
) -> list[dict]:
    """Newest-first activity, optionally filtered by entity and/or actor."""
    query = db.session.query(RecentActivityHistory)

    if entity_type:
        try:
            kind = EntityType(entity_type)
        except ValueError:
            allowed = ", ".join(t.value for t in EntityType)
            raise ValidationError(f"entity_type must be one of: {allowed}")
        query = query.filter(RecentActivityHistory.entity_type == kind.value)
    if entity_id is not None:
        query = query.filter(RecentActivityHistory.entity_id == entity_id)
    if user_id is not None:
        query = query.filter(RecentActivityHistory.user_id == user_id)

    rows = (
        query.order_by(RecentActivityHistory.occurred_at.desc(), RecentActivityHistory.id.desc())
        .limit(_resolve_limit(limit))
        .all()
    )
    return [row.to_dict() for row in rows]


def get_audit_history(audit_id: int) -> list[dict]:
    """History of an audit and of item-detail changes tagged with its id."""
    rows = (
        db.session.query(RecentActivityHistory)
        .filter(
            or_(
                and_(
                    RecentActivityHistory.entity_type == EntityType.AUDIT.value,
                    RecentActivityHistory.entity_id == audit_id,
                ),
                and_(
                    RecentActivityHistory.entity_type == EntityType.ITEM_DETAILS.value,
                    RecentActivityHistory.metadata_json["audit_id"].as_integer() == audit_id,
                ),
            )
        )
        .order_by(RecentActivityHistory.occurred_at.desc(), RecentActivityHistory.id.desc())
        .all()
    )
    return [row.to_dict() for row in rows]


def get_activity_stats(*, now: datetime | None = None) -> dict:
    """Counts for dashboards: total, today (UTC), last 7 days, per entity type."""
    now = now or utcnow()
    today = start_of_day(now)
    week_ago = days_ago(7, now=now)

    total = db.session.query(func.count(RecentActivityHistory.id)).scalar() or 0
    today_count = (
        db.session.query(func.count(RecentActivityHistory.id))
        .filter(RecentActivityHistory.occurred_at >= today)
        .scalar()
        or 0
    )
    week_count = (
        db.session.query(func.count(RecentActivityHistory.id))
        .filter(RecentActivityHistory.occurred_at >= week_ago)
        .scalar()
        or 0
    )

    count_col = func.count(RecentActivityHistory.id)
    grouped = (
        db.session.query(RecentActivityHistory.entity_type, count_col)
        .group_by(RecentActivityHistory.entity_type)
        .order_by(count_col.desc(), RecentActivityHistory.entity_type.asc())
        .all()
    )

    return {
        "total_activities": int(total),
        "today_activities": int(today_count),
        "week_activities": int(week_count),
        "by_entity_type": [
            {"entity_type": entity_type, "count": int(count)}
            for entity_type, count in grouped
        ],
    }
