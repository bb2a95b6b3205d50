# Overview: Service-layer operations for audits; lifecycle, seeding and detail views.

"""
Monthly audit lifecycle.

WHY: Each audit is a snapshot of every room/item pair for one month. A new
audit starts from the previous audit's counts so auditors only record what
changed.

LIFECYCLE:
1. IN_PROGRESS: created; item details editable, purchases fold in
2. COMPLETED: terminal; cannot be edited or deleted
3. CANCELED: terminal; item details frozen, may still be deleted

SEEDING (create_audit):
- Most recent audit (year, month, created_at) with item details: copy every
  row's room, item and quantities.
- Otherwise: one zero-quantity row per Room x Item.
- Unit prices are resolved at write time (item master, latest purchase, 0);
  totals always come from compute_total_price().
"""

from __future__ import annotations

from ..errors import AuditStateError, ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Audit, Item, ItemDetails, Room
from ..validation import coerce_int
from .activity_service import ActionType, diff_fields, entity_ref, get_audit_history, record_activity
from .catalog_service import latest_purchases_by_item, resolve_item_price
from .pricing import compute_total_price
from .transaction import atomic
from .user_service import get_users_by_ids


# Audit status constants
AUDIT_STATUS_IN_PROGRESS = "IN_PROGRESS"
AUDIT_STATUS_COMPLETED = "COMPLETED"
AUDIT_STATUS_CANCELED = "CANCELED"

AUDIT_STATUSES = (AUDIT_STATUS_IN_PROGRESS, AUDIT_STATUS_COMPLETED, AUDIT_STATUS_CANCELED)
TERMINAL_STATUSES = (AUDIT_STATUS_COMPLETED, AUDIT_STATUS_CANCELED)

# Allowed status transitions (from -> to)
AUDIT_TRANSITIONS = {
    AUDIT_STATUS_IN_PROGRESS: {AUDIT_STATUS_COMPLETED, AUDIT_STATUS_CANCELED},
    AUDIT_STATUS_COMPLETED: set(),
    AUDIT_STATUS_CANCELED: set(),
}

AUDIT_FIELD_LABELS = {"status": "Status", "notes": "Notes", "participant_ids": "Participants"}


def get_audit_or_404(audit_id: int) -> Audit:
    audit = db.session.get(Audit, audit_id)
    if audit is None:
        raise NotFoundError("Audit not found")
    return audit


def require_in_progress(audit: Audit, message: str = "Audit is not in progress") -> None:
    if audit.status != AUDIT_STATUS_IN_PROGRESS:
        raise AuditStateError(message, details={"audit_id": audit.id, "status": audit.status})


def _latest_audit_query():
    return db.session.query(Audit).order_by(
        Audit.year.desc(),
        Audit.month.desc(),
        Audit.created_at.desc(),
        Audit.id.desc(),
    )


def find_latest_audit() -> Audit | None:
    """Newest audit by (year, month, created_at), or None."""
    return _latest_audit_query().first()


def _validate_period(month, year) -> tuple[int, int]:
    if month is None or year is None:
        raise ValidationError("Month and year are required")
    month = coerce_int("month", month)
    year = coerce_int("year", year)
    if month < 1 or month > 12:
        raise ValidationError("Month must be between 1 and 12")
    if year <= 0:
        raise ValidationError("Year must be a positive integer")
    return month, year


def _seed_rows(prior: Audit | None) -> list[dict]:
    """Quantities for the new audit's ItemDetails, without prices."""
    if prior is not None and prior.item_details:
        return [
            {
                "room_id": d.room_id,
                "item_id": d.item_id,
                "active_quantity": d.active_quantity,
                "broken_quantity": d.broken_quantity,
                "inactive_quantity": d.inactive_quantity,
            }
            for d in sorted(prior.item_details, key=lambda d: d.id)
        ]

    room_ids = [room_id for (room_id,) in db.session.query(Room.id).order_by(Room.id)]
    item_ids = [item_id for (item_id,) in db.session.query(Item.id).order_by(Item.id)]
    return [
        {
            "room_id": room_id,
            "item_id": item_id,
            "active_quantity": 0,
            "broken_quantity": 0,
            "inactive_quantity": 0,
        }
        for room_id in room_ids
        for item_id in item_ids
    ]


# =============================================================================
# READ SIDE
# =============================================================================


def _sorted_details(audit: Audit) -> list[ItemDetails]:
    return sorted(
        audit.item_details,
        key=lambda d: (
            (d.room.name if d.room else "").lower(),
            (d.item.name if d.item else "").lower(),
            d.id,
        ),
    )


def audit_detail(audit: Audit) -> dict:
    """Audit dict with participants, item details grouped by room, and history."""
    details = _sorted_details(audit)

    by_room: dict[int, dict] = {}
    for detail in details:
        group = by_room.get(detail.room_id)
        if group is None:
            group = by_room[detail.room_id] = {
                "room": detail.room.to_dict() if detail.room else None,
                "item_details": [],
            }
        group["item_details"].append(detail.to_dict(include_relations=True))

    return {
        **audit.to_dict(),
        "participants": [u.to_summary() for u in audit.participants],
        "created_by": audit.created_by.to_summary() if audit.created_by else None,
        "item_details": [d.to_dict(include_relations=True) for d in details],
        "details_by_room": list(by_room.values()),
        "history": get_audit_history(audit.id),
    }


def get_latest_audit() -> dict | None:
    """Detail of the newest audit, or None when no audit exists yet."""
    audit = find_latest_audit()
    if audit is None:
        return None
    return audit_detail(audit)


def get_audit_by_id(audit_id: int) -> dict:
    return audit_detail(get_audit_or_404(audit_id))


def get_all_audits() -> list[dict]:
    audits = db.session.query(Audit).order_by(Audit.year.desc(), Audit.month.desc(), Audit.id.desc()).all()
    return [
        {
            **audit.to_dict(),
            "participants": [u.to_summary() for u in audit.participants],
            "item_count": len(audit.item_details),
            "participant_count": len(audit.participants),
        }
        for audit in audits
    ]


# =============================================================================
# WRITE SIDE
# =============================================================================


def create_audit(
    *,
    month,
    year,
    notes: str | None = None,
    participant_ids: list[int] | None = None,
    user_id: int | None,
) -> dict:
    """
    Create the audit for (month, year) and seed its item details.

    Raises:
        ValidationError: month/year missing or out of range
        ConflictError: an audit for (month, year) already exists
        NotFoundError: unknown participant id
    """
    month, year = _validate_period(month, year)

    if db.session.query(Audit.id).filter_by(month=month, year=year).first():
        raise ConflictError(f"Audit for {month}/{year} already exists")

    participants = get_users_by_ids(participant_ids)
    prior = find_latest_audit()
    if not participants and prior is not None:
        participants = list(prior.participants)

    rows = _seed_rows(prior)
    item_ids = sorted({row["item_id"] for row in rows})
    latest_by_item = latest_purchases_by_item(item_ids)
    items = {i.id: i for i in db.session.query(Item).filter(Item.id.in_(item_ids))} if item_ids else {}

    with atomic(f"Audit for {month}/{year} already exists"):
        audit = Audit(
            month=month,
            year=year,
            status=AUDIT_STATUS_IN_PROGRESS,
            notes=notes or None,
            created_by_user_id=user_id,
        )
        audit.participants = participants
        db.session.add(audit)
        db.session.flush()

        for row in rows:
            unit_price = resolve_item_price(items[row["item_id"]], latest_by_item)
            db.session.add(ItemDetails(
                audit_id=audit.id,
                unit_price=unit_price,
                total_price=compute_total_price(
                    unit_price,
                    row["active_quantity"],
                    row["broken_quantity"],
                    row["inactive_quantity"],
                ),
                **row,
            ))
        db.session.flush()

        seeded_from = prior.id if prior is not None and prior.item_details else None
        record_activity(
            user_id=user_id,
            entity=entity_ref(audit),
            action=ActionType.CREATE,
            after=audit.to_dict(),
            description=(
                f"Created audit {audit.label} with {len(participants)} participant(s) "
                f"and {len(rows)} item(s)"
            ),
            metadata={
                "audit_id": audit.id,
                "participant_count": len(participants),
                "item_count": len(rows),
                "seeded_from": seeded_from,
            },
        )

    db.session.refresh(audit)
    return audit_detail(audit)


def update_audit(
    audit_id: int,
    *,
    status: str | None = None,
    notes: str | None = None,
    participant_ids: list[int] | None = None,
    user_id: int | None,
) -> dict:
    """
    Patch status, notes and/or participants.

    Empty-string status/notes and participant_ids=None leave the field alone.
    Nothing changed: no write and no history row.

    Raises:
        NotFoundError: audit or participant missing
        ValidationError: unknown status
        AuditStateError: audit is terminal, or transition not allowed
    """
    audit = get_audit_or_404(audit_id)

    new_status = status or None
    if new_status is not None and new_status not in AUDIT_STATUSES:
        raise ValidationError(f"Status must be one of: {', '.join(AUDIT_STATUSES)}")
    new_participants = get_users_by_ids(participant_ids) if participant_ids is not None else None

    before = audit.to_dict()
    after = dict(before)
    if new_status is not None:
        after["status"] = new_status
    if notes:
        after["notes"] = notes
    if new_participants is not None:
        after["participant_ids"] = sorted(u.id for u in new_participants)

    changes = diff_fields(before, after, AUDIT_FIELD_LABELS)
    if not changes:
        return audit_detail(audit)

    if audit.status in TERMINAL_STATUSES:
        raise AuditStateError(
            f"Audit {audit.label} is {audit.status.lower()} and cannot be modified",
            details={"audit_id": audit.id, "status": audit.status},
        )
    if after["status"] != audit.status and after["status"] not in AUDIT_TRANSITIONS[audit.status]:
        raise AuditStateError(f"Cannot change audit status from {audit.status} to {after['status']}")

    with atomic():
        audit.status = after["status"]
        audit.notes = after["notes"]
        if new_participants is not None:
            audit.participants = new_participants
        db.session.flush()
        record_activity(
            user_id=user_id,
            entity=entity_ref(audit),
            action=ActionType.UPDATE,
            before=before,
            after=audit.to_dict(),
            changes=changes,
            description=f"Updated audit {audit.label}: {', '.join(changes)}",
            metadata={"audit_id": audit.id},
        )

    return audit_detail(audit)


def complete_audit(audit_id: int, *, user_id: int | None) -> dict:
    audit = get_audit_or_404(audit_id)
    require_in_progress(audit, f"Audit {audit.label} is already {audit.status.lower()}")
    return update_audit(audit_id, status=AUDIT_STATUS_COMPLETED, user_id=user_id)


def cancel_audit(audit_id: int, *, user_id: int | None) -> dict:
    audit = get_audit_or_404(audit_id)
    require_in_progress(audit, f"Audit {audit.label} is already {audit.status.lower()}")
    return update_audit(audit_id, status=AUDIT_STATUS_CANCELED, user_id=user_id)


def delete_audit(audit_id: int, *, user_id: int | None) -> dict:
    """
    Hard-delete an audit and its item details.

    Completed audits are permanent.
    """
    audit = get_audit_or_404(audit_id)
    if audit.status == AUDIT_STATUS_COMPLETED:
        raise AuditStateError(
            "Completed audits cannot be deleted",
            details={"audit_id": audit.id, "status": audit.status},
        )

    before = {**audit.to_dict(), "item_count": len(audit.item_details)}
    with atomic():
        record_activity(
            user_id=user_id,
            entity=entity_ref(audit),
            action=ActionType.DELETE,
            before=before,
            description=f"Deleted audit {audit.label} with {before['item_count']} item(s)",
            metadata={"audit_id": audit.id},
        )
        db.session.delete(audit)

    return before
