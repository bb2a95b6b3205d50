# Overview: Service-layer operations for maintenance; repricing audit item details.

from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import Audit, Item, ItemDetails
from .activity_service import ActionType, diff_fields, entity_ref, record_activity
from .audit_service import AUDIT_STATUS_IN_PROGRESS, get_audit_or_404
from .catalog_service import latest_purchases_by_item, resolve_item_price
from .pricing import ZERO, compute_total_price
from .transaction import atomic


def reprice_item_details(*, audit_id: int | None = None, only_unpriced: bool = False) -> dict:
    """
    Re-resolve unit prices (item master, latest purchase, 0) and recompute totals.

    Only rows of in-progress audits are touched; rows of completed or
    canceled audits count as skipped. With only_unpriced, rows that already
    carry a non-zero total are left alone. Unchanged rows write nothing.
    """
    if audit_id is not None:
        get_audit_or_404(audit_id)

    query = db.session.query(ItemDetails).join(Audit, Audit.id == ItemDetails.audit_id)
    if audit_id is not None:
        query = query.filter(ItemDetails.audit_id == audit_id)
    if only_unpriced:
        query = query.filter(or_(ItemDetails.total_price.is_(None), ItemDetails.total_price == ZERO))
    rows = query.order_by(ItemDetails.id.asc()).all()

    latest_by_item = latest_purchases_by_item({row.item_id for row in rows})
    items = {item.id: item for item in db.session.query(Item).all()}

    updated = skipped = 0
    with atomic():
        for row in rows:
            if row.audit.status != AUDIT_STATUS_IN_PROGRESS:
                skipped += 1
                continue

            unit_price = resolve_item_price(items[row.item_id], latest_by_item)
            total_price = compute_total_price(
                unit_price, row.active_quantity, row.broken_quantity, row.inactive_quantity
            )
            if row.unit_price == unit_price and row.total_price == total_price:
                skipped += 1
                continue

            before = row.to_dict()
            row.unit_price = unit_price
            row.total_price = total_price
            db.session.flush()
            after = row.to_dict()
            changes = diff_fields(before, after, {"unit_price": "Unit price", "total_price": "Total price"})
            ref = entity_ref(row)
            record_activity(
                user_id=None,
                entity=ref,
                action=ActionType.UPDATE,
                before=before,
                after=after,
                changes=changes,
                description=f"Repriced {ref.name}: {', '.join(changes)}",
                metadata={
                    "audit_id": row.audit_id,
                    "room_id": row.room_id,
                    "item_id": row.item_id,
                    "source": "maintenance",
                },
            )
            updated += 1

    current_app.logger.info("Repriced item details: %s updated, %s skipped", updated, skipped)
    return {"updated": updated, "skipped": skipped}
