from __future__ import annotations

from ..extensions import db
from inventory_audit.time_utils import to_utc_z, utcnow


class RecentActivityHistory(db.Model):
    """
    Append-only activity trail.

    INVARIANTS:
    - Rows are written inside the same DB transaction as the change they record.
    - No updates or deletes of existing rows.
    - (entity_type, entity_id) points at any supported entity kind; metadata
      carries correlation keys such as audit_id / room_id / item_id.
    """
    __tablename__ = "recent_activity_history"
    __table_args__ = (
        db.Index("ix_activity_entity", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    entity_type = db.Column(db.String(32), nullable=False)
    entity_id = db.Column(db.Integer, nullable=True)
    entity_name = db.Column(db.String(255), nullable=True)
    action_type = db.Column(db.String(16), nullable=False, index=True)

    before = db.Column(db.JSON, nullable=True)
    after = db.Column(db.JSON, nullable=True)
    change_summary = db.Column(db.JSON, nullable=True)
    description = db.Column(db.Text, nullable=True)
    # "metadata" is reserved on declarative classes
    metadata_json = db.Column("metadata", db.JSON, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user": self.user.to_summary() if self.user else None,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "entity_name": self.entity_name,
            "action_type": self.action_type,
            "before": self.before,
            "after": self.after,
            "change_summary": self.change_summary,
            "description": self.description,
            "metadata": self.metadata_json,
            "occurred_at": to_utc_z(self.occurred_at),
        }
