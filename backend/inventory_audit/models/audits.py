from __future__ import annotations

from ..extensions import db
from ..services.pricing import money_str, total_quantity
from inventory_audit.time_utils import to_utc_z


audit_participants = db.Table(
    "audit_participants",
    db.Column("audit_id", db.Integer, db.ForeignKey("audits.id", ondelete="CASCADE"), primary_key=True),
    db.Column("user_id", db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


class Audit(db.Model):
    """
    One audit cycle per calendar month.

    LIFECYCLE:
    1. IN_PROGRESS: item details may be added, edited and removed
    2. COMPLETED: terminal, immutable and undeletable
    3. CANCELED: terminal, item details frozen

    The audit owns its ItemDetails rows (cascade delete).
    """
    __tablename__ = "audits"
    __table_args__ = (
        db.UniqueConstraint("month", "year", name="uq_audits_month_year"),
        db.Index("ix_audits_year_month", "year", "month"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    month = db.Column(db.Integer, nullable=False)
    year = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="IN_PROGRESS", index=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    participants = db.relationship("User", secondary=audit_participants, order_by="User.name")
    created_by = db.relationship("User", foreign_keys=[created_by_user_id])
    item_details = db.relationship(
        "ItemDetails",
        back_populates="audit",
        cascade="all, delete-orphan",
    )

    @property
    def label(self) -> str:
        return f"{self.month}/{self.year}"

    def __repr__(self) -> str:
        return f"<Audit id={self.id} {self.label} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "month": self.month,
            "year": self.year,
            "status": self.status,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "participant_ids": sorted(user.id for user in self.participants),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ItemDetails(db.Model):
    """
    Per-audit snapshot of one room/item pair.

    One row per (room, item, audit). Quantities are non-negative; total_price
    is always unit_price * (active + broken + inactive) at cent precision.
    unit_price keeps 12 decimal places to hold quantity-weighted blends.
    """
    __tablename__ = "item_details"
    __table_args__ = (
        db.UniqueConstraint("room_id", "item_id", "audit_id", name="uq_item_details_room_item_audit"),
        db.CheckConstraint("active_quantity >= 0", name="ck_item_details_active_nonneg"),
        db.CheckConstraint("broken_quantity >= 0", name="ck_item_details_broken_nonneg"),
        db.CheckConstraint("inactive_quantity >= 0", name="ck_item_details_inactive_nonneg"),
        db.Index("ix_item_details_room_item", "room_id", "item_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    room_id = db.Column(db.Integer, db.ForeignKey("rooms.id", ondelete="RESTRICT"), nullable=False)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id", ondelete="RESTRICT"), nullable=False)
    audit_id = db.Column(db.Integer, db.ForeignKey("audits.id", ondelete="CASCADE"), nullable=False, index=True)

    active_quantity = db.Column(db.Integer, nullable=False, default=0)
    broken_quantity = db.Column(db.Integer, nullable=False, default=0)
    inactive_quantity = db.Column(db.Integer, nullable=False, default=0)

    unit_price = db.Column(db.Numeric(24, 12), nullable=True)
    total_price = db.Column(db.Numeric(14, 2), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    room = db.relationship("Room")
    item = db.relationship("Item")
    audit = db.relationship("Audit", back_populates="item_details")

    @property
    def total_quantity(self) -> int:
        return total_quantity(self.active_quantity, self.broken_quantity, self.inactive_quantity)

    def __repr__(self) -> str:
        return (
            f"<ItemDetails id={self.id} audit_id={self.audit_id} room_id={self.room_id} "
            f"item_id={self.item_id} active={self.active_quantity}>"
        )

    def to_dict(self, include_relations: bool = False) -> dict:
        data = {
            "id": self.id,
            "room_id": self.room_id,
            "item_id": self.item_id,
            "audit_id": self.audit_id,
            "active_quantity": self.active_quantity,
            "broken_quantity": self.broken_quantity,
            "inactive_quantity": self.inactive_quantity,
            "total_quantity": self.total_quantity,
            "unit_price": money_str(self.unit_price),
            "total_price": money_str(self.total_price),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_relations:
            data["room"] = self.room.to_dict() if self.room else None
            data["item"] = self.item.to_dict() if self.item else None
            data["audit"] = {
                "id": self.audit.id,
                "month": self.audit.month,
                "year": self.audit.year,
                "status": self.audit.status,
            } if self.audit else None
        return data
