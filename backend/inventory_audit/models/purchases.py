from __future__ import annotations

from ..extensions import db
from ..services.pricing import money_str
from inventory_audit.time_utils import to_utc_z


class AssetPurchase(db.Model):
    """
    Immutable record of a purchasing event.

    Creating a purchase folds its quantity into the latest in-progress audit
    once. Editing or deleting the purchase afterwards never touches the
    folded ItemDetails row.
    """
    __tablename__ = "asset_purchases"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_asset_purchases_quantity_positive"),
        db.Index("ix_asset_purchases_room_date", "room_id", "purchase_date"),
        db.Index("ix_asset_purchases_item_date", "item_id", "purchase_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    room_id = db.Column(db.Integer, db.ForeignKey("rooms.id", ondelete="RESTRICT"), nullable=False)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id", ondelete="RESTRICT"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    total_cost = db.Column(db.Numeric(14, 2), nullable=False)

    # Business time of the purchase; created_at is system time
    purchase_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    notes = db.Column(db.Text, nullable=True)

    added_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    room = db.relationship("Room")
    item = db.relationship("Item")
    added_by = db.relationship("User")

    def __repr__(self) -> str:
        return f"<AssetPurchase id={self.id} item_id={self.item_id} qty={self.quantity}>"

    def to_dict(self, include_relations: bool = False) -> dict:
        data = {
            "id": self.id,
            "room_id": self.room_id,
            "item_id": self.item_id,
            "quantity": self.quantity,
            "unit_price": money_str(self.unit_price),
            "total_cost": money_str(self.total_cost),
            "purchase_date": to_utc_z(self.purchase_date),
            "notes": self.notes,
            "added_by_user_id": self.added_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_relations:
            data["room"] = self.room.to_dict() if self.room else None
            data["item"] = self.item.to_dict() if self.item else None
            data["user"] = self.added_by.to_summary() if self.added_by else None
        return data
