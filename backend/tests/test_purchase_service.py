"""
Purchase ingestion: recording, folding into the in-progress audit, master
price updates, edits that never touch audits, and summaries.
"""

from decimal import Decimal

import pytest

from inventory_audit.errors import NotFoundError, ValidationError
from inventory_audit.models import AssetPurchase, Item, ItemDetails, RecentActivityHistory
from inventory_audit.services import audit_service, item_details_service, purchase_service
from inventory_audit.services.pricing import compute_total_price, quantize_money


@pytest.fixture
def stocked_audit(db_session, admin_user, make_room, make_item):
    """Audit whose only row holds 10 units at 100.00 (total 1000.00)."""
    room = make_room("Server Room")
    item = make_item("Monitor", unit_price="100")
    audit = audit_service.create_audit(month=1, year=2025, user_id=admin_user.id)
    detail_id = audit["item_details"][0]["id"]
    item_details_service.update_item_detail(detail_id, active_quantity=10, user_id=admin_user.id)
    return {"room": room, "item": item, "audit": audit, "detail_id": detail_id}


class TestFold:
    def test_fold_blends_unit_price(self, db_session, admin_user, stocked_audit):
        result = purchase_service.create_asset_purchase(
            room_id=stocked_audit["room"].id,
            item_id=stocked_audit["item"].id,
            quantity=5,
            unit_price="120",
            user_id=admin_user.id,
        )

        assert result["total_cost"] == "600.00"
        assert result["audit_fold"]["effect"] == "updated"

        row = db_session.get(ItemDetails, stocked_audit["detail_id"])
        assert row.active_quantity == 15
        assert row.total_price == Decimal("1600.00")
        assert quantize_money(row.unit_price) == Decimal("106.67")
        assert compute_total_price(row.unit_price, 15, 0, 0) == row.total_price

    def test_fold_into_large_row_keeps_total_consistent(self, db_session, admin_user, make_room, make_item):
        room = make_room("Warehouse")
        item = make_item("Screw", unit_price="1.00")
        audit = audit_service.create_audit(month=2, year=2025, user_id=admin_user.id)
        detail_id = audit["item_details"][0]["id"]
        item_details_service.update_item_detail(detail_id, active_quantity=20000, user_id=admin_user.id)

        purchase_service.create_asset_purchase(
            room_id=room.id, item_id=item.id, quantity=1, unit_price="0.01", user_id=admin_user.id
        )

        row = db_session.get(ItemDetails, detail_id)
        assert row.active_quantity == 20001
        assert row.total_price == Decimal("20000.01")
        assert compute_total_price(row.unit_price, 20001, 0, 0) == row.total_price

    def test_fold_updates_item_master_price(self, db_session, admin_user, stocked_audit):
        purchase_service.create_asset_purchase(
            room_id=stocked_audit["room"].id,
            item_id=stocked_audit["item"].id,
            quantity=1,
            unit_price="130.25",
            user_id=admin_user.id,
        )
        assert db_session.get(Item, stocked_audit["item"].id).unit_price == Decimal("130.25")

    def test_fold_creates_row_for_new_pair(self, db_session, admin_user, stocked_audit, make_room):
        lobby = make_room("Lobby")
        result = purchase_service.create_asset_purchase(
            room_id=lobby.id,
            item_id=stocked_audit["item"].id,
            quantity=3,
            unit_price="90",
            user_id=admin_user.id,
        )
        assert result["audit_fold"]["effect"] == "created"

        row = db_session.query(ItemDetails).filter_by(
            audit_id=stocked_audit["audit"]["id"], room_id=lobby.id
        ).one()
        assert (row.active_quantity, row.broken_quantity, row.inactive_quantity) == (3, 0, 0)
        assert row.unit_price == Decimal("90")
        assert row.total_price == Decimal("270.00")

    def test_fold_history_tagged_with_source(self, db_session, admin_user, stocked_audit):
        purchase_service.create_asset_purchase(
            room_id=stocked_audit["room"].id,
            item_id=stocked_audit["item"].id,
            quantity=2,
            unit_price="100",
            user_id=admin_user.id,
        )
        rows = db_session.query(RecentActivityHistory).filter(
            RecentActivityHistory.entity_type.in_(["ItemDetails", "AssetPurchase"]),
            RecentActivityHistory.action_type.in_(["CREATE", "UPDATE"]),
        ).all()
        sources = {(r.entity_type, (r.metadata_json or {}).get("source")) for r in rows}
        assert ("AssetPurchase", "asset_purchase") in sources
        assert ("ItemDetails", "asset_purchase") in sources

    def test_completed_audit_is_not_folded(self, db_session, admin_user, stocked_audit):
        audit_service.complete_audit(stocked_audit["audit"]["id"], user_id=admin_user.id)

        result = purchase_service.create_asset_purchase(
            room_id=stocked_audit["room"].id,
            item_id=stocked_audit["item"].id,
            quantity=5,
            unit_price="120",
            user_id=admin_user.id,
        )
        assert result["audit_fold"] is None
        assert db_session.query(AssetPurchase).count() == 1
        assert db_session.get(ItemDetails, stocked_audit["detail_id"]).active_quantity == 10

    def test_purchase_without_any_audit(self, db_session, admin_user, make_room, make_item):
        room = make_room("Depot")
        item = make_item("Cable")
        result = purchase_service.create_asset_purchase(
            room_id=room.id, item_id=item.id, quantity=4, unit_price="2.50", user_id=admin_user.id
        )
        assert result["audit_fold"] is None
        assert result["item"]["unit_price"] == "2.50"
        assert db_session.query(ItemDetails).count() == 0

    def test_new_audit_prices_from_latest_purchase(self, db_session, admin_user, make_room, make_item):
        room = make_room("Depot")
        item = make_item("Cable", unit_price="1.00")
        purchase_service.create_asset_purchase(
            room_id=room.id, item_id=item.id, quantity=4, unit_price="2.50", user_id=admin_user.id
        )
        audit = audit_service.create_audit(month=6, year=2025, user_id=admin_user.id)
        assert Decimal(audit["item_details"][0]["unit_price"]) == Decimal("2.50")


class TestValidation:
    @pytest.mark.parametrize("quantity", [0, -3, "abc", 1.5])
    def test_quantity_must_be_positive_int(self, db_session, admin_user, make_room, make_item, quantity):
        room = make_room("Depot")
        item = make_item("Cable")
        with pytest.raises(ValidationError):
            purchase_service.create_asset_purchase(
                room_id=room.id, item_id=item.id, quantity=quantity, unit_price="1", user_id=admin_user.id
            )
        assert db_session.query(AssetPurchase).count() == 0

    def test_negative_price(self, db_session, admin_user, make_room, make_item):
        room = make_room("Depot")
        item = make_item("Cable")
        with pytest.raises(ValidationError):
            purchase_service.create_asset_purchase(
                room_id=room.id, item_id=item.id, quantity=1, unit_price="-0.01", user_id=admin_user.id
            )

    def test_sub_cent_price_rejected(self, db_session, admin_user, make_room, make_item):
        room = make_room("Depot")
        item = make_item("Cable", unit_price="10")
        with pytest.raises(ValidationError, match="2 decimal places"):
            purchase_service.create_asset_purchase(
                room_id=room.id, item_id=item.id, quantity=1, unit_price="10.005", user_id=admin_user.id
            )
        assert db_session.query(AssetPurchase).count() == 0
        assert db_session.get(Item, item.id).unit_price == Decimal("10.00")

    def test_bad_date(self, db_session, admin_user, make_room, make_item):
        room = make_room("Depot")
        item = make_item("Cable")
        with pytest.raises(ValidationError):
            purchase_service.create_asset_purchase(
                room_id=room.id, item_id=item.id, quantity=1, unit_price="1",
                purchase_date="not-a-date", user_id=admin_user.id,
            )

    def test_unknown_item(self, db_session, admin_user, make_room):
        room = make_room("Depot")
        with pytest.raises(NotFoundError):
            purchase_service.create_asset_purchase(
                room_id=room.id, item_id=999, quantity=1, unit_price="1", user_id=admin_user.id
            )


class TestEditAndDelete:
    def test_edit_never_touches_item_details(self, db_session, admin_user, stocked_audit):
        created = purchase_service.create_asset_purchase(
            room_id=stocked_audit["room"].id,
            item_id=stocked_audit["item"].id,
            quantity=5,
            unit_price="120",
            user_id=admin_user.id,
        )
        row = db_session.get(ItemDetails, stocked_audit["detail_id"])
        snapshot = (row.active_quantity, row.unit_price, row.total_price)

        updated = purchase_service.update_asset_purchase(
            created["id"], quantity=8, unit_price="110", user_id=admin_user.id
        )
        assert updated["total_cost"] == "880.00"

        purchase_service.delete_asset_purchase(created["id"], user_id=admin_user.id)

        row = db_session.get(ItemDetails, stocked_audit["detail_id"])
        assert (row.active_quantity, row.unit_price, row.total_price) == snapshot
        assert db_session.query(AssetPurchase).count() == 0

    def test_edit_history_lists_changes(self, db_session, admin_user, make_room, make_item):
        room = make_room("Depot")
        item = make_item("Cable")
        created = purchase_service.create_asset_purchase(
            room_id=room.id, item_id=item.id, quantity=2, unit_price="5", user_id=admin_user.id
        )
        purchase_service.update_asset_purchase(created["id"], notes="invoice 42", user_id=admin_user.id)

        row = db_session.query(RecentActivityHistory).filter_by(
            entity_type="AssetPurchase", action_type="UPDATE"
        ).one()
        assert row.change_summary["changes"] == ["Notes: none → invoice 42"]

    def test_edit_rejects_sub_cent_price(self, db_session, admin_user, make_room, make_item):
        room = make_room("Depot")
        item = make_item("Cable")
        created = purchase_service.create_asset_purchase(
            room_id=room.id, item_id=item.id, quantity=2, unit_price="5", user_id=admin_user.id
        )
        with pytest.raises(ValidationError):
            purchase_service.update_asset_purchase(created["id"], unit_price="4.999", user_id=admin_user.id)
        assert db_session.get(AssetPurchase, created["id"]).unit_price == Decimal("5.00")

    def test_missing_purchase(self, db_session, admin_user):
        with pytest.raises(NotFoundError):
            purchase_service.delete_asset_purchase(5, user_id=admin_user.id)


class TestReads:
    @pytest.fixture
    def purchases(self, db_session, admin_user, make_room, make_item):
        lab = make_room("Lab")
        hall = make_room("Hall")
        pen = make_item("Pen")
        lamp = make_item("Lamp")
        for room, item, qty, price, when in [
            (lab, pen, 10, "1.50", "2025-01-10"),
            (lab, lamp, 2, "40", "2025-02-01"),
            (hall, pen, 5, "1.50", "2025-02-15"),
        ]:
            purchase_service.create_asset_purchase(
                room_id=room.id, item_id=item.id, quantity=qty, unit_price=price,
                purchase_date=when, user_id=admin_user.id,
            )
        return {"lab": lab, "hall": hall, "pen": pen, "lamp": lamp}

    def test_list_newest_first_with_filters(self, db_session, purchases):
        all_rows = purchase_service.get_all_asset_purchases()
        assert [r["purchase_date"][:10] for r in all_rows] == ["2025-02-15", "2025-02-01", "2025-01-10"]

        lab_rows = purchase_service.get_all_asset_purchases(room_id=purchases["lab"].id)
        assert len(lab_rows) == 2

        january = purchase_service.get_all_asset_purchases(start_date="2025-01-01", end_date="2025-01-31")
        assert [r["item"]["name"] for r in january] == ["Pen"]

    def test_summary_by_room_and_item(self, db_session, purchases):
        summary = purchase_service.get_purchase_summary()
        assert summary["total_purchases"] == 3
        assert summary["total_cost"] == "102.50"

        by_room = {r["room_name"]: r for r in summary["by_room"]}
        assert by_room["Lab"]["total_items"] == 12
        assert by_room["Lab"]["total_cost"] == "95.00"

        by_item = {i["item_name"]: i for i in summary["by_item"]}
        assert by_item["Pen"]["total_quantity"] == 15
        assert by_item["Pen"]["total_cost"] == "22.50"
        assert {r["room_name"] for r in by_item["Pen"]["rooms"]} == {"Lab", "Hall"}

    def test_summary_rejects_inverted_range(self, db_session):
        with pytest.raises(ValidationError):
            purchase_service.get_purchase_summary(start_date="2025-03-01", end_date="2025-01-01")
