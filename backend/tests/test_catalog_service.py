"""
Rooms and items: CRUD, history and the restrict-on-delete rule.
"""

from decimal import Decimal

import pytest

from inventory_audit.errors import ConflictError, NotFoundError, ValidationError
from inventory_audit.models import AssetPurchase, RecentActivityHistory, Room
from inventory_audit.services import audit_service, catalog_service, purchase_service


def _history(entity_type, action_type=None):
    query = RecentActivityHistory.query.filter_by(entity_type=entity_type)
    if action_type:
        query = query.filter_by(action_type=action_type)
    return query.order_by(RecentActivityHistory.id.asc()).all()


class TestRooms:
    def test_create_room_writes_history(self, db_session, admin_user):
        room = catalog_service.create_room(name="  Lab 1 ", floor="2", user_id=admin_user.id)

        assert room["name"] == "Lab 1"
        rows = _history("Room", "CREATE")
        assert len(rows) == 1
        assert rows[0].user_id == admin_user.id
        assert rows[0].before is None

    def test_create_room_requires_name(self, db_session):
        with pytest.raises(ValidationError):
            catalog_service.create_room(name="   ", user_id=None)

    def test_update_room_records_changes(self, db_session, make_room):
        room = make_room("Lab 1", floor="1")

        updated = catalog_service.update_room(room.id, patch={"floor": "3"}, user_id=None)

        assert updated["floor"] == "3"
        row = _history("Room", "UPDATE")[0]
        assert row.change_summary["changes"] == ["Floor: 1 → 3"]

    def test_update_room_noop_writes_nothing(self, db_session, make_room):
        room = make_room("Lab 1")

        result = catalog_service.update_room(room.id, patch={"name": ""}, user_id=None)

        assert result["name"] == "Lab 1"
        assert _history("Room", "UPDATE") == []

    def test_delete_unreferenced_room(self, db_session, make_room):
        room = make_room("Spare")
        catalog_service.delete_room(room.id, user_id=None)

        assert db_session.get(Room, room.id) is None
        assert len(_history("Room", "DELETE")) == 1

    def test_delete_room_referenced_by_audit_is_refused(self, db_session, make_room, make_item):
        room = make_room("Lab 1")
        make_item("Chair", unit_price="10")
        audit_service.create_audit(month=1, year=2025, user_id=None)

        with pytest.raises(ConflictError) as excinfo:
            catalog_service.delete_room(room.id, user_id=None)

        assert excinfo.value.details == {"item_details": 1, "asset_purchases": 0}
        assert db_session.get(Room, room.id) is not None

    def test_list_rooms_counts_item_details(self, db_session, make_room, make_item):
        make_room("B Room")
        make_room("A Room")
        make_item("Chair")
        audit_service.create_audit(month=1, year=2025, user_id=None)

        rooms = catalog_service.list_rooms()

        assert [r["name"] for r in rooms] == ["A Room", "B Room"]
        assert [r["item_detail_count"] for r in rooms] == [1, 1]

    def test_missing_room(self, db_session):
        with pytest.raises(NotFoundError):
            catalog_service.get_room(999)


class TestItems:
    def test_create_item_with_price(self, db_session):
        item = catalog_service.create_item(name="Chair", unit="pcs", unit_price="12.5", user_id=None)

        assert item["unit_price"] == "12.50"
        assert item["unit"] == "pcs"

    def test_create_item_rejects_negative_price(self, db_session):
        with pytest.raises(ValidationError):
            catalog_service.create_item(name="Chair", unit_price="-1", user_id=None)

    def test_create_item_rejects_sub_cent_price(self, db_session):
        with pytest.raises(ValidationError):
            catalog_service.create_item(name="Chair", unit_price="12.345", user_id=None)

    def test_update_item_price(self, db_session, make_item):
        item = make_item("Chair", unit_price="10")

        updated = catalog_service.update_item(item.id, patch={"unit_price": "15"}, user_id=None)

        assert updated["unit_price"] == "15.00"
        assert _history("Item", "UPDATE")[0].change_summary["changes"] == ["Unit price: 10.00 → 15.00"]

    def test_update_item_noop(self, db_session, make_item):
        item = make_item("Chair", unit_price="10")

        catalog_service.update_item(item.id, patch={"unit_price": "10.00", "name": ""}, user_id=None)

        assert _history("Item", "UPDATE") == []

    def test_delete_item_referenced_by_purchase_is_refused(self, db_session, make_room, make_item):
        room = make_room("Lab 1")
        item = make_item("Chair")
        purchase_service.create_asset_purchase(
            room_id=room.id, item_id=item.id, quantity=1, unit_price="5", user_id=None,
        )
        with pytest.raises(ConflictError) as excinfo:
            catalog_service.delete_item(item.id, user_id=None)

        assert excinfo.value.details["asset_purchases"] == 1


class TestPriceLookup:
    def test_master_edit_after_purchase_wins(self, db_session, make_room, make_item):
        room = make_room("Lab 1")
        item = make_item("Chair", unit_price="10")
        purchase_service.create_asset_purchase(
            room_id=room.id, item_id=item.id, quantity=1,
            unit_price="40", purchase_date="2025-01-01", user_id=None,
        )
        catalog_service.update_item(item.id, patch={"unit_price": "50"}, user_id=None)

        assert catalog_service.resolve_item_price(item) == Decimal("50")

    def test_latest_purchase_when_master_unset(self, db_session, make_item):
        item = make_item("Chair")
        latest = AssetPurchase(item_id=item.id, unit_price=Decimal("7.25"))

        assert catalog_service.resolve_item_price(item, {item.id: latest}) == Decimal("7.25")

    def test_master_price_when_no_purchase(self, db_session, make_item):
        item = make_item("Chair", unit_price="10")
        assert catalog_service.resolve_item_price(item) == Decimal("10")

    def test_zero_when_nothing_known(self, db_session, make_item):
        item = make_item("Chair")
        assert catalog_service.resolve_item_price(item) == Decimal("0")
