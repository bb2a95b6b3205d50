"""
User accounts: lookups, edits with history, and the restrict-on-delete rule.
"""

import pytest

from inventory_audit.errors import ConflictError, NotFoundError, ValidationError
from inventory_audit.models import RecentActivityHistory, User
from inventory_audit.services import audit_service, purchase_service, user_service


def _user_history(action_type):
    return RecentActivityHistory.query.filter_by(entity_type="User", action_type=action_type).all()


class TestGetUsersByIds:
    def test_none_means_nobody(self, db_session):
        assert user_service.get_users_by_ids(None) == []

    def test_dedupes_and_coerces_digit_strings(self, db_session, admin_user, viewer_user):
        users = user_service.get_users_by_ids([str(viewer_user.id), admin_user.id, viewer_user.id])
        assert [u.id for u in users] == [viewer_user.id, admin_user.id]

    @pytest.mark.parametrize("user_ids", [5, "12", {"id": 1}])
    def test_rejects_non_list(self, db_session, user_ids):
        with pytest.raises(ValidationError, match="must be a list"):
            user_service.get_users_by_ids(user_ids)

    def test_rejects_non_integer_element(self, db_session):
        with pytest.raises(ValidationError):
            user_service.get_users_by_ids(["3x"])

    def test_missing_ids_reported(self, db_session, admin_user):
        with pytest.raises(NotFoundError) as exc:
            user_service.get_users_by_ids([admin_user.id, 404, 405])
        assert exc.value.details == {"missing_user_ids": [404, 405]}


class TestUpdateUser:
    def test_update_records_changes(self, db_session, admin_user, viewer_user):
        auditor_role = user_service.get_role_by_name("AUDITOR")
        after = user_service.update_user(
            viewer_user.id,
            patch={"name": "Vera V.", "role_id": auditor_role.id},
            user_id=admin_user.id,
        )

        assert after["name"] == "Vera V."
        assert after["role"] == "AUDITOR"
        row = _user_history("UPDATE")[0]
        assert row.user_id == admin_user.id
        assert "Name: Vera Viewer → Vera V." in row.change_summary["changes"]
        assert "Role: VIEWER → AUDITOR" in row.change_summary["changes"]

    def test_noop_writes_nothing(self, db_session, admin_user, viewer_user):
        user_service.update_user(viewer_user.id, patch={"name": "Vera Viewer"}, user_id=admin_user.id)
        assert _user_history("UPDATE") == []

    def test_duplicate_mobile(self, db_session, admin_user, viewer_user):
        with pytest.raises(ConflictError):
            user_service.update_user(viewer_user.id, patch={"mobile": admin_user.mobile}, user_id=admin_user.id)
        assert db_session.get(User, viewer_user.id).mobile == "01700000003"

    def test_unknown_role(self, db_session, admin_user, viewer_user):
        with pytest.raises(NotFoundError):
            user_service.update_user(viewer_user.id, patch={"role_id": 999}, user_id=admin_user.id)

    def test_cannot_deactivate_self(self, db_session, admin_user):
        with pytest.raises(ValidationError):
            user_service.update_user(admin_user.id, patch={"is_active": False}, user_id=admin_user.id)
        assert db_session.get(User, admin_user.id).is_active is True


class TestDeleteUser:
    def test_delete_unreferenced_user(self, db_session, admin_user, viewer_user):
        before = user_service.delete_user(viewer_user.id, user_id=admin_user.id)

        assert before["mobile"] == "01700000003"
        assert db_session.get(User, viewer_user.id) is None
        row = _user_history("DELETE")[0]
        assert row.entity_name == "Vera Viewer"
        assert row.after is None

    def test_creator_of_audit_is_refused(self, db_session, admin_user, auditor_user):
        audit_service.create_audit(month=1, year=2025, user_id=auditor_user.id)

        with pytest.raises(ConflictError) as exc:
            user_service.delete_user(auditor_user.id, user_id=admin_user.id)
        assert exc.value.details["audits_created"] == 1
        assert db_session.get(User, auditor_user.id) is not None

    def test_purchaser_is_refused(self, db_session, admin_user, auditor_user, make_room, make_item):
        room = make_room("Depot")
        item = make_item("Cable")
        purchase_service.create_asset_purchase(
            room_id=room.id, item_id=item.id, quantity=1, unit_price="2", user_id=auditor_user.id
        )

        with pytest.raises(ConflictError) as exc:
            user_service.delete_user(auditor_user.id, user_id=admin_user.id)
        assert exc.value.details["asset_purchases"] == 1

    def test_cannot_delete_self(self, db_session, admin_user):
        with pytest.raises(ValidationError):
            user_service.delete_user(admin_user.id, user_id=admin_user.id)

    def test_missing_user(self, db_session, admin_user):
        with pytest.raises(NotFoundError):
            user_service.delete_user(999, user_id=admin_user.id)


class TestRoles:
    def test_list_roles_sorted(self, db_session, setup_roles):
        assert [r["name"] for r in user_service.list_roles()] == ["ADMIN", "AUDITOR", "MANAGER", "VIEWER"]
