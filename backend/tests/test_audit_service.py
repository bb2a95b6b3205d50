"""
Audit lifecycle: creation and seeding, updates, status transitions, deletes.
"""

from decimal import Decimal

import pytest

from inventory_audit.errors import AuditStateError, ConflictError, NotFoundError, ValidationError
from inventory_audit.models import Audit, ItemDetails, RecentActivityHistory
from inventory_audit.services import audit_service, item_details_service


@pytest.fixture
def catalog(make_room, make_item):
    lab = make_room("Lab")
    office = make_room("Office")
    chair = make_item("Chair", unit_price="10")
    desk = make_item("Desk", unit_price="250.50")
    return {"lab": lab, "office": office, "chair": chair, "desk": desk}


def _history_count(db_session) -> int:
    return db_session.query(RecentActivityHistory).count()


# =============================================================================
# CREATE
# =============================================================================


class TestCreateAudit:
    def test_first_audit_seeds_room_by_item_grid(self, db_session, admin_user, catalog):
        audit = audit_service.create_audit(month=1, year=2025, user_id=admin_user.id)

        assert audit["status"] == "IN_PROGRESS"
        assert len(audit["item_details"]) == 4
        for row in audit["item_details"]:
            assert row["total_quantity"] == 0
            assert Decimal(row["total_price"]) == Decimal("0")

        desk_rows = [r for r in audit["item_details"] if r["item_id"] == catalog["desk"].id]
        assert {Decimal(r["unit_price"]) for r in desk_rows} == {Decimal("250.50")}

    def test_details_grouped_by_room(self, db_session, admin_user, catalog):
        audit = audit_service.create_audit(month=1, year=2025, user_id=admin_user.id)

        rooms = [group["room"]["name"] for group in audit["details_by_room"]]
        assert rooms == ["Lab", "Office"]
        assert all(len(group["item_details"]) == 2 for group in audit["details_by_room"])

    def test_seeding_carries_prior_quantities_forward(self, db_session, admin_user, catalog):
        first = audit_service.create_audit(month=1, year=2025, user_id=admin_user.id)
        lab_chair = next(
            r for r in first["item_details"]
            if r["room_id"] == catalog["lab"].id and r["item_id"] == catalog["chair"].id
        )
        item_details_service.update_item_detail(
            lab_chair["id"], active_quantity=7, broken_quantity=2, inactive_quantity=1, user_id=admin_user.id
        )
        audit_service.complete_audit(first["id"], user_id=admin_user.id)

        second = audit_service.create_audit(month=2, year=2025, user_id=admin_user.id)
        carried = next(
            r for r in second["item_details"]
            if r["room_id"] == catalog["lab"].id and r["item_id"] == catalog["chair"].id
        )
        assert (carried["active_quantity"], carried["broken_quantity"], carried["inactive_quantity"]) == (7, 2, 1)
        assert Decimal(carried["total_price"]) == Decimal("100.00")
        assert len(second["item_details"]) == len(first["item_details"])

    def test_seeding_copies_only_prior_rows(self, db_session, admin_user, catalog, make_room):
        first = audit_service.create_audit(month=1, year=2025, user_id=admin_user.id)
        # A room created after the first audit is not part of the copy
        make_room("Storage")

        second = audit_service.create_audit(month=2, year=2025, user_id=admin_user.id)
        assert len(second["item_details"]) == len(first["item_details"])

    def test_duplicate_month_conflicts(self, db_session, admin_user, catalog):
        audit_service.create_audit(month=3, year=2025, user_id=admin_user.id)
        with pytest.raises(ConflictError):
            audit_service.create_audit(month=3, year=2025, user_id=admin_user.id)
        assert db_session.query(Audit).count() == 1

    @pytest.mark.parametrize("month", [0, 13, -1])
    def test_month_out_of_range(self, db_session, admin_user, month):
        with pytest.raises(ValidationError):
            audit_service.create_audit(month=month, year=2025, user_id=admin_user.id)

    def test_missing_period(self, db_session, admin_user):
        with pytest.raises(ValidationError):
            audit_service.create_audit(month=None, year=2025, user_id=admin_user.id)

    def test_unknown_participant(self, db_session, admin_user):
        with pytest.raises(NotFoundError):
            audit_service.create_audit(month=1, year=2025, participant_ids=[999], user_id=admin_user.id)
        assert db_session.query(Audit).count() == 0

    @pytest.mark.parametrize("participant_ids", [5, "12", ["abc"], [True]])
    def test_malformed_participant_ids(self, db_session, admin_user, participant_ids):
        with pytest.raises(ValidationError):
            audit_service.create_audit(
                month=1, year=2025, participant_ids=participant_ids, user_id=admin_user.id
            )
        assert db_session.query(Audit).count() == 0

    def test_participant_ids_as_digit_strings(self, db_session, admin_user, auditor_user):
        audit = audit_service.create_audit(
            month=1, year=2025, participant_ids=[str(auditor_user.id), auditor_user.id], user_id=admin_user.id
        )
        assert audit["participant_ids"] == [auditor_user.id]

    def test_participants_default_to_prior_audit(self, db_session, admin_user, auditor_user, catalog):
        audit_service.create_audit(
            month=1, year=2025, participant_ids=[admin_user.id, auditor_user.id], user_id=admin_user.id
        )
        second = audit_service.create_audit(month=2, year=2025, participant_ids=[], user_id=admin_user.id)
        assert second["participant_ids"] == sorted([admin_user.id, auditor_user.id])

    def test_writes_create_history(self, db_session, admin_user, catalog):
        audit = audit_service.create_audit(month=1, year=2025, user_id=admin_user.id)

        row = db_session.query(RecentActivityHistory).filter_by(entity_type="Audit", entity_id=audit["id"]).one()
        assert row.action_type == "CREATE"
        assert row.before is None
        assert row.metadata_json["item_count"] == 4
        assert row.metadata_json["seeded_from"] is None


# =============================================================================
# READ
# =============================================================================


class TestReadAudits:
    def test_latest_audit_none_when_empty(self, db_session):
        assert audit_service.get_latest_audit() is None

    def test_latest_audit_orders_by_period(self, db_session, admin_user, catalog):
        audit_service.create_audit(month=12, year=2024, user_id=admin_user.id)
        newest = audit_service.create_audit(month=2, year=2025, user_id=admin_user.id)
        audit_service.create_audit(month=1, year=2025, user_id=admin_user.id)

        assert audit_service.get_latest_audit()["id"] == newest["id"]

    def test_get_by_id_includes_history(self, db_session, admin_user, catalog):
        audit = audit_service.create_audit(month=1, year=2025, user_id=admin_user.id)
        detail_id = audit["item_details"][0]["id"]
        item_details_service.update_item_detail(detail_id, active_quantity=2, user_id=admin_user.id)

        fetched = audit_service.get_audit_by_id(audit["id"])
        kinds = [(h["entity_type"], h["action_type"]) for h in fetched["history"]]
        assert kinds == [("ItemDetails", "UPDATE"), ("Audit", "CREATE")]

    def test_get_by_id_missing(self, db_session):
        with pytest.raises(NotFoundError):
            audit_service.get_audit_by_id(404)

    def test_get_all_audits_counts(self, db_session, admin_user, catalog):
        audit_service.create_audit(month=1, year=2025, participant_ids=[admin_user.id], user_id=admin_user.id)
        audits = audit_service.get_all_audits()
        assert len(audits) == 1
        assert audits[0]["item_count"] == 4
        assert audits[0]["participant_count"] == 1


# =============================================================================
# UPDATE / TRANSITIONS
# =============================================================================


class TestUpdateAudit:
    def test_no_op_update_writes_no_history(self, db_session, admin_user, catalog):
        audit = audit_service.create_audit(month=1, year=2025, notes="start", user_id=admin_user.id)
        before = _history_count(db_session)

        audit_service.update_audit(audit["id"], status="", notes="", user_id=admin_user.id)
        audit_service.update_audit(audit["id"], notes="start", user_id=admin_user.id)

        assert _history_count(db_session) == before

    def test_update_records_changed_fields(self, db_session, admin_user, auditor_user, catalog):
        audit = audit_service.create_audit(month=1, year=2025, user_id=admin_user.id)
        audit_service.update_audit(
            audit["id"], notes="recount lab", participant_ids=[auditor_user.id], user_id=admin_user.id
        )

        row = (
            db_session.query(RecentActivityHistory)
            .filter_by(entity_type="Audit", action_type="UPDATE")
            .one()
        )
        changes = row.change_summary["changes"]
        assert "Notes: none → recount lab" in changes
        assert f"Participants: none → {auditor_user.id}" in changes

    def test_invalid_status(self, db_session, admin_user, catalog):
        audit = audit_service.create_audit(month=1, year=2025, user_id=admin_user.id)
        with pytest.raises(ValidationError):
            audit_service.update_audit(audit["id"], status="ARCHIVED", user_id=admin_user.id)

    def test_completed_audit_is_immutable(self, db_session, admin_user, catalog):
        audit = audit_service.create_audit(month=1, year=2025, user_id=admin_user.id)
        audit_service.complete_audit(audit["id"], user_id=admin_user.id)

        with pytest.raises(AuditStateError):
            audit_service.update_audit(audit["id"], notes="late edit", user_id=admin_user.id)
        with pytest.raises(AuditStateError):
            audit_service.update_audit(audit["id"], status="IN_PROGRESS", user_id=admin_user.id)

    def test_complete_twice_fails(self, db_session, admin_user, catalog):
        audit = audit_service.create_audit(month=1, year=2025, user_id=admin_user.id)
        audit_service.complete_audit(audit["id"], user_id=admin_user.id)
        with pytest.raises(AuditStateError):
            audit_service.complete_audit(audit["id"], user_id=admin_user.id)

    def test_cancel_then_complete_fails(self, db_session, admin_user, catalog):
        audit = audit_service.create_audit(month=1, year=2025, user_id=admin_user.id)
        canceled = audit_service.cancel_audit(audit["id"], user_id=admin_user.id)
        assert canceled["status"] == "CANCELED"
        with pytest.raises(AuditStateError):
            audit_service.complete_audit(audit["id"], user_id=admin_user.id)

    def test_audit_state_error_is_bad_request(self):
        assert AuditStateError("x").status_code == 400


# =============================================================================
# DELETE
# =============================================================================


class TestDeleteAudit:
    def test_delete_in_progress_cascades_details(self, db_session, admin_user, catalog):
        audit = audit_service.create_audit(month=1, year=2025, user_id=admin_user.id)
        deleted = audit_service.delete_audit(audit["id"], user_id=admin_user.id)

        assert deleted["item_count"] == 4
        assert db_session.query(Audit).count() == 0
        assert db_session.query(ItemDetails).count() == 0

        row = db_session.query(RecentActivityHistory).filter_by(action_type="DELETE").one()
        assert row.after is None
        assert row.before["id"] == audit["id"]

    def test_completed_audit_cannot_be_deleted(self, db_session, admin_user, catalog):
        audit = audit_service.create_audit(month=1, year=2025, user_id=admin_user.id)
        audit_service.complete_audit(audit["id"], user_id=admin_user.id)

        with pytest.raises(AuditStateError):
            audit_service.delete_audit(audit["id"], user_id=admin_user.id)
        assert db_session.query(ItemDetails).filter_by(audit_id=audit["id"]).count() == 4

    def test_canceled_audit_can_be_deleted(self, db_session, admin_user, catalog):
        audit = audit_service.create_audit(month=1, year=2025, user_id=admin_user.id)
        audit_service.cancel_audit(audit["id"], user_id=admin_user.id)
        audit_service.delete_audit(audit["id"], user_id=admin_user.id)
        assert db_session.get(Audit, audit["id"]) is None

    def test_delete_missing(self, db_session, admin_user):
        with pytest.raises(NotFoundError):
            audit_service.delete_audit(1234, user_id=admin_user.id)
