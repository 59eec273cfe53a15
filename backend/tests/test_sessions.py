# Overview: Pytest coverage for the session lifecycle: creation cost, sealing, verification, visibility, comments.

"""
Session Lifecycle Tests

Verifies:
- Only company Operators create sessions, and each costs the company 1 coin
- Creation is all-or-nothing (debit, session, seal, audit)
- PENDING -> IN_PROGRESS -> COMPLETED, never backwards
- Guard verification is company-scoped, happens once, and records a
  field-by-field comparison against the operator's trip details
- Role-scoped session visibility
"""

import pytest

from coinseal.errors import (
    AlreadySealedError,
    AlreadyVerifiedError,
    DuplicateBarcodeError,
    ForbiddenError,
    InsufficientCompanyBalanceError,
    NotInCompanyError,
    SessionNotFoundError,
    SystemConfigurationError,
    ValidationError,
)
from coinseal.actor import Actor
from coinseal.models import Account, ActivityLogEntry, CoinTransaction, Seal, TripSession
from coinseal.models.immutability import ImmutableRecordError
from coinseal.roles import ActivityAction, ResourceType, Role, SessionStatus, Subrole, TransactionReason
from coinseal.services import activity_service, ledger_service, trip_service

from conftest import actor_for, make_account

TRIP = {
    "material": "Copper cathodes",
    "vehicle_number": "MH-12-AB-1234",
    "gross_weight": 24500,
    "driver_name": "R. Singh",
}


def _balance(db_session, account) -> int:
    return db_session.query(Account.coins).filter_by(id=account.id).scalar()


# =============================================================================
# CREATE
# =============================================================================


class TestCreateSession:

    def test_charges_company_exactly_one_coin(self, db_session, superadmin, company, operator):
        system_before = _balance(db_session, superadmin)

        session = trip_service.create_session(actor_for(operator), "Plant A", "Port B", TRIP)

        assert session.status == SessionStatus.PENDING
        assert session.company_id == company.company_id
        assert session.created_by_id == operator.id
        assert _balance(db_session, company) == 99
        assert _balance(db_session, superadmin) == system_before + 1

        txn = db_session.query(CoinTransaction).filter_by(session_id=session.id).one()
        assert txn.reason == TransactionReason.SESSION_START
        assert txn.amount == 1
        assert txn.from_account_id == company.id
        assert txn.to_account_id == superadmin.id
        assert "Plant A" in txn.note

    def test_create_entry_keeps_trip_details_verbatim(self, db_session, company, operator):
        session = trip_service.create_session(actor_for(operator), "Plant A", "Port B", TRIP)

        entry = db_session.query(ActivityLogEntry).filter_by(
            action=ActivityAction.CREATE, target_resource_type=ResourceType.SESSION, target_resource_id=session.id
        ).one()
        assert entry.detail["trip_details"] == TRIP
        assert entry.actor_id == operator.id

    def test_barcode_at_creation_starts_in_progress(self, db_session, company, operator):
        session = trip_service.create_session(actor_for(operator), "Plant A", "Port B", TRIP, barcode="SEAL-001")

        assert session.status == SessionStatus.IN_PROGRESS
        assert session.seal.barcode == "SEAL-001"
        assert session.seal.verified is False

    @pytest.mark.parametrize("fixture_name", ["guard", "driver", "company", "admin"])
    def test_only_operators_create(self, request, db_session, company, fixture_name):
        account = request.getfixturevalue(fixture_name)
        with pytest.raises(ForbiddenError):
            trip_service.create_session(actor_for(account), "Plant A", "Port B")
        assert db_session.query(TripSession).count() == 0
        assert _balance(db_session, company) == 100

    def test_operator_without_company(self, db_session, superadmin, company, operator):
        stray = Actor(account_id=operator.id, role=Role.EMPLOYEE, subrole=Subrole.OPERATOR, company_id=None)
        with pytest.raises(NotInCompanyError):
            trip_service.create_session(stray, "Plant A", "Port B")

    def test_source_and_destination_required(self, db_session, operator):
        with pytest.raises(ValidationError):
            trip_service.create_session(actor_for(operator), "", "Port B")
        with pytest.raises(ValidationError):
            trip_service.create_session(actor_for(operator), "Plant A", None)

    def test_insufficient_company_balance(self, db_session, other_company, other_operator):
        with pytest.raises(InsufficientCompanyBalanceError):
            trip_service.create_session(actor_for(other_operator), "Plant A", "Port B")

        assert db_session.query(TripSession).count() == 0
        assert db_session.query(ActivityLogEntry).filter_by(target_resource_type=ResourceType.SESSION).count() == 0

    def test_last_coin_then_insufficient(self, db_session, admin, other_company, other_operator):
        ledger_service.allocate_coins(actor_for(admin), other_company.id, 1)

        trip_service.create_session(actor_for(other_operator), "Plant A", "Port B")
        assert _balance(db_session, other_company) == 0

        with pytest.raises(InsufficientCompanyBalanceError):
            trip_service.create_session(actor_for(other_operator), "Plant C", "Port D")
        assert db_session.query(TripSession).count() == 1

    def test_duplicate_barcode_rolls_back_debit(self, db_session, company, operator):
        trip_service.create_session(actor_for(operator), "Plant A", "Port B", barcode="SEAL-001")

        with pytest.raises(DuplicateBarcodeError):
            trip_service.create_session(actor_for(operator), "Plant C", "Port D", barcode="SEAL-001")

        assert _balance(db_session, company) == 99
        assert db_session.query(TripSession).count() == 1

    def test_audit_failure_rolls_back_debit_and_session(self, db_session, monkeypatch, superadmin, company, operator):
        system_before = _balance(db_session, superadmin)
        txn_count = db_session.query(CoinTransaction).count()

        def _failing_record(*args, **kwargs):
            raise RuntimeError("audit store rejected the entry")

        monkeypatch.setattr(activity_service, "record", _failing_record)
        with pytest.raises(RuntimeError):
            trip_service.create_session(actor_for(operator), "Plant A", "Port B", TRIP, barcode="SEAL-001")

        assert db_session.query(TripSession).count() == 0
        assert db_session.query(Seal).count() == 0
        assert db_session.query(CoinTransaction).count() == txn_count
        assert _balance(db_session, company) == 100
        assert _balance(db_session, superadmin) == system_before

    def test_requires_system_account(self, db_session, operator):
        # Drop the SuperAdmin's role so no system account resolves
        db_session.query(Account).filter_by(role=Role.SUPERADMIN).update({"role": Role.ADMIN})
        db_session.commit()

        with pytest.raises(SystemConfigurationError):
            trip_service.create_session(actor_for(operator), "Plant A", "Port B")


# =============================================================================
# SEAL
# =============================================================================


class TestAttachSeal:

    def test_attach_moves_to_in_progress(self, db_session, operator):
        session = trip_service.create_session(actor_for(operator), "Plant A", "Port B")

        seal = trip_service.attach_seal(actor_for(operator), session.id, "SEAL-042")

        db_session.refresh(session)
        assert seal.barcode == "SEAL-042"
        assert session.status == SessionStatus.IN_PROGRESS
        entry = db_session.query(ActivityLogEntry).filter_by(
            action=ActivityAction.UPDATE, target_resource_type=ResourceType.SESSION, target_resource_id=session.id
        ).one()
        assert entry.detail["changes"]["status"] == {"before": SessionStatus.PENDING, "after": SessionStatus.IN_PROGRESS}

    def test_already_sealed(self, db_session, operator):
        session = trip_service.create_session(actor_for(operator), "Plant A", "Port B", barcode="SEAL-001")
        with pytest.raises(AlreadySealedError):
            trip_service.attach_seal(actor_for(operator), session.id, "SEAL-002")

    def test_duplicate_barcode(self, db_session, operator):
        trip_service.create_session(actor_for(operator), "Plant A", "Port B", barcode="SEAL-001")
        second = trip_service.create_session(actor_for(operator), "Plant C", "Port D")

        with pytest.raises(DuplicateBarcodeError):
            trip_service.attach_seal(actor_for(operator), second.id, "SEAL-001")
        db_session.refresh(second)
        assert second.status == SessionStatus.PENDING

    def test_other_company_operator_forbidden(self, db_session, admin, operator, other_company, other_operator):
        session = trip_service.create_session(actor_for(operator), "Plant A", "Port B")
        with pytest.raises(ForbiddenError):
            trip_service.attach_seal(actor_for(other_operator), session.id, "SEAL-009")

    def test_guard_cannot_seal(self, db_session, operator, guard):
        session = trip_service.create_session(actor_for(operator), "Plant A", "Port B")
        with pytest.raises(ForbiddenError):
            trip_service.attach_seal(actor_for(guard), session.id, "SEAL-009")

    def test_missing_session(self, db_session, operator):
        with pytest.raises(SessionNotFoundError):
            trip_service.attach_seal(actor_for(operator), 424242, "SEAL-009")


# =============================================================================
# VERIFY
# =============================================================================


class TestVerifySeal:

    def test_verify_completes_session(self, db_session, operator, guard):
        session = trip_service.create_session(actor_for(operator), "Plant A", "Port B", TRIP, barcode="SEAL-001")

        verified = trip_service.verify_seal(actor_for(guard), session.id, {"barcode": "SEAL-001"})

        assert verified.status == SessionStatus.COMPLETED
        assert verified.completed_at is not None
        assert verified.seal.verified is True
        assert verified.seal.verified_by_id == guard.id
        assert verified.seal.scanned_at is not None

    def test_comparison_recorded(self, db_session, operator, guard):
        session = trip_service.create_session(actor_for(operator), "Plant A", "Port B", TRIP, barcode="SEAL-001")

        trip_service.verify_seal(actor_for(guard), session.id, {
            "barcode": "seal-001",
            "vehicle_number": "MH-12-AB-1234",
            "gross_weight": "24400",
        })

        entry = db_session.query(ActivityLogEntry).filter_by(
            action=ActivityAction.UPDATE, target_resource_type=ResourceType.SEAL
        ).one()
        verification = entry.detail["verification"]
        assert verification["barcode"]["match"] is True
        assert verification["vehicle_number"] == {
            "operator_value": "MH-12-AB-1234",
            "guard_value": "MH-12-AB-1234",
            "match": True,
        }
        assert verification["gross_weight"]["operator_value"] == 24500
        assert verification["gross_weight"]["match"] is False
        assert entry.detail["all_match"] is False

    def test_field_comments_and_image_checks_recorded(self, db_session, operator, guard):
        session = trip_service.create_session(actor_for(operator), "Plant A", "Port B", TRIP, barcode="SEAL-001")

        trip_service.verify_seal(
            actor_for(guard),
            session.id,
            {
                "barcode": "SEAL-001",
                "gross_weight": {"value": 24500, "comment": "Weighbridge 2"},
            },
            image_verifications={
                "seal_photo": {"verified": True},
                "vehicle_photo": {"verified": False, "comment": "Plate not visible"},
            },
        )

        entry = db_session.query(ActivityLogEntry).filter_by(
            action=ActivityAction.UPDATE, target_resource_type=ResourceType.SEAL
        ).one()
        assert entry.detail["verification"]["gross_weight"] == {
            "operator_value": 24500,
            "guard_value": 24500,
            "match": True,
            "comment": "Weighbridge 2",
        }
        assert "comment" not in entry.detail["verification"]["barcode"]
        assert entry.detail["image_verifications"] == {
            "seal_photo": {"verified": True},
            "vehicle_photo": {"verified": False, "comment": "Plate not visible"},
        }
        # a failed photo check is a mismatch even when every field agrees
        assert entry.detail["all_match"] is False

    def test_malformed_image_checks_rejected(self, db_session, operator, guard):
        session = trip_service.create_session(actor_for(operator), "Plant A", "Port B", barcode="SEAL-001")

        with pytest.raises(ValidationError):
            trip_service.verify_seal(actor_for(guard), session.id, image_verifications={"seal_photo": "yes"})
        db_session.refresh(session)
        assert session.status == SessionStatus.IN_PROGRESS

    def test_already_verified_leaves_seal_untouched(self, db_session, admin, company, operator, guard):
        second_guard = make_account(admin, Role.EMPLOYEE, "guard2@acme.test", subrole=Subrole.GUARD, company_id=company.company_id)
        session = trip_service.create_session(actor_for(operator), "Plant A", "Port B", barcode="SEAL-001")
        trip_service.verify_seal(actor_for(guard), session.id)
        seal = db_session.query(Seal).filter_by(session_id=session.id).one()
        scanned_at = seal.scanned_at

        with pytest.raises(AlreadyVerifiedError):
            trip_service.verify_seal(actor_for(second_guard), session.id)

        db_session.refresh(seal)
        assert seal.verified_by_id == guard.id
        assert seal.scanned_at == scanned_at

    def test_other_company_guard_forbidden(self, db_session, operator, other_guard):
        session = trip_service.create_session(actor_for(operator), "Plant A", "Port B", barcode="SEAL-001")
        with pytest.raises(ForbiddenError):
            trip_service.verify_seal(actor_for(other_guard), session.id)

    def test_operator_cannot_verify(self, db_session, operator):
        session = trip_service.create_session(actor_for(operator), "Plant A", "Port B", barcode="SEAL-001")
        with pytest.raises(ForbiddenError):
            trip_service.verify_seal(actor_for(operator), session.id)

    def test_unsealed_session_cannot_be_verified(self, db_session, operator, guard):
        session = trip_service.create_session(actor_for(operator), "Plant A", "Port B")
        with pytest.raises(ValidationError):
            trip_service.verify_seal(actor_for(guard), session.id)

    def test_status_never_regresses(self, db_session, operator, guard):
        session = trip_service.create_session(actor_for(operator), "Plant A", "Port B", barcode="SEAL-001")
        trip_service.verify_seal(actor_for(guard), session.id)

        with pytest.raises(AlreadySealedError):
            trip_service.attach_seal(actor_for(operator), session.id, "SEAL-777")
        with pytest.raises(ValueError):
            session.advance_to(SessionStatus.IN_PROGRESS)
        db_session.refresh(session)
        assert session.status == SessionStatus.COMPLETED


# =============================================================================
# VISIBILITY
# =============================================================================


class TestListSessions:

    @pytest.fixture
    def trips(self, db_session, admin, operator, guard, other_operator):
        ledger_service.allocate_coins(actor_for(admin), other_operator.company.representative.id, 10)
        pending = trip_service.create_session(actor_for(operator), "A", "B")
        sealed = trip_service.create_session(actor_for(operator), "C", "D", barcode="SEAL-1")
        done = trip_service.create_session(actor_for(operator), "E", "F", barcode="SEAL-2")
        trip_service.verify_seal(actor_for(guard), done.id)
        foreign = trip_service.create_session(actor_for(other_operator), "G", "H", barcode="SEAL-3")
        return {"pending": pending.id, "sealed": sealed.id, "done": done.id, "foreign": foreign.id}

    @staticmethod
    def _ids(result):
        return {s["id"] for s in result["sessions"]}

    def test_superadmin_sees_all(self, db_session, superadmin, trips):
        assert self._ids(trip_service.list_sessions(actor_for(superadmin))) == set(trips.values())

    def test_admin_sees_companies_it_created(self, db_session, superadmin, admin, trips):
        assert self._ids(trip_service.list_sessions(actor_for(admin))) == set(trips.values())

        second = make_account(superadmin, Role.ADMIN, "admin2@coinseal.test")
        assert self._ids(trip_service.list_sessions(actor_for(second))) == set()

    def test_company_sees_own(self, db_session, company, trips):
        assert self._ids(trip_service.list_sessions(actor_for(company))) == {
            trips["pending"], trips["sealed"], trips["done"],
        }

    def test_operator_sees_created(self, db_session, operator, other_operator, trips):
        assert self._ids(trip_service.list_sessions(actor_for(other_operator))) == {trips["foreign"]}

    def test_guard_sees_in_progress_and_verified(self, db_session, guard, trips):
        assert self._ids(trip_service.list_sessions(actor_for(guard))) == {trips["sealed"], trips["done"]}

    def test_needs_verification(self, db_session, company, trips):
        result = trip_service.list_sessions(actor_for(company), needs_verification=True)
        assert self._ids(result) == {trips["sealed"]}

    def test_status_filter_and_limit(self, db_session, superadmin, trips):
        result = trip_service.list_sessions(actor_for(superadmin), status=SessionStatus.IN_PROGRESS, limit=1)
        assert result["pagination"]["total_count"] == 2
        assert len(result["sessions"]) == 1

    def test_driver_sees_nothing_it_did_not_create(self, db_session, driver, trips):
        assert self._ids(trip_service.list_sessions(actor_for(driver))) == set()

    def test_invisible_session_is_not_found(self, db_session, other_operator, trips):
        with pytest.raises(SessionNotFoundError):
            trip_service.get_session(actor_for(other_operator), trips["pending"])

    def test_listing_writes_nothing(self, db_session, superadmin, trips):
        before = db_session.query(ActivityLogEntry).count()
        trip_service.list_sessions(actor_for(superadmin))
        assert db_session.query(ActivityLogEntry).count() == before


# =============================================================================
# COMMENTS
# =============================================================================


class TestComments:

    def test_add_and_list(self, db_session, company, operator):
        session = trip_service.create_session(actor_for(operator), "Plant A", "Port B")

        trip_service.add_comment(actor_for(operator), session.id, "Loaded at dock 4")
        trip_service.add_comment(actor_for(company), session.id, "Noted")

        comments = trip_service.list_comments(actor_for(company), session.id)
        assert [c["message"] for c in comments] == ["Loaded at dock 4", "Noted"]
        assert db_session.query(ActivityLogEntry).filter_by(target_resource_type=ResourceType.COMMENT).count() == 2

    def test_comment_requires_visibility(self, db_session, operator, other_operator):
        session = trip_service.create_session(actor_for(operator), "Plant A", "Port B")
        with pytest.raises(SessionNotFoundError):
            trip_service.add_comment(actor_for(other_operator), session.id, "hi")

    def test_comments_are_append_only(self, db_session, operator):
        session = trip_service.create_session(actor_for(operator), "Plant A", "Port B")
        comment = trip_service.add_comment(actor_for(operator), session.id, "first")

        db_session.delete(comment)
        with pytest.raises(ImmutableRecordError):
            db_session.flush()
        db_session.rollback()
