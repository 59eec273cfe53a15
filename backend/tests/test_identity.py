# Overview: Pytest coverage for account provisioning, update, deletion and listing.

"""
Identity & Role Model Tests

Verifies:
- The creation matrix (who may create whom)
- Company + representative are created together
- Employee validation (subrole, company)
- Duplicate emails are rejected
- Deletion rules and dependent-record protection
- Reparenting cannot introduce a cycle
"""

import pytest

from coinseal.errors import (
    DuplicateIdentityError,
    ForbiddenError,
    HasDependentsError,
    NotFoundError,
    ValidationError,
)
from coinseal.models import Account, ActivityLogEntry, Company
from coinseal.roles import AccountKind, ActivityAction, Role, Subrole
from coinseal.services import identity_service, trip_service
from coinseal.services.auth_service import PasswordValidationError

from conftest import PASSWORD, actor_for, make_account


# =============================================================================
# ACCOUNT KIND
# =============================================================================


class TestAccountKind:

    def test_employee_requires_subrole(self):
        with pytest.raises(ValueError):
            AccountKind(Role.EMPLOYEE)

    def test_subrole_rejected_for_non_employee(self):
        with pytest.raises(ValueError):
            AccountKind(Role.ADMIN, Subrole.GUARD)

    def test_creation_matrix(self):
        assert AccountKind(Role.SUPERADMIN).can_create(Role.ADMIN)
        assert not AccountKind(Role.SUPERADMIN).can_create(Role.COMPANY)
        assert AccountKind(Role.ADMIN).can_create(Role.COMPANY)
        assert AccountKind(Role.ADMIN).can_create(Role.EMPLOYEE)
        assert not AccountKind(Role.ADMIN).can_create(Role.ADMIN)
        assert not AccountKind(Role.COMPANY).can_create(Role.EMPLOYEE)
        assert not AccountKind.employee(Subrole.OPERATOR).can_create(Role.EMPLOYEE)


# =============================================================================
# CREATE
# =============================================================================


class TestCreateAccount:

    def test_superadmin_creates_admin(self, db_session, superadmin):
        admin = make_account(superadmin, Role.ADMIN, "new.admin@coinseal.test")

        assert admin.role == Role.ADMIN
        assert admin.subrole is None
        assert admin.created_by_id == superadmin.id
        assert admin.coins == 0

        entry = db_session.query(ActivityLogEntry).filter_by(
            action=ActivityAction.CREATE, target_account_id=admin.id
        ).one()
        assert entry.actor_id == superadmin.id
        assert entry.detail["role"] == Role.ADMIN

    def test_company_created_with_representative(self, db_session, admin):
        rep = make_account(admin, Role.COMPANY, "ops@initech.test", name="Initech")

        company = db_session.get(Company, rep.company_id)
        assert company is not None
        assert company.name == "Initech"
        assert company.representative.id == rep.id
        assert rep.company.id == company.id

    def test_superadmin_cannot_create_company(self, db_session, superadmin):
        with pytest.raises(ForbiddenError):
            make_account(superadmin, Role.COMPANY, "ops@nope.test")
        assert db_session.query(Company).count() == 0

    def test_admin_cannot_create_admin(self, db_session, admin):
        with pytest.raises(ForbiddenError):
            make_account(admin, Role.ADMIN, "admin2@coinseal.test")

    def test_company_and_employee_cannot_create(self, db_session, company, operator):
        with pytest.raises(ForbiddenError):
            make_account(company, Role.EMPLOYEE, "x@acme.test", subrole=Subrole.DRIVER, company_id=company.company_id)
        with pytest.raises(ForbiddenError):
            make_account(operator, Role.EMPLOYEE, "y@acme.test", subrole=Subrole.DRIVER, company_id=company.company_id)

    def test_employee_requires_subrole_and_company(self, db_session, admin, company):
        with pytest.raises(ValidationError):
            make_account(admin, Role.EMPLOYEE, "a@acme.test", company_id=company.company_id)
        with pytest.raises(ValidationError):
            make_account(admin, Role.EMPLOYEE, "b@acme.test", subrole=Subrole.GUARD)
        with pytest.raises(ValidationError):
            make_account(admin, Role.EMPLOYEE, "c@acme.test", subrole="PILOT", company_id=company.company_id)

    def test_employee_company_must_exist(self, db_session, admin):
        with pytest.raises(ValidationError):
            make_account(admin, Role.EMPLOYEE, "d@acme.test", subrole=Subrole.GUARD, company_id=9999)

    def test_duplicate_email_rejected(self, db_session, superadmin, admin):
        with pytest.raises(DuplicateIdentityError):
            make_account(superadmin, Role.ADMIN, "ADMIN@coinseal.test")
        assert db_session.query(Account).filter_by(role=Role.ADMIN).count() == 1

    def test_weak_password_rejected(self, db_session, superadmin):
        with pytest.raises(PasswordValidationError):
            identity_service.create_account(actor_for(superadmin), {
                "name": "Weak", "email": "weak@coinseal.test", "password": "password", "role": Role.ADMIN,
            })

    def test_password_is_hashed(self, db_session, admin):
        assert admin.password_hash != PASSWORD
        assert admin.password_hash.startswith("$2")


# =============================================================================
# READ
# =============================================================================


class TestListAccounts:

    def test_excludes_caller_and_records_view(self, db_session, admin, operator, guard):
        result = identity_service.list_accounts(actor_for(admin))

        ids = {u["id"] for u in result["users"]}
        assert admin.id not in ids
        assert {operator.id, guard.id} <= ids

        view = db_session.query(ActivityLogEntry).filter_by(action=ActivityAction.VIEW, actor_id=admin.id).one()
        assert view.detail["result_count"] == len(result["users"])

    def test_company_sees_only_own_company(self, db_session, company, operator, other_operator):
        result = identity_service.list_accounts(actor_for(company))

        ids = {u["id"] for u in result["users"]}
        assert operator.id in ids
        assert other_operator.id not in ids

    def test_search_and_role_filter(self, db_session, admin, operator, guard):
        result = identity_service.list_accounts(actor_for(admin), search="GUARD@", role=Role.EMPLOYEE)
        assert [u["id"] for u in result["users"]] == [guard.id]

    def test_pagination_envelope(self, db_session, admin, operator, guard, driver):
        result = identity_service.list_accounts(actor_for(admin), role=Role.EMPLOYEE, page=2, limit=2)
        pagination = result["pagination"]

        assert pagination["total_count"] == 3
        assert pagination["total_pages"] == 2
        assert pagination["has_prev_page"] is True
        assert pagination["has_next_page"] is False
        assert len(result["users"]) == 1

    def test_get_account_hides_other_company(self, db_session, operator, other_operator):
        with pytest.raises(NotFoundError):
            identity_service.get_account(actor_for(operator), other_operator.id)

    def test_admin_overview(self, db_session, superadmin, admin, company, operator):
        overview = identity_service.admin_overview(actor_for(superadmin), admin.id)

        assert overview["stats"] == {"total_companies": 1, "total_employees": 1}
        with pytest.raises(ForbiddenError):
            identity_service.admin_overview(actor_for(admin), admin.id)


# =============================================================================
# UPDATE
# =============================================================================


class TestUpdateAccount:

    def test_update_records_diff(self, db_session, admin, driver):
        identity_service.update_account(actor_for(admin), driver.id, {"phone": "555-0100", "subrole": Subrole.TRANSPORTER})

        db_session.refresh(driver)
        assert driver.subrole == Subrole.TRANSPORTER
        entry = db_session.query(ActivityLogEntry).filter_by(
            action=ActivityAction.UPDATE, target_account_id=driver.id
        ).one()
        assert entry.detail["changes"]["subrole"] == {"before": Subrole.DRIVER, "after": Subrole.TRANSPORTER}

    def test_admin_cannot_reparent(self, db_session, admin, driver):
        with pytest.raises(ForbiddenError):
            identity_service.update_account(actor_for(admin), driver.id, {"created_by_id": None})

    def test_reparent_cycle_rejected(self, db_session, superadmin, admin, company):
        # admin -> company; making company the parent of admin would close a loop
        with pytest.raises(ValidationError):
            identity_service.update_account(actor_for(superadmin), admin.id, {"created_by_id": company.id})

    def test_reparent(self, db_session, superadmin, admin, company):
        second = make_account(superadmin, Role.ADMIN, "admin2@coinseal.test")
        identity_service.update_account(actor_for(superadmin), company.id, {"created_by_id": second.id})

        db_session.refresh(company)
        assert company.created_by_id == second.id

    def test_unknown_field_rejected(self, db_session, superadmin, admin):
        with pytest.raises(ValidationError):
            identity_service.update_account(actor_for(superadmin), admin.id, {"coins": 5})


# =============================================================================
# DELETE
# =============================================================================


class TestDeleteAccount:

    def test_delete_leaf_employee(self, db_session, admin, driver):
        driver_id = driver.id
        identity_service.delete_account(actor_for(admin), driver_id)

        assert db_session.get(Account, driver_id) is None
        entry = db_session.query(ActivityLogEntry).filter_by(action=ActivityAction.DELETE).one()
        assert entry.target_account_id == driver_id
        assert entry.detail["entity_email"] == "driver@acme.test"

    def test_admin_with_created_accounts_has_dependents(self, db_session, superadmin, admin, company):
        with pytest.raises(HasDependentsError) as exc:
            identity_service.delete_account(actor_for(superadmin), admin.id)
        assert exc.value.details["created_accounts"] == 1
        assert db_session.get(Account, admin.id) is not None

    def test_company_with_employees_has_dependents(self, db_session, admin, other_company, other_guard):
        with pytest.raises(HasDependentsError) as exc:
            identity_service.delete_account(actor_for(admin), other_company.id)
        assert exc.value.details["company_employees"] == 1

    def test_delete_empty_company_removes_company_record(self, db_session, admin, other_company):
        company_id = other_company.company_id
        identity_service.delete_account(actor_for(admin), other_company.id)

        assert db_session.get(Company, company_id) is None

    def test_operator_with_sessions_has_dependents(self, db_session, admin, operator):
        trip_service.create_session(actor_for(operator), "Plant A", "Port B")
        with pytest.raises(HasDependentsError):
            identity_service.delete_account(actor_for(admin), operator.id)

    def test_cannot_delete_superadmin_or_self(self, db_session, superadmin, admin):
        second = make_account(superadmin, Role.ADMIN, "admin2@coinseal.test")
        with pytest.raises(ForbiddenError):
            identity_service.delete_account(actor_for(second), superadmin.id)
        with pytest.raises(ForbiddenError):
            identity_service.delete_account(actor_for(superadmin), superadmin.id)

    def test_only_creator_may_delete(self, db_session, superadmin, admin, driver):
        second = make_account(superadmin, Role.ADMIN, "admin2@coinseal.test")
        with pytest.raises(ForbiddenError):
            identity_service.delete_account(actor_for(second), driver.id)

    def test_audit_survives_account_deletion(self, db_session, admin, driver):
        driver_id = driver.id
        identity_service.delete_account(actor_for(admin), driver_id)

        create = db_session.query(ActivityLogEntry).filter_by(
            action=ActivityAction.CREATE, target_account_id=driver_id
        ).one()
        assert create.actor_id == admin.id
