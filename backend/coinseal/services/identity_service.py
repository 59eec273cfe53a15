# Overview: Identity & role model: actor resolution, account creation, update, deletion and listing.

"""
Identity Service

WHY: Every core operation takes an explicit Actor - the resolved
{account_id, role, subrole, company_id} of the caller. Nothing reads the
"current user" from global state.

CREATION MATRIX (enforced here, not just hidden in a UI):
- SUPERADMIN -> ADMIN
- ADMIN -> COMPANY (+ its Company record), EMPLOYEE (any subrole)
- COMPANY, EMPLOYEE -> nothing

The created_by_id pointers form a forest. New accounts always hang off the
(existing) actor, so only explicit reparenting can introduce a cycle, and
reparent checks for that.
"""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..actor import Actor
from ..errors import (
    DuplicateIdentityError,
    ForbiddenError,
    HasDependentsError,
    NotFoundError,
    ValidationError,
)
from ..extensions import db
from ..models import Account, AuthToken, CoinTransaction, Company, TripSession
from ..pagination import normalize_page, paginate
from ..roles import AccountKind, ActivityAction, ResourceType, Role, Subrole
from ..validation import clean_email, clean_str, optional_int
from . import activity_service
from .auth_service import hash_password
from .concurrency import lock_for_update, run_atomic


def resolve_actor(account_id: int, *, ip_address: str | None = None, user_agent: str | None = None) -> Actor:
    account = db.session.get(Account, account_id)
    if not account or not account.is_active:
        raise NotFoundError("Account not found")
    return Actor.from_account(account, ip_address=ip_address, user_agent=user_agent)


def _account_or_404(account_id: int) -> Account:
    account = db.session.get(Account, account_id)
    if not account:
        raise NotFoundError(f"Account {account_id} not found")
    return account


def _email_taken(email: str) -> bool:
    return db.session.query(Account.id).filter(db.func.lower(Account.email) == email.lower()).first() is not None


# =============================================================================
# CREATE
# =============================================================================

def create_account(actor: Actor, data: dict) -> Account:
    """
    Provision an account according to the creation matrix.

    data keys: name, email, password, role, subrole?, company_id?, phone?, address?

    For role=COMPANY a Company record and its representative account are
    created together; company_id in data is ignored. For role=EMPLOYEE
    subrole and an existing company_id are required.

    Raises:
        ValidationError, ForbiddenError, DuplicateIdentityError
    """
    name = clean_str(data.get("name"), "name", required=True, max_length=255)
    email = clean_email(data.get("email"))
    password = data.get("password")
    if not password:
        raise ValidationError("password is required")
    role = clean_str(data.get("role"), "role", required=True)
    if role not in Role.ALL:
        raise ValidationError(f"role must be one of {', '.join(Role.ALL)}")

    if not actor.kind.can_create(role):
        raise ForbiddenError(f"{actor.kind.label()} cannot create {role} accounts")

    subrole = clean_str(data.get("subrole"), "subrole")
    company_id = optional_int(data.get("company_id"), "company_id")
    phone = clean_str(data.get("phone"), "phone", max_length=32)
    address = clean_str(data.get("address"), "address")

    if role == Role.EMPLOYEE:
        if not subrole:
            raise ValidationError("subrole is required for employees")
        if company_id is None:
            raise ValidationError("company_id is required for employees")
    elif subrole:
        raise ValidationError(f"subrole is only allowed for {Role.EMPLOYEE} accounts")

    try:
        kind = AccountKind(role, subrole if role == Role.EMPLOYEE else None)
    except ValueError as exc:
        raise ValidationError(str(exc))

    password_hash = hash_password(password)

    def _op():
        if _email_taken(email):
            raise DuplicateIdentityError("Email already in use")

        detail = {"role": role}
        company = None
        if role == Role.COMPANY:
            company = Company(name=name, email=email, phone=phone, address=address)
            db.session.add(company)
            db.session.flush()
            detail.update({"company_id": company.id, "company_name": name})
        elif role == Role.EMPLOYEE:
            company = db.session.get(Company, company_id)
            if not company:
                raise ValidationError(f"Company {company_id} not found")
            detail.update({"subrole": subrole, "company_id": company.id, "company_name": company.name})

        account = Account(
            name=name,
            email=email,
            password_hash=password_hash,
            company_id=company.id if company else None,
            coins=0,
            created_by_id=actor.account_id,
            phone=phone,
            address=address,
        )
        account.kind = kind
        db.session.add(account)
        try:
            db.session.flush()
        except IntegrityError:
            raise DuplicateIdentityError("Email already in use")

        activity_service.record(
            actor,
            ActivityAction.CREATE,
            detail,
            target_account_id=account.id,
            target_resource_id=account.id,
            target_resource_type=ResourceType.USER,
        )
        return account

    return run_atomic(_op)


def bootstrap_superadmin(name: str, email: str, password: str) -> Account:
    """
    Create a root SuperAdmin (created_by_id NULL).

    No actor can create a SuperAdmin through the creation matrix; this is
    the CLI bootstrap path. The CREATE entry is attributed to the new
    account itself.
    """
    name = clean_str(name, "name", required=True, max_length=255)
    email = clean_email(email)
    password_hash = hash_password(password)

    def _op():
        if _email_taken(email):
            raise DuplicateIdentityError("Email already in use")
        account = Account(name=name, email=email, password_hash=password_hash, coins=0)
        account.kind = AccountKind(Role.SUPERADMIN)
        db.session.add(account)
        db.session.flush()

        activity_service.record(
            Actor.from_account(account),
            ActivityAction.CREATE,
            {"role": Role.SUPERADMIN, "source": "cli"},
            target_account_id=account.id,
            target_resource_id=account.id,
            target_resource_type=ResourceType.USER,
        )
        return account

    return run_atomic(_op)


# =============================================================================
# READ
# =============================================================================

def get_account(actor: Actor, account_id: int) -> Account:
    account = _account_or_404(account_id)
    if actor.role == Role.COMPANY and account.company_id != actor.company_id and account.id != actor.account_id:
        raise NotFoundError(f"Account {account_id} not found")
    if actor.role == Role.EMPLOYEE and account.id != actor.account_id and account.company_id != actor.company_id:
        raise NotFoundError(f"Account {account_id} not found")
    return account


def list_accounts(
    actor: Actor,
    *,
    search: str | None = None,
    role: str | None = None,
    company_id: int | None = None,
    page=1,
    limit=50,
) -> dict:
    """
    Paginated account listing, excluding the caller.

    COMPANY actors only ever see their own company's accounts. Records one
    VIEW entry describing the filters and result size.
    """
    page, limit = normalize_page(page, limit, default_limit=50)
    if role is not None and role not in Role.ALL:
        raise ValidationError(f"role must be one of {', '.join(Role.ALL)}")

    def _op():
        q = db.session.query(Account).filter(Account.id != actor.account_id)
        if search:
            pattern = f"%{search.lower()}%"
            q = q.filter(db.or_(db.func.lower(Account.name).like(pattern), db.func.lower(Account.email).like(pattern)))
        if role:
            q = q.filter(Account.role == role)
        if actor.role in (Role.COMPANY, Role.EMPLOYEE):
            q = q.filter(Account.company_id == actor.company_id)
        elif company_id is not None:
            q = q.filter(Account.company_id == company_id)

        rows, pagination = paginate(q.order_by(Account.name.asc(), Account.id.asc()), page, limit)

        activity_service.record(
            actor,
            ActivityAction.VIEW,
            {
                "resource_type": ResourceType.USER_LIST,
                "filters": {
                    "search": search or None,
                    "role": role or None,
                    "company_id": company_id,
                    "page": page,
                    "limit": limit,
                },
                "result_count": len(rows),
                "total_count": pagination["total_count"],
            },
            target_resource_type=ResourceType.USER_LIST,
        )
        return {"users": [row.to_dict() for row in rows], "pagination": pagination}

    return run_atomic(_op)


def admin_overview(actor: Actor, admin_id: int) -> dict:
    """SuperAdmin view of one admin and everything it provisioned."""
    if actor.role != Role.SUPERADMIN:
        raise ForbiddenError("Only SuperAdmin can view admin details")

    admin = db.session.query(Account).filter_by(id=admin_id, role=Role.ADMIN).first()
    if not admin:
        raise NotFoundError("Admin user not found")

    created = (
        db.session.query(Account)
        .filter(Account.created_by_id == admin.id)
        .order_by(Account.created_at.desc(), Account.id.desc())
        .all()
    )
    companies = [a.to_dict() for a in created if a.role == Role.COMPANY]
    employees = [a.to_dict() for a in created if a.role == Role.EMPLOYEE]

    return {
        **admin.to_dict(),
        "created_companies": companies,
        "created_employees": employees,
        "stats": {
            "total_companies": len(companies),
            "total_employees": len(employees),
        },
    }


# =============================================================================
# UPDATE
# =============================================================================

_UPDATABLE_FIELDS = {"name", "phone", "address", "subrole", "company_id", "created_by_id"}


def _would_cycle(account_id: int, new_parent_id: int) -> bool:
    """True if walking up from new_parent_id reaches account_id."""
    seen = set()
    current = new_parent_id
    while current is not None:
        if current == account_id:
            return True
        if current in seen:
            # Pre-existing cycle; refuse to make things worse
            return True
        seen.add(current)
        current = db.session.query(Account.created_by_id).filter(Account.id == current).scalar()
    return False


def update_account(actor: Actor, account_id: int, changes: dict) -> Account:
    """
    Administrative update of profile fields, employee subrole/company, and
    (SuperAdmin only) the created_by_id parent pointer.

    Records one UPDATE entry with a field-level before/after diff.
    """
    unknown = set(changes) - _UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")
    if actor.role not in (Role.SUPERADMIN, Role.ADMIN):
        raise ForbiddenError("Only SuperAdmin or Admin can update accounts")

    def _op():
        account = lock_for_update(db.session.query(Account).filter_by(id=account_id)).first()
        if not account:
            raise NotFoundError(f"Account {account_id} not found")
        if account.role == Role.SUPERADMIN and actor.account_id != account.id:
            raise ForbiddenError("SuperAdmin accounts cannot be modified by other accounts")
        if actor.role == Role.ADMIN and account.created_by_id != actor.account_id:
            raise ForbiddenError("Admins can only update accounts they created")

        diff = {}

        def _set(field, value):
            before = getattr(account, field)
            if before != value:
                diff[field] = {"before": before, "after": value}
                setattr(account, field, value)

        if "name" in changes:
            _set("name", clean_str(changes["name"], "name", required=True, max_length=255))
        if "phone" in changes:
            _set("phone", clean_str(changes["phone"], "phone", max_length=32))
        if "address" in changes:
            _set("address", clean_str(changes["address"], "address"))

        if "subrole" in changes or "company_id" in changes:
            if account.role != Role.EMPLOYEE:
                raise ValidationError("subrole and company_id can only be changed on employee accounts")
            if "subrole" in changes:
                subrole = clean_str(changes["subrole"], "subrole", required=True)
                if subrole not in Subrole.ALL:
                    raise ValidationError(f"subrole must be one of {', '.join(Subrole.ALL)}")
                _set("subrole", subrole)
            if "company_id" in changes:
                new_company_id = optional_int(changes["company_id"], "company_id")
                if new_company_id is None or not db.session.get(Company, new_company_id):
                    raise ValidationError(f"Company {new_company_id} not found")
                _set("company_id", new_company_id)

        if "created_by_id" in changes:
            if actor.role != Role.SUPERADMIN:
                raise ForbiddenError("Only SuperAdmin can reassign account ownership")
            new_parent_id = optional_int(changes["created_by_id"], "created_by_id")
            if new_parent_id is not None:
                _account_or_404(new_parent_id)
                if _would_cycle(account.id, new_parent_id):
                    raise ValidationError("Reassignment would create a cycle in the creation hierarchy")
            _set("created_by_id", new_parent_id)

        if diff:
            db.session.flush()
            activity_service.record(
                actor,
                ActivityAction.UPDATE,
                {"entity_type": ResourceType.USER, "changes": diff},
                target_account_id=account.id,
                target_resource_id=account.id,
                target_resource_type=ResourceType.USER,
            )
        return account

    return run_atomic(_op)


# =============================================================================
# DELETE
# =============================================================================

def count_created_accounts(account_id: int) -> int:
    return db.session.query(db.func.count(Account.id)).filter(Account.created_by_id == account_id).scalar()


def _dependent_counts(account: Account) -> dict:
    counts = {"created_accounts": count_created_accounts(account.id)}

    if account.is_company_representative:
        counts["company_employees"] = (
            db.session.query(db.func.count(Account.id))
            .filter(Account.company_id == account.company_id, Account.id != account.id)
            .scalar()
        )
        counts["company_sessions"] = (
            db.session.query(db.func.count(TripSession.id))
            .filter(TripSession.company_id == account.company_id)
            .scalar()
        )

    counts["sessions"] = (
        db.session.query(db.func.count(TripSession.id)).filter(TripSession.created_by_id == account.id).scalar()
    )
    counts["coin_transactions"] = (
        db.session.query(db.func.count(CoinTransaction.id))
        .filter(db.or_(CoinTransaction.from_account_id == account.id, CoinTransaction.to_account_id == account.id))
        .scalar()
    )
    return {key: value for key, value in counts.items() if value}


def delete_account(actor: Actor, account_id: int) -> None:
    """
    Delete an account that nothing depends on.

    SuperAdmin may delete any non-SuperAdmin; everyone else only accounts
    they created directly. Fails with HasDependentsError if the account
    created other accounts, or still has employees, sessions or ledger
    history tied to it.
    """
    if account_id == actor.account_id:
        raise ForbiddenError("Accounts cannot delete themselves")

    def _op():
        account = lock_for_update(db.session.query(Account).filter_by(id=account_id)).first()
        if not account:
            raise NotFoundError(f"Account {account_id} not found")
        if account.role == Role.SUPERADMIN:
            raise ForbiddenError("SuperAdmin accounts cannot be deleted")
        if actor.role != Role.SUPERADMIN and account.created_by_id != actor.account_id:
            raise ForbiddenError("You can only delete accounts you created")

        dependents = _dependent_counts(account)
        if dependents:
            raise HasDependentsError(
                "Cannot delete account with dependent records. Reassign or delete them first.",
                **dependents,
            )

        detail = {
            "entity_type": ResourceType.USER,
            "entity_role": account.role,
            "entity_subrole": account.subrole,
            "entity_name": account.name,
            "entity_email": account.email,
        }
        company = account.company if account.is_company_representative else None

        db.session.query(AuthToken).filter_by(account_id=account.id).delete(synchronize_session=False)
        db.session.delete(account)
        if company is not None:
            detail["company_id"] = company.id
            db.session.delete(company)
        db.session.flush()

        activity_service.record(
            actor,
            ActivityAction.DELETE,
            detail,
            target_account_id=account_id,
            target_resource_id=account_id,
            target_resource_type=ResourceType.USER,
        )

    run_atomic(_op)
