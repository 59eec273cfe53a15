# Overview: Session lifecycle: creation (costs one coin), seal attachment, guard verification, comments and scoped reads.

"""
Session Lifecycle Service

LIFECYCLE (monotonic):
1. PENDING: created by an Operator without a barcode
2. IN_PROGRESS: seal attached (at creation or later by an Operator)
3. COMPLETED: seal verified by a Guard of the same company

Creating a session debits exactly one coin from the company's
representative account to the system account. The debit, the session,
the optional seal and the CREATE audit entry commit together or not at all.

Trip details (material, vehicle, weights, image references...) are kept
verbatim in the CREATE entry; verification compares the guard's
observations against them field by field.
"""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..actor import Actor
from ..errors import (
    AlreadySealedError,
    AlreadyVerifiedError,
    DuplicateBarcodeError,
    ForbiddenError,
    InsufficientCompanyBalanceError,
    NotInCompanyError,
    SessionNotFoundError,
    ValidationError,
)
from ..extensions import db
from ..models import Account, Comment, Seal, TripSession
from ..pagination import normalize_page, paginate
from ..roles import ActivityAction, ResourceType, Role, SessionStatus, Subrole, TransactionReason
from ..time_utils import utcnow
from ..validation import clean_str
from . import activity_service
from .concurrency import lock_for_update, run_atomic
from .ledger_service import get_system_account, move_coins

SESSION_START_COST = 1


def _require_subrole(actor: Actor, subrole: str, action: str) -> None:
    if not actor.kind.is_subrole(subrole):
        raise ForbiddenError(f"Only {subrole} employees can {action}")


def _barcode_taken(barcode: str) -> bool:
    return db.session.query(Seal.id).filter(Seal.barcode == barcode).first() is not None


def _flush_seal() -> None:
    try:
        db.session.flush()
    except IntegrityError:
        raise DuplicateBarcodeError()


def _locked_session(session_id: int) -> TripSession:
    session = lock_for_update(db.session.query(TripSession).filter_by(id=session_id)).first()
    if not session:
        raise SessionNotFoundError()
    return session


# =============================================================================
# CREATE / SEAL / VERIFY
# =============================================================================

def create_session(
    actor: Actor,
    source: str,
    destination: str,
    trip_details: dict | None = None,
    barcode: str | None = None,
) -> TripSession:
    """
    Open a trip session for the operator's company.

    Check order: Forbidden (not an Operator), NotInCompany, ValidationError
    (source/destination), SystemConfigurationError (no system account),
    InsufficientCompanyBalance, DuplicateBarcode.
    """
    _require_subrole(actor, Subrole.OPERATOR, "create sessions")
    if actor.company_id is None:
        raise NotInCompanyError()

    source = clean_str(source, "source", required=True, max_length=255)
    destination = clean_str(destination, "destination", required=True, max_length=255)
    barcode = clean_str(barcode, "barcode", max_length=128)
    if trip_details is None:
        trip_details = {}
    if not isinstance(trip_details, dict):
        raise ValidationError("trip_details must be an object")

    system = get_system_account()

    def _op():
        representative = lock_for_update(
            db.session.query(Account).filter_by(company_id=actor.company_id, role=Role.COMPANY)
        ).first()
        if representative is None or representative.coins < SESSION_START_COST:
            raise InsufficientCompanyBalanceError()
        if barcode and _barcode_taken(barcode):
            raise DuplicateBarcodeError()

        session = TripSession(
            company_id=actor.company_id,
            created_by_id=actor.account_id,
            source=source,
            destination=destination,
            status=SessionStatus.IN_PROGRESS if barcode else SessionStatus.PENDING,
        )
        db.session.add(session)
        db.session.flush()

        note = f"Session {session.id}: {source} to {destination}"
        if barcode:
            note += f" (barcode {barcode})"
        move_coins(
            representative.id,
            system.id,
            SESSION_START_COST,
            TransactionReason.SESSION_START,
            note=note,
            session_id=session.id,
            insufficient_error=InsufficientCompanyBalanceError,
        )

        if barcode:
            session.seal = Seal(barcode=barcode)
            _flush_seal()

        activity_service.record(
            actor,
            ActivityAction.CREATE,
            {
                "entity_type": ResourceType.SESSION,
                "session_id": session.id,
                "company_id": session.company_id,
                "source": source,
                "destination": destination,
                "barcode": barcode,
                "status": session.status,
                "trip_details": trip_details,
                "coins_charged": SESSION_START_COST,
            },
            target_account_id=representative.id,
            target_resource_id=session.id,
            target_resource_type=ResourceType.SESSION,
        )
        return session

    return run_atomic(_op)


def attach_seal(actor: Actor, session_id: int, barcode: str) -> Seal:
    """Seal a PENDING session, moving it to IN_PROGRESS."""
    _require_subrole(actor, Subrole.OPERATOR, "attach seals")
    barcode = clean_str(barcode, "barcode", required=True, max_length=128)

    def _op():
        session = _locked_session(session_id)
        if session.company_id != actor.company_id:
            raise ForbiddenError("Session belongs to another company")
        if session.seal is not None:
            raise AlreadySealedError()
        if _barcode_taken(barcode):
            raise DuplicateBarcodeError()

        seal = Seal(barcode=barcode)
        session.seal = seal
        before = session.status
        session.advance_to(SessionStatus.IN_PROGRESS)
        _flush_seal()

        activity_service.record(
            actor,
            ActivityAction.UPDATE,
            {
                "entity_type": ResourceType.SESSION,
                "session_id": session.id,
                "barcode": barcode,
                "changes": {"status": {"before": before, "after": session.status}},
            },
            target_resource_id=session.id,
            target_resource_type=ResourceType.SESSION,
        )
        return seal

    return run_atomic(_op)


def _normalize(value):
    if value is None:
        return None
    return str(value).strip().lower()


def _compare(operator_values: dict, verification: dict) -> dict:
    """
    Field-by-field comparison. A guard value may be given bare or as
    {"value": ..., "comment": "..."} to attach a remark to that field.
    """
    comparison = {}
    for field, observed in verification.items():
        comment = None
        if isinstance(observed, dict):
            comment = clean_str(observed.get("comment"), f"{field} comment", max_length=1000)
            observed = observed.get("value")
        operator_value = operator_values.get(field)
        comparison[field] = {
            "operator_value": operator_value,
            "guard_value": observed,
            "match": _normalize(operator_value) == _normalize(observed),
        }
        if comment:
            comparison[field]["comment"] = comment
    return comparison


def _clean_image_checks(image_verifications: dict | None) -> dict:
    """{image_key: {"verified": bool, "comment": str?}} for photos the guard checked."""
    if image_verifications is None:
        return {}
    if not isinstance(image_verifications, dict):
        raise ValidationError("image_verifications must be an object")
    checks = {}
    for key, check in image_verifications.items():
        if not isinstance(check, dict) or not isinstance(check.get("verified"), bool):
            raise ValidationError(f"image_verifications.{key} needs a boolean 'verified'")
        checks[key] = {"verified": check["verified"]}
        comment = clean_str(check.get("comment"), f"{key} comment", max_length=1000)
        if comment:
            checks[key]["comment"] = comment
    return checks


def verify_seal(
    actor: Actor,
    session_id: int,
    verification: dict | None = None,
    image_verifications: dict | None = None,
) -> TripSession:
    """
    Guard verification: marks the seal verified and completes the session.

    `verification` holds what the guard observed (barcode, vehicle number,
    weights...), optionally with a per-field comment. `image_verifications`
    records which trip photos the guard confirmed. Mismatches are recorded
    in the audit entry; they do not block completion.
    """
    _require_subrole(actor, Subrole.GUARD, "verify seals")
    if verification is None:
        verification = {}
    if not isinstance(verification, dict):
        raise ValidationError("verification must be an object")
    image_checks = _clean_image_checks(image_verifications)

    def _op():
        session = _locked_session(session_id)
        if session.company_id != actor.company_id:
            raise ForbiddenError("Session belongs to another company")
        seal = session.seal
        if seal is None:
            raise ValidationError("Session has no seal to verify")
        if seal.verified:
            raise AlreadyVerifiedError()

        created = activity_service.find_resource_entry(ActivityAction.CREATE, ResourceType.SESSION, session.id)
        operator_values = dict((created.detail or {}).get("trip_details") or {}) if created else {}
        operator_values["barcode"] = seal.barcode

        comparison = _compare(operator_values, verification)
        all_match = all(item["match"] for item in comparison.values()) and all(
            check["verified"] for check in image_checks.values()
        )

        seal.verified = True
        seal.verified_by_id = actor.account_id
        seal.scanned_at = utcnow()
        before = session.status
        session.advance_to(SessionStatus.COMPLETED)
        db.session.flush()

        activity_service.record(
            actor,
            ActivityAction.UPDATE,
            {
                "entity_type": ResourceType.SEAL,
                "session_id": session.id,
                "seal_id": seal.id,
                "changes": {"status": {"before": before, "after": session.status}},
                "verification": comparison,
                "image_verifications": image_checks,
                "all_match": all_match,
            },
            target_resource_id=seal.id,
            target_resource_type=ResourceType.SEAL,
        )
        return session

    return run_atomic(_op)


# =============================================================================
# READS
# =============================================================================

def _visible_sessions_query(actor: Actor):
    """
    Sessions `actor` may see:

    - SUPERADMIN: all
    - ADMIN: sessions of companies whose representative it created
    - COMPANY: its company's sessions
    - GUARD: own-company sessions IN_PROGRESS, or verified by this guard
    - other employees: sessions they created
    """
    q = db.session.query(TripSession)

    if actor.role == Role.SUPERADMIN:
        return q

    if actor.role == Role.ADMIN:
        admin_companies = db.select(Account.company_id).where(
            Account.role == Role.COMPANY, Account.created_by_id == actor.account_id
        )
        return q.filter(TripSession.company_id.in_(admin_companies))

    if actor.role == Role.COMPANY:
        return q.filter(TripSession.company_id == actor.company_id)

    if actor.subrole == Subrole.GUARD:
        verified_by_me = db.select(Seal.session_id).where(Seal.verified_by_id == actor.account_id)
        return q.filter(
            TripSession.company_id == actor.company_id,
            db.or_(TripSession.status == SessionStatus.IN_PROGRESS, TripSession.id.in_(verified_by_me)),
        )

    return q.filter(TripSession.created_by_id == actor.account_id)


def get_session(actor: Actor, session_id: int) -> TripSession:
    session = _visible_sessions_query(actor).filter(TripSession.id == session_id).first()
    if not session:
        raise SessionNotFoundError()
    return session


def list_sessions(
    actor: Actor,
    status: str | None = None,
    company_id: int | None = None,
    needs_verification: bool = False,
    page=1,
    limit=10,
) -> dict:
    """Role-scoped, newest-first page of sessions. Read-only."""
    page, limit = normalize_page(page, limit, default_limit=10)
    if status is not None and status not in SessionStatus.ALL:
        raise ValidationError(f"status must be one of {', '.join(SessionStatus.ALL)}")

    q = _visible_sessions_query(actor)
    if status:
        q = q.filter(TripSession.status == status)
    if company_id is not None:
        q = q.filter(TripSession.company_id == company_id)
    if needs_verification:
        unverified = db.select(Seal.session_id).where(Seal.verified.is_(False))
        q = q.filter(TripSession.status == SessionStatus.IN_PROGRESS, TripSession.id.in_(unverified))

    q = q.order_by(TripSession.created_at.desc(), TripSession.id.desc())
    rows, pagination = paginate(q, page, limit)
    return {"sessions": [row.to_dict() for row in rows], "pagination": pagination}


# =============================================================================
# COMMENTS
# =============================================================================

def add_comment(actor: Actor, session_id: int, message: str) -> Comment:
    message = clean_str(message, "message", required=True, max_length=2000)

    def _op():
        session = get_session(actor, session_id)
        comment = Comment(session_id=session.id, author_id=actor.account_id, message=message)
        db.session.add(comment)
        db.session.flush()

        activity_service.record(
            actor,
            ActivityAction.CREATE,
            {"entity_type": ResourceType.COMMENT, "session_id": session.id, "comment_id": comment.id},
            target_resource_id=comment.id,
            target_resource_type=ResourceType.COMMENT,
        )
        return comment

    return run_atomic(_op)


def list_comments(actor: Actor, session_id: int) -> list[dict]:
    session = get_session(actor, session_id)
    return [c.to_dict() for c in session.comments]
