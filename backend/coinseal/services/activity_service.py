# Overview: Append-only activity audit log: recording and role-scoped querying.

"""
Activity Audit Log

INVARIANTS:
- Append-only. There is no update or delete API, and the ORM rejects both
  (models/immutability.py).
- record() only adds and flushes; it never commits. It runs inside the
  caller's atomic unit, so if the audit write fails the whole operation
  rolls back with it.
- Network metadata comes from the resolved Actor, never from ambient
  request state.
"""

from __future__ import annotations

from datetime import datetime

from ..errors import ValidationError
from ..extensions import db
from ..models import Account, ActivityLogEntry
from ..pagination import normalize_page, paginate
from ..roles import ActivityAction, ResourceType, Role
from ..time_utils import utcnow


def record(
    actor,
    action: str,
    detail: dict | None = None,
    *,
    target_account_id: int | None = None,
    target_resource_id: int | None = None,
    target_resource_type: str | None = None,
) -> ActivityLogEntry:
    """
    Append one audit entry in the current transaction.

    `actor` is a resolved Actor (or anything with account_id, ip_address
    and user_agent attributes).
    """
    if action not in ActivityAction.ALL:
        raise ValueError(f"Unknown activity action: {action}")

    entry = ActivityLogEntry(
        actor_id=actor.account_id,
        action=action,
        detail=dict(detail or {}),
        target_account_id=target_account_id,
        target_resource_id=target_resource_id,
        target_resource_type=target_resource_type,
        ip_address=getattr(actor, "ip_address", None),
        user_agent=getattr(actor, "user_agent", None),
        created_at=utcnow(),
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def find_resource_entry(action: str, resource_type: str, resource_id: int) -> ActivityLogEntry | None:
    """Earliest entry of `action` against one resource (e.g. a session's CREATE)."""
    return (
        db.session.query(ActivityLogEntry)
        .filter_by(action=action, target_resource_type=resource_type, target_resource_id=resource_id)
        .order_by(ActivityLogEntry.id.asc())
        .first()
    )


def _created_account_ids(*conditions):
    """
    Account ids named by USER CREATE entries matching `conditions`.

    Read from the audit trail itself, so it still resolves accounts that
    have since been deleted.
    """
    created = db.aliased(ActivityLogEntry)
    return db.select(created.target_account_id).where(
        created.action == ActivityAction.CREATE,
        created.target_resource_type == ResourceType.USER,
        created.target_account_id.is_not(None),
        *[condition(created) for condition in conditions],
    )


def _visibility_clause(actor):
    """
    Filter on ActivityLogEntry.actor_id for what `actor` may read, or None for all.

    - SUPERADMIN: everything
    - ADMIN: itself, accounts it created, and accounts of companies whose
      representative it created
    - COMPANY: itself and every account of its company
    - EMPLOYEE: itself only

    Live accounts are matched through `accounts`; deleted ones through the
    CREATE entry that provisioned them.
    """
    if actor.role == Role.SUPERADMIN:
        return None

    if actor.role == Role.ADMIN:
        admin_companies = db.select(Account.company_id).where(
            Account.role == Role.COMPANY, Account.created_by_id == actor.account_id
        )
        live = db.select(Account.id).where(
            db.or_(
                Account.id == actor.account_id,
                Account.created_by_id == actor.account_id,
                Account.company_id.in_(admin_companies),
            )
        )
        provisioned = _created_account_ids(
            lambda created: db.or_(
                created.actor_id == actor.account_id,
                created.detail["company_id"].as_integer().in_(admin_companies),
            )
        )
        return db.or_(ActivityLogEntry.actor_id.in_(live), ActivityLogEntry.actor_id.in_(provisioned))

    if actor.role == Role.COMPANY and actor.company_id is not None:
        live = db.select(Account.id).where(
            db.or_(Account.id == actor.account_id, Account.company_id == actor.company_id)
        )
        provisioned = _created_account_ids(
            lambda created: created.detail["company_id"].as_integer() == actor.company_id
        )
        return db.or_(ActivityLogEntry.actor_id.in_(live), ActivityLogEntry.actor_id.in_(provisioned))

    return ActivityLogEntry.actor_id == actor.account_id


def list_activity(
    actor,
    *,
    action: str | None = None,
    user_id: int | None = None,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
    page=1,
    limit=50,
) -> dict:
    """
    Role-scoped, newest-first page of audit entries.

    user_id narrows to one actor; it never widens visibility. Date bounds
    are inclusive.
    """
    page, limit = normalize_page(page, limit, default_limit=50)

    if action is not None and action not in ActivityAction.ALL:
        raise ValidationError(f"action must be one of {', '.join(ActivityAction.ALL)}")
    if from_date is not None and to_date is not None and from_date > to_date:
        raise ValidationError("from_date must not be after to_date")

    q = db.session.query(ActivityLogEntry)

    visible = _visibility_clause(actor)
    if visible is not None:
        q = q.filter(visible)
    if action:
        q = q.filter(ActivityLogEntry.action == action)
    if user_id is not None:
        q = q.filter(ActivityLogEntry.actor_id == user_id)
    if from_date is not None:
        q = q.filter(ActivityLogEntry.created_at >= from_date)
    if to_date is not None:
        q = q.filter(ActivityLogEntry.created_at <= to_date)

    q = q.order_by(ActivityLogEntry.created_at.desc(), ActivityLogEntry.id.desc())
    rows, pagination = paginate(q, page, limit)

    names = _actor_names({row.actor_id for row in rows})
    logs = []
    for row in rows:
        item = row.to_dict()
        item["actor_name"] = names.get(row.actor_id)
        logs.append(item)

    return {"logs": logs, "pagination": pagination}


def _actor_names(ids: set[int]) -> dict[int, str]:
    if not ids:
        return {}
    rows = db.session.query(Account.id, Account.name).filter(Account.id.in_(ids)).all()
    return {row.id: row.name for row in rows}
