# Overview: Coin ledger: atomic movement primitive, transfer, allocation, top-up and ledger reads.

"""
Ledger Engine

INVARIANTS:
- Balances are integers and never negative (DB check constraint plus the
  conditional debit below).
- Every movement writes exactly one CoinTransaction in the same atomic
  unit as the balance changes. Transactions are never updated or deleted.
- Transfer, allocation and session start only move coins between
  accounts; the system total changes only through top_up.

DEBIT MODEL:
SQLite ignores SELECT ... FOR UPDATE, so the debit is a single conditional
statement: UPDATE accounts SET coins = coins - n WHERE id = ? AND coins >= n.
If it matches no row the balance was insufficient at that instant, however
many requests are racing.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..actor import Actor
from ..errors import (
    ForbiddenError,
    InsufficientBalanceError,
    RecipientNotFoundError,
    SelfTransferError,
    SystemConfigurationError,
    ValidationError,
)
from ..extensions import db
from ..models import Account, CoinTransaction, TripSession
from ..pagination import normalize_page, paginate
from ..roles import ActivityAction, ResourceType, Role, SessionStatus, TransactionReason
from ..validation import clean_str, require_amount
from . import activity_service
from .concurrency import lock_for_update, run_atomic


def get_system_account() -> Account:
    """
    The account that receives session-start debits and top-ups.

    SYSTEM_ACCOUNT_EMAIL wins when configured; otherwise the lowest-id
    SuperAdmin. Raises SystemConfigurationError if neither exists.
    """
    email = (current_app.config.get("SYSTEM_ACCOUNT_EMAIL") or "").strip().lower()
    if email:
        account = db.session.query(Account).filter(db.func.lower(Account.email) == email).first()
        if account:
            return account
        raise SystemConfigurationError(f"Configured system account {email} does not exist")

    account = (
        db.session.query(Account)
        .filter(Account.role == Role.SUPERADMIN)
        .order_by(Account.id.asc())
        .first()
    )
    if not account:
        raise SystemConfigurationError("No system account configured: create a SuperAdmin first")
    return account


def _credit(account_id: int, amount: int) -> None:
    db.session.execute(
        db.update(Account)
        .where(Account.id == account_id)
        .values(coins=Account.coins + amount)
        .execution_options(synchronize_session=False)
    )


def move_coins(
    from_account_id: int,
    to_account_id: int,
    amount: int,
    reason: str,
    *,
    note: str | None = None,
    session_id: int | None = None,
    insufficient_error: type[InsufficientBalanceError] = InsufficientBalanceError,
) -> CoinTransaction:
    """
    Move `amount` coins between two accounts inside the caller's atomic unit.

    Locks both rows in ascending id order, debits conditionally, credits,
    and inserts the CoinTransaction. Never commits.

    Raises:
        insufficient_error: if the sender's balance is below `amount`
    """
    if from_account_id == to_account_id:
        raise SelfTransferError()
    if reason not in TransactionReason.ALL:
        raise ValueError(f"Unknown transaction reason: {reason}")

    for account_id in sorted((from_account_id, to_account_id)):
        lock_for_update(db.session.query(Account.id).filter(Account.id == account_id)).first()

    debited = db.session.execute(
        db.update(Account)
        .where(Account.id == from_account_id, Account.coins >= amount)
        .values(coins=Account.coins - amount)
        .execution_options(synchronize_session=False)
    )
    if debited.rowcount != 1:
        raise insufficient_error()
    _credit(to_account_id, amount)

    txn = CoinTransaction(
        from_account_id=from_account_id,
        to_account_id=to_account_id,
        amount=amount,
        reason=reason,
        note=note,
        session_id=session_id,
    )
    db.session.add(txn)
    db.session.flush()

    # Balances were changed behind the identity map's back
    for account in (db.session.get(Account, from_account_id), db.session.get(Account, to_account_id)):
        if account is not None:
            db.session.expire(account, ["coins"])

    current_app.logger.info(
        "Moved %d coins %s -> %s (%s, txn %s)", amount, from_account_id, to_account_id, reason, txn.id
    )
    return txn


# =============================================================================
# TRANSFER / ALLOCATE / TOP-UP
# =============================================================================

def transfer_coins(actor: Actor, to_account_id: int, amount: int, reason: str, note: str | None = None) -> CoinTransaction:
    """
    Plain account-to-account transfer. Any account may send its own coins.

    Check order: InvalidAmount, ValidationError (reason), SelfTransfer,
    RecipientNotFound, InsufficientBalance.
    """
    amount = require_amount(amount)
    if reason not in TransactionReason.USER_SELECTABLE:
        raise ValidationError(f"reason must be one of {', '.join(TransactionReason.USER_SELECTABLE)}")
    if to_account_id == actor.account_id:
        raise SelfTransferError()
    note = clean_str(note, "note", max_length=1000)

    def _op():
        recipient = db.session.get(Account, to_account_id)
        if not recipient:
            raise RecipientNotFoundError()

        txn = move_coins(actor.account_id, recipient.id, amount, reason, note=note)
        activity_service.record(
            actor,
            ActivityAction.TRANSFER,
            {
                "transaction_id": txn.id,
                "amount": amount,
                "reason": reason,
                "recipient_name": recipient.name,
                "note": note,
            },
            target_account_id=recipient.id,
            target_resource_id=txn.id,
            target_resource_type=ResourceType.COIN_TRANSACTION,
        )
        return txn

    return run_atomic(_op)


def _can_allocate(actor: Actor, recipient: Account) -> bool:
    if actor.role == Role.SUPERADMIN:
        return recipient.role == Role.ADMIN

    if actor.role == Role.ADMIN:
        if recipient.role == Role.COMPANY:
            return recipient.created_by_id == actor.account_id
        if recipient.role == Role.EMPLOYEE:
            if recipient.created_by_id == actor.account_id:
                return True
            representative = recipient.company.representative if recipient.company else None
            return representative is not None and representative.created_by_id == actor.account_id

    return False


def allocate_coins(actor: Actor, to_account_id: int, amount: int, note: str | None = None) -> CoinTransaction:
    """
    Push coins down the hierarchy.

    SUPERADMIN -> ADMIN; ADMIN -> a Company it created, or an Employee it
    created or whose company's representative it created. Anything else is
    ForbiddenError and nothing is written.
    """
    amount = require_amount(amount)
    if actor.role not in (Role.SUPERADMIN, Role.ADMIN):
        raise ForbiddenError("Only SuperAdmin and Admin accounts can allocate coins")
    if to_account_id == actor.account_id:
        raise SelfTransferError()
    note = clean_str(note, "note", max_length=1000)

    def _op():
        recipient = db.session.get(Account, to_account_id)
        if not recipient:
            raise RecipientNotFoundError()
        if not _can_allocate(actor, recipient):
            raise ForbiddenError(f"{actor.kind.label()} cannot allocate coins to this {recipient.kind.label()} account")

        txn = move_coins(actor.account_id, recipient.id, amount, TransactionReason.COIN_ALLOCATION, note=note)
        activity_service.record(
            actor,
            ActivityAction.ALLOCATE,
            {
                "transaction_id": txn.id,
                "amount": amount,
                "recipient_name": recipient.name,
                "recipient_role": recipient.role,
                "note": note,
            },
            target_account_id=recipient.id,
            target_resource_id=txn.id,
            target_resource_type=ResourceType.COIN_TRANSACTION,
        )
        return txn

    return run_atomic(_op)


def top_up(amount: int, note: str | None = None, actor: Actor | None = None) -> CoinTransaction:
    """
    Mint coins into the system account (MANUAL_TOPUP, no source account).

    The only operation that changes the total in circulation. Called from
    the CLI without an actor; when an actor is given it must be SuperAdmin.
    """
    amount = require_amount(amount)
    if actor is not None and actor.role != Role.SUPERADMIN:
        raise ForbiddenError("Only SuperAdmin can top up the system account")
    note = clean_str(note, "note", max_length=1000)

    def _op():
        system = get_system_account()
        lock_for_update(db.session.query(Account.id).filter(Account.id == system.id)).first()
        before = system.coins
        _credit(system.id, amount)

        txn = CoinTransaction(
            from_account_id=None,
            to_account_id=system.id,
            amount=amount,
            reason=TransactionReason.MANUAL_TOPUP,
            note=note,
        )
        db.session.add(txn)
        db.session.flush()
        db.session.expire(system, ["coins"])

        activity_service.record(
            actor or Actor.from_account(system),
            ActivityAction.UPDATE,
            {
                "entity_type": ResourceType.USER,
                "transaction_id": txn.id,
                "changes": {"coins": {"before": before, "after": system.coins}},
                "reason": TransactionReason.MANUAL_TOPUP,
            },
            target_account_id=system.id,
            target_resource_id=txn.id,
            target_resource_type=ResourceType.COIN_TRANSACTION,
        )
        current_app.logger.info("Topped up system account %s with %d coins", system.id, amount)
        return txn

    return run_atomic(_op)


# =============================================================================
# READS
# =============================================================================

def get_balance(actor: Actor) -> dict:
    account = db.session.get(Account, actor.account_id)
    return {"account_id": account.id, "coins": account.coins}


def list_transactions(
    actor: Actor,
    *,
    reason: str | None = None,
    account_id: int | None = None,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
    page=1,
    limit=50,
) -> dict:
    """
    Newest-first page of transactions.

    SuperAdmin sees the whole ledger; everyone else only transactions they
    sent or received. account_id narrows to one side of the transfer.
    """
    page, limit = normalize_page(page, limit, default_limit=50)
    if reason is not None and reason not in TransactionReason.ALL:
        raise ValidationError(f"reason must be one of {', '.join(TransactionReason.ALL)}")

    q = db.session.query(CoinTransaction)
    if actor.role != Role.SUPERADMIN:
        q = q.filter(
            db.or_(
                CoinTransaction.from_account_id == actor.account_id,
                CoinTransaction.to_account_id == actor.account_id,
            )
        )
    if reason:
        q = q.filter(CoinTransaction.reason == reason)
    if account_id is not None:
        q = q.filter(
            db.or_(CoinTransaction.from_account_id == account_id, CoinTransaction.to_account_id == account_id)
        )
    if from_date is not None:
        q = q.filter(CoinTransaction.created_at >= from_date)
    if to_date is not None:
        q = q.filter(CoinTransaction.created_at <= to_date)

    q = q.order_by(CoinTransaction.created_at.desc(), CoinTransaction.id.desc())
    rows, pagination = paginate(q, page, limit)
    return {"transactions": [row.to_dict() for row in rows], "pagination": pagination}


def system_stats(actor: Actor) -> dict:
    """SuperAdmin-only system totals."""
    if actor.role != Role.SUPERADMIN:
        raise ForbiddenError("Only SuperAdmin can view system statistics")

    accounts_by_role = dict.fromkeys(Role.ALL, 0)
    for role, count in db.session.query(Account.role, db.func.count(Account.id)).group_by(Account.role).all():
        accounts_by_role[role] = count

    sessions_by_status = dict.fromkeys(SessionStatus.ALL, 0)
    for status, count in (
        db.session.query(TripSession.status, db.func.count(TripSession.id)).group_by(TripSession.status).all()
    ):
        sessions_by_status[status] = count

    total_coins = db.session.query(db.func.coalesce(db.func.sum(Account.coins), 0)).scalar()
    minted = (
        db.session.query(db.func.coalesce(db.func.sum(CoinTransaction.amount), 0))
        .filter(CoinTransaction.reason == TransactionReason.MANUAL_TOPUP)
        .scalar()
    )

    return {
        "accounts_by_role": accounts_by_role,
        "total_accounts": sum(accounts_by_role.values()),
        "total_coins": int(total_coins),
        "total_minted": int(minted),
        "sessions_by_status": sessions_by_status,
        "total_sessions": sum(sessions_by_status.values()),
        "total_transactions": db.session.query(db.func.count(CoinTransaction.id)).scalar(),
    }
