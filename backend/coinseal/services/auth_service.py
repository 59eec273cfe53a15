# Overview: Password hashing and the login/logout flow that resolves an Actor.

"""
Authentication Service

WHY: Every action must be attributable. Passwords are bcrypt-hashed and
strength-checked; login issues a bearer token (token_service) and appends
a LOGIN activity entry, logout revokes it and appends LOGOUT.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters, upper, lower, digit and special char required
- Failed logins return None without revealing which part was wrong
"""

from __future__ import annotations

import re

import bcrypt
from flask import current_app

from ..actor import Actor
from ..errors import ValidationError
from ..extensions import db
from ..models import Account
from ..roles import ActivityAction, ResourceType
from . import activity_service, token_service
from .concurrency import run_atomic


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    code = "WEAK_PASSWORD"


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str):
        raise PasswordValidationError("Password must be a string")

    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Strength-check then bcrypt-hash a password."""
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=rounds))
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt comparison. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def authenticate(email: str, password: str) -> Account | None:
    """Return the active account for these credentials, or None."""
    if not email or not password:
        return None

    account = (
        db.session.query(Account)
        .filter(db.func.lower(Account.email) == email.strip().lower(), Account.is_active.is_(True))
        .first()
    )
    if not account:
        return None
    if not verify_password(password, account.password_hash):
        return None
    return account


def login(email: str, password: str, *, ip_address: str | None = None, user_agent: str | None = None):
    """
    Authenticate and issue a token.

    Returns (account, token_record, plaintext_token), or None on bad
    credentials. The LOGIN entry and the token are one atomic unit.
    """
    account = authenticate(email, password)
    if not account:
        return None

    actor = Actor.from_account(account, ip_address=ip_address, user_agent=user_agent)

    def _op():
        record, token = token_service.issue_token(account.id, user_agent=user_agent, ip_address=ip_address)
        activity_service.record(
            actor,
            ActivityAction.LOGIN,
            {"method": "password", "user_agent": user_agent},
            target_account_id=account.id,
            target_resource_type=ResourceType.USER,
            target_resource_id=account.id,
        )
        return record, token

    record, token = run_atomic(_op)
    return account, record, token


def logout(token: str, *, ip_address: str | None = None, user_agent: str | None = None) -> bool:
    """Revoke the token and record LOGOUT. False if the token was not active."""

    def _op():
        record = token_service.revoke_token(token, reason="User logout")
        if record is None:
            return False
        account = record.account
        actor = Actor.from_account(account, ip_address=ip_address, user_agent=user_agent)
        activity_service.record(
            actor,
            ActivityAction.LOGOUT,
            {"user_agent": user_agent},
            target_account_id=account.id,
            target_resource_type=ResourceType.USER,
            target_resource_id=account.id,
        )
        return True

    return run_atomic(_op)
