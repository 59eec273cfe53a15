# Overview: Bearer token issue, validation and revocation.

"""
Token Management Service

WHY: Secure, revocable bearer tokens with automatic timeout.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage (fast, one-way)
- 24-hour absolute timeout (TOKEN_ABSOLUTE_TIMEOUT)
- 2-hour idle timeout (TOKEN_IDLE_TIMEOUT)
- Revocable on logout or when the account is deactivated/deleted

issue_token/revoke_token only flush; the caller's atomic unit commits.
"""

from __future__ import annotations

import hashlib
import secrets
from datetime import timedelta

from ..actor import Actor
from ..extensions import db
from ..models import AuthToken
from ..time_utils import utcnow

TOKEN_ABSOLUTE_TIMEOUT = timedelta(hours=24)
TOKEN_IDLE_TIMEOUT = timedelta(hours=2)


def generate_token() -> str:
    """64-character hex string from a CSPRNG. Never use random/uuid4 for auth tokens."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """SHA-256 is sufficient for high-entropy tokens (unlike passwords)."""
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def issue_token(account_id: int, user_agent: str | None = None, ip_address: str | None = None) -> tuple[AuthToken, str]:
    """Returns (token_record, plaintext_token). Only the hash is stored."""
    plaintext_token = generate_token()
    now = utcnow()

    record = AuthToken(
        account_id=account_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + TOKEN_ABSOLUTE_TIMEOUT,
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(record)
    db.session.flush()
    return record, plaintext_token


def _revoke(record: AuthToken, reason: str) -> None:
    record.is_revoked = True
    record.revoked_at = utcnow()
    record.revoked_reason = reason


def validate_token(token: str, *, ip_address: str | None = None, user_agent: str | None = None) -> Actor | None:
    """
    Resolve a bearer token into an Actor, or None if it is unusable.

    Expired, idle or deactivated-account tokens are revoked on the spot.
    Commits its own bookkeeping (last_used_at / revocation); it runs before
    any core operation in the request.
    """
    record = db.session.query(AuthToken).filter_by(token_hash=hash_token(token), is_revoked=False).first()
    if not record:
        return None

    now = utcnow()
    account = record.account

    if record.expires_at < now:
        _revoke(record, "Expired")
        db.session.commit()
        return None

    if now - record.last_used_at > TOKEN_IDLE_TIMEOUT:
        _revoke(record, "Idle timeout")
        db.session.commit()
        return None

    if not account or not account.is_active:
        _revoke(record, "Account deactivated")
        db.session.commit()
        return None

    record.last_used_at = now
    db.session.commit()

    return Actor.from_account(account, ip_address=ip_address, user_agent=user_agent)


def revoke_token(token: str, reason: str = "User logout") -> AuthToken | None:
    """Mark an active token revoked. Returns the record, or None if not active."""
    record = db.session.query(AuthToken).filter_by(token_hash=hash_token(token), is_revoked=False).first()
    if not record:
        return None
    _revoke(record, reason)
    db.session.flush()
    return record
