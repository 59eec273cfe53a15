from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class CoinTransaction(db.Model):
    """
    One row per coin movement.

    IMMUTABLE: never updated or deleted (see models/immutability.py).
    from_account_id is NULL only for MANUAL_TOPUP, where coins are minted
    into the system account rather than moved from another account.
    """
    __tablename__ = "coin_transactions"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_coin_transactions_amount_positive"),
        db.CheckConstraint(
            "from_account_id IS NULL OR from_account_id != to_account_id",
            name="ck_coin_transactions_distinct_accounts",
        ),
        db.CheckConstraint(
            "from_account_id IS NOT NULL OR reason = 'MANUAL_TOPUP'",
            name="ck_coin_transactions_source_required",
        ),
        db.Index("ix_coin_transactions_from_created", "from_account_id", "created_at"),
        db.Index("ix_coin_transactions_to_created", "to_account_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    from_account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True)
    to_account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False)
    amount = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(32), nullable=False, index=True)
    note = db.Column(db.Text, nullable=True)
    session_id = db.Column(db.Integer, db.ForeignKey("sessions.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now(), index=True)

    from_account = db.relationship("Account", foreign_keys=[from_account_id])
    to_account = db.relationship("Account", foreign_keys=[to_account_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "from_account_id": self.from_account_id,
            "from_account_name": self.from_account.name if self.from_account else None,
            "to_account_id": self.to_account_id,
            "to_account_name": self.to_account.name if self.to_account else None,
            "amount": self.amount,
            "reason": self.reason,
            "note": self.note,
            "session_id": self.session_id,
            "created_at": to_utc_z(self.created_at),
        }
