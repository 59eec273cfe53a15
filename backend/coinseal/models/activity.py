from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class ActivityLogEntry(db.Model):
    """
    Durable audit trail of every state-changing and sensitive-read operation.

    IMMUTABLE: append-only. Written inside the same DB transaction as the
    change it records, so an audit failure rolls the change back too.

    actor_id / target_account_id are plain indexed integers rather than
    foreign keys: entries must survive deletion of the accounts they name.
    `detail` is an opaque JSON document (trip details, verification
    comparisons, before/after diffs) preserved verbatim.
    """
    __tablename__ = "activity_logs"
    __table_args__ = (
        db.Index("ix_activity_logs_actor_created", "actor_id", "created_at"),
        db.Index("ix_activity_logs_action_created", "action", "created_at"),
        db.Index("ix_activity_logs_resource", "target_resource_type", "target_resource_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    actor_id = db.Column(db.Integer, nullable=False)
    action = db.Column(db.String(16), nullable=False)
    detail = db.Column(db.JSON, nullable=False, default=dict)

    target_account_id = db.Column(db.Integer, nullable=True, index=True)
    target_resource_id = db.Column(db.Integer, nullable=True)
    target_resource_type = db.Column(db.String(32), nullable=True)

    # Client context
    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "actor_id": self.actor_id,
            "action": self.action,
            "detail": self.detail,
            "target_account_id": self.target_account_id,
            "target_resource_id": self.target_resource_id,
            "target_resource_type": self.target_resource_type,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "created_at": to_utc_z(self.created_at),
        }
