from __future__ import annotations

from ..extensions import db
from ..roles import SessionStatus
from ..time_utils import to_utc_z, utcnow


class TripSession(db.Model):
    """
    A tracked shipment trip from source to destination.

    LIFECYCLE (monotonic, never reversed):
    1. PENDING: created without a seal
    2. IN_PROGRESS: seal attached, awaiting guard verification
    3. COMPLETED: seal verified by a guard of the owning company

    company_id is fixed at creation. Trip detail fields (material, vehicle,
    weights, image references...) are not columns; they are preserved
    verbatim in the CREATE activity entry for this session.
    """
    __tablename__ = "sessions"
    __table_args__ = (
        db.CheckConstraint(
            "status IN ('PENDING', 'IN_PROGRESS', 'COMPLETED')",
            name="ck_sessions_status",
        ),
        db.Index("ix_sessions_company_status", "company_id", "status"),
        db.Index("ix_sessions_created_by", "created_by_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False)
    created_by_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False)

    source = db.Column(db.String(255), nullable=False)
    destination = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=SessionStatus.PENDING, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now(), index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now(), onupdate=utcnow)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    company = db.relationship("Company", backref=db.backref("sessions", lazy="dynamic"))
    created_by = db.relationship("Account", foreign_keys=[created_by_id])
    seal = db.relationship("Seal", uselist=False, back_populates="session")
    comments = db.relationship("Comment", back_populates="session", order_by="Comment.id", lazy=True)

    __mapper_args__ = {"version_id_col": version_id}

    def advance_to(self, new_status: str) -> None:
        """Move forward one lifecycle step; anything else is a programming error."""
        if new_status not in SessionStatus.TRANSITIONS[self.status]:
            raise ValueError(f"Cannot move session {self.id} from {self.status} to {new_status}")
        self.status = new_status
        if new_status == SessionStatus.COMPLETED:
            self.completed_at = utcnow()

    def to_dict(self, include_comments: bool = False) -> dict:
        data = {
            "id": self.id,
            "company_id": self.company_id,
            "company_name": self.company.name if self.company else None,
            "created_by_id": self.created_by_id,
            "created_by_name": self.created_by.name if self.created_by else None,
            "source": self.source,
            "destination": self.destination,
            "status": self.status,
            "seal": self.seal.to_dict() if self.seal else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
        }
        if include_comments:
            data["comments"] = [c.to_dict() for c in self.comments]
        return data


class Seal(db.Model):
    """
    Barcode seal on a session (at most one per session).

    Verified exactly once, by a GUARD of the session's company; after that
    verified_by_id and scanned_at never change.
    """
    __tablename__ = "seals"
    __table_args__ = (
        db.UniqueConstraint("session_id", name="uq_seals_session"),
        db.UniqueConstraint("barcode", name="uq_seals_barcode"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey("sessions.id"), nullable=False)
    barcode = db.Column(db.String(128), nullable=False)

    verified = db.Column(db.Boolean, nullable=False, default=False)
    verified_by_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True, index=True)
    scanned_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    session = db.relationship("TripSession", back_populates="seal")
    verified_by = db.relationship("Account", foreign_keys=[verified_by_id])

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "barcode": self.barcode,
            "verified": self.verified,
            "verified_by_id": self.verified_by_id,
            "scanned_at": to_utc_z(self.scanned_at) if self.scanned_at else None,
            "created_at": to_utc_z(self.created_at),
        }


class Comment(db.Model):
    """Append-only annotation on a session."""
    __tablename__ = "comments"
    __table_args__ = (
        db.Index("ix_comments_session_created", "session_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey("sessions.id"), nullable=False)
    author_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False)
    message = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    session = db.relationship("TripSession", back_populates="comments")
    author = db.relationship("Account", foreign_keys=[author_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "author_id": self.author_id,
            "author_name": self.author.name if self.author else None,
            "message": self.message,
            "created_at": to_utc_z(self.created_at),
        }
