from __future__ import annotations

from ..extensions import db
from ..roles import AccountKind, Role
from ..time_utils import to_utc_z


class Company(db.Model):
    """
    A business entity that owns Employee accounts.

    Every company has exactly one COMPANY-role representative Account; the
    representative's coin balance is the pool session creation draws from.
    Companies are only ever created together with that account.
    """
    __tablename__ = "companies"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    address = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    representative = db.relationship(
        "Account",
        primaryjoin="and_(Company.id == foreign(Account.company_id), Account.role == 'COMPANY')",
        uselist=False,
        viewonly=True,
    )
    employees = db.relationship(
        "Account",
        primaryjoin="and_(Company.id == foreign(Account.company_id), Account.role == 'EMPLOYEE')",
        viewonly=True,
        order_by="Account.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "representative_account_id": self.representative.id if self.representative else None,
            "created_at": to_utc_z(self.created_at),
        }


class Account(db.Model):
    """
    A system identity with a role and a coin balance.

    - role/subrole: read and written together through `kind` (AccountKind);
      the check constraint below rejects a subrole on non-employees
    - coins: integer balance, never negative
    - created_by_id: parent pointer of the creation forest; never a cycle
    """
    __tablename__ = "accounts"
    __table_args__ = (
        db.CheckConstraint("coins >= 0", name="ck_accounts_coins_non_negative"),
        db.CheckConstraint(
            "(role = 'EMPLOYEE' AND subrole IS NOT NULL) OR (role != 'EMPLOYEE' AND subrole IS NULL)",
            name="ck_accounts_subrole_employee_only",
        ),
        db.CheckConstraint(
            "created_by_id IS NULL OR created_by_id != id",
            name="ck_accounts_not_self_created",
        ),
        db.Index("ix_accounts_role_created_by", "role", "created_by_id"),
        db.Index("ix_accounts_company_role", "company_id", "role"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(16), nullable=False, index=True)
    subrole = db.Column(db.String(16), nullable=True)

    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=True)
    coins = db.Column(db.Integer, nullable=False, default=0)
    created_by_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True, index=True)

    phone = db.Column(db.String(32), nullable=True)
    address = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    company = db.relationship("Company", foreign_keys=[company_id])
    created_by = db.relationship("Account", remote_side=[id], foreign_keys=[created_by_id])

    @property
    def kind(self) -> AccountKind:
        return AccountKind(self.role, self.subrole)

    @kind.setter
    def kind(self, value: AccountKind) -> None:
        self.role = value.role
        self.subrole = value.subrole

    @property
    def is_company_representative(self) -> bool:
        return self.role == Role.COMPANY and self.company_id is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "subrole": self.subrole,
            "company_id": self.company_id,
            "company_name": self.company.name if self.company else None,
            "coins": self.coins,
            "created_by_id": self.created_by_id,
            "phone": self.phone,
            "address": self.address,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
