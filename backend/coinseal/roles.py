# Overview: Role, subrole and account-kind constants plus the creation matrix.

from __future__ import annotations

from dataclasses import dataclass


class Role:
    """Top-level account roles."""
    SUPERADMIN = "SUPERADMIN"
    ADMIN = "ADMIN"
    COMPANY = "COMPANY"
    EMPLOYEE = "EMPLOYEE"

    ALL = (SUPERADMIN, ADMIN, COMPANY, EMPLOYEE)


class Subrole:
    """Employee subroles. Only meaningful when role is EMPLOYEE."""
    OPERATOR = "OPERATOR"
    DRIVER = "DRIVER"
    TRANSPORTER = "TRANSPORTER"
    GUARD = "GUARD"

    ALL = (OPERATOR, DRIVER, TRANSPORTER, GUARD)


# Which roles each role may provision. Enforced in identity_service, not just hidden in a UI.
CREATABLE_ROLES = {
    Role.SUPERADMIN: frozenset({Role.ADMIN}),
    Role.ADMIN: frozenset({Role.COMPANY, Role.EMPLOYEE}),
    Role.COMPANY: frozenset(),
    Role.EMPLOYEE: frozenset(),
}


@dataclass(frozen=True)
class AccountKind:
    """
    Role and subrole as one value.

    Employee{subrole} | Company | Admin | SuperAdmin. Constructing an illegal
    combination (subrole on a non-employee, employee without a subrole)
    raises ValueError, so an AccountKind in hand is always valid.
    """
    role: str
    subrole: str | None = None

    def __post_init__(self):
        if self.role not in Role.ALL:
            raise ValueError(f"Unknown role: {self.role}")
        if self.role == Role.EMPLOYEE:
            if self.subrole not in Subrole.ALL:
                raise ValueError(f"Employee accounts need a subrole, one of {', '.join(Subrole.ALL)}")
        elif self.subrole is not None:
            raise ValueError(f"Subrole is only allowed for {Role.EMPLOYEE} accounts")

    @classmethod
    def employee(cls, subrole: str) -> "AccountKind":
        return cls(Role.EMPLOYEE, subrole)

    @property
    def is_employee(self) -> bool:
        return self.role == Role.EMPLOYEE

    def is_subrole(self, subrole: str) -> bool:
        return self.role == Role.EMPLOYEE and self.subrole == subrole

    def can_create(self, role: str) -> bool:
        return role in CREATABLE_ROLES[self.role]

    def label(self) -> str:
        if self.subrole:
            return f"{self.role}/{self.subrole}"
        return self.role


class TransactionReason:
    SESSION_START = "SESSION_START"
    COIN_ALLOCATION = "COIN_ALLOCATION"
    MANUAL_TOPUP = "MANUAL_TOPUP"
    ADMIN_TRANSFER = "ADMIN_TRANSFER"
    EMPLOYEE_TRANSFER = "EMPLOYEE_TRANSFER"

    ALL = (SESSION_START, COIN_ALLOCATION, MANUAL_TOPUP, ADMIN_TRANSFER, EMPLOYEE_TRANSFER)
    # Reasons a caller may pick for a plain transfer; the rest are system-assigned
    USER_SELECTABLE = (ADMIN_TRANSFER, EMPLOYEE_TRANSFER)


class SessionStatus:
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"

    ALL = (PENDING, IN_PROGRESS, COMPLETED)
    # Allowed forward moves; nothing moves backwards
    TRANSITIONS = {
        PENDING: frozenset({IN_PROGRESS}),
        IN_PROGRESS: frozenset({COMPLETED}),
        COMPLETED: frozenset(),
    }


class ActivityAction:
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    TRANSFER = "TRANSFER"
    ALLOCATE = "ALLOCATE"
    VIEW = "VIEW"

    ALL = (CREATE, UPDATE, DELETE, LOGIN, LOGOUT, TRANSFER, ALLOCATE, VIEW)


class ResourceType:
    USER = "USER"
    USER_LIST = "USER_LIST"
    COMPANY = "COMPANY"
    COIN_TRANSACTION = "COIN_TRANSACTION"
    SESSION = "SESSION"
    SEAL = "SEAL"
    COMMENT = "COMMENT"
