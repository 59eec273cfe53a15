from __future__ import annotations

from dataclasses import dataclass

from .roles import AccountKind


@dataclass(frozen=True)
class Actor:
    """
    Resolved caller identity passed explicitly into every core operation.

    Built by the boundary (bearer-token validation, CLI) from the Account
    row; ip_address/user_agent ride along so audit entries can carry
    network metadata without reading request globals.
    """
    account_id: int
    role: str
    subrole: str | None = None
    company_id: int | None = None
    ip_address: str | None = None
    user_agent: str | None = None

    @property
    def kind(self) -> AccountKind:
        return AccountKind(self.role, self.subrole)

    @classmethod
    def from_account(cls, account, *, ip_address: str | None = None, user_agent: str | None = None) -> "Actor":
        return cls(
            account_id=account.id,
            role=account.role,
            subrole=account.subrole,
            company_id=account.company_id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
