"""
Domain Models - Internal business logic models using dataclasses.

All data structures are strongly typed immutable dataclasses.
AccountData deliberately has no password field: anything built from it is
sanitised by construction.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from tarot_api.models.api import AccountResponse, AccountStatus, UsageSummary


def remaining_calls(usage_limit: int, usage_used: int) -> int:
    """Calls left in the budget; never negative even when used exceeds limit."""
    return max(0, usage_limit - usage_used)


@dataclass(frozen=True)
class AccountData:
    """Immutable account snapshot."""

    account_id: UUID
    username: str
    email: str | None
    phone: str | None
    name: str | None
    agent_id: str | None
    tier: str
    plan_type: str
    is_test: bool
    status: AccountStatus
    balance: int
    usage_limit: int
    usage_used: int
    api_token: str
    valid_from: datetime | None
    valid_to: datetime | None
    created_at: datetime
    updated_at: datetime

    @property
    def remaining_calls(self) -> int:
        """Calls left in the budget."""
        return remaining_calls(self.usage_limit, self.usage_used)

    def is_expired(self, now: datetime | None = None) -> bool:
        """True when valid_to lies strictly in the past."""
        if self.valid_to is None:
            return False
        return self.valid_to < (now or datetime.now(UTC))

    def usage(self) -> UsageSummary:
        """Usage snapshot for responses."""
        return UsageSummary(
            limit=self.usage_limit,
            used=self.usage_used,
            remaining=self.remaining_calls,
        )

    def to_response(self) -> AccountResponse:
        """Sanitised API representation."""
        return AccountResponse(
            id=self.account_id,
            username=self.username,
            email=self.email,
            phone=self.phone,
            name=self.name,
            agent_id=self.agent_id,
            tier=self.tier,
            plan_type=self.plan_type,
            is_test=self.is_test,
            status=self.status,
            balance=self.balance,
            usage_limit=self.usage_limit,
            usage_used=self.usage_used,
            remaining_calls=self.remaining_calls,
            api_token=self.api_token,
            valid_from=self.valid_from,
            valid_to=self.valid_to,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


@dataclass(frozen=True)
class AuthContext:
    """Identity attached to a request once the bearer token is resolved."""

    account: AccountData
    token: str


@dataclass(frozen=True)
class AccountStats:
    """Aggregate counters for the admin dashboard."""

    total_users: int
    active_users: int
    total_calls: int
