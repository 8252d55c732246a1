"""
Quota Ledger - Atomic, clamped mutation of balance and call counters.

Every mutation is ONE conditional UPDATE statement followed by a read-back in
the same transaction. The database evaluates the clamp against the row's
current value, so concurrent adjustments and usage increments on the same
account never lose updates.
"""

import math
from uuid import UUID

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from tarot_api.db.models import Account
from tarot_api.exceptions import AccountNotFoundError, ValidationError
from tarot_api.models.api import QuotaKind
from tarot_api.models.domain import AccountData
from tarot_api.models.domain import remaining_calls as _remaining_calls
from tarot_api.observability.metrics import metrics
from tarot_api.services.credentials import account_to_domain, parse_account_id

logger = get_logger(__name__)

# BIGINT range of the counter columns
COUNTER_MAX = 2**63 - 1


def remaining_calls(account: AccountData) -> int:
    """Pure: max(0, usage_limit - usage_used)."""
    return _remaining_calls(account.usage_limit, account.usage_used)


def parse_quota_kind(kind: QuotaKind | str) -> QuotaKind:
    """Validate the counter targeted by an adjustment."""
    try:
        return QuotaKind(kind)
    except ValueError as exc:
        raise ValidationError("type must be 'balance' or 'calls'", field="type") from exc


def parse_delta(delta: int | float) -> int:
    """
    Validate an adjustment amount: finite, whole and non-zero.

    Negative amounts beyond the counter range are clamped, since the result
    floors anyway; positive amounts beyond it are rejected.
    """
    if isinstance(delta, bool) or not isinstance(delta, (int, float)):
        raise ValidationError("amount must be a non-zero number", field="amount")
    if isinstance(delta, float):
        if not math.isfinite(delta):
            raise ValidationError("amount must be a non-zero number", field="amount")
        if not delta.is_integer():
            raise ValidationError("amount must be a whole number", field="amount")
    amount = int(delta)
    if amount == 0:
        raise ValidationError("amount must be a non-zero number", field="amount")
    if amount > COUNTER_MAX:
        raise ValidationError(f"amount must not exceed {COUNTER_MAX}", field="amount")
    return max(amount, -COUNTER_MAX)


class QuotaLedger:
    """Computes and mutates per-account balance and call counters."""

    remaining = staticmethod(remaining_calls)

    def __init__(self, session: AsyncSession) -> None:
        """Initialize ledger with database session."""
        self.session = session

    async def adjust(
        self, account_id: UUID | str, kind: QuotaKind | str, delta: int | float
    ) -> AccountData:
        """
        Apply a signed delta to balance or call limit.

        balance: max(0, balance + delta)
        calls:   max(usage_used, usage_limit + delta)

        Raises:
            ValidationError: zero, non-finite or fractional delta; unknown kind
            AccountNotFoundError: account doesn't exist
        """
        quota_kind = parse_quota_kind(kind)
        amount = parse_delta(delta)
        parsed_id = parse_account_id(account_id)

        # Conditions compare against bound values so no intermediate sum
        # leaves the BIGINT range
        if quota_kind == QuotaKind.BALANCE:
            if amount < 0:
                new_value = case(
                    (Account.balance < -amount, 0),
                    else_=Account.balance + amount,
                )
            else:
                new_value = case(
                    (Account.balance > COUNTER_MAX - amount, COUNTER_MAX),
                    else_=Account.balance + amount,
                )
            values = {Account.balance: new_value}
        else:
            if amount < 0:
                new_value = case(
                    (Account.usage_limit - Account.usage_used < -amount, Account.usage_used),
                    else_=Account.usage_limit + amount,
                )
            else:
                new_value = case(
                    (Account.usage_limit > COUNTER_MAX - amount, COUNTER_MAX),
                    (Account.usage_limit + amount < Account.usage_used, Account.usage_used),
                    else_=Account.usage_limit + amount,
                )
            values = {Account.usage_limit: new_value}

        stmt = (
            update(Account)
            .where(Account.id == parsed_id)
            .values(values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount == 0:  # type: ignore[attr-defined]
            await self.session.rollback()
            raise AccountNotFoundError(parsed_id)

        account = await self._read_back(Account.id == parsed_id)
        await self.session.commit()

        metrics.quota_adjustments_total.labels(kind=quota_kind.value).inc()
        logger.info(
            "quota_adjusted",
            account_id=str(parsed_id),
            kind=quota_kind.value,
            delta=amount,
            balance=account.balance,
            usage_limit=account.usage_limit,
            usage_used=account.usage_used,
        )
        return account

    async def increment_usage(self, token: str, step: int = 1) -> AccountData:
        """
        Add step to usage_used for the account owning token.

        Not deduplicated: each call charges.

        Raises:
            ValidationError: step is not a positive integer
            AccountNotFoundError: no account owns the token
        """
        if isinstance(step, bool) or not isinstance(step, int) or step <= 0:
            raise ValidationError("step must be a positive integer", field="step")

        stmt = (
            update(Account)
            .where(Account.api_token == token)
            .values({Account.usage_used: Account.usage_used + step})
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount == 0:  # type: ignore[attr-defined]
            await self.session.rollback()
            raise AccountNotFoundError("token")

        account = await self._read_back(Account.api_token == token)
        await self.session.commit()

        logger.debug(
            "usage_incremented",
            account_id=str(account.account_id),
            step=step,
            usage_used=account.usage_used,
            usage_limit=account.usage_limit,
        )
        return account

    async def reset_usage(self, token: str) -> AccountData:
        """Set usage_used back to zero."""
        stmt = (
            update(Account)
            .where(Account.api_token == token)
            .values({Account.usage_used: 0})
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount == 0:  # type: ignore[attr-defined]
            await self.session.rollback()
            raise AccountNotFoundError("token")

        account = await self._read_back(Account.api_token == token)
        await self.session.commit()

        logger.info("usage_reset", account_id=str(account.account_id))
        return account

    # ========================================================================
    # Private Helper Methods
    # ========================================================================

    async def _read_back(self, criterion: object) -> AccountData:
        """Read the row just written, bypassing any identity-map copy."""
        stmt = (
            select(Account)
            .where(criterion)  # type: ignore[arg-type]
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return account_to_domain(result.scalar_one())
