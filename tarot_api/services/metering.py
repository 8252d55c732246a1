"""
Metered Reading Service - Quota pre-check, upstream call and usage charge.

A request is charged exactly once, and only after the generative provider
answered. Quota exhaustion, invalid payloads and upstream failures leave the
counters untouched.
"""

import asyncio
import time
import weakref
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager, nullcontext
from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from tarot_api.config import Settings
from tarot_api.exceptions import (
    QuotaExceededError,
    UnauthorizedError,
    UpstreamError,
    UpstreamNotConfiguredError,
    UpstreamTimeoutError,
    ValidationError,
)
from tarot_api.models.api import FullReadingRequest, ReadingRequest, ReadingResponse
from tarot_api.models.domain import AccountData, AuthContext
from tarot_api.observability.metrics import metrics
from tarot_api.observability.tracing import trace_operation
from tarot_api.services.credentials import CredentialStore
from tarot_api.services.generator import TextGenerator
from tarot_api.services.prompts import (
    FULL_READING,
    READING,
    build_card_prompt,
    build_spread_prompt,
    fallback_text,
)
from tarot_api.services.quota import QuotaLedger

logger = get_logger(__name__)

CommandT = TypeVar("CommandT", bound=BaseModel)


class AccountLockRegistry:
    """
    One asyncio.Lock per bearer token, shared by every request in the process.

    Locks are held weakly and disappear once no request is waiting on them.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def lock_for(self, token: str) -> asyncio.Lock:
        lock = self._locks.get(token)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[token] = lock
        return lock

    def __len__(self) -> int:
        return len(self._locks)


def parse_command(model: type[CommandT], payload: Any) -> CommandT:
    """Validate a raw JSON payload into a typed command."""
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ()))
        message = f"Invalid request: {field} {first.get('msg', '')}".strip()
        raise ValidationError(message, field=field or None) from exc


class MeteredReadingService:
    """Runs a generative operation against an account's call budget."""

    def __init__(
        self,
        session: AsyncSession,
        generator: TextGenerator,
        settings: Settings,
        locks: AccountLockRegistry | None = None,
    ):
        self.session = session
        self.generator = generator
        self.settings = settings
        self.locks = locks if locks is not None else AccountLockRegistry()
        self.store = CredentialStore(session, allow_legacy_passwords=settings.allow_legacy_passwords)
        self.ledger = QuotaLedger(session)

    async def run_reading(self, auth: AuthContext, payload: Any) -> ReadingResponse:
        """Single card interpretation."""
        return await self._run_metered(
            auth,
            READING,
            lambda: parse_command(ReadingRequest, payload),
            build_card_prompt,
        )

    async def run_full_reading(self, auth: AuthContext, payload: Any) -> ReadingResponse:
        """Whole-spread analysis."""
        return await self._run_metered(
            auth,
            FULL_READING,
            lambda: parse_command(FullReadingRequest, payload),
            build_spread_prompt,
        )

    # ========================================================================
    # Private Helper Methods
    # ========================================================================

    def _guard(self, token: str) -> AbstractAsyncContextManager[Any]:
        if not self.settings.serialize_account_requests:
            return nullcontext()
        return self.locks.lock_for(token)

    async def _run_metered(
        self,
        auth: AuthContext,
        operation: str,
        parse: Callable[[], Any],
        build_prompt: Callable[[Any], str],
    ) -> ReadingResponse:
        async with self._guard(auth.token):
            account = await self._current_account(auth.token)

            if account.remaining_calls <= 0:
                metrics.record_metered_operation(operation, "quota_exceeded")
                logger.info(
                    "quota_exhausted",
                    account_id=str(account.account_id),
                    operation=operation,
                    usage_limit=account.usage_limit,
                    usage_used=account.usage_used,
                )
                raise QuotaExceededError(account.usage_limit, account.usage_used)

            try:
                command = parse()
            except ValidationError:
                metrics.record_metered_operation(operation, "invalid_request")
                raise

            if not self.generator.is_configured:
                metrics.record_metered_operation(operation, "not_configured")
                raise UpstreamNotConfiguredError()

            # End the read transaction; nothing is held across the upstream call
            await self.session.commit()

            text = await self._generate(account, operation, build_prompt(command))
            if not text:
                text = fallback_text(command.language, operation)

            account = await self.ledger.increment_usage(auth.token)

        metrics.record_metered_operation(operation, "success")
        logger.info(
            "reading_completed",
            account_id=str(account.account_id),
            operation=operation,
            usage_used=account.usage_used,
            remaining=account.remaining_calls,
        )
        return ReadingResponse(text=text, usage=account.usage())

    async def _current_account(self, token: str) -> AccountData:
        account = await self.store.get_by_token(token)
        if account is None:
            raise UnauthorizedError("Invalid token")
        return account

    async def _generate(self, account: AccountData, operation: str, prompt: str) -> str:
        timeout = self.settings.upstream_timeout_seconds
        started = time.perf_counter()

        with trace_operation(
            "upstream_generate",
            operation=operation,
            account_id=str(account.account_id),
        ):
            try:
                return await asyncio.wait_for(self.generator.generate(prompt), timeout=timeout)
            except TimeoutError as exc:
                metrics.record_metered_operation(operation, "upstream_timeout")
                metrics.record_error("UpstreamTimeoutError", operation)
                logger.error("upstream_timeout", operation=operation, timeout_seconds=timeout)
                raise UpstreamTimeoutError(timeout) from exc
            except UpstreamError as exc:
                metrics.record_metered_operation(operation, exc.error_code)
                metrics.record_error(type(exc).__name__, operation)
                raise
            except Exception as exc:
                metrics.record_metered_operation(operation, "upstream_error")
                metrics.record_error(type(exc).__name__, operation)
                logger.exception("upstream_call_failed", operation=operation, error=str(exc))
                raise UpstreamError("Failed to generate reading") from exc
            finally:
                metrics.record_upstream_call(operation, time.perf_counter() - started)
