"""
Admin Dispatcher - Single entry point for account administration actions.

Each action name maps to a typed params model and a handler. Params are
validated before the handler runs; unknown actions are rejected.
"""

from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from tarot_api.config import Settings
from tarot_api.exceptions import AccountNotFoundError, ValidationError
from tarot_api.models.api import (
    AccountResponse,
    AccountStatus,
    CreateAccountRequest,
    GetUserInfoParams,
    ListUsersParams,
    ManageQuotaParams,
    ResetPasswordParams,
    SearchUsersParams,
    UpdateStatusParams,
)
from tarot_api.services.credentials import CredentialStore
from tarot_api.services.quota import QuotaLedger

logger = get_logger(__name__)

AdminResult = AccountResponse | list[AccountResponse]
Handler = Callable[[Any], Awaitable[AdminResult]]


class AdminDispatcher:
    """Validates and routes admin actions to the credential store and ledger."""

    def __init__(self, session: AsyncSession, settings: Settings) -> None:
        self.store = CredentialStore(session, allow_legacy_passwords=settings.allow_legacy_passwords)
        self.ledger = QuotaLedger(session)
        self.registry: dict[str, tuple[type[BaseModel], Handler]] = {
            "create_user": (CreateAccountRequest, self._create_user),
            "manage_quota": (ManageQuotaParams, self._manage_quota),
            "update_status": (UpdateStatusParams, self._update_status),
            "reset_password": (ResetPasswordParams, self._reset_password),
            "get_user_info": (GetUserInfoParams, self._get_user_info),
            "list_users": (ListUsersParams, self._list_users),
            "search_users": (SearchUsersParams, self._search_users),
        }

    @property
    def actions(self) -> list[str]:
        return sorted(self.registry)

    async def dispatch(self, action: str, params: dict[str, Any] | None) -> AdminResult:
        """
        Run one admin action.

        Raises:
            ValidationError: unknown action or params failing validation
            AccountNotFoundError / ConflictError: from the underlying operation
        """
        entry = self.registry.get(action)
        if entry is None:
            logger.warning("admin_invalid_action", action=action)
            raise ValidationError("invalid action", field="action")

        params_model, handler = entry
        try:
            parsed = params_model.model_validate(params or {})
        except PydanticValidationError as exc:
            first = exc.errors()[0]
            field = ".".join(str(part) for part in first.get("loc", ()))
            raise ValidationError(
                f"Invalid params for {action}: {field} {first.get('msg', '')}".strip(),
                field=field or None,
            ) from exc

        logger.info("admin_action", action=action)
        return await handler(parsed)

    # ========================================================================
    # Handlers
    # ========================================================================

    async def _create_user(self, params: CreateAccountRequest) -> AccountResponse:
        account = await self.store.create_account(params)
        return account.to_response()

    async def _manage_quota(self, params: ManageQuotaParams) -> AccountResponse:
        account = await self.ledger.adjust(params.user_id, params.type, params.amount)
        return account.to_response()

    async def _update_status(self, params: UpdateStatusParams) -> AccountResponse:
        try:
            status = AccountStatus(params.status)
        except ValueError as exc:
            raise ValidationError(
                "status must be one of: active, banned, deleted", field="status"
            ) from exc
        account = await self.store.set_status(params.user_id, status)
        return account.to_response()

    async def _reset_password(self, params: ResetPasswordParams) -> AccountResponse:
        account = await self.store.reset_password(params.user_id, params.new_password)
        return account.to_response()

    async def _get_user_info(self, params: GetUserInfoParams) -> AccountResponse:
        user_id = (params.user_id or "").strip()
        phone = (params.phone or "").strip()

        if user_id:
            account = await self.store.get_by_id(user_id)
            key = user_id
        elif phone:
            account = await self.store.get_by_phone(phone)
            key = phone
        else:
            raise ValidationError("user_id or phone is required", field="user_id")

        if account is None:
            raise AccountNotFoundError(key)
        return account.to_response()

    async def _list_users(self, params: ListUsersParams) -> list[AccountResponse]:
        accounts = await self.store.list_accounts(limit=params.limit, offset=params.offset)
        return [account.to_response() for account in accounts]

    async def _search_users(self, params: SearchUsersParams) -> list[AccountResponse]:
        accounts = await self.store.search_accounts(params.keyword, limit=params.limit)
        return [account.to_response() for account in accounts]
