"""
Admin API Routes - Account administration behind the admin shared secret.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from tarot_api.api.dependencies import get_app_settings, get_db, require_admin_secret
from tarot_api.config import Settings
from tarot_api.models.api import (
    AccountResponse,
    AdminDispatchRequest,
    AdminDispatchResponse,
    AdminStatsResponse,
)
from tarot_api.services.admin import AdminDispatcher
from tarot_api.services.credentials import CredentialStore

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin_secret)])


@router.post("/dispatch", response_model=AdminDispatchResponse)
async def dispatch_admin_action(
    request: AdminDispatchRequest,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> AdminDispatchResponse:
    """
    Run an admin action.

    Actions: create_user, manage_quota, update_status, reset_password,
    get_user_info, list_users, search_users.
    """
    dispatcher = AdminDispatcher(db, settings)
    data = await dispatcher.dispatch(request.action, request.params)
    return AdminDispatchResponse(action=request.action, data=data)


@router.get("/stats", response_model=AdminStatsResponse)
async def get_stats(db: AsyncSession = Depends(get_db)) -> AdminStatsResponse:
    """Total and active accounts, and calls consumed across all accounts."""
    stats = await CredentialStore(db).stats()
    return AdminStatsResponse(
        total_users=stats.total_users,
        active_users=stats.active_users,
        total_calls=stats.total_calls,
    )


@router.get("/users/search", response_model=list[AccountResponse])
async def search_users(
    keyword: str = Query("", max_length=200),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
) -> list[AccountResponse]:
    """Substring search over username, phone and email."""
    accounts = await CredentialStore(db).search_accounts(keyword, limit=limit)
    return [account.to_response() for account in accounts]
