"""
FastAPI Dependencies - Database sessions, bearer-token and admin-secret auth.

Settings, the Database and the text generator are owned by the application
(app.state) and reach handlers only through these dependencies.
"""

import hmac
from collections.abc import AsyncIterator
from typing import Any

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from tarot_api.config import Settings
from tarot_api.db.session import Database
from tarot_api.exceptions import ForbiddenError, UnauthorizedError
from tarot_api.models.api import AccountStatus
from tarot_api.models.domain import AuthContext
from tarot_api.services.credentials import CredentialStore
from tarot_api.services.generator import TextGenerator
from tarot_api.services.metering import AccountLockRegistry

logger = get_logger(__name__)

BEARER_PREFIX = "bearer "
_BODYLESS_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "DELETE"})


# ============================================================================
# Application-owned resources
# ============================================================================


def get_app_settings(request: Request) -> Settings:
    """Settings the application was created with."""
    return request.app.state.settings  # type: ignore[no-any-return]


def get_database(request: Request) -> Database:
    return request.app.state.database  # type: ignore[no-any-return]


async def get_db(database: Database = Depends(get_database)) -> AsyncIterator[AsyncSession]:
    """
    Database session for one request.

    Usage:
        @router.get("/usage")
        async def get_usage(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with database.session() as session:
        yield session


def get_generator(request: Request) -> TextGenerator:
    return request.app.state.generator  # type: ignore[no-any-return]


def get_lock_registry(request: Request) -> AccountLockRegistry:
    return request.app.state.account_locks  # type: ignore[no-any-return]


# ============================================================================
# Bearer token (account) authentication
# ============================================================================


async def read_json_body(request: Request) -> Any:
    """Parsed JSON body, or None when absent or malformed."""
    if request.method in _BODYLESS_METHODS:
        return None
    if not await request.body():
        return None
    try:
        return await request.json()
    except ValueError:
        return None


async def extract_token(request: Request) -> str | None:
    """
    Find the bearer token for a request.

    Carriers in priority order:
        X-API-Token header
        Authorization header, with an optional "Bearer " prefix
        "token" field of a JSON object body
    """
    api_token = request.headers.get("X-API-Token", "").strip()
    if api_token:
        return api_token

    authorization = request.headers.get("Authorization", "").strip()
    if authorization.lower().startswith(BEARER_PREFIX):
        authorization = authorization[len(BEARER_PREFIX) :].strip()
    if authorization:
        return authorization

    body = await read_json_body(request)
    if isinstance(body, dict):
        token = body.get("token")
        if isinstance(token, str) and token.strip():
            return token.strip()

    return None


async def require_account(
    request: Request,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> AuthContext:
    """
    Resolve the request's bearer token to an account.

    Raises:
        UnauthorizedError(401): no token, or no account owns it
        ForbiddenError(403): account expired, or inactive when inactive
            accounts are rejected
    """
    token = await extract_token(request)
    if not token:
        logger.warning("auth_missing_token", path=request.url.path)
        raise UnauthorizedError("Missing token")

    store = CredentialStore(db, allow_legacy_passwords=settings.allow_legacy_passwords)
    account = await store.get_by_token(token)
    if account is None:
        logger.warning("auth_invalid_token", path=request.url.path)
        raise UnauthorizedError("Invalid token")

    if account.is_expired():
        logger.info("auth_account_expired", account_id=str(account.account_id))
        raise ForbiddenError("Account has expired")

    if settings.reject_inactive_accounts and account.status != AccountStatus.ACTIVE:
        logger.warning(
            "auth_account_inactive",
            account_id=str(account.account_id),
            status=account.status.value,
        )
        raise ForbiddenError(f"Account is {account.status.value}")

    return AuthContext(account=account, token=token)


# ============================================================================
# Admin shared-secret authentication
# ============================================================================


async def require_admin_secret(
    x_admin_secret: str | None = Header(None, alias="X-Admin-Secret"),
    settings: Settings = Depends(get_app_settings),
) -> None:
    """
    Require the admin shared secret.

    An unconfigured secret rejects every request.

    Raises:
        UnauthorizedError(401): header missing, wrong, or no secret configured
    """
    expected = settings.admin_secret_key
    if not expected:
        logger.warning("admin_secret_not_configured")
        raise UnauthorizedError("Admin access is not configured")

    if not x_admin_secret or not hmac.compare_digest(
        x_admin_secret.encode("utf-8"), expected.encode("utf-8")
    ):
        logger.warning("admin_secret_rejected")
        raise UnauthorizedError("Invalid admin secret")
