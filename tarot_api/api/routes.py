"""
API Routes - Login, usage and metered reading endpoints.
"""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from tarot_api.api.dependencies import (
    get_app_settings,
    get_database,
    get_db,
    get_generator,
    get_lock_registry,
    read_json_body,
    require_account,
)
from tarot_api.config import Settings
from tarot_api.db.session import Database
from tarot_api.exceptions import ForbiddenError, UnauthorizedError, ValidationError
from tarot_api.models.api import (
    AccountStatus,
    HealthResponse,
    LoginRequest,
    LoginResponse,
    LoginUser,
    ReadingResponse,
    UsageResponse,
)
from tarot_api.models.domain import AuthContext
from tarot_api.observability.metrics import metrics
from tarot_api.services.credentials import CredentialStore
from tarot_api.services.generator import TextGenerator
from tarot_api.services.metering import AccountLockRegistry, MeteredReadingService

logger = get_logger(__name__)

router = APIRouter()


@router.post("/auth/login", response_model=LoginResponse)
async def login(
    request: LoginRequest,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> LoginResponse:
    """
    Exchange username and password for the account's bearer token.

    Errors:
        400: username or password missing
        401: unknown username or wrong password
        403: account expired (or inactive when inactive accounts are rejected)
    """
    username = request.username.strip()
    if not username or not request.password:
        metrics.logins_total.labels(outcome="invalid_request").inc()
        raise ValidationError("username and password are required")

    store = CredentialStore(db, allow_legacy_passwords=settings.allow_legacy_passwords)
    account = await store.authenticate(username, request.password)
    if account is None:
        metrics.logins_total.labels(outcome="rejected").inc()
        logger.info("login_rejected", username=username)
        raise UnauthorizedError("Invalid username or password")

    if account.is_expired():
        metrics.logins_total.labels(outcome="expired").inc()
        logger.info("login_expired", account_id=str(account.account_id))
        raise ForbiddenError("Account has expired")

    if settings.reject_inactive_accounts and account.status != AccountStatus.ACTIVE:
        metrics.logins_total.labels(outcome="inactive").inc()
        raise ForbiddenError(f"Account is {account.status.value}")

    metrics.logins_total.labels(outcome="success").inc()
    logger.info("login_succeeded", account_id=str(account.account_id))

    return LoginResponse(
        user=LoginUser(
            username=account.username,
            email=account.email,
            name=account.name,
            plan_type=account.plan_type,
            tier=account.tier,
            is_test=account.is_test,
            valid_from=account.valid_from,
            valid_to=account.valid_to,
        ),
        usage=account.usage(),
        token=account.api_token,
    )


@router.get("/usage", response_model=UsageResponse)
async def get_usage(auth: AuthContext = Depends(require_account)) -> UsageResponse:
    """Current call budget for the authenticated account."""
    account = auth.account
    return UsageResponse(
        limit=account.usage_limit,
        used=account.usage_used,
        remaining=account.remaining_calls,
        plan=account.plan_type,
        is_test=account.is_test,
        valid_to=account.valid_to,
    )


@router.post("/reading", response_model=ReadingResponse)
async def create_reading(
    request: Request,
    auth: AuthContext = Depends(require_account),
    db: AsyncSession = Depends(get_db),
    generator: TextGenerator = Depends(get_generator),
    settings: Settings = Depends(get_app_settings),
    locks: AccountLockRegistry = Depends(get_lock_registry),
) -> ReadingResponse:
    """
    Interpret one card in its spread position. Charges one call on success.

    The body is validated after the quota check, so an exhausted account
    gets 429 regardless of payload.
    """
    payload = await read_json_body(request)
    service = MeteredReadingService(db, generator, settings, locks)
    return await service.run_reading(auth, payload)


@router.post("/full-reading", response_model=ReadingResponse)
async def create_full_reading(
    request: Request,
    auth: AuthContext = Depends(require_account),
    db: AsyncSession = Depends(get_db),
    generator: TextGenerator = Depends(get_generator),
    settings: Settings = Depends(get_app_settings),
    locks: AccountLockRegistry = Depends(get_lock_registry),
) -> ReadingResponse:
    """Analyse a whole spread. Charges one call on success."""
    payload = await read_json_body(request)
    service = MeteredReadingService(db, generator, settings, locks)
    return await service.run_full_reading(auth, payload)


@router.get("/health", response_model=HealthResponse)
async def health_check(database: Database = Depends(get_database)) -> HealthResponse:
    """
    Health check for load balancer.

    Verifies database connectivity.
    """
    try:
        await database.ping()
    except Exception as exc:
        logger.error("health_check_failed", error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "status": "unhealthy",
                "database": "disconnected",
                "time": datetime.now(UTC).isoformat(),
            },
        ) from exc

    return HealthResponse(status="ok", time=datetime.now(UTC), database="connected")
