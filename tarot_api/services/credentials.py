"""
Credential Store - Account persistence, lookup and password verification.

Uniqueness of username, email, phone and api_token spans every row, deleted
accounts included. Outputs are AccountData snapshots, which carry no password
material.
"""

import hashlib
import hmac
import re
import secrets
from datetime import UTC, datetime
from uuid import UUID

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from tarot_api.db.models import Account
from tarot_api.exceptions import AccountNotFoundError, ConflictError, ValidationError
from tarot_api.models.api import AccountStatus, CreateAccountRequest
from tarot_api.models.domain import AccountData, AccountStats
from tarot_api.observability.metrics import metrics

logger = get_logger(__name__)

TOKEN_PREFIX = "token"
DEFAULT_TIER = "level1"
SEARCH_LIMIT_MAX = 100

_password_hasher = PasswordHasher()
_SHA256_HEX = re.compile(r"^[0-9a-f]{64}$")


# ============================================================================
# Password hashing
# ============================================================================


def hash_password(password: str) -> str:
    """Hash a password for storage using Argon2id."""
    return _password_hasher.hash(password)


def is_legacy_hash(stored: str) -> bool:
    """True for rows written before Argon2 (sha256 hex digest or plaintext)."""
    return not stored.startswith("$argon2")


def check_password(stored: str, candidate: str, allow_legacy: bool = True) -> bool:
    """
    Compare a candidate password against a stored value.

    Argon2 hashes are always accepted. Legacy sha256 hex digests and plaintext
    rows are accepted only while allow_legacy is set.
    """
    if not is_legacy_hash(stored):
        try:
            return _password_hasher.verify(stored, candidate)
        except VerifyMismatchError:
            return False
        except (InvalidHashError, VerificationError):
            logger.warning("password_hash_unreadable")
            return False

    if not allow_legacy:
        return False

    if _SHA256_HEX.match(stored):
        # Digest rows compare only as digests, never as plaintext
        digest = hashlib.sha256(candidate.encode("utf-8")).hexdigest()
        return hmac.compare_digest(stored, digest)

    return hmac.compare_digest(stored.encode("utf-8"), candidate.encode("utf-8"))


def generate_api_token(username: str) -> str:
    """Derive a bearer token: stable prefix, username, fresh random suffix."""
    return f"{TOKEN_PREFIX}-{username}-{secrets.token_hex(8)}"


# ============================================================================
# Conversions
# ============================================================================


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive timestamps (SQLite drops tzinfo on read)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def account_to_domain(account: Account) -> AccountData:
    """Convert ORM account to domain model (drops the password hash)."""
    return AccountData(
        account_id=account.id,
        username=account.username,
        email=account.email,
        phone=account.phone,
        name=account.name,
        agent_id=account.agent_id,
        tier=account.tier,
        plan_type=account.plan_type,
        is_test=account.is_test,
        status=AccountStatus(account.status),
        balance=account.balance,
        usage_limit=account.usage_limit,
        usage_used=account.usage_used,
        api_token=account.api_token,
        valid_from=as_utc(account.valid_from),
        valid_to=as_utc(account.valid_to),
        created_at=as_utc(account.created_at),  # type: ignore[arg-type]
        updated_at=as_utc(account.updated_at),  # type: ignore[arg-type]
    )


def parse_account_id(value: UUID | str) -> UUID:
    """Parse an account id, rejecting malformed input."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value).strip())
    except ValueError as exc:
        raise ValidationError(f"Malformed account id: {value}", field="user_id") from exc


def _required(value: str | None, field: str) -> str:
    """Trim a required string field, rejecting blanks."""
    if value is None or not value.strip():
        raise ValidationError(f"{field} must not be empty", field=field)
    return value.strip()


def _optional(value: str | None) -> str | None:
    """Trim an optional string field, mapping blanks to None."""
    if value is None:
        return None
    value = value.strip()
    return value or None


def _like_pattern(keyword: str) -> str:
    """Build a substring LIKE pattern with wildcards escaped."""
    escaped = keyword.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class CredentialStore:
    """Durable, uniqueness-enforcing persistence for accounts."""

    def __init__(self, session: AsyncSession, allow_legacy_passwords: bool = True) -> None:
        """Initialize credential store with database session."""
        self.session = session
        self.allow_legacy_passwords = allow_legacy_passwords

    # ========================================================================
    # Creation
    # ========================================================================

    async def create_account(self, request: CreateAccountRequest) -> AccountData:
        """
        Create a new active account.

        Raises:
            ValidationError: username, password or email blank
            ConflictError: username, email or phone already used by any row
        """
        username = _required(request.username, "username")
        password = _required(request.password, "password")
        email = _required(request.email, "email")
        phone = _optional(request.phone)
        tier = _optional(request.tier) or DEFAULT_TIER

        await self._ensure_unique(username=username, email=email, phone=phone)

        account = Account(
            username=username,
            password_hash=hash_password(password),
            api_token=generate_api_token(username),
            email=email,
            phone=phone,
            name=_optional(request.name) or username,
            agent_id=_optional(request.agent_id),
            tier=tier,
            plan_type=_optional(request.plan_type) or tier,
            is_test=request.is_test,
            status=AccountStatus.ACTIVE.value,
            balance=request.balance,
            usage_limit=request.usage_limit,
            usage_used=0,
            valid_from=as_utc(request.valid_from) or datetime.now(UTC),
            valid_to=as_utc(request.valid_to),
        )
        self.session.add(account)

        try:
            await self._commit_and_refresh(account)
        except IntegrityError as exc:
            # Lost a race against a concurrent insert
            await self.session.rollback()
            logger.warning("account_creation_integrity_error", username=username, error=str(exc))
            await self._ensure_unique(username=username, email=email, phone=phone)
            raise ConflictError("username", username) from exc

        metrics.accounts_created_total.inc()
        logger.info(
            "account_created",
            account_id=str(account.id),
            username=username,
            tier=tier,
            usage_limit=request.usage_limit,
        )
        return account_to_domain(account)

    # ========================================================================
    # Lookup - absence is None, never an exception
    # ========================================================================

    async def get_by_id(self, account_id: UUID | str) -> AccountData | None:
        """Find account by id."""
        row = await self._get_row(parse_account_id(account_id))
        return account_to_domain(row) if row else None

    async def get_by_username(self, username: str) -> AccountData | None:
        """Find account by username."""
        row = await self._find_one(Account.username == username)
        return account_to_domain(row) if row else None

    async def get_by_token(self, token: str) -> AccountData | None:
        """Find account by bearer token."""
        if not token:
            return None
        row = await self._find_one(Account.api_token == token)
        return account_to_domain(row) if row else None

    async def get_by_phone(self, phone: str) -> AccountData | None:
        """Find account by phone number."""
        row = await self._find_one(Account.phone == phone.strip())
        return account_to_domain(row) if row else None

    # ========================================================================
    # Passwords
    # ========================================================================

    async def verify_password(self, account: AccountData, candidate: str) -> bool:
        """
        Check a candidate password for an account.

        A successful match against a legacy row re-hashes it with Argon2.
        """
        row = await self._get_row(account.account_id)
        if row is None:
            return False

        if not check_password(row.password_hash, candidate, self.allow_legacy_passwords):
            return False

        if is_legacy_hash(row.password_hash):
            row.password_hash = hash_password(candidate)
            await self.session.flush()
            await self.session.commit()
            logger.info("legacy_password_upgraded", account_id=str(row.id))

        return True

    async def authenticate(self, username: str, password: str) -> AccountData | None:
        """Return the account when username and password match, else None."""
        account = await self.get_by_username(username.strip())
        if account is None:
            return None
        if not await self.verify_password(account, password):
            return None
        return account

    async def reset_password(self, account_id: UUID | str, new_password: str) -> AccountData:
        """Replace an account's password."""
        password = _required(new_password, "new_password")
        row = await self._require_row(account_id)
        row.password_hash = hash_password(password)
        await self._commit_and_refresh(row)
        logger.info("password_reset", account_id=str(row.id))
        return account_to_domain(row)

    # ========================================================================
    # Status
    # ========================================================================

    async def set_status(self, account_id: UUID | str, status: AccountStatus) -> AccountData:
        """Transition an account's status; deletion is a status, not a row removal."""
        row = await self._require_row(account_id)
        previous = row.status
        row.status = status.value
        await self._commit_and_refresh(row)
        logger.info(
            "account_status_changed",
            account_id=str(row.id),
            old_status=previous,
            new_status=status.value,
        )
        return account_to_domain(row)

    # ========================================================================
    # Listing
    # ========================================================================

    async def list_accounts(self, limit: int = 50, offset: int = 0) -> list[AccountData]:
        """List non-deleted accounts, newest first."""
        stmt = (
            select(Account)
            .where(Account.status != AccountStatus.DELETED.value)
            .order_by(Account.created_at.desc(), Account.id.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [account_to_domain(row) for row in result.scalars().all()]

    async def search_accounts(self, keyword: str, limit: int = 20) -> list[AccountData]:
        """Substring search over username, phone and email; deleted rows excluded."""
        keyword = keyword.strip()
        if not keyword:
            return []

        pattern = _like_pattern(keyword)
        stmt = (
            select(Account)
            .where(
                Account.status != AccountStatus.DELETED.value,
                or_(
                    Account.username.ilike(pattern, escape="\\"),
                    Account.phone.ilike(pattern, escape="\\"),
                    Account.email.ilike(pattern, escape="\\"),
                ),
            )
            .order_by(Account.created_at.desc(), Account.id.desc())
            .limit(min(max(limit, 1), SEARCH_LIMIT_MAX))
        )
        result = await self.session.execute(stmt)
        return [account_to_domain(row) for row in result.scalars().all()]

    async def stats(self) -> AccountStats:
        """Aggregate counters for the admin dashboard."""
        total = await self.session.scalar(
            select(func.count(Account.id)).where(Account.status != AccountStatus.DELETED.value)
        )
        active = await self.session.scalar(
            select(func.count(Account.id)).where(Account.status == AccountStatus.ACTIVE.value)
        )
        calls = await self.session.scalar(select(func.coalesce(func.sum(Account.usage_used), 0)))
        return AccountStats(
            total_users=int(total or 0),
            active_users=int(active or 0),
            total_calls=int(calls or 0),
        )

    async def count_accounts(self) -> int:
        """Count every row, deleted included."""
        total = await self.session.scalar(select(func.count(Account.id)))
        return int(total or 0)

    # ========================================================================
    # Private Helper Methods
    # ========================================================================

    async def _commit_and_refresh(self, row: Account) -> None:
        await self.session.flush()
        await self.session.commit()
        await self.session.refresh(row)

    async def _find_one(self, *criteria: object) -> Account | None:
        # Always reload column values; a request session may hold an older copy
        stmt = (
            select(Account)
            .where(*criteria)  # type: ignore[arg-type]
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _get_row(self, account_id: UUID) -> Account | None:
        return await self._find_one(Account.id == account_id)

    async def _require_row(self, account_id: UUID | str) -> Account:
        parsed = parse_account_id(account_id)
        row = await self._get_row(parsed)
        if row is None:
            raise AccountNotFoundError(parsed)
        return row

    async def _ensure_unique(self, username: str, email: str | None, phone: str | None) -> None:
        """Raise ConflictError if any unique field is already taken."""
        if await self._find_one(Account.username == username):
            raise ConflictError("username", username)
        if email and await self._find_one(Account.email == email):
            raise ConflictError("email", email)
        if phone and await self._find_one(Account.phone == phone):
            raise ConflictError("phone", phone)
