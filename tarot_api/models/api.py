"""
API Models - Pydantic request/response schemas.

Client-facing readings use the camelCase field names the tarot client sends;
Python attributes stay snake_case through aliases.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class AccountStatus(str, Enum):
    """Account lifecycle status."""

    ACTIVE = "active"
    BANNED = "banned"
    DELETED = "deleted"


class QuotaKind(str, Enum):
    """Counter targeted by a quota adjustment."""

    BALANCE = "balance"
    CALLS = "calls"


# ============================================================================
# Auth & Usage
# ============================================================================


class LoginRequest(BaseModel):
    """Username/password login."""

    username: str = ""
    password: str = ""


class UsageSummary(BaseModel):
    """Call budget snapshot."""

    limit: int
    used: int
    remaining: int


class LoginUser(BaseModel):
    """Public profile returned at login."""

    username: str
    email: str | None
    name: str | None
    plan_type: str
    tier: str
    is_test: bool
    valid_from: datetime | None
    valid_to: datetime | None


class LoginResponse(BaseModel):
    """Login result: profile, usage and bearer token."""

    user: LoginUser
    usage: UsageSummary
    token: str


class UsageResponse(BaseModel):
    """Current usage for the authenticated account."""

    limit: int
    used: int
    remaining: int
    plan: str
    is_test: bool
    valid_to: datetime | None


# ============================================================================
# Readings
# ============================================================================


class ReadingRequest(BaseModel):
    """Single card reading request."""

    model_config = ConfigDict(populate_by_name=True)

    card_name: str = Field(..., alias="cardName", min_length=1, max_length=200)
    position_label: str = Field(..., alias="positionLabel", min_length=1, max_length=200)
    spread_name: str = Field(..., alias="spreadName", min_length=1, max_length=200)
    is_reversed: bool = Field(False, alias="isReversed")
    language: str = Field(..., max_length=20)


class SpreadCard(BaseModel):
    """One card placed in a spread."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1, max_length=200)
    position: str = Field(..., min_length=1, max_length=200)
    is_reversed: bool = Field(False, alias="isReversed")
    meaning: str | None = Field(None, max_length=2000)


class FullReadingRequest(BaseModel):
    """Whole-spread reading request."""

    model_config = ConfigDict(populate_by_name=True)

    spread_name: str = Field(..., alias="spreadName", min_length=1, max_length=200)
    cards: list[SpreadCard] = Field(..., min_length=1, max_length=78)
    language: str = Field("en-US", max_length=20)


class ReadingResponse(BaseModel):
    """Interpretation text with a fresh usage snapshot."""

    text: str
    usage: UsageSummary


# ============================================================================
# Accounts (sanitised - never carries the password hash)
# ============================================================================


class AccountResponse(BaseModel):
    """Sanitised account representation."""

    id: UUID
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
    remaining_calls: int
    api_token: str
    valid_from: datetime | None
    valid_to: datetime | None
    created_at: datetime
    updated_at: datetime


# ============================================================================
# Admin dispatcher params (one model per action)
# ============================================================================


class CreateAccountRequest(BaseModel):
    """Params for create_user."""

    model_config = ConfigDict(extra="ignore")

    username: str = ""
    password: str = ""
    email: str = ""
    phone: str | None = None
    name: str | None = None
    agent_id: str | None = None
    tier: str | None = None
    plan_type: str | None = None
    is_test: bool = False
    usage_limit: int = Field(0, ge=0)
    balance: int = Field(0, ge=0)
    valid_from: datetime | None = None
    valid_to: datetime | None = None


class ManageQuotaParams(BaseModel):
    """Params for manage_quota."""

    model_config = ConfigDict(extra="ignore")

    user_id: str = Field(..., min_length=1)
    type: str
    amount: int | float


class UpdateStatusParams(BaseModel):
    """Params for update_status."""

    model_config = ConfigDict(extra="ignore")

    user_id: str = Field(..., min_length=1)
    status: str = Field(..., min_length=1)


class ResetPasswordParams(BaseModel):
    """Params for reset_password."""

    model_config = ConfigDict(extra="ignore")

    user_id: str = Field(..., min_length=1)
    new_password: str = ""


class GetUserInfoParams(BaseModel):
    """Params for get_user_info - user_id or phone."""

    model_config = ConfigDict(extra="ignore")

    user_id: str | None = None
    phone: str | None = None


class ListUsersParams(BaseModel):
    """Params for list_users."""

    model_config = ConfigDict(extra="ignore")

    limit: int = Field(50, ge=1, le=500)
    offset: int = Field(0, ge=0)


class SearchUsersParams(BaseModel):
    """Params for search_users."""

    model_config = ConfigDict(extra="ignore")

    keyword: str = ""
    limit: int = Field(20, ge=1, le=100)


class AdminDispatchRequest(BaseModel):
    """Envelope for every admin action."""

    action: str = ""
    params: dict[str, object] = Field(default_factory=dict)


class AdminDispatchResponse(BaseModel):
    """Envelope for admin action results."""

    action: str
    data: AccountResponse | list[AccountResponse]


class AdminStatsResponse(BaseModel):
    """Aggregate account statistics."""

    model_config = ConfigDict(populate_by_name=True)

    total_users: int = Field(..., alias="totalUsers")
    active_users: int = Field(..., alias="activeUsers")
    total_calls: int = Field(..., alias="totalCalls")


# ============================================================================
# Misc
# ============================================================================


class HealthResponse(BaseModel):
    """Liveness/readiness response."""

    status: str
    time: datetime
    database: str


class ErrorResponse(BaseModel):
    """Error body returned for every handled failure."""

    detail: str
    error: str
