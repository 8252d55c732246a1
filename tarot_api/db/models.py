"""
Database Models - SQLAlchemy ORM models with strict typing.

All columns use Mapped[] type annotations. Types are portable between
PostgreSQL (production) and SQLite (local runs and tests).
"""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    String,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class Account(Base):
    """
    ORM model for accounts table.

    Stores credentials, call budget and balance for each caller.
    """

    __tablename__ = "accounts"

    # Primary Key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Credentials
    username: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    api_token: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)

    # Contact information
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True, unique=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    agent_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Plan
    tier: Mapped[str] = mapped_column(String(50), nullable=False, default="level1")
    plan_type: Mapped[str] = mapped_column(String(50), nullable=False, default="level1")
    is_test: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Status
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")

    # Quota
    balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    usage_limit: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    usage_used: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # Eligibility window
    valid_from: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    valid_to: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Audit timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_balance_non_negative"),
        CheckConstraint("usage_limit >= 0", name="ck_usage_limit_non_negative"),
        CheckConstraint("usage_used >= 0", name="ck_usage_used_non_negative"),
        CheckConstraint(
            "status IN ('active', 'banned', 'deleted')", name="ck_account_status"
        ),
        Index("idx_accounts_status", "status"),
        Index("idx_accounts_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Account(id={self.id}, username={self.username}, status={self.status}, "
            f"usage={self.usage_used}/{self.usage_limit}, balance={self.balance})>"
        )
