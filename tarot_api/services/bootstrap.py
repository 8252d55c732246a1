"""
Demo account seeding for fresh installations.
"""

from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from tarot_api.models.api import CreateAccountRequest
from tarot_api.models.domain import AccountData
from tarot_api.services.credentials import CredentialStore

logger = get_logger(__name__)

# (username, password, email, display name, plan, usage_limit, valid days, is_test)
DEMO_ACCOUNTS: tuple[tuple[str, str, str, str, str, int, int, bool], ...] = (
    ("test", "test123", "test@example.com", "Tarot Tester", "test", 50, 30, True),
    ("pro", "pro123", "pro@example.com", "Tarot Pro", "monthly", 200, 90, False),
)


async def seed_demo_accounts(session: AsyncSession) -> list[AccountData]:
    """Create the demo accounts when the accounts table is empty."""
    store = CredentialStore(session)
    if await store.count_accounts() > 0:
        logger.debug("demo_seed_skipped")
        return []

    now = datetime.now(UTC)
    created = []
    for username, password, email, name, plan, limit, days, is_test in DEMO_ACCOUNTS:
        account = await store.create_account(
            CreateAccountRequest(
                username=username,
                password=password,
                email=email,
                name=name,
                plan_type=plan,
                is_test=is_test,
                usage_limit=limit,
                valid_from=now,
                valid_to=now + timedelta(days=days),
            )
        )
        created.append(account)

    logger.info("demo_accounts_seeded", usernames=[a.username for a in created])
    return created
