"""
Pytest fixtures for opslog tests.

Every test gets its own file-based SQLite database (in-memory is
per-connection, and the engine opens one connection per session).
"""

import os
import tempfile
from datetime import datetime, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

# Point the module-level engine at SQLite before anything imports it
_tmp = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
_tmp.close()
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_tmp.name}"

from opslog.config import get_settings  # noqa: E402

get_settings.cache_clear()

from opslog.database import build_engine, build_session_maker  # noqa: E402
from opslog.engine import OpsLogEngine  # noqa: E402
from opslog.kernel.identity.identity_service import IdentityService  # noqa: E402
from opslog.kernel.models import Account, Base, SystemRole, UserGroup  # noqa: E402
from opslog.kernel.revisions.revision_service import RevisionService  # noqa: E402
from opslog.kernel.tags.tag_service import TagService  # noqa: E402


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    """Create a test database engine with all tables."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'opslog_test.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(db_engine):
    return build_session_maker(db_engine)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def ops(session_maker) -> OpsLogEngine:
    """Engine facade bound to the test database."""
    return OpsLogEngine(session_maker)


@pytest.fixture
def identity(db_session: AsyncSession) -> IdentityService:
    return IdentityService(db_session)


@pytest.fixture
def revisions(db_session: AsyncSession) -> RevisionService:
    return RevisionService(db_session)


@pytest.fixture
def tags(db_session: AsyncSession) -> TagService:
    return TagService(db_session)


@pytest.fixture
def event_time() -> datetime:
    return datetime(2026, 3, 14, 6, 30, tzinfo=timezone.utc)


async def _register(identity: IdentityService, username: str) -> Account:
    return await identity.register_account(
        first_name=username.capitalize(),
        last_name="Operator",
        email=f"{username}@plant.example.com",
        username=username,
        password_hash="not-a-real-hash",
    )


@pytest_asyncio.fixture
async def alice(identity: IdentityService) -> Account:
    return await _register(identity, "alice")


@pytest_asyncio.fixture
async def bob(identity: IdentityService) -> Account:
    return await _register(identity, "bob")


@pytest_asyncio.fixture
async def carol(identity: IdentityService) -> Account:
    return await _register(identity, "carol")


@pytest_asyncio.fixture
async def operations(identity: IdentityService) -> UserGroup:
    """User group "Operations"."""
    return await identity.create_group("Operations", "Control room shift crew")


@pytest_asyncio.fixture
async def maintenance(identity: IdentityService) -> UserGroup:
    """User group "Maintenance"."""
    return await identity.create_group("Maintenance")


@pytest_asyncio.fixture
async def crew(identity, alice, bob, carol, operations, maintenance):
    """alice and bob in Operations, carol in Maintenance only."""
    await identity.add_account_to_group(alice, operations)
    await identity.add_account_to_group(bob, operations)
    await identity.add_account_to_group(carol, maintenance)
    return alice, bob, carol


@pytest_asyncio.fixture
async def admin(identity: IdentityService, crew, operations) -> Account:
    """The first administrator, sharing Operations with alice and bob."""
    account = await _register(identity, "dana")
    assert await identity.grant_system_role(account, SystemRole.ADMINISTRATOR)
    await identity.add_account_to_group(account, operations)
    return account
