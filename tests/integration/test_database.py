"""Integration tests for engine construction and the transaction scope."""

import pytest
from sqlalchemy import func, select, text

from opslog.database import build_engine, build_session_maker, close_db, init_db, transaction
from opslog.exceptions import UniquenessConflictError
from opslog.kernel.identity.identity_service import IdentityService
from opslog.kernel.models import Account


@pytest.mark.asyncio
async def test_init_db_creates_tables(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'fresh.db'}")
    await init_db(engine)

    async with engine.connect() as conn:
        result = await conn.execute(
            text("SELECT name FROM sqlite_master WHERE type = 'table' ORDER BY name")
        )
        tables = {row[0] for row in result}
    await close_db(engine)

    assert {"accounts", "groups", "tags", "logs", "account_groups", "log_tags", "event_logs"} <= tables


@pytest.mark.asyncio
async def test_sqlite_foreign_keys_enabled(db_engine):
    async with db_engine.connect() as conn:
        result = await conn.execute(text("PRAGMA foreign_keys"))
        assert result.scalar() == 1


@pytest.mark.asyncio
async def test_transaction_commits(session_maker):
    async with transaction(session_maker) as session:
        await IdentityService(session).register_account("Erin", "Operator", "erin@example.com", "erin", "h")

    async with session_maker() as session:
        count = await session.execute(select(func.count(Account.id)))
        assert count.scalar() == 1


@pytest.mark.asyncio
async def test_transaction_rolls_back_on_error(session_maker):
    with pytest.raises(UniquenessConflictError):
        async with transaction(session_maker) as session:
            identity = IdentityService(session)
            await identity.register_account("Erin", "Operator", "erin@example.com", "erin", "h")
            await identity.register_account("Erin", "Other", "erin@example.com", "erin2", "h")

    async with session_maker() as session:
        count = await session.execute(select(func.count(Account.id)))
        assert count.scalar() == 0


@pytest.mark.asyncio
async def test_session_maker_settings(db_engine):
    maker = build_session_maker(db_engine)
    async with maker() as session:
        assert session.sync_session.autoflush is False
        assert session.sync_session.expire_on_commit is False
