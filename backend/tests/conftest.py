import asyncio
import os
import tempfile

# Point the app at a throwaway SQLite database before cronguard is imported
os.environ["DATA_PATH"] = tempfile.mkdtemp(prefix="cronguard-tests-")
os.environ.pop("DATABASE_URL", None)
os.environ["SCHEDULER_ENABLED"] = "false"

from contextlib import contextmanager
from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy import event, update
from sqlalchemy.exc import OperationalError

from cronguard import models  # noqa: F401
from cronguard.database import Base, engine, async_session
from cronguard.main import app
from cronguard.models import Incident, Monitor, MonitorState, Setting
from cronguard.routers.monitors import generate_slug

T0 = datetime(2026, 1, 1, 12, 0, 0)


def at(seconds: float) -> datetime:
    """Timestamp `seconds` after T0."""
    return T0 + timedelta(seconds=seconds)


async def reset_schema():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()


async def create_monitor(
    session_factory=async_session,
    name="nightly-backup",
    expected_interval=300,
    grace_period=60,
    **fields,
) -> Monitor:
    async with session_factory() as session:
        monitor = Monitor(
            name=name,
            slug=fields.pop("slug", None) or generate_slug(name),
            expected_interval=expected_interval,
            grace_period=grace_period,
            status=fields.pop("status", MonitorState.PENDING.value),
            created_at=fields.pop("created_at", T0),
            **fields,
        )
        session.add(monitor)
        await session.commit()
        await session.refresh(monitor)
        return monitor


async def get_monitor(monitor_id: int, session_factory=async_session) -> Monitor:
    async with session_factory() as session:
        return await session.get(Monitor, monitor_id)


async def set_monitor_fields(monitor_id: int, **values):
    async with async_session() as session:
        await session.execute(update(Monitor).where(Monitor.id == monitor_id).values(**values))
        await session.commit()


async def add_incident(monitor_id: int, started_at, resolved_at=None) -> int:
    async with async_session() as session:
        incident = Incident(monitor_id=monitor_id, started_at=started_at, resolved_at=resolved_at, alerts_sent={})
        session.add(incident)
        await session.commit()
        return incident.id


async def store_setting(key: str, value: str):
    async with async_session() as session:
        session.add(Setting(key=key, value=value))
        await session.commit()


@pytest_asyncio.fixture
async def db():
    await reset_schema()
    yield async_session
    await engine.dispose()


@pytest.fixture
def client():
    asyncio.run(reset_schema())
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


@contextmanager
def failing_statement(prefix: str, message: str = "database is locked", times: int = 1):
    """Make the next `times` statements starting with `prefix` raise OperationalError."""
    state = {"remaining": times, "raised": 0}

    def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        if state["remaining"] and statement.lstrip().upper().startswith(prefix.upper()):
            state["remaining"] -= 1
            state["raised"] += 1
            raise OperationalError(statement, parameters, Exception(message))

    event.listen(engine.sync_engine, "before_cursor_execute", before_cursor_execute)
    try:
        yield state
    finally:
        event.remove(engine.sync_engine, "before_cursor_execute", before_cursor_execute)
