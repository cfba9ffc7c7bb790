import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cronguard.models import Incident, Ping
from cronguard.services.ingestor import MonitorNotFound, PingIngestor, PingSource

from cronguard.database import engine

from conftest import at, create_monitor, failing_statement, get_monitor, set_monitor_fields


async def pings_for(db, monitor_id):
    async with db() as session:
        result = await session.execute(
            select(Ping).where(Ping.monitor_id == monitor_id).order_by(Ping.id)
        )
        return result.scalars().all()


@pytest.mark.asyncio
async def test_heartbeat_sets_deadline(db):
    monitor = await create_monitor(db, expected_interval=300)
    ingestor = PingIngestor(db)

    outcome = await ingestor.ingest(
        monitor.slug,
        source=PingSource(ip_address="10.0.0.7", user_agent="curl/8.4.0"),
        now=at(10),
    )

    assert outcome.status == "ok"
    assert outcome.previous_status == "PENDING"
    assert outcome.next_expected_at == at(310)
    assert not outcome.recovered

    refreshed = await get_monitor(monitor.id)
    assert refreshed.status == "HEALTHY"
    assert refreshed.last_ping_at == at(10)
    assert refreshed.next_expected_at == at(310)

    pings = await pings_for(db, monitor.id)
    assert len(pings) == 1
    assert pings[0].kind == "heartbeat"
    assert pings[0].received_at == at(10)
    assert pings[0].ip_address == "10.0.0.7"
    assert pings[0].user_agent == "curl/8.4.0"


@pytest.mark.asyncio
async def test_start_keeps_deadline(db):
    monitor = await create_monitor(db)
    ingestor = PingIngestor(db)
    await ingestor.ingest(monitor.slug, now=at(0))

    outcome = await ingestor.ingest(monitor.slug, kind="start", now=at(200))

    assert outcome.status == "running"
    assert outcome.started_at == at(200)

    refreshed = await get_monitor(monitor.id)
    assert refreshed.status == "RUNNING"
    assert refreshed.last_started_at == at(200)
    assert refreshed.last_ping_at == at(0)
    assert refreshed.next_expected_at == at(300)

    kinds = [p.kind for p in await pings_for(db, monitor.id)]
    assert kinds == ["heartbeat", "start"]


@pytest.mark.asyncio
async def test_start_on_pending_monitor_has_no_deadline(db):
    monitor = await create_monitor(db)

    await PingIngestor(db).ingest(monitor.slug, kind="start", now=at(5))

    refreshed = await get_monitor(monitor.id)
    assert refreshed.status == "RUNNING"
    assert refreshed.next_expected_at is None


@pytest.mark.asyncio
async def test_paused_monitor_ignores_pings(db):
    monitor = await create_monitor(db, status="PAUSED", next_expected_at=at(100))
    ingestor = PingIngestor(db)

    for kind in ("heartbeat", "start", "heartbeat"):
        outcome = await ingestor.ingest(monitor.slug, kind=kind, now=at(50))
        assert outcome.status == "paused"

    refreshed = await get_monitor(monitor.id)
    assert refreshed.status == "PAUSED"
    assert refreshed.last_ping_at is None
    assert refreshed.next_expected_at == at(100)
    assert await pings_for(db, monitor.id) == []


@pytest.mark.asyncio
async def test_unknown_slug_raises(db):
    with pytest.raises(MonitorNotFound) as exc_info:
        await PingIngestor(db).ingest("no-such-monitor", now=at(0))

    assert exc_info.value.key == "no-such-monitor"


@pytest.mark.asyncio
async def test_heartbeats_are_not_idempotent(db):
    monitor = await create_monitor(db, expected_interval=60)
    ingestor = PingIngestor(db)

    await ingestor.ingest(monitor.slug, now=at(0))
    await ingestor.ingest(monitor.slug, now=at(30))

    refreshed = await get_monitor(monitor.id)
    assert refreshed.next_expected_at == at(90)
    assert len(await pings_for(db, monitor.id)) == 2


@pytest.mark.asyncio
async def test_heartbeat_on_down_monitor_reports_recovery(db):
    monitor = await create_monitor(db, status="DOWN", next_expected_at=at(0))

    outcome = await PingIngestor(db).ingest(monitor.slug, now=at(100))

    assert outcome.recovered
    assert outcome.previous_status == "DOWN"
    assert (await get_monitor(monitor.id)).status == "HEALTHY"


@pytest.mark.asyncio
async def test_heartbeat_leaves_incident_open(db):
    monitor = await create_monitor(db, status="DOWN", next_expected_at=at(0))
    async with db() as session:
        session.add(Incident(monitor_id=monitor.id, started_at=at(50), alerts_sent={}))
        await session.commit()

    await PingIngestor(db).ingest(monitor.slug, now=at(100))

    async with db() as session:
        incident = (await session.execute(select(Incident))).scalar_one()
    assert incident.resolved_at is None


@pytest.mark.asyncio
async def test_resolve_open_incident(db):
    monitor = await create_monitor(db, status="DOWN", next_expected_at=at(0))
    async with db() as session:
        session.add(Incident(monitor_id=monitor.id, started_at=at(50), alerts_sent={}))
        await session.commit()
    ingestor = PingIngestor(db)

    resolved = await ingestor.resolve_open_incident(monitor.id, now=at(120))

    assert resolved is not None
    assert resolved.resolved_at == at(120)
    assert await ingestor.resolve_open_incident(monitor.id, now=at(130)) is None


@pytest.mark.asyncio
async def test_start_then_heartbeat_after_down_reports_recovery(db):
    monitor = await create_monitor(db, status="DOWN", next_expected_at=at(0))
    async with db() as session:
        session.add(Incident(monitor_id=monitor.id, started_at=at(50), alerts_sent={}))
        await session.commit()
    ingestor = PingIngestor(db)

    started = await ingestor.ingest(monitor.slug, kind="start", now=at(100))
    outcome = await ingestor.ingest(monitor.slug, now=at(160))

    assert not started.recovered
    assert outcome.previous_status == "RUNNING"
    assert outcome.had_open_incident
    assert outcome.recovered


@pytest.mark.asyncio
async def test_heartbeat_without_open_incident_is_not_recovery(db):
    monitor = await create_monitor(db)
    ingestor = PingIngestor(db)
    await ingestor.ingest(monitor.slug, kind="start", now=at(0))

    outcome = await ingestor.ingest(monitor.slug, now=at(30))

    assert not outcome.had_open_incident
    assert not outcome.recovered


@pytest.mark.asyncio
async def test_failed_ping_insert_rolls_back_monitor_update(db):
    monitor = await create_monitor(db, status="LATE", last_ping_at=at(0), next_expected_at=at(300))

    with failing_statement("INSERT INTO pings") as failures:
        with pytest.raises(OperationalError):
            await PingIngestor(db).ingest(monitor.slug, now=at(400))

    assert failures["raised"] == 1
    refreshed = await get_monitor(monitor.id)
    assert refreshed.status == "LATE"
    assert refreshed.last_ping_at == at(0)
    assert refreshed.next_expected_at == at(300)
    assert await pings_for(db, monitor.id) == []


class PausingSession(AsyncSession):
    """Pauses the monitor right after the ingestor's first lookup."""

    pause_monitor_id = None

    async def execute(self, *args, **kwargs):
        result = await super().execute(*args, **kwargs)
        if PausingSession.pause_monitor_id is not None:
            monitor_id, PausingSession.pause_monitor_id = PausingSession.pause_monitor_id, None
            await set_monitor_fields(monitor_id, status="PAUSED")
        return result


@pytest.mark.asyncio
async def test_pause_between_lookup_and_update_wins(db):
    monitor = await create_monitor(db, status="HEALTHY", last_ping_at=at(0), next_expected_at=at(300))
    pausing_factory = async_sessionmaker(engine, class_=PausingSession, expire_on_commit=False)
    PausingSession.pause_monitor_id = monitor.id

    outcome = await PingIngestor(pausing_factory).ingest(monitor.slug, now=at(200))

    assert outcome.status == "paused"
    assert not outcome.recovered
    refreshed = await get_monitor(monitor.id)
    assert refreshed.status == "PAUSED"
    assert refreshed.last_ping_at == at(0)
    assert refreshed.next_expected_at == at(300)
    assert await pings_for(db, monitor.id) == []
