import asyncio
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select, func

from cronguard.models import Incident, MonitorState
from cronguard.services.ingestor import PingIngestor
from cronguard.services.sweeper import LivenessSweeper, evaluate

from conftest import at, create_monitor, get_monitor


def make_sweeper(db, channels=None, side_effect=None):
    alerter = AsyncMock()
    alerter.dispatch_down = AsyncMock(return_value=channels or {}, side_effect=side_effect)
    return LivenessSweeper(session_factory=db, alerter=alerter), alerter


async def count_open_incidents(db, monitor_id):
    async with db() as session:
        result = await session.execute(
            select(func.count(Incident.id))
            .where(Incident.monitor_id == monitor_id, Incident.resolved_at.is_(None))
        )
        return result.scalar()


async def healthy_monitor(db, pinged_at=10, **fields):
    """A monitor that received its last heartbeat at t=pinged_at."""
    monitor = await create_monitor(db, **fields)
    await PingIngestor(db).ingest(monitor.slug, now=at(pinged_at))
    return monitor


# evaluate() is pure, check the boundaries directly

def test_evaluate_before_deadline_leaves_monitor():
    assert evaluate("HEALTHY", at(300), 60, at(299)) is None


def test_evaluate_deadline_reached_is_late():
    assert evaluate("HEALTHY", at(300), 60, at(300)) == MonitorState.LATE


def test_evaluate_grace_end_is_down():
    assert evaluate("HEALTHY", at(300), 60, at(359)) == MonitorState.LATE
    assert evaluate("HEALTHY", at(300), 60, at(360)) == MonitorState.DOWN


def test_evaluate_late_within_grace_stays():
    assert evaluate("LATE", at(300), 60, at(330)) is None
    assert evaluate("LATE", at(300), 60, at(361)) == MonitorState.DOWN


def test_evaluate_running_uses_previous_deadline():
    assert evaluate("RUNNING", at(300), 60, at(320)) == MonitorState.LATE


def test_evaluate_zero_grace_goes_straight_down():
    assert evaluate("HEALTHY", at(300), 0, at(300)) == MonitorState.DOWN


@pytest.mark.parametrize("status", ["PENDING", "PAUSED", "DOWN"])
def test_evaluate_ignores_unsweepable_states(status):
    assert evaluate(status, at(300), 60, at(10_000)) is None


def test_evaluate_without_deadline():
    assert evaluate("HEALTHY", None, 60, at(10_000)) is None


@pytest.mark.asyncio
async def test_late_then_down_timeline(db):
    monitor = await healthy_monitor(db, pinged_at=10)
    sweeper, alerter = make_sweeper(db, channels={"email": True})

    summary = await sweeper.sweep(now=at(300))
    assert summary.checked == 0
    assert (await get_monitor(monitor.id)).status == "HEALTHY"

    summary = await sweeper.sweep(now=at(350))
    assert summary.late == 1
    assert (await get_monitor(monitor.id)).status == "LATE"
    alerter.dispatch_down.assert_not_awaited()

    summary = await sweeper.sweep(now=at(400))
    assert summary.down == 1
    assert summary.incidents_opened == 1
    assert (await get_monitor(monitor.id)).status == "DOWN"
    alerter.dispatch_down.assert_awaited_once()

    async with db() as session:
        incident = (await session.execute(select(Incident))).scalar_one()
    assert incident.monitor_id == monitor.id
    assert incident.started_at == at(400)
    assert incident.resolved_at is None
    assert incident.alerts_sent == {"email": True}


@pytest.mark.asyncio
async def test_grace_boundary(db):
    # Heartbeat at t=0 puts the deadline at t=300, grace ends at t=360
    monitor = await healthy_monitor(db, pinged_at=0)
    sweeper, _ = make_sweeper(db)

    await sweeper.sweep(now=at(359))
    assert (await get_monitor(monitor.id)).status == "LATE"
    assert await count_open_incidents(db, monitor.id) == 0

    await sweeper.sweep(now=at(361))
    assert (await get_monitor(monitor.id)).status == "DOWN"
    assert await count_open_incidents(db, monitor.id) == 1


@pytest.mark.asyncio
async def test_healthy_past_grace_skips_late(db):
    monitor = await healthy_monitor(db, pinged_at=0)
    sweeper, alerter = make_sweeper(db)

    summary = await sweeper.sweep(now=at(1000))

    assert summary.late == 0
    assert summary.down == 1
    assert summary.transitions[0].previous_status == "HEALTHY"
    assert (await get_monitor(monitor.id)).status == "DOWN"
    alerter.dispatch_down.assert_awaited_once()


@pytest.mark.asyncio
async def test_repeated_sweeps_do_not_reopen(db):
    monitor = await healthy_monitor(db, pinged_at=0)
    sweeper, alerter = make_sweeper(db)

    await sweeper.sweep(now=at(400))
    second = await sweeper.sweep(now=at(500))
    third = await sweeper.sweep(now=at(600))

    assert second.checked == 0
    assert third.down == 0
    assert await count_open_incidents(db, monitor.id) == 1
    alerter.dispatch_down.assert_awaited_once()


@pytest.mark.asyncio
async def test_alert_failure_keeps_down(db):
    monitor = await healthy_monitor(db, pinged_at=0)
    sweeper, alerter = make_sweeper(db, side_effect=RuntimeError("smtp exploded"))

    summary = await sweeper.sweep(now=at(400))

    assert summary.down == 1
    assert summary.errors == 0
    assert (await get_monitor(monitor.id)).status == "DOWN"
    assert await count_open_incidents(db, monitor.id) == 1
    alerter.dispatch_down.assert_awaited_once()


@pytest.mark.asyncio
async def test_paused_and_pending_monitors_are_skipped(db):
    pending = await create_monitor(db, name="never-pinged")
    paused = await create_monitor(db, name="paused-job", status="PAUSED", next_expected_at=at(100))
    sweeper, alerter = make_sweeper(db)

    summary = await sweeper.sweep(now=at(10_000))

    assert summary.checked == 0
    assert (await get_monitor(pending.id)).status == "PENDING"
    assert (await get_monitor(paused.id)).status == "PAUSED"
    alerter.dispatch_down.assert_not_awaited()


@pytest.mark.asyncio
async def test_archived_monitors_are_skipped(db):
    monitor = await create_monitor(
        db, name="archived-job", status="HEALTHY", next_expected_at=at(100), archived=True
    )
    sweeper, _ = make_sweeper(db)

    summary = await sweeper.sweep(now=at(10_000))

    assert summary.checked == 0
    assert (await get_monitor(monitor.id)).status == "HEALTHY"


@pytest.mark.asyncio
async def test_ping_while_late_resets_deadline(db):
    monitor = await healthy_monitor(db, pinged_at=0)
    sweeper, _ = make_sweeper(db)

    await sweeper.sweep(now=at(350))
    assert (await get_monitor(monitor.id)).status == "LATE"

    await PingIngestor(db).ingest(monitor.slug, now=at(380))
    refreshed = await get_monitor(monitor.id)
    assert refreshed.status == "HEALTHY"
    assert refreshed.next_expected_at == at(680)

    summary = await sweeper.sweep(now=at(400))
    assert summary.checked == 0
    assert await count_open_incidents(db, monitor.id) == 0


@pytest.mark.asyncio
async def test_running_job_that_never_finishes_goes_down(db):
    monitor = await healthy_monitor(db, pinged_at=0)
    ingestor = PingIngestor(db)
    await ingestor.ingest(monitor.slug, kind="start", now=at(250))
    sweeper, _ = make_sweeper(db)

    await sweeper.sweep(now=at(320))
    assert (await get_monitor(monitor.id)).status == "LATE"

    await sweeper.sweep(now=at(400))
    assert (await get_monitor(monitor.id)).status == "DOWN"


@pytest.mark.asyncio
async def test_down_again_reuses_open_incident(db):
    monitor = await healthy_monitor(db, pinged_at=0)
    sweeper, alerter = make_sweeper(db)
    ingestor = PingIngestor(db)

    first = await sweeper.sweep(now=at(400))
    # Recovers without the incident being resolved, then misses again
    await ingestor.ingest(monitor.slug, now=at(500))
    second = await sweeper.sweep(now=at(900))

    assert first.incidents_opened == 1
    assert second.down == 1
    assert second.incidents_opened == 0
    assert second.transitions[0].incident_id == first.transitions[0].incident_id
    assert await count_open_incidents(db, monitor.id) == 1
    assert alerter.dispatch_down.await_count == 2


@pytest.mark.asyncio
async def test_one_failing_monitor_does_not_stop_sweep(db):
    broken = await healthy_monitor(db, pinged_at=0, name="broken")
    fine = await healthy_monitor(db, pinged_at=0, name="fine")
    sweeper, _ = make_sweeper(db)

    original = sweeper.apply_transition

    async def flaky_apply(monitor_id, now):
        if monitor_id == broken.id:
            raise RuntimeError("row exploded")
        return await original(monitor_id, now)

    sweeper.apply_transition = flaky_apply

    summary = await sweeper.sweep(now=at(400))

    assert summary.checked == 2
    assert summary.errors == 1
    assert summary.down == 1
    assert (await get_monitor(broken.id)).status == "HEALTHY"
    assert (await get_monitor(fine.id)).status == "DOWN"


@pytest.mark.asyncio
async def test_stale_deadline_is_not_transitioned(db):
    monitor = await healthy_monitor(db, pinged_at=0)
    sweeper, _ = make_sweeper(db)

    # A heartbeat lands after the sweep picked its candidates
    candidates = await sweeper.find_overdue(at(400))
    assert candidates == [monitor.id]
    await PingIngestor(db).ingest(monitor.slug, now=at(390))

    transition = await sweeper.apply_transition(monitor.id, at(400))

    assert transition is None
    assert (await get_monitor(monitor.id)).status == "HEALTHY"


@pytest.mark.asyncio
async def test_concurrent_sweeps_open_one_incident(db):
    monitor = await healthy_monitor(db, pinged_at=0)
    first, _ = make_sweeper(db)
    second, _ = make_sweeper(db)

    await asyncio.gather(first.sweep(now=at(400)), second.sweep(now=at(400)))

    assert (await get_monitor(monitor.id)).status == "DOWN"
    assert await count_open_incidents(db, monitor.id) == 1
