"""
Unit tests for SyncScheduler: schedule storage, cron job registration and scheduled runs.
"""
from datetime import datetime, timedelta

import pytest
import pytz

from storesync.config import config
from storesync.models.schedule import ScheduleRequest, SyncSchedule
from storesync.models.sync import SyncRun
from storesync.systems.store_sync import StoreSync
from storesync.systems.sync_scheduler import SyncScheduler
from storesync.utils.constants import Frequency, RunStatus
from storesync.utils.exceptions import DuplicateError, ResourceNotFound, SyncAbortedError, ValidationError
from storesync.utils.logger import logger

from conftest import FakeScheduleRepository, RecordingTaskScheduler


class StubStoreSync:
    """StoreSync stand-in: validation is real, runs are scripted"""

    normalize_types = staticmethod(StoreSync.normalize_types)

    def __init__(self):
        self.outcome = RunStatus.SUCCESS
        self.error = None
        self.calls = []

    def _run(self, connection_id, resource_types, trigger):
        return SyncRun(
            id=len(self.calls),
            connection_id=connection_id,
            resource_types=resource_types,
            trigger=trigger,
            status=RunStatus.RUNNING,
        )

    async def start_sync(self, connection_id, resource_types, trigger='manual'):
        self.calls.append(('start', connection_id, trigger))
        if self.error:
            raise self.error
        return self._run(connection_id, resource_types, trigger)

    async def execute(self, run):
        self.calls.append(('execute', run.connection_id, run.trigger))
        return run.model_copy(update={'status': self.outcome, 'summary': {'pages': {'created': 1}}})

    async def run_sync(self, connection_id, resource_types, trigger='manual'):
        run = await self.start_sync(connection_id, resource_types, trigger)
        return await self.execute(run)


@pytest.fixture
def store_sync() -> StubStoreSync:
    return StubStoreSync()


@pytest.fixture
def task_scheduler() -> RecordingTaskScheduler:
    return RecordingTaskScheduler()


@pytest.fixture
def schedule_repository() -> FakeScheduleRepository:
    return FakeScheduleRepository()


@pytest.fixture
def sync_scheduler(store_sync, task_scheduler, schedule_repository) -> SyncScheduler:
    return SyncScheduler(
        None,
        config,
        logger,
        store_sync,
        task_scheduler,
        schedule_repository=schedule_repository
    )


def request(**overrides) -> ScheduleRequest:
    data = {'connection_id': 'conn-1', 'resource_types': ['products', 'pages'], 'hour': 3, 'minute': 15}
    data.update(overrides)
    return ScheduleRequest(**data)


class TestScheduleStorage:
    """Tests for creating, toggling and deleting schedules."""

    @pytest.mark.asyncio
    async def test_create_registers_cron_job(self, sync_scheduler, task_scheduler) -> None:
        schedule = await sync_scheduler.create_or_update_schedule(request())

        assert schedule.enabled
        assert schedule.next_run_at is not None
        job = task_scheduler.jobs['sync_schedule_1']
        assert job['args'] == [1]
        assert job['cron'] == {'hour': 3, 'minute': 15}
        assert job['func'] == sync_scheduler.execute_scheduled_sync

    @pytest.mark.asyncio
    async def test_second_save_updates_the_same_schedule(self, sync_scheduler, task_scheduler) -> None:
        await sync_scheduler.create_or_update_schedule(request())
        schedule = await sync_scheduler.create_or_update_schedule(
            request(frequency=Frequency.WEEKLY, day_of_week=5)
        )

        assert schedule.id == 1
        assert list(task_scheduler.jobs) == ['sync_schedule_1']
        assert task_scheduler.jobs['sync_schedule_1']['cron'] == {'day_of_week': 'fri', 'hour': 3, 'minute': 15}

    @pytest.mark.asyncio
    async def test_disabled_schedule_has_no_job_and_no_next_run(self, sync_scheduler, task_scheduler) -> None:
        schedule = await sync_scheduler.create_or_update_schedule(request(enabled=False))

        assert schedule.next_run_at is None
        assert task_scheduler.jobs == {}

    @pytest.mark.asyncio
    async def test_unknown_resource_type_is_rejected(self, sync_scheduler, schedule_repository) -> None:
        with pytest.raises(ValidationError):
            await sync_scheduler.create_or_update_schedule(request(resource_types=['products', 'orders']))

        assert schedule_repository.schedules == {}

    @pytest.mark.asyncio
    async def test_toggle(self, sync_scheduler, task_scheduler) -> None:
        schedule = await sync_scheduler.create_or_update_schedule(request())

        disabled = await sync_scheduler.toggle_schedule(schedule.id, False)
        assert disabled.next_run_at is None
        assert task_scheduler.jobs == {}

        enabled = await sync_scheduler.toggle_schedule(schedule.id, True)
        assert enabled.next_run_at is not None
        assert 'sync_schedule_1' in task_scheduler.jobs

    @pytest.mark.asyncio
    async def test_delete(self, sync_scheduler, task_scheduler, schedule_repository) -> None:
        schedule = await sync_scheduler.create_or_update_schedule(request())

        await sync_scheduler.delete_schedule(schedule.id)

        assert schedule_repository.schedules == {}
        assert task_scheduler.jobs == {}
        with pytest.raises(ResourceNotFound):
            await sync_scheduler.delete_schedule(schedule.id)

    @pytest.mark.asyncio
    async def test_get_missing_schedule(self, sync_scheduler) -> None:
        with pytest.raises(ResourceNotFound):
            await sync_scheduler.get_schedule('conn-9')


class TestScheduledRuns:
    """Tests for the cron entry point."""

    @pytest.mark.asyncio
    async def test_success_records_outcome_and_next_run(
        self, sync_scheduler, store_sync, schedule_repository
    ) -> None:
        schedule = await sync_scheduler.create_or_update_schedule(request())
        schedule_repository.schedules[schedule.id].next_run_at = None

        status = await sync_scheduler.execute_scheduled_sync(schedule.id)

        stored = schedule_repository.schedules[schedule.id]
        assert status == 'success'
        assert stored.last_run_status == 'success'
        assert stored.last_run_summary['summary'] == {'pages': {'created': 1}}
        assert 'duration' in stored.last_run_summary
        assert stored.last_run_at is not None
        assert stored.next_run_at > datetime.now(pytz.UTC)
        assert store_sync.calls[0] == ('start', 'conn-1', 'scheduled')

    @pytest.mark.asyncio
    async def test_busy_connection_is_recorded_as_skipped(
        self, sync_scheduler, store_sync, schedule_repository
    ) -> None:
        """A run already in progress makes the occurrence a skip, not a failure."""
        schedule = await sync_scheduler.create_or_update_schedule(request())
        store_sync.error = DuplicateError("A sync is already running for connection conn-1")

        status = await sync_scheduler.execute_scheduled_sync(schedule.id)

        stored = schedule_repository.schedules[schedule.id]
        assert status == 'skipped'
        assert stored.last_run_status == 'skipped'
        assert 'already running' in stored.last_run_summary['error']
        assert stored.next_run_at is not None

    @pytest.mark.asyncio
    async def test_error_is_recorded_as_failed(self, sync_scheduler, store_sync, schedule_repository) -> None:
        schedule = await sync_scheduler.create_or_update_schedule(request())
        store_sync.error = SyncAbortedError("Store connection conn-1 is inactive")

        status = await sync_scheduler.execute_scheduled_sync(schedule.id)

        assert status == 'failed'
        assert schedule_repository.schedules[schedule.id].last_run_summary['error'] == \
            "Store connection conn-1 is inactive"

    @pytest.mark.asyncio
    async def test_disabled_schedule_does_not_run(self, sync_scheduler, store_sync) -> None:
        schedule = await sync_scheduler.create_or_update_schedule(request(enabled=False))

        assert await sync_scheduler.execute_scheduled_sync(schedule.id) is None
        assert store_sync.calls == []

    @pytest.mark.asyncio
    async def test_run_now_keeps_next_run_at(self, sync_scheduler, store_sync, schedule_repository) -> None:
        schedule = await sync_scheduler.create_or_update_schedule(request())
        planned = schedule_repository.schedules[schedule.id].next_run_at

        run = await sync_scheduler.run_schedule_now('conn-1')
        await sync_scheduler.finish_run(schedule.id, run)

        stored = schedule_repository.schedules[schedule.id]
        assert run.trigger == 'manual'
        assert stored.last_run_status == 'success'
        assert stored.next_run_at == planned
        assert [call[0] for call in store_sync.calls] == ['start', 'execute']


class TestInitSchedules:
    """Tests for startup registration."""

    @pytest.mark.asyncio
    async def test_registers_enabled_and_refreshes_stale_next_run(
        self, sync_scheduler, task_scheduler, schedule_repository
    ) -> None:
        past = datetime.now(pytz.UTC) - timedelta(days=2)
        schedule_repository.schedules = {
            1: SyncSchedule(id=1, connection_id='conn-1', resource_types=['pages'], next_run_at=past),
            2: SyncSchedule(id=2, connection_id='conn-2', resource_types=['pages'], enabled=False),
        }

        count = await sync_scheduler.init_schedules()

        assert count == 1
        assert list(task_scheduler.jobs) == ['sync_schedule_1']
        assert schedule_repository.schedules[1].next_run_at > datetime.now(pytz.UTC)

    def test_shutdown_stops_task_scheduler(self, sync_scheduler, task_scheduler) -> None:
        task_scheduler.start()

        sync_scheduler.shutdown()

        assert task_scheduler.running is False
