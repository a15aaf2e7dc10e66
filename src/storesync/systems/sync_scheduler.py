# src/sync_scheduler.py
from datetime import datetime
from typing import Dict, Any, Optional, List
import pytz
from storesync.models.schedule import SyncSchedule, ScheduleRequest, calculate_next_run_at
from storesync.models.sync import SyncRun
from storesync.repositories.schedule import ScheduleRepository
from storesync.utils.constants import RunStatus
from storesync.utils.exceptions import DuplicateError, ResourceNotFound

class SyncScheduler:
    """Stores recurrence rules and turns them into cron jobs that trigger sync runs"""

    def __init__(
        self,
        db: 'Database', # type: ignore
        config: 'Config', # type: ignore
        logger: 'CustomLogger', # type: ignore
        store_sync: 'StoreSync', # type: ignore
        task_scheduler: 'TaskScheduler', # type: ignore
        schedule_repository: Optional[ScheduleRepository] = None
    ) -> None:
        self.db = db
        self.config = config
        self.logger = logger
        self.store_sync = store_sync
        self.task_scheduler = task_scheduler
        self.schedule_repository = schedule_repository or ScheduleRepository(db, config)

    @staticmethod
    def job_id(schedule_id: int) -> str:
        return f"sync_schedule_{schedule_id}"

    async def create_or_update_schedule(self, request: ScheduleRequest) -> SyncSchedule:
        self.store_sync.normalize_types(request.resource_types)
        next_run_at = calculate_next_run_at(request.rule) if request.enabled else None
        schedule = await self.schedule_repository.upsert_by_connection(request, next_run_at)
        self.reload_schedule(schedule)
        self.logger.info(
            f"Schedule {schedule.id} saved for {schedule.connection_id}: {request.rule.cron_expression()}"
        )
        return schedule

    async def get_schedule(self, connection_id: str) -> SyncSchedule:
        schedule = await self.schedule_repository.get_by_connection(connection_id)
        if not schedule:
            raise ResourceNotFound("Schedule not found", connection_id=connection_id)
        return schedule

    async def _get(self, schedule_id: int) -> SyncSchedule:
        schedule = await self.schedule_repository.get(schedule_id)
        if not schedule:
            raise ResourceNotFound("Schedule not found", schedule_id=schedule_id)
        return schedule

    async def toggle_schedule(self, schedule_id: int, enabled: bool) -> SyncSchedule:
        schedule = await self._get(schedule_id)
        next_run_at = calculate_next_run_at(schedule.rule) if enabled else None
        schedule = await self.schedule_repository.update_fields(
            schedule_id,
            {'enabled': enabled, 'next_run_at': next_run_at}
        )
        self.reload_schedule(schedule)
        return schedule

    async def delete_schedule(self, schedule_id: int) -> None:
        await self._get(schedule_id)
        await self.schedule_repository.delete(schedule_id)
        self.task_scheduler.remove_job(self.job_id(schedule_id))
        self.logger.info(f"Schedule {schedule_id} deleted")

    def reload_schedule(self, schedule: SyncSchedule) -> None:
        """Replace the cron job of a schedule with one matching its current rule"""
        job_id = self.job_id(schedule.id)
        self.task_scheduler.remove_job(job_id)
        if schedule.enabled:
            self.task_scheduler.add_job(
                job_id,
                self.execute_scheduled_sync,
                args=[schedule.id],
                **schedule.rule.cron_fields()
            )

    async def init_schedules(self) -> int:
        """Register every enabled schedule. Called once at startup."""
        schedules = await self.schedule_repository.list_enabled()
        now = datetime.now(pytz.UTC)
        for schedule in schedules:
            if schedule.next_run_at is None or schedule.next_run_at <= now:
                schedule = await self.schedule_repository.update_fields(
                    schedule.id,
                    {'next_run_at': calculate_next_run_at(schedule.rule, now)}
                )
            self.reload_schedule(schedule)
        self.logger.info(f"Registered {len(schedules)} schedule(s)")
        return len(schedules)

    async def run_schedule_now(self, connection_id: str) -> SyncRun:
        """
        Start the schedule's run immediately. The caller finishes it with
        finish_run (usually as a background task); next_run_at is left alone.
        """
        schedule = await self.get_schedule(connection_id)
        return await self.store_sync.start_sync(schedule.connection_id, schedule.resource_types, trigger='manual')

    async def finish_run(self, schedule_id: int, run: SyncRun) -> None:
        started = datetime.now(pytz.UTC)
        try:
            finished = await self.store_sync.execute(run)
            await self._record(schedule_id, started, finished.status.value, {'run_id': finished.id, 'summary': finished.summary})
        except Exception as e:
            await self._record(schedule_id, started, RunStatus.FAILED.value, {'run_id': run.id, 'error': str(e)})

    async def execute_scheduled_sync(self, schedule_id: int) -> Optional[str]:
        """Cron entry point. Failures are recorded on the schedule and wait for the next occurrence."""
        schedule = await self.schedule_repository.get(schedule_id)
        if not schedule or not schedule.enabled:
            self.logger.warning(f"Schedule {schedule_id} no longer active, skipping")
            return None

        started = datetime.now(pytz.UTC)
        try:
            run = await self.store_sync.run_sync(schedule.connection_id, schedule.resource_types, trigger='scheduled')
            status = run.status.value
            details: Dict[str, Any] = {'run_id': run.id, 'summary': run.summary}
        except DuplicateError as e:
            status = RunStatus.SKIPPED.value
            details = {'error': e.message}
        except Exception as e:
            status = RunStatus.FAILED.value
            details = {'error': getattr(e, 'message', str(e))}

        await self._record(
            schedule_id,
            started,
            status,
            details,
            next_run_at=calculate_next_run_at(schedule.rule)
        )
        self.logger.info(f"Scheduled sync {schedule_id} for {schedule.connection_id} finished: {status}")
        return status

    async def _record(
        self,
        schedule_id: int,
        started: datetime,
        status: str,
        details: Dict[str, Any],
        next_run_at: Optional[datetime] = None
    ) -> None:
        summary = {'duration': round((datetime.now(pytz.UTC) - started).total_seconds(), 2)}
        summary.update(details)
        fields: Dict[str, Any] = {
            'last_run_at': started,
            'last_run_status': status,
            'last_run_summary': summary,
        }
        if next_run_at is not None:
            fields['next_run_at'] = next_run_at
        await self.schedule_repository.update_fields(schedule_id, fields)

    async def list_schedules(self) -> List[SyncSchedule]:
        return await self.schedule_repository.list_enabled()

    def shutdown(self) -> None:
        self.task_scheduler.stop()
