# utils/scheduler.py

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.job import Job
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, Callable
from datetime import datetime
import pytz
from storesync.utils.logger import logger

@dataclass
class JobState:
    """In-memory record of one cron job and its latest firing"""
    job_id: str
    cron: Dict[str, Any] = field(default_factory=dict)
    status: str = "scheduled"
    runs: int = 0
    last_started_at: Optional[datetime] = None
    last_finished_at: Optional[datetime] = None
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "cron": self.cron,
            "status": self.status,
            "runs": self.runs,
            "last_started_at": self.last_started_at.isoformat() if self.last_started_at else None,
            "last_finished_at": self.last_finished_at.isoformat() if self.last_finished_at else None,
            "last_error": self.last_error,
        }

class TaskScheduler:
    """
    Process-wide cron scheduler (singleton).

    Jobs are coroutine functions fired by CronTriggers evaluated in UTC. A job
    never overlaps itself and missed firings collapse into a single one.
    """
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(TaskScheduler, cls).__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self.scheduler = AsyncIOScheduler(timezone=pytz.UTC)
        self.states: Dict[str, JobState] = {}
        self._initialized = True

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self):
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info(f"Scheduler started with {len(self.states)} job(s)")

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")

    def add_job(self, job_id: str, func: Callable, args: Optional[list] = None, **cron_fields) -> Job:
        """Register func under job_id, replacing any previous job with that id"""
        self.remove_job(job_id)

        job = self.scheduler.add_job(
            self._tracked(job_id, func),
            trigger=CronTrigger(timezone=pytz.UTC, **cron_fields),
            args=args or [],
            id=job_id,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=None
        )
        self.states[job_id] = JobState(job_id=job_id, cron=dict(cron_fields))
        logger.info(f"Added job: {job_id} ({cron_fields})")
        return job

    def remove_job(self, job_id: str):
        if self.scheduler.get_job(job_id):
            self.scheduler.remove_job(job_id)
        if self.states.pop(job_id, None):
            logger.info(f"Removed job: {job_id}")

    def job_states(self) -> Dict[str, Dict[str, Any]]:
        return {job_id: state.to_dict() for job_id, state in self.states.items()}

    def _tracked(self, job_id: str, func: Callable):
        """Wrap func so each firing updates the job's state"""
        async def run(*args):
            state = self.states.get(job_id) or JobState(job_id=job_id)
            state.status = "running"
            state.runs += 1
            state.last_started_at = datetime.now(pytz.UTC)
            try:
                result = await func(*args)
            except Exception as e:
                state.status = "failed"
                state.last_error = str(e)
                state.last_finished_at = datetime.now(pytz.UTC)
                logger.error(f"Error in job {job_id}: {str(e)}")
                raise

            state.status = "completed"
            state.last_error = None
            state.last_finished_at = datetime.now(pytz.UTC)
            return result

        return run
