"""
Shared fixtures: in-memory repositories and a scripted GraphQL shop.

Environment variables are set before any storesync import because the
configuration is read at import time.
"""
import copy
import os
import tempfile

os.environ.setdefault('APP_ROOT', tempfile.mkdtemp(prefix='storesync-tests-'))
os.environ['API_TOKEN'] = 'test-token'
os.environ['ENCRYPTION_KEY'] = 'a' * 64
os.environ['TARGET_ACCESS_TOKEN'] = 'target-token'
os.environ['PAGE_PAUSE'] = '0'
os.environ['ITEM_PAUSE'] = '0'
os.environ['API_RATE_LIMIT'] = '0'
os.environ['SCHEDULER_ENABLED'] = 'false'

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest
import pytz

from storesync.api.shop_api import ShopAPI
from storesync.api.shop_base import operation_name
from storesync.config import config
from storesync.decorators.retry import Retry, RetryConfig
from storesync.models.connection import StoreConnection
from storesync.models.mapping import ResourceMapping, UnmappedReference
from storesync.models.schedule import SyncSchedule
from storesync.models.sync import SyncRun
from storesync.processors.attributes import MetafieldSync
from storesync.processors.inventory import InventoryReconciler
from storesync.processors.translator import ReferenceTranslator
from storesync.systems.run_context import RunContext
from storesync.utils.constants import RunStatus
from storesync.utils.exceptions import AuthError, ValidationError, BusinessError
from storesync.utils.gid import parse_gid, normalize_resource_type
from storesync.utils.logger import logger


def type_value(resource_type) -> str:
    return getattr(resource_type, 'value', resource_type)


def nest(path: str, value: Any) -> Dict[str, Any]:
    """Wrap value under a dotted path: nest('a.b', 1) == {'a': {'b': 1}}"""
    for part in reversed(path.split('.')):
        value = {part: value}
    return value


def paged(path: str, *pages: List[Dict[str, Any]]) -> Callable[[Dict[str, Any]], Dict[str, Any]]:
    """Handler serving the given pages; page n is requested with after='c<n>'"""
    def handler(variables: Dict[str, Any]) -> Dict[str, Any]:
        after = variables.get('after')
        index = 0 if after is None else int(after[1:])
        items = pages[index] if pages else []
        has_next = index + 1 < len(pages)
        connection = {
            'nodes': list(items),
            'pageInfo': {
                'hasNextPage': has_next,
                'endCursor': f"c{index + 1}" if has_next else None,
            },
        }
        return nest(path, connection)
    return handler


class FakeShop(ShopAPI):
    """
    ShopAPI whose transport is a table of handlers keyed by operation name.
    A handler is a dict (the response data) or a callable taking the variables.
    Returning a dict with a top-level 'errors' key produces a GraphQL error response.
    """

    def __init__(self, domain: str = 'shop.myshopify.com'):
        super().__init__(domain, 'token', logger, rate_limit=0)
        self.handlers: Dict[str, Any] = {}
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.closed = False

    def on(self, name: str, handler: Any) -> 'FakeShop':
        self.handlers[name] = handler
        return self

    def calls_to(self, name: str) -> List[Dict[str, Any]]:
        return [variables for operation, variables in self.calls if operation == name]

    async def query(self, descriptor: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        name = operation_name(descriptor)
        variables = variables or {}
        self.calls.append((name, copy.deepcopy(variables)))

        handler = self.handlers.get(name)
        if handler is None:
            raise AssertionError(f"No handler for {name}")
        result = handler(variables) if callable(handler) else copy.deepcopy(handler)
        if isinstance(result, dict) and 'errors' in result:
            return {'data': result.get('data'), 'errors': result['errors']}
        return {'data': result, 'errors': []}

    async def close(self):
        self.closed = True


class FakeMappingRepository:
    """MappingRepository stand-in keeping rows in memory"""

    def __init__(self):
        self.mappings: Dict[Tuple[str, str, str], ResourceMapping] = {}
        self.unmapped: Dict[Tuple[str, str, str], UnmappedReference] = {}
        self._next_id = 1

    async def save_mapping(self, connection_id: str, resource_type, fields: Dict[str, Any]):
        missing = [name for name in ('source_id', 'target_id', 'source_gid', 'target_gid', 'match_key', 'match_value')
                   if not fields.get(name)]
        if missing:
            raise ValidationError(f"Mapping is missing {', '.join(missing)}")
        key = (connection_id, type_value(resource_type), str(fields['source_id']))
        inserted = key not in self.mappings
        existing = self.mappings.get(key)
        mapping = ResourceMapping(
            id=existing.id if existing else self._take_id(),
            connection_id=connection_id,
            resource_type=type_value(resource_type),
            source_id=str(fields['source_id']),
            target_id=str(fields['target_id']),
            source_gid=fields['source_gid'],
            target_gid=fields['target_gid'],
            match_key=fields['match_key'],
            match_value=str(fields['match_value']),
            sync_run_id=fields.get('sync_run_id'),
            title=fields.get('title'),
            last_synced_at=datetime.now(pytz.UTC),
        )
        self.mappings[key] = mapping
        for reference in self.unmapped.values():
            if reference.connection_id == connection_id and reference.source_gid == fields['source_gid']:
                reference.resolved = True
        return mapping, inserted

    async def save_mappings(self, connection_id: str, resource_type, items: List[Dict[str, Any]]):
        result = {'created': 0, 'updated': 0, 'failed': 0, 'errors': []}
        for fields in items:
            try:
                _, inserted = await self.save_mapping(connection_id, resource_type, fields)
                result['created' if inserted else 'updated'] += 1
            except ValidationError as e:
                result['failed'] += 1
                result['errors'].append({'source_id': fields.get('source_id'), 'error': e.message})
        return result

    async def get_by_source_id(self, connection_id: str, resource_type, source_id: str):
        return self.mappings.get((connection_id, type_value(resource_type), str(source_id)))

    async def get_by_source_gid(self, connection_id: str, source_gid: str):
        for mapping in self.mappings.values():
            if mapping.connection_id == connection_id and mapping.source_gid == source_gid:
                return mapping
        return None

    async def get_mappings(self, connection_id: str, resource_type=None, limit: int = 100, offset: int = 0):
        rows = [
            mapping for mapping in self.mappings.values()
            if mapping.connection_id == connection_id
            and (resource_type is None or mapping.resource_type == type_value(resource_type))
        ]
        return rows[offset:offset + limit]

    async def count_mappings(self, connection_id: str, resource_type=None) -> int:
        return len(await self.get_mappings(connection_id, resource_type, limit=10 ** 6))

    async def get_mapping_stats(self, connection_id: str) -> Dict[str, int]:
        stats: Dict[str, int] = {}
        for mapping in self.mappings.values():
            if mapping.connection_id == connection_id:
                stats[mapping.resource_type] = stats.get(mapping.resource_type, 0) + 1
        return stats

    async def delete_mappings(self, connection_id: str) -> int:
        keys = [key for key in self.mappings if key[0] == connection_id]
        for key in keys:
            del self.mappings[key]
        return len(keys)

    async def log_unmapped_reference(self, connection_id: str, source_gid: str, context: str = '', found_in_type=None):
        parsed = parse_gid(source_gid)
        if not parsed:
            return None
        key = (connection_id, source_gid, context or '')
        reference = self.unmapped.get(key)
        if reference is None:
            reference = UnmappedReference(
                id=self._take_id(),
                connection_id=connection_id,
                resource_type=normalize_resource_type(parsed[0]),
                source_gid=source_gid,
                source_id=parsed[1],
                context=context or '',
            )
            self.unmapped[key] = reference
        reference.found_in_type = found_in_type
        reference.attempted_at = datetime.now(pytz.UTC)
        return reference

    async def get_unmapped_references(self, connection_id: str, resource_type=None, resolved=False, limit=100, offset=0):
        rows = [
            reference for reference in self.unmapped.values()
            if reference.connection_id == connection_id
            and (resource_type is None or reference.resource_type == resource_type)
            and (resolved is None or reference.resolved == resolved)
        ]
        return rows[offset:offset + limit]

    async def mark_unmapped_resolved(self, reference_id: int):
        for reference in self.unmapped.values():
            if reference.id == reference_id:
                reference.resolved = True
                reference.resolved_at = datetime.now(pytz.UTC)
                return reference
        return None

    def _take_id(self) -> int:
        self._next_id += 1
        return self._next_id - 1

    def target_of(self, connection_id: str, resource_type, source_id: str) -> Optional[str]:
        mapping = self.mappings.get((connection_id, type_value(resource_type), str(source_id)))
        return mapping.target_gid if mapping else None


class FakeSyncRunRepository:
    def __init__(self):
        self.runs: Dict[int, SyncRun] = {}

    async def create(self, connection_id: str, resource_types: List[str], trigger: str = 'manual') -> SyncRun:
        run = SyncRun(
            id=len(self.runs) + 1,
            connection_id=connection_id,
            resource_types=list(resource_types),
            trigger=trigger,
            status=RunStatus.RUNNING,
            started_at=datetime.now(pytz.UTC),
        )
        self.runs[run.id] = run
        return run.model_copy(deep=True)

    async def update(self, run_id: int, status=None, summary=None, logs=None, completed: bool = False):
        run = self.runs.get(run_id)
        if run is None:
            return None
        if status is not None:
            run.status = status
        if summary is not None:
            run.summary = copy.deepcopy(summary)
        if logs is not None:
            run.logs = copy.deepcopy(logs)
        if completed:
            run.completed_at = datetime.now(pytz.UTC)
        return run.model_copy(deep=True)

    async def get(self, run_id: int):
        run = self.runs.get(run_id)
        return run.model_copy(deep=True) if run else None

    async def list_for_connection(self, connection_id: str, limit: int = 20):
        runs = [run for run in self.runs.values() if run.connection_id == connection_id]
        return [run.model_copy(deep=True) for run in reversed(runs)][:limit]

    async def fail_interrupted(self) -> List[int]:
        interrupted = [run for run in self.runs.values() if run.status == RunStatus.RUNNING]
        for run in interrupted:
            run.status = RunStatus.FAILED
            run.summary = {**(run.summary or {}), 'error': 'interrupted'}
            run.completed_at = datetime.now(pytz.UTC)
        return [run.id for run in interrupted]


class FakeScheduleRepository:
    def __init__(self):
        self.schedules: Dict[int, SyncSchedule] = {}

    async def upsert_by_connection(self, request, next_run_at):
        existing = next(
            (schedule for schedule in self.schedules.values() if schedule.connection_id == request.connection_id),
            None
        )
        schedule = SyncSchedule(
            id=existing.id if existing else len(self.schedules) + 1,
            connection_id=request.connection_id,
            resource_types=list(request.resource_types),
            frequency=request.frequency,
            hour=request.hour,
            minute=request.minute,
            day_of_week=request.day_of_week,
            enabled=request.enabled,
            next_run_at=next_run_at,
            last_run_at=existing.last_run_at if existing else None,
            last_run_status=existing.last_run_status if existing else None,
            last_run_summary=existing.last_run_summary if existing else None,
        )
        self.schedules[schedule.id] = schedule
        return schedule.model_copy(deep=True)

    async def get(self, schedule_id: int):
        schedule = self.schedules.get(schedule_id)
        return schedule.model_copy(deep=True) if schedule else None

    async def get_by_connection(self, connection_id: str):
        for schedule in self.schedules.values():
            if schedule.connection_id == connection_id:
                return schedule.model_copy(deep=True)
        return None

    async def list_enabled(self):
        return [schedule.model_copy(deep=True) for schedule in self.schedules.values() if schedule.enabled]

    async def update_fields(self, schedule_id: int, fields: Dict[str, Any]):
        schedule = self.schedules.get(schedule_id)
        if schedule is None:
            return None
        for name, value in fields.items():
            setattr(schedule, name, copy.deepcopy(value))
        return schedule.model_copy(deep=True)

    async def delete(self, schedule_id: int) -> bool:
        return self.schedules.pop(schedule_id, None) is not None


class FakeConnectionRepository:
    def __init__(self, *connections: StoreConnection):
        self.connections = {connection.id: connection for connection in connections}

    async def get(self, connection_id: str):
        return self.connections.get(connection_id)


class RecordingTaskScheduler:
    """TaskScheduler stand-in remembering registered cron jobs"""

    def __init__(self):
        self.jobs: Dict[str, Dict[str, Any]] = {}
        self.running = False

    def add_job(self, job_id, func, args=None, **cron_fields):
        self.jobs[job_id] = {'func': func, 'args': args or [], 'cron': cron_fields}

    def remove_job(self, job_id):
        self.jobs.pop(job_id, None)

    def start(self):
        self.running = True

    def stop(self):
        self.running = False


def make_retry(max_attempts: int = 3) -> Retry:
    retry = Retry(
        retry_config=RetryConfig(max_attempts=max_attempts, initial_delay=1, max_delay=30),
        retry_on=(Exception,),
        never_retry=(AuthError, ValidationError, BusinessError),
        logger=logger
    )
    retry.delays = []

    async def record_sleep(delay):
        retry.delays.append(delay)

    retry._sleep = record_sleep
    return retry


@pytest.fixture
def retry() -> Retry:
    return make_retry()


@pytest.fixture
def mapping_repository() -> FakeMappingRepository:
    return FakeMappingRepository()


@pytest.fixture
def source_shop() -> FakeShop:
    return FakeShop('source.myshopify.com')


@pytest.fixture
def target_shop() -> FakeShop:
    return FakeShop('target.myshopify.com')


@pytest.fixture
def run_context(source_shop, target_shop, mapping_repository, retry) -> RunContext:
    context = RunContext(
        connection_id='conn-1',
        run_id=1,
        source_api=source_shop,
        target_api=target_shop,
        logger=logger
    )
    context.translator = ReferenceTranslator(mapping_repository, logger)
    context.metafields = MetafieldSync(context, retry, logger)
    context.inventory = InventoryReconciler(context, retry, logger)
    return context


@pytest.fixture
def processor_kwargs(run_context, mapping_repository, retry) -> Dict[str, Any]:
    return {
        'config': config,
        'logger': logger,
        'retry': retry,
        'mapping_repository': mapping_repository,
        'context': run_context,
    }
