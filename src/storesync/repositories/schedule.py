from datetime import datetime
from typing import Optional, List, Dict, Any
from storesync.models.schedule import SyncSchedule, ScheduleRequest

SCHEDULE_COLUMNS = """
    id, connection_id, resource_types, frequency, hour, minute, day_of_week, enabled,
    next_run_at, last_run_at, last_run_status, last_run_summary, created_at, updated_at
"""

UPDATABLE_FIELDS = (
    'resource_types', 'frequency', 'hour', 'minute', 'day_of_week', 'enabled',
    'next_run_at', 'last_run_at', 'last_run_status', 'last_run_summary',
)

class ScheduleRepository:
    def __init__(self, db: 'Database', config: 'Config'): # type: ignore
        self.db = db
        self.config = config

    async def upsert_by_connection(self, request: ScheduleRequest, next_run_at: Optional[datetime]) -> SyncSchedule:
        """One schedule per connection: saving again replaces the rule"""
        query = f"""
            INSERT INTO sync_schedules (
                connection_id, resource_types, frequency, hour, minute, day_of_week, enabled, next_run_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            ON CONFLICT (connection_id)
            DO UPDATE SET
                resource_types = EXCLUDED.resource_types,
                frequency = EXCLUDED.frequency,
                hour = EXCLUDED.hour,
                minute = EXCLUDED.minute,
                day_of_week = EXCLUDED.day_of_week,
                enabled = EXCLUDED.enabled,
                next_run_at = EXCLUDED.next_run_at,
                updated_at = CURRENT_TIMESTAMP
            RETURNING {SCHEDULE_COLUMNS}
        """
        record = await self.db.fetchrow(
            query,
            request.connection_id,
            list(request.resource_types),
            request.frequency,
            request.hour,
            request.minute,
            request.day_of_week,
            request.enabled,
            next_run_at
        )
        return SyncSchedule.model_validate(record)

    async def get(self, schedule_id: int) -> Optional[SyncSchedule]:
        record = await self.db.fetchrow(f"SELECT {SCHEDULE_COLUMNS} FROM sync_schedules WHERE id = $1", schedule_id)
        return SyncSchedule.model_validate(record) if record else None

    async def get_by_connection(self, connection_id: str) -> Optional[SyncSchedule]:
        record = await self.db.fetchrow(
            f"SELECT {SCHEDULE_COLUMNS} FROM sync_schedules WHERE connection_id = $1",
            connection_id
        )
        return SyncSchedule.model_validate(record) if record else None

    async def list_enabled(self) -> List[SyncSchedule]:
        records = await self.db.fetch(
            f"SELECT {SCHEDULE_COLUMNS} FROM sync_schedules WHERE enabled = TRUE ORDER BY id"
        )
        return [SyncSchedule.model_validate(record) for record in records]

    async def update_fields(self, schedule_id: int, fields: Dict[str, Any]) -> Optional[SyncSchedule]:
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update schedule fields: {', '.join(sorted(unknown))}")
        if not fields:
            return await self.get(schedule_id)

        names = list(fields)
        assignments = ', '.join(f"{name} = ${index + 2}" for index, name in enumerate(names))
        query = f"""
            UPDATE sync_schedules
            SET {assignments}, updated_at = CURRENT_TIMESTAMP
            WHERE id = $1
            RETURNING {SCHEDULE_COLUMNS}
        """
        record = await self.db.fetchrow(query, schedule_id, *[fields[name] for name in names])
        return SyncSchedule.model_validate(record) if record else None

    async def delete(self, schedule_id: int) -> bool:
        status = await self.db.execute("DELETE FROM sync_schedules WHERE id = $1", schedule_id)
        return str(status).endswith(' 1')
