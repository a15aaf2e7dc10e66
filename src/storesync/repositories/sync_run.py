from typing import Optional, List, Dict, Any
from storesync.models.sync import SyncRun
from storesync.utils.constants import RunStatus

RUN_COLUMNS = "id, connection_id, resource_types, trigger, status, summary, logs, started_at, completed_at"

class SyncRunRepository:
    def __init__(self, db: 'Database', config: 'Config'): # type: ignore
        self.db = db
        self.config = config

    async def create(self, connection_id: str, resource_types: List[str], trigger: str = 'manual') -> SyncRun:
        query = f"""
            INSERT INTO sync_runs (connection_id, resource_types, trigger, status, started_at)
            VALUES ($1, $2, $3, $4, CURRENT_TIMESTAMP)
            RETURNING {RUN_COLUMNS}
        """
        record = await self.db.fetchrow(query, connection_id, list(resource_types), trigger, RunStatus.RUNNING)
        return SyncRun.model_validate(record)

    async def update(
        self,
        run_id: int,
        status: Optional[RunStatus] = None,
        summary: Optional[Dict[str, Any]] = None,
        logs: Optional[List[Dict[str, Any]]] = None,
        completed: bool = False
    ) -> Optional[SyncRun]:
        """Update the run in place; None arguments keep the stored value"""
        query = f"""
            UPDATE sync_runs
            SET status = COALESCE($2, status),
                summary = COALESCE($3, summary),
                logs = COALESCE($4, logs),
                completed_at = CASE WHEN $5 THEN CURRENT_TIMESTAMP ELSE completed_at END
            WHERE id = $1
            RETURNING {RUN_COLUMNS}
        """
        record = await self.db.fetchrow(query, run_id, status, summary, logs, completed)
        return SyncRun.model_validate(record) if record else None

    async def get(self, run_id: int) -> Optional[SyncRun]:
        record = await self.db.fetchrow(f"SELECT {RUN_COLUMNS} FROM sync_runs WHERE id = $1", run_id)
        return SyncRun.model_validate(record) if record else None

    async def list_for_connection(self, connection_id: str, limit: int = 20) -> List[SyncRun]:
        query = f"""
            SELECT {RUN_COLUMNS}
            FROM sync_runs
            WHERE connection_id = $1
            ORDER BY started_at DESC
            LIMIT $2
        """
        records = await self.db.fetch(query, connection_id, limit)
        return [SyncRun.model_validate(record) for record in records]

    async def fail_interrupted(self) -> List[int]:
        """
        Mark runs still 'running' as failed. Only valid at startup, before any
        run of this process has started: such rows belong to a process that died.
        """
        query = """
            UPDATE sync_runs
            SET status = $1,
                completed_at = CURRENT_TIMESTAMP,
                summary = summary || $2::jsonb
            WHERE status = $3
            RETURNING id
        """
        records = await self.db.fetch(query, RunStatus.FAILED, {'error': 'interrupted'}, RunStatus.RUNNING)
        return [record['id'] for record in records]
