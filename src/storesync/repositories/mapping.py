from datetime import datetime
from typing import Optional, Dict, Any, List, Tuple
import pytz
from storesync.models.mapping import ResourceMapping, UnmappedReference
from storesync.utils.gid import parse_gid, normalize_resource_type
from storesync.utils.exceptions import ValidationError

MAPPING_COLUMNS = """
    id, connection_id, resource_type, source_id, target_id, source_gid, target_gid,
    match_key, match_value, sync_run_id, title, metadata, last_synced_at, created_at
"""

UNMAPPED_COLUMNS = """
    id, connection_id, resource_type, source_gid, source_id, context,
    found_in_type, attempted_at, resolved, resolved_at
"""

def _type_value(resource_type) -> str:
    return getattr(resource_type, 'value', resource_type)

class MappingRepository:
    """Identifier mapping registry: source id <-> target id per connection and resource type"""

    REQUIRED_FIELDS = ('source_id', 'target_id', 'source_gid', 'target_gid', 'match_key', 'match_value')

    def __init__(self, db: 'Database', config: 'Config', logger: 'CustomLogger' = None): # type: ignore
        self.db = db
        self.config = config
        self.logger = logger

    async def save_mapping(
        self,
        connection_id: str,
        resource_type,
        fields: Dict[str, Any]
    ) -> Tuple[ResourceMapping, bool]:
        """
        Upsert one mapping keyed by (connection_id, resource_type, source_id).

        Returns the stored mapping and whether the row was newly inserted. Open
        unmapped references for the source GID are marked resolved afterwards.
        """
        missing = [name for name in self.REQUIRED_FIELDS if not fields.get(name)]
        if missing:
            raise ValidationError(
                f"Mapping for {_type_value(resource_type)} is missing {', '.join(missing)}",
                context={'connection_id': connection_id, 'source_id': fields.get('source_id')}
            )

        query = f"""
            INSERT INTO resource_mappings (
                connection_id, resource_type, source_id, target_id, source_gid, target_gid,
                match_key, match_value, sync_run_id, title, metadata, last_synced_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, CURRENT_TIMESTAMP)
            ON CONFLICT (connection_id, resource_type, source_id)
            DO UPDATE SET
                target_id = EXCLUDED.target_id,
                source_gid = EXCLUDED.source_gid,
                target_gid = EXCLUDED.target_gid,
                match_key = EXCLUDED.match_key,
                match_value = EXCLUDED.match_value,
                sync_run_id = EXCLUDED.sync_run_id,
                title = EXCLUDED.title,
                metadata = EXCLUDED.metadata,
                last_synced_at = CURRENT_TIMESTAMP
            RETURNING {MAPPING_COLUMNS}, (xmax = 0) AS inserted
        """

        record = await self.db.fetchrow(
            query,
            connection_id,
            _type_value(resource_type),
            str(fields['source_id']),
            str(fields['target_id']),
            fields['source_gid'],
            fields['target_gid'],
            fields['match_key'],
            str(fields['match_value']),
            fields.get('sync_run_id'),
            fields.get('title'),
            fields.get('metadata') or {}
        )
        inserted = bool(record.pop('inserted', False))

        await self.mark_unmapped_resolved_by_gid(connection_id, fields['source_gid'])

        return ResourceMapping.model_validate(record), inserted

    async def save_mappings(
        self,
        connection_id: str,
        resource_type,
        items: List[Dict[str, Any]]
    ) -> Dict[str, Any]:
        """Batch form of save_mapping. One bad item never prevents the others from being saved."""
        result = {'created': 0, 'updated': 0, 'failed': 0, 'errors': []}
        for fields in items:
            try:
                _, inserted = await self.save_mapping(connection_id, resource_type, fields)
                result['created' if inserted else 'updated'] += 1
            except Exception as e:
                result['failed'] += 1
                result['errors'].append({
                    'source_id': fields.get('source_id'),
                    'error': getattr(e, 'message', str(e))
                })
        return result

    async def get_by_source_id(self, connection_id: str, resource_type, source_id: str) -> Optional[ResourceMapping]:
        query = f"""
            SELECT {MAPPING_COLUMNS}
            FROM resource_mappings
            WHERE connection_id = $1 AND resource_type = $2 AND source_id = $3
        """
        record = await self.db.fetchrow(query, connection_id, _type_value(resource_type), str(source_id))
        return ResourceMapping.model_validate(record) if record else None

    async def get_by_source_gid(self, connection_id: str, source_gid: str) -> Optional[ResourceMapping]:
        query = f"""
            SELECT {MAPPING_COLUMNS}
            FROM resource_mappings
            WHERE connection_id = $1 AND source_gid = $2
            ORDER BY last_synced_at DESC
            LIMIT 1
        """
        record = await self.db.fetchrow(query, connection_id, source_gid)
        return ResourceMapping.model_validate(record) if record else None

    async def get_mappings(
        self,
        connection_id: str,
        resource_type=None,
        limit: int = 100,
        offset: int = 0
    ) -> List[ResourceMapping]:
        if resource_type:
            query = f"""
                SELECT {MAPPING_COLUMNS}
                FROM resource_mappings
                WHERE connection_id = $1 AND resource_type = $2
                ORDER BY id
                LIMIT $3 OFFSET $4
            """
            records = await self.db.fetch(query, connection_id, _type_value(resource_type), limit, offset)
        else:
            query = f"""
                SELECT {MAPPING_COLUMNS}
                FROM resource_mappings
                WHERE connection_id = $1
                ORDER BY id
                LIMIT $2 OFFSET $3
            """
            records = await self.db.fetch(query, connection_id, limit, offset)
        return [ResourceMapping.model_validate(record) for record in records]

    async def count_mappings(self, connection_id: str, resource_type=None) -> int:
        if resource_type:
            query = "SELECT COUNT(*) FROM resource_mappings WHERE connection_id = $1 AND resource_type = $2"
            return await self.db.fetchval(query, connection_id, _type_value(resource_type)) or 0
        query = "SELECT COUNT(*) FROM resource_mappings WHERE connection_id = $1"
        return await self.db.fetchval(query, connection_id) or 0

    async def get_mapping_stats(self, connection_id: str) -> Dict[str, int]:
        query = """
            SELECT resource_type, COUNT(*) AS total
            FROM resource_mappings
            WHERE connection_id = $1
            GROUP BY resource_type
            ORDER BY resource_type
        """
        records = await self.db.fetch(query, connection_id)
        return {record['resource_type']: record['total'] for record in records}

    async def delete_mappings(self, connection_id: str) -> int:
        """Delete every mapping of a connection. Returns the number of rows removed."""
        status = await self.db.execute("DELETE FROM resource_mappings WHERE connection_id = $1", connection_id)
        try:
            return int(str(status).split()[-1])
        except (ValueError, IndexError):
            return 0

    async def log_unmapped_reference(
        self,
        connection_id: str,
        source_gid: str,
        context: str = '',
        found_in_type: Optional[str] = None
    ) -> Optional[UnmappedReference]:
        """
        Record a source GID that had no mapping. Re-logging the same
        (connection, gid, context) only refreshes attempted_at and found_in_type.
        Never raises: a failed write is logged and None returned.
        """
        parsed = parse_gid(source_gid)
        if not parsed:
            return None
        type_name, source_id = parsed

        query = f"""
            INSERT INTO unmapped_references (
                connection_id, resource_type, source_gid, source_id, context, found_in_type, attempted_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, CURRENT_TIMESTAMP)
            ON CONFLICT (connection_id, source_gid, context)
            DO UPDATE SET
                attempted_at = CURRENT_TIMESTAMP,
                found_in_type = EXCLUDED.found_in_type
            RETURNING {UNMAPPED_COLUMNS}
        """
        try:
            record = await self.db.fetchrow(
                query,
                connection_id,
                normalize_resource_type(type_name),
                source_gid,
                source_id,
                context or '',
                found_in_type
            )
            return UnmappedReference.model_validate(record) if record else None
        except Exception as e:
            if self.logger:
                self.logger.error(f"Error logging unmapped reference {source_gid}: {str(e)}")
            return None

    async def get_unmapped_references(
        self,
        connection_id: str,
        resource_type=None,
        resolved: Optional[bool] = False,
        limit: int = 100,
        offset: int = 0
    ) -> List[UnmappedReference]:
        conditions = ['connection_id = $1']
        args: List[Any] = [connection_id]
        if resource_type:
            args.append(_type_value(resource_type))
            conditions.append(f"resource_type = ${len(args)}")
        if resolved is not None:
            args.append(resolved)
            conditions.append(f"resolved = ${len(args)}")
        args.extend([limit, offset])

        query = f"""
            SELECT {UNMAPPED_COLUMNS}
            FROM unmapped_references
            WHERE {' AND '.join(conditions)}
            ORDER BY attempted_at DESC
            LIMIT ${len(args) - 1} OFFSET ${len(args)}
        """
        records = await self.db.fetch(query, *args)
        return [UnmappedReference.model_validate(record) for record in records]

    async def mark_unmapped_resolved(self, reference_id: int) -> Optional[UnmappedReference]:
        query = f"""
            UPDATE unmapped_references
            SET resolved = TRUE, resolved_at = $2
            WHERE id = $1
            RETURNING {UNMAPPED_COLUMNS}
        """
        record = await self.db.fetchrow(query, reference_id, datetime.now(pytz.UTC))
        return UnmappedReference.model_validate(record) if record else None

    async def mark_unmapped_resolved_by_gid(self, connection_id: str, source_gid: str) -> None:
        query = """
            UPDATE unmapped_references
            SET resolved = TRUE, resolved_at = CURRENT_TIMESTAMP
            WHERE connection_id = $1 AND source_gid = $2 AND resolved = FALSE
        """
        await self.db.execute(query, connection_id, source_gid)
