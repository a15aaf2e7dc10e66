from typing import Optional
from storesync.models.connection import StoreConnection

class ConnectionRepository:
    """Read access to store connections; the rows are owned by the admin application"""

    def __init__(self, db: 'Database', config: 'Config'): # type: ignore
        self.db = db
        self.config = config

    async def get(self, connection_id: str) -> Optional[StoreConnection]:
        query = """
            SELECT id, shop, name, store_domain, encrypted_token, environment, is_active, created_at, updated_at
            FROM store_connections
            WHERE id = $1
        """
        record = await self.db.fetchrow(query, connection_id)
        return StoreConnection.model_validate(record) if record else None
