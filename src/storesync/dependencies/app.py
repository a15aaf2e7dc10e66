from fastapi import Request, HTTPException
from storesync.systems.store_sync import StoreSync
from storesync.systems.sync_scheduler import SyncScheduler

async def get_store_sync(request: Request) -> StoreSync:
    store_sync = getattr(request.app.state, 'store_sync', None)
    if not store_sync:
        raise HTTPException(
            status_code=500,
            detail="Store sync not initialized"
        )
    return store_sync

async def get_sync_scheduler(request: Request) -> SyncScheduler:
    sync_scheduler = getattr(request.app.state, 'sync_scheduler', None)
    if not sync_scheduler:
        raise HTTPException(
            status_code=500,
            detail="Sync scheduler not initialized"
        )
    return sync_scheduler
