from fastapi import APIRouter, HTTPException, BackgroundTasks, Depends, Query
from typing import Optional
from storesync.utils.logger import logger
from storesync.utils.exceptions import AppException, DuplicateError, ResourceNotFound
from storesync.dependencies.auth import verify_token
from storesync.dependencies.app import get_store_sync
from storesync.models.sync import SyncRequest
from storesync.systems.store_sync import StoreSync

router = APIRouter()

def to_http_error(e: Exception) -> HTTPException:
    """Map an exception onto {"status": "error", "message": ...} with the matching status code"""
    if isinstance(e, HTTPException):
        return e
    if isinstance(e, AppException):
        status_code, message = int(e.status_code), e.message
    else:
        logger.error(f"Unhandled error in API route: {str(e)}")
        status_code, message = 500, str(e)
    return HTTPException(status_code=status_code, detail={"status": "error", "message": message})

@router.post("/run")
async def run_sync(
    body: SyncRequest,
    background_tasks: BackgroundTasks,
    store_sync: StoreSync = Depends(get_store_sync),
    token: str = Depends(verify_token)
):
    """Start a sync run for a connection. The run continues in the background."""
    try:
        run = await store_sync.start_sync(body.connection_id, body.resource_types, trigger='manual')
        background_tasks.add_task(store_sync.execute, run)

        return {
            "status": "success",
            "message": "Sync started",
            "run_id": run.id,
            "resource_types": run.resource_types
        }
    except Exception as e:
        raise to_http_error(e)

@router.get("/runs/{run_id}")
async def get_run(
    run_id: int,
    store_sync: StoreSync = Depends(get_store_sync),
    token: str = Depends(verify_token)
):
    """Status, summary and logs of one run"""
    try:
        return await store_sync.get_run_status(run_id)
    except Exception as e:
        raise to_http_error(e)

@router.get("/connections/{connection_id}/runs")
async def list_runs(
    connection_id: str,
    limit: int = Query(20, ge=1, le=100),
    store_sync: StoreSync = Depends(get_store_sync),
    token: str = Depends(verify_token)
):
    try:
        return {
            "runs": await store_sync.list_runs(connection_id, limit),
            "running": store_sync.is_running(connection_id)
        }
    except Exception as e:
        raise to_http_error(e)

@router.get("/connections/{connection_id}/mappings")
async def list_mappings(
    connection_id: str,
    resource_type: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    store_sync: StoreSync = Depends(get_store_sync),
    token: str = Depends(verify_token)
):
    try:
        repository = store_sync.mapping_repository
        mappings = await repository.get_mappings(connection_id, resource_type, limit, offset)
        return {
            "mappings": [mapping.model_dump(mode='json') for mapping in mappings],
            "total": await repository.count_mappings(connection_id, resource_type),
            "limit": limit,
            "offset": offset
        }
    except Exception as e:
        raise to_http_error(e)

@router.get("/connections/{connection_id}/mappings/stats")
async def mapping_stats(
    connection_id: str,
    store_sync: StoreSync = Depends(get_store_sync),
    token: str = Depends(verify_token)
):
    try:
        stats = await store_sync.mapping_repository.get_mapping_stats(connection_id)
        return {"stats": stats, "total": sum(stats.values())}
    except Exception as e:
        raise to_http_error(e)

@router.delete("/connections/{connection_id}/mappings")
async def delete_mappings(
    connection_id: str,
    store_sync: StoreSync = Depends(get_store_sync),
    token: str = Depends(verify_token)
):
    """Forget every mapping of a connection. The next run matches from scratch."""
    try:
        if store_sync.is_running(connection_id):
            raise DuplicateError(f"A sync is running for {connection_id}; mappings cannot be deleted now")
        deleted = await store_sync.mapping_repository.delete_mappings(connection_id)
        logger.info(f"Deleted {deleted} mappings for {connection_id}")
        return {"status": "success", "deleted": deleted}
    except Exception as e:
        raise to_http_error(e)

@router.get("/connections/{connection_id}/unmapped")
async def list_unmapped(
    connection_id: str,
    resource_type: Optional[str] = None,
    resolved: Optional[bool] = False,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    store_sync: StoreSync = Depends(get_store_sync),
    token: str = Depends(verify_token)
):
    """References that could not be translated, newest first"""
    try:
        references = await store_sync.mapping_repository.get_unmapped_references(
            connection_id,
            resource_type=resource_type,
            resolved=resolved,
            limit=limit,
            offset=offset
        )
        return {"references": [reference.model_dump(mode='json') for reference in references]}
    except Exception as e:
        raise to_http_error(e)

@router.post("/unmapped/{reference_id}/resolve")
async def resolve_unmapped(
    reference_id: int,
    store_sync: StoreSync = Depends(get_store_sync),
    token: str = Depends(verify_token)
):
    try:
        reference = await store_sync.mapping_repository.mark_unmapped_resolved(reference_id)
        if not reference:
            raise ResourceNotFound(f"Unmapped reference {reference_id} not found")
        return {"status": "success", "reference": reference.model_dump(mode='json')}
    except Exception as e:
        raise to_http_error(e)
