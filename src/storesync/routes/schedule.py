from fastapi import APIRouter, BackgroundTasks, Depends
from storesync.dependencies.auth import verify_token
from storesync.dependencies.app import get_sync_scheduler
from storesync.models.schedule import ScheduleRequest, ToggleRequest
from storesync.routes.sync import to_http_error
from storesync.systems.sync_scheduler import SyncScheduler

router = APIRouter()

@router.put("")
async def save_schedule(
    body: ScheduleRequest,
    sync_scheduler: SyncScheduler = Depends(get_sync_scheduler),
    token: str = Depends(verify_token)
):
    """Create or replace the schedule of a connection"""
    try:
        schedule = await sync_scheduler.create_or_update_schedule(body)
        return {
            "status": "success",
            "schedule": schedule.model_dump(mode='json'),
            "cron": schedule.rule.cron_expression()
        }
    except Exception as e:
        raise to_http_error(e)

@router.get("")
async def list_schedules(
    sync_scheduler: SyncScheduler = Depends(get_sync_scheduler),
    token: str = Depends(verify_token)
):
    """Enabled schedules"""
    try:
        schedules = await sync_scheduler.list_schedules()
        return {"schedules": [schedule.model_dump(mode='json') for schedule in schedules]}
    except Exception as e:
        raise to_http_error(e)

@router.get("/{connection_id}")
async def get_schedule(
    connection_id: str,
    sync_scheduler: SyncScheduler = Depends(get_sync_scheduler),
    token: str = Depends(verify_token)
):
    try:
        schedule = await sync_scheduler.get_schedule(connection_id)
        return {"schedule": schedule.model_dump(mode='json')}
    except Exception as e:
        raise to_http_error(e)

@router.post("/{schedule_id}/toggle")
async def toggle_schedule(
    schedule_id: int,
    body: ToggleRequest,
    sync_scheduler: SyncScheduler = Depends(get_sync_scheduler),
    token: str = Depends(verify_token)
):
    try:
        schedule = await sync_scheduler.toggle_schedule(schedule_id, body.enabled)
        return {"status": "success", "schedule": schedule.model_dump(mode='json')}
    except Exception as e:
        raise to_http_error(e)

@router.delete("/{schedule_id}")
async def delete_schedule(
    schedule_id: int,
    sync_scheduler: SyncScheduler = Depends(get_sync_scheduler),
    token: str = Depends(verify_token)
):
    try:
        await sync_scheduler.delete_schedule(schedule_id)
        return {"status": "success", "message": f"Schedule {schedule_id} deleted"}
    except Exception as e:
        raise to_http_error(e)

@router.post("/connections/{connection_id}/run")
async def run_schedule_now(
    connection_id: str,
    background_tasks: BackgroundTasks,
    sync_scheduler: SyncScheduler = Depends(get_sync_scheduler),
    token: str = Depends(verify_token)
):
    """Run a connection's scheduled sync immediately, outside its recurrence"""
    try:
        schedule = await sync_scheduler.get_schedule(connection_id)
        run = await sync_scheduler.run_schedule_now(connection_id)
        background_tasks.add_task(sync_scheduler.finish_run, schedule.id, run)
        return {
            "status": "success",
            "message": "Scheduled sync started",
            "run_id": run.id
        }
    except Exception as e:
        raise to_http_error(e)
