import uvicorn
from datetime import datetime
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from storesync.config import config
from storesync.utils.logger import logger
from storesync.utils.database import Database
from storesync.utils.exceptions import DatabaseError
from storesync.utils.scheduler import TaskScheduler
from storesync.routes.sync import router as sync_router
from storesync.routes.schedule import router as schedule_router
from storesync.systems.store_sync import StoreSync
from storesync.systems.sync_scheduler import SyncScheduler

APP_NAME = "Store Sync"

app = FastAPI(
    title=APP_NAME,
    description="Copies catalog and content from a source store into a target store",
    docs_url="/docs" if config.DEBUG_MODE else None,
    redoc_url="/redoc" if config.DEBUG_MODE else None
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(sync_router, prefix="/sync", tags=["Sync"])
app.include_router(schedule_router, prefix="/schedules", tags=["Schedules"])

def _now() -> str:
    return datetime.now().isoformat()

@app.get("/", tags=["Root"])
async def root():
    return {
        "app": APP_NAME,
        "status": "running",
        "environment": "Dev" if config.DEBUG_MODE else "Production",
        "timestamp": _now()
    }

@app.get("/health", tags=["Health"])
async def health_check():
    """Database reachability and scheduler state"""
    db = getattr(app.state, 'db', None)
    db_ok = bool(db) and await db.health_check()
    task_scheduler = TaskScheduler()

    return {
        "status": "healthy" if db_ok else "unhealthy",
        "checks": {
            "database": "connected" if db_ok else "disconnected",
            "scheduler": "running" if task_scheduler.running else "stopped"
        },
        "scheduled_jobs": task_scheduler.job_states(),
        "timestamp": _now()
    }

@app.on_event("startup")
async def startup_event():
    logger.info(f"Starting {APP_NAME} (API version {config.SHOP_API_VERSION})")

    db = Database(config=config, logger=logger)
    await db.initialize()
    if not await db.health_check():
        raise DatabaseError("Database is not answering after initialization")
    app.state.db = db

    store_sync = StoreSync(db=db, config=config, logger=logger)
    sync_scheduler = SyncScheduler(
        db=db,
        config=config,
        logger=logger,
        store_sync=store_sync,
        task_scheduler=TaskScheduler()
    )
    app.state.store_sync = store_sync
    app.state.sync_scheduler = sync_scheduler

    await store_sync.recover_interrupted_runs()

    if config.SCHEDULER_ENABLED:
        await sync_scheduler.init_schedules()
        sync_scheduler.task_scheduler.start()
    else:
        logger.info("SCHEDULER_ENABLED is off; schedules will not fire")

    logger.info("Startup complete")

@app.on_event("shutdown")
async def shutdown_event():
    # Stop firing new runs before closing the resources they use
    sync_scheduler = getattr(app.state, 'sync_scheduler', None)
    if sync_scheduler:
        sync_scheduler.shutdown()

    store_sync = getattr(app.state, 'store_sync', None)
    if store_sync:
        await store_sync.cleanup()

    db = getattr(app.state, 'db', None)
    if db:
        await db.close()

    logger.info("Shutdown complete")

def run_app():
    uvicorn.run(
        "storesync.main:app",
        host=config.APP_HOST,
        port=config.APP_PORT,
        reload=config.DEBUG_MODE,
        log_level="debug" if config.DEBUG_MODE else "info"
    )

if __name__ == "__main__":
    run_app()
