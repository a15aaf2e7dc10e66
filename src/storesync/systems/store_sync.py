# src/store_sync.py
from datetime import datetime
from typing import Dict, Any, List, Optional, Callable
import pytz
from storesync.api.shop_api import ShopAPI
from storesync.decorators.process_lock import ProcessLock, ProcessMode
from storesync.decorators.retry import Retry, RetryConfig
from storesync.models.sync import SyncRun
from storesync.processors.attributes import MetafieldSync
from storesync.processors.definitions import MetaobjectDefinitionResolver, MetafieldDefinitionResolver
from storesync.processors.inventory import LocationMapper, InventoryReconciler
from storesync.processors.shop import (
    LocationProcessor,
    FileProcessor,
    MetaobjectProcessor,
    ProductProcessor,
    CollectionProcessor,
    PageProcessor,
    NavigationProcessor,
    MarketProcessor,
    SearchDiscoveryProcessor,
)
from storesync.processors.translator import ReferenceTranslator
from storesync.repositories.connection import ConnectionRepository
from storesync.repositories.mapping import MappingRepository
from storesync.repositories.sync_run import SyncRunRepository
from storesync.systems.run_context import RunContext
from storesync.utils.constants import SyncType, SYNC_ORDER, RunStatus
from storesync.utils.exceptions import (
    AuthError,
    ValidationError,
    BusinessError,
    DuplicateError,
    ResourceNotFound,
    SyncAbortedError,
)
from storesync.utils.vault import CredentialVault

class StoreSync:
    """
    Runs sync jobs for store connections: one run at a time per connection,
    stages in a fixed order, progress written to the run record after each stage.
    """

    processor_mapping = {
        SyncType.LOCATIONS: LocationProcessor,
        SyncType.METAOBJECT_DEFINITIONS: MetaobjectDefinitionResolver,
        SyncType.METAFIELD_DEFINITIONS: MetafieldDefinitionResolver,
        SyncType.FILES: FileProcessor,
        SyncType.METAOBJECTS: MetaobjectProcessor,
        SyncType.PRODUCTS: ProductProcessor,
        SyncType.COLLECTIONS: CollectionProcessor,
        SyncType.PAGES: PageProcessor,
        SyncType.NAVIGATION: NavigationProcessor,
        SyncType.MARKETS: MarketProcessor,
        SyncType.SEARCH_DISCOVERY: SearchDiscoveryProcessor,
    }

    def __init__(
        self,
        db: 'Database', # type: ignore
        config: 'Config', # type: ignore
        logger: 'CustomLogger', # type: ignore
        connection_repository: Optional[ConnectionRepository] = None,
        mapping_repository: Optional[MappingRepository] = None,
        sync_run_repository: Optional[SyncRunRepository] = None,
        vault: Optional[CredentialVault] = None,
        api_factory: Optional[Callable[[str, str], ShopAPI]] = None,
        retry: Optional[Retry] = None
    ) -> None:
        self.db = db
        self.config = config
        self.logger = logger

        self.connection_repository = connection_repository or ConnectionRepository(db, config)
        self.mapping_repository = mapping_repository or MappingRepository(db, config, logger)
        self.sync_run_repository = sync_run_repository or SyncRunRepository(db, config)
        self.vault = vault or CredentialVault(config.ENCRYPTION_KEY, logger)
        self.api_factory = api_factory or self._create_api

        self.retry = retry or Retry(
            retry_config=RetryConfig(
                max_attempts=config.MAX_ATTEMPTS,
                initial_delay=config.RETRY_DELAY,
                max_delay=config.RETRY_MAX_DELAY
            ),
            retry_on=(Exception,),
            never_retry=(AuthError, ValidationError, BusinessError),
            logger=logger
        )
        self.process_lock = ProcessLock(config, logger)

    def _create_api(self, domain: str, access_token: str) -> ShopAPI:
        return ShopAPI(
            domain,
            access_token,
            self.logger,
            api_version=self.config.SHOP_API_VERSION,
            timeout=self.config.API_TIMEOUT,
            rate_limit=self.config.API_RATE_LIMIT,
            page_pause=self.config.PAGE_PAUSE
        )

    @staticmethod
    def normalize_types(resource_types: List[str]) -> List[SyncType]:
        """Validate requested stages and return them in execution order"""
        if not resource_types:
            raise ValidationError("At least one resource type is required")
        requested = set()
        for value in resource_types:
            try:
                requested.add(SyncType(value))
            except ValueError:
                raise ValidationError(
                    f"Unknown resource type: {value}",
                    context={'allowed': [sync_type.value for sync_type in SyncType]}
                )
        return [sync_type for sync_type in SYNC_ORDER if sync_type in requested]

    async def start_sync(self, connection_id: str, resource_types: List[str], trigger: str = 'manual') -> SyncRun:
        """Claim the connection and create the run record. Raises DuplicateError if a run is in flight."""
        stages = self.normalize_types(resource_types)

        if not await self.process_lock.try_acquire(connection_id, ProcessMode.BACKGROUND):
            raise DuplicateError(
                f"A sync is already running for connection {connection_id}",
                context={'connection_id': connection_id}
            )

        try:
            run = await self.sync_run_repository.create(
                connection_id,
                [stage.value for stage in stages],
                trigger
            )
        except Exception:
            await self.process_lock.release(connection_id)
            raise

        self.logger.info(f"Sync run {run.id} started for {connection_id}: {', '.join(run.resource_types)}")
        return run

    async def execute(self, run: SyncRun) -> SyncRun:
        """Run every requested stage of a started run; the connection lock is released at the end"""
        started = datetime.now(pytz.UTC)
        summary: Dict[str, Any] = {}
        context: Optional[RunContext] = None
        logs: List[Dict[str, Any]] = []
        status = RunStatus.SUCCESS
        error: Optional[BaseException] = None

        try:
            context = await self._build_context(run)
            logs = context.logs
            stages = self.normalize_types(run.resource_types)

            await context.source_api.check_connection()

            if SyncType.PRODUCTS in stages or SyncType.LOCATIONS in stages:
                mapper = LocationMapper(context, self.mapping_repository, self.logger)
                summary['location_map'] = await mapper.build()

            for stage in stages:
                context.log('info', f"Stage {stage.value} started")
                processor = self._create_processor(stage, context)
                result = await processor.process()
                summary[stage.value] = result.to_dict()
                if result.has_failures:
                    status = RunStatus.PARTIAL
                await self.sync_run_repository.update(run.id, summary=summary, logs=logs)

        except Exception as e:
            error = e
            status = RunStatus.FAILED
            message = getattr(e, 'message', None) or str(e)
            summary['error'] = message
            if context is not None:
                context.log('error', f"Sync aborted: {message}")
            else:
                logs.append({'timestamp': datetime.now(pytz.UTC).isoformat(), 'level': 'error', 'message': message})
                self.logger.error(f"Sync run {run.id} aborted: {message}")

        finally:
            if context is not None:
                await context.close()
            await self.process_lock.release(run.connection_id, error=error)

        summary['duration'] = round((datetime.now(pytz.UTC) - started).total_seconds(), 2)
        finished = await self.sync_run_repository.update(
            run.id,
            status=status,
            summary=summary,
            logs=logs,
            completed=True
        )
        self.logger.info(f"Sync run {run.id} finished with status {status.value}")
        return finished or run

    async def run_sync(self, connection_id: str, resource_types: List[str], trigger: str = 'manual') -> SyncRun:
        run = await self.start_sync(connection_id, resource_types, trigger)
        return await self.execute(run)

    async def _build_context(self, run: SyncRun) -> RunContext:
        connection = await self.connection_repository.get(run.connection_id)
        if not connection:
            raise SyncAbortedError(f"Store connection {run.connection_id} not found")
        if not connection.is_active:
            raise SyncAbortedError(f"Store connection {run.connection_id} is inactive")

        token = self.vault.decrypt(connection.encrypted_token)
        if not token:
            raise SyncAbortedError("Cannot decrypt the source store credential")
        if not self.config.TARGET_ACCESS_TOKEN:
            raise SyncAbortedError("Target access token is not configured")

        context = RunContext(
            connection_id=connection.id,
            run_id=run.id,
            source_api=self.api_factory(connection.store_domain, token),
            target_api=self.api_factory(connection.shop, self.config.TARGET_ACCESS_TOKEN),
            logger=self.logger
        )
        context.translator = ReferenceTranslator(self.mapping_repository, self.logger)
        context.metafields = MetafieldSync(
            context,
            self.retry,
            self.logger,
            batch_size=self.config.METAFIELDS_BATCH_SIZE or 25
        )
        context.inventory = InventoryReconciler(context, self.retry, self.logger)
        context.log('info', f"Syncing {connection.store_domain} -> {connection.shop}")
        return context

    def _create_processor(self, stage: SyncType, context: RunContext):
        processor_class = self.processor_mapping[stage]
        return processor_class(
            config=self.config,
            logger=self.logger,
            retry=self.retry,
            mapping_repository=self.mapping_repository,
            context=context
        )

    async def get_run_status(self, run_id: int) -> Dict[str, Any]:
        run = await self.sync_run_repository.get(run_id)
        if not run:
            raise ResourceNotFound(f"Sync run {run_id} not found")
        return run.to_status()

    async def list_runs(self, connection_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        runs = await self.sync_run_repository.list_for_connection(connection_id, limit)
        return [run.to_status() for run in runs]

    async def recover_interrupted_runs(self) -> List[int]:
        """Fail runs left 'running' by a process that stopped mid-sync"""
        run_ids = await self.sync_run_repository.fail_interrupted()
        if run_ids:
            self.logger.warning(f"Marked {len(run_ids)} interrupted sync run(s) as failed: {run_ids}")
        return run_ids

    def is_running(self, connection_id: str) -> bool:
        return self.process_lock.is_running(connection_id)

    async def cleanup(self):
        """Cleanup resources properly"""
        self.logger.info("Store sync service stopped")
