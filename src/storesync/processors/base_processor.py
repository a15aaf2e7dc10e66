import asyncio
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Hashable, AsyncIterator
from storesync.api.queries import PUBLICATIONS_QUERY, PUBLISHABLE_PUBLISH
from storesync.api.shop_api import Page, format_user_errors
from storesync.processors.matchers import handle_key, build_index
from storesync.utils.constants import ResourceType
from storesync.utils.exceptions import ValidationError
from storesync.utils.gid import extract_id

MAX_STORED_ERRORS = 100

@dataclass
class UpsertResult:
    """Outcome of one create or update. skipped carries a reason when nothing was written."""
    entity: Optional[Dict[str, Any]]
    created: bool = False
    skipped: Optional[str] = None

@dataclass
class StageSummary:
    created: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    counters: Dict[str, int] = field(default_factory=dict)
    errors: List[Dict[str, Any]] = field(default_factory=list)

    def increment(self, name: str, amount: int = 1) -> None:
        self.counters[name] = self.counters.get(name, 0) + amount

    def add_error(self, label: str, message: str, **extra) -> None:
        if len(self.errors) < MAX_STORED_ERRORS:
            self.errors.append({'item': label, 'error': message, **extra})
        else:
            self.increment('errors_truncated')

    @property
    def has_failures(self) -> bool:
        return self.failed > 0 or bool(self.errors)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'created': self.created,
            'updated': self.updated,
            'skipped': self.skipped,
            'failed': self.failed,
            **self.counters,
            'errors': self.errors,
        }

def match_value(key: Hashable) -> str:
    if isinstance(key, tuple):
        return '|'.join(str(part) for part in key)
    return str(key)

def ensure_no_user_errors(payload: Dict[str, Any], label: str) -> None:
    """Single-entity mutations: user errors fail the entity"""
    if payload.get('userErrors'):
        raise ValidationError(
            f"{label}: {format_user_errors(payload['userErrors'])}",
            context={'user_errors': payload['userErrors']}
        )

class BaseProcessor:
    """
    Create-or-update engine for one resource kind.

    Subclasses provide the read documents, the natural key and the write hooks.
    The engine loads the full target index once, then walks the source pages and
    for every entity decides between update (natural key or mapping match) and
    create, retrying each write and recording a mapping for every success.
    """

    REQUIRED_DEPENDENCIES = {
        'config': 'Configuration settings',
        'logger': 'Custom logger',
        'retry': 'Retry service',
        'mapping_repository': 'Mapping repository',
        'context': 'Run context (APIs, caches, run log)',
    }

    resource_type: ResourceType = None
    source_query: str = None
    source_path: str = None
    target_query: str = None
    target_path: str = None
    match_key_name = 'handle'
    publishable = False

    def __init__(self, **kwargs):
        """Initialize processor with dependencies and configuration."""
        self._validate_dependencies(kwargs)
        for key, value in kwargs.items():
            setattr(self, key, value)
        self.processor_type = self.__class__.__name__
        self.page_size = self.config.PAGE_SIZE or 50
        self.item_pause = self.config.ITEM_PAUSE or 0
        self._targets_by_id: Dict[str, Dict[str, Any]] = {}

    def _validate_dependencies(self, dependencies: dict) -> None:
        """Validate that all required dependencies are provided."""
        missing_deps = [dep for dep in self.REQUIRED_DEPENDENCIES if dep not in dependencies]
        if missing_deps:
            missing_desc = [f"- {dep}: {self.REQUIRED_DEPENDENCIES[dep]}" for dep in missing_deps]
            raise ValueError("Missing required dependencies:\n" + "\n".join(missing_desc))

    @property
    def source_api(self):
        return self.context.source_api

    @property
    def target_api(self):
        return self.context.target_api

    @property
    def connection_id(self) -> str:
        return self.context.connection_id

    def natural_key(self, item: Dict[str, Any]) -> Optional[Hashable]:
        return handle_key(item)

    def label(self, item: Dict[str, Any]) -> str:
        return str(item.get('handle') or item.get('title') or item.get('name') or item.get('id'))

    async def get_all(self) -> AsyncIterator[Page]:
        """Source entities, page by page"""
        async for page in self.source_api.paginate(
            self.source_query,
            self.source_path,
            page_size=self.page_size
        ):
            yield page

    async def get_targets(self) -> List[Dict[str, Any]]:
        return await self.target_api.fetch_all(self.target_query, self.target_path, page_size=self.page_size)

    async def load_target_index(self) -> Dict[Hashable, Dict[str, Any]]:
        """Every target page is read before matching starts"""
        targets = await self.get_targets()
        self._targets_by_id = {target['id']: target for target in targets if target.get('id')}
        return build_index(targets, self.natural_key)

    async def process(self) -> StageSummary:
        summary = StageSummary()
        index = await self.load_target_index()
        self.context.log('info', f"{self.processor_type}: {len(self._targets_by_id)} existing target records")

        async for page in self.get_all():
            self.logger.debug(f"{self.processor_type}: page {page.number} with {len(page.items)} items")
            await self.process_items(page.items, index, summary)

        self.context.log(
            'info',
            f"{self.processor_type} finished: {summary.created} created, {summary.updated} updated, "
            f"{summary.skipped} skipped, {summary.failed} failed"
        )
        return summary

    async def process_items(
        self,
        items: List[Dict[str, Any]],
        index: Dict[Hashable, Dict[str, Any]],
        summary: StageSummary
    ) -> None:
        for item in items:
            await self.process_item(item, index, summary)
            if self.item_pause:
                await asyncio.sleep(self.item_pause)

    async def find_target(
        self,
        item: Dict[str, Any],
        key: Hashable,
        index: Dict[Hashable, Dict[str, Any]]
    ) -> Optional[Dict[str, Any]]:
        """Natural key first, then an existing mapping whose target is still present"""
        target = index.get(key)
        if target:
            return target

        mapping = await self.mapping_repository.get_by_source_id(
            self.connection_id,
            self.resource_type,
            extract_id(item.get('id')) or item.get('id')
        )
        if mapping:
            return self._targets_by_id.get(mapping.target_gid)
        return None

    async def process_item(
        self,
        item: Dict[str, Any],
        index: Dict[Hashable, Dict[str, Any]],
        summary: StageSummary
    ) -> Optional[UpsertResult]:
        label = self.label(item)
        skip_reason = self.should_skip(item)
        if skip_reason:
            summary.skipped += 1
            summary.increment(skip_reason)
            self.logger.debug(f"{self.processor_type}: skipping {label} ({skip_reason})")
            return None

        key = self.natural_key(item)
        if key is None:
            summary.skipped += 1
            summary.increment('no_natural_key')
            self.logger.warning(f"{self.processor_type}: {label} has no natural key, skipping")
            return None

        target = await self.find_target(item, key, index)
        if target:
            result = await self.retry.run(self.update, item, target)
        else:
            result = await self.retry.run(self.create, item)

        if not result.success:
            await self.handle_failed_item(item, result.error_message, summary)
            return None

        upsert: UpsertResult = result.value
        if upsert.entity is None:
            summary.skipped += 1
            summary.increment(upsert.skipped or 'skipped')
            return upsert

        index[key] = upsert.entity
        self._targets_by_id[upsert.entity['id']] = upsert.entity

        if upsert.skipped:
            summary.skipped += 1
            summary.increment(upsert.skipped)
        elif upsert.created:
            summary.created += 1
        else:
            summary.updated += 1

        await self._save_mapping(item, upsert.entity, key, summary)

        try:
            await self.after_upsert(item, upsert.entity, upsert.created, summary)
        except Exception as e:
            message = getattr(e, 'message', str(e))
            summary.add_error(label, f"Dependent records failed: {message}")
            self.context.log('error', f"{self.processor_type}: dependent records of {label} failed: {message}")

        return upsert

    def should_skip(self, item: Dict[str, Any]) -> Optional[str]:
        """Reason to leave an entity alone, or None"""
        return None

    async def create(self, item: Dict[str, Any]) -> UpsertResult:
        raise NotImplementedError("Subclasses must implement create method")

    async def update(self, item: Dict[str, Any], target: Dict[str, Any]) -> UpsertResult:
        raise NotImplementedError("Subclasses must implement update method")

    async def after_upsert(
        self,
        item: Dict[str, Any],
        target: Dict[str, Any],
        created: bool,
        summary: StageSummary
    ) -> None:
        """Dependent sub-entities the create/update call does not populate"""
        if self.publishable:
            await self.publish(target['id'], summary)

    async def _save_mapping(
        self,
        item: Dict[str, Any],
        target: Dict[str, Any],
        key: Hashable,
        summary: StageSummary,
        resource_type: Optional[ResourceType] = None,
        match_key: Optional[str] = None
    ) -> None:
        try:
            await self.mapping_repository.save_mapping(
                self.connection_id,
                resource_type or self.resource_type,
                {
                    'source_id': extract_id(item['id']) or item['id'],
                    'target_id': extract_id(target['id']) or target['id'],
                    'source_gid': item['id'],
                    'target_gid': target['id'],
                    'match_key': match_key or self.match_key_name,
                    'match_value': match_value(key),
                    'sync_run_id': self.context.run_id,
                    'title': item.get('title') or item.get('name') or item.get('displayName'),
                }
            )
        except Exception as e:
            message = getattr(e, 'message', str(e))
            summary.increment('mappings_failed')
            summary.add_error(self.label(item), f"Error saving mapping: {message}")
            self.logger.error(f"Error saving mapping for {item.get('id')}: {message}")

    async def handle_failed_item(self, item: Dict[str, Any], error: str, summary: StageSummary) -> None:
        """Handle failed item processing."""
        label = self.label(item)
        summary.failed += 1
        summary.add_error(label, error, source_id=item.get('id'))
        self.context.log('error', f"{self.processor_type}: {label} failed: {error}")

    async def get_publications(self) -> List[Dict[str, Any]]:
        """Sales channels of the target, read once per run"""
        if self.context.publications is None:
            self.context.publications = await self.target_api.fetch_all(PUBLICATIONS_QUERY, 'publications')
        return self.context.publications

    async def publish(self, target_id: str, summary: StageSummary) -> None:
        publications = await self.get_publications()
        if not publications:
            return
        result = await self.retry.run(
            self.target_api.mutate,
            PUBLISHABLE_PUBLISH,
            {'id': target_id, 'input': [{'publicationId': publication['id']} for publication in publications]},
            'publishablePublish'
        )
        if not result.success:
            summary.increment('publish_failed')
            summary.add_error(target_id, f"Publish failed: {result.error_message}")
        elif result.value['userErrors']:
            summary.increment('publish_failed')
            summary.add_error(target_id, f"Publish failed: {format_user_errors(result.value['userErrors'])}")
        else:
            summary.increment('published')
