# src/processors/shop/file_processor.py
from typing import Dict, Any, List, Hashable, Optional
from storesync.api.queries import FILES_QUERY, FILE_CREATE, FILE_UPDATE
from storesync.api.shop_api import index_user_errors
from storesync.processors.base_processor import BaseProcessor, StageSummary, UpsertResult, ensure_no_user_errors
from storesync.processors.matchers import file_key, file_url
from storesync.utils.constants import ResourceType

CONTENT_TYPES = {
    'MediaImage': 'IMAGE',
    'Video': 'VIDEO',
    'GenericFile': 'FILE',
}

class FileProcessor(BaseProcessor):
    """
    Files match on the filename of their storage URL. Missing files are created
    with one fileCreate call per source page; a rejected file never fails its
    siblings.
    """

    resource_type = ResourceType.FILE
    source_query = FILES_QUERY
    source_path = 'files'
    target_query = FILES_QUERY
    target_path = 'files'
    match_key_name = 'filename'

    def natural_key(self, item: Dict[str, Any]):
        return file_key(item)

    def label(self, item: Dict[str, Any]) -> str:
        return str(file_key(item) or item.get('id'))

    def should_skip(self, item: Dict[str, Any]) -> Optional[str]:
        if item.get('fileStatus') == 'FAILED':
            return 'source_file_failed'
        return None

    @staticmethod
    def file_input(item: Dict[str, Any]) -> Dict[str, Any]:
        return {
            'originalSource': file_url(item),
            'alt': item.get('alt') or '',
            'contentType': CONTENT_TYPES.get(item.get('__typename'), 'FILE'),
        }

    async def update(self, item: Dict[str, Any], target: Dict[str, Any]) -> UpsertResult:
        if (item.get('alt') or '') == (target.get('alt') or ''):
            return UpsertResult(target, skipped='unchanged')
        payload = await self.target_api.mutate(
            FILE_UPDATE,
            {'files': [{'id': target['id'], 'alt': item.get('alt') or ''}]},
            'fileUpdate'
        )
        ensure_no_user_errors(payload, f"fileUpdate {self.label(item)}")
        return UpsertResult(dict(target, alt=item.get('alt')))

    async def create(self, item: Dict[str, Any]) -> UpsertResult:
        created = await self.create_many([item])
        return created[0]

    async def create_many(self, items: List[Dict[str, Any]]) -> List[UpsertResult]:
        """
        One fileCreate for all items. Returns one UpsertResult per item, in
        order; rejected items carry entity None and their error in skipped.
        """
        payload = await self.target_api.mutate(
            FILE_CREATE,
            {'files': [self.file_input(item) for item in items]},
            'fileCreate'
        )
        by_index, general = index_user_errors(payload['userErrors'], 'files')
        if general and not by_index:
            ensure_no_user_errors(payload, 'fileCreate')

        created = iter(payload.get('files') or [])
        results = []
        for position, item in enumerate(items):
            if position in by_index:
                results.append(UpsertResult(None, skipped=', '.join(by_index[position])))
                continue
            entity = next(created, None)
            if entity is None:
                results.append(UpsertResult(None, skipped='File was not returned by the target'))
            else:
                results.append(UpsertResult(entity, created=True))
        return results

    async def process_items(
        self,
        items: List[Dict[str, Any]],
        index: Dict[Hashable, Dict[str, Any]],
        summary: StageSummary
    ) -> None:
        pending = []
        for item in items:
            key = self.natural_key(item)
            if key is None or self.should_skip(item) or await self.find_target(item, key, index):
                await self.process_item(item, index, summary)
            elif key in {self.natural_key(other) for other in pending}:
                summary.skipped += 1
                summary.increment('duplicate_filename')
            else:
                pending.append(item)

        if not pending:
            return

        result = await self.retry.run(self.create_many, pending)
        if not result.success:
            for item in pending:
                await self.handle_failed_item(item, result.error_message, summary)
            return

        for item, upsert in zip(pending, result.value):
            if upsert.entity is None:
                await self.handle_failed_item(item, upsert.skipped, summary)
                continue
            key = self.natural_key(item)
            index[key] = dict(upsert.entity, url=file_url(item))
            self._targets_by_id[upsert.entity['id']] = index[key]
            summary.created += 1
            await self._save_mapping(item, upsert.entity, key, summary)
