# src/processors/shop/page_processor.py
from typing import Dict, Any
from storesync.api.queries import PAGES_QUERY, PAGE_INDEX_QUERY, PAGE_CREATE, PAGE_UPDATE
from storesync.api.shop_api import nodes
from storesync.processors.base_processor import BaseProcessor, StageSummary, UpsertResult, ensure_no_user_errors
from storesync.utils.constants import ResourceType

class PageProcessor(BaseProcessor):
    resource_type = ResourceType.PAGE
    source_query = PAGES_QUERY
    source_path = 'pages'
    target_query = PAGE_INDEX_QUERY
    target_path = 'pages'

    @staticmethod
    def page_input(item: Dict[str, Any]) -> Dict[str, Any]:
        data = {
            'title': item.get('title'),
            'handle': item.get('handle'),
            'body': item.get('body'),
            'isPublished': item.get('isPublished'),
            'templateSuffix': item.get('templateSuffix'),
        }
        return {name: value for name, value in data.items() if value is not None}

    async def create(self, item: Dict[str, Any]) -> UpsertResult:
        payload = await self.target_api.mutate(PAGE_CREATE, {'page': self.page_input(item)}, 'pageCreate')
        ensure_no_user_errors(payload, f"pageCreate {item.get('handle')}")
        return UpsertResult(payload['page'], created=True)

    async def update(self, item: Dict[str, Any], target: Dict[str, Any]) -> UpsertResult:
        payload = await self.target_api.mutate(
            PAGE_UPDATE,
            {'id': target['id'], 'page': self.page_input(item)},
            'pageUpdate'
        )
        ensure_no_user_errors(payload, f"pageUpdate {item.get('handle')}")
        return UpsertResult(dict(target, **(payload['page'] or {})))

    async def after_upsert(
        self,
        item: Dict[str, Any],
        target: Dict[str, Any],
        created: bool,
        summary: StageSummary
    ) -> None:
        if self.context.metafields is not None:
            await self.context.metafields.sync(
                'PAGE',
                item['id'],
                target['id'],
                nodes(item.get('metafields')),
                nodes(target.get('metafields')),
                summary
            )
