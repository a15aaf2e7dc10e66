# src/processors/shop/collection_processor.py
from typing import Dict, Any, List
from storesync.api.queries import (
    COLLECTIONS_QUERY,
    COLLECTION_INDEX_QUERY,
    COLLECTION_PRODUCTS_QUERY,
    COLLECTION_CREATE,
    COLLECTION_UPDATE,
    COLLECTION_ADD_PRODUCTS,
)
from storesync.api.shop_api import nodes, format_user_errors
from storesync.processors.attributes import chunks
from storesync.processors.base_processor import BaseProcessor, StageSummary, UpsertResult, ensure_no_user_errors
from storesync.utils.constants import ResourceType

MEMBERSHIP_BATCH_SIZE = 250

class CollectionProcessor(BaseProcessor):
    resource_type = ResourceType.COLLECTION
    source_query = COLLECTIONS_QUERY
    source_path = 'collections'
    target_query = COLLECTION_INDEX_QUERY
    target_path = 'collections'
    publishable = True

    def collection_input(self, item: Dict[str, Any]) -> Dict[str, Any]:
        data = {
            'title': item.get('title'),
            'handle': item.get('handle'),
            'descriptionHtml': item.get('descriptionHtml'),
            'sortOrder': item.get('sortOrder'),
            'templateSuffix': item.get('templateSuffix'),
        }
        data = {name: value for name, value in data.items() if value is not None}

        seo = item.get('seo') or {}
        if seo.get('title') or seo.get('description'):
            data['seo'] = {'title': seo.get('title'), 'description': seo.get('description')}

        image = item.get('image') or {}
        if image.get('url'):
            data['image'] = {'src': image['url'], 'altText': image.get('altText')}

        rule_set = item.get('ruleSet')
        if rule_set and rule_set.get('rules'):
            data['ruleSet'] = {
                'appliedDisjunctively': bool(rule_set.get('appliedDisjunctively')),
                'rules': [
                    {'column': rule['column'], 'relation': rule['relation'], 'condition': rule['condition']}
                    for rule in rule_set['rules']
                ],
            }
        return data

    async def create(self, item: Dict[str, Any]) -> UpsertResult:
        payload = await self.target_api.mutate(
            COLLECTION_CREATE,
            {'input': self.collection_input(item)},
            'collectionCreate'
        )
        ensure_no_user_errors(payload, f"collectionCreate {item.get('handle')}")
        return UpsertResult(payload['collection'], created=True)

    async def update(self, item: Dict[str, Any], target: Dict[str, Any]) -> UpsertResult:
        data = self.collection_input(item)
        data['id'] = target['id']
        # Smart/manual type cannot change after creation
        data.pop('ruleSet', None)
        payload = await self.target_api.mutate(COLLECTION_UPDATE, {'input': data}, 'collectionUpdate')
        ensure_no_user_errors(payload, f"collectionUpdate {item.get('handle')}")
        collection = payload['collection'] or {}
        return UpsertResult(dict(target, **collection))

    async def after_upsert(
        self,
        item: Dict[str, Any],
        target: Dict[str, Any],
        created: bool,
        summary: StageSummary
    ) -> None:
        if not (item.get('ruleSet') or {}).get('rules'):
            await self.sync_membership(item, target, summary)

        await self.publish(target['id'], summary)

        if self.context.metafields is not None:
            await self.context.metafields.sync(
                'COLLECTION',
                item['id'],
                target['id'],
                nodes(item.get('metafields')),
                nodes(target.get('metafields')),
                summary
            )

    async def collection_products(self, api, collection_id: str) -> List[str]:
        products = await api.fetch_all(
            COLLECTION_PRODUCTS_QUERY,
            'collection.products',
            {'id': collection_id},
            page_size=self.page_size
        )
        return [product['id'] for product in products]

    async def sync_membership(self, item: Dict[str, Any], target: Dict[str, Any], summary: StageSummary) -> None:
        """Manual collections: add the mapped source products the target collection lacks"""
        source_products = await self.collection_products(self.source_api, item['id'])
        if not source_products:
            return

        present = set(await self.collection_products(self.target_api, target['id']))
        missing = []
        for product_id in source_products:
            translated = await self.context.translator.translate(
                self.connection_id,
                product_id,
                context=f"collection:{item.get('handle')} membership",
                found_in='collection'
            )
            if not translated:
                summary.increment('membership_unmapped')
                continue
            if translated not in present:
                missing.append(translated)

        for batch in chunks(missing, MEMBERSHIP_BATCH_SIZE):
            result = await self.retry.run(
                self.target_api.mutate,
                COLLECTION_ADD_PRODUCTS,
                {'id': target['id'], 'productIds': batch},
                'collectionAddProducts'
            )
            if not result.success:
                summary.increment('membership_failed', len(batch))
                summary.add_error(self.label(item), f"Adding products failed: {result.error_message}")
            elif result.value['userErrors']:
                summary.increment('membership_failed', len(batch))
                summary.add_error(self.label(item), format_user_errors(result.value['userErrors']))
            else:
                summary.increment('membership_added', len(batch))
