# src/processors/shop/product_processor.py
from typing import Dict, Any, List, Optional
from storesync.api.queries import (
    PRODUCTS_QUERY,
    PRODUCT_INDEX_QUERY,
    PRODUCT_DETAIL_QUERY,
    PRODUCT_CREATE,
    PRODUCT_UPDATE,
    VARIANTS_BULK_CREATE,
    VARIANTS_BULK_UPDATE,
    PRODUCT_CREATE_MEDIA,
)
from storesync.api.shop_api import nodes, index_user_errors
from storesync.processors.base_processor import BaseProcessor, StageSummary, UpsertResult, ensure_no_user_errors
from storesync.processors.matchers import match_variants, variant_key
from storesync.utils.constants import ResourceType

PRODUCT_FIELDS = ('title', 'handle', 'descriptionHtml', 'productType', 'vendor', 'status', 'tags', 'templateSuffix')

class ProductProcessor(BaseProcessor):
    resource_type = ResourceType.PRODUCT
    source_query = PRODUCTS_QUERY
    source_path = 'products'
    target_query = PRODUCT_INDEX_QUERY
    target_path = 'products'
    publishable = True

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.page_size = self.config.PRODUCT_PAGE_SIZE or 5

    async def get_targets(self) -> List[Dict[str, Any]]:
        return await self.target_api.fetch_all(self.target_query, self.target_path, page_size=self.config.PAGE_SIZE or 50)

    def product_input(self, item: Dict[str, Any]) -> Dict[str, Any]:
        data = {name: item.get(name) for name in PRODUCT_FIELDS if item.get(name) is not None}
        seo = item.get('seo') or {}
        if seo.get('title') or seo.get('description'):
            data['seo'] = {'title': seo.get('title'), 'description': seo.get('description')}
        return data

    async def create(self, item: Dict[str, Any]) -> UpsertResult:
        data = self.product_input(item)
        options = [option for option in item.get('options') or [] if option.get('values')]
        if options:
            # The create call only builds the first variant; the rest follow in bulk
            data['productOptions'] = [
                {'name': option['name'], 'values': [{'name': value} for value in option['values']]}
                for option in options
            ]
        payload = await self.target_api.mutate(PRODUCT_CREATE, {'product': data}, 'productCreate')
        ensure_no_user_errors(payload, f"productCreate {item.get('handle')}")
        return UpsertResult(payload['product'], created=True)

    async def update(self, item: Dict[str, Any], target: Dict[str, Any]) -> UpsertResult:
        data = self.product_input(item)
        data['id'] = target['id']
        payload = await self.target_api.mutate(PRODUCT_UPDATE, {'product': data}, 'productUpdate')
        ensure_no_user_errors(payload, f"productUpdate {item.get('handle')}")
        return UpsertResult(payload['product'] or target)

    async def after_upsert(
        self,
        item: Dict[str, Any],
        target: Dict[str, Any],
        created: bool,
        summary: StageSummary
    ) -> None:
        detail = await self.target_api.execute(PRODUCT_DETAIL_QUERY, {'id': target['id']}, 'product') or {}
        pairs = await self.sync_variants(item, target, nodes(detail.get('variants')), summary)

        if self.context.location_map is not None and self.context.inventory is not None:
            for source_variant, target_variant in pairs:
                result = await self.context.inventory.reconcile(source_variant, target_variant)
                summary.increment('inventory_synced', result.synced)
                summary.increment('inventory_skipped', result.skipped)
                if result.failed:
                    summary.increment('inventory_failed', result.failed)
                    for failure in result.failures:
                        summary.add_error(
                            f"{self.label(item)} {source_variant.get('sku') or source_variant.get('title')}",
                            failure['error'],
                            location_id=failure['location_id']
                        )

        media_count = (detail.get('mediaCount') or {}).get('count', 0)
        if not media_count:
            await self.upload_media(item, target, summary)

        await self.publish(target['id'], summary)

        if self.context.metafields is not None:
            await self.context.metafields.sync(
                'PRODUCT',
                item['id'],
                target['id'],
                nodes(item.get('metafields')),
                nodes(detail.get('metafields')),
                summary
            )
            for source_variant, target_variant in pairs:
                await self.context.metafields.sync(
                    'PRODUCTVARIANT',
                    source_variant['id'],
                    target_variant['id'],
                    nodes(source_variant.get('metafields')),
                    nodes(target_variant.get('metafields')),
                    summary
                )

    @staticmethod
    def variant_input(variant: Dict[str, Any]) -> Dict[str, Any]:
        data = {
            'price': variant.get('price'),
            'compareAtPrice': variant.get('compareAtPrice'),
            'barcode': variant.get('barcode'),
            'taxable': variant.get('taxable'),
            'inventoryPolicy': variant.get('inventoryPolicy'),
        }
        data = {name: value for name, value in data.items() if value is not None}

        inventory_item = variant.get('inventoryItem') or {}
        item_input = {'sku': variant.get('sku')}
        if inventory_item.get('tracked') is not None:
            item_input['tracked'] = inventory_item['tracked']
        if inventory_item.get('requiresShipping') is not None:
            item_input['requiresShipping'] = inventory_item['requiresShipping']
        weight = (inventory_item.get('measurement') or {}).get('weight')
        if weight and weight.get('value') is not None:
            item_input['measurement'] = {'weight': {'value': weight['value'], 'unit': weight.get('unit')}}
        data['inventoryItem'] = {name: value for name, value in item_input.items() if value is not None}
        return data

    async def sync_variants(
        self,
        item: Dict[str, Any],
        target: Dict[str, Any],
        target_variants: List[Dict[str, Any]],
        summary: StageSummary
    ) -> List[tuple]:
        """
        Update matched variants and create the missing option combinations.
        Returns the (source, target) variant pairs that exist on the target.
        """
        source_variants = nodes(item.get('variants'))
        matched, unmatched = match_variants(source_variants, target_variants)
        pairs = []

        if matched:
            inputs = [dict(self.variant_input(source), id=existing['id']) for source, existing in matched]
            payload = await self._bulk(
                VARIANTS_BULK_UPDATE,
                {'productId': target['id'], 'variants': inputs, 'allowPartialUpdates': True},
                'productVariantsBulkUpdate',
                item,
                summary
            )
            if payload is not None:
                by_index, _ = index_user_errors(payload['userErrors'], 'variants')
                for position, (source, existing) in enumerate(matched):
                    if position in by_index:
                        summary.increment('variants_failed')
                        summary.add_error(self._variant_label(item, source), ', '.join(by_index[position]))
                    else:
                        summary.increment('variants_updated')
                # Pairs stay usable for inventory and metafields even when the price update failed
                pairs.extend(matched)

        if unmatched:
            inputs = [
                dict(
                    self.variant_input(source),
                    optionValues=[
                        {'optionName': option['name'], 'name': option['value']}
                        for option in source.get('selectedOptions') or []
                    ]
                )
                for source in unmatched
            ]
            payload = await self._bulk(
                VARIANTS_BULK_CREATE,
                {'productId': target['id'], 'variants': inputs},
                'productVariantsBulkCreate',
                item,
                summary
            )
            if payload is not None:
                by_index, _ = index_user_errors(payload['userErrors'], 'variants')
                created_pairs, still_missing = match_variants(
                    [source for position, source in enumerate(unmatched) if position not in by_index],
                    payload.get('productVariants') or []
                )
                for position, source in enumerate(unmatched):
                    if position in by_index:
                        summary.increment('variants_failed')
                        summary.add_error(self._variant_label(item, source), ', '.join(by_index[position]))
                for source in still_missing:
                    summary.increment('variants_failed')
                    summary.add_error(self._variant_label(item, source), 'Variant was not returned by the target')
                summary.increment('variants_created', len(created_pairs))
                pairs.extend(created_pairs)

        for source, existing in pairs:
            await self._save_mapping(
                source,
                existing,
                variant_key(source),
                summary,
                resource_type=ResourceType.VARIANT,
                match_key='options'
            )
        return pairs

    async def _bulk(
        self,
        descriptor: str,
        variables: Dict[str, Any],
        root: str,
        item: Dict[str, Any],
        summary: StageSummary
    ) -> Optional[Dict[str, Any]]:
        result = await self.retry.run(self.target_api.mutate, descriptor, variables, root)
        if not result.success:
            summary.increment('variants_failed', len(variables['variants']))
            summary.add_error(self.label(item), f"{root} failed: {result.error_message}")
            return None
        return result.value

    def _variant_label(self, item: Dict[str, Any], variant: Dict[str, Any]) -> str:
        options = ' / '.join(option.get('value', '') for option in variant.get('selectedOptions') or [])
        return f"{self.label(item)} [{options or variant.get('title')}]"

    async def upload_media(self, item: Dict[str, Any], target: Dict[str, Any], summary: StageSummary) -> None:
        media = []
        for node in nodes(item.get('media')):
            image = node.get('image') or {}
            if node.get('mediaContentType') == 'IMAGE' and image.get('url'):
                media.append({
                    'originalSource': image['url'],
                    'alt': node.get('alt') or image.get('altText') or '',
                    'mediaContentType': 'IMAGE',
                })
        if not media:
            return

        result = await self.retry.run(
            self.target_api.mutate,
            PRODUCT_CREATE_MEDIA,
            {'productId': target['id'], 'media': media},
            'productCreateMedia',
            'mediaUserErrors'
        )
        if not result.success:
            summary.increment('media_failed', len(media))
            summary.add_error(self.label(item), f"Media upload failed: {result.error_message}")
            return

        by_index, general = index_user_errors(result.value['userErrors'], 'media')
        failed = len(by_index) if by_index else (len(media) if general else 0)
        summary.increment('media_uploaded', len(media) - failed)
        if failed:
            summary.increment('media_failed', failed)
            summary.add_error(self.label(item), f"Media upload: {', '.join(sum(by_index.values(), general))}")
