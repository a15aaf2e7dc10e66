# src/processors/shop/search_discovery_processor.py
from typing import Dict, Any, List
from storesync.api.queries import DISCOVERY_PRODUCTS_QUERY
from storesync.api.shop_api import nodes
from storesync.processors.base_processor import BaseProcessor, StageSummary
from storesync.utils.constants import ResourceType
from storesync.utils.gid import extract_id

class SearchDiscoveryProcessor(BaseProcessor):
    """
    Product recommendations kept by the Search & Discovery app.

    They live in a reserved namespace, which the product stage never copies.
    This stage writes them onto already-synced products only: every product
    reference is translated through the mapping registry and a value with
    any unmapped product is left alone.
    """

    resource_type = ResourceType.PRODUCT
    source_query = DISCOVERY_PRODUCTS_QUERY
    source_path = 'products'
    target_query = DISCOVERY_PRODUCTS_QUERY
    target_path = 'products'

    async def process(self) -> StageSummary:
        summary = StageSummary()
        await self.load_target_index()

        async for page in self.get_all():
            for item in page.items:
                source_metafields = nodes(item.get('metafields'))
                if source_metafields:
                    await self.process_recommendations(item, source_metafields, summary)

        self.context.log(
            'info',
            f"{self.processor_type} finished: {summary.updated} products updated, "
            f"{summary.skipped} skipped, {summary.failed} failed"
        )
        return summary

    async def process_recommendations(
        self,
        item: Dict[str, Any],
        source_metafields: List[Dict[str, Any]],
        summary: StageSummary
    ) -> None:
        label = self.label(item)
        mapping = await self.mapping_repository.get_by_source_id(
            self.connection_id,
            ResourceType.PRODUCT,
            extract_id(item['id'])
        )
        if not mapping:
            summary.skipped += 1
            summary.increment('product_unmapped')
            self.logger.debug(f"{self.processor_type}: {label} was never synced, skipping")
            return

        target = self._targets_by_id.get(mapping.target_gid)
        if target is None:
            summary.skipped += 1
            summary.increment('target_missing')
            self.context.log('warning', f"{self.processor_type}: mapped product {mapping.target_gid} for {label} is gone")
            return

        failed_before = summary.counters.get('metafields_failed', 0)
        written = await self.context.metafields.sync(
            'PRODUCT',
            item['id'],
            target['id'],
            source_metafields,
            nodes(target.get('metafields')),
            summary,
            filter_namespaces=False
        )
        if summary.counters.get('metafields_failed', 0) > failed_before:
            summary.failed += 1
        elif written:
            summary.updated += 1
        else:
            summary.skipped += 1
