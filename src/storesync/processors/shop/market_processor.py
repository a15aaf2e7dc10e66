# src/processors/shop/market_processor.py
from typing import Dict, Any, List, Optional
from storesync.api.queries import (
    MARKETS_QUERY,
    MARKET_INDEX_QUERY,
    MARKET_CREATE,
    MARKET_UPDATE,
    PUBLICATION_PRODUCTS_QUERY,
    CATALOG_CREATE,
    PUBLICATION_CREATE,
    PRICE_LIST_CREATE,
    PUBLICATION_UPDATE,
)
from storesync.api.shop_api import nodes, format_user_errors
from storesync.processors.attributes import chunks
from storesync.processors.base_processor import BaseProcessor, StageSummary, UpsertResult, ensure_no_user_errors
from storesync.utils.constants import ResourceType

PUBLICATION_BATCH_SIZE = 200
CATALOG_TITLE_LIMIT = 60
# marketUpdate refuses currency settings while unified markets manage them centrally
CURRENCY_RESTRICTED_MESSAGES = ('unified markets is enabled', 'action is restricted')

def market_regions(item: Dict[str, Any]) -> List[Dict[str, str]]:
    regions = nodes((((item.get('conditions') or {}).get('regionsCondition') or {}).get('regions')))
    return [{'countryCode': region['code']} for region in regions if region.get('code')]

def first_publication(market: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """The first catalog of a market that carries a publication"""
    for catalog in nodes(market.get('catalogs')):
        if (catalog.get('publication') or {}).get('id'):
            return catalog
    return None

class MarketProcessor(BaseProcessor):
    """
    Markets match on handle. Besides name, status and regions, each market
    brings its currency settings, the products of its curated catalog
    (translated through the mapping registry) and its metafield values.
    Web presences and locales belong to the target's domain setup and stay untouched.
    """

    resource_type = ResourceType.MARKET
    source_query = MARKETS_QUERY
    source_path = 'markets'
    target_query = MARKET_INDEX_QUERY
    target_path = 'markets'

    @staticmethod
    def market_input(item: Dict[str, Any]) -> Dict[str, Any]:
        data = {
            'name': item.get('name'),
            'handle': item.get('handle'),
            'status': item.get('status'),
        }
        return {name: value for name, value in data.items() if value is not None}

    async def create(self, item: Dict[str, Any]) -> UpsertResult:
        data = self.market_input(item)
        regions = market_regions(item)
        if regions:
            data['conditions'] = {'regionsCondition': {'regions': regions}}
        payload = await self.target_api.mutate(MARKET_CREATE, {'input': data}, 'marketCreate')
        ensure_no_user_errors(payload, f"marketCreate {item.get('handle')}")
        return UpsertResult(payload['market'], created=True)

    async def update(self, item: Dict[str, Any], target: Dict[str, Any]) -> UpsertResult:
        data = self.market_input(item)
        regions = market_regions(item)
        if regions:
            # Regions only get added; target-only regions are kept
            data['conditions'] = {'conditionsToAdd': {'regionsCondition': {'regions': regions}}}
        payload = await self.target_api.mutate(
            MARKET_UPDATE,
            {'id': target['id'], 'input': data},
            'marketUpdate'
        )
        ensure_no_user_errors(payload, f"marketUpdate {item.get('handle')}")
        return UpsertResult(dict(target, **(payload['market'] or {})))

    async def after_upsert(
        self,
        item: Dict[str, Any],
        target: Dict[str, Any],
        created: bool,
        summary: StageSummary
    ) -> None:
        await self.sync_currency(item, target, summary)
        await self.sync_catalog(item, target, summary)

        if self.context.metafields is not None:
            await self.context.metafields.sync(
                'MARKET',
                item['id'],
                target['id'],
                nodes(item.get('metafields')),
                nodes(target.get('metafields')),
                summary
            )

    async def sync_currency(self, item: Dict[str, Any], target: Dict[str, Any], summary: StageSummary) -> None:
        """Region markets only; other market kinds inherit their currency"""
        settings = item.get('currencySettings') or {}
        data = {}
        if (settings.get('baseCurrency') or {}).get('currencyCode'):
            data['baseCurrency'] = settings['baseCurrency']['currencyCode']
        if isinstance(settings.get('localCurrencies'), bool):
            data['localCurrencies'] = settings['localCurrencies']
        if not data or not market_regions(item):
            return

        result = await self.retry.run(
            self.target_api.mutate,
            MARKET_UPDATE,
            {'id': target['id'], 'input': {'currencySettings': data}},
            'marketUpdate'
        )
        if not result.success:
            summary.increment('currency_failed')
            summary.add_error(self.label(item), f"Currency settings failed: {result.error_message}")
            return

        message = format_user_errors(result.value['userErrors'])
        if not message:
            summary.increment('currency_synced')
        elif any(marker in message.lower() for marker in CURRENCY_RESTRICTED_MESSAGES):
            summary.increment('currency_restricted')
        else:
            summary.increment('currency_failed')
            summary.add_error(self.label(item), f"Currency settings failed: {message}")

    async def publication_products(self, api, publication_id: str) -> List[str]:
        products = await api.fetch_all(
            PUBLICATION_PRODUCTS_QUERY,
            'publication.products',
            {'id': publication_id},
            page_size=self.page_size
        )
        return [product['id'] for product in products]

    async def sync_catalog(self, item: Dict[str, Any], target: Dict[str, Any], summary: StageSummary) -> None:
        """Add the mapped products of the source catalog that the target catalog lacks"""
        source_catalog = first_publication(item)
        if source_catalog is None:
            return
        source_products = await self.publication_products(
            self.source_api,
            source_catalog['publication']['id']
        )

        target_catalog = first_publication(target)
        if target_catalog is None:
            target_catalog = await self.create_catalog(item, target, source_catalog)
            present = set()
        else:
            present = set(await self.publication_products(
                self.target_api,
                target_catalog['publication']['id']
            ))

        missing = []
        for product_id in source_products:
            translated = await self.context.translator.translate(
                self.connection_id,
                product_id,
                context=f"market:{item.get('handle')} catalog",
                found_in='market'
            )
            if not translated:
                summary.increment('catalog_unmapped')
                continue
            if translated not in present:
                missing.append(translated)

        for batch in chunks(missing, PUBLICATION_BATCH_SIZE):
            result = await self.retry.run(
                self.target_api.mutate,
                PUBLICATION_UPDATE,
                {'id': target_catalog['publication']['id'], 'input': {'publishablesToAdd': batch}},
                'publicationUpdate'
            )
            if not result.success:
                summary.increment('catalog_failed', len(batch))
                summary.add_error(self.label(item), f"Adding catalog products failed: {result.error_message}")
            elif result.value['userErrors']:
                summary.increment('catalog_failed', len(batch))
                summary.add_error(self.label(item), format_user_errors(result.value['userErrors']))
            else:
                summary.increment('catalog_added', len(batch))

    async def create_catalog(
        self,
        item: Dict[str, Any],
        target: Dict[str, Any],
        source_catalog: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Curated catalog for the target market: a publication that starts empty"""
        label = self.label(item)
        payload = await self.target_api.mutate(
            CATALOG_CREATE,
            {'input': {
                'title': f"Synced {item.get('name') or label}"[:CATALOG_TITLE_LIMIT],
                'status': 'ACTIVE',
                'context': {'marketIds': [target['id']]},
            }},
            'catalogCreate'
        )
        ensure_no_user_errors(payload, f"catalogCreate {label}")
        catalog = payload['catalog']

        payload = await self.target_api.mutate(
            PUBLICATION_CREATE,
            {'input': {'catalogId': catalog['id'], 'defaultState': 'EMPTY', 'autoPublish': True}},
            'publicationCreate'
        )
        ensure_no_user_errors(payload, f"publicationCreate {label}")
        catalog['publication'] = payload['publication']

        currency = (source_catalog.get('priceList') or {}).get('currency')
        if currency:
            payload = await self.target_api.mutate(
                PRICE_LIST_CREATE,
                {'input': {
                    'name': f"{item.get('name') or label} prices"[:CATALOG_TITLE_LIMIT],
                    'currency': currency,
                    'catalogId': catalog['id'],
                }},
                'priceListCreate'
            )
            if payload['userErrors']:
                self.context.log(
                    'warning',
                    f"{self.processor_type}: price list for {label} not created: "
                    f"{format_user_errors(payload['userErrors'])}"
                )

        self.context.log('info', f"{self.processor_type}: created catalog {catalog['id']} for {label}")
        return catalog
