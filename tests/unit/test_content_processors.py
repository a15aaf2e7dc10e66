"""
Unit tests for pages, collections, files, menus and metaobjects.
"""
import pytest

from storesync.processors.shop import (
    PageProcessor,
    CollectionProcessor,
    FileProcessor,
    NavigationProcessor,
    MetaobjectProcessor,
)
from storesync.utils.constants import ResourceType

from conftest import paged


async def map_product(repository, source_id, target_id):
    await repository.save_mapping('conn-1', ResourceType.PRODUCT, {
        'source_id': source_id,
        'target_id': target_id,
        'source_gid': f"gid://shopify/Product/{source_id}",
        'target_gid': f"gid://shopify/Product/{target_id}",
        'match_key': 'handle',
        'match_value': f"product-{source_id}",
    })


class TargetPages:
    """Target store state for pages, mutated by create and update calls"""

    def __init__(self):
        self.pages = []

    def index(self, variables):
        return paged('pages', list(self.pages))(variables)

    def create(self, variables):
        page = dict(variables['page'], id=f"gid://shopify/Page/{100 + len(self.pages)}")
        self.pages.append(page)
        return {'pageCreate': {'page': page, 'userErrors': []}}

    def update(self, variables):
        page = next(page for page in self.pages if page['id'] == variables['id'])
        page.update({name: value for name, value in variables['page'].items() if name != 'handle'})
        return {'pageUpdate': {'page': dict(page), 'userErrors': []}}


class TestPageProcessor:
    """Tests for pages, including reruns."""

    @pytest.fixture
    def target_pages(self, source_shop, target_shop):
        state = TargetPages()
        source_shop.on('Pages', paged('pages', [
            {'id': 'gid://shopify/Page/1', 'handle': 'about', 'title': 'About', 'body': '<p>Hi</p>'},
        ], [
            {'id': 'gid://shopify/Page/2', 'handle': 'faq', 'title': 'FAQ', 'body': '<p>?</p>'},
        ]))
        target_shop.on('PageIndex', state.index)
        target_shop.on('PageCreate', state.create)
        target_shop.on('PageUpdate', state.update)
        return state

    @pytest.mark.asyncio
    async def test_rerun_creates_nothing(self, target_pages, processor_kwargs, target_shop) -> None:
        """A second run over unchanged data updates in place and never duplicates."""
        first = await PageProcessor(**processor_kwargs).process()
        second = await PageProcessor(**processor_kwargs).process()

        assert (first.created, first.updated) == (2, 0)
        assert (second.created, second.updated) == (0, 2)
        assert len(target_pages.pages) == 2
        assert len(target_shop.calls_to('PageCreate')) == 2

    @pytest.mark.asyncio
    async def test_mapping_fallback_when_handle_changed(
        self, target_pages, processor_kwargs, target_shop, mapping_repository
    ) -> None:
        """A target renamed since the last run is still found through the stored mapping."""
        await PageProcessor(**processor_kwargs).process()
        target_pages.pages[0]['handle'] = 'about-us'

        summary = await PageProcessor(**processor_kwargs).process()

        assert summary.created == 0
        assert summary.updated == 2
        assert target_shop.calls_to('PageUpdate')[0]['id'] == 'gid://shopify/Page/100'
        assert mapping_repository.target_of('conn-1', ResourceType.PAGE, '1') == 'gid://shopify/Page/100'


class TestCollectionProcessor:
    """Tests for manual collection membership."""

    @pytest.mark.asyncio
    async def test_adds_only_missing_mapped_products(
        self, processor_kwargs, source_shop, target_shop, mapping_repository
    ) -> None:
        await map_product(mapping_repository, '1', '101')
        await map_product(mapping_repository, '2', '102')

        source_shop.on('Collections', paged('collections', [
            {'id': 'gid://shopify/Collection/1', 'handle': 'summer', 'title': 'Summer', 'metafields': {'nodes': []}},
        ]))
        source_shop.on('CollectionProducts', paged('collection.products', [
            {'id': 'gid://shopify/Product/1'},
            {'id': 'gid://shopify/Product/2'},
            {'id': 'gid://shopify/Product/3'},
        ]))
        target_shop.on('CollectionIndex', paged('collections', []))
        target_shop.on('CollectionCreate', {'collectionCreate': {
            'collection': {'id': 'gid://shopify/Collection/100', 'handle': 'summer'},
            'userErrors': [],
        }})
        target_shop.on('CollectionProducts', paged('collection.products', [{'id': 'gid://shopify/Product/101'}]))
        target_shop.on('CollectionAddProducts', {'collectionAddProducts': {'userErrors': []}})
        target_shop.on('Publications', paged('publications', []))

        summary = await CollectionProcessor(**processor_kwargs).process()

        assert summary.created == 1
        assert summary.counters['membership_added'] == 1
        assert summary.counters['membership_unmapped'] == 1
        assert target_shop.calls_to('CollectionAddProducts') == [
            {'id': 'gid://shopify/Collection/100', 'productIds': ['gid://shopify/Product/102']}
        ]
        assert target_shop.calls_to('PublishablePublish') == []

    @pytest.mark.asyncio
    async def test_smart_rules_are_not_sent_on_update(self, processor_kwargs, source_shop, target_shop) -> None:
        rule_set = {'appliedDisjunctively': False, 'rules': [{'column': 'TAG', 'relation': 'EQUALS', 'condition': 'sale'}]}
        source_shop.on('Collections', paged('collections', [
            {'id': 'gid://shopify/Collection/1', 'handle': 'sale', 'title': 'Sale', 'ruleSet': rule_set},
        ]))
        target_shop.on('CollectionIndex', paged('collections', [{'id': 'gid://shopify/Collection/100', 'handle': 'sale'}]))
        target_shop.on('CollectionUpdate', {'collectionUpdate': {
            'collection': {'id': 'gid://shopify/Collection/100', 'handle': 'sale'},
            'userErrors': [],
        }})
        target_shop.on('Publications', paged('publications', []))

        summary = await CollectionProcessor(**processor_kwargs).process()

        assert summary.updated == 1
        assert 'ruleSet' not in target_shop.calls_to('CollectionUpdate')[0]['input']
        assert source_shop.calls_to('CollectionProducts') == []


class TestFileProcessor:
    """Tests for batched file creation."""

    @pytest.mark.asyncio
    async def test_batch_with_one_rejected_file(self, processor_kwargs, source_shop, target_shop) -> None:
        def image(file_id, name, alt):
            return {
                'id': f"gid://shopify/MediaImage/{file_id}",
                '__typename': 'MediaImage',
                'alt': alt,
                'fileStatus': 'READY',
                'image': {'url': f"https://cdn.example.com/files/{name}?v=1"},
            }

        source_shop.on('Files', paged('files', [
            image(1, 'a.jpg', 'A'),
            image(2, 'b.jpg', 'B'),
            image(3, 'c.jpg', 'C'),
            image(4, 'a.jpg', 'A again'),
        ]))
        target_shop.on('Files', paged('files', [
            {'id': 'gid://shopify/MediaImage/900', 'alt': 'B', 'image': {'url': 'https://cdn2.example.com/b.jpg?v=9'}},
        ]))
        target_shop.on('FileCreate', {'fileCreate': {
            'files': [{'id': 'gid://shopify/MediaImage/901', 'alt': 'A'}],
            'userErrors': [{'field': ['files', '1', 'originalSource'], 'message': 'Invalid URL'}],
        }})

        summary = await FileProcessor(**processor_kwargs).process()

        assert summary.created == 1
        assert summary.failed == 1
        assert summary.skipped == 2
        assert summary.counters == {'unchanged': 1, 'duplicate_filename': 1}
        assert summary.errors[0]['item'] == 'c.jpg'
        assert summary.errors[0]['error'] == 'Invalid URL'

        files = target_shop.calls_to('FileCreate')[0]['files']
        assert [item['alt'] for item in files] == ['A', 'C']
        assert files[0]['contentType'] == 'IMAGE'
        assert target_shop.calls_to('FileUpdate') == []


class TestNavigationProcessor:
    """Tests for menu item translation."""

    @pytest.mark.asyncio
    async def test_unmapped_items_become_links_with_children(
        self, processor_kwargs, source_shop, target_shop, mapping_repository
    ) -> None:
        await map_product(mapping_repository, '1', '101')
        source_shop.on('Menus', paged('menus', [{
            'id': 'gid://shopify/Menu/1',
            'handle': 'main-menu',
            'title': 'Main',
            'items': [
                {'title': 'Home', 'type': 'FRONTPAGE', 'url': '/', 'items': []},
                {'title': 'Tee', 'type': 'PRODUCT', 'resourceId': 'gid://shopify/Product/1', 'items': []},
                {'title': 'Sale', 'type': 'COLLECTION', 'resourceId': 'gid://shopify/Collection/9',
                 'url': '/collections/sale', 'items': [
                     {'title': 'Child', 'type': 'HTTP', 'url': 'https://example.com'},
                 ]},
                {'title': 'Gone', 'type': 'PAGE', 'resourceId': 'gid://shopify/Page/4', 'items': []},
            ],
        }]))
        target_shop.on('Menus', paged('menus', []))
        target_shop.on('MenuCreate', {'menuCreate': {
            'menu': {'id': 'gid://shopify/Menu/100', 'handle': 'main-menu', 'title': 'Main'},
            'userErrors': [],
        }})

        summary = await NavigationProcessor(**processor_kwargs).process()

        assert summary.created == 1
        assert summary.counters['items_converted'] == 1
        assert summary.counters['items_omitted'] == 1
        items = target_shop.calls_to('MenuCreate')[0]['items']
        assert [item['title'] for item in items] == ['Home', 'Tee', 'Sale']
        assert items[1]['resourceId'] == 'gid://shopify/Product/101'
        assert items[2]['type'] == 'HTTP'
        assert items[2]['url'] == '/collections/sale'
        assert 'resourceId' not in items[2]
        assert [child['title'] for child in items[2]['items']] == ['Child']
        references = await mapping_repository.get_unmapped_references('conn-1')
        assert sorted(reference.source_gid for reference in references) == [
            'gid://shopify/Collection/9',
            'gid://shopify/Page/4',
        ]

    @pytest.mark.asyncio
    async def test_rerun_keeps_link_items_on_existing_menu(
        self, processor_kwargs, source_shop, target_shop
    ) -> None:
        source_shop.on('Menus', paged('menus', [{
            'id': 'gid://shopify/Menu/1',
            'handle': 'footer',
            'title': 'Footer',
            'items': [
                {'title': 'Sale', 'type': 'COLLECTION', 'resourceId': 'gid://shopify/Collection/9',
                 'url': '/collections/sale', 'items': []},
            ],
        }]))
        target_shop.on('Menus', paged('menus', [{
            'id': 'gid://shopify/Menu/200', 'handle': 'footer', 'title': 'Footer', 'items': [],
        }]))
        target_shop.on('MenuUpdate', {'menuUpdate': {
            'menu': {'id': 'gid://shopify/Menu/200', 'handle': 'footer', 'title': 'Footer'},
            'userErrors': [],
        }})

        summary = await NavigationProcessor(**processor_kwargs).process()

        assert summary.updated == 1
        assert summary.counters['items_converted'] == 1
        sent = target_shop.calls_to('MenuUpdate')[0]
        assert sent['id'] == 'gid://shopify/Menu/200'
        assert [(item['title'], item['type']) for item in sent['items']] == [('Sale', 'HTTP')]


class TestMetaobjectProcessor:
    """Tests for metaobject entries."""

    @pytest.mark.asyncio
    async def test_unresolved_reference_fields_are_left_out(
        self, processor_kwargs, run_context, source_shop, target_shop
    ) -> None:
        run_context.source_definition_types = {'gid://shopify/MetaobjectDefinition/1': 'designer'}
        source_shop.on('Metaobjects', paged('metaobjects', [{
            'id': 'gid://shopify/Metaobject/1',
            'type': 'designer',
            'handle': 'ana',
            'fields': [
                {'key': 'name', 'type': 'single_line_text_field', 'value': 'Ana'},
                {'key': 'brand', 'type': 'metaobject_reference', 'value': 'gid://shopify/Metaobject/77'},
                {'key': 'bio', 'type': 'multi_line_text_field', 'value': None},
            ],
            'capabilities': {'publishable': {'status': 'ACTIVE'}},
        }]))
        target_shop.on('Metaobjects', paged('metaobjects', []))
        target_shop.on('MetaobjectUpsert', {'metaobjectUpsert': {
            'metaobject': {'id': 'gid://shopify/Metaobject/100', 'type': 'designer', 'handle': 'ana'},
            'userErrors': [],
        }})

        summary = await MetaobjectProcessor(**processor_kwargs).process()

        assert summary.created == 1
        assert summary.counters['unresolved'] == 1
        upsert = target_shop.calls_to('MetaobjectUpsert')[0]
        assert upsert['handle'] == {'type': 'designer', 'handle': 'ana'}
        assert upsert['metaobject']['fields'] == [{'key': 'name', 'value': 'Ana'}]
        assert upsert['metaobject']['capabilities'] == {'publishable': {'status': 'ACTIVE'}}
        assert target_shop.calls_to('Metaobjects')[0]['type'] == 'designer'
