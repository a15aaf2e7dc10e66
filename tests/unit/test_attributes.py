"""
Unit tests for MetafieldSync: value matching, skips, translation and batched writes.
"""
import json

import pytest

from storesync.processors.attributes import MetafieldSync, namespace_skip_reason, same_value
from storesync.processors.base_processor import StageSummary
from storesync.utils.constants import ResourceType
from storesync.utils.logger import logger

SOURCE_OWNER = 'gid://shopify/Product/1'
TARGET_OWNER = 'gid://shopify/Product/100'


def metafield(namespace, key, value, field_type='single_line_text_field'):
    return {'namespace': namespace, 'key': key, 'type': field_type, 'value': value}


def accept_all(variables):
    return {'metafieldsSet': {'metafields': variables['metafields'], 'userErrors': []}}


async def map_product(repository, source_id, target_id):
    await repository.save_mapping('conn-1', ResourceType.PRODUCT, {
        'source_id': source_id,
        'target_id': target_id,
        'source_gid': f"gid://shopify/Product/{source_id}",
        'target_gid': f"gid://shopify/Product/{target_id}",
        'match_key': 'handle',
        'match_value': f"product-{source_id}",
    })


@pytest.fixture
def summary() -> StageSummary:
    return StageSummary()


@pytest.fixture
def metafields(run_context, retry) -> MetafieldSync:
    return MetafieldSync(run_context, retry, logger, batch_size=2)


async def sync(metafields, source, target, summary):
    await metafields.sync('Product', SOURCE_OWNER, TARGET_OWNER, source, target, summary)


class TestNamespaces:
    @pytest.mark.parametrize('namespace,reason', [
        ('shopify', 'reserved_namespace'),
        ('shopify--discovery', 'reserved_namespace'),
        ('', 'reserved_namespace'),
        ('app--123--reviews', 'foreign_namespace'),
        ('app--$app--reviews', None),
        ('custom', None),
    ])
    def test_skip_reason(self, namespace, reason) -> None:
        assert namespace_skip_reason(namespace) == reason


class TestSameValue:
    def test_list_values_compare_as_json(self) -> None:
        assert same_value('list.product_reference', '["a","b"]', '["a", "b"]')
        assert not same_value('list.product_reference', '["a","b"]', '["b","a"]')

    def test_text_values_compare_exactly(self) -> None:
        assert not same_value('single_line_text_field', '["a","b"]', '["a", "b"]')

    def test_unparseable_value_is_different(self) -> None:
        assert not same_value('json', '{broken', '{}')


class TestBuildInputs:
    """Tests for deciding which values need a write."""

    @pytest.mark.asyncio
    async def test_matches_on_namespace_and_key(self, metafields, target_shop, summary) -> None:
        target_shop.on('MetafieldsSet', accept_all)
        source = [metafield('custom', 'color', 'red'), metafield('custom', 'size', 'L')]
        target = [metafield('custom', 'color', 'red'), metafield('other', 'size', 'L')]

        await sync(metafields, source, target, summary)

        written = target_shop.calls_to('MetafieldsSet')[0]['metafields']
        assert [(item['namespace'], item['key']) for item in written] == [('custom', 'size')]
        assert written[0]['ownerId'] == TARGET_OWNER
        assert summary.counters == {'metafields_unchanged': 1, 'metafields_set': 1}

    @pytest.mark.asyncio
    async def test_type_change_is_written(self, metafields, target_shop, summary) -> None:
        target_shop.on('MetafieldsSet', accept_all)

        await sync(
            metafields,
            [metafield('custom', 'count', '3', 'number_integer')],
            [metafield('custom', 'count', '3')],
            summary
        )

        assert summary.counters == {'metafields_set': 1}

    @pytest.mark.asyncio
    async def test_translated_list_equal_to_target_is_unchanged(
        self, metafields, target_shop, mapping_repository, summary
    ) -> None:
        """The target returns compact JSON; an equal translated list needs no write."""
        await map_product(mapping_repository, '1', '100')
        source = [metafield('custom', 'related', '["gid://shopify/Product/1","gid://shopify/Product/1"]', 'list.product_reference')]
        target = [metafield('custom', 'related', '["gid://shopify/Product/100","gid://shopify/Product/100"]', 'list.product_reference')]

        await sync(metafields, source, target, summary)

        assert target_shop.calls_to('MetafieldsSet') == []
        assert summary.counters == {'metafields_unchanged': 1}

    @pytest.mark.asyncio
    async def test_translated_list_is_written_compact(
        self, metafields, target_shop, mapping_repository, summary
    ) -> None:
        target_shop.on('MetafieldsSet', accept_all)
        await map_product(mapping_repository, '1', '100')
        await map_product(mapping_repository, '2', '200')
        source = [metafield('custom', 'related', json.dumps(['gid://shopify/Product/1', 'gid://shopify/Product/2']), 'list.product_reference')]

        await sync(metafields, source, [], summary)

        written = target_shop.calls_to('MetafieldsSet')[0]['metafields'][0]
        assert written['value'] == '["gid://shopify/Product/100","gid://shopify/Product/200"]'

    @pytest.mark.asyncio
    async def test_reserved_and_foreign_namespaces_are_counted(self, metafields, target_shop, summary) -> None:
        source = [
            metafield('shopify', 'color-pattern', 'red'),
            metafield('app--42--reviews', 'rating', '4.5'),
        ]

        await sync(metafields, source, [], summary)

        assert target_shop.calls_to('MetafieldsSet') == []
        assert summary.counters == {'reserved_namespace': 1, 'foreign_namespace': 1}

    @pytest.mark.asyncio
    async def test_unresolved_reference_is_not_written(
        self, metafields, target_shop, mapping_repository, summary
    ) -> None:
        source = [metafield('custom', 'featured', 'gid://shopify/Product/9', 'product_reference')]

        await sync(metafields, source, [], summary)

        assert target_shop.calls_to('MetafieldsSet') == []
        assert summary.counters == {'unresolved': 1}
        references = await mapping_repository.get_unmapped_references('conn-1')
        assert [reference.context for reference in references] == ['product:gid://shopify/Product/1 metafield:custom.featured']


class TestWrite:
    """Tests for batched metafieldsSet calls."""

    @pytest.mark.asyncio
    async def test_batches_by_size(self, metafields, target_shop, summary) -> None:
        target_shop.on('MetafieldsSet', accept_all)
        source = [metafield('custom', f"field_{n}", str(n)) for n in range(5)]

        await sync(metafields, source, [], summary)

        sizes = [len(call['metafields']) for call in target_shop.calls_to('MetafieldsSet')]
        assert sizes == [2, 2, 1]
        assert summary.counters == {'metafields_set': 5}

    @pytest.mark.asyncio
    async def test_user_errors_are_charged_to_their_input(self, metafields, target_shop, summary) -> None:
        target_shop.on('MetafieldsSet', {'metafieldsSet': {
            'metafields': [],
            'userErrors': [{'field': ['metafields', '1', 'value'], 'message': 'Value is invalid'}],
        }})
        source = [metafield('custom', 'a', '1'), metafield('custom', 'b', 'x')]

        await sync(metafields, source, [], summary)

        assert summary.counters == {'metafields_set': 1, 'metafields_failed': 1}
        assert summary.errors == [{'item': f"{TARGET_OWNER} custom.b", 'error': 'Value is invalid'}]
