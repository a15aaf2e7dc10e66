"""
Unit tests for natural keys and variant / location matching.
"""
from storesync.processors.matchers import (
    handle_key,
    file_key,
    file_name_from_url,
    metaobject_key,
    metafield_definition_key,
    variant_key,
    match_variants,
    match_locations,
    build_index,
)


def variant(variant_id, *options):
    return {
        'id': variant_id,
        'selectedOptions': [{'name': name, 'value': value} for name, value in options],
    }


class TestNaturalKeys:
    """Tests for the per-resource natural keys."""

    def test_handle_key(self) -> None:
        assert handle_key({'handle': 'red-shirt'}) == 'red-shirt'
        assert handle_key({'handle': ''}) is None
        assert handle_key({}) is None

    def test_file_key_uses_url_basename(self) -> None:
        """The query string of a storage URL never takes part in the key."""
        item = {'image': {'url': 'https://cdn.example.com/files/photo.jpg?v=123'}}
        assert file_key(item) == 'photo.jpg'

    def test_file_key_falls_back_to_generic_url(self) -> None:
        assert file_key({'url': 'https://cdn.example.com/files/manual.pdf'}) == 'manual.pdf'
        assert file_key({}) is None

    def test_file_name_from_url_without_path(self) -> None:
        assert file_name_from_url('https://cdn.example.com/') is None

    def test_metaobject_key(self) -> None:
        assert metaobject_key({'type': 'designer', 'handle': 'ana'}) == ('designer', 'ana')
        assert metaobject_key({'type': 'designer'}) is None

    def test_metafield_definition_key(self) -> None:
        item = {'ownerType': 'PRODUCT', 'namespace': 'custom', 'key': 'care'}
        assert metafield_definition_key(item) == ('PRODUCT', 'custom', 'care')
        assert metafield_definition_key({'namespace': 'custom', 'key': 'care'}) is None


class TestVariantMatching:
    """Tests for order independent variant matching."""

    def test_option_order_does_not_matter(self) -> None:
        """Two variants with the same options in a different order share a key."""
        first = variant('a', ('Size', 'M'), ('Color', 'Red'))
        second = variant('b', ('Color', 'Red'), ('Size', 'M'))
        assert variant_key(first) == variant_key(second)

    def test_variant_without_options_has_no_key(self) -> None:
        assert variant_key({'selectedOptions': []}) is None

    def test_match_ignores_position(self) -> None:
        """Variants are paired by options even when listed in another order."""
        sources = [
            variant('s1', ('Size', 'S'), ('Color', 'Blue')),
            variant('s2', ('Size', 'M'), ('Color', 'Red')),
        ]
        targets = [
            variant('t2', ('Color', 'Red'), ('Size', 'M')),
            variant('t1', ('Color', 'Blue'), ('Size', 'S')),
        ]

        matched, unmatched = match_variants(sources, targets)

        assert [(source['id'], target['id']) for source, target in matched] == [('s1', 't1'), ('s2', 't2')]
        assert unmatched == []

    def test_unmatched_sources_are_returned(self) -> None:
        sources = [variant('s1', ('Size', 'L'))]
        targets = [variant('t1', ('Size', 'M'))]

        matched, unmatched = match_variants(sources, targets)

        assert matched == []
        assert [source['id'] for source in unmatched] == ['s1']

    def test_each_target_pairs_once(self) -> None:
        """Duplicated option sets pair one to one."""
        sources = [variant('s1', ('Size', 'M')), variant('s2', ('Size', 'M'))]
        targets = [variant('t1', ('Size', 'M'))]

        matched, unmatched = match_variants(sources, targets)

        assert len(matched) == 1
        assert [source['id'] for source in unmatched] == ['s2']


class TestLocationMatching:
    """Tests for location pairing by name."""

    def test_case_insensitive_name_match(self) -> None:
        sources = [{'id': 'src-1', 'name': 'Main Warehouse'}]
        targets = [{'id': 'tgt-1', 'name': 'main warehouse ', 'isActive': True}]

        assert match_locations(sources, targets) == {'src-1': targets[0]}

    def test_inactive_targets_are_ignored(self) -> None:
        sources = [{'id': 'src-1', 'name': 'Outlet'}]
        targets = [{'id': 'tgt-1', 'name': 'Outlet', 'isActive': False}]

        assert match_locations(sources, targets) == {}


class TestBuildIndex:
    def test_first_item_wins(self) -> None:
        items = [{'handle': 'a', 'id': 1}, {'handle': 'a', 'id': 2}, {'id': 3}]

        index = build_index(items, handle_key)

        assert index == {'a': {'handle': 'a', 'id': 1}}
