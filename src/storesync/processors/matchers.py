# src/processors/matchers.py
"""
Natural keys used to pair a source entity with its target counterpart.

Every key function returns None when the entity has no usable natural key;
such entities are skipped rather than created blindly.
"""
import os
from typing import Dict, Any, List, Optional, Callable, Hashable, Tuple
from urllib.parse import urlparse

def handle_key(item: Dict[str, Any]) -> Optional[str]:
    """Products, collections, pages and menus match on handle"""
    handle = item.get('handle')
    return handle or None

def location_key(item: Dict[str, Any]) -> Optional[str]:
    name = (item.get('name') or '').strip()
    return name.lower() or None

def file_name_from_url(url: Optional[str]) -> Optional[str]:
    """Filename at the end of a storage URL path; the query string is ignored"""
    if not url:
        return None
    path = urlparse(url).path
    name = os.path.basename(path)
    return name or None

def file_url(item: Dict[str, Any]) -> Optional[str]:
    image = item.get('image') or {}
    if image.get('url'):
        return image['url']
    if item.get('url'):
        return item['url']
    original = item.get('originalSource') or {}
    return original.get('url')

def file_key(item: Dict[str, Any]) -> Optional[str]:
    return file_name_from_url(file_url(item))

def type_key(item: Dict[str, Any]) -> Optional[str]:
    """Metaobject definitions match on their type string"""
    return item.get('type') or None

def metaobject_key(item: Dict[str, Any]) -> Optional[Tuple[str, str]]:
    type_name = item.get('type')
    handle = item.get('handle')
    if not type_name or not handle:
        return None
    return type_name, handle

def metafield_definition_key(item: Dict[str, Any]) -> Optional[Tuple[str, str, str]]:
    owner_type = item.get('ownerType')
    namespace = item.get('namespace')
    key = item.get('key')
    if not owner_type or not namespace or not key:
        return None
    return owner_type, namespace, key

def variant_key(variant: Dict[str, Any]) -> Optional[Tuple[Tuple[str, str], ...]]:
    """
    Order-independent key of a variant: its (option name, option value) pairs,
    sorted. Option order and variant position never influence matching.
    """
    options = variant.get('selectedOptions') or []
    pairs = [
        (str(option.get('name', '')), str(option.get('value', '')))
        for option in options
        if option
    ]
    if not pairs:
        return None
    return tuple(sorted(pairs))

def match_variants(
    source_variants: List[Dict[str, Any]],
    target_variants: List[Dict[str, Any]]
) -> Tuple[List[Tuple[Dict[str, Any], Dict[str, Any]]], List[Dict[str, Any]]]:
    """
    Pair variants by option multiset.

    Returns (matched pairs, unmatched source variants). A target variant is
    paired at most once, so duplicated option sets pair one-to-one.
    """
    remaining: Dict[Hashable, List[Dict[str, Any]]] = {}
    for target in target_variants:
        key = variant_key(target)
        if key is not None:
            remaining.setdefault(key, []).append(target)

    matched = []
    unmatched = []
    for source in source_variants:
        key = variant_key(source)
        candidates = remaining.get(key) if key is not None else None
        if candidates:
            matched.append((source, candidates.pop(0)))
        else:
            unmatched.append(source)
    return matched, unmatched

def build_index(
    items: List[Dict[str, Any]],
    key_func: Callable[[Dict[str, Any]], Optional[Hashable]]
) -> Dict[Hashable, Dict[str, Any]]:
    """Index items by natural key. The first item wins when keys collide."""
    index: Dict[Hashable, Dict[str, Any]] = {}
    for item in items:
        key = key_func(item)
        if key is not None and key not in index:
            index[key] = item
    return index

def match_locations(
    source_locations: List[Dict[str, Any]],
    target_locations: List[Dict[str, Any]]
) -> Dict[str, Dict[str, Any]]:
    """Source location id -> target location, by case-insensitive name among active targets"""
    active = [location for location in target_locations if location.get('isActive', True)]
    index = build_index(active, location_key)
    result = {}
    for source in source_locations:
        key = location_key(source)
        if key is not None and key in index:
            result[source['id']] = index[key]
    return result
