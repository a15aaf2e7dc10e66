import re
from typing import Optional, List, Tuple
from storesync.utils.constants import ResourceType

GID_PATTERN = re.compile(r'^gid://shopify/([A-Za-z]+)/(\d+)(?:\?.*)?$')
EMBEDDED_GID_PATTERN = re.compile(r'gid://shopify/([A-Za-z]+)/(\d+)')

TYPE_ALIASES = {
    'Product': ResourceType.PRODUCT,
    'ProductVariant': ResourceType.VARIANT,
    'Collection': ResourceType.COLLECTION,
    'Market': ResourceType.MARKET,
    'Location': ResourceType.LOCATION,
    'Page': ResourceType.PAGE,
    'MediaImage': ResourceType.FILE,
    'GenericFile': ResourceType.FILE,
    'Video': ResourceType.FILE,
    'Metaobject': ResourceType.METAOBJECT,
    'MetaobjectDefinition': ResourceType.METAOBJECT_DEFINITION,
    'MetafieldDefinition': ResourceType.METAFIELD_DEFINITION,
    'Menu': ResourceType.NAVIGATION,
    'InventoryItem': ResourceType.INVENTORY_ITEM,
    'InventoryLevel': ResourceType.INVENTORY_LEVEL,
}

def parse_gid(gid) -> Optional[Tuple[str, str]]:
    """Split a global id into (raw type name, numeric id). Returns None for anything malformed."""
    if not isinstance(gid, str):
        return None
    match = GID_PATTERN.match(gid.strip())
    if not match:
        return None
    return match.group(1), match.group(2)

def extract_id(gid) -> Optional[str]:
    parsed = parse_gid(gid)
    return parsed[1] if parsed else None

def normalize_resource_type(type_name: Optional[str]) -> Optional[str]:
    """Map a raw GID type name onto the internal resource type vocabulary"""
    if not type_name:
        return None
    alias = TYPE_ALIASES.get(type_name)
    if alias:
        return alias.value
    return type_name.lower()

def resource_type_of(gid) -> Optional[str]:
    parsed = parse_gid(gid)
    return normalize_resource_type(parsed[0]) if parsed else None

def contains_gids(value) -> bool:
    return isinstance(value, str) and EMBEDDED_GID_PATTERN.search(value) is not None

def extract_gids(value) -> List[str]:
    """All global ids embedded in a string, in order of appearance, without duplicates"""
    if not isinstance(value, str):
        return []
    seen = []
    for match in EMBEDDED_GID_PATTERN.finditer(value):
        if match.group(0) not in seen:
            seen.append(match.group(0))
    return seen

def build_gid(type_name: str, numeric_id) -> str:
    return f"gid://shopify/{type_name}/{numeric_id}"
