#constants.py
from enum import Enum

class ResourceType(str, Enum):
    PRODUCT = 'product'
    VARIANT = 'variant'
    COLLECTION = 'collection'
    PAGE = 'page'
    NAVIGATION = 'navigation'
    FILE = 'file'
    LOCATION = 'location'
    METAOBJECT = 'metaobject'
    METAOBJECT_DEFINITION = 'metaobject_definition'
    METAFIELD_DEFINITION = 'metafield_definition'
    MARKET = 'market'
    INVENTORY_ITEM = 'inventory_item'
    INVENTORY_LEVEL = 'inventory_level'

class SyncType(str, Enum):
    """Stages a sync run can be asked for, in the order they execute"""
    LOCATIONS = 'locations'
    METAOBJECT_DEFINITIONS = 'metaobject_definitions'
    METAFIELD_DEFINITIONS = 'metafield_definitions'
    FILES = 'files'
    METAOBJECTS = 'metaobjects'
    PRODUCTS = 'products'
    COLLECTIONS = 'collections'
    PAGES = 'pages'
    NAVIGATION = 'navigation'
    MARKETS = 'markets'
    SEARCH_DISCOVERY = 'search_discovery'

SYNC_ORDER = [sync_type for sync_type in SyncType]

class RunStatus(str, Enum):
    RUNNING = 'running'
    SUCCESS = 'success'
    PARTIAL = 'partial'
    FAILED = 'failed'
    SKIPPED = 'skipped'

class Frequency(str, Enum):
    DAILY = 'daily'
    WEEKLY = 'weekly'
    EVERY_6H = 'every_6h'
    EVERY_12H = 'every_12h'

class ErrorKind(str, Enum):
    PERMISSION = 'permission'
    TRANSIENT = 'transient'
    VALIDATION = 'validation'
    NOT_FOUND = 'not_found'
    UNKNOWN = 'unknown'

# GraphQL extensions.code -> ErrorKind
ERROR_CODE_KINDS = {
    'ACCESS_DENIED': ErrorKind.PERMISSION,
    'FORBIDDEN': ErrorKind.PERMISSION,
    'UNAUTHORIZED': ErrorKind.PERMISSION,
    'THROTTLED': ErrorKind.TRANSIENT,
    'INTERNAL_SERVER_ERROR': ErrorKind.TRANSIENT,
    'TIMEOUT': ErrorKind.TRANSIENT,
    'SERVICE_UNAVAILABLE': ErrorKind.TRANSIENT,
    'NOT_FOUND': ErrorKind.NOT_FOUND,
    'BAD_USER_INPUT': ErrorKind.VALIDATION,
    'GRAPHQL_VALIDATION_FAILED': ErrorKind.VALIDATION,
    'INVALID': ErrorKind.VALIDATION,
}

# Used only when a GraphQL error carries no extensions.code
ERROR_MESSAGE_KINDS = [
    ('access denied', ErrorKind.PERMISSION),
    ('access scope', ErrorKind.PERMISSION),
    ('requires merchant approval', ErrorKind.PERMISSION),
    ('permission', ErrorKind.PERMISSION),
    ('throttled', ErrorKind.TRANSIENT),
    ('timeout', ErrorKind.TRANSIENT),
    ('timed out', ErrorKind.TRANSIENT),
    ('internal error', ErrorKind.TRANSIENT),
    ('try again', ErrorKind.TRANSIENT),
    ('not found', ErrorKind.NOT_FOUND),
    ('does not exist', ErrorKind.NOT_FOUND),
]

RESERVED_NAMESPACE = 'shopify'
RESERVED_NAMESPACE_PREFIX = 'shopify--'
FOREIGN_APP_NAMESPACE_PREFIX = 'app--'
OWN_APP_NAMESPACE_MARKER = '$app'
# Search & Discovery recommendations: reserved, but copied by their own stage
DISCOVERY_NAMESPACE = 'shopify--discovery--product_recommendation'

DEFINITION_GID_MARKER = 'gid://shopify/MetaobjectDefinition'
DEFINITION_VALIDATION_NAMES = ('metaobject_definition_id', 'metaobject_definition_ids')
REFERENCE_REQUIRED_TYPES = ('metaobject_reference', 'list.metaobject_reference')

METAFIELD_OWNER_TYPES = [
    'PRODUCT',
    'PRODUCTVARIANT',
    'COLLECTION',
    'PAGE',
    'SHOP',
    'LOCATION',
    'MARKET',
]

AVAILABLE_QUANTITY = 'available'
INVENTORY_ADJUSTMENT_REASON = 'correction'
