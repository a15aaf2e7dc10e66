from .location_processor import LocationProcessor
from .file_processor import FileProcessor
from .metaobject_processor import MetaobjectProcessor
from .product_processor import ProductProcessor
from .collection_processor import CollectionProcessor
from .page_processor import PageProcessor
from .navigation_processor import NavigationProcessor
from .market_processor import MarketProcessor
from .search_discovery_processor import SearchDiscoveryProcessor

__all__ = [
    'LocationProcessor',
    'FileProcessor',
    'MetaobjectProcessor',
    'ProductProcessor',
    'CollectionProcessor',
    'PageProcessor',
    'NavigationProcessor',
    'MarketProcessor',
    'SearchDiscoveryProcessor',
]
