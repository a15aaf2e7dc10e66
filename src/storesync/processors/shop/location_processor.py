# src/processors/shop/location_processor.py
from typing import Dict, Any, List, Optional
from storesync.api.queries import LOCATIONS_QUERY, LOCATION_ADD
from storesync.processors.base_processor import BaseProcessor, UpsertResult, ensure_no_user_errors
from storesync.processors.matchers import location_key
from storesync.utils.constants import ResourceType

class LocationProcessor(BaseProcessor):
    """Creates source locations missing on the target. Existing locations are never edited."""

    resource_type = ResourceType.LOCATION
    source_query = LOCATIONS_QUERY
    source_path = 'locations'
    target_query = LOCATIONS_QUERY
    target_path = 'locations'
    match_key_name = 'name'

    def natural_key(self, item: Dict[str, Any]):
        return location_key(item)

    def label(self, item: Dict[str, Any]) -> str:
        return str(item.get('name') or item.get('id'))

    def should_skip(self, item: Dict[str, Any]) -> Optional[str]:
        if not item.get('isActive', True):
            return 'inactive'
        return None

    async def get_targets(self) -> List[Dict[str, Any]]:
        targets = await super().get_targets()
        return [target for target in targets if target.get('isActive', True)]

    @staticmethod
    def location_input(item: Dict[str, Any]) -> Dict[str, Any]:
        address = {name: value for name, value in (item.get('address') or {}).items() if value}
        data = {
            'name': item['name'],
            'address': address,
        }
        if item.get('fulfillsOnlineOrders') is not None:
            data['fulfillsOnlineOrders'] = item['fulfillsOnlineOrders']
        return data

    async def create(self, item: Dict[str, Any]) -> UpsertResult:
        payload = await self.target_api.mutate(LOCATION_ADD, {'input': self.location_input(item)}, 'locationAdd')
        ensure_no_user_errors(payload, f"locationAdd {item.get('name')}")
        return UpsertResult(payload['location'], created=True)

    async def update(self, item: Dict[str, Any], target: Dict[str, Any]) -> UpsertResult:
        return UpsertResult(target, skipped='already_present')

    async def after_upsert(self, item, target, created, summary) -> None:
        if self.context.location_map is None:
            self.context.location_map = {}
        self.context.location_map[item['id']] = target['id']
