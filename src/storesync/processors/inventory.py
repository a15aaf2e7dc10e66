# src/processors/inventory.py
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional
from storesync.api.queries import (
    LOCATIONS_QUERY,
    INVENTORY_LEVELS_QUERY,
    INVENTORY_ACTIVATE,
    INVENTORY_SET_QUANTITIES,
)
from storesync.api.shop_api import nodes, format_user_errors
from storesync.processors.matchers import match_locations
from storesync.utils.constants import ResourceType, AVAILABLE_QUANTITY, INVENTORY_ADJUSTMENT_REASON
from storesync.utils.gid import extract_id

@dataclass
class InventoryResult:
    synced: int = 0
    skipped: int = 0
    failed: int = 0
    failures: List[Dict[str, Any]] = field(default_factory=list)

    def fail(self, location_id: Optional[str], error: str) -> None:
        self.failed += 1
        self.failures.append({'location_id': location_id, 'error': error})

def available_quantity(level: Dict[str, Any]) -> Optional[int]:
    for quantity in level.get('quantities') or []:
        if quantity.get('name') == AVAILABLE_QUANTITY:
            return quantity.get('quantity')
    return None

class LocationMapper:
    """Pairs source and target locations by name and keeps the result on the run context"""

    def __init__(self, context: 'RunContext', mapping_repository: 'MappingRepository', logger: 'CustomLogger'): # type: ignore
        self.context = context
        self.mapping_repository = mapping_repository
        self.logger = logger

    async def build(self) -> Dict[str, Any]:
        source = await self.context.source_api.fetch_all(LOCATIONS_QUERY, 'locations')
        target = await self.context.target_api.fetch_all(LOCATIONS_QUERY, 'locations')
        pairs = match_locations(source, target)

        self.context.location_map = {
            source_id: location['id'] for source_id, location in pairs.items()
        }

        names = {location['id']: location.get('name') for location in source}
        mappings = [
            {
                'source_id': extract_id(source_id),
                'target_id': extract_id(location['id']),
                'source_gid': source_id,
                'target_gid': location['id'],
                'match_key': 'name',
                'match_value': (names.get(source_id) or '').lower(),
                'sync_run_id': self.context.run_id,
                'title': names.get(source_id),
            }
            for source_id, location in pairs.items()
        ]
        saved = await self.mapping_repository.save_mappings(self.context.connection_id, ResourceType.LOCATION, mappings)

        unmatched = [names[location_id] for location_id in names if location_id not in pairs]
        if unmatched:
            self.context.log('warning', f"Locations without a target counterpart: {', '.join(map(str, unmatched))}")
        self.context.log('info', f"Location map: {len(pairs)} matched, {len(unmatched)} unmatched")

        return {
            'matched': len(pairs),
            'unmatched': len(unmatched),
            'mappings_failed': saved['failed'],
        }

class InventoryReconciler:
    """
    Brings target 'available' quantities in line with the source for one
    variant pair. Every location is handled on its own; one failing location
    never stops the others.
    """

    def __init__(self, context: 'RunContext', retry: 'Retry', logger: 'CustomLogger'): # type: ignore
        self.context = context
        self.retry = retry
        self.logger = logger

    async def target_levels(self, inventory_item_id: str) -> Dict[str, Optional[int]]:
        levels = await self.context.target_api.fetch_all(
            INVENTORY_LEVELS_QUERY,
            'inventoryItem.inventoryLevels',
            {'id': inventory_item_id}
        )
        return {
            level['location']['id']: available_quantity(level)
            for level in levels
            if level.get('location')
        }

    async def _mutate(self, descriptor: str, variables: Dict[str, Any], root: str) -> Optional[str]:
        """Run a mutation with retries; returns an error message or None"""
        result = await self.retry.run(self.context.target_api.mutate, descriptor, variables, root)
        if not result.success:
            return result.error_message
        if result.value['userErrors']:
            return format_user_errors(result.value['userErrors'])
        return None

    async def reconcile(self, source_variant: Dict[str, Any], target_variant: Dict[str, Any]) -> InventoryResult:
        result = InventoryResult()
        source_item = source_variant.get('inventoryItem') or {}
        target_item = target_variant.get('inventoryItem') or {}

        if not source_item.get('tracked') or not target_item.get('id'):
            result.skipped += 1
            return result

        source_levels = nodes(source_item.get('inventoryLevels'))
        if not source_levels:
            return result

        location_map = self.context.location_map or {}
        try:
            current = await self.target_levels(target_item['id'])
        except Exception as e:
            result.fail(None, f"Cannot read target inventory: {getattr(e, 'message', str(e))}")
            return result

        for level in source_levels:
            source_location = (level.get('location') or {}).get('id')
            quantity = available_quantity(level)
            if quantity is None:
                continue

            target_location = location_map.get(source_location)
            if not target_location:
                result.fail(source_location, f"Location {(level.get('location') or {}).get('name')} is not mapped")
                continue

            if target_location in current and current[target_location] == quantity:
                result.skipped += 1
                continue

            if target_location not in current:
                error = await self._mutate(
                    INVENTORY_ACTIVATE,
                    {'inventoryItemId': target_item['id'], 'locationId': target_location},
                    'inventoryActivate'
                )
                if error:
                    result.fail(source_location, f"Activation failed: {error}")
                    continue

            error = await self._mutate(
                INVENTORY_SET_QUANTITIES,
                {'input': {
                    'name': AVAILABLE_QUANTITY,
                    'reason': INVENTORY_ADJUSTMENT_REASON,
                    'ignoreCompareQuantity': True,
                    'quantities': [{
                        'inventoryItemId': target_item['id'],
                        'locationId': target_location,
                        'quantity': quantity,
                    }],
                }},
                'inventorySetQuantities'
            )
            if error:
                result.fail(source_location, error)
            else:
                result.synced += 1

        return result
