# src/processors/shop/navigation_processor.py
from typing import Dict, Any, List
from storesync.api.queries import MENUS_QUERY, MENU_CREATE, MENU_UPDATE
from storesync.processors.base_processor import BaseProcessor, UpsertResult, ensure_no_user_errors
from storesync.utils.constants import ResourceType

class NavigationProcessor(BaseProcessor):
    """Menus match on handle. Items pointing at resources are re-pointed through the mapping registry."""

    resource_type = ResourceType.NAVIGATION
    source_query = MENUS_QUERY
    source_path = 'menus'
    target_query = MENUS_QUERY
    target_path = 'menus'

    async def translate_items(self, menu: Dict[str, Any], items: List[Dict[str, Any]], unmapped: Dict[str, List[str]]) -> List[Dict[str, Any]]:
        """
        Item inputs for the target. An item whose resource has no mapping becomes
        an HTTP link to its source url and keeps its children; without a url it
        is left out together with them.
        """
        result = []
        for item in items or []:
            data = {
                'title': item.get('title'),
                'type': item.get('type'),
                'url': item.get('url'),
                'tags': item.get('tags') or [],
            }
            resource_id = item.get('resourceId')
            if resource_id:
                translated = await self.context.translator.translate(
                    self.connection_id,
                    resource_id,
                    context=f"menu:{menu.get('handle')} item:{item.get('title')}",
                    found_in='navigation'
                )
                if translated:
                    data['resourceId'] = translated
                elif item.get('url'):
                    data['type'] = 'HTTP'
                    unmapped['converted'].append(str(item.get('title')))
                else:
                    unmapped['omitted'].append(str(item.get('title')))
                    continue
            data['items'] = await self.translate_items(menu, item.get('items'), unmapped)
            result.append(data)
        return result

    async def _menu_variables(self, item: Dict[str, Any]) -> Dict[str, Any]:
        unmapped: Dict[str, List[str]] = {'converted': [], 'omitted': []}
        variables = {
            'title': item.get('title'),
            'handle': item.get('handle'),
            'items': await self.translate_items(item, item.get('items'), unmapped),
        }
        if unmapped['converted']:
            self.context.log(
                'warning',
                f"Menu {item.get('handle')}: items with unmapped resources kept as links: {', '.join(unmapped['converted'])}"
            )
        if unmapped['omitted']:
            self.context.log(
                'warning',
                f"Menu {item.get('handle')}: omitted items with unmapped resources and no url: {', '.join(unmapped['omitted'])}"
            )
        variables['unmapped'] = {name: len(titles) for name, titles in unmapped.items()}
        return variables

    async def create(self, item: Dict[str, Any]) -> UpsertResult:
        variables = await self._menu_variables(item)
        unmapped = variables.pop('unmapped')
        payload = await self.target_api.mutate(MENU_CREATE, variables, 'menuCreate')
        ensure_no_user_errors(payload, f"menuCreate {item.get('handle')}")
        menu = dict(payload['menu'], unmapped_items=unmapped)
        return UpsertResult(menu, created=True)

    async def update(self, item: Dict[str, Any], target: Dict[str, Any]) -> UpsertResult:
        variables = await self._menu_variables(item)
        unmapped = variables.pop('unmapped')
        variables['id'] = target['id']
        payload = await self.target_api.mutate(MENU_UPDATE, variables, 'menuUpdate')
        ensure_no_user_errors(payload, f"menuUpdate {item.get('handle')}")
        menu = dict(target, **(payload['menu'] or {}))
        menu['unmapped_items'] = unmapped
        return UpsertResult(menu)

    async def after_upsert(self, item, target, created, summary) -> None:
        for name, count in (target.get('unmapped_items') or {}).items():
            if count:
                summary.increment(f"items_{name}", count)
