# src/processors/shop/metaobject_processor.py
from typing import Dict, Any, List, AsyncIterator
from storesync.api.queries import METAOBJECTS_QUERY, METAOBJECT_UPSERT, METAOBJECT_DEFINITIONS_QUERY
from storesync.api.shop_api import Page
from storesync.processors.attributes import namespace_skip_reason
from storesync.processors.base_processor import BaseProcessor, UpsertResult, ensure_no_user_errors
from storesync.processors.matchers import metaobject_key
from storesync.utils.constants import ResourceType

class MetaobjectProcessor(BaseProcessor):
    """
    Metaobject entries, read type by type and matched on (type, handle).
    Reference fields whose target does not exist yet are left out and counted
    as unresolved; a later run fills them in.
    """

    resource_type = ResourceType.METAOBJECT
    source_query = METAOBJECTS_QUERY
    source_path = 'metaobjects'
    target_query = METAOBJECTS_QUERY
    target_path = 'metaobjects'
    match_key_name = 'type/handle'

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._types: List[str] = []
        self._unresolved: Dict[str, int] = {}

    def natural_key(self, item: Dict[str, Any]):
        return metaobject_key(item)

    def label(self, item: Dict[str, Any]) -> str:
        return f"{item.get('type')}/{item.get('handle')}"

    async def definition_types(self) -> List[str]:
        if not self._types:
            if self.context.source_definition_types:
                types = set(self.context.source_definition_types.values())
            else:
                definitions = await self.source_api.fetch_all(METAOBJECT_DEFINITIONS_QUERY, 'metaobjectDefinitions')
                types = {definition['type'] for definition in definitions if definition.get('type')}
            self._types = sorted(type_name for type_name in types if not namespace_skip_reason(type_name))
        return self._types

    async def get_targets(self) -> List[Dict[str, Any]]:
        targets = []
        for type_name in await self.definition_types():
            targets.extend(await self.target_api.fetch_all(
                self.target_query,
                self.target_path,
                {'type': type_name},
                page_size=self.page_size
            ))
        return targets

    async def get_all(self) -> AsyncIterator[Page]:
        for type_name in await self.definition_types():
            async for page in self.source_api.paginate(
                self.source_query,
                self.source_path,
                {'type': type_name},
                page_size=self.page_size
            ):
                yield page

    async def field_inputs(self, item: Dict[str, Any]) -> List[Dict[str, Any]]:
        fields = []
        unresolved = 0
        for field in item.get('fields') or []:
            if field.get('value') is None:
                continue
            result = await self.context.translator.translate_metafield_value(
                self.connection_id,
                {'namespace': item.get('type'), 'key': field['key'], 'type': field.get('type'), 'value': field['value']},
                owner_context=f"metaobject:{self.label(item)}",
                found_in='metaobject'
            )
            if not result.complete:
                unresolved += 1
                continue
            fields.append({'key': field['key'], 'value': result.value})
        self._unresolved[self.label(item)] = unresolved
        return fields

    async def upsert(self, item: Dict[str, Any], created: bool) -> UpsertResult:
        metaobject = {'fields': await self.field_inputs(item)}
        status = ((item.get('capabilities') or {}).get('publishable') or {}).get('status')
        if status:
            metaobject['capabilities'] = {'publishable': {'status': status}}

        payload = await self.target_api.mutate(
            METAOBJECT_UPSERT,
            {'handle': {'type': item['type'], 'handle': item['handle']}, 'metaobject': metaobject},
            'metaobjectUpsert'
        )
        ensure_no_user_errors(payload, f"metaobjectUpsert {self.label(item)}")
        return UpsertResult(payload['metaobject'], created=created)

    async def create(self, item: Dict[str, Any]) -> UpsertResult:
        return await self.upsert(item, created=True)

    async def update(self, item: Dict[str, Any], target: Dict[str, Any]) -> UpsertResult:
        return await self.upsert(item, created=False)

    async def process(self):
        summary = await super().process()
        unresolved = sum(self._unresolved.values())
        if unresolved:
            summary.increment('unresolved', unresolved)
        return summary
