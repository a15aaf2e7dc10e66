# src/processors/attributes.py
import json
from typing import Dict, Any, List, Optional
from storesync.api.queries import METAFIELDS_SET
from storesync.api.shop_api import index_user_errors
from storesync.utils.constants import (
    RESERVED_NAMESPACE,
    RESERVED_NAMESPACE_PREFIX,
    FOREIGN_APP_NAMESPACE_PREFIX,
    OWN_APP_NAMESPACE_MARKER,
)

def namespace_skip_reason(namespace: Optional[str]) -> Optional[str]:
    """reserved_namespace / foreign_namespace for namespaces that must not be copied, else None"""
    if not namespace:
        return 'reserved_namespace'
    if namespace == RESERVED_NAMESPACE or namespace.startswith(RESERVED_NAMESPACE_PREFIX):
        return 'reserved_namespace'
    if namespace.startswith(FOREIGN_APP_NAMESPACE_PREFIX) and OWN_APP_NAMESPACE_MARKER not in namespace:
        return 'foreign_namespace'
    return None

def same_value(field_type: Optional[str], current: Any, wanted: Any) -> bool:
    """Equal values; list, json and rich text values compare as parsed JSON"""
    if current == wanted:
        return True
    field_type = field_type or ''
    if not (field_type.startswith('list.') or field_type in ('json', 'rich_text_field')):
        return False
    try:
        return json.loads(current) == json.loads(wanted)
    except (TypeError, ValueError):
        return False

def chunks(items: List[Any], size: int) -> List[List[Any]]:
    return [items[i:i + size] for i in range(0, len(items), size)]

class MetafieldSync:
    """
    Copies custom attribute values from a source owner to its target counterpart.

    Values are matched on (namespace, key) and written only when missing or
    different. Embedded references are translated first; a value with any
    unresolved reference is not written.
    """

    def __init__(self, context: 'RunContext', retry: 'Retry', logger: 'CustomLogger', batch_size: int = 25): # type: ignore
        self.context = context
        self.retry = retry
        self.logger = logger
        self.batch_size = batch_size

    async def build_inputs(
        self,
        owner_type: str,
        source_owner_id: str,
        target_owner_id: str,
        source_metafields: List[Dict[str, Any]],
        target_metafields: List[Dict[str, Any]],
        summary: 'StageSummary', # type: ignore
        filter_namespaces: bool = True
    ) -> List[Dict[str, Any]]:
        existing = {
            (metafield.get('namespace'), metafield.get('key')): metafield
            for metafield in target_metafields or []
        }
        inputs = []
        for metafield in source_metafields or []:
            namespace = metafield.get('namespace')
            reason = namespace_skip_reason(namespace) if filter_namespaces else None
            if reason:
                summary.increment(reason)
                continue

            result = await self.context.translator.translate_metafield_value(
                self.context.connection_id,
                metafield,
                owner_context=f"{owner_type.lower()}:{source_owner_id}",
                found_in=owner_type.lower()
            )
            if not result.complete:
                summary.increment('unresolved')
                continue

            current = existing.get((namespace, metafield.get('key')))
            if (
                current
                and current.get('type') == metafield.get('type')
                and same_value(metafield.get('type'), current.get('value'), result.value)
            ):
                summary.increment('metafields_unchanged')
                continue

            inputs.append({
                'ownerId': target_owner_id,
                'namespace': namespace,
                'key': metafield.get('key'),
                'type': metafield.get('type'),
                'value': result.value,
            })
        return inputs

    async def sync(
        self,
        owner_type: str,
        source_owner_id: str,
        target_owner_id: str,
        source_metafields: List[Dict[str, Any]],
        target_metafields: List[Dict[str, Any]],
        summary: 'StageSummary', # type: ignore
        filter_namespaces: bool = True
    ) -> int:
        """Write missing or changed values; returns how many were sent"""
        inputs = await self.build_inputs(
            owner_type,
            source_owner_id,
            target_owner_id,
            source_metafields,
            target_metafields,
            summary,
            filter_namespaces=filter_namespaces
        )
        await self.write(inputs, summary)
        return len(inputs)

    async def write(self, inputs: List[Dict[str, Any]], summary: 'StageSummary') -> None: # type: ignore
        """metafieldsSet in batches; each user error is charged to its own input"""
        for batch in chunks(inputs, self.batch_size):
            result = await self.retry.run(
                self.context.target_api.mutate,
                METAFIELDS_SET,
                {'metafields': batch},
                'metafieldsSet'
            )
            if not result.success:
                summary.increment('metafields_failed', len(batch))
                summary.add_error(batch[0]['ownerId'], f"metafieldsSet failed: {result.error_message}")
                continue

            by_index, general = index_user_errors(result.value['userErrors'], 'metafields')
            for position, metafield in enumerate(batch):
                messages = by_index.get(position)
                if messages:
                    summary.increment('metafields_failed')
                    summary.add_error(
                        f"{metafield['ownerId']} {metafield['namespace']}.{metafield['key']}",
                        ', '.join(messages)
                    )
                else:
                    summary.increment('metafields_set')
            for message in general:
                summary.add_error(batch[0]['ownerId'], f"metafieldsSet: {message}")
