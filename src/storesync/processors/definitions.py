# src/processors/definitions.py
import json
from typing import Dict, Any, List, Optional, Tuple
from storesync.api.queries import (
    METAOBJECT_DEFINITIONS_QUERY,
    METAOBJECT_DEFINITION_CREATE,
    METAOBJECT_DEFINITION_UPDATE,
    METAFIELD_DEFINITIONS_QUERY,
    METAFIELD_DEFINITION_CREATE,
    METAFIELD_DEFINITION_UPDATE,
)
from storesync.processors.attributes import namespace_skip_reason
from storesync.processors.base_processor import BaseProcessor, StageSummary, UpsertResult, ensure_no_user_errors
from storesync.processors.matchers import build_index, type_key, metafield_definition_key
from storesync.utils.constants import (
    ResourceType,
    DEFINITION_GID_MARKER,
    DEFINITION_VALIDATION_NAMES,
    REFERENCE_REQUIRED_TYPES,
    METAFIELD_OWNER_TYPES,
)

def is_definition_reference(validation: Dict[str, Any]) -> bool:
    return (
        validation.get('name') in DEFINITION_VALIDATION_NAMES
        or DEFINITION_GID_MARKER in str(validation.get('value') or '')
    )

def has_definition_reference(validations: Optional[List[Dict[str, Any]]]) -> bool:
    return any(is_definition_reference(validation) for validation in validations or [])

def strip_definition_references(validations: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    return [
        {'name': validation['name'], 'value': validation.get('value')}
        for validation in validations or []
        if not is_definition_reference(validation)
    ]

class DefinitionResolver(BaseProcessor):
    """
    Two-pass creation of definitions that may reference each other.

    Pass 1 creates what it can with unresolvable cross-definition references
    left out. Pass 2 reattaches those references once every definition of the
    stage exists on the target, translating source definition ids through the
    definition type: source id -> type -> target id.
    """

    async def load_definition_types(self) -> None:
        """Fill the type indexes from both stores unless an earlier stage already did"""
        if self.context.source_definition_types:
            return
        source = await self.source_api.fetch_all(METAOBJECT_DEFINITIONS_QUERY, 'metaobjectDefinitions')
        target = await self.target_api.fetch_all(METAOBJECT_DEFINITIONS_QUERY, 'metaobjectDefinitions')
        self.remember_definitions(source, target)

    def remember_definitions(self, source: List[Dict[str, Any]], target: List[Dict[str, Any]]) -> None:
        self.context.source_definition_types.update({
            definition['id']: definition['type'] for definition in source if definition.get('type')
        })
        for definition in target:
            if definition.get('type'):
                self.context.definition_types.setdefault(definition['type'], definition['id'])

    def resolve_definition_id(self, source_gid: str) -> Optional[str]:
        definition_type = self.context.source_definition_types.get(source_gid)
        if not definition_type:
            return None
        return self.context.definition_types.get(definition_type)

    def resolve_reference_value(self, value: Any) -> Optional[str]:
        """Translate a validation value holding one definition GID or a JSON list of them"""
        if value is None:
            return None
        text = str(value).strip()
        if text.startswith('['):
            try:
                source_ids = json.loads(text)
            except ValueError:
                return None
            resolved = [self.resolve_definition_id(str(source_id)) for source_id in source_ids]
            if not resolved or not all(resolved):
                return None
            return json.dumps(resolved)
        return self.resolve_definition_id(text)

    def resolve_validations(self, validations: Optional[List[Dict[str, Any]]]) -> Optional[List[Dict[str, Any]]]:
        """Validations with every definition reference translated, or None if any cannot be"""
        resolved = []
        for validation in validations or []:
            value = validation.get('value')
            if is_definition_reference(validation):
                value = self.resolve_reference_value(value)
                if value is None:
                    return None
            resolved.append({'name': validation['name'], 'value': value})
        return resolved

    async def _write(self, descriptor: str, variables: Dict[str, Any], root: str, entity_key: str) -> Dict[str, Any]:
        payload = await self.target_api.mutate(descriptor, variables, root)
        ensure_no_user_errors(payload, root)
        return payload.get(entity_key) or {}

class MetaobjectDefinitionResolver(DefinitionResolver):
    resource_type = ResourceType.METAOBJECT_DEFINITION
    source_query = METAOBJECT_DEFINITIONS_QUERY
    source_path = 'metaobjectDefinitions'
    target_query = METAOBJECT_DEFINITIONS_QUERY
    target_path = 'metaobjectDefinitions'
    match_key_name = 'type'

    def natural_key(self, item: Dict[str, Any]):
        return type_key(item)

    def label(self, item: Dict[str, Any]) -> str:
        return str(item.get('type') or item.get('id'))

    @staticmethod
    def field_input(field: Dict[str, Any], validations: List[Dict[str, Any]]) -> Dict[str, Any]:
        data = {
            'key': field['key'],
            'name': field.get('name'),
            'description': field.get('description'),
            'required': bool(field.get('required')),
            'type': (field.get('type') or {}).get('name'),
        }
        if validations:
            data['validations'] = validations
        return data

    def split_fields(self, definition: Dict[str, Any]) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
        """(field inputs ready now, source fields whose definition reference is not resolvable yet)"""
        ready, deferred = [], []
        for field in definition.get('fieldDefinitions') or []:
            validations = field.get('validations') or []
            if not has_definition_reference(validations):
                ready.append(self.field_input(field, strip_definition_references(validations)))
                continue
            resolved = self.resolve_validations(validations)
            if resolved is None:
                deferred.append(field)
            else:
                ready.append(self.field_input(field, resolved))
        return ready, deferred

    def definition_input(self, definition: Dict[str, Any], fields: List[Dict[str, Any]]) -> Dict[str, Any]:
        data = {
            'type': definition['type'],
            'name': definition.get('name'),
            'description': definition.get('description'),
            'displayNameKey': definition.get('displayNameKey'),
            'fieldDefinitions': fields,
        }
        access = definition.get('access') or {}
        if access.get('storefront'):
            data['access'] = {'storefront': access['storefront']}
        capabilities = definition.get('capabilities') or {}
        data['capabilities'] = {
            name: {'enabled': bool((capabilities.get(name) or {}).get('enabled'))}
            for name in ('publishable', 'translatable')
        }
        return data

    async def create_definition(self, definition: Dict[str, Any], fields: List[Dict[str, Any]]) -> UpsertResult:
        created = await self._write(
            METAOBJECT_DEFINITION_CREATE,
            {'definition': self.definition_input(definition, fields)},
            'metaobjectDefinitionCreate',
            'metaobjectDefinition'
        )
        return UpsertResult(created, created=True)

    async def add_fields(self, target: Dict[str, Any], fields: List[Dict[str, Any]]) -> UpsertResult:
        updated = await self._write(
            METAOBJECT_DEFINITION_UPDATE,
            {'id': target['id'], 'definition': {'fieldDefinitions': [{'create': field} for field in fields]}},
            'metaobjectDefinitionUpdate',
            'metaobjectDefinition'
        )
        return UpsertResult(updated or target)

    async def process(self) -> StageSummary:
        summary = StageSummary()
        sources = await self.source_api.fetch_all(self.source_query, self.source_path, page_size=self.page_size)
        targets = await self.get_targets()
        self.remember_definitions(sources, targets)
        self._targets_by_id = {target['id']: target for target in targets}
        index = build_index(targets, self.natural_key)

        deferred: List[Tuple[Dict[str, Any], Dict[str, Any], List[Dict[str, Any]]]] = []

        for definition in sources:
            label = self.label(definition)
            reason = namespace_skip_reason(definition.get('type'))
            if reason:
                summary.skipped += 1
                summary.increment(reason)
                continue

            ready, waiting = self.split_fields(definition)
            target = await self.find_target(definition, definition.get('type'), index)

            if target:
                present = {field['key'] for field in target.get('fieldDefinitions') or []}
                missing = [field for field in ready if field['key'] not in present]
                waiting = [field for field in waiting if field['key'] not in present]
                if missing:
                    result = await self.retry.run(self.add_fields, target, missing)
                    if not result.success:
                        await self.handle_failed_item(definition, result.error_message, summary)
                        continue
                    summary.updated += 1
                else:
                    summary.skipped += 1
                    summary.increment('already_present')
            else:
                result = await self.retry.run(self.create_definition, definition, ready)
                if not result.success:
                    await self.handle_failed_item(definition, result.error_message, summary)
                    continue
                target = result.value.entity
                summary.created += 1

            index[definition['type']] = target
            self.context.definition_types[definition['type']] = target['id']
            await self._save_mapping(definition, target, definition['type'], summary)

            if waiting:
                deferred.append((definition, target, waiting))
                self.logger.debug(f"{label}: {len(waiting)} reference fields deferred to second pass")

        for definition, target, fields in deferred:
            await self.reattach(definition, target, fields, summary)

        self.context.log(
            'info',
            f"Metaobject definitions: {summary.created} created, {summary.updated} updated, "
            f"{summary.skipped} skipped, {summary.failed} failed, {len(deferred)} deferred"
        )
        return summary

    async def reattach(
        self,
        definition: Dict[str, Any],
        target: Dict[str, Any],
        fields: List[Dict[str, Any]],
        summary: StageSummary
    ) -> None:
        inputs = []
        for field in fields:
            validations = self.resolve_validations(field.get('validations'))
            if validations is None:
                await self.handle_failed_item(
                    definition,
                    f"Field {field['key']} references a definition that does not exist on the target",
                    summary
                )
                continue
            inputs.append(self.field_input(field, validations))

        if not inputs:
            return

        result = await self.retry.run(self.add_fields, target, inputs)
        if result.success:
            summary.increment('references_reattached', len(inputs))
        else:
            await self.handle_failed_item(definition, result.error_message, summary)

class MetafieldDefinitionResolver(DefinitionResolver):
    resource_type = ResourceType.METAFIELD_DEFINITION
    source_query = METAFIELD_DEFINITIONS_QUERY
    source_path = 'metafieldDefinitions'
    target_query = METAFIELD_DEFINITIONS_QUERY
    target_path = 'metafieldDefinitions'
    match_key_name = 'owner_type/namespace/key'

    def natural_key(self, item: Dict[str, Any]):
        return metafield_definition_key(item)

    def label(self, item: Dict[str, Any]) -> str:
        return f"{item.get('ownerType')} {item.get('namespace')}.{item.get('key')}"

    @staticmethod
    def field_type(definition: Dict[str, Any]) -> Optional[str]:
        return (definition.get('type') or {}).get('name')

    def definition_input(self, definition: Dict[str, Any], validations: List[Dict[str, Any]]) -> Dict[str, Any]:
        data = {
            'name': definition.get('name'),
            'namespace': definition['namespace'],
            'key': definition['key'],
            'description': definition.get('description'),
            'ownerType': definition['ownerType'],
            'type': self.field_type(definition),
            'validations': validations,
        }
        access = definition.get('access') or {}
        if access.get('storefront'):
            data['access'] = {'storefront': access['storefront']}
        return data

    async def create_definition(self, definition: Dict[str, Any], validations: List[Dict[str, Any]]) -> UpsertResult:
        created = await self._write(
            METAFIELD_DEFINITION_CREATE,
            {'definition': self.definition_input(definition, validations)},
            'metafieldDefinitionCreate',
            'createdDefinition'
        )
        return UpsertResult(created, created=True)

    async def update_validations(self, definition: Dict[str, Any], validations: List[Dict[str, Any]]) -> UpsertResult:
        updated = await self._write(
            METAFIELD_DEFINITION_UPDATE,
            {'definition': {
                'namespace': definition['namespace'],
                'key': definition['key'],
                'ownerType': definition['ownerType'],
                'validations': validations,
            }},
            'metafieldDefinitionUpdate',
            'updatedDefinition'
        )
        return UpsertResult(updated)

    async def process(self) -> StageSummary:
        summary = StageSummary()
        await self.load_definition_types()
        deferred: List[Tuple[Dict[str, Any], Dict[str, Any]]] = []

        for owner_type in METAFIELD_OWNER_TYPES:
            variables = {'ownerType': owner_type}
            sources = await self.source_api.fetch_all(self.source_query, self.source_path, variables, self.page_size)
            targets = await self.target_api.fetch_all(self.target_query, self.target_path, variables, self.page_size)
            index = build_index(targets, self.natural_key)
            loose_index = build_index(
                targets,
                lambda item: (str(item.get('namespace', '')).lower(), str(item.get('key', '')).lower())
            )

            for definition in sources:
                created = await self.first_pass(definition, index, loose_index, summary)
                if created:
                    deferred.append((definition, created))

        for definition, target in deferred:
            validations = self.resolve_validations(definition.get('validations'))
            if validations is None:
                await self.handle_failed_item(
                    definition,
                    "Referenced metaobject definition does not exist on the target",
                    summary
                )
                continue
            result = await self.retry.run(self.update_validations, definition, validations)
            if result.success:
                summary.increment('references_reattached')
            else:
                await self.handle_failed_item(definition, result.error_message, summary)

        self.context.log(
            'info',
            f"Metafield definitions: {summary.created} created, {summary.skipped} skipped, "
            f"{summary.failed} failed, {len(deferred)} deferred"
        )
        return summary

    async def first_pass(
        self,
        definition: Dict[str, Any],
        index: Dict[Any, Dict[str, Any]],
        loose_index: Dict[Any, Dict[str, Any]],
        summary: StageSummary
    ) -> Optional[Dict[str, Any]]:
        """Create or skip one definition. Returns the created target when its references still need reattaching."""
        label = self.label(definition)
        reason = namespace_skip_reason(definition.get('namespace'))
        if reason:
            summary.skipped += 1
            summary.increment(reason)
            return None

        key = self.natural_key(definition)
        if key is None:
            summary.skipped += 1
            summary.increment('no_natural_key')
            return None

        existing = index.get(key)
        if existing is None:
            existing = loose_index.get((definition['namespace'].lower(), definition['key'].lower()))
            if existing is not None:
                self.context.log(
                    'info',
                    f"{label} matches {existing.get('namespace')}.{existing.get('key')} ignoring case, treating as already present"
                )
        if existing is not None:
            summary.skipped += 1
            summary.increment('already_present')
            await self._save_mapping(definition, existing, key, summary)
            return None

        validations = definition.get('validations') or []
        needs_second_pass = False
        if has_definition_reference(validations):
            resolved = self.resolve_validations(validations)
            if resolved is not None:
                validations = resolved
            elif self.field_type(definition) in REFERENCE_REQUIRED_TYPES:
                summary.skipped += 1
                summary.increment('reference_unresolved')
                self.context.log('warning', f"{label} skipped: its metaobject definition reference cannot be resolved")
                return None
            else:
                validations = strip_definition_references(validations)
                needs_second_pass = True
        else:
            validations = strip_definition_references(validations)

        result = await self.retry.run(self.create_definition, definition, validations)
        if not result.success:
            await self.handle_failed_item(definition, result.error_message, summary)
            return None

        target = result.value.entity
        summary.created += 1
        index[key] = target
        await self._save_mapping(definition, target, key, summary)
        return target if needs_second_pass else None
