# src/processors/translator.py
import json
from dataclasses import dataclass
from typing import Dict, Any, Optional, Union
from storesync.utils.gid import parse_gid, EMBEDDED_GID_PATTERN, contains_gids

class _Unmapped:
    """Marker returned by translate() for a well formed GID without a mapping"""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return 'UNMAPPED'

UNMAPPED = _Unmapped()

@dataclass
class TranslationResult:
    value: Any
    translated: int = 0
    unmapped: int = 0

    @property
    def complete(self) -> bool:
        return self.unmapped == 0

    def merge(self, other: 'TranslationResult') -> None:
        self.translated += other.translated
        self.unmapped += other.unmapped

SINGLE_REFERENCE_TYPES = {
    'product_reference',
    'collection_reference',
    'variant_reference',
    'metaobject_reference',
    'mixed_reference',
    'page_reference',
    'file_reference',
}

TEXT_TYPES = {'single_line_text_field', 'multi_line_text_field', 'url'}

class ReferenceTranslator:
    """
    Rewrites source GIDs embedded in values into their target GIDs using the
    mapping registry. Values containing any unresolved reference come back
    untouched with complete=False; the caller decides not to write them.
    """

    def __init__(self, mapping_repository: 'MappingRepository', logger: 'CustomLogger'): # type: ignore
        self.mapping_repository = mapping_repository
        self.logger = logger
        self._resolved: Dict[str, str] = {}

    async def translate(
        self,
        connection_id: str,
        gid: Optional[str],
        context: str = '',
        found_in: Optional[str] = None
    ) -> Union[str, _Unmapped, None]:
        """Target GID for a source GID, UNMAPPED when the registry has none, None for malformed input"""
        if not parse_gid(gid):
            return None

        gid = gid.strip()
        if gid in self._resolved:
            return self._resolved[gid]

        try:
            mapping = await self.mapping_repository.get_by_source_gid(connection_id, gid)
        except Exception as e:
            self.logger.error(f"Mapping lookup failed for {gid}: {str(e)}")
            mapping = None

        if mapping:
            self._resolved[gid] = mapping.target_gid
            return mapping.target_gid

        self.logger.warning(f"Unmapped reference {gid} ({context or 'no context'})")
        await self.mapping_repository.log_unmapped_reference(connection_id, gid, context, found_in)
        return UNMAPPED

    async def translate_string(
        self,
        connection_id: str,
        value: Any,
        context: str = '',
        found_in: Optional[str] = None
    ) -> TranslationResult:
        if not contains_gids(value):
            return TranslationResult(value)

        targets: Dict[str, Any] = {}
        for match in EMBEDDED_GID_PATTERN.finditer(value):
            gid = match.group(0)
            if gid not in targets:
                targets[gid] = await self.translate(connection_id, gid, context, found_in)

        unmapped = sum(1 for target in targets.values() if not target)
        if unmapped:
            return TranslationResult(value, translated=len(targets) - unmapped, unmapped=unmapped)

        translated = EMBEDDED_GID_PATTERN.sub(lambda match: targets[match.group(0)], value)
        return TranslationResult(translated, translated=len(targets))

    async def translate_array(
        self,
        connection_id: str,
        values: Any,
        context: str = '',
        found_in: Optional[str] = None
    ) -> TranslationResult:
        if not isinstance(values, list):
            return TranslationResult(values)

        result = TranslationResult([])
        for item in values:
            item_result = await self.translate_object(connection_id, item, context, found_in)
            result.value.append(item_result.value)
            result.merge(item_result)

        if not result.complete:
            result.value = values
        return result

    async def translate_object(
        self,
        connection_id: str,
        value: Any,
        context: str = '',
        found_in: Optional[str] = None
    ) -> TranslationResult:
        """Recursive walk through dicts, lists and strings"""
        if isinstance(value, str):
            return await self.translate_string(connection_id, value, context, found_in)
        if isinstance(value, list):
            return await self.translate_array(connection_id, value, context, found_in)
        if not isinstance(value, dict):
            return TranslationResult(value)

        result = TranslationResult({})
        for key, item in value.items():
            item_result = await self.translate_object(connection_id, item, f"{context}.{key}", found_in)
            result.value[key] = item_result.value
            result.merge(item_result)

        if not result.complete:
            result.value = value
        return result

    async def translate_metafield_value(
        self,
        connection_id: str,
        metafield: Dict[str, Any],
        owner_context: str = '',
        found_in: Optional[str] = None
    ) -> TranslationResult:
        """Translate a metafield value according to its type. The value keeps its wire form (JSON text for lists)."""
        value = metafield.get('value')
        field_type = metafield.get('type') or ''
        context = f"{owner_context} metafield:{metafield.get('namespace')}.{metafield.get('key')}".strip()

        if value is None:
            return TranslationResult(value)

        if field_type in SINGLE_REFERENCE_TYPES or field_type in TEXT_TYPES:
            return await self.translate_string(connection_id, value, context, found_in)

        if field_type.startswith('list.') or field_type in ('json', 'rich_text_field'):
            try:
                parsed = json.loads(value) if isinstance(value, str) else value
            except ValueError:
                self.logger.warning(f"Cannot parse {field_type} value for {context}, leaving it as is")
                return TranslationResult(value)

            result = await self.translate_object(connection_id, parsed, context, found_in)
            if not result.complete:
                return TranslationResult(value, result.translated, result.unmapped)
            if result.translated == 0:
                return TranslationResult(value)
            return TranslationResult(
                json.dumps(result.value, separators=(',', ':'), ensure_ascii=False),
                result.translated,
                result.unmapped
            )

        return TranslationResult(value)
