"""
Field mapper: turns elements of an external JSON array into index items.

Each element must yield an id through the configured id path; elements
without one are skipped with a warning. Every configured FieldMapping then
resolves its source path, applies its transformation and writes the target
property. A value that resolves to nothing (or null) falls back to the
mapping's default value.
"""

import json
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Union

from ingestion.json_path import resolve
from schemas.imports import CustomDataItem, FieldMapping, MappingOutcome, TransformationType
import logging

logger = logging.getLogger(__name__)

_TRUE_STRINGS = {"true", "1", "yes"}
_FALSE_STRINGS = {"false", "0", "no"}


class ConversionError(ValueError):
    """A resolved value could not be converted to the requested type"""
    pass


# ============================================================================
# Transformations
# ============================================================================

def _to_string(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    return str(value)


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    try:
        return int(str(value).strip())
    except ValueError:
        raise ConversionError(f"'{value}' is not an integer")


def _to_float(value: Any) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    try:
        return float(str(value).strip())
    except ValueError:
        raise ConversionError(f"'{value}' is not a number")


def _to_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = _to_string(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    raise ConversionError(f"'{value}' is not a boolean")


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None


def _to_date(value: Any) -> str:
    parsed = _parse_datetime(value)
    return parsed.date().isoformat() if parsed else _to_string(value)


def _to_datetime(value: Any) -> str:
    parsed = _parse_datetime(value)
    return parsed.isoformat() if parsed else _to_string(value)


_CONVERTERS = {
    TransformationType.TO_STRING: _to_string,
    TransformationType.TO_INT: _to_int,
    TransformationType.TO_FLOAT: _to_float,
    TransformationType.TO_BOOLEAN: _to_boolean,
    TransformationType.TO_DATE: _to_date,
    TransformationType.TO_DATETIME: _to_datetime,
}


def apply_transformation(value: Any, transformation: Optional[str]) -> Any:
    """
    Convert ``value`` according to ``transformation``.

    None passes through untouched. Raises ConversionError when the value
    cannot be represented as the requested type.
    """
    if value is None or not transformation:
        return value

    converter = _CONVERTERS.get(TransformationType(transformation))
    return converter(value) if converter else value


# ============================================================================
# Mapper
# ============================================================================

class FieldMapper:
    """Maps external JSON elements to CustomDataItem objects"""

    def __init__(
        self,
        id_field_mapping: str,
        field_mappings: Iterable[Union[FieldMapping, Dict[str, Any]]] = (),
        language_routing: Optional[str] = None,
    ):
        self.id_field_mapping = id_field_mapping
        self.field_mappings: List[FieldMapping] = [
            m if isinstance(m, FieldMapping) else FieldMapping(**m)
            for m in field_mappings
        ]
        self.language_routing = language_routing or None

    @classmethod
    def for_configuration(cls, config) -> "FieldMapper":
        return cls(
            id_field_mapping=config.id_field_mapping,
            field_mappings=config.field_mappings or [],
            language_routing=config.language_routing,
        )

    def map_items(self, elements: List[Any]) -> MappingOutcome:
        """
        Map every element of the narrowed array.

        Returns:
            MappingOutcome where received = len(elements) and skipped counts
            elements that produced no item
        """
        outcome = MappingOutcome(received=len(elements))

        for position, element in enumerate(elements, start=1):
            try:
                item = self._map_element(element, position, outcome.warnings)
            except Exception as e:
                logger.debug(f"Mapping element {position} failed: {e}")
                outcome.warnings.append(f"Item {position}: Failed to map - {e}")
                item = None

            if item is None:
                outcome.skipped += 1
            else:
                outcome.items.append(item)

        logger.info(
            f"Mapped {len(outcome.items)} of {outcome.received} elements "
            f"({outcome.skipped} skipped)"
        )
        return outcome

    def _map_element(self, element: Any, position: int, warnings: List[str]) -> Optional[CustomDataItem]:
        id_resolution = resolve(element, self.id_field_mapping)
        item_id = id_resolution.value if id_resolution.found else None

        if item_id is None or isinstance(item_id, (dict, list)) or _to_string(item_id) == "":
            warnings.append(
                f"Item {position}: Skipped - ID field '{self.id_field_mapping}' not found or null"
            )
            return None

        properties: Dict[str, Any] = {}
        for mapping in self.field_mappings:
            properties[mapping.target_property] = self._map_value(element, mapping, position, warnings)

        return CustomDataItem(
            id=_to_string(item_id),
            language_routing=self.language_routing,
            properties=properties,
        )

    def _map_value(self, element: Any, mapping: FieldMapping, position: int, warnings: List[str]) -> Any:
        resolution = resolve(element, mapping.source_path)
        if not resolution.found:
            warnings.append(
                f"Item {position}: Field '{mapping.target_property}' - path '{mapping.source_path}' not found"
            )
        value = resolution.value if resolution.found else None

        if value is None:
            value = mapping.default_value
            if isinstance(value, str) and value == "":
                return None

        try:
            return apply_transformation(value, mapping.transformation)
        except ConversionError as e:
            warnings.append(f"Item {position}: Field '{mapping.target_property}' - {e}")
            return None
