"""
Bulk ingest payload codec (newline-delimited JSON).

Wire format, one compact JSON value per line, each line terminated by "\\n":

    {"index":{"_id":"a1","language_routing":"en"}}
    {"Title":"First","Price":10.5}
    {"delete":{"_id":"b2"}}

An index action is always followed by exactly one data line holding the
item's property bag. A delete action stands alone. Blank lines and "\\r\\n"
line endings are tolerated when parsing.
"""

import json
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from core.exceptions import BulkFormatError
from schemas.imports import BulkAction, BulkOperation, CustomDataItem
import logging

logger = logging.getLogger(__name__)

_ACTIONS = {action.value: action for action in BulkAction}


def _dumps(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


# ============================================================================
# Build
# ============================================================================

def build_index_action_line(item_id: str, language_routing: Optional[str] = None) -> str:
    body: Dict[str, Any] = {"_id": item_id}
    if language_routing:
        body["language_routing"] = language_routing
    return _dumps({BulkAction.INDEX.value: body})


def build_delete_action_line(item_id: str) -> str:
    return _dumps({BulkAction.DELETE.value: {"_id": item_id}})


def build_ndjson(items: Iterable[CustomDataItem]) -> str:
    """Encode items as index operations, preserving order."""
    lines: List[str] = []
    for item in items:
        lines.append(build_index_action_line(item.id, item.language_routing))
        lines.append(_dumps(item.properties))
    return "".join(f"{line}\n" for line in lines)


def build_delete_payload(item_ids: Iterable[str]) -> str:
    return "".join(f"{build_delete_action_line(item_id)}\n" for item_id in item_ids)


# ============================================================================
# Parse
# ============================================================================

def _load_line(line: str, line_number: int) -> Any:
    try:
        return json.loads(line)
    except json.JSONDecodeError as e:
        raise BulkFormatError(
            f"Line {line_number} is not valid JSON",
            context={"line_number": line_number},
            original_exception=e
        )


def _parse_action(line: str, line_number: int) -> Tuple[BulkAction, str, Optional[str]]:
    value = _load_line(line, line_number)
    if not isinstance(value, dict) or len(value) != 1:
        raise BulkFormatError(
            f"Line {line_number} is not an action object",
            context={"line_number": line_number}
        )

    name, body = next(iter(value.items()))
    action = _ACTIONS.get(name)
    if action is None:
        raise BulkFormatError(
            f"Line {line_number} has unknown action '{name}'",
            context={"line_number": line_number, "action": name}
        )

    if not isinstance(body, dict) or body.get("_id") in (None, ""):
        raise BulkFormatError(
            f"Line {line_number} action is missing '_id'",
            context={"line_number": line_number}
        )

    routing = body.get("language_routing")
    return action, str(body["_id"]), str(routing) if routing is not None else None


def _scan(payload: str, decode_data: bool) -> Iterator[Tuple[BulkAction, str, Optional[str], Optional[Dict[str, Any]]]]:
    """
    Yield (action, id, routing, properties) for every operation in payload.

    With ``decode_data=False`` data lines are only checked for presence and
    their properties are yielded as None.
    """
    numbered = [
        (number, line) for number, line in enumerate(payload.splitlines(), start=1)
        if line.strip()
    ]

    position = 0
    while position < len(numbered):
        line_number, line = numbered[position]
        action, item_id, routing = _parse_action(line, line_number)
        position += 1

        if action is BulkAction.DELETE:
            yield action, item_id, None, None
            continue

        if position >= len(numbered):
            raise BulkFormatError(
                f"Index action on line {line_number} has no data line",
                context={"line_number": line_number, "id": item_id}
            )

        data_number, data_line = numbered[position]
        position += 1

        properties = None
        if decode_data:
            properties = _load_line(data_line, data_number)
            if not isinstance(properties, dict):
                raise BulkFormatError(
                    f"Data line {data_number} is not a JSON object",
                    context={"line_number": data_number, "id": item_id}
                )

        yield action, item_id, routing, properties


def parse_operations(payload: str) -> List[BulkOperation]:
    """
    Decode every operation in a bulk payload.

    Raises:
        BulkFormatError: On the first line that violates the format
    """
    return [
        BulkOperation(action=action, id=item_id, language_routing=routing, properties=properties)
        for action, item_id, routing, properties in _scan(payload, decode_data=True)
    ]


def parse_ndjson(payload: str) -> List[CustomDataItem]:
    """Decode the index operations of a bulk payload back into items."""
    return [
        CustomDataItem(id=item_id, language_routing=routing, properties=properties)
        for action, item_id, routing, properties in _scan(payload, decode_data=True)
        if action is BulkAction.INDEX
    ]


def get_item_count(payload: str) -> int:
    """Number of operations in the payload; data lines are not decoded."""
    return sum(1 for _ in _scan(payload, decode_data=False))


def is_valid_ndjson(payload: str) -> bool:
    try:
        for _ in _scan(payload, decode_data=True):
            pass
    except BulkFormatError as e:
        logger.debug(f"Invalid bulk payload: {e}")
        return False
    return True
