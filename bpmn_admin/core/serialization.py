"""
JSON helpers shared by snapshots, staged copies and the audit trail.
"""

import base64
import json
import re
from datetime import datetime
from typing import Any, Iterator, Optional


def make_json_serializable(obj):
    """
    Recursively convert non-JSON-serializable objects to serializable format.

    Handles:
    - datetime → ISO 8601 string
    - bytes → base64 string (for binary data)
    - sets/tuples → lists
    - custom objects → str(obj)
    """
    if isinstance(obj, dict):
        return {k: make_json_serializable(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple, set)):
        return [make_json_serializable(item) for item in obj]
    elif isinstance(obj, datetime):
        return obj.isoformat()
    elif isinstance(obj, bytes):
        return base64.b64encode(obj).decode('ascii')
    elif hasattr(obj, '__dict__'):
        return str(obj)
    else:
        return obj


def dumps_compact(value: Any) -> str:
    """
    Serialize without whitespace between tokens.

    Match offsets recorded at copy preparation are replayed at copy commit,
    so both sides must serialize schemas with this exact function.
    """
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


_LEADING_INTEGER = re.compile(r"^\s*[+-]?\d+")


def parse_int(value: Any) -> Optional[int]:
    """
    Lenient integer parsing for IDs stored as numbers or numeric strings.

    123 → 123, "123" → 123, "12abc" → 12, 12.7 → 12,
    "() => 123" → None, True → None, None → None
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value == value and value not in (float("inf"), float("-inf")) else None
    if isinstance(value, str):
        match = _LEADING_INTEGER.match(value)
        return int(match.group(0)) if match else None
    return None


def iter_key_values(node: Any, key: str) -> Iterator[Any]:
    """Yield every value stored under `key` at any depth (JSONPath $..key)"""
    if isinstance(node, dict):
        for child_key, child in node.items():
            if child_key == key:
                yield child
            yield from iter_key_values(child, key)
    elif isinstance(node, list):
        for child in node:
            yield from iter_key_values(child, key)


def iter_descendant_objects(node: Any) -> Iterator[dict]:
    """Yield every dict below `node` (the node itself excluded)"""
    children = node.values() if isinstance(node, dict) else node if isinstance(node, list) else ()
    for child in children:
        if isinstance(child, dict):
            yield child
        yield from iter_descendant_objects(child)


def flatten(values: Any) -> list:
    """Deep-flatten nested lists: [1, [2, [3]]] → [1, 2, 3]"""
    if not isinstance(values, list):
        return [values]
    result = []
    for value in values:
        result.extend(flatten(value))
    return result
