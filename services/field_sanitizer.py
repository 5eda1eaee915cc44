import json
from typing import Any, Dict, Iterable, Mapping, Optional

from utils.config import DEFAULT_EXCLUDED_FIELDS

LIST_SEPARATOR = ", "


def _is_blank(value: Any) -> bool:
    return value is None or value == ""


def display_value(value: Any) -> Any:
    """Collapse list and mapping values into a single display value.

    Returns None when nothing meaningful is left.
    """
    if isinstance(value, (list, tuple)):
        shown = (display_value(v) for v in value)
        items = [str(v) for v in shown if v is not None]
        return LIST_SEPARATOR.join(items) if items else None
    if isinstance(value, dict):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str) if value else None
    if _is_blank(value):
        return None
    return value


def sanitize(
    data: Optional[Mapping[str, Any]],
    excluded_fields: Iterable[str] = DEFAULT_EXCLUDED_FIELDS,
) -> Dict[str, Any]:
    """Drop honeypot/excluded keys and empty values; flatten multi-values.

    `0` and `False` are meaningful answers and are kept.
    """
    excluded = set(excluded_fields or ())
    clean: Dict[str, Any] = {}
    for key, value in (data or {}).items():
        name = str(key)
        if name in excluded:
            continue
        shown = display_value(value)
        if shown is None:
            continue
        clean[name] = shown
    return clean
