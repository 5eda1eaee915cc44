"""
Content-type aware decoding of submission bodies into a flat mapping.

The host framework hands us the body in one of three shapes, so callers wrap
it in a RawBody with an explicit kind instead of passing "whatever we got".
Decoding never raises: anything unparseable becomes an empty mapping, which
the ingestion endpoint then reports as "No form data received".
"""
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union
from urllib.parse import unquote_plus

logger = logging.getLogger("backend.decoder")

JSON_CONTENT_TYPE = "application/json"
URLENCODED_CONTENT_TYPE = "application/x-www-form-urlencoded"
GROUP_SUFFIX = "[]"


class BodyKind(str, Enum):
    BYTES = "bytes"
    TEXT = "text"
    MAPPING = "mapping"


@dataclass(frozen=True)
class RawBody:
    kind: BodyKind
    payload: Union[bytes, str, Mapping[str, Any]]

    @classmethod
    def from_bytes(cls, data: Optional[bytes]) -> "RawBody":
        return cls(BodyKind.BYTES, bytes(data or b""))

    @classmethod
    def from_text(cls, text: Optional[str]) -> "RawBody":
        return cls(BodyKind.TEXT, text or "")

    @classmethod
    def from_mapping(cls, mapping: Optional[Mapping[str, Any]]) -> "RawBody":
        return cls(BodyKind.MAPPING, dict(mapping or {}))

    def as_text(self) -> str:
        if self.kind is BodyKind.BYTES:
            return self.payload.decode("utf-8", errors="replace")
        if self.kind is BodyKind.TEXT:
            return self.payload
        return ""


def media_type(content_type: Optional[str]) -> str:
    """`application/json; charset=utf-8` -> `application/json`"""
    return (content_type or "").split(";", 1)[0].strip().lower()


def add_field(result: Dict[str, Any], key: str, value: Any) -> None:
    """Store one decoded field. Last value wins for repeated keys; keys ending
    in `[]` are collected into a list under the bare name, after any scalar
    already stored there."""
    if key.endswith(GROUP_SUFFIX) and len(key) > len(GROUP_SUFFIX):
        name = key[: -len(GROUP_SUFFIX)]
        group = result.setdefault(name, [])
        if isinstance(group, list):
            group.append(value)
        else:
            result[name] = [group, value]
        return
    result[key] = value


def parse_urlencoded(text: str) -> Dict[str, Any]:
    """Split on `&`, then on the first `=`; fields are stored with add_field."""
    result: Dict[str, Any] = {}
    for pair in (text or "").split("&"):
        if not pair:
            continue
        raw_key, sep, raw_value = pair.partition("=")
        key = unquote_plus(raw_key)
        if not key:
            continue
        add_field(result, key, unquote_plus(raw_value) if sep else "")
    return result


def parse_json(text: str) -> Dict[str, Any]:
    if not text or not text.strip():
        return {}
    try:
        parsed = json.loads(text)
    except ValueError:
        logger.debug("Malformed JSON body; treating as empty")
        return {}
    if not isinstance(parsed, dict):
        logger.debug("JSON body is %s, not an object; treating as empty", type(parsed).__name__)
        return {}
    return parsed


def decode(raw_body: RawBody, content_type: Optional[str] = None) -> Dict[str, Any]:
    if raw_body.kind is BodyKind.MAPPING:
        # Host-parsed bodies are trusted as-is
        return dict(raw_body.payload) if raw_body.payload else {}

    text = raw_body.as_text()
    if media_type(content_type) == JSON_CONTENT_TYPE:
        return parse_json(text)
    return parse_urlencoded(text)
