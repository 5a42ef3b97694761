# src/rainier/core/codec.py
"""Text conversion of CQL column values.

Binding maps hold text. Values read from result rows are formatted to text
before they are merged into a binding map, and text is parsed back into the
placeholder's CQL type right before a statement is bound. A NULL column is
kept as ``None`` all the way through and binds NULL.
"""

from __future__ import annotations

import datetime
import ipaddress
import json
import logging
import uuid
from decimal import Decimal
from typing import Any, Callable, Dict, Mapping, Optional

from cassandra.util import Date, Duration, Time

logger = logging.getLogger(__name__)

_INTEGER_TYPES = {"int", "bigint", "smallint", "tinyint", "varint", "counter"}
_FLOAT_TYPES = {"float", "double"}
_TEXT_TYPES = {"ascii", "text", "varchar"}
_TRUE_VALUES = {"true", "1", "yes"}
_FALSE_VALUES = {"false", "0", "no"}


def type_name(cql_type: Any) -> Optional[str]:
    """Return the CQL type name of a driver type class or a plain string."""
    if cql_type is None:
        return None
    if isinstance(cql_type, str):
        return cql_type.split("<", 1)[0].strip().lower()
    name = getattr(cql_type, "typename", None)
    if name is None:
        return None
    # Frozen collections report "frozen"; the element type is what matters
    if name == "frozen" and getattr(cql_type, "subtypes", None):
        return type_name(cql_type.subtypes[0])
    return name.lower()


def _parse_bool(text: str) -> bool:
    lowered = text.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Invalid boolean value: {text!r}")


def _parse_blob(text: str) -> bytes:
    stripped = text.strip()
    if stripped[:2].lower() == "0x":
        stripped = stripped[2:]
    return bytes.fromhex(stripped)


class RowValueCodec:
    """Converts typed column values to text and back."""

    def __init__(self) -> None:
        self._parsers: Dict[str, Callable[[str], Any]] = {
            "float": float,
            "double": float,
            "decimal": Decimal,
            "boolean": _parse_bool,
            "uuid": uuid.UUID,
            "timeuuid": uuid.UUID,
            "timestamp": datetime.datetime.fromisoformat,
            "date": lambda text: Date(datetime.date.fromisoformat(text.strip())),
            "time": lambda text: Time(text.strip()),
            "blob": _parse_blob,
            "inet": lambda text: str(ipaddress.ip_address(text.strip())),
        }
        for name in _INTEGER_TYPES:
            self._parsers[name] = int

    def format(self, value: Any) -> Optional[str]:
        """Format a column value as text; NULL stays ``None``."""
        if value is None:
            return None
        if isinstance(value, str):
            return value
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (bytes, bytearray, memoryview)):
            return "0x" + bytes(value).hex()
        if isinstance(value, datetime.datetime):
            return value.isoformat()
        if isinstance(value, (datetime.date, datetime.time)):
            return value.isoformat()
        if isinstance(value, (Date, Time, Duration, uuid.UUID, Decimal)):
            return str(value)
        if isinstance(value, Mapping):
            return json.dumps({self.format(k): self._json_value(v) for k, v in value.items()})
        if isinstance(value, (list, tuple, set, frozenset)):
            items = sorted(value, key=str) if isinstance(value, (set, frozenset)) else value
            return json.dumps([self._json_value(v) for v in items])
        return str(value)

    def _json_value(self, value: Any) -> Any:
        if value is None or isinstance(value, (bool, int, float)):
            return value
        return self.format(value)

    def parse(self, text: Optional[str], cql_type: Any = None) -> Any:
        """Parse text into a value of ``cql_type``.

        ``None`` binds NULL. Unknown or missing types are passed through as
        text and left to the driver's own serializer.
        """
        if text is None:
            return None
        name = type_name(cql_type)
        if name is None or name in _TEXT_TYPES:
            return text

        if name in ("list", "set", "tuple", "map"):
            return self._parse_collection(text, name, cql_type)

        parser = self._parsers.get(name)
        if parser is None:
            logger.debug(f"No parser for CQL type {name}, binding as text")
            return text
        return parser(text)

    def _parse_collection(self, text: str, name: str, cql_type: Any) -> Any:
        data = json.loads(text)
        subtypes = list(getattr(cql_type, "subtypes", None) or [])

        def element(value: Any, index: int) -> Any:
            subtype = subtypes[index] if index < len(subtypes) else None
            if isinstance(value, str):
                return self.parse(value, subtype)
            if isinstance(value, (list, dict)) and subtype is not None:
                return self.parse(json.dumps(value), subtype)
            return value

        if name == "map":
            if not isinstance(data, dict):
                raise ValueError(f"Expected a JSON object for map value: {text!r}")
            return {element(k, 0): element(v, 1) for k, v in data.items()}
        if not isinstance(data, list):
            raise ValueError(f"Expected a JSON array for {name} value: {text!r}")
        if name == "tuple":
            return tuple(element(v, i) for i, v in enumerate(data))
        values = [element(v, 0) for v in data]
        return set(values) if name == "set" else values
