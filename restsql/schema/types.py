from __future__ import annotations
import datetime as dt
import json
import uuid
from enum import Enum
from typing import Any, Callable, List, Optional, Tuple

from restsql.errors import SchemaBuildError, ValueConversionError


class ScalarType(str, Enum):
    STRING = "string"
    BOOLEAN = "boolean"
    BYTE = "byte"
    CHAR = "char"
    SHORT = "short"
    INT = "int"
    LONG = "long"
    FLOAT = "float"
    DOUBLE = "double"
    DATE = "date"
    TIME = "time"
    TIMESTAMP = "timestamp"
    UUID = "uuid"


# ---------------------------------------------------------------------------
# Kind/format → scalar type
# ---------------------------------------------------------------------------

_Rule = Tuple[Callable[[str, Optional[str]], bool], Callable[[Optional[str]], ScalarType]]

_STRING_FORMATS = {
    "date-time": ScalarType.TIMESTAMP,
    "date": ScalarType.DATE,
    "time": ScalarType.TIME,
    "uuid": ScalarType.UUID,
    "byte": ScalarType.BYTE,
    "binary": ScalarType.BYTE,
}

# Evaluated in order, first match wins. The last rule always matches.
_RULES: List[_Rule] = [
    (lambda kind, fmt: kind == "integer",
     lambda fmt: ScalarType.LONG if fmt == "int64" else ScalarType.INT),
    (lambda kind, fmt: kind == "number",
     lambda fmt: ScalarType.FLOAT if fmt == "float" else ScalarType.DOUBLE),
    (lambda kind, fmt: kind == "boolean",
     lambda fmt: ScalarType.BOOLEAN),
    (lambda kind, fmt: kind == "string",
     lambda fmt: _STRING_FORMATS.get(fmt or "", ScalarType.STRING)),
    (lambda kind, fmt: True,
     lambda fmt: ScalarType.STRING),
]

# SQL spellings accepted as explicit column type overrides.
_OVERRIDE_ALIASES = {
    "INTEGER": ScalarType.INT,
    "INT": ScalarType.INT,
    "BIGINT": ScalarType.LONG,
    "SMALLINT": ScalarType.SHORT,
    "TINYINT": ScalarType.BYTE,
    "DECIMAL": ScalarType.DOUBLE,
    "NUMERIC": ScalarType.DOUBLE,
    "REAL": ScalarType.FLOAT,
    "BIT": ScalarType.BOOLEAN,
    "VARCHAR": ScalarType.STRING,
    "TEXT": ScalarType.STRING,
    "BINARY": ScalarType.BYTE,
    "VARBINARY": ScalarType.BYTE,
    "BLOB": ScalarType.BYTE,
}


def parse_override(name: str) -> ScalarType:
    """
    Resolve an explicit type override written either as a scalar name
    ("long") or as a SQL type ("BIGINT").

    Raises:
        SchemaBuildError: for an unknown type name.
    """
    key = name.strip()
    try:
        return ScalarType(key.lower())
    except ValueError:
        pass
    alias = _OVERRIDE_ALIASES.get(key.upper())
    if alias is None:
        raise SchemaBuildError(f"Unknown column type override: '{name}'")
    return alias


def map_type(
    kind: Optional[str],
    format: Optional[str] = None,
    override: Optional[str] = None,
) -> ScalarType:
    """Map a source {kind, format} descriptor to a ScalarType. Never fails on kind/format."""
    if override:
        return parse_override(override)
    kind = (kind or "").lower()
    fmt = format.lower() if format else None
    for matches, result in _RULES:
        if matches(kind, fmt):
            return result(fmt)
    return ScalarType.STRING   # unreachable: last rule is unconditional


# ---------------------------------------------------------------------------
# Value coercion
# ---------------------------------------------------------------------------

_INT_RANGES = {
    ScalarType.BYTE: (-(2 ** 7), 2 ** 7 - 1),
    ScalarType.SHORT: (-(2 ** 15), 2 ** 15 - 1),
    ScalarType.INT: (-(2 ** 31), 2 ** 31 - 1),
    ScalarType.LONG: (-(2 ** 63), 2 ** 63 - 1),
}


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        raise TypeError("boolean is not an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError("non-integral float")
        return int(value)
    text = str(value).strip()
    try:
        return int(text)
    except ValueError:
        as_float = float(text)
        if not as_float.is_integer():
            raise
        return int(as_float)


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().lower()
    if text in ("true", "1", "yes"):
        return True
    if text in ("false", "0", "no"):
        return False
    raise ValueError("not a boolean")


def _iso(value: Any) -> str:
    text = str(value).strip()
    return text[:-1] + "+00:00" if text.endswith("Z") else text


def _to_timestamp(value: Any) -> dt.datetime:
    if isinstance(value, dt.datetime):
        return value
    if isinstance(value, dt.date):
        return dt.datetime(value.year, value.month, value.day)
    return dt.datetime.fromisoformat(_iso(value))


def _to_date(value: Any) -> dt.date:
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    text = _iso(value)
    if "T" in text:
        return dt.datetime.fromisoformat(text).date()
    return dt.date.fromisoformat(text)


def _to_time(value: Any) -> dt.time:
    if isinstance(value, dt.datetime):
        return value.time()
    if isinstance(value, dt.time):
        return value
    return dt.time.fromisoformat(_iso(value))


def _to_string(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _to_char(value: Any) -> str:
    text = _to_string(value)
    if len(text) != 1:
        raise ValueError("char must be a single character")
    return text


def coerce(value: Any, scalar_type: ScalarType, column: Optional[str] = None) -> Any:
    """
    Convert a raw document value to the Python value for scalar_type.

    None stays None; an empty string is None for every type but string.

    Raises:
        ValueConversionError: if the value cannot be represented.
    """
    if value is None:
        return None
    if scalar_type is ScalarType.STRING:
        return _to_string(value)
    if isinstance(value, str) and value.strip() == "":
        return None

    try:
        if scalar_type in _INT_RANGES:
            result = _to_int(value)
            low, high = _INT_RANGES[scalar_type]
            if not low <= result <= high:
                raise ValueError("out of range")
            return result
        if scalar_type in (ScalarType.FLOAT, ScalarType.DOUBLE):
            if isinstance(value, bool):
                raise TypeError("boolean is not a number")
            return float(value)
        if scalar_type is ScalarType.BOOLEAN:
            return _to_bool(value)
        if scalar_type is ScalarType.TIMESTAMP:
            return _to_timestamp(value)
        if scalar_type is ScalarType.DATE:
            return _to_date(value)
        if scalar_type is ScalarType.TIME:
            return _to_time(value)
        if scalar_type is ScalarType.UUID:
            return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
        if scalar_type is ScalarType.CHAR:
            return _to_char(value)
    except (TypeError, ValueError) as exc:
        raise ValueConversionError(value, scalar_type.value, column) from exc

    return _to_string(value)
