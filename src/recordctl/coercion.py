"""Argument conversion for typed record fields.

Type annotations from field declarations (``string``, ``int``, ``bool[]``...)
resolve to converter callables. A generated constructor applies the converter
for each declared field when it binds its arguments; untyped fields pass
values through unchanged.
"""
from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from datetime import datetime
from decimal import Decimal, InvalidOperation
from uuid import UUID

Converter = Callable[[object], object]


class RecordBindingError(TypeError):
    """Raised when an argument cannot be converted to its declared type."""


class UnknownFieldType(LookupError):
    """Raised when a type annotation does not name a supported type."""


def _to_str(value: object) -> str:
    return value if isinstance(value, str) else str(value)


def _to_int(value: object) -> int:
    if isinstance(value, bool):
        raise RecordBindingError(f"Cannot convert boolean {value!r} to int.")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise RecordBindingError(f"Cannot convert {value!r} to int without losing precision.")
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text, 10)
        except ValueError:
            pass
        try:
            return int(text, 0)
        except ValueError as exc:
            raise RecordBindingError(f"Cannot convert {value!r} to int.") from exc
    raise RecordBindingError(f"Cannot convert {type(value).__name__} to int.")


def _to_float(value: object) -> float:
    if isinstance(value, bool):
        raise RecordBindingError(f"Cannot convert boolean {value!r} to float.")
    if isinstance(value, (int, float, Decimal)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError as exc:
            raise RecordBindingError(f"Cannot convert {value!r} to float.") from exc
    raise RecordBindingError(f"Cannot convert {type(value).__name__} to float.")


def _to_decimal(value: object) -> Decimal:
    if isinstance(value, bool):
        raise RecordBindingError(f"Cannot convert boolean {value!r} to decimal.")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float, str)):
        try:
            return Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise RecordBindingError(f"Cannot convert {value!r} to decimal.") from exc
    raise RecordBindingError(f"Cannot convert {type(value).__name__} to decimal.")


def _to_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in {"true", "1"}:
            return True
        if text in {"false", "0"}:
            return False
    raise RecordBindingError(f"Cannot convert {value!r} to bool.")


def _to_datetime(value: object) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError as exc:
            raise RecordBindingError(f"Cannot convert {value!r} to datetime.") from exc
    raise RecordBindingError(f"Cannot convert {type(value).__name__} to datetime.")


def _to_char(value: object) -> str:
    text = value if isinstance(value, str) else str(value)
    if len(text) != 1:
        raise RecordBindingError(f"Cannot convert {value!r} to a single character.")
    return text


def _to_guid(value: object) -> UUID:
    if isinstance(value, UUID):
        return value
    if isinstance(value, str):
        try:
            return UUID(value.strip())
        except ValueError as exc:
            raise RecordBindingError(f"Cannot convert {value!r} to guid.") from exc
    raise RecordBindingError(f"Cannot convert {type(value).__name__} to guid.")


def _to_mapping(value: object) -> dict[object, object]:
    if isinstance(value, Mapping):
        return dict(value)
    raise RecordBindingError(f"Cannot convert {type(value).__name__} to a mapping.")


def _passthrough(value: object) -> object:
    return value


def _array_of(element: Converter) -> Converter:
    def convert(value: object) -> list[object]:
        if isinstance(value, (str, bytes, Mapping)) or not isinstance(value, Iterable):
            items: Iterable[object] = [value]
        else:
            items = value
        return [item if item is None else element(item) for item in items]

    return convert


SYSTEM_NAMESPACE = "system."

SCALAR_CONVERTERS: dict[str, Converter] = {
    "string": _to_str,
    "str": _to_str,
    "char": _to_char,
    "int": _to_int,
    "int16": _to_int,
    "int32": _to_int,
    "int64": _to_int,
    "long": _to_int,
    "double": _to_float,
    "float": _to_float,
    "single": _to_float,
    "decimal": _to_decimal,
    "bool": _to_bool,
    "boolean": _to_bool,
    "switch": _to_bool,
    "datetime": _to_datetime,
    "guid": _to_guid,
    "hashtable": _to_mapping,
    "collections.hashtable": _to_mapping,
    "dict": _to_mapping,
    "object": _passthrough,
    "psobject": _passthrough,
    "pscustomobject": _passthrough,
    "array": _array_of(_passthrough),
}


def resolve_converter(type_name: str) -> Converter | None:
    """Return the converter for *type_name*, or ``None`` for untyped fields.

    Names are case-insensitive and may carry a ``System.`` namespace
    (``System.Int32`` resolves like ``int32``).
    """
    normalized = type_name.strip().lower()
    if not normalized:
        return None
    if normalized.endswith("[]"):
        element = resolve_converter(normalized[:-2])
        if element is None:
            raise UnknownFieldType(f"Unsupported array element type in {type_name!r}.")
        return _array_of(element)
    if normalized.startswith(SYSTEM_NAMESPACE):
        normalized = normalized[len(SYSTEM_NAMESPACE) :]
    try:
        return SCALAR_CONVERTERS[normalized]
    except KeyError:
        raise UnknownFieldType(f"Unsupported field type {type_name!r}.") from None


def coerce(type_name: str, value: object) -> object:
    """Convert *value* to the type named by *type_name*; ``None`` passes through."""
    converter = resolve_converter(type_name)
    if converter is None or value is None:
        return value
    return converter(value)


__all__ = [
    "Converter",
    "RecordBindingError",
    "SCALAR_CONVERTERS",
    "UnknownFieldType",
    "coerce",
    "resolve_converter",
]
