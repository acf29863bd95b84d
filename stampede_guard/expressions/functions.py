"""
Expression Functions and Methods

Whitelisted free functions and per-type methods available to cache
expressions. Builtin values only expose methods that cannot mutate them.
"""

import re
from collections.abc import Mapping, Sequence, Set
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Optional

from ..domain.cache.value_objects import to_canonical_string

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def to_snake_case(name: str) -> str:
    """``searchType`` -> ``search_type``."""
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def _length(value: Any) -> int:
    if value is None:
        return 0
    return len(value)


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    try:
        return len(value) == 0
    except TypeError:
        return False


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Cannot convert {value!r} to a decimal") from e


def _compare_to(left: Any, right: Any) -> int:
    left, right = _to_decimal(left), _to_decimal(right)
    return (left > right) - (left < right)


# Free functions: ``paramLen(isbn) > 10``
DEFAULT_FUNCTIONS: Dict[str, Callable[..., Any]] = {
    "len": _length,
    "paramLen": _length,
    "length": _length,
    "isEmpty": _is_empty,
    "isNull": lambda value: value is None,
    "notNull": lambda value: value is not None,
    "str": to_canonical_string,
    "decimal": _to_decimal,
    "int": int,
    "abs": abs,
    "min": min,
    "max": max,
    "lower": lambda value: None if value is None else str(value).lower(),
    "upper": lambda value: None if value is None else str(value).upper(),
}


STRING_METHODS: Dict[str, Callable[..., Any]] = {
    "length": len,
    "size": len,
    "isEmpty": lambda s: s == "",
    "isBlank": lambda s: s.strip() == "",
    "startsWith": lambda s, prefix: s.startswith(prefix),
    "endsWith": lambda s, suffix: s.endswith(suffix),
    "contains": lambda s, part: part in s,
    "toUpperCase": str.upper,
    "toLowerCase": str.lower,
    "trim": str.strip,
    "equalsIgnoreCase": lambda s, other: other is not None
    and s.lower() == str(other).lower(),
    "substring": lambda s, begin, end=None: s[begin:end],
    "charAt": lambda s, index: s[index],
    "matches": lambda s, pattern: re.fullmatch(pattern, s) is not None,
}

COLLECTION_METHODS: Dict[str, Callable[..., Any]] = {
    "size": len,
    "length": len,
    "isEmpty": lambda c: len(c) == 0,
    "contains": lambda c, item: item in c,
}

MAPPING_METHODS: Dict[str, Callable[..., Any]] = {
    **COLLECTION_METHODS,
    "containsKey": lambda m, key: key in m,
    "containsValue": lambda m, value: value in m.values(),
    "get": lambda m, key, default=None: m.get(key, default),
    "keys": lambda m: tuple(m.keys()),
    "values": lambda m: tuple(m.values()),
}

NUMBER_METHODS: Dict[str, Callable[..., Any]] = {
    "compareTo": _compare_to,
    "intValue": int,
    "decimalValue": _to_decimal,
    "signum": lambda n: (n > 0) - (n < 0),
    "abs": abs,
}

ANY_METHODS: Dict[str, Callable[..., Any]] = {
    "equals": lambda value, other: value == other,
    "toString": to_canonical_string,
}


def builtin_method(target: Any, name: str) -> Optional[Callable[..., Any]]:
    """
    Resolve a whitelisted method for a builtin value.

    Returns None when ``target`` is not a builtin value or the method is
    not whitelisted for its type.
    """
    table: Optional[Dict[str, Callable[..., Any]]] = None
    if isinstance(target, str):
        table = STRING_METHODS
        if name not in table and not name.startswith("_") and hasattr(str, name):
            # str is immutable so its own public methods are safe
            return getattr(str, name)
    elif isinstance(target, bool):
        table = {}
    elif isinstance(target, (int, float, Decimal)):
        table = NUMBER_METHODS
    elif isinstance(target, Mapping):
        table = MAPPING_METHODS
    elif isinstance(target, (bytes, bytearray, memoryview, Sequence, Set)):
        table = COLLECTION_METHODS

    if table is None:
        return None
    method = table.get(name) or ANY_METHODS.get(name)
    return method


def is_builtin_value(value: Any) -> bool:
    """
    True for scalars and any container, mutable or not.

    Containers cover every Mapping, Sequence and Set including deque,
    bytearray and memoryview. They only expose the read-only method tables.
    """
    return value is None or isinstance(
        value,
        (
            str,
            bytes,
            bytearray,
            memoryview,
            bool,
            int,
            float,
            Decimal,
            Mapping,
            Sequence,
            Set,
        ),
    )
