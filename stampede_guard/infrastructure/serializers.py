"""
Cache Value Serializers

Encode values for byte-oriented stores. Pickle handles any picklable
value and is the default; JSON is restricted to JSON-compatible values
plus a few tagged scalar types.
"""

import json
import pickle
from abc import ABC, abstractmethod
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict
from uuid import UUID

from ..domain.cache.exceptions import ConfigurationError, SerializationError


class Serializer(ABC):
    """Value <-> bytes codec."""

    name: str = "abstract"

    @abstractmethod
    def dumps(self, value: Any) -> bytes:
        pass

    @abstractmethod
    def loads(self, data: bytes) -> Any:
        pass


class PickleSerializer(Serializer):
    """Pickle serializer. Only use with stores the application trusts."""

    name = "pickle"

    def __init__(self, protocol: int = pickle.HIGHEST_PROTOCOL):
        self._protocol = protocol

    def dumps(self, value: Any) -> bytes:
        try:
            return pickle.dumps(value, protocol=self._protocol)
        except (pickle.PicklingError, TypeError, AttributeError) as e:
            raise SerializationError(
                f"Value of type {type(value).__name__} is not picklable",
                serializer=self.name,
                original_error=e,
            )

    def loads(self, data: bytes) -> Any:
        try:
            return pickle.loads(data)
        except Exception as e:
            raise SerializationError(
                "Failed to unpickle cached value",
                serializer=self.name,
                original_error=e,
            )


def _encode_tagged(obj: Any) -> Dict[str, Any]:
    if isinstance(obj, Decimal):
        return {"__decimal__": str(obj)}
    if isinstance(obj, datetime):
        return {"__datetime__": obj.isoformat()}
    if isinstance(obj, date):
        return {"__date__": obj.isoformat()}
    if isinstance(obj, UUID):
        return {"__uuid__": str(obj)}
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


_TAG_DECODERS = {
    "__decimal__": Decimal,
    "__datetime__": datetime.fromisoformat,
    "__date__": date.fromisoformat,
    "__uuid__": UUID,
}


def _decode_tagged(obj: Dict[str, Any]) -> Any:
    if len(obj) == 1:
        tag, raw = next(iter(obj.items()))
        decoder = _TAG_DECODERS.get(tag)
        if decoder is not None:
            return decoder(raw)
    return obj


class JsonSerializer(Serializer):
    """
    JSON serializer with Decimal, datetime, date and UUID support.

    Round trips are lossy outside plain JSON data:
    - tuples and other sequences come back as lists
    - non-string mapping keys come back as strings
    - sets and arbitrary objects are rejected with SerializationError
    - a one-key dict shaped like a tag, e.g. ``{"__decimal__": "1"}``, is
      decoded as the tagged type

    Use the pickle serializer when cached values need exact types.
    """

    name = "json"

    def dumps(self, value: Any) -> bytes:
        try:
            return json.dumps(value, default=_encode_tagged, separators=(",", ":")).encode(
                "utf-8"
            )
        except (TypeError, ValueError) as e:
            raise SerializationError(
                str(e), serializer=self.name, original_error=e
            )

    def loads(self, data: bytes) -> Any:
        try:
            return json.loads(data, object_hook=_decode_tagged)
        except (TypeError, ValueError) as e:
            raise SerializationError(
                "Failed to decode cached JSON value",
                serializer=self.name,
                original_error=e,
            )


SERIALIZERS = {
    PickleSerializer.name: PickleSerializer,
    JsonSerializer.name: JsonSerializer,
}


def get_serializer(name: str) -> Serializer:
    """Instantiate a serializer by its configured name."""
    try:
        return SERIALIZERS[name.lower()]()
    except KeyError:
        raise ConfigurationError(
            f"Unknown serializer '{name}'. Available: {sorted(SERIALIZERS)}",
            config_key="CACHE_SERIALIZER",
        )
