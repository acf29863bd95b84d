"""
Unit tests for cache value serializers.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

import pytest

from stampede_guard.domain.cache.exceptions import (
    ConfigurationError,
    SerializationError,
)
from stampede_guard.infrastructure.serializers import (
    JsonSerializer,
    PickleSerializer,
    get_serializer,
)


class TestPickleSerializer:
    """Test PickleSerializer."""

    def test_domain_objects(self, sample_book):
        """Test dataclass graphs survive a store round trip."""
        serializer = PickleSerializer()

        assert serializer.loads(serializer.dumps(sample_book)) == sample_book

    def test_unpicklable_value(self):
        """Test lambdas raise SerializationError."""
        with pytest.raises(SerializationError) as exc_info:
            PickleSerializer().dumps(lambda: None)

        assert exc_info.value.details["serializer"] == "pickle"

    def test_corrupt_payload(self):
        """Test garbage bytes raise SerializationError."""
        with pytest.raises(SerializationError):
            PickleSerializer().loads(b"not a pickle")


class TestJsonSerializer:
    """Test JsonSerializer."""

    def test_tagged_scalars(self):
        """Test Decimal, datetime, date and UUID are restored with their types."""
        value = {
            "price": Decimal("19.99"),
            "published": date(2020, 5, 1),
            "updated": datetime(2024, 1, 2, 3, 4, 5),
            "id": UUID("12345678-1234-5678-1234-567812345678"),
            "tags": ["a", "b"],
        }
        serializer = JsonSerializer()

        assert serializer.loads(serializer.dumps(value)) == value

    def test_compact_output(self):
        """Test the encoded form has no padding."""
        assert JsonSerializer().dumps({"a": [1, 2]}) == b'{"a":[1,2]}'

    def test_unsupported_type(self, sample_book):
        """Test arbitrary objects are rejected."""
        with pytest.raises(SerializationError):
            JsonSerializer().dumps(sample_book)

    def test_invalid_payload(self):
        """Test malformed JSON raises SerializationError."""
        with pytest.raises(SerializationError):
            JsonSerializer().loads(b"{nope")

    def test_lossy_containers(self):
        """Test tuples become lists and int keys become strings."""
        serializer = JsonSerializer()

        restored = serializer.loads(serializer.dumps({"pair": (1, 2), 7: "seven"}))

        assert restored == {"pair": [1, 2], "7": "seven"}

    def test_tag_shaped_dict_is_decoded(self):
        """Test user data shaped like a tag is decoded as the tagged type."""
        serializer = JsonSerializer()

        restored = serializer.loads(serializer.dumps({"__decimal__": "1.5"}))

        assert restored == Decimal("1.5")

    def test_set_rejected(self):
        """Test sets are not silently converted."""
        with pytest.raises(SerializationError):
            JsonSerializer().dumps({1, 2})


class TestGetSerializer:
    """Test serializer lookup."""

    def test_known_names(self):
        """Test lookup is case-insensitive."""
        assert isinstance(get_serializer("pickle"), PickleSerializer)
        assert isinstance(get_serializer("JSON"), JsonSerializer)

    def test_unknown_name(self):
        """Test unknown serializer names are configuration errors."""
        with pytest.raises(ConfigurationError) as exc_info:
            get_serializer("msgpack")

        assert exc_info.value.details["config_key"] == "CACHE_SERIALIZER"
