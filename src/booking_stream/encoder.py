"""
Avro encoding of booking keys and payloads.

Two independent codecs are built from fixed schemas:
- Key: record with required string fields provider, provider_uid, date
- Payload: record with four nullable fields, each a ["null", <type>] union

Optional payload fields go through to_union(), which maps None to the
"null" arm and a present value to the arm declared in the schema, so a
present False/0.0/"" is never written as null.
"""

import io
from functools import lru_cache
from typing import Any, Dict, Tuple

from fastavro import parse_schema, schemaless_reader, schemaless_writer

from core.errors import EncodingError, SchemaError
from booking_stream.models import BookingKey, BookingPayload, EncodedMessage

SCHEMA_NAMESPACE = "io.github.ajurasz"

BOOKING_KEY_SCHEMA: Dict[str, Any] = {
    "type": "record",
    "name": "Key",
    "namespace": SCHEMA_NAMESPACE,
    "fields": [
        {"name": "provider", "type": "string"},
        {"name": "provider_uid", "type": "string"},
        {"name": "date", "type": "string"},
    ],
}

BOOKING_PAYLOAD_SCHEMA: Dict[str, Any] = {
    "type": "record",
    "name": "Payload",
    "namespace": SCHEMA_NAMESPACE,
    "fields": [
        {"name": "is_booked", "type": ["null", "boolean"], "default": None},
        {"name": "price", "type": ["null", "double"], "default": None},
        {"name": "booked_price", "type": ["null", "double"], "default": None},
        {"name": "price_source", "type": ["null", "string"], "default": None},
    ],
}

# Python types accepted for each union arm
_ARM_TYPES: Dict[str, Tuple[type, ...]] = {
    "boolean": (bool,),
    "double": (float, int),
    "string": (str,),
}

NULL_ARM = "null"


def to_union(value: Any, arm: str) -> Tuple[str, Any]:
    """
    Map an optional value onto a two-armed ["null", arm] Avro union.

    Returns fastavro tuple notation so the branch is chosen explicitly
    instead of being inferred from the value.

    Raises:
        EncodingError: If the value's type does not match the arm
    """
    if value is None:
        return (NULL_ARM, None)

    accepted = _ARM_TYPES.get(arm)
    if accepted is None:
        raise EncodingError(f"Unsupported union arm '{arm}'")

    # bool is a subclass of int and must not pass as a double
    if (isinstance(value, bool) and arm != "boolean") or not isinstance(value, accepted):
        raise EncodingError(
            f"Value {value!r} of type {type(value).__name__} does not match union arm '{arm}'",
            context={"arm": arm},
        )

    if arm == "double":
        value = float(value)
    return (arm, value)


class AvroCodec:
    """Binary Avro codec for one fixed record schema."""

    def __init__(self, schema: Dict[str, Any]):
        self.name = f"{schema.get('namespace', '')}.{schema.get('name', '')}".lstrip(".")
        try:
            self.schema = parse_schema(schema)
        except Exception as e:
            raise SchemaError(f"Invalid Avro schema '{self.name}'", cause=e) from e

        self.union_arms: Dict[str, str] = {}
        for field in schema["fields"]:
            field_type = field["type"]
            if isinstance(field_type, list):
                self.union_arms[field["name"]] = self._non_null_arm(field["name"], field_type)

    def _non_null_arm(self, field_name: str, union: list) -> str:
        arms = [arm for arm in union if arm != NULL_ARM]
        if len(arms) != 1 or NULL_ARM not in union:
            raise SchemaError(
                f"Field '{field_name}' of '{self.name}' must be a [null, <type>] union, got {union}"
            )
        return arms[0]

    def encode(self, datum: Dict[str, Any]) -> bytes:
        buffer = io.BytesIO()
        try:
            schemaless_writer(buffer, self.schema, datum)
        except Exception as e:
            raise EncodingError(f"Failed to encode record as '{self.name}'", cause=e) from e
        return buffer.getvalue()

    def decode(self, data: bytes) -> Dict[str, Any]:
        return schemaless_reader(io.BytesIO(data), self.schema, None)


@lru_cache(maxsize=None)
def key_codec() -> AvroCodec:
    return AvroCodec(BOOKING_KEY_SCHEMA)


@lru_cache(maxsize=None)
def payload_codec() -> AvroCodec:
    return AvroCodec(BOOKING_PAYLOAD_SCHEMA)


def payload_to_datum(payload: BookingPayload) -> Dict[str, Tuple[str, Any]]:
    """Convert a payload into a datum with every field as an explicit union branch."""
    codec = payload_codec()
    values = payload.model_dump()
    return {name: to_union(values[name], arm) for name, arm in codec.union_arms.items()}


def encode(key: BookingKey, payload: BookingPayload) -> EncodedMessage:
    """
    Encode a booking key and payload into Avro binary.

    Both sides are encoded before anything is returned; a failure on
    either side produces no message.

    Raises:
        SchemaError: If a schema fails to parse
        EncodingError: If a value does not fit its schema
    """
    key_bytes = key_codec().encode(key.model_dump())
    value_bytes = payload_codec().encode(payload_to_datum(payload))
    return EncodedMessage(key=key_bytes, value=value_bytes)


def decode_key(data: bytes) -> Dict[str, Any]:
    return key_codec().decode(data)


def decode_payload(data: bytes) -> Dict[str, Any]:
    return payload_codec().decode(data)


__all__ = [
    "AvroCodec",
    "BOOKING_KEY_SCHEMA",
    "BOOKING_PAYLOAD_SCHEMA",
    "decode_key",
    "decode_payload",
    "encode",
    "key_codec",
    "payload_codec",
    "payload_to_datum",
    "to_union",
]
