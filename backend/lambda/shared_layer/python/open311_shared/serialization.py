"""open311_shared.serialization — DynamoDB serialization/deserialization.

TypeSerializer/TypeDeserializer wrappers plus timestamp helpers. DynamoDB
rejects Python floats, so floats are converted to Decimal on the way in
(recursively, for nested maps and lists) and Decimals are turned back into
int/float on the way out.
"""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Any, Dict

from boto3.dynamodb.types import TypeDeserializer, TypeSerializer

__all__ = [
    "_deserialize",
    "_json_default",
    "_now_z",
    "_serialize",
    "_serialize_item",
]

_SER = TypeSerializer()
_DESER = TypeDeserializer()


def _to_ddb_value(value: Any) -> Any:
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: _to_ddb_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_ddb_value(v) for v in value]
    return value


def _from_ddb_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: _from_ddb_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_from_ddb_value(v) for v in value]
    return value


def _serialize(value: Any) -> Dict[str, Any]:
    """Serialize a Python value for DynamoDB."""
    return _SER.serialize(_to_ddb_value(value))


def _serialize_item(item: Dict[str, Any]) -> Dict[str, Any]:
    """Serialize a flat dict into a DynamoDB item, dropping None values."""
    return {k: _serialize(v) for k, v in item.items() if v is not None}


def _deserialize(item: Dict[str, Any]) -> Dict[str, Any]:
    """Deserialize a DynamoDB item to a plain Python dict."""
    return {k: _from_ddb_value(_DESER.deserialize(v)) for k, v in item.items()}


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, set):
        return sorted(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _now_z() -> str:
    """Current UTC timestamp in RFC 3339 format with Z suffix."""
    return dt.datetime.now(dt.timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
