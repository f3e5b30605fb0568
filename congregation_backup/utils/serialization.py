"""
Conversion of stored records to JSON-compatible values.

Records are opaque documents, but the store and the snapshot file only
hold JSON. Values that JSON cannot carry are converted the same way
everywhere:
- datetime/date objects become ISO format strings
- bytes become base64 text
- objects with a __dict__ become dictionaries
- anything else unknown becomes its str()
"""

from __future__ import annotations

import base64
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any


def serialize_value(value: Any) -> Any:
    """Convert a single value to a JSON-compatible value."""
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, bytes):
        return base64.b64encode(value).decode("ascii")
    if isinstance(value, Mapping):
        return {str(k): serialize_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [serialize_value(v) for v in value]
    if hasattr(value, "__dict__"):
        return serialize_value(vars(value))
    return str(value)


def serialize_record(record: Any) -> dict[str, Any]:
    """
    Serialize a record to a JSON-compatible dictionary.

    Args:
        record: A mapping, or an object whose attributes form the record

    Returns:
        Dictionary representation of the record

    Raises:
        TypeError: If the record is neither a mapping nor an object with
                   attributes
    """
    if isinstance(record, Mapping):
        return {str(k): serialize_value(v) for k, v in record.items()}
    if hasattr(record, "__dict__"):
        return {str(k): serialize_value(v) for k, v in vars(record).items()}
    raise TypeError(f"Record must be a mapping, got {type(record).__name__}")
