"""JSON-friendly conversion of attribute payloads before they are encoded."""

from __future__ import annotations

import datetime
import uuid
from collections.abc import Mapping, Set
from decimal import Decimal
from typing import Any

_ISO_TYPES = (datetime.datetime, datetime.date, datetime.time)
_STR_TYPES = (uuid.UUID, Decimal)


def _decode(raw: bytes | bytearray | memoryview) -> str:
    return bytes(raw).decode("utf-8", errors="replace")


def serialize_value(val: Any) -> Any:
    """Return ``val`` in a form ``json.dumps`` accepts.

    Mapping keys become strings and sets become lists in a stable order.
    Anything unrecognised is returned as is.
    """
    if isinstance(val, _ISO_TYPES):
        return val.isoformat()
    if isinstance(val, (bytes, bytearray, memoryview)):
        return _decode(val)
    if isinstance(val, _STR_TYPES):
        return str(val)
    if isinstance(val, Mapping):
        return {str(key): serialize_value(item) for key, item in val.items()}
    if isinstance(val, Set):
        return sorted(map(serialize_value, val), key=repr)
    if isinstance(val, (list, tuple)):
        return list(map(serialize_value, val))
    return val
