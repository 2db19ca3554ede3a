from __future__ import annotations

from typing import Any

import orjson

ORJSON_OPTIONS = orjson.OPT_NON_STR_KEYS | orjson.OPT_UTC_Z


def canonical_bytes(data: Any) -> bytes:
    """Return canonical JSON bytes for node data."""
    return orjson.dumps(data, option=ORJSON_OPTIONS)


def from_bytes(data: bytes | None) -> Any:
    """Decode node data; empty or missing data decodes to None."""
    if not data:
        return None
    return orjson.loads(data)
