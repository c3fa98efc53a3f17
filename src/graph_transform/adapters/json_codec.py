# graph_transform/adapters/json_codec.py
from __future__ import annotations

import base64
import json
from datetime import date, datetime, time
from enum import Enum
from typing import Any, Union

JsonText = Union[str, bytes, bytearray]


def _to_json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode_json(value: Any, **kwargs: Any) -> str:
    kwargs.setdefault("ensure_ascii", False)
    kwargs.setdefault("default", _to_json_default)
    return json.dumps(value, **kwargs)


def decode_json(text: JsonText) -> Any:
    return json.loads(text)


__all__ = ["JsonText", "decode_json", "encode_json"]
