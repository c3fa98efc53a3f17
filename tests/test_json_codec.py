from __future__ import annotations

import json
from datetime import date, time
from enum import Enum

import pytest

from graph_transform.adapters.json_codec import decode_json, encode_json


class Mood(Enum):
    CALM = "calm"


def test_encode_json_uses_iso_dates_lists_base64_and_enum_values() -> None:
    text = encode_json(
        {
            "day": date(2024, 2, 29),
            "at": time(12, 30),
            "pair": (1, 2),
            "blob": bytearray(b"\x00\x01"),
            "mood": Mood.CALM,
        }
    )

    assert json.loads(text) == {
        "day": "2024-02-29",
        "at": "12:30:00",
        "pair": [1, 2],
        "blob": "AAE=",
        "mood": "calm",
    }


def test_encode_json_keeps_caller_arguments() -> None:
    assert encode_json({"b": 1, "a": 2}, sort_keys=True) == '{"a": 2, "b": 1}'
    assert encode_json({"name": "Zoë"}) == '{"name": "Zoë"}'


def test_encode_json_rejects_unknown_objects() -> None:
    with pytest.raises(TypeError, match="object"):
        encode_json({"x": object()})


def test_decode_json_accepts_text_and_bytes() -> None:
    assert decode_json('{"a": [1, 2]}') == {"a": [1, 2]}
    assert decode_json(b"[true, null]") == [True, None]
