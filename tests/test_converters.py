"""
Tests for the type-to-schema converter boundary.
"""

from routescan.converters import UNKNOWN_TYPE, convertible, schema_for, wrap_type_alias


class RecordingConverter:
    """Stands in for an external converter and remembers what it was asked."""

    def __init__(self):
        self.calls = []

    def convert(self, type_text):
        self.calls.append(type_text)
        return {"type": "object"}


def test_wrap_type_alias():
    assert wrap_type_alias("{ id: string }") == "export type Response = { id: string }"
    assert wrap_type_alias("User[]", name="Body") == "export type Body = User[]"


def test_unknown_and_absent_types_are_not_converted():
    converter = RecordingConverter()
    assert schema_for(converter, UNKNOWN_TYPE) is None
    assert schema_for(converter, None) is None
    assert converter.calls == []
    assert not convertible("")


def test_known_type_passes_through_wrapped():
    converter = RecordingConverter()
    assert schema_for(converter, "{ ok: boolean; }") == {"type": "object"}
    assert converter.calls == ["export type Response = { ok: boolean; }"]
