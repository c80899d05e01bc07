"""
Boundary to the external type-to-schema converter.

Route type texts (``returnType``, ``bodyType``) are opaque here. Schema
generators hand them to a converter through this interface, wrapped as a
named type alias, and get back a schema fragment.
"""
from typing import Any, Dict, Optional, Protocol

from .config import settings

UNKNOWN_TYPE = settings.UNKNOWN_TYPE


class TypeSchemaConverter(Protocol):
    def convert(self, type_text: str) -> Dict[str, Any]:
        """Convert a type alias declaration into a schema fragment."""
        ...


def wrap_type_alias(type_text: str, name: str = "Response") -> str:
    return f"export type {name} = {type_text}"


def convertible(type_text: Optional[str]) -> bool:
    """Whether a route type text carries information worth converting."""
    return bool(type_text) and type_text != UNKNOWN_TYPE


def schema_for(converter: TypeSchemaConverter, type_text: Optional[str], name: str = "Response") -> Optional[Dict[str, Any]]:
    """Schema fragment for ``type_text``, or None for absent and unknown types."""
    if not convertible(type_text):
        return None
    return converter.convert(wrap_type_alias(type_text, name))
