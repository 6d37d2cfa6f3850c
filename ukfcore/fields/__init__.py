"""Typed field layouts and composite vectors.

Available building blocks:
    - Value types: Vector(n), Scalar(), Quaternion()
    - Field: (label, value type) declaration
    - FieldLayout: ordered schema with storage and tangent offsets
    - CompositeVector: value object over a layout
"""

from ukfcore.fields.layout import Field, FieldLayout
from ukfcore.fields.types import FieldType, Quaternion, Scalar, Vector
from ukfcore.fields.vector import CompositeVector

__all__ = [
    "CompositeVector",
    "Field",
    "FieldLayout",
    "FieldType",
    "Quaternion",
    "Scalar",
    "Vector",
]
