"""Composite vectors: typed value objects over a field layout.

Subclasses declare their fields once; the layout is built when the class is
created, so a malformed schema (duplicate labels, non-field entries) fails at
definition time rather than on first use.

Example:
    >>> class MyState(CompositeVector):
    ...     fields = (
    ...         Field("velocity", Vector(3)),
    ...         Field("attitude", Quaternion()),
    ...         Field("altitude", Scalar()),
    ...     )
    >>> x = MyState()
    >>> x.set_field("altitude", 1000.0)
    >>> x.get_field("altitude")
    1000.0
    >>> MyState.dimension()
    7
"""

from typing import Any, Callable, ClassVar, Hashable, Optional, Sequence

import numpy as np
from numpy.typing import ArrayLike, NDArray

from ukfcore.errors import DimensionMismatch
from ukfcore.fields.layout import Field, FieldLayout, build_layout


class CompositeVector:
    """Ordered, labelled collection of typed fields stored in one array.

    Attributes:
        fields: Field declarations, set by subclasses.
        layout: Layout built from ``fields`` (class level).
    """

    fields: ClassVar[Sequence[Field]] = ()
    layout: ClassVar[Optional[FieldLayout]] = None

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if "fields" in cls.__dict__:
            if not cls.fields:
                raise ValueError(f"{cls.__name__} declares no fields")
            cls.layout = build_layout(cls.fields)
            cls.fields = cls.layout.fields

    def __init__(self, data: Optional[ArrayLike] = None):
        layout = self._require_layout()
        if data is None:
            self._data = layout.default_storage()
        else:
            self._data = self._normalized(layout, layout.check_storage(data).copy())

    @classmethod
    def _require_layout(cls) -> FieldLayout:
        if cls.layout is None:
            raise TypeError(f"{cls.__name__} has no declared fields")
        return cls.layout

    @staticmethod
    def _normalized(layout: FieldLayout, data: NDArray[np.float64]) -> NDArray[np.float64]:
        # Route every field through its type so quaternions come out unit norm.
        for f in layout:
            s = layout.storage_slice(f.label)
            data[s] = f.type.to_storage(data[s])
        return data

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    @classmethod
    def from_array(cls, data: ArrayLike) -> "CompositeVector":
        """Build a vector from its flat storage array."""
        return cls(data)

    @classmethod
    def dimension(cls) -> int:
        """Tangent-space dimension L of the vector."""
        return cls._require_layout().dimension()

    def _layout(self) -> FieldLayout:
        """Layout of this instance's storage."""
        return type(self).layout

    def _sibling(self, data: NDArray[np.float64]) -> "CompositeVector":
        """New vector with the same type and layout as this one.

        ``data`` is already valid storage and is kept as given; running it
        through ``_normalized`` again could change the last bit of a unit
        quaternion.
        """
        vector = type(self).__new__(type(self))
        vector._data = data
        return vector

    def _factory(self) -> Callable[[NDArray[np.float64]], "CompositeVector"]:
        """Constructor for vectors sharing this instance's current layout."""
        return self._sibling

    # ------------------------------------------------------------------
    # Field access
    # ------------------------------------------------------------------

    def get_field(self, label: Hashable) -> Any:
        layout = self._layout()
        f = layout.field(label)
        return f.type.from_storage(self._data[layout.storage_slice(label)])

    def set_field(self, label: Hashable, value: Any) -> None:
        layout = self._layout()
        f = layout.field(label)
        self._data[layout.storage_slice(label)] = f.type.to_storage(value)

    def as_array(self) -> NDArray[np.float64]:
        """Copy of the flat storage array."""
        return self._data.copy()

    def copy(self) -> "CompositeVector":
        return self._sibling(self._data.copy())

    # ------------------------------------------------------------------
    # Tangent-space arithmetic
    # ------------------------------------------------------------------

    def retract(self, delta: ArrayLike) -> "CompositeVector":
        """self ⊕ delta."""
        return self._sibling(self._layout().retract(self._data, delta))

    def difference(self, other: "CompositeVector") -> NDArray[np.float64]:
        """self ⊖ other, in tangent space."""
        if other._layout() != self._layout():
            raise DimensionMismatch(
                f"Cannot difference {type(self).__name__} against {type(other).__name__}"
            )
        return self._layout().difference(self._data, other._data)

    # ------------------------------------------------------------------
    # Value-object protocol
    # ------------------------------------------------------------------

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self._layout() == other._layout() and np.array_equal(self._data, other._data)

    __hash__ = None  # mutable

    def __repr__(self) -> str:
        layout = self._layout()
        parts = ", ".join(f"{f.label!r}={self.get_field(f.label)!r}" for f in layout)
        return f"{type(self).__name__}({parts})"
