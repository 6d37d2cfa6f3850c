"""Ordered field schemas.

A :class:`FieldLayout` is built once from an ordered list of
:class:`Field` declarations. It fixes, for every label, where the value
lives in the flat storage array and which rows/columns it owns in a
covariance matrix, so that vectors, sigma-point distributions, deltas and
covariances derived from the same layout always agree on field order.

Example:
    >>> layout = FieldLayout([
    ...     Field("velocity", Vector(3)),
    ...     Field("attitude", Quaternion()),
    ...     Field("altitude", Scalar()),
    ... ])
    >>> layout.storage_dim, layout.dimension()
    (8, 7)
    >>> layout.tangent_slice("attitude")
    slice(3, 6, None)
"""

from dataclasses import dataclass
from typing import Any, Dict, Hashable, Iterable, Iterator, List, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray

from ukfcore.errors import DimensionMismatch, UnknownFieldError
from ukfcore.fields.types import FieldType


@dataclass(frozen=True)
class Field:
    """A labelled, typed component of a composite vector.

    Attributes:
        label: Any hashable identifier (string or Enum member).
        type: Value type of the field (Vector(n), Scalar() or Quaternion()).
    """

    label: Hashable
    type: FieldType

    def __post_init__(self) -> None:
        if not isinstance(self.type, FieldType):
            raise TypeError(
                f"Field {self.label!r} type must be a FieldType instance, "
                f"got {type(self.type).__name__}"
            )


class FieldLayout:
    """Offsets and dimensions of an ordered set of fields."""

    def __init__(self, fields: Iterable[Field]):
        self.fields: Tuple[Field, ...] = tuple(fields)

        self._index: Dict[Hashable, int] = {}
        self._storage: List[slice] = []
        self._tangent: List[slice] = []

        storage_offset = 0
        tangent_offset = 0
        for i, f in enumerate(self.fields):
            if not isinstance(f, Field):
                raise TypeError(f"Expected Field, got {type(f).__name__}")
            if f.label in self._index:
                raise ValueError(f"Duplicate field label {f.label!r}")
            self._index[f.label] = i
            self._storage.append(slice(storage_offset, storage_offset + f.type.storage_dim))
            self._tangent.append(slice(tangent_offset, tangent_offset + f.type.tangent_dim))
            storage_offset += f.type.storage_dim
            tangent_offset += f.type.tangent_dim

        self.storage_dim = storage_offset
        self.tangent_dim = tangent_offset

    # ------------------------------------------------------------------
    # Schema queries
    # ------------------------------------------------------------------

    @property
    def labels(self) -> Tuple[Hashable, ...]:
        return tuple(f.label for f in self.fields)

    def dimension(self) -> int:
        """Tangent-space dimension L (sum of field tangent dimensions)."""
        return self.tangent_dim

    def __len__(self) -> int:
        return len(self.fields)

    def __iter__(self) -> Iterator[Field]:
        return iter(self.fields)

    def __contains__(self, label: Hashable) -> bool:
        return label in self._index

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FieldLayout):
            return NotImplemented
        return self.fields == other.fields

    def __hash__(self) -> int:
        return hash(self.fields)

    def __repr__(self) -> str:
        body = ", ".join(f"{f.label!r}: {f.type!r}" for f in self.fields)
        return f"FieldLayout({body})"

    def index(self, label: Hashable) -> int:
        try:
            return self._index[label]
        except (KeyError, TypeError):
            raise UnknownFieldError(f"Field {label!r} is not declared in {self!r}") from None

    def field(self, label: Hashable) -> Field:
        return self.fields[self.index(label)]

    def storage_slice(self, label: Hashable) -> slice:
        return self._storage[self.index(label)]

    def tangent_slice(self, label: Hashable) -> slice:
        return self._tangent[self.index(label)]

    def default_storage(self) -> NDArray[np.float64]:
        if not self.fields:
            return np.zeros(0, dtype=np.float64)
        return np.concatenate([f.type.default() for f in self.fields])

    def subset(self, labels: Iterable[Hashable]) -> "FieldLayout":
        """Layout of the given labels, kept in declaration order."""
        wanted = {self.index(label) for label in labels}
        return FieldLayout(f for i, f in enumerate(self.fields) if i in wanted)

    def mask(self, labels: Iterable[Hashable]) -> int:
        """Bitmask with bit i set for every given label declared at position i."""
        result = 0
        for label in labels:
            result |= 1 << self.index(label)
        return result

    def labels_from_mask(self, mask: int) -> Tuple[Hashable, ...]:
        if mask < 0 or mask >> len(self.fields):
            raise ValueError(f"Mask {mask:#x} has bits outside {len(self.fields)} fields")
        return tuple(f.label for i, f in enumerate(self.fields) if mask >> i & 1)

    # ------------------------------------------------------------------
    # Manifold operations over whole storage arrays
    # ------------------------------------------------------------------

    def check_storage(self, storage: Any) -> NDArray[np.float64]:
        storage = np.asarray(storage, dtype=np.float64)
        if storage.shape != (self.storage_dim,):
            raise DimensionMismatch(
                f"Expected storage of shape ({self.storage_dim},), got {storage.shape}"
            )
        return storage

    def retract(
        self, storage: NDArray[np.float64], delta: NDArray[np.float64]
    ) -> NDArray[np.float64]:
        """storage ⊕ delta, field by field."""
        delta = np.asarray(delta, dtype=np.float64)
        if delta.shape != (self.tangent_dim,):
            raise DimensionMismatch(
                f"Expected tangent vector of shape ({self.tangent_dim},), got {delta.shape}"
            )
        out = np.empty(self.storage_dim, dtype=np.float64)
        for f, s, t in zip(self.fields, self._storage, self._tangent):
            out[s] = f.type.retract(storage[s], delta[t])
        return out

    def difference(
        self, storage: NDArray[np.float64], reference: NDArray[np.float64]
    ) -> NDArray[np.float64]:
        """storage ⊖ reference, field by field."""
        out = np.empty(self.tangent_dim, dtype=np.float64)
        for f, s, t in zip(self.fields, self._storage, self._tangent):
            out[t] = f.type.difference(storage[s], reference[s])
        return out

    def mean(
        self,
        points: NDArray[np.float64],
        weights: NDArray[np.float64],
        convergence: Optional[Any] = None,
    ) -> NDArray[np.float64]:
        """Weighted manifold mean of stored points shaped (N, storage_dim)."""
        out = np.empty(self.storage_dim, dtype=np.float64)
        for f, s in zip(self.fields, self._storage):
            out[s] = f.type.mean(points[:, s], weights, convergence)
        return out


def build_layout(fields: Sequence[Field]) -> FieldLayout:
    """Build a layout, accepting an existing layout unchanged."""
    if isinstance(fields, FieldLayout):
        return fields
    return FieldLayout(fields)
