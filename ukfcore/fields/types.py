"""Value types a composite vector field can hold.

Each type knows how many reals it stores, how many tangent-space dimensions
it contributes to a covariance, and how to do the three manifold operations
the unscented transform needs:

    retract(x, δ)      x ⊕ δ   move a stored value along a tangent vector
    difference(x, r)   x ⊖ r   tangent vector taking r to x
    mean(X, w)                 weighted mean of stored values

For Euclidean types these are +, - and the weighted sum. For quaternions
they are right-composition with exp(δ), log(r⁻¹ ⊗ x) and the iterative
tangent-space mean.
"""

from abc import ABC, abstractmethod
from typing import Any

import numpy as np
from numpy.typing import ArrayLike, NDArray

from ukfcore.coords.rotations import (
    IDENTITY_QUATERNION,
    quat_conjugate,
    quat_exp,
    quat_log,
    quat_multiply,
    quat_normalize,
    quaternion_mean,
)
from ukfcore.errors import DimensionMismatch


class FieldType(ABC):
    """Abstract value type of a field.

    Attributes:
        storage_dim: Number of reals stored for the value.
        tangent_dim: Number of tangent-space (covariance) dimensions.
    """

    storage_dim: int
    tangent_dim: int

    @abstractmethod
    def default(self) -> NDArray[np.float64]:
        """Storage of the default value."""

    def to_storage(self, value: ArrayLike) -> NDArray[np.float64]:
        """Validate a user value and convert it to storage form."""
        arr = np.asarray(value, dtype=np.float64).reshape(-1)
        if arr.shape != (self.storage_dim,):
            raise DimensionMismatch(
                f"{self!r} expects {self.storage_dim} value(s), "
                f"got shape {np.shape(value)}"
            )
        return arr

    def from_storage(self, storage: NDArray[np.float64]) -> Any:
        """Convert storage back to the user-facing value (a copy)."""
        return np.array(storage, dtype=np.float64)

    def retract(
        self, storage: NDArray[np.float64], delta: NDArray[np.float64]
    ) -> NDArray[np.float64]:
        return storage + delta

    def difference(
        self, storage: NDArray[np.float64], reference: NDArray[np.float64]
    ) -> NDArray[np.float64]:
        return storage - reference

    def mean(
        self,
        points: NDArray[np.float64],
        weights: NDArray[np.float64],
        convergence: Any = None,
    ) -> NDArray[np.float64]:
        """Weighted mean of stored values, points shaped (N, storage_dim)."""
        return weights @ points

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other) and self.storage_dim == other.storage_dim

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.storage_dim))


class Vector(FieldType):
    """Fixed-size real vector; tangent dimension equals its length."""

    def __init__(self, size: int):
        if int(size) != size or size < 1:
            raise ValueError(f"Vector size must be a positive integer, got {size}")
        self.storage_dim = int(size)
        self.tangent_dim = int(size)

    def default(self) -> NDArray[np.float64]:
        return np.zeros(self.storage_dim, dtype=np.float64)

    def __repr__(self) -> str:
        return f"Vector({self.storage_dim})"


class Scalar(FieldType):
    """Single real number. Values come back as Python floats."""

    storage_dim = 1
    tangent_dim = 1

    def default(self) -> NDArray[np.float64]:
        return np.zeros(1, dtype=np.float64)

    def from_storage(self, storage: NDArray[np.float64]) -> float:
        return float(storage[0])

    def __repr__(self) -> str:
        return "Scalar()"


class Quaternion(FieldType):
    """Unit quaternion [qw, qx, qy, qz]: 4 stored reals, 3 tangent dimensions.

    Every value written or produced by a manifold operation is renormalised
    to unit norm.
    """

    storage_dim = 4
    tangent_dim = 3

    def default(self) -> NDArray[np.float64]:
        return IDENTITY_QUATERNION.copy()

    def to_storage(self, value: ArrayLike) -> NDArray[np.float64]:
        return quat_normalize(super().to_storage(value))

    def retract(
        self, storage: NDArray[np.float64], delta: NDArray[np.float64]
    ) -> NDArray[np.float64]:
        return quat_normalize(quat_multiply(storage, quat_exp(delta)))

    def difference(
        self, storage: NDArray[np.float64], reference: NDArray[np.float64]
    ) -> NDArray[np.float64]:
        return quat_log(quat_multiply(quat_conjugate(reference), storage))

    def mean(
        self,
        points: NDArray[np.float64],
        weights: NDArray[np.float64],
        convergence: Any = None,
    ) -> NDArray[np.float64]:
        if convergence is None:
            return quaternion_mean(points, weights)
        return quaternion_mean(
            points,
            weights,
            tolerance=convergence.tolerance,
            max_iterations=convergence.max_iterations,
        )

    def __repr__(self) -> str:
        return "Quaternion()"
