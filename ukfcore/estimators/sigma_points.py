"""Sigma-point parameters, weights and containers.

Scaled unscented transform (Julier & Uhlmann; Van der Merwe 2004):

    λ    = α² (L + κ) - L
    c    = L + λ                       spread: S Sᵀ = c P
    Wm₀  = λ / (L + λ)
    Wc₀  = Wm₀ + (1 - α² + β)
    Wᵢ   = 1 / (2 (L + λ))            i = 1 .. 2L, mean and covariance

so that Wm₀ + 2L Wᵢ = 1. L is always the dimension of the vector the sigma
points were generated from; distributions propagated into another vector
type keep the source's weights.

Defaults are α = 1, β = 0, κ = 3, which makes Wm₀ = Wc₀ = 3 / (L + 3).
"""

import numbers
import warnings
from dataclasses import dataclass
from typing import Callable, Iterator, Sequence

import numpy as np
from numpy.typing import ArrayLike, NDArray

from ukfcore.errors import DimensionMismatch
from ukfcore.fields.layout import FieldLayout
from ukfcore.fields.vector import CompositeVector


@dataclass(frozen=True)
class UnscentedParameters:
    """Spread parameters of the scaled unscented transform.

    Attributes:
        alpha: Spread of the sigma points around the mean (0 < alpha).
        beta: Prior knowledge of the distribution (2 is optimal for Gaussians).
        kappa: Secondary scaling parameter.

    Example:
        >>> params = UnscentedParameters()
        >>> w = params.weights(10)
        >>> round(w.mean_central + 2 * 10 * w.peripheral, 12)
        1.0
    """

    alpha: float = 1.0
    beta: float = 0.0
    kappa: float = 3.0

    def __post_init__(self) -> None:
        for name in ("alpha", "beta", "kappa"):
            value = getattr(self, name)
            if not isinstance(value, numbers.Real) or not np.isfinite(value):
                raise ValueError(f"{name} must be a finite number, got {value!r}")
        if self.alpha <= 0:
            raise ValueError(f"alpha must be positive, got {self.alpha}")
        if self.alpha > 1:
            warnings.warn(
                f"alpha = {self.alpha} spreads sigma points beyond the usual "
                f"1e-4 <= alpha <= 1 range",
                UserWarning,
            )

    def scaling(self, dimension: int) -> float:
        """Spread factor c = L + λ = α² (L + κ)."""
        lambda_ = self.alpha**2 * (dimension + self.kappa) - dimension
        return dimension + lambda_

    def weights(self, dimension: int) -> "UnscentedWeights":
        return UnscentedWeights.for_dimension(dimension, self)


DEFAULT_PARAMETERS = UnscentedParameters()


@dataclass(frozen=True)
class MeanConvergence:
    """Stopping rule for the iterative quaternion mean.

    Attributes:
        tolerance: Stop once the tangent-space update norm falls below this
            value (radians).
        max_iterations: Iteration budget; exceeding it raises
            MeanDidNotConverge.
    """

    tolerance: float = 1e-9
    max_iterations: int = 50

    def __post_init__(self) -> None:
        if not self.tolerance > 0:
            raise ValueError(f"tolerance must be positive, got {self.tolerance}")
        if int(self.max_iterations) != self.max_iterations or self.max_iterations < 1:
            raise ValueError(
                f"max_iterations must be a positive integer, got {self.max_iterations}"
            )


DEFAULT_CONVERGENCE = MeanConvergence()


@dataclass(frozen=True)
class UnscentedWeights:
    """Weights for 2L + 1 sigma points.

    Attributes:
        dimension: Source dimension L.
        scale: Spread factor c = L + λ.
        mean_central: Wm₀.
        covariance_central: Wc₀.
        peripheral: Wᵢ, shared by mean and covariance for i >= 1.
    """

    dimension: int
    scale: float
    mean_central: float
    covariance_central: float
    peripheral: float

    @classmethod
    def for_dimension(
        cls, dimension: int, parameters: UnscentedParameters = DEFAULT_PARAMETERS
    ) -> "UnscentedWeights":
        if dimension < 0:
            raise ValueError(f"Dimension must be non-negative, got {dimension}")
        scale = parameters.scaling(dimension)
        if scale <= 0:
            raise ValueError(
                f"Spread factor L + lambda = {scale} must be positive "
                f"(L={dimension}, alpha={parameters.alpha}, kappa={parameters.kappa})"
            )
        lambda_ = scale - dimension
        mean_central = lambda_ / scale
        return cls(
            dimension=dimension,
            scale=scale,
            mean_central=mean_central,
            covariance_central=mean_central + (1.0 - parameters.alpha**2 + parameters.beta),
            peripheral=1.0 / (2.0 * scale),
        )

    @property
    def num_points(self) -> int:
        return 2 * self.dimension + 1

    @property
    def mean(self) -> NDArray[np.float64]:
        w = np.full(self.num_points, self.peripheral)
        w[0] = self.mean_central
        return w

    @property
    def covariance(self) -> NDArray[np.float64]:
        w = np.full(self.num_points, self.peripheral)
        w[0] = self.covariance_central
        return w


def _source_dimension(num_points: int) -> int:
    if num_points < 1 or num_points % 2 == 0:
        raise DimensionMismatch(f"Expected 2L + 1 sigma points, got {num_points}")
    return (num_points - 1) // 2


class SigmaPointDistribution:
    """2L + 1 sigma points of one vector type, plus the weights they carry.

    Index 0 is the unperturbed mean, 1..L the positive and L+1..2L the
    negative perturbations. Points are stored as a read-only
    (2L+1, storage_dim) array; indexing returns fresh vector instances.

    Attributes:
        layout: Field layout of every point.
        parameters: Transform parameters the points were generated with.
    """

    def __init__(
        self,
        points: ArrayLike,
        layout: FieldLayout,
        factory: Callable[[NDArray[np.float64]], CompositeVector],
        parameters: UnscentedParameters = DEFAULT_PARAMETERS,
    ):
        points = np.array(points, dtype=np.float64)
        if points.ndim != 2 or points.shape[1] != layout.storage_dim:
            raise DimensionMismatch(
                f"Sigma points shape {points.shape} does not match storage "
                f"dimension {layout.storage_dim}"
            )
        self.source_dimension = _source_dimension(points.shape[0])
        points.setflags(write=False)
        self._points = points
        self.layout = layout
        self.parameters = parameters
        self._factory = factory

    @classmethod
    def from_vectors(
        cls,
        vectors: Sequence[CompositeVector],
        parameters: UnscentedParameters = DEFAULT_PARAMETERS,
    ) -> "SigmaPointDistribution":
        """Assemble a distribution from already-built vectors of one layout."""
        if not vectors:
            raise DimensionMismatch("Cannot build a distribution from no vectors")
        first = vectors[0]
        layout = first._layout()
        for v in vectors[1:]:
            if v._layout() != layout:
                raise DimensionMismatch("All sigma points must share one field layout")
        points = np.array([v._data for v in vectors])
        return cls(points, layout, first._factory(), parameters)

    @property
    def points(self) -> NDArray[np.float64]:
        return self._points

    @property
    def weights(self) -> UnscentedWeights:
        return self.parameters.weights(self.source_dimension)

    def __len__(self) -> int:
        return self._points.shape[0]

    def __getitem__(self, index: int) -> CompositeVector:
        # Rows are stored bit for bit; index 0 reads back equal to the mean.
        return self._factory(self._points[index].copy())

    def __iter__(self) -> Iterator[CompositeVector]:
        for i in range(len(self)):
            yield self[i]

    def __repr__(self) -> str:
        return (
            f"SigmaPointDistribution({len(self)} points, "
            f"L_source={self.source_dimension}, layout={self.layout!r})"
        )


class SigmaPointDeltas:
    """Tangent-space offsets of each sigma point from a reference mean.

    Attributes:
        values: Read-only array of shape (2L+1, tangent_dim).
        parameters: Transform parameters inherited from the distribution.
    """

    def __init__(
        self,
        values: ArrayLike,
        parameters: UnscentedParameters = DEFAULT_PARAMETERS,
    ):
        values = np.array(values, dtype=np.float64)
        if values.ndim != 2:
            raise DimensionMismatch(f"Deltas must be 2-D, got shape {values.shape}")
        self.source_dimension = _source_dimension(values.shape[0])
        values.setflags(write=False)
        self.values = values
        self.parameters = parameters

    @property
    def dimension(self) -> int:
        """Tangent dimension of the vector the deltas belong to."""
        return self.values.shape[1]

    @property
    def weights(self) -> UnscentedWeights:
        return self.parameters.weights(self.source_dimension)

    def __len__(self) -> int:
        return self.values.shape[0]

    def __repr__(self) -> str:
        return f"SigmaPointDeltas(shape={self.values.shape})"
