"""Base class shared by state and measurement vectors.

Mean, delta and covariance recovery is the same algorithm for every vector
type; only the field layout differs. :class:`UnscentedVector` implements it
once on top of :class:`CompositeVector` so that state vectors, fixed
measurement vectors and dynamic measurement vectors all inherit it.
"""

from typing import Optional

import numpy as np
from numpy.typing import ArrayLike, NDArray

from ukfcore.errors import DimensionMismatch
from ukfcore.estimators import unscented_transform as ut
from ukfcore.estimators.covariance import compute_covariance
from ukfcore.estimators.sigma_points import (
    MeanConvergence,
    SigmaPointDeltas,
    SigmaPointDistribution,
)
from ukfcore.fields.vector import CompositeVector


class UnscentedVector(CompositeVector):
    """Composite vector that can recover itself from sigma points."""

    def _check_distribution(self, distribution: SigmaPointDistribution) -> None:
        if distribution.layout != self._layout():
            raise DimensionMismatch(
                f"{type(self).__name__} cannot recover from sigma points with "
                f"{distribution.layout!r}"
            )

    def recover_mean(
        self,
        distribution: SigmaPointDistribution,
        convergence: Optional[MeanConvergence] = None,
    ) -> "UnscentedVector":
        """Weighted manifold mean of a distribution of this vector's layout.

        Vector and scalar fields use the weighted sum with the mean weights;
        quaternion fields use the iterative tangent-space mean.

        Args:
            distribution: Sigma points with the same layout as ``self``.
            convergence: Stopping rule for quaternion fields.

        Returns:
            New vector of the same type holding the mean.

        Raises:
            DimensionMismatch: If the distribution has another layout.
            MeanDidNotConverge: If a quaternion mean exceeds its budget.
        """
        self._check_distribution(distribution)
        data = ut.recover_mean(
            distribution.layout,
            distribution.points,
            distribution.weights.mean,
            convergence,
        )
        return self._sibling(data)

    def compute_deltas(self, distribution: SigmaPointDistribution) -> SigmaPointDeltas:
        """Tangent-space offsets of every sigma point from ``self``.

        ``self`` is the reference mean, normally the result of
        :meth:`recover_mean` on the same distribution.
        """
        self._check_distribution(distribution)
        values = ut.compute_deltas(distribution.layout, distribution.points, self._data)
        return SigmaPointDeltas(values, distribution.parameters)

    def compute_covariance(
        self, deltas: SigmaPointDeltas, noise: Optional[ArrayLike] = None
    ) -> NDArray[np.float64]:
        """Covariance Σ Wcᵢ δᵢ δᵢᵀ of deltas of this vector's layout, plus noise."""
        L = self._layout().dimension()
        if deltas.dimension != L:
            raise DimensionMismatch(
                f"Deltas of dimension {deltas.dimension} do not match "
                f"{type(self).__name__} dimension {L}"
            )
        return compute_covariance(deltas, noise)
