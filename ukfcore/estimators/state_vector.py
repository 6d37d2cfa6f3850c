"""State vectors and the forward unscented transform.

Example:
    >>> class MyState(StateVector):
    ...     fields = (
    ...         Field("velocity", Vector(3)),
    ...         Field("attitude", Quaternion()),
    ...     )
    >>> x = MyState()
    >>> sigma = x.generate_sigma_points(0.01 * np.eye(MyState.dimension()))
    >>> len(sigma)  # 2L + 1
    13
    >>> x_mean = x.recover_mean(sigma)
    >>> P = x_mean.compute_covariance(x_mean.compute_deltas(sigma))
"""

from typing import Optional

from numpy.typing import ArrayLike

from ukfcore.estimators import unscented_transform as ut
from ukfcore.estimators.base import UnscentedVector
from ukfcore.estimators.sigma_points import (
    DEFAULT_PARAMETERS,
    SigmaPointDistribution,
    UnscentedParameters,
)


class StateVector(UnscentedVector):
    """Estimated system state, owner of sigma-point generation."""

    def generate_sigma_points(
        self,
        covariance: ArrayLike,
        parameters: Optional[UnscentedParameters] = None,
    ) -> SigmaPointDistribution:
        """Generate 2L+1 sigma points around ``self``.

            χ₀       = x̄
            χᵢ       = x̄ ⊕ Sᵢ         i = 1 .. L
            χ_{L+i}  = x̄ ⊕ (-Sᵢ)

        where S Sᵀ = (L + λ) P and ⊕ composes quaternion fields with
        exp(δ) on the right.

        Args:
            covariance: Tangent-space covariance P (L×L), symmetric positive
                semi-definite.
            parameters: Spread parameters (defaults to alpha=1, beta=0,
                kappa=3).

        Returns:
            Distribution whose point 0 equals ``self`` exactly.

        Raises:
            DimensionMismatch: If P is not L×L.
            NonPositiveDefiniteCovariance: If P has no square root.
        """
        parameters = parameters or DEFAULT_PARAMETERS
        layout = self._layout()
        points = ut.generate_sigma_points(layout, self._data, covariance, parameters)
        return SigmaPointDistribution(points, layout, self._factory(), parameters)
