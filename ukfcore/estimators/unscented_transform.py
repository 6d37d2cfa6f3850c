"""Array-level kernels of the unscented transform.

These functions work on a :class:`FieldLayout` and plain storage arrays so
that state and measurement vectors (fixed or dynamic) share one
implementation:

    - covariance_square_root: S with S Sᵀ = c P
    - generate_sigma_points: χ₀ = x̄, χᵢ = x̄ ⊕ Sᵢ, χ_{i+L} = x̄ ⊕ (-Sᵢ)
    - recover_mean: Σ Wmᵢ χᵢ, or the iterative mean on quaternion fields
    - compute_deltas: χᵢ ⊖ x̄

References:
    - Julier & Uhlmann, "A New Extension of the Kalman Filter to Nonlinear
      Systems," 1997
    - Van der Merwe, "Sigma-Point Kalman Filters for Probabilistic Inference
      in Dynamic State-Space Models," 2004
"""

import warnings
from typing import Optional

import numpy as np
import scipy.linalg
from numpy.typing import ArrayLike, NDArray

from ukfcore.errors import DimensionMismatch, NonPositiveDefiniteCovariance
from ukfcore.estimators.sigma_points import (
    DEFAULT_CONVERGENCE,
    DEFAULT_PARAMETERS,
    MeanConvergence,
    UnscentedParameters,
)
from ukfcore.fields.layout import FieldLayout

# Relative tolerance for symmetry and for eigenvalues treated as zero.
PSD_TOLERANCE = 1e-9


def _check_square(matrix: ArrayLike, dimension: int, name: str) -> NDArray[np.float64]:
    matrix = np.asarray(matrix, dtype=np.float64)
    if matrix.shape != (dimension, dimension):
        raise DimensionMismatch(
            f"{name} shape {matrix.shape} inconsistent with dimension {dimension}"
        )
    return matrix


def covariance_square_root(
    covariance: ArrayLike, scale: float = 1.0
) -> NDArray[np.float64]:
    """Square root S of a scaled covariance, S Sᵀ = scale · P.

    Uses the lower Cholesky factor. Positive semi-definite matrices that are
    singular (e.g. a field with zero variance) make Cholesky fail; those fall
    back to the symmetric eigendecomposition with eigenvalues that are
    negative only by round-off clamped to zero.

    Args:
        covariance: Symmetric positive semi-definite matrix (L×L).
        scale: Positive factor c applied before factorisation.

    Returns:
        Matrix S (L×L) whose columns are the sigma-point perturbations.

    Raises:
        NonPositiveDefiniteCovariance: If P is non-finite, asymmetric or has
            a significantly negative eigenvalue.
    """
    P = np.asarray(covariance, dtype=np.float64)
    if P.ndim != 2 or P.shape[0] != P.shape[1]:
        raise DimensionMismatch(f"Covariance must be square, got shape {P.shape}")
    if P.size == 0:
        return np.zeros_like(P)
    if not np.all(np.isfinite(P)):
        raise NonPositiveDefiniteCovariance("Covariance contains non-finite entries")

    magnitude = max(1.0, float(np.max(np.abs(P))))
    if not np.allclose(P, P.T, rtol=0.0, atol=PSD_TOLERANCE * magnitude):
        raise NonPositiveDefiniteCovariance("Covariance is not symmetric")

    scaled = scale * 0.5 * (P + P.T)

    try:
        return scipy.linalg.cholesky(scaled, lower=True)
    except np.linalg.LinAlgError:
        pass

    eigenvalues, eigenvectors = scipy.linalg.eigh(scaled)
    floor = -PSD_TOLERANCE * max(1.0, float(np.max(np.abs(eigenvalues))))
    if eigenvalues.min() < floor:
        raise NonPositiveDefiniteCovariance(
            f"Covariance is not positive semi-definite "
            f"(smallest eigenvalue {eigenvalues.min() / scale:.3e})"
        )

    warnings.warn(
        "Cholesky factorisation failed on a singular covariance; "
        "using eigendecomposition square root",
        RuntimeWarning,
    )
    return eigenvectors * np.sqrt(np.maximum(eigenvalues, 0.0))


def generate_sigma_points(
    layout: FieldLayout,
    mean: ArrayLike,
    covariance: ArrayLike,
    parameters: UnscentedParameters = DEFAULT_PARAMETERS,
) -> NDArray[np.float64]:
    """Generate the 2L+1 sigma points of a mean and covariance.

    Args:
        layout: Field layout of the mean.
        mean: Storage array of the mean (storage_dim,).
        covariance: Tangent-space covariance (L×L).
        parameters: Spread parameters.

    Returns:
        Array (2L+1, storage_dim); row 0 is an exact copy of ``mean``.
    """
    mean = layout.check_storage(mean)
    L = layout.dimension()
    P = _check_square(covariance, L, "Covariance")

    weights = parameters.weights(L)
    S = covariance_square_root(P, weights.scale)

    points = np.empty((2 * L + 1, layout.storage_dim), dtype=np.float64)
    points[0] = mean
    for i in range(L):
        points[i + 1] = layout.retract(mean, S[:, i])
        points[L + i + 1] = layout.retract(mean, -S[:, i])

    return points


def recover_mean(
    layout: FieldLayout,
    points: NDArray[np.float64],
    mean_weights: NDArray[np.float64],
    convergence: Optional[MeanConvergence] = DEFAULT_CONVERGENCE,
) -> NDArray[np.float64]:
    """Weighted manifold mean of sigma points (storage form)."""
    if points.shape[0] != mean_weights.shape[0]:
        raise DimensionMismatch(
            f"{points.shape[0]} sigma points but {mean_weights.shape[0]} weights"
        )
    return layout.mean(points, mean_weights, convergence or DEFAULT_CONVERGENCE)


def compute_deltas(
    layout: FieldLayout,
    points: NDArray[np.float64],
    reference: ArrayLike,
) -> NDArray[np.float64]:
    """Tangent-space difference of every sigma point from a reference.

    Returns:
        Array (N, L) with row i equal to χᵢ ⊖ reference.
    """
    reference = layout.check_storage(reference)
    deltas = np.empty((points.shape[0], layout.dimension()), dtype=np.float64)
    for i, point in enumerate(points):
        deltas[i] = layout.difference(point, reference)
    return deltas
