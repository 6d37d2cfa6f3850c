"""Covariance, cross-covariance and noise assembly from sigma-point deltas.

    P   = Σᵢ Wcᵢ δᵢ δᵢᵀ (+ R)
    Pxz = Σᵢ Wcᵢ δxᵢ δzᵢᵀ

Noise configurations hold per-field **variances**: values are placed on the
diagonal as given (never squared), so a vector field configured with
(1, 2, 3) contributes diag(1, 2, 3).
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Hashable, Mapping, Optional, Tuple

import numpy as np
import scipy.linalg
from numpy.typing import ArrayLike, NDArray

from ukfcore.errors import DimensionMismatch, UnconfiguredNoise
from ukfcore.estimators.sigma_points import SigmaPointDeltas
from ukfcore.fields.layout import FieldLayout

# Relative slack on the smallest eigenvalue of a full noise block.
NOISE_EIGENVALUE_TOLERANCE = 1e-12


@dataclass(frozen=True, eq=False)
class NoiseConfiguration:
    """Per-field measurement noise variances.

    Each entry may be:
        - a number: variance of a Scalar field, or isotropic variance
          (v · I) for a multi-dimensional field
        - a 1-D array of length tangent_dim: diagonal block
        - a tangent_dim × tangent_dim symmetric positive semi-definite
          array: full block

    Attributes:
        variances: Mapping from field label to variance specification.

    Example:
        >>> noise = NoiseConfiguration({
        ...     "accelerometer": [1.0, 2.0, 3.0],
        ...     "static_pressure": 7.0,
        ... })
    """

    variances: Mapping[Hashable, Any]

    def __post_init__(self) -> None:
        checked = {}
        for label, value in dict(self.variances).items():
            arr = np.array(value, dtype=np.float64)
            if arr.ndim > 2:
                raise ValueError(f"Noise for {label!r} must be 0-, 1- or 2-D, got {arr.shape}")
            if not np.all(np.isfinite(arr)):
                raise ValueError(f"Noise for {label!r} contains non-finite values")
            diagonal = np.diag(arr) if arr.ndim == 2 else arr
            if arr.ndim == 2:
                if arr.shape[0] != arr.shape[1] or not np.allclose(arr, arr.T):
                    raise ValueError(f"Noise block for {label!r} must be square and symmetric")
                tol = NOISE_EIGENVALUE_TOLERANCE * max(1.0, float(np.abs(arr).max(initial=0.0)))
                if arr.size and np.linalg.eigvalsh(arr).min() < -tol:
                    raise ValueError(
                        f"Noise block for {label!r} must be positive semi-definite"
                    )
            if np.any(diagonal < 0):
                raise ValueError(f"Noise variances for {label!r} must be non-negative")
            arr.setflags(write=False)
            checked[label] = arr
        object.__setattr__(self, "variances", MappingProxyType(checked))

    def __contains__(self, label: Hashable) -> bool:
        return label in self.variances

    @property
    def labels(self) -> Tuple[Hashable, ...]:
        return tuple(self.variances)

    def block(self, label: Hashable, tangent_dim: int) -> NDArray[np.float64]:
        """Noise block (tangent_dim × tangent_dim) of one field."""
        if label not in self.variances:
            raise UnconfiguredNoise(f"No noise configured for field {label!r}")
        arr = self.variances[label]
        if arr.ndim == 0:
            return float(arr) * np.eye(tangent_dim)
        if arr.ndim == 1:
            if arr.shape != (tangent_dim,):
                raise DimensionMismatch(
                    f"Noise for {label!r} has {arr.shape[0]} values, field needs {tangent_dim}"
                )
            return np.diag(arr)
        if arr.shape != (tangent_dim, tangent_dim):
            raise DimensionMismatch(
                f"Noise block for {label!r} has shape {arr.shape}, "
                f"field needs ({tangent_dim}, {tangent_dim})"
            )
        return np.array(arr)


def assemble_noise(
    layout: FieldLayout, configuration: Optional[NoiseConfiguration]
) -> NDArray[np.float64]:
    """Block-diagonal noise matrix for the fields of a layout.

    Blocks follow field declaration order, so the result lines up with
    covariances computed over the same layout.

    Raises:
        UnconfiguredNoise: If no configuration is given or a field of the
            layout has no entry.
    """
    if configuration is None:
        raise UnconfiguredNoise("Measurement noise has not been configured")

    blocks = [configuration.block(f.label, f.type.tangent_dim) for f in layout]
    if not blocks:
        return np.zeros((0, 0), dtype=np.float64)
    return scipy.linalg.block_diag(*blocks)


def compute_covariance(
    deltas: SigmaPointDeltas, noise: Optional[ArrayLike] = None
) -> NDArray[np.float64]:
    """Weighted outer-product sum of sigma-point deltas.

    Args:
        deltas: Deltas of 2L+1 sigma points.
        noise: Optional matrix added to the result (same dimension).

    Returns:
        Symmetric covariance matrix (dim × dim).
    """
    D = deltas.values
    w = deltas.weights.covariance

    covariance = (D.T * w) @ D
    covariance = 0.5 * (covariance + covariance.T)

    if noise is not None:
        noise = np.asarray(noise, dtype=np.float64)
        if noise.shape != covariance.shape:
            raise DimensionMismatch(
                f"Noise shape {noise.shape} inconsistent with covariance {covariance.shape}"
            )
        covariance = covariance + noise

    return covariance


def compute_cross_covariance(
    deltas_a: SigmaPointDeltas, deltas_b: SigmaPointDeltas
) -> NDArray[np.float64]:
    """Cross-covariance between two vectors' deltas over the same sigma points.

    Row i of ``deltas_a`` and row i of ``deltas_b`` must come from the same
    source sigma point (e.g. a state point and the measurement predicted
    from it).

    Returns:
        Matrix (dim_a × dim_b).
    """
    if len(deltas_a) != len(deltas_b):
        raise DimensionMismatch(
            f"Cross-covariance needs matching sigma points, got {len(deltas_a)} "
            f"and {len(deltas_b)}"
        )
    if deltas_a.parameters != deltas_b.parameters:
        raise DimensionMismatch("Deltas were produced with different transform parameters")

    w = deltas_a.weights.covariance
    return (deltas_a.values.T * w) @ deltas_b.values
