"""Unit quaternion algebra and its tangent space.

This module provides the rotation primitives the unscented transform needs
to treat attitude as a manifold quantity rather than four loose numbers:
- Hamilton product, conjugate and normalisation
- Exponential map (rotation vector -> quaternion)
- Logarithm map (quaternion -> rotation vector)
- Rotating vectors
- Weighted mean of several rotations

Conventions:
- Quaternions: [qw, qx, qy, qz] where qw is the scalar part
- Rotation vectors: axis * angle in radians, 3 components
- q and -q describe the same rotation; the logarithm always returns the
  shorter of the two rotation vectors
"""

import warnings

import numpy as np
from numpy.typing import ArrayLike, NDArray

from ukfcore.errors import MeanDidNotConverge

# Below this angle the exponential/logarithm use their series expansions.
SMALL_ANGLE = 1e-12

IDENTITY_QUATERNION = np.array([1.0, 0.0, 0.0, 0.0], dtype=np.float64)


def _as_quat(q: ArrayLike) -> NDArray[np.float64]:
    q = np.asarray(q, dtype=np.float64)
    if q.shape != (4,):
        raise ValueError(f"Expected 4-element quaternion, got shape {q.shape}")
    return q


def _as_vec3(v: ArrayLike) -> NDArray[np.float64]:
    v = np.asarray(v, dtype=np.float64)
    if v.shape != (3,):
        raise ValueError(f"Expected 3-element vector, got shape {v.shape}")
    return v


def quat_normalize(q: ArrayLike) -> NDArray[np.float64]:
    """Scale a quaternion to unit norm.

    Args:
        q: Quaternion [qw, qx, qy, qz], any non-zero norm.

    Returns:
        Unit quaternion pointing in the same direction.

    Raises:
        ValueError: If q has the wrong shape or (numerically) zero norm.
    """
    q = _as_quat(q)
    norm = np.linalg.norm(q)
    if not np.isfinite(norm) or norm < SMALL_ANGLE:
        raise ValueError(f"Cannot normalize quaternion with norm {norm}")
    return q / norm


def quat_conjugate(q: ArrayLike) -> NDArray[np.float64]:
    """Conjugate (inverse for unit quaternions)."""
    q = _as_quat(q)
    return np.array([q[0], -q[1], -q[2], -q[3]], dtype=np.float64)


def quat_multiply(p: ArrayLike, q: ArrayLike) -> NDArray[np.float64]:
    """Hamilton product p ⊗ q.

    The product composes rotations so that rotating by ``p ⊗ q`` equals
    rotating by q first, then by p.

    Args:
        p: Left quaternion [pw, px, py, pz].
        q: Right quaternion [qw, qx, qy, qz].

    Returns:
        Product quaternion (not renormalised).
    """
    pw, px, py, pz = _as_quat(p)
    qw, qx, qy, qz = _as_quat(q)

    return np.array(
        [
            pw * qw - px * qx - py * qy - pz * qz,
            pw * qx + px * qw + py * qz - pz * qy,
            pw * qy - px * qz + py * qw + pz * qx,
            pw * qz + px * qy - py * qx + pz * qw,
        ],
        dtype=np.float64,
    )


def quat_exp(rotvec: ArrayLike) -> NDArray[np.float64]:
    """Exponential map from a rotation vector to a unit quaternion.

    Args:
        rotvec: Rotation vector (axis * angle), 3 components, radians.

    Returns:
        Unit quaternion [qw, qx, qy, qz] for the rotation.

    Example:
        >>> q = quat_exp(np.array([0.0, 0.0, np.pi / 2]))  # 90° yaw
        >>> print(q)  # [0.7071, 0, 0, 0.7071]
    """
    rotvec = _as_vec3(rotvec)
    angle = np.linalg.norm(rotvec)
    half = 0.5 * angle

    if angle < SMALL_ANGLE:
        # sin(x/2)/x -> 1/2
        q = np.concatenate(([1.0], 0.5 * rotvec))
    else:
        q = np.concatenate(([np.cos(half)], np.sin(half) / angle * rotvec))

    return q / np.linalg.norm(q)


def quat_log(q: ArrayLike) -> NDArray[np.float64]:
    """Logarithm map from a unit quaternion to a rotation vector.

    Returns the rotation vector of magnitude in [0, π] so that ``q`` and
    ``-q`` map to the same result.

    Args:
        q: Unit quaternion [qw, qx, qy, qz].

    Returns:
        Rotation vector (axis * angle), 3 components, radians.
    """
    q = _as_quat(q)
    if q[0] < 0.0:
        q = -q

    w = q[0]
    v = q[1:]
    sin_half = np.linalg.norm(v)

    if sin_half < SMALL_ANGLE:
        # atan2(s, w) / s -> 1 / w
        return 2.0 * v / w

    angle = 2.0 * np.arctan2(sin_half, w)
    return angle / sin_half * v


def quat_rotate(q: ArrayLike, v: ArrayLike) -> NDArray[np.float64]:
    """Rotate a 3-vector by a unit quaternion (q ⊗ v ⊗ q*).

    Args:
        q: Unit quaternion [qw, qx, qy, qz].
        v: Vector to rotate.

    Returns:
        Rotated vector R(q) v.
    """
    q = _as_quat(q)
    v = _as_vec3(v)
    w = q[0]
    u = q[1:]
    t = 2.0 * np.cross(u, v)
    return v + w * t + np.cross(u, t)


def quaternion_mean(
    quaternions: ArrayLike,
    weights: ArrayLike,
    tolerance: float = 1e-9,
    max_iterations: int = 50,
) -> NDArray[np.float64]:
    """Weighted mean of unit quaternions on the rotation manifold.

    Averaging happens in the tangent space of the running estimate: starting
    from the first quaternion, each pass maps every sample into that tangent
    space, takes the weighted average there and moves the estimate along it.

        e_i  = log(q̄⁻¹ ⊗ q_i)
        ē    = Σ w_i e_i
        q̄   ← normalize(q̄ ⊗ exp(ē))

    Iteration stops once ‖ē‖ < tolerance.

    Args:
        quaternions: Samples, shape (N, 4).
        weights: Weights, shape (N,). Expected to sum to one; individual
            weights may be negative (scaled unscented transform).
        tolerance: Convergence threshold on the update norm (radians).
        max_iterations: Iteration budget.

    Returns:
        Unit quaternion [qw, qx, qy, qz].

    Raises:
        ValueError: If shapes disagree.
        MeanDidNotConverge: If the budget is exhausted before convergence.
    """
    quaternions = np.asarray(quaternions, dtype=np.float64)
    weights = np.asarray(weights, dtype=np.float64)
    if quaternions.ndim != 2 or quaternions.shape[1] != 4:
        raise ValueError(f"Expected (N, 4) quaternions, got shape {quaternions.shape}")
    if weights.shape != (quaternions.shape[0],):
        raise ValueError(
            f"Weights shape {weights.shape} does not match {quaternions.shape[0]} samples"
        )

    estimate = quat_normalize(quaternions[0])
    step_norm = np.inf

    for iteration in range(1, max_iterations + 1):
        inverse = quat_conjugate(estimate)
        offsets = np.array([quat_log(quat_multiply(inverse, q)) for q in quaternions])
        step = weights @ offsets
        estimate = quat_normalize(quat_multiply(estimate, quat_exp(step)))

        step_norm = np.linalg.norm(step)
        if step_norm < tolerance:
            if iteration > max_iterations // 2:
                warnings.warn(
                    f"Quaternion mean needed {iteration} of {max_iterations} "
                    f"iterations to converge",
                    RuntimeWarning,
                )
            return estimate

    raise MeanDidNotConverge(
        f"Quaternion mean did not converge in {max_iterations} iterations "
        f"(last update norm {step_norm:.3e}, tolerance {tolerance:.3e})"
    )
