"""Rotation primitives for manifold-valued fields.

Unit quaternions are stored with 4 parameters but live on a 3-dimensional
manifold; these helpers move between the two via the exponential and
logarithm maps.
"""

from ukfcore.coords.rotations import (
    IDENTITY_QUATERNION,
    quat_conjugate,
    quat_exp,
    quat_log,
    quat_multiply,
    quat_normalize,
    quat_rotate,
    quaternion_mean,
)

__all__ = [
    "IDENTITY_QUATERNION",
    "quat_conjugate",
    "quat_exp",
    "quat_log",
    "quat_multiply",
    "quat_normalize",
    "quat_rotate",
    "quaternion_mean",
]
