"""Unscented transform engine over composite field vectors.

This package contains the reusable pieces an unscented Kalman filter is
built on:
- coords: Quaternion and rotation-vector primitives
- fields: Typed field layouts and composite vectors
- estimators: Sigma-point generation, propagation and recovery
"""

__version__ = "0.1.0"
