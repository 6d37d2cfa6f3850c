"""Unscented transform over composite field vectors.

This module provides the sigma-point machinery an unscented Kalman filter is
built on. The correction step (Kalman gain, state update) is left to the
caller; everything it needs is exposed here.

Available components:
    - StateVector: sigma-point generation and manifold recovery
    - FixedMeasurementVector / DynamicMeasurementVector: propagation of
      state sigma points through per-field prediction functions
    - PredictionTable: prediction functions per (measurement, state) pair
    - NoiseConfiguration: per-field measurement noise variances
    - compute_covariance / compute_cross_covariance: weighted sums of deltas
    - UnscentedParameters / MeanConvergence: transform configuration
"""

from ukfcore.estimators.base import UnscentedVector
from ukfcore.estimators.covariance import (
    NoiseConfiguration,
    assemble_noise,
    compute_covariance,
    compute_cross_covariance,
)
from ukfcore.estimators.measurement_vector import (
    DynamicMeasurementVector,
    FixedMeasurementVector,
    MeasurementVector,
    PredictionTable,
)
from ukfcore.estimators.sigma_points import (
    DEFAULT_CONVERGENCE,
    DEFAULT_PARAMETERS,
    MeanConvergence,
    SigmaPointDeltas,
    SigmaPointDistribution,
    UnscentedParameters,
    UnscentedWeights,
)
from ukfcore.estimators.state_vector import StateVector
from ukfcore.estimators.unscented_transform import covariance_square_root

__all__ = [
    # Vectors
    "UnscentedVector",
    "StateVector",
    "MeasurementVector",
    "FixedMeasurementVector",
    "DynamicMeasurementVector",
    "PredictionTable",
    # Sigma points
    "SigmaPointDistribution",
    "SigmaPointDeltas",
    "UnscentedParameters",
    "UnscentedWeights",
    "MeanConvergence",
    "DEFAULT_PARAMETERS",
    "DEFAULT_CONVERGENCE",
    "covariance_square_root",
    # Covariance assembly
    "NoiseConfiguration",
    "assemble_noise",
    "compute_covariance",
    "compute_cross_covariance",
]
