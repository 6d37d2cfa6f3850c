import numpy as np
import pytest

from airdata_scenario import build_scenario


@pytest.fixture
def scenario():
    return build_scenario()


@pytest.fixture
def small_covariance():
    """Well-conditioned 10×10 covariance small enough for attitude."""
    rng = np.random.default_rng(7)
    A = rng.standard_normal((10, 10))
    return 0.01 * (A @ A.T / 10.0 + np.eye(10))
