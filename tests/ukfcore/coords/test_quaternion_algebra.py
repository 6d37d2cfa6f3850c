"""Unit tests for quaternion algebra on the rotation manifold."""

import unittest

import numpy as np
from numpy.testing import assert_allclose
from scipy.spatial.transform import Rotation

from ukfcore.coords import (
    IDENTITY_QUATERNION,
    quat_conjugate,
    quat_exp,
    quat_log,
    quat_multiply,
    quat_normalize,
    quat_rotate,
    quaternion_mean,
)
from ukfcore.errors import MeanDidNotConverge


def as_scipy(q):
    """scipy rotation for a [qw, qx, qy, qz] quaternion (scipy is scalar-last)."""
    return Rotation.from_quat(np.roll(q, -1))


class TestQuaternionProduct(unittest.TestCase):
    """Test Hamilton product, conjugate and normalisation."""

    def test_identity_is_neutral(self):
        q = quat_exp([0.1, 0.2, 0.3])
        assert_allclose(quat_multiply(IDENTITY_QUATERNION, q), q)
        assert_allclose(quat_multiply(q, IDENTITY_QUATERNION), q)

    def test_conjugate_inverts_unit_quaternion(self):
        q = quat_exp([-0.5, 0.7, 2.0])
        assert_allclose(quat_multiply(q, quat_conjugate(q)), IDENTITY_QUATERNION, atol=1e-15)

    def test_product_matches_rotation_composition(self):
        q1 = quat_exp([0.3, 0.0, 0.0])
        q2 = quat_exp([0.0, 0.0, 1.1])
        R = as_scipy(quat_multiply(q1, q2)).as_matrix()
        assert_allclose(R, as_scipy(q1).as_matrix() @ as_scipy(q2).as_matrix(), atol=1e-12)

    def test_normalize(self):
        q = quat_normalize([2.0, 0.0, 0.0, 0.0])
        assert_allclose(q, IDENTITY_QUATERNION)

    def test_normalize_zero_raises(self):
        with self.assertRaises(ValueError):
            quat_normalize(np.zeros(4))

    def test_bad_shape_raises(self):
        with self.assertRaises(ValueError):
            quat_multiply(np.zeros(3), IDENTITY_QUATERNION)


class TestExpLog(unittest.TestCase):
    """Test the exponential and logarithm maps."""

    def test_exp_of_zero_is_identity(self):
        assert_allclose(quat_exp(np.zeros(3)), IDENTITY_QUATERNION)

    def test_exp_half_angle(self):
        angle = 0.8
        q = quat_exp([0.0, 0.0, angle])
        assert_allclose(q, [np.cos(angle / 2), 0.0, 0.0, np.sin(angle / 2)])

    def test_log_inverts_exp(self):
        for v in ([0.1, -0.2, 0.3], [1.0, 0.5, -2.0], [1e-14, 0.0, 0.0]):
            with self.subTest(v=v):
                assert_allclose(quat_log(quat_exp(v)), v, atol=1e-14)

    def test_log_of_identity(self):
        assert_allclose(quat_log(IDENTITY_QUATERNION), np.zeros(3))

    def test_log_takes_shortest_rotation(self):
        # q and -q are the same rotation.
        q = quat_exp([0.0, 0.4, 0.0])
        assert_allclose(quat_log(-q), [0.0, 0.4, 0.0], atol=1e-14)

    def test_log_beyond_half_turn_wraps(self):
        v = np.array([0.0, 0.0, 4.0])
        wrapped = quat_log(quat_exp(v))
        assert_allclose(wrapped, [0.0, 0.0, 4.0 - 2.0 * np.pi], atol=1e-12)


class TestRotation(unittest.TestCase):
    """Test vector rotation against scipy's rotation conventions."""

    def test_exp_matches_rotation_vector(self):
        v = np.array([0.2, -0.4, 0.9])
        assert_allclose(as_scipy(quat_exp(v)).as_rotvec(), v, atol=1e-12)

    def test_rotate_matches_matrix(self):
        q = quat_exp([0.2, -0.4, 0.9])
        v = np.array([1.0, -2.0, 0.5])
        assert_allclose(quat_rotate(q, v), as_scipy(q).as_matrix() @ v, atol=1e-12)

    def test_rotation_about_z(self):
        q = quat_exp([0.0, 0.0, np.pi / 2])
        assert_allclose(quat_rotate(q, [1.0, 0.0, 0.0]), [0.0, 1.0, 0.0], atol=1e-12)

    def test_rotation_preserves_length(self):
        q = quat_exp([1.0, 0.5, -2.0])
        v = np.array([3.0, -1.0, 2.0])
        self.assertAlmostEqual(np.linalg.norm(quat_rotate(q, v)), np.linalg.norm(v))


class TestQuaternionMean(unittest.TestCase):
    """Test the iterative weighted quaternion mean."""

    def test_single_rotation_axis(self):
        qs = np.array([quat_exp([0.0, 0.0, a]) for a in (0.1, 0.3, 0.8)])
        w = np.array([0.5, 0.25, 0.25])
        mean = quaternion_mean(qs, w)
        assert_allclose(mean, quat_exp([0.0, 0.0, 0.325]), atol=1e-9)

    def test_symmetric_spread_about_rotation(self):
        center = quat_exp([0.3, 0.1, -0.2])
        offsets = [[0.2, 0.0, 0.0], [0.0, 0.3, 0.0], [0.0, 0.0, 0.1]]
        qs = [center]
        qs += [quat_multiply(center, quat_exp(d)) for d in offsets]
        qs += [quat_multiply(center, quat_exp(-np.asarray(d))) for d in offsets]
        w = np.array([0.4] + [0.1] * 6)

        assert_allclose(quaternion_mean(qs, w), center, atol=1e-9)

    def test_sign_of_inputs_does_not_matter(self):
        q = quat_exp([0.5, 0.0, 0.0])
        mean = quaternion_mean([q, -q, q], [0.2, 0.4, 0.4])
        assert_allclose(mean, q, atol=1e-12)

    def test_budget_exhausted(self):
        qs = np.array([IDENTITY_QUATERNION, quat_exp([1.0, 0.0, 0.0])])
        with self.assertRaises(MeanDidNotConverge):
            quaternion_mean(qs, [0.5, 0.5], tolerance=1e-12, max_iterations=1)

    def test_weight_shape_mismatch(self):
        with self.assertRaises(ValueError):
            quaternion_mean([IDENTITY_QUATERNION], [0.5, 0.5])


if __name__ == "__main__":
    unittest.main()
