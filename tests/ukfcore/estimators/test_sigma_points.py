"""Unit tests for sigma-point weights, square roots and generation."""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from airdata_scenario import StateField
from ukfcore.coords import quat_exp, quat_multiply
from ukfcore.errors import DimensionMismatch, NonPositiveDefiniteCovariance
from ukfcore.estimators import (
    SigmaPointDistribution,
    UnscentedParameters,
    UnscentedWeights,
    covariance_square_root,
)


class TestUnscentedParameters:
    def test_defaults(self):
        params = UnscentedParameters()

        assert (params.alpha, params.beta, params.kappa) == (1.0, 0.0, 3.0)

    @pytest.mark.parametrize("dimension", [1, 3, 10, 25])
    def test_mean_weights_sum_to_one(self, dimension):
        w = UnscentedWeights.for_dimension(dimension)

        assert w.mean_central + 2 * dimension * w.peripheral == pytest.approx(1.0)
        assert w.mean.sum() == pytest.approx(1.0)
        assert w.mean.shape == (2 * dimension + 1,)

    def test_default_weights_for_ten_dimensions(self):
        w = UnscentedParameters().weights(10)

        assert w.scale == pytest.approx(13.0)
        assert w.mean_central == pytest.approx(3.0 / 13.0)
        assert w.covariance_central == pytest.approx(3.0 / 13.0)
        assert w.peripheral == pytest.approx(1.0 / 26.0)

    def test_covariance_central_weight(self):
        params = UnscentedParameters(alpha=0.5, beta=2.0, kappa=0.0)
        w = params.weights(4)

        lam = 0.25 * 4 - 4
        assert w.mean_central == pytest.approx(lam / (4 + lam))
        assert w.covariance_central == pytest.approx(lam / (4 + lam) + 1 - 0.25 + 2)
        assert w.peripheral == pytest.approx(1.0 / (2 * (4 + lam)))

    def test_alpha_must_be_positive(self):
        with pytest.raises(ValueError):
            UnscentedParameters(alpha=0.0)

    def test_non_finite_rejected(self):
        with pytest.raises(ValueError):
            UnscentedParameters(kappa=float("nan"))

    def test_numpy_scalars_accepted(self):
        params = UnscentedParameters(alpha=np.float32(0.5), beta=np.int64(2), kappa=np.int64(3))

        assert params.weights(4).scale == pytest.approx(0.25 * 7)

    def test_non_numeric_rejected(self):
        with pytest.raises(ValueError):
            UnscentedParameters(kappa="3")

    def test_large_alpha_warns(self):
        with pytest.warns(UserWarning, match="alpha"):
            UnscentedParameters(alpha=2.0)

    def test_non_positive_spread_rejected(self):
        params = UnscentedParameters(alpha=1.0, kappa=-5.0)

        with pytest.raises(ValueError):
            params.weights(3)


class TestCovarianceSquareRoot:
    def test_reconstructs_scaled_covariance(self, small_covariance):
        S = covariance_square_root(small_covariance, 13.0)

        assert_allclose(S @ S.T, 13.0 * small_covariance, atol=1e-12)
        assert_allclose(S, np.tril(S))

    def test_singular_falls_back_with_warning(self):
        P = np.diag([1.0, 0.0, 2.0])

        with pytest.warns(RuntimeWarning):
            S = covariance_square_root(P)

        assert_allclose(S @ S.T, P, atol=1e-12)

    def test_negative_eigenvalue_rejected(self):
        P = np.diag([1.0, -1.0, 2.0])

        with pytest.raises(NonPositiveDefiniteCovariance):
            covariance_square_root(P)

    def test_asymmetric_rejected(self):
        P = np.array([[2.0, 1.0], [0.0, 2.0]])

        with pytest.raises(NonPositiveDefiniteCovariance):
            covariance_square_root(P)

    def test_non_finite_rejected(self):
        with pytest.raises(NonPositiveDefiniteCovariance):
            covariance_square_root(np.array([[np.inf]]))

    def test_non_square_rejected(self):
        with pytest.raises(DimensionMismatch):
            covariance_square_root(np.ones((2, 3)))

    def test_is_a_value_error(self):
        with pytest.raises(ValueError):
            covariance_square_root(-np.eye(2))


class TestGenerateSigmaPoints:
    def test_count_and_central_point(self, scenario):
        sigma = scenario.state.generate_sigma_points(scenario.covariance)

        assert len(sigma) == 2 * 10 + 1
        assert sigma.source_dimension == 10
        assert np.array_equal(sigma.points[0], scenario.state.as_array())
        assert sigma[0] == scenario.state

    def test_central_point_is_bitwise_mean_for_any_attitude(self, scenario):
        rng = np.random.default_rng(11)
        x = scenario.state

        for _ in range(200):
            x.set_field(StateField.ATTITUDE, rng.standard_normal(4))
            sigma = x.generate_sigma_points(0.01 * np.eye(10))

            assert np.array_equal(sigma[0].as_array(), x.as_array())
            assert sigma[0] == x

    def test_points_are_mean_retracted_by_square_root_columns(self, scenario, small_covariance):
        x = scenario.state
        x.set_field(StateField.ATTITUDE, quat_exp([0.1, -0.2, 0.3]))
        sigma = x.generate_sigma_points(small_covariance)
        S = covariance_square_root(small_covariance, 13.0)

        for i in range(10):
            assert_allclose(sigma.points[i + 1], x.retract(S[:, i]).as_array(), atol=1e-12)
            assert_allclose(sigma.points[i + 11], x.retract(-S[:, i]).as_array(), atol=1e-12)

    def test_quaternion_perturbation_composes_on_the_right(self, scenario):
        q = quat_exp([0.3, 0.2, 0.1])
        scenario.state.set_field(StateField.ATTITUDE, q)
        P = np.diag([1e-4] * 6 + [0.01, 1e-4, 1e-4] + [1e-4])

        sigma = scenario.state.generate_sigma_points(P)

        spread = np.sqrt(13.0 * 0.01)
        assert_allclose(
            sigma[7].get_field(StateField.ATTITUDE),
            quat_multiply(q, quat_exp([spread, 0.0, 0.0])),
            atol=1e-12,
        )
        assert_allclose(
            sigma[17].get_field(StateField.ATTITUDE),
            quat_multiply(q, quat_exp([-spread, 0.0, 0.0])),
            atol=1e-12,
        )

    def test_every_quaternion_point_is_unit(self, scenario):
        sigma = scenario.state.generate_sigma_points(scenario.covariance)

        for point in sigma:
            assert np.linalg.norm(point.get_field(StateField.ATTITUDE)) == pytest.approx(1.0)

    def test_points_are_read_only(self, scenario):
        sigma = scenario.state.generate_sigma_points(scenario.covariance)

        with pytest.raises(ValueError):
            sigma.points[0, 0] = 1.0

    def test_wrong_covariance_size(self, scenario):
        with pytest.raises(DimensionMismatch):
            scenario.state.generate_sigma_points(np.eye(9))

    def test_indefinite_covariance(self, scenario):
        P = np.eye(10)
        P[9, 9] = -1.0

        with pytest.raises(NonPositiveDefiniteCovariance):
            scenario.state.generate_sigma_points(P)

    def test_custom_parameters_carried(self, scenario):
        params = UnscentedParameters(alpha=0.5, beta=2.0, kappa=0.0)

        sigma = scenario.state.generate_sigma_points(0.01 * np.eye(10), params)

        assert sigma.parameters is params
        assert sigma.weights == params.weights(10)


class TestSigmaPointDistribution:
    def test_even_number_of_points_rejected(self, scenario):
        layout = scenario.state_type.layout

        with pytest.raises(DimensionMismatch):
            SigmaPointDistribution(
                np.tile(scenario.state.as_array(), (4, 1)), layout, scenario.state_type
            )

    def test_storage_width_checked(self, scenario):
        with pytest.raises(DimensionMismatch):
            SigmaPointDistribution(
                np.zeros((3, 4)), scenario.state_type.layout, scenario.state_type
            )

    def test_from_vectors_requires_one_layout(self, scenario):
        with pytest.raises(DimensionMismatch):
            SigmaPointDistribution.from_vectors(
                [scenario.state, scenario.fixed_type(), scenario.state]
            )

    def test_indexing_returns_copies(self, scenario):
        sigma = scenario.state.generate_sigma_points(scenario.covariance)

        point = sigma[1]
        point.set_field(StateField.ALTITUDE, 0.0)

        assert sigma[1].get_field(StateField.ALTITUDE) != 0.0
