"""Unit tests for field types and layouts."""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from ukfcore.coords import quat_exp, quat_multiply
from ukfcore.errors import DimensionMismatch, UnknownFieldError
from ukfcore.fields import Field, FieldLayout, Quaternion, Scalar, Vector


@pytest.fixture
def layout():
    return FieldLayout([
        Field("velocity", Vector(3)),
        Field("attitude", Quaternion()),
        Field("altitude", Scalar()),
    ])


class TestFieldTypes:
    def test_dimensions(self):
        assert (Vector(3).storage_dim, Vector(3).tangent_dim) == (3, 3)
        assert (Scalar().storage_dim, Scalar().tangent_dim) == (1, 1)
        assert (Quaternion().storage_dim, Quaternion().tangent_dim) == (4, 3)

    def test_equality(self):
        assert Vector(3) == Vector(3)
        assert Vector(3) != Vector(2)
        assert Scalar() == Scalar()
        assert Quaternion() != Vector(4)

    def test_vector_size_must_be_positive(self):
        with pytest.raises(ValueError):
            Vector(0)

    def test_scalar_reads_back_as_float(self):
        assert isinstance(Scalar().from_storage(np.array([2.5])), float)

    def test_quaternion_stored_normalized(self):
        assert_allclose(Quaternion().to_storage([2.0, 0.0, 0.0, 0.0]), [1.0, 0.0, 0.0, 0.0])

    def test_quaternion_retract_and_difference(self):
        q = quat_exp([0.1, 0.2, -0.3])
        delta = np.array([0.05, -0.02, 0.01])

        moved = Quaternion().retract(q, delta)

        assert_allclose(moved, quat_multiply(q, quat_exp(delta)))
        assert_allclose(Quaternion().difference(moved, q), delta, atol=1e-14)

    def test_wrong_size_value(self):
        with pytest.raises(DimensionMismatch):
            Vector(3).to_storage([1.0, 2.0])

    def test_field_requires_field_type(self):
        with pytest.raises(TypeError):
            Field("velocity", 3)


class TestFieldLayout:
    def test_dimensions(self, layout):
        assert layout.storage_dim == 8
        assert layout.dimension() == 7
        assert len(layout) == 3

    def test_offsets(self, layout):
        assert layout.storage_slice("attitude") == slice(3, 7)
        assert layout.tangent_slice("attitude") == slice(3, 6)
        assert layout.storage_slice("altitude") == slice(7, 8)
        assert layout.tangent_slice("altitude") == slice(6, 7)

    def test_labels_in_declaration_order(self, layout):
        assert layout.labels == ("velocity", "attitude", "altitude")

    def test_default_storage(self, layout):
        assert_allclose(layout.default_storage(), [0, 0, 0, 1, 0, 0, 0, 0])

    def test_duplicate_label(self):
        with pytest.raises(ValueError, match="Duplicate"):
            FieldLayout([Field("a", Scalar()), Field("a", Vector(2))])

    def test_unknown_label(self, layout):
        with pytest.raises(UnknownFieldError):
            layout.index("pressure")

    def test_unknown_label_is_a_key_error(self, layout):
        with pytest.raises(KeyError):
            layout.storage_slice("pressure")

    def test_equal_layouts(self, layout):
        other = FieldLayout(list(layout))
        assert other == layout
        assert hash(other) == hash(layout)
        assert layout.subset(["velocity"]) != layout

    def test_empty_layout(self):
        empty = FieldLayout([])
        assert empty.dimension() == 0
        assert empty.default_storage().shape == (0,)


class TestSubsetsAndMasks:
    def test_subset_keeps_declaration_order(self, layout):
        sub = layout.subset(["altitude", "velocity"])

        assert sub.labels == ("velocity", "altitude")
        assert sub.storage_slice("altitude") == slice(3, 4)
        assert sub.dimension() == 4

    def test_mask(self, layout):
        assert layout.mask(["velocity", "altitude"]) == 0b101
        assert layout.mask([]) == 0

    def test_labels_from_mask(self, layout):
        assert layout.labels_from_mask(0b110) == ("attitude", "altitude")

    def test_mask_out_of_range(self, layout):
        with pytest.raises(ValueError):
            layout.labels_from_mask(0b1000)

    def test_subset_unknown_label(self, layout):
        with pytest.raises(UnknownFieldError):
            layout.subset(["pressure"])


class TestLayoutArithmetic:
    def test_retract_and_difference_invert(self, layout):
        storage = layout.default_storage()
        storage[7] = 100.0
        delta = np.array([1.0, 2.0, 3.0, 0.1, -0.1, 0.05, -4.0])

        moved = layout.retract(storage, delta)

        assert_allclose(moved[:3], [1.0, 2.0, 3.0])
        assert moved[7] == pytest.approx(96.0)
        assert_allclose(layout.difference(moved, storage), delta, atol=1e-14)

    def test_retract_wrong_delta(self, layout):
        with pytest.raises(DimensionMismatch):
            layout.retract(layout.default_storage(), np.zeros(8))

    def test_check_storage(self, layout):
        with pytest.raises(DimensionMismatch):
            layout.check_storage(np.zeros(7))

    def test_weighted_mean(self, layout):
        a = layout.default_storage()
        b = layout.retract(a, np.array([2.0, 0.0, 0.0, 0.0, 0.0, 0.2, 10.0]))
        c = layout.retract(a, np.array([-2.0, 0.0, 0.0, 0.0, 0.0, -0.2, -10.0]))

        mean = layout.mean(np.array([a, b, c]), np.array([0.5, 0.25, 0.25]))

        assert_allclose(mean, a, atol=1e-12)
