"""Measurement vectors: propagation of state sigma points into sensor space.

Two sizing strategies share one contract:

    FixedMeasurementVector    every declared field, every time
    DynamicMeasurementVector  only the fields activated on the instance,
                              e.g. the sensors that reported this cycle

Prediction functions ``h(state) -> field value`` are supplied per
(measurement type, state type) pair through a :class:`PredictionTable`.

Noise configuration is held per measurement type. It is process-wide,
read-mostly state: configure it once before any covariance computation and
do not change it while other threads are computing. Passing a
:class:`NoiseConfiguration` explicitly to
:meth:`MeasurementVector.assemble_measurement_noise` avoids the shared state
altogether.

Example:
    >>> class Sensors(FixedMeasurementVector):
    ...     fields = (
    ...         Field("gyroscope", Vector(3)),
    ...         Field("static_pressure", Scalar()),
    ...     )
    >>> table = PredictionTable(Sensors, MyState, {
    ...     "gyroscope": lambda x: x.get_field("angular_velocity"),
    ...     "static_pressure": lambda x: 101.3 - 1.2 * x.get_field("altitude") / 100.0,
    ... })
    >>> z_sigma = Sensors().propagate(state_sigma, table)
"""

from typing import (
    Any,
    Callable,
    ClassVar,
    Dict,
    Hashable,
    Iterable,
    Mapping,
    Optional,
    Tuple,
    Type,
    Union,
)

import numpy as np
from numpy.typing import ArrayLike, NDArray

from ukfcore.errors import DimensionMismatch, InactiveFieldAccess
from ukfcore.estimators.base import UnscentedVector
from ukfcore.estimators.covariance import NoiseConfiguration, assemble_noise
from ukfcore.estimators.sigma_points import SigmaPointDistribution
from ukfcore.fields.layout import FieldLayout
from ukfcore.fields.vector import CompositeVector

Prediction = Callable[[CompositeVector], Any]


class PredictionTable:
    """Prediction functions of one measurement type for one state type.

    Every declared field of the measurement type needs a function; the
    table is checked when it is built, so a missing function is reported
    before any sigma point is propagated.

    The same table serves fixed and dynamic measurement types that declare
    identical fields.

    Args:
        measurement_type: Measurement vector class the functions predict.
        state_type: State vector class the functions read.
        predictions: Mapping from measurement field label to ``h(state)``.

    Raises:
        ValueError: If a declared field has no function or an undeclared
            label is given.
        TypeError: If a prediction is not callable.
    """

    def __init__(
        self,
        measurement_type: Type["MeasurementVector"],
        state_type: Type[CompositeVector],
        predictions: Mapping[Hashable, Prediction],
    ):
        layout = measurement_type._require_layout()
        state_type._require_layout()

        missing = [label for label in layout.labels if label not in predictions]
        if missing:
            raise ValueError(
                f"{measurement_type.__name__} has no prediction from "
                f"{state_type.__name__} for field(s) {missing!r}"
            )
        unknown = [label for label in predictions if label not in layout]
        if unknown:
            raise ValueError(
                f"{measurement_type.__name__} does not declare field(s) {unknown!r}"
            )
        for label, fn in predictions.items():
            if not callable(fn):
                raise TypeError(f"Prediction for {label!r} is not callable")

        self.measurement_type = measurement_type
        self.state_type = state_type
        self.layout: FieldLayout = layout
        self._predictions: Dict[Hashable, Prediction] = dict(predictions)

    def __getitem__(self, label: Hashable) -> Prediction:
        return self._predictions[label]

    def predict(self, label: Hashable, state: CompositeVector) -> Any:
        """Expected value of one measurement field for a given state."""
        return self._predictions[label](state)

    def __repr__(self) -> str:
        return (
            f"PredictionTable({self.measurement_type.__name__} <- "
            f"{self.state_type.__name__})"
        )


class MeasurementVector(UnscentedVector):
    """Behaviour shared by fixed and dynamic measurement vectors."""

    _noise: ClassVar[Optional[NoiseConfiguration]] = None

    # ------------------------------------------------------------------
    # Type-level noise configuration
    # ------------------------------------------------------------------

    @classmethod
    def configure_noise(
        cls, variances: Union[NoiseConfiguration, Mapping[Hashable, Any]]
    ) -> NoiseConfiguration:
        """Set the measurement noise variances for this measurement type.

        Args:
            variances: NoiseConfiguration or mapping label -> variance(s).

        Returns:
            The stored configuration.

        Raises:
            UnknownFieldError: If a label is not declared by the type.
            DimensionMismatch: If an entry does not fit its field.
        """
        layout = cls._require_layout()
        config = _as_noise_configuration(variances)
        for label in config.labels:
            f = layout.field(label)
            config.block(label, f.type.tangent_dim)
        cls._noise = config
        return config

    @classmethod
    def noise_configuration(cls) -> Optional[NoiseConfiguration]:
        # Configuration belongs to the exact type, never to a subclass.
        return cls.__dict__.get("_noise")

    @classmethod
    def reset_noise(cls) -> None:
        cls._noise = None

    def assemble_measurement_noise(
        self, noise: Optional[Union[NoiseConfiguration, Mapping[Hashable, Any]]] = None
    ) -> NDArray[np.float64]:
        """Block-diagonal noise matrix R over this vector's fields.

        Args:
            noise: Explicit configuration; the type-level configuration is
                used when omitted.

        Raises:
            UnconfiguredNoise: If no configuration is available or a field
                has no entry.
        """
        if noise is None:
            config = type(self).noise_configuration()
        else:
            config = _as_noise_configuration(noise)
        return assemble_noise(self._layout(), config)

    # ------------------------------------------------------------------
    # Propagation
    # ------------------------------------------------------------------

    def propagate(
        self,
        state_sigma_points: SigmaPointDistribution,
        predictions: PredictionTable,
    ) -> SigmaPointDistribution:
        """Evaluate the prediction functions on every state sigma point.

        Args:
            state_sigma_points: Distribution of the table's state type.
            predictions: Prediction functions for this measurement type.

        Returns:
            Distribution of measurement vectors, one per input point, with
            the state's transform parameters.

        Raises:
            DimensionMismatch: If the table or the distribution belongs to
                other types, or a prediction returns a wrongly sized value.
        """
        if predictions.layout != type(self)._require_layout():
            raise DimensionMismatch(
                f"{predictions!r} does not predict the fields of {type(self).__name__}"
            )
        if state_sigma_points.layout != predictions.state_type.layout:
            raise DimensionMismatch(
                f"Sigma points are not {predictions.state_type.__name__} vectors"
            )

        layout = self._layout()
        slices = [(f, layout.storage_slice(f.label)) for f in layout]
        points = np.empty((len(state_sigma_points), layout.storage_dim), dtype=np.float64)

        for i, state in enumerate(state_sigma_points):
            for f, s in slices:
                points[i, s] = f.type.to_storage(predictions.predict(f.label, state))

        return SigmaPointDistribution(
            points, layout, self._factory(), state_sigma_points.parameters
        )

    def innovation(self, expected: "MeasurementVector") -> NDArray[np.float64]:
        """Tangent-space difference between this measurement and a prediction."""
        return self.difference(expected)


class FixedMeasurementVector(MeasurementVector):
    """Measurement vector whose field set is fixed by its declaration."""


class DynamicMeasurementVector(MeasurementVector):
    """Measurement vector with a per-instance active subset of its fields.

    Declared fields form the universe; :meth:`activate` picks the ones that
    take part in storage, propagation, recovery and noise. Inactive fields
    contribute no rows or columns anywhere and their prediction functions
    are never called.

    The class-level :meth:`dimension` describes the declared universe;
    :meth:`size` is the dimension of an instance's active fields and is
    what its covariances, deltas and noise blocks use.

    Args:
        active: Labels to activate immediately.
        data: Optional storage for the active fields.
    """

    def __init__(self, active: Iterable[Hashable] = (), data: Optional[ArrayLike] = None):
        universe = self._require_layout()
        self._mask = 0
        self._active_layout = universe.subset(())
        self._data = self._active_layout.default_storage()
        self.activate(*active)
        if data is not None:
            layout = self._active_layout
            self._data = self._normalized(layout, layout.check_storage(data).copy())

    @classmethod
    def from_array(
        cls, data: ArrayLike, active: Iterable[Hashable] = ()
    ) -> "DynamicMeasurementVector":
        return cls(active, data)

    @classmethod
    def from_mask(cls, mask: int) -> "DynamicMeasurementVector":
        """Vector with the fields whose declaration index bits are set."""
        return cls(cls._require_layout().labels_from_mask(mask))

    def activate(self, *labels: Hashable) -> None:
        """Make exactly ``labels`` the active fields.

        Storage is resized to the new active set. Values of fields that stay
        active are kept; newly active fields start at their defaults.

        Raises:
            UnknownFieldError: If a label is not declared.
        """
        universe = type(self).layout
        mask = universe.mask(labels)
        layout = universe.subset(labels)

        data = layout.default_storage()
        old = self._active_layout
        for f in layout:
            if f.label in old:
                data[layout.storage_slice(f.label)] = self._data[old.storage_slice(f.label)]

        self._mask = mask
        self._active_layout = layout
        self._data = data

    @property
    def active_fields(self) -> Tuple[Hashable, ...]:
        return self._active_layout.labels

    @property
    def active_mask(self) -> int:
        return self._mask

    def is_active(self, label: Hashable) -> bool:
        type(self).layout.index(label)
        return label in self._active_layout

    def size(self) -> int:
        """Tangent dimension of this instance: sum over the active fields.

        Unlike the class-level :meth:`dimension`, this follows :meth:`activate`.
        """
        return self._active_layout.dimension()

    def _layout(self) -> FieldLayout:
        return self._active_layout

    def _sibling(self, data: NDArray[np.float64]) -> "DynamicMeasurementVector":
        vector = type(self).__new__(type(self))
        vector._mask = self._mask
        vector._active_layout = self._active_layout
        vector._data = data
        return vector

    def _factory(self) -> Callable[[NDArray[np.float64]], "DynamicMeasurementVector"]:
        # Snapshot the active set so a later activate() on self cannot leak in.
        return self._sibling(self._data)._sibling

    def _check_active(self, label: Hashable) -> None:
        if not self.is_active(label):
            raise InactiveFieldAccess(
                f"Field {label!r} is not active in {type(self).__name__} "
                f"(active: {self.active_fields!r})"
            )

    def get_field(self, label: Hashable) -> Any:
        self._check_active(label)
        return super().get_field(label)

    def set_field(self, label: Hashable, value: Any) -> None:
        self._check_active(label)
        super().set_field(label, value)


def _as_noise_configuration(
    variances: Union[NoiseConfiguration, Mapping[Hashable, Any]]
) -> NoiseConfiguration:
    if isinstance(variances, NoiseConfiguration):
        return variances
    return NoiseConfiguration(variances)
