"""Exceptions raised by the unscented transform engine.

Every error derives from :class:`UKFError` and from the built-in exception
family a caller would naturally catch (``ValueError`` for bad inputs,
``RuntimeError`` for numerical or configuration failures, ``KeyError`` for
field lookups).
"""


class UKFError(Exception):
    """Base class for all ukfcore errors."""


class NonPositiveDefiniteCovariance(UKFError, ValueError):
    """Square root of a covariance matrix could not be extracted."""


class MeanDidNotConverge(UKFError, RuntimeError):
    """Iterative quaternion mean exhausted its iteration budget."""


class DimensionMismatch(UKFError, ValueError):
    """Input size is inconsistent with the declared or active field set."""


class UnconfiguredNoise(UKFError, RuntimeError):
    """Measurement noise requested before it was configured."""


class UnknownFieldError(UKFError, KeyError):
    """Label is not declared by the vector's field layout."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the message readable.
        return str(self.args[0]) if self.args else ""


class InactiveFieldAccess(UnknownFieldError):
    """Field of a dynamic measurement vector accessed while inactive."""
