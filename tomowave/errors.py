"""Exception types raised by tomowave.

Configuration and domain errors subclass ``ValueError`` so callers that already
catch shape/value problems keep working; a vanishing rotated amplitude is an
``ArithmeticError``.
"""


class TomowaveError(Exception):
    """Base class for all package errors."""


class ConfigurationError(TomowaveError, ValueError):
    """A precondition on the model setup or call arguments does not hold."""


class DomainViolationError(TomowaveError, ValueError):
    """A configuration or probability lies outside its allowed domain."""


class DegenerateAmplitudeError(TomowaveError, ArithmeticError):
    """
    The measured outcome has (numerically) zero amplitude in its basis.
    `denominator` is the rotated amplitude divided by exp(log_scale).
    """

    def __init__(self, message, basis=None, state=None, denominator=None, log_scale=0.0):
        super().__init__(message)
        self.basis = basis
        self.state = state
        self.denominator = denominator
        self.log_scale = log_scale
