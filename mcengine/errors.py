"""Exception types."""


class Error(RuntimeError):
    """Base class for errors."""


class ConfigurationError(Error, ValueError):
    """Error raised when sampler or transition parameters are invalid."""


class NumericalError(Error):
    """Error raised when an energy or Hamiltonian evaluates to NaN."""


class MissingGradientError(Error):
    """Error raised when a gradient is required but was not supplied."""
