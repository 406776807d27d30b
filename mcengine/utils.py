"""Utility functions."""

from math import isfinite
from numbers import Integral

import numpy as np

from mcengine.errors import ConfigurationError


def as_state(value):
    """Convert a scalar or sequence of coordinates to a chain state array.

    Args:
        value (float or array_like): Scalar or one-dimensional sequence of
            real-valued coordinates.

    Returns:
        state (array): One-dimensional float array with at least one entry.
            Scalars are promoted to arrays of shape `(1,)`.

    Raises:
        ConfigurationError: If `value` has more than one dimension or no
            entries.
    """
    state = np.array(value, dtype=np.float64)
    if state.ndim == 0:
        state = state[None]
    if state.ndim != 1:
        raise ConfigurationError(
            f"Chain states must be one-dimensional, got shape {state.shape}."
        )
    if state.shape[0] == 0:
        raise ConfigurationError("Chain states must have at least one coordinate.")
    return state


def check_positive(name, value):
    """Raise a `ConfigurationError` unless `value` is a finite positive real."""
    if isinstance(value, bool) or not isfinite(value) or value <= 0:
        raise ConfigurationError(f"{name} must be a finite positive real, got {value}.")


def check_positive_int(name, value):
    """Raise a `ConfigurationError` unless `value` is an integer >= 1."""
    if isinstance(value, bool) or not isinstance(value, Integral) or value < 1:
        raise ConfigurationError(f"{name} must be an integer >= 1, got {value}.")


def standard_gaussian_energy(pos):
    """Energy (negative log density) of a standard normal distribution."""
    return 0.5 * np.sum(pos**2)


def grad_standard_gaussian_energy(pos):
    """Gradient of `standard_gaussian_energy`."""
    return pos


def sample_inverse_cdf(inv_cdf, n_sample, rng):
    """Draw independent samples by inverse transform sampling.

    Uniform variates on [0, 1) are mapped through the quantile function
    (inverse cumulative distribution function) of the target distribution.

    Args:
        inv_cdf (Callable[[array], array]): Vectorized quantile function of
            the distribution to sample from.
        n_sample (int): Number of samples to draw.
        rng (numpy.random.Generator): Numpy random number generator.

    Returns:
        samples (array): Array of shape `(n_sample,)` of independent samples.
    """
    check_positive_int("n_sample", n_sample)
    return np.asarray(inv_cdf(rng.uniform(size=n_sample)), dtype=np.float64)
