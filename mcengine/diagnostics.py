"""Convergence and efficiency diagnostics for sampled chains."""

import numpy as np
from scipy import fft

from mcengine.errors import ConfigurationError


def _as_series(series):
    values = np.asarray(series, dtype=np.float64)
    if values.ndim == 2 and values.shape[1] == 1:
        values = values[:, 0]
    if values.ndim != 1:
        raise ValueError("series must be one-dimensional")
    return values


def discard_burn_in_and_thin(samples, n_burn_in=0, thin=1):
    """Drop an initial burn-in prefix of a chain and keep every `thin`-th state.

    Args:
        samples (array): Chain samples with iteration index on first axis.
        n_burn_in (int): Number of initial samples to discard.
        thin (int): Positive stride between retained samples.

    Returns:
        array: View of retained samples.
    """
    if n_burn_in < 0:
        raise ConfigurationError(f"n_burn_in must be non-negative, got {n_burn_in}.")
    if thin < 1:
        raise ConfigurationError(f"thin must be >= 1, got {thin}.")
    return np.asarray(samples)[n_burn_in::thin]


def autocorrelation(series, max_lag=None):
    """Normalized autocorrelation function of a scalar chain.

    Computed with a zero-padded FFT, using the biased (divide by `n`)
    autocovariance estimator.

    Args:
        series (array): One-dimensional chain of scalar values.
        max_lag (None or int): Largest lag to return. Defaults to `n - 1`.

    Returns:
        array: Autocorrelations at lags `0, ..., max_lag`, with value one at
            lag zero. All zeros beyond lag zero for a constant series.
    """
    values = _as_series(series)
    n = values.size
    max_lag = n - 1 if max_lag is None else min(max_lag, n - 1)
    centered = values - values.mean()
    n_fft = fft.next_fast_len(2 * n)
    spectrum = fft.rfft(centered, n_fft)
    autocov = fft.irfft(spectrum * np.conj(spectrum), n_fft)[: max_lag + 1] / n
    if autocov[0] == 0.0:
        autocorr = np.zeros(max_lag + 1)
        autocorr[0] = 1.0
        return autocorr
    return autocov / autocov[0]


def integrated_autocorrelation_time(series, max_lag=None):
    """Estimate the integrated autocorrelation time of a scalar chain.

    Uses `tau = 1 + 2 * sum(rho_k)` with the sum truncated at the first lag
    for which the autocorrelation is non-positive.

    Args:
        series (array): One-dimensional chain of scalar values.
        max_lag (None or int): Largest lag to include. Defaults to
            `min(n // 2, 1000)`.

    Returns:
        float: Integrated autocorrelation time, one for independent samples.
    """
    values = _as_series(series)
    if values.size < 2:
        return 1.0
    if max_lag is None:
        max_lag = min(values.size // 2, 1000)
    autocorr = autocorrelation(values, max_lag)[1:]
    non_positive = np.flatnonzero(autocorr <= 0.0)
    if non_positive.size > 0:
        autocorr = autocorr[: non_positive[0]]
    return float(1.0 + 2.0 * np.sum(autocorr))


def effective_sample_size(series, max_lag=None):
    """Estimate the effective sample size `n / tau` of a scalar chain."""
    values = _as_series(series)
    return values.size / integrated_autocorrelation_time(values, max_lag)


def gelman_rubin(chains):
    """Potential scale reduction statistic R-hat for multiple scalar chains.

    Args:
        chains (Sequence[array]): Two or more equal length one-dimensional
            chains of a scalar quantity.

    Returns:
        float: R-hat value, close to one for chains that have mixed.

    Raises:
        ValueError: If fewer than two chains or samples per chain are given,
            or if all chains are constant.
    """
    chains = np.stack([_as_series(chain) for chain in chains])
    n_chain, n = chains.shape
    if n_chain < 2 or n < 2:
        raise ValueError("At least two chains of at least two samples are needed.")
    between = n * np.var(chains.mean(axis=1), ddof=1)
    within = np.mean(np.var(chains, axis=1, ddof=1))
    if within == 0:
        raise ValueError("R-hat is undefined for chains with zero variance.")
    var_plus = (n - 1) / n * within + between / n
    return float(np.sqrt(var_plus / within))


def acceptance_rate(stats):
    """Proportion of accepted proposals from a chain statistics dictionary."""
    return float(np.mean(stats["accepted"]))
