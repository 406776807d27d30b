"""Markov chain drivers and Monte Carlo sampler classes."""

from contextlib import contextmanager
import logging
import os
from pickle import PicklingError
from warnings import warn

import numpy as np
from numpy.random import default_rng

from mcengine.errors import ConfigurationError, NumericalError
from mcengine.progressbars import DummyProgressBar, SequenceProgressBar
from mcengine.proposals import GaussianProposal
from mcengine.transitions import HamiltonianTransition, MetropolisTransition
from mcengine.utils import as_state, check_positive_int

# Preferentially import from multiprocess library if available as able to
# serialize much wider range of types including lambdas and closures
try:
    from multiprocess import Pool

    MULTIPROCESS_AVAILABLE = True
except ImportError:
    from multiprocessing import Pool

    MULTIPROCESS_AVAILABLE = False


logger = logging.getLogger(__name__)


@contextmanager
def _pool_context_manager(n_process):
    """Context-manager for process pool that ensures clean exiting.

    Compared to built-in context-manager protocol implementation on Pool object which
    calls the `terminate` method on exit which immediately stops the worker processes,
    this manager instead ensures a clean exit by calling `close` to prevent any
    additional jobs being submitted to pool, and then `join` to wait for processes to
    exit.
    """
    pool = Pool(n_process)
    try:
        yield pool
    finally:
        pool.close()
        pool.join()


def _init_stats(transition, n_sample):
    """Initialize dictionary of per-iteration transition statistic arrays."""
    if transition.statistic_types is None:
        return {}
    return {
        key: np.full(n_sample, val, dtype)
        for key, (dtype, val) in transition.statistic_types.items()
    }


def _get_per_chain_rngs(base_rng, n_chain):
    """Construct random number generators (RNGs) for each of a set of chains.

    If the base RNG bit generator has a `jumped` method this is used to produce
    a sequence of independent random substreams. Otherwise if the base RNG bit
    generator has a `seed_seq` attribute this is used to spawn a sequence of
    generators.
    """
    bit_generator = getattr(base_rng, "bit_generator", None)
    seed_sequence = getattr(
        bit_generator, "seed_seq", getattr(bit_generator, "_seed_seq", None)
    )
    if bit_generator is not None and hasattr(bit_generator, "jumped"):
        return [default_rng(bit_generator.jumped(i)) for i in range(n_chain)]
    elif seed_sequence is not None:
        return [default_rng(seed) for seed in seed_sequence.spawn(n_chain)]
    else:
        raise ValueError(f"Unsupported random number generator type {type(base_rng)}.")


def sample_chain(
    transition, init_state, n_sample, rng, display_progress=False, chain_index=0
):
    """Sample a chain by iteratively applying a transition kernel.

    On each iteration the current state is first recorded and then the
    transition is applied to produce the state for the next iteration, so that
    the first recorded sample is the initial state itself.

    Args:
        transition (mcengine.transitions.Transition): Markov transition kernel.
        init_state (float or array_like): Initial chain state.
        n_sample (int): Number of states to record, at least one.
        rng (numpy.random.Generator): Numpy random number generator. Only this
            generator is used as a source of randomness so that chains sampled
            with identically seeded generators are identical.
        display_progress (bool): Whether to display a progress bar.
        chain_index (int): Identifier for chain when sampling multiple chains.

    Returns:
        final_state (array): State after the transition applied on the last
            iteration. May be used to resume sampling a chain by passing as
            the initial state to a new `sample_chain` call.
        samples (array): Array of shape `(n_sample, dim)` of recorded states.
        stats (Dict[str, array]): Per-iteration transition statistics, keyed
            by the keys of `transition.statistic_types`.

    Raises:
        ConfigurationError: If `n_sample` or `init_state` are invalid. Raised
            before any sampling.
        NumericalError: If a NaN energy is encountered while sampling.
    """
    check_positive_int("n_sample", n_sample)
    state = as_state(init_state)
    samples = np.empty((n_sample, state.shape[0]))
    stats = _init_stats(transition, n_sample)
    if display_progress:
        chain_iterator = SequenceProgressBar(
            range(n_sample), f"Chain {chain_index + 1}"
        )
    else:
        chain_iterator = DummyProgressBar(range(n_sample))
    sample_index = 0
    try:
        with chain_iterator:
            for sample_index, monitor_dict in chain_iterator:
                samples[sample_index] = state
                state, trans_stats = transition.sample(state, rng)
                if trans_stats is not None:
                    for key, val in trans_stats.items():
                        stats[key][sample_index] = val
                    if "accept_prob" in trans_stats:
                        monitor_dict["accept_prob"] = trans_stats["accept_prob"]
    except NumericalError as exception:
        logger.error(
            f"Sampling failed for chain {chain_index + 1} at iteration "
            f"{sample_index}: {exception}"
        )
        raise
    if "accepted" in stats:
        logger.info(
            f"Chain {chain_index + 1} completed {n_sample} iterations with "
            f"acceptance rate {stats['accepted'].mean():.3f}."
        )
    return state, samples, stats


def _sample_chain_worker(transition, init_state, n_sample, rng, chain_index):
    """Process pool entry point sampling a single chain without progress display."""
    return sample_chain(
        transition, init_state, n_sample, rng, chain_index=chain_index
    )


def sample_chains(
    transition, init_states, n_sample, rng, n_process=1, display_progress=False
):
    """Sample multiple independent chains.

    Each chain uses its own random number generator derived from `rng`, so
    the chains are independent and the outputs do not depend on whether the
    chains are run sequentially or in parallel.

    Args:
        transition (mcengine.transitions.Transition): Markov transition kernel
            shared (read-only) by all chains.
        init_states (Iterable[array_like]): Initial chain states, one chain
            being sampled for each.
        n_sample (int): Number of states to record per chain.
        rng (numpy.random.Generator): Base random number generator.
        n_process (int or None): Number of parallel processes to run chains
            over. If `n_process=1` chains are run sequentially, otherwise a
            process pool is used. If `None` the number of processes is set to
            the output of `os.cpu_count()`. Functions used by the transition
            must be picklable for `n_process > 1` (with the `multiprocess`
            package installed lambdas and closures are also supported).
        display_progress (bool): Whether to display progress bars. Only used
            when chains are run sequentially.

    Returns:
        final_states (List[array]): Final state of each chain.
        samples (List[array]): Recorded states array for each chain.
        stats (List[Dict[str, array]]): Transition statistics for each chain.

    Raises:
        ConfigurationError: If `init_states` is empty, or if running chains
            in parallel fails because the transition cannot be pickled and
            the `multiprocess` package is not installed.
    """
    init_states = [as_state(state) for state in init_states]
    if len(init_states) == 0:
        raise ConfigurationError("At least one initial state must be given.")
    check_positive_int("n_sample", n_sample)
    n_process = os.cpu_count() if n_process is None else n_process
    check_positive_int("n_process", n_process)
    n_chain = len(init_states)
    rngs = _get_per_chain_rngs(rng, n_chain)
    if n_process > 1 and n_chain == 1:
        logger.warning("Only one chain requested: sampling in the current process.")
    if n_process == 1 or n_chain == 1:
        chain_outputs = [
            sample_chain(
                transition,
                init_state,
                n_sample,
                chain_rng,
                display_progress=display_progress,
                chain_index=c,
            )
            for c, (init_state, chain_rng) in enumerate(zip(init_states, rngs))
        ]
    else:
        try:
            with _pool_context_manager(min(n_process, n_chain)) as pool:
                chain_outputs = pool.starmap(
                    _sample_chain_worker,
                    [
                        (transition, init_state, n_sample, chain_rng, c)
                        for c, (init_state, chain_rng) in enumerate(
                            zip(init_states, rngs)
                        )
                    ],
                )
        except (PicklingError, AttributeError) as e:
            if not MULTIPROCESS_AVAILABLE and (
                isinstance(e, PicklingError) or "pickle" in str(e)
            ):
                raise ConfigurationError(
                    "Error encountered while trying to run chains on multiple "
                    "processes in parallel. The inbuilt multiprocessing module "
                    "uses pickle to communicate between processes and pickle "
                    "does not support pickling anonymous or nested functions. "
                    "If you use anonymous or nested functions in your energy "
                    "or gradient functions, installing the Python package "
                    "multiprocess, which is able to serialise such functions, "
                    "should fix this error."
                ) from e
            raise
    final_states, samples, stats = (list(outputs) for outputs in zip(*chain_outputs))
    return final_states, samples, stats


class MarkovChainMonteCarloMethod(object):
    """Generic Markov chain Monte Carlo (MCMC) sampler.

    Generates Markov chains from initial states by iteratively applying a
    Markov transition kernel.
    """

    def __init__(self, rng, transition):
        """
        Args:
            rng (numpy.random.Generator): Numpy random number generator.
            transition (mcengine.transitions.Transition): Markov transition
                kernel to sample from on each chain iteration.
        """
        if isinstance(rng, np.random.RandomState):
            warn(
                "Use of numpy.random.RandomState random number generators is "
                "deprecated. Please use a numpy.random.Generator instance "
                "instead for example from a call to numpy.random.default_rng.",
                DeprecationWarning,
            )
            rng = np.random.Generator(rng._bit_generator)
        self.rng = rng
        self.transition = transition

    def sample_chain(self, n_sample, init_state, display_progress=False):
        """Sample a single Markov chain from a given initial state.

        Args:
            n_sample (int): Number of states to record, including the initial
                state.
            init_state (float or array_like): Initial chain state.
            display_progress (bool): Whether to display a progress bar.

        Returns:
            final_state (array): State after the last transition.
            samples (array): Array of shape `(n_sample, dim)` of chain states.
            stats (Dict[str, array]): Per-iteration transition statistics.
        """
        return sample_chain(
            self.transition,
            init_state,
            n_sample,
            self.rng,
            display_progress=display_progress,
        )

    def sample_chains(self, n_sample, init_states, n_process=1, display_progress=False):
        """Sample independent Markov chains from given initial states.

        See `mcengine.samplers.sample_chains` for details of the arguments and
        return values.
        """
        return sample_chains(
            self.transition,
            init_states,
            n_sample,
            self.rng,
            n_process=n_process,
            display_progress=display_progress,
        )


class RandomWalkMetropolis(MarkovChainMonteCarloMethod):
    """Random-walk Metropolis sampler.

    By default proposals are isotropic Gaussian steps of standard deviation
    `step_size`. Any other symmetric `mcengine.proposals.Proposal` may be used
    instead.
    """

    def __init__(self, target, rng, step_size=None, proposal=None):
        """
        Args:
            target (mcengine.targets.EnergyTarget or Callable[[array], float]):
                Target distribution or energy function.
            rng (numpy.random.Generator): Numpy random number generator.
            step_size (float or None): Standard deviation of Gaussian proposal
                steps. Must be specified if and only if `proposal` is `None`.
            proposal (mcengine.proposals.Proposal or None): Symmetric proposal
                to use in place of the default Gaussian proposal.
        """
        if (step_size is None) == (proposal is None):
            raise ConfigurationError(
                "Exactly one of step_size and proposal must be specified."
            )
        if proposal is None:
            proposal = GaussianProposal(step_size)
        super().__init__(rng, MetropolisTransition(target, proposal))

    @property
    def proposal(self):
        """Proposal distribution used by the Metropolis transition."""
        return self.transition.proposal


class HamiltonianMonteCarlo(MarkovChainMonteCarloMethod):
    """Static integration time Hamiltonian Monte Carlo sampler.

    In each transition a fresh velocity is sampled and the Hamiltonian dynamics
    simulated for a fixed number of leapfrog steps, the end point of the
    trajectory being accepted or rejected in a Metropolis step.
    """

    def __init__(
        self, target, rng, step_size, n_step, mass=1.0, negate_velocity=True
    ):
        """
        Args:
            target (mcengine.targets.EnergyTarget): Target distribution with a
                gradient function.
            rng (numpy.random.Generator): Numpy random number generator.
            step_size (float): Positive integrator time step.
            n_step (int): Number of leapfrog steps per transition.
            mass (float): Positive scalar mass. Defaults to one.
            negate_velocity (bool): Whether to negate the trajectory end
                velocity. See `mcengine.transitions.HamiltonianTransition`.
        """
        super().__init__(
            rng,
            HamiltonianTransition(target, step_size, n_step, mass, negate_velocity),
        )

    @property
    def n_step(self):
        """Number of leapfrog steps per transition."""
        return self.transition.n_step

    @n_step.setter
    def n_step(self, value):
        check_positive_int("n_step", value)
        self.transition.n_step = value


def run_metropolis(target, config, rng, display_progress=False):
    """Sample a random-walk Metropolis chain using a run configuration.

    Args:
        target (mcengine.targets.EnergyTarget or Callable[[array], float]):
            Target distribution or energy function.
        config (mcengine.config.SamplerConfig): Validated run configuration.
            `step_size` is used as the Gaussian proposal standard deviation.
        rng (numpy.random.Generator): Numpy random number generator.
        display_progress (bool): Whether to display a progress bar.

    Returns:
        final_state (array): State after the last transition.
        samples (array): Array of shape `(config.num_samples, config.dim)`.
        stats (Dict[str, array]): Per-iteration transition statistics.
    """
    sampler = RandomWalkMetropolis(target, rng, step_size=config.step_size)
    return sampler.sample_chain(
        config.num_samples, config.init_state(), display_progress=display_progress
    )


def run_hmc(target, config, rng, display_progress=False):
    """Sample a Hamiltonian Monte Carlo chain using a run configuration.

    Args:
        target (mcengine.targets.EnergyTarget): Target distribution with a
            gradient function.
        config (mcengine.config.SamplerConfig): Validated run configuration.
            `step_size`, `mass` and `leapfrog_steps` configure the transition.
        rng (numpy.random.Generator): Numpy random number generator.
        display_progress (bool): Whether to display a progress bar.

    Returns:
        final_state (array): State after the last transition.
        samples (array): Array of shape `(config.num_samples, config.dim)`.
        stats (Dict[str, array]): Per-iteration transition statistics.
    """
    sampler = HamiltonianMonteCarlo(
        target,
        rng,
        step_size=config.step_size,
        n_step=config.leapfrog_steps,
        mass=config.mass,
    )
    return sampler.sample_chain(
        config.num_samples, config.init_state(), display_progress=display_progress
    )
