"""Markov transition kernels."""

from abc import ABC, abstractmethod
from math import exp, inf, isnan
import logging

import numpy as np

from mcengine.errors import MissingGradientError, NumericalError
from mcengine.integrators import LeapfrogIntegrator
from mcengine.proposals import GaussianProposal
from mcengine.targets import EnergyTarget
from mcengine.utils import as_state, check_positive, check_positive_int

logger = logging.getLogger(__name__)


def _as_target(target, grad_energy=None):
    if isinstance(target, EnergyTarget):
        return target
    return EnergyTarget(target, grad_energy)


def metropolis_accept_prob(energy_init, energy_prop, quantity="energy"):
    """Probability of accepting a move under the Metropolis rule.

    Computes `min(1, exp(energy_init - energy_prop))`. A proposal with energy
    `+inf` (outside the support of the target) is never accepted, while a
    finite energy proposal from a state with energy `+inf` is always accepted.

    Args:
        energy_init (float): Energy (or Hamiltonian) at the current state.
        energy_prop (float): Energy (or Hamiltonian) at the proposed state.
        quantity (str): Name of the compared quantity used in error messages.

    Returns:
        float: Acceptance probability in [0, 1].

    Raises:
        NumericalError: If either value is NaN.
    """
    if isnan(energy_init) or isnan(energy_prop):
        raise NumericalError(
            f"Encountered NaN {quantity} (current = {energy_init}, "
            f"proposed = {energy_prop})."
        )
    if energy_prop == inf:
        return 0.0
    elif energy_init == inf or energy_prop == -inf:
        return 1.0
    elif energy_init == -inf:
        return 0.0
    delta = energy_init - energy_prop
    return 1.0 if delta >= 0 else exp(delta)


def _metropolis_accept(energy_init, energy_prop, rng, quantity="energy"):
    """Draw a Metropolis accept decision, returning probability and outcome."""
    accept_prob = metropolis_accept_prob(energy_init, energy_prop, quantity)
    accepted = bool(rng.uniform() < accept_prob)
    if accept_prob == 0.0 and energy_prop == inf:
        logger.debug("Rejecting proposal outside support of target.")
    return accept_prob, accepted


class Transition(ABC):
    """Base class for Markov transition kernels.

    Defines expected interface for transitions by the chain driver and sampler
    classes. Transitions never modify the state array passed to `sample`, and
    return that same object when a proposal is rejected.
    """

    statistic_types = None
    """Statistics computed during each transition.

    Either `None` if no statistics are returned by the `sample` method or a
    dictionary with string keys and tuple values, with the keys defining the
    keys of the statistics returned in the `trans_stats` return value of the
    `sample` method and the first entry of the value tuples an appropriate
    NumPy `dtype` for the array used to store the corresponding statistic
    values and second entry the default value to initialize this array with.
    """

    @abstractmethod
    def sample(self, state, rng):
        """Sample a new chain state from the Markov transition kernel.

        Args:
            state (array): Current chain state to condition transition kernel
                on.
            rng (numpy.random.Generator): Numpy random number generator.

        Returns:
            state (array): Next chain state. The same object as the input
                `state` if the proposed move was rejected.
            trans_stats (Dict[str, numeric] or None): Any statistics computed
                during the transition or `None` if no statistics.
        """


class MetropolisTransition(Transition):
    """Random-walk Metropolis transition.

    A candidate state is drawn from a symmetric proposal centred on the current
    state and accepted with probability `min(1, exp(E(x) - E(x')))` where `E`
    is the target energy. No Hastings correction is applied, so asymmetric
    proposals are not supported: with them the chain no longer has the target
    as its stationary distribution.
    """

    statistic_types = {
        "accept_prob": (np.float64, np.nan),
        "accepted": (np.bool_, False),
    }

    def __init__(self, target, proposal):
        """
        Args:
            target (mcengine.targets.EnergyTarget or Callable[[array], float]):
                Target distribution or energy function.
            proposal (mcengine.proposals.Proposal): Symmetric proposal.
        """
        self.target = _as_target(target)
        self.proposal = proposal

    def sample(self, state, rng):
        energy_init = self.target.energy(state)
        state_p = self.proposal.propose(state, rng)
        energy_prop = self.target.energy(state_p)
        accept_prob, accepted = _metropolis_accept(energy_init, energy_prop, rng)
        stats = {"accept_prob": accept_prob, "accepted": accepted}
        return (state_p if accepted else state), stats


class HamiltonianTransition(Transition):
    """Hamiltonian Monte Carlo transition with a leapfrog integrator.

    Each transition independently resamples a velocity with components of
    variance `1 / mass`, simulates the Hamiltonian dynamics for a fixed number
    of leapfrog steps and accepts the end point of the trajectory with
    probability `min(1, exp(h_init - h_final))` where

        h(x, v) = E(x) + 0.5 * mass * v @ v

    References:

      1. Duane, S., Kennedy, A.D., Pendleton, B.J. and Roweth, D., 1987.
         Hybrid Monte Carlo. Physics letters B, 195(2), pp.216-222.
      2. Neal, R.M., 2011. MCMC using Hamiltonian dynamics.
         Handbook of Markov Chain Monte Carlo, 2(11), p.2.
    """

    statistic_types = {
        "accept_prob": (np.float64, np.nan),
        "accepted": (np.bool_, False),
        "delta_h": (np.float64, np.nan),
        "n_step": (np.int64, -1),
    }

    def __init__(self, target, step_size, n_step, mass=1.0, negate_velocity=True):
        """
        Args:
            target (mcengine.targets.EnergyTarget): Target distribution. Must
                have a gradient function.
            step_size (float): Positive integrator time step.
            n_step (int): Number of leapfrog steps per transition.
            mass (float): Positive scalar mass. Defaults to one.
            negate_velocity (bool): Whether to negate the velocity at the end
                of the trajectory, making the proposal an involution on the
                joint position-velocity space. As the kinetic energy is even in
                the velocity and the velocity is discarded after each
                transition, skipping the negation leaves the sampled positions
                unchanged. Defaults to `True`.
        """
        target = _as_target(target)
        if not target.has_gradient:
            raise MissingGradientError(
                "Hamiltonian transitions require a target with grad_energy."
            )
        check_positive("step_size", step_size)
        check_positive_int("n_step", n_step)
        self.target = target
        self.integrator = LeapfrogIntegrator(target.grad_energy, step_size, mass)
        self.n_step = n_step
        self.negate_velocity = negate_velocity

    @property
    def step_size(self):
        """Integrator time step."""
        return self.integrator.step_size

    @property
    def mass(self):
        """Scalar mass of kinetic energy."""
        return self.integrator.mass

    def hamiltonian(self, pos, vel):
        """Total energy of a position-velocity pair."""
        return self.target.energy(pos) + 0.5 * self.mass * float(vel @ vel)

    def sample(self, state, rng):
        vel = rng.standard_normal(state.shape) / self.mass**0.5
        h_init = self.hamiltonian(state, vel)
        with np.errstate(over="ignore", invalid="ignore"):
            pos_p, vel_p = self.integrator.integrate(state, vel, self.n_step)
            if self.negate_velocity:
                vel_p = -vel_p
            h_final = self.hamiltonian(pos_p, vel_p)
        accept_prob, accepted = _metropolis_accept(
            h_init, h_final, rng, "Hamiltonian"
        )
        stats = {
            "accept_prob": accept_prob,
            "accepted": accepted,
            "delta_h": h_final - h_init if h_init != inf else np.nan,
            "n_step": self.n_step,
        }
        return (pos_p if accepted else state), stats


def _sample_from(transition, current, rng):
    """Apply a transition to a state given as an array, sequence or scalar."""
    state = current if isinstance(current, np.ndarray) else as_state(current)
    new_state = transition.sample(state, rng)[0]
    return current if new_state is state else new_state


def metropolis_propose_and_accept(current, target, step_scale, rng):
    """Apply a single Gaussian random-walk Metropolis transition.

    Args:
        current (float or array_like): Current chain state.
        target (mcengine.targets.EnergyTarget or Callable[[array], float]):
            Target distribution or energy function.
        step_scale (float): Standard deviation of proposal step components.
        rng (numpy.random.Generator): Numpy random number generator.

    Returns:
        array: Candidate state array if accepted, otherwise
            `current` itself.
    """
    transition = MetropolisTransition(target, GaussianProposal(step_scale))
    return _sample_from(transition, current, rng)


def hamiltonian_propose_and_accept(
    current, potential, grad, mass, dt, leapfrog_steps, rng
):
    """Apply a single Hamiltonian Monte Carlo transition.

    Args:
        current (float or array_like): Current chain position.
        potential (Callable[[array], float]): Potential energy function.
        grad (Callable[[array], array]): Gradient of `potential`.
        mass (float): Positive scalar mass.
        dt (float): Positive integrator time step.
        leapfrog_steps (int): Number of leapfrog steps.
        rng (numpy.random.Generator): Numpy random number generator.

    Returns:
        array: Trajectory end position array if accepted,
            otherwise `current` itself.
    """
    transition = HamiltonianTransition(
        EnergyTarget(potential, grad), dt, leapfrog_steps, mass
    )
    return _sample_from(transition, current, rng)
