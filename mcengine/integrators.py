"""Symplectic integrator for simulation of Hamiltonian dynamics."""

from math import isfinite

import numpy as np

from mcengine.errors import ConfigurationError
from mcengine.utils import check_positive, check_positive_int


def _check_time_step(dt):
    if isinstance(dt, bool) or not isfinite(dt) or dt == 0:
        raise ConfigurationError(
            f"Integrator time step must be finite and non-zero, got {dt}."
        )


def integrate(x0, v0, grad, dt, n_steps, mass=1.0):
    r"""Simulate Hamiltonian dynamics with the leapfrog (Störmer-Verlet) scheme.

    The Hamiltonian is assumed to be separable

    \[ h(x, v) = E(x) + \frac{m}{2} v^T v \]

    with \(E\) the potential energy and \(m\) a scalar mass. Each step applies

        v_half = v - (dt / 2) * grad(x) / mass
        x_next = x + dt * v_half
        v_next = v_half - (dt / 2) * grad(x_next) / mass

    The composed map preserves phase-space volume and is reversible: negating
    the final velocity, integrating again for the same number of steps and
    negating the velocity once more recovers the initial pair up to
    floating-point round-off. The gradient at the end of each step is reused
    at the start of the next, so `n_steps + 1` gradient evaluations are made.

    Args:
        x0 (array): Initial position. Not modified.
        v0 (array): Initial velocity. Not modified.
        grad (Callable[[array], array]): Gradient of the potential energy.
        dt (float): Non-zero time step. Negative values integrate backwards.
        n_steps (int): Number of leapfrog steps, at least one.
        mass (float): Positive scalar mass. Defaults to one.

    Returns:
        pos (array): Position after `n_steps` steps.
        vel (array): Velocity after `n_steps` steps.
    """
    _check_time_step(dt)
    check_positive_int("n_steps", n_steps)
    check_positive("mass", mass)
    half_dt_over_mass = 0.5 * dt / mass
    pos = np.asarray(x0, dtype=np.float64)
    vel = np.asarray(v0, dtype=np.float64)
    grad_pos = grad(pos)
    for _ in range(n_steps):
        vel = vel - half_dt_over_mass * grad_pos
        pos = pos + dt * vel
        grad_pos = grad(pos)
        vel = vel - half_dt_over_mass * grad_pos
    return pos, vel


class LeapfrogIntegrator:
    """Leapfrog integrator bound to a potential energy gradient.

    Stores the gradient function, time step and mass so that transitions can
    simulate trajectories by calling `integrate` with only the initial
    position-velocity pair and number of steps.
    """

    def __init__(self, grad_energy, step_size, mass=1.0):
        """
        Args:
            grad_energy (Callable[[array], array]): Gradient of the potential
                energy with respect to position.
            step_size (float): Non-zero integrator time step.
            mass (float): Positive scalar mass. Defaults to one.
        """
        _check_time_step(step_size)
        check_positive("mass", mass)
        self.grad_energy = grad_energy
        self.step_size = step_size
        self.mass = mass

    def step(self, pos, vel):
        """Perform a single integrator step.

        Args:
            pos (array): Position to step from. Not modified.
            vel (array): Velocity to step from. Not modified.

        Returns:
            pos (array): New position array.
            vel (array): New velocity array.
        """
        return self.integrate(pos, vel, 1)

    def integrate(self, pos, vel, n_step):
        """Perform `n_step` integrator steps.

        Args:
            pos (array): Initial position. Not modified.
            vel (array): Initial velocity. Not modified.
            n_step (int): Number of steps, at least one.

        Returns:
            pos (array): Final position array.
            vel (array): Final velocity array.
        """
        return integrate(pos, vel, self.grad_energy, self.step_size, n_step, self.mass)
