"""Target distributions defined by energy functions and their gradients."""

import numpy as np

from mcengine.errors import MissingGradientError


class EnergyTarget:
    r"""Target distribution specified by an energy (potential) function.

    The energy \(E\) is the negative logarithm of an unnormalized probability
    density \(\pi\) on the state space

    \[ E(x) = -\log \pi(x) + \text{const}, \]

    so that lower energies correspond to higher density. Only differences of
    energy are ever used. A value of `+inf` marks a state outside the support
    of the target.

    Both the energy and gradient functions must be pure and deterministic, so
    that a single target may be shared by chains running concurrently. Whether
    the gradient is consistent with the energy is not checked.
    """

    def __init__(self, energy, grad_energy=None):
        """
        Args:
            energy (Callable[[array], float]): Function which given a state
                array returns the energy at that state.
            grad_energy (None or Callable[[array], array or Tuple[array, float]]):
                Function which given a state array returns the derivative of
                `energy` with respect to the state. Optionally the function may
                instead return a 2-tuple with the first entry the derivative
                and the second the energy at the passed state. Only required by
                gradient based transitions.
        """
        self._energy = energy
        self._grad_energy = grad_energy

    @classmethod
    def from_density(cls, density, grad_energy=None):
        """Construct a target from an unnormalized density function.

        The energy is defined as `-log(density(x))`, with states of zero
        density mapped to an energy of `+inf`. The Metropolis acceptance
        probability `min(1, exp(E(x) - E(x')))` then equals the density ratio
        `min(1, density(x') / density(x))`.

        Args:
            density (Callable[[array], float]): Function returning the
                non-negative unnormalized density at a state.
            grad_energy (None or Callable[[array], array]): Optional gradient
                of `-log(density(x))`.

        Returns:
            EnergyTarget: Target with energy defined by `density`.
        """
        return cls(_NegLogDensity(density), grad_energy)

    @property
    def has_gradient(self):
        """Whether a gradient function is available."""
        return self._grad_energy is not None

    def energy(self, state):
        """Energy of target distribution at a state.

        Args:
            state (array): State to compute value at.

        Returns:
            float: Energy value, possibly `inf` or `nan`. Energy functions
                applied elementwise to a one-dimensional state may return a
                size one array, which is reduced to a scalar.
        """
        value = np.asarray(self._energy(state))
        if value.size != 1:
            raise ValueError(
                f"Energy function must return a scalar, got shape {value.shape}."
            )
        return float(value.reshape(()))

    def grad_energy(self, state):
        """Derivative of energy with respect to state.

        Args:
            state (array): State to compute value at.

        Returns:
            array: Gradient of `energy` at `state`.
        """
        if self._grad_energy is None:
            raise MissingGradientError(
                "Target was constructed without a grad_energy function."
            )
        grad = self._grad_energy(state)
        if isinstance(grad, tuple):
            grad = grad[0]
        return np.asarray(grad, dtype=np.float64)


class _NegLogDensity:
    """Picklable wrapper mapping a density function to its negative logarithm."""

    def __init__(self, density):
        self.density = density

    def __call__(self, state):
        dens = self.density(state)
        if dens == 0:
            return np.inf
        with np.errstate(invalid="ignore"):
            return -np.log(dens)
