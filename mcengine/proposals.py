"""Symmetric proposal distributions for random-walk Metropolis transitions.

The Metropolis acceptance rule used by `mcengine.transitions` applies no
Hastings correction, so every proposal must be symmetric: the density of
proposing `x'` from `x` must equal that of proposing `x` from `x'`. Proposals
violating this do not leave the target distribution invariant.
"""

from abc import ABC, abstractmethod

from mcengine.utils import check_positive


class Proposal(ABC):
    """Base class for symmetric random-walk proposals."""

    @abstractmethod
    def propose(self, state, rng):
        """Draw a candidate state given the current state.

        Args:
            state (array): Current chain state. Must not be modified.
            rng (numpy.random.Generator): Numpy random number generator.

        Returns:
            array: New candidate state array.
        """


class GaussianProposal(Proposal):
    """Isotropic Gaussian random-walk proposal.

    Adds a step with independent zero-mean Gaussian components of standard
    deviation `scale` to each coordinate of the current state.
    """

    def __init__(self, scale):
        """
        Args:
            scale (float): Positive standard deviation of each step component.
        """
        check_positive("scale", scale)
        self.scale = scale

    def propose(self, state, rng):
        return state + self.scale * rng.standard_normal(state.shape)


class UniformProposal(Proposal):
    """Uniform random-walk proposal on a hypercube centred at the state."""

    def __init__(self, half_width):
        """
        Args:
            half_width (float): Positive half-width of the interval each step
                component is uniformly drawn from.
        """
        check_positive("half_width", half_width)
        self.half_width = half_width

    def propose(self, state, rng):
        return state + rng.uniform(-self.half_width, self.half_width, state.shape)
