"""Immutable run configuration for the chain samplers.

Validation is eager: invalid values raise `mcengine.errors.ConfigurationError`
when the configuration is constructed, before any sampling begins.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np

from mcengine.errors import ConfigurationError
from mcengine.utils import as_state, check_positive, check_positive_int


@dataclass(frozen=True, eq=False)
class SamplerConfig:
    """Per-run sampler parameters.

    Attributes:
        num_samples: Number of states to record in the chain, including the
            initial state.
        step_size: Proposal standard deviation for random-walk Metropolis or
            integrator time step for Hamiltonian Monte Carlo.
        initial_state: Initial chain state. If `None` a zero vector of
            dimension `dim` is used.
        dim: Dimension of the sampled space. Inferred from `initial_state` if
            not given, otherwise defaults to one.
        mass: Scalar mass used in the kinetic energy (Hamiltonian only).
        leapfrog_steps: Leapfrog steps per transition (Hamiltonian only).
    """

    num_samples: int
    step_size: float
    initial_state: Optional[np.ndarray] = None
    dim: Optional[int] = None
    mass: float = 1.0
    leapfrog_steps: int = 1

    def __post_init__(self):
        check_positive_int("num_samples", self.num_samples)
        check_positive("step_size", self.step_size)
        check_positive("mass", self.mass)
        check_positive_int("leapfrog_steps", self.leapfrog_steps)
        if self.dim is not None:
            check_positive_int("dim", self.dim)
        if self.initial_state is not None:
            state = as_state(self.initial_state)
            if self.dim is not None and state.shape[0] != self.dim:
                raise ConfigurationError(
                    f"initial_state has {state.shape[0]} coordinates but "
                    f"dim = {self.dim}."
                )
            state.flags.writeable = False
            object.__setattr__(self, "initial_state", state)
            object.__setattr__(self, "dim", state.shape[0])
        elif self.dim is None:
            object.__setattr__(self, "dim", 1)

    def init_state(self):
        """Return a fresh (writeable) copy of the initial chain state."""
        if self.initial_state is None:
            return np.zeros(self.dim)
        return self.initial_state.copy()
