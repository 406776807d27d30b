from math import exp, inf, nan

import numpy as np
import pytest

import mcengine
from mcengine.errors import ConfigurationError, MissingGradientError, NumericalError
from mcengine.proposals import GaussianProposal, UniformProposal
from mcengine.targets import EnergyTarget
from mcengine.transitions import (
    HamiltonianTransition,
    MetropolisTransition,
    hamiltonian_propose_and_accept,
    metropolis_accept_prob,
    metropolis_propose_and_accept,
)
from mcengine.utils import grad_standard_gaussian_energy, standard_gaussian_energy

SEED = 3046987125
STATE_DIM = 2


@pytest.fixture
def rng():
    return np.random.default_rng(SEED)


@pytest.fixture
def target():
    return EnergyTarget(standard_gaussian_energy, grad_standard_gaussian_energy)


@pytest.fixture
def state(rng):
    return rng.standard_normal(STATE_DIM)


def energy_outside_origin(pos):
    return 0.0 if np.all(pos == 0) else inf


def gaussian_density(pos):
    return np.exp(-0.5 * np.sum(pos**2))


@pytest.mark.parametrize(
    "energy_init,energy_prop,expected",
    [
        (0.0, 1.0, exp(-1.0)),
        (1.0, 0.0, 1.0),
        (2.0, 2.0, 1.0),
        (0.0, inf, 0.0),
        (inf, 0.0, 1.0),
        (inf, inf, 0.0),
        (0.0, -inf, 1.0),
        (-inf, 0.0, 0.0),
        (-1e3, 1e3, 0.0),
    ],
)
def test_metropolis_accept_prob(energy_init, energy_prop, expected):
    assert metropolis_accept_prob(energy_init, energy_prop) == pytest.approx(expected)


@pytest.mark.parametrize("energy_init,energy_prop", [(nan, 0.0), (0.0, nan), (nan, nan)])
def test_metropolis_accept_prob_nan_raises(energy_init, energy_prop):
    with pytest.raises(NumericalError, match="NaN"):
        metropolis_accept_prob(energy_init, energy_prop)


def test_accept_prob_equals_density_ratio(rng):
    density_target = EnergyTarget.from_density(gaussian_density)
    for x, x_p in rng.standard_normal((20, 2, STATE_DIM)):
        accept_prob = metropolis_accept_prob(
            density_target.energy(x), density_target.energy(x_p)
        )
        assert accept_prob == pytest.approx(
            min(1, gaussian_density(x_p) / gaussian_density(x))
        )


class TransitionTests:
    def test_statistic_types(self, transition, state, rng):
        _, stats = transition.sample(state, rng)
        assert stats.keys() == transition.statistic_types.keys()
        assert 0 <= stats["accept_prob"] <= 1
        assert isinstance(stats["accepted"], bool)

    def test_state_not_mutated(self, transition, state, rng):
        state_init = state.copy()
        for _ in range(10):
            transition.sample(state, rng)
        assert np.all(state == state_init), "transition modifying passed state"

    def test_deterministic_given_seed(self, transition, state):
        outputs = []
        for _ in range(2):
            rng = np.random.default_rng(SEED)
            chain_state = state
            chain = []
            for _ in range(20):
                chain_state, _ = transition.sample(chain_state, rng)
                chain.append(chain_state)
            outputs.append(np.stack(chain))
        assert np.array_equal(outputs[0], outputs[1])

    def test_accepted_state_returned(self, transition, state, rng):
        for _ in range(20):
            new_state, stats = transition.sample(state, rng)
            if stats["accepted"]:
                assert new_state is not state
            else:
                assert new_state is state


class TestMetropolisTransition(TransitionTests):
    @pytest.fixture(params=("gaussian", "uniform"))
    def transition(self, target, request):
        if request.param == "gaussian":
            proposal = GaussianProposal(1.0)
        else:
            proposal = UniformProposal(1.0)
        return MetropolisTransition(target, proposal)

    def test_energy_function_wrapped(self):
        transition = MetropolisTransition(standard_gaussian_energy, GaussianProposal(1))
        assert isinstance(transition.target, EnergyTarget)

    def test_reject_returns_same_object(self, rng):
        transition = MetropolisTransition(energy_outside_origin, GaussianProposal(1))
        state = np.zeros(STATE_DIM)
        for _ in range(10):
            new_state, stats = transition.sample(state, rng)
            assert new_state is state
            assert stats == {"accept_prob": 0.0, "accepted": False}

    def test_flat_target_always_accepts(self, rng):
        transition = MetropolisTransition(lambda pos: 0.0, GaussianProposal(1))
        state = np.zeros(STATE_DIM)
        for _ in range(10):
            new_state, stats = transition.sample(state, rng)
            assert stats["accepted"] and stats["accept_prob"] == 1.0
            assert new_state is not state
            state = new_state

    def test_out_of_support_rejected_without_error(self, rng):
        transition = MetropolisTransition(
            lambda pos: inf if pos[0] > 0 else 0.5 * pos[0] ** 2, GaussianProposal(1)
        )
        state = np.array([-0.1])
        for _ in range(200):
            state, _ = transition.sample(state, rng)
            assert state[0] <= 0

    @pytest.mark.parametrize("nan_at", ("current", "proposal"))
    def test_nan_energy_raises(self, rng, nan_at):
        def energy(pos):
            at_origin = bool(np.all(pos == 0))
            return nan if at_origin == (nan_at == "current") else 0.0

        transition = MetropolisTransition(energy, GaussianProposal(1))
        with pytest.raises(NumericalError):
            transition.sample(np.zeros(STATE_DIM), rng)

    def test_density_framing_matches_energy_framing(self, target, state):
        density_target = EnergyTarget.from_density(gaussian_density)
        chains = []
        for chain_target in (target, density_target):
            rng = np.random.default_rng(SEED)
            transition = MetropolisTransition(chain_target, GaussianProposal(1.5))
            chain_state = state
            chain = []
            for _ in range(500):
                chain_state, _ = transition.sample(chain_state, rng)
                chain.append(chain_state)
            chains.append(np.stack(chain))
        assert np.allclose(chains[0], chains[1])

    def test_propose_and_accept_matches_transition(self, target, state):
        rng = np.random.default_rng(SEED)
        expected, _ = MetropolisTransition(target, GaussianProposal(0.5)).sample(
            state, rng
        )
        rng = np.random.default_rng(SEED)
        new_state = metropolis_propose_and_accept(state, target, 0.5, rng)
        assert np.array_equal(new_state, expected)

    @pytest.mark.parametrize("step_scale", (0.0, -1.0, nan))
    def test_propose_and_accept_invalid_step_scale(self, target, state, rng, step_scale):
        with pytest.raises(ConfigurationError):
            metropolis_propose_and_accept(state, target, step_scale, rng)


class TestHamiltonianTransition(TransitionTests):
    @pytest.fixture(params=((0.1, 5, 1.0), (0.2, 1, 2.0)))
    def transition(self, target, request):
        step_size, n_step, mass = request.param
        return HamiltonianTransition(target, step_size, n_step, mass)

    def test_statistics_values(self, transition, state, rng):
        _, stats = transition.sample(state, rng)
        assert stats["n_step"] == transition.n_step
        assert np.isfinite(stats["delta_h"])
        assert stats["accept_prob"] == pytest.approx(min(1, exp(-stats["delta_h"])))

    def test_properties(self, target):
        transition = HamiltonianTransition(target, 0.3, 4, 1.5)
        assert transition.step_size == 0.3
        assert transition.mass == 1.5
        assert transition.n_step == 4
        assert transition.negate_velocity

    def test_missing_gradient_raises(self):
        with pytest.raises(MissingGradientError):
            HamiltonianTransition(EnergyTarget(standard_gaussian_energy), 0.1, 1)

    @pytest.mark.parametrize(
        "step_size,n_step,mass",
        [(0.0, 1, 1.0), (-0.1, 1, 1.0), (0.1, 0, 1.0), (0.1, 1, 0.0), (0.1, 1, -2.0)],
    )
    def test_invalid_parameters(self, target, step_size, n_step, mass):
        with pytest.raises(ConfigurationError):
            HamiltonianTransition(target, step_size, n_step, mass)

    def test_reject_returns_same_object(self, rng):
        target = EnergyTarget(energy_outside_origin, np.zeros_like)
        transition = HamiltonianTransition(target, 0.1, 3)
        state = np.zeros(STATE_DIM)
        for _ in range(10):
            new_state, stats = transition.sample(state, rng)
            assert new_state is state
            assert not stats["accepted"]
            assert stats["accept_prob"] == 0.0

    def test_nan_energy_raises(self, rng):
        target = EnergyTarget(
            lambda pos: nan if pos[0] > 1e3 else 0.0, lambda pos: -np.ones_like(pos)
        )
        transition = HamiltonianTransition(target, 10.0, 100)
        with pytest.raises(NumericalError, match="Hamiltonian"):
            transition.sample(np.zeros(1), rng)

    def test_small_step_size_accepts(self, target, state, rng):
        transition = HamiltonianTransition(target, 1e-3, 10)
        for _ in range(10):
            state, stats = transition.sample(state, rng)
            assert abs(stats["delta_h"]) < 1e-4
            assert stats["accept_prob"] > 0.999

    def test_velocity_negation_does_not_change_positions(self, target, state):
        chains = []
        for negate_velocity in (True, False):
            rng = np.random.default_rng(SEED)
            transition = HamiltonianTransition(
                target, 0.5, 5, negate_velocity=negate_velocity
            )
            chain_state = state
            chain = []
            for _ in range(50):
                chain_state, _ = transition.sample(chain_state, rng)
                chain.append(chain_state)
            chains.append(np.stack(chain))
        assert np.array_equal(chains[0], chains[1])

    def test_propose_and_accept_matches_transition(self, state):
        rng = np.random.default_rng(SEED)
        expected, _ = HamiltonianTransition(
            EnergyTarget(standard_gaussian_energy, grad_standard_gaussian_energy),
            0.2,
            3,
            2.0,
        ).sample(state, rng)
        rng = np.random.default_rng(SEED)
        new_state = hamiltonian_propose_and_accept(
            state,
            standard_gaussian_energy,
            grad_standard_gaussian_energy,
            2.0,
            0.2,
            3,
            rng,
        )
        assert np.array_equal(new_state, expected)


def test_transition_base_is_abstract():
    with pytest.raises(TypeError):
        mcengine.transitions.Transition()


class TestFunctionalFormStateTypes:
    def test_metropolis_elementwise_energy(self, rng):
        state = np.array([0.0])
        for _ in range(20):
            state = metropolis_propose_and_accept(state, lambda x: 0.5 * x**2, 1.0, rng)
            assert state.shape == (1,)

    def test_metropolis_tuple_state_accepted(self, rng):
        new_state = metropolis_propose_and_accept((0.0, 1.0), lambda pos: 0.0, 1.0, rng)
        assert isinstance(new_state, np.ndarray)
        assert new_state.shape == (2,)

    def test_metropolis_tuple_state_rejected(self, rng):
        state = (0.0, 0.0)
        new_state = metropolis_propose_and_accept(state, energy_outside_origin, 1.0, rng)
        assert new_state is state

    def test_hamiltonian_scalar_state_accepted(self, rng):
        new_state = hamiltonian_propose_and_accept(
            0.5, lambda x: 0.5 * x**2, lambda x: x, 1.0, 1e-3, 5, rng
        )
        assert isinstance(new_state, np.ndarray)
        assert new_state.shape == (1,)

    def test_hamiltonian_scalar_state_rejected(self, rng):
        state = 0.0
        new_state = hamiltonian_propose_and_accept(
            state, energy_outside_origin, np.zeros_like, 1.0, 0.1, 3, rng
        )
        assert new_state is state
