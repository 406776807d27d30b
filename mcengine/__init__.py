""" Markov chain Monte Carlo sampling with Metropolis and Hamiltonian kernels. """

import mcengine.config
import mcengine.diagnostics
import mcengine.errors
import mcengine.integrators
import mcengine.progressbars
import mcengine.proposals
import mcengine.samplers
import mcengine.targets
import mcengine.transitions
import mcengine.utils
