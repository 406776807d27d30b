import setuptools

setuptools.setup(
    name='mcengine',
    version='0.1.0',
    description=(
        'Random-walk Metropolis and Hamiltonian Monte Carlo samplers'
    ),
    long_description=(
        'mcengine is a Python package providing Markov chain Monte Carlo '
        '(MCMC) methods for sampling from distributions specified by an '
        'energy function, with random-walk Metropolis and leapfrog based '
        'Hamiltonian Monte Carlo transitions and a chain driver for running '
        'one or more independent chains.'
    ),
    packages=['mcengine'],
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Programming Language :: Python :: 3',
        'Operating System :: OS Independent',
        'Topic :: Scientific/Engineering',
        'Intended Audience :: Science/Research',
        'Intended Audience :: Developers'
    ],
    keywords='inference sampling MCMC HMC Metropolis',
    install_requires=['numpy>=1.17', 'scipy>=1.4'],
    python_requires='>=3.7',
    extras_require={
        'parallel': ['multiprocess>=0.70'],
        'test': ['pytest>=6'],
    }
)
