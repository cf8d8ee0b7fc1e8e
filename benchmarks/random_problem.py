"""
Seeded random Dec-POMDPs.

Transition and observation rows are drawn from a symmetric Dirichlet distribution and
rewards uniformly from [-10, 10]. Small instances can be cross-checked against
exhaustive search.

Usage:
    python benchmarks/random_problem.py <horizon> [--seed 0] [--states 3] [--actions 2] [--observations 2]

License: MIT  (https://opensource.org/license/mit/)
"""

import os
import sys
import time

import numpy as np

# Add the repository root to the path for imports
_script_dir = os.path.dirname(os.path.abspath(__file__))
_root_dir = os.path.dirname(_script_dir)  # Parent of benchmarks/
if _root_dir not in sys.path:
    sys.path.insert(0, _root_dir)

from gmaa import DecPOMDPModel  # noqa: E402
from benchmarks.parser_gmaa import parse  # noqa: E402
from benchmarks.run_gmaa import run  # noqa: E402


def make_model(seed=0, nagents=2, nstates=3, act_per_agent=2, obs_per_agent=2, concentration=0.5):
    rng = np.random.default_rng(seed)
    nacts = act_per_agent ** nagents
    nobs = obs_per_agent ** nagents
    T = rng.dirichlet([concentration] * nstates, size=(nacts, nstates))
    O = rng.dirichlet([concentration] * nobs, size=(nacts, nstates))
    R = rng.uniform(-10, 10, size=(nacts, nstates))
    init_b = rng.dirichlet([1.0] * nstates)
    return DecPOMDPModel(
        nagents=nagents,
        nstates=nstates,
        nactions=nacts,
        nobs=nobs,
        transitions=T.ravel(),
        obs=O.ravel(),
        rewards=R.ravel(),
        init_beliefs=init_b,
        nacts_factor=[act_per_agent] * nagents,
        nobs_factor=[obs_per_agent] * nagents,
    )


if __name__ == "__main__":
    time_start = time.time()
    args = parse(random_problem=True)
    model = make_model(args.seed, args.agents, args.states, args.actions, args.observations)
    run(model, args, time_start)
