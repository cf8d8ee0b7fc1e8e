"""
Multi-Agent Tiger Domain (Dec-Tiger)

Two agents stand before two doors. A tiger hides behind one of them; the other door
hides a treasure. Each agent can listen or open a door, and hears the tiger on the
correct side with probability 0.85 when both listen.

Domain Description:
    - States: tiger Left (0), tiger Right (1)
    - Actions (per agent): Open Left (OL=0), Open Right (OR=1), Listen (Li=2)
    - Observations (per agent): Hear Left (HL=0), Hear Right (HR=1)
    - Both listen: -2 and the state persists
    - Any door opened: the problem resets to a uniform tiger position and observations
      are uninformative

Known optimal values: h=2: -4.0, h=3: 5.19081, h=4: 4.80264.

Usage:
    python benchmarks/dec_tiger.py <horizon> [--heuristic MDP] [--pool bound] [--workers 1]

Reference:
    Nair et al., "Taming Decentralized POMDPs: Towards Efficient Policy
    Computation for Multiagent Settings"

License: MIT  (https://opensource.org/license/mit/)
"""

import os
import sys
import time

# Add the repository root to the path for imports
_script_dir = os.path.dirname(os.path.abspath(__file__))
_root_dir = os.path.dirname(_script_dir)  # Parent of benchmarks/
if _root_dir not in sys.path:
    sys.path.insert(0, _root_dir)

from gmaa import DecPOMDPModel  # noqa: E402
from benchmarks.parser_gmaa import parse  # noqa: E402
from benchmarks.run_gmaa import run  # noqa: E402


class TigerProblemFactory:
    """Generates the Transition, Observation, and Reward lists."""

    def __init__(self):
        self.nagents = 2
        self.nstates = 2  # L=0, R=1
        self.act_per_agent = 3 # OL=0, OR=1, Li=2
        self.obs_per_agent = 2 # HL=0, HR=1

        self.nacts = self.act_per_agent ** self.nagents
        self.nobs = self.obs_per_agent ** self.nagents
        self.nsq = self.nstates ** 2
        self.nso = self.nstates * self.nobs

        self.transit = [0.0] * (self.nsq * self.nacts)
        self.obs = [0.0] * (self.nobs * self.nstates * self.nacts)
        self.reward = [0.0] * (self.nstates * self.nacts)
        self.init_beliefs = [0.5, 0.5]

    def _set_obs_val(self, a, t, o, val):
        self.obs[a * self.nso + t * self.nobs + o] = val

    def generate(self):
        """Constructs and returns the lists required by DecPOMDPModel."""
        for a in range(self.nacts):
            if a == 8: # Both Listen
                for s in range(self.nstates):
                    self.reward[a * self.nstates + s] = -2
                    for t in range(self.nstates):
                        self.transit[a * self.nsq + s * self.nstates + t] = 1.0 * (s == t)
                for t in range(self.nstates):
                    for o in range(self.nobs):
                        b1, b2 = o % 2, o // 2
                        p1 = 0.15 + 0.7 * (t == b1)
                        p2 = 0.15 + 0.7 * (t == b2)
                        self._set_obs_val(a, t, o, p1 * p2)
            else: # Opening Doors
                for s in range(self.nstates):
                    r_val = -101*((a%3 == s)*(a//3 == 2) + (a//3 == s)*(a%3 == 2)) \
                            -50*((a%3 == s)*(a//3 == s)) \
                            -100*((a%3 != 2)*(a%3 != s)*(a//3 == s) + (a//3 != 2)*(a//3 != s)*(a%3 == s)) \
                            +9*((a%3 != 2)*(a%3 != s)*(a//3 == 2) + (a//3 != 2)*(a//3 != s)*(a%3 == 2)) \
                            +20*((a%3 != 2)*(a%3 != s)*(a//3 != 2)*(a//3 != s))
                    self.reward[a * self.nstates + s] = r_val

                    for t in range(self.nstates):
                        self.transit[a * self.nsq + s * self.nstates + t] = 0.5

                for t in range(self.nstates):
                    for o in range(self.nobs):
                        self._set_obs_val(a, t, o, 0.25)

        return (self.transit, self.obs, self.reward, self.init_beliefs,
                [self.act_per_agent]*2, [self.obs_per_agent]*2)


def make_model():
    factory = TigerProblemFactory()
    T, O, R, init_b, nacts_fac, nobs_fac = factory.generate()
    return DecPOMDPModel(
        nagents=factory.nagents,
        nstates=factory.nstates,
        nactions=factory.nacts,
        nobs=factory.nobs,
        transitions=T,
        obs=O,
        rewards=R,
        init_beliefs=init_b,
        nacts_factor=nacts_fac,
        nobs_factor=nobs_fac,
    )


if __name__ == "__main__":
    time_start = time.time()
    args = parse()
    run(make_model(), args, time_start)
