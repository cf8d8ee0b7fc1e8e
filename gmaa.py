"""
GMAA*: best-first branch-and-bound search over partial joint policies of a Dec-POMDP.

The search keeps its open partial joint policies in a policy pool (see policypool.py).
Each iteration pops the best candidate, expands it by every joint decision rule for its
next stage, and inserts the children whose heuristic bound still beats the incumbent
(the best complete joint policy found so far). Whenever the incumbent improves, the
pool is pruned with its value. The search stops, with an optimal policy, once the best
bound left in the pool does not exceed the incumbent value.

Key Components:
    - DecPOMDPModel: dense transition, observation and reward arrays of the problem.
    - GMAAConfig: solver hyperparameters.
    - GMAAStar: heuristics, expansion and the search loop.

Heuristics:
    - MDP: value of the underlying fully observable MDP (QMDP), computed by finite-horizon
      value iteration. Admissible, and usually much tighter than max_reward.
    - max_reward: remaining stages times the largest immediate reward.

Parallel expansion:
    With workers > 1, up to `workers` candidates are popped per iteration and expanded on
    a thread pool. Each worker fills its own private pool; the search loop is the only
    caller of the main pool and merges the private pools with union().

License: MIT  (https://opensource.org/license/mit/)
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from itertools import product, repeat
import math
import sys
from typing import List, Optional, Tuple

import numpy as np
from numba import jit
import psutil

from jointpolicy import JointHistory, Occupancy, PartialJointPolicy, ProblemContext
from policypool import POOL_TYPES, Candidate, PolicyPool, make_policy_pool

EPSILON = 1e-12         # Probability threshold for dropping unreachable joint histories
ROW_TOLERANCE = 1e-6    # Tolerance for probability rows summing to one

HEURISTIC_TYPES = ("MDP", "max_reward")


class MemoryLimitExceeded(Exception):
    """Raised when memory usage exceeds the configured limit."""
    pass


def get_memory_usage_gb() -> float:
    """Returns current process memory usage in GB."""
    process = psutil.Process()
    return process.memory_info().rss / (1024 ** 3)


@jit(nopython=True, cache=True)
def fast_step(belief, T, O, ja, nstates, nobs):
    """
    Unnormalized joint distribution over (joint observation, next state) after joint action ja.
    """
    next_states = np.zeros(nstates, dtype=np.float64)
    for s in range(nstates):
        val = belief[s]
        if val > 1e-12:  # Numba JIT requires literal constant
            for s_prime in range(nstates):
                next_states[s_prime] += val * T[ja, s, s_prime]

    joint_unnorm = np.zeros((nobs, nstates), dtype=np.float64)
    for s_prime in range(nstates):
        val_ns = next_states[s_prime]
        if val_ns > 0:
            for o in range(nobs):
                joint_unnorm[o, s_prime] = val_ns * O[ja, s_prime, o]
    return joint_unnorm


def cumprod(lens):     # cumprod takes an array [l_0, l_1, ..., l_{n-1}] and returns the array of cumulative products
    ll = len(lens)     # [1, l_0, l_0l_1, ..., l_0l_1...l_{n-2}], as well as the full product l_0l_1...l_{n-1} separately.
    div = [1]*ll
    for idx in range(ll-1):
        div[idx+1] = div[idx] * lens[idx]
    return(div, div[ll-1]*lens[ll-1])


class DecPOMDPModel:
    """
    Static definition of a Dec-POMDP.

    Joint actions and joint observations are mixed-radix numbers with agent 0 as the least
    significant digit: ja = a_0 + |A_0| a_1 + |A_0||A_1| a_2 + ...
    """
    def __init__(self, nagents, nstates, nactions, nobs, transitions, obs, rewards,
                 init_beliefs, nacts_factor, nobs_factor):
          # transitions: for each joint action a and state s, a distribution over next states,
          #   as one list of length |A| * |S| * |S|
          # obs: for each joint action a and next state s', a distribution over joint observations,
          #   as one list of length |A| * |S| * |O|, or a sparse dict {flat index: probability}
          # rewards: reward of joint action a in state s, as one list of length |A| * |S|
          # init_beliefs: initial distribution over states, common to all agents
          # nacts_factor / nobs_factor: number of actions / observations of each agent
        self.nagents = nagents
        self.nstates = nstates
        self.nactions = nactions
        self.nobs = nobs
        self.nacts_factor = tuple(nacts_factor)
        self.nobs_factor = tuple(nobs_factor)

        if len(self.nacts_factor) != nagents or len(self.nobs_factor) != nagents:
            raise ValueError("nacts_factor and nobs_factor need one entry per agent")
        self.a_prod, prod_a = cumprod(self.nacts_factor)
        self.o_prod, prod_o = cumprod(self.nobs_factor)
        if prod_a != nactions:
            raise ValueError(f"nactions={nactions} differs from the product of nacts_factor ({prod_a})")
        if prod_o != nobs:
            raise ValueError(f"nobs={nobs} differs from the product of nobs_factor ({prod_o})")

        if isinstance(obs, dict):
            obs = [obs.get(i, 0.0) for i in range(nactions * nstates * nobs)]

        self.T = np.array(transitions, dtype=np.float64).reshape(nactions, nstates, nstates)
        self.O = np.array(obs, dtype=np.float64).reshape(nactions, nstates, nobs)
        self.RA = np.array(rewards, dtype=np.float64).reshape(nactions, nstates)
        self.init_beliefs = np.array(init_beliefs, dtype=np.float64).reshape(nstates)
        self._validate()

        self.obs_split = [tuple((jo // self.o_prod[i]) % self.nobs_factor[i] for i in range(nagents))
                          for jo in range(nobs)]

    def _validate(self) -> None:
        for name, arr in (("transitions", self.T), ("obs", self.O), ("rewards", self.RA),
                          ("init_beliefs", self.init_beliefs)):
            if not np.isfinite(arr).all():
                raise ValueError(f"{name} contains non-finite entries")
        if abs(self.init_beliefs.sum() - 1) > ROW_TOLERANCE or self.init_beliefs.min() < 0:
            raise ValueError(f"initial belief is not a distribution: {self.init_beliefs}")
        if self.T.min() < 0 or self.O.min() < 0:
            raise ValueError("negative transition or observation probability")
        t_rows = self.T.sum(axis=2)
        if np.any(np.abs(t_rows - 1) > ROW_TOLERANCE):
            a, s = np.argwhere(np.abs(t_rows - 1) > ROW_TOLERANCE)[0]
            raise ValueError(f"transition row (a={a}, s={s}) sums to {t_rows[a, s]}")
        o_rows = self.O.sum(axis=2)
        if np.any(np.abs(o_rows - 1) > ROW_TOLERANCE):
            a, s = np.argwhere(np.abs(o_rows - 1) > ROW_TOLERANCE)[0]
            raise ValueError(f"observation row (a={a}, s'={s}) sums to {o_rows[a, s]}")

    def joint_action(self, actions) -> int:
        return sum(act * self.a_prod[i] for i, act in enumerate(actions))

    def split_observation(self, jo: int) -> Tuple[int, ...]:
        return self.obs_split[jo]

    def context(self, horizon: int) -> ProblemContext:
        return ProblemContext(nagents=self.nagents, horizon=horizon,
                              nacts_factor=self.nacts_factor, nobs_factor=self.nobs_factor)


@dataclass
class GMAAConfig:
    """
    Hyperparameters of the GMAA* solver. May be overwritten by benchmark drivers.
    """
    horizon: int

    heuristic_type: str = "MDP"      # "MDP" or "max_reward"
    pool_type: str = "bound"         # "bound" or "depth_first"
    workers: int = 1                 # Candidates expanded in parallel per iteration

    # iter_limit: expansion budget. Hitting it returns the incumbent without optimality guarantee.
    iter_limit: Optional[int] = None
    policyvalfound: float = -math.inf   # Value of a known solution; only better policies are returned

    # Resource Limits
    memory_limit_gb: Optional[float] = 16.0  # Memory limit in GB; None = no limit
    memory_check_interval: int = 100          # Check memory every N expansions

    output: bool = False

    def __post_init__(self):
        if self.horizon < 0:
            raise ValueError(f"horizon must be >= 0, got {self.horizon}")
        if self.heuristic_type not in HEURISTIC_TYPES:
            raise ValueError(f"heuristic_type must be one of {HEURISTIC_TYPES}, got {self.heuristic_type!r}")
        if self.pool_type not in POOL_TYPES:
            raise ValueError(f"pool_type must be one of {sorted(POOL_TYPES)}, got {self.pool_type!r}")
        if self.workers < 1:
            raise ValueError(f"workers must be >= 1, got {self.workers}")
        if self.iter_limit is not None and self.iter_limit < 1:
            raise ValueError(f"iter_limit must be >= 1 or None, got {self.iter_limit}")
        if self.memory_check_interval < 1:
            raise ValueError(f"memory_check_interval must be >= 1, got {self.memory_check_interval}")


@dataclass
class GMAAResult:
    value: float
    policy: Optional[PartialJointPolicy]
    optimal: bool
    iterations: int
    pruned: int
    max_pool_size: int


class GMAAStar:
    def __init__(self, model: DecPOMDPModel, config: GMAAConfig):
        self.model = model
        self.config = config
        self.nagents = model.nagents
        self.output = config.output
        self.context = model.context(config.horizon)
        self.memory_limit_gb = config.memory_limit_gb
        self.memory_check_interval = config.memory_check_interval
        self._last_reported_mem_gb = 0

        self._rules_cache = {}
        self.tail = self.compute_heuristic(config.horizon)

    def compute_heuristic(self, h: int) -> List[np.ndarray]:
        """
        Upper bounds on the value of k remaining stages from each state, for k = 0..h.
        """
        RA, T = self.model.RA, self.model.T
        values = [np.zeros(self.model.nstates, dtype=np.float64)]
        if self.config.heuristic_type == "max_reward":
            maxr = RA.max()
            for k in range(1, h + 1):
                values.append(np.full(self.model.nstates, k * maxr, dtype=np.float64))
            return values
        for k in range(1, h + 1):
            Q = RA + T @ values[-1]      # Q[a, s] = R(s, a) + sum_s' T(s'|s, a) V_{k-1}(s')
            values.append(Q.max(axis=0))
        if self.output:
            print(f"MDP heuristic at the initial belief: {self.model.init_beliefs @ values[h]:.8f}")
            sys.stdout.flush()
        return values

    def initial_occupancy(self) -> Occupancy:
        return {(0,) * self.nagents: self.model.init_beliefs}

    def joint_decision_rules(self, stage: int):
        """All joint decision rules for `stage`, agent 0's rule varying slowest."""
        per_agent = self._rules_cache.get(stage)
        if per_agent is None:
            per_agent = [list(product(range(self.model.nacts_factor[i]), repeat=self.context.nhistories(i, stage)))
                         for i in range(self.nagents)]
            self._rules_cache[stage] = per_agent
        return product(*per_agent)

    def _step(self, theta: JointHistory, belief: np.ndarray, ja: int, V: Optional[np.ndarray]):
          # Expected immediate reward of joint action ja at joint history theta; if V is given,
          # also the reachable successor histories and their contribution to the heuristic.
        reward = float(belief @ self.model.RA[ja])
        if V is None:
            return reward, (), 0.0
        joint_unnorm = fast_step(belief, self.model.T, self.model.O, ja, self.model.nstates, self.model.nobs)
        successors = []
        nobs_factor = self.model.nobs_factor
        for jo in range(self.model.nobs):
            p = joint_unnorm[jo]
            if p.sum() > EPSILON:
                obs = self.model.obs_split[jo]
                successors.append((tuple(theta[i] * nobs_factor[i] + obs[i] for i in range(self.nagents)), p))
        return reward, successors, float(joint_unnorm.sum(axis=0) @ V)

    def expand(self, candidate: Candidate) -> List[Candidate]:
        """
        Children of the candidate's policy, one per joint decision rule for its next stage.

        Children that reach the horizon are complete and carry their exact value as bound.
        """
        pi = candidate.policy
        t = pi.depth
        togo = self.context.horizon - t - 1
        V = self.tail[togo] if togo > 0 else None
        occ = pi.occupancy if pi.occupancy is not None else self.initial_occupancy()
        histories = list(occ.items())
        a_prod = self.model.a_prod
        cache = {}
        children = []
        for rule in self.joint_decision_rules(t):
            value = pi.value
            heur = 0.0
            next_occ = {} if V is not None else None
            for theta, belief in histories:
                ja = sum(rule[i][theta[i]] * a_prod[i] for i in range(self.nagents))
                entry = cache.get((theta, ja))
                if entry is None:
                    entry = self._step(theta, belief, ja, V)
                    cache[(theta, ja)] = entry
                reward, successors, tail_value = entry
                value += reward
                if V is not None:
                    heur += tail_value
                    next_occ.update(successors)
            child = pi.extend(rule, value=value, occupancy=next_occ)
            children.append(Candidate(child, value + heur))
        return children

    def _expand_private(self, candidate: Candidate, threshold: float) -> Tuple[PolicyPool, Optional[Candidate]]:
          # Expands into a private pool; returns it with the best complete child, if any.
        pool = make_policy_pool(self.config.pool_type)
        best = None
        for child in self.expand(candidate):
            if child.policy.complete:
                if best is None or child.bound > best.bound:
                    best = child
            elif child.bound > threshold:
                pool.insert(child)
        return pool, best

    def _check_memory(self, ctr: int) -> None:
        mem_usage = get_memory_usage_gb()
        # Log when memory increases by 1GB or more since last report
        if int(mem_usage) > int(self._last_reported_mem_gb):
            if self.output:
                print(f"[Memory] {mem_usage:.2f}GB used at iteration {ctr}")
                sys.stdout.flush()
            self._last_reported_mem_gb = mem_usage
        if mem_usage > self.memory_limit_gb:
            raise MemoryLimitExceeded(f"Memory usage {mem_usage:.2f}GB exceeds limit {self.memory_limit_gb}GB at iteration {ctr}")

    def solve(self) -> GMAAResult:
        h = self.context.horizon
        if h == 0:
            return GMAAResult(0.0, self.context.empty_policy(), True, 0, 0, 0)

        self._last_reported_mem_gb = 0
        cfg = self.config
        pool = make_policy_pool(cfg.pool_type)
        pool.init(self.context)

        policyvalfound = cfg.policyvalfound
        best_policy = None
        optimal = True
        ctr = 0
        pruned = 0
        max_pool_size = pool.size()

        executor = ThreadPoolExecutor(max_workers=cfg.workers) if cfg.workers > 1 else None
        try:
            while pool.size():
                if pool.get_best_ranked().bound <= policyvalfound:
                    break
                if cfg.iter_limit is not None and ctr >= cfg.iter_limit:
                    optimal = False
                    break

                nbatch = cfg.workers if cfg.iter_limit is None else min(cfg.workers, cfg.iter_limit - ctr)
                batch = []
                while pool.size() and len(batch) < nbatch:
                    candidate = pool.select()
                    pool.pop(candidate)
                    if candidate.bound > policyvalfound:
                        batch.append(candidate)

                for _ in batch:
                    ctr += 1
                    if self.memory_limit_gb is not None and ctr % self.memory_check_interval == 0:
                        self._check_memory(ctr)
                    if self.output and (ctr < 1000 or (ctr % 100 == 0 and ctr < 10000) or ctr % 10000 == 0):
                        print(f"[GMAA*] iter={ctr} pool={pool.size()} best={policyvalfound:.8f}")
                        sys.stdout.flush()

                if executor is not None:
                    results = list(executor.map(self._expand_private, batch, repeat(policyvalfound)))
                else:
                    results = [self._expand_private(c, policyvalfound) for c in batch]

                for private_pool, best_complete in results:
                    if best_complete is not None and best_complete.bound > policyvalfound:
                        policyvalfound = best_complete.bound
                        best_policy = best_complete.policy
                        npruned = pool.prune(policyvalfound)
                        pruned += npruned
                        if self.output:
                            print(f"[GMAA*] iter={ctr} new incumbent {policyvalfound:.8f}, pruned {npruned}")
                            sys.stdout.flush()
                    pruned += private_pool.prune(policyvalfound)
                    pool.union(private_pool)
                max_pool_size = max(max_pool_size, pool.size())
        finally:
            if executor is not None:
                executor.shutdown()

        if self.output:
            print(pool.soft_print())
            sys.stdout.flush()
        return GMAAResult(policyvalfound, best_policy, optimal, ctr, pruned, max_pool_size)
