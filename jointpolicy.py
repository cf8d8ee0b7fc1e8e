"""
Partial joint policies for finite-horizon Dec-POMDPs.

A partial joint policy of depth t fixes, for each agent, the action taken after
every observation history of length 0, 1, ..., t-1. It is stored as a chain of
immutable nodes: each node holds the joint decision rule of its last stage and
a reference to its parent, so siblings produced by one expansion share all of
their ancestors.

Indexing conventions:
    rule[agent][history] -> ActionID, for one stage.
    Agent histories are numbered in base nobs_factor[agent]: extending history h
    with observation o gives h * nobs_factor[agent] + o. Stage 0 has the single
    empty history 0.

License: MIT  (https://opensource.org/license/mit/)
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np

# Primitives
ActionID = int
HistoryID = int
DecisionRule = Tuple[ActionID, ...]             # [HistoryIdx] -> ActionID
JointDecisionRule = Tuple[DecisionRule, ...]    # [AgentIdx][HistoryIdx] -> ActionID
JointHistory = Tuple[HistoryID, ...]            # [AgentIdx] -> HistoryID
Occupancy = Dict[JointHistory, np.ndarray]      # joint history -> unnormalized state distribution


@dataclass(frozen=True)
class ProblemContext:
    """
    Static structure of a decision problem: enough to build the empty policy.
    """
    nagents: int
    horizon: int
    nacts_factor: Tuple[int, ...]
    nobs_factor: Tuple[int, ...]

    def __post_init__(self):
        object.__setattr__(self, "nacts_factor", tuple(self.nacts_factor))
        object.__setattr__(self, "nobs_factor", tuple(self.nobs_factor))
        if self.nagents < 1:
            raise ValueError(f"nagents must be >= 1, got {self.nagents}")
        if self.horizon < 0:
            raise ValueError(f"horizon must be >= 0, got {self.horizon}")
        if len(self.nacts_factor) != self.nagents or len(self.nobs_factor) != self.nagents:
            raise ValueError("nacts_factor and nobs_factor need one entry per agent")
        if min(self.nacts_factor) < 1 or min(self.nobs_factor) < 1:
            raise ValueError("every agent needs at least one action and one observation")

    def nhistories(self, agent: int, stage: int) -> int:
        return self.nobs_factor[agent] ** stage

    def empty_policy(self) -> 'PartialJointPolicy':
        return PartialJointPolicy(context=self)


@dataclass(frozen=True, eq=False)
class PartialJointPolicy:
    context: ProblemContext
    rule: Optional[JointDecisionRule] = None
    parent: Optional['PartialJointPolicy'] = None
    depth: int = 0
    value: float = 0.0                    # expected reward of the stages fixed so far
    occupancy: Optional[Occupancy] = None  # distribution at stage `depth`; None if not tracked

    def __len__(self) -> int:
        return self.depth

    @property
    def complete(self) -> bool:
        return self.depth == self.context.horizon

    def extend(self, rule: JointDecisionRule, value: Optional[float] = None,
               occupancy: Optional[Occupancy] = None) -> 'PartialJointPolicy':
        """
        Returns a new policy that follows this one and then `rule` at stage `depth`.

        `value` is the expected reward of the extended policy (defaults to the
        current value); `occupancy` its distribution at the next stage.
        """
        ctx = self.context
        if self.complete:
            raise ValueError(f"policy already covers the horizon ({ctx.horizon})")
        rule = tuple(tuple(r) for r in rule)
        if len(rule) != ctx.nagents:
            raise ValueError(f"joint decision rule needs {ctx.nagents} agent rules, got {len(rule)}")
        for aidx, agent_rule in enumerate(rule):
            nhist = ctx.nhistories(aidx, self.depth)
            if len(agent_rule) != nhist:
                raise ValueError(f"agent {aidx} rule at stage {self.depth} needs {nhist} actions, got {len(agent_rule)}")
            if any(a < 0 or a >= ctx.nacts_factor[aidx] for a in agent_rule):
                raise ValueError(f"agent {aidx} rule {agent_rule} has actions outside range({ctx.nacts_factor[aidx]})")
        return PartialJointPolicy(context=ctx, rule=rule, parent=self, depth=self.depth + 1,
                                  value=self.value if value is None else value, occupancy=occupancy)

    def rules(self) -> List[JointDecisionRule]:
        """Joint decision rules from stage 0 up to stage depth-1."""
        rules = []
        node = self
        while node.parent is not None:
            rules.append(node.rule)
            node = node.parent
        rules.reverse()
        return rules

    def action(self, agent: int, stage: int, history: HistoryID) -> ActionID:
        if stage < 0 or stage >= self.depth:
            raise IndexError(f"stage {stage} not fixed in a policy of depth {self.depth}")
        node = self
        for _ in range(self.depth - 1 - stage):
            node = node.parent
        return node.rule[agent][history]

    def soft_print(self) -> str:
        lines = [f"PartialJointPolicy depth={self.depth}/{self.context.horizon} value={self.value:.6g}"]
        for stage, rule in enumerate(self.rules()):
            agents = "  ".join(f"agent{aidx}={list(r)}" for aidx, r in enumerate(rule))
            lines.append(f"  stage {stage}: {agents}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"PartialJointPolicy(depth={self.depth}, value={self.value:.6g})"
