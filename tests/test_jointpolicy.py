from __future__ import annotations

import dataclasses
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from jointpolicy import ProblemContext  # noqa: E402

CTX = ProblemContext(nagents=2, horizon=2, nacts_factor=(3, 2), nobs_factor=(2, 3))


def test_context_validation() -> None:
    with pytest.raises(ValueError):
        ProblemContext(nagents=0, horizon=1, nacts_factor=(), nobs_factor=())
    with pytest.raises(ValueError):
        ProblemContext(nagents=2, horizon=-1, nacts_factor=(2, 2), nobs_factor=(2, 2))
    with pytest.raises(ValueError):
        ProblemContext(nagents=2, horizon=1, nacts_factor=(2,), nobs_factor=(2, 2))
    with pytest.raises(ValueError):
        ProblemContext(nagents=1, horizon=1, nacts_factor=(0,), nobs_factor=(2,))


def test_context_normalizes_lists() -> None:
    ctx = ProblemContext(nagents=1, horizon=1, nacts_factor=[2], nobs_factor=[2])
    assert ctx.nacts_factor == (2,)
    assert ctx.nhistories(0, 3) == 8


def test_empty_policy() -> None:
    pi = CTX.empty_policy()
    assert len(pi) == 0
    assert pi.rule is None
    assert pi.parent is None
    assert pi.value == 0.0
    assert not pi.complete
    assert pi.rules() == []


def test_extend_shares_parent() -> None:
    root = CTX.empty_policy()
    a = root.extend(((0,), (1,)), value=1.5)
    b = root.extend(((2,), (0,)), value=-1.0)
    assert a.parent is root and b.parent is root
    assert root.depth == 0
    assert a.depth == b.depth == 1
    assert a.value == 1.5


def test_extend_to_horizon() -> None:
    pi = CTX.empty_policy().extend(((0,), (1,)))
    pi = pi.extend([[0, 2], [1, 1, 0]])
    assert pi.complete
    assert pi.rules() == [((0,), (1,)), ((0, 2), (1, 1, 0))]
    assert pi.action(0, 1, 1) == 2
    assert pi.action(1, 0, 0) == 1
    with pytest.raises(IndexError):
        pi.action(0, 2, 0)
    with pytest.raises(ValueError):
        pi.extend(((0,), (0,)))


def test_extend_keeps_value_by_default() -> None:
    pi = CTX.empty_policy().extend(((0,), (1,)), value=3.0)
    assert pi.extend(((0, 0), (0, 0, 0))).value == 3.0


@pytest.mark.parametrize("rule", [
    ((0,),),                  # one agent missing
    ((0, 1), (0,)),           # too many histories for stage 0
    ((3,), (0,)),             # action out of range for agent 0
    ((0,), (-1,)),            # negative action
])
def test_extend_rejects_malformed_rules(rule) -> None:
    with pytest.raises(ValueError):
        CTX.empty_policy().extend(rule)


def test_policy_is_immutable() -> None:
    pi = CTX.empty_policy()
    with pytest.raises(dataclasses.FrozenInstanceError):
        pi.value = 1.0  # type: ignore[misc]


def test_soft_print_lists_stages() -> None:
    pi = CTX.empty_policy().extend(((0,), (1,)), value=2.0)
    text = pi.soft_print()
    assert "depth=1/2" in text
    assert "stage 0: agent0=[0]  agent1=[1]" in text
    assert repr(pi) == "PartialJointPolicy(depth=1, value=2)"
