from __future__ import annotations

import sys
import time
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from baselines.random_policy import evaluate_random_policy  # noqa: E402
from baselines.verify import PolicyVerifier, count_joint_policies, exhaustive_search  # noqa: E402
from benchmarks import dec_tiger, random_problem  # noqa: E402
from benchmarks.parser_gmaa import config_from_args, parse  # noqa: E402
from benchmarks.run_gmaa import run  # noqa: E402

LISTEN = ((2,), (2,))


def test_verifier_always_listen() -> None:
    model = dec_tiger.make_model()
    verifier = PolicyVerifier(model)
    assert verifier.evaluate_policy([LISTEN]) == pytest.approx(-2.0)
    assert verifier.evaluate_policy([LISTEN, ((2, 2), (2, 2))]) == pytest.approx(-4.0)


def test_verifier_open_after_listening() -> None:
    model = dec_tiger.make_model()
    # Open the door opposite to what was heard: HL -> OR, HR -> OL.
    value = PolicyVerifier(model).evaluate_policy([LISTEN, ((1, 0), (1, 0))])
    # both right 0.7225 * 20, both wrong 0.0225 * -50, disagreeing 0.255 * -100
    assert value == pytest.approx(-2.0 - 12.175)


def test_random_policy_value_tiger() -> None:
    model = dec_tiger.make_model()
    assert evaluate_random_policy(model, 1) == pytest.approx(-416 / 9)
    assert evaluate_random_policy(model, 0) == 0.0


def test_random_policy_is_below_optimum() -> None:
    model = random_problem.make_model(seed=3)
    best, rules = exhaustive_search(model, 2)
    assert evaluate_random_policy(model, 2) <= best + 1e-9
    assert len(rules) == 2


def test_count_joint_policies() -> None:
    model = dec_tiger.make_model()
    assert count_joint_policies(model, 1) == 9
    assert count_joint_policies(model, 2) == 9 * 81


def test_exhaustive_search_limit() -> None:
    model = dec_tiger.make_model()
    with pytest.raises(ValueError):
        exhaustive_search(model, 3, max_policies=1000)


def test_exhaustive_search_tiger() -> None:
    value, rules = exhaustive_search(dec_tiger.make_model(), 2)
    assert value == pytest.approx(-4.0)
    assert rules[0] == LISTEN


def test_parser_builds_config() -> None:
    args = parse(["3", "--pool", "depth_first", "--workers", "2", "--heuristic", "max_reward", "--quiet"])
    config = config_from_args(args)
    assert config.horizon == 3
    assert config.pool_type == "depth_first"
    assert config.workers == 2
    assert config.heuristic_type == "max_reward"
    assert config.output is False
    assert config.policyvalfound == float("-inf")


def test_parser_random_problem_options() -> None:
    args = parse(["2", "--seed", "4", "--states", "5", "--policyvalfound", "-3"], random_problem=True)
    assert (args.seed, args.states, args.actions) == (4, 5, 2)
    assert config_from_args(args).policyvalfound == -3.0
    assert config_from_args(args, policyvalfound=1.0).policyvalfound == 1.0


def test_run_dec_tiger(capsys: pytest.CaptureFixture[str]) -> None:
    value = run(dec_tiger.make_model(), parse(["2", "--quiet", "--random"]), time.time())
    out = capsys.readouterr().out
    assert value == pytest.approx(-4.0)
    assert "random policy value:" in out
    assert "Result: " in out
    assert "Optimal: True" in out
    assert "warning" not in out


def test_run_reports_memory_limit(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    import benchmarks.run_gmaa as run_gmaa
    import gmaa

    monkeypatch.setattr(gmaa, "get_memory_usage_gb", lambda: 100.0)
    original = run_gmaa.config_from_args

    def eager_config(args, policyvalfound=None):
        config = original(args, policyvalfound)
        config.memory_check_interval = 1
        return config

    monkeypatch.setattr(run_gmaa, "config_from_args", eager_config)
    args = parse(["2", "--quiet", "--memory_limit_gb", "1"])
    assert run(dec_tiger.make_model(), args, time.time()) == "MO"
    assert "Result: MO" in capsys.readouterr().out


def test_driver_packages_are_installed() -> None:
    root = Path(__file__).resolve().parents[1]
    pyproject = (root / "pyproject.toml").read_text()
    for pkg in sorted(p.parent.name for p in root.glob("*/__init__.py")):
        assert f'"{pkg}"' in pyproject
