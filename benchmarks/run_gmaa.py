import time

from baselines.random_policy import evaluate_random_policy
from baselines.verify import PolicyVerifier
from benchmarks.parser_gmaa import config_from_args
from gmaa import GMAAStar, MemoryLimitExceeded


def run(model, args, time1):
    """Solves `model` with the settings in `args` and prints value, policy and timings."""
    policyvalfound = None
    if args.random:
        policyvalfound = evaluate_random_policy(model, args.horizon)
        print("random policy value:", policyvalfound)

    config = config_from_args(args, policyvalfound)
    time0 = time.time()
    try:
        solver = GMAAStar(model, config)
        result = solver.solve()
    except MemoryLimitExceeded as e:
        print("Result: MO")
        print(f"Memory limit exceeded: {e}")
        print(f"Time (solving): {time.time() - time0:.3f}s")
        return "MO"
    time_toc = time.time()

    if result.policy is not None:
        value_verify = PolicyVerifier(model).evaluate_policy(result.policy.rules())
        if abs(value_verify - result.value) > 1e-6:
            print("warning: value from verifier (", value_verify, "), and solver (", result.value, "), differ substantially", sep='')
        print(result.policy.soft_print())
    else:
        print("No policy better than the given solution value was found.")

    print(f"Result: {result.value}")
    print(f"Optimal: {result.optimal} (iterations={result.iterations}, pruned={result.pruned}, max pool={result.max_pool_size})")
    print(f"Time (solving): {time_toc - time0:.3f}s")
    print(f"Time (total): {time_toc - time1:.3f}s")
    return result.value
