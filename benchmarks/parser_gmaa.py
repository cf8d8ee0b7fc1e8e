import argparse
import math

from gmaa import GMAAConfig


def parse(argv=None, random_problem=False):
    parser = argparse.ArgumentParser()
    parser.add_argument("horizon", type=int, help="Horizon (h) of the problem.")
    parser.add_argument("--heuristic", default="MDP", choices=["MDP", "max_reward"],
        help="Upper-bound heuristic guiding the search.")
    parser.add_argument("--pool", default="bound", choices=["bound", "depth_first"],
        help="Ordering of the policy pool.")
    parser.add_argument("--workers", type=int, default=1,
        help="Number of candidates expanded in parallel per iteration.")
    parser.add_argument("--iter_limit", type=int, default=None, required=False,
        help="Maximum number of expansions (setting this gives up optimality guarantees).")
    parser.add_argument("--policyvalfound", type=float, default=None, required=False,
        help="Value of best solution found.")
    parser.add_argument("--memory_limit_gb", type=float, default=16.0, required=False,
        help="Abort with MO once the process uses more memory than this.")
    parser.add_argument("--quiet", action='store_true', default=False, required=False,
        help="Suppress progress output.")
    parser.add_argument("--random", action='store_true', default=False, required=False,
        help="Start from the expected reward of the random policy as solution value.")

    if random_problem:
        parser.add_argument("--seed", type=int, default=0, help="Seed of the problem generator.")
        parser.add_argument("--agents", type=int, default=2, help="Number of agents.")
        parser.add_argument("--states", type=int, default=3, help="Number of states.")
        parser.add_argument("--actions", type=int, default=2, help="Actions per agent.")
        parser.add_argument("--observations", type=int, default=2, help="Observations per agent.")

    return parser.parse_args(argv)


def config_from_args(args, policyvalfound=None):
    if policyvalfound is None:
        policyvalfound = args.policyvalfound if args.policyvalfound is not None else -math.inf
    return GMAAConfig(
        horizon=args.horizon,
        heuristic_type=args.heuristic,
        pool_type=args.pool,
        workers=args.workers,
        iter_limit=args.iter_limit,
        policyvalfound=policyvalfound,
        memory_limit_gb=args.memory_limit_gb,
        output=not args.quiet,
    )
