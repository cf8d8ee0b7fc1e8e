import numpy as np


def evaluate_random_policy(model, h):
    """
    Expected reward over h stages when every agent picks its action uniformly at random.

    Any joint policy's optimum is at least this value, so it is a valid starting incumbent.
    """
    reward = 0.0
    probs = model.init_beliefs
    mean_reward = model.RA.mean(axis=0)         # [s]
    mean_transition = model.T.mean(axis=0)      # [s, s']
    for idx in range(h):
        reward += float(probs @ mean_reward)
        if idx < h-1:
            probs = probs @ mean_transition
            assert abs(probs.sum()-1) < 1e-9, probs
    return reward
