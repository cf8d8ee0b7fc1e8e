from itertools import product

import numpy as np


class PolicyVerifier:

    def __init__(self, model):
          # model: a DecPOMDPModel. Only its arrays and counts are read, so the verifier
          #   shares no evaluation code with the search.
        self.nagents = model.nagents
        self.nstates = model.nstates
        self.nobs = model.nobs
        self.transitions = model.T
        self.obs = model.O
        self.rewards = model.RA
        self.init_beliefs = model.init_beliefs
        self.nacts_factor = model.nacts_factor
        self.nobs_factor = model.nobs_factor

        self.a_prod = [1]*(self.nagents+1)
        self.o_prod = [1]*(self.nagents+1)
        for idx in range(self.nagents):
            self.a_prod[idx+1] = self.a_prod[idx] * self.nacts_factor[idx]
            self.o_prod[idx+1] = self.o_prod[idx] * self.nobs_factor[idx]

    def evaluate_policy(self, rules):
          # rules: list of joint decision rules, rules[stage][agent][history] -> action
        h = len(rules)
        reward = 0.0
        probs = {(0,)*self.nagents: self.init_beliefs}
        for idx in range(h):
            newprobs = {}
            for oh, p in probs.items():
                act = sum(rules[idx][a][oh[a]] * self.a_prod[a] for a in range(self.nagents))
                reward += float(p @ self.rewards[act])
                if idx < h-1:
                    p_snew = p @ self.transitions[act]
                    for o in range(self.nobs):
                        q = p_snew * self.obs[act, :, o]
                        if q.sum() > 0:
                            newoh = tuple(oh[a] * self.nobs_factor[a] + (o//self.o_prod[a]) % self.nobs_factor[a]
                                          for a in range(self.nagents))
                            newprobs[newoh] = newprobs.get(newoh, 0) + q
            if idx < h-1:
                probs = newprobs
                total = sum(q.sum() for q in probs.values())
                assert abs(total-1) < 1e-9, total
        return reward


def count_joint_policies(model, h):
    total = 1
    for idx in range(h):
        for a in range(model.nagents):
            total *= model.nacts_factor[a] ** (model.nobs_factor[a] ** idx)
    return total


def exhaustive_search(model, h, max_policies=10**6):
    """
    Evaluates every joint policy of horizon h; returns (best value, best list of joint decision rules).
    """
    npolicies = count_joint_policies(model, h)
    if npolicies > max_policies:
        raise ValueError(f"{npolicies} joint policies for horizon {h} exceed max_policies={max_policies}")

    verifier = PolicyVerifier(model)
    stage_rules = []
    for idx in range(h):
        agent_rules = [list(product(range(model.nacts_factor[a]), repeat=model.nobs_factor[a] ** idx))
                       for a in range(model.nagents)]
        stage_rules.append(list(product(*agent_rules)))

    best_value = -np.inf
    best_rules = None
    for rules in product(*stage_rules):
        value = verifier.evaluate_policy(rules)
        if value > best_value:
            best_value = value
            best_rules = list(rules)
    return best_value, best_rules
