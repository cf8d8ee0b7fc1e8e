"""
Policy pools: the frontier of best-first branch-and-bound search over partial joint policies.

A policy pool holds candidates, each pairing a partial joint policy with an admissible
upper bound on the value of any of its completions. The search driver repeatedly
selects the best candidate, pops it, expands it, inserts the children, and prunes the
pool with the value of the best complete policy found so far.

Key Components:
    - Candidate: (policy, bound) pair; immutable, compared by identity.
    - PolicyPool: the operation set shared by every pool ordering.
    - BoundOrderedPool: greatest bound first; the ordering used by GMAA*.
    - DepthFirstPool: deepest policy first, bound as tie-break.

Tie-breaking:
    Every inserted candidate draws a sequence number from one module-wide counter.
    Among equal keys the candidate inserted last is selected first (LIFO). Sequence
    numbers travel with their entries through union(), so the rule is stable across
    merges and the heap never compares two candidates directly.

Thread safety:
    Pools are sequential data structures. Concurrent calls on one pool from several
    threads without external locking are undefined. Parallel workers should each fill
    a private pool and hand it to the owner, who merges it with union().

License: MIT  (https://opensource.org/license/mit/)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from heapq import heappush, heappop, heapify     # heapq, used as a Priority queue
from itertools import count                     # counter, used as tie-breaker in the Priority queue
import math
from typing import Any, List, Optional

import numpy as np

UNBOUNDED = math.inf    # bound of the seed candidate: not yet evaluated
HIST_BINS = 10          # histogram bins in soft_print

_sequence = count()


class PolicyPoolError(Exception):
    """Base class for policy pool contract violations."""
    pass


class EmptyFrontier(PolicyPoolError):
    """Raised by select/pop on a pool without candidates."""
    pass


class FrontierInconsistency(PolicyPoolError):
    """Raised by pop when the best candidate is not the one the caller expected."""
    pass


@dataclass(frozen=True, eq=False)
class Candidate:
    policy: Any
    bound: float = UNBOUNDED

    def __post_init__(self):
        if self.policy is None:
            raise ValueError("Candidate requires a policy")
        bound = float(self.bound)
        if math.isnan(bound) or bound == -math.inf:
            raise ValueError(f"Candidate bound must be finite or +inf, got {self.bound}")
        object.__setattr__(self, "bound", bound)


def _merge_heaps(dst: list, src: list) -> None:
    # Moves every entry of src into dst and empties src.
    n, m = len(dst), len(src)
    if m == 0:
        return
    if m * math.log2(n + m) < n + m:
        for entry in src:
            heappush(dst, entry)
    else:
        dst.extend(src)
        heapify(dst)
    src.clear()


def _filter_heap(heap: list, threshold: float, bound_pos: int) -> list:
    if math.isnan(threshold):
        raise ValueError("prune threshold must not be NaN")
    # Entries store -bound at bound_pos.
    return [entry for entry in heap if -entry[bound_pos] > threshold]


class PolicyPool(ABC):
    """
    Operations of a partial policy pool.

    select/pop follow the pool's own ordering; get_best_ranked/pop_best_ranked always
    follow the bound. The two pairs coincide when the ordering is by bound.
    """

    @abstractmethod
    def select(self) -> Candidate:
        """Returns the next candidate without removing it. Raises EmptyFrontier if empty."""

    @abstractmethod
    def pop(self, expected: Optional[Candidate] = None) -> Candidate:
        """
        Removes and returns the candidate select() would return.

        If `expected` is given it must be that very candidate, otherwise
        FrontierInconsistency is raised and the pool is left unchanged.
        """

    @abstractmethod
    def insert(self, candidate: Candidate) -> None:
        """Adds a candidate. No candidate is rejected because of its bound."""

    @abstractmethod
    def union(self, other: 'PolicyPool') -> None:
        """Moves every candidate of `other` into this pool; `other` is left empty."""

    @abstractmethod
    def prune(self, threshold: float) -> int:
        """Removes every candidate with bound <= threshold. Returns how many were removed."""

    @abstractmethod
    def size(self) -> int:
        """Number of candidates."""

    @abstractmethod
    def drain(self) -> List[Candidate]:
        """Removes and returns all candidates, in no particular order."""

    @abstractmethod
    def bounds(self) -> List[float]:
        """Bounds of all candidates, in no particular order."""

    @abstractmethod
    def clear(self) -> None:
        pass

    def init(self, context) -> None:
        """
        Resets the pool to the single seed candidate: the empty joint policy built by
        `context.empty_policy()` with an unbounded heuristic value.
        """
        self.clear()
        self.insert(Candidate(context.empty_policy(), UNBOUNDED))

    def get_best_ranked(self) -> Candidate:
        return self.select()

    def pop_best_ranked(self, expected: Optional[Candidate] = None) -> Candidate:
        return self.pop(expected)

    @abstractmethod
    def copy(self) -> 'PolicyPool':
        """Independent pool holding the same candidates, in the same order."""

    def soft_print(self) -> str:
        bounds = np.asarray(self.bounds(), dtype=np.float64)
        lines = [f"{type(self).__name__}: {bounds.size} candidates"]
        if bounds.size == 0:
            return lines[0]
        finite = bounds[np.isfinite(bounds)]
        if finite.size:
            lines.append(f"  bound max={finite.max():.6g} min={finite.min():.6g} mean={finite.mean():.6g}")
            counts, edges = np.histogram(finite, bins=min(HIST_BINS, finite.size))
            for idx, c in enumerate(counts):
                close = "]" if idx == len(counts) - 1 else ")"
                lines.append(f"  [{edges[idx]:.6g}, {edges[idx + 1]:.6g}{close}: {c}")
        nunbounded = bounds.size - finite.size
        if nunbounded:
            lines.append(f"  unbounded: {nunbounded}")
        return "\n".join(lines)

    def __len__(self) -> int:
        return self.size()

    def __str__(self) -> str:
        return self.soft_print()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(size={self.size()})"


class BoundOrderedPool(PolicyPool):
    """
    Pool of partial joint policy / value pairs, greatest bound first.

    Heap entries are (-bound, -seq, candidate). select() is O(1), pop() and insert()
    are O(log n), prune() is a linear pass.
    """

    def __init__(self, context=None):
        self._heap = []
        if context is not None:
            self.init(context)

    def clear(self) -> None:
        self._heap = []

    def select(self) -> Candidate:
        if not self._heap:
            raise EmptyFrontier("select() on an empty policy pool")
        return self._heap[0][2]

    def pop(self, expected: Optional[Candidate] = None) -> Candidate:
        if not self._heap:
            raise EmptyFrontier("pop() on an empty policy pool")
        top = self._heap[0][2]
        if expected is not None and top is not expected:
            raise FrontierInconsistency(f"expected to remove candidate with bound {expected.bound}, "
                                        f"but the best candidate has bound {top.bound}")
        heappop(self._heap)
        return top

    def insert(self, candidate: Candidate) -> None:
        heappush(self._heap, (-candidate.bound, -next(_sequence), candidate))

    def union(self, other: PolicyPool) -> None:
        if other is self:
            raise ValueError("cannot union a policy pool with itself")
        if type(other) is BoundOrderedPool:
            _merge_heaps(self._heap, other._heap)
        else:
            for candidate in other.drain():
                self.insert(candidate)

    def prune(self, threshold: float) -> int:
        kept = _filter_heap(self._heap, threshold, 0)
        removed = len(self._heap) - len(kept)
        if removed:
            heapify(kept)
            self._heap = kept
        return removed

    def size(self) -> int:
        return len(self._heap)

    def drain(self) -> List[Candidate]:
        candidates = [entry[2] for entry in self._heap]
        self._heap = []
        return candidates

    def bounds(self) -> List[float]:
        return [entry[2].bound for entry in self._heap]

    def copy(self) -> 'BoundOrderedPool':
        new = BoundOrderedPool()
        new._heap = list(self._heap)
        return new


class DepthFirstPool(PolicyPool):
    """
    Pool that expands the deepest partial policy first, greatest bound among equals.

    The depth of a candidate is len(candidate.policy). get_best_ranked() and
    pop_best_ranked() still return the greatest bound, found by a linear scan.
    """

    def __init__(self, context=None):
        self._heap = []
        if context is not None:
            self.init(context)

    def clear(self) -> None:
        self._heap = []

    def select(self) -> Candidate:
        if not self._heap:
            raise EmptyFrontier("select() on an empty policy pool")
        return self._heap[0][3]

    def pop(self, expected: Optional[Candidate] = None) -> Candidate:
        if not self._heap:
            raise EmptyFrontier("pop() on an empty policy pool")
        top = self._heap[0][3]
        if expected is not None and top is not expected:
            raise FrontierInconsistency(f"expected to remove candidate with bound {expected.bound}, "
                                        f"but the next candidate has bound {top.bound}")
        heappop(self._heap)
        return top

    def _best_ranked_index(self) -> int:
        if not self._heap:
            raise EmptyFrontier("no best ranked candidate in an empty policy pool")
        # (-bound, -seq): greatest bound, then latest inserted
        return min(range(len(self._heap)), key=lambda idx: (self._heap[idx][1], self._heap[idx][2]))

    def get_best_ranked(self) -> Candidate:
        return self._heap[self._best_ranked_index()][3]

    def pop_best_ranked(self, expected: Optional[Candidate] = None) -> Candidate:
        idx = self._best_ranked_index()
        best = self._heap[idx][3]
        if expected is not None and best is not expected:
            raise FrontierInconsistency(f"expected to remove candidate with bound {expected.bound}, "
                                        f"but the best ranked candidate has bound {best.bound}")
        last = self._heap.pop()
        if idx < len(self._heap):
            self._heap[idx] = last
            heapify(self._heap)
        return best

    def insert(self, candidate: Candidate) -> None:
        heappush(self._heap, (-len(candidate.policy), -candidate.bound, -next(_sequence), candidate))

    def union(self, other: PolicyPool) -> None:
        if other is self:
            raise ValueError("cannot union a policy pool with itself")
        if type(other) is DepthFirstPool:
            _merge_heaps(self._heap, other._heap)
        else:
            for candidate in other.drain():
                self.insert(candidate)

    def prune(self, threshold: float) -> int:
        kept = _filter_heap(self._heap, threshold, 1)
        removed = len(self._heap) - len(kept)
        if removed:
            heapify(kept)
            self._heap = kept
        return removed

    def size(self) -> int:
        return len(self._heap)

    def drain(self) -> List[Candidate]:
        candidates = [entry[3] for entry in self._heap]
        self._heap = []
        return candidates

    def bounds(self) -> List[float]:
        return [entry[3].bound for entry in self._heap]

    def copy(self) -> 'DepthFirstPool':
        new = DepthFirstPool()
        new._heap = list(self._heap)
        return new


POOL_TYPES = {
    "bound": BoundOrderedPool,
    "depth_first": DepthFirstPool,
}


def make_policy_pool(pool_type: str = "bound", context=None) -> PolicyPool:
    """Builds an empty pool of the named ordering, seeded if `context` is given."""
    if pool_type not in POOL_TYPES:
        raise ValueError(f"unknown pool type {pool_type!r}; expected one of {sorted(POOL_TYPES)}")
    return POOL_TYPES[pool_type](context)
