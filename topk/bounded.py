from __future__ import annotations

import heapq
from typing import Iterator, List, Optional

from .pipeline_types import Candidate, IdentifierKey, TiePolicy, check_k, lexicographic


class _Slot:
    """Heap entry: the weakest candidate compares smallest."""

    __slots__ = ("candidate", "rank")

    def __init__(self, candidate: Candidate, rank: object):
        self.candidate = candidate
        self.rank = rank

    def __lt__(self, other: "_Slot") -> bool:
        if self.candidate.score != other.candidate.score:
            return self.candidate.score < other.candidate.score
        # equal scores: the identifier that sorts later is weaker
        return other.rank < self.rank  # type: ignore[operator]


class BoundedTopSet:
    """
    Min-heap capped at ``k`` candidates.

    Ordered ascending by score, then by identifier so that among equal
    scores the identifier sorting first is kept longest. ``offer`` is the
    only mutator; ``len(self) <= k`` holds after every call.
    """

    def __init__(
        self,
        k: int,
        tie_policy: TiePolicy = TiePolicy.KEEP_EXISTING,
        identifier_key: IdentifierKey = lexicographic,
    ):
        self.k = check_k(k)
        self.tie_policy = TiePolicy(tie_policy)
        self.identifier_key = identifier_key
        self._heap: List[_Slot] = []

    def __len__(self) -> int:
        return len(self._heap)

    def __iter__(self) -> Iterator[Candidate]:
        return iter(self.ascending())

    def minimum(self) -> Optional[Candidate]:
        return self._heap[0].candidate if self._heap else None

    def outranks(self, challenger: Candidate, incumbent: Candidate) -> bool:
        """True when ``challenger`` may evict ``incumbent`` under the tie policy."""
        if challenger.score != incumbent.score:
            return challenger.score > incumbent.score
        if self.tie_policy is TiePolicy.KEEP_EXISTING:
            return False
        return self.identifier_key(challenger.identifier) < self.identifier_key(incumbent.identifier)  # type: ignore[operator]

    def offer(self, candidate: Candidate) -> bool:
        """
        Offer a candidate; returns True when it was accepted.

        Below capacity everything is accepted. At capacity the candidate
        replaces the current minimum only if it outranks it.
        """
        slot = _Slot(candidate, self.identifier_key(candidate.identifier))
        if len(self._heap) < self.k:
            heapq.heappush(self._heap, slot)
            return True
        if self.outranks(candidate, self._heap[0].candidate):
            heapq.heapreplace(self._heap, slot)
            return True
        return False

    def ascending(self) -> List[Candidate]:
        """Contents weakest first (eviction order)."""
        return [s.candidate for s in sorted(self._heap)]

    def descending(self) -> List[Candidate]:
        """Contents strongest first (result order)."""
        return [s.candidate for s in sorted(self._heap, reverse=True)]
