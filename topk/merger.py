from __future__ import annotations

"""
Global merge of bounded partial results.

The same merge serves as the combiner (partial merges close to the data)
and as the single final reducer. Every input list is at most ``k`` long,
so the union handled here is ``k * len(lists)`` candidates, never the
full dataset.

Inputs are fed to a fresh :class:`BoundedTopSet` in canonical order
(score descending, then identifier order), so the surviving set is
exactly the top ``k`` of the union under that total order. That makes the
merge commutative and associative whatever the tie policy is.
"""

from functools import partial
from typing import Callable, Iterable, List, Optional, Sequence

from loguru import logger

from .bounded import BoundedTopSet
from .errors import MergerClosedError
from .pipeline_types import Candidate, IdentifierKey, Result, TiePolicy, check_k, lexicographic


class GlobalMerger:
    """
    One-shot merger. ``merge`` may be called once; a second call raises
    :class:`MergerClosedError` rather than returning a result computed for
    different inputs.
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
        self._result: Optional[Result] = None

    @property
    def result(self) -> Optional[Result]:
        return self._result

    def _canonical(self, lists: Iterable[Sequence[Candidate]]) -> List[Candidate]:
        union = [c for part in lists for c in part]
        key = self.identifier_key
        # two stable passes: identifier ascending, then score descending
        union.sort(key=lambda c: key(c.identifier))
        union.sort(key=lambda c: c.score, reverse=True)
        return union

    def merge(self, lists: Iterable[Sequence[Candidate]]) -> Result:
        if self._result is not None:
            raise MergerClosedError("merge() already called on this merger; create a new one")
        stream = self._canonical(lists)
        top = BoundedTopSet(self.k, self.tie_policy, self.identifier_key)
        for candidate in stream:
            top.offer(candidate)
        self._result = tuple(top.descending())
        logger.debug("Merged {} candidates into {} (k={})", len(stream), len(self._result), self.k)
        return self._result


def merge_top_k(
    lists: Iterable[Sequence[Candidate]],
    k: int,
    tie_policy: TiePolicy = TiePolicy.KEEP_EXISTING,
    identifier_key: IdentifierKey = lexicographic,
) -> Result:
    """Merge with a fresh :class:`GlobalMerger`; safe to call repeatedly."""
    return GlobalMerger(k, tie_policy, identifier_key).merge(lists)


def _groups(lists: Sequence[Sequence[Candidate]], fanin: int) -> List[Sequence[Sequence[Candidate]]]:
    return [lists[i : i + fanin] for i in range(0, len(lists), fanin)]


def combine_tree(
    lists: Sequence[Sequence[Candidate]],
    k: int,
    fanin: int = 8,
    tie_policy: TiePolicy = TiePolicy.KEEP_EXISTING,
    identifier_key: IdentifierKey = lexicographic,
    map_fn: Callable = map,
) -> List[Result]:
    """
    Layered partial merges.

    Each round merges groups of at most ``fanin`` lists; rounds repeat
    until no more than ``fanin`` lists remain. The survivors still need
    the single final merge. ``map_fn`` lets a caller run the groups of a
    round on an executor (``executor.map``).
    """
    if fanin < 2:
        raise ValueError(f"fanin must be >= 2, got {fanin!r}")
    current: List[Sequence[Candidate]] = list(lists)
    step = partial(merge_top_k, k=k, tie_policy=tie_policy, identifier_key=identifier_key)
    rounds = 0
    while len(current) > fanin:
        current = list(map_fn(step, _groups(current, fanin)))
        rounds += 1
        logger.debug("Combine round {}: {} lists remain", rounds, len(current))
    return [tuple(part) for part in current]
