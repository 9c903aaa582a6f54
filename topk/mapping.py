from __future__ import annotations
"""
Mapping utilities between core candidates and the wire schemas.

Keeps the conversion between :class:`Candidate` and the Pydantic models
(CandidateItem / SelectResponse / MergeResponse) in one place.
"""

from typing import Iterable, List, Sequence

from .config import CandidateItem, MergeResponse, SelectResponse
from .pipeline_types import Candidate


def to_api_item(candidate: Candidate) -> CandidateItem:
    return CandidateItem(score=candidate.score, identifier=candidate.identifier)


def from_api_item(item: CandidateItem) -> Candidate:
    return Candidate(score=item.score, identifier=item.identifier)


def from_api_lists(lists: Iterable[Sequence[CandidateItem]]) -> List[List[Candidate]]:
    """Convert request lists to candidate lists, preserving grouping."""
    return [[from_api_item(i) for i in part] for part in lists]


def to_select_response(candidates: Sequence[Candidate], skipped: int) -> SelectResponse:
    # selector output order is unspecified; emit strongest first for readability
    ordered = sorted(candidates, key=lambda c: c.identifier)
    ordered.sort(key=lambda c: c.score, reverse=True)
    return SelectResponse(candidates=[to_api_item(c) for c in ordered], skipped=skipped)


def to_merge_response(result: Sequence[Candidate]) -> MergeResponse:
    return MergeResponse(results=[to_api_item(c) for c in result])
