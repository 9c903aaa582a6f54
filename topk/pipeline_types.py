"""Typed containers shared across pipeline modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Optional, Tuple


class TiePolicy(str, Enum):
    """What happens when a challenger ties the current minimum of a full container."""

    KEEP_EXISTING = "keep_existing"  # equal score never evicts
    IDENTIFIER = "identifier"        # equal score evicts when the identifier sorts first


IdentifierKey = Callable[[str], object]


def lexicographic(identifier: str) -> str:
    return identifier


@dataclass(frozen=True)
class Record:
    """One parsed input row."""

    identifier: str
    score: int
    attributes: Dict[str, str] = field(default_factory=dict, compare=False, hash=False)


@dataclass(frozen=True)
class Candidate:
    """
    A (score, identifier) pair accepted into a bounded container.

    ``payload`` is the raw source line, attached at selection time so a
    winner can be reported in full without re-reading the input. It takes
    no part in equality or ranking.
    """

    score: int
    identifier: str
    payload: Optional[str] = field(default=None, compare=False, hash=False, repr=False)

    @classmethod
    def from_record(cls, record: Record, payload: Optional[str] = None) -> "Candidate":
        return cls(score=record.score, identifier=record.identifier, payload=payload)

    def as_pair(self) -> Tuple[int, str]:
        return (self.score, self.identifier)


Result = Tuple[Candidate, ...]


def check_k(k: object) -> int:
    """Validate a result size: a real int (not bool, float or str) that is >= 1."""
    if isinstance(k, bool) or not isinstance(k, int):
        raise TypeError(f"k must be an int, got {type(k).__name__}: {k!r}")
    if k < 1:
        raise ValueError(f"k must be a positive integer, got {k!r}")
    return k
