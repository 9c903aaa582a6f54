from __future__ import annotations

"""
Per-partition bounded selection.

A :class:`PartitionSelector` sees the raw lines of exactly one partition,
parses each line once, and keeps at most ``k`` candidates in its own
:class:`BoundedTopSet`. Malformed lines are dropped silently (debug log
only): dumps routinely carry headers, footers and truncated rows, and one
bad line must not fail the partition.

Lifecycle is Accepting -> Closed. ``finalize`` closes the selector and is
idempotent: a second call returns the very same tuple. Feeding a closed
selector raises :class:`SelectorClosedError`.
"""

from typing import Iterable, Optional, Tuple

from loguru import logger

from .bounded import BoundedTopSet
from .errors import SelectorClosedError
from .pipeline_types import Candidate, IdentifierKey, TiePolicy, lexicographic
from .records import RecordParser, XmlRowParser


class PartitionSelector:
    def __init__(
        self,
        k: int,
        parser: Optional[RecordParser] = None,
        tie_policy: TiePolicy = TiePolicy.KEEP_EXISTING,
        identifier_key: IdentifierKey = lexicographic,
        keep_payload: bool = False,
    ):
        self.parser = parser if parser is not None else XmlRowParser()
        self.keep_payload = keep_payload
        self._top: Optional[BoundedTopSet] = BoundedTopSet(k, tie_policy, identifier_key)
        self.k = self._top.k
        self._result: Optional[Tuple[Candidate, ...]] = None

        self.seen = 0
        self.skipped = 0
        self.accepted = 0

    @property
    def closed(self) -> bool:
        return self._result is not None

    def _container(self) -> BoundedTopSet:
        if self._top is None:
            raise SelectorClosedError("selector already finalized; create a new one per partition")
        return self._top

    def process(self, raw_line: str) -> None:
        """Parse one raw line and offer it; malformed lines are a no-op."""
        top = self._container()
        self.seen += 1
        record = self.parser.parse(raw_line)
        if record is None:
            self.skipped += 1
            logger.debug("Skipping unparseable line: {!r}", raw_line[:120] if isinstance(raw_line, str) else raw_line)
            return
        payload = raw_line.strip() if self.keep_payload else None
        if top.offer(Candidate.from_record(record, payload=payload)):
            self.accepted += 1

    def process_many(self, lines: Iterable[str]) -> None:
        for line in lines:
            self.process(line)

    def offer(self, candidate: Candidate) -> bool:
        """Offer an already-built candidate directly, bypassing parsing."""
        top = self._container()
        self.seen += 1
        accepted = top.offer(candidate)
        if accepted:
            self.accepted += 1
        return accepted

    def finalize(self) -> Tuple[Candidate, ...]:
        """
        Emit the bounded set (ascending; order is not part of the contract)
        and close the selector.
        """
        if self._result is not None:
            return self._result
        top = self._container()
        self._result = tuple(top.ascending())
        self._top = None
        logger.debug(
            "Partition finalized: seen={} skipped={} accepted={} kept={}",
            self.seen, self.skipped, self.accepted, len(self._result),
        )
        return self._result


def select_partition(
    lines: Iterable[str],
    k: int,
    parser: Optional[RecordParser] = None,
    tie_policy: TiePolicy = TiePolicy.KEEP_EXISTING,
    identifier_key: IdentifierKey = lexicographic,
    keep_payload: bool = False,
) -> Tuple[Candidate, ...]:
    """
    Run a fresh selector over one partition's lines and return its bounded set.

    Module-level so it can be shipped to a worker process.
    """
    selector = PartitionSelector(k, parser, tie_policy, identifier_key, keep_payload)
    selector.process_many(lines)
    return selector.finalize()
