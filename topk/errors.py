"""Exception types raised by the top-K core and its local runtime."""


class TopKError(Exception):
    """Base class for everything this package raises on purpose."""


class RecordParseError(TopKError):
    """A raw line could not be turned into a Record."""

    def __init__(self, reason: str, line: str = ""):
        super().__init__(reason)
        self.reason = reason
        self.line = line


class SelectorClosedError(TopKError):
    """process()/offer() was called on a selector that was already finalized."""


class MergerClosedError(TopKError):
    """merge() was called a second time on the same GlobalMerger."""


class InputSourceError(TopKError):
    """A local file or remote URL could not be read as input."""
