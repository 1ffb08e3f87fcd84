class TopologyError(Exception):
    """Base class for recoverable topology map failures."""


class MalformedTopologyError(TopologyError):
    """A raw edge (or entry) that cannot be placed in the model.

    Build drops the offending item and keeps going, so these are collected on
    the model rather than raised.
    """

    def __init__(self, message, edge=None):
        super().__init__(message)
        self.edge = edge


class InvalidPatternError(TopologyError):
    """Filter pattern that does not compile as a regular expression."""

    def __init__(self, pattern, reason):
        super().__init__(f"invalid filter pattern {pattern!r}: {reason}")
        self.pattern = pattern
        self.reason = reason
