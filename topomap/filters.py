import logging
import re

from topomap.errors import InvalidPatternError
from topomap.graph_model import GraphModel

logger = logging.getLogger(__name__)


def compile_pattern(pattern):
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as exc:
        raise InvalidPatternError(pattern, str(exc)) from exc


def filter_model(model, types=(), pattern=None):
    """Subgraph of ``model`` holding the hosts that pass the filter.

    A connection stays only when both hosts it originally joined stay, so no
    half relationship survives. Degrees and sizes are recomputed by the new
    model from the surviving links.
    """
    types = set(types or ())
    regex = compile_pattern(pattern) if pattern else None

    nodes = [n for n in model.nodes if not types or n["type"] in types]
    if regex is not None:
        nodes = [n for n in nodes if regex.search(n["id"])]
    kept = {n["id"] for n in nodes}

    connections = []
    endpoints = {}
    for conn in model.connections:
        source, target = model.endpoints(conn["id"])
        if source in kept and target in kept:
            connections.append(conn)
            endpoints[conn["id"]] = (source, target)

    return GraphModel(nodes, connections, endpoints)


class FilterEngine:
    """Keeps the unfiltered base model and the currently shown filtered one.

    Every apply starts again from the base model, which makes repeated applies
    of the same filter idempotent.
    """

    def __init__(self, base):
        self.base = base
        self.current = base
        self.types = frozenset()
        self.pattern = None
        self.last_error = None

    @property
    def active(self):
        return bool(self.types) or bool(self.pattern)

    def apply(self, types=(), pattern=None):
        """Filter the base model; on a bad pattern keep the previous model."""
        types = frozenset(types or ())
        pattern = pattern or None
        try:
            filtered = filter_model(self.base, types, pattern)
        except InvalidPatternError as exc:
            logger.warning("filter not applied: %s", exc)
            self.last_error = exc
            return self.current

        self.types = types
        self.pattern = pattern
        self.last_error = None
        self.current = filtered
        logger.info(
            "filter types=%s pattern=%r kept %d/%d nodes, %d/%d connections",
            sorted(types), pattern, len(filtered.nodes), len(self.base.nodes),
            len(filtered.connections), len(self.base.connections),
        )
        return filtered

    def reset(self):
        return self.apply()

    def rebase(self, base):
        """Install a freshly loaded topology and re-apply the active filter."""
        self.base = base
        self.current = base
        return self.apply(self.types, self.pattern)
