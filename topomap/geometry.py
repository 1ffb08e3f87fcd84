import math
from collections import namedtuple

from topomap import settings


class EdgePath(namedtuple("EdgePath", ["x1", "y1", "x2", "y2"])):
    """Straight drawn segment of a link, already trimmed for its end markers."""

    __slots__ = ()

    @property
    def length(self):
        return math.hypot(self.x2 - self.x1, self.y2 - self.y1)

    @property
    def is_degenerate(self):
        return self.x1 == self.x2 and self.y1 == self.y2

    def svg(self):
        return f"M {self.x1:.2f},{self.y1:.2f} L {self.x2:.2f},{self.y2:.2f}"


def resolve_edge(source, source_radius, target, target_radius,
                 padding=settings.SOURCE_PADDING, arrow_length=settings.ARROW_LENGTH):
    """Trim the centre-to-centre segment so it clears both discs.

    The line leaves the source just outside its radius and stops short of the
    target by its radius plus the arrowhead. Coincident centres, or centres too
    close for both trims, give a zero-length path.
    """
    sx, sy = source
    tx, ty = target
    dx, dy = tx - sx, ty - sy
    dist = math.hypot(dx, dy)
    if dist == 0:
        return EdgePath(sx, sy, sx, sy)

    start = source_radius + padding
    end = target_radius + arrow_length
    if start + end >= dist:
        mx, my = sx + dx / 2.0, sy + dy / 2.0
        return EdgePath(mx, my, mx, my)

    ux, uy = dx / dist, dy / dist
    return EdgePath(sx + ux * start, sy + uy * start, tx - ux * end, ty - uy * end)


def resolve_edges(model, positions):
    """``(link, EdgePath)`` for every link of the model whose ends have positions."""
    paths = []
    for link in model.links:
        s, t = link["source"], link["target"]
        if s not in positions or t not in positions:
            continue
        paths.append((link, resolve_edge(positions[s], model.radius(s), positions[t], model.radius(t))))
    return paths
