"""
Viewport transform and the pointer state machine.

States and the events that move between them::

    IDLE --pointer_down on entity--> DRAGGING_ENTITY --pointer_up--> IDLE
    IDLE --pointer_down on canvas--> PANNING         --pointer_up--> IDLE
    IDLE --zoom_in / zoom_out------> ZOOMING --animation done------> IDLE

Wheel zoom is applied at once in IDLE or PANNING and ignored while an entity is
being dragged. A pointer_down during ZOOMING stops the animation where it is.
"""

import enum
import logging
import math
import time
from collections import namedtuple

from topomap import settings

logger = logging.getLogger(__name__)


def clamp_scale(k):
    return max(settings.MIN_SCALE, min(settings.MAX_SCALE, k))


def ease_cubic_in_out(t):
    if t < 0.5:
        return 4 * t * t * t
    return 1 - (-2 * t + 2) ** 3 / 2


class ViewportTransform(namedtuple("ViewportTransform", ["translate_x", "translate_y", "scale"])):
    """World -> screen mapping: ``screen = world * scale + translate``."""

    __slots__ = ()

    @classmethod
    def identity(cls):
        return cls(0.0, 0.0, 1.0)

    @classmethod
    def from_ranges(cls, x_range, y_range, width, height):
        """Transform that shows the given world box, centred, within scale bounds."""
        x0, x1 = sorted(x_range)
        y0, y1 = sorted(y_range)
        span = max(x1 - x0, 1e-9)
        k = clamp_scale(width / span)
        cx, cy = (x0 + x1) / 2.0, (y0 + y1) / 2.0
        return cls(width / 2.0 - cx * k, height / 2.0 - cy * k, k)

    def apply(self, x, y):
        return x * self.scale + self.translate_x, y * self.scale + self.translate_y

    def invert(self, sx, sy):
        return (sx - self.translate_x) / self.scale, (sy - self.translate_y) / self.scale

    def translated(self, dx, dy):
        return ViewportTransform(self.translate_x + dx, self.translate_y + dy, self.scale)

    def scaled_about(self, factor, sx, sy):
        """Rescale keeping the world point under screen point (sx, sy) in place."""
        k = clamp_scale(self.scale * factor)
        wx, wy = self.invert(sx, sy)
        return ViewportTransform(sx - wx * k, sy - wy * k, k)

    def with_scale_about(self, k, sx, sy):
        return self.scaled_about(k / self.scale, sx, sy)

    def ranges(self, width, height):
        """Visible world box as ``((x0, x1), (y0, y1))``."""
        x0, y0 = self.invert(0, 0)
        x1, y1 = self.invert(width, height)
        return (x0, x1), (y0, y1)

    def to_dict(self):
        return {"translateX": self.translate_x, "translateY": self.translate_y, "scale": self.scale}


class ZoomAnimation:
    """Eased scale change about a fixed screen anchor."""

    def __init__(self, start, end, started_at, duration, anchor):
        self.start = start
        self.end = end
        self.started_at = started_at
        self.duration = duration
        self.anchor = anchor

    def progress(self, now):
        if self.duration <= 0:
            return 1.0
        return max(0.0, min(1.0, (now - self.started_at) / self.duration))

    def done(self, now):
        return self.progress(now) >= 1.0

    def at(self, now):
        t = self.progress(now)
        if t >= 1.0:
            return self.end
        k = self.start.scale + (self.end.scale - self.start.scale) * ease_cubic_in_out(t)
        return self.start.with_scale_about(k, *self.anchor)


class EventHub:
    """Named listener lists. ``on`` returns a handle for ``off``."""

    def __init__(self):
        self._listeners = {}
        self._next = 0

    def on(self, event, handler):
        self._next += 1
        handle = (event, self._next)
        self._listeners.setdefault(event, []).append((self._next, handler))
        return handle

    def off(self, handle):
        event, key = handle
        listeners = self._listeners.get(event, [])
        self._listeners[event] = [(k, h) for k, h in listeners if k != key]

    def emit(self, event, *args):
        results = []
        for _, handler in list(self._listeners.get(event, [])):
            results.append(handler(*args))
        return results

    def count(self, event=None):
        if event is not None:
            return len(self._listeners.get(event, []))
        return sum(len(v) for v in self._listeners.values())


class State(enum.Enum):
    IDLE = "idle"
    PANNING = "panning"
    DRAGGING_ENTITY = "dragging_entity"
    ZOOMING = "zooming"


class InteractionController:
    def __init__(self, width, height, clock=time.monotonic):
        self.width = width
        self.height = height
        self.clock = clock
        self.transform = ViewportTransform.identity()
        self.state = State.IDLE
        self.simulation = None
        self.dragged = None
        self._last_pointer = None
        self._animation = None

    # ---------- wiring ----------

    def attach(self, simulation):
        self.simulation = simulation

    def detach(self):
        self.cancel()
        self.simulation = None

    def resize(self, width, height):
        self.width = width
        self.height = height

    def _now(self, now):
        return self.clock() if now is None else now

    def _interrupt(self, now=None):
        if self._animation is not None:
            self.transform = self._animation.at(self._now(now))
            self._animation = None
        if self.state is State.ZOOMING:
            self.state = State.IDLE

    def cancel(self):
        """Drop whatever gesture is in progress."""
        if self.state is State.DRAGGING_ENTITY and self.simulation is not None:
            self.simulation.unpin(self.dragged)
            self.simulation.set_alpha_target(0.0)
        self._animation = None
        self.dragged = None
        self._last_pointer = None
        self.state = State.IDLE

    # ---------- pointer ----------

    def pointer_down(self, sx, sy, now=None):
        if self.state in (State.PANNING, State.DRAGGING_ENTITY):
            return self.state
        self._interrupt(now)

        wx, wy = self.transform.invert(sx, sy)
        hit = self.simulation.entity_at(wx, wy) if self.simulation is not None else None
        if hit is not None:
            self.simulation.pin(hit, wx, wy)
            self.simulation.set_alpha_target(settings.DRAG_ALPHA_TARGET)
            self.simulation.restart()
            self.dragged = hit
            self.state = State.DRAGGING_ENTITY
            logger.debug("drag start on %s at (%.1f, %.1f)", hit, wx, wy)
        else:
            self._last_pointer = (sx, sy)
            self.state = State.PANNING
        return self.state

    def pointer_move(self, sx, sy):
        if self.state is State.DRAGGING_ENTITY:
            if self.simulation is not None and self.dragged in self.simulation.index:
                self.simulation.pin(self.dragged, *self.transform.invert(sx, sy))
        elif self.state is State.PANNING:
            lx, ly = self._last_pointer
            self.transform = self.transform.translated(sx - lx, sy - ly)
            self._last_pointer = (sx, sy)
        return self.state

    def pointer_up(self, sx=None, sy=None):
        if self.state is State.DRAGGING_ENTITY:
            if self.simulation is not None:
                self.simulation.unpin(self.dragged)
                self.simulation.set_alpha_target(0.0)
            logger.debug("drag end on %s", self.dragged)
            self.dragged = None
            self.state = State.IDLE
        elif self.state is State.PANNING:
            self._last_pointer = None
            self.state = State.IDLE
        return self.state

    def wheel(self, sx, sy, delta_y, now=None):
        """Zoom about the pointer; the world point under it stays put."""
        if self.state is State.DRAGGING_ENTITY:
            return self.state
        self._interrupt(now)
        # exponent limited to what the scale bounds allow
        k = self.transform.scale
        exponent = -delta_y * settings.WHEEL_ZOOM_SENSITIVITY
        low = math.log2(settings.MIN_SCALE / k)
        high = math.log2(settings.MAX_SCALE / k)
        factor = 2 ** max(low, min(high, exponent))
        self.transform = self.transform.scaled_about(factor, sx, sy)
        return self.state

    # ---------- viewport commands ----------

    def zoom_in(self, now=None):
        return self._animate_zoom(settings.ZOOM_IN_FACTOR, now)

    def zoom_out(self, now=None):
        return self._animate_zoom(settings.ZOOM_OUT_FACTOR, now)

    def _animate_zoom(self, factor, now):
        if self.state in (State.PANNING, State.DRAGGING_ENTITY):
            return False
        now = self._now(now)
        self._interrupt(now)
        anchor = (self.width / 2.0, self.height / 2.0)
        start = self.transform
        end = start.scaled_about(factor, *anchor)
        if end.scale == start.scale:
            return False
        self._animation = ZoomAnimation(start, end, now, settings.ZOOM_DURATION_MS / 1000.0, anchor)
        self.state = State.ZOOMING
        return True

    def advance(self, now=None):
        """Step the zoom animation; True while it is still running."""
        if self._animation is None:
            return False
        now = self._now(now)
        self.transform = self._animation.at(now)
        if self._animation.done(now):
            self._animation = None
            self.state = State.IDLE
            return False
        return True

    @property
    def animating(self):
        return self._animation is not None

    def pan(self, dx, dy, now=None):
        self._interrupt(now)
        self.transform = self.transform.translated(dx, dy)

    def set_ranges(self, x_range, y_range, now=None):
        self._interrupt(now)
        self.transform = ViewportTransform.from_ranges(x_range, y_range, self.width, self.height)

    def reset_view(self, now=None):
        self._interrupt(now)
        self.transform = ViewportTransform.identity()
