"""
One interactive topology view: the active model, its simulation, the pointer
controller and the listeners that connect them.

``frame()`` is called once per display refresh and runs exactly one simulation
tick and one edge pass. Event handlers (``hub.emit``) run between frames.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional

from topomap import settings
from topomap.filters import FilterEngine
from topomap.geometry import resolve_edges
from topomap.graph_model import CONNECTION, NODE, GraphModel, build_info, summarize
from topomap.icons import icon_for
from topomap.interaction import EventHub, InteractionController, ViewportTransform
from topomap.simulation import ForceSimulation

logger = logging.getLogger(__name__)


@dataclass
class RenderFrame:
    entities: List[dict] = field(default_factory=list)
    links: List[dict] = field(default_factory=list)
    transform: ViewportTransform = ViewportTransform.identity()
    alpha: float = 0.0
    running: bool = False
    ticked: bool = False

    def to_dict(self):
        return {
            "entities": self.entities,
            "links": self.links,
            "transform": self.transform.to_dict(),
            "alpha": self.alpha,
            "running": self.running,
        }


class TopologyView:
    def __init__(self, raw=None, width=settings.VIEWPORT_WIDTH, height=settings.VIEWPORT_HEIGHT,
                 clock=None):
        self.width = width
        self.height = height
        self.hub = EventHub()
        self.controller = InteractionController(width, height, clock=clock or time.monotonic)
        self.filters = FilterEngine(GraphModel([], [], {}))
        self.simulation = None
        self.closed = False
        self._bindings = []
        self.swaps = 0
        if raw is not None:
            self.load(raw)

    @property
    def model(self):
        return self.filters.current

    # ---------- model lifecycle ----------

    def load(self, raw):
        """Build a model from a topology document and show it through the active filter."""
        base = GraphModel.build(raw)
        if self.closed:
            return base.errors
        self.replace_model(self.filters.rebase(base))
        return base.errors

    def apply_filter(self, types=(), pattern=None):
        """Returns the InvalidPatternError on failure, None on success."""
        if self.closed:
            return None
        model = self.filters.apply(types, pattern)
        if self.filters.last_error is not None:
            return self.filters.last_error
        self.replace_model(model)
        return None

    def clear_filter(self):
        if self.closed:
            return
        self.replace_model(self.filters.reset())

    def replace_model(self, model):
        if self.closed:
            return
        previous = self.simulation
        self._unbind()
        self.controller.detach()

        seed, alpha = {}, None
        if previous is not None:
            seed = previous.snapshot()
            if set(previous.ids) == set(model.entity_ids()):
                # same entities: keep cooling where we were
                alpha = previous.alpha
            previous.detach()

        self.filters.current = model
        self.simulation = ForceSimulation(model, self.width, self.height, seed=seed, alpha=alpha)
        self.controller.attach(self.simulation)
        self._bind()
        self.swaps += 1
        logger.info("showing %r (alpha %.3f)", model, self.simulation.alpha)

    def _bind(self):
        c = self.controller
        self._bindings = [
            self.hub.on("resize", self.resize),
            self.hub.on("pointerdown", c.pointer_down),
            self.hub.on("pointermove", c.pointer_move),
            self.hub.on("pointerup", c.pointer_up),
            self.hub.on("wheel", c.wheel),
        ]

    def _unbind(self):
        for handle in self._bindings:
            self.hub.off(handle)
        self._bindings = []

    def close(self):
        self._unbind()
        self.controller.detach()
        if self.simulation is not None:
            self.simulation.detach()
        self.closed = True

    # ---------- viewport ----------

    def resize(self, width, height):
        if self.closed or (width, height) == (self.width, self.height):
            return False
        self.width, self.height = width, height
        self.controller.resize(width, height)
        if self.simulation is not None:
            self.simulation.resize(width, height)
        return True

    def reset_layout(self):
        """Release every pinned entity and let the layout settle again."""
        if self.simulation is None or self.closed:
            return
        self.controller.cancel()
        self.simulation.unpin_all()
        self.simulation.reheat()

    @property
    def busy(self):
        """True while frames still change something."""
        sim = self.simulation
        return not self.closed and (self.controller.animating or (sim is not None and sim.running))

    # ---------- frames ----------

    def frame(self, now=None):
        if self.closed or self.simulation is None:
            return RenderFrame()
        self.controller.advance(now)
        sim = self.simulation
        ticked = sim.tick()
        positions = sim.positions()
        model = self.model

        entities = []
        for node in model.nodes:
            x, y = positions[node["id"]]
            entities.append({
                "id": node["id"],
                "kind": NODE,
                "x": x,
                "y": y,
                "radius": model.radius(node["id"]),
                "label": node["id"],
                "sublabel": node["type"],
                "os": node["os"],
                "icon": icon_for(node["os"]),
                "pinned": sim.is_pinned(node["id"]),
            })
        for conn in model.connections:
            x, y = positions[conn["id"]]
            entities.append({
                "id": conn["id"],
                "kind": CONNECTION,
                "x": x,
                "y": y,
                "radius": model.radius(conn["id"]),
                "label": conn["protocol"],
                "sublabel": f"{conn['sourcePort']}->{conn['targetPort']}",
                "pinned": sim.is_pinned(conn["id"]),
            })

        links = []
        for link, path in resolve_edges(model, positions):
            links.append({
                "source": link["source"],
                "target": link["target"],
                "x1": path.x1,
                "y1": path.y1,
                "x2": path.x2,
                "y2": path.y2,
                "path": path.svg(),
            })

        return RenderFrame(
            entities=entities,
            links=links,
            transform=self.controller.transform,
            alpha=sim.alpha,
            running=sim.running,
            ticked=ticked,
        )

    # ---------- info panel ----------

    def info(self, entity_id) -> Optional[dict]:
        if not self.model.has(entity_id):
            return None
        return build_info(self.model, entity_id)

    def top_hosts(self, top_k=5):
        return summarize(self.model, top_k)
