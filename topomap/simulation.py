"""
Force-directed layout for the node/connection chain.

Entities live in an arena: one row per id in flat numpy arrays (``x``, ``y``,
``vx``, ``vy``, ``fx``, ``fy``). ``tick`` is the only code that integrates
positions; ``pin``/``unpin`` are the only code that touch ``fx``/``fy``. A NaN
in ``fx`` means the entity moves freely.

Each tick, with ``F`` the sum of the link, charge, centering and collision
forces::

    v = (v + F * alpha * dt) * (1 - velocity_decay)
    x = x + v * dt

and alpha relaxes toward ``alpha_target`` by ``alpha_decay`` per tick.
"""

import logging
import math

import numpy as np

from topomap import settings

logger = logging.getLogger(__name__)

GOLDEN_ANGLE = math.pi * (3 - math.sqrt(5))
INITIAL_RADIUS = 10.0
NUDGE = 1e-3


class ForceSimulation:
    def __init__(self, model, width, height, seed=None, alpha=None):
        self.link_distance = settings.LINK_DISTANCE
        self.link_strength = settings.LINK_STRENGTH
        self.charge_strength = settings.CHARGE_STRENGTH
        self.charge_distance_min = settings.CHARGE_DISTANCE_MIN
        self.center_strength = settings.CENTER_STRENGTH
        self.collision_margin = settings.COLLISION_MARGIN
        self.collision_strength = settings.COLLISION_STRENGTH
        self.velocity_decay = settings.VELOCITY_DECAY
        self.dt = settings.TIME_STEP
        self.alpha_decay = settings.ALPHA_DECAY
        self.alpha_min = settings.ALPHA_MIN

        self.width = float(width)
        self.height = float(height)

        self.ids = model.entity_ids()
        self.index = {entity_id: i for i, entity_id in enumerate(self.ids)}
        self.connection_mask = np.array([model.is_connection(e) for e in self.ids], dtype=bool)
        self.radii = np.array([model.radius(e) for e in self.ids], dtype=float)
        self.links = np.array(
            [(self.index[l["source"]], self.index[l["target"]]) for l in model.links],
            dtype=int,
        ).reshape(-1, 2)

        n = len(self.ids)
        self.x = np.zeros(n)
        self.y = np.zeros(n)
        self.vx = np.zeros(n)
        self.vy = np.zeros(n)
        self.fx = np.full(n, np.nan)
        self.fy = np.full(n, np.nan)
        self._place(seed or {})

        self.alpha = settings.ALPHA_START if alpha is None else alpha
        self.alpha_target = 0.0
        self.ticks = 0
        self.detached = False
        self.running = n > 0 and self.alpha >= self.alpha_min

    def __len__(self):
        return len(self.ids)

    @property
    def center(self):
        return self.width / 2.0, self.height / 2.0

    def _place(self, seed):
        """Carry over cached state by id; spiral the rest around the centre."""
        cx, cy = self.center
        for i, entity_id in enumerate(self.ids):
            state = seed.get(entity_id)
            if state is not None:
                self.x[i], self.y[i], self.vx[i], self.vy[i] = state
                continue
            r = INITIAL_RADIUS * math.sqrt(0.5 + i)
            angle = i * GOLDEN_ANGLE
            self.x[i] = cx + r * math.cos(angle)
            self.y[i] = cy + r * math.sin(angle)

    # ---------- control ----------

    def restart(self):
        if not self.detached and len(self.ids):
            self.running = True

    def reheat(self, alpha=settings.ALPHA_START):
        self.alpha = alpha
        self.restart()

    def set_alpha_target(self, target):
        self.alpha_target = target
        if target >= self.alpha_min:
            self.restart()

    def resize(self, width, height):
        """Re-centre on a new viewport size. Returns False when nothing changed."""
        if self.detached or (float(width), float(height)) == (self.width, self.height):
            return False
        self.width, self.height = float(width), float(height)
        self.reheat()
        logger.debug("simulation re-centred at %.0fx%.0f", self.width, self.height)
        return True

    def detach(self):
        self.detached = True
        self.running = False

    # ---------- pins ----------

    def pin(self, entity_id, x, y):
        i = self.index[entity_id]
        self.fx[i] = x
        self.fy[i] = y

    def unpin(self, entity_id):
        i = self.index.get(entity_id)
        if i is not None:
            self.fx[i] = np.nan
            self.fy[i] = np.nan

    def unpin_all(self):
        self.fx[:] = np.nan
        self.fy[:] = np.nan

    def is_pinned(self, entity_id):
        return not math.isnan(self.fx[self.index[entity_id]])

    # ---------- queries ----------

    def position(self, entity_id):
        i = self.index[entity_id]
        return float(self.x[i]), float(self.y[i])

    def positions(self):
        return {e: (float(self.x[i]), float(self.y[i])) for i, e in enumerate(self.ids)}

    def snapshot(self):
        return {
            e: (float(self.x[i]), float(self.y[i]), float(self.vx[i]), float(self.vy[i]))
            for i, e in enumerate(self.ids)
        }

    def entity_at(self, x, y):
        """Topmost entity whose disc contains the world point, or None.

        Connections are drawn over hosts, and later entries over earlier ones.
        """
        for i in range(len(self.ids) - 1, -1, -1):
            if math.hypot(self.x[i] - x, self.y[i] - y) <= self.radii[i]:
                return self.ids[i]
        return None

    # ---------- forces ----------

    def _pair_deltas(self):
        """Pairwise ``p_i - p_j`` with coincident pairs nudged apart."""
        dx = self.x[:, None] - self.x[None, :]
        dy = self.y[:, None] - self.y[None, :]
        n = len(self.ids)
        order = np.sign(np.arange(n)[:, None] - np.arange(n)[None, :])
        coincident = (dx == 0) & (dy == 0) & (order != 0)
        if coincident.any():
            dx = np.where(coincident, NUDGE * order, dx)
            dy = np.where(coincident, 0.5 * NUDGE * order, dy)
        return dx, dy

    def _link_force(self, fx, fy):
        if not len(self.links):
            return
        a, b = self.links[:, 0], self.links[:, 1]
        dx = self.x[b] - self.x[a]
        dy = self.y[b] - self.y[a]
        dist = np.hypot(dx, dy)
        same = dist == 0
        if same.any():
            dx = np.where(same, NUDGE, dx)
            dist = np.where(same, NUDGE, dist)
        f = self.link_strength * (dist - self.link_distance)
        ux, uy = dx / dist, dy / dist
        # both ends move toward (or away from) each other
        np.add.at(fx, a, f * ux)
        np.add.at(fy, a, f * uy)
        np.add.at(fx, b, -f * ux)
        np.add.at(fy, b, -f * uy)

    def _charge_force(self, fx, fy, dx, dy):
        d2 = np.maximum(dx * dx + dy * dy, self.charge_distance_min ** 2)
        mag = -self.charge_strength / (d2 * np.sqrt(d2))
        np.fill_diagonal(mag, 0.0)
        fx += (mag * dx).sum(axis=1)
        fy += (mag * dy).sum(axis=1)

    def _center_force(self, fx, fy):
        cx, cy = self.center
        fx += (cx - self.x.mean()) * self.center_strength
        fy += (cy - self.y.mean()) * self.center_strength

    def _collision_force(self, fx, fy, dx, dy):
        reach = self.radii + self.collision_margin
        min_dist = reach[:, None] + reach[None, :]
        dist = np.hypot(dx, dy)
        overlap = min_dist - dist
        np.fill_diagonal(overlap, 0.0)
        overlap = np.where(overlap > 0, overlap, 0.0)
        safe = np.where(dist > 0, dist, 1.0)
        push = self.collision_strength * 0.5 * overlap / safe
        fx += (push * dx).sum(axis=1)
        fy += (push * dy).sum(axis=1)

    def forces(self):
        n = len(self.ids)
        fx = np.zeros(n)
        fy = np.zeros(n)
        dx, dy = self._pair_deltas()
        self._link_force(fx, fy)
        self._charge_force(fx, fy, dx, dy)
        self._center_force(fx, fy)
        self._collision_force(fx, fy, dx, dy)
        return fx, fy

    # ---------- stepping ----------

    def tick(self):
        """Advance one step. Returns False (and touches nothing) when idle or detached."""
        if self.detached or not self.running:
            return False

        self.alpha += (self.alpha_target - self.alpha) * (1 - self.alpha_decay)

        force_x, force_y = self.forces()
        free = np.isnan(self.fx)
        pinned = ~free
        scale = self.alpha * self.dt
        decay = 1 - self.velocity_decay

        self.vx[free] = (self.vx[free] + force_x[free] * scale) * decay
        self.vy[free] = (self.vy[free] + force_y[free] * scale) * decay
        self.x[free] += self.vx[free] * self.dt
        self.y[free] += self.vy[free] * self.dt

        if pinned.any():
            # a pinned entity keeps the velocity of its last forced move
            self.vx[pinned] = (self.fx[pinned] - self.x[pinned]) / self.dt
            self.vy[pinned] = (self.fy[pinned] - self.y[pinned]) / self.dt
            self.x[pinned] = self.fx[pinned]
            self.y[pinned] = self.fy[pinned]

        self.ticks += 1
        if self.alpha < self.alpha_min and self.alpha_target < self.alpha_min:
            self.running = False
            logger.debug("simulation at rest after %d ticks", self.ticks)
        return True

    def run(self, ticks):
        """Tick up to ``ticks`` times; returns how many ticks actually ran."""
        done = 0
        for _ in range(ticks):
            if not self.tick():
                break
            done += 1
        return done
