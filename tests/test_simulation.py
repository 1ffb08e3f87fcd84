"""
Force simulation tests: forces, pins, cooling and teardown.
"""

import math

import numpy as np
import pytest

from topomap import settings
from topomap.graph_model import GraphModel
from topomap.simulation import ForceSimulation

WIDTH, HEIGHT = 1200, 800


def distance(sim, a, b):
    (ax, ay), (bx, by) = sim.position(a), sim.position(b)
    return math.hypot(ax - bx, ay - by)


def two_hosts():
    return GraphModel.build({
        "nodes": [{"id": "A", "os": "Linux", "type": "server"},
                  {"id": "B", "os": "Linux", "type": "server"}],
        "connections": [],
        "edges": [],
    })


class TestForces:

    def test_linked_pair_settles_near_link_distance(self, pair_topology):
        sim = ForceSimulation(GraphModel.build(pair_topology), WIDTH, HEIGHT)

        sim.run(5000)

        assert distance(sim, "Client1", "Conn1") == pytest.approx(settings.LINK_DISTANCE, abs=10)
        assert distance(sim, "Conn1", "Server1") == pytest.approx(settings.LINK_DISTANCE, abs=10)

    def test_unlinked_entities_repel(self):
        sim = ForceSimulation(two_hosts(), WIDTH, HEIGHT)
        before = distance(sim, "A", "B")

        sim.tick()

        assert distance(sim, "A", "B") > before

    def test_coincident_entities_are_separated(self):
        seed = {"A": (300.0, 300.0, 0.0, 0.0), "B": (300.0, 300.0, 0.0, 0.0)}
        sim = ForceSimulation(two_hosts(), WIDTH, HEIGHT, seed=seed)

        sim.tick()

        assert distance(sim, "A", "B") > 0
        assert np.isfinite(sim.x).all() and np.isfinite(sim.y).all()

    def test_collision_clears_overlap(self):
        seed = {"A": (600.0, 400.0, 0.0, 0.0), "B": (610.0, 400.0, 0.0, 0.0)}
        sim = ForceSimulation(two_hosts(), WIDTH, HEIGHT, seed=seed)

        sim.run(300)

        reach = 2 * (settings.NODE_SIZE_BASE / 2 + settings.COLLISION_MARGIN)
        assert distance(sim, "A", "B") >= reach - 1

    def test_centroid_pulled_to_viewport_centre(self, sample_model):
        sim = ForceSimulation(sample_model, WIDTH, HEIGHT)

        sim.run(5000)

        assert sim.x.mean() == pytest.approx(WIDTH / 2, abs=5)
        assert sim.y.mean() == pytest.approx(HEIGHT / 2, abs=5)


class TestDeterminism:

    def test_same_start_same_result(self, sample_model):
        first = ForceSimulation(sample_model, WIDTH, HEIGHT)
        second = ForceSimulation(sample_model, WIDTH, HEIGHT)

        first.run(200)
        second.run(200)

        assert np.array_equal(first.x, second.x)
        assert np.array_equal(first.y, second.y)

    def test_seeded_state_is_carried_over(self, sample_model):
        seed = {"Server1": (10.0, 20.0, 1.0, -1.0)}

        sim = ForceSimulation(sample_model, WIDTH, HEIGHT, seed=seed)

        assert sim.position("Server1") == (10.0, 20.0)
        assert sim.snapshot()["Server1"] == (10.0, 20.0, 1.0, -1.0)

    def test_initial_placement_is_spread_around_centre(self, sample_model):
        sim = ForceSimulation(sample_model, WIDTH, HEIGHT)

        assert len(set(sim.positions().values())) == len(sim)
        assert abs(sim.x.mean() - WIDTH / 2) < 50


class TestPins:

    def test_pinned_entity_follows_pin(self, sample_model):
        sim = ForceSimulation(sample_model, WIDTH, HEIGHT)
        sim.pin("Server1", 123.0, 456.0)

        sim.tick()
        sim.tick()

        assert sim.position("Server1") == (123.0, 456.0)
        assert sim.is_pinned("Server1")

    def test_unpin_releases_with_last_velocity(self, sample_model):
        sim = ForceSimulation(sample_model, WIDTH, HEIGHT)
        sim.pin("Server1", 600.0, 400.0)
        sim.tick()
        sim.pin("Server1", 610.0, 400.0)
        sim.tick()

        sim.unpin("Server1")

        assert not sim.is_pinned("Server1")
        assert sim.vx[sim.index["Server1"]] == pytest.approx(10.0)

    def test_unpin_all(self, sample_model):
        sim = ForceSimulation(sample_model, WIDTH, HEIGHT)
        sim.pin("Server1", 1.0, 1.0)
        sim.pin("Conn1", 2.0, 2.0)

        sim.unpin_all()

        assert np.isnan(sim.fx).all()


class TestAlpha:

    def test_cools_and_stops(self, sample_model):
        sim = ForceSimulation(sample_model, WIDTH, HEIGHT)

        ran = sim.run(5000)

        assert ran < 5000
        assert not sim.running
        assert sim.alpha < settings.ALPHA_MIN

    def test_alpha_decays_geometrically(self, sample_model):
        sim = ForceSimulation(sample_model, WIDTH, HEIGHT)

        sim.run(10)

        assert sim.alpha == pytest.approx(settings.ALPHA_DECAY ** 10)

    def test_stopped_tick_is_noop(self, sample_model):
        sim = ForceSimulation(sample_model, WIDTH, HEIGHT)
        sim.run(5000)
        before = sim.positions()

        assert sim.tick() is False
        assert sim.positions() == before

    def test_alpha_target_holds_simulation_hot(self, sample_model):
        sim = ForceSimulation(sample_model, WIDTH, HEIGHT)
        sim.run(5000)

        sim.set_alpha_target(settings.DRAG_ALPHA_TARGET)
        sim.run(1500)

        assert sim.running
        assert sim.alpha == pytest.approx(settings.DRAG_ALPHA_TARGET, abs=1e-3)

        sim.set_alpha_target(0.0)
        sim.run(5000)
        assert not sim.running

    def test_reheat_restarts(self, sample_model):
        sim = ForceSimulation(sample_model, WIDTH, HEIGHT)
        sim.run(5000)

        sim.reheat()

        assert sim.alpha == 1.0
        assert sim.running
        assert sim.tick() is True


class TestResize:

    def test_resize_recentres_and_reheats(self, sample_model):
        sim = ForceSimulation(sample_model, WIDTH, HEIGHT)
        sim.run(5000)

        assert sim.resize(800, 600) is True

        assert sim.center == (400.0, 300.0)
        assert sim.alpha == 1.0
        assert sim.running

    def test_same_size_does_not_reheat(self, sample_model):
        sim = ForceSimulation(sample_model, WIDTH, HEIGHT)
        sim.run(50)
        alpha = sim.alpha

        assert sim.resize(WIDTH, HEIGHT) is False
        assert sim.alpha == alpha


class TestLifecycle:

    def test_detached_tick_is_noop(self, sample_model):
        sim = ForceSimulation(sample_model, WIDTH, HEIGHT)
        sim.detach()
        before = sim.positions()

        assert sim.tick() is False
        assert sim.positions() == before
        sim.reheat()
        assert not sim.running

    def test_empty_model_does_not_run(self):
        sim = ForceSimulation(GraphModel([], [], {}), WIDTH, HEIGHT)

        assert not sim.running
        assert sim.tick() is False


class TestHitTest:

    def test_entity_at_centre(self, lone_host):
        sim = ForceSimulation(lone_host, WIDTH, HEIGHT)
        x, y = sim.position("Solo")

        assert sim.entity_at(x + 3, y - 3) == "Solo"

    def test_entity_at_empty_space(self, lone_host):
        sim = ForceSimulation(lone_host, WIDTH, HEIGHT)

        assert sim.entity_at(0, 0) is None
