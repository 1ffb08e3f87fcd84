"""
View lifecycle tests: model swaps, listener bookkeeping, frames and teardown.
"""

import pytest

from topomap.errors import InvalidPatternError
from topomap.graph_model import CONNECTION, NODE, sample_topology
from topomap.interaction import State
from topomap.view import RenderFrame, TopologyView

WIDTH, HEIGHT = 1200, 800
LISTENERS = 5


@pytest.fixture
def view():
    v = TopologyView(sample_topology(), WIDTH, HEIGHT, clock=lambda: 0.0)
    yield v
    v.close()


@pytest.fixture
def solo_view():
    v = TopologyView({
        "nodes": [{"id": "Solo", "os": "Linux", "type": "server"}],
        "connections": [],
        "edges": [],
    }, WIDTH, HEIGHT, clock=lambda: 0.0)
    yield v
    v.close()


class TestLoad:

    def test_load_shows_everything(self, view):
        assert len(view.model) == 17
        assert view.swaps == 1
        assert view.hub.count() == LISTENERS

    def test_load_reports_dropped_edges(self, pair_topology):
        pair_topology["edges"].append({"source": "Client1", "target": "Ghost", "connection": "Conn1"})
        v = TopologyView(width=WIDTH, height=HEIGHT)

        errors = v.load(pair_topology)

        assert len(errors) == 1
        assert len(v.model.links) == 2

    def test_reload_keeps_active_filter(self, view, pair_topology):
        view.apply_filter({"server"})

        view.load(pair_topology)

        assert [n["id"] for n in view.model.nodes] == ["Server1"]


class TestModelSwap:

    def test_filter_swaps_simulation(self, view):
        old = view.simulation

        assert view.apply_filter({"server"}) is None

        assert view.simulation is not old
        assert old.detached
        assert old.tick() is False
        assert view.hub.count() == LISTENERS

    def test_listener_count_stable_across_swaps(self, view):
        for types in ({"server"}, {"client"}, set(), {"network"}):
            view.apply_filter(types)
        view.clear_filter()

        assert view.hub.count() == LISTENERS
        for event in ("resize", "pointerdown", "pointermove", "pointerup", "wheel"):
            assert view.hub.count(event) == 1

    def test_invalid_pattern_keeps_simulation(self, view):
        sim = view.simulation
        model = view.model

        error = view.apply_filter((), "(oops")

        assert isinstance(error, InvalidPatternError)
        assert view.simulation is sim
        assert view.model is model
        assert not sim.detached

    def test_positions_carry_over(self, view):
        for _ in range(30):
            view.frame()
        before = view.simulation.position("Server1")

        view.apply_filter({"server"})

        assert view.simulation.position("Server1") == before

    def test_same_entities_keep_alpha(self, view):
        for _ in range(30):
            view.frame()
        alpha = view.simulation.alpha

        view.apply_filter((), "")

        assert view.simulation.alpha == alpha

    def test_new_entities_reheat(self, view):
        for _ in range(30):
            view.frame()

        view.apply_filter({"client"})

        assert view.simulation.alpha == 1.0

    def test_swap_mid_drag_drops_gesture(self, solo_view):
        x, y = solo_view.simulation.position("Solo")
        solo_view.hub.emit("pointerdown", x, y)

        solo_view.clear_filter()

        assert solo_view.controller.state is State.IDLE
        assert not solo_view.simulation.is_pinned("Solo")


class TestEvents:

    def test_resize_reheats_once(self, view):
        for _ in range(30):
            view.frame()

        assert view.hub.emit("resize", 800, 600) == [True]
        assert view.simulation.alpha == 1.0
        assert view.simulation.center == (400.0, 300.0)

        view.frame()
        alpha = view.simulation.alpha
        assert view.hub.emit("resize", 800, 600) == [False]
        assert view.simulation.alpha == alpha

    def test_pointer_drag_through_hub(self, solo_view):
        x, y = solo_view.simulation.position("Solo")

        assert solo_view.hub.emit("pointerdown", x, y) == [State.DRAGGING_ENTITY]
        solo_view.hub.emit("pointermove", x + 50, y - 20)
        frame = solo_view.frame()

        assert frame.entities[0]["x"] == x + 50
        assert frame.entities[0]["y"] == y - 20
        assert frame.entities[0]["pinned"]

        solo_view.hub.emit("pointerup")
        assert not solo_view.simulation.is_pinned("Solo")

    def test_wheel_through_hub(self, view):
        view.hub.emit("wheel", 600, 400, -500)
        assert view.controller.transform.scale == 2.0

    def test_reset_layout_releases_pins(self, view):
        view.simulation.pin("Server1", 0.0, 0.0)
        view.simulation.run(5000)

        view.reset_layout()

        assert not view.simulation.is_pinned("Server1")
        assert view.simulation.alpha == 1.0
        assert view.busy


class TestFrames:

    def test_frame_lists_entities_and_links(self, view):
        frame = view.frame()

        assert frame.ticked
        assert len(frame.entities) == 17
        assert len(frame.links) == 18
        kinds = {e["kind"] for e in frame.entities}
        assert kinds == {NODE, CONNECTION}

    def test_entity_fields(self, view):
        entities = {e["id"]: e for e in view.frame().entities}

        assert entities["Server1"]["radius"] == 24
        assert entities["Server1"]["icon"].endswith("Linux.svg")
        assert entities["Conn4"]["label"] == "PostgreSQL"
        assert entities["Conn4"]["sublabel"] == "40110->5432"

    def test_link_paths_are_svg(self, view):
        link = view.frame().links[0]
        assert link["path"].startswith("M ")

    def test_settled_frame_does_not_tick(self, view):
        view.simulation.run(5000)

        frame = view.frame()

        assert not frame.ticked
        assert not frame.running
        assert len(frame.entities) == 17
        assert not view.busy

    def test_to_dict(self, view):
        data = view.frame().to_dict()
        assert set(data) == {"entities", "links", "transform", "alpha", "running"}
        assert data["transform"]["scale"] == 1.0


class TestClose:

    def test_closed_view_is_inert(self, view):
        sim = view.simulation

        view.close()

        assert sim.detached
        assert view.hub.count() == 0
        assert view.frame() == RenderFrame()
        assert not view.busy
        assert view.resize(10, 10) is False

    def test_closed_view_ignores_filters_and_loads(self, view, pair_topology):
        shown = view.model
        view.close()

        assert view.apply_filter({"server"}) is None
        view.clear_filter()
        view.load(pair_topology)

        assert view.filters.current is shown
        assert view.filters.types == frozenset()
        assert view.model is shown
        assert view.swaps == 1

    def test_close_twice(self, view):
        view.close()
        view.close()
        assert view.closed


class TestInfo:

    def test_info(self, view):
        assert view.info("Server1")["kind"] == NODE
        assert view.info("Conn1")["kind"] == CONNECTION
        assert view.info("Ghost") is None

    def test_info_follows_filter(self, view):
        view.apply_filter({"client"})
        assert view.info("Server1") is None

    def test_top_hosts(self, view):
        assert view.top_hosts()[0] == ("Server1", 4)
