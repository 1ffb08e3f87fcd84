#show hosts and protocol connections as a live force layout
#filters by node type and regex, zoom buttons, reset layout
#drag hosts and connections to pin them, drag the canvas to pan
#info box on click, top connected hosts box

import logging
import threading

import dash
from dash import html, dcc
from dash_extensions.enrich import DashProxy, TriggerTransform, Trigger
from dash.dependencies import Output, Input, State
import plotly.graph_objs as go

from topomap import settings
from topomap.graph_model import CONNECTION, load_topology, sample_topology
from topomap.icons import symbol_for
from topomap.view import TopologyView

logger = logging.getLogger(__name__)

# ---------- LOAD TOPOLOGY ----------

def read_topology():
    if settings.TOPOLOGY_FILE:
        logger.info("loading topology from %s", settings.TOPOLOGY_FILE)
        return load_topology(settings.TOPOLOGY_FILE)
    logger.info("TOPOMAP_TOPOLOGY_FILE not set, using the bundled sample topology")
    return sample_topology()


view = TopologyView(width=settings.VIEWPORT_WIDTH, height=settings.VIEWPORT_HEIGHT)
view_lock = threading.Lock()
load_errors = view.load(read_topology())

# ---------- FIGURE BUILDER ----------

NODE_COLORS = {"server": "#1f77b4", "client": "#2ca02c", "network": "#ff7f0e"}
CONNECTION_COLOR = "#9370DB"
EDGE_COLOR = "#4A4A4A"


def create_figure(frame, width, height, selected=None):
    k = frame.transform.scale
    fig = go.Figure()

    annotations = []
    for link in frame.links:
        if link["x1"] == link["x2"] and link["y1"] == link["y2"]:
            continue
        annotations.append(dict(
            x=link["x2"], y=link["y2"], ax=link["x1"], ay=link["y1"],
            xref="x", yref="y", axref="x", ayref="y",
            showarrow=True, arrowhead=2, arrowsize=1, arrowwidth=1.5,
            arrowcolor=EDGE_COLOR, text="",
        ))

    hosts = [e for e in frame.entities if e["kind"] != CONNECTION]
    conns = [e for e in frame.entities if e["kind"] == CONNECTION]

    fig.add_trace(go.Scatter(
        x=[e["x"] for e in hosts],
        y=[e["y"] for e in hosts],
        mode="markers+text",
        marker=dict(
            size=[e["radius"] * 2 * k for e in hosts],
            symbol=[symbol_for(e["os"]) for e in hosts],
            color=[NODE_COLORS.get(e["sublabel"], "#7f7f7f") for e in hosts],
            line=dict(width=[3 if e["id"] == selected else 1 for e in hosts], color="#222"),
        ),
        text=[e["label"] for e in hosts],
        textposition="middle right",
        customdata=[e["id"] for e in hosts],
        hovertext=[f"{e['label']} ({e['os']}, {e['sublabel']})" for e in hosts],
        hoverinfo="text",
        name="hosts",
        showlegend=False,
    ))

    fig.add_trace(go.Scatter(
        x=[e["x"] for e in conns],
        y=[e["y"] for e in conns],
        mode="markers+text",
        marker=dict(
            size=[e["radius"] * 2 * k for e in conns],
            color=CONNECTION_COLOR,
            line=dict(width=[3 if e["id"] == selected else 1 for e in conns], color="#222"),
        ),
        text=[e["label"] for e in conns],
        textposition="top center",
        textfont=dict(size=8),
        customdata=[e["id"] for e in conns],
        hovertext=[f"{e['label']} {e['sublabel']}" for e in conns],
        hoverinfo="text",
        name="connections",
        showlegend=False,
    ))

    (x0, x1), (y0, y1) = frame.transform.ranges(width, height)
    fig.update_layout(
        annotations=annotations,
        xaxis=dict(range=[x0, x1], visible=False),
        # screen y grows downward like the world coordinates
        yaxis=dict(range=[y1, y0], visible=False, scaleanchor="x", scaleratio=1),
        margin=dict(l=0, r=0, b=0, t=0),
        dragmode=False,
        plot_bgcolor="white",
        showlegend=False,
    )
    return fig


def create_info_box(info):
    if info is None:
        return "Click on a host or connection to see details."
    if info["kind"] == CONNECTION:
        return html.Div([
            html.H4(f"Connection: {info['id']}"),
            html.P(f"{info['source']} → {info['target']}", style={"fontWeight": "bold"}),
            html.P(f"Protocol: {info['protocol']}"),
            html.P(f"Ports: {info['ports']}"),
            html.P(info["description"]) if info["description"] else None,
        ])
    return html.Div([
        html.H4(f"Host: {info['id']}"),
        html.P(f"OS: {info['os']}  ·  Type: {info['type']}  ·  Links: {info['degree']}"),
        html.Strong(f"Outgoing ({len(info['outgoing'])}):"),
        html.Ul([
            html.Li(f"{u} → {v} ({proto}, {conn})") for u, v, proto, conn in info["outgoing"]
        ]) if info["outgoing"] else html.P("None"),
        html.Strong(f"Incoming ({len(info['incoming'])}):"),
        html.Ul([
            html.Li(f"{u} → {v} ({proto}, {conn})") for u, v, proto, conn in info["incoming"]
        ]) if info["incoming"] else html.P("None"),
    ])


def create_top_hosts(top):
    return html.Div([
        html.H4("Most connected hosts", style={"marginBottom": "10px"}),
        html.Ul([
            html.Li([
                html.Span(host, style={"fontWeight": "bold"}),
                html.Span(f" {degree}", style={"float": "right"}),
            ]) for host, degree in top
        ], style={"paddingLeft": "0", "listStyleType": "none"}),
    ])


def describe_load_errors(errors):
    if not errors:
        return ""
    return f"{len(errors)} edge(s) dropped while loading the topology: " + "; ".join(str(e) for e in errors)

# ---------- DASH APP ----------

app = DashProxy(__name__, transforms=[TriggerTransform()])
server = app.server

button_style = {
    "backgroundColor": "#007BFF",
    "color": "white",
    "border": "none",
    "padding": "8px 12px",
    "marginBottom": "8px",
    "borderRadius": "6px",
    "cursor": "pointer",
    "fontWeight": "bold",
    "fontSize": "14px",
    "boxShadow": "0 2px 4px rgba(0,0,0,0.2)",
}

wide_button_style = {**button_style, "width": "100%"}
clear_button_style = {**wide_button_style, "backgroundColor": "#6c757d"}

sidebar_style = {
    "position": "absolute",
    "top": "20px",
    "left": "20px",
    "width": "260px",
    "maxHeight": "90vh",
    "overflowY": "auto",
    "display": "flex",
    "flexDirection": "column",
    "gap": "16px",
    "zIndex": 11,
}

box_style = {
    "width": "100%",
    "padding": "15px",
    "borderRadius": "8px",
    "boxShadow": "0 2px 8px rgba(0,0,0,0.1)",
    "backgroundColor": "#FFFFFF",
    "border": "1px solid #E0E0E0",
    "fontFamily": "Arial, sans-serif",
}

error_style = {"color": "#8B0000", "fontSize": "13px", "marginTop": "6px"}

viewport_controls_style = {
    "position": "absolute",
    "top": "20px",
    "right": "20px",
    "display": "grid",
    "gridTemplateColumns": "repeat(3, 44px)",
    "gap": "6px",
    "zIndex": 11,
}

app.layout = html.Div([
    html.Div([
        html.Div([
            html.H4("Filters", style={"marginTop": "0"}),
            dcc.Checklist(
                id="type-filter",
                options=[{"label": t.capitalize(), "value": t} for t in settings.NODE_TYPES],
                value=[],
                labelStyle={"display": "block"},
            ),
            dcc.Input(id="regex-filter", type="text", placeholder="Enter regex...",
                      debounce=True, style={"width": "100%", "marginTop": "10px"}),
            html.Div(id="filter-error", style=error_style),
            html.Button("Apply Filters", id="apply-filter-btn", n_clicks=0,
                        style={**wide_button_style, "marginTop": "10px"}),
            html.Button("Clear Filters", id="clear-filter-btn", n_clicks=0, style=clear_button_style),
        ], style=box_style),
        html.Button("Reset Layout", id="reset-layout-btn", n_clicks=0, style=wide_button_style),
        html.Div(id="info-box", style=box_style),
        html.Div(id="top-hosts-box", style=box_style),
        html.Div(describe_load_errors(load_errors), id="load-errors", style=error_style),
    ], style=sidebar_style),

    html.Div([
        html.Button("+", id="zoom-in-btn", n_clicks=0, style=button_style),
        html.Button("▲", id="pan-up-btn", n_clicks=0, style=button_style),
        html.Button("−", id="zoom-out-btn", n_clicks=0, style=button_style),
        html.Button("◀", id="pan-left-btn", n_clicks=0, style=button_style),
        html.Button("⟲", id="reset-view-btn", n_clicks=0, style=button_style),
        html.Button("▶", id="pan-right-btn", n_clicks=0, style=button_style),
        html.Div(),
        html.Button("▼", id="pan-down-btn", n_clicks=0, style=button_style),
    ], style=viewport_controls_style),

    dcc.Graph(
        id="topology-graph",
        config={"scrollZoom": False, "doubleClick": False, "displayModeBar": False},
        style={"position": "absolute", "top": "0px", "left": "0px",
               "width": "100vw", "height": "100vh", "zIndex": "0"},
    ),

    dcc.Interval(id="frame-timer", interval=settings.FRAME_MS, n_intervals=0),
    dcc.Store(id="viewport-size", data=[settings.VIEWPORT_WIDTH, settings.VIEWPORT_HEIGHT]),
    dcc.Store(id="selected-entity", data=None),
    dcc.Store(id="pointer-event", data=None),
])

# Report the browser window size once on load and again on every resize event
app.clientside_callback(
    """
    function(_) {
        if (!window.topomapResizeBound) {
            window.topomapResizeBound = true;
            window.addEventListener("resize", function() {
                dash_clientside.set_props("viewport-size", {
                    data: [window.innerWidth, window.innerHeight]
                });
            });
        }
        return [window.innerWidth, window.innerHeight];
    }
    """,
    Output("viewport-size", "data"),
    Input("topology-graph", "id"),
)

# Forward pointer and wheel events on the graph to the server. Every update
# carries the last few events with increasing seq numbers, so a batch that is
# merged away or arrives late loses nothing.
app.clientside_callback(
    """
    function(_) {
        if (window.topomapPointerBound) {
            return window.dash_clientside.no_update;
        }
        window.topomapPointerBound = true;
        var session = String(Date.now()) + "-" + Math.random();
        var seq = 0, recent = [], pressed = false, lastMove = 0;
        var wheelDelta = 0, wheelTimer = null;

        function bind() {
            var el = document.getElementById("topology-graph");
            if (!el) {
                setTimeout(bind, 100);
                return;
            }
            function send(type, ev, deltaY) {
                var box = el.getBoundingClientRect();
                seq += 1;
                recent.push({type: type, seq: seq, deltaY: deltaY || 0,
                             x: ev.clientX - box.left, y: ev.clientY - box.top});
                recent = recent.slice(-%(keep)d);
                dash_clientside.set_props("pointer-event", {
                    data: {session: session, events: recent.slice()}
                });
            }
            el.addEventListener("pointerdown", function(ev) {
                if (ev.button !== 0) return;
                pressed = true;
                lastMove = Date.now();
                send("pointerdown", ev);
            }, true);
            window.addEventListener("pointermove", function(ev) {
                var now = Date.now();
                if (!pressed || now - lastMove < %(frame_ms)d) return;
                lastMove = now;
                send("pointermove", ev);
            });
            window.addEventListener("pointerup", function(ev) {
                if (!pressed) return;
                pressed = false;
                send("pointerup", ev);
            });
            el.addEventListener("wheel", function(ev) {
                ev.preventDefault();
                wheelDelta += ev.deltaY;
                if (wheelTimer) return;
                var first = {clientX: ev.clientX, clientY: ev.clientY};
                wheelTimer = setTimeout(function() {
                    send("wheel", first, wheelDelta);
                    wheelDelta = 0;
                    wheelTimer = null;
                }, %(frame_ms)d);
            }, {passive: false});
        }
        bind();
        return window.dash_clientside.no_update;
    }
    """ % {"frame_ms": settings.FRAME_MS, "keep": 8},
    Output("pointer-event", "data"),
    Input("topology-graph", "id"),
)

POINTER_EVENTS = ("pointerdown", "pointermove", "pointerup", "wheel")

# last browser event handed to the view, per page session
pointer_cursor = {"session": None, "seq": 0}


def dispatch_pointer(batch):
    """Emit the not yet seen events of a browser batch on the view's hub, in order."""
    if batch.get("session") != pointer_cursor["session"]:
        pointer_cursor.update(session=batch.get("session"), seq=0)
    for event in batch.get("events") or []:
        if event.get("type") not in POINTER_EVENTS or event["seq"] <= pointer_cursor["seq"]:
            continue
        pointer_cursor["seq"] = event["seq"]
        if event["type"] == "wheel":
            view.hub.emit("wheel", event["x"], event["y"], event["deltaY"])
        else:
            view.hub.emit(event["type"], event["x"], event["y"])


PAN_DELTAS = {
    "pan-left-btn": (settings.PAN_STEP, 0),
    "pan-right-btn": (-settings.PAN_STEP, 0),
    "pan-up-btn": (0, settings.PAN_STEP),
    "pan-down-btn": (0, -settings.PAN_STEP),
}


def handle_trigger(trigger, relayout_data, click_data, size, types, pattern, selected, pointer=None):
    """Apply one UI event to the view. Returns (filter error text, selected id)."""
    error = dash.no_update

    if trigger == "viewport-size" and size:
        view.hub.emit("resize", int(size[0]), int(size[1]))
    elif trigger == "apply-filter-btn":
        failure = view.apply_filter(types or [], pattern)
        error = str(failure) if failure is not None else ""
    elif trigger == "clear-filter-btn":
        view.clear_filter()
        error = ""
    elif trigger == "zoom-in-btn":
        view.controller.zoom_in()
    elif trigger == "zoom-out-btn":
        view.controller.zoom_out()
    elif trigger in PAN_DELTAS:
        view.controller.pan(*PAN_DELTAS[trigger])
    elif trigger == "reset-view-btn":
        view.controller.reset_view()
    elif trigger == "reset-layout-btn":
        view.reset_layout()
    elif trigger == "topology-graph.relayoutData" and relayout_data:
        if "xaxis.range[0]" in relayout_data and "yaxis.range[0]" in relayout_data:
            view.controller.set_ranges(
                (relayout_data["xaxis.range[0]"], relayout_data["xaxis.range[1]"]),
                (relayout_data["yaxis.range[0]"], relayout_data["yaxis.range[1]"]),
            )
        elif relayout_data.get("xaxis.autorange"):
            view.controller.reset_view()
    elif trigger == "pointer-event" and pointer:
        dispatch_pointer(pointer)
    elif trigger == "topology-graph.clickData" and click_data:
        point = click_data["points"][0]
        entity_id = point.get("customdata")
        selected = entity_id if selected != entity_id else None

    if selected is not None and not view.model.has(selected):
        selected = None
    return error, selected


@app.callback(
    Output("topology-graph", "figure"),
    Output("frame-timer", "disabled"),
    Output("filter-error", "children"),
    Output("info-box", "children"),
    Output("top-hosts-box", "children"),
    Output("selected-entity", "data"),
    Trigger("frame-timer", "n_intervals"),
    Trigger("apply-filter-btn", "n_clicks"),
    Trigger("clear-filter-btn", "n_clicks"),
    Trigger("zoom-in-btn", "n_clicks"),
    Trigger("zoom-out-btn", "n_clicks"),
    Trigger("pan-left-btn", "n_clicks"),
    Trigger("pan-right-btn", "n_clicks"),
    Trigger("pan-up-btn", "n_clicks"),
    Trigger("pan-down-btn", "n_clicks"),
    Trigger("reset-view-btn", "n_clicks"),
    Trigger("reset-layout-btn", "n_clicks"),
    Input("topology-graph", "relayoutData"),
    Input("topology-graph", "clickData"),
    Input("viewport-size", "data"),
    Input("pointer-event", "data"),
    State("type-filter", "value"),
    State("regex-filter", "value"),
    State("selected-entity", "data"),
)
def unified_callback(relayout_data, click_data, size, pointer, types, pattern, selected):
    triggered = dash.callback_context.triggered
    prop_id = triggered[0]["prop_id"] if triggered else ""
    trigger = prop_id if prop_id.startswith("topology-graph.") else prop_id.split(".")[0]

    with view_lock:
        error, selected = handle_trigger(
            trigger, relayout_data, click_data, size, types, pattern, selected, pointer)
        frame = view.frame()
        figure = create_figure(frame, view.width, view.height, selected)
        info = create_info_box(view.info(selected) if selected else None)
        top = create_top_hosts(view.top_hosts())
        idle = not view.busy

    return figure, idle, error, info, top, selected


def main():
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("serving %r, %d item(s) dropped at load", view.model, len(load_errors))
    app.run(host=settings.HOST, port=settings.PORT, debug=settings.DEBUG)


if __name__ == '__main__':
    main()
