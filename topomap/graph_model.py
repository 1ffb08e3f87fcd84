"""
Topology model: hosts ("nodes") joined only through protocol "connections".

Every raw edge ``{source, target, connection}`` becomes the chain
``source -> connection -> target``, so the graph is bipartite and a link never
joins two hosts or two connections directly.
"""

import json
import logging
from collections import Counter
from pathlib import Path

import networkx as nx

from topomap import settings
from topomap.errors import MalformedTopologyError

logger = logging.getLogger(__name__)

SAMPLE_TOPOLOGY = Path(__file__).parent / "data" / "sample_topology.json"

NODE = "node"
CONNECTION = "connection"


def node_size_for_degree(degree: int) -> int:
    size = settings.NODE_SIZE_BASE + settings.NODE_SIZE_PER_LINK * degree
    return max(settings.NODE_SIZE_BASE, min(size, settings.NODE_SIZE_MAX))


def _clean_node(raw):
    return {
        "id": str(raw["id"]),
        "os": raw.get("os") or "Unknown",
        "type": raw.get("type") or "",
    }


def _clean_connection(raw):
    return {
        "id": str(raw["id"]),
        "protocol": raw.get("protocol", ""),
        "sourcePort": str(raw.get("sourcePort", "")),
        "targetPort": str(raw.get("targetPort", "")),
        "description": raw.get("description", ""),
    }


class GraphModel:
    """Immutable snapshot of nodes, connections and the links derived from them.

    ``endpoints`` maps each connection id to the ``(source, target)`` host ids it
    was built from. Links, degrees and sizes are always recomputed from it.
    """

    def __init__(self, nodes, connections, endpoints, errors=()):
        self.nodes = list(nodes)
        self.connections = list(connections)
        self._endpoints = dict(endpoints)
        self.errors = list(errors)

        self._nodes_by_id = {n["id"]: n for n in self.nodes}
        self._connections_by_id = {c["id"]: c for c in self.connections}

        self.links = []
        for conn in self.connections:
            source, target = self._endpoints[conn["id"]]
            self.links.append({"source": source, "target": conn["id"]})
            self.links.append({"source": conn["id"], "target": target})

        G = nx.DiGraph()
        for node in self.nodes:
            G.add_node(node["id"], kind=NODE, **node)
        for conn in self.connections:
            G.add_node(conn["id"], kind=CONNECTION, **conn)
        for link in self.links:
            G.add_edge(link["source"], link["target"])
        self.graph = G

        self.degrees = {n: 0 for n in G.nodes()}
        for link in self.links:
            self.degrees[link["source"]] += 1
            self.degrees[link["target"]] += 1

    # ---------- construction ----------

    @classmethod
    def build(cls, raw):
        """Build a model from a raw topology document.

        Edges that reference unknown ids, or reuse a connection already chained
        between two hosts, are dropped and recorded on ``model.errors``.
        """
        errors = []
        nodes, connections = [], []
        seen = set()

        for key, clean, bucket in (
            ("nodes", _clean_node, nodes),
            ("connections", _clean_connection, connections),
        ):
            for entry in raw.get(key) or []:
                if entry.get("id") in (None, ""):
                    errors.append(MalformedTopologyError(f"{key} entry without an id", entry))
                    continue
                item = clean(entry)
                if item["id"] in seen:
                    logger.debug("duplicate id %s in %s, keeping the first", item["id"], key)
                    continue
                seen.add(item["id"])
                bucket.append(item)

        node_ids = {n["id"] for n in nodes}
        connection_ids = {c["id"] for c in connections}
        endpoints = {}

        for edge in raw.get("edges") or []:
            source = str(edge.get("source", ""))
            target = str(edge.get("target", ""))
            conn = str(edge.get("connection", ""))
            missing = [v for v in (source, target) if v not in node_ids]
            if conn not in connection_ids:
                missing.append(conn)
            if missing:
                errors.append(MalformedTopologyError(
                    f"edge {source} -> {target} via {conn} references unknown id(s): "
                    + ", ".join(repr(m) for m in missing),
                    edge,
                ))
                continue
            if conn in endpoints:
                errors.append(MalformedTopologyError(
                    f"connection {conn} already joins {endpoints[conn][0]} -> {endpoints[conn][1]}",
                    edge,
                ))
                continue
            endpoints[conn] = (source, target)

        # connections that never made it into a chain carry no relationship
        chained = [c for c in connections if c["id"] in endpoints]

        for err in errors:
            logger.warning("dropped from topology: %s", err)

        return cls(nodes, chained, endpoints, errors)

    # ---------- lookups ----------

    def entity_ids(self):
        return [n["id"] for n in self.nodes] + [c["id"] for c in self.connections]

    def has(self, entity_id):
        return entity_id in self._nodes_by_id or entity_id in self._connections_by_id

    def is_connection(self, entity_id):
        return entity_id in self._connections_by_id

    def node(self, node_id):
        return self._nodes_by_id[node_id]

    def connection(self, conn_id):
        return self._connections_by_id[conn_id]

    def endpoints(self, conn_id):
        return self._endpoints[conn_id]

    def degree(self, entity_id):
        return self.degrees.get(entity_id, 0)

    def node_size(self, node_id):
        return node_size_for_degree(self.degree(node_id))

    def radius(self, entity_id):
        if self.is_connection(entity_id):
            return settings.CONNECTION_RADIUS
        return self.node_size(entity_id) / 2.0

    def node_types(self):
        return sorted({n["type"] for n in self.nodes if n["type"]})

    def to_dict(self):
        return {
            "nodes": [{**n, "size": self.node_size(n["id"])} for n in self.nodes],
            "connections": [dict(c) for c in self.connections],
            "links": [dict(link) for link in self.links],
        }

    def __len__(self):
        return len(self.nodes) + len(self.connections)

    def __repr__(self):
        return (f"GraphModel(nodes={len(self.nodes)}, connections={len(self.connections)}, "
                f"links={len(self.links)}, errors={len(self.errors)})")


# ---------- info panel helpers ----------

def build_info(model, entity_id):
    """Details for the info box: a host's connections, or a connection's ends."""
    if model.is_connection(entity_id):
        conn = model.connection(entity_id)
        source, target = model.endpoints(entity_id)
        return {
            "kind": CONNECTION,
            "id": entity_id,
            "protocol": conn["protocol"],
            "ports": f"{conn['sourcePort']}->{conn['targetPort']}",
            "description": conn["description"],
            "source": source,
            "target": target,
        }

    node = model.node(entity_id)
    G = model.graph
    outgoing = []
    for _, conn_id in G.out_edges(entity_id):
        for _, peer in G.out_edges(conn_id):
            outgoing.append((entity_id, peer, model.connection(conn_id)["protocol"], conn_id))
    incoming = []
    for conn_id, _ in G.in_edges(entity_id):
        for peer, _ in G.in_edges(conn_id):
            incoming.append((peer, entity_id, model.connection(conn_id)["protocol"], conn_id))
    return {
        "kind": NODE,
        "id": entity_id,
        "os": node["os"],
        "type": node["type"],
        "degree": model.degree(entity_id),
        "outgoing": outgoing,
        "incoming": incoming,
    }


def summarize(model, top_k=5):
    """Hosts with the most links, most connected first."""
    deg = Counter({n["id"]: model.degree(n["id"]) for n in model.nodes})
    return sorted(deg.items(), key=lambda item: (-item[1], item[0]))[:top_k]


# ---------- loading ----------

def load_topology(path):
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def sample_topology():
    return load_topology(SAMPLE_TOPOLOGY)
