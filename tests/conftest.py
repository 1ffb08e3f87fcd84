import pytest

from topomap.graph_model import GraphModel, sample_topology


@pytest.fixture
def pair_topology():
    """Client1 talks to Server1 over Conn1."""
    return {
        "nodes": [
            {"id": "Server1", "os": "Linux", "type": "server"},
            {"id": "Client1", "os": "Windows", "type": "client"},
        ],
        "connections": [
            {"id": "Conn1", "protocol": "HTTPS", "sourcePort": "51234",
             "targetPort": "443", "description": "web"},
        ],
        "edges": [{"source": "Client1", "target": "Server1", "connection": "Conn1"}],
    }


@pytest.fixture
def router_topology():
    return {
        "nodes": [
            {"id": "Router1", "os": "Linux", "type": "network"},
            {"id": "router2", "os": "Linux", "type": "network"},
            {"id": "CoreRouter", "os": "Linux", "type": "network"},
            {"id": "Server1", "os": "Linux", "type": "server"},
        ],
        "connections": [
            {"id": "C1", "protocol": "BGP", "sourcePort": "179", "targetPort": "179", "description": ""},
            {"id": "C2", "protocol": "SSH", "sourcePort": "60022", "targetPort": "22", "description": ""},
            {"id": "C3", "protocol": "OSPF", "sourcePort": "89", "targetPort": "89", "description": ""},
        ],
        "edges": [
            {"source": "Router1", "target": "router2", "connection": "C1"},
            {"source": "Router1", "target": "Server1", "connection": "C2"},
            {"source": "CoreRouter", "target": "Router1", "connection": "C3"},
        ],
    }


@pytest.fixture
def sample_model():
    return GraphModel.build(sample_topology())


@pytest.fixture
def lone_host():
    return GraphModel.build({
        "nodes": [{"id": "Solo", "os": "Linux", "type": "server"}],
        "connections": [],
        "edges": [],
    })
