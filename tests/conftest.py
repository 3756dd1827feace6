"""Pytest configuration and shared fixtures."""

import pytest

from graph_ops.graph import Graph
from graph_ops.importer import ExternalNode


@pytest.fixture
def graph():
    """Empty graph."""
    return Graph("test")


@pytest.fixture
def nhwc_input(graph):
    """Channel-last 4D placeholder."""
    return graph.placeholder("x", shape=(2, 8, 8, 3))


@pytest.fixture
def nchw_input(graph):
    """Channel-first 4D placeholder."""
    return graph.placeholder("x_nchw", shape=(2, 3, 8, 8))


@pytest.fixture
def indices(graph):
    """Integer indices placeholder."""
    return graph.placeholder("indices", shape=(4,), dtype="int64")


@pytest.fixture
def space_to_depth_node():
    """External SpaceToDepth node with every attribute present."""
    return ExternalNode(
        name="s2d",
        op="SpaceToDepth",
        inputs=["x"],
        attrs={"block_size": 2, "data_format": "NCHW"},
    )
