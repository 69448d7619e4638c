import random

import pytest

from chaingraph.models import GraphEdge, GraphNode


def make_node(node_id: str, category: str = "alt_wallet", x=None, y=None) -> GraphNode:
    return GraphNode(id=node_id, category=category, x=x, y=y)


def make_edge(source: str, target: str, kind: str = "token_transfer") -> GraphEdge:
    return GraphEdge(source=source, target=target, kind=kind)


class NoJitterRandom(random.Random):
    """Generator whose ``uniform`` always returns the midpoint.

    Ring jitter drops to zero, so node i of a ring sits exactly at angle
    2*pi*i/n on the nominal radius.
    """

    def uniform(self, a, b):
        return (a + b) / 2


@pytest.fixture
def rng():
    return random.Random(42)


@pytest.fixture
def steady_rng():
    return NoJitterRandom(0)


@pytest.fixture
def star_graph():
    """A root with three direct counterparties."""
    nodes = [
        make_node("root", "main"),
        make_node("a"),
        make_node("b", "cex"),
        make_node("c", "mixer"),
    ]
    edges = [
        make_edge("root", "a"),
        make_edge("root", "b"),
        make_edge("root", "c"),
    ]
    return nodes, edges


PEEL_RECIPE = """
title: Test peel
viewport: {width: 800, height: 600}
nodes:
  - id: "0xaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa"
    label: Subject
    category: main
  - id: "0xbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbb"
    category: alt_wallet
  - id: "0xcccccccccccccccccccccccccccccccccccccccc"
    category: cex
edges:
  - source: "0xaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa"
    target: "0xbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbb"
  - source: "0xbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbb"
    target: "0xcccccccccccccccccccccccccccccccccccccccc"
    kind: token_transfer
"""


@pytest.fixture
def peel_recipe():
    return PEEL_RECIPE
