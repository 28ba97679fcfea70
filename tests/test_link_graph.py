"""Tests for the in-memory link graph algorithms."""

from notegraph.models.schema import NoteLink, NoteLinkType
from notegraph.services.link_graph import LinkGraph


def _link(source, target, bidirectional=False, link_type=NoteLinkType.RELATES_TO, weight=1):
    return NoteLink(
        source_id=source,
        target_id=target,
        link_type=link_type,
        weight=weight,
        is_bidirectional=bidirectional,
    )


class TestReachable:
    def test_depth_zero_is_empty(self):
        graph = LinkGraph([_link("a", "b")])
        assert graph.reachable("a", 0) == set()

    def test_depth_limits_hops(self):
        graph = LinkGraph([_link("a", "b"), _link("b", "c"), _link("c", "d")])
        assert graph.reachable("a", 1) == {"b"}
        assert graph.reachable("a", 2) == {"b", "c"}
        assert graph.reachable("a", 10) == {"b", "c", "d"}

    def test_incoming_edges_need_bidirectional_flag(self):
        graph = LinkGraph([_link("b", "a"), _link("c", "a", bidirectional=True)])
        assert graph.reachable("a", 3) == {"c"}

    def test_cycles_terminate_and_exclude_start(self):
        graph = LinkGraph([_link("a", "b"), _link("b", "c"), _link("c", "a")])
        assert graph.reachable("a", 20) == {"b", "c"}

    def test_unknown_start_is_empty(self):
        assert LinkGraph([_link("a", "b")]).reachable("zzz", 5) == set()


class TestShortestPath:
    def test_same_node_returns_none(self):
        graph = LinkGraph([_link("a", "b")])
        assert graph.shortest_path("a", "a", 10) is None

    def test_finds_fewest_hops(self):
        graph = LinkGraph([
            _link("a", "b"), _link("b", "c"), _link("c", "d"),
            _link("a", "x"), _link("x", "d"),
        ])
        assert graph.shortest_path("a", "d", 10) == ["a", "x", "d"]

    def test_respects_direction(self):
        graph = LinkGraph([_link("a", "b")])
        assert graph.shortest_path("b", "a", 10) is None

    def test_bidirectional_edge_is_walkable_backwards(self):
        graph = LinkGraph([_link("a", "b", bidirectional=True)])
        assert graph.shortest_path("b", "a", 10) == ["b", "a"]

    def test_hop_cap(self):
        chain = [_link(str(i), str(i + 1)) for i in range(12)]
        graph = LinkGraph(chain)
        assert graph.shortest_path("0", "10", 10) == [str(i) for i in range(11)]
        assert graph.shortest_path("0", "11", 10) is None


class TestDegreeRanking:
    def test_degree_counts_each_link_once_per_end(self):
        graph = LinkGraph([_link("a", "b", bidirectional=True)])
        assert graph.degree("a") == 1
        assert graph.degree("b") == 1

    def test_most_connected_orders_by_degree_then_id(self):
        graph = LinkGraph([
            _link("hub", "a"), _link("hub", "b"), _link("c", "hub"), _link("a", "b"),
        ])
        assert graph.most_connected() == [("hub", 3), ("a", 2), ("b", 2), ("c", 1)]
        assert graph.most_connected(2) == [("hub", 3), ("a", 2)]

    def test_orphans_include_only_known_unlinked_notes(self):
        graph = LinkGraph([_link("a", "b")], note_ids=["a", "b", "c", "d"])
        assert graph.orphans() == ["c", "d"]

    def test_type_histogram(self):
        graph = LinkGraph([
            _link("a", "b", link_type=NoteLinkType.EXTENDS),
            _link("b", "c", link_type=NoteLinkType.EXTENDS),
            _link("c", "a", link_type=NoteLinkType.CITES),
        ])
        assert graph.type_histogram() == {"EXTENDS": 2, "CITES": 1}

    def test_empty_graph(self):
        graph = LinkGraph([])
        assert graph.most_connected(5) == []
        assert graph.orphans() == []
        assert graph.type_histogram() == {}
