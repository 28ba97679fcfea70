"""Tests for link CRUD, bidirectional synthesis and graph analytics."""

import pytest
from sqlalchemy import func, select

from notegraph.config import config
from notegraph.exceptions import (DuplicateLinkError, ErrorCode,
                                  NotFoundError, SelfLinkError,
                                  ValidationError)
from notegraph.models.db_models import DBNoteLink
from notegraph.models.schema import NoteLink, NoteLinkType
from notegraph.observability import metrics

ASYMMETRIC = [t for t in NoteLinkType if t.inverse() is not t]
SYMMETRIC = [t for t in NoteLinkType if t.inverse() is t]


def _count_links(session_factory):
    with session_factory() as session:
        return session.scalar(select(func.count(DBNoteLink.id)))


@pytest.fixture
def notes(make_note):
    return {name: make_note(name) for name in ("N1", "N2", "N3", "N4")}


class TestCreateLink:
    def test_create_and_get(self, link_service, user_id, notes):
        link = link_service.create_link(
            user_id, notes["N1"].id, notes["N2"].id, NoteLinkType.EXTENDS, weight=3,
            metadata={"reason": "builds on"},
        )
        stored = link_service.get_link(user_id, link.id)
        assert stored.link_type is NoteLinkType.EXTENDS
        assert stored.weight == 3
        assert stored.metadata == {"reason": "builds on"}
        assert not stored.is_bidirectional

    def test_link_type_given_as_string(self, link_service, user_id, notes):
        link = link_service.create_link(user_id, notes["N1"].id, notes["N2"].id, "cites")
        assert link.link_type is NoteLinkType.CITES

    def test_duplicate_rejected_and_single_row_kept(
        self, link_service, session_factory, user_id, notes
    ):
        link_service.create_link(user_id, notes["N1"].id, notes["N2"].id, NoteLinkType.CITES)
        with pytest.raises(DuplicateLinkError) as exc_info:
            link_service.create_link(user_id, notes["N1"].id, notes["N2"].id, NoteLinkType.CITES)
        assert exc_info.value.code is ErrorCode.LINK_ALREADY_EXISTS
        assert _count_links(session_factory) == 1

    def test_same_pair_different_type_allowed(self, link_service, user_id, notes):
        link_service.create_link(user_id, notes["N1"].id, notes["N2"].id, NoteLinkType.CITES)
        link_service.create_link(user_id, notes["N1"].id, notes["N2"].id, NoteLinkType.EXTENDS)
        assert len(link_service.outgoing_links(user_id, notes["N1"].id)) == 2

    def test_self_link_rejected(self, link_service, user_id, notes):
        with pytest.raises(SelfLinkError):
            link_service.create_link(user_id, notes["N1"].id, notes["N1"].id)

    def test_missing_note(self, link_service, user_id, notes):
        with pytest.raises(NotFoundError):
            link_service.create_link(user_id, notes["N1"].id, "missing")

    def test_foreign_note_is_not_found(self, link_service, other_user_id, notes):
        with pytest.raises(NotFoundError):
            link_service.create_link(other_user_id, notes["N1"].id, notes["N2"].id)

    def test_batch_with_duplicate_stores_nothing(
        self, link_service, session_factory, notes
    ):
        """A batch that repeats a triple is rejected as a whole."""
        a, b = notes["N1"].id, notes["N2"].id
        with pytest.raises(DuplicateLinkError):
            link_service.links.create_many([
                NoteLink(source_id=a, target_id=b, link_type=NoteLinkType.CITES),
                NoteLink(source_id=a, target_id=b, link_type=NoteLinkType.CITES),
            ])
        assert _count_links(session_factory) == 0


class TestBidirectional:
    @pytest.mark.parametrize("link_type", ASYMMETRIC, ids=lambda t: t.value)
    def test_asymmetric_type_creates_inverse_pair(
        self, link_service, user_id, notes, link_type
    ):
        a, b = notes["N1"].id, notes["N2"].id
        link_service.create_bidirectional_link(user_id, a, b, link_type, weight=4)

        links = link_service.all_links(user_id)
        assert len(links) == 2
        triples = {(link.source_id, link.target_id, link.link_type, link.weight) for link in links}
        assert triples == {(a, b, link_type, 4), (b, a, link_type.inverse(), 4)}

    @pytest.mark.parametrize("link_type", SYMMETRIC, ids=lambda t: t.value)
    def test_symmetric_type_creates_one_flagged_link(
        self, link_service, user_id, notes, link_type
    ):
        a, b = notes["N1"].id, notes["N2"].id
        link_service.create_bidirectional_link(user_id, a, b, link_type, weight=2)

        links = link_service.all_links(user_id)
        assert len(links) == 1
        assert (links[0].source_id, links[0].target_id) == (a, b)
        assert links[0].is_bidirectional
        assert links[0].weight == 2

    def test_similar_to_is_answered_with_relates_to(self, link_service, user_id, notes):
        a, b = notes["N1"].id, notes["N2"].id
        link_service.create_bidirectional_link(user_id, a, b, NoteLinkType.SIMILAR_TO, 7)

        links = link_service.all_links(user_id)
        assert {(link.source_id, link.target_id, link.link_type) for link in links} == {
            (a, b, NoteLinkType.SIMILAR_TO),
            (b, a, NoteLinkType.RELATES_TO),
        }
        assert not any(link.is_bidirectional for link in links)

    def test_pair_is_atomic_when_inverse_exists(
        self, link_service, session_factory, user_id, notes
    ):
        a, b = notes["N1"].id, notes["N2"].id
        link_service.create_link(user_id, b, a, NoteLinkType.CHILD_OF)
        with pytest.raises(DuplicateLinkError):
            link_service.create_bidirectional_link(user_id, a, b, NoteLinkType.PARENT_OF)
        assert _count_links(session_factory) == 1
        assert not link_service.link_exists(user_id, a, b, NoteLinkType.PARENT_OF)

    def test_intro_details_scenario(self, link_service, user_id, make_note):
        intro = make_note("Intro")
        details = make_note("Details")
        link_service.create_bidirectional_link(
            user_id, intro.id, details.id, NoteLinkType.RELATES_TO, 1
        )
        links = link_service.all_links(user_id)
        assert len(links) == 1 and links[0].is_bidirectional
        top = link_service.most_connected_with_counts(user_id, 1)
        assert top[0][0] in (intro.id, details.id)
        assert top[0][1] == 1

    def test_self_link_rejected(self, link_service, user_id, notes):
        with pytest.raises(SelfLinkError):
            link_service.create_bidirectional_link(user_id, notes["N1"].id, notes["N1"].id)


class TestDeleteAndUpdate:
    def test_delete_by_triple(self, link_service, user_id, notes):
        a, b = notes["N1"].id, notes["N2"].id
        link_service.create_link(user_id, a, b, NoteLinkType.CITES)
        link_service.delete_link(user_id, a, b, NoteLinkType.CITES)
        assert not link_service.link_exists(user_id, a, b)
        with pytest.raises(NotFoundError) as exc_info:
            link_service.delete_link(user_id, a, b, NoteLinkType.CITES)
        assert exc_info.value.code is ErrorCode.LINK_NOT_FOUND

    def test_delete_by_id(self, link_service, user_id, notes):
        link = link_service.create_link(user_id, notes["N1"].id, notes["N2"].id)
        link_service.delete_link_by_id(user_id, link.id)
        with pytest.raises(NotFoundError):
            link_service.delete_link_by_id(user_id, link.id)

    def test_update_link(self, link_service, user_id, notes):
        link = link_service.create_link(user_id, notes["N1"].id, notes["N2"].id)
        link_service.update_link(user_id, link.id, weight=9, metadata={"k": "v"})
        stored = link_service.get_link(user_id, link.id)
        assert stored.weight == 9 and stored.is_strong
        assert stored.metadata == {"k": "v"}

    def test_foreign_user_cannot_read_link(self, link_service, user_id, other_user_id, notes):
        link = link_service.create_link(user_id, notes["N1"].id, notes["N2"].id)
        with pytest.raises(NotFoundError):
            link_service.get_link(other_user_id, link.id)

    def test_delete_all_links_for_note(self, link_service, user_id, notes):
        n1, n2, n3 = notes["N1"].id, notes["N2"].id, notes["N3"].id
        link_service.create_link(user_id, n1, n2)
        link_service.create_link(user_id, n3, n1)
        link_service.create_link(user_id, n2, n3)
        assert link_service.delete_all_links_for_note(user_id, n1) == 2
        assert link_service.count_links(user_id, n1) == 0
        assert len(link_service.all_links(user_id)) == 1

    def test_deleting_note_cascades_links(self, link_service, note_service, user_id, notes):
        link_service.create_link(user_id, notes["N1"].id, notes["N2"].id)
        link_service.create_link(user_id, notes["N3"].id, notes["N1"].id)
        note_service.delete_note(user_id, notes["N1"].id)
        assert link_service.all_links(user_id) == []


class TestQueries:
    @pytest.fixture
    def linked(self, link_service, user_id, notes):
        n1, n2, n3 = notes["N1"].id, notes["N2"].id, notes["N3"].id
        link_service.create_link(user_id, n1, n2, NoteLinkType.EXTENDS, weight=3)
        link_service.create_link(user_id, n2, n3, NoteLinkType.EXTENDS, weight=3)
        link_service.create_link(user_id, n3, n1, NoteLinkType.CITES, weight=8)
        return n1, n2, n3

    def test_outgoing_incoming_and_all(self, link_service, user_id, linked):
        n1, n2, n3 = linked
        assert [link.target_id for link in link_service.outgoing_links(user_id, n1)] == [n2]
        assert [link.source_id for link in link_service.incoming_links(user_id, n1)] == [n3]
        assert len(link_service.links_for_note(user_id, n1)) == 2
        assert link_service.count_links(user_id, n1) == 2

    def test_by_type(self, link_service, user_id, linked):
        n1, _, _ = linked
        assert len(link_service.links_by_type(user_id, NoteLinkType.EXTENDS)) == 2
        assert len(link_service.links_for_note_by_type(user_id, n1, "CITES")) == 1

    def test_by_weight_range(self, link_service, user_id, linked):
        assert len(link_service.links_by_weight(user_id, 1, 3)) == 2
        assert len(link_service.links_by_weight(user_id, 7, 10)) == 1
        with pytest.raises(ValidationError) as exc_info:
            link_service.links_by_weight(user_id, 8, 2)
        assert exc_info.value.code is ErrorCode.INVALID_WEIGHT_RANGE

    def test_statistics_and_average_weight(self, link_service, user_id, linked, notes):
        n1, _, _ = linked
        assert link_service.link_statistics(user_id) == {"EXTENDS": 2, "CITES": 1}
        assert link_service.average_weight(user_id, n1) == pytest.approx(5.5)
        assert link_service.average_weight(user_id, notes["N4"].id) is None

    def test_queries_on_missing_note(self, link_service, user_id):
        with pytest.raises(NotFoundError):
            link_service.outgoing_links(user_id, "missing")


class TestTraversal:
    @pytest.fixture
    def chain(self, link_service, user_id, notes):
        n1, n2, n3 = notes["N1"].id, notes["N2"].id, notes["N3"].id
        link_service.create_link(user_id, n1, n2, NoteLinkType.EXTENDS, weight=3)
        link_service.create_link(user_id, n2, n3, NoteLinkType.EXTENDS, weight=3)
        return n1, n2, n3

    def test_connected_notes_by_depth(self, link_service, user_id, chain):
        n1, n2, n3 = chain
        assert link_service.connected_notes(user_id, n1, 2) == {n2, n3}
        assert link_service.connected_notes(user_id, n1, 1) == {n2}
        assert link_service.connected_notes(user_id, n1, 0) == set()

    def test_connected_notes_ignores_plain_incoming(self, link_service, user_id, chain):
        n1, n2, n3 = chain
        assert link_service.connected_notes(user_id, n3, 5) == set()

    def test_depth_ceiling(self, link_service, user_id, chain, monkeypatch):
        n1, _, _ = chain
        with pytest.raises(ValidationError) as exc_info:
            link_service.connected_notes(user_id, n1, config.max_traversal_depth + 1)
        assert exc_info.value.code is ErrorCode.INVALID_DEPTH
        with pytest.raises(ValidationError):
            link_service.connected_notes(user_id, n1, -1)
        monkeypatch.setattr(config, "max_traversal_depth", 1)
        with pytest.raises(ValidationError):
            link_service.connected_notes(user_id, n1, 2)

    def test_connected_notes_missing_start(self, link_service, user_id):
        with pytest.raises(NotFoundError):
            link_service.connected_notes(user_id, "missing", 2)

    def test_orphans(self, link_service, user_id, chain, notes):
        assert link_service.orphaned_notes(user_id) == [notes["N4"].id]

    def test_shortest_path(self, link_service, user_id, chain):
        n1, n2, n3 = chain
        assert link_service.shortest_path(user_id, n1, n3) == [n1, n2, n3]
        assert link_service.shortest_path(user_id, n3, n1) is None
        assert link_service.shortest_path(user_id, n1, n1) is None

    def test_shortest_path_hop_cap(self, link_service, user_id, chain, monkeypatch):
        n1, _, n3 = chain
        monkeypatch.setattr(config, "shortest_path_max_hops", 1)
        assert link_service.shortest_path(user_id, n1, n3) is None

    def test_most_connected(self, link_service, user_id, chain):
        n1, n2, n3 = chain
        assert link_service.most_connected(user_id, 1) == [n2]
        assert link_service.most_connected_with_counts(user_id, 3)[0] == (n2, 2)

    def test_empty_graph_returns_empty_results(self, link_service, user_id, notes):
        n1 = notes["N1"].id
        assert link_service.connected_notes(user_id, n1, 3) == set()
        assert link_service.shortest_path(user_id, n1, notes["N2"].id) is None
        assert link_service.most_connected(user_id, 5) == []
        assert len(link_service.orphaned_notes(user_id)) == 4

    def test_traversals_are_timed(self, link_service, user_id, chain):
        n1, _, _ = chain
        link_service.connected_notes(user_id, n1, 2)
        assert metrics.get_metrics()["connected_notes"]["success_count"] == 1


class TestGroupScopedGraph:
    def test_links_within_group(self, link_service, group_service, user_id, make_note):
        work = group_service.create_group(user_id, "Work")
        sub = group_service.create_sub_group(user_id, work.id, "Sub")
        home = group_service.create_group(user_id, "Home")
        a = make_note("a", group_id=work.id)
        b = make_note("b", group_id=work.id)
        c = make_note("c", group_id=sub.id)
        d = make_note("d", group_id=home.id)
        link_service.create_link(user_id, a.id, b.id)
        link_service.create_link(user_id, b.id, c.id)
        link_service.create_link(user_id, c.id, d.id)

        assert len(link_service.links_within_group(user_id, work.id)) == 1
        assert len(link_service.links_within_group(user_id, work.id, include_sub_groups=True)) == 2
        assert link_service.connected_notes_in_group(user_id, work.id) == sorted([a.id, b.id])
        assert link_service.connected_notes_in_group(
            user_id, work.id, include_sub_groups=True
        ) == sorted([a.id, b.id, c.id])

    def test_missing_group(self, link_service, user_id):
        with pytest.raises(NotFoundError):
            link_service.links_within_group(user_id, "missing")
