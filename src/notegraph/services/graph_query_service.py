"""Filtered graph views over notes and links.

Combines group and tag filters into a note set, then keeps only the links
whose two ends fall inside that set.
"""
import logging
from collections import Counter
from typing import Iterable, List, Optional, Sequence, Union

from notegraph.config import config
from notegraph.exceptions import NotFoundError
from notegraph.models.schema import (GraphData, GraphEdge, GraphNode,
                                     GraphStats, HubNode, LinkSummary, Note,
                                     NodeView, NoteLink, TagMatchMode)
from notegraph.observability import timed_operation, traced
from notegraph.services.group_service import GroupService
from notegraph.services.link_service import NoteLinkService
from notegraph.storage.note_repository import NoteRepository

logger = logging.getLogger(__name__)

MIN_NODE_SIZE = 15
MAX_NODE_SIZE = 60
NODE_SIZE_PER_LINK = 8
MIN_EDGE_OPACITY = 0.3

TagNames = Union[str, Sequence[str], None]


def node_size(degree: int) -> int:
    """Node radius grows with degree, saturating at both ends."""
    return max(MIN_NODE_SIZE, min(MAX_NODE_SIZE, MIN_NODE_SIZE + degree * NODE_SIZE_PER_LINK))


def edge_stroke_width(weight: int) -> int:
    return max(1, weight // 2)


def edge_opacity(weight: int) -> float:
    return min(1.0, max(MIN_EDGE_OPACITY, weight / 10))


def parse_tag_names(tag_names: TagNames) -> List[str]:
    """Accept a list or a comma separated string; drop blanks and duplicates."""
    if not tag_names:
        return []
    if isinstance(tag_names, str):
        tag_names = tag_names.split(",")
    seen = []
    for name in tag_names:
        name = (name or "").strip()
        if name and name.lower() not in (s.lower() for s in seen):
            seen.append(name)
    return seen


class GraphQueryService:
    """Read-only graph views for visualisation and analytics."""

    def __init__(
        self,
        note_repository: NoteRepository,
        link_service: NoteLinkService,
        group_service: GroupService,
    ):
        self.notes = note_repository
        self.link_service = link_service
        self.group_service = group_service

    @traced("filtered_notes")
    def filtered_notes(
        self,
        user_id: str,
        group_id: Optional[str] = None,
        include_sub_groups: bool = False,
        tag_names: TagNames = (),
        tag_mode: Union[TagMatchMode, str] = TagMatchMode.ANY,
    ) -> List[Note]:
        """Notes selected by group, then narrowed by tags.

        An unknown ``group_id`` selects all of the user's notes. In ALL mode
        a note must carry every tag name, in ANY mode at least one.
        """
        ids = set(self._group_note_ids(user_id, group_id, include_sub_groups))
        names = parse_tag_names(tag_names)
        if names:
            match_all = TagMatchMode.parse(tag_mode) is TagMatchMode.ALL
            ids &= set(self.notes.find_ids_by_tag_names(user_id, names, match_all=match_all))
        return self.notes.get_by_ids(user_id, ids)

    def links_among(self, user_id: str, note_ids: Iterable[str]) -> List[NoteLink]:
        """Links whose source and target are both in ``note_ids``."""
        owned = set(note_ids) & set(self.notes.all_ids(user_id))
        return self.link_service.links.find_among(owned)

    def node_view(self, user_id: str, note_id: str) -> NodeView:
        """Display record of one note and its links."""
        note = self.notes.get(user_id, note_id)
        if note is None:
            raise NotFoundError("note", note_id)

        outgoing = self.link_service.links.get_outgoing(note_id)
        incoming = self.link_service.links.get_incoming(note_id)
        titles = self.notes.titles(
            user_id,
            [link.target_id for link in outgoing] + [link.source_id for link in incoming],
        )
        all_links = outgoing + incoming
        average = (
            sum(link.weight for link in all_links) / len(all_links) if all_links else None
        )
        return NodeView(
            id=note.id,
            title=note.title,
            content=note.content,
            group_id=note.group_id,
            tags=note.tag_names,
            outgoing=[
                LinkSummary(link.target_id, titles.get(link.target_id, ""), link.link_type, link.weight)
                for link in outgoing
            ],
            incoming=[
                LinkSummary(link.source_id, titles.get(link.source_id, ""), link.link_type, link.weight)
                for link in incoming
            ],
            total_links=len(all_links),
            average_weight=average,
        )

    def graph_stats(self, user_id: str) -> GraphStats:
        """Link type histogram, hubs, orphan count and totals."""
        with timed_operation("graph_stats", user_id=user_id):
            graph = self.link_service.build_graph(user_id)
            top = graph.most_connected(config.hub_count)
            titles = self.notes.titles(user_id, [note_id for note_id, _ in top])
            return GraphStats(
                link_type_distribution=graph.type_histogram(),
                hubs=[HubNode(note_id, titles.get(note_id, ""), degree) for note_id, degree in top],
                orphan_count=len(graph.orphans()),
                total_notes=len(graph.nodes),
                total_links=len(graph.links),
            )

    def graph_data(
        self,
        user_id: str,
        group_id: Optional[str] = None,
        include_sub_groups: bool = False,
        tag_names: TagNames = (),
        tag_mode: Union[TagMatchMode, str] = TagMatchMode.ANY,
    ) -> GraphData:
        """Nodes and edges of the filtered subgraph with visual attributes."""
        notes = self.filtered_notes(
            user_id,
            group_id=group_id,
            include_sub_groups=include_sub_groups,
            tag_names=tag_names,
            tag_mode=tag_mode,
        )
        links = self.links_among(user_id, [n.id for n in notes])

        degree: Counter = Counter()
        for link in links:
            degree[link.source_id] += 1
            degree[link.target_id] += 1

        data = GraphData()
        for note in notes:
            d = degree.get(note.id, 0)
            data.nodes.append(GraphNode(note.id, note.title, d, node_size(d)))
        for link in links:
            data.edges.append(GraphEdge(
                id=link.id,
                source=link.source_id,
                target=link.target_id,
                link_type=link.link_type,
                weight=link.weight,
                bidirectional=link.is_bidirectional,
                stroke_width=edge_stroke_width(link.weight),
                opacity=edge_opacity(link.weight),
            ))
        logger.debug(
            f"Graph data for {user_id}: {len(data.nodes)} nodes, {len(data.edges)} edges"
        )
        return data

    def _group_note_ids(
        self, user_id: str, group_id: Optional[str], include_sub_groups: bool
    ) -> List[str]:
        if group_id is None:
            return self.notes.all_ids(user_id)
        if self.group_service.repository.get(user_id, group_id) is None:
            logger.debug(f"Group {group_id} not found, falling back to all notes")
            return self.notes.all_ids(user_id)
        if include_sub_groups:
            group_ids = self.group_service.descendant_ids(user_id, group_id)
        else:
            group_ids = [group_id]
        return self.notes.ids_in_groups(user_id, group_ids)
