"""Service layer for notegraph."""
from dataclasses import dataclass

from notegraph.services.graph_layout_service import GraphLayoutService
from notegraph.services.graph_query_service import GraphQueryService
from notegraph.services.group_service import GroupService
from notegraph.services.link_graph import LinkGraph
from notegraph.services.link_service import NoteLinkService
from notegraph.services.note_service import NoteService
from notegraph.services.tag_service import TagService
from notegraph.storage import (GraphLayoutRepository, GroupRepository,
                               LinkRepository, NoteRepository, TagRepository)


@dataclass
class Services:
    """The wired service objects sharing one session factory."""

    groups: GroupService
    tags: TagService
    notes: NoteService
    links: NoteLinkService
    graph: GraphQueryService
    layouts: GraphLayoutService


def build_services(session_factory) -> Services:
    """Wire repositories and services around a session factory."""
    note_repository = NoteRepository(session_factory)
    groups = GroupService(GroupRepository(session_factory))
    tags = TagService(TagRepository(session_factory), groups)
    notes = NoteService(note_repository, groups, tags)
    links = NoteLinkService(LinkRepository(session_factory), note_repository, groups)
    graph = GraphQueryService(note_repository, links, groups)
    layouts = GraphLayoutService(GraphLayoutRepository(session_factory))
    return Services(
        groups=groups, tags=tags, notes=notes, links=links, graph=graph, layouts=layouts
    )


__all__ = [
    "GraphLayoutService",
    "GraphQueryService",
    "GroupService",
    "LinkGraph",
    "NoteLinkService",
    "NoteService",
    "Services",
    "TagService",
    "build_services",
]
