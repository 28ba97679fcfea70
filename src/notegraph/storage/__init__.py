"""Storage layer for notegraph."""

from notegraph.storage.group_repository import GroupRepository
from notegraph.storage.layout_repository import GraphLayoutRepository
from notegraph.storage.link_repository import LinkRepository
from notegraph.storage.note_repository import NoteRepository
from notegraph.storage.tag_repository import TagRepository

__all__ = [
    "GraphLayoutRepository",
    "GroupRepository",
    "NoteRepository",
    "LinkRepository",
    "TagRepository",
]
