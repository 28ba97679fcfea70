"""Service layer for note links and graph analytics."""
import logging
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from notegraph.config import config
from notegraph.exceptions import (ErrorCode, NotFoundError, SelfLinkError,
                                  ValidationError)
from notegraph.models.schema import NoteLink, NoteLinkType
from notegraph.observability import timed_operation, traced
from notegraph.services.group_service import GroupService
from notegraph.services.link_graph import LinkGraph
from notegraph.storage.link_repository import LinkRepository
from notegraph.storage.note_repository import NoteRepository

logger = logging.getLogger(__name__)

LinkTypeArg = Union[NoteLinkType, str]


def _coerce_type(link_type: LinkTypeArg) -> NoteLinkType:
    if isinstance(link_type, NoteLinkType):
        return link_type
    return NoteLinkType.from_string(link_type)


class NoteLinkService:
    """Link CRUD, bidirectional synthesis and graph queries for one user at a time.

    Traversals load the user's links into a ``LinkGraph`` and run there, so
    depth limits are enforced in code rather than by the database.
    """

    def __init__(
        self,
        link_repository: LinkRepository,
        note_repository: NoteRepository,
        group_service: GroupService,
    ):
        self.links = link_repository
        self.notes = note_repository
        self.group_service = group_service

    # --- CRUD -------------------------------------------------------------

    def create_link(
        self,
        user_id: str,
        source_id: str,
        target_id: str,
        link_type: LinkTypeArg = NoteLinkType.RELATES_TO,
        weight: int = 1,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> NoteLink:
        """Create a directed link.

        Raises:
            SelfLinkError: If source and target are the same note.
            NotFoundError: If either note is missing.
            DuplicateLinkError: If the (source, target, type) link exists.
        """
        link_type = _coerce_type(link_type)
        self._check_endpoints(user_id, source_id, target_id, link_type)
        link = NoteLink(
            source_id=source_id,
            target_id=target_id,
            link_type=link_type,
            weight=weight,
            metadata=metadata or {},
        )
        return self.links.create(link)

    def create_bidirectional_link(
        self,
        user_id: str,
        note_a: str,
        note_b: str,
        link_type: LinkTypeArg = NoteLinkType.RELATES_TO,
        weight: int = 1,
    ) -> List[NoteLink]:
        """Link two notes in both directions.

        RELATES_TO, the one symmetric type, yields a single link flagged
        ``is_bidirectional``. Any other type yields ``a -> b`` plus ``b -> a``
        of the inverse type, stored in a single transaction so that neither
        exists without the other.
        """
        link_type = _coerce_type(link_type)
        self._check_endpoints(user_id, note_a, note_b, link_type)
        inverse = link_type.inverse()

        if inverse is link_type:
            pair = [NoteLink(
                source_id=note_a,
                target_id=note_b,
                link_type=link_type,
                weight=weight,
                is_bidirectional=True,
            )]
        else:
            pair = [
                NoteLink(source_id=note_a, target_id=note_b, link_type=link_type, weight=weight),
                NoteLink(source_id=note_b, target_id=note_a, link_type=inverse, weight=weight),
            ]
        return self.links.create_many(pair)

    def get_link(self, user_id: str, link_id: str) -> NoteLink:
        link = self.links.get_by_id(link_id)
        if link is None or not self.notes.exists(user_id, link.source_id):
            raise NotFoundError("link", link_id)
        return link

    def update_link(
        self,
        user_id: str,
        link_id: str,
        weight: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> NoteLink:
        link = self.get_link(user_id, link_id)
        if weight is not None:
            link.weight = weight
        if metadata is not None:
            link.metadata = metadata
        return self.links.update(link)

    def link_exists(
        self,
        user_id: str,
        source_id: str,
        target_id: str,
        link_type: Optional[LinkTypeArg] = None,
    ) -> bool:
        if not self.notes.exists(user_id, source_id):
            return False
        lt = _coerce_type(link_type) if link_type is not None else None
        return self.links.get(source_id, target_id, lt) is not None

    def delete_link(
        self, user_id: str, source_id: str, target_id: str, link_type: LinkTypeArg
    ) -> None:
        """Delete the (source, target, type) link or raise NotFoundError."""
        link_type = _coerce_type(link_type)
        link = None
        if self.notes.exists(user_id, source_id):
            link = self.links.get(source_id, target_id, link_type)
        if link is None:
            raise NotFoundError(
                "link",
                f"{source_id}->{target_id}:{link_type.value}",
                message=f"No {link_type.value} link from '{source_id}' to '{target_id}'",
            )
        self.links.delete(link.id)

    def delete_link_by_id(self, user_id: str, link_id: str) -> None:
        link = self.get_link(user_id, link_id)
        self.links.delete(link.id)

    def delete_all_links_for_note(self, user_id: str, note_id: str) -> int:
        self._require_note(user_id, note_id)
        return self.links.delete_all_for_note(note_id)

    # --- queries ----------------------------------------------------------

    def outgoing_links(self, user_id: str, note_id: str) -> List[NoteLink]:
        self._require_note(user_id, note_id)
        return self.links.get_outgoing(note_id)

    def incoming_links(self, user_id: str, note_id: str) -> List[NoteLink]:
        self._require_note(user_id, note_id)
        return self.links.get_incoming(note_id)

    def links_for_note(self, user_id: str, note_id: str) -> List[NoteLink]:
        self._require_note(user_id, note_id)
        return self.links.get_all_for_note(note_id)

    def links_for_note_by_type(
        self, user_id: str, note_id: str, link_type: LinkTypeArg
    ) -> List[NoteLink]:
        self._require_note(user_id, note_id)
        return self.links.get_all_for_note(note_id, _coerce_type(link_type))

    def links_by_type(self, user_id: str, link_type: LinkTypeArg) -> List[NoteLink]:
        return self.links.find(user_id, link_type=_coerce_type(link_type))

    def links_by_weight(
        self, user_id: str, min_weight: int, max_weight: int
    ) -> List[NoteLink]:
        """Links with ``min_weight <= weight <= max_weight``."""
        if min_weight > max_weight:
            raise ValidationError(
                f"min_weight {min_weight} is greater than max_weight {max_weight}",
                field="min_weight",
                value=min_weight,
                code=ErrorCode.INVALID_WEIGHT_RANGE,
            )
        return self.links.find(user_id, min_weight=min_weight, max_weight=max_weight)

    def all_links(self, user_id: str) -> List[NoteLink]:
        return self.links.find(user_id)

    # --- analytics --------------------------------------------------------

    def build_graph(self, user_id: str) -> LinkGraph:
        """Load the user's notes and links into a ``LinkGraph``."""
        return LinkGraph(self.links.find(user_id), self.notes.all_ids(user_id))

    @traced("connected_notes")
    def connected_notes(self, user_id: str, start_id: str, max_depth: int = 3) -> Set[str]:
        """IDs reachable from ``start_id`` within ``max_depth`` hops, start excluded.

        Outgoing links are always followed; incoming links only when they
        are flagged bidirectional.

        Raises:
            ValidationError: If ``max_depth`` is negative or above
                ``config.max_traversal_depth``.
            NotFoundError: If the start note is missing.
        """
        if max_depth < 0 or max_depth > config.max_traversal_depth:
            raise ValidationError(
                f"max_depth must be between 0 and {config.max_traversal_depth}",
                field="max_depth",
                value=max_depth,
                code=ErrorCode.INVALID_DEPTH,
            )
        self._require_note(user_id, start_id)
        if max_depth == 0:
            return set()
        return self.build_graph(user_id).reachable(start_id, max_depth)

    @traced("shortest_path")
    def shortest_path(
        self, user_id: str, start_id: str, target_id: str
    ) -> Optional[List[str]]:
        """Fewest-hop path as a list of note ids, or None.

        None is returned when start and target are the same note or when
        the target is not reachable within ``config.shortest_path_max_hops``.
        """
        self._require_note(user_id, start_id)
        self._require_note(user_id, target_id)
        if start_id == target_id:
            return None
        return self.build_graph(user_id).shortest_path(
            start_id, target_id, config.shortest_path_max_hops
        )

    def most_connected(self, user_id: str, limit: int = 10) -> List[str]:
        return [note_id for note_id, _ in self.most_connected_with_counts(user_id, limit)]

    def most_connected_with_counts(
        self, user_id: str, limit: int = 10
    ) -> List[Tuple[str, int]]:
        """Top ``limit`` notes by in + out degree, ties broken by id."""
        with timed_operation("most_connected", user_id=user_id, limit=limit) as op:
            ranked = self.build_graph(user_id).most_connected(limit)
            op["result_count"] = len(ranked)
            return ranked

    def orphaned_notes(self, user_id: str) -> List[str]:
        with timed_operation("orphaned_notes", user_id=user_id) as op:
            orphans = self.build_graph(user_id).orphans()
            op["result_count"] = len(orphans)
            return orphans

    def link_statistics(self, user_id: str) -> Dict[str, int]:
        """Link count per link type name."""
        return self.links.type_counts(user_id)

    def average_weight(self, user_id: str, note_id: str) -> Optional[float]:
        """Mean weight of all links touching the note, None if it has none."""
        links = self.links_for_note(user_id, note_id)
        if not links:
            return None
        return sum(link.weight for link in links) / len(links)

    def count_links(self, user_id: str, note_id: str) -> int:
        self._require_note(user_id, note_id)
        return self.links.count_for_note(note_id)

    # --- group-scoped graph -----------------------------------------------

    def links_within_group(
        self, user_id: str, group_id: str, include_sub_groups: bool = False
    ) -> List[NoteLink]:
        """Links whose two notes both belong to the group (or its subtree)."""
        return self.links.find_among(
            self._group_note_ids(user_id, group_id, include_sub_groups)
        )

    def connected_notes_in_group(
        self, user_id: str, group_id: str, include_sub_groups: bool = False
    ) -> List[str]:
        """Notes of the group linked to at least one other note of the group."""
        linked = set()
        for link in self.links_within_group(user_id, group_id, include_sub_groups):
            linked.add(link.source_id)
            linked.add(link.target_id)
        return sorted(linked)

    # --- helpers ----------------------------------------------------------

    def _group_note_ids(
        self, user_id: str, group_id: str, include_sub_groups: bool
    ) -> List[str]:
        if include_sub_groups:
            group_ids = self.group_service.descendant_ids(user_id, group_id)
        else:
            group_ids = [self.group_service.get_group(user_id, group_id).id]
        return self.notes.ids_in_groups(user_id, group_ids)

    def _require_note(self, user_id: str, note_id: str) -> None:
        if not self.notes.exists(user_id, note_id):
            raise NotFoundError("note", note_id)

    def _check_endpoints(
        self, user_id: str, source_id: str, target_id: str, link_type: NoteLinkType
    ) -> None:
        if source_id == target_id:
            raise SelfLinkError(source_id, link_type.value)
        self._require_note(user_id, source_id)
        self._require_note(user_id, target_id)
