"""Service layer for tag scopes.

A tag is either global (``group_id`` is None) or scoped to one group.
From a group you see the global tags plus the tags of that group, and
optionally the tags of every ancestor group (``inherit_ancestor_tags``).
Lookups against a group id that does not exist fall back to the global
scope instead of failing.
"""
import logging
from typing import List, Optional, Tuple

from notegraph.config import config
from notegraph.exceptions import (DuplicateNameError, ErrorCode, NotFoundError,
                                  require_text)
from notegraph.models.schema import Tag
from notegraph.observability import timed_operation
from notegraph.services.group_service import GroupService
from notegraph.storage.tag_repository import TagRepository

logger = logging.getLogger(__name__)

_UNSET = object()


class TagService:
    """Resolves tag visibility and manages tag lifecycles across groups."""

    def __init__(self, repository: TagRepository, group_service: GroupService):
        self.repository = repository
        self.group_service = group_service

    # --- scope queries ----------------------------------------------------

    def tags_visible_in(
        self,
        user_id: str,
        group_id: Optional[str] = None,
        include_ancestors: Optional[bool] = None,
    ) -> List[Tag]:
        """Tags usable from a group context.

        Args:
            user_id: Owner of the tags.
            group_id: Group context. None returns every tag of the user.
            include_ancestors: Also include tags of ancestor groups. Defaults
                to ``config.inherit_ancestor_tags``.
        """
        if group_id is None:
            return self.repository.get_all(user_id)
        return self.repository.get_in_scopes(
            user_id, self._scope_ids(user_id, group_id, include_ancestors)
        )

    def group_specific_tags(self, user_id: str, group_id: Optional[str]) -> List[Tag]:
        """Tags scoped to exactly this group. None means the global tags."""
        if group_id is None:
            return self.global_tags(user_id)
        if self.group_service.repository.get(user_id, group_id) is None:
            return []
        return self.repository.get_in_scopes(user_id, [group_id], include_global=False)

    def global_tags(self, user_id: str) -> List[Tag]:
        return self.repository.get_in_scopes(user_id, [], include_global=True)

    def find_in_group(
        self, user_id: str, name: str, group_id: Optional[str]
    ) -> Optional[Tag]:
        """Find a tag by name usable in a group: group scope first, then global."""
        if group_id is not None:
            tag = self.repository.find_in_scope(user_id, name, group_id)
            if tag is not None:
                return tag
        return self.repository.find_in_scope(user_id, name, None)

    def tag_exists_in_group(self, user_id: str, name: str, group_id: Optional[str]) -> bool:
        return self.find_in_group(user_id, name, group_id) is not None

    # --- scope changes ----------------------------------------------------

    def create_in_scope(
        self,
        user_id: str,
        name: str,
        group_id: Optional[str] = None,
        color: Optional[str] = None,
        is_key: bool = False,
    ) -> Tag:
        """Create a tag in a group scope or, with ``group_id`` None, globally.

        A group-scoped name must not clash (case-insensitively) with a tag
        in the same group or a global tag. A global name only has to be
        unique among global tags.

        Raises:
            ValidationError: If the name is blank.
            NotFoundError: If the group does not exist.
            DuplicateNameError: On a name clash.
        """
        name = require_text(name, "name", "Tag name", ErrorCode.TAG_NAME_REQUIRED)
        tag = Tag(user_id=user_id, name=name, color=color, is_key=is_key, group_id=group_id)
        if group_id is not None:
            self.group_service.get_group(user_id, group_id)
        self._check_name_free(user_id, tag.name, group_id)
        return self.repository.create(tag)

    def move_to_group(
        self, user_id: str, tag_id: str, new_group_id: Optional[str]
    ) -> Tag:
        """Reassign a tag's scope. Note associations are left untouched.

        The same clash rules as ``create_in_scope`` apply in the destination.
        """
        tag = self.get_tag(user_id, tag_id)
        if new_group_id is not None:
            self.group_service.get_group(user_id, new_group_id)
        self._check_name_free(user_id, tag.name, new_group_id, exclude_id=tag.id)
        old_group = tag.group_id
        tag.group_id = new_group_id
        tag = self.repository.update(tag)
        logger.info(
            f"Moved tag {tag.name}: {old_group or 'global'} -> {new_group_id or 'global'}"
        )
        return tag

    def make_global(self, user_id: str, tag_id: str) -> Tag:
        return self.move_to_group(user_id, tag_id, None)

    def find_or_create(
        self,
        user_id: str,
        name: str,
        color: Optional[str] = None,
        group_id: Optional[str] = None,
    ) -> Tag:
        """Return the tag usable under this name in the scope, creating it if needed.

        An unknown ``group_id`` falls back to the global scope.
        """
        name = require_text(name, "name", "Tag name", ErrorCode.TAG_NAME_REQUIRED)
        if group_id is not None and self.group_service.repository.get(user_id, group_id) is None:
            logger.debug(f"Group {group_id} not found, using global scope for tag {name}")
            group_id = None
        existing = self.find_in_group(user_id, name, group_id)
        if existing is not None:
            return existing
        return self.create_in_scope(user_id, name, group_id=group_id, color=color)

    # --- usage ------------------------------------------------------------

    def popular_in(
        self, user_id: str, group_id: Optional[str] = None, limit: Optional[int] = None
    ) -> List[Tuple[Tag, int]]:
        """Used tags visible in the scope with their note counts, most used first."""
        with timed_operation("popular_tags", user_id=user_id, group_id=group_id) as op:
            counts = self.repository.usage_counts(user_id)
            ranked = sorted(
                (
                    (tag, counts.get(tag.id, 0))
                    for tag in self.tags_visible_in(user_id, group_id)
                    if counts.get(tag.id, 0) > 0
                ),
                key=lambda pair: (-pair[1], pair[0].name.lower()),
            )
            if limit is not None:
                ranked = ranked[:limit]
            op["result_count"] = len(ranked)
            return ranked

    def unused_in(self, user_id: str, group_id: Optional[str] = None) -> List[Tag]:
        """Tags visible in the scope that no note uses."""
        counts = self.repository.usage_counts(user_id)
        return [
            tag for tag in self.tags_visible_in(user_id, group_id)
            if counts.get(tag.id, 0) == 0
        ]

    def delete_unused_in(self, user_id: str, group_id: Optional[str] = None) -> int:
        deleted = self.repository.delete_many(t.id for t in self.unused_in(user_id, group_id))
        logger.info(f"Deleted {deleted} unused tags (group={group_id or 'all'})")
        return deleted

    # --- plumbing ---------------------------------------------------------

    def get_tag(self, user_id: str, tag_id: str) -> Tag:
        tag = self.repository.get(user_id, tag_id)
        if tag is None:
            raise NotFoundError("tag", tag_id)
        return tag

    def get_all_tags(self, user_id: str) -> List[Tag]:
        return self.repository.get_all(user_id)

    def update_tag(
        self,
        user_id: str,
        tag_id: str,
        name: Optional[str] = None,
        color=_UNSET,
        is_key: Optional[bool] = None,
    ) -> Tag:
        """Rename, recolour or (un)flag a tag. Renames are checked for clashes."""
        tag = self.get_tag(user_id, tag_id)
        if name is not None:
            name = require_text(name, "name", "Tag name", ErrorCode.TAG_NAME_REQUIRED)
            if name.lower() != tag.name.lower():
                self._check_name_free(user_id, name, tag.group_id, exclude_id=tag.id)
            tag.name = name
        if color is not _UNSET:
            tag.color = color
        if is_key is not None:
            tag.is_key = is_key
        return self.repository.update(tag)

    def delete_tag(self, user_id: str, tag_id: str) -> None:
        self.repository.delete(user_id, tag_id)

    def tags_for_note(self, user_id: str, note_id: str) -> List[Tag]:
        return [t for t in self.repository.get_for_note(note_id) if t.user_id == user_id]

    def co_occurring_tags(self, user_id: str, tag_id: str) -> List[Tuple[Tag, int]]:
        """Tags that appear on the same notes as ``tag_id``, with shared counts."""
        self.get_tag(user_id, tag_id)
        return self.repository.co_occurring(user_id, tag_id)

    # --- helpers ----------------------------------------------------------

    def _scope_ids(
        self, user_id: str, group_id: str, include_ancestors: Optional[bool]
    ) -> List[str]:
        if include_ancestors is None:
            include_ancestors = config.inherit_ancestor_tags
        if self.group_service.repository.get(user_id, group_id) is None:
            return []
        if include_ancestors:
            return [g.id for g in self.group_service.hierarchy_of(user_id, group_id)]
        return [group_id]

    def _check_name_free(
        self,
        user_id: str,
        name: str,
        group_id: Optional[str],
        exclude_id: Optional[str] = None,
    ) -> None:
        scopes = [group_id, None] if group_id is not None else [None]
        for scope in scopes:
            clash = self.repository.find_in_scope(user_id, name, scope)
            if clash is not None and clash.id != exclude_id:
                raise DuplicateNameError(
                    "tag", name.strip(), scope=scope or "global"
                )
