"""Service layer for the group hierarchy.

Groups form a forest per user via parent ids. Every tree walk here is an
explicit loop over a flat id -> group map bounded by
``config.max_group_depth``, so corrupted data raises instead of looping.
"""
import logging
from collections import deque
from typing import Dict, List, Optional, Set, Tuple

from notegraph.config import config
from notegraph.exceptions import (CircularReferenceError, ErrorCode,
                                  HierarchyCorruptionError, InvalidStateError,
                                  NotFoundError, require_text)
from notegraph.models.schema import Group
from notegraph.storage.group_repository import GroupRepository

logger = logging.getLogger(__name__)

_UNSET = object()


class GroupService:
    """Creates, moves and inspects a user's groups."""

    def __init__(self, repository: GroupRepository):
        self.repository = repository

    # --- creation and lookup ---------------------------------------------

    def create_group(
        self,
        user_id: str,
        name: str,
        description: Optional[str] = None,
        color: Optional[str] = None,
        icon: Optional[str] = None,
        parent_id: Optional[str] = None,
        sort_order: int = 0,
    ) -> Group:
        """Create a group, optionally under an existing parent.

        Raises:
            ValidationError: If the name is blank.
            DuplicateNameError: If the user already has a group with that name.
            NotFoundError: If ``parent_id`` does not name one of the user's groups.
        """
        name = require_text(name, "name", "Group name", ErrorCode.GROUP_NAME_REQUIRED)
        if parent_id is not None and self.repository.get(user_id, parent_id) is None:
            raise NotFoundError("group", parent_id)

        group = Group(
            user_id=user_id,
            name=name,
            description=description,
            color=color,
            icon=icon,
            parent_id=parent_id,
            sort_order=sort_order,
        )
        return self.repository.create(group)

    def create_sub_group(
        self, user_id: str, parent_id: str, name: str, description: Optional[str] = None
    ) -> Group:
        return self.create_group(user_id, name, description=description, parent_id=parent_id)

    def get_group(self, user_id: str, group_id: str) -> Group:
        """Get a group or raise NotFoundError."""
        group = self.repository.get(user_id, group_id)
        if group is None:
            raise NotFoundError("group", group_id)
        return group

    def get_all_groups(self, user_id: str) -> List[Group]:
        return self.repository.get_all(user_id)

    def get_root_groups(self, user_id: str) -> List[Group]:
        return self.repository.get_children(user_id, None)

    def sub_groups_of(self, user_id: str, group_id: str) -> List[Group]:
        """Direct children of a group, sorted by sort order then name."""
        self.get_group(user_id, group_id)
        return self.repository.get_children(user_id, group_id)

    def find_by_name(self, user_id: str, name: str) -> Optional[Group]:
        return self.repository.find_by_name(user_id, name)

    def update_group(
        self,
        user_id: str,
        group_id: str,
        name: Optional[str] = None,
        description=_UNSET,
        color=_UNSET,
        icon=_UNSET,
        sort_order: Optional[int] = None,
    ) -> Group:
        """Update display fields of a group. Use ``move_group`` to re-parent.

        Optional text fields may be passed as None to clear them.
        """
        group = self.get_group(user_id, group_id)
        if name is not None:
            group.name = require_text(name, "name", "Group name", ErrorCode.GROUP_NAME_REQUIRED)
        if description is not _UNSET:
            group.description = description
        if color is not _UNSET:
            group.color = color
        if icon is not _UNSET:
            group.icon = icon
        if sort_order is not None:
            group.sort_order = sort_order
        return self.repository.update(group)

    def get_default_group(self, user_id: str) -> Group:
        """Get the user's default group, creating it on first use."""
        group = self.repository.find_by_name(
            user_id, config.default_group_name, ignore_case=True, root_only=True
        )
        if group is not None:
            return group
        logger.info(f"Creating default group for user {user_id}")
        return self.repository.create(Group(
            user_id=user_id,
            name=config.default_group_name,
            description=config.default_group_description,
            icon=config.default_group_own_icon,
            sort_order=0,
        ))

    # --- tree operations --------------------------------------------------

    def move_group(
        self, user_id: str, group_id: str, new_parent_id: Optional[str]
    ) -> Group:
        """Re-parent a group. ``None`` makes it a root.

        Raises:
            NotFoundError: If either group is missing.
            CircularReferenceError: If the new parent is the group itself or
                one of its descendants. The stored parent is left unchanged.
        """
        group = self.get_group(user_id, group_id)
        if new_parent_id is not None:
            groups = self._group_map(user_id)
            if new_parent_id not in groups:
                raise NotFoundError("group", new_parent_id)
            for ancestor in self._walk_up(groups, new_parent_id):
                if ancestor.id == group_id:
                    raise CircularReferenceError(group_id, new_parent_id)

        old_parent = group.parent_id
        group.parent_id = new_parent_id
        group = self.repository.update(group)
        logger.info(f"Moved group {group_id}: parent {old_parent} -> {new_parent_id}")
        return group

    def can_delete(self, user_id: str, group_id: str) -> bool:
        """True iff the group exists and owns no notes and no subgroups."""
        if self.repository.get(user_id, group_id) is None:
            return False
        return (
            self.repository.count_notes(user_id, [group_id]) == 0
            and self.repository.count_children(group_id) == 0
        )

    def delete_group(self, user_id: str, group_id: str) -> None:
        """Delete an empty group.

        Tags scoped to the group are deleted with it.

        Raises:
            NotFoundError: If the group is missing.
            InvalidStateError: If it still owns notes or subgroups.
        """
        self.get_group(user_id, group_id)
        notes = self.repository.count_notes(user_id, [group_id])
        children = self.repository.count_children(group_id)
        if notes or children:
            raise InvalidStateError(
                f"Group '{group_id}' still contains {notes} notes and {children} subgroups",
                code=ErrorCode.GROUP_NOT_EMPTY,
                details={"group_id": group_id, "notes": notes, "sub_groups": children},
            )
        self.repository.delete(user_id, group_id)

    def hierarchy_of(self, user_id: str, group_id: str) -> List[Group]:
        """Path from the root down to the group, root first."""
        groups = self._group_map(user_id)
        if group_id not in groups:
            raise NotFoundError("group", group_id)
        path = list(self._walk_up(groups, group_id))
        path.reverse()
        return path

    def full_name(self, user_id: str, group_id: str) -> str:
        """Ancestor names joined with the path separator, e.g. ``Work > Project A``."""
        return config.group_path_separator.join(
            g.name for g in self.hierarchy_of(user_id, group_id)
        )

    def display_color(self, user_id: str, group_id: str) -> str:
        """Own colour, else the nearest ancestor's, else the default colour."""
        return self._nearest_attribute(user_id, group_id, "color") or config.default_group_color

    def display_icon(self, user_id: str, group_id: str) -> str:
        return self._nearest_attribute(user_id, group_id, "icon") or config.default_group_icon

    def descendant_ids(
        self, user_id: str, group_id: str, include_self: bool = True
    ) -> List[str]:
        """IDs of every group below ``group_id``, breadth first."""
        groups = self._group_map(user_id)
        if group_id not in groups:
            raise NotFoundError("group", group_id)

        children: Dict[str, List[str]] = {}
        for g in groups.values():
            if g.parent_id is not None:
                children.setdefault(g.parent_id, []).append(g.id)

        result = [group_id] if include_self else []
        seen: Set[str] = {group_id}
        queue = deque([group_id])
        while queue:
            current = queue.popleft()
            for child_id in children.get(current, []):
                if child_id in seen:
                    raise HierarchyCorruptionError(child_id, len(seen))
                seen.add(child_id)
                result.append(child_id)
                queue.append(child_id)
        return result

    # --- counts -----------------------------------------------------------

    def count_notes(
        self, user_id: str, group_id: str, include_sub_groups: bool = False
    ) -> int:
        if include_sub_groups:
            ids = self.descendant_ids(user_id, group_id)
        else:
            self.get_group(user_id, group_id)
            ids = [group_id]
        return self.repository.count_notes(user_id, ids)

    def groups_with_note_counts(self, user_id: str) -> List[Tuple[Group, int]]:
        """Every group of the user paired with its direct note count."""
        counts = self.repository.note_counts(user_id)
        return [(g, counts.get(g.id, 0)) for g in self.repository.get_all(user_id)]

    # --- helpers ----------------------------------------------------------

    def _group_map(self, user_id: str) -> Dict[str, Group]:
        return {g.id: g for g in self.repository.get_all(user_id)}

    def _walk_up(self, groups: Dict[str, Group], group_id: str):
        """Yield the group and then each ancestor up to the root."""
        seen: Set[str] = set()
        current = groups.get(group_id)
        steps = 0
        while current is not None:
            if current.id in seen or steps >= config.max_group_depth:
                raise HierarchyCorruptionError(group_id, steps)
            seen.add(current.id)
            yield current
            steps += 1
            current = groups.get(current.parent_id) if current.parent_id else None

    def _nearest_attribute(self, user_id: str, group_id: str, attr: str) -> Optional[str]:
        groups = self._group_map(user_id)
        if group_id not in groups:
            raise NotFoundError("group", group_id)
        for g in self._walk_up(groups, group_id):
            value = getattr(g, attr)
            if value:
                return value
        return None
