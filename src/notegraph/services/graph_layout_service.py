"""Saved node positions for graph views.

A layout belongs to one user and one group key: a group id, or ``"all"``
for the unfiltered graph. Positions map note ids to ``{"x": .., "y": ..}``.
"""
import logging
from numbers import Real
from typing import Any, Dict, Mapping, Optional

from notegraph.exceptions import ErrorCode, ValidationError, require_text
from notegraph.storage.layout_repository import GraphLayoutRepository, Positions

logger = logging.getLogger(__name__)

ALL_NOTES_KEY = "all"
MAX_GROUP_KEY_LENGTH = 64


def layout_key(group_id: Optional[str]) -> str:
    return group_id or ALL_NOTES_KEY


def _coordinate(note_id: str, point: Mapping[str, Any], axis: str) -> float:
    value = point.get(axis)
    if isinstance(value, bool) or not isinstance(value, Real):
        raise ValidationError(
            f"Position of note '{note_id}' needs a numeric '{axis}'",
            field=f"positions.{note_id}.{axis}",
            value=value,
            code=ErrorCode.INVALID_LAYOUT,
        )
    return float(value)


def normalize_positions(positions: Any) -> Positions:
    """Validate a positions mapping and reduce every point to float x/y."""
    if not isinstance(positions, Mapping):
        raise ValidationError(
            "Positions must be a mapping of note id to point",
            field="positions",
            value=positions,
            code=ErrorCode.INVALID_LAYOUT,
        )
    normalized = {}
    for note_id, point in positions.items():
        if not isinstance(note_id, str) or not isinstance(point, Mapping):
            raise ValidationError(
                f"Invalid position entry for '{note_id}'",
                field="positions",
                value=point,
                code=ErrorCode.INVALID_LAYOUT,
            )
        normalized[note_id] = {
            "x": _coordinate(note_id, point, "x"),
            "y": _coordinate(note_id, point, "y"),
        }
    return normalized


class GraphLayoutService:
    """Get, save and clear per-group graph layouts."""

    def __init__(self, repository: GraphLayoutRepository):
        self.repository = repository

    def positions_for(self, user_id: str, group_key: str) -> Positions:
        """Saved positions for the key, or an empty mapping."""
        return self.repository.get(user_id, self._check_key(group_key)) or {}

    def all_positions(self, user_id: str) -> Dict[str, Positions]:
        return self.repository.get_all(user_id)

    def has_positions(self, user_id: str) -> bool:
        return any(self.repository.get_all(user_id).values())

    def save_positions(self, user_id: str, group_key: str, positions: Mapping) -> Positions:
        """Replace the layout stored under the key.

        Raises:
            ValidationError: If the key is blank or too long, or a point lacks
                numeric coordinates.
        """
        group_key = self._check_key(group_key)
        normalized = normalize_positions(positions)
        self.repository.save(user_id, group_key, normalized)
        logger.info(f"Saved positions for user {user_id} group {group_key}: {len(normalized)} nodes")
        return normalized

    def clear_positions(self, user_id: str, group_key: str) -> bool:
        cleared = self.repository.delete(user_id, self._check_key(group_key))
        if cleared:
            logger.info(f"Cleared positions for user {user_id} group {group_key}")
        return cleared

    def clear_all_positions(self, user_id: str) -> int:
        count = self.repository.delete_all(user_id)
        logger.info(f"Cleared all positions for user {user_id} ({count} layouts)")
        return count

    def _check_key(self, group_key: str) -> str:
        group_key = require_text(group_key, "group_key", "Group key", ErrorCode.INVALID_LAYOUT)
        if len(group_key) > MAX_GROUP_KEY_LENGTH:
            raise ValidationError(
                f"Group key longer than {MAX_GROUP_KEY_LENGTH} characters",
                field="group_key",
                value=group_key,
                code=ErrorCode.INVALID_LAYOUT,
            )
        return group_key
