"""Repository for group storage and retrieval."""
import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError

from notegraph.exceptions import DuplicateNameError, NotFoundError
from notegraph.models.db_models import DBGroup, DBNote, DBTag
from notegraph.models.schema import Group, ensure_timezone_aware, utc_now

logger = logging.getLogger(__name__)


class GroupRepository:
    """Repository for a user's groups.

    Groups reference their parent by id only; tree walks happen in the
    service layer on the flat list returned by ``get_all``.
    """

    def __init__(self, session_factory):
        """Initialize the repository.

        Args:
            session_factory: SQLAlchemy session factory for database operations.
        """
        self.session_factory = session_factory

    def create(self, group: Group) -> Group:
        """Create a new group.

        Raises:
            DuplicateNameError: If the user already has a group with that name.
        """
        with self.session_factory() as session:
            existing = session.scalar(
                select(DBGroup.id).where(
                    (DBGroup.user_id == group.user_id) & (DBGroup.name == group.name)
                )
            )
            if existing:
                raise DuplicateNameError("group", group.name)

            session.add(DBGroup(
                id=group.id,
                user_id=group.user_id,
                name=group.name,
                description=group.description,
                color=group.color,
                icon=group.icon,
                parent_id=group.parent_id,
                sort_order=group.sort_order,
                created_at=group.created_at,
                updated_at=group.updated_at,
            ))
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise DuplicateNameError("group", group.name) from e

        logger.info(f"Created group: {group.name} ({group.id})")
        return group

    def get(self, user_id: str, group_id: str) -> Optional[Group]:
        """Get a group by ID, or None if missing or owned by someone else."""
        with self.session_factory() as session:
            db_group = session.get(DBGroup, group_id)
            if not db_group or db_group.user_id != user_id:
                return None
            return self._db_to_model(db_group)

    def get_all(self, user_id: str) -> List[Group]:
        """Get all groups of a user, ordered by sort order then name."""
        with self.session_factory() as session:
            result = session.scalars(
                select(DBGroup)
                .where(DBGroup.user_id == user_id)
                .order_by(DBGroup.sort_order, DBGroup.name)
            )
            return [self._db_to_model(db) for db in result.all()]

    def get_children(self, user_id: str, parent_id: Optional[str]) -> List[Group]:
        """Get direct children of a group (roots when parent_id is None)."""
        with self.session_factory() as session:
            query = select(DBGroup).where(DBGroup.user_id == user_id)
            if parent_id is None:
                query = query.where(DBGroup.parent_id.is_(None))
            else:
                query = query.where(DBGroup.parent_id == parent_id)
            query = query.order_by(DBGroup.sort_order, DBGroup.name)
            return [self._db_to_model(db) for db in session.scalars(query).all()]

    def find_by_name(
        self, user_id: str, name: str, ignore_case: bool = False, root_only: bool = False
    ) -> Optional[Group]:
        """Find a group by name."""
        with self.session_factory() as session:
            if ignore_case:
                query = select(DBGroup).where(func.lower(DBGroup.name) == name.lower())
            else:
                query = select(DBGroup).where(DBGroup.name == name)
            query = query.where(DBGroup.user_id == user_id)
            if root_only:
                query = query.where(DBGroup.parent_id.is_(None))
            db_group = session.scalars(query.order_by(DBGroup.created_at)).first()
            return self._db_to_model(db_group) if db_group else None

    def update(self, group: Group) -> Group:
        """Persist all mutable fields of an existing group.

        Raises:
            NotFoundError: If the group does not exist for its user.
            DuplicateNameError: If the new name clashes with another group.
        """
        with self.session_factory() as session:
            db_group = session.get(DBGroup, group.id)
            if not db_group or db_group.user_id != group.user_id:
                raise NotFoundError("group", group.id)

            clash = session.scalar(
                select(DBGroup.id).where(
                    (DBGroup.user_id == group.user_id)
                    & (DBGroup.name == group.name)
                    & (DBGroup.id != group.id)
                )
            )
            if clash:
                raise DuplicateNameError("group", group.name)

            group.updated_at = utc_now()
            db_group.name = group.name
            db_group.description = group.description
            db_group.color = group.color
            db_group.icon = group.icon
            db_group.parent_id = group.parent_id
            db_group.sort_order = group.sort_order
            db_group.updated_at = group.updated_at
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise DuplicateNameError("group", group.name) from e

        logger.info(f"Updated group: {group.id}")
        return group

    def delete(self, user_id: str, group_id: str) -> None:
        """Delete a group row together with the tags scoped to it.

        Emptiness (no notes, no subgroups) is checked by the caller.
        """
        with self.session_factory() as session:
            db_group = session.get(DBGroup, group_id)
            if not db_group or db_group.user_id != user_id:
                raise NotFoundError("group", group_id)
            session.execute(delete(DBTag).where(DBTag.group_id == group_id))
            session.delete(db_group)
            session.commit()
        logger.info(f"Deleted group: {group_id}")

    def count_children(self, group_id: str) -> int:
        """Count direct subgroups of a group."""
        with self.session_factory() as session:
            return session.scalar(
                select(func.count(DBGroup.id)).where(DBGroup.parent_id == group_id)
            ) or 0

    def count_notes(self, user_id: str, group_ids: Iterable[str]) -> int:
        """Count the user's notes that belong to any of the given groups."""
        ids = list(group_ids)
        if not ids:
            return 0
        with self.session_factory() as session:
            return session.scalar(
                select(func.count(DBNote.id)).where(
                    (DBNote.user_id == user_id) & (DBNote.group_id.in_(ids))
                )
            ) or 0

    def note_counts(self, user_id: str) -> Dict[str, int]:
        """Map every group id of the user to its direct note count."""
        with self.session_factory() as session:
            rows = session.execute(
                select(DBGroup.id, func.count(DBNote.id))
                .select_from(DBGroup)
                .outerjoin(DBNote, DBNote.group_id == DBGroup.id)
                .where(DBGroup.user_id == user_id)
                .group_by(DBGroup.id)
            ).all()
            return {group_id: count for group_id, count in rows}

    def _db_to_model(self, db_group: DBGroup) -> Group:
        """Convert DBGroup to Group model."""
        return Group(
            id=db_group.id,
            user_id=db_group.user_id,
            name=db_group.name,
            description=db_group.description,
            color=db_group.color,
            icon=db_group.icon,
            parent_id=db_group.parent_id,
            sort_order=db_group.sort_order or 0,
            created_at=ensure_timezone_aware(db_group.created_at),
            updated_at=ensure_timezone_aware(db_group.updated_at),
        )
