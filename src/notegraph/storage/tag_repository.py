"""Repository for tag storage and retrieval."""
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import delete, func, or_, select

from notegraph.exceptions import NotFoundError
from notegraph.models.db_models import DBNote, DBTag, note_tags
from notegraph.models.schema import Tag, ensure_timezone_aware, utc_now

logger = logging.getLogger(__name__)


class TagRepository:
    """Repository for a user's tags.

    A tag with ``group_id`` NULL is global; otherwise it is scoped to that
    group. Name uniqueness per scope is case-insensitive and is checked by
    the service layer, since a NULL scope cannot be covered by a plain
    unique constraint.
    """

    def __init__(self, session_factory):
        """Initialize the tag repository.

        Args:
            session_factory: SQLAlchemy session factory for database operations.
        """
        self.session_factory = session_factory

    def create(self, tag: Tag) -> Tag:
        with self.session_factory() as session:
            session.add(DBTag(
                id=tag.id,
                user_id=tag.user_id,
                name=tag.name,
                color=tag.color,
                is_key=tag.is_key,
                group_id=tag.group_id,
                created_at=tag.created_at,
                updated_at=tag.updated_at,
            ))
            session.commit()
        logger.info(f"Created tag: {tag.name} (group={tag.group_id or 'global'})")
        return tag

    def get(self, user_id: str, tag_id: str) -> Optional[Tag]:
        """Get a tag by ID, or None if missing or not the user's."""
        with self.session_factory() as session:
            db_tag = session.get(DBTag, tag_id)
            if not db_tag or db_tag.user_id != user_id:
                return None
            return self._db_to_model(db_tag)

    def get_all(self, user_id: str) -> List[Tag]:
        """Get all tags of a user, sorted by name."""
        with self.session_factory() as session:
            db_tags = session.scalars(
                select(DBTag).where(DBTag.user_id == user_id).order_by(DBTag.name)
            ).all()
            return [self._db_to_model(t) for t in db_tags]

    def get_in_scopes(
        self, user_id: str, group_ids: Iterable[str], include_global: bool = True
    ) -> List[Tag]:
        """Get tags scoped to any of ``group_ids``, plus global ones if asked."""
        ids = list(group_ids)
        conditions = []
        if ids:
            conditions.append(DBTag.group_id.in_(ids))
        if include_global:
            conditions.append(DBTag.group_id.is_(None))
        if not conditions:
            return []
        with self.session_factory() as session:
            db_tags = session.scalars(
                select(DBTag)
                .where(DBTag.user_id == user_id)
                .where(or_(*conditions))
                .order_by(DBTag.name)
            ).all()
            return [self._db_to_model(t) for t in db_tags]

    def find_in_scope(
        self, user_id: str, name: str, group_id: Optional[str]
    ) -> Optional[Tag]:
        """Find a tag by name (case-insensitive) in exactly one scope.

        Args:
            user_id: Owner of the tag.
            name: Tag name.
            group_id: Group scope, or None for the global scope.
        """
        with self.session_factory() as session:
            query = select(DBTag).where(
                (DBTag.user_id == user_id)
                & (func.lower(DBTag.name) == name.strip().lower())
            )
            if group_id is None:
                query = query.where(DBTag.group_id.is_(None))
            else:
                query = query.where(DBTag.group_id == group_id)
            db_tag = session.scalars(query.order_by(DBTag.created_at)).first()
            return self._db_to_model(db_tag) if db_tag else None

    def update(self, tag: Tag) -> Tag:
        """Persist name, colour, key flag and scope of an existing tag."""
        with self.session_factory() as session:
            db_tag = session.get(DBTag, tag.id)
            if not db_tag or db_tag.user_id != tag.user_id:
                raise NotFoundError("tag", tag.id)
            tag.updated_at = utc_now()
            db_tag.name = tag.name
            db_tag.color = tag.color
            db_tag.is_key = tag.is_key
            db_tag.group_id = tag.group_id
            db_tag.updated_at = tag.updated_at
            session.commit()
        logger.info(f"Updated tag: {tag.id}")
        return tag

    def delete(self, user_id: str, tag_id: str) -> None:
        """Delete a tag. Its note associations go with it."""
        with self.session_factory() as session:
            db_tag = session.get(DBTag, tag_id)
            if not db_tag or db_tag.user_id != user_id:
                raise NotFoundError("tag", tag_id)
            session.delete(db_tag)
            session.commit()
        logger.info(f"Deleted tag: {tag_id}")

    def delete_many(self, tag_ids: Iterable[str]) -> int:
        ids = list(tag_ids)
        if not ids:
            return 0
        with self.session_factory() as session:
            result = session.execute(delete(DBTag).where(DBTag.id.in_(ids)))
            session.commit()
            return result.rowcount or 0

    def usage_counts(self, user_id: str) -> Dict[str, int]:
        """Map every tag id of the user to the number of notes using it."""
        with self.session_factory() as session:
            rows = session.execute(
                select(DBTag.id, func.count(note_tags.c.note_id))
                .select_from(DBTag)
                .outerjoin(note_tags, DBTag.id == note_tags.c.tag_id)
                .where(DBTag.user_id == user_id)
                .group_by(DBTag.id)
            ).all()
            return {tag_id: count for tag_id, count in rows}

    def get_for_note(self, note_id: str) -> List[Tag]:
        """Get all tags attached to a note."""
        with self.session_factory() as session:
            db_tags = session.scalars(
                select(DBTag)
                .join(note_tags, DBTag.id == note_tags.c.tag_id)
                .where(note_tags.c.note_id == note_id)
                .order_by(DBTag.name)
            ).all()
            return [self._db_to_model(t) for t in db_tags]

    def co_occurring(self, user_id: str, tag_id: str) -> List[Tuple[Tag, int]]:
        """Tags sharing at least one note with ``tag_id``, most shared first."""
        with self.session_factory() as session:
            tagged_notes = (
                select(note_tags.c.note_id)
                .join(DBNote, DBNote.id == note_tags.c.note_id)
                .where((note_tags.c.tag_id == tag_id) & (DBNote.user_id == user_id))
            )
            shared = func.count(note_tags.c.note_id).label("shared")
            rows = session.execute(
                select(DBTag, shared)
                .join(note_tags, DBTag.id == note_tags.c.tag_id)
                .where(note_tags.c.note_id.in_(tagged_notes))
                .where(DBTag.id != tag_id)
                .group_by(DBTag.id)
                .order_by(shared.desc(), DBTag.name)
            ).all()
            return [(self._db_to_model(t), count) for t, count in rows]

    def _db_to_model(self, db_tag: DBTag) -> Tag:
        """Convert DBTag to Tag model."""
        return Tag(
            id=db_tag.id,
            user_id=db_tag.user_id,
            name=db_tag.name,
            color=db_tag.color,
            is_key=bool(db_tag.is_key),
            group_id=db_tag.group_id,
            created_at=ensure_timezone_aware(db_tag.created_at),
            updated_at=ensure_timezone_aware(db_tag.updated_at),
        )
