"""Repository for link storage and retrieval."""
import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError

from notegraph.exceptions import DuplicateLinkError, NotFoundError
from notegraph.models.db_models import DBNote, DBNoteLink
from notegraph.models.schema import (NoteLink, NoteLinkType,
                                     ensure_timezone_aware, utc_now)

logger = logging.getLogger(__name__)


class LinkRepository:
    """Repository for managing links between notes.

    Links do not carry a user id of their own; they belong to the owner of
    their source note, so every user-scoped query joins on ``notes``.
    """

    def __init__(self, session_factory):
        """Initialize the link repository.

        Args:
            session_factory: SQLAlchemy session factory for database operations.
        """
        self.session_factory = session_factory

    def create(self, link: NoteLink) -> NoteLink:
        """Create a new link in the database.

        Args:
            link: The NoteLink object to create.

        Returns:
            The created NoteLink object.

        Raises:
            DuplicateLinkError: If a link with the same source, target, and
                type already exists, including when a concurrent insert wins.
        """
        return self.create_many([link])[0]

    def create_many(self, links: List[NoteLink]) -> List[NoteLink]:
        """Insert several links in a single transaction.

        Either every link is stored or none is.
        """
        with self.session_factory() as session:
            for link in links:
                existing = session.scalar(
                    select(DBNoteLink.id).where(
                        (DBNoteLink.source_id == link.source_id) &
                        (DBNoteLink.target_id == link.target_id) &
                        (DBNoteLink.link_type == link.link_type.value)
                    )
                )
                if existing:
                    raise DuplicateLinkError(
                        link.source_id, link.target_id, link.link_type.value
                    )
                session.add(self._model_to_db(link))

            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                first = links[0]
                raise DuplicateLinkError(
                    first.source_id, first.target_id, first.link_type.value
                ) from e

        for link in links:
            logger.info(
                f"Created link {link.source_id} -> {link.target_id} "
                f"({link.link_type.value}, weight={link.weight})"
            )
        return links

    def get_by_id(self, link_id: str) -> Optional[NoteLink]:
        """Get a link by its ID."""
        with self.session_factory() as session:
            db_link = session.get(DBNoteLink, link_id)
            return self._db_to_model(db_link) if db_link else None

    def get(
        self, source_id: str, target_id: str, link_type: Optional[NoteLinkType] = None
    ) -> Optional[NoteLink]:
        """Get a link by source, target, and optionally type.

        Args:
            source_id: The source note ID.
            target_id: The target note ID.
            link_type: Optional link type to filter by.

        Returns:
            The NoteLink object if found, None otherwise.
        """
        with self.session_factory() as session:
            query = select(DBNoteLink).where(
                (DBNoteLink.source_id == source_id) &
                (DBNoteLink.target_id == target_id)
            )
            if link_type:
                query = query.where(DBNoteLink.link_type == link_type.value)

            db_link = session.scalars(query.order_by(DBNoteLink.created_at)).first()
            return self._db_to_model(db_link) if db_link else None

    def update(self, link: NoteLink) -> NoteLink:
        """Persist weight, bidirectional flag and metadata of a link."""
        with self.session_factory() as session:
            db_link = session.get(DBNoteLink, link.id)
            if not db_link:
                raise NotFoundError("link", link.id)
            link.updated_at = utc_now()
            db_link.weight = link.weight
            db_link.is_bidirectional = link.is_bidirectional
            db_link.metadata_json = dict(link.metadata) if link.metadata else None
            db_link.updated_at = link.updated_at
            session.commit()
        logger.info(f"Updated link {link.id}")
        return link

    def get_outgoing(self, note_id: str) -> List[NoteLink]:
        """Get all outgoing links from a note."""
        with self.session_factory() as session:
            db_links = session.scalars(
                select(DBNoteLink)
                .where(DBNoteLink.source_id == note_id)
                .order_by(DBNoteLink.created_at)
            ).all()
            return [self._db_to_model(link) for link in db_links]

    def get_incoming(self, note_id: str) -> List[NoteLink]:
        """Get all incoming links to a note."""
        with self.session_factory() as session:
            db_links = session.scalars(
                select(DBNoteLink)
                .where(DBNoteLink.target_id == note_id)
                .order_by(DBNoteLink.created_at)
            ).all()
            return [self._db_to_model(link) for link in db_links]

    def get_all_for_note(
        self, note_id: str, link_type: Optional[NoteLinkType] = None
    ) -> List[NoteLink]:
        """Get all links (incoming and outgoing) touching a note."""
        with self.session_factory() as session:
            query = select(DBNoteLink).where(
                or_(DBNoteLink.source_id == note_id, DBNoteLink.target_id == note_id)
            )
            if link_type:
                query = query.where(DBNoteLink.link_type == link_type.value)
            db_links = session.scalars(query.order_by(DBNoteLink.created_at)).all()
            return [self._db_to_model(link) for link in db_links]

    def find(
        self,
        user_id: str,
        link_type: Optional[NoteLinkType] = None,
        min_weight: Optional[int] = None,
        max_weight: Optional[int] = None,
    ) -> List[NoteLink]:
        """Find a user's links, optionally filtered by type and weight range.

        The weight bounds are inclusive.
        """
        with self.session_factory() as session:
            query = (
                select(DBNoteLink)
                .join(DBNote, DBNote.id == DBNoteLink.source_id)
                .where(DBNote.user_id == user_id)
            )
            if link_type:
                query = query.where(DBNoteLink.link_type == link_type.value)
            if min_weight is not None:
                query = query.where(DBNoteLink.weight >= min_weight)
            if max_weight is not None:
                query = query.where(DBNoteLink.weight <= max_weight)
            db_links = session.scalars(
                query.order_by(DBNoteLink.created_at, DBNoteLink.id)
            ).all()
            return [self._db_to_model(link) for link in db_links]

    def find_among(self, note_ids: Iterable[str]) -> List[NoteLink]:
        """Get links whose source and target both belong to ``note_ids``."""
        ids = list(set(note_ids))
        if not ids:
            return []
        with self.session_factory() as session:
            db_links = session.scalars(
                select(DBNoteLink)
                .where(DBNoteLink.source_id.in_(ids) & DBNoteLink.target_id.in_(ids))
                .order_by(DBNoteLink.created_at, DBNoteLink.id)
            ).all()
            return [self._db_to_model(link) for link in db_links]

    def delete(self, link_id: str) -> bool:
        """Delete a link by ID.

        Returns:
            True if the link was deleted, False if it did not exist.
        """
        with self.session_factory() as session:
            db_link = session.get(DBNoteLink, link_id)
            if not db_link:
                return False
            session.delete(db_link)
            session.commit()
        logger.info(f"Deleted link {link_id}")
        return True

    def delete_all_for_note(self, note_id: str) -> int:
        """Delete all links (incoming and outgoing) for a note.

        Returns:
            Number of links deleted.
        """
        with self.session_factory() as session:
            result = session.execute(
                delete(DBNoteLink).where(
                    or_(DBNoteLink.source_id == note_id, DBNoteLink.target_id == note_id)
                )
            )
            session.commit()
            count = result.rowcount or 0
        logger.info(f"Deleted {count} links of note {note_id}")
        return count

    def count_for_note(self, note_id: str) -> int:
        """Count total connections (incoming + outgoing) for a note."""
        with self.session_factory() as session:
            return session.scalar(
                select(func.count(DBNoteLink.id)).where(
                    or_(DBNoteLink.source_id == note_id, DBNoteLink.target_id == note_id)
                )
            ) or 0

    def type_counts(self, user_id: str) -> Dict[str, int]:
        """Count a user's links grouped by link type."""
        with self.session_factory() as session:
            rows = session.execute(
                select(DBNoteLink.link_type, func.count(DBNoteLink.id))
                .join(DBNote, DBNote.id == DBNoteLink.source_id)
                .where(DBNote.user_id == user_id)
                .group_by(DBNoteLink.link_type)
            ).all()
            return {link_type: count for link_type, count in rows}

    def _model_to_db(self, link: NoteLink) -> DBNoteLink:
        return DBNoteLink(
            id=link.id,
            source_id=link.source_id,
            target_id=link.target_id,
            link_type=link.link_type.value,
            weight=link.weight,
            is_bidirectional=link.is_bidirectional,
            metadata_json=dict(link.metadata) if link.metadata else None,
            created_at=link.created_at,
            updated_at=link.updated_at,
        )

    def _db_to_model(self, db_link: DBNoteLink) -> NoteLink:
        """Convert DBNoteLink to NoteLink model."""
        return NoteLink(
            id=db_link.id,
            source_id=db_link.source_id,
            target_id=db_link.target_id,
            link_type=NoteLinkType(db_link.link_type),
            weight=db_link.weight,
            is_bidirectional=bool(db_link.is_bidirectional),
            metadata=dict(db_link.metadata_json or {}),
            created_at=ensure_timezone_aware(db_link.created_at),
            updated_at=ensure_timezone_aware(db_link.updated_at),
        )
