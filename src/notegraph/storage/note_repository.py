"""Repository for notes, their tag associations and attachment records."""
import logging
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.orm import selectinload

from notegraph.exceptions import NotFoundError
from notegraph.models.db_models import (DBNote, DBNoteAttachment, DBTag,
                                        note_tags)
from notegraph.models.schema import (Note, NoteAttachment, Tag,
                                     ensure_timezone_aware, utc_now)

logger = logging.getLogger(__name__)


class NoteRepository:
    """Repository for note rows.

    Deleting a note relies on the ``ON DELETE CASCADE`` foreign keys for
    its links, tag associations and attachments.
    """

    def __init__(self, session_factory):
        """Initialize the repository.

        Args:
            session_factory: SQLAlchemy session factory for database operations.
        """
        self.session_factory = session_factory

    def create(self, note: Note) -> Note:
        """Create a new note, associating the tags it already carries."""
        with self.session_factory() as session:
            db_note = DBNote(
                id=note.id,
                user_id=note.user_id,
                title=note.title,
                content=note.content,
                group_id=note.group_id,
                created_at=note.created_at,
                updated_at=note.updated_at,
            )
            if note.tags:
                db_note.tags = list(session.scalars(
                    select(DBTag).where(DBTag.id.in_([t.id for t in note.tags]))
                ).all())
            session.add(db_note)
            session.commit()
        logger.info(f"Created note: {note.title} ({note.id})")
        return note

    def get(self, user_id: str, note_id: str) -> Optional[Note]:
        """Get a note with its tags, or None if missing or not the user's."""
        with self.session_factory() as session:
            db_note = session.scalar(
                select(DBNote)
                .options(selectinload(DBNote.tags))
                .where((DBNote.id == note_id) & (DBNote.user_id == user_id))
            )
            return self._db_to_model(db_note) if db_note else None

    def exists(self, user_id: str, note_id: str) -> bool:
        with self.session_factory() as session:
            return session.scalar(
                select(DBNote.id).where(
                    (DBNote.id == note_id) & (DBNote.user_id == user_id)
                )
            ) is not None

    def get_all(self, user_id: str) -> List[Note]:
        """Get all notes of a user, newest first."""
        with self.session_factory() as session:
            db_notes = session.scalars(
                select(DBNote)
                .options(selectinload(DBNote.tags))
                .where(DBNote.user_id == user_id)
                .order_by(DBNote.created_at.desc(), DBNote.id)
            ).all()
            return [self._db_to_model(n) for n in db_notes]

    def get_by_ids(self, user_id: str, note_ids: Iterable[str]) -> List[Note]:
        ids = list(set(note_ids))
        if not ids:
            return []
        with self.session_factory() as session:
            db_notes = session.scalars(
                select(DBNote)
                .options(selectinload(DBNote.tags))
                .where((DBNote.user_id == user_id) & (DBNote.id.in_(ids)))
                .order_by(DBNote.created_at.desc(), DBNote.id)
            ).all()
            return [self._db_to_model(n) for n in db_notes]

    def all_ids(self, user_id: str) -> List[str]:
        with self.session_factory() as session:
            return list(session.scalars(
                select(DBNote.id).where(DBNote.user_id == user_id).order_by(DBNote.id)
            ).all())

    def ids_in_groups(self, user_id: str, group_ids: Iterable[str]) -> List[str]:
        """IDs of the user's notes owned by any of the given groups."""
        ids = list(group_ids)
        if not ids:
            return []
        with self.session_factory() as session:
            return list(session.scalars(
                select(DBNote.id)
                .where((DBNote.user_id == user_id) & (DBNote.group_id.in_(ids)))
                .order_by(DBNote.id)
            ).all())

    def titles(self, user_id: str, note_ids: Optional[Iterable[str]] = None) -> Dict[str, str]:
        """Map note id to title, for all the user's notes or the given ones."""
        with self.session_factory() as session:
            query = select(DBNote.id, DBNote.title).where(DBNote.user_id == user_id)
            if note_ids is not None:
                query = query.where(DBNote.id.in_(list(set(note_ids))))
            return {note_id: title for note_id, title in session.execute(query).all()}

    def count(self, user_id: str) -> int:
        with self.session_factory() as session:
            return session.scalar(
                select(func.count(DBNote.id)).where(DBNote.user_id == user_id)
            ) or 0

    def update(self, note: Note) -> Note:
        """Persist title, content and group of an existing note."""
        with self.session_factory() as session:
            db_note = session.get(DBNote, note.id)
            if not db_note or db_note.user_id != note.user_id:
                raise NotFoundError("note", note.id)
            note.updated_at = utc_now()
            db_note.title = note.title
            db_note.content = note.content
            db_note.group_id = note.group_id
            db_note.updated_at = note.updated_at
            session.commit()
        logger.info(f"Updated note: {note.id}")
        return note

    def delete(self, user_id: str, note_id: str) -> None:
        with self.session_factory() as session:
            db_note = session.get(DBNote, note_id)
            if not db_note or db_note.user_id != user_id:
                raise NotFoundError("note", note_id)
            session.delete(db_note)
            session.commit()
        logger.info(f"Deleted note: {note_id}")

    # --- tag associations -------------------------------------------------

    def add_tag(self, note_id: str, tag_id: str) -> bool:
        """Associate a tag with a note. Returns False if already associated."""
        with self.session_factory() as session:
            db_note = session.get(DBNote, note_id)
            db_tag = session.get(DBTag, tag_id)
            if not db_note:
                raise NotFoundError("note", note_id)
            if not db_tag:
                raise NotFoundError("tag", tag_id)
            if db_tag in db_note.tags:
                return False
            db_note.tags.append(db_tag)
            session.commit()
        return True

    def remove_tag(self, note_id: str, tag_id: str) -> bool:
        """Remove a tag association. Returns False if it did not exist."""
        with self.session_factory() as session:
            result = session.execute(
                delete(note_tags).where(
                    (note_tags.c.note_id == note_id) & (note_tags.c.tag_id == tag_id)
                )
            )
            session.commit()
            return bool(result.rowcount)

    def find_ids_by_tag_names(
        self, user_id: str, tag_names: Sequence[str], match_all: bool = False
    ) -> List[str]:
        """Find note IDs that have any or all of the given tag names.

        Names are compared case-insensitively, so a global tag and a
        group tag sharing a name count as the same name.
        """
        names = sorted({n.strip().lower() for n in tag_names if n and n.strip()})
        if not names:
            return []
        with self.session_factory() as session:
            query = (
                select(note_tags.c.note_id)
                .select_from(note_tags)
                .join(DBTag, note_tags.c.tag_id == DBTag.id)
                .join(DBNote, note_tags.c.note_id == DBNote.id)
                .where(DBNote.user_id == user_id)
                .where(func.lower(DBTag.name).in_(names))
                .group_by(note_tags.c.note_id)
            )
            if match_all:
                query = query.having(
                    func.count(func.distinct(func.lower(DBTag.name))) == len(names)
                )
            return sorted(row[0] for row in session.execute(query).all())

    # --- attachments ------------------------------------------------------

    def add_attachment(self, attachment: NoteAttachment) -> NoteAttachment:
        with self.session_factory() as session:
            session.add(DBNoteAttachment(
                id=attachment.id,
                note_id=attachment.note_id,
                original_filename=attachment.original_filename,
                filename=attachment.filename,
                file_path=attachment.file_path,
                file_size=attachment.file_size,
                mime_type=attachment.mime_type,
                uploaded_at=attachment.uploaded_at,
            ))
            session.commit()
        logger.info(
            f"Recorded attachment {attachment.original_filename} for note {attachment.note_id}"
        )
        return attachment

    def get_attachment(self, attachment_id: str) -> Optional[NoteAttachment]:
        with self.session_factory() as session:
            db_att = session.get(DBNoteAttachment, attachment_id)
            return self._attachment_to_model(db_att) if db_att else None

    def get_attachments(self, note_id: str) -> List[NoteAttachment]:
        """Attachment records of a note, newest first."""
        with self.session_factory() as session:
            rows = session.scalars(
                select(DBNoteAttachment)
                .where(DBNoteAttachment.note_id == note_id)
                .order_by(DBNoteAttachment.uploaded_at.desc())
            ).all()
            return [self._attachment_to_model(r) for r in rows]

    def delete_attachment(self, attachment_id: str) -> bool:
        with self.session_factory() as session:
            db_att = session.get(DBNoteAttachment, attachment_id)
            if not db_att:
                return False
            session.delete(db_att)
            session.commit()
        return True

    def _attachment_to_model(self, db_att: DBNoteAttachment) -> NoteAttachment:
        return NoteAttachment(
            id=db_att.id,
            note_id=db_att.note_id,
            original_filename=db_att.original_filename,
            filename=db_att.filename,
            file_path=db_att.file_path,
            file_size=db_att.file_size,
            mime_type=db_att.mime_type,
            uploaded_at=ensure_timezone_aware(db_att.uploaded_at),
        )

    def _db_to_model(self, db_note: DBNote) -> Note:
        """Convert DBNote (with loaded tags) to Note model."""
        return Note(
            id=db_note.id,
            user_id=db_note.user_id,
            title=db_note.title,
            content=db_note.content or "",
            group_id=db_note.group_id,
            tags=sorted(
                (
                    Tag(
                        id=t.id,
                        user_id=t.user_id,
                        name=t.name,
                        color=t.color,
                        is_key=bool(t.is_key),
                        group_id=t.group_id,
                        created_at=ensure_timezone_aware(t.created_at),
                        updated_at=ensure_timezone_aware(t.updated_at),
                    )
                    for t in db_note.tags
                ),
                key=lambda t: t.name.lower(),
            ),
            created_at=ensure_timezone_aware(db_note.created_at),
            updated_at=ensure_timezone_aware(db_note.updated_at),
        )
