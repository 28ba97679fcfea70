"""Service layer for notes, tag assignment and attachment records."""
import logging
from typing import Iterable, List, Optional, Sequence, Union

from notegraph.exceptions import ErrorCode, NotFoundError, require_text
from notegraph.models.schema import Note, NoteAttachment, Tag, TagMatchMode
from notegraph.services.group_service import GroupService
from notegraph.services.tag_service import TagService
from notegraph.storage.note_repository import NoteRepository

logger = logging.getLogger(__name__)


class NoteService:
    """Note CRUD. Every note ends up in exactly one group."""

    def __init__(
        self,
        repository: NoteRepository,
        group_service: GroupService,
        tag_service: TagService,
    ):
        self.repository = repository
        self.group_service = group_service
        self.tag_service = tag_service

    def create_note(
        self,
        user_id: str,
        title: str,
        content: str = "",
        group_id: Optional[str] = None,
        tag_names: Iterable[str] = (),
    ) -> Note:
        """Create a note.

        Without ``group_id`` the note goes to the user's default group. Tag
        names are resolved in the note's group scope and created if missing.

        Raises:
            ValidationError: If the title is blank.
            NotFoundError: If ``group_id`` is given but unknown.
        """
        title = require_text(title, "title", "Title", ErrorCode.NOTE_TITLE_REQUIRED)
        if group_id is None:
            group_id = self.group_service.get_default_group(user_id).id
        else:
            self.group_service.get_group(user_id, group_id)

        tags = self._resolve_tags(user_id, tag_names, group_id)
        note = Note(user_id=user_id, title=title, content=content, group_id=group_id, tags=tags)
        return self.repository.create(note)

    def get_note(self, user_id: str, note_id: str) -> Note:
        note = self.repository.get(user_id, note_id)
        if note is None:
            raise NotFoundError("note", note_id)
        return note

    def get_all_notes(self, user_id: str) -> List[Note]:
        return self.repository.get_all(user_id)

    def update_note(
        self,
        user_id: str,
        note_id: str,
        title: Optional[str] = None,
        content: Optional[str] = None,
    ) -> Note:
        note = self.get_note(user_id, note_id)
        if title is not None:
            note.title = require_text(title, "title", "Title", ErrorCode.NOTE_TITLE_REQUIRED)
        if content is not None:
            note.content = content
        return self.repository.update(note)

    def delete_note(self, user_id: str, note_id: str) -> None:
        """Delete a note with its links, tag associations and attachments."""
        self.repository.delete(user_id, note_id)

    def assign_to_group(self, user_id: str, note_id: str, group_id: Optional[str]) -> Note:
        """Move a note to another group; None means the default group."""
        note = self.get_note(user_id, note_id)
        if group_id is None:
            group_id = self.group_service.get_default_group(user_id).id
        else:
            self.group_service.get_group(user_id, group_id)
        note.group_id = group_id
        return self.repository.update(note)

    def notes_in_group(
        self, user_id: str, group_id: str, include_sub_groups: bool = False
    ) -> List[Note]:
        if include_sub_groups:
            group_ids = self.group_service.descendant_ids(user_id, group_id)
        else:
            group_ids = [self.group_service.get_group(user_id, group_id).id]
        return self.repository.get_by_ids(
            user_id, self.repository.ids_in_groups(user_id, group_ids)
        )

    def add_tag_to_note(self, user_id: str, note_id: str, tag_name: str) -> Tag:
        """Attach a tag by name, resolving it in the note's group scope."""
        note = self.get_note(user_id, note_id)
        tag = self.tag_service.find_or_create(user_id, tag_name, group_id=note.group_id)
        self.repository.add_tag(note.id, tag.id)
        return tag

    def remove_tag_from_note(self, user_id: str, note_id: str, tag_name: str) -> bool:
        """Detach every tag of that name from the note."""
        note = self.get_note(user_id, note_id)
        removed = False
        for tag in note.tags:
            if tag.name.lower() == tag_name.strip().lower():
                removed = self.repository.remove_tag(note.id, tag.id) or removed
        return removed

    def notes_by_tags(
        self,
        user_id: str,
        tag_names: Sequence[str],
        mode: Union[TagMatchMode, str] = TagMatchMode.ANY,
    ) -> List[Note]:
        ids = self.repository.find_ids_by_tag_names(
            user_id, tag_names, match_all=TagMatchMode.parse(mode) is TagMatchMode.ALL
        )
        return self.repository.get_by_ids(user_id, ids)

    # --- attachments ------------------------------------------------------

    def add_attachment(
        self,
        user_id: str,
        note_id: str,
        original_filename: str,
        filename: str,
        file_path: str,
        file_size: int,
        mime_type: str,
    ) -> NoteAttachment:
        """Record an uploaded file. Storing the bytes is the caller's job."""
        self.get_note(user_id, note_id)
        return self.repository.add_attachment(NoteAttachment(
            note_id=note_id,
            original_filename=original_filename,
            filename=filename,
            file_path=file_path,
            file_size=file_size,
            mime_type=mime_type,
        ))

    def attachments_for_note(self, user_id: str, note_id: str) -> List[NoteAttachment]:
        self.get_note(user_id, note_id)
        return self.repository.get_attachments(note_id)

    def delete_attachment(self, user_id: str, attachment_id: str) -> NoteAttachment:
        """Delete an attachment record and return it so the caller can remove the file."""
        attachment = self.repository.get_attachment(attachment_id)
        if attachment is None or not self.repository.exists(user_id, attachment.note_id):
            raise NotFoundError("attachment", attachment_id)
        self.repository.delete_attachment(attachment_id)
        return attachment

    def _resolve_tags(
        self, user_id: str, tag_names: Iterable[str], group_id: Optional[str]
    ) -> List[Tag]:
        tags = {}
        for name in tag_names:
            if not name or not name.strip():
                continue
            tag = self.tag_service.find_or_create(user_id, name, group_id=group_id)
            tags[tag.id] = tag
        return list(tags.values())
