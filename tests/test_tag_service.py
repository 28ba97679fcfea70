"""Tests for tag scope resolution."""

import pytest

from notegraph.config import config
from notegraph.exceptions import (DuplicateNameError, ErrorCode, NotFoundError,
                                  ValidationError)


@pytest.fixture
def groups(group_service, user_id):
    work = group_service.create_group(user_id, "Work")
    project = group_service.create_sub_group(user_id, work.id, "Project")
    home = group_service.create_group(user_id, "Home")
    return {"work": work, "project": project, "home": home}


def _names(tags):
    return sorted(t.name for t in tags)


class TestScopeCreation:
    def test_global_and_group_tag_with_same_name(self, tag_service, user_id, groups):
        """A group tag first, then a global one of the same name."""
        g = groups["work"].id
        tag_service.create_in_scope(user_id, "urgent", g)
        tag_service.create_in_scope(user_id, "urgent", None)

        assert tag_service.tag_exists_in_group(user_id, "urgent", g)
        with pytest.raises(DuplicateNameError) as exc_info:
            tag_service.create_in_scope(user_id, "urgent", g)
        assert exc_info.value.code is ErrorCode.TAG_NAME_TAKEN

    def test_group_tag_clashes_with_global_case_insensitively(
        self, tag_service, user_id, groups
    ):
        tag_service.create_in_scope(user_id, "Urgent", None)
        with pytest.raises(DuplicateNameError):
            tag_service.create_in_scope(user_id, "urgent", groups["work"].id)

    def test_global_duplicate_rejected(self, tag_service, user_id):
        tag_service.create_in_scope(user_id, "idea")
        with pytest.raises(DuplicateNameError):
            tag_service.create_in_scope(user_id, "IDEA")

    def test_same_name_in_different_groups(self, tag_service, user_id, groups):
        tag_service.create_in_scope(user_id, "todo", groups["work"].id)
        tag = tag_service.create_in_scope(user_id, "todo", groups["home"].id)
        assert tag.group_id == groups["home"].id

    def test_missing_group(self, tag_service, user_id):
        with pytest.raises(NotFoundError):
            tag_service.create_in_scope(user_id, "x", "missing")

    @pytest.mark.parametrize("name", ["", "  "])
    def test_blank_name_rejected(self, tag_service, user_id, groups, name):
        for scope in (None, groups["work"].id):
            with pytest.raises(ValidationError) as exc_info:
                tag_service.create_in_scope(user_id, name, scope)
            assert exc_info.value.code is ErrorCode.TAG_NAME_REQUIRED
        with pytest.raises(ValidationError):
            tag_service.find_or_create(user_id, name)
        assert tag_service.get_all_tags(user_id) == []


class TestVisibility:
    @pytest.fixture
    def scoped(self, tag_service, user_id, groups):
        tag_service.create_in_scope(user_id, "global", None)
        tag_service.create_in_scope(user_id, "work-only", groups["work"].id)
        tag_service.create_in_scope(user_id, "project-only", groups["project"].id)
        tag_service.create_in_scope(user_id, "home-only", groups["home"].id)

    def test_none_returns_all_tags(self, tag_service, user_id, scoped):
        assert _names(tag_service.tags_visible_in(user_id, None)) == [
            "global", "home-only", "project-only", "work-only",
        ]

    def test_global_plus_exact_group(self, tag_service, user_id, groups, scoped):
        visible = tag_service.tags_visible_in(user_id, groups["project"].id)
        assert _names(visible) == ["global", "project-only"]

    def test_ancestor_inheritance(self, tag_service, user_id, groups, scoped):
        visible = tag_service.tags_visible_in(
            user_id, groups["project"].id, include_ancestors=True
        )
        assert _names(visible) == ["global", "project-only", "work-only"]

    def test_ancestor_inheritance_from_config(
        self, tag_service, user_id, groups, scoped, monkeypatch
    ):
        monkeypatch.setattr(config, "inherit_ancestor_tags", True)
        assert "work-only" in _names(tag_service.tags_visible_in(user_id, groups["project"].id))

    def test_missing_group_degrades_to_global(self, tag_service, user_id, scoped):
        assert _names(tag_service.tags_visible_in(user_id, "missing")) == ["global"]

    def test_group_specific_and_global(self, tag_service, user_id, groups, scoped):
        assert _names(tag_service.group_specific_tags(user_id, groups["work"].id)) == ["work-only"]
        assert _names(tag_service.group_specific_tags(user_id, None)) == ["global"]
        assert tag_service.group_specific_tags(user_id, "missing") == []
        assert _names(tag_service.global_tags(user_id)) == ["global"]

    def test_other_user_sees_nothing(self, tag_service, other_user_id, scoped):
        assert tag_service.tags_visible_in(other_user_id, None) == []


class TestScopeChanges:
    def test_move_keeps_note_associations(
        self, tag_service, note_service, user_id, groups, make_note
    ):
        note = make_note("n", group_id=groups["work"].id, tags=["review"])
        tag = note.tags[0]
        assert tag.group_id == groups["work"].id

        moved = tag_service.move_to_group(user_id, tag.id, groups["home"].id)
        assert moved.group_id == groups["home"].id
        assert [t.id for t in note_service.get_note(user_id, note.id).tags] == [tag.id]

        made_global = tag_service.make_global(user_id, tag.id)
        assert made_global.is_global

    def test_move_rejects_clash_in_destination(self, tag_service, user_id, groups):
        tag_service.create_in_scope(user_id, "todo", groups["home"].id)
        work_todo = tag_service.create_in_scope(user_id, "todo", groups["work"].id)
        with pytest.raises(DuplicateNameError):
            tag_service.move_to_group(user_id, work_todo.id, groups["home"].id)
        assert tag_service.get_tag(user_id, work_todo.id).group_id == groups["work"].id

    def test_move_to_missing_group(self, tag_service, user_id):
        tag = tag_service.create_in_scope(user_id, "x")
        with pytest.raises(NotFoundError):
            tag_service.move_to_group(user_id, tag.id, "missing")

    def test_find_or_create_is_idempotent(self, tag_service, user_id, groups):
        first = tag_service.find_or_create(user_id, "ml", group_id=groups["work"].id)
        second = tag_service.find_or_create(user_id, "ML", group_id=groups["work"].id)
        assert first.id == second.id
        assert first.group_id == groups["work"].id

    def test_find_or_create_prefers_visible_global(self, tag_service, user_id, groups):
        global_tag = tag_service.create_in_scope(user_id, "shared")
        found = tag_service.find_or_create(user_id, "shared", group_id=groups["home"].id)
        assert found.id == global_tag.id

    def test_find_or_create_unknown_group_is_global(self, tag_service, user_id):
        assert tag_service.find_or_create(user_id, "loose", group_id="missing").is_global


class TestUsage:
    @pytest.fixture
    def usage(self, tag_service, user_id, groups, make_note):
        g = groups["work"].id
        make_note("a", group_id=g, tags=["python", "sql"])
        make_note("b", group_id=g, tags=["python"])
        make_note("c", group_id=g, tags=["python", "sql"])
        tag_service.create_in_scope(user_id, "unused-global")
        tag_service.create_in_scope(user_id, "unused-work", g)
        tag_service.create_in_scope(user_id, "unused-home", groups["home"].id)

    def test_popular_in_group(self, tag_service, user_id, groups, usage):
        ranked = tag_service.popular_in(user_id, groups["work"].id)
        assert [(t.name, n) for t, n in ranked] == [("python", 3), ("sql", 2)]
        assert len(tag_service.popular_in(user_id, groups["work"].id, limit=1)) == 1

    def test_unused_in_is_scoped_like_visibility(self, tag_service, user_id, groups, usage):
        assert _names(tag_service.unused_in(user_id, groups["work"].id)) == [
            "unused-global", "unused-work",
        ]
        assert _names(tag_service.unused_in(user_id, None)) == [
            "unused-global", "unused-home", "unused-work",
        ]

    def test_delete_unused_in(self, tag_service, user_id, groups, usage):
        assert tag_service.delete_unused_in(user_id, groups["home"].id) == 2
        assert _names(tag_service.unused_in(user_id, None)) == ["unused-work"]

    def test_co_occurring(self, tag_service, user_id, usage):
        python = next(t for t in tag_service.get_all_tags(user_id) if t.name == "python")
        pairs = tag_service.co_occurring_tags(user_id, python.id)
        assert [(t.name, n) for t, n in pairs] == [("sql", 2)]


class TestPlumbing:
    def test_update_tag(self, tag_service, user_id):
        tag = tag_service.create_in_scope(user_id, "old")
        tag_service.create_in_scope(user_id, "taken")
        updated = tag_service.update_tag(user_id, tag.id, name="new", color="#000000", is_key=True)
        assert (updated.name, updated.color, updated.is_key) == ("new", "#000000", True)
        with pytest.raises(DuplicateNameError):
            tag_service.update_tag(user_id, tag.id, name="Taken")
        with pytest.raises(ValidationError):
            tag_service.update_tag(user_id, tag.id, name=" ")
        assert tag_service.get_tag(user_id, tag.id).name == "new"

    def test_delete_tag_detaches_notes(self, tag_service, note_service, user_id, make_note):
        note = make_note("n", tags=["gone"])
        tag_service.delete_tag(user_id, note.tags[0].id)
        assert note_service.get_note(user_id, note.id).tags == []

    def test_tags_for_note(self, tag_service, user_id, make_note):
        note = make_note("n", tags=["b", "a"])
        assert _names(tag_service.tags_for_note(user_id, note.id)) == ["a", "b"]

    def test_get_missing_tag(self, tag_service, user_id):
        with pytest.raises(NotFoundError):
            tag_service.get_tag(user_id, "missing")
