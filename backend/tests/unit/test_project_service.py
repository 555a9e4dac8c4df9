"""
Service-level tests for projects, conversations and their access rules.
"""

import pytest

from core.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationFailedError,
)
from services import conversations as conversation_service
from services import projects as project_service
from services import sources as source_service


class TestProjectAccess:
    @pytest.mark.asyncio
    async def test_owner_role(self, db_session, test_project, test_user):
        access = await project_service.get_project_access(db_session, test_project.id, test_user.id)

        assert access.role == "owner"
        assert access.is_owner
        assert access.can_edit

    @pytest.mark.asyncio
    async def test_member_roles(
        self, db_session, test_project, editor_member, viewer_member, other_user, third_user
    ):
        editor = await project_service.get_project_access(db_session, test_project.id, other_user.id)
        viewer = await project_service.get_project_access(db_session, test_project.id, third_user.id)

        assert editor.role == "editor" and editor.can_edit and not editor.is_owner
        assert viewer.role == "viewer" and not viewer.can_edit

    @pytest.mark.asyncio
    async def test_outsider_gets_not_found(self, db_session, test_project, other_user):
        with pytest.raises(NotFoundError):
            await project_service.get_project_access(db_session, test_project.id, other_user.id)

    @pytest.mark.asyncio
    async def test_viewer_is_not_editor(self, db_session, test_project, viewer_member, third_user):
        with pytest.raises(PermissionDeniedError):
            await project_service.require_project_editor(db_session, test_project.id, third_user.id)

    @pytest.mark.asyncio
    async def test_deleted_project_is_invisible(self, db_session, test_project, test_user):
        await project_service.delete_project(db_session, test_project.id, test_user.id)

        with pytest.raises(NotFoundError):
            await project_service.get_project_access(db_session, test_project.id, test_user.id)


class TestProjectCrud:
    @pytest.mark.asyncio
    async def test_creator_becomes_owner_member(self, db_session, test_user):
        project = await project_service.create_project(db_session, test_user.id, name="  Spaced  ")

        members = await project_service.list_members(db_session, project.id, test_user.id)

        assert project.name == "Spaced"
        assert [(m.user_id, m.role) for m in members] == [(test_user.id, "owner")]

    @pytest.mark.asyncio
    async def test_blank_name_rejected(self, db_session, test_user):
        with pytest.raises(ValidationFailedError):
            await project_service.create_project(db_session, test_user.id, name="   ")

    @pytest.mark.asyncio
    async def test_update_ignores_unknown_fields(self, db_session, test_project, test_user):
        with pytest.raises(ValidationFailedError):
            await project_service.update_project(
                db_session, test_project.id, test_user.id, {"owner_id": "someone-else"}
            )

    @pytest.mark.asyncio
    async def test_list_counts(self, db_session, test_project, test_user):
        await conversation_service.create_conversation(db_session, test_user.id, test_project.id, "A")
        await source_service.create_source(
            db_session, test_user.id, test_project.id, "Doc", source_type="text", content="x"
        )

        page = await project_service.list_projects(db_session, test_user.id)

        [summary] = page.items
        assert summary.user_role == "owner"
        assert summary.conversation_count == 1
        assert summary.source_count == 1

    @pytest.mark.asyncio
    async def test_stats_skip_deleted_rows(self, db_session, test_project, test_user):
        keep = await conversation_service.create_conversation(
            db_session, test_user.id, test_project.id, "Keep"
        )
        drop = await conversation_service.create_conversation(
            db_session, test_user.id, test_project.id, "Drop"
        )
        await conversation_service.send_message(db_session, keep.id, test_user.id, "one")
        await conversation_service.send_message(db_session, drop.id, test_user.id, "two")
        await conversation_service.delete_conversation(db_session, drop.id, test_user.id)

        stats = await project_service.get_project_stats(db_session, test_project.id, test_user.id)

        assert stats.conversation_count == 1
        assert stats.message_count == 1
        assert stats.source_count == 0


class TestOwnerRoleMember:
    @pytest.fixture
    async def shared_project(self, db_session, test_project, test_user, other_user, third_user):
        await project_service.add_member(
            db_session, test_project.id, test_user.id, other_user.id, role="owner"
        )
        await project_service.add_member(
            db_session, test_project.id, test_user.id, third_user.id, role="editor"
        )
        return test_project

    @pytest.mark.asyncio
    async def test_owner_role_member_is_not_project_owner(self, db_session, shared_project, other_user):
        access = await project_service.get_project_access(db_session, shared_project.id, other_user.id)

        assert access.role == "owner"
        assert access.can_edit
        assert not access.is_owner

    @pytest.mark.asyncio
    async def test_cannot_delete_others_conversation(
        self, db_session, shared_project, other_user, third_user
    ):
        conversation = await conversation_service.create_conversation(
            db_session, third_user.id, shared_project.id, "Editor thread"
        )

        with pytest.raises(PermissionDeniedError):
            await conversation_service.delete_conversation(db_session, conversation.id, other_user.id)

    @pytest.mark.asyncio
    async def test_cannot_delete_others_message(self, db_session, shared_project, other_user, third_user):
        conversation = await conversation_service.create_conversation(
            db_session, third_user.id, shared_project.id, "Editor thread"
        )
        message = await conversation_service.send_message(db_session, conversation.id, third_user.id, "mine")

        with pytest.raises(PermissionDeniedError):
            await conversation_service.delete_message(
                db_session, conversation.id, message.id, other_user.id
            )

    @pytest.mark.asyncio
    async def test_project_owner_still_deletes(self, db_session, shared_project, test_user, third_user):
        conversation = await conversation_service.create_conversation(
            db_session, third_user.id, shared_project.id, "Editor thread"
        )

        await conversation_service.delete_conversation(db_session, conversation.id, test_user.id)

        with pytest.raises(NotFoundError):
            await conversation_service.get_conversation(db_session, conversation.id, third_user.id)


class TestMembers:
    @pytest.mark.asyncio
    async def test_duplicate_member(self, db_session, test_project, test_user, editor_member, other_user):
        with pytest.raises(ConflictError):
            await project_service.add_member(db_session, test_project.id, test_user.id, other_user.id)

    @pytest.mark.asyncio
    async def test_owner_cannot_be_added_again(self, db_session, test_project, test_user):
        with pytest.raises(ConflictError):
            await project_service.add_member(db_session, test_project.id, test_user.id, test_user.id)

    @pytest.mark.asyncio
    async def test_only_owner_manages_members(
        self, db_session, test_project, editor_member, other_user, third_user
    ):
        with pytest.raises(PermissionDeniedError):
            await project_service.add_member(db_session, test_project.id, other_user.id, third_user.id)

    @pytest.mark.asyncio
    async def test_invalid_role(self, db_session, test_project, test_user, other_user):
        with pytest.raises(ValidationFailedError):
            await project_service.add_member(
                db_session, test_project.id, test_user.id, other_user.id, role="admin"
            )


class TestMessages:
    @pytest.mark.asyncio
    async def test_send_defaults_role_and_touches_conversation(self, db_session, test_project, test_user):
        conversation = await conversation_service.create_conversation(
            db_session, test_user.id, test_project.id, "Chat"
        )
        before = conversation.updated_at

        message = await conversation_service.send_message(db_session, conversation.id, test_user.id, "hi")
        refreshed = await conversation_service.get_conversation(db_session, conversation.id, test_user.id)

        assert message.role == "user"
        assert message.meta == {}
        assert refreshed.updated_at.replace(tzinfo=None) >= before.replace(tzinfo=None)

    @pytest.mark.asyncio
    async def test_blank_content_rejected(self, db_session, test_project, test_user):
        conversation = await conversation_service.create_conversation(
            db_session, test_user.id, test_project.id, "Chat"
        )

        with pytest.raises(ValidationFailedError):
            await conversation_service.send_message(db_session, conversation.id, test_user.id, "  ")

    @pytest.mark.asyncio
    async def test_list_messages_pagination(self, db_session, test_project, test_user):
        conversation = await conversation_service.create_conversation(
            db_session, test_user.id, test_project.id, "Chat"
        )
        for i in range(5):
            await conversation_service.send_message(db_session, conversation.id, test_user.id, f"m{i}")

        page = await conversation_service.list_messages(
            db_session, conversation.id, test_user.id, limit=2, offset=2
        )

        assert [m.content for m in page.items] == ["m2", "m3"]
        assert page.total == 5
        assert page.has_more

    @pytest.mark.asyncio
    async def test_list_conversations_reports_newest_live_message(self, db_session, test_project, test_user):
        first = await conversation_service.create_conversation(
            db_session, test_user.id, test_project.id, "First"
        )
        second = await conversation_service.create_conversation(
            db_session, test_user.id, test_project.id, "Second"
        )
        empty = await conversation_service.create_conversation(
            db_session, test_user.id, test_project.id, "Empty"
        )
        for content in ("a1", "a2", "a3"):
            await conversation_service.send_message(db_session, first.id, test_user.id, content)
        await conversation_service.send_message(db_session, second.id, test_user.id, "b1")
        dropped = await conversation_service.send_message(db_session, second.id, test_user.id, "b2")
        await conversation_service.delete_message(db_session, second.id, dropped.id, test_user.id)

        page = await conversation_service.list_conversations(db_session, test_user.id, test_project.id)

        by_id = {s.conversation.id: s for s in page.items}
        assert (by_id[first.id].last_message, by_id[first.id].message_count) == ("a3", 3)
        assert (by_id[second.id].last_message, by_id[second.id].message_count) == ("b1", 1)
        assert by_id[empty.id].last_message is None
        assert by_id[empty.id].last_message_at is None
