"""
Integration tests for the Conversations API, including messages.
"""

import pytest
from httpx import AsyncClient


async def _create_conversation(client: AsyncClient, headers: dict, project_id: str, title="Thread"):
    response = await client.post(
        "/api/v1/conversations",
        json={"project_id": project_id, "title": title, "metadata": {"model": "default"}},
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


async def _send(client: AsyncClient, headers: dict, conversation_id: str, content: str, **extra):
    response = await client.post(
        f"/api/v1/conversations/{conversation_id}/messages",
        json={"content": content, **extra},
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestConversations:
    """Tests for /conversations endpoints."""

    @pytest.mark.asyncio
    async def test_create_conversation(
        self, async_client: AsyncClient, auth_headers: dict, test_project, test_user
    ):
        data = await _create_conversation(async_client, auth_headers, test_project.id)

        assert data["title"] == "Thread"
        assert data["project_id"] == test_project.id
        assert data["user_id"] == test_user.id
        assert data["status"] == "active"
        assert data["metadata"] == {"model": "default"}

    @pytest.mark.asyncio
    async def test_viewer_can_start_conversation(
        self, async_client: AsyncClient, third_auth_headers: dict, test_project, viewer_member
    ):
        data = await _create_conversation(async_client, third_auth_headers, test_project.id)

        assert data["title"] == "Thread"

    @pytest.mark.asyncio
    async def test_outsider_cannot_create(
        self, async_client: AsyncClient, other_auth_headers: dict, test_project
    ):
        response = await async_client.post(
            "/api/v1/conversations",
            json={"project_id": test_project.id, "title": "Sneaky"},
            headers=other_auth_headers,
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_title_required(self, async_client: AsyncClient, auth_headers: dict, test_project):
        response = await async_client.post(
            "/api/v1/conversations",
            json={"project_id": test_project.id},
            headers=auth_headers,
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_list_includes_last_message(
        self, async_client: AsyncClient, auth_headers: dict, test_project
    ):
        conv = await _create_conversation(async_client, auth_headers, test_project.id)
        await _send(async_client, auth_headers, conv["id"], "first")
        await _send(async_client, auth_headers, conv["id"], "second", role="assistant")
        await _create_conversation(async_client, auth_headers, test_project.id, title="Empty")

        response = await async_client.get(
            "/api/v1/conversations", params={"project_id": test_project.id}, headers=auth_headers
        )

        assert response.status_code == 200
        by_title = {c["title"]: c for c in response.json()["conversations"]}
        assert by_title["Thread"]["message_count"] == 2
        assert by_title["Thread"]["last_message"] == "second"
        assert by_title["Thread"]["last_message_at"] is not None
        assert by_title["Empty"]["message_count"] == 0
        assert by_title["Empty"]["last_message"] is None
        assert response.json()["pagination"]["total"] == 2

    @pytest.mark.asyncio
    async def test_update_conversation(
        self, async_client: AsyncClient, auth_headers: dict, test_project
    ):
        conv = await _create_conversation(async_client, auth_headers, test_project.id)

        response = await async_client.put(
            f"/api/v1/conversations/{conv['id']}",
            json={"title": "Renamed", "status": "archived", "metadata": {"pinned": True}},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json()["title"] == "Renamed"
        assert response.json()["status"] == "archived"
        assert response.json()["metadata"] == {"pinned": True}

    @pytest.mark.asyncio
    async def test_update_rejects_unknown_status(
        self, async_client: AsyncClient, auth_headers: dict, test_project
    ):
        conv = await _create_conversation(async_client, auth_headers, test_project.id)

        response = await async_client.put(
            f"/api/v1/conversations/{conv['id']}",
            json={"status": "closed"},
            headers=auth_headers,
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_delete_by_creator_hides_messages(
        self, async_client: AsyncClient, other_auth_headers: dict, test_project, editor_member
    ):
        conv = await _create_conversation(async_client, other_auth_headers, test_project.id)
        await _send(async_client, other_auth_headers, conv["id"], "hello")

        response = await async_client.delete(
            f"/api/v1/conversations/{conv['id']}", headers=other_auth_headers
        )

        assert response.status_code == 200
        gone = await async_client.get(
            f"/api/v1/conversations/{conv['id']}/messages", headers=other_auth_headers
        )
        assert gone.status_code == 404

    @pytest.mark.asyncio
    async def test_project_owner_can_delete_any_conversation(
        self,
        async_client: AsyncClient,
        auth_headers: dict,
        other_auth_headers: dict,
        test_project,
        editor_member,
    ):
        conv = await _create_conversation(async_client, other_auth_headers, test_project.id)

        response = await async_client.delete(f"/api/v1/conversations/{conv['id']}", headers=auth_headers)

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_other_member_cannot_delete(
        self,
        async_client: AsyncClient,
        auth_headers: dict,
        other_auth_headers: dict,
        test_project,
        editor_member,
    ):
        conv = await _create_conversation(async_client, auth_headers, test_project.id)

        response = await async_client.delete(
            f"/api/v1/conversations/{conv['id']}", headers=other_auth_headers
        )

        assert response.status_code == 403


class TestMessages:
    """Tests for /conversations/{id}/messages endpoints."""

    @pytest.mark.asyncio
    async def test_messages_in_chronological_order(
        self, async_client: AsyncClient, auth_headers: dict, test_project
    ):
        conv = await _create_conversation(async_client, auth_headers, test_project.id)
        for content in ("one", "two", "three"):
            await _send(async_client, auth_headers, conv["id"], content)

        response = await async_client.get(
            f"/api/v1/conversations/{conv['id']}/messages", headers=auth_headers
        )

        assert response.status_code == 200
        assert [m["content"] for m in response.json()["messages"]] == ["one", "two", "three"]
        assert response.json()["pagination"]["total"] == 3

    @pytest.mark.asyncio
    async def test_role_defaults_to_user(
        self, async_client: AsyncClient, auth_headers: dict, test_project
    ):
        conv = await _create_conversation(async_client, auth_headers, test_project.id)

        message = await _send(async_client, auth_headers, conv["id"], "hi")
        reply = await _send(async_client, auth_headers, conv["id"], "hello", role="assistant")

        assert message["role"] == "user"
        assert reply["role"] == "assistant"

    @pytest.mark.asyncio
    async def test_invalid_role_rejected(
        self, async_client: AsyncClient, auth_headers: dict, test_project
    ):
        conv = await _create_conversation(async_client, auth_headers, test_project.id)

        response = await async_client.post(
            f"/api/v1/conversations/{conv['id']}/messages",
            json={"content": "hi", "role": "robot"},
            headers=auth_headers,
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_sending_touches_conversation(
        self, async_client: AsyncClient, auth_headers: dict, test_project
    ):
        conv = await _create_conversation(async_client, auth_headers, test_project.id)

        await _send(async_client, auth_headers, conv["id"], "bump")
        refreshed = await async_client.get(f"/api/v1/conversations/{conv['id']}", headers=auth_headers)

        assert refreshed.json()["updated_at"] > conv["updated_at"]

    @pytest.mark.asyncio
    async def test_author_updates_message(
        self, async_client: AsyncClient, auth_headers: dict, test_project
    ):
        conv = await _create_conversation(async_client, auth_headers, test_project.id)
        message = await _send(async_client, auth_headers, conv["id"], "draft")

        response = await async_client.put(
            f"/api/v1/conversations/{conv['id']}/messages/{message['id']}",
            json={"content": "final"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json()["content"] == "final"

    @pytest.mark.asyncio
    async def test_non_author_cannot_edit(
        self,
        async_client: AsyncClient,
        auth_headers: dict,
        other_auth_headers: dict,
        test_project,
        editor_member,
    ):
        conv = await _create_conversation(async_client, auth_headers, test_project.id)
        message = await _send(async_client, auth_headers, conv["id"], "mine")

        response = await async_client.put(
            f"/api/v1/conversations/{conv['id']}/messages/{message['id']}",
            json={"content": "yours now"},
            headers=other_auth_headers,
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_project_owner_deletes_any_message(
        self,
        async_client: AsyncClient,
        auth_headers: dict,
        other_auth_headers: dict,
        test_project,
        editor_member,
    ):
        conv = await _create_conversation(async_client, other_auth_headers, test_project.id)
        message = await _send(async_client, other_auth_headers, conv["id"], "remove me")

        response = await async_client.delete(
            f"/api/v1/conversations/{conv['id']}/messages/{message['id']}",
            headers=auth_headers,
        )

        assert response.status_code == 200
        listing = await async_client.get(
            f"/api/v1/conversations/{conv['id']}/messages", headers=auth_headers
        )
        assert listing.json()["messages"] == []

    @pytest.mark.asyncio
    async def test_message_in_other_conversation_not_found(
        self, async_client: AsyncClient, auth_headers: dict, test_project
    ):
        first = await _create_conversation(async_client, auth_headers, test_project.id)
        second = await _create_conversation(async_client, auth_headers, test_project.id, title="B")
        message = await _send(async_client, auth_headers, first["id"], "here")

        response = await async_client.delete(
            f"/api/v1/conversations/{second['id']}/messages/{message['id']}",
            headers=auth_headers,
        )

        assert response.status_code == 404
