"""
Direct message tests.

Covers:
- Thread creation: self-messaging, unknown users, same-org vs cross-org
- One thread per pair regardless of who opens it
- Sending: empty messages, preview and unread tracking
- Message paging (limit / before / has_more) and read marking
- Participant checks
- Chat endpoints
"""

from __future__ import annotations

import uuid

import pytest
from fastapi import HTTPException
from sqlmodel import select

from communityx.models.chat import ChatThread, DirectMessage
from communityx.services import chat as chat_service


@pytest.fixture
async def pair(factory):
    org = await factory.org()
    alice = await factory.user("Alice", org=org)
    bob = await factory.user("Bob", org=org)
    return {"org": org, "alice": alice, "bob": bob}


async def _thread(session, factory, sender, recipient) -> ChatThread:
    return await chat_service.get_or_create_thread(
        session, await factory.subject(sender), recipient.id
    )


# ---------------------------------------------------------------------------
# Threads
# ---------------------------------------------------------------------------

class TestThreads:
    @pytest.mark.asyncio
    async def test_one_thread_per_pair(self, session, factory, pair):
        first = await _thread(session, factory, pair["alice"], pair["bob"])
        second = await _thread(session, factory, pair["bob"], pair["alice"])
        assert first.id == second.id
        assert str(first.user1_id) < str(first.user2_id)

        threads = (await session.execute(select(ChatThread))).scalars().all()
        assert len(threads) == 1

    @pytest.mark.asyncio
    async def test_cannot_message_self(self, session, factory, pair):
        with pytest.raises(HTTPException) as exc_info:
            await _thread(session, factory, pair["alice"], pair["alice"])
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_recipient(self, session, factory, pair):
        with pytest.raises(HTTPException) as exc_info:
            await chat_service.get_or_create_thread(
                session, await factory.subject(pair["alice"]), uuid.uuid4()
            )
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_cross_org_blocked_by_default(self, session, factory, pair):
        stranger = await factory.user(org=await factory.org())
        with pytest.raises(HTTPException) as exc_info:
            await _thread(session, factory, pair["alice"], stranger)
        assert exc_info.value.detail == "You can only message members of your organization"

    @pytest.mark.asyncio
    async def test_cross_org_allowed_by_sender_org(self, session, factory):
        open_org = await factory.org(allow_cross_org_dm=True)
        sender = await factory.user(org=open_org)
        stranger = await factory.user(org=await factory.org())
        thread = await _thread(session, factory, sender, stranger)
        assert thread.org_id == open_org.id

    @pytest.mark.asyncio
    async def test_user_without_org_cannot_message(self, session, factory, pair):
        loner = await factory.user()
        with pytest.raises(HTTPException) as exc_info:
            await _thread(session, factory, loner, pair["alice"])
        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_app_admin_messages_anyone(self, session, factory, pair):
        root = await factory.user(app_role="admin")
        thread = await _thread(session, factory, root, pair["alice"])
        assert pair["alice"].id in (thread.user1_id, thread.user2_id)


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

class TestMessages:
    @pytest.mark.asyncio
    async def test_send_updates_thread(self, session, factory, pair):
        thread = await _thread(session, factory, pair["alice"], pair["bob"])
        message = await chat_service.send_message(
            session, thread.id, await factory.subject(pair["alice"]), "  Hi Bob  "
        )
        assert message.content == "Hi Bob"
        assert message.recipient_id == pair["bob"].id
        assert thread.last_message_preview == "Hi Bob"
        assert thread.last_message_at is not None

        [view] = await chat_service.list_threads(session, pair["bob"].id)
        assert view.other_user.name == "Alice"
        assert view.unread_count == 1
        assert await chat_service.unread_count(session, pair["bob"].id) == 1
        assert await chat_service.unread_count(session, pair["alice"].id) == 0

    @pytest.mark.asyncio
    async def test_empty_message_rejected(self, session, factory, pair):
        thread = await _thread(session, factory, pair["alice"], pair["bob"])
        with pytest.raises(HTTPException) as exc_info:
            await chat_service.send_message(
                session, thread.id, await factory.subject(pair["alice"]), "<p> </p>"
            )
        assert exc_info.value.detail == "Message cannot be empty"

    @pytest.mark.asyncio
    async def test_outsider_cannot_send(self, session, factory, pair):
        thread = await _thread(session, factory, pair["alice"], pair["bob"])
        eve = await factory.user(org=pair["org"])
        with pytest.raises(HTTPException) as exc_info:
            await chat_service.send_message(session, thread.id, await factory.subject(eve), "hi")
        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_paging_and_read_marking(self, session, factory, pair, ts):
        thread = await _thread(session, factory, pair["alice"], pair["bob"])
        for minute in range(1, 6):
            await factory._save(
                DirectMessage(
                    thread_id=thread.id,
                    sender_id=pair["alice"].id,
                    recipient_id=pair["bob"].id,
                    content=f"m{minute}",
                    created_at=ts(minute),
                )
            )

        latest = await chat_service.get_messages(session, thread.id, pair["bob"].id, limit=2)
        assert [m.content for m in latest.data] == ["m4", "m5"]
        assert latest.has_more is True

        older = await chat_service.get_messages(
            session, thread.id, pair["bob"].id, limit=2, before=ts(4)
        )
        assert [m.content for m in older.data] == ["m2", "m3"]
        assert older.has_more is True

        oldest = await chat_service.get_messages(
            session, thread.id, pair["bob"].id, limit=2, before=ts(2)
        )
        assert [m.content for m in oldest.data] == ["m1"]
        assert oldest.has_more is False

        assert await chat_service.unread_count(session, pair["bob"].id) == 0

    @pytest.mark.asyncio
    async def test_sender_reading_does_not_mark_read(self, session, factory, pair):
        thread = await _thread(session, factory, pair["alice"], pair["bob"])
        await chat_service.send_message(session, thread.id, await factory.subject(pair["alice"]), "hello")
        await chat_service.get_messages(session, thread.id, pair["alice"].id)
        assert await chat_service.unread_count(session, pair["bob"].id) == 1

    @pytest.mark.asyncio
    async def test_unknown_thread(self, session, pair):
        with pytest.raises(HTTPException) as exc_info:
            await chat_service.get_messages(session, uuid.uuid4(), pair["alice"].id)
        assert exc_info.value.status_code == 404


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

class TestChatEndpoints:
    @pytest.mark.asyncio
    async def test_conversation_flow(self, client, pair, auth_headers, notify_mocks):
        alice_headers = auth_headers(pair["alice"])
        bob_headers = auth_headers(pair["bob"])

        resp = await client.post(
            "/api/v1/chat/threads", json={"recipient_id": str(pair["bob"].id)}, headers=alice_headers
        )
        assert resp.status_code == 200
        thread_id = resp.json()["id"]
        assert resp.json()["other_user"]["name"] == "Bob"

        resp = await client.post(
            f"/api/v1/chat/threads/{thread_id}/messages",
            json={"content": "Lunch?"},
            headers=alice_headers,
        )
        assert resp.status_code == 201
        notify_mocks["message"].assert_awaited_once_with(
            pair["bob"].id, "Alice", "Lunch?", uuid.UUID(thread_id)
        )

        resp = await client.get("/api/v1/chat/unread-count", headers=bob_headers)
        assert resp.json() == {"count": 1}

        resp = await client.get("/api/v1/chat/threads", headers=bob_headers)
        assert resp.json()["data"][0]["last_message_preview"] == "Lunch?"

        resp = await client.get(f"/api/v1/chat/threads/{thread_id}/messages", headers=bob_headers)
        assert [m["content"] for m in resp.json()["data"]] == ["Lunch?"]

        resp = await client.get("/api/v1/chat/unread-count", headers=bob_headers)
        assert resp.json() == {"count": 0}

    @pytest.mark.asyncio
    async def test_blank_message_is_400(self, client, session, factory, pair, auth_headers):
        thread = await _thread(session, factory, pair["alice"], pair["bob"])
        resp = await client.post(
            f"/api/v1/chat/threads/{thread.id}/messages",
            json={"content": ""},
            headers=auth_headers(pair["alice"]),
        )
        assert resp.status_code == 400
