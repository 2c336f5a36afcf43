"""
Poll tests.

Covers:
- Option validation (count and length)
- Single vs multiple choice voting, one ballot per user
- Closed and expired polls
- Results: counts, percentages, user_votes, can_vote
- Option replacement only before voting starts
- Poll endpoints
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from communityx.services import polls as poll_service
from communityx_shared.schemas.posts import PollCreate


@pytest.fixture
async def poll_world(factory):
    org = await factory.org()
    author = await factory.user(org=org)
    voter = await factory.user(org=org)
    community = await factory.community(author, org=org)
    await factory.member(community, voter)
    post = await factory.post(author, community=community)
    return {"author": author, "voter": voter, "community": community, "post": post}


async def _make_poll(session, post, **kwargs):
    data = PollCreate(question="Favourite?", options=["Red", "Green", "Blue"], **kwargs)
    return await poll_service.create_poll_rows(session, post.id, data)


class TestPollValidation:
    def test_needs_two_options(self):
        with pytest.raises(ValidationError):
            PollCreate(question="Q", options=["only"])

    def test_at_most_ten_options(self):
        with pytest.raises(ValidationError):
            PollCreate(question="Q", options=[str(i) for i in range(11)])

    def test_option_length(self):
        with pytest.raises(ValidationError):
            PollCreate(question="Q", options=["ok", "x" * 101])
        with pytest.raises(ValidationError):
            PollCreate(question="Q", options=["ok", "   "])

    def test_options_are_trimmed(self):
        assert PollCreate(question="Q", options=[" a ", "b"]).options == ["a", "b"]

    @pytest.mark.asyncio
    async def test_expiry_must_be_future(self, session, poll_world):
        past = datetime.now(timezone.utc) - timedelta(minutes=1)
        with pytest.raises(HTTPException) as exc_info:
            await _make_poll(session, poll_world["post"], expires_at=past)
        assert exc_info.value.status_code == 400


class TestVoting:
    @pytest.mark.asyncio
    async def test_single_vote_and_results(self, session, factory, poll_world):
        poll = await _make_poll(session, poll_world["post"])
        options = await poll_service._options(session, poll.id)
        subject = await factory.subject(poll_world["voter"])

        results = await poll_service.vote(session, poll.id, [options[1].id], subject)
        assert results.total_votes == 1
        assert results.user_votes == [options[1].id]
        assert results.can_vote is False
        assert [o.votes for o in results.options] == [0, 1, 0]
        assert [o.percentage for o in results.options] == [0, 100, 0]

    @pytest.mark.asyncio
    async def test_single_choice_rejects_multiple(self, session, factory, poll_world):
        poll = await _make_poll(session, poll_world["post"])
        options = await poll_service._options(session, poll.id)
        with pytest.raises(HTTPException) as exc_info:
            await poll_service.vote(
                session, poll.id, [options[0].id, options[1].id], await factory.subject(poll_world["voter"])
            )
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_multiple_choice(self, session, factory, poll_world):
        poll = await _make_poll(session, poll_world["post"], poll_type="multiple")
        options = await poll_service._options(session, poll.id)
        results = await poll_service.vote(
            session, poll.id, [options[0].id, options[2].id], await factory.subject(poll_world["voter"])
        )
        assert results.total_votes == 2
        assert [o.percentage for o in results.options] == [50, 0, 50]

    @pytest.mark.asyncio
    async def test_one_ballot_per_user(self, session, factory, poll_world):
        poll = await _make_poll(session, poll_world["post"])
        options = await poll_service._options(session, poll.id)
        subject = await factory.subject(poll_world["voter"])
        await poll_service.vote(session, poll.id, [options[0].id], subject)

        with pytest.raises(HTTPException) as exc_info:
            await poll_service.vote(session, poll.id, [options[1].id], subject)
        assert exc_info.value.detail == "You have already voted on this poll"

    @pytest.mark.asyncio
    async def test_unknown_option_rejected(self, session, factory, poll_world):
        poll = await _make_poll(session, poll_world["post"])
        with pytest.raises(HTTPException) as exc_info:
            await poll_service.vote(
                session, poll.id, [uuid.uuid4()], await factory.subject(poll_world["voter"])
            )
        assert exc_info.value.detail == "Invalid poll option"

    @pytest.mark.asyncio
    async def test_closed_poll_rejects_votes(self, session, factory, poll_world):
        poll = await _make_poll(session, poll_world["post"])
        options = await poll_service._options(session, poll.id)

        closed = await poll_service.close_poll(session, poll.id, await factory.subject(poll_world["author"]))
        assert closed.is_closed is True
        assert closed.can_vote is False

        with pytest.raises(HTTPException) as exc_info:
            await poll_service.vote(
                session, poll.id, [options[0].id], await factory.subject(poll_world["voter"])
            )
        assert exc_info.value.detail == "This poll is closed"

    @pytest.mark.asyncio
    async def test_expired_poll_reports_closed(self, session, factory, poll_world):
        poll = await _make_poll(
            session, poll_world["post"], expires_at=datetime.now(timezone.utc) + timedelta(hours=1)
        )
        poll.expires_at = datetime.now(timezone.utc) - timedelta(seconds=1)
        assert poll_service.is_expired(poll)

        results = await poll_service.get_poll_results(
            session, poll.id, await factory.subject(poll_world["voter"])
        )
        assert results.is_closed is True
        assert results.can_vote is False

    @pytest.mark.asyncio
    async def test_only_author_closes(self, session, factory, poll_world):
        poll = await _make_poll(session, poll_world["post"])
        with pytest.raises(HTTPException) as exc_info:
            await poll_service.close_poll(session, poll.id, await factory.subject(poll_world["voter"]))
        assert exc_info.value.status_code == 403


class TestReplaceOptions:
    @pytest.mark.asyncio
    async def test_replace_before_votes(self, session, poll_world):
        poll = await _make_poll(session, poll_world["post"])
        await poll_service.replace_options(session, poll, ["Yes", "No"])
        options = await poll_service._options(session, poll.id)
        assert [o.text for o in options] == ["Yes", "No"]
        assert [o.order_index for o in options] == [0, 1]

    @pytest.mark.asyncio
    async def test_replace_after_votes_rejected(self, session, factory, poll_world):
        poll = await _make_poll(session, poll_world["post"])
        options = await poll_service._options(session, poll.id)
        await poll_service.vote(session, poll.id, [options[0].id], await factory.subject(poll_world["voter"]))

        with pytest.raises(HTTPException) as exc_info:
            await poll_service.replace_options(session, poll, ["Yes", "No"])
        assert exc_info.value.status_code == 400


class TestPollEndpoints:
    @pytest.mark.asyncio
    async def test_attach_poll_and_vote(self, client, poll_world, auth_headers):
        post = poll_world["post"]
        resp = await client.post(
            f"/api/v1/community/posts/{post.id}/poll",
            json={"question": "Ship it?", "options": ["Yes", "No"]},
            headers=auth_headers(poll_world["author"]),
        )
        assert resp.status_code == 201
        poll = resp.json()
        assert poll["can_vote"] is True

        resp = await client.post(
            f"/api/v1/community/polls/{poll['poll_id']}/vote",
            json={"option_ids": [poll["options"][0]["id"]]},
            headers=auth_headers(poll_world["voter"]),
        )
        assert resp.status_code == 200
        assert resp.json()["total_votes"] == 1

    @pytest.mark.asyncio
    async def test_second_poll_rejected(self, client, session, poll_world, auth_headers):
        await _make_poll(session, poll_world["post"])
        resp = await client.post(
            f"/api/v1/community/posts/{poll_world['post'].id}/poll",
            json={"question": "Again?", "options": ["Yes", "No"]},
            headers=auth_headers(poll_world["author"]),
        )
        assert resp.status_code == 400
        assert resp.json() == {"error": "This post already has a poll"}
