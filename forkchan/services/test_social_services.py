# forkchan/services/test_social_services.py
"""
팔로우 / 프로필 / 채팅 서비스 테스트

사용법: python -m pytest forkchan/services/test_social_services.py -v
"""

import asyncio
import base64
import gc
import io

import pytest
from marshmallow import ValidationError
from PIL import Image

from forkchan.core.errors import Unauthenticated
from forkchan.services.chat_service import ChatService
from forkchan.services.follow_service import FollowService
from forkchan.services.profile_service import ProfileService


@pytest.fixture
def follows(store):
    return FollowService(store)


@pytest.fixture
def profiles(store):
    return ProfileService(store, sync_auth_email=False)


@pytest.fixture
def chat(store):
    return ChatService(store)


# =====================================================================
# 팔로우
# =====================================================================
def test_follow_and_unfollow(store, follows, alice):
    async def scenario():
        assert await follows.follow(alice, "bob") is True
        assert await follows.is_following(alice, "bob")
        assert await follows.follow(alice, "bob") is False
        assert len(store.documents('follows')) == 1

        followers = await follows.fetch_followers("bob")
        assert [(f.follower_id, f.following_id) for f in followers] == [("alice", "bob")]
        assert followers[0].created_at is not None
        assert [f.following_id for f in await follows.fetch_following("alice")] == ["bob"]

        assert await follows.unfollow(alice, "bob") is True
        assert not await follows.is_following(alice, "bob")
        assert await follows.unfollow(alice, "bob") is False

    asyncio.run(scenario())


def test_concurrent_follow_creates_one_document(store, follows, alice):
    async def scenario():
        results = await asyncio.gather(*(follows.follow(alice, "bob") for _ in range(3)))
        assert sorted(results) == [False, False, True]
        assert len(store.documents('follows')) == 1

    asyncio.run(scenario())


def test_pair_locks_are_released(follows, alice):
    async def scenario():
        await asyncio.gather(*(follows.follow(alice, target) for target in ("bob", "carol", "dave")))
        await follows.unfollow(alice, "bob")

        gc.collect()
        assert len(follows._pair_locks) == 0

    asyncio.run(scenario())


def test_cannot_follow_self(follows, alice, anonymous):
    async def scenario():
        with pytest.raises(ValueError):
            await follows.follow(alice, "alice")
        with pytest.raises(Unauthenticated):
            await follows.follow(anonymous, "bob")

    asyncio.run(scenario())


# =====================================================================
# 프로필
# =====================================================================
def test_ensure_profile_creates_once(store, profiles, alice):
    async def scenario():
        assert await profiles.get_profile("alice") is None

        created = await profiles.ensure_profile(alice, "alice@example.com")
        assert (created.username, created.email) == ("Alice", "alice@example.com")

        await profiles.update_username(alice, "alice2")
        again = await profiles.ensure_profile(alice, "other@example.com")
        assert again.username == "alice2"
        assert again.email == "alice@example.com"

    asyncio.run(scenario())


def test_updates_create_missing_profile(store, profiles, bob):
    async def scenario():
        assert await profiles.update_email(bob, "bob@example.com") == "bob@example.com"
        profile = await profiles.get_profile("bob")
        assert profile.username == "Bob"
        assert profile.email == "bob@example.com"

    asyncio.run(scenario())


def test_profile_validation(profiles, alice):
    async def scenario():
        with pytest.raises(ValidationError):
            await profiles.update_username(alice, "")
        with pytest.raises(ValidationError):
            await profiles.update_email(alice, "not-an-email")

    asyncio.run(scenario())


def test_update_profile_image(store, profiles, alice):
    async def scenario():
        buffer = io.BytesIO()
        Image.new("RGB", (800, 400), color=(0, 120, 200)).save(buffer, format="PNG")

        encoded = await profiles.update_profile_image(alice, buffer.getvalue())
        assert store.documents('users')['alice']['profileImage'] == encoded
        assert Image.open(io.BytesIO(base64.b64decode(encoded))).size == (500, 250)

    asyncio.run(scenario())


# =====================================================================
# 채팅
# =====================================================================
def test_create_and_list_rooms(chat):
    async def scenario():
        general = await chat.create_room("general")
        await chat.create_room("random")
        again = await chat.create_room("general")

        assert again.room_id == "general"
        assert again.created == general.created
        assert [room.room_id for room in await chat.list_rooms()] == ["general", "random"]

        with pytest.raises(ValidationError):
            await chat.create_room("a/b")

    asyncio.run(scenario())


def test_messages_resolve_sender_names(store, chat, profiles, alice, bob):
    async def scenario():
        await profiles.ensure_profile(alice)
        await chat.create_room("general")
        await chat.send_message(alice, "general", "hi bob")
        await chat.send_message(bob, "general", "hi alice")

        messages = await chat.fetch_messages("general")
        assert [m.text for m in messages] == ["hi bob", "hi alice"]
        assert [m.sender_name for m in messages] == ["Alice", "Unknown"]
        assert messages[0].sent_at <= messages[1].sent_at

        with pytest.raises(ValidationError):
            await chat.send_message(alice, "general", "   ")

    asyncio.run(scenario())


def test_watch_messages(chat, alice):
    async def scenario():
        stream = chat.watch_messages("general")
        assert await stream.__anext__() == []

        await chat.send_message(alice, "general", "hello")
        messages = await stream.__anext__()
        assert [m.text for m in messages] == ["hello"]

        await stream.aclose()

    asyncio.run(scenario())
