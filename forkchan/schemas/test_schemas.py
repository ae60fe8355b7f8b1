# forkchan/schemas/test_schemas.py
"""
저장소 문서 <-> 데이터클래스 스키마 테스트

사용법: python -m pytest forkchan/schemas/test_schemas.py -v
"""

from datetime import datetime, timezone

import pytest
from marshmallow import ValidationError

from forkchan.models.post import Post
from forkchan.schemas.chat_schema import ChatMessageSchema, ChatRoomCreateSchema
from forkchan.schemas.comment_schema import CommentCreateSchema, CommentSchema
from forkchan.schemas.post_schema import PostCreateSchema, PostSchema
from forkchan.schemas.relation_schema import FollowSchema, LikeSchema
from forkchan.schemas.user_schema import UserProfileSchema


def test_post_schema_reads_mobile_document():
    doc = {
        'id': "p1",
        'userId': "alice",
        'username': "Alice",
        'userProfilePicUrl': "",
        'description': "hello",
        'imageUrl': "https://example.com/a.jpg",
        'createdAt': datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc),
        'likeCount': 2,
        'commentCount': 1,
        'legacyField': "ignored",
    }
    post = PostSchema().load(doc)

    assert isinstance(post, Post)
    assert (post.id, post.user_id, post.like_count, post.comment_count) == ("p1", "alice", 2, 1)
    assert post.has_remote_image and not post.has_inline_image
    assert post.created_at.tzinfo == timezone.utc


def test_post_schema_defaults_and_clamping():
    post = PostSchema().load({'id': "p1", 'userId': "alice", 'likeCount': -3})
    assert post.username == "Anonymous"
    assert post.like_count == 0
    assert post.comment_count == 0
    assert post.created_at is None


def test_post_schema_accepts_timestamp_variants():
    iso = PostSchema().load({'id': "p", 'userId': "u", 'createdAt': "2024-01-15T10:30:00+09:00"})
    millis = PostSchema().load({'id': "p", 'userId': "u", 'createdAt': 1705282200000})
    assert iso.created_at == millis.created_at == datetime(2024, 1, 15, 1, 30, tzinfo=timezone.utc)

    with pytest.raises(ValidationError):
        PostSchema().load({'id': "p", 'userId': "u", 'createdAt': "not a date"})


def test_post_create_schema():
    assert PostCreateSchema().load({'description': "hi"}) == {'description': "hi", 'image_url': ""}
    assert PostCreateSchema().load({'image_url': "aGVsbG8="})['description'] == ""

    with pytest.raises(ValidationError):
        PostCreateSchema().load({'description': " "})


def test_comment_schemas():
    assert CommentCreateSchema().load({'text': "\nnice"}) == {'text': "\nnice"}
    with pytest.raises(ValidationError):
        CommentCreateSchema().load({'text': ""})
    with pytest.raises(ValidationError):
        CommentCreateSchema().load({})

    comment = CommentSchema().load({'id': "c1", 'postId': "p1", 'userId': "bob", 'text': "hey"})
    assert (comment.post_id, comment.username, comment.text) == ("p1", "Anonymous", "hey")


def test_relation_schemas():
    like = LikeSchema().load({'id': "l1", 'postId': "p1", 'userId': "alice"})
    assert (like.post_id, like.user_id) == ("p1", "alice")

    follow = FollowSchema().load({'id': "f1", 'followerId': "alice", 'followingId': "bob"})
    assert follow.created_at is None

    with pytest.raises(ValidationError):
        LikeSchema().load({'id': "l2", 'postId': "p1"})


def test_user_and_chat_schemas():
    profile = UserProfileSchema().load({'id': "alice", 'username': "Alice", 'profileImage': "abc"})
    assert (profile.user_id, profile.email, profile.profile_image) == ("alice", "", "abc")

    message = ChatMessageSchema().load({'id': "m1", 'senderId': "alice", 'text': "hi", 'timestamp': 0})
    assert message.sent_at == datetime(1970, 1, 1, tzinfo=timezone.utc)
    assert message.sender_name == "Unknown"

    with pytest.raises(ValidationError):
        ChatRoomCreateSchema().load({'name': ""})
