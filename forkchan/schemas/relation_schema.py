# forkchan/schemas/relation_schema.py
from marshmallow import Schema, fields, post_load, EXCLUDE

from forkchan.models.like import Like
from forkchan.models.follow import Follow
from forkchan.schemas.fields import StoreTimestamp


class LikeSchema(Schema):
    """'likes' 컬렉션 문서 스키마."""
    class Meta:
        unknown = EXCLUDE

    id = fields.Str(required=True)
    post_id = fields.Str(data_key='postId', required=True)
    user_id = fields.Str(data_key='userId', required=True)

    @post_load
    def make_like(self, data, **kwargs):
        return Like(**data)


class FollowSchema(Schema):
    """'follows' 컬렉션 문서 스키마."""
    class Meta:
        unknown = EXCLUDE

    id = fields.Str(required=True)
    follower_id = fields.Str(data_key='followerId', required=True)
    following_id = fields.Str(data_key='followingId', required=True)
    created_at = StoreTimestamp(data_key='createdAt', load_default=None, allow_none=True)

    @post_load
    def make_follow(self, data, **kwargs):
        return Follow(**data)
