# forkchan/schemas/comment_schema.py
from marshmallow import Schema, fields, validate, post_load, EXCLUDE

from forkchan.models.comment import Comment
from forkchan.schemas.fields import StoreTimestamp

COMMENT_MAX_LENGTH = 1000


class CommentCreateSchema(Schema):
    """
    댓글 작성 입력값의 형식을 정의하고 유효성을 검사합니다.
    """
    text = fields.Str(required=True, validate=[
        validate.Length(min=1, max=COMMENT_MAX_LENGTH, error="댓글은 1~1000자 사이여야 합니다."),
        validate.Regexp(r'\s*\S', error="공백만으로는 댓글을 작성할 수 없습니다."),
    ])


class CommentSchema(Schema):
    """'comments' 컬렉션 문서 <-> Comment 데이터클래스 변환 스키마."""
    class Meta:
        unknown = EXCLUDE

    id = fields.Str(required=True)
    post_id = fields.Str(data_key='postId', required=True)
    user_id = fields.Str(data_key='userId', required=True)
    username = fields.Str(load_default="Anonymous")
    user_profile_pic_url = fields.Str(data_key='userProfilePicUrl', load_default="")
    text = fields.Str(load_default="")
    created_at = StoreTimestamp(data_key='createdAt', load_default=None, allow_none=True)

    @post_load
    def make_comment(self, data, **kwargs):
        return Comment(**data)
