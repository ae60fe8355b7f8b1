# forkchan/schemas/post_schema.py
from marshmallow import Schema, fields, validate, validates_schema, post_load, EXCLUDE, ValidationError

from forkchan.models.post import Post
from forkchan.schemas.fields import StoreTimestamp

DESCRIPTION_MAX_LENGTH = 2000


class PostCreateSchema(Schema):
    """게시글 작성 입력값의 유효성을 검사합니다. 이미지가 없으면 본문은 필수입니다."""
    description = fields.Str(load_default="", validate=validate.Length(max=DESCRIPTION_MAX_LENGTH))
    image_url = fields.Str(load_default="")

    @validates_schema
    def validate_content(self, data, **kwargs):
        if not data.get('description', '').strip() and not data.get('image_url'):
            raise ValidationError("본문이나 이미지 중 하나는 있어야 합니다.", field_name='description')


class PostSchema(Schema):
    """
    'posts' 컬렉션 문서 <-> Post 데이터클래스 변환 스키마.
    필드명은 모바일 앱이 저장하는 camelCase 키를 그대로 사용합니다.
    """
    class Meta:
        unknown = EXCLUDE

    id = fields.Str(required=True)
    user_id = fields.Str(data_key='userId', required=True)
    username = fields.Str(load_default="Anonymous")
    user_profile_pic_url = fields.Str(data_key='userProfilePicUrl', load_default="")
    description = fields.Str(load_default="")
    image_url = fields.Str(data_key='imageUrl', load_default="")
    created_at = StoreTimestamp(data_key='createdAt', load_default=None, allow_none=True)
    like_count = fields.Int(data_key='likeCount', load_default=0)
    comment_count = fields.Int(data_key='commentCount', load_default=0)

    @post_load
    def make_post(self, data, **kwargs):
        # 이전 버전 앱이 음수까지 감소시킨 카운터는 0으로 보정
        data['like_count'] = max(0, data['like_count'])
        data['comment_count'] = max(0, data['comment_count'])
        return Post(**data)
