# forkchan/schemas/user_schema.py
from marshmallow import Schema, fields, validate, post_load, EXCLUDE

from forkchan.models.user import UserProfile


class UserProfileSchema(Schema):
    """'users' 컬렉션 문서 스키마. 문서 ID가 user_id가 됩니다."""
    class Meta:
        unknown = EXCLUDE

    user_id = fields.Str(data_key='id', required=True)
    username = fields.Str(load_default="")
    email = fields.Str(load_default="")
    profile_image = fields.Str(data_key='profileImage', load_default="")

    @post_load
    def make_profile(self, data, **kwargs):
        return UserProfile(**data)


class UsernameUpdateSchema(Schema):
    username = fields.Str(required=True, validate=validate.Length(min=1, max=50))


class EmailUpdateSchema(Schema):
    email = fields.Email(required=True)
