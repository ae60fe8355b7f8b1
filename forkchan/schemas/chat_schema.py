# forkchan/schemas/chat_schema.py
from marshmallow import Schema, fields, validate, post_load, EXCLUDE

from forkchan.models.chat import ChatRoom, ChatMessage
from forkchan.schemas.fields import StoreTimestamp


class ChatRoomCreateSchema(Schema):
    # 방 이름이 그대로 문서 ID가 되므로 '/'는 허용하지 않습니다.
    name = fields.Str(required=True, validate=[
        validate.Length(min=1, max=100),
        validate.Regexp(r'^[^/]+$', error="채팅방 이름에는 '/'를 사용할 수 없습니다."),
    ])


class ChatMessageCreateSchema(Schema):
    text = fields.Str(required=True, validate=validate.Regexp(r'\s*\S', error="빈 메시지는 보낼 수 없습니다."))


class ChatRoomSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    room_id = fields.Str(data_key='id', required=True)
    created = StoreTimestamp(required=True)

    @post_load
    def make_room(self, data, **kwargs):
        return ChatRoom(**data)


class ChatMessageSchema(Schema):
    """메시지의 'timestamp'는 모바일 앱이 밀리초로 저장한 값입니다."""
    class Meta:
        unknown = EXCLUDE

    id = fields.Str(required=True)
    sender_id = fields.Str(data_key='senderId', load_default="Unknown")
    text = fields.Str(load_default="")
    sent_at = StoreTimestamp(data_key='timestamp', required=True)

    @post_load
    def make_message(self, data, **kwargs):
        return ChatMessage(**data)
