# forkchan/services/chat_service.py
import logging
from typing import AsyncIterator, Dict, List, Optional

from forkchan.core.session import Session
from forkchan.models.chat import ChatMessage, ChatRoom
from forkchan.schemas.chat_schema import (
    ChatMessageCreateSchema, ChatMessageSchema, ChatRoomCreateSchema, ChatRoomSchema,
)
from forkchan.services.remote_store import Direction, RemoteStore
from forkchan.utils.datetime_utils import DateTimeUtils


class ChatService:
    """
    채팅방과 메시지를 관리하는 서비스 클래스.
    채팅방 이름이 문서 ID이며 메시지는 'chat_rooms/{room_id}/messages' 하위 컬렉션에 저장됩니다.
    모바일 앱과 호환되도록 시간 값은 밀리초 정수로 저장합니다.
    """
    def __init__(self, store: RemoteStore):
        self.store = store
        self.rooms_collection = 'chat_rooms'
        self.users_collection = 'users'

    def _messages_collection(self, room_id: str) -> str:
        return f"{self.rooms_collection}/{room_id}/messages"

    async def create_room(self, name: str) -> ChatRoom:
        """채팅방을 만듭니다. 같은 이름의 방이 이미 있으면 기존 방을 그대로 반환합니다."""
        data = ChatRoomCreateSchema().load({'name': name})
        room_id = data['name']

        existing = await self.store.get_document(self.rooms_collection, room_id)
        if existing is not None:
            logging.info(f"이미 존재하는 채팅방입니다: {room_id}")
            return ChatRoomSchema().load(existing)

        created = DateTimeUtils.to_timestamp_ms(DateTimeUtils.now())
        await self.store.set_document(self.rooms_collection, room_id, {'created': created})
        logging.info(f"채팅방 생성: {room_id}")
        return ChatRoom(room_id=room_id, created=DateTimeUtils.from_timestamp_ms(created))

    async def list_rooms(self) -> List[ChatRoom]:
        docs = await self.store.query(self.rooms_collection, order_by='created', direction=Direction.ASCENDING)
        return ChatRoomSchema(many=True).load(docs)

    async def send_message(self, session: Session, room_id: str, text: str) -> str:
        user_id = session.require_user()
        data = ChatMessageCreateSchema().load({'text': text})
        message = {
            'senderId': user_id,
            'text': data['text'],
            'timestamp': DateTimeUtils.to_timestamp_ms(DateTimeUtils.now()),
        }
        return await self.store.create_document(self._messages_collection(room_id), message)

    async def _resolve_sender_names(self, messages: List[ChatMessage],
                                    names: Optional[Dict[str, str]] = None) -> List[ChatMessage]:
        """users 컬렉션에서 보낸 사람 이름을 채웁니다. 프로필이 없으면 'Unknown'."""
        names = {} if names is None else names
        for message in messages:
            if message.sender_id not in names:
                profile = await self.store.get_document(self.users_collection, message.sender_id)
                names[message.sender_id] = (profile or {}).get('username') or "Unknown"
            message.sender_name = names[message.sender_id]
        return messages

    async def fetch_messages(self, room_id: str) -> List[ChatMessage]:
        """방의 메시지를 보낸 시간 오름차순으로 조회합니다."""
        docs = await self.store.query(self._messages_collection(room_id), order_by='timestamp',
                                      direction=Direction.ASCENDING)
        return await self._resolve_sender_names(ChatMessageSchema(many=True).load(docs))

    async def watch_messages(self, room_id: str) -> AsyncIterator[List[ChatMessage]]:
        """새 메시지가 올 때마다 전체 메시지 목록을 내보냅니다."""
        names: Dict[str, str] = {}
        async for docs in self.store.subscribe(self._messages_collection(room_id), order_by='timestamp',
                                               direction=Direction.ASCENDING):
            yield await self._resolve_sender_names(ChatMessageSchema(many=True).load(docs), names)
