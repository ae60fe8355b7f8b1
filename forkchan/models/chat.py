# forkchan/models/chat.py
from dataclasses import dataclass
from datetime import datetime

@dataclass
class ChatRoom:
    """'chat_rooms' 컬렉션 문서. 방 이름이 문서 ID입니다."""
    room_id: str
    created: datetime

@dataclass
class ChatMessage:
    """'chat_rooms/{room_id}/messages' 하위 컬렉션 문서."""
    id: str
    sender_id: str
    text: str
    sent_at: datetime
    sender_name: str = "Unknown"  # 조회 시 users 컬렉션에서 채워짐
