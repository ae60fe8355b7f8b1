# forkchan/models/follow.py
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

@dataclass
class Follow:
    """
    Firestore 'follows' 컬렉션의 문서 구조.
    (follower_id, following_id) 쌍마다 최대 1개만 존재해야 합니다.
    """
    id: str
    follower_id: str
    following_id: str
    created_at: Optional[datetime] = None
