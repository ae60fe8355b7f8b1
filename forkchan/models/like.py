# forkchan/models/like.py
from dataclasses import dataclass

@dataclass
class Like:
    """
    Firestore 'likes' 컬렉션의 문서 구조.
    (post_id, user_id) 쌍마다 최대 1개만 존재해야 합니다.
    """
    id: str
    post_id: str
    user_id: str
