# forkchan/models/post.py
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

REMOTE_IMAGE_SCHEMES = ('http://', 'https://')


def is_remote_reference(payload: Optional[str]) -> bool:
    """URL 스킴으로 시작하면 원격 참조, 그 외에는 base64 인라인 이미지로 취급합니다."""
    return bool(payload) and payload.startswith(REMOTE_IMAGE_SCHEMES)


@dataclass
class Post:
    """
    Firestore 'posts' 컬렉션의 문서 구조를 정의하는 데이터클래스.
    like_count / comment_count는 원격 저장소에서만 권위 있는 값입니다.
    """
    id: str
    user_id: str
    username: str = "Anonymous"
    user_profile_pic_url: str = ""
    description: str = ""
    image_url: str = ""  # base64 인라인 이미지 또는 원격 URL
    created_at: Optional[datetime] = None
    like_count: int = 0
    comment_count: int = 0

    @property
    def has_remote_image(self) -> bool:
        return is_remote_reference(self.image_url)

    @property
    def has_inline_image(self) -> bool:
        return bool(self.image_url) and not self.has_remote_image
