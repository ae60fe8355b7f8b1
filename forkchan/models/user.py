# forkchan/models/user.py
from dataclasses import dataclass

@dataclass
class UserProfile:
    """
    Firestore 'users' 컬렉션의 문서 구조를 정의하는 데이터클래스.
    문서 ID가 곧 Firebase Auth uid입니다.
    """
    user_id: str
    username: str = ""
    email: str = ""
    profile_image: str = ""  # base64 인라인 이미지
