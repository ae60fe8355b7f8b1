# forkchan/core/session.py
import logging
from dataclasses import dataclass
from typing import Optional

from firebase_admin import auth as firebase_auth

from forkchan.core.errors import Unauthenticated, RemoteUnavailable


@dataclass(frozen=True)
class Session:
    """
    현재 기기 세션의 사용자 정보.
    모든 쓰기 작업에 명시적으로 전달됩니다.
    """
    user_id: Optional[str]
    display_name: str = "Anonymous"
    avatar_url: str = ""

    @classmethod
    def anonymous(cls) -> "Session":
        return cls(user_id=None)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id)

    def require_user(self) -> str:
        """로그인 사용자의 ID를 반환합니다. 없으면 Unauthenticated를 발생시킵니다."""
        if not self.user_id:
            raise Unauthenticated()
        return self.user_id


def session_from_id_token(id_token: str) -> Session:
    """
    Firebase ID 토큰을 검증하고 표시용 사용자 정보로 Session을 만듭니다.

    :param id_token: 클라이언트 SDK가 발급한 Firebase ID 토큰
    :return: 인증된 Session
    """
    try:
        decoded = firebase_auth.verify_id_token(id_token)
    except (firebase_auth.InvalidIdTokenError, firebase_auth.ExpiredIdTokenError,
            firebase_auth.RevokedIdTokenError) as e:
        logging.warning(f"ID 토큰 검증 실패: {e}")
        raise Unauthenticated(f"유효하지 않은 ID 토큰입니다: {e}") from e
    except ValueError as e:
        raise Unauthenticated(f"ID 토큰 형식이 올바르지 않습니다: {e}") from e

    uid = decoded['uid']
    try:
        user = firebase_auth.get_user(uid)
    except firebase_auth.UserNotFoundError as e:
        raise Unauthenticated(f"Firebase Auth에 없는 사용자입니다 (uid: {uid})") from e
    except Exception as e:
        logging.error(f"Firebase Auth 사용자 조회 실패 (uid: {uid}): {e}", exc_info=True)
        raise RemoteUnavailable(f"사용자 정보를 불러오지 못했습니다: {e}") from e

    return Session(
        user_id=uid,
        display_name=user.display_name or "Anonymous",
        avatar_url=user.photo_url or "",
    )
