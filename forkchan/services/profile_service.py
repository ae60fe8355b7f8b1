# forkchan/services/profile_service.py
import asyncio
import logging
from typing import Any, Dict, Optional

from firebase_admin import auth as firebase_auth

from forkchan.core.errors import NotFound, RemoteUnavailable
from forkchan.core.session import Session
from forkchan.models.user import UserProfile
from forkchan.schemas.user_schema import EmailUpdateSchema, UserProfileSchema, UsernameUpdateSchema
from forkchan.services.image_service import encode_profile_image
from forkchan.services.remote_store import RemoteStore


class ProfileService:
    """
    'users' 컬렉션의 사용자 프로필(사용자명, 이메일, 프로필 이미지)을 관리합니다.
    """
    def __init__(self, store: RemoteStore, config=None, sync_auth_email: bool = True):
        self.store = store
        self.users_collection = 'users'
        self.profile_image_max_dimension = getattr(config, 'PROFILE_IMAGE_MAX_DIMENSION', 500)
        # 메모리 저장소로 동작할 때는 Firebase Auth 계정을 건드리지 않음
        self.sync_auth_email = sync_auth_email

    async def get_profile(self, user_id: str) -> Optional[UserProfile]:
        doc = await self.store.get_document(self.users_collection, user_id)
        if doc is None:
            return None
        return UserProfileSchema().load(doc)

    async def ensure_profile(self, session: Session, email: str = "") -> UserProfile:
        """프로필 문서가 없으면 세션의 표시 이름과 이메일로 새로 만듭니다."""
        user_id = session.require_user()
        profile = await self.get_profile(user_id)
        if profile is not None:
            return profile

        data = {'username': session.display_name, 'email': email, 'profileImage': ""}
        await self.store.set_document(self.users_collection, user_id, data)
        logging.info(f"사용자 프로필 생성 (user_id: {user_id})")
        return UserProfile(user_id=user_id, username=data['username'], email=email)

    async def _update(self, session: Session, partial: Dict[str, Any]):
        user_id = session.require_user()
        try:
            await self.store.update_fields(self.users_collection, user_id, partial)
        except NotFound:
            logging.warning(f"프로필 문서가 없어 새로 생성합니다 (user_id: {user_id})")
            await self.ensure_profile(session)
            await self.store.update_fields(self.users_collection, user_id, partial)

    async def update_username(self, session: Session, username: str) -> str:
        data = UsernameUpdateSchema().load({'username': username})
        await self._update(session, {'username': data['username']})
        return data['username']

    async def update_email(self, session: Session, email: str) -> str:
        """
        이메일을 변경합니다. Firebase Auth 계정의 이메일을 먼저 바꾼 뒤 프로필 문서에 반영합니다.
        이미 다른 계정이 사용하는 이메일이면 ValueError.
        """
        user_id = session.require_user()
        data = EmailUpdateSchema().load({'email': email})

        if self.sync_auth_email:
            try:
                await asyncio.to_thread(firebase_auth.update_user, user_id, email=data['email'])
            except firebase_auth.EmailAlreadyExistsError as e:
                raise ValueError("이미 사용 중인 이메일입니다.") from e
            except firebase_auth.UserNotFoundError as e:
                raise NotFound('auth', user_id) from e
            except ValueError:
                raise
            except Exception as e:
                logging.error(f"Firebase Auth 이메일 변경 실패 (user_id: {user_id}): {e}", exc_info=True)
                raise RemoteUnavailable(f"이메일을 변경하지 못했습니다: {e}") from e

        await self._update(session, {'email': data['email']})
        return data['email']

    async def update_profile_image(self, session: Session, image_bytes: bytes) -> str:
        """이미지를 축소하여 base64로 프로필 문서에 저장하고 저장된 문자열을 반환합니다."""
        session.require_user()
        encoded = encode_profile_image(image_bytes, max_dimension=self.profile_image_max_dimension)
        await self._update(session, {'profileImage': encoded})
        return encoded
