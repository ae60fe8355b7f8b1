# forkchan/services/follow_service.py
import asyncio
import logging
import weakref
from typing import List

from forkchan.core.errors import FeedSyncError, NotFound
from forkchan.core.session import Session
from forkchan.models.follow import Follow
from forkchan.schemas.relation_schema import FollowSchema
from forkchan.services.remote_store import SERVER_TIMESTAMP, Filter, RemoteStore


class FollowService:
    """
    팔로우 관계를 관리하는 서비스 클래스.
    (follower_id, following_id) 쌍마다 follows 문서는 최대 1개만 유지합니다.
    """
    def __init__(self, store: RemoteStore):
        self.store = store
        self.follows_collection = 'follows'
        # 해당 쌍의 작업이 모두 끝나면 잠금도 사라짐
        self._pair_locks = weakref.WeakValueDictionary()

    def _pair_lock(self, follower_id: str, following_id: str) -> asyncio.Lock:
        lock = self._pair_locks.get((follower_id, following_id))
        if lock is None:
            lock = asyncio.Lock()
            self._pair_locks[(follower_id, following_id)] = lock
        return lock

    async def _find(self, follower_id: str, following_id: str) -> List[dict]:
        return await self.store.query(self.follows_collection, [
            Filter('followerId', follower_id),
            Filter('followingId', following_id),
        ])

    async def is_following(self, session: Session, target_user_id: str) -> bool:
        user_id = session.require_user()
        return bool(await self._find(user_id, target_user_id))

    async def follow(self, session: Session, target_user_id: str) -> bool:
        """
        대상 사용자를 팔로우합니다. 새로 팔로우했으면 True, 이미 팔로우 중이면 False.
        """
        user_id = session.require_user()
        if user_id == target_user_id:
            raise ValueError("자기 자신은 팔로우할 수 없습니다.")

        lock = self._pair_lock(user_id, target_user_id)
        try:
            async with lock:
                if await self._find(user_id, target_user_id):
                    logging.info(f"이미 팔로우 중입니다 ({user_id} -> {target_user_id})")
                    return False
                await self.store.create_document(self.follows_collection, {
                    'followerId': user_id,
                    'followingId': target_user_id,
                    'createdAt': SERVER_TIMESTAMP,
                })
        except FeedSyncError as e:
            logging.error(f"팔로우 실패 ({user_id} -> {target_user_id}): {e}", exc_info=True)
            raise
        return True

    async def unfollow(self, session: Session, target_user_id: str) -> bool:
        """팔로우를 취소합니다. 팔로우 관계가 없었으면 False."""
        user_id = session.require_user()
        lock = self._pair_lock(user_id, target_user_id)
        removed = 0
        try:
            async with lock:
                for doc in await self._find(user_id, target_user_id):
                    try:
                        await self.store.delete_document(self.follows_collection, doc['id'])
                        removed += 1
                    except NotFound:
                        logging.info(f"이미 삭제된 팔로우 문서입니다: {doc['id']}")
        except FeedSyncError as e:
            logging.error(f"언팔로우 실패 ({user_id} -> {target_user_id}): {e}", exc_info=True)
            raise
        return removed > 0

    async def fetch_followers(self, user_id: str) -> List[Follow]:
        """user_id를 팔로우하는 관계 목록"""
        docs = await self.store.query(self.follows_collection, [Filter('followingId', user_id)])
        return FollowSchema(many=True).load(docs)

    async def fetch_following(self, user_id: str) -> List[Follow]:
        """user_id가 팔로우하는 관계 목록"""
        docs = await self.store.query(self.follows_collection, [Filter('followerId', user_id)])
        return FollowSchema(many=True).load(docs)
