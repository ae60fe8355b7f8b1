# forkchan/sync/coordinator.py
import asyncio
import logging
import weakref
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, Hashable, List, Optional, Sequence, Set, Tuple

from marshmallow import Schema, ValidationError

from forkchan.core.errors import FeedSyncError, NotFound
from forkchan.core.session import Session
from forkchan.models.comment import Comment
from forkchan.models.post import Post
from forkchan.schemas.comment_schema import CommentCreateSchema, CommentSchema
from forkchan.schemas.post_schema import PostCreateSchema, PostSchema
from forkchan.schemas.relation_schema import LikeSchema
from forkchan.services.image_service import encode_post_image
from forkchan.services.remote_store import SERVER_TIMESTAMP, Direction, Filter, RemoteStore
from forkchan.sync.feed_cache import FeedCache
from forkchan.sync.fetch_generations import FetchGenerations
from forkchan.sync.mutation_tracker import MutationTracker

logger = logging.getLogger(__name__)

POSTS_RESOURCE = "posts"


class PostState(Enum):
    """게시글 작성 진행 상태"""
    IDLE = "IDLE"
    LOADING = "LOADING"
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"


@dataclass(frozen=True)
class PostStatus:
    state: PostState
    message: Optional[str] = None


class SyncCoordinator:
    """
    게시글/댓글/좋아요에 대해 원격 저장소와 통신하는 유일한 구성 요소.
    모든 읽기/쓰기는 FeedCache와 MutationTracker를 거쳐 반영됩니다.

    모든 메서드는 하나의 이벤트 루프에서 실행되어야 하며, 캐시는 그 루프에서만 변경됩니다.
    """

    def __init__(self, store: RemoteStore, cache: Optional[FeedCache] = None,
                 tracker: Optional[MutationTracker] = None, config=None):
        self.store = store
        self.cache = cache or FeedCache()
        self.tracker = tracker or MutationTracker()
        self.generations = FetchGenerations()
        self.cascade_delete_likes = getattr(config, 'CASCADE_DELETE_LIKES', True)
        self.image_max_kb = getattr(config, 'IMAGE_MAX_KB', 200)
        self.post_status = PostStatus(PostState.IDLE)

        self.posts_collection = 'posts'
        self.comments_collection = 'comments'
        self.likes_collection = 'likes'

        # 대기 중이거나 실행 중인 토글이 없으면 잠금은 자동으로 사라짐
        self._post_locks = weakref.WeakValueDictionary()
        # 서버가 확인해 준 마지막 (좋아요 여부, 좋아요 수). 롤백 기준이며 게시글이 캐시에 없으면 수는 None
        self._settled: Dict[str, Tuple[bool, Optional[int]]] = {}
        self._error_listeners: List[Callable[[FeedSyncError], None]] = []

    # =====================================================================
    # 오류 알림
    # =====================================================================
    def add_error_listener(self, listener: Callable[[FeedSyncError], None]):
        """화면 계층에 사용자에게 보여줄 비치명적 오류를 전달하는 콜백을 등록합니다."""
        self._error_listeners.append(listener)

    def _surface(self, error: FeedSyncError):
        for listener in list(self._error_listeners):
            try:
                listener(error)
            except Exception as e:
                logger.error(f"오류 리스너 실행 실패: {e}", exc_info=True)

    # =====================================================================
    # 변환 도우미
    # =====================================================================
    @staticmethod
    def _load_many(schema: Schema, docs: Sequence[Dict[str, Any]]) -> list:
        """형식이 깨진 문서는 건너뛰고 나머지만 변환합니다."""
        items = []
        for doc in docs:
            try:
                items.append(schema.load(doc))
            except ValidationError as e:
                logger.warning(f"문서 변환 실패로 건너뜀 (id: {doc.get('id')}): {e.messages}")
        return items

    def _merge_pending(self, posts: List[Post]) -> List[Post]:
        """진행 중인 좋아요 변경이 있는 게시글은 캐시의 낙관적 좋아요 수를 유지합니다."""
        pending = self.tracker.pending_post_ids()
        if not pending:
            return posts
        merged = []
        for post in posts:
            cached = self.cache.get_post(post.id) if post.id in pending else None
            merged.append(replace(post, like_count=cached.like_count) if cached else post)
        return merged

    def _apply_posts(self, generation: int, posts: List[Post], liked: Optional[Set[str]]) -> bool:
        """조회 완료 경로. 일회성 조회와 구독 스냅샷 모두 이곳을 거칩니다."""
        if not self.generations.is_current(POSTS_RESOURCE, generation):
            logger.debug(f"오래된 게시글 조회 결과 폐기 (세대 {generation} < {self.generations.latest(POSTS_RESOURCE)})")
            return False

        self.cache.replace_posts(self._merge_pending(posts))
        if liked is not None:
            liked = set(liked)
            for post_id in self.tracker.pending_post_ids():
                if self.tracker.intended_state(post_id):
                    liked.add(post_id)
                else:
                    liked.discard(post_id)
            self.cache.replace_liked(liked)
        return True

    def _apply_comments(self, post_id: str, generation: int, comments: List[Comment]) -> bool:
        resource = ('comments', post_id)
        if not self.generations.is_current(resource, generation):
            logger.debug(f"오래된 댓글 조회 결과 폐기 (post_id: {post_id}, 세대 {generation})")
            return False
        self.cache.set_comments(post_id, comments)
        return True

    # =====================================================================
    # 조회
    # =====================================================================
    async def fetch_posts(self, session: Optional[Session] = None) -> List[Post]:
        """
        전체 게시글을 최신순으로 조회하고, 로그인 상태면 내 좋아요 목록도 함께 반영합니다.
        실패 시 캐시는 그대로 두고 재시도 가능한 오류를 발생시킵니다.
        """
        generation = self.generations.issue(POSTS_RESOURCE)
        try:
            docs = await self.store.query(self.posts_collection, order_by='createdAt', direction=Direction.DESCENDING)
            liked = None
            if session is not None and session.is_authenticated:
                like_docs = await self.store.query(self.likes_collection, [Filter('userId', session.user_id)])
                liked = {like.post_id for like in self._load_many(LikeSchema(), like_docs)}
        except FeedSyncError as e:
            self.cache.replace_posts([], fetch_failed=True)
            logger.error(f"게시글 목록 조회 실패: {e}")
            self._surface(e)
            raise

        self._apply_posts(generation, self._load_many(PostSchema(), docs), liked)
        return self.cache.posts

    async def fetch_user_posts(self, user_id: str) -> List[Post]:
        """특정 사용자가 작성한 게시글을 최신순으로 조회합니다."""
        resource = ('user_posts', user_id)
        generation = self.generations.issue(resource)
        try:
            docs = await self.store.query(self.posts_collection, [Filter('userId', user_id)],
                                          order_by='createdAt', direction=Direction.DESCENDING)
        except FeedSyncError as e:
            logger.error(f"사용자 게시글 조회 실패 (user_id: {user_id}): {e}")
            self._surface(e)
            raise

        if self.generations.is_current(resource, generation):
            self.cache.set_user_posts(user_id, self._merge_pending(self._load_many(PostSchema(), docs)))
        return self.cache.user_posts(user_id)

    async def fetch_comments(self, post_id: str) -> List[Comment]:
        """게시글의 댓글을 작성 시간 오름차순으로 조회합니다."""
        generation = self.generations.issue(('comments', post_id))
        try:
            docs = await self.store.query(self.comments_collection, [Filter('postId', post_id)],
                                          order_by='createdAt', direction=Direction.ASCENDING)
        except FeedSyncError as e:
            logger.error(f"댓글 목록 조회 실패 (post_id: {post_id}): {e}")
            self._surface(e)
            raise

        self._apply_comments(post_id, generation, self._load_many(CommentSchema(), docs))
        return self.cache.comments_for(post_id)

    async def check_liked(self, session: Session, post_id: str) -> bool:
        """원격 저장소 기준으로 현재 사용자가 게시글을 좋아요했는지 확인합니다."""
        user_id = session.require_user()
        try:
            docs = await self.store.query(self.likes_collection,
                                          [Filter('postId', post_id), Filter('userId', user_id)])
        except FeedSyncError as e:
            logger.error(f"좋아요 여부 확인 실패 (post_id: {post_id}): {e}")
            self._surface(e)
            raise

        liked = bool(docs)
        if not self.tracker.is_pending(post_id):
            self.cache.set_liked_by_me(post_id, liked)
        return liked

    async def _refresh_posts(self, session: Optional[Session]):
        """쓰기 성공 후 전체 게시글을 다시 불러옵니다. 실패는 리스너로 이미 전달됩니다."""
        try:
            await self.fetch_posts(session)
        except FeedSyncError as e:
            logger.warning(f"쓰기 후 게시글 갱신 실패: {e}")

    async def _refresh_comments(self, post_id: str):
        try:
            await self.fetch_comments(post_id)
        except FeedSyncError as e:
            logger.warning(f"쓰기 후 댓글 갱신 실패 (post_id: {post_id}): {e}")

    # =====================================================================
    # 카운터 트랜잭션
    # =====================================================================
    async def _bump_counter(self, post_id: str, field: str, delta: int) -> Optional[int]:
        """
        읽기-수정-쓰기 트랜잭션으로 게시글 카운터를 조정하고 새 값을 반환합니다.
        게시글이 없으면 아무것도 쓰지 않고 None을 반환합니다.
        """
        def _mutate(snapshots):
            snapshot = snapshots.get(post_id)
            if snapshot is None:
                return {}, None
            new_value = max(0, int(snapshot.get(field) or 0) + delta)
            return {post_id: {field: new_value}}, new_value

        return await self.store.run_transaction(self.posts_collection, [post_id], _mutate)

    async def _compensate(self, description: str, action):
        """앞 단계가 실패했을 때 이미 적용된 쓰기를 되돌립니다."""
        try:
            await action()
        except FeedSyncError as e:
            logger.error(f"보상 작업 실패 ({description}): {e}", exc_info=True)

    async def _delete_if_exists(self, collection: str, doc_id: str) -> bool:
        try:
            await self.store.delete_document(collection, doc_id)
            return True
        except NotFound:
            logger.info(f"이미 삭제된 문서입니다: {collection}/{doc_id}")
            return False

    # =====================================================================
    # 게시글 작성
    # =====================================================================
    async def create_post(self, session: Session, description: str, image_payload: str = "") -> str:
        """새 게시글을 작성하고 목록을 갱신합니다. 생성된 게시글 ID를 반환합니다."""
        user_id = session.require_user()
        data = PostCreateSchema().load({'description': description, 'image_url': image_payload or ""})

        self.post_status = PostStatus(PostState.LOADING)
        document = {
            'userId': user_id,
            'username': session.display_name,
            'userProfilePicUrl': session.avatar_url,
            'description': data['description'],
            'imageUrl': data['image_url'],
            'createdAt': SERVER_TIMESTAMP,
            'likeCount': 0,
            'commentCount': 0,
        }
        try:
            post_id = await self.store.create_document(self.posts_collection, document)
        except FeedSyncError as e:
            self.post_status = PostStatus(PostState.ERROR, e.message)
            logger.error(f"게시글 생성 실패 (user_id: {user_id}): {e}", exc_info=True)
            self._surface(e)
            raise

        self.post_status = PostStatus(PostState.SUCCESS)
        logger.info(f"게시글 생성 완료 (post_id: {post_id}, user_id: {user_id})")
        await self._refresh_posts(session)
        return post_id

    async def create_post_from_image(self, session: Session, description: str, image_bytes: bytes) -> str:
        """원본 이미지를 IMAGE_MAX_KB 이하의 JPEG로 압축해 인라인 이미지 게시글을 작성합니다."""
        session.require_user()
        payload = encode_post_image(image_bytes, max_kb=self.image_max_kb)
        return await self.create_post(session, description, payload)

    # =====================================================================
    # 좋아요 토글
    # =====================================================================
    async def toggle_like(self, session: Session, post_id: str) -> bool:
        """
        좋아요를 토글합니다. 캐시는 네트워크 호출 전에 낙관적으로 갱신되고,
        쓰기가 실패하면 마지막으로 확인된 상태로 되돌립니다.
        사용자가 의도한 최종 좋아요 상태를 반환합니다.
        """
        user_id = session.require_user()

        was_liked = self.cache.is_liked_by_me(post_id)
        intended = not was_liked
        if not self.tracker.is_pending(post_id):
            cached = self.cache.get_post(post_id)
            self._settled[post_id] = (was_liked, cached.like_count if cached else None)
        token = self.tracker.begin_mutation(post_id, intended)
        self.cache.set_liked_by_me(post_id, intended)
        self.cache.apply_like_delta(post_id, 1 if intended else -1)

        # 같은 게시글에 대한 쓰기는 순서대로 실행해야 좋아요 문서가 중복되지 않음
        lock = self._post_lock(post_id)
        try:
            async with lock:
                await self._write_like(post_id, user_id, intended)
        except NotFound:
            logger.warning(f"좋아요 대상 게시글이 삭제되었습니다 (post_id: {post_id})")
            self.tracker.end_mutation(post_id, token)
            self._settled.pop(post_id, None)
            self.cache.remove_post(post_id)
            return False
        except FeedSyncError as e:
            self._rollback_like(post_id, token)
            logger.error(f"좋아요 토글 실패 (user_id: {user_id}, post_id: {post_id}): {e}")
            self._surface(e)
            raise

        self._confirm_like(post_id, intended)
        if self.tracker.end_mutation(post_id, token):
            self._settled.pop(post_id, None)
        await self._refresh_posts(session)
        return intended

    def _post_lock(self, post_id: str) -> asyncio.Lock:
        lock = self._post_locks.get(post_id)
        if lock is None:
            lock = asyncio.Lock()
            self._post_locks[post_id] = lock
        return lock

    def _confirm_like(self, post_id: str, liked: bool):
        """성공한 쓰기를 롤백 기준에 반영합니다. 서버 카운터와 같이 0 아래로 내려가지 않습니다."""
        settled_liked, settled_count = self._settled.get(post_id, (liked, None))
        if settled_count is not None and settled_liked != liked:
            settled_count = max(0, settled_count + (1 if liked else -1))
        self._settled[post_id] = (liked, settled_count)

    def _rollback_like(self, post_id: str, token: int):
        if not self.tracker.is_latest(post_id, token):
            # 더 최근의 토글이 캐시 상태를 결정하므로 되돌리지 않음
            return
        self.tracker.end_mutation(post_id, token)
        current = self.cache.is_liked_by_me(post_id)
        target, count = self._settled.pop(post_id, (not current, None))
        if current != target:
            self.cache.set_liked_by_me(post_id, target)
        if count is not None:
            # 낙관적 증감은 0에서 잘리므로 역으로 적용하지 않고 확인된 값을 그대로 복원
            self.cache.set_like_count(post_id, count)
        elif current != target:
            self.cache.apply_like_delta(post_id, 1 if target else -1)

    async def _write_like(self, post_id: str, user_id: str, intended: bool):
        """
        좋아요 쓰기 프로토콜:
        1. (post_id, user_id) 좋아요 문서 조회
        2. 없고 의도가 '좋아요'면 문서 생성 후 likeCount +1 트랜잭션
        3. 있고 의도가 '취소'면 문서 삭제 후 likeCount -1 트랜잭션
        4. 이미 의도한 상태면 아무것도 하지 않음
        """
        existing = await self.store.query(self.likes_collection,
                                          [Filter('postId', post_id), Filter('userId', user_id)])

        if intended and not existing:
            like_id = await self.store.create_document(self.likes_collection, {'postId': post_id, 'userId': user_id})
            try:
                new_count = await self._bump_counter(post_id, 'likeCount', 1)
            except FeedSyncError:
                await self._compensate(f"좋아요 문서 삭제 {like_id}",
                                       lambda: self._delete_if_exists(self.likes_collection, like_id))
                raise
            if new_count is None:
                await self._compensate(f"고아 좋아요 문서 삭제 {like_id}",
                                       lambda: self._delete_if_exists(self.likes_collection, like_id))
                raise NotFound(self.posts_collection, post_id)

        elif not intended and existing:
            deleted = 0
            for like_doc in existing:
                if await self._delete_if_exists(self.likes_collection, like_doc['id']):
                    deleted += 1
            if deleted:
                try:
                    new_count = await self._bump_counter(post_id, 'likeCount', -deleted)
                except FeedSyncError:
                    await self._compensate(f"좋아요 문서 복구 {post_id}", lambda: self.store.create_document(
                        self.likes_collection, {'postId': post_id, 'userId': user_id}))
                    raise
                if new_count is None:
                    raise NotFound(self.posts_collection, post_id)

        else:
            logger.info(f"좋아요 상태가 이미 반영되어 있습니다 (post_id: {post_id}, liked: {intended})")

    # =====================================================================
    # 댓글 작성
    # =====================================================================
    async def add_comment(self, session: Session, post_id: str, text: str) -> Optional[str]:
        """
        댓글을 작성하고 commentCount를 트랜잭션으로 1 증가시킨 뒤 댓글과 게시글을 다시 불러옵니다.
        게시글이 이미 삭제되었다면 작성한 댓글을 지우고 None을 반환합니다.
        """
        user_id = session.require_user()
        data = CommentCreateSchema().load({'text': text})

        document = {
            'postId': post_id,
            'userId': user_id,
            'username': session.display_name,
            'userProfilePicUrl': session.avatar_url,
            'text': data['text'],
            'createdAt': SERVER_TIMESTAMP,
        }
        try:
            comment_id = await self.store.create_document(self.comments_collection, document)
            try:
                new_count = await self._bump_counter(post_id, 'commentCount', 1)
            except FeedSyncError:
                await self._compensate(f"댓글 삭제 {comment_id}",
                                       lambda: self._delete_if_exists(self.comments_collection, comment_id))
                raise
        except FeedSyncError as e:
            logger.error(f"댓글 작성 실패 (post_id: {post_id}): {e}", exc_info=True)
            self._surface(e)
            raise

        if new_count is None:
            logger.warning(f"댓글을 작성할 게시글이 존재하지 않습니다 (post_id: {post_id})")
            await self._compensate(f"고아 댓글 삭제 {comment_id}",
                                   lambda: self._delete_if_exists(self.comments_collection, comment_id))
            self.cache.remove_post(post_id)
            return None

        await self._refresh_comments(post_id)
        await self._refresh_posts(session)
        return comment_id

    # =====================================================================
    # 게시글 삭제
    # =====================================================================
    async def delete_post(self, session: Session, post_id: str) -> bool:
        """
        작성자 본인의 게시글을 삭제합니다. 댓글(및 설정 시 좋아요)을 먼저 모두 지운 뒤 게시글을 삭제합니다.
        이미 없는 게시글이면 False를 반환합니다.
        """
        user_id = session.require_user()
        try:
            post_doc = await self.store.get_document(self.posts_collection, post_id)
            if post_doc is None:
                logger.warning(f"삭제할 게시글이 이미 없습니다 (post_id: {post_id})")
                self.cache.remove_post(post_id)
                return False
            if post_doc.get('userId') != user_id:
                raise PermissionError("본인이 작성한 게시글만 삭제할 수 있습니다.")

            comments = await self.store.query(self.comments_collection, [Filter('postId', post_id)])
            for comment in comments:
                await self._delete_if_exists(self.comments_collection, comment['id'])

            if self.cascade_delete_likes:
                likes = await self.store.query(self.likes_collection, [Filter('postId', post_id)])
                for like in likes:
                    await self._delete_if_exists(self.likes_collection, like['id'])

            await self._delete_if_exists(self.posts_collection, post_id)
        except FeedSyncError as e:
            logger.error(f"게시글 삭제 실패 (post_id: {post_id}): {e}", exc_info=True)
            self._surface(e)
            raise

        logger.info(f"게시글 삭제 완료 (post_id: {post_id}, 댓글 {len(comments)}개)")
        self.cache.remove_post(post_id)
        await self._refresh_posts(session)
        return True

    # =====================================================================
    # 카운터 재계산
    # =====================================================================
    async def recount_post(self, post_id: str) -> Optional[Tuple[int, int]]:
        """
        likes/comments 컬렉션을 기준으로 게시글의 비정규화 카운터를 다시 계산해 저장합니다.
        (likeCount, commentCount)를 반환하며, 게시글이 없으면 None.
        """
        try:
            likes = await self.store.query(self.likes_collection, [Filter('postId', post_id)])
            comments = await self.store.query(self.comments_collection, [Filter('postId', post_id)])
            # 같은 사용자의 중복 좋아요는 하나로 셈
            like_count = len({like.get('userId') for like in likes})
            comment_count = len(comments)

            def _mutate(snapshots):
                if snapshots.get(post_id) is None:
                    return {}, None
                return {post_id: {'likeCount': like_count, 'commentCount': comment_count}}, (like_count, comment_count)

            result = await self.store.run_transaction(self.posts_collection, [post_id], _mutate)
        except FeedSyncError as e:
            logger.error(f"카운터 재계산 실패 (post_id: {post_id}): {e}", exc_info=True)
            self._surface(e)
            raise

        if result is not None:
            logger.info(f"카운터 재계산 완료 (post_id: {post_id}): likes={result[0]}, comments={result[1]}")
        return result

    # =====================================================================
    # 실시간 구독
    # =====================================================================
    async def watch_posts(self, session: Optional[Session] = None):
        """
        게시글 컬렉션을 구독하여 스냅샷마다 조회 완료 경로로 반영합니다. 취소될 때까지 실행됩니다.
        로그인 상태면 스냅샷마다 내 좋아요 목록도 다시 읽습니다.
        """
        try:
            async for docs in self.store.subscribe(self.posts_collection, order_by='createdAt',
                                                   direction=Direction.DESCENDING):
                generation = self.generations.issue(POSTS_RESOURCE)
                liked = None
                if session is not None and session.is_authenticated:
                    like_docs = await self.store.query(self.likes_collection, [Filter('userId', session.user_id)])
                    liked = {like.post_id for like in self._load_many(LikeSchema(), like_docs)}
                self._apply_posts(generation, self._load_many(PostSchema(), docs), liked)
        except FeedSyncError as e:
            logger.error(f"게시글 구독 실패: {e}")
            self._surface(e)
            raise

    async def watch_comments(self, post_id: str):
        """게시글 하나의 댓글을 구독합니다."""
        resource: Hashable = ('comments', post_id)
        try:
            async for docs in self.store.subscribe(self.comments_collection, [Filter('postId', post_id)],
                                                   order_by='createdAt', direction=Direction.ASCENDING):
                generation = self.generations.issue(resource)
                self._apply_comments(post_id, generation, self._load_many(CommentSchema(), docs))
        except FeedSyncError as e:
            logger.error(f"댓글 구독 실패 (post_id: {post_id}): {e}")
            self._surface(e)
            raise
