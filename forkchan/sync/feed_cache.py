# forkchan/sync/feed_cache.py
import logging
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Sequence, Set

from forkchan.models.comment import Comment
from forkchan.models.post import Post

logger = logging.getLogger(__name__)


class FeedCache:
    """
    화면 계층이 읽는 게시글/댓글/좋아요 상태의 메모리 표현.

    - posts: 최신순 (호출부가 정렬해서 넘긴 순서를 그대로 유지)
    - comments: 게시글별, 오래된 순
    - liked_by_me: 현재 사용자가 좋아요한 게시글 ID 집합

    단일 작성자(이벤트 루프) 전제이므로 잠금이 없습니다.
    """

    def __init__(self):
        self._posts: List[Post] = []
        self._index: Dict[str, int] = {}
        self._comments: Dict[str, List[Comment]] = {}
        self._user_posts: Dict[str, List[Post]] = {}
        self._liked: Set[str] = set()
        self._listeners: List[Callable[[str], None]] = []

    # --- 읽기 ---
    @property
    def posts(self) -> List[Post]:
        return list(self._posts)

    def get_post(self, post_id: str) -> Optional[Post]:
        idx = self._index.get(post_id)
        return self._posts[idx] if idx is not None else None

    def comments_for(self, post_id: str) -> List[Comment]:
        return list(self._comments.get(post_id, []))

    def user_posts(self, user_id: str) -> List[Post]:
        return list(self._user_posts.get(user_id, []))

    def is_liked_by_me(self, post_id: str) -> bool:
        return post_id in self._liked

    @property
    def liked_post_ids(self) -> Set[str]:
        return set(self._liked)

    # --- 변경 알림 ---
    def add_listener(self, listener: Callable[[str], None]):
        """변경이 생길 때마다 변경 종류('posts', 'comments:<id>', 'likes:<id>' 등)로 호출됩니다."""
        self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[str], None]):
        self._listeners.remove(listener)

    def _changed(self, what: str):
        for listener in list(self._listeners):
            try:
                listener(what)
            except Exception as e:
                # 화면 쪽 콜백 오류가 캐시 상태를 깨뜨리지 않도록 기록만 함
                logger.error(f"캐시 리스너 오류 ({what}): {e}", exc_info=True)

    # --- 쓰기 ---
    def replace_posts(self, posts: Sequence[Post], fetch_failed: bool = False) -> bool:
        """
        게시글 목록 전체를 교체합니다.
        fetch_failed=True이면 일시적 조회 실패이므로 기존 상태를 유지하고 False를 반환합니다.
        빈 목록 + fetch_failed=False는 정상적인 '게시글 없음' 상태입니다.
        """
        if fetch_failed:
            logger.warning(f"게시글 조회 실패로 캐시를 유지합니다 (현재 {len(self._posts)}개)")
            return False
        self._posts = list(posts)
        self._index = {post.id: i for i, post in enumerate(self._posts)}
        self._changed("posts")
        return True

    def set_comments(self, post_id: str, comments: Sequence[Comment]):
        self._comments[post_id] = list(comments)
        self._changed(f"comments:{post_id}")

    def set_user_posts(self, user_id: str, posts: Sequence[Post]):
        self._user_posts[user_id] = list(posts)
        self._changed(f"user_posts:{user_id}")

    def apply_like_delta(self, post_id: str, delta: int):
        """캐시된 좋아요 수를 delta만큼 조정합니다. 모르는 게시글이면 아무것도 하지 않습니다."""
        idx = self._index.get(post_id)
        if idx is None:
            return
        post = self._posts[idx]
        self._posts[idx] = replace(post, like_count=max(0, post.like_count + delta))
        self._changed(f"likes:{post_id}")

    def set_like_count(self, post_id: str, like_count: int):
        idx = self._index.get(post_id)
        if idx is None:
            return
        self._posts[idx] = replace(self._posts[idx], like_count=max(0, like_count))
        self._changed(f"likes:{post_id}")

    def set_liked_by_me(self, post_id: str, liked: bool):
        if liked:
            self._liked.add(post_id)
        else:
            self._liked.discard(post_id)
        self._changed(f"likes:{post_id}")

    def replace_liked(self, post_ids: Set[str]):
        self._liked = set(post_ids)
        self._changed("likes")

    def remove_post(self, post_id: str):
        """삭제된 게시글과 그 댓글, 좋아요 상태를 캐시에서 제거합니다."""
        if post_id in self._index:
            self._posts = [post for post in self._posts if post.id != post_id]
            self._index = {post.id: i for i, post in enumerate(self._posts)}
        for user_id, posts in self._user_posts.items():
            self._user_posts[user_id] = [post for post in posts if post.id != post_id]
        self._comments.pop(post_id, None)
        self._liked.discard(post_id)
        self._changed("posts")
