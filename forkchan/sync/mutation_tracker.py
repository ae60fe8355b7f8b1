# forkchan/sync/mutation_tracker.py
import itertools
from dataclasses import dataclass
from typing import Dict, Optional, Set


@dataclass(frozen=True)
class PendingMutation:
    intended_liked: bool
    token: int


class MutationTracker:
    """
    진행 중인 좋아요/좋아요 취소의 '의도한 최종 상태'를 게시글별로 기록합니다.
    쓰기 응답 전에 도착한 오래된 조회 결과가 사용자의 동작을 되돌리지 않도록 하는 용도입니다.
    """

    def __init__(self):
        self._pending: Dict[str, PendingMutation] = {}
        self._tokens = itertools.count(1)

    def begin_mutation(self, post_id: str, intended_liked: bool) -> int:
        """새 토큰을 발급하고 기존 의도를 덮어씁니다."""
        token = next(self._tokens)
        self._pending[post_id] = PendingMutation(intended_liked, token)
        return token

    def end_mutation(self, post_id: str, token: int) -> bool:
        """
        token이 가장 최근 begin_mutation의 것일 때만 기록을 지웁니다.
        더 새로운 변경이 진행 중이면 False를 반환하고 그대로 둡니다.
        """
        pending = self._pending.get(post_id)
        if pending is None or pending.token != token:
            return False
        del self._pending[post_id]
        return True

    def is_pending(self, post_id: str) -> bool:
        return post_id in self._pending

    def is_latest(self, post_id: str, token: int) -> bool:
        pending = self._pending.get(post_id)
        return pending is not None and pending.token == token

    def intended_state(self, post_id: str) -> Optional[bool]:
        pending = self._pending.get(post_id)
        return pending.intended_liked if pending else None

    def pending_post_ids(self) -> Set[str]:
        return set(self._pending)
