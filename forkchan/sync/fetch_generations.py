# forkchan/sync/fetch_generations.py
from collections import defaultdict
from typing import Dict, Hashable


class FetchGenerations:
    """
    리소스별(예: 'posts', ('comments', post_id)) 조회 세대 번호.
    가장 최근에 발급된 세대의 결과만 캐시에 반영하고, 순서가 뒤바뀌어
    늦게 도착한 이전 조회 결과는 버립니다.
    """

    def __init__(self):
        self._latest: Dict[Hashable, int] = defaultdict(int)

    def issue(self, resource: Hashable) -> int:
        self._latest[resource] += 1
        return self._latest[resource]

    def is_current(self, resource: Hashable, generation: int) -> bool:
        return self._latest[resource] == generation

    def latest(self, resource: Hashable) -> int:
        return self._latest[resource]
