# forkchan/services/remote_store.py
"""
원격 문서 저장소 인터페이스 정의

동기화 계층은 이 Protocol에만 의존하며, 실제 구현은 생성 시 주입됩니다.
- FirestoreRemoteStore: firebase_admin 기반 운영 구현
- InMemoryRemoteStore: 테스트/오프라인 개발용 구현
"""

from dataclasses import dataclass
from enum import Enum
from typing import (Any, AsyncIterator, Callable, Dict, List, Mapping, Optional,
                    Protocol, Sequence, Tuple)

# 읽기 결과 dict에 문서 ID가 담기는 키
DOCUMENT_ID = "id"


class _ServerTimestamp:
    """저장소가 커밋 시점의 시간으로 치환하는 센티넬 값"""

    def __repr__(self):
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


class Direction(Enum):
    ASCENDING = "ASCENDING"
    DESCENDING = "DESCENDING"


@dataclass(frozen=True)
class Filter:
    """동등 비교(==) 필터"""
    field: str
    value: Any


# 트랜잭션 콜백: 읽은 스냅샷(없는 문서는 None)을 받아 (문서별 부분 업데이트, 반환값)을 돌려줍니다.
Snapshots = Dict[str, Optional[Dict[str, Any]]]
MutationFn = Callable[[Snapshots], Tuple[Mapping[str, Mapping[str, Any]], Any]]


class RemoteStore(Protocol):
    """
    원격 저장소 클라이언트가 제공해야 하는 비동기 연산.

    모든 연산은 실패할 수 있으며, 구현체는 오류를 forkchan.core.errors의
    RemoteUnavailable / NotFound / ConflictRetryExhausted로 변환해야 합니다.
    """

    async def create_document(self, collection: str, data: Mapping[str, Any]) -> str:
        """새 문서를 만들고 저장소가 부여한 ID를 반환합니다."""
        ...

    async def set_document(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        """지정한 ID로 문서를 생성하거나 덮어씁니다."""
        ...

    async def get_document(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """문서를 읽습니다. 없으면 None."""
        ...

    async def update_fields(self, collection: str, doc_id: str, partial: Mapping[str, Any]) -> None:
        """일부 필드만 갱신합니다. 문서가 없으면 NotFound."""
        ...

    async def delete_document(self, collection: str, doc_id: str) -> None:
        """문서를 삭제합니다. 문서가 없으면 NotFound."""
        ...

    async def query(self, collection: str, filters: Sequence[Filter] = (),
                    order_by: Optional[str] = None,
                    direction: Direction = Direction.ASCENDING) -> List[Dict[str, Any]]:
        """동등 필터와 단일 정렬로 문서 목록을 조회합니다."""
        ...

    async def run_transaction(self, collection: str, doc_ids: Sequence[str], mutation_fn: MutationFn) -> Any:
        """
        주어진 문서들을 원자적으로 읽고 mutation_fn의 쓰기를 적용합니다.
        쓰기 충돌 시 내부적으로 재시도하며, 한도를 넘으면 ConflictRetryExhausted.
        """
        ...

    def subscribe(self, collection: str, filters: Sequence[Filter] = (),
                  order_by: Optional[str] = None,
                  direction: Direction = Direction.ASCENDING) -> AsyncIterator[List[Dict[str, Any]]]:
        """변경이 있을 때마다 전체 조회 결과를 내보내는 비동기 이터레이터."""
        ...
