# forkchan/services/memory_store.py
"""
메모리 기반 원격 저장소 구현

Firestore와 같은 의미론(서버 타임스탬프, 동등 필터 + 정렬 조회, 낙관적 동시성
트랜잭션, 스냅샷 구독)을 흉내 내며, 테스트에서 네트워크 지연과 실패를 재현하기
위한 훅(fail_next, hold, inject_conflicts)을 제공합니다.
"""

import asyncio
import copy
import itertools
import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Sequence, Tuple

from forkchan.core.errors import ConflictRetryExhausted, NotFound, RemoteUnavailable
from forkchan.services.remote_store import DOCUMENT_ID, SERVER_TIMESTAMP, Direction, Filter, MutationFn
from forkchan.utils.datetime_utils import DateTimeUtils

logger = logging.getLogger(__name__)


@dataclass
class _Record:
    data: Dict[str, Any]
    version: int
    seq: int  # 삽입 순서 (정렬 값이 같을 때 사용)


@dataclass
class _Gate:
    operation: str
    collection: Optional[str]
    event: asyncio.Event = field(default_factory=asyncio.Event)


@dataclass
class _Subscription:
    collection: str
    filters: Tuple[Filter, ...]
    order_by: Optional[str]
    direction: Direction
    queue: asyncio.Queue


class InMemoryRemoteStore:
    """RemoteStore Protocol의 메모리 구현. 하나의 이벤트 루프에서만 사용해야 합니다."""

    def __init__(self, max_attempts: int = 5):
        self.max_attempts = max_attempts
        self.calls: List[Tuple[str, str]] = []
        self._collections: Dict[str, Dict[str, _Record]] = defaultdict(dict)
        self._seq = itertools.count(1)
        self._last_timestamp: Optional[datetime] = None
        self._failures: List[Tuple[str, Optional[str], Exception]] = []
        self._gates: List[_Gate] = []
        self._pending_conflicts = 0
        self._subscriptions: List[_Subscription] = []

    # ------------------------------------------------------------------
    # 테스트 훅
    # ------------------------------------------------------------------
    def fail_next(self, operation: str, collection: Optional[str] = None, error: Optional[Exception] = None):
        """다음 일치하는 연산 한 번을 실패시킵니다. 기본 오류는 RemoteUnavailable."""
        self._failures.append((operation, collection, error or RemoteUnavailable("simulated outage")))

    def hold(self, operation: str, collection: Optional[str] = None) -> asyncio.Event:
        """
        다음 일치하는 연산 한 번을 반환된 이벤트가 set될 때까지 붙잡아 둡니다.
        읽기는 결과를 만든 뒤 응답이 늦게 도착하는 것처럼, 쓰기는 적용 전에 대기합니다.
        """
        gate = _Gate(operation, collection)
        self._gates.append(gate)
        return gate.event

    def inject_conflicts(self, count: int):
        """다음 count번의 트랜잭션 커밋이 다른 클라이언트의 쓰기와 충돌한 것처럼 만듭니다."""
        self._pending_conflicts += count

    def documents(self, collection: str) -> Dict[str, Dict[str, Any]]:
        """테스트 검증용: 컬렉션의 모든 문서를 ID와 함께 반환합니다."""
        return {doc_id: self._with_id(doc_id, record) for doc_id, record in self._collections[collection].items()}

    # ------------------------------------------------------------------
    # 내부 도우미
    # ------------------------------------------------------------------
    @staticmethod
    def _matches(operation: str, collection: Optional[str], op: str, coll: str) -> bool:
        return operation == op and (collection is None or collection == coll)

    def _check_failure(self, op: str, collection: str):
        self.calls.append((op, collection))
        for i, (operation, coll, error) in enumerate(self._failures):
            if self._matches(operation, coll, op, collection):
                del self._failures[i]
                logger.debug(f"모의 실패 주입: {op} {collection} -> {error!r}")
                raise error

    def _claim_gate(self, op: str, collection: str) -> Optional[_Gate]:
        for i, gate in enumerate(self._gates):
            if self._matches(gate.operation, gate.collection, op, collection):
                del self._gates[i]
                return gate
        return None

    async def _wait_gate(self, gate: Optional[_Gate]):
        if gate is not None:
            await gate.event.wait()
        # 모든 원격 호출은 중단 지점이어야 합니다.
        await asyncio.sleep(0)

    def _server_now(self) -> datetime:
        now = DateTimeUtils.now()
        if self._last_timestamp is not None and now <= self._last_timestamp:
            now = self._last_timestamp + timedelta(microseconds=1)
        self._last_timestamp = now
        return now

    def _resolve(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        resolved = {}
        for key, value in data.items():
            if key == DOCUMENT_ID:
                continue
            # Firestore 어댑터와 같이 datetime은 UTC aware로 저장
            resolved[key] = self._server_now() if value is SERVER_TIMESTAMP else DateTimeUtils.for_firestore(copy.deepcopy(value))
        return resolved

    @staticmethod
    def _with_id(doc_id: str, record: _Record) -> Dict[str, Any]:
        result = copy.deepcopy(record.data)
        result[DOCUMENT_ID] = doc_id
        return result

    def _run_query(self, collection: str, filters: Sequence[Filter], order_by: Optional[str],
                   direction: Direction) -> List[Dict[str, Any]]:
        records = [
            (doc_id, record) for doc_id, record in self._collections[collection].items()
            if all(record.data.get(f.field) == f.value for f in filters)
        ]
        records.sort(key=lambda item: item[1].seq)
        if order_by is not None:
            # Firestore와 같이 정렬 필드가 없는 문서는 결과에서 제외
            records = [item for item in records if item[1].data.get(order_by) is not None]
            records.sort(key=lambda item: item[1].data[order_by], reverse=direction is Direction.DESCENDING)
        return [self._with_id(doc_id, record) for doc_id, record in records]

    def _notify(self, collection: str):
        for sub in self._subscriptions:
            if sub.collection == collection:
                sub.queue.put_nowait(self._run_query(sub.collection, sub.filters, sub.order_by, sub.direction))

    def _write(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool):
        existing = self._collections[collection].get(doc_id)
        if existing is not None and merge:
            existing.data.update(data)
            existing.version += 1
        else:
            self._collections[collection][doc_id] = _Record(
                data=data,
                version=(existing.version + 1) if existing else 1,
                seq=existing.seq if existing else next(self._seq),
            )

    # ------------------------------------------------------------------
    # RemoteStore 연산
    # ------------------------------------------------------------------
    async def create_document(self, collection: str, data: Mapping[str, Any]) -> str:
        self._check_failure('create_document', collection)
        await self._wait_gate(self._claim_gate('create_document', collection))
        doc_id = uuid.uuid4().hex[:20]
        self._write(collection, doc_id, self._resolve(data), merge=False)
        self._notify(collection)
        return doc_id

    async def set_document(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        self._check_failure('set_document', collection)
        await self._wait_gate(self._claim_gate('set_document', collection))
        self._write(collection, doc_id, self._resolve(data), merge=False)
        self._notify(collection)

    async def get_document(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        self._check_failure('get_document', collection)
        gate = self._claim_gate('get_document', collection)
        record = self._collections[collection].get(doc_id)
        result = self._with_id(doc_id, record) if record else None
        await self._wait_gate(gate)
        return result

    async def update_fields(self, collection: str, doc_id: str, partial: Mapping[str, Any]) -> None:
        self._check_failure('update_fields', collection)
        await self._wait_gate(self._claim_gate('update_fields', collection))
        if doc_id not in self._collections[collection]:
            raise NotFound(collection, doc_id)
        self._write(collection, doc_id, self._resolve(partial), merge=True)
        self._notify(collection)

    async def delete_document(self, collection: str, doc_id: str) -> None:
        self._check_failure('delete_document', collection)
        await self._wait_gate(self._claim_gate('delete_document', collection))
        if self._collections[collection].pop(doc_id, None) is None:
            raise NotFound(collection, doc_id)
        self._notify(collection)

    async def query(self, collection: str, filters: Sequence[Filter] = (),
                    order_by: Optional[str] = None,
                    direction: Direction = Direction.ASCENDING) -> List[Dict[str, Any]]:
        self._check_failure('query', collection)
        gate = self._claim_gate('query', collection)
        result = self._run_query(collection, filters, order_by, direction)
        await self._wait_gate(gate)
        return result

    async def run_transaction(self, collection: str, doc_ids: Sequence[str], mutation_fn: MutationFn) -> Any:
        self._check_failure('run_transaction', collection)
        await self._wait_gate(self._claim_gate('run_transaction', collection))
        docs = self._collections[collection]

        for attempt in range(1, self.max_attempts + 1):
            versions = {doc_id: docs[doc_id].version if doc_id in docs else 0 for doc_id in doc_ids}
            snapshots = {doc_id: self._with_id(doc_id, docs[doc_id]) if doc_id in docs else None for doc_id in doc_ids}
            writes, result = mutation_fn(snapshots)

            # 읽기와 커밋 사이의 왕복 시간 동안 다른 트랜잭션이 끼어들 수 있음
            await asyncio.sleep(0)

            if self._pending_conflicts > 0:
                self._pending_conflicts -= 1
                conflicted = True
            else:
                conflicted = any((docs[doc_id].version if doc_id in docs else 0) != version
                                 for doc_id, version in versions.items())
            if conflicted:
                logger.debug(f"트랜잭션 충돌, 재시도 {attempt}/{self.max_attempts}: {collection}/{list(doc_ids)}")
                continue

            for doc_id, partial in writes.items():
                self._write(collection, doc_id, self._resolve(partial), merge=True)
            if writes:
                self._notify(collection)
            return result

        raise ConflictRetryExhausted(collection, list(doc_ids), self.max_attempts)

    async def subscribe(self, collection: str, filters: Sequence[Filter] = (),
                        order_by: Optional[str] = None,
                        direction: Direction = Direction.ASCENDING) -> AsyncIterator[List[Dict[str, Any]]]:
        self._check_failure('subscribe', collection)
        sub = _Subscription(collection, tuple(filters), order_by, direction, asyncio.Queue())
        self._subscriptions.append(sub)
        try:
            # 구독 직후 현재 상태를 한 번 내보냄 (Firestore on_snapshot과 동일)
            sub.queue.put_nowait(self._run_query(collection, sub.filters, order_by, direction))
            while True:
                yield await sub.queue.get()
        finally:
            self._subscriptions.remove(sub)
