# forkchan/services/firestore_service.py
import asyncio
import logging
from typing import Any, AsyncIterator, Callable, Dict, List, Mapping, Optional, Sequence

from firebase_admin import firestore
from google.api_core import exceptions as google_exceptions
from google.cloud.firestore_v1.base_query import FieldFilter

from forkchan.core.errors import ConflictRetryExhausted, FeedSyncError, NotFound, RemoteUnavailable
from forkchan.services.remote_store import DOCUMENT_ID, SERVER_TIMESTAMP, Direction, Filter, MutationFn
from forkchan.utils.datetime_utils import DateTimeUtils


class FirestoreRemoteStore:
    """
    firebase_admin Firestore 클라이언트를 RemoteStore Protocol로 감싼 구현.
    SDK 호출은 블로킹이므로 asyncio.to_thread로 작업 스레드에서 실행하고,
    결과는 호출한 이벤트 루프로 돌아옵니다.
    """

    def __init__(self, db=None, max_attempts: int = 5, watch_check_interval: float = 1.0):
        self.db = db or firestore.client()
        self.max_attempts = max_attempts
        self.watch_check_interval = watch_check_interval

    # --- 변환 도우미 ---
    @staticmethod
    def _prepare(data: Mapping[str, Any]) -> Dict[str, Any]:
        """저장 전: 'id' 키 제거, 서버 타임스탬프 센티넬 치환, datetime UTC 정규화"""
        prepared = {}
        for key, value in data.items():
            if key == DOCUMENT_ID:
                continue
            prepared[key] = firestore.SERVER_TIMESTAMP if value is SERVER_TIMESTAMP else DateTimeUtils.for_firestore(value)
        return prepared

    @staticmethod
    def _to_dict(snapshot) -> Dict[str, Any]:
        data = DateTimeUtils.from_firestore(snapshot.to_dict() or {})
        data[DOCUMENT_ID] = snapshot.id
        return data

    def _build_query(self, collection: str, filters: Sequence[Filter], order_by: Optional[str], direction: Direction):
        query = self.db.collection(collection)
        for f in filters:
            query = query.where(filter=FieldFilter(f.field, "==", f.value))
        if order_by:
            firestore_direction = (firestore.Query.DESCENDING if direction is Direction.DESCENDING
                                   else firestore.Query.ASCENDING)
            query = query.order_by(order_by, direction=firestore_direction)
        return query

    async def _call(self, description: str, fn: Callable, *args) -> Any:
        """블로킹 SDK 호출을 작업 스레드에서 실행하고 오류를 동기화 계층의 예외로 변환합니다."""
        try:
            return await asyncio.to_thread(fn, *args)
        except FeedSyncError:
            raise
        except google_exceptions.Aborted as e:
            raise ConflictRetryExhausted(description, [], self.max_attempts) from e
        except (google_exceptions.GoogleAPIError, OSError) as e:
            logging.error(f"Firestore 호출 실패 ({description}): {e}", exc_info=True)
            raise RemoteUnavailable(f"Firestore 호출 실패 ({description}): {e}") from e

    # --- RemoteStore 연산 ---
    async def create_document(self, collection: str, data: Mapping[str, Any]) -> str:
        def _create():
            doc_ref = self.db.collection(collection).document()
            doc_ref.set(self._prepare(data))
            return doc_ref.id

        doc_id = await self._call(f"create {collection}", _create)
        logging.info(f"Firestore 저장 성공 (Collection: {collection}, Doc ID: {doc_id})")
        return doc_id

    async def set_document(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        await self._call(f"set {collection}/{doc_id}",
                         lambda: self.db.collection(collection).document(doc_id).set(self._prepare(data)))

    async def get_document(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        def _get():
            snapshot = self.db.collection(collection).document(doc_id).get()
            return self._to_dict(snapshot) if snapshot.exists else None

        return await self._call(f"get {collection}/{doc_id}", _get)

    async def update_fields(self, collection: str, doc_id: str, partial: Mapping[str, Any]) -> None:
        try:
            await self._call(f"update {collection}/{doc_id}",
                             lambda: self.db.collection(collection).document(doc_id).update(self._prepare(partial)))
        except RemoteUnavailable as e:
            if isinstance(e.__cause__, google_exceptions.NotFound):
                raise NotFound(collection, doc_id) from e
            raise

    async def delete_document(self, collection: str, doc_id: str) -> None:
        def _delete():
            # Firestore의 delete는 없는 문서에도 성공하므로 먼저 존재를 확인
            doc_ref = self.db.collection(collection).document(doc_id)
            if not doc_ref.get().exists:
                raise NotFound(collection, doc_id)
            doc_ref.delete()

        await self._call(f"delete {collection}/{doc_id}", _delete)

    async def query(self, collection: str, filters: Sequence[Filter] = (),
                    order_by: Optional[str] = None,
                    direction: Direction = Direction.ASCENDING) -> List[Dict[str, Any]]:
        def _query():
            docs = self._build_query(collection, filters, order_by, direction).stream()
            return [self._to_dict(doc) for doc in docs]

        return await self._call(f"query {collection}", _query)

    async def run_transaction(self, collection: str, doc_ids: Sequence[str], mutation_fn: MutationFn) -> Any:
        refs = {doc_id: self.db.collection(collection).document(doc_id) for doc_id in doc_ids}

        @firestore.transactional
        def _in_transaction(transaction):
            snapshots = {}
            for doc_id, ref in refs.items():
                snapshot = ref.get(transaction=transaction)
                snapshots[doc_id] = self._to_dict(snapshot) if snapshot.exists else None

            writes, result = mutation_fn(snapshots)
            for doc_id, partial in writes.items():
                if snapshots.get(doc_id) is None:
                    transaction.set(refs[doc_id], self._prepare(partial))
                else:
                    transaction.update(refs[doc_id], self._prepare(partial))
            return result

        def _run():
            return _in_transaction(self.db.transaction(max_attempts=self.max_attempts))

        try:
            return await self._call(f"transaction {collection}", _run)
        except ValueError as e:
            # 재시도 한도 초과 시 SDK는 마지막 Aborted를 ValueError로 감싸서 던짐
            if isinstance(e.__cause__, google_exceptions.Aborted) or "Failed to commit transaction" in str(e):
                logging.error(f"트랜잭션 재시도 한도 초과 ({collection}/{list(doc_ids)}): {e}")
                raise ConflictRetryExhausted(collection, list(doc_ids), self.max_attempts) from e
            raise

    async def subscribe(self, collection: str, filters: Sequence[Filter] = (),
                        order_by: Optional[str] = None,
                        direction: Direction = Direction.ASCENDING) -> AsyncIterator[List[Dict[str, Any]]]:
        """
        스냅샷마다 문서 목록을 내보냅니다.
        Watch가 RPC 오류로 닫히면 콜백이 더 이상 호출되지 않으므로
        watch_check_interval마다 is_active를 확인해 RemoteUnavailable로 알립니다.
        """
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()

        def _on_snapshot(docs, changes, read_time):
            # Watch 스레드에서 호출되므로 결과나 오류를 이벤트 루프로 넘겨서 처리
            try:
                item = [self._to_dict(doc) for doc in docs]
            except Exception as e:
                logging.error(f"Firestore 스냅샷 변환 실패 (Collection: {collection}): {e}", exc_info=True)
                item = RemoteUnavailable(f"Firestore 스냅샷 처리 실패 ({collection}): {e}")
            loop.call_soon_threadsafe(queue.put_nowait, item)

        query = self._build_query(collection, filters, order_by, direction)
        watch = await self._call(f"subscribe {collection}", query.on_snapshot, _on_snapshot)
        try:
            while True:
                try:
                    item = await asyncio.wait_for(queue.get(), timeout=self.watch_check_interval)
                except asyncio.TimeoutError:
                    if watch.is_active:
                        continue
                    logging.error(f"Firestore 구독이 중단되었습니다 (Collection: {collection})")
                    raise RemoteUnavailable(f"Firestore 구독이 중단되었습니다 ({collection})")
                if isinstance(item, FeedSyncError):
                    raise item
                yield item
        finally:
            watch.unsubscribe()
            logging.info(f"Firestore 구독 해제 (Collection: {collection})")
