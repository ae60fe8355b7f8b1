# forkchan/core/errors.py
"""
동기화 계층에서 사용하는 예외 분류.

- Unauthenticated: 로그인 사용자 없이 쓰기를 시도한 경우 (네트워크 호출 전에 실패)
- RemoteUnavailable: 네트워크/백엔드 오류. 낙관적 변경은 롤백되고 캐시는 유지됩니다.
- NotFound: 참조한 문서가 없는 경우. 대부분 호출부에서 무시해도 되는 오류입니다.
- ConflictRetryExhausted: 카운터 트랜잭션이 재시도 후에도 충돌한 경우.
"""


class FeedSyncError(Exception):
    """forkchan 동기화 오류의 기본 클래스"""

    def __init__(self, message: str = "", *, retryable: bool = False):
        super().__init__(message)
        self.message = message
        self.retryable = retryable


class Unauthenticated(FeedSyncError):
    def __init__(self, message: str = "로그인된 사용자가 없습니다."):
        super().__init__(message)


class RemoteUnavailable(FeedSyncError):
    def __init__(self, message: str = "원격 저장소에 연결할 수 없습니다."):
        super().__init__(message, retryable=True)


class NotFound(FeedSyncError):
    def __init__(self, collection: str, doc_id: str):
        super().__init__(f"문서를 찾을 수 없습니다: {collection}/{doc_id}")
        self.collection = collection
        self.doc_id = doc_id


class ConflictRetryExhausted(RemoteUnavailable):
    """호출부에는 RemoteUnavailable로 보이도록 상속합니다."""

    def __init__(self, collection: str, doc_ids, attempts: int):
        super().__init__(f"트랜잭션 충돌 재시도 {attempts}회 초과: {collection}/{', '.join(doc_ids)}")
        self.attempts = attempts
