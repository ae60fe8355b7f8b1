# forkchan/conftest.py
"""
공용 테스트 픽스처

모든 비동기 시나리오는 테스트 함수 안에서 asyncio.run()으로 실행합니다.
하나의 시나리오는 하나의 이벤트 루프 안에서 끝나야 합니다.
"""

import pytest

from forkchan.core.session import Session
from forkchan.services.memory_store import InMemoryRemoteStore
from forkchan.services.remote_store import SERVER_TIMESTAMP
from forkchan.sync.coordinator import SyncCoordinator


@pytest.fixture
def store():
    return InMemoryRemoteStore(max_attempts=5)


@pytest.fixture
def coordinator(store):
    return SyncCoordinator(store)


@pytest.fixture
def alice():
    return Session(user_id="alice", display_name="Alice", avatar_url="https://example.com/alice.png")


@pytest.fixture
def bob():
    return Session(user_id="bob", display_name="Bob")


@pytest.fixture
def anonymous():
    return Session.anonymous()


@pytest.fixture
def seed_post(store):
    """모바일 앱이 저장하는 형태 그대로 게시글 문서를 만듭니다."""
    async def _seed(user_id="alice", description="hello", like_count=0, comment_count=0, image_url=""):
        return await store.create_document('posts', {
            'userId': user_id,
            'username': user_id.capitalize(),
            'userProfilePicUrl': "",
            'description': description,
            'imageUrl': image_url,
            'createdAt': SERVER_TIMESTAMP,
            'likeCount': like_count,
            'commentCount': comment_count,
        })
    return _seed
