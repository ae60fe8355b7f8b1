# forkchan/core/test_core.py
"""
세션 / 오류 / 설정 / 클라이언트 팩토리 테스트

사용법: python -m pytest forkchan/core/test_core.py -v
"""

from types import SimpleNamespace

import pytest
from firebase_admin import auth as firebase_auth

from forkchan import create_client
from forkchan.core import session as session_module
from forkchan.core.config import TestingConfig, config_by_name
from forkchan.core.errors import ConflictRetryExhausted, RemoteUnavailable, Unauthenticated
from forkchan.core.session import Session, session_from_id_token
from forkchan.services.memory_store import InMemoryRemoteStore


def test_session_require_user():
    assert Session(user_id="alice").require_user() == "alice"
    assert Session(user_id="alice").display_name == "Anonymous"

    anonymous = Session.anonymous()
    assert not anonymous.is_authenticated
    with pytest.raises(Unauthenticated):
        anonymous.require_user()


def test_session_from_valid_token(monkeypatch):
    monkeypatch.setattr(session_module.firebase_auth, 'verify_id_token', lambda token: {'uid': "u1"})
    monkeypatch.setattr(session_module.firebase_auth, 'get_user',
                        lambda uid: SimpleNamespace(display_name="User One", photo_url=None))

    session = session_from_id_token("token")
    assert session == Session(user_id="u1", display_name="User One", avatar_url="")


def test_session_from_invalid_token(monkeypatch):
    def reject(token):
        raise firebase_auth.InvalidIdTokenError("bad token")

    monkeypatch.setattr(session_module.firebase_auth, 'verify_id_token', reject)
    with pytest.raises(Unauthenticated):
        session_from_id_token("token")


def test_error_hierarchy():
    exhausted = ConflictRetryExhausted('posts', ["p1"], 5)
    assert isinstance(exhausted, RemoteUnavailable)
    assert exhausted.retryable
    assert exhausted.attempts == 5
    assert not Unauthenticated().retryable


def test_config_by_name():
    assert config_by_name['testing'] is TestingConfig
    assert TestingConfig.STORE_BACKEND == 'memory'
    assert TestingConfig.TRANSACTION_MAX_ATTEMPTS >= 1


def test_create_client_with_testing_config():
    client = create_client('testing')
    assert isinstance(client.store, InMemoryRemoteStore)
    assert client.feed.store is client.store
    assert client.follows.store is client.store
    assert client.chat.store is client.store
    assert client.profiles.sync_auth_email is False


def test_create_client_uses_injected_store():
    store = InMemoryRemoteStore()
    assert create_client('testing', store=store).store is store


def test_create_client_rejects_unknown_config():
    with pytest.raises(ValueError):
        create_client('production-ish')
