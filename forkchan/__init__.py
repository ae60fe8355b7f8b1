# forkchan/__init__.py

# =====================================================================================
# 1. 환경 변수 로드 (가장 먼저 실행)
# =====================================================================================
from dotenv import load_dotenv
load_dotenv()

# =====================================================================================
# 2. 모듈 임포트 (Module Imports)
# =====================================================================================
import os
import logging
from dataclasses import dataclass

import firebase_admin
from firebase_admin import credentials

# - 설정
from forkchan.core.config import config_by_name

# - 원격 저장소 및 서비스
from forkchan.services.remote_store import RemoteStore
from forkchan.services.memory_store import InMemoryRemoteStore
from forkchan.services.firestore_service import FirestoreRemoteStore
from forkchan.services.follow_service import FollowService
from forkchan.services.profile_service import ProfileService
from forkchan.services.chat_service import ChatService

# - 피드 동기화 엔진
from forkchan.sync.coordinator import SyncCoordinator


@dataclass
class ForkChanClient:
    """create_client()가 조립한 구성 요소 묶음. 화면 계층은 이 객체만 들고 있으면 됩니다."""
    config: type
    store: RemoteStore
    feed: SyncCoordinator
    follows: FollowService
    profiles: ProfileService
    chat: ChatService


def _init_firebase(config):
    if firebase_admin._apps:
        return
    cred_path = config.FIREBASE_CREDENTIALS_PATH
    if not cred_path or not os.path.exists(cred_path):
        raise FileNotFoundError(f"Firebase 인증 파일을 찾을 수 없습니다: {cred_path}")
    cred = credentials.Certificate(cred_path)
    options = {'projectId': config.FIREBASE_PROJECT_ID} if config.FIREBASE_PROJECT_ID else None
    firebase_admin.initialize_app(cred, options)


def create_client(config_name: str = None, store: RemoteStore = None) -> ForkChanClient:
    """
    클라이언트 팩토리 함수.

    :param config_name: 'development' 또는 'testing'. 없으면 FORKCHAN_ENV 환경 변수 (기본 'development')
    :param store: 주입할 원격 저장소. 없으면 설정의 STORE_BACKEND에 따라 생성
    """
    # =====================================================================================
    # 3. 설정 선택 및 로깅
    # =====================================================================================
    config_name = config_name or os.getenv('FORKCHAN_ENV', 'development')
    if config_name not in config_by_name:
        raise ValueError(f"알 수 없는 설정 이름입니다: {config_name}")
    config = config_by_name[config_name]

    if not config.DEBUG:
        logging.basicConfig(level=getattr(logging, str(config.LOG_LEVEL).upper(), logging.INFO),
                            format='%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]')

    # =====================================================================================
    # 4. 원격 저장소 초기화
    # =====================================================================================
    if store is None:
        if config.STORE_BACKEND == 'memory':
            store = InMemoryRemoteStore(max_attempts=config.TRANSACTION_MAX_ATTEMPTS)
        elif config.STORE_BACKEND == 'firestore':
            try:
                _init_firebase(config)
                store = FirestoreRemoteStore(max_attempts=config.TRANSACTION_MAX_ATTEMPTS)
                logging.info("Firestore remote store initialized successfully")
            except Exception as e:
                logging.error(f"Failed to initialize Firestore remote store: {e}")
                raise
        else:
            raise ValueError(f"지원하지 않는 저장소 백엔드입니다: {config.STORE_BACKEND}")

    # =====================================================================================
    # 5. 서비스 인스턴스 생성 (의존성 주입)
    # =====================================================================================
    client = ForkChanClient(
        config=config,
        store=store,
        feed=SyncCoordinator(store, config=config),
        follows=FollowService(store),
        profiles=ProfileService(store, config=config,
                                sync_auth_email=isinstance(store, FirestoreRemoteStore)),
        chat=ChatService(store),
    )
    logging.info(f"forkchan client created (config: {config_name}, store: {type(store).__name__})")
    return client
