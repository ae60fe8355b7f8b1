# forkchan/core/config.py

import os


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """모든 환경 설정의 기반이 되는 공통 설정 클래스입니다."""
    DEBUG = False
    TESTING = False
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    # 원격 저장소 백엔드: 'firestore' 또는 'memory'
    STORE_BACKEND = os.getenv('STORE_BACKEND', 'firestore')
    FIREBASE_CREDENTIALS_PATH = os.getenv('FIREBASE_CREDENTIALS_PATH')
    FIREBASE_PROJECT_ID = os.getenv('FIREBASE_PROJECT_ID')

    # 카운터 트랜잭션 충돌 시 재시도 횟수 (Firestore 기본값과 동일)
    TRANSACTION_MAX_ATTEMPTS = int(os.getenv('TRANSACTION_MAX_ATTEMPTS', 5))
    # 게시글 삭제 시 좋아요 문서도 함께 삭제할지 여부
    CASCADE_DELETE_LIKES = _env_bool('CASCADE_DELETE_LIKES', True)

    # 이미지 인코딩 설정 (모바일 앱과 동일한 기준)
    IMAGE_MAX_KB = int(os.getenv('IMAGE_MAX_KB', 200))
    PROFILE_IMAGE_MAX_DIMENSION = int(os.getenv('PROFILE_IMAGE_MAX_DIMENSION', 500))


class DevelopmentConfig(Config):
    """개발 환경을 위한 설정 클래스입니다."""
    DEBUG = True
    # 개발용 Firebase 프로젝트의 서비스 계정 키 파일 경로
    FIREBASE_CREDENTIALS_PATH = os.getenv('DEV_FIREBASE_CREDENTIALS_PATH', Config.FIREBASE_CREDENTIALS_PATH)


class TestingConfig(Config):
    """테스트 환경을 위한 설정 클래스입니다. 메모리 저장소를 사용합니다."""
    TESTING = True
    DEBUG = False
    STORE_BACKEND = 'memory'
    FIREBASE_CREDENTIALS_PATH = os.getenv('TEST_FIREBASE_CREDENTIALS_PATH')


# create_client()에서 FORKCHAN_ENV 값에 따라 설정 클래스를 선택하는 데 사용됩니다.
config_by_name = dict(
    development=DevelopmentConfig,
    testing=TestingConfig
)
