# feeding_tracker/core/config.py

import os # 환경 변수를 읽기 위해 사용합니다.


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """모든 환경 설정의 기반이 되는 공통 설정 클래스입니다."""
    # Firebase 프로젝트 ID. 비어 있으면 서비스 계정 키 파일의 project_id가 사용됩니다.
    FIREBASE_PROJECT_ID = os.getenv('FIREBASE_PROJECT_ID')

    # 가족 구성원이 함께 쓰는 공유 존(zone)의 이름과 공유 초대장 제목.
    # 기존 기기들과 호환되도록 기본값을 바꾸지 마세요.
    SHARED_ZONE_NAME = os.getenv('SHARED_ZONE_NAME', 'SharedFeedingZone')
    SHARE_TITLE = os.getenv('SHARE_TITLE', 'Dog Feeding Records')

    # 메모리에 유지하는 최근 급여 기록의 개수 (조회 limit과 동일)
    HISTORY_LIMIT = int(os.getenv('HISTORY_LIMIT', 5))
    # 초기화 완료 후 자동 새로고침 주기(초)
    REFRESH_INTERVAL_SECONDS = float(os.getenv('REFRESH_INTERVAL_SECONDS', 30))
    AUTO_REFRESH = _env_bool('AUTO_REFRESH', True)
    # 요청 스레드가 동기화 루프의 결과를 기다리는 최대 시간(초)
    SYNC_TIMEOUT_SECONDS = float(os.getenv('SYNC_TIMEOUT_SECONDS', 15))

    # 사용자 이름/반려견 이름을 저장하는 로컬 파일 경로
    PREFERENCES_PATH = os.getenv('PREFERENCES_PATH', os.path.join('instance', 'preferences.json'))


class DevelopmentConfig(Config):
    """개발 환경을 위한 설정 클래스입니다."""
    DEBUG = True
    # 개발용 Firebase 프로젝트의 서비스 계정 키 파일 경로
    FIREBASE_CREDENTIALS_PATH = os.getenv('DEV_FIREBASE_CREDENTIALS_PATH')


class TestingConfig(Config):
    """테스트 환경을 위한 설정 클래스입니다."""
    TESTING = True
    DEBUG = False
    FIREBASE_CREDENTIALS_PATH = os.getenv('TEST_FIREBASE_CREDENTIALS_PATH')
    # 테스트 중에는 주기적 새로고침이 결과를 흔들지 않도록 끕니다.
    AUTO_REFRESH = False
    SYNC_TIMEOUT_SECONDS = 5


class ProductionConfig(Config):
    """운영 환경을 위한 설정 클래스입니다."""
    DEBUG = False
    FIREBASE_CREDENTIALS_PATH = os.getenv('FIREBASE_CREDENTIALS_PATH')


# FLASK_ENV 값에 따라 create_app()에서 설정 클래스를 선택합니다.
config_by_name = dict(
    development=DevelopmentConfig,
    testing=TestingConfig,
    production=ProductionConfig
)
