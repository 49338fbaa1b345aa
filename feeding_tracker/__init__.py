# feeding_tracker/__init__.py

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
from concurrent.futures import TimeoutError as SyncTimeoutError
from flask import Flask, jsonify
from marshmallow import ValidationError
from werkzeug.exceptions import HTTPException

# - 설정 / 예외
from feeding_tracker.core.config import config_by_name
from feeding_tracker.core.exceptions import BackendError, SyncError

# - API 블루프린트
from feeding_tracker.api.feedings.routes import feedings_bp
from feeding_tracker.api.preferences.routes import preferences_bp

# - 서비스 모듈
from feeding_tracker.services.account_service import FirebaseAccountProvider
from feeding_tracker.services.history_manager import HistoryManager
from feeding_tracker.services.preference_store import PreferenceStore
from feeding_tracker.services.sync_gateway import SyncGateway
from feeding_tracker.services.sync_loop import SyncLoop


def _log_startup_failure(future):
    """동기화 서비스 시작 작업이 예외로 끝났다면 로그로 남깁니다."""
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        logging.error(f"Sync service startup failed: {error}", exc_info=error)


def create_app(config_name=None, account_provider=None, config_overrides=None):
    """
    Flask 애플리케이션 팩토리 함수.

    :param config_name: 'development', 'testing', 'production' (기본값: FLASK_ENV)
    :param account_provider: 계정/세션 제공자. 생략하면 Firebase 서비스 계정을 사용합니다.
    :param config_overrides: 설정 클래스 값을 덮어쓸 딕셔너리 (테스트용)
    """
    # =====================================================================================
    # 3. Flask 앱 생성 및 기본 설정
    # =====================================================================================
    config_name = config_name or os.getenv('FLASK_ENV', 'development')

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])
    if config_overrides:
        app.config.update(config_overrides)
    app.json.ensure_ascii = False

    if not app.debug:
        logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]')

    # =====================================================================================
    # 4. 서비스 인스턴스 생성 및 'app.services'에 저장 (의존성 주입)
    # =====================================================================================
    app.services = {}

    # 4-1. 로컬 설정 저장소 (초기 설정 화면 표시 여부 결정)
    app.services['preferences'] = PreferenceStore(app.config['PREFERENCES_PATH'])

    # 4-2. 계정/세션 제공자와 동기화 게이트웨이
    if account_provider is None:
        account_provider = FirebaseAccountProvider(
            credentials_path=app.config.get('FIREBASE_CREDENTIALS_PATH'),
            project_id=app.config.get('FIREBASE_PROJECT_ID')
        )
    app.services['account'] = account_provider
    app.services['sync_gateway'] = SyncGateway(
        account_provider,
        zone_name=app.config['SHARED_ZONE_NAME'],
        share_title=app.config['SHARE_TITLE']
    )

    # 4-3. 최근 기록 관리자 (SyncGateway를 주입받음)
    app.services['history'] = HistoryManager(
        app.services['sync_gateway'],
        history_limit=app.config['HISTORY_LIMIT'],
        refresh_interval=app.config['REFRESH_INTERVAL_SECONDS']
    )

    # 4-4. 동기화 전용 이벤트 루프를 시작하고 초기화를 예약 (완료를 기다리지 않음)
    sync_loop = SyncLoop()
    sync_loop.start()
    app.services['sync_loop'] = sync_loop
    startup = sync_loop.submit(app.services['history'].start(auto_refresh=app.config['AUTO_REFRESH']))
    startup.add_done_callback(_log_startup_failure)
    logging.info("Sync services initialized successfully")

    # =====================================================================================
    # 5. 블루프린트 등록
    # =====================================================================================
    app.register_blueprint(preferences_bp, url_prefix='/api/preferences')
    app.register_blueprint(feedings_bp, url_prefix='/api/feedings')

    # =====================================================================================
    # 6. 전역 에러 핸들러 설정
    # =====================================================================================
    @app.errorhandler(ValidationError)
    def handle_marshmallow_validation(err):
        response = {"error_code": "VALIDATION_ERROR", "details": err.messages}
        return jsonify(response), 400

    @app.errorhandler(SyncError)
    def handle_sync_error(err):
        # 동기화 오류는 재시도 없이 화면에 표시할 수 있는 메시지로 전달
        logging.warning(f"Sync operation failed: {err.error_code} - {err}")
        response = jsonify(err.to_dict())
        if isinstance(err, BackendError) and err.retry_after is not None:
            response.headers['Retry-After'] = str(int(err.retry_after))
        return response, err.http_status

    @app.errorhandler(SyncTimeoutError)
    def handle_sync_timeout(err):
        logging.warning("Sync operation timed out")
        response = {"error_code": "SYNC_TIMEOUT", "message": "백엔드 응답이 지연되고 있습니다. 잠시 후 다시 시도해주세요."}
        return jsonify(response), 504

    @app.errorhandler(Exception)
    def handle_generic_exception(err):
        if isinstance(err, HTTPException):
            return err
        # 다른 핸들러에서 처리되지 않은 모든 예외를 여기서 처리
        logging.error(f"An unhandled exception occurred: {err}", exc_info=True)
        response = {"error_code": "INTERNAL_SERVER_ERROR", "message": "서버 내부에서 예상치 못한 오류가 발생했습니다."}
        return jsonify(response), 500

    logging.info(f"Flask app created for '{config_name}' environment.")

    return app
