# feeding_tracker/services/account_service.py
import asyncio
import logging
import os
from typing import Optional

import firebase_admin
from firebase_admin import credentials, firestore_async
from google.auth import exceptions as google_auth_exceptions

from feeding_tracker.models.sync import AccountStatus


class FirebaseAccountProvider:
    """
    Firebase 서비스 계정을 이용한 계정/세션 제공자.

    인증 자체는 Firebase(Google Cloud) 계정 시스템에 전적으로 위임하며,
    이 클래스는 자격 증명의 상태 확인과 인증된 Firestore 비동기 클라이언트 제공만 담당합니다.
    """

    def __init__(self, credentials_path: Optional[str], project_id: Optional[str] = None):
        self.credentials_path = credentials_path
        self.project_id = project_id
        self._app: Optional[firebase_admin.App] = None
        self._client = None

    def _ensure_app(self) -> firebase_admin.App:
        """Firebase 앱을 한 번만 초기화합니다."""
        if self._app is not None:
            return self._app

        if not firebase_admin._apps:
            if not self.credentials_path or not os.path.exists(self.credentials_path):
                raise FileNotFoundError(f"Firebase 인증 파일을 찾을 수 없습니다: {self.credentials_path}")
            cred = credentials.Certificate(self.credentials_path)
            options = {'projectId': self.project_id} if self.project_id else None
            firebase_admin.initialize_app(cred, options)
            logging.info("Firebase app initialized")

        self._app = firebase_admin.get_app()
        return self._app

    async def account_status(self) -> AccountStatus:
        """
        서비스 계정 자격 증명으로 액세스 토큰 발급을 시도하여 계정 상태를 판단합니다.
        이 메서드는 예외를 발생시키지 않습니다.
        """
        try:
            app = self._ensure_app()
        except FileNotFoundError as e:
            logging.error(f"No cloud account configured: {e}")
            return AccountStatus.NO_ACCOUNT
        except (ValueError, OSError) as e:
            # 키 파일 형식이 잘못되었거나 읽을 수 없는 경우
            logging.error(f"Invalid service account credentials: {e}")
            return AccountStatus.RESTRICTED

        try:
            # google-auth의 토큰 갱신은 동기 HTTP 호출이므로 스레드에서 실행
            await asyncio.to_thread(app.credential.get_access_token)
        except google_auth_exceptions.RefreshError as e:
            # 키가 폐기되었거나 서비스 계정이 비활성화된 경우
            logging.error(f"Cloud account restricted: {e}")
            return AccountStatus.RESTRICTED
        except google_auth_exceptions.TransportError as e:
            logging.error(f"Cloud account temporarily unavailable: {e}")
            return AccountStatus.TEMPORARILY_UNAVAILABLE
        except google_auth_exceptions.GoogleAuthError as e:
            logging.error(f"Could not determine cloud account status: {e}")
            return AccountStatus.UNKNOWN

        logging.info("Cloud account available")
        return AccountStatus.AVAILABLE

    def client(self):
        """
        인증된 Firestore 비동기 클라이언트를 반환합니다.
        gRPC 채널이 이벤트 루프에 묶이므로 동기화 루프 안에서 처음 호출되어야 합니다.
        """
        if self._client is None:
            self._client = firestore_async.client(self._ensure_app())
        return self._client

    def describe(self) -> dict:
        """진단용 정보 (프로젝트 ID 등)."""
        project_id = self.project_id
        if project_id is None and self._app is not None:
            project_id = self._app.project_id
        return {
            'provider': 'firebase',
            'project_id': project_id,
            'credentials_configured': bool(self.credentials_path),
        }
