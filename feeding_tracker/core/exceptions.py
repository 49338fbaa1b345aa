# feeding_tracker/core/exceptions.py
"""
동기화 계층에서 사용하는 예외 정의.

SyncGateway는 모든 오류를 HistoryManager로, HistoryManager는 다시 호출자(API 계층)로
그대로 전달합니다. 각 예외의 http_status/error_code는 Flask 에러 핸들러가 응답을
만들 때 사용합니다.
"""
from typing import Any, Dict, Optional


class SyncError(Exception):
    """동기화 계층 예외의 공통 부모 클래스."""

    http_status = 500
    error_code = "SYNC_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error_code": self.error_code, "message": self.message}

    def __str__(self) -> str:
        return self.message


class NotAuthenticated(SyncError):
    """계정 상태 확인이 통과하지 않은 상태에서 원격 작업을 시도한 경우."""

    http_status = 401
    error_code = "NOT_AUTHENTICATED"

    def __init__(self, message: str = "클라우드 계정에 로그인되어 있지 않습니다. 계정 설정을 확인해주세요."):
        super().__init__(message)


class ZoneUnavailable(SyncError):
    """공유 존(zone)이 준비되지 않은 상태에서 기록 작업을 시도한 경우."""

    http_status = 503
    error_code = "ZONE_UNAVAILABLE"

    def __init__(self, message: str = "공유 존이 아직 준비되지 않았습니다."):
        super().__init__(message)


# 오류 코드별 문제 해결 힌트 (로그에 함께 남깁니다)
_HINTS = {
    401: "서비스 계정 인증에 실패했습니다. 키 파일이 유효한지 확인하세요.",
    403: "권한이 없습니다. 서비스 계정에 Firestore 권한이 있는지 확인하세요.",
    404: "대상을 찾을 수 없습니다. 프로젝트 ID와 데이터베이스 설정을 확인하세요.",
    429: "요청 한도를 초과했습니다. 잠시 후 다시 시도하세요.",
    503: "백엔드에 연결할 수 없습니다. 네트워크 연결을 확인하세요.",
    504: "백엔드 응답 시간이 초과되었습니다. 네트워크 연결을 확인하세요.",
}


class BackendError(SyncError):
    """
    원격 백엔드(Firestore) 호출 중 발생한 전송/서비스 오류.

    :param code: 백엔드가 돌려준 오류 코드 (HTTP 상태 코드 기준, 알 수 없으면 None)
    :param message: 사람이 읽을 수 있는 오류 메시지
    :param retry_after: 백엔드가 알려준 재시도 대기 시간(초). 재시도는 호출자가 결정합니다.
    """

    http_status = 502
    error_code = "BACKEND_ERROR"

    def __init__(self, code: Optional[int], message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.code = code
        self.retry_after = retry_after

    @property
    def hint(self) -> Optional[str]:
        return _HINTS.get(self.code)

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["backend_code"] = self.code
        if self.retry_after is not None:
            payload["retry_after"] = self.retry_after
        return payload


class PartialItemFailure(SyncError):
    """
    일괄 조회/삭제 중 개별 항목 하나가 실패한 경우.
    배치 작업 내부에서만 사용되며 최상위 오류로 전달되지 않습니다.
    """

    def __init__(self, item_id: str, reason: str):
        super().__init__(f"{item_id}: {reason}")
        self.item_id = item_id
        self.reason = reason
