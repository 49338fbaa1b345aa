# feeding_tracker/models/sync.py
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class AccountStatus(Enum):
    """클라우드 계정(서비스 계정 자격 증명) 상태."""
    AVAILABLE = "available"
    NO_ACCOUNT = "no_account"
    RESTRICTED = "restricted"
    UNKNOWN = "unknown"
    TEMPORARILY_UNAVAILABLE = "temporarily_unavailable"


@dataclass(frozen=True)
class ZoneHandle:
    """
    공유 존을 가리키는 핸들.
    같은 이름의 존은 같은 존으로 취급합니다 (reference는 비교에서 제외).
    """
    name: str
    reference: Any = field(default=None, compare=False, repr=False)  # 존 문서의 DocumentReference
    created: bool = field(default=False, compare=False)  # 이번 호출에서 새로 만들었는지 여부


@dataclass(frozen=True)
class ShareInvitation:
    """
    공유 존에 대한 읽기/쓰기 권한을 부여하는 초대장.
    존마다 최대 하나만 존재합니다.
    """
    share_id: str
    zone_name: str
    title: str
    permission: str      # 'readWrite'
    invite_token: str    # 공유 UI가 초대 링크를 만들 때 사용하는 토큰
    created_at: Optional[datetime] = None


class StepStatus(Enum):
    OK = "ok"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class StepResult:
    """초기화 단계 하나의 결과. 실패해도 예외 대신 이 값으로 기록합니다."""
    status: StepStatus
    value: Any = None
    reason: Optional[str] = None

    @classmethod
    def ok(cls, value: Any = None) -> 'StepResult':
        return cls(StepStatus.OK, value=value)

    @classmethod
    def skipped(cls, reason: str) -> 'StepResult':
        return cls(StepStatus.SKIPPED, reason=reason)

    @classmethod
    def failed(cls, reason: str) -> 'StepResult':
        return cls(StepStatus.FAILED, reason=reason)

    @property
    def succeeded(self) -> bool:
        return self.status is StepStatus.OK

    def to_dict(self) -> Dict[str, Any]:
        payload = {'status': self.status.value}
        if self.reason:
            payload['reason'] = self.reason
        return payload


class ManagerState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


# 초기화 단계 이름 (실행 순서대로)
STEP_ACCOUNT = 'account'
STEP_ZONE = 'zone'
STEP_INVITATION = 'invitation'
STEP_FETCH = 'fetch'
INITIALIZATION_STEPS: List[str] = [STEP_ACCOUNT, STEP_ZONE, STEP_INVITATION, STEP_FETCH]


@dataclass
class InitializationReport:
    """HistoryManager 초기화 과정의 단계별 결과 모음."""
    steps: Dict[str, StepResult] = field(default_factory=dict)

    def record(self, step: str, result: StepResult) -> StepResult:
        self.steps[step] = result
        return result

    def get(self, step: str) -> Optional[StepResult]:
        return self.steps.get(step)

    @property
    def degraded(self) -> bool:
        """계정 확인이나 존 준비 같은 필수 단계가 실패했는지 여부."""
        return any(
            not self.steps[step].succeeded
            for step in (STEP_ACCOUNT, STEP_ZONE)
            if step in self.steps
        )

    def to_dict(self) -> Dict[str, Any]:
        return {step: self.steps[step].to_dict() for step in INITIALIZATION_STEPS if step in self.steps}
