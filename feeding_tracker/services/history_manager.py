# feeding_tracker/services/history_manager.py
"""
최근 급여 기록(HistoryView)을 관리하는 서비스

- 표현 계층(API)이 직접 사용하는 유일한 동기화 서비스입니다.
- 메모리의 기록 목록은 최신순이며 history_limit 개수를 넘지 않습니다.
- 목록은 부분 수정하지 않고, 성공한 조회/저장마다 통째로 교체합니다.
- 모든 메서드는 하나의 이벤트 루프(SyncLoop)에서만 호출되어야 합니다.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from feeding_tracker.core.exceptions import SyncError
from feeding_tracker.models.feeding_record import FeedingRecord
from feeding_tracker.models.sync import (
    AccountStatus, InitializationReport, ManagerState, ShareInvitation, StepResult, ZoneHandle,
    STEP_ACCOUNT, STEP_ZONE, STEP_INVITATION, STEP_FETCH
)
from feeding_tracker.services.sync_gateway import SyncGateway
from feeding_tracker.utils.datetime_utils import DateTimeUtils

logger = logging.getLogger(__name__)

RecordsListener = Callable[[Tuple[FeedingRecord, ...]], None]


class HistoryManager:
    """공유 존의 최근 급여 기록을 메모리에 유지하고 SyncGateway 호출 순서를 조율합니다."""

    def __init__(self, gateway: SyncGateway, history_limit: int = 5, refresh_interval: float = 30.0,
                 clock: Callable = DateTimeUtils.now):
        self.gateway = gateway
        self.history_limit = history_limit
        self.refresh_interval = refresh_interval
        self._clock = clock

        self.state = ManagerState.UNINITIALIZED
        self.report = InitializationReport()
        self.zone: Optional[ZoneHandle] = None
        self.invitation: Optional[ShareInvitation] = None

        self._records: Tuple[FeedingRecord, ...] = ()
        self._listeners: List[RecordsListener] = []
        self._loading = 0
        self._init_task: Optional[asyncio.Task] = None
        self._poll_task: Optional[asyncio.Task] = None

    # --- 상태 조회 ---
    @property
    def records(self) -> Tuple[FeedingRecord, ...]:
        """현재 기록 목록의 스냅샷 (최신순)."""
        return self._records

    @property
    def is_ready(self) -> bool:
        return self.state is ManagerState.READY

    @property
    def degraded(self) -> bool:
        return self.is_ready and self.report.degraded

    @property
    def is_loading(self) -> bool:
        return self._loading > 0

    def share_invitation(self) -> Optional[ShareInvitation]:
        """공유 UI에 넘겨줄 초대장 (없으면 None)."""
        return self.invitation

    def status(self) -> Dict[str, Any]:
        return {
            'state': self.state.value,
            'degraded': self.degraded,
            'is_loading': self.is_loading,
            'authenticated': self.gateway.is_authenticated,
            'zone_name': self.zone.name if self.zone else None,
            'share_available': self.invitation is not None,
            'record_count': len(self._records),
            'initialization': self.report.to_dict(),
        }

    # --- 변경 알림 ---
    def subscribe(self, listener: RecordsListener) -> Callable[[], None]:
        """기록 목록이 교체될 때마다 호출될 리스너를 등록하고, 해제 함수를 반환합니다."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _replace_records(self, records: Tuple[FeedingRecord, ...]):
        self._records = tuple(records[:self.history_limit])
        for listener in list(self._listeners):
            try:
                listener(self._records)
            except Exception as e:
                logger.error(f"Records listener failed: {e}", exc_info=True)

    # --- 초기화 ---
    async def initialize(self) -> InitializationReport:
        """
        계정 확인 → 공유 존 준비 → 초대장 준비 → 최초 조회 순서로 초기화합니다.
        인스턴스당 한 번만 실행되며, 동시에 호출하면 같은 작업의 결과를 기다립니다.
        """
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._run_initialization())
        return await asyncio.shield(self._init_task)

    async def _attempt(self, step: str, operation) -> StepResult:
        try:
            value = await operation()
        except SyncError as e:
            logger.error(f"Initialization step '{step}' failed: {e}")
            return self.report.record(step, StepResult.failed(str(e)))
        except Exception as e:
            # 예상하지 못한 오류도 단계 실패로 기록하여 초기화 작업에 예외가 남지 않게 합니다.
            logger.error(f"Initialization step '{step}' failed unexpectedly: {e}", exc_info=True)
            return self.report.record(step, StepResult.failed(f"{type(e).__name__}: {e}"))
        return self.report.record(step, StepResult.ok(value))

    def _skip_remaining(self, steps: List[str], reason: str):
        for step in steps:
            self.report.record(step, StepResult.skipped(reason))

    async def _run_initialization(self) -> InitializationReport:
        self.state = ManagerState.INITIALIZING
        logger.info("HistoryManager initialization started")
        try:
            account_result = await self._attempt(STEP_ACCOUNT, self.gateway.check_account_status)
            if account_result.succeeded and account_result.value is not AccountStatus.AVAILABLE:
                self.report.record(STEP_ACCOUNT,
                                   StepResult.failed(f"account status: {account_result.value.value}"))
            if not self.report.get(STEP_ACCOUNT).succeeded:
                self._skip_remaining([STEP_ZONE, STEP_INVITATION, STEP_FETCH], "account unavailable")
                return self.report

            zone_result = await self._attempt(STEP_ZONE, self.gateway.ensure_shared_zone)
            if not zone_result.succeeded:
                # 공유 존은 필수 단계: 실패하면 이후 단계를 진행하지 않습니다.
                self._skip_remaining([STEP_INVITATION, STEP_FETCH], "zone unavailable")
                return self.report
            self.zone = zone_result.value

            # 초대장 생성 실패는 초기화를 막지 않습니다.
            invitation_result = await self._attempt(
                STEP_INVITATION, lambda: self.gateway.ensure_share_invitation(self.zone))
            if invitation_result.succeeded:
                self.invitation = invitation_result.value

            await self._attempt(STEP_FETCH, self.refresh)
            return self.report
        finally:
            # 실패하더라도 READY로 전환하여 화면이 멈추지 않게 합니다.
            self.state = ManagerState.READY
            if self.report.degraded:
                logger.warning(f"HistoryManager ready (degraded): {self.report.to_dict()}")
            else:
                logger.info("HistoryManager ready")

    async def start(self, auto_refresh: bool = True) -> InitializationReport:
        """초기화를 수행하고, 필요하면 주기적 새로고침을 시작합니다."""
        report = await self.initialize()
        if auto_refresh:
            self.start_polling()
        return report

    # --- 주기적 새로고침 ---
    def start_polling(self):
        """READY 상태에서만 refresh_interval 간격의 자동 새로고침을 시작합니다."""
        if not self.is_ready:
            raise RuntimeError("초기화가 끝나기 전에는 자동 새로고침을 시작할 수 없습니다.")
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.ensure_future(self._poll_loop())
            logger.info(f"Auto-refresh started (every {self.refresh_interval}s)")

    async def _poll_loop(self):
        while True:
            await asyncio.sleep(self.refresh_interval)
            logger.debug("Auto-refresh triggered")
            try:
                await self.refresh()
            except SyncError as e:
                logger.warning(f"Auto-refresh failed: {e}")
            except Exception as e:
                # 다음 주기에 다시 시도하도록 루프는 계속 유지합니다.
                logger.error(f"Auto-refresh failed unexpectedly: {e}", exc_info=True)

    async def stop_polling(self):
        task, self._poll_task = self._poll_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            logger.info("Auto-refresh stopped")

    # --- 기록 작업 ---
    async def record_feeding(self, person_name: str, pet_name: str) -> FeedingRecord:
        """
        현재 시각으로 급여 기록을 저장하고, 확인된 레코드를 목록 맨 앞에 추가합니다.
        실패하면 목록은 그대로 두고 오류를 그대로 전달합니다.
        """
        record = await self.gateway.create_record(self.zone, person_name, pet_name, self._clock())
        self._replace_records((record,) + self._records)
        return record

    async def refresh(self) -> Tuple[FeedingRecord, ...]:
        """최신 기록을 다시 조회하여 목록을 통째로 교체합니다 (빈 결과 포함)."""
        self._loading += 1
        try:
            records = await self.gateway.query_records(self.zone, self.history_limit)
        finally:
            self._loading -= 1
        self._replace_records(tuple(records))
        return self._records

    async def clear_all(self) -> int:
        """모든 기록을 삭제하고 목록을 비웁니다. 삭제된 개수를 반환합니다."""
        deleted = await self.gateway.delete_all_records(self.zone)
        self._replace_records(())
        return deleted

    async def validate_configuration(self) -> Dict[str, Any]:
        return await self.gateway.validate_configuration(self.zone)

    async def shutdown(self):
        await self.stop_polling()
