# feeding_tracker/services/sync_gateway.py
import logging
import secrets
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from firebase_admin import firestore
from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as google_auth_exceptions

from feeding_tracker.core.exceptions import (
    BackendError, NotAuthenticated, PartialItemFailure, SyncError, ZoneUnavailable
)
from feeding_tracker.models.feeding_record import FeedingRecord, RECORD_TYPE, FIELD_TIMESTAMP
from feeding_tracker.models.sync import AccountStatus, ShareInvitation, ZoneHandle
from feeding_tracker.utils.datetime_utils import DateTimeUtils

# Firestore 레이아웃: feeding_zones/{zone}/FeedingRecord/{record_id}
#                     feeding_zones/{zone}/shares/{zone}
ZONES_COLLECTION = 'feeding_zones'
SHARES_COLLECTION = 'shares'
SHARE_PERMISSION_READ_WRITE = 'readWrite'

# 백엔드 전송/서비스 오류로 취급하는 예외들
_BACKEND_ERRORS = (
    google_exceptions.GoogleAPICallError,
    google_exceptions.RetryError,
    google_auth_exceptions.TransportError,
)


def _retry_after(exc: Exception) -> Optional[float]:
    """오류 상세 정보(RetryInfo)에 재시도 대기 시간이 있으면 초 단위로 반환합니다."""
    for detail in getattr(exc, 'details', None) or []:
        delay = getattr(detail, 'retry_delay', None)
        if delay is not None:
            return delay.seconds + delay.nanos / 1e9
    return None


def to_backend_error(exc: Exception) -> BackendError:
    """google-api-core / google-auth 예외를 BackendError로 변환합니다."""
    if isinstance(exc, google_exceptions.GoogleAPICallError):
        return BackendError(exc.code, exc.message or str(exc), _retry_after(exc))
    if isinstance(exc, google_exceptions.RetryError):
        return BackendError(504, exc.message or str(exc))
    return BackendError(503, str(exc))


def _credentials_rejected(operation: str, exc: Exception) -> NotAuthenticated:
    """세션 도중 자격 증명이 거부된 경우(키 폐기 등)를 NotAuthenticated로 변환합니다."""
    logging.error(f"{operation} failed: credentials were rejected ({exc})", exc_info=True)
    return NotAuthenticated("클라우드 계정 인증이 만료되었거나 거부되었습니다. 계정 설정을 확인해주세요.")


@contextmanager
def _backend_call(operation: str):
    """블록 안에서 발생한 백엔드 예외를 로그로 남기고 BackendError(또는 NotAuthenticated)로 바꿔 전달합니다."""
    try:
        yield
    except google_auth_exceptions.RefreshError as e:
        raise _credentials_rejected(operation, e) from e
    except _BACKEND_ERRORS as e:
        error = to_backend_error(e)
        logging.error(f"{operation} failed (code: {error.code}): {error.message}", exc_info=True)
        if error.hint:
            logging.error(f"Hint: {error.hint}")
        if error.retry_after is not None:
            logging.error(f"Retry after: {error.retry_after} seconds")
        raise error from e


class SyncGateway:
    """
    원격 백엔드(Firestore) I/O를 전담하는 게이트웨이.

    - 계정 상태 확인, 공유 존 준비, 공유 초대장 생성, 기록 생성/조회/삭제를 제공합니다.
    - 자동 재시도는 하지 않습니다. 모든 오류는 호출자(HistoryManager)에게 전달되며,
      일괄 조회/삭제에서만 개별 항목 실패를 건너뜁니다.
    """

    def __init__(self, account_provider, zone_name: str = 'SharedFeedingZone',
                 share_title: str = 'Dog Feeding Records'):
        self.account_provider = account_provider
        self.zone_name = zone_name
        self.share_title = share_title
        # check_account_status()가 한 번도 성공하지 않았다면 None
        self.account_status: Optional[AccountStatus] = None
        logging.info("SyncGateway initialized.")

    @property
    def is_authenticated(self) -> bool:
        return self.account_status is AccountStatus.AVAILABLE

    def _db(self):
        if not self.is_authenticated:
            raise NotAuthenticated()
        return self.account_provider.client()

    def _zone_ref(self, db, zone_name: str):
        return db.collection(ZONES_COLLECTION).document(zone_name)

    def _records_ref(self, zone: Optional[ZoneHandle]):
        db = self._db()
        if zone is None:
            raise ZoneUnavailable()
        return self._zone_ref(db, zone.name).collection(RECORD_TYPE)

    # --- 계정 ---
    async def check_account_status(self) -> AccountStatus:
        """계정 상태를 확인하고 결과를 기억합니다. 부수 효과는 없습니다."""
        status = await self.account_provider.account_status()
        self.account_status = status
        logging.info(f"Account status: {status.value}")
        return status

    # --- 공유 존 ---
    async def ensure_shared_zone(self) -> ZoneHandle:
        """
        공유 존을 찾아 재사용하거나, 없으면 새로 만듭니다.
        다른 기기가 동시에 같은 존을 만든 경우(AlreadyExists/Conflict)도 성공으로 취급합니다.
        """
        db = self._db()
        zones_ref = db.collection(ZONES_COLLECTION)

        with _backend_call("List zones"):
            async for snapshot in zones_ref.stream():
                if snapshot.id == self.zone_name:
                    logging.info(f"Found existing shared zone '{self.zone_name}'")
                    return ZoneHandle(self.zone_name, snapshot.reference)

        zone_ref = zones_ref.document(self.zone_name)
        created = True
        with _backend_call("Create zone"):
            try:
                await zone_ref.create({
                    'zoneName': self.zone_name,
                    'createdAt': DateTimeUtils.now(),
                })
            except google_exceptions.Conflict:
                created = False
                logging.info(f"Shared zone '{self.zone_name}' was created concurrently, reusing it")

        if created:
            logging.info(f"Shared zone '{self.zone_name}' created")
        return ZoneHandle(self.zone_name, zone_ref, created=created)

    # --- 공유 초대장 ---
    def _invitation_from_snapshot(self, zone: ZoneHandle, snapshot) -> ShareInvitation:
        data = DateTimeUtils.from_firestore(snapshot.to_dict() or {})
        return ShareInvitation(
            share_id=snapshot.id,
            zone_name=zone.name,
            title=data.get('title') or self.share_title,
            permission=data.get('permission') or SHARE_PERMISSION_READ_WRITE,
            invite_token=data.get('inviteToken') or '',
            created_at=data.get('createdAt'),
        )

    async def ensure_share_invitation(self, zone: Optional[ZoneHandle]) -> ShareInvitation:
        """공유 존에 대한 초대장을 찾거나, 없으면 하나 만듭니다 (존당 최대 하나)."""
        db = self._db()
        if zone is None:
            raise ZoneUnavailable()
        share_ref = self._zone_ref(db, zone.name).collection(SHARES_COLLECTION).document(zone.name)

        with _backend_call("Fetch share record"):
            snapshot = await share_ref.get()
        if snapshot.exists:
            logging.info(f"Reusing share record for zone '{zone.name}'")
            return self._invitation_from_snapshot(zone, snapshot)

        share_data = {
            'title': self.share_title,
            'permission': SHARE_PERMISSION_READ_WRITE,
            'inviteToken': secrets.token_urlsafe(16),
            'createdAt': DateTimeUtils.now(),
        }
        with _backend_call("Create share record"):
            try:
                await share_ref.create(share_data)
            except google_exceptions.Conflict:
                logging.info("Share record already exists, fetching it")
                snapshot = await share_ref.get()
                return self._invitation_from_snapshot(zone, snapshot)

        logging.info(f"Share record created for zone '{zone.name}'")
        return ShareInvitation(
            share_id=share_ref.id,
            zone_name=zone.name,
            title=share_data['title'],
            permission=share_data['permission'],
            invite_token=share_data['inviteToken'],
            created_at=share_data['createdAt'],
        )

    # --- 급여 기록 ---
    async def create_record(self, zone: Optional[ZoneHandle], person_name: str, pet_name: str,
                            timestamp: Optional[datetime] = None) -> FeedingRecord:
        """
        급여 기록 하나를 저장하고, 백엔드가 확인한 값으로 만든 레코드를 반환합니다.
        문서 ID와 백엔드가 돌려준 필드 값이 클라이언트가 제안한 값보다 우선합니다.
        """
        records_ref = self._records_ref(zone)
        proposed = FeedingRecord(
            person_name=person_name,
            pet_name=pet_name,
            timestamp=timestamp or DateTimeUtils.now(),
        )
        doc_ref = records_ref.document(proposed.record_id)
        logging.info(f"Saving feeding record (person: {person_name}, pet: {pet_name}, "
                     f"timestamp: {DateTimeUtils.to_iso_string(proposed.timestamp)})")

        proposed_data = proposed.to_firestore()
        with _backend_call("Save feeding record"):
            await doc_ref.create(proposed_data)

        # 저장은 이미 성공했으므로 다시 읽기 실패는 제안한 값으로 대신합니다.
        try:
            snapshot = await doc_ref.get()
        except _BACKEND_ERRORS + (google_auth_exceptions.RefreshError,) as e:
            logging.warning(f"Saved record {doc_ref.id} could not be read back "
                            f"({to_backend_error(e).message}), using proposed values")
            saved = replace(proposed, record_id=doc_ref.id)
        else:
            echoed = {**proposed_data, **(snapshot.to_dict() or {})}
            try:
                saved = FeedingRecord.from_document(snapshot.id, echoed)
            except PartialItemFailure as e:
                logging.warning(f"Saved record {e.item_id} could not be read back ({e.reason}), using proposed values")
                saved = replace(proposed, record_id=snapshot.id)

        logging.info(f"Feeding record saved with ID: {saved.record_id}")
        return saved

    async def query_records(self, zone: Optional[ZoneHandle], limit: int) -> List[FeedingRecord]:
        """
        최신순으로 최대 limit개의 기록을 조회합니다.
        읽을 수 없는 문서(필수 필드 누락 등)는 개별적으로 건너뜁니다.
        """
        records_ref = self._records_ref(zone)
        query = records_ref.order_by(FIELD_TIMESTAMP, direction=firestore.Query.DESCENDING).limit(limit)

        records = []
        with _backend_call("Fetch feeding records"):
            async for snapshot in query.stream():
                try:
                    records.append(FeedingRecord.from_document(snapshot.id, snapshot.to_dict()))
                except PartialItemFailure as e:
                    logging.warning(f"Skipping unreadable record {e.item_id}: {e.reason}")

        logging.info(f"Fetched {len(records)} feeding records from zone '{zone.name}'")
        return records

    async def delete_all_records(self, zone: Optional[ZoneHandle]) -> int:
        """
        존의 모든 기록을 삭제하고 실제로 삭제된 개수를 반환합니다.
        개별 삭제 실패는 로그만 남기고 건너뛰며, 모든 삭제 시도가 끝나면 성공으로 봅니다.
        """
        records_ref = self._records_ref(zone)

        with _backend_call("List feeding records for deletion"):
            doc_refs = [doc_ref async for doc_ref in records_ref.list_documents()]
        logging.info(f"Found {len(doc_refs)} records to delete")

        deleted = 0
        for doc_ref in doc_refs:
            try:
                await doc_ref.delete()
                deleted += 1
            except google_auth_exceptions.RefreshError as e:
                raise _credentials_rejected("Delete feeding record", e) from e
            except _BACKEND_ERRORS as e:
                failure = PartialItemFailure(doc_ref.id, to_backend_error(e).message)
                logging.warning(f"Failed to delete record {failure.item_id}: {failure.reason}")

        logging.info(f"Deleted {deleted}/{len(doc_refs)} feeding records")
        return deleted

    # --- 진단 ---
    async def validate_configuration(self, zone: Optional[ZoneHandle]) -> Dict[str, Any]:
        """
        백엔드 설정을 점검합니다: 프로젝트 정보, 계정 상태, 존 접근 가능 여부.
        점검 결과만 반환하며 예외를 발생시키지 않습니다.
        """
        report: Dict[str, Any] = {
            'backend': self.account_provider.describe(),
            'zone_name': self.zone_name,
        }
        status = await self.account_provider.account_status()
        report['account_status'] = status.value

        if zone is None:
            report['zone_access'] = {'ok': False, 'reason': '공유 존이 준비되지 않았습니다.'}
            return report

        try:
            found = await self.query_records(zone, 1)
            report['zone_access'] = {'ok': True, 'records_found': len(found)}
        except SyncError as e:
            zone_access = {'ok': False, 'reason': e.message}
            if isinstance(e, BackendError) and e.hint:
                zone_access['hint'] = e.hint
            report['zone_access'] = zone_access
        return report
