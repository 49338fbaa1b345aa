# feeding_tracker/services/test_sync_gateway.py
from datetime import timedelta

import pytest
from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as google_auth_exceptions

from feeding_tracker.fakes import BASE_TIME, ZONE_NAME, FakeDocumentRef
from feeding_tracker.core.exceptions import BackendError, NotAuthenticated, ZoneUnavailable
from feeding_tracker.models.sync import AccountStatus, ZoneHandle
from feeding_tracker.services.sync_gateway import SyncGateway, to_backend_error


# --- 계정 확인 ---

@pytest.mark.asyncio
async def test_check_account_status_is_remembered(gateway, account_provider):
    assert gateway.is_authenticated is False

    status = await gateway.check_account_status()

    assert status is AccountStatus.AVAILABLE
    assert gateway.is_authenticated is True
    assert account_provider.status_checks == 1


@pytest.mark.asyncio
async def test_operations_fail_fast_without_account_check(gateway, fake_db):
    with pytest.raises(NotAuthenticated):
        await gateway.ensure_shared_zone()
    with pytest.raises(NotAuthenticated):
        await gateway.query_records(ZoneHandle(ZONE_NAME), 5)
    assert fake_db.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize('status', [
    AccountStatus.NO_ACCOUNT,
    AccountStatus.RESTRICTED,
    AccountStatus.UNKNOWN,
    AccountStatus.TEMPORARILY_UNAVAILABLE,
])
async def test_unavailable_account_blocks_all_operations(gateway, account_provider, status):
    account_provider.status = status
    await gateway.check_account_status()
    zone = ZoneHandle(ZONE_NAME)

    with pytest.raises(NotAuthenticated):
        await gateway.create_record(zone, 'Alice', 'Rex')
    with pytest.raises(NotAuthenticated):
        await gateway.delete_all_records(zone)
    with pytest.raises(NotAuthenticated):
        await gateway.ensure_share_invitation(zone)


@pytest.mark.asyncio
async def test_missing_zone_raises_zone_unavailable(gateway):
    await gateway.check_account_status()

    with pytest.raises(ZoneUnavailable):
        await gateway.create_record(None, 'Alice', 'Rex')
    with pytest.raises(ZoneUnavailable):
        await gateway.query_records(None, 5)
    with pytest.raises(ZoneUnavailable):
        await gateway.ensure_share_invitation(None)


# --- 공유 존 ---

@pytest.mark.asyncio
async def test_ensure_shared_zone_creates_then_reuses(gateway, account_provider, fake_db):
    await gateway.check_account_status()
    first = await gateway.ensure_shared_zone()

    # 프로세스 재시작을 흉내 내기 위해 새 게이트웨이로 다시 호출
    restarted = SyncGateway(account_provider, zone_name=ZONE_NAME)
    await restarted.check_account_status()
    second = await restarted.ensure_shared_zone()

    assert first == second
    assert first.created is True
    assert second.created is False
    assert ('feeding_zones', ZONE_NAME) in fake_db.documents


@pytest.mark.asyncio
async def test_ensure_shared_zone_tolerates_concurrent_creation(gateway, fake_db):
    await gateway.check_account_status()
    fake_db.fail('create', google_exceptions.AlreadyExists('zone exists'), target=ZONE_NAME, times=1)

    zone = await gateway.ensure_shared_zone()

    assert zone.name == ZONE_NAME
    assert zone.created is False


@pytest.mark.asyncio
async def test_ensure_shared_zone_surfaces_backend_errors(gateway, fake_db):
    await gateway.check_account_status()
    fake_db.fail('stream', google_exceptions.ServiceUnavailable('backend down'))

    with pytest.raises(BackendError) as exc_info:
        await gateway.ensure_shared_zone()

    assert exc_info.value.code == 503
    assert exc_info.value.hint is not None


# --- 공유 초대장 ---

@pytest.mark.asyncio
async def test_ensure_share_invitation_is_idempotent(gateway, zone):
    first = await gateway.ensure_share_invitation(zone)
    second = await gateway.ensure_share_invitation(zone)

    assert first.title == 'Dog Feeding Records'
    assert first.permission == 'readWrite'
    assert first.invite_token
    assert second == first


@pytest.mark.asyncio
async def test_ensure_share_invitation_reuses_concurrently_created_share(gateway, zone, fake_db, monkeypatch):
    share_path = ('feeding_zones', ZONE_NAME, 'shares', ZONE_NAME)
    original_create = FakeDocumentRef.create

    async def racing_create(self, data):
        if self.path == share_path:
            # 다른 기기가 먼저 초대장을 만든 상황
            fake_db.documents[share_path] = {'title': 'Dog Feeding Records', 'permission': 'readWrite',
                                             'inviteToken': 'other-device-token'}
            raise google_exceptions.Aborted('record changed')
        await original_create(self, data)

    monkeypatch.setattr(FakeDocumentRef, 'create', racing_create)
    invitation = await gateway.ensure_share_invitation(zone)

    assert invitation.invite_token == 'other-device-token'


# --- 기록 생성/조회/삭제 ---

@pytest.mark.asyncio
async def test_create_record_returns_backend_confirmed_record(gateway, zone, fake_db):
    record = await gateway.create_record(zone, 'Alice', 'Rex', BASE_TIME)

    assert record.person_name == 'Alice'
    assert record.pet_name == 'Rex'
    assert record.timestamp == BASE_TIME
    assert fake_db.record_ids() == [record.record_id]
    stored = fake_db.documents[fake_db.records_path() + (record.record_id,)]
    assert stored == {'personName': 'Alice', 'petName': 'Rex', 'timestamp': BASE_TIME}


@pytest.mark.asyncio
async def test_create_record_prefers_echoed_fields(gateway, zone, fake_db, monkeypatch):
    original_create = FakeDocumentRef.create

    async def normalizing_create(self, data):
        # 백엔드가 값을 정규화해서 저장하는 경우
        await original_create(self, {**data, 'personName': data['personName'].upper()})

    monkeypatch.setattr(FakeDocumentRef, 'create', normalizing_create)
    record = await gateway.create_record(zone, 'Alice', 'Rex', BASE_TIME)

    assert record.person_name == 'ALICE'


@pytest.mark.asyncio
async def test_create_record_failure_is_wrapped(gateway, zone, fake_db):
    fake_db.fail('create', google_exceptions.PermissionDenied('no write access'))

    with pytest.raises(BackendError) as exc_info:
        await gateway.create_record(zone, 'Alice', 'Rex', BASE_TIME)

    assert exc_info.value.code == 403
    assert fake_db.record_ids() == []


@pytest.mark.asyncio
async def test_query_records_orders_descending_and_limits(gateway, zone, fake_db):
    for minutes in range(7):
        fake_db.put_record(f'r{minutes}', {
            'personName': 'Alice', 'petName': 'Rex', 'timestamp': BASE_TIME + timedelta(minutes=minutes)
        })

    records = await gateway.query_records(zone, 5)

    assert [r.record_id for r in records] == ['r6', 'r5', 'r4', 'r3', 'r2']


@pytest.mark.asyncio
async def test_query_records_skips_unreadable_documents(gateway, zone, fake_db):
    fake_db.put_record('good-1', {'personName': 'Alice', 'petName': 'Rex', 'timestamp': BASE_TIME})
    fake_db.put_record('broken', {'personName': 'Bob', 'timestamp': BASE_TIME + timedelta(minutes=1)})
    fake_db.put_record('good-2', {'personName': 'Bob', 'petName': 'Rex',
                                  'timestamp': BASE_TIME + timedelta(minutes=2)})

    records = await gateway.query_records(zone, 5)

    assert [r.record_id for r in records] == ['good-2', 'good-1']


@pytest.mark.asyncio
async def test_delete_all_records_skips_individual_failures(gateway, zone, fake_db):
    for index in range(8):
        fake_db.put_record(f'r{index}', {'personName': 'Alice', 'petName': 'Rex',
                                         'timestamp': BASE_TIME + timedelta(minutes=index)})
    fake_db.fail('delete', google_exceptions.ServiceUnavailable('flaky'), target='r3', times=1)

    deleted = await gateway.delete_all_records(zone)

    # 목록 조회는 limit 없이 모든 기록을 대상으로 합니다.
    assert deleted == 7
    assert fake_db.record_ids() == ['r3']


@pytest.mark.asyncio
async def test_delete_all_records_listing_failure_propagates(gateway, zone, fake_db):
    fake_db.fail('list_documents', google_exceptions.DeadlineExceeded('too slow'))

    with pytest.raises(BackendError) as exc_info:
        await gateway.delete_all_records(zone)

    assert exc_info.value.code == 504


@pytest.mark.asyncio
async def test_create_record_survives_failed_read_back(gateway, zone, fake_db):
    fake_db.fail('get', google_exceptions.ServiceUnavailable('connection reset'))

    record = await gateway.create_record(zone, 'Alice', 'Rex', BASE_TIME)

    # 저장 자체는 성공했으므로 오류 대신 제안한 값으로 만든 레코드를 돌려받음
    assert record.person_name == 'Alice'
    assert record.timestamp == BASE_TIME
    assert fake_db.record_ids() == [record.record_id]


@pytest.mark.asyncio
async def test_rejected_credentials_become_not_authenticated(gateway, zone, fake_db):
    fake_db.put_record('r1', {'personName': 'Alice', 'petName': 'Rex', 'timestamp': BASE_TIME})
    fake_db.fail('stream', google_auth_exceptions.RefreshError('invalid_grant: key revoked'))
    fake_db.fail('delete', google_auth_exceptions.RefreshError('invalid_grant: key revoked'))

    with pytest.raises(NotAuthenticated):
        await gateway.query_records(zone, 5)
    with pytest.raises(NotAuthenticated):
        await gateway.delete_all_records(zone)
    assert fake_db.record_ids() == ['r1']


# --- 오류 변환 / 진단 ---

def test_to_backend_error_reads_retry_delay():
    class Duration:
        seconds = 12
        nanos = 500000000

    class RetryInfo:
        retry_delay = Duration()

    error = to_backend_error(google_exceptions.TooManyRequests('slow down', details=[RetryInfo()]))

    assert error.code == 429
    assert error.retry_after == 12.5
    assert error.to_dict()['retry_after'] == 12.5


@pytest.mark.asyncio
async def test_validate_configuration_reports_zone_access(gateway, zone, fake_db):
    fake_db.put_record('r1', {'personName': 'Alice', 'petName': 'Rex', 'timestamp': BASE_TIME})

    report = await gateway.validate_configuration(zone)

    assert report['account_status'] == 'available'
    assert report['zone_access'] == {'ok': True, 'records_found': 1}
    assert report['backend']['project_id'] == 'test-project'


@pytest.mark.asyncio
async def test_validate_configuration_never_raises(gateway, zone, fake_db):
    fake_db.fail('stream', google_exceptions.PermissionDenied('denied'))

    report = await gateway.validate_configuration(zone)

    assert report['zone_access']['ok'] is False
    assert 'hint' in report['zone_access']

    assert (await gateway.validate_configuration(None))['zone_access']['ok'] is False
