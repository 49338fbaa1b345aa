# feeding_tracker/fakes.py
"""
테스트용 대역(test double)

실제 Firestore 대신 메모리 기반의 비동기 Firestore 대역(FakeFirestore)을 제공합니다.
SyncGateway가 사용하는 AsyncClient API(collection/document/create/get/delete/
order_by/limit/stream/list_documents)만 흉내 냅니다.
"""

import uuid
from datetime import datetime, timedelta, timezone

from google.api_core import exceptions as google_exceptions

from feeding_tracker.models.sync import AccountStatus


BASE_TIME = datetime(2025, 1, 6, 8, 0, tzinfo=timezone.utc)
ZONE_NAME = 'SharedFeedingZone'


class FakeSnapshot:
    def __init__(self, reference, data):
        self.reference = reference
        self.id = reference.id
        self._data = data

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return dict(self._data) if self._data is not None else None


class FakeDocumentRef:
    def __init__(self, db, path):
        self._db = db
        self.path = path
        self.id = path[-1]

    def collection(self, name):
        return FakeCollection(self._db, self.path + (name,))

    async def create(self, data):
        self._db.check('create', self.path)
        if self.path in self._db.documents:
            raise google_exceptions.AlreadyExists(f"Document already exists: {'/'.join(self.path)}")
        self._db.documents[self.path] = dict(data)

    async def set(self, data):
        self._db.check('set', self.path)
        self._db.documents[self.path] = dict(data)

    async def get(self):
        self._db.check('get', self.path)
        return FakeSnapshot(self, self._db.documents.get(self.path))

    async def delete(self):
        self._db.check('delete', self.path)
        self._db.documents.pop(self.path, None)


class FakeCollection:
    def __init__(self, db, path, orders=(), limit_count=None):
        self._db = db
        self.path = path
        self.id = path[-1]
        self._orders = orders
        self._limit = limit_count

    def document(self, doc_id=None):
        return FakeDocumentRef(self._db, self.path + (doc_id or uuid.uuid4().hex,))

    def order_by(self, field_path, direction='ASCENDING'):
        return FakeCollection(self._db, self.path, self._orders + ((field_path, direction),), self._limit)

    def limit(self, count):
        return FakeCollection(self._db, self.path, self._orders, count)

    def _child_paths(self):
        depth = len(self.path) + 1
        return [path for path in self._db.documents if len(path) == depth and path[:-1] == self.path]

    def _snapshots(self):
        snapshots = [FakeSnapshot(FakeDocumentRef(self._db, path), self._db.documents[path])
                     for path in self._child_paths()]
        for field_path, direction in reversed(self._orders):
            # Firestore처럼 정렬 필드가 없는 문서는 결과에서 제외
            snapshots = [s for s in snapshots if s.to_dict().get(field_path) is not None]
            snapshots.sort(key=lambda s: s.to_dict()[field_path], reverse=(direction == 'DESCENDING'))
        if self._limit is not None:
            snapshots = snapshots[:self._limit]
        return snapshots

    async def stream(self):
        self._db.check('stream', self.path)
        for snapshot in self._snapshots():
            yield snapshot

    async def list_documents(self):
        self._db.check('list_documents', self.path)
        for path in self._child_paths():
            yield FakeDocumentRef(self._db, path)


class FakeFirestore:
    """메모리 기반 Firestore 비동기 클라이언트 대역."""

    def __init__(self):
        self.documents = {}
        self._failures = []
        self.calls = []

    def collection(self, name):
        return FakeCollection(self, (name,))

    def fail(self, operation, error, target=None, times=None):
        """operation(과 경로의 마지막 요소 target)이 일치하는 호출에서 error를 발생시킵니다."""
        self._failures.append({'operation': operation, 'error': error, 'target': target, 'times': times})

    def check(self, operation, path):
        self.calls.append((operation, path))
        for rule in self._failures:
            if rule['operation'] != operation:
                continue
            if rule['target'] is not None and rule['target'] != path[-1]:
                continue
            if rule['times'] is not None:
                if rule['times'] <= 0:
                    continue
                rule['times'] -= 1
            raise rule['error']

    # --- 테스트 데이터 헬퍼 ---
    def records_path(self, zone_name=ZONE_NAME):
        return ('feeding_zones', zone_name, 'FeedingRecord')

    def put_record(self, record_id, data, zone_name=ZONE_NAME):
        self.documents[self.records_path(zone_name) + (record_id,)] = dict(data)

    def record_ids(self, zone_name=ZONE_NAME):
        prefix = self.records_path(zone_name)
        return sorted(path[-1] for path in self.documents if path[:-1] == prefix)


class FakeAccountProvider:
    """테스트용 계정/세션 제공자."""

    def __init__(self, db, status=AccountStatus.AVAILABLE):
        self.db = db
        self.status = status
        self.status_checks = 0

    async def account_status(self):
        self.status_checks += 1
        return self.status

    def client(self):
        return self.db

    def describe(self):
        return {'provider': 'fake', 'project_id': 'test-project', 'credentials_configured': True}


class SteppingClock:
    """호출할 때마다 step만큼 증가하는 시계 (T, T+1분, T+2분, ...)."""

    def __init__(self, start=BASE_TIME, step=timedelta(minutes=1)):
        self.current = start
        self.step = step

    def __call__(self):
        value = self.current
        self.current = self.current + self.step
        return value
