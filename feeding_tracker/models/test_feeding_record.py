# feeding_tracker/models/test_feeding_record.py
from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone

import pytest

from feeding_tracker.core.exceptions import PartialItemFailure
from feeding_tracker.models.feeding_record import FeedingRecord


def test_defaults_assign_id_and_current_time():
    before = datetime.now(timezone.utc)
    record = FeedingRecord(person_name='Alice', pet_name='Rex')

    assert record.record_id
    assert record.timestamp >= before
    assert record.timestamp.tzinfo == timezone.utc
    assert FeedingRecord(person_name='Alice', pet_name='Rex').record_id != record.record_id


def test_naive_timestamp_is_normalized_to_utc():
    record = FeedingRecord(person_name='Alice', pet_name='Rex', timestamp=datetime(2025, 1, 6, 8, 0))
    assert record.timestamp == datetime(2025, 1, 6, 8, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize('person_name, pet_name', [('', 'Rex'), ('Alice', '   '), (None, 'Rex')])
def test_names_must_not_be_empty(person_name, pet_name):
    with pytest.raises(ValueError):
        FeedingRecord(person_name=person_name, pet_name=pet_name)


def test_record_is_immutable():
    record = FeedingRecord(person_name='Alice', pet_name='Rex')
    with pytest.raises(FrozenInstanceError):
        record.person_name = 'Bob'


def test_to_firestore_uses_remote_field_names():
    timestamp = datetime(2025, 1, 6, 8, 0, tzinfo=timezone(timedelta(hours=9)))
    record = FeedingRecord(person_name='Alice', pet_name='Rex', timestamp=timestamp)

    assert record.to_firestore() == {
        'personName': 'Alice',
        'petName': 'Rex',
        'timestamp': datetime(2025, 1, 5, 23, 0, tzinfo=timezone.utc),
    }


def test_from_document_uses_document_id():
    data = {'personName': 'Bob', 'petName': 'Rex', 'timestamp': datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)}
    record = FeedingRecord.from_document('server-id', data)

    assert record.record_id == 'server-id'
    assert record.person_name == 'Bob'
    assert record.timestamp == data['timestamp']


@pytest.mark.parametrize('data', [
    None,
    {},
    {'personName': 'Bob', 'timestamp': datetime(2025, 1, 6, tzinfo=timezone.utc)},
    {'personName': 'Bob', 'petName': 'Rex'},
    {'personName': '', 'petName': 'Rex', 'timestamp': datetime(2025, 1, 6, tzinfo=timezone.utc)},
    {'personName': 'Bob', 'petName': 'Rex', 'timestamp': 'not-a-date'},
])
def test_from_document_rejects_incomplete_documents(data):
    with pytest.raises(PartialItemFailure) as exc_info:
        FeedingRecord.from_document('broken', data)
    assert exc_info.value.item_id == 'broken'
