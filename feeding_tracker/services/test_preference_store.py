# feeding_tracker/services/test_preference_store.py
import json

import pytest

from feeding_tracker.services.preference_store import PreferenceStore, USER_NAME_KEY, PET_NAME_KEY


@pytest.fixture
def prefs_path(tmp_path):
    return str(tmp_path / 'instance' / 'preferences.json')


def test_new_store_requires_setup(prefs_path):
    store = PreferenceStore(prefs_path)

    assert store.setup_required is True
    assert store.to_dict() == {'userName': '', 'petName': '', 'setupRequired': True}


def test_values_persist_across_instances(prefs_path):
    PreferenceStore(prefs_path).update({USER_NAME_KEY: 'Alice', PET_NAME_KEY: 'Rex'})

    reopened = PreferenceStore(prefs_path)

    assert reopened.user_name == 'Alice'
    assert reopened.pet_name == 'Rex'
    assert reopened.setup_required is False
    with open(prefs_path, encoding='utf-8') as f:
        assert json.load(f) == {'userName': 'Alice', 'petName': 'Rex'}


def test_listeners_are_notified_only_for_changed_keys(prefs_path):
    store = PreferenceStore(prefs_path)
    store.set(USER_NAME_KEY, 'Alice')
    changes = []
    unsubscribe = store.subscribe(lambda key, value: changes.append((key, value)))

    store.update({USER_NAME_KEY: 'Alice', PET_NAME_KEY: 'Rex'})
    unsubscribe()
    store.set(PET_NAME_KEY, 'Coco')

    assert changes == [(PET_NAME_KEY, 'Rex')]


def test_unknown_key_is_rejected(prefs_path):
    store = PreferenceStore(prefs_path)

    with pytest.raises(KeyError):
        store.set('favoriteFood', 'kibble')
    assert store.get('favoriteFood') is None


def test_corrupt_file_starts_empty(tmp_path):
    path = tmp_path / 'preferences.json'
    path.write_text('{not json', encoding='utf-8')

    store = PreferenceStore(str(path))

    assert store.setup_required is True


def test_pet_name_alone_does_not_finish_setup(prefs_path):
    store = PreferenceStore(prefs_path)
    store.set(PET_NAME_KEY, 'Rex')

    assert store.setup_required is True


def test_failed_write_keeps_previous_values(prefs_path, monkeypatch):
    store = PreferenceStore(prefs_path)
    store.update({USER_NAME_KEY: 'Alice', PET_NAME_KEY: 'Rex'})
    changes = []
    store.subscribe(lambda key, value: changes.append((key, value)))

    def failing_replace(src, dst):
        raise OSError('disk full')

    monkeypatch.setattr('feeding_tracker.services.preference_store.os.replace', failing_replace)
    with pytest.raises(OSError):
        store.set(USER_NAME_KEY, 'Bob')

    assert store.user_name == 'Alice'
    assert changes == []
