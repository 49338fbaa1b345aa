# feeding_tracker/services/preference_store.py
import json
import logging
import os
import threading
from typing import Callable, Dict, List, Mapping, Optional

from marshmallow import Schema, fields, EXCLUDE, ValidationError

USER_NAME_KEY = 'userName'
PET_NAME_KEY = 'petName'
KNOWN_KEYS = (USER_NAME_KEY, PET_NAME_KEY)

PreferenceListener = Callable[[str, Optional[str]], None]


class PreferencesFileSchema(Schema):
    """로컬 설정 파일(JSON)의 구조."""
    class Meta:
        unknown = EXCLUDE

    userName = fields.Str(allow_none=True)
    petName = fields.Str(allow_none=True)


class PreferenceStore:
    """
    사용자 이름과 반려견 이름을 로컬 JSON 파일에 영구 저장하는 설정 저장소.

    - get/set과 변경 알림(subscribe)을 제공합니다.
    - 사용자 이름이 비어 있으면 초기 설정(setup)이 필요한 상태입니다.
    """

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.RLock()
        self._listeners: List[PreferenceListener] = []
        self._values: Dict[str, Optional[str]] = self._load()

    def _load(self) -> Dict[str, Optional[str]]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                raw = json.load(f)
            return PreferencesFileSchema().load(raw)
        except (OSError, ValueError, ValidationError) as e:
            # 파일이 손상된 경우 초기 설정부터 다시 진행하도록 빈 값으로 시작합니다.
            logging.warning(f"Preferences file is unreadable, starting empty ({self.path}): {e}")
            return {}

    def _save(self, values: Dict[str, Optional[str]]):
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(PreferencesFileSchema().dump(values), f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, self.path)

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._values.get(key)

    def set(self, key: str, value: Optional[str]):
        self.update({key: value})

    def update(self, values: Mapping[str, Optional[str]]):
        """여러 설정을 한 번에 저장합니다. 실제로 바뀐 키에 대해서만 알림을 보냅니다."""
        unknown = [key for key in values if key not in KNOWN_KEYS]
        if unknown:
            raise KeyError(f"알 수 없는 설정 키입니다: {', '.join(unknown)}")

        with self._lock:
            changed = {key: value for key, value in values.items() if self._values.get(key) != value}
            if not changed:
                return
            # 파일 저장이 성공한 뒤에만 메모리 값을 교체합니다.
            updated = {**self._values, **changed}
            self._save(updated)
            self._values = updated
            listeners = list(self._listeners)

        logging.info(f"Preferences updated: {', '.join(changed)}")
        for key, value in changed.items():
            for listener in listeners:
                try:
                    listener(key, value)
                except Exception as e:
                    logging.error(f"Preference listener failed for '{key}': {e}", exc_info=True)

    def subscribe(self, listener: PreferenceListener) -> Callable[[], None]:
        """설정이 바뀔 때 (key, value)로 호출될 리스너를 등록하고 해제 함수를 반환합니다."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    @property
    def user_name(self) -> str:
        return self.get(USER_NAME_KEY) or ''

    @property
    def pet_name(self) -> str:
        return self.get(PET_NAME_KEY) or ''

    @property
    def setup_required(self) -> bool:
        return not self.user_name

    def to_dict(self) -> Dict[str, object]:
        return {
            USER_NAME_KEY: self.user_name,
            PET_NAME_KEY: self.pet_name,
            'setupRequired': self.setup_required,
        }
