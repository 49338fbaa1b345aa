# feeding_tracker/models/feeding_record.py
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from feeding_tracker.core.exceptions import PartialItemFailure
from feeding_tracker.utils.datetime_utils import DateTimeUtils

# 원격 저장소의 레코드 타입 및 필드 이름 (다른 기기와의 호환을 위해 고정)
RECORD_TYPE = 'FeedingRecord'
FIELD_PERSON_NAME = 'personName'
FIELD_PET_NAME = 'petName'
FIELD_TIMESTAMP = 'timestamp'


@dataclass(frozen=True)
class FeedingRecord:
    """
    공유 존의 'FeedingRecord' 문서 하나를 나타내는 불변 값 객체.
    저장된 이후에는 수정되지 않고, 생성 또는 삭제만 됩니다.
    """
    person_name: str  # 급여한 사람
    pet_name: str     # 급여받은 반려견
    timestamp: datetime = field(default_factory=DateTimeUtils.now)
    # 클라이언트가 제안하는 ID. 저장 후에는 백엔드 문서 ID가 우선합니다.
    record_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        if not isinstance(self.person_name, str) or not self.person_name.strip():
            raise ValueError("person_name은 비어 있을 수 없습니다.")
        if not isinstance(self.pet_name, str) or not self.pet_name.strip():
            raise ValueError("pet_name은 비어 있을 수 없습니다.")
        # timestamp는 항상 UTC timezone-aware로 정규화
        object.__setattr__(self, 'timestamp', DateTimeUtils.validate_datetime_field(self.timestamp, 'timestamp'))

    def to_firestore(self) -> Dict[str, Any]:
        """Firestore에 저장할 문서 데이터를 만듭니다. (문서 ID는 별도)"""
        return DateTimeUtils.for_firestore({
            FIELD_PERSON_NAME: self.person_name,
            FIELD_PET_NAME: self.pet_name,
            FIELD_TIMESTAMP: self.timestamp,
        })

    @classmethod
    def from_document(cls, doc_id: str, data: Optional[Mapping[str, Any]]) -> 'FeedingRecord':
        """
        Firestore 문서 데이터로부터 레코드를 복원합니다.
        필수 필드가 없거나 형식이 잘못된 경우 PartialItemFailure를 발생시킵니다.
        """
        if not data:
            raise PartialItemFailure(doc_id, "문서 데이터가 비어 있습니다")

        data = DateTimeUtils.from_firestore(dict(data))
        missing = [name for name in (FIELD_PERSON_NAME, FIELD_PET_NAME, FIELD_TIMESTAMP) if data.get(name) is None]
        if missing:
            raise PartialItemFailure(doc_id, f"필수 필드 누락: {', '.join(missing)}")

        try:
            return cls(
                record_id=doc_id,
                person_name=data[FIELD_PERSON_NAME],
                pet_name=data[FIELD_PET_NAME],
                timestamp=data[FIELD_TIMESTAMP],
            )
        except ValueError as e:
            raise PartialItemFailure(doc_id, str(e))
