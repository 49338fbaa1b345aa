# feeding_tracker/api/feedings/schemas.py
from marshmallow import Schema, fields, validate, pre_load

from feeding_tracker.utils.datetime_utils import DateTimeUtils


def _strip_strings(data):
    if not isinstance(data, dict):
        return data
    return {k: v.strip() if isinstance(v, str) else v for k, v in data.items()}


class FeedingCreateSchema(Schema):
    """
    POST /api/feedings 요청 본문 스키마.
    이름을 생략하면 로컬 설정(PreferenceStore)의 값을 사용합니다.
    """
    person_name = fields.Str(validate=validate.Length(min=1, max=100))
    pet_name = fields.Str(validate=validate.Length(min=1, max=100))

    @pre_load
    def strip_names(self, data, **kwargs):
        return _strip_strings(data)


class FeedingRecordSchema(Schema):
    """급여 기록 응답 스키마."""
    record_id = fields.Str(dump_only=True)
    person_name = fields.Str()
    pet_name = fields.Str()
    timestamp = fields.Method('get_timestamp')
    timestamp_ms = fields.Method('get_timestamp_ms')  # 클라이언트 표시용 Unix time (ms)

    def get_timestamp(self, record):
        return DateTimeUtils.to_iso_string(record.timestamp)

    def get_timestamp_ms(self, record):
        return DateTimeUtils.to_timestamp_ms(record.timestamp)


class FeedingHistorySchema(Schema):
    """최근 급여 기록 목록 응답 스키마."""
    records = fields.List(fields.Nested(FeedingRecordSchema), dump_default=[])
    meta = fields.Dict(dump_default={})


class ShareInvitationSchema(Schema):
    """공유 초대장 응답 스키마."""
    share_id = fields.Str()
    zone_name = fields.Str()
    title = fields.Str()
    permission = fields.Str()
    invite_token = fields.Str()
    created_at = fields.Method('get_created_at')

    def get_created_at(self, invitation):
        if invitation.created_at is None:
            return None
        return DateTimeUtils.to_iso_string(invitation.created_at)
