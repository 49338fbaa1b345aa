# feeding_tracker/api/preferences/schemas.py
from marshmallow import Schema, fields, validate, pre_load


class PreferencesUpdateSchema(Schema):
    """
    PUT /api/preferences 요청 본문 스키마.
    초기 설정 화면과 동일하게 두 이름 모두 필수입니다.
    """
    userName = fields.Str(required=True, validate=validate.Length(min=1, max=100))
    petName = fields.Str(required=True, validate=validate.Length(min=1, max=100))

    @pre_load
    def strip_names(self, data, **kwargs):
        if not isinstance(data, dict):
            return data
        return {k: v.strip() if isinstance(v, str) else v for k, v in data.items()}


class PreferencesSchema(Schema):
    """설정 조회 응답 스키마."""
    userName = fields.Str()
    petName = fields.Str()
    setupRequired = fields.Bool()
