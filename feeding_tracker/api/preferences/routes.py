# feeding_tracker/api/preferences/routes.py
import logging
from flask import Blueprint, request, jsonify, current_app
from marshmallow import ValidationError

from feeding_tracker.api.preferences.schemas import PreferencesSchema, PreferencesUpdateSchema

preferences_bp = Blueprint('preferences_bp', __name__)


@preferences_bp.route('', methods=['GET'])
def get_preferences():
    """사용자 이름, 반려견 이름, 초기 설정 필요 여부를 반환합니다."""
    store = current_app.services['preferences']
    return jsonify(PreferencesSchema().dump(store.to_dict())), 200


@preferences_bp.route('', methods=['PUT'])
def update_preferences():
    """초기 설정 화면에서 입력한 이름들을 저장합니다."""
    store = current_app.services['preferences']
    try:
        data = PreferencesUpdateSchema().load(request.get_json(silent=True) or {})
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400

    try:
        store.update(data)
    except OSError as e:
        logging.error(f"설정 저장 실패: {e}", exc_info=True)
        return jsonify({"error_code": "UPDATE_FAILED", "message": "설정 저장 중 오류 발생"}), 500
    return jsonify(PreferencesSchema().dump(store.to_dict())), 200
