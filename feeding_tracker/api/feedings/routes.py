# feeding_tracker/api/feedings/routes.py
import logging
from flask import Blueprint, request, jsonify, current_app
from marshmallow import ValidationError

from feeding_tracker.api.feedings.schemas import (
    FeedingCreateSchema,
    FeedingHistorySchema,
    FeedingRecordSchema,
    ShareInvitationSchema
)

feedings_bp = Blueprint('feedings_bp', __name__)


def _run_when_ready(operation):
    """
    HistoryManager 초기화가 끝나기를 기다린 뒤 operation(manager)을 동기화 루프에서 실행합니다.
    동기화 계층의 예외는 그대로 전달되어 전역 에러 핸들러가 응답으로 변환합니다.
    """
    manager = current_app.services['history']
    sync_loop = current_app.services['sync_loop']

    async def _call():
        await manager.initialize()
        return await operation(manager)

    return sync_loop.run(_call(), timeout=current_app.config['SYNC_TIMEOUT_SECONDS'])


def _history_response(records):
    manager = current_app.services['history']
    payload = {
        'records': records,
        'meta': {
            'count': len(records),
            'limit': manager.history_limit,
            'state': manager.state.value,
            'is_loading': manager.is_loading,
        }
    }
    return FeedingHistorySchema().dump(payload)


@feedings_bp.route('', methods=['GET'])
def get_feedings():
    """메모리에 유지 중인 최근 급여 기록을 반환합니다 (백엔드를 호출하지 않음)."""
    manager = current_app.services['history']
    return jsonify(_history_response(manager.records)), 200


@feedings_bp.route('', methods=['POST'])
def record_feeding():
    """급여 기록을 저장합니다. 이름이 없으면 로컬 설정값을 사용합니다."""
    preferences = current_app.services['preferences']
    try:
        data = FeedingCreateSchema().load(request.get_json(silent=True) or {})
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400

    person_name = data.get('person_name') or preferences.user_name
    pet_name = data.get('pet_name') or preferences.pet_name
    if not person_name or not pet_name:
        return jsonify({
            "error_code": "SETUP_REQUIRED",
            "message": "사용자 이름과 반려견 이름을 먼저 설정해주세요."
        }), 409

    record = _run_when_ready(lambda manager: manager.record_feeding(person_name, pet_name))
    logging.info(f"Feeding recorded via API (record_id: {record.record_id})")
    return jsonify(FeedingRecordSchema().dump(record)), 201


@feedings_bp.route('/refresh', methods=['POST'])
def refresh_feedings():
    """백엔드에서 최신 기록을 다시 조회합니다."""
    records = _run_when_ready(lambda manager: manager.refresh())
    return jsonify(_history_response(records)), 200


@feedings_bp.route('', methods=['DELETE'])
def clear_feedings():
    """공유 존의 모든 급여 기록을 삭제합니다. 되돌릴 수 없습니다."""
    deleted = _run_when_ready(lambda manager: manager.clear_all())
    return jsonify({"deleted": deleted}), 200


@feedings_bp.route('/share', methods=['GET'])
def get_share_invitation():
    """공유 시트에 넘겨줄 초대장 정보를 반환합니다."""
    invitation = _run_when_ready(lambda manager: _current_invitation(manager))
    if invitation is None:
        return jsonify({
            "error_code": "SHARE_NOT_AVAILABLE",
            "message": "공유 초대장이 아직 준비되지 않았습니다."
        }), 404
    return jsonify(ShareInvitationSchema().dump(invitation)), 200


async def _current_invitation(manager):
    return manager.share_invitation()


@feedings_bp.route('/status', methods=['GET'])
def get_sync_status():
    """동기화 상태 (초기화 단계별 결과 포함)."""
    manager = current_app.services['history']
    return jsonify(manager.status()), 200


@feedings_bp.route('/diagnostics', methods=['GET'])
def get_diagnostics():
    """백엔드 설정 점검 결과를 반환합니다."""
    report = _run_when_ready(lambda manager: manager.validate_configuration())
    return jsonify(report), 200
