"""Attendance API endpoints."""
from flask import Blueprint, current_app, request
from flask_jwt_extended import get_jwt_identity, jwt_required

from geotap import limiter
from geotap.services.attendance_service import AttendanceService
from geotap.utils.caller_context import CallerContext
from geotap.utils.errors import InvalidInputError
from geotap.utils.helpers import success_response

attendance_bp = Blueprint('attendance', __name__)

@attendance_bp.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint."""
    return success_response(message='Attendance service is running')

@attendance_bp.route('/mark', methods=['POST'])
@jwt_required()
@limiter.limit(
    lambda: current_app.config.get('MARK_ATTENDANCE_HTTP_LIMIT', '30 per minute'),
    key_func=get_jwt_identity
)
def mark_attendance():
    """Decide PRESENT or REJECTED for one tag scan.

    Body: ``classroom_id``, ``secret``, ``latitude``, ``longitude``.
    Rejections are normal 200 responses; only malformed input, auth and store
    failures are errors.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidInputError('Request body must be a JSON object')

    caller = CallerContext.from_request()
    decision = AttendanceService.mark_attendance(
        caller,
        classroom_id=data.get('classroom_id'),
        secret=data.get('secret'),
        latitude=data.get('latitude'),
        longitude=data.get('longitude')
    )

    message = 'Attendance recorded' if decision.is_present else 'Attendance rejected'
    return success_response(data=decision.to_response(), message=message)

@attendance_bp.route('/history', methods=['GET'])
@jwt_required()
def history():
    """The caller's own attempts, newest first."""
    caller = CallerContext.from_request()
    limit = min(
        request.args.get('limit', type=int, default=current_app.config['DEFAULT_PAGE_SIZE']),
        current_app.config['MAX_PAGE_SIZE']
    )
    if limit < 1:
        raise InvalidInputError('limit must be positive')

    logs = AttendanceService.history_for(caller, limit=limit)
    return success_response(data=[log.to_dict() for log in logs])
