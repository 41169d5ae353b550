"""Classroom Management API - Admin Only."""
from flask import Blueprint, request
from flask_jwt_extended import jwt_required

from geotap.services.classroom_service import ClassroomService
from geotap.services.token_rotation_service import TokenRotationService
from geotap.utils.caller_context import CallerContext
from geotap.utils.decorators import admin_required
from geotap.utils.errors import InvalidInputError
from geotap.utils.helpers import success_response

classrooms_bp = Blueprint('classrooms', __name__)

def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidInputError('Request body must be a JSON object')
    return data

@classrooms_bp.route('/', methods=['GET'])
@jwt_required()
@admin_required
def get_classrooms():
    """List classrooms. Secrets are never listed."""
    classrooms = ClassroomService.list_classrooms(building=request.args.get('building'))
    return success_response(data=[classroom.to_dict() for classroom in classrooms])

@classrooms_bp.route('/<classroom_id>', methods=['GET'])
@jwt_required()
@admin_required
def get_classroom(classroom_id):
    """Get single classroom details."""
    classroom = ClassroomService.get_classroom(classroom_id)
    return success_response(data=classroom.to_dict())

@classrooms_bp.route('/', methods=['POST'])
@jwt_required()
@admin_required
def create_classroom():
    """Create a classroom; the response carries the payload to write on its tag."""
    classroom = ClassroomService.create_classroom(_json_body())

    data = classroom.to_dict()
    data['tag_payload'] = classroom.tag_payload()
    return success_response(data=data, message='Classroom created', status_code=201)

@classrooms_bp.route('/<classroom_id>/rotate-secret', methods=['POST'])
@jwt_required()
@admin_required
def rotate_secret(classroom_id):
    """Replace the classroom's tag secret. The old secret is rejected immediately."""
    data = _json_body()
    if 'new_secret' not in data:
        raise InvalidInputError('new_secret is required')

    result = TokenRotationService.rotate_secret(
        CallerContext.from_request(),
        classroom_id,
        data['new_secret'],
        reason=data.get('reason')
    )
    return success_response(data=result, message=result['message'])

@classrooms_bp.route('/<classroom_id>/rotations', methods=['GET'])
@jwt_required()
@admin_required
def rotation_history(classroom_id):
    """Latest secret rotations for a classroom."""
    limit = request.args.get('limit', type=int)
    if limit is not None and limit < 1:
        raise InvalidInputError('limit must be positive')

    rotations = TokenRotationService.rotation_history(
        CallerContext.from_request(), classroom_id, limit=limit
    )
    return success_response(data=[rotation.to_dict() for rotation in rotations])
