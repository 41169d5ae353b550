"""Profile device-binding endpoints."""
from flask import Blueprint
from flask_jwt_extended import get_jwt_identity, jwt_required

from geotap.services.profile_service import ProfileService
from geotap.utils.caller_context import CallerContext
from geotap.utils.decorators import admin_required
from geotap.utils.helpers import success_response

profile_bp = Blueprint('profile', __name__)
admin_profiles_bp = Blueprint('admin_profiles', __name__)

@profile_bp.route('/device', methods=['POST'])
@jwt_required()
def bind_device():
    """First-login binding of the asserted device to the caller's profile."""
    profile = ProfileService.bind_device(CallerContext.from_request())
    return success_response(data=profile.to_dict(exclude=['device_id']), message='Device bound')

@admin_profiles_bp.route('/<profile_id>/reset-device', methods=['POST'])
@jwt_required()
@admin_required
def reset_device(profile_id):
    """Clear a profile's device binding so the student can bind a new device."""
    profile = ProfileService.reset_device(profile_id, admin_id=get_jwt_identity())
    return success_response(data=profile.to_dict(exclude=['device_id']), message='Device binding reset')
