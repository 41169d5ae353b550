"""Custom decorators for authorization."""
from functools import wraps

from flask_jwt_extended import get_jwt_identity

from geotap.models.profile import Profile, ProfileRole
from geotap.utils.errors import InsufficientPrivilegeError, UnauthenticatedError

def admin_required(f):
    """Decorator to require an admin profile. Apply after @jwt_required()."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        current_identity = get_jwt_identity()
        profile = Profile.get_by_id(current_identity) if current_identity else None

        if not profile:
            raise UnauthenticatedError("Profile not found for caller")

        if profile.role != ProfileRole.ADMIN:
            raise InsufficientPrivilegeError("Admin access required")

        return f(*args, **kwargs)
    return decorated_function
