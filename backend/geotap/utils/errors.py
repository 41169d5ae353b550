"""Hard-failure exceptions.

These abort an operation and are rendered as error responses. They are never
written to the attendance audit trail; business rejections are returned as
normal decisions instead.
"""

class AttendanceError(Exception):
    """Base class for hard failures raised by the service."""

    code = 'error'
    status_code = 500

    def __init__(self, message: str = None):
        self.message = message or self.__class__.__doc__
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {
            'error': True,
            'code': self.code,
            'message': self.message,
            'status_code': self.status_code
        }

class InvalidInputError(AttendanceError):
    """Malformed or missing input."""

    code = 'invalid_input'
    status_code = 400

class UnauthenticatedError(AttendanceError):
    """Caller identity could not be established."""

    code = 'unauthenticated'
    status_code = 401

class InsufficientPrivilegeError(AttendanceError):
    """Caller is not allowed to perform this operation."""

    code = 'insufficient_privilege'
    status_code = 403

class ClassroomNotFoundError(AttendanceError):
    """Classroom does not exist."""

    code = 'classroom_not_found'
    status_code = 404

class ProfileNotFoundError(AttendanceError):
    """Profile does not exist."""

    code = 'profile_not_found'
    status_code = 404

class DeviceAlreadyBoundError(AttendanceError):
    """Profile is already bound to a device."""

    code = 'device_already_bound'
    status_code = 409

class StoreUnavailableError(AttendanceError):
    """Backing store is unavailable."""

    code = 'store_unavailable'
    status_code = 503

class ImmutableRecordError(AttendanceError):
    """Audit records are append-only."""

    code = 'immutable_record'
    status_code = 409
