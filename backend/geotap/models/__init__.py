"""Models package with all models."""
from .base import BaseModel
from .profile import Profile, ProfileRole
from .classroom import Classroom
from .attendance import AttendanceLog, AttendanceStatus, TokenRotationLog

__all__ = [
    'BaseModel', 'Profile', 'ProfileRole', 'Classroom',
    'AttendanceLog', 'AttendanceStatus', 'TokenRotationLog'
]
