"""Student/administrator profile bound to an external identity."""
from enum import Enum

from geotap import db
from geotap.models.base import BaseModel

class ProfileRole(Enum):
    """Profile roles enumeration."""
    STUDENT = 'student'
    ADMIN = 'admin'

class Profile(BaseModel):
    """Profile keyed by the identity provider's subject id.

    ``device_id`` is written only by the first-login binding endpoint and
    cleared only by an administrative reset. The attendance engine reads it.
    """

    __tablename__ = 'profiles'

    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    full_name = db.Column(db.String(255), nullable=False)
    device_id = db.Column(db.String(255), unique=True, nullable=True)
    role = db.Column(db.Enum(ProfileRole), nullable=False, default=ProfileRole.STUDENT)

    def is_admin(self) -> bool:
        return self.role == ProfileRole.ADMIN

    def to_dict(self, exclude: list = None) -> dict:
        result = super().to_dict(exclude=exclude)
        result['device_bound'] = self.device_id is not None
        return result

    def __repr__(self) -> str:
        return f'<Profile {self.email}>'
