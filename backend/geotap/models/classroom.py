"""Classroom model with tag secret and geofence center."""
import json
import secrets
from typing import Optional

from geotap import db
from geotap.models.base import BaseModel

class Classroom(BaseModel):
    """Classroom with a WGS-84 center point and its current tag secret."""

    __tablename__ = 'classrooms'

    name = db.Column(db.String(100), nullable=False)
    building = db.Column(db.String(100), nullable=False)

    # Center point (WGS-84 degrees)
    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)

    # Overrides GEOFENCE_RADIUS_METERS when set
    geofence_radius_meters = db.Column(db.Float, nullable=True)

    # Current secret written to the physical tag; rotated via TokenRotationService
    nfc_secret = db.Column(db.String(255), nullable=False, unique=True)

    rotations = db.relationship(
        'TokenRotationLog', backref='classroom', lazy='dynamic',
        order_by='TokenRotationLog.rotated_at.desc()'
    )

    @staticmethod
    def generate_secret(num_bytes: int = 24) -> str:
        """Generate a URL-safe random tag secret."""
        return secrets.token_urlsafe(num_bytes)

    @property
    def point(self) -> tuple:
        return (self.latitude, self.longitude)

    def radius_or(self, default: float) -> float:
        return self.geofence_radius_meters if self.geofence_radius_meters is not None else default

    def tag_payload(self) -> str:
        """Flat key-value record to write onto the classroom tag."""
        return json.dumps({'classroom_id': self.id, 'secret': self.nfc_secret}, separators=(',', ':'))

    @classmethod
    def secret_in_use(cls, secret: str, exclude_id: Optional[str] = None) -> bool:
        query = cls.query.filter(cls.nfc_secret == secret)
        if exclude_id is not None:
            query = query.filter(cls.id != exclude_id)
        return db.session.query(query.exists()).scalar()

    def to_dict(self, exclude: list = None, include_secret: bool = False) -> dict:
        exclude = list(exclude or [])
        if not include_secret:
            exclude.append('nfc_secret')
        return super().to_dict(exclude=exclude)

    def __repr__(self) -> str:
        return f'<Classroom {self.name} ({self.building})>'
