"""Append-only attendance audit log."""
from enum import Enum
from typing import Optional

from sqlalchemy import DDL, event, inspect
from sqlalchemy.orm import Session

from geotap import db
from geotap.models.base import BaseModel
from geotap.utils.errors import ImmutableRecordError
from geotap.utils.helpers import isoformat
from geotap.utils.validators import MAX_IDENTIFIER_LENGTH

class AttendanceStatus(Enum):
    """Outcome of one submission."""
    PRESENT = 'PRESENT'
    REJECTED = 'REJECTED'

class AttendanceLog(BaseModel):
    """One row per submission, accepted or rejected.

    ``caller_id`` and ``requested_classroom_id`` hold the values exactly as
    submitted. The foreign keys are only set when the referenced row exists,
    so rejections for unknown profiles or classrooms are still recorded.
    """

    __tablename__ = 'attendance_logs'
    __table_args__ = (
        db.CheckConstraint(
            "(status = 'REJECTED' AND rejection_reason IS NOT NULL) OR "
            "(status = 'PRESENT' AND rejection_reason IS NULL)",
            name='valid_rejection'
        ),
        db.Index('idx_attendance_caller_timestamp', 'caller_id', 'timestamp'),
        db.Index('idx_attendance_classroom_status_timestamp', 'classroom_id', 'status', 'timestamp'),
    )

    caller_id = db.Column(db.String(MAX_IDENTIFIER_LENGTH), nullable=False)
    identity_id = db.Column(
        db.String(36), db.ForeignKey('profiles.id', ondelete='RESTRICT'), nullable=True
    )
    requested_classroom_id = db.Column(db.String(MAX_IDENTIFIER_LENGTH), nullable=False)
    classroom_id = db.Column(
        db.String(36), db.ForeignKey('classrooms.id', ondelete='RESTRICT'), nullable=True
    )

    timestamp = db.Column(db.DateTime, nullable=False, index=True)
    status = db.Column(db.Enum(AttendanceStatus, name='attendance_status'), nullable=False)
    rejection_reason = db.Column(db.String(50), nullable=True)

    # Submitted point (WGS-84 degrees)
    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)

    profile = db.relationship('Profile', backref=db.backref('attendance_logs', lazy='dynamic'))
    classroom = db.relationship('Classroom', backref=db.backref('attendance_logs', lazy='dynamic'))

    @classmethod
    def record(
        cls,
        *,
        caller_id: str,
        requested_classroom_id: str,
        timestamp,
        latitude: float,
        longitude: float,
        rejection_reason: Optional[str] = None,
        identity_id: Optional[str] = None,
        classroom_id: Optional[str] = None
    ) -> 'AttendanceLog':
        """Build a record whose status is derived from the reason."""
        status = AttendanceStatus.REJECTED if rejection_reason else AttendanceStatus.PRESENT
        return cls(
            caller_id=caller_id,
            identity_id=identity_id,
            requested_classroom_id=requested_classroom_id,
            classroom_id=classroom_id,
            timestamp=timestamp,
            status=status,
            rejection_reason=rejection_reason or None,
            latitude=latitude,
            longitude=longitude
        )

    @classmethod
    def latest_timestamp_for(cls, caller_id: str):
        """Timestamp of the caller's most recent attempt, or None."""
        return db.session.query(db.func.max(cls.timestamp)).filter(
            cls.caller_id == caller_id
        ).scalar()

    def to_dict(self, exclude: list = None) -> dict:
        return {
            'id': self.id,
            'student_id': self.identity_id or self.caller_id,
            'classroom_id': self.classroom_id or self.requested_classroom_id,
            'timestamp': isoformat(self.timestamp),
            'status': self.status.value,
            'rejection_reason': self.rejection_reason,
            'student_location': {
                'latitude': self.latitude,
                'longitude': self.longitude
            }
        }

    def __repr__(self) -> str:
        return f'<AttendanceLog {self.caller_id}-{self.requested_classroom_id} {self.status.value}>'

class TokenRotationLog(BaseModel):
    """Audit entry for one classroom secret rotation."""

    __tablename__ = 'token_rotation_logs'
    __table_args__ = (
        db.Index('idx_token_rotation_classroom', 'classroom_id', 'rotated_at'),
    )

    classroom_id = db.Column(
        db.String(36), db.ForeignKey('classrooms.id', ondelete='RESTRICT'), nullable=False
    )
    old_secret = db.Column(db.String(255), nullable=False)
    new_secret = db.Column(db.String(255), nullable=False)
    rotated_by = db.Column(db.String(36), db.ForeignKey('profiles.id', ondelete='RESTRICT'), nullable=False)
    rotated_at = db.Column(db.DateTime, nullable=False)
    reason = db.Column(db.Text, nullable=True)

    actor = db.relationship('Profile')

    def to_dict(self, exclude: list = None) -> dict:
        return {
            'id': self.id,
            'classroom_id': self.classroom_id,
            'rotated_at': isoformat(self.rotated_at),
            'rotated_by': self.rotated_by,
            'rotated_by_email': self.actor.email if self.actor else None,
            'reason': self.reason
        }

# =================== APPEND-ONLY ENFORCEMENT ===================

APPEND_ONLY_MODELS = (AttendanceLog, TokenRotationLog)

def _reject_update(mapper, connection, target):
    state = inspect(target)
    changed = [attr.key for attr in state.attrs if attr.history.has_changes()]
    if changed:
        raise ImmutableRecordError(
            f"{mapper.class_.__tablename__} is append-only; cannot modify {', '.join(changed)}"
        )

def _reject_delete(mapper, connection, target):
    raise ImmutableRecordError(f"{mapper.class_.__tablename__} is append-only; rows cannot be deleted")

for _model in APPEND_ONLY_MODELS:
    event.listen(_model, 'before_update', _reject_update)
    event.listen(_model, 'before_delete', _reject_delete)

@event.listens_for(Session, 'do_orm_execute')
def _reject_bulk_mutation(orm_execute_state):
    """Block query.update()/query.delete() and update()/delete() statements."""
    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return
    for mapper in orm_execute_state.all_mappers:
        if mapper.class_ in APPEND_ONLY_MODELS:
            raise ImmutableRecordError(f"{mapper.class_.__tablename__} is append-only")

for _model in APPEND_ONLY_MODELS:
    _table = _model.__tablename__
    event.listen(
        _model.__table__,
        'after_create',
        DDL(
            f"CREATE OR REPLACE FUNCTION {_table}_append_only() RETURNS trigger AS $body$ "
            f"BEGIN RAISE EXCEPTION '{_table} is append-only'; END; $body$ LANGUAGE plpgsql; "
            f"CREATE TRIGGER {_table}_append_only BEFORE UPDATE OR DELETE ON {_table} "
            f"FOR EACH ROW EXECUTE FUNCTION {_table}_append_only();"
        ).execute_if(dialect='postgresql')
    )
