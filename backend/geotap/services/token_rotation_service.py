"""Classroom secret rotation.

Rotation is an administrative operation: every failure is raised as an
exception, never returned as a soft rejection.
"""
from typing import Dict, List, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from geotap import db
from geotap.models.attendance import TokenRotationLog
from geotap.models.classroom import Classroom
from geotap.models.profile import Profile
from geotap.utils.caller_context import CallerContext
from geotap.utils.errors import (
    ClassroomNotFoundError,
    InsufficientPrivilegeError,
    InvalidInputError,
    StoreUnavailableError,
    UnauthenticatedError,
)
from geotap.utils.helpers import isoformat, utcnow
from geotap.utils.validators import MAX_IDENTIFIER_LENGTH, Validator, require

class TokenRotationService:
    """Replaces a classroom's tag secret and records the event."""

    @staticmethod
    def _require_admin(actor: CallerContext) -> Profile:
        profile = Profile.get_by_id(actor.identity_id)
        if profile is None:
            raise UnauthenticatedError('Profile not found for caller')
        if not profile.is_admin():
            raise InsufficientPrivilegeError('Only administrators can rotate classroom secrets')
        return profile

    @classmethod
    def rotate_secret(
        cls,
        actor: CallerContext,
        classroom_id: str,
        new_secret: str,
        reason: Optional[str] = None
    ) -> Dict:
        """Swap the secret and append a TokenRotationLog in one transaction.

        The previous secret stops matching as soon as the transaction commits.
        """
        admin = cls._require_admin(actor)

        require(Validator.validate_identifier(classroom_id, 'classroom_id'))
        require(Validator.validate_secret(new_secret, 'new_secret', max_length=MAX_IDENTIFIER_LENGTH))
        if reason is not None and not isinstance(reason, str):
            raise InvalidInputError('reason must be a string')

        classroom = Classroom.query.filter_by(id=classroom_id).with_for_update().first()
        if classroom is None:
            raise ClassroomNotFoundError(f'Classroom not found: {classroom_id}')

        if classroom.nfc_secret == new_secret:
            raise InvalidInputError('New secret must be different from current secret')

        if Classroom.secret_in_use(new_secret, exclude_id=classroom.id):
            raise InvalidInputError('Secret token already in use by another classroom')

        rotated_at = utcnow()
        old_secret = classroom.nfc_secret
        classroom.nfc_secret = new_secret
        db.session.add(TokenRotationLog(
            classroom_id=classroom.id,
            old_secret=old_secret,
            new_secret=new_secret,
            rotated_by=admin.id,
            rotated_at=rotated_at,
            reason=reason.strip() if reason and reason.strip() else None
        ))

        try:
            db.session.commit()
        except IntegrityError as e:
            # Another rotation claimed the same secret concurrently
            db.session.rollback()
            raise InvalidInputError('Secret token already in use by another classroom') from e
        except SQLAlchemyError as e:
            db.session.rollback()
            current_app.logger.exception('Secret rotation failed for classroom=%s', classroom_id)
            raise StoreUnavailableError('Classroom store is unavailable') from e

        current_app.logger.info(
            'Classroom %s secret rotated by %s%s',
            classroom_id, admin.email, f' ({reason})' if reason else ''
        )

        return {
            'success': True,
            'classroom_id': classroom_id,
            'rotated_at': isoformat(rotated_at),
            'message': 'Secret token rotated successfully. Old token is now invalid.'
        }

    @classmethod
    def rotation_history(cls, actor: CallerContext, classroom_id: str, limit: int = None) -> List[TokenRotationLog]:
        """Latest rotation events for a classroom, newest first."""
        cls._require_admin(actor)

        if Classroom.get_by_id(classroom_id) is None:
            raise ClassroomNotFoundError(f'Classroom not found: {classroom_id}')

        limit = limit or current_app.config.get('TOKEN_ROTATION_HISTORY_LIMIT', 10)
        return TokenRotationLog.query.filter_by(
            classroom_id=classroom_id
        ).order_by(TokenRotationLog.rotated_at.desc()).limit(limit).all()
