"""Device binding writes.

The attendance engine only reads ``Profile.device_id``. Binding happens once,
on first login, and only an administrator can clear it.
"""
from flask import current_app
from sqlalchemy.exc import IntegrityError

from geotap import db
from geotap.models.profile import Profile
from geotap.utils.caller_context import CallerContext
from geotap.utils.errors import (
    DeviceAlreadyBoundError,
    InvalidInputError,
    ProfileNotFoundError,
)
from geotap.utils.validators import MAX_IDENTIFIER_LENGTH

class ProfileService:

    @staticmethod
    def bind_device(caller: CallerContext) -> Profile:
        """Bind the asserted device to the caller's profile if none is bound."""
        if caller.device_id is None:
            raise InvalidInputError('Identity assertion carries no device identifier')
        if len(caller.device_id) > MAX_IDENTIFIER_LENGTH:
            raise InvalidInputError(f'Device identifier must be at most {MAX_IDENTIFIER_LENGTH} characters')

        profile = Profile.query.filter_by(id=caller.identity_id).with_for_update().first()
        if profile is None:
            raise ProfileNotFoundError(f'Profile not found: {caller.identity_id}')

        if profile.device_id is not None:
            if profile.device_id == caller.device_id:
                return profile
            raise DeviceAlreadyBoundError(
                'This account is bound to another device. Contact an administrator to reset it.'
            )

        profile.device_id = caller.device_id
        try:
            db.session.commit()
        except IntegrityError as e:
            db.session.rollback()
            raise DeviceAlreadyBoundError('Device is already bound to another account') from e

        current_app.logger.info('Device bound to profile %s', profile.id)
        return profile

    @staticmethod
    def reset_device(profile_id: str, admin_id: str) -> Profile:
        """Administrative reset of a device binding."""
        profile = Profile.get_by_id(profile_id)
        if profile is None:
            raise ProfileNotFoundError(f'Profile not found: {profile_id}')

        profile.device_id = None
        db.session.commit()

        current_app.logger.info('Device binding of profile %s reset by %s', profile_id, admin_id)
        return profile
