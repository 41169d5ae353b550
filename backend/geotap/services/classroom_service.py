"""Classroom administration."""
from typing import Dict, List

from flask import current_app
from sqlalchemy.exc import IntegrityError

from geotap import db
from geotap.models.classroom import Classroom
from geotap.utils.errors import ClassroomNotFoundError, InvalidInputError
from geotap.utils.validators import MAX_IDENTIFIER_LENGTH, Validator, require

class ClassroomService:
    """Create and look up classrooms."""

    @staticmethod
    def create_classroom(data: Dict) -> Classroom:
        """Create a classroom. A secret is generated when none is supplied."""
        require(Validator.validate_required_fields(data, ['name', 'building', 'latitude', 'longitude']))
        require(Validator.validate_identifier(data['name'], 'name', max_length=100))
        require(Validator.validate_identifier(data['building'], 'building', max_length=100))
        latitude = require(Validator.validate_latitude(data['latitude']))['value']
        longitude = require(Validator.validate_longitude(data['longitude']))['value']

        radius = data.get('geofence_radius_meters')
        if radius is not None:
            if isinstance(radius, bool) or not isinstance(radius, (int, float)) or radius <= 0:
                raise InvalidInputError('geofence_radius_meters must be a positive number')
            radius = float(radius)

        secret = data.get('nfc_secret')
        if secret is None:
            secret = Classroom.generate_secret(current_app.config.get('GENERATED_SECRET_BYTES', 24))
        else:
            require(Validator.validate_secret(secret, 'nfc_secret', max_length=MAX_IDENTIFIER_LENGTH))
            if Classroom.secret_in_use(secret):
                raise InvalidInputError('Secret token already in use by another classroom')

        classroom = Classroom(
            name=data['name'].strip(),
            building=data['building'].strip(),
            latitude=latitude,
            longitude=longitude,
            geofence_radius_meters=radius,
            nfc_secret=secret
        )
        try:
            classroom.save()
        except IntegrityError as e:
            db.session.rollback()
            raise InvalidInputError('Secret token already in use by another classroom') from e

        current_app.logger.info('Classroom %s created in %s', classroom.id, classroom.building)
        return classroom

    @staticmethod
    def get_classroom(classroom_id: str) -> Classroom:
        classroom = Classroom.get_by_id(classroom_id)
        if classroom is None:
            raise ClassroomNotFoundError(f'Classroom not found: {classroom_id}')
        return classroom

    @staticmethod
    def list_classrooms(building: str = None) -> List[Classroom]:
        query = Classroom.query
        if building:
            query = query.filter_by(building=building)
        return query.order_by(Classroom.building, Classroom.name).all()
