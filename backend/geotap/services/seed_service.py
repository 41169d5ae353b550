"""Database seeding service for development data."""
from typing import Dict

from flask import current_app

from geotap import db
from geotap.models.classroom import Classroom
from geotap.models.profile import Profile, ProfileRole

SAMPLE_CLASSROOMS = [
    ('Room 301', 'Engineering Building', 37.7749, -122.4194, 'eng301_secret_a1b2c3d4e5f6'),
    ('Lab 205', 'Science Building', 37.7750, -122.4190, 'sci205_secret_g7h8i9j0k1l2'),
    ('Study Room A', 'Library', 37.7745, -122.4200, 'lib_studyA_secret_m3n4o5p6'),
]

SAMPLE_PROFILES = [
    ('admin@university.edu', 'System Administrator', ProfileRole.ADMIN),
    ('student1@university.edu', 'Student One', ProfileRole.STUDENT),
    ('student2@university.edu', 'Student Two', ProfileRole.STUDENT),
]

class SeedService:
    """Service to seed database with development data. Existing rows are kept."""

    @staticmethod
    def seed_all() -> Dict[str, int]:
        """Seed all sample data."""
        return {
            'classrooms': SeedService.seed_classrooms(),
            'profiles': SeedService.seed_profiles()
        }

    @staticmethod
    def seed_classrooms() -> int:
        created = 0
        for name, building, latitude, longitude, secret in SAMPLE_CLASSROOMS:
            if Classroom.secret_in_use(secret):
                continue
            db.session.add(Classroom(
                name=name,
                building=building,
                latitude=latitude,
                longitude=longitude,
                nfc_secret=secret
            ))
            created += 1

        db.session.commit()
        current_app.logger.info('Seeded %d classrooms', created)
        return created

    @staticmethod
    def seed_profiles() -> int:
        created = 0
        for email, full_name, role in SAMPLE_PROFILES:
            if Profile.query.filter_by(email=email).first():
                continue
            db.session.add(Profile(email=email, full_name=full_name, role=role))
            created += 1

        db.session.commit()
        current_app.logger.info('Seeded %d profiles', created)
        return created
