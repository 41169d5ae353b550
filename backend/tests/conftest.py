"""Shared fixtures: app with in-memory database, profiles, classroom, tokens."""
import pytest
from flask_jwt_extended import create_access_token

from geotap import create_app, db
from geotap.models import Classroom, Profile, ProfileRole
from geotap.utils.caller_context import CallerContext

CLASSROOM_LAT = 37.7749
CLASSROOM_LNG = -122.4194
CLASSROOM_SECRET = 'eng301_secret_a1b2c3d4e5f6'
STUDENT_DEVICE = 'device-abc-123'

@pytest.fixture
def app():
    """Create test app."""
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()

@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()

@pytest.fixture
def student(app):
    """Student profile bound to STUDENT_DEVICE."""
    return Profile(
        email='student@university.edu',
        full_name='Test Student',
        device_id=STUDENT_DEVICE,
        role=ProfileRole.STUDENT
    ).save()

@pytest.fixture
def unbound_student(app):
    """Student profile with no device bound yet."""
    return Profile(
        email='new.student@university.edu',
        full_name='New Student',
        role=ProfileRole.STUDENT
    ).save()

@pytest.fixture
def admin(app):
    return Profile(
        email='admin@university.edu',
        full_name='Admin User',
        role=ProfileRole.ADMIN
    ).save()

@pytest.fixture
def classroom(app):
    return Classroom(
        name='Room 301',
        building='Engineering Building',
        latitude=CLASSROOM_LAT,
        longitude=CLASSROOM_LNG,
        nfc_secret=CLASSROOM_SECRET
    ).save()

@pytest.fixture
def make_caller():
    def _make(identity_id, device_id=STUDENT_DEVICE, email_verified=True):
        return CallerContext(identity_id=identity_id, device_id=device_id, email_verified=email_verified)
    return _make

@pytest.fixture
def auth_headers(app):
    """Authorization headers for an identity assertion with the given claims."""
    def _headers(identity_id, device_id=STUDENT_DEVICE, email_verified=True):
        claims = {'email_verified': email_verified}
        if device_id is not None:
            claims['device_id'] = device_id
        token = create_access_token(identity=identity_id, additional_claims=claims)
        return {'Authorization': f'Bearer {token}'}
    return _headers

def submission(classroom_id, secret=CLASSROOM_SECRET, latitude=CLASSROOM_LAT, longitude=CLASSROOM_LNG):
    return {
        'classroom_id': classroom_id,
        'secret': secret,
        'latitude': latitude,
        'longitude': longitude
    }
