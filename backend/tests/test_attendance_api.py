"""Decision entry point end to end: scenarios, ordering, audit completeness."""
from datetime import timedelta

import pytest
from flask_jwt_extended import create_access_token
from sqlalchemy.exc import OperationalError

from geotap import create_app, db
from geotap.config.testing import TestingConfig
from geotap.models import AttendanceLog, AttendanceStatus, Classroom, Profile
from geotap.services.attendance_service import AttendanceService
from geotap.utils.helpers import utcnow

from conftest import CLASSROOM_LAT, CLASSROOM_LNG, CLASSROOM_SECRET, STUDENT_DEVICE, submission

def mark(client, headers, payload):
    response = client.post('/api/attendance/mark', json=payload, headers=headers)
    return response, response.get_json()

def test_health_check(client):
    response = client.get('/api/attendance/health')
    assert response.status_code == 200
    assert response.get_json()['message'] == 'Attendance service is running'

# =================== EXAMPLE SCENARIOS ===================

def test_present_at_classroom_point(client, student, classroom, auth_headers):
    response, body = mark(client, auth_headers(student.id), submission(classroom.id))

    assert response.status_code == 200
    assert body['data']['status'] == 'PRESENT'
    assert body['data']['rejection_reason'] is None
    assert body['data']['timestamp']
    assert 'retry_after_seconds' not in body['data']

    log = AttendanceLog.query.one()
    assert log.status == AttendanceStatus.PRESENT
    assert log.identity_id == student.id
    assert log.classroom_id == classroom.id
    assert (log.latitude, log.longitude) == (CLASSROOM_LAT, CLASSROOM_LNG)

def test_hundred_meters_north_is_outside_geofence(client, student, classroom, auth_headers):
    response, body = mark(client, auth_headers(student.id), submission(classroom.id, latitude=37.7758))

    assert response.status_code == 200
    assert body['data']['status'] == 'REJECTED'
    assert body['data']['rejection_reason'] == 'outside_geofence'

def test_device_mismatch_keeps_binding(client, student, classroom, auth_headers):
    response, body = mark(client, auth_headers(student.id, device_id='stolen-phone'), submission(classroom.id))

    assert body['data'] == {
        'status': 'REJECTED',
        'rejection_reason': 'device_mismatch',
        'timestamp': body['data']['timestamp']
    }
    db.session.expire_all()
    assert Profile.get_by_id(student.id).device_id == STUDENT_DEVICE

def test_second_submission_ten_seconds_later_is_rate_limited(client, student, classroom, auth_headers):
    db.session.add(AttendanceLog.record(
        caller_id=student.id,
        identity_id=student.id,
        requested_classroom_id=classroom.id,
        classroom_id=classroom.id,
        timestamp=utcnow() - timedelta(seconds=10),
        latitude=CLASSROOM_LAT,
        longitude=CLASSROOM_LNG
    ))
    db.session.commit()

    response, body = mark(client, auth_headers(student.id), submission(classroom.id))

    assert body['data']['status'] == 'REJECTED'
    assert body['data']['rejection_reason'] == 'rate_limit_exceeded'
    assert 48 <= body['data']['retry_after_seconds'] <= 50
    assert AttendanceLog.query.count() == 2

def test_back_to_back_submissions(client, student, classroom, auth_headers):
    headers = auth_headers(student.id)
    _, first = mark(client, headers, submission(classroom.id))
    _, second = mark(client, headers, submission(classroom.id))

    assert first['data']['status'] == 'PRESENT'
    assert second['data']['rejection_reason'] == 'rate_limit_exceeded'
    assert second['data']['retry_after_seconds'] > 59

# =================== ORDERING ===================

def test_first_failing_stage_owns_the_reason(app, student, classroom, make_caller):
    base = utcnow()

    def decide(offset, caller, **overrides):
        values = {'classroom_id': classroom.id, 'secret': CLASSROOM_SECRET,
                  'latitude': CLASSROOM_LAT, 'longitude': CLASSROOM_LNG}
        values.update(overrides)
        return AttendanceService.mark_attendance(caller, now=base + timedelta(minutes=offset), **values)

    # Every later condition fails too; only the earliest one is reported
    everything_wrong = dict(secret='wrong', latitude=10.0, longitude=10.0)
    assert decide(0, make_caller(student.id, email_verified=False), **everything_wrong) \
        .rejection_reason == 'email_not_verified'
    assert decide(0.5, make_caller(student.id, email_verified=False), **everything_wrong) \
        .rejection_reason == 'rate_limit_exceeded'
    assert decide(2, make_caller('ghost'), **everything_wrong).rejection_reason == 'profile_not_found'
    assert decide(4, make_caller(student.id, device_id=None), **everything_wrong) \
        .rejection_reason == 'device_id_missing'
    assert decide(6, make_caller(student.id, device_id='other'), **everything_wrong) \
        .rejection_reason == 'device_mismatch'
    assert decide(8, make_caller(student.id), classroom_id='nope', latitude=10.0, longitude=10.0) \
        .rejection_reason == 'classroom_not_found'
    assert decide(10, make_caller(student.id), **everything_wrong).rejection_reason == 'invalid_token'
    assert decide(12, make_caller(student.id), latitude=10.0, longitude=10.0) \
        .rejection_reason == 'outside_geofence'
    assert decide(14, make_caller(student.id)).status == AttendanceStatus.PRESENT

def test_unbound_device_passes_without_engine_writing_binding(app, unbound_student, classroom, make_caller):
    decision = AttendanceService.mark_attendance(
        make_caller(unbound_student.id, device_id='first-phone'),
        classroom.id, CLASSROOM_SECRET, CLASSROOM_LAT, CLASSROOM_LNG
    )

    assert decision.is_present
    assert decision.device_binding_pending is True
    db.session.expire_all()
    assert Profile.get_by_id(unbound_student.id).device_id is None

# =================== AUDIT COMPLETENESS ===================

def test_every_submission_logs_exactly_one_record(app, student, classroom, make_caller):
    base = utcnow()
    attempts = [
        (make_caller(student.id), {}),
        (make_caller(student.id), {}),
        (make_caller('ghost'), {}),
        (make_caller(student.id, email_verified=False), {}),
        (make_caller(student.id), {'secret': 'bad'}),
        (make_caller(student.id), {'classroom_id': 'missing'}),
        (make_caller(student.id), {'latitude': 0.0}),
    ]

    for index, (caller, overrides) in enumerate(attempts):
        values = {'classroom_id': classroom.id, 'secret': CLASSROOM_SECRET,
                  'latitude': CLASSROOM_LAT, 'longitude': CLASSROOM_LNG}
        values.update(overrides)
        # The second attempt reuses the first's timestamp window on purpose
        offset = 0 if index < 2 else index * 2
        AttendanceService.mark_attendance(caller, now=base + timedelta(minutes=offset), **values)

    logs = AttendanceLog.query.all()
    assert len(logs) == len(attempts)
    for log in logs:
        assert (log.status == AttendanceStatus.REJECTED) == (log.rejection_reason is not None)

def test_unknown_references_are_logged_without_dangling_keys(app, student, make_caller):
    decision = AttendanceService.mark_attendance(
        make_caller('no-profile'), 'no-classroom', 'secret', CLASSROOM_LAT, CLASSROOM_LNG
    )

    log = AttendanceLog.query.one()
    assert decision.rejection_reason == 'profile_not_found'
    assert log.caller_id == 'no-profile'
    assert log.identity_id is None
    assert log.requested_classroom_id == 'no-classroom'
    assert log.classroom_id is None

# =================== HARD FAILURES ===================

@pytest.mark.parametrize('payload', [
    {'secret': CLASSROOM_SECRET, 'latitude': CLASSROOM_LAT, 'longitude': CLASSROOM_LNG},
    {'classroom_id': 'x', 'secret': '   ', 'latitude': CLASSROOM_LAT, 'longitude': CLASSROOM_LNG},
    {'classroom_id': 'x', 'secret': CLASSROOM_SECRET, 'latitude': 95, 'longitude': CLASSROOM_LNG},
    {'classroom_id': 'x', 'secret': CLASSROOM_SECRET, 'latitude': CLASSROOM_LAT, 'longitude': -200},
    {'classroom_id': 'x', 'secret': CLASSROOM_SECRET, 'latitude': 'north', 'longitude': CLASSROOM_LNG},
    {'classroom_id': 'x' * 256, 'secret': CLASSROOM_SECRET, 'latitude': CLASSROOM_LAT, 'longitude': CLASSROOM_LNG},
])
def test_invalid_input_is_hard_failure_and_not_logged(client, student, auth_headers, payload):
    response, body = mark(client, auth_headers(student.id), payload)

    assert response.status_code == 400
    assert body['code'] == 'invalid_input'
    assert AttendanceLog.query.count() == 0

def test_non_object_body_is_invalid_input(client, student, auth_headers):
    response = client.post('/api/attendance/mark', data='[]', content_type='application/json',
                           headers=auth_headers(student.id))
    assert response.status_code == 400
    assert response.get_json()['code'] == 'invalid_input'

def test_missing_token_is_unauthenticated(client, classroom):
    response, body = mark(client, {}, submission(classroom.id))

    assert response.status_code == 401
    assert body['code'] == 'unauthenticated'
    assert AttendanceLog.query.count() == 0

def test_garbage_token_is_unauthenticated(client, classroom):
    response, body = mark(client, {'Authorization': 'Bearer not-a-jwt'}, submission(classroom.id))
    assert response.status_code == 401
    assert body['code'] == 'unauthenticated'

def test_store_failure_returns_store_unavailable(client, student, classroom, auth_headers, monkeypatch):
    def broken(caller_id):
        raise OperationalError('SELECT max(timestamp)', {}, Exception('connection refused'))

    monkeypatch.setattr(AttendanceLog, 'latest_timestamp_for', broken)

    response, body = mark(client, auth_headers(student.id), submission(classroom.id))

    assert response.status_code == 503
    assert body['code'] == 'store_unavailable'
    monkeypatch.undo()
    assert AttendanceLog.query.count() == 0

# =================== HISTORY ===================

def test_history_returns_only_own_records(client, student, unbound_student, classroom, auth_headers):
    mark(client, auth_headers(student.id), submission(classroom.id))
    mark(client, auth_headers(unbound_student.id, device_id='phone-2'), submission(classroom.id, secret='wrong'))

    response = client.get('/api/attendance/history', headers=auth_headers(student.id))
    data = response.get_json()['data']

    assert response.status_code == 200
    assert len(data) == 1
    assert data[0]['student_id'] == student.id
    assert data[0]['status'] == 'PRESENT'
    assert data[0]['student_location'] == {'latitude': CLASSROOM_LAT, 'longitude': CLASSROOM_LNG}

def test_longest_unknown_classroom_id_is_logged_rejection(client, student, auth_headers):
    classroom_id = 'c' * 255
    response, body = mark(client, auth_headers(student.id), submission(classroom_id))

    assert response.status_code == 200
    assert body['data']['rejection_reason'] == 'classroom_not_found'
    assert AttendanceLog.query.one().requested_classroom_id == classroom_id

def test_overlong_subject_is_unauthenticated(client, classroom, auth_headers):
    response, body = mark(client, auth_headers('s' * 256), submission(classroom.id))

    assert response.status_code == 401
    assert body['code'] == 'unauthenticated'
    assert AttendanceLog.query.count() == 0

def test_slow_decision_logs_latency_warning(app, student, classroom, make_caller, caplog):
    app.config['ATTENDANCE_LATENCY_BUDGET_MS'] = -1

    AttendanceService.mark_attendance(make_caller(student.id), classroom.id, CLASSROOM_SECRET,
                                      CLASSROOM_LAT, CLASSROOM_LNG)

    warnings = [record for record in caplog.records if record.levelname == 'WARNING']
    assert any('budget -1ms' in record.getMessage() for record in warnings)

def test_fast_decision_logs_no_latency_warning(app, student, classroom, make_caller, caplog):
    app.config['ATTENDANCE_LATENCY_BUDGET_MS'] = 60000

    AttendanceService.mark_attendance(make_caller(student.id), classroom.id, CLASSROOM_SECRET,
                                      CLASSROOM_LAT, CLASSROOM_LNG)

    assert not any('budget' in record.getMessage() for record in caplog.records)

# =================== TRANSPORT THROTTLE ===================

@pytest.fixture
def throttled_app(monkeypatch):
    """App with the HTTP limiter switched on and a small per-identity budget."""
    monkeypatch.setattr(TestingConfig, 'RATELIMIT_ENABLED', True)
    app = create_app('testing')
    app.config['MARK_ATTENDANCE_HTTP_LIMIT'] = '3 per minute'
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()

def token_for(identity_id, device_id):
    token = create_access_token(identity=identity_id,
                                additional_claims={'email_verified': True, 'device_id': device_id})
    return {'Authorization': f'Bearer {token}'}

def test_students_behind_one_address_are_all_decided(throttled_app):
    classroom = Classroom(name='Room 301', building='Engineering Building', latitude=CLASSROOM_LAT,
                          longitude=CLASSROOM_LNG, nfc_secret=CLASSROOM_SECRET).save()
    profiles = [
        Profile(email=f'student{index}@university.edu', full_name=f'Student {index}').save()
        for index in range(35)
    ]
    client = throttled_app.test_client()

    statuses = [
        client.post('/api/attendance/mark', json=submission(classroom.id),
                    headers=token_for(profile.id, f'phone-{index}')).status_code
        for index, profile in enumerate(profiles)
    ]

    assert statuses == [200] * 35
    assert AttendanceLog.query.filter_by(status=AttendanceStatus.PRESENT).count() == 35

def test_throttle_is_counted_per_identity(throttled_app):
    classroom = Classroom(name='Room 301', building='Engineering Building', latitude=CLASSROOM_LAT,
                          longitude=CLASSROOM_LNG, nfc_secret=CLASSROOM_SECRET).save()
    profile = Profile(email='busy@university.edu', full_name='Busy Student').save()
    client = throttled_app.test_client()
    headers = token_for(profile.id, 'busy-phone')

    statuses = [
        client.post('/api/attendance/mark', json=submission(classroom.id), headers=headers).status_code
        for _ in range(4)
    ]

    assert statuses == [200, 200, 200, 429]
    assert AttendanceLog.query.filter_by(caller_id=profile.id).count() == 3
