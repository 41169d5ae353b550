"""Ordered verification stages of the attendance decision pipeline.

Each stage owns exactly one rejection reason and exposes
``evaluate(context) -> StageResult``. The driver in
``attendance_service`` runs them in order and stops at the first
rejection.

Flow:
1. Input validation      (hard failure, nothing logged)
2. Rate limit            -> rate_limit_exceeded
3. Email verification    -> email_not_verified
4. Device binding        -> profile_not_found / device_id_missing / device_mismatch
5. Secret token          -> classroom_not_found / invalid_token
6. Geofence              -> outside_geofence
"""
import hmac
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from geotap.models.attendance import AttendanceLog
from geotap.models.classroom import Classroom
from geotap.models.profile import Profile
from geotap.services.gps_service import GPSService
from geotap.utils.caller_context import CallerContext
from geotap.utils.validators import Validator, require

class RejectionReason(Enum):
    """Stable rejection codes, one per failing condition."""
    RATE_LIMIT_EXCEEDED = 'rate_limit_exceeded'
    EMAIL_NOT_VERIFIED = 'email_not_verified'
    PROFILE_NOT_FOUND = 'profile_not_found'
    DEVICE_ID_MISSING = 'device_id_missing'
    DEVICE_MISMATCH = 'device_mismatch'
    CLASSROOM_NOT_FOUND = 'classroom_not_found'
    INVALID_TOKEN = 'invalid_token'
    OUTSIDE_GEOFENCE = 'outside_geofence'

@dataclass
class StageResult:
    """Pass, or reject with exactly one reason."""
    passed: bool
    reason: Optional[RejectionReason] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, **details) -> 'StageResult':
        return cls(passed=True, details=details)

    @classmethod
    def reject(cls, reason: RejectionReason, **details) -> 'StageResult':
        return cls(passed=False, reason=reason, details=details)

@dataclass
class SubmissionContext:
    """State of one submission as it moves through the stages."""
    caller: CallerContext
    classroom_id: Any
    secret: Any
    latitude: Any
    longitude: Any
    submitted_at: datetime

    # Filled in by the stages
    point: Optional[Tuple[float, float]] = None
    profile: Optional[Profile] = None
    classroom: Optional[Classroom] = None
    device_binding_pending: bool = False
    distance_meters: Optional[float] = None

class VerificationStage:
    """Base class for pipeline stages."""

    name = 'stage'

    def evaluate(self, context: SubmissionContext) -> StageResult:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f'<{self.__class__.__name__}>'

class InputValidationStage(VerificationStage):
    """Syntactic and range checks. Never touches the store.

    Failures raise ``InvalidInputError`` instead of returning a rejection;
    malformed requests are hard failures and are not logged.
    """

    name = 'input'

    def evaluate(self, context: SubmissionContext) -> StageResult:
        require(Validator.validate_identifier(context.classroom_id, 'classroom_id'))
        require(Validator.validate_secret(context.secret, 'secret'))
        latitude = require(Validator.validate_latitude(context.latitude))['value']
        longitude = require(Validator.validate_longitude(context.longitude))['value']

        context.classroom_id = context.classroom_id.strip()
        context.point = (latitude, longitude)
        return StageResult.ok()

class RateLimitStage(VerificationStage):
    """At most one attempt per window per identity.

    Every logged attempt counts, rejected ones included. The lookback is a
    read followed by a later insert; with ``serialize=True`` the caller's
    profile row is locked first so concurrent submissions from the same
    identity queue up (PostgreSQL ``SELECT ... FOR UPDATE``).
    """

    name = 'rate_limit'

    def __init__(self, window_seconds: int, serialize: bool = True):
        self.window_seconds = window_seconds
        self.serialize = serialize

    def evaluate(self, context: SubmissionContext) -> StageResult:
        if self.serialize:
            Profile.query.filter_by(id=context.caller.identity_id).with_for_update().first()

        last_attempt = AttendanceLog.latest_timestamp_for(context.caller.identity_id)
        if last_attempt is None:
            return StageResult.ok()

        elapsed = (context.submitted_at - last_attempt).total_seconds()
        if elapsed < self.window_seconds:
            retry_after = min(self.window_seconds, self.window_seconds - elapsed)
            return StageResult.reject(
                RejectionReason.RATE_LIMIT_EXCEEDED,
                retry_after_seconds=round(retry_after, 1)
            )
        return StageResult.ok()

class EmailVerificationStage(VerificationStage):
    """Trusts the identity assertion's email-verified flag."""

    name = 'identity'

    def evaluate(self, context: SubmissionContext) -> StageResult:
        if not context.caller.email_verified:
            return StageResult.reject(RejectionReason.EMAIL_NOT_VERIFIED)
        return StageResult.ok()

class DeviceBindingStage(VerificationStage):
    """Asserted device must match the profile's bound device.

    An unbound profile passes and is flagged for binding; the binding write
    belongs to the profile endpoint, never to this stage.
    """

    name = 'device'

    def evaluate(self, context: SubmissionContext) -> StageResult:
        profile = Profile.get_by_id(context.caller.identity_id)
        if profile is None:
            return StageResult.reject(RejectionReason.PROFILE_NOT_FOUND)
        context.profile = profile

        claimed = context.caller.device_id
        if claimed is None:
            return StageResult.reject(RejectionReason.DEVICE_ID_MISSING)

        if profile.device_id is None:
            context.device_binding_pending = True
            return StageResult.ok(device_binding_pending=True)

        if profile.device_id != claimed:
            return StageResult.reject(RejectionReason.DEVICE_MISMATCH)

        return StageResult.ok()

class SecretTokenStage(VerificationStage):
    """Exact, case-sensitive comparison against the classroom's current secret."""

    name = 'token'

    def evaluate(self, context: SubmissionContext) -> StageResult:
        classroom = Classroom.get_by_id(context.classroom_id)
        if classroom is None:
            return StageResult.reject(RejectionReason.CLASSROOM_NOT_FOUND)
        context.classroom = classroom

        if not hmac.compare_digest(classroom.nfc_secret.encode('utf-8'), context.secret.encode('utf-8')):
            return StageResult.reject(RejectionReason.INVALID_TOKEN)

        return StageResult.ok()

class GeofenceStage(VerificationStage):
    """Geodesic distance to the classroom center against the boundary radius."""

    name = 'geofence'

    def __init__(self, default_radius_meters: float):
        self.default_radius_meters = default_radius_meters

    def evaluate(self, context: SubmissionContext) -> StageResult:
        classroom = context.classroom
        radius = classroom.radius_or(self.default_radius_meters)
        latitude, longitude = context.point

        result = GPSService.verify_location(latitude, longitude, classroom, radius)
        context.distance_meters = result['distance']

        if not result['is_inside']:
            return StageResult.reject(
                RejectionReason.OUTSIDE_GEOFENCE,
                distance_meters=result['distance'],
                radius_meters=radius
            )
        return StageResult.ok(distance_meters=result['distance'])
