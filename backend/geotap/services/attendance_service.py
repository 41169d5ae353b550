"""Attendance decision engine.

One call to ``AttendanceService.mark_attendance`` evaluates a submission
through the ordered stages, appends exactly one audit record and returns a
definitive decision. Business rejections are decisions, not exceptions.
"""
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from geotap import db
from geotap.models.attendance import AttendanceLog, AttendanceStatus
from geotap.models.classroom import Classroom
from geotap.models.profile import Profile
from geotap.services.verification_stages import (
    DeviceBindingStage,
    EmailVerificationStage,
    GeofenceStage,
    InputValidationStage,
    RateLimitStage,
    SecretTokenStage,
    StageResult,
    SubmissionContext,
    VerificationStage,
)
from geotap.utils.caller_context import CallerContext
from geotap.utils.errors import StoreUnavailableError
from geotap.utils.helpers import isoformat, utcnow

@dataclass
class AttendanceDecision:
    """Final outcome of one submission."""
    status: AttendanceStatus
    rejection_reason: Optional[str]
    timestamp: datetime
    record_id: str
    retry_after_seconds: Optional[float] = None
    device_binding_pending: bool = False
    distance_meters: Optional[float] = None
    processing_time_ms: int = 0

    @property
    def is_present(self) -> bool:
        return self.status == AttendanceStatus.PRESENT

    def to_response(self) -> Dict:
        response = {
            'status': self.status.value,
            'rejection_reason': self.rejection_reason,
            'timestamp': isoformat(self.timestamp)
        }
        if self.retry_after_seconds is not None:
            response['retry_after_seconds'] = self.retry_after_seconds
        return response

class AttendanceLogger:
    """Appends the audit record for whichever stage ended the pipeline."""

    @staticmethod
    def append(context: SubmissionContext, result: StageResult) -> AttendanceLog:
        caller_id = context.caller.identity_id

        # Foreign keys only point at rows that exist
        profile = context.profile or Profile.get_by_id(caller_id)
        classroom = context.classroom or Classroom.get_by_id(context.classroom_id)

        latitude, longitude = context.point
        record = AttendanceLog.record(
            caller_id=caller_id,
            identity_id=profile.id if profile else None,
            requested_classroom_id=context.classroom_id,
            classroom_id=classroom.id if classroom else None,
            timestamp=context.submitted_at,
            latitude=latitude,
            longitude=longitude,
            rejection_reason=None if result.passed else result.reason.value
        )
        db.session.add(record)
        db.session.flush()
        return record

class AttendanceService:
    """Runs the decision pipeline for one submission."""

    @staticmethod
    def build_stages(config) -> List[VerificationStage]:
        """Stages in their fixed evaluation order."""
        return [
            InputValidationStage(),
            RateLimitStage(
                window_seconds=config.get('ATTENDANCE_RATE_LIMIT_SECONDS', 60),
                serialize=config.get('ATTENDANCE_SERIALIZE_PER_IDENTITY', True)
            ),
            EmailVerificationStage(),
            DeviceBindingStage(),
            SecretTokenStage(),
            GeofenceStage(default_radius_meters=config.get('GEOFENCE_RADIUS_METERS', 50.0)),
        ]

    @staticmethod
    def run_stages(stages: List[VerificationStage], context: SubmissionContext) -> StageResult:
        """Evaluate stages in order; the first rejection wins."""
        result = StageResult.ok()
        for stage in stages:
            result = stage.evaluate(context)
            if not result.passed:
                break
        return result

    @classmethod
    def mark_attendance(
        cls,
        caller: CallerContext,
        classroom_id,
        secret,
        latitude,
        longitude,
        now: Optional[datetime] = None
    ) -> AttendanceDecision:
        """Decide PRESENT or REJECTED and log the attempt.

        Raises:
            InvalidInputError: malformed submission (nothing is logged).
            StoreUnavailableError: the store failed; nothing was committed.
        """
        started = time.perf_counter()
        context = SubmissionContext(
            caller=caller,
            classroom_id=classroom_id,
            secret=secret,
            latitude=latitude,
            longitude=longitude,
            submitted_at=now or utcnow()
        )
        input_stage, *stages = cls.build_stages(current_app.config)

        # Hard failures propagate before any store access
        input_stage.evaluate(context)

        try:
            result = cls.run_stages(stages, context)
            record = AttendanceLogger.append(context, result)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            current_app.logger.exception('Attendance store failure for caller=%s', caller.identity_id)
            raise StoreUnavailableError('Attendance store is unavailable') from e

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        decision = AttendanceDecision(
            status=record.status,
            rejection_reason=record.rejection_reason,
            timestamp=record.timestamp,
            record_id=record.id,
            retry_after_seconds=result.details.get('retry_after_seconds'),
            device_binding_pending=context.device_binding_pending,
            distance_meters=context.distance_meters,
            processing_time_ms=elapsed_ms
        )

        current_app.logger.info(
            'Attendance %s caller=%s classroom=%s reason=%s distance=%s %dms',
            decision.status.value, caller.identity_id, context.classroom_id,
            decision.rejection_reason,
            f'{decision.distance_meters:.1f}m' if decision.distance_meters is not None else '-',
            elapsed_ms
        )
        if decision.device_binding_pending:
            current_app.logger.info('Profile %s has no bound device; binding pending', caller.identity_id)

        budget_ms = current_app.config.get('ATTENDANCE_LATENCY_BUDGET_MS', 200)
        if elapsed_ms > budget_ms:
            current_app.logger.warning(
                'Attendance decision took %dms (budget %dms)', elapsed_ms, budget_ms
            )

        return decision

    @staticmethod
    def history_for(caller: CallerContext, limit: int = 50) -> List[AttendanceLog]:
        """The caller's own attempts, newest first."""
        return AttendanceLog.query.filter_by(
            caller_id=caller.identity_id
        ).order_by(AttendanceLog.timestamp.desc()).limit(limit).all()
