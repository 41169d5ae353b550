"""Read-only queries over the attendance audit log for the monitoring dashboard."""
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

from geotap import db
from geotap.models.attendance import AttendanceLog, AttendanceStatus
from geotap.models.classroom import Classroom
from geotap.models.profile import Profile
from geotap.utils.errors import InvalidInputError
from geotap.utils.helpers import isoformat

@dataclass
class LogFilters:
    """Dashboard filter set. Every field is optional."""
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    classroom_id: Optional[str] = None
    status: Optional[AttendanceStatus] = None

    @classmethod
    def from_args(cls, start=None, end=None, classroom_id=None, status=None) -> 'LogFilters':
        if status:
            try:
                status = AttendanceStatus(status.upper())
            except ValueError:
                raise InvalidInputError(f"Invalid status: {status!r}. Use PRESENT or REJECTED")
        else:
            status = None
        if start and end and start > end:
            raise InvalidInputError('start must not be after end')
        return cls(start=start, end=end, classroom_id=classroom_id or None, status=status)

    def apply(self, query):
        if self.start is not None:
            query = query.filter(AttendanceLog.timestamp >= self.start)
        if self.end is not None:
            query = query.filter(AttendanceLog.timestamp <= self.end)
        if self.classroom_id:
            query = query.filter(AttendanceLog.classroom_id == self.classroom_id)
        if self.status is not None:
            query = query.filter(AttendanceLog.status == self.status)
        return query

class DashboardService:
    """Filtered feed and summary statistics."""

    @staticmethod
    def _feed_item(log: AttendanceLog, profile: Optional[Profile], classroom: Optional[Classroom]) -> Dict:
        item = log.to_dict()
        item['student_name'] = profile.full_name if profile else None
        item['classroom_name'] = classroom.name if classroom else None
        item['building'] = classroom.building if classroom else None
        item['classroom_location'] = {
            'latitude': classroom.latitude,
            'longitude': classroom.longitude
        } if classroom else None
        return item

    @classmethod
    def list_logs(cls, filters: LogFilters, page: int = 1, per_page: int = 20) -> Dict:
        """Newest-first page of records joined with profile and classroom display fields."""
        query = db.session.query(AttendanceLog, Profile, Classroom).outerjoin(
            Profile, AttendanceLog.identity_id == Profile.id
        ).outerjoin(
            Classroom, AttendanceLog.classroom_id == Classroom.id
        )
        query = filters.apply(query)

        total = query.count()
        rows = query.order_by(AttendanceLog.timestamp.desc()).offset(
            (page - 1) * per_page
        ).limit(per_page).all()

        return {
            'items': [cls._feed_item(*row) for row in rows],
            'page': page,
            'per_page': per_page,
            'total': total,
            'pages': (total + per_page - 1) // per_page
        }

    @staticmethod
    def summary(filters: LogFilters) -> Dict:
        """Attempt counts, rejection rate and per-reason breakdown."""
        counts = dict(filters.apply(
            db.session.query(AttendanceLog.status, db.func.count(AttendanceLog.id))
        ).group_by(AttendanceLog.status).all())

        present = counts.get(AttendanceStatus.PRESENT, 0)
        rejected = counts.get(AttendanceStatus.REJECTED, 0)
        total = present + rejected

        reasons = filters.apply(
            db.session.query(AttendanceLog.rejection_reason, db.func.count(AttendanceLog.id))
        ).filter(
            AttendanceLog.rejection_reason.isnot(None)
        ).group_by(AttendanceLog.rejection_reason).all()

        return {
            'total_attempts': total,
            'present_count': present,
            'rejected_count': rejected,
            'rejection_rate': round(rejected / total * 100, 2) if total else 0.0,
            'rejections_by_reason': {reason: count for reason, count in reasons},
            'start': isoformat(filters.start),
            'end': isoformat(filters.end)
        }
