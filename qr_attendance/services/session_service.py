"""Session management: creation, ownership and reporting."""
import logging
from typing import Callable, Dict, List, Optional
from flask import current_app
from qr_attendance.errors import NotFound, Forbidden
from qr_attendance.identity import Identity
from qr_attendance.models import AttendanceSession, AttendanceRecord
from qr_attendance.repository import AttendanceRepository
from qr_attendance.schemas import CreateSessionInput
from qr_attendance.utils.helpers import utcnow

logger = logging.getLogger(__name__)

def can_manage_session(session: AttendanceSession, identity: Identity) -> bool:
    """Owning teacher or any admin."""
    return identity.is_admin or session.teacher_id == identity.user_id

class SessionService:
    """Service for attendance session lifecycle."""

    def __init__(self, repository: Optional[AttendanceRepository] = None,
                 clock: Callable = utcnow):
        self.repository = repository or AttendanceRepository()
        self.clock = clock

    def create_session(self, data: CreateSessionInput, identity: Identity) -> AttendanceSession:
        """Create a session owned by the calling teacher."""
        if not identity.is_teacher:
            raise Forbidden('Only teachers can create sessions')

        radius = data.radius or current_app.config['DEFAULT_GEOFENCE_RADIUS_METERS']
        session = self.repository.create_session(
            teacher_id=identity.user_id,
            subject=data.subject,
            start_time=data.start_time,
            end_time=data.end_time,
            is_active=True,
            location_lat=data.location_lat,
            location_lng=data.location_lng,
            radius=radius
        )
        self.repository.commit()

        logger.info('Session %s created by user %s', session.id, identity.user_id)
        return session

    def get_managed_session(self, session_id: int, identity: Identity) -> AttendanceSession:
        """Load a session the caller is allowed to manage."""
        session = self.repository.get_session(session_id)
        if session is None:
            raise NotFound()
        if not can_manage_session(session, identity):
            raise Forbidden()
        return session

    def end_session(self, session_id: int, identity: Identity) -> AttendanceSession:
        """Close the session; its current QR token stops working."""
        session = self.get_managed_session(session_id, identity)
        self.repository.end_session(session.id, self.clock())
        self.repository.commit()

        logger.info('Session %s ended by user %s', session_id, identity.user_id)
        return self.repository.get_session(session_id)

    def list_attendance(self, session_id: int, identity: Identity) -> List[Dict]:
        """Attendance records of a session with student summaries."""
        session = self.get_managed_session(session_id, identity)
        return [self._record_with_student(r)
                for r in self.repository.get_session_attendance(session.id)]

    def session_stats(self, session_id: int, identity: Identity) -> Dict:
        session = self.get_managed_session(session_id, identity)
        limit = current_app.config['RECENT_SCANS_LIMIT']

        return {
            'total_students': self.repository.count_students(),
            'present_count': self.repository.count_session_attendance(session.id),
            'recent_scans': [
                self._record_with_student(r)
                for r in self.repository.get_session_attendance(session.id, limit=limit)
            ]
        }

    @staticmethod
    def _record_with_student(record: AttendanceRecord) -> Dict:
        data = record.to_dict()
        student = record.student
        data['student'] = {
            'id': student.id,
            'name': student.name,
            'email': student.email
        } if student else None
        return data
