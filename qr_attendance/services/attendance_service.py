"""Attendance check-in validation.

A check-in runs a fixed sequence of checks and stops at the first failure:

1. session exists and has not ended
2. presented token equals the session's current token
3. current token has not expired
4. student has not already checked in to this session
5. device has not checked in another student this session
6. student account exists
7. device matches the account's bound device (or is free to bind)
8. reported location is inside the session geofence
9. commit: bind the device if first use and insert the record

Token checks come before anything that touches device or location data, and
the geofence runs last, so attempts with a bad token learn nothing about the
other checks. Nothing is written until step 9.
"""
import hmac
import logging
from typing import Callable, Optional
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from qr_attendance.errors import (
    AttendanceError, InvalidSession, InvalidOrExpiredQr, QrExpired,
    AlreadyMarked, DeviceAlreadyUsedInSession, DeviceAlreadyRegistered,
    TooFarFromClassroom, UserNotFound, Internal
)
from qr_attendance.identity import Identity
from qr_attendance.models import AttendanceRecord, AttendanceSession, AuditAction
from qr_attendance.repository import AttendanceRepository
from qr_attendance.schemas import MarkAttendanceInput
from qr_attendance.services.audit_service import AuditRecorder
from qr_attendance.services.device_binding_service import DeviceBindingLedger
from qr_attendance.services.geo_service import Coordinate, GeoService
from qr_attendance.utils.helpers import utcnow

logger = logging.getLogger(__name__)

class AttendanceValidator:
    """Decides whether a single check-in attempt is accepted."""

    def __init__(self, repository: Optional[AttendanceRepository] = None,
                 clock: Callable = utcnow,
                 audit: Optional[AuditRecorder] = None):
        self.repository = repository or AttendanceRepository()
        self.clock = clock
        self.audit = audit or AuditRecorder(self.repository)
        self.ledger = DeviceBindingLedger(self.repository)

    def mark_attendance(self, data: MarkAttendanceInput, identity: Identity,
                        ip_address: Optional[str] = None) -> AttendanceRecord:
        """Validate and record one check-in for the calling student."""
        try:
            record = self._check_and_commit(data, identity.user_id, ip_address)
        except AttendanceError as error:
            self._record_failure(error, data, identity.user_id, ip_address)
            raise
        except SQLAlchemyError as error:
            self.repository.rollback()
            logger.error('Storage failure during check-in for session %s: %s',
                         data.session_id, error, exc_info=True)
            raise Internal() from error

        self.audit.record(
            AuditAction.ATTENDANCE_MARKED,
            user_id=identity.user_id,
            ip_address=ip_address,
            details={'session_id': record.session_id, 'record_id': record.id}
        )
        logger.info('Attendance marked: student %s, session %s',
                    identity.user_id, record.session_id)
        return record

    def _check_and_commit(self, data: MarkAttendanceInput, student_id: int,
                          ip_address: Optional[str]) -> AttendanceRecord:
        session = self.repository.get_session(data.session_id)
        if session is None or not session.is_active:
            raise InvalidSession()

        # One row load: token and expiry are a consistent pair
        token, expires_at = session.current_qr_token, session.current_qr_expires_at

        if not self._token_matches(token, data.qr_token):
            raise InvalidOrExpiredQr()

        if expires_at is None or self.clock() > expires_at:
            raise QrExpired()

        if self.repository.get_attendance_record(student_id, session.id) is not None:
            raise AlreadyMarked()

        self.ledger.check_session_exclusivity(session.id, student_id, data.device_fingerprint)

        user = self.repository.get_user(student_id)
        if user is None:
            raise UserNotFound()

        needs_bind = self.ledger.check_binding(user, data.device_fingerprint)

        self._check_geofence(session, data)

        return self._commit(session, user, data, ip_address, needs_bind)

    @staticmethod
    def _token_matches(current: Optional[str], presented: str) -> bool:
        if not current:
            return False
        return hmac.compare_digest(current.encode(), presented.encode())

    def _check_geofence(self, session: AttendanceSession, data: MarkAttendanceInput) -> None:
        if not session.has_geofence():
            return

        distance = GeoService.distance_meters(
            Coordinate(data.location.lat, data.location.lng),
            Coordinate(session.location_lat, session.location_lng)
        )
        if distance > session.radius:
            raise TooFarFromClassroom(distance, session.radius)

    def _commit(self, session: AttendanceSession, user, data: MarkAttendanceInput,
                ip_address: Optional[str], needs_bind: bool) -> AttendanceRecord:
        session_id, student_id = session.id, user.id
        try:
            if needs_bind:
                self.ledger.bind(user, data.device_fingerprint)

            record = self.repository.insert_attendance_record(
                student_id=student_id,
                session_id=session_id,
                timestamp=self.clock(),
                ip_address=ip_address,
                device_fingerprint=data.device_fingerprint,
                location_lat=data.location.lat,
                location_lng=data.location.lng,
                verified=True
            )
            self.repository.commit()
        except IntegrityError:
            self.repository.rollback()
            raise self._conflict(session_id, student_id, data.device_fingerprint)
        except AttendanceError:
            self.repository.rollback()
            raise

        return record

    def _conflict(self, session_id: int, student_id: int, fingerprint: str) -> AttendanceError:
        """Name the uniqueness rule a concurrent check-in beat us to."""
        if self.repository.get_attendance_record(student_id, session_id) is not None:
            return AlreadyMarked()

        records = self.repository.get_attendance_records_by_session_and_device(
            session_id, fingerprint
        )
        if any(record.student_id != student_id for record in records):
            return DeviceAlreadyUsedInSession()

        return DeviceAlreadyRegistered()

    def _record_failure(self, error: AttendanceError, data: MarkAttendanceInput,
                        student_id: int, ip_address: Optional[str]) -> None:
        logger.info('Attendance rejected (%s): student %s, session %s',
                    error.kind, student_id, data.session_id)

        details = {'session_id': data.session_id, 'message': error.message}
        details.update(error.details)
        self.audit.record(
            AuditAction.ATTENDANCE_FAILED,
            user_id=student_id,
            reason=error.kind,
            ip_address=ip_address,
            details=details
        )
