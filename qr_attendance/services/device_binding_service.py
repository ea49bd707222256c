"""Device fingerprint binding rules."""
import logging
from typing import Optional
from qr_attendance.errors import (
    DeviceAlreadyUsedInSession, DeviceMismatch, DeviceAlreadyRegistered,
    Forbidden, UserNotFound
)
from qr_attendance.identity import Identity
from qr_attendance.models import User, AuditAction
from qr_attendance.repository import AttendanceRepository
from qr_attendance.services.audit_service import AuditRecorder

logger = logging.getLogger(__name__)

class DeviceBindingLedger:
    """One device per student account, one student per device per session."""

    def __init__(self, repository: Optional[AttendanceRepository] = None):
        self.repository = repository or AttendanceRepository()

    def check_session_exclusivity(self, session_id: int, student_id: int,
                                  fingerprint: str) -> None:
        """Reject a device that already checked in someone else this session."""
        records = self.repository.get_attendance_records_by_session_and_device(
            session_id, fingerprint
        )
        if any(record.student_id != student_id for record in records):
            raise DeviceAlreadyUsedInSession()

    def check_binding(self, user: User, fingerprint: str) -> bool:
        """Validate the presented device against the account.

        Returns True when the account has no device yet and the caller should
        bind this one once the whole check-in succeeds. Never writes.
        """
        if user.device_fingerprint:
            if user.device_fingerprint != fingerprint:
                raise DeviceMismatch()
            return False

        owner = self.repository.get_user_by_fingerprint(fingerprint)
        if owner is not None and owner.id != user.id:
            raise DeviceAlreadyRegistered()
        return True

    def bind(self, user: User, fingerprint: str) -> None:
        """First-time bind inside the caller's transaction.

        The UPDATE only applies to an unbound account, so a concurrent bind of
        a different device makes this one a mismatch instead of a silent
        overwrite. A concurrent claim of the same device by another account
        surfaces as an IntegrityError from the unique column.
        """
        changed = self.repository.update_user_fingerprint(
            user.id, fingerprint, only_if_unbound=True
        )
        if not changed:
            self.repository.refresh(user)
            if user.device_fingerprint != fingerprint:
                raise DeviceMismatch()

    def clear(self, user_id: int, requester: Identity,
              ip_address: Optional[str] = None) -> User:
        """Administratively remove a student's device binding."""
        if not requester.is_admin:
            raise Forbidden('Admin access required')

        user = self.repository.get_user(user_id)
        if user is None:
            raise UserNotFound()

        previous = user.device_fingerprint
        self.repository.update_user_fingerprint(user.id, None)
        self.repository.commit()

        logger.info('Device binding cleared for user %s by admin %s', user_id, requester.user_id)
        AuditRecorder(self.repository).record(
            AuditAction.DEVICE_BINDING_CLEARED,
            user_id=requester.user_id,
            reason='Cleared by admin',
            ip_address=ip_address,
            details={'target_user_id': user_id, 'had_binding': previous is not None}
        )
        return self.repository.get_user(user_id)
