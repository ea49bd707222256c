"""Fire-and-forget audit recording."""
import logging
from typing import Any, Dict, Optional
from sqlalchemy.exc import SQLAlchemyError
from qr_attendance.models import AuditLog
from qr_attendance.repository import AttendanceRepository

logger = logging.getLogger(__name__)

class AuditRecorder:
    """Writes audit entries without ever failing the caller.

    Call only when no other writes are pending on the session: the entry is
    committed on its own and a failed write rolls the session back.
    """

    def __init__(self, repository: Optional[AttendanceRepository] = None):
        self.repository = repository or AttendanceRepository()

    def record(self, action: str, user_id: Optional[int] = None,
               reason: Optional[str] = None, ip_address: Optional[str] = None,
               details: Optional[Dict[str, Any]] = None) -> Optional[AuditLog]:
        try:
            entry = self.repository.insert_audit_log(
                action=action,
                user_id=user_id,
                reason=reason,
                ip_address=ip_address,
                details=details
            )
            self.repository.commit()
            return entry
        except SQLAlchemyError:
            self.repository.rollback()
            logger.warning('Could not write audit entry %s (user=%s, reason=%s)',
                           action, user_id, reason, exc_info=True)
            return None
