"""Attendance domain errors.

Every check-in or rotation outcome other than success is one of these
exceptions. ``kind`` is the stable name callers switch on; ``status_code``
is only used by the HTTP layer.
"""
from typing import Any, Dict, Optional

class AttendanceError(Exception):
    """Base class for definitive rejects."""

    kind = 'AttendanceError'
    status_code = 400
    default_message = 'Attendance request rejected'

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

class NotFound(AttendanceError):
    kind = 'NotFound'
    status_code = 404
    default_message = 'Session not found'

class Forbidden(AttendanceError):
    kind = 'Forbidden'
    status_code = 403
    default_message = 'Not your session'

class InvalidSession(AttendanceError):
    kind = 'InvalidSession'
    default_message = 'Invalid session'

class InvalidOrExpiredQr(AttendanceError):
    kind = 'InvalidOrExpiredQr'
    default_message = 'Invalid or expired QR code'

class QrExpired(AttendanceError):
    kind = 'QrExpired'
    default_message = 'QR code expired'

class AlreadyMarked(AttendanceError):
    kind = 'AlreadyMarked'
    status_code = 409
    default_message = 'Attendance already marked'

class DeviceAlreadyUsedInSession(AttendanceError):
    kind = 'DeviceAlreadyUsedInSession'
    status_code = 403
    default_message = "This device has already been used to mark another student's attendance for this session"

class DeviceMismatch(AttendanceError):
    kind = 'DeviceMismatch'
    status_code = 403
    default_message = 'Device mismatch. Please use your registered device.'

class DeviceAlreadyRegistered(AttendanceError):
    kind = 'DeviceAlreadyRegistered'
    status_code = 403
    default_message = 'This device is already registered to another student account'

class TooFarFromClassroom(AttendanceError):
    kind = 'TooFarFromClassroom'
    default_message = 'You are too far from the classroom'

    def __init__(self, distance: float, radius: float):
        self.distance = distance
        self.radius = radius
        super().__init__(
            f'You are too far from the classroom ({round(distance)}m).',
            details={'distance': round(distance), 'allowed': radius}
        )

class UserNotFound(AttendanceError):
    kind = 'UserNotFound'
    status_code = 404
    default_message = 'User not found'

class Internal(AttendanceError):
    """Storage or infrastructure fault; retryable by the transport layer."""
    kind = 'Internal'
    status_code = 500
    default_message = 'Internal server error'
