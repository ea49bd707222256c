"""Models package with all models."""
from .base import BaseModel
from .user import User, UserRole
from .attendance_session import AttendanceSession
from .attendance import AttendanceRecord
from .audit_log import AuditLog, AuditAction

__all__ = [
    'BaseModel', 'User', 'UserRole',
    'AttendanceSession', 'AttendanceRecord',
    'AuditLog', 'AuditAction'
]
