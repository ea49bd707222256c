"""Append-only audit log."""
from qr_attendance import db
from qr_attendance.models.base import BaseModel
from qr_attendance.utils.helpers import utcnow

class AuditAction:
    """Audit action names."""
    ATTENDANCE_MARKED = 'ATTENDANCE_MARKED'
    ATTENDANCE_FAILED = 'ATTENDANCE_FAILED'
    DEVICE_BINDING_CLEARED = 'DEVICE_BINDING_CLEARED'

class AuditLog(BaseModel):
    """One audited action."""

    __tablename__ = 'audit_logs'

    user_id = db.Column(db.Integer, nullable=True, index=True)  # no FK; may reference an unknown user
    action = db.Column(db.String(64), nullable=False, index=True)
    reason = db.Column(db.String(255), nullable=True)
    ip_address = db.Column(db.String(64), nullable=True)
    timestamp = db.Column(db.DateTime, default=utcnow, nullable=False)
    details = db.Column(db.JSON, nullable=True)

    def __repr__(self):
        return f'<AuditLog {self.action}>'
