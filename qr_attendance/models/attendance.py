"""Attendance record model with check-in evidence."""
from qr_attendance import db
from qr_attendance.models.base import BaseModel
from qr_attendance.utils.helpers import utcnow

class AttendanceRecord(BaseModel):
    """Write-once check-in of one student into one session."""

    __tablename__ = 'attendance_records'
    __table_args__ = (
        db.UniqueConstraint('student_id', 'session_id', name='uq_attendance_student_session'),
        db.UniqueConstraint('session_id', 'device_fingerprint', name='uq_attendance_session_device'),
    )

    student_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    session_id = db.Column(db.Integer, db.ForeignKey('attendance_sessions.id'), nullable=False, index=True)
    timestamp = db.Column(db.DateTime, default=utcnow, nullable=False)

    # Evidence
    ip_address = db.Column(db.String(64), nullable=True)
    device_fingerprint = db.Column(db.String(255), nullable=False)
    location_lat = db.Column(db.Float, nullable=True)
    location_lng = db.Column(db.Float, nullable=True)
    verified = db.Column(db.Boolean, default=False, nullable=False)

    def to_dict(self, exclude: list = None) -> dict:
        """Convert to dictionary with a nested location."""
        data = super().to_dict(exclude=exclude)
        data['location'] = {
            'latitude': self.location_lat,
            'longitude': self.location_lng
        }
        return data

    def __repr__(self):
        return f'<AttendanceRecord {self.student_id}-{self.session_id}>'
