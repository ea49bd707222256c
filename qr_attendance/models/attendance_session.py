"""Attendance session with a rotating QR token and a geofence."""
from qr_attendance import db
from qr_attendance.models.base import BaseModel

class AttendanceSession(BaseModel):
    """A teacher-owned, time-boxed session students check in to."""

    __tablename__ = 'attendance_sessions'

    teacher_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    subject = db.Column(db.String(255), nullable=False)
    start_time = db.Column(db.DateTime, nullable=False)
    end_time = db.Column(db.DateTime, nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    # Geofence
    location_lat = db.Column(db.Float, nullable=True)
    location_lng = db.Column(db.Float, nullable=True)
    radius = db.Column(db.Integer, nullable=False, default=100)  # meters

    # Current QR token and its expiry, always written together
    current_qr_token = db.Column(db.Text, nullable=True)
    current_qr_expires_at = db.Column(db.DateTime, nullable=True)

    # Relationships
    records = db.relationship('AttendanceRecord', backref='session', lazy='dynamic')

    def has_geofence(self) -> bool:
        return self.location_lat is not None and self.location_lng is not None

    def to_dict(self, exclude: list = None) -> dict:
        """Convert to dictionary without the live token."""
        default_exclude = ['current_qr_token']
        exclude = (exclude or []) + default_exclude

        data = super().to_dict(exclude=exclude)
        data['location'] = {
            'latitude': self.location_lat,
            'longitude': self.location_lng,
            'radius': self.radius
        }
        return data

    def __repr__(self):
        return f'<AttendanceSession {self.subject}>'
