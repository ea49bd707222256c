"""Shared fixtures."""
from datetime import timedelta
import pytest
from qr_attendance import create_app, db
from qr_attendance.identity import Identity
from qr_attendance.models.user import UserRole
from qr_attendance.repository import AttendanceRepository
from qr_attendance.schemas import MarkAttendanceInput
from qr_attendance.services.auth_service import AuthService
from qr_attendance.services.qr_service import QRService
from qr_attendance.utils.helpers import utcnow

CLASSROOM = (40.7128, -74.0060)

class FakeClock:
    """Controllable replacement for utcnow."""

    def __init__(self, now=None):
        self.now = now or utcnow()

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)

@pytest.fixture
def app():
    """Create test app."""
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()

@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()

@pytest.fixture
def repository(app):
    return AttendanceRepository()

@pytest.fixture
def clock():
    return FakeClock()

def _make_user(repository, email, role, name='Test User'):
    user = repository.create_user(email=email, name=name, password='password123', role=role)
    repository.commit()
    return user

@pytest.fixture
def teacher(repository):
    return _make_user(repository, 'teacher@example.com', UserRole.TEACHER, 'Dr. Teacher')

@pytest.fixture
def other_teacher(repository):
    return _make_user(repository, 'other.teacher@example.com', UserRole.TEACHER, 'Dr. Other')

@pytest.fixture
def admin(repository):
    return _make_user(repository, 'admin@example.com', UserRole.ADMIN, 'Admin')

@pytest.fixture
def student(repository):
    return _make_user(repository, 'student@example.com', UserRole.STUDENT, 'Student One')

@pytest.fixture
def other_student(repository):
    return _make_user(repository, 'student2@example.com', UserRole.STUDENT, 'Student Two')

@pytest.fixture
def attendance_session(repository, teacher, clock):
    session = repository.create_session(
        teacher_id=teacher.id,
        subject='Distributed Systems',
        start_time=clock(),
        is_active=True,
        location_lat=CLASSROOM[0],
        location_lng=CLASSROOM[1],
        radius=200
    )
    repository.commit()
    return session

@pytest.fixture
def qr_service(repository, clock):
    return QRService(repository, clock=clock)

@pytest.fixture
def live_token(qr_service, attendance_session, teacher):
    """Token currently displayed for the session."""
    return qr_service.rotate(attendance_session.id, identity_of(teacher)).token

def identity_of(user) -> Identity:
    return Identity(user.id, user.role)

def checkin(session_id, token, fingerprint='device-A', lat=CLASSROOM[0], lng=CLASSROOM[1]):
    return MarkAttendanceInput.model_validate({
        'sessionId': session_id,
        'qrToken': token,
        'location': {'lat': lat, 'lng': lng},
        'deviceFingerprint': fingerprint
    })

@pytest.fixture
def auth_headers(app):
    """Build Authorization headers for a user."""
    def _headers(user):
        return {'Authorization': f'Bearer {AuthService.create_token(user)}'}
    return _headers
