"""Attendance session endpoints, including QR rotation."""
from flask import Blueprint, current_app, request
from flask_jwt_extended import jwt_required
from qr_attendance import limiter
from qr_attendance.errors import NotFound
from qr_attendance.repository import AttendanceRepository
from qr_attendance.schemas import CreateSessionInput
from qr_attendance.services.qr_service import QRService
from qr_attendance.services.session_service import SessionService
from qr_attendance.utils.decorators import current_identity, teacher_required
from qr_attendance.utils.helpers import success_response, error_response

sessions_bp = Blueprint('sessions', __name__)

@sessions_bp.route('', methods=['POST'])
@teacher_required
def create_session():
    """Create a session with an explicit geofence."""
    data = CreateSessionInput.model_validate(request.get_json(silent=True) or {})

    max_radius = current_app.config['MAX_GEOFENCE_RADIUS_METERS']
    if data.radius is not None and data.radius > max_radius:
        return error_response(f"Radius must not exceed {max_radius} meters", 400)

    session = SessionService().create_session(data, current_identity())
    return success_response(
        data=session.to_dict(),
        message="Session created successfully",
        status_code=201
    )

@sessions_bp.route('', methods=['GET'])
@jwt_required()
def list_sessions():
    """List sessions; teachers may filter to their own with ?mine=1."""
    teacher_id = None
    if request.args.get('mine'):
        teacher_id = current_identity().user_id

    sessions = AttendanceRepository().list_sessions(teacher_id=teacher_id)
    return success_response(data=[s.to_dict() for s in sessions])

@sessions_bp.route('/<int:session_id>', methods=['GET'])
@jwt_required()
def get_session(session_id):
    """Get a single session."""
    session = AttendanceRepository().get_session(session_id)
    if session is None:
        raise NotFound()
    return success_response(data=session.to_dict())

@sessions_bp.route('/<int:session_id>/qr', methods=['POST'])
@teacher_required
@limiter.limit("10 per minute")
def rotate_qr(session_id):
    """Rotate the session's QR token; displays call this every refresh_in seconds."""
    qr_token = QRService().rotate(session_id, current_identity())

    data = qr_token.to_dict()
    if request.args.get('image', '1') != '0':
        data['qr_image'] = QRService.render_qr_image(qr_token.token)

    return success_response(data=data, message="QR code generated successfully")

@sessions_bp.route('/<int:session_id>/end', methods=['POST'])
@teacher_required
def end_session(session_id):
    """End the session and invalidate its QR token."""
    session = SessionService().end_session(session_id, current_identity())
    return success_response(data=session.to_dict(), message="Session ended")

@sessions_bp.route('/<int:session_id>/attendance', methods=['GET'])
@teacher_required
def list_attendance(session_id):
    """Attendance records of a session."""
    records = SessionService().list_attendance(session_id, current_identity())
    return success_response(data=records)

@sessions_bp.route('/<int:session_id>/stats', methods=['GET'])
@teacher_required
def session_stats(session_id):
    """Live counters for the teacher dashboard."""
    stats = SessionService().session_stats(session_id, current_identity())
    return success_response(data=stats)
