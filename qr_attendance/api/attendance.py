"""Attendance check-in endpoints."""
from flask import Blueprint, request
from qr_attendance import limiter
from qr_attendance.schemas import MarkAttendanceInput
from qr_attendance.services.attendance_service import AttendanceValidator
from qr_attendance.utils.decorators import current_identity, student_required
from qr_attendance.utils.helpers import success_response

attendance_bp = Blueprint('attendance', __name__)

@attendance_bp.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint."""
    return success_response(message='Attendance service is running')

@attendance_bp.route('/mark', methods=['POST'])
@student_required
@limiter.limit("60 per minute")
def mark_attendance():
    """Check in to a session by presenting its current QR token."""
    data = MarkAttendanceInput.model_validate(request.get_json(silent=True) or {})

    record = AttendanceValidator().mark_attendance(
        data, current_identity(), ip_address=request.remote_addr
    )

    return success_response(
        data={'record': record.to_dict()},
        message="Attendance marked successfully"
    )
