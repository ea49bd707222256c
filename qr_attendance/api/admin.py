"""Administrative endpoints."""
from flask import Blueprint, request
from qr_attendance.services.device_binding_service import DeviceBindingLedger
from qr_attendance.utils.decorators import admin_required, current_identity
from qr_attendance.utils.helpers import success_response

admin_bp = Blueprint('admin', __name__)

@admin_bp.route('/users/<int:user_id>/device', methods=['DELETE'])
@admin_required
def clear_device(user_id):
    """Remove a student's device binding so a new device can be bound."""
    user = DeviceBindingLedger().clear(
        user_id, current_identity(), ip_address=request.remote_addr
    )
    return success_response(data=user.to_dict(), message="Device binding cleared")
