"""Authentication API endpoints."""
from flask import Blueprint, request
from flask_jwt_extended import jwt_required
from qr_attendance import limiter
from qr_attendance.schemas import LoginInput, RegisterInput
from qr_attendance.services.auth_service import AuthService
from qr_attendance.utils.decorators import current_identity
from qr_attendance.utils.helpers import success_response, error_response

auth_bp = Blueprint("auth", __name__)

@auth_bp.route("/health", methods=["GET"])
def health_check():
    """Health check endpoint."""
    return success_response(message="Auth service is running")

@auth_bp.route("/register", methods=["POST"])
@limiter.limit("10 per hour")
def register():
    """Register a student or teacher account."""
    data = RegisterInput.model_validate(request.get_json(silent=True) or {})

    user, error = AuthService.register(data)
    if error:
        return error_response(error, 400)

    return success_response(data=user, message="Registration successful", status_code=201)

@auth_bp.route("/login", methods=["POST"])
@limiter.limit("5 per minute")
def login():
    """Exchange email and password for an access token."""
    data = LoginInput.model_validate(request.get_json(silent=True) or {})

    result, error = AuthService.login(data)
    if error:
        return error_response(error, 401)

    return success_response(data=result, message="Login successful")

@auth_bp.route("/me", methods=["GET"])
@jwt_required()
def me():
    """Get current user profile."""
    user = AuthService.get_user_by_id(current_identity().user_id)
    if not user:
        return error_response("User not found", 401)

    return success_response(data=user.to_dict())
