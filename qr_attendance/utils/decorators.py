"""Identity resolution and role decorators for the HTTP layer."""
from functools import wraps
from flask_jwt_extended import get_jwt, get_jwt_identity, verify_jwt_in_request
from qr_attendance.identity import Identity
from qr_attendance.models.user import UserRole
from qr_attendance.utils.helpers import error_response

def current_identity() -> Identity:
    """Identity of the caller from the verified access token."""
    claims = get_jwt()
    return Identity(user_id=int(get_jwt_identity()), role=UserRole(claims['role']))

def roles_required(*roles: UserRole):
    """Require a valid token whose role is one of ``roles``."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            verify_jwt_in_request()
            if current_identity().role not in roles:
                return error_response("Access denied for this role", 403, kind='Forbidden')
            return f(*args, **kwargs)
        return decorated_function
    return decorator

def teacher_required(f):
    """Decorator to require teacher role or higher."""
    return roles_required(UserRole.TEACHER, UserRole.ADMIN)(f)

def student_required(f):
    """Decorator to require student role."""
    return roles_required(UserRole.STUDENT)(f)

def admin_required(f):
    """Decorator to require admin role."""
    return roles_required(UserRole.ADMIN)(f)
