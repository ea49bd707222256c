"""Authentication service for user management."""
import logging
from flask_jwt_extended import create_access_token
from sqlalchemy.exc import IntegrityError
from qr_attendance.models.user import User, UserRole
from qr_attendance.repository import AttendanceRepository
from qr_attendance.schemas import LoginInput, RegisterInput

logger = logging.getLogger(__name__)

class AuthService:
    """Registration, login and token issuance.

    The attendance core never sees credentials; it receives the identity this
    service encodes in the access token (``sub`` = user id, ``role`` claim).
    """

    @staticmethod
    def create_token(user: User) -> str:
        return create_access_token(
            identity=str(user.id),
            additional_claims={'role': user.role.value}
        )

    @staticmethod
    def register(data: RegisterInput) -> tuple[dict, str]:
        """Register new user."""
        repository = AttendanceRepository()

        if repository.get_user_by_email(data.email):
            return None, "Email already exists"

        try:
            user = repository.create_user(
                email=data.email,
                name=data.name,
                password=data.password,
                role=UserRole(data.role)
            )
            repository.commit()
        except IntegrityError:
            repository.rollback()
            return None, "Email already exists"

        logger.info('Registered %s user %s', user.role.value, user.id)
        return user.to_dict(), None

    @staticmethod
    def login(data: LoginInput) -> tuple[dict, str]:
        """Authenticate user and return an access token."""
        user = AttendanceRepository().get_user_by_email(data.email)

        if not user or not user.check_password(data.password):
            return None, "Invalid email or password"

        if not user.is_active:
            return None, "Account is deactivated"

        return {
            "access_token": AuthService.create_token(user),
            "user": user.to_dict()
        }, None

    @staticmethod
    def get_user_by_id(user_id: int) -> User:
        """Get user by ID."""
        return AttendanceRepository().get_user(user_id)
