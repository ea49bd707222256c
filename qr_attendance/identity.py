"""Caller identity passed explicitly into every core operation."""
from typing import NamedTuple
from qr_attendance.models.user import UserRole

class Identity(NamedTuple):
    """Authenticated caller as resolved by the auth layer."""
    user_id: int
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_teacher(self) -> bool:
        return self.role in (UserRole.TEACHER, UserRole.ADMIN)
