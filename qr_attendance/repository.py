"""Storage access for the attendance core.

The services only talk to :class:`AttendanceRepository`. Methods that write
add or flush; committing is left to the caller so a check-in can bind a
device and insert its record in one transaction.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy import select, update, func
from qr_attendance import db
from qr_attendance.models import (
    User, UserRole, AttendanceSession, AttendanceRecord, AuditLog
)

class AttendanceRepository:
    """SQLAlchemy-backed repository."""

    def __init__(self, session=None):
        self.db_session = session or db.session

    # Users

    def get_user(self, user_id: int) -> Optional[User]:
        return self.db_session.get(User, user_id)

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self.db_session.execute(
            select(User).where(User.email == email.lower().strip())
        ).scalar_one_or_none()

    def get_user_by_fingerprint(self, fingerprint: str) -> Optional[User]:
        return self.db_session.execute(
            select(User).where(User.device_fingerprint == fingerprint)
        ).scalar_one_or_none()

    def create_user(self, email: str, name: str, password: str,
                    role: UserRole = UserRole.STUDENT) -> User:
        user = User(email=email.lower().strip(), name=name.strip(), role=role)
        user.set_password(password)
        self.db_session.add(user)
        self.db_session.flush()
        return user

    def update_user_fingerprint(self, user_id: int, fingerprint: Optional[str],
                                only_if_unbound: bool = False) -> int:
        """Set or clear a device binding; returns the number of rows changed."""
        stmt = update(User).where(User.id == user_id)
        if only_if_unbound:
            stmt = stmt.where(User.device_fingerprint.is_(None))
        result = self.db_session.execute(
            stmt.values(device_fingerprint=fingerprint)
            .execution_options(synchronize_session='fetch')
        )
        return result.rowcount

    def count_students(self) -> int:
        return self.db_session.execute(
            select(func.count(User.id)).where(User.role == UserRole.STUDENT)
        ).scalar_one()

    # Sessions

    def get_session(self, session_id: int) -> Optional[AttendanceSession]:
        return self.db_session.get(AttendanceSession, session_id)

    def list_sessions(self, teacher_id: Optional[int] = None) -> List[AttendanceSession]:
        stmt = select(AttendanceSession).order_by(AttendanceSession.start_time.desc())
        if teacher_id is not None:
            stmt = stmt.where(AttendanceSession.teacher_id == teacher_id)
        return list(self.db_session.execute(stmt).scalars())

    def create_session(self, **fields) -> AttendanceSession:
        session = AttendanceSession(**fields)
        self.db_session.add(session)
        self.db_session.flush()
        return session

    def update_session_qr(self, session_id: int, token: Optional[str],
                          expires_at: Optional[datetime]) -> int:
        """Write token and expiry together in a single statement."""
        result = self.db_session.execute(
            update(AttendanceSession)
            .where(AttendanceSession.id == session_id)
            .values(current_qr_token=token, current_qr_expires_at=expires_at)
        )
        return result.rowcount

    def end_session(self, session_id: int, ended_at: datetime) -> int:
        result = self.db_session.execute(
            update(AttendanceSession)
            .where(AttendanceSession.id == session_id)
            .values(is_active=False, end_time=ended_at,
                    current_qr_token=None, current_qr_expires_at=None)
        )
        return result.rowcount

    # Attendance

    def get_attendance_record(self, student_id: int, session_id: int) -> Optional[AttendanceRecord]:
        return self.db_session.execute(
            select(AttendanceRecord).where(
                AttendanceRecord.student_id == student_id,
                AttendanceRecord.session_id == session_id
            )
        ).scalar_one_or_none()

    def get_attendance_records_by_session_and_device(self, session_id: int,
                                                     fingerprint: str) -> List[AttendanceRecord]:
        return list(self.db_session.execute(
            select(AttendanceRecord).where(
                AttendanceRecord.session_id == session_id,
                AttendanceRecord.device_fingerprint == fingerprint
            )
        ).scalars())

    def insert_attendance_record(self, **fields) -> AttendanceRecord:
        record = AttendanceRecord(**fields)
        self.db_session.add(record)
        self.db_session.flush()
        return record

    def get_session_attendance(self, session_id: int,
                               limit: Optional[int] = None) -> List[AttendanceRecord]:
        stmt = (
            select(AttendanceRecord)
            .where(AttendanceRecord.session_id == session_id)
            .order_by(AttendanceRecord.timestamp.desc(), AttendanceRecord.id.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.db_session.execute(stmt).scalars())

    def count_session_attendance(self, session_id: int) -> int:
        return self.db_session.execute(
            select(func.count(AttendanceRecord.id))
            .where(AttendanceRecord.session_id == session_id)
        ).scalar_one()

    # Audit

    def insert_audit_log(self, action: str, user_id: Optional[int] = None,
                         reason: Optional[str] = None, ip_address: Optional[str] = None,
                         details: Optional[Dict[str, Any]] = None) -> AuditLog:
        entry = AuditLog(
            action=action,
            user_id=user_id,
            reason=reason,
            ip_address=ip_address,
            details=details
        )
        self.db_session.add(entry)
        self.db_session.flush()
        return entry

    # Transactions

    def refresh(self, instance) -> None:
        self.db_session.refresh(instance)

    def commit(self) -> None:
        self.db_session.commit()

    def rollback(self) -> None:
        self.db_session.rollback()
