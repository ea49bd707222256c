"""QR token rotation and rendering service."""
import base64
import io
import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable, NamedTuple, Optional
import jwt
import qrcode
from flask import current_app
from qr_attendance.errors import NotFound, Forbidden, InvalidSession
from qr_attendance.identity import Identity
from qr_attendance.repository import AttendanceRepository
from qr_attendance.services.session_service import can_manage_session
from qr_attendance.utils.helpers import utcnow

logger = logging.getLogger(__name__)

class QrToken(NamedTuple):
    """A freshly issued session token."""
    token: str
    expires_at: datetime
    ttl_seconds: int
    refresh_in: int

    def to_dict(self) -> dict:
        return {
            'token': self.token,
            'expires_at': self.expires_at.isoformat(),
            'ttl_seconds': self.ttl_seconds,
            'refresh_in': self.refresh_in
        }

class QRService:
    """Issues the short-lived token shown on a session's QR display.

    Each token is an HS256 JWT over the session id and a random nonce, so it
    cannot be guessed and cannot be replayed against another session. The
    session row only ever holds one token; rotating overwrites it and the
    previous token stops matching immediately.
    """

    def __init__(self, repository: Optional[AttendanceRepository] = None,
                 clock: Callable = utcnow,
                 ttl_seconds: Optional[int] = None,
                 secret: Optional[str] = None):
        self.repository = repository or AttendanceRepository()
        self.clock = clock
        self.ttl_seconds = ttl_seconds or current_app.config['QR_TOKEN_TTL_SECONDS']
        self.secret = secret or current_app.config['QR_TOKEN_SECRET']

    def rotate(self, session_id: int, requester: Identity) -> QrToken:
        """Replace the session's token with a new one valid for the TTL."""
        session = self.repository.get_session(session_id)
        if session is None:
            raise NotFound()
        if not can_manage_session(session, requester):
            raise Forbidden()
        if not session.is_active:
            raise InvalidSession('Session has ended')

        now = self.clock()
        expires_at = now + timedelta(seconds=self.ttl_seconds)
        token = self.issue_token(session.id, now, expires_at)

        self.repository.update_session_qr(session.id, token, expires_at)
        self.repository.commit()

        lead = current_app.config['QR_REFRESH_LEAD_SECONDS']
        logger.debug('QR token rotated for session %s', session.id)

        return QrToken(
            token=token,
            expires_at=expires_at,
            ttl_seconds=self.ttl_seconds,
            refresh_in=max(self.ttl_seconds - lead, 1)
        )

    def issue_token(self, session_id: int, issued_at: datetime, expires_at: datetime) -> str:
        payload = {
            'sid': session_id,
            'nonce': secrets.token_urlsafe(16),
            'iat': issued_at,
            'exp': expires_at
        }
        return jwt.encode(payload, self.secret, algorithm='HS256')

    @staticmethod
    def render_qr_image(token: str) -> str:
        """Render a token as a base64 PNG data URL."""
        qr = qrcode.QRCode(
            version=None,  # Auto-determine size
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=10,
            border=4,
        )
        qr.add_data(token)
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")

        buffered = io.BytesIO()
        img.save(buffered, format="PNG")
        img_str = base64.b64encode(buffered.getvalue()).decode()

        return f"data:image/png;base64,{img_str}"
