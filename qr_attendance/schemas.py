"""Request schemas validated at the HTTP boundary.

Views parse JSON bodies into these models before calling a service, so the
services only ever see typed, range-checked values. Field aliases accept the
camelCase names the web client sends.
"""
import re
from datetime import datetime, timezone
from typing import Annotated, Literal, Optional
from pydantic import (
    BaseModel, ConfigDict, Field, StringConstraints, field_validator, model_validator
)

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')

# Trimmed free text. QR tokens stay untouched: they must match byte for byte.
StrippedStr = Annotated[str, StringConstraints(strip_whitespace=True)]

class RequestSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra='ignore')

class LocationInput(RequestSchema):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)

class MarkAttendanceInput(RequestSchema):
    session_id: int = Field(alias='sessionId', gt=0)
    qr_token: str = Field(alias='qrToken', min_length=1, max_length=4096)
    location: LocationInput
    device_fingerprint: StrippedStr = Field(alias='deviceFingerprint', min_length=1, max_length=255)

class CreateSessionInput(RequestSchema):
    subject: StrippedStr = Field(min_length=1, max_length=255)
    start_time: datetime = Field(alias='startTime')
    end_time: Optional[datetime] = Field(default=None, alias='endTime')
    location_lat: float = Field(alias='locationLat', ge=-90, le=90)
    location_lng: float = Field(alias='locationLng', ge=-180, le=180)
    radius: Optional[int] = Field(default=None, gt=0)

    @field_validator('start_time', 'end_time')
    @classmethod
    def to_naive_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    @model_validator(mode='after')
    def check_window(self) -> 'CreateSessionInput':
        if self.end_time is not None and self.end_time <= self.start_time:
            raise ValueError('endTime must be after startTime')
        return self

class RegisterInput(RequestSchema):
    name: StrippedStr = Field(min_length=2, max_length=100)
    email: StrippedStr = Field(max_length=255)
    password: str = Field(min_length=6, max_length=128)
    role: Literal['student', 'teacher'] = 'student'

    @field_validator('email')
    @classmethod
    def check_email(cls, value: str) -> str:
        if not EMAIL_PATTERN.match(value):
            raise ValueError('Invalid email format')
        return value.lower()

class LoginInput(RequestSchema):
    email: StrippedStr = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=128)
