"""Test the check-in validation sequence."""
from datetime import timedelta
from unittest import mock
import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from conftest import CLASSROOM, checkin, identity_of
from qr_attendance import db
from qr_attendance.errors import (
    AlreadyMarked, DeviceAlreadyRegistered, DeviceAlreadyUsedInSession,
    DeviceMismatch, Internal, InvalidOrExpiredQr, InvalidSession, QrExpired,
    TooFarFromClassroom, UserNotFound
)
from qr_attendance.identity import Identity
from qr_attendance.models import AttendanceRecord, AuditAction, AuditLog, UserRole
from qr_attendance.services.attendance_service import AttendanceValidator

@pytest.fixture
def validator(repository, clock):
    return AttendanceValidator(repository, clock=clock)

def audit_entries(action=None):
    stmt = select(AuditLog).order_by(AuditLog.id)
    if action:
        stmt = stmt.where(AuditLog.action == action)
    return list(db.session.execute(stmt).scalars())

def record_count():
    return len(db.session.execute(select(AttendanceRecord)).scalars().all())

def test_valid_checkin_succeeds_once(validator, attendance_session, live_token, student):
    record = validator.mark_attendance(
        checkin(attendance_session.id, live_token), identity_of(student), ip_address='10.0.0.5'
    )

    assert record.verified is True
    assert record.student_id == student.id
    assert record.session_id == attendance_session.id
    assert record.device_fingerprint == 'device-A'
    assert record.ip_address == '10.0.0.5'
    assert (record.location_lat, record.location_lng) == CLASSROOM

    with pytest.raises(AlreadyMarked):
        validator.mark_attendance(checkin(attendance_session.id, live_token), identity_of(student))

    assert record_count() == 1

def test_success_binds_device_and_audits(validator, repository, attendance_session, live_token, student):
    validator.mark_attendance(checkin(attendance_session.id, live_token), identity_of(student))

    assert repository.get_user(student.id).device_fingerprint == 'device-A'
    marked = audit_entries(AuditAction.ATTENDANCE_MARKED)
    assert len(marked) == 1
    assert marked[0].user_id == student.id

def test_unknown_session(validator, student):
    with pytest.raises(InvalidSession):
        validator.mark_attendance(checkin(4242, 'anything'), identity_of(student))

    failed = audit_entries(AuditAction.ATTENDANCE_FAILED)
    assert [e.reason for e in failed] == ['InvalidSession']

def test_wrong_token(validator, attendance_session, live_token, student):
    with pytest.raises(InvalidOrExpiredQr):
        validator.mark_attendance(checkin(attendance_session.id, 'forged'), identity_of(student))

def test_token_prefix_does_not_match(validator, attendance_session, live_token, student):
    with pytest.raises(InvalidOrExpiredQr):
        validator.mark_attendance(checkin(attendance_session.id, live_token[:-1]), identity_of(student))

def test_padded_token_does_not_match(validator, attendance_session, live_token, student):
    for padded in (' ' + live_token, live_token + '\n'):
        with pytest.raises(InvalidOrExpiredQr):
            validator.mark_attendance(checkin(attendance_session.id, padded), identity_of(student))

    assert record_count() == 0

def test_session_without_token(validator, attendance_session, student):
    with pytest.raises(InvalidOrExpiredQr):
        validator.mark_attendance(checkin(attendance_session.id, 'x'), identity_of(student))

def test_ended_session_rejects_checkin(validator, repository, attendance_session, live_token,
                                       student, clock):
    repository.end_session(attendance_session.id, clock())
    # a token written after the end must not reopen the session
    repository.update_session_qr(attendance_session.id, live_token, clock() + timedelta(seconds=30))
    repository.commit()

    with pytest.raises(InvalidSession):
        validator.mark_attendance(checkin(attendance_session.id, live_token), identity_of(student))

    assert record_count() == 0

def test_rotated_out_token_is_rejected(validator, qr_service, attendance_session, live_token,
                                       teacher, student):
    qr_service.rotate(attendance_session.id, identity_of(teacher))

    with pytest.raises(InvalidOrExpiredQr):
        validator.mark_attendance(checkin(attendance_session.id, live_token), identity_of(student))

def test_expired_token(validator, attendance_session, live_token, student, clock):
    clock.advance(31)

    with pytest.raises(QrExpired):
        validator.mark_attendance(checkin(attendance_session.id, live_token), identity_of(student))

    assert record_count() == 0

def test_token_valid_at_exact_expiry(validator, attendance_session, live_token, student, clock):
    clock.advance(30)
    record = validator.mark_attendance(checkin(attendance_session.id, live_token), identity_of(student))
    assert record.id is not None

def test_same_device_two_students(validator, attendance_session, live_token, student, other_student):
    validator.mark_attendance(checkin(attendance_session.id, live_token, 'shared'), identity_of(student))

    with pytest.raises(DeviceAlreadyUsedInSession):
        validator.mark_attendance(
            checkin(attendance_session.id, live_token, 'shared'), identity_of(other_student)
        )

    assert record_count() == 1

def test_bound_device_mismatch(validator, repository, attendance_session, live_token, student):
    repository.update_user_fingerprint(student.id, 'X')
    repository.commit()

    with pytest.raises(DeviceMismatch):
        validator.mark_attendance(checkin(attendance_session.id, live_token, 'Y'), identity_of(student))

    record = validator.mark_attendance(checkin(attendance_session.id, live_token, 'X'), identity_of(student))
    assert record.device_fingerprint == 'X'

def test_device_registered_to_someone_else(validator, repository, attendance_session, live_token,
                                           student, other_student):
    repository.update_user_fingerprint(other_student.id, 'taken')
    repository.commit()

    with pytest.raises(DeviceAlreadyRegistered):
        validator.mark_attendance(checkin(attendance_session.id, live_token, 'taken'), identity_of(student))

    assert repository.get_user(student.id).device_fingerprint is None

def test_unknown_user(validator, attendance_session, live_token):
    ghost = Identity(5555, UserRole.STUDENT)

    with pytest.raises(UserNotFound):
        validator.mark_attendance(checkin(attendance_session.id, live_token), ghost)

    failed = audit_entries(AuditAction.ATTENDANCE_FAILED)
    assert failed[-1].user_id == 5555
    assert failed[-1].reason == 'UserNotFound'

def test_too_far_reports_rounded_distance(validator, repository, attendance_session, live_token, student):
    far = checkin(attendance_session.id, live_token, lat=CLASSROOM[0] + 0.01)

    with pytest.raises(TooFarFromClassroom) as excinfo:
        validator.mark_attendance(far, identity_of(student))

    error = excinfo.value
    assert error.distance > 200
    assert f'({round(error.distance)}m)' in error.message
    assert error.details['distance'] == round(error.distance)
    # a failed geofence must not bind the device
    assert repository.get_user(student.id).device_fingerprint is None
    assert record_count() == 0

def test_boundary_distance_is_accepted(validator, attendance_session, live_token, student):
    with mock.patch('qr_attendance.services.attendance_service.GeoService.distance_meters',
                    return_value=200.0):
        record = validator.mark_attendance(checkin(attendance_session.id, live_token), identity_of(student))
    assert record.id is not None

def test_just_past_boundary_is_rejected(validator, attendance_session, live_token, student):
    with mock.patch('qr_attendance.services.attendance_service.GeoService.distance_meters',
                    return_value=200.4):
        with pytest.raises(TooFarFromClassroom) as excinfo:
            validator.mark_attendance(checkin(attendance_session.id, live_token), identity_of(student))
    assert '(200m)' in excinfo.value.message

def test_session_without_geofence_skips_location(validator, repository, attendance_session,
                                                 live_token, student):
    session = repository.get_session(attendance_session.id)
    session.location_lat = None
    session.location_lng = None
    repository.commit()

    record = validator.mark_attendance(
        checkin(attendance_session.id, live_token, lat=0.0, lng=0.0), identity_of(student)
    )
    assert record.id is not None

def test_token_checks_run_before_geofence(validator, attendance_session, live_token, student):
    far_and_forged = checkin(attendance_session.id, 'forged', lat=0.0, lng=0.0)

    with pytest.raises(InvalidOrExpiredQr):
        validator.mark_attendance(far_and_forged, identity_of(student))

def test_each_failure_writes_one_audit_entry(validator, attendance_session, live_token, student):
    for token in ('bad-1', 'bad-2'):
        with pytest.raises(InvalidOrExpiredQr):
            validator.mark_attendance(checkin(attendance_session.id, token), identity_of(student))

    failed = audit_entries(AuditAction.ATTENDANCE_FAILED)
    assert len(failed) == 2
    assert all(e.reason == 'InvalidOrExpiredQr' for e in failed)
    assert failed[0].details['session_id'] == attendance_session.id

def test_concurrent_duplicate_maps_to_already_marked(validator, repository, attendance_session,
                                                     live_token, student):
    """A record inserted after the duplicate check still yields AlreadyMarked."""
    original = repository.get_attendance_record
    calls = {'n': 0}

    def racing_lookup(student_id, session_id):
        calls['n'] += 1
        if calls['n'] == 1:
            repository.insert_attendance_record(
                student_id=student_id, session_id=session_id,
                device_fingerprint='device-A', verified=True
            )
            repository.commit()
            return None
        return original(student_id, session_id)

    with mock.patch.object(repository, 'get_attendance_record', side_effect=racing_lookup):
        with pytest.raises(AlreadyMarked):
            validator.mark_attendance(checkin(attendance_session.id, live_token), identity_of(student))

    assert record_count() == 1

def test_storage_failure_is_internal(validator, repository, attendance_session, live_token, student):
    with mock.patch.object(repository, 'insert_attendance_record',
                           side_effect=OperationalError('INSERT', {}, Exception('db down'))):
        with pytest.raises(Internal):
            validator.mark_attendance(checkin(attendance_session.id, live_token), identity_of(student))

    assert record_count() == 0
    assert audit_entries(AuditAction.ATTENDANCE_FAILED) == []

def test_audit_failure_does_not_fail_checkin(validator, repository, attendance_session, live_token, student):
    with mock.patch.object(repository, 'insert_audit_log',
                           side_effect=OperationalError('INSERT', {}, Exception('audit down'))):
        record = validator.mark_attendance(checkin(attendance_session.id, live_token), identity_of(student))

    assert record.id is not None
    assert record_count() == 1
