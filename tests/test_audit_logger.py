import logging
from datetime import timedelta, datetime
from unittest import mock

import pytest
from sqlalchemy.exc import OperationalError

from clinic_app.extensions import db
from clinic_app.models.system_models import AuditLog
from clinic_app.utils.audit import AuditSink, audit_sink, classify_auth_action, classify_request
from clinic_app.utils.encryption_util import encryptor


@pytest.mark.parametrize('method, path, view_args, expected', [
    ('GET', '/api/patients', None, ('PATIENT_LIST_ACCESS', 'PATIENT')),
    ('GET', '/api/patients/7', {'patient_id': 7}, ('PATIENT_VIEW', 'PATIENT')),
    ('POST', '/api/patients', None, ('PATIENT_CREATE', 'PATIENT')),
    ('PUT', '/api/patients/7', {'patient_id': 7}, ('PATIENT_UPDATE', 'PATIENT')),
    ('DELETE', '/api/patients/7', {'patient_id': 7}, ('PATIENT_DELETE', 'PATIENT')),
    ('PUT', '/api/patients/7/reactivate', {'patient_id': 7}, ('PATIENT_REACTIVATE', 'PATIENT')),
    ('POST', '/api/patients/search', None, ('PATIENT_SEARCH', 'PATIENT')),
    ('POST', '/api/doctors', None, ('DOCTOR_CREATE', 'DOCTOR')),
    ('PATCH', '/api/request-assessments/3/status', {'assessment_id': 3},
     ('ASSESSMENT_REQUEST_UPDATE', 'ASSESSMENT_REQUEST')),
    ('GET', '/api/auth/me', None, ('USER_PROFILE_VIEW', 'USER')),
    ('GET', '/api/auth/captcha', None, ('CAPTCHA_ISSUED', 'AUTHENTICATION')),
    ('POST', '/api/auth/2fa/verify', None, ('TWO_FACTOR_ENABLE', 'AUTHENTICATION')),
    ('POST', '/api/organizations/4/extend', {'organization_id': 4}, ('CONTRACT_EXTEND', 'ORGANIZATION')),
    ('GET', '/api/organizations', None, ('ORGANIZATION_LIST', 'ORGANIZATION')),
    ('DELETE', '/api/widgets/1', None, ('DELETE_WIDGETS', 'GENERAL')),
    ('GET', '/api', None, ('GET_ROOT', 'GENERAL')),
])
def test_classify_request(method, path, view_args, expected):
    assert classify_request(method, path, view_args) == expected


def test_patients_prefix_does_not_capture_similar_paths():
    assert classify_request('GET', '/api/patients-archive') == ('GET_PATIENTS_ARCHIVE', 'GENERAL')


@pytest.mark.parametrize('path, status, body, expected', [
    ('/api/auth/login', 200, {'success': True}, 'LOGIN_SUCCESS'),
    ('/api/auth/login', 200, {'success': False, 'requiresCaptcha': True}, 'LOGIN_CHALLENGE_ISSUED'),
    ('/api/auth/login', 200, {'success': False, 'requiresTwoFactor': True}, 'LOGIN_CHALLENGE_ISSUED'),
    ('/api/auth/login', 401, {'success': False}, 'LOGIN_FAILED'),
    ('/api/auth/signup', 201, None, 'SIGNUP_SUCCESS'),
    ('/api/auth/signup', 409, None, 'SIGNUP_FAILED'),
    ('/api/auth/verify/abc', 400, None, 'EMAIL_VERIFICATION_FAILED'),
    ('/api/auth/forgot-password', 200, None, 'PASSWORD_RESET_REQUESTED'),
    ('/api/auth/reset-password/abc', 200, None, 'PASSWORD_RESET_SUCCESS'),
    ('/api/auth/logout', 200, None, 'LOGOUT'),
])
def test_classify_auth_action(path, status, body, expected):
    assert classify_auth_action(path, status, body) == expected


def _logs(app, **filters):
    with app.app_context():
        return [log.to_dict() for log in AuditLog.query.filter_by(**filters).order_by(AuditLog.id).all()]


def test_one_entry_per_request(app, client, make_user, auth_headers):
    user_id = make_user()
    client.get('/api/patients', headers=auth_headers(user_id), query_string={'page': 2})

    logs = _logs(app)
    assert len(logs) == 1
    log = logs[0]
    assert log['action'] == 'PATIENT_LIST_ACCESS'
    assert log['userId'] == user_id
    assert log['outcome'] == 'SUCCESS'
    assert log['meta']['role'] == 'Clinic'
    assert log['meta']['requestMethod'] == 'GET'
    assert log['meta']['queryParams'] == {'page': '2'}
    assert log['meta']['duration'] is not None


def test_actor_id_is_encrypted_at_rest(app, client, make_user, auth_headers):
    user_id = make_user()
    client.get('/api/auth/me', headers=auth_headers(user_id))
    with app.app_context():
        stored = db.session.execute(db.text('SELECT "user" FROM audit_logs')).scalar()
        assert stored != str(user_id)
        assert encryptor.decrypt(stored) == str(user_id)


def test_auth_flow_is_recorded_once_with_encrypted_email(app, client, make_user):
    make_user()
    client.post('/api/auth/login', json={'email': 'clinic@example.com', 'password': 'wrong-Passw0rd!'})

    logs = _logs(app)
    assert [log['action'] for log in logs] == ['LOGIN_FAILED']
    assert logs[0]['outcome'] == 'FAILURE'
    assert logs[0]['meta']['email'] != 'clinic@example.com'
    assert encryptor.decrypt(logs[0]['meta']['email']) == 'clinic@example.com'
    assert logs[0]['meta']['role'] == 'unknown'


def test_failed_auth_is_recorded_as_failure(app, client):
    client.get('/api/patients')
    logs = _logs(app)
    assert len(logs) == 1
    assert logs[0]['outcome'] == 'FAILURE'
    assert logs[0]['meta']['responseCode'] == 401
    assert logs[0]['meta']['userName'] == 'anonymous'


def test_sensitive_route_params_are_redacted(app, client):
    client.post('/api/auth/reset-password/abc123', json={'password': 'N3w!Password-123'})
    log = _logs(app)[0]
    assert log['action'] == 'PASSWORD_RESET_FAILED'
    assert log['meta']['routeParams'] == {'token': '[REDACTED]'}


def test_unmatched_paths_fall_back_to_general(app, client):
    client.get('/api/unknown/thing')
    log = _logs(app)[0]
    assert log['action'] == 'GET_UNKNOWN'
    assert log['recordType'] == 'GENERAL'


def test_paths_outside_prefix_are_not_recorded(app, client):
    client.get('/health')
    assert _logs(app) == []


def test_audit_log_reads_are_not_recorded(app, client, make_user, auth_headers):
    client.get('/api/audit-logs', headers=auth_headers(make_user()))
    assert _logs(app) == []


def test_sink_failure_does_not_affect_response(app, client, make_user, auth_headers, caplog):
    headers = auth_headers(make_user())
    error = OperationalError('INSERT', {}, Exception('audit store down'))
    with mock.patch('clinic_app.utils.audit.Session') as session_cls, \
            caplog.at_level(logging.ERROR, logger='HIPAA_AUDIT'):
        session_cls.return_value.__enter__.return_value.commit.side_effect = error
        response = client.get('/api/auth/me', headers=headers)

    assert response.status_code == 200
    assert 'Failed to write audit entry' in caplog.text
    assert _logs(app) == []


def test_queued_sink_drains_in_background(app):
    entry = {
        'user': None, 'user_id': None, 'user_role': 'unknown', 'user_name': 'anonymous',
        'action': 'GET_ROOT', 'record_type': 'GENERAL', 'record_id': None,
        'ip_address': '127.0.0.1', 'user_agent': 'pytest', 'outcome': 'SUCCESS',
        'duration_ms': 1.0, 'meta': {}, 'created_at': datetime.utcnow() - timedelta(seconds=1),
    }
    app.config['AUDIT_SYNCHRONOUS'] = False
    app.testing = False
    sink = AuditSink()
    try:
        sink.init_app(app)
        assert not sink.synchronous
        sink.submit(entry)
        sink.flush()
    finally:
        sink.shutdown()
        app.testing = True
        app.config['AUDIT_SYNCHRONOUS'] = True
        app.extensions['audit_sink'] = audit_sink

    assert [log['action'] for log in _logs(app)] == ['GET_ROOT']


def test_client_ip_is_clipped_to_column_width(app, client):
    client.get('/api/unknown/thing', headers={'X-Forwarded-For': '1' * 200 + ', 10.0.0.1'})
    client.get('/api/unknown/thing', headers={'X-Forwarded-For': '203.0.113.7, 10.0.0.1'})

    logs = _logs(app)
    assert [log['ip'] for log in logs] == ['1' * 45, '203.0.113.7']


def test_unexpected_sink_error_is_logged_and_swallowed(app, client, make_user, auth_headers, caplog):
    headers = auth_headers(make_user())
    with mock.patch('clinic_app.utils.audit.Session', side_effect=RuntimeError('pool exhausted')), \
            caplog.at_level(logging.ERROR, logger='HIPAA_AUDIT'):
        response = client.get('/api/auth/me', headers=headers)

    assert response.status_code == 200
    assert 'Failed to write audit entry action=USER_PROFILE_VIEW' in caplog.text


def test_worker_survives_a_failed_write(app):
    app.config['AUDIT_SYNCHRONOUS'] = False
    app.testing = False
    sink = AuditSink()
    try:
        sink.init_app(app)
        with mock.patch('clinic_app.utils.audit.Session', side_effect=RuntimeError('boom')) as session_cls:
            sink.submit({'action': 'FIRST'})
            sink.submit({'action': 'SECOND'})
            sink.flush()
        assert session_cls.call_count == 2
        assert sink._worker.is_alive()
    finally:
        sink.shutdown()
        app.testing = True
        app.config['AUDIT_SYNCHRONOUS'] = True
        app.extensions['audit_sink'] = audit_sink
