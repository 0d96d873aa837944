from unittest import mock

import pyotp

from clinic_app.extensions import db
from clinic_app.models.system_models import AuditLog
from clinic_app.models.user_models import User
from clinic_app.roles import CLINIC, DOCTOR, SUPER_ADMIN

PASSWORD = 'Str0ng!Passw0rd'


def _create(client, headers, **data):
    with mock.patch('clinic_app.api.controllers.superadmin_controller.send_account_created_email') as send:
        response = client.post('/api/superadmin/users', headers=headers, json=data)
    return response, send


def test_list_users_excludes_doctor_logins(client, make_user, superadmin, auth_headers):
    make_user()
    make_user(email='doc@example.com', role=DOCTOR)

    body = client.get('/api/superadmin/users', headers=auth_headers(superadmin)).get_json()
    assert sorted(u['role'] for u in body['data']) == [CLINIC, SUPER_ADMIN]
    assert body['pagination']['totalItems'] == 2
    clinic = next(u for u in body['data'] if u['role'] == CLINIC)
    assert clinic['organization']['organizationName'] == 'clinic Clinic'


def test_user_management_is_superadmin_only(client, make_user, auth_headers):
    clinic_id = make_user()
    headers = auth_headers(clinic_id)
    assert client.get('/api/superadmin/users', headers=headers).status_code == 403
    assert client.patch(f'/api/superadmin/users/{clinic_id}/toggle-status', headers=headers).status_code == 403
    assert client.get('/api/superadmin/users').status_code == 401


def test_create_user_then_verify(app, client, superadmin, auth_headers):
    headers = auth_headers(superadmin)
    response, send = _create(client, headers, name='Northside', email='North@Example.com')
    assert response.status_code == 201
    created = response.get_json()['data']
    assert created['role'] == CLINIC
    assert created['isVerified'] is False

    email, username, temp_password, token = send.call_args[0]
    assert (email, username) == ('north@example.com', 'Northside')
    assert User._validate_password_strength(temp_password)

    assert _create(client, headers, name='Again', email='north@example.com')[0].status_code == 409
    assert _create(client, headers, name='Doc', email='doc@example.com', role=DOCTOR)[0].status_code == 400
    assert _create(client, headers, email='nameless@example.com')[0].status_code == 400

    assert client.get(f'/api/auth/verify/{token}').status_code == 200
    with app.app_context():
        user = User.find_by_email('north@example.com')
        assert user.is_verified is True
        assert user.organization.super_admin_id == superadmin
        entry = AuditLog.query.filter_by(action='USER_MANAGEMENT_CREATE', outcome='SUCCESS').one()
        assert entry.record_id == str(user.id)


def test_toggle_status_blocks_and_restores_access(app, client, make_user, superadmin, auth_headers):
    clinic_id = make_user()
    admin = auth_headers(superadmin)
    url = f'/api/superadmin/users/{clinic_id}/toggle-status'

    toggled = client.patch(url, headers=admin)
    assert toggled.get_json()['data']['isActive'] is False
    rejected = client.get('/api/auth/me', headers=auth_headers(clinic_id))
    assert rejected.status_code == 401
    assert rejected.get_json()['reason'] == 'ACCOUNT_DEACTIVATED'

    assert client.patch(url, headers=admin).get_json()['data']['isActive'] is True
    assert client.get('/api/auth/me', headers=auth_headers(clinic_id)).status_code == 200

    other_admin = make_user(email='root2@example.com', role=SUPER_ADMIN)
    assert client.patch(f'/api/superadmin/users/{other_admin}/toggle-status', headers=admin).status_code == 403

    with app.app_context():
        entries = AuditLog.query.filter_by(action='USER_MANAGEMENT_STATUS_TOGGLE').all()
        assert [entry.record_id for entry in entries][:2] == [str(clinic_id), str(clinic_id)]


def test_update_user(app, client, make_user, superadmin, auth_headers):
    clinic_id = make_user()
    make_user(email='taken@example.com')
    admin = auth_headers(superadmin)
    url = f'/api/superadmin/users/{clinic_id}'

    updated = client.put(url, headers=admin, json={'username': 'renamed', 'email': 'new@example.com'})
    assert updated.status_code == 200
    assert updated.get_json()['data']['username'] == 'renamed'
    with app.app_context():
        assert User.find_by_email('new@example.com').id == clinic_id

    assert client.put(url, headers=admin, json={'email': 'taken@example.com'}).status_code == 409
    assert client.put(url, headers=admin, json={'role': DOCTOR}).status_code == 400
    assert client.put(url, headers=admin, json={'username': ''}).status_code == 400

    own = f'/api/superadmin/users/{superadmin}'
    assert client.put(own, headers=admin, json={'isActive': False}).status_code == 403
    assert client.put(own, headers=admin, json={'role': CLINIC}).status_code == 403


def test_unknown_or_doctor_users_are_not_managed(client, make_user, superadmin, auth_headers):
    doctor_id = make_user(email='doc@example.com', role=DOCTOR)
    admin = auth_headers(superadmin)
    assert client.get('/api/superadmin/users/999/2fa/status', headers=admin).status_code == 404
    assert client.patch(f'/api/superadmin/users/{doctor_id}/toggle-status', headers=admin).status_code == 404


def test_two_factor_disable_and_reenable(app, client, make_user, superadmin, auth_headers):
    clinic_id = make_user()
    admin = auth_headers(superadmin)
    base = f'/api/superadmin/users/{clinic_id}/2fa'

    assert client.post(f'{base}/enable', headers=admin).status_code == 400
    assert client.get(f'{base}/status', headers=admin).get_json()['hasSecret'] is False

    secret = pyotp.random_base32()
    with app.app_context():
        user = db.session.get(User, clinic_id)
        user.two_factor_secret = secret
        user.two_factor_enabled = True
        user.backup_codes = ['AAAA1111', 'BBBB2222']
        db.session.commit()

    assert client.post(f'{base}/disable', headers=admin, json={'password': 'Wr0ng!Password'}).status_code == 400
    assert client.post(f'{base}/disable', headers=admin, json={'password': PASSWORD}).status_code == 200
    assert client.post(f'{base}/disable', headers=admin).status_code == 400

    status = client.get(f'{base}/status', headers=admin).get_json()
    assert status == {'success': True, 'twoFactorEnabled': False, 'hasSecret': True, 'backupCodesCount': 2}
    login = client.post('/api/auth/login', json={'email': 'clinic@example.com', 'password': PASSWORD})
    assert login.get_json()['requiresCaptcha'] is True

    assert client.post(f'{base}/enable', headers=admin).status_code == 200
    assert client.post(f'{base}/enable', headers=admin).status_code == 400
    login = client.post('/api/auth/login', json={'email': 'clinic@example.com', 'password': PASSWORD})
    assert login.get_json()['requiresTwoFactor'] is True
