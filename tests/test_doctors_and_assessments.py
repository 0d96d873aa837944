from unittest import mock

from clinic_app.extensions import db
from clinic_app.models.system_models import AuditLog
from clinic_app.models.user_models import User
from clinic_app.roles import DOCTOR

DOCTOR_DATA = {'name': 'Dr. Ana Silva', 'email': 'ana.silva@example.com', 'phone': '555-0101',
               'specialty': 'Geriatrics'}


def _assessment(physician_id, **overrides):
    data = {
        'patientName': 'Maria Lopez', 'patientId': 'PAT123456789', 'phoneNumber': '555-0142',
        'age': 67, 'gender': 'Female', 'ethnicity': 'Hispanic', 'assessmentType': 'Cognitive',
        'assigningPhysician': physician_id, 'assessmentDate': '2026-11-02', 'timezone': 'America/New_York',
        'timeHour': 9, 'timeMinute': 30, 'timeAmPm': 'am', 'consentAccepted': True,
        'communicationNotes': 'Prefers morning calls',
    }
    data.update(overrides)
    return data


def _create_doctor(client, headers, **overrides):
    with mock.patch('clinic_app.api.controllers.doctor_controller.send_password_email') as send:
        response = client.post('/api/doctors', headers=headers, json={**DOCTOR_DATA, **overrides})
    return response, send


def test_create_doctor_creates_login(app, client, make_user, auth_headers):
    clinic_id = make_user()
    response, send = _create_doctor(client, auth_headers(clinic_id))
    assert response.status_code == 201
    doctor = response.get_json()['data']
    assert doctor['doctorId'].startswith('DOC')

    email, name, temp_password = send.call_args[0]
    assert (email, name) == ('ana.silva@example.com', 'Dr. Ana Silva')
    assert User._validate_password_strength(temp_password)

    with app.app_context():
        login = User.find_by_email('ana.silva@example.com')
        assert login.role == DOCTOR
        assert login.is_verified is True
        assert login.physician_id == doctor['doctorId']
        assert login.username == doctor['doctorId']
        assert login.organization_id == db.session.get(User, clinic_id).organization_id
        assert AuditLog.query.filter_by(action='DOCTOR_CREATE').count() == 1
        stored = db.session.execute(db.text('SELECT username FROM users WHERE id = :id'),
                                    {'id': login.id}).scalar()
        assert 'Ana' not in stored

    duplicate, _ = _create_doctor(client, auth_headers(clinic_id))
    assert duplicate.status_code == 409


def test_deactivating_doctor_disables_login(app, client, make_user, auth_headers):
    headers = auth_headers(make_user())
    doctor_id = _create_doctor(client, headers)[0].get_json()['data']['id']

    assert client.delete(f'/api/doctors/{doctor_id}', headers=headers).status_code == 200
    with app.app_context():
        assert User.find_by_email('ana.silva@example.com').is_active is False
        assert AuditLog.query.filter_by(action='DOCTOR_DELETE').count() == 1

    assert client.put(f'/api/doctors/{doctor_id}/reactivate', headers=headers).status_code == 200
    with app.app_context():
        assert User.find_by_email('ana.silva@example.com').is_active is True


def test_update_doctor(client, make_user, auth_headers):
    headers = auth_headers(make_user())
    doctor_id = _create_doctor(client, headers)[0].get_json()['data']['id']

    response = client.put(f'/api/doctors/{doctor_id}', headers=headers, json={'specialty': 'Neurology'})
    assert response.get_json()['data']['specialty'] == 'Neurology'
    assert client.put(f'/api/doctors/{doctor_id}', headers=headers, json={'name': ''}).status_code == 400


def test_assessment_requests(app, client, make_user, auth_headers):
    clinic = auth_headers(make_user())
    physician_id = _create_doctor(client, clinic)[0].get_json()['data']['id']

    assert client.post('/api/request-assessments', headers=clinic,
                       json=_assessment(physician_id, consentAccepted=False)).status_code == 400
    assert client.post('/api/request-assessments', headers=clinic,
                       json=_assessment(physician_id, timeHour=13)).status_code == 400
    assert client.post('/api/request-assessments', headers=clinic,
                       json=_assessment(9999)).status_code == 404

    created = client.post('/api/request-assessments', headers=clinic, json=_assessment(physician_id))
    assert created.status_code == 201
    data = created.get_json()['data']
    assert data['timeAmPm'] == 'AM'
    assert data['assigningPhysician']['name'] == 'Dr. Ana Silva'

    with app.app_context():
        stored = db.session.execute(db.text('SELECT patient_name FROM request_assessments')).scalar()
        assert stored != 'Maria Lopez'

    url = f"/api/request-assessments/{data['id']}/status"
    assert client.patch(url, headers=clinic, json={'status': 'done'}).status_code == 400
    assert client.patch(url, headers=clinic, json={'status': 'approved'}).get_json()['data']['status'] == 'approved'


def test_doctor_sees_only_assigned_requests(app, client, make_user, auth_headers):
    clinic = auth_headers(make_user())
    ana_id = _create_doctor(client, clinic)[0].get_json()['data']['id']
    ben_id = _create_doctor(client, clinic, name='Dr. Ben Okafor', email='ben@example.com')[0].get_json()['data']['id']

    client.post('/api/request-assessments', headers=clinic, json=_assessment(ana_id))
    client.post('/api/request-assessments', headers=clinic, json=_assessment(ben_id, patientName='Tom Becker'))

    with app.app_context():
        ana_login = User.find_by_email('ana.silva@example.com').id
    ana = auth_headers(ana_login)

    listed = client.get('/api/request-assessments', headers=ana).get_json()
    assert [item['patientName'] for item in listed['data']] == ['Maria Lopez']
    assert client.post('/api/request-assessments', headers=ana, json=_assessment(ana_id)).status_code == 403
    assert client.get('/api/doctors', headers=ana).status_code == 403
