from datetime import datetime, timedelta

import pytest

from clinic_app.extensions import db
from clinic_app.models.organization_models import (
    CONTRACT_ACTIVE, CONTRACT_EXPIRED, CONTRACT_PENDING_RENEWAL, Organization, RenewalRequest
)
from clinic_app.models.user_models import User


def _organization_of(app, user_id):
    with app.app_context():
        org = db.session.get(User, user_id).organization
        return org.id, org.contract_start_date, org.contract_end_date


def test_extend_archives_and_moves_end(app, client, make_user, superadmin, auth_headers):
    clinic_id = make_user()
    org_id, _, end = _organization_of(app, clinic_id)

    response = client.post(f'/api/organizations/{org_id}/extend', headers=auth_headers(superadmin),
                           json={'additionalMonths': 2, 'notes': 'Goodwill'})
    assert response.status_code == 200
    data = response.get_json()['data']
    assert data['contractEndDate'] == (end + timedelta(days=60)).isoformat()
    assert len(data['contractHistory']) == 1
    assert data['contractHistory'][0]['endDate'] == end.isoformat()
    assert data['contractHistory'][0]['notes'] == 'Goodwill'


@pytest.mark.parametrize('months', [0, -1, 'two', None, 121, 10**9])
def test_extend_rejects_bad_months(app, client, make_user, superadmin, auth_headers, months):
    org_id, _, _ = _organization_of(app, make_user())
    response = client.post(f'/api/organizations/{org_id}/extend', headers=auth_headers(superadmin),
                           json={'additionalMonths': months})
    assert response.status_code == 400


@pytest.mark.parametrize('months', [0, 'x', 121, 10**9])
def test_reduce_rejects_out_of_range_months(app, client, make_user, superadmin, auth_headers, months):
    clinic_id = make_user()
    org_id, _, end = _organization_of(app, clinic_id)
    response = client.post(f'/api/organizations/{org_id}/reduce', headers=auth_headers(superadmin),
                           json={'reduceMonths': months})
    assert response.status_code == 400
    assert _organization_of(app, clinic_id)[2] == end


def test_reduce_cannot_cross_start_date(app, client, make_user, superadmin, auth_headers):
    org_id, _, _ = _organization_of(app, make_user())
    response = client.post(f'/api/organizations/{org_id}/reduce', headers=auth_headers(superadmin),
                           json={'reduceMonths': 12})
    assert response.status_code == 400
    with app.app_context():
        assert db.session.get(Organization, org_id).contract_history == []


def test_reduce_into_the_past_expires_contract():
    now = datetime(2026, 6, 1)
    org = Organization(contract_start_date=now - timedelta(days=200),
                       contract_end_date=now + timedelta(days=20),
                       contract_duration_months=7, contract_status=CONTRACT_ACTIVE)
    org.reduce(1, actor_id=1, now=now)
    assert org.contract_end_date == now - timedelta(days=10)
    assert org.contract_status == CONTRACT_EXPIRED
    assert org.contract_duration_months == 6
    assert len(org.contract_history) == 1


def test_extend_reactivates_expired_contract():
    org = Organization(contract_start_date=datetime(2025, 1, 1), contract_end_date=datetime(2025, 12, 1),
                       contract_duration_months=11, contract_status=CONTRACT_EXPIRED)
    org.extend(3, actor_id=1)
    assert org.contract_status == CONTRACT_ACTIVE
    assert org.contract_duration_months == 14
    with pytest.raises(ValueError):
        org.extend(0, actor_id=1)


def test_renewal_request_is_reviewed_once(app, client, make_user, superadmin, auth_headers):
    clinic_id = make_user(contract_end=datetime.utcnow() - timedelta(days=20))
    org_id, _, _ = _organization_of(app, clinic_id)
    with app.app_context():
        db.session.get(Organization, org_id).contract_status = CONTRACT_EXPIRED
        db.session.commit()

    created = client.post('/api/organizations/request-renewal', headers=auth_headers(clinic_id),
                          json={'requestedDurationMonths': 6, 'message': 'Please renew'})
    assert created.status_code == 201
    request_id = created.get_json()['data']['id']
    with app.app_context():
        assert db.session.get(Organization, org_id).contract_status == CONTRACT_PENDING_RENEWAL

    admin = auth_headers(superadmin)
    approve_url = f'/api/organizations/{org_id}/renewal/{request_id}/approve'
    approved = client.post(approve_url, headers=admin, json={'reviewNotes': 'ok'})
    assert approved.status_code == 200
    data = approved.get_json()['data']
    assert data['contractStatus'] == CONTRACT_ACTIVE
    assert data['contractDurationMonths'] == 6
    assert data['renewalRequests'][0]['status'] == 'Approved'
    assert len(data['contractHistory']) == 1

    assert client.post(approve_url, headers=admin).status_code == 400
    reject_url = f'/api/organizations/{org_id}/renewal/{request_id}/reject'
    assert client.post(reject_url, headers=admin).status_code == 400

    # The renewed clinic is let through the gate again
    assert client.get('/api/patients', headers=auth_headers(clinic_id)).status_code == 200


def test_review_model_guard():
    renewal = RenewalRequest(status='Pending')
    renewal.review('Rejected', reviewer_id=1, notes='no')
    assert renewal.reviewed_at is not None
    with pytest.raises(ValueError):
        renewal.review('Approved', reviewer_id=1)


def test_update_contract_info_validates_status(app, client, make_user, superadmin, auth_headers):
    org_id, _, _ = _organization_of(app, make_user())
    url = f'/api/organizations/{org_id}/contract'
    admin = auth_headers(superadmin)

    assert client.put(url, headers=admin, json={'contractStatus': 'Paused'}).status_code == 400
    assert client.put(url, headers=admin, json={'gracePeriodDays': 45}).status_code == 400

    response = client.put(url, headers=admin, json={'contractDurationMonths': 3, 'gracePeriodDays': 3})
    assert response.status_code == 200
    data = response.get_json()['data']
    assert data['gracePeriodDays'] == 3
    assert data['contractDurationMonths'] == 3
    assert len(data['contractHistory']) == 1


def test_my_organization_and_update(client, make_user, auth_headers):
    headers = auth_headers(make_user())
    assert client.get('/api/organizations/my-organization', headers=headers).status_code == 200

    response = client.put('/api/organizations/my-organization', headers=headers,
                          json={'phoneNumber': '555-0199', 'contractStatus': 'Active'})
    assert response.status_code == 200
    assert response.get_json()['data']['phoneNumber'] == '555-0199'

    assert client.put('/api/organizations/my-organization', headers=headers,
                      json={'organizationName': ''}).status_code == 400


def test_create_organization_once(client, make_user, superadmin, auth_headers):
    headers = auth_headers(make_user(organization=False))
    created = client.post('/api/organizations', headers=headers,
                          json={'organizationName': 'Eastside Clinic', 'emailAddress': 'e@example.com'})
    assert created.status_code == 201
    data = created.get_json()['data']
    assert data['superAdmin'] == superadmin
    assert data['gracePeriodDays'] == 7

    again = client.post('/api/organizations', headers=headers, json={'organizationName': 'Second'})
    assert again.status_code == 400


def test_superadmin_has_no_contract(client, superadmin, auth_headers):
    response = client.get('/api/organizations/contract-status', headers=auth_headers(superadmin))
    assert response.status_code == 400


def test_list_includes_validity(client, make_user, superadmin, auth_headers):
    make_user()
    body = client.get('/api/organizations', headers=auth_headers(superadmin)).get_json()
    assert body['pagination']['totalItems'] == 1
    org = body['data'][0]
    assert org['contractValidity']['isValid'] is True
    assert org['adminCount'] == 1
