from datetime import datetime, timedelta

import pytest
from flask_jwt_extended import create_access_token

from clinic_app import create_app
from clinic_app.extensions import db
from clinic_app.models.organization_models import Organization
from clinic_app.models.user_models import User
from clinic_app.roles import CLINIC, SUPER_ADMIN

PASSWORD = 'Str0ng!Passw0rd'


@pytest.fixture
def app():
    # No app context stays pushed: Flask would reuse it for client requests and leak ``g``.
    app = create_app('testing')
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    """Creates a user and returns its id. Clinic users get an organization unless told otherwise."""
    def _make_user(email='clinic@example.com', role=CLINIC, username=None, verified=True, active=True,
                   organization=True, contract_end=None, grace_days=7):
        with app.app_context():
            user = User(username=username or email.split('@')[0], role=role,
                        is_verified=verified, is_active=active)
            user.set_email(email)
            user.set_password(PASSWORD)
            db.session.add(user)
            db.session.flush()

            if organization and role == CLINIC:
                now = datetime.utcnow()
                org = Organization(
                    organization_name=f'{user.username} Clinic',
                    email_address=email,
                    contract_start_date=now - timedelta(days=30),
                    contract_end_date=contract_end or now + timedelta(days=300),
                    contract_duration_months=12,
                    grace_period_days=grace_days,
                    super_admin_id=user.id,
                    created_by_id=user.id,
                )
                db.session.add(org)
                db.session.flush()
                user.organization_id = org.id

            db.session.commit()
            return user.id
    return _make_user


@pytest.fixture
def superadmin(make_user):
    return make_user(email='root@example.com', role=SUPER_ADMIN)


@pytest.fixture
def auth_headers(app):
    def _auth_headers(user_id, **kwargs):
        with app.app_context():
            token = create_access_token(identity=str(user_id), **kwargs)
        return {'Authorization': f'Bearer {token}'}
    return _auth_headers


@pytest.fixture
def set_contract(app):
    """Moves a user's contract window."""
    def _set_contract(user_id, end, grace_days=7, status=None):
        with app.app_context():
            org = db.session.get(User, user_id).organization
            org.contract_end_date = end
            org.grace_period_days = grace_days
            if status:
                org.contract_status = status
            db.session.commit()
    return _set_contract
