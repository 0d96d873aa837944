import secrets
from datetime import datetime, timedelta
from flask import request, jsonify, g, current_app
from flask_jwt_extended import (
    create_access_token, get_jwt, get_jwt_identity,
    set_access_cookies, unset_jwt_cookies, verify_jwt_in_request
)
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import InvalidTokenError
from sqlalchemy.exc import IntegrityError

from clinic_app.extensions import db
from clinic_app.models.organization_models import (
    Organization, DEFAULT_DURATION_MONTHS, DEFAULT_GRACE_PERIOD_DAYS, months_to_timedelta
)
from clinic_app.models.system_models import RevokedToken
from clinic_app.models.user_models import User
from clinic_app.roles import CLINIC, SUPER_ADMIN
from clinic_app.utils.captcha import generate_hidden_captcha, verify_hidden_captcha
from clinic_app.utils.email_util import send_password_reset_email, send_verification_email
from clinic_app.utils.security_util import get_client_ip, get_user_agent
from clinic_app.utils.two_factor import verify_backup_code, verify_two_factor_token

RESET_TOKEN_LIFETIME = timedelta(hours=1)


def _error(message, status, **extra):
    return jsonify({'success': False, 'message': message, **extra}), status


def register_user():
    """Self-service signup. Creates an unverified Clinic account and mails a verification link."""
    data = request.get_json(silent=True) or {}

    username = (data.get('username') or '').strip()
    email = (data.get('email') or '').strip().lower()
    password = data.get('password')
    if not username or not email or not password:
        return _error('Username, email and password are required', 400)

    role = data.get('role') or CLINIC
    if role != CLINIC:
        return _error('Only Clinic accounts can be created through signup', 400)

    if User.find_by_email(email):
        return _error('User already exists', 409)

    user = User(username=username, role=role, verification_token=secrets.token_hex(32))
    user.set_email(email)
    try:
        user.set_password(password)
    except ValueError as e:
        return _error(str(e), 400)

    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return _error('User already exists', 409)

    g.audit_target_id = user.id
    send_verification_email(email, username, user.verification_token)
    return jsonify({
        'success': True,
        'message': 'User registered successfully. Please check your email to verify your account.',
    }), 201


def _default_superadmin_for(user):
    if user.role == SUPER_ADMIN:
        return user
    return (User.query
            .filter_by(role=SUPER_ADMIN, is_active=True)
            .order_by(User.created_at.asc(), User.id.asc())
            .first())


def create_default_organization(user):
    """Gives a newly verified Clinic or SuperAdmin a one-year contract with a 7-day grace period."""
    if user.organization_id or user.role not in (CLINIC, SUPER_ADMIN):
        return user.organization

    owner = _default_superadmin_for(user)
    if owner is None:
        current_app.logger.error('No SuperAdmin user found to assign as organization owner.')
        return None

    now = datetime.utcnow()
    organization = Organization(
        organization_name=f"{user.username}'s Organization",
        email_address=user.email,
        address='To be updated',
        contract_start_date=now,
        contract_end_date=now + months_to_timedelta(DEFAULT_DURATION_MONTHS),
        contract_duration_months=DEFAULT_DURATION_MONTHS,
        grace_period_days=DEFAULT_GRACE_PERIOD_DAYS,
        contact_person_name=user.username,
        contact_person_email=user.email,
        super_admin_id=owner.id,
        created_by_id=owner.id,
    )
    db.session.add(organization)
    db.session.flush()
    user.organization_id = organization.id
    return organization


def verify_email(token):
    user = User.query.filter_by(verification_token=token).first() if token else None
    if not user:
        return _error('Invalid or expired verification link', 400)

    user.is_verified = True
    user.verification_token = None
    db.session.flush()
    create_default_organization(user)
    db.session.commit()

    g.audit_target_id = user.id
    return jsonify({'success': True, 'message': 'Email verified successfully. You can now log in.'}), 200


def _session_user_id():
    """Identity of a still-valid session presented with the request, if any."""
    try:
        verify_jwt_in_request(optional=True)
    except (JWTExtendedException, InvalidTokenError):
        return None
    return get_jwt_identity()


def _complete_login(user, method):
    now = datetime.utcnow()
    user.last_login = now
    user.captcha_attempts = 0
    user.record_login(get_client_ip(), get_user_agent(), True, method)
    db.session.commit()

    token = create_access_token(identity=str(user.id), additional_claims={'role': user.role})
    g.current_user = user
    g.audit_target_id = user.id

    response = jsonify({
        'success': True,
        'message': 'Login successful',
        'token': token,
        'user': user.to_dict(),
    })
    set_access_cookies(response, token)
    return response, 200


def _record_failure(user, method):
    user.record_login(get_client_ip(), get_user_agent(), False, method)
    db.session.commit()


def login_user():
    """
    Password login followed by a second step: a TOTP or backup code when 2FA is
    enabled, otherwise the hidden captcha. An unlock request from a browser that
    still holds this user's valid session skips the second step.
    """
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip()
    password = data.get('password')
    if not email or not password:
        return _error('Email and password are required', 400)

    user = User.find_by_email(email)
    if not user:
        return _error('Invalid credentials', 401)
    if not user.is_verified:
        return _error('Please verify your email before logging in', 401, reason='ACCOUNT_NOT_VERIFIED')
    if not user.is_active:
        return _error('Account is deactivated', 401, reason='ACCOUNT_DEACTIVATED')
    if user.is_locked:
        return _error('Account locked due to multiple failed attempts', 423, reason='ACCOUNT_LOCKED')

    if not user.check_password(password):
        _record_failure(user, 'password')
        return _error('Invalid credentials', 401)

    if data.get('isUnlock'):
        if _session_user_id() == str(user.id):
            return _complete_login(user, 'unlock')
        current_app.audit_logger.warning(
            f"Unlock requested without a matching session for UserID='{user.id}'"
        )

    if user.two_factor_enabled:
        code = data.get('twoFactorCode')
        backup_code = data.get('backupCode')
        if not code and not backup_code:
            return jsonify({
                'success': False,
                'requiresTwoFactor': True,
                'message': 'Two-factor authentication code required',
            }), 200

        verified = bool(code) and verify_two_factor_token(user.two_factor_secret, code)
        if not verified and backup_code:
            verified = verify_backup_code(user.backup_codes, backup_code)
        if not verified:
            _record_failure(user, '2fa')
            return _error('Invalid two-factor authentication code', 401,
                          requiresTwoFactor=True, reason='INVALID_TWO_FACTOR')
        return _complete_login(user, '2fa')

    session_id = data.get('captchaSessionId')
    answer = data.get('captchaAnswer')
    if not session_id or answer is None or answer == '':
        challenge = generate_hidden_captcha()
        return jsonify({
            'success': False,
            'requiresCaptcha': True,
            'message': 'Please complete the security check',
            'captchaSessionId': challenge['sessionId'],
            'challenge': challenge['challenge'],
        }), 200

    result = verify_hidden_captcha(session_id, answer)
    if not result['success']:
        user.captcha_attempts = (user.captcha_attempts or 0) + 1
        user.last_captcha_attempt = datetime.utcnow()
        _record_failure(user, 'captcha')
        return _error(result['error'], 401, requiresCaptcha=True, reason='CAPTCHA_FAILED',
                      attemptsLeft=result.get('attemptsLeft', 0))

    return _complete_login(user, 'captcha')


def get_captcha():
    challenge = generate_hidden_captcha()
    return jsonify({'success': True, **challenge}), 200


def logout_user():
    claims = get_jwt()
    db.session.add(RevokedToken(jti=claims['jti'], expires_at=datetime.utcfromtimestamp(claims['exp'])))
    db.session.commit()
    response = jsonify({'success': True, 'message': 'Logged out successfully'})
    unset_jwt_cookies(response)
    return response, 200


def get_current_user_details():
    user = g.current_user
    data = user.to_dict()
    if user.organization is not None:
        data['organizationDetails'] = user.organization.contract_summary()
    return jsonify({'success': True, 'user': data}), 200


def forgot_password():
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip()
    if not email:
        return _error('Email is required', 400)

    user = User.find_by_email(email)
    if user:
        user.reset_password_token = secrets.token_hex(32)
        user.reset_password_expires = datetime.utcnow() + RESET_TOKEN_LIFETIME
        db.session.commit()
        send_password_reset_email(user.email, user.username, user.reset_password_token)
        g.audit_target_id = user.id

    return jsonify({
        'success': True,
        'message': 'If an account exists for that email, a password reset link has been sent.',
    }), 200


def reset_password(token):
    data = request.get_json(silent=True) or {}
    password = data.get('password')
    if not password:
        return _error('New password is required', 400)

    user = User.query.filter(
        User.reset_password_token == token,
        User.reset_password_expires > datetime.utcnow(),
    ).first()
    if not user:
        return _error('Invalid or expired reset token', 400)

    try:
        user.set_password(password)
    except ValueError as e:
        return _error(str(e), 400)
    user.reset_password_token = None
    user.reset_password_expires = None
    user.failed_login_attempts = 0
    user.account_locked_until = None
    db.session.commit()

    g.audit_target_id = user.id
    return jsonify({
        'success': True,
        'message': 'Password has been reset successfully. You can now log in with your new password.',
    }), 200


def change_user_password():
    user = g.current_user
    data = request.get_json(silent=True) or {}
    current_password = data.get('currentPassword')
    new_password = data.get('newPassword')

    if not current_password or not new_password:
        return _error('Current password and new password are required', 400)
    if not user.check_password(current_password):
        return _error('Current password is incorrect', 400)
    if current_password == new_password:
        return _error('New password must be different from current password', 400)

    try:
        user.set_password(new_password)
    except ValueError as e:
        return _error(str(e), 400)
    user.record_login(get_client_ip(), get_user_agent(), True, 'password')
    db.session.commit()
    return jsonify({'success': True, 'message': 'Password changed successfully'}), 200


def get_login_history():
    history = g.current_user.login_history
    recent = list(reversed(history[-20:]))
    return jsonify({
        'success': True,
        'loginHistory': [entry.to_dict() for entry in recent],
        'totalLogins': len(history),
    }), 200
