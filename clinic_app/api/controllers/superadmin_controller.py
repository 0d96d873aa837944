import secrets
from flask import request, jsonify, g, current_app
from sqlalchemy.exc import IntegrityError
from clinic_app.extensions import db, bcrypt
from clinic_app.models.user_models import User
from clinic_app.roles import CLINIC, SUPER_ADMIN
from clinic_app.utils.email_util import send_account_created_email
from clinic_app.utils.query_util import get_pagination_args, pagination_meta
from clinic_app.utils.security_util import generate_temporary_password

# Doctor logins are created together with their doctor record, never here.
MANAGED_ROLES = (CLINIC, SUPER_ADMIN)


def _error(message, status, **extra):
    return jsonify({'success': False, 'message': message, **extra}), status


def _user_view(user):
    data = user.to_dict()
    data['organization'] = user.organization.to_dict() if user.organization else None
    return data


def _managed_user(user_id):
    user = db.session.get(User, user_id)
    if user is None or user.role not in MANAGED_ROLES:
        return None
    return user


def _confirm_own_password(password):
    """An optional password in the body must be the acting SuperAdmin's own."""
    if password is None:
        return True
    return bcrypt.check_password_hash(g.current_user.password_hash, str(password))


def get_all_users():
    page, limit = get_pagination_args()
    query = User.query.filter(User.role.in_(MANAGED_ROLES))
    role = request.args.get('role')
    if role:
        query = query.filter(User.role == role)

    total = query.count()
    users = (query.order_by(User.created_at.desc(), User.id.desc())
             .offset((page - 1) * limit).limit(limit).all())
    return jsonify({
        'success': True,
        'data': [_user_view(u) for u in users],
        'pagination': pagination_meta(page, limit, total),
    }), 200


def create_user():
    """Creates an unverified Clinic or SuperAdmin account and mails its temporary password."""
    data = request.get_json(silent=True) or {}
    username = str(data.get('username') or data.get('name') or '').strip()
    email = str(data.get('email') or '').strip().lower()
    role = data.get('role') or CLINIC

    if not username or not email:
        return _error('Name and email are required', 400)
    if role not in MANAGED_ROLES:
        return _error(f"Role must be one of: {', '.join(MANAGED_ROLES)}", 400)
    if User.find_by_email(email):
        return _error('User with this email already exists', 409)

    temp_password = generate_temporary_password()
    user = User(
        username=username,
        role=role,
        is_active=data.get('isActive') is not False,
        is_verified=False,
        verification_token=secrets.token_hex(32),
    )
    user.set_email(email)
    user.set_password(temp_password)

    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return _error('User with this email already exists', 409)

    send_account_created_email(email, username, temp_password, user.verification_token)
    g.audit_target_id = user.id
    current_app.audit_logger.info(
        f"SuperAdmin UserID='{g.current_user.id}' created {role} account UserID='{user.id}'"
    )
    return jsonify({
        'success': True,
        'message': 'User created successfully. Verification email sent.',
        'data': _user_view(user),
    }), 201


def update_user(user_id):
    user = _managed_user(user_id)
    if user is None:
        return _error('User not found', 404)

    data = request.get_json(silent=True) or {}
    is_self = user.id == g.current_user.id

    if 'email' in data:
        email = str(data.get('email') or '').strip().lower()
        if not email:
            return _error('Email cannot be empty', 400)
        if email != (user.email or '').lower():
            if User.find_by_email(email):
                return _error('Email already in use', 409)
            user.set_email(email)

    username = data.get('username', data.get('name'))
    if username is not None:
        username = str(username).strip()
        if not username:
            db.session.rollback()
            return _error('Name cannot be empty', 400)
        user.username = username

    if data.get('role') and data['role'] != user.role:
        if data['role'] not in MANAGED_ROLES:
            db.session.rollback()
            return _error(f"Role must be one of: {', '.join(MANAGED_ROLES)}", 400)
        if is_self:
            db.session.rollback()
            return _error('Cannot change your own role', 403)
        user.role = data['role']

    if 'isActive' in data:
        is_active = bool(data['isActive'])
        if is_self and not is_active:
            db.session.rollback()
            return _error('Cannot deactivate your own account', 403)
        user.is_active = is_active

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return _error('Email already in use', 409)

    return jsonify({'success': True, 'message': 'User updated successfully', 'data': _user_view(user)}), 200


def toggle_user_status(user_id):
    user = _managed_user(user_id)
    if user is None:
        return _error('User not found', 404)
    if user.role == SUPER_ADMIN:
        return _error('Cannot deactivate SuperAdmin users', 403)

    user.is_active = not user.is_active
    db.session.commit()

    state = 'activated' if user.is_active else 'deactivated'
    current_app.audit_logger.info(f"SuperAdmin UserID='{g.current_user.id}' {state} UserID='{user.id}'")
    return jsonify({'success': True, 'message': f'User {state} successfully', 'data': _user_view(user)}), 200


def get_user_two_factor_status(user_id):
    user = _managed_user(user_id)
    if user is None:
        return _error('User not found', 404)
    return jsonify({
        'success': True,
        'twoFactorEnabled': bool(user.two_factor_enabled),
        'hasSecret': bool(user.two_factor_secret),
        'backupCodesCount': len(user.backup_codes or []),
    }), 200


def enable_user_two_factor(user_id):
    """Re-enables 2FA a user has set up before. Secrets are never issued on a user's behalf."""
    user = _managed_user(user_id)
    if user is None:
        return _error('User not found', 404)
    if not user.two_factor_secret:
        return _error('User must set up 2FA themselves first. SuperAdmin can only re-enable existing 2FA.', 400)
    if user.two_factor_enabled:
        return _error('User already has 2FA enabled', 400)

    data = request.get_json(silent=True) or {}
    if not _confirm_own_password(data.get('password')):
        return _error('Invalid password', 400)

    user.two_factor_enabled = True
    db.session.commit()
    return jsonify({'success': True, 'message': '2FA re-enabled successfully', 'twoFactorEnabled': True}), 200


def disable_user_two_factor(user_id):
    """Turns 2FA off but keeps the secret and backup codes so it can be re-enabled."""
    user = _managed_user(user_id)
    if user is None:
        return _error('User not found', 404)
    if not user.two_factor_enabled:
        return _error('2FA is already disabled for this user', 400)

    data = request.get_json(silent=True) or {}
    if not _confirm_own_password(data.get('password')):
        return _error('Invalid password', 400)

    user.two_factor_enabled = False
    db.session.commit()
    return jsonify({
        'success': True,
        'message': '2FA disabled successfully. User can still re-enable without setup.',
        'twoFactorEnabled': False,
    }), 200
