# /clinic_app/utils/decorators.py
from functools import wraps
from flask import current_app, g, jsonify, request
from flask_jwt_extended import get_jwt_identity, unset_jwt_cookies, verify_jwt_in_request
from flask_jwt_extended.exceptions import JWTExtendedException, NoAuthorizationError
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError
from sqlalchemy.exc import SQLAlchemyError

from clinic_app.extensions import db
from clinic_app.models.user_models import User
from clinic_app.roles import CLINIC, is_role_name, permissions_for
from clinic_app.utils.audit import audit_log, auth_audit_log, no_audit  # noqa: F401
from clinic_app.utils.contract_util import check_contract, contract_warning_days


def _reject(status, message, reason, clear_cookie=False, **extra):
    response = jsonify({'success': False, 'message': message, 'reason': reason, **extra})
    if clear_cookie:
        unset_jwt_cookies(response)
    return response, status


def authenticate(f):
    """Verifies the session token and loads the acting user into ``g.current_user``."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            verify_jwt_in_request()
        except NoAuthorizationError:
            return _reject(401, 'No authentication token found', 'TOKEN_MISSING')
        except ExpiredSignatureError:
            return _reject(401, 'Session expired. Please log in again.', 'SESSION_EXPIRED',
                           clear_cookie=True)
        except (JWTExtendedException, InvalidTokenError) as e:
            current_app.audit_logger.warning(f"Rejected session token from {request.remote_addr}: {e}")
            return _reject(401, 'Unauthorized', 'TOKEN_INVALID', clear_cookie=True)

        try:
            user_id = int(get_jwt_identity())
        except (TypeError, ValueError):
            return _reject(401, 'Unauthorized', 'TOKEN_INVALID', clear_cookie=True)

        user = db.session.get(User, user_id)
        if not user:
            return _reject(401, 'Invalid token - user not found', 'USER_NOT_FOUND', clear_cookie=True)
        if not user.is_verified:
            return _reject(401, 'Account not verified', 'ACCOUNT_NOT_VERIFIED')
        if not user.is_active:
            return _reject(401, 'Account is deactivated', 'ACCOUNT_DEACTIVATED')

        g.current_user = user
        return f(*args, **kwargs)
    return decorated_function


def _deny(user, required):
    current_app.audit_logger.warning(
        f"Permission denied: UserID='{user.id}', Role='{user.role}', Required={sorted(required)}, "
        f"Path='{request.path}'"
    )
    return _reject(403, 'Forbidden: insufficient rights', 'INSUFFICIENT_RIGHTS',
                   required=list(required), actual=sorted(permissions_for(user.role) or []))


def _check_access(roles=(), permissions=(), match='any'):
    """Returns an error response tuple, or None when the current user passes."""
    user = g.get('current_user')
    if user is None:
        return _reject(401, 'No authentication token found', 'TOKEN_MISSING')

    granted = permissions_for(user.role)
    if granted is None:
        current_app.audit_logger.warning(f"Unrecognized role '{user.role}' for UserID='{user.id}'")
        return _reject(403, 'Forbidden: role not recognized', 'ROLE_NOT_RECOGNIZED')

    if roles:
        if user.role in roles:
            return None
        current_app.audit_logger.warning(
            f"Role denied: UserID='{user.id}', Role='{user.role}', Allowed={list(roles)}, Path='{request.path}'"
        )
        return _reject(403, 'Forbidden: insufficient rights', 'INSUFFICIENT_RIGHTS',
                       required=list(roles), actual=[user.role])

    if match == 'all':
        allowed = all(p in granted for p in permissions)
    else:
        allowed = any(p in granted for p in permissions)
    return None if allowed else _deny(user, permissions)


def require_role(*roles):
    """Allows the request only when the user's role is one of ``roles``."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            error = _check_access(roles=roles)
            return error if error else f(*args, **kwargs)
        return decorated_function
    return decorator


def require_permission(*permissions):
    """Allows the request when the user's role grants any of ``permissions``."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            error = _check_access(permissions=permissions, match='any')
            return error if error else f(*args, **kwargs)
        return decorated_function
    return decorator


def require_all_permissions(*permissions):
    """Allows the request only when the user's role grants every one of ``permissions``."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            error = _check_access(permissions=permissions, match='all')
            return error if error else f(*args, **kwargs)
        return decorated_function
    return decorator


def authorize(roles_or_permissions):
    """
    Accepts either role names or ``resource:action`` strings. If any item is a
    known role name the check is by role, otherwise by permission (any match).
    Prefer require_role / require_permission at new call sites.
    """
    if isinstance(roles_or_permissions, str):
        roles_or_permissions = [roles_or_permissions]
    items = tuple(roles_or_permissions)
    if any(is_role_name(item) for item in items):
        return require_role(*items)
    return require_permission(*items)


def validate_contract(f):
    """
    Blocks Clinic users whose organization contract is no longer valid.

    Other roles pass through. Database failures while checking fail open.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = g.get('current_user')
        # Contracts bind tenant administrators only; SuperAdmin and Doctor pass.
        if user is None or user.role != CLINIC:
            return f(*args, **kwargs)

        try:
            result = check_contract(user.organization, warning_days=contract_warning_days())
        except SQLAlchemyError as e:
            db.session.rollback()
            current_app.logger.error(f"Contract validation error, allowing request: {e}")
            return f(*args, **kwargs)

        if not result.allowed:
            current_app.audit_logger.warning(
                f"Contract gate denied UserID='{user.id}': {result.body['reason']}"
            )
            return jsonify(result.body), 403

        if result.warning:
            g.contract_warning = result.warning
        return f(*args, **kwargs)
    return decorated_function
