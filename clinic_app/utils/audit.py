# /clinic_app/utils/audit.py
"""
Request audit trail.

One after-request hook records exactly one AuditLog row for every request under
AUDIT_PATH_PREFIX. Routes may pin the action with ``@audit_log`` or mark
themselves as authentication flows with ``@auth_audit_log``; everything else is
classified from the HTTP method and path.
"""
import atexit
import logging
import queue
import threading
import time
from collections import namedtuple
from datetime import datetime

from flask import current_app, g, request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_app.extensions import db
from clinic_app.models.system_models import AuditLog, OUTCOME_FAILURE, OUTCOME_SUCCESS
from clinic_app.utils.encryption_util import encryptor
from clinic_app.utils.security_util import get_client_ip, get_user_agent

audit_logger = logging.getLogger('HIPAA_AUDIT')

AUTH_RECORD_TYPE = 'AUTHENTICATION'
GENERAL_RECORD_TYPE = 'GENERAL'
SKIPPED_PATH_FRAGMENT = '/audit-logs'
REDACTED_PARAMS = frozenset({'token', 'password', 'newPassword', 'currentPassword'})

# --- Classification -------------------------------------------------------

AuditRule = namedtuple('AuditRule', 'prefix entity record_type keywords list_action')

_METHOD_ACTIONS = {
    'POST': 'CREATE',
    'PUT': 'UPDATE',
    'PATCH': 'UPDATE',
    'DELETE': 'DELETE',
}

AUDIT_RULES = (
    AuditRule('/auth', 'AUTH', AUTH_RECORD_TYPE, (
        ('me', 'USER_PROFILE_VIEW'),
        ('login-history', 'LOGIN_HISTORY_VIEW'),
        ('change-password', 'PASSWORD_CHANGE'),
        ('captcha', 'CAPTCHA_ISSUED'),
    ), None),
    AuditRule('/auth/2fa', 'TWO_FACTOR', AUTH_RECORD_TYPE, (
        ('setup', 'TWO_FACTOR_SETUP'),
        ('verify', 'TWO_FACTOR_ENABLE'),
        ('disable', 'TWO_FACTOR_DISABLE'),
        ('status', 'TWO_FACTOR_STATUS_VIEW'),
    ), None),
    AuditRule('/organizations', 'ORGANIZATION', 'ORGANIZATION', (
        ('my-organization', 'ORGANIZATION_VIEW'),
        ('contract-status', 'CONTRACT_STATUS_VIEW'),
        ('request-renewal', 'CONTRACT_RENEWAL_REQUEST'),
        ('approve', 'CONTRACT_RENEWAL_APPROVE'),
        ('reject', 'CONTRACT_RENEWAL_REJECT'),
        ('extend', 'CONTRACT_EXTEND'),
        ('reduce', 'CONTRACT_REDUCE'),
        ('contract', 'ORGANIZATION_CONTRACT_UPDATE'),
    ), 'ORGANIZATION_LIST'),
    AuditRule('/patients', 'PATIENT', 'PATIENT', (
        ('export', 'PATIENT_EXPORT'),
        ('statistics', 'PATIENT_STATISTICS_ACCESS'),
        ('search', 'PATIENT_SEARCH'),
        ('reactivate', 'PATIENT_REACTIVATE'),
    ), 'PATIENT_LIST_ACCESS'),
    AuditRule('/doctors', 'DOCTOR', 'DOCTOR', (
        ('export', 'DOCTOR_EXPORT'),
        ('stats', 'DOCTOR_STATS_ACCESS'),
        ('reactivate', 'DOCTOR_REACTIVATE'),
    ), 'DOCTOR_LIST_ACCESS'),
    AuditRule('/request-assessments', 'ASSESSMENT_REQUEST', 'ASSESSMENT_REQUEST', (
        ('stats', 'ASSESSMENT_REQUEST_STATS'),
    ), 'ASSESSMENT_REQUEST_LIST'),
)

# (path segment, success action, failure action, success status)
AUTH_FLOWS = (
    ('login', 'LOGIN_SUCCESS', 'LOGIN_FAILED', 200),
    ('logout', 'LOGOUT', 'LOGOUT', 200),
    ('signup', 'SIGNUP_SUCCESS', 'SIGNUP_FAILED', 201),
    ('verify', 'EMAIL_VERIFIED', 'EMAIL_VERIFICATION_FAILED', 200),
    ('forgot-password', 'PASSWORD_RESET_REQUESTED', 'PASSWORD_RESET_REQUEST_FAILED', 200),
    ('reset-password', 'PASSWORD_RESET_SUCCESS', 'PASSWORD_RESET_FAILED', 200),
)
LOGIN_CHALLENGE_ACTION = 'LOGIN_CHALLENGE_ISSUED'


def _segments(path):
    return [segment for segment in path.split('/') if segment]


def _matches_prefix(path, prefix):
    return path == prefix or path.startswith(prefix + '/')


def _has_record_id(view_args):
    return any(key == 'id' or key.endswith('_id') for key in (view_args or {}))


def classify_request(method, path, view_args=None, api_prefix='/api'):
    """
    Maps a request to (action, record_type).

    The longest matching resource prefix wins, then a sub-path keyword, then
    the HTTP method. Unmatched paths fall back to METHOD_SEGMENT / GENERAL.
    """
    method = method.upper()
    relative = path[len(api_prefix):] if api_prefix and path.startswith(api_prefix) else path

    candidates = [rule for rule in AUDIT_RULES if _matches_prefix(relative, rule.prefix)]
    if not candidates:
        segments = _segments(relative)
        segment = segments[0].upper().replace('-', '_') if segments else 'ROOT'
        return f'{method}_{segment}', GENERAL_RECORD_TYPE

    rule = max(candidates, key=lambda r: len(r.prefix))
    remainder = _segments(relative[len(rule.prefix):])
    for keyword, action in rule.keywords:
        if keyword in remainder:
            record_type = 'USER' if action == 'USER_PROFILE_VIEW' else rule.record_type
            return action, record_type

    if method == 'GET':
        if _has_record_id(view_args):
            return f'{rule.entity}_VIEW', rule.record_type
        return rule.list_action or f'{rule.entity}_GET', rule.record_type

    suffix = _METHOD_ACTIONS.get(method, method)
    return f'{rule.entity}_{suffix}', rule.record_type


def classify_auth_action(path, status_code, body=None, method='POST'):
    """Action name for an authentication flow, derived from its path and outcome."""
    segments = _segments(path)
    for segment, success_action, failure_action, success_status in AUTH_FLOWS:
        if segment not in segments:
            continue
        if segment == 'login':
            if status_code == 200 and isinstance(body, dict):
                if body.get('success') is True:
                    return success_action
                if body.get('requiresTwoFactor') or body.get('requiresCaptcha'):
                    return LOGIN_CHALLENGE_ACTION
            return failure_action
        return success_action if status_code == success_status else failure_action
    return f'AUTH_{method.upper()}'


# --- Annotations ----------------------------------------------------------

def audit_log(action, record_type):
    """Pins the audit action and record type for a route."""
    def decorator(f):
        f._audit_action = action
        f._audit_record_type = record_type
        return f
    return decorator


def auth_audit_log(f):
    """Marks a route as an authentication flow (login, signup, verify, resets)."""
    f._audit_auth_flow = True
    return f


def no_audit(f):
    f._audit_skip = True
    return f


# --- Sink -----------------------------------------------------------------

class AuditSink:
    """
    Append-only sink for audit entries.

    Synchronous mode writes inline (tests). Otherwise entries go onto a bounded
    queue drained by a daemon thread with its own database session, so a slow
    audit store adds no latency to the response. Write failures are logged
    and dropped.
    """
    _STOP = object()

    def __init__(self, app=None):
        self._app = None
        self._queue = None
        self._worker = None
        self.synchronous = True
        if app:
            self.init_app(app)

    def init_app(self, app):
        self._app = app
        self.synchronous = bool(app.config.get('AUDIT_SYNCHRONOUS') or app.testing)
        if not self.synchronous and self._worker is None:
            self._queue = queue.Queue(maxsize=app.config.get('AUDIT_QUEUE_SIZE', 1000))
            self._worker = threading.Thread(target=self._drain, name='audit-sink', daemon=True)
            self._worker.start()
            atexit.register(self.shutdown)
        app.extensions['audit_sink'] = self

    def submit(self, entry):
        if self.synchronous:
            self.persist(entry)
            return
        try:
            self._queue.put_nowait(entry)
        except queue.Full:
            audit_logger.error("Audit queue full; writing entry inline (action=%s)", entry.get('action'))
            self.persist(entry)

    def persist(self, entry):
        try:
            with Session(db.engine) as session:
                session.add(AuditLog(**entry))
                session.commit()
        except SQLAlchemyError as e:
            audit_logger.error("Failed to write audit entry action=%s: %s", entry.get('action'), e)
        except Exception:
            # Audit writes never fail the request or stop the worker.
            audit_logger.exception("Failed to write audit entry action=%s", entry.get('action'))

    def _drain(self):
        while True:
            entry = self._queue.get()
            try:
                if entry is self._STOP:
                    return
                with self._app.app_context():
                    self.persist(entry)
            finally:
                self._queue.task_done()

    def flush(self):
        """Blocks until every queued entry has been written."""
        if self._queue is not None:
            self._queue.join()

    def shutdown(self, timeout=5):
        if self._worker is not None and self._worker.is_alive():
            self._queue.put(self._STOP)
            self._worker.join(timeout)


audit_sink = AuditSink()


# --- Entry construction ---------------------------------------------------

def _redact(params):
    return {key: ('[REDACTED]' if key in REDACTED_PARAMS else value) for key, value in params.items()}


def _current_view():
    if request.endpoint is None:
        return None
    return current_app.view_functions.get(request.endpoint)


def _record_id(view_args):
    explicit = g.get('audit_target_id')
    if explicit is not None:
        return str(explicit)
    for key, value in (view_args or {}).items():
        if key == 'id' or key.endswith('_id'):
            return str(value)
    return None


def build_audit_entry(response):
    """Builds the AuditLog column values for the current request, or None to skip it."""
    path = request.path
    prefix = current_app.config.get('AUDIT_PATH_PREFIX', '/api')
    if prefix and not _matches_prefix(path, prefix):
        return None

    view = _current_view()
    if view is not None and getattr(view, '_audit_skip', False):
        return None

    status_code = response.status_code
    view_args = request.view_args or {}
    meta = {
        'requestMethod': request.method,
        'requestPath': path,
        'responseCode': status_code,
        'queryParams': _redact(request.args.to_dict()),
        'routeParams': _redact({key: str(value) for key, value in view_args.items()}),
    }

    explicit_action = getattr(view, '_audit_action', None)
    if explicit_action:
        action, record_type = explicit_action, view._audit_record_type
    elif getattr(view, '_audit_auth_flow', False):
        body = response.get_json(silent=True) if response.is_json else None
        action = classify_auth_action(path, status_code, body, request.method)
        record_type = AUTH_RECORD_TYPE
        submitted = request.get_json(silent=True) if request.is_json else None
        if isinstance(submitted, dict) and submitted.get('email'):
            meta['email'] = encryptor.encrypt(str(submitted['email']).strip().lower())
    else:
        if SKIPPED_PATH_FRAGMENT in path:
            return None
        action, record_type = classify_request(request.method, path, view_args, prefix)

    user = g.get('current_user')
    started_at = g.get('audit_started_at')
    duration_ms = round((time.perf_counter() - started_at) * 1000, 2) if started_at else None

    return {
        'user': str(user.id) if user is not None else None,
        'user_id': user.id if user is not None else None,
        'user_role': user.role if user is not None else 'unknown',
        'user_name': user.username if user is not None else 'anonymous',
        'action': action,
        'record_type': record_type,
        'record_id': _record_id(view_args),
        'ip_address': get_client_ip(),
        'user_agent': get_user_agent(),
        'outcome': OUTCOME_FAILURE if status_code >= 400 else OUTCOME_SUCCESS,
        'duration_ms': duration_ms,
        'meta': meta,
        'created_at': datetime.utcnow(),
    }


def register_audit_hooks(app):
    audit_sink.init_app(app)

    @app.before_request
    def start_audit_timer():
        g.audit_started_at = time.perf_counter()

    @app.after_request
    def record_audit_entry(response):
        try:
            entry = build_audit_entry(response)
        except (SQLAlchemyError, ValueError, RuntimeError) as e:
            audit_logger.error("Failed to build audit entry for %s %s: %s", request.method, request.path, e)
            return response

        if entry is None:
            return response

        log = audit_logger.warning if entry['outcome'] == OUTCOME_FAILURE else audit_logger.info
        log(
            "Action='%s', RecordType='%s', UserID='%s', Outcome='%s', Status=%s",
            entry['action'], entry['record_type'], entry['user_id'], entry['outcome'],
            response.status_code,
        )
        audit_sink.submit(entry)
        return response
