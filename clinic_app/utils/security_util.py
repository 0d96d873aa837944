# /clinic_app/utils/security_util.py
import secrets
import string

from flask import request

# Matches the ip_address column width on audit and login-history rows.
MAX_IP_LENGTH = 45
PASSWORD_SPECIALS = '!@#$%^&*()_+-=[]{}|;:,.<>?'


def _client_ip():
    client_ip = request.headers.get('Client-IP') or request.headers.get('Http-Client-IP')
    if client_ip:
        return client_ip.strip()

    forwarded_for = request.headers.get('X-Forwarded-For')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()

    ip = request.remote_addr or 'unknown'
    if ip.startswith('::ffff:'):
        ip = ip[len('::ffff:'):]
    return ip


def get_client_ip():
    """Client IP: explicit client-ip header, then the first X-Forwarded-For hop, then the socket."""
    return _client_ip()[:MAX_IP_LENGTH]


def get_user_agent():
    return (request.headers.get('User-Agent') or 'unknown')[:255]


def generate_temporary_password(length=16):
    """Random password that satisfies the account password policy."""
    all_chars = string.ascii_letters + string.digits + PASSWORD_SPECIALS
    while True:
        password = ''.join(secrets.choice(all_chars) for _ in range(length))
        if (any(c.islower() for c in password) and any(c.isupper() for c in password)
                and any(c.isdigit() for c in password) and any(c in PASSWORD_SPECIALS for c in password)):
            return password


def register_security_headers(app):
    @app.after_request
    def set_security_headers(response):
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['X-XSS-Protection'] = '1; mode=block'
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        response.headers['Content-Security-Policy'] = (
            "default-src 'self'; style-src 'self' 'unsafe-inline'; "
            "script-src 'self'; img-src 'self' data: https:; frame-ancestors 'none'"
        )
        if not app.debug and not app.testing:
            response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains; preload'
        return response
