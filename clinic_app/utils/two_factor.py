# /clinic_app/utils/two_factor.py
import base64
import io
import secrets

import pyotp
import qrcode

ISSUER_NAME = 'Caring Clinic'
TOTP_VALID_WINDOW = 2
BACKUP_CODE_COUNT = 10


def generate_two_factor_secret(user_email):
    """Returns a new base32 TOTP secret and its provisioning URI."""
    secret = pyotp.random_base32(length=32)
    otpauth_url = pyotp.TOTP(secret).provisioning_uri(name=user_email, issuer_name=ISSUER_NAME)
    return {'secret': secret, 'otpauthUrl': otpauth_url}


def generate_qr_code(otpauth_url):
    """Renders a provisioning URI as a PNG data URL."""
    qr = qrcode.QRCode(version=1, box_size=10, border=5)
    qr.add_data(otpauth_url)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return f"data:image/png;base64,{base64.b64encode(buf.getvalue()).decode()}"


def verify_two_factor_token(secret, token):
    """TOTP check that tolerates two 30-second steps of clock drift either way."""
    if not secret or not token:
        return False
    token = str(token).strip().replace(' ', '')
    if not token.isdigit():
        return False
    return pyotp.TOTP(secret).verify(token, valid_window=TOTP_VALID_WINDOW)


def generate_backup_codes(count=BACKUP_CODE_COUNT):
    return [secrets.token_hex(4).upper() for _ in range(count)]


def verify_backup_code(backup_codes, code):
    """Consumes a backup code. The matched code is removed from the list in place."""
    if not code or backup_codes is None:
        return False
    normalized = str(code).strip().upper()
    if normalized in backup_codes:
        backup_codes.remove(normalized)
        return True
    return False
