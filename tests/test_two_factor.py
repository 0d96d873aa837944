import re
import time

import pyotp

from clinic_app.utils.two_factor import (
    BACKUP_CODE_COUNT, generate_backup_codes, generate_qr_code, generate_two_factor_secret,
    verify_backup_code, verify_two_factor_token
)


def test_secret_and_provisioning_uri():
    result = generate_two_factor_secret('doc@example.com')
    assert re.fullmatch(r'[A-Z2-7]{32}', result['secret'])
    assert result['otpauthUrl'].startswith('otpauth://totp/')
    assert 'issuer=Caring%20Clinic' in result['otpauthUrl']


def test_qr_code_is_png_data_url():
    url = generate_two_factor_secret('doc@example.com')['otpauthUrl']
    assert generate_qr_code(url).startswith('data:image/png;base64,')


def test_totp_verification_tolerates_drift():
    secret = pyotp.random_base32()
    totp = pyotp.TOTP(secret)
    assert verify_two_factor_token(secret, totp.now())
    assert verify_two_factor_token(secret, totp.at(time.time() - 60))
    assert not verify_two_factor_token(secret, totp.at(time.time() - 600))


def test_malformed_tokens_are_rejected():
    secret = pyotp.random_base32()
    assert not verify_two_factor_token(secret, '')
    assert not verify_two_factor_token(secret, 'abcdef')
    assert not verify_two_factor_token(None, '123456')


def test_backup_codes_are_single_use():
    codes = generate_backup_codes()
    assert len(codes) == BACKUP_CODE_COUNT == len(set(codes))
    code = codes[3]

    assert verify_backup_code(codes, code.lower())
    assert code not in codes
    assert len(codes) == BACKUP_CODE_COUNT - 1
    assert not verify_backup_code(codes, code)


def test_unknown_backup_code():
    codes = generate_backup_codes()
    assert not verify_backup_code(codes, 'NOTACODE')
    assert not verify_backup_code(codes, '')
    assert len(codes) == BACKUP_CODE_COUNT
