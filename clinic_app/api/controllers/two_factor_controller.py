from flask import request, jsonify, g
from clinic_app.extensions import db
from clinic_app.utils.two_factor import (
    generate_backup_codes, generate_qr_code, generate_two_factor_secret, verify_two_factor_token
)


def setup_two_factor():
    """Issues a new secret, QR code and backup codes. 2FA stays off until verified."""
    user = g.current_user
    if user.two_factor_enabled:
        return jsonify({'success': False, 'message': '2FA is already enabled'}), 400

    secret = generate_two_factor_secret(user.email)
    backup_codes = generate_backup_codes()

    user.two_factor_secret = secret['secret']
    user.backup_codes = backup_codes
    db.session.commit()

    return jsonify({
        'success': True,
        'message': 'Scan the QR code with your authenticator app, then verify a code to enable 2FA.',
        'secret': secret['secret'],
        'qrCode': generate_qr_code(secret['otpauthUrl']),
        'backupCodes': backup_codes,
    }), 200


def verify_and_enable_two_factor():
    user = g.current_user
    data = request.get_json(silent=True) or {}
    token = data.get('token')

    if not token:
        return jsonify({'success': False, 'message': 'Verification code is required'}), 400
    if not user.two_factor_secret:
        return jsonify({'success': False, 'message': 'Please set up 2FA first'}), 400
    if not verify_two_factor_token(user.two_factor_secret, token):
        return jsonify({'success': False, 'message': 'Invalid verification code'}), 400

    user.two_factor_enabled = True
    db.session.commit()
    return jsonify({'success': True, 'message': '2FA enabled successfully', 'twoFactorEnabled': True}), 200


def disable_two_factor():
    user = g.current_user
    data = request.get_json(silent=True) or {}
    password = data.get('password')
    code = data.get('twoFactorCode')

    if not password:
        return jsonify({'success': False, 'message': 'Password is required to disable 2FA'}), 400
    if not user.check_password(password):
        return jsonify({'success': False, 'message': 'Invalid password'}), 401
    if code and user.two_factor_secret and not verify_two_factor_token(user.two_factor_secret, code):
        return jsonify({'success': False, 'message': 'Invalid 2FA code'}), 401

    user.two_factor_enabled = False
    user.two_factor_secret = None
    user.backup_codes = []
    db.session.commit()
    return jsonify({'success': True, 'message': '2FA disabled successfully', 'twoFactorEnabled': False}), 200


def get_two_factor_status():
    user = g.current_user
    return jsonify({
        'success': True,
        'twoFactorEnabled': user.two_factor_enabled,
        'hasBackupCodes': bool(user.backup_codes),
        'backupCodesRemaining': len(user.backup_codes or []),
    }), 200
