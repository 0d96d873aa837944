# /clinic_app/models/system_models.py
from datetime import datetime
from clinic_app.extensions import db
from clinic_app.models.types import EncryptedText

OUTCOME_SUCCESS = 'SUCCESS'
OUTCOME_FAILURE = 'FAILURE'


class AuditLog(db.Model):
    """HIPAA-required audit trail. One row per API request; never updated or deleted."""
    __tablename__ = 'audit_logs'

    id = db.Column(db.Integer, primary_key=True)
    user = db.Column(EncryptedText)  # actor id, encrypted
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), index=True)
    user_role = db.Column(db.String(20), nullable=False, default='unknown')
    user_name = db.Column(db.String(100), nullable=False, default='anonymous')
    action = db.Column(db.String(100), nullable=False, index=True)
    record_type = db.Column(db.String(100), nullable=False, index=True)
    record_id = db.Column(db.String(100))
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(255))
    outcome = db.Column(db.String(10), nullable=False, default=OUTCOME_SUCCESS)
    duration_ms = db.Column(db.Float)
    meta = db.Column(db.JSON, default=dict)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    def to_dict(self):
        meta = dict(self.meta or {})
        meta.update({
            'role': self.user_role,
            'userName': self.user_name,
            'status': self.outcome,
            'duration': self.duration_ms,
        })
        return {
            'id': self.id,
            'user': self.user,
            'userId': self.user_id,
            'action': self.action,
            'recordType': self.record_type,
            'recordId': self.record_id,
            'ip': self.ip_address,
            'userAgent': self.user_agent,
            'outcome': self.outcome,
            'meta': meta,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }


class RevokedToken(db.Model):
    """Track revoked JWT tokens"""
    __tablename__ = 'revoked_tokens'

    id = db.Column(db.Integer, primary_key=True)
    jti = db.Column(db.String(120), unique=True, nullable=False, index=True)
    revoked_at = db.Column(db.DateTime, default=datetime.utcnow)
    expires_at = db.Column(db.DateTime, nullable=False)
