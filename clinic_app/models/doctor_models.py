# /clinic_app/models/doctor_models.py
from datetime import datetime
from clinic_app.extensions import db
from clinic_app.models.patient_models import STATUS_ACTIVE, generate_record_id
from clinic_app.models.types import EncryptedText
from clinic_app.utils.encryption_util import encryptor


class Doctor(db.Model):
    """Physician on a clinic's roster. Contact details and specialty are encrypted."""
    __tablename__ = 'doctors'

    id = db.Column(db.Integer, primary_key=True)
    doctor_id = db.Column(db.String(20), unique=True, nullable=False, index=True)
    name = db.Column(EncryptedText, nullable=False)
    email = db.Column(EncryptedText, nullable=False)
    email_index = db.Column(db.String(64), unique=True, nullable=False, index=True)
    phone = db.Column(EncryptedText, nullable=False)
    specialty = db.Column(EncryptedText)
    status = db.Column(db.String(10), nullable=False, default=STATUS_ACTIVE, index=True)
    deactivated_at = db.Column(db.DateTime)
    deactivated_by_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    created_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __init__(self, **kwargs):
        kwargs.setdefault('doctor_id', generate_record_id('DOC'))
        super().__init__(**kwargs)

    def set_email(self, email):
        self.email = email.strip()
        self.email_index = encryptor.blind_index(email)

    def search_fields(self):
        return [self.doctor_id, self.name, self.email, self.phone, self.specialty]

    def to_dict(self):
        return {
            'id': self.id,
            'doctorId': self.doctor_id,
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'specialty': self.specialty,
            'status': self.status,
            'deactivatedAt': self.deactivated_at.isoformat() if self.deactivated_at else None,
            'createdBy': self.created_by_id,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }
