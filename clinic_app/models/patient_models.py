# /clinic_app/models/patient_models.py
import secrets
import time
from datetime import datetime
from clinic_app.extensions import db
from clinic_app.models.types import EncryptedText
from clinic_app.utils.encryption_util import encryptor

STATUS_ACTIVE = 'Active'
STATUS_INACTIVE = 'Inactive'


def generate_record_id(prefix):
    """Prefix + last 6 digits of the millisecond clock + 3 random digits."""
    timestamp = str(int(time.time() * 1000))[-6:]
    return f'{prefix}{timestamp}{secrets.randbelow(1000):03d}'


class Patient(db.Model):
    """Patient record. Name, email and contact number are PHI and stored encrypted."""
    __tablename__ = 'patients'

    id = db.Column(db.Integer, primary_key=True)
    patient_id = db.Column(db.String(20), unique=True, nullable=False, index=True)
    name = db.Column(EncryptedText, nullable=False)
    email = db.Column(EncryptedText, nullable=False)
    email_index = db.Column(db.String(64), unique=True, nullable=False, index=True)
    contact_no = db.Column(EncryptedText, nullable=False)
    date_of_birth = db.Column(db.Date, nullable=False)
    age = db.Column(db.Integer)
    status = db.Column(db.String(10), nullable=False, default=STATUS_ACTIVE, index=True)
    deactivated_at = db.Column(db.DateTime)
    deactivated_by_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    created_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __init__(self, **kwargs):
        kwargs.setdefault('patient_id', generate_record_id('PAT'))
        super().__init__(**kwargs)

    def set_email(self, email):
        self.email = email.strip()
        self.email_index = encryptor.blind_index(email)

    def search_fields(self):
        return [self.patient_id, self.name, self.email, self.contact_no,
                str(self.age) if self.age is not None else None]

    def to_dict(self):
        return {
            'id': self.id,
            'patientId': self.patient_id,
            'name': self.name,
            'email': self.email,
            'contactNo': self.contact_no,
            'dateOfBirth': self.date_of_birth.isoformat() if self.date_of_birth else None,
            'age': self.age,
            'status': self.status,
            'deactivatedAt': self.deactivated_at.isoformat() if self.deactivated_at else None,
            'createdBy': self.created_by_id,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
        }
