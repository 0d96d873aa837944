# /clinic_app/models/assessment_models.py
from datetime import datetime
from clinic_app.extensions import db
from clinic_app.models.types import EncryptedText

ASSESSMENT_STATUSES = ('pending', 'approved', 'rejected', 'completed', 'cancelled')
AM_PM = ('AM', 'PM')


class RequestAssessment(db.Model):
    """A clinic's request to schedule an assessment with a physician."""
    __tablename__ = 'request_assessments'

    id = db.Column(db.Integer, primary_key=True)
    patient_name = db.Column(EncryptedText, nullable=False)
    patient_id = db.Column(EncryptedText, nullable=False)
    phone_number = db.Column(EncryptedText, nullable=False)
    search_patient = db.Column(EncryptedText)
    communication_notes = db.Column(EncryptedText)
    age = db.Column(db.Integer, nullable=False)
    gender = db.Column(db.String(50), nullable=False)
    ethnicity = db.Column(db.String(100), nullable=False)
    has_caregiver = db.Column(db.String(3), nullable=False, default='No')
    assessment_type = db.Column(db.String(100), nullable=False)
    assigning_physician_id = db.Column(db.Integer, db.ForeignKey('doctors.id'), nullable=False, index=True)
    assessment_date = db.Column(db.Date, nullable=False)
    timezone = db.Column(db.String(64), nullable=False)
    time_hour = db.Column(db.Integer, nullable=False)
    time_minute = db.Column(db.Integer, nullable=False)
    time_am_pm = db.Column(db.String(2), nullable=False)
    consent_accepted = db.Column(db.Boolean, nullable=False, default=False)
    status = db.Column(db.String(20), nullable=False, default='pending', index=True)
    created_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    updated_by_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    assigning_physician = db.relationship('Doctor')

    def to_dict(self):
        physician = self.assigning_physician
        return {
            'id': self.id,
            'patientName': self.patient_name,
            'patientId': self.patient_id,
            'phoneNumber': self.phone_number,
            'searchPatient': self.search_patient,
            'communicationNotes': self.communication_notes,
            'age': self.age,
            'gender': self.gender,
            'ethnicity': self.ethnicity,
            'hasCaregiver': self.has_caregiver,
            'assessmentType': self.assessment_type,
            'assigningPhysician': {
                'id': physician.id,
                'doctorId': physician.doctor_id,
                'name': physician.name,
                'specialty': physician.specialty,
            } if physician else None,
            'assessmentDate': self.assessment_date.isoformat() if self.assessment_date else None,
            'timezone': self.timezone,
            'timeHour': self.time_hour,
            'timeMinute': self.time_minute,
            'timeAmPm': self.time_am_pm,
            'consentAccepted': self.consent_accepted,
            'status': self.status,
            'createdBy': self.created_by_id,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
        }
