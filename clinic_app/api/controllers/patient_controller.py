from datetime import date, datetime
from flask import request, jsonify, g
from sqlalchemy.exc import IntegrityError
from clinic_app.extensions import db
from clinic_app.models.patient_models import Patient, STATUS_ACTIVE, STATUS_INACTIVE
from clinic_app.utils.encryption_util import encryptor
from clinic_app.utils.query_util import get_pagination_args, pagination_meta, search_encrypted

REQUIRED_FIELDS = ('name', 'email', 'contactNo', 'age', 'dateOfBirth')


def _parse_patient_fields(data, partial=False):
    """Validates request fields. Returns (values, error_message)."""
    values = {}
    if 'name' in data or not partial:
        values['name'] = str(data.get('name') or '').strip()
    if 'contactNo' in data or not partial:
        values['contact_no'] = str(data.get('contactNo') or '').strip()
    if 'email' in data or not partial:
        values['email'] = str(data.get('email') or '').strip().lower()
    if 'age' in data or not partial:
        try:
            values['age'] = int(data.get('age'))
        except (TypeError, ValueError):
            return None, 'Age must be a number'
        if not 0 <= values['age'] <= 150:
            return None, 'Age must be between 0 and 150'
    if 'dateOfBirth' in data or not partial:
        try:
            values['date_of_birth'] = date.fromisoformat(str(data.get('dateOfBirth'))[:10])
        except ValueError:
            return None, 'Date of birth must be a valid date (YYYY-MM-DD)'

    if any(value == '' for value in values.values()):
        return None, 'Name, email and contact number cannot be empty'
    return values, None


def _own_patient(patient_id):
    return Patient.query.filter_by(id=patient_id, created_by_id=g.current_user.id).first()


def _email_taken(email, exclude_id=None):
    query = Patient.query.filter(Patient.email_index == encryptor.blind_index(email))
    if exclude_id is not None:
        query = query.filter(Patient.id != exclude_id)
    return db.session.query(query.exists()).scalar()


def create_patient():
    data = request.get_json(silent=True) or {}
    if any(data.get(field) in (None, '') for field in REQUIRED_FIELDS):
        return jsonify({
            'success': False,
            'message': 'Name, email, contact number, age, and date of birth are required fields',
        }), 400

    values, error = _parse_patient_fields(data)
    if error:
        return jsonify({'success': False, 'message': error}), 400

    if _email_taken(values['email']):
        return jsonify({'success': False, 'message': 'A patient with this email address already exists'}), 409

    email = values.pop('email')
    patient = Patient(created_by_id=g.current_user.id, **values)
    patient.set_email(email)
    db.session.add(patient)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({'success': False, 'message': 'A patient with this email address already exists'}), 409

    g.audit_target_id = patient.id
    return jsonify({'success': True, 'message': 'Patient created successfully', 'data': patient.to_dict()}), 201


def get_patients():
    """Lists the current user's patients. ``search`` runs over decrypted fields."""
    page, limit = get_pagination_args()
    status = request.args.get('status', STATUS_ACTIVE)
    search = (request.args.get('search') or '').strip()

    query = Patient.query.filter_by(created_by_id=g.current_user.id)
    if status != 'All':
        query = query.filter_by(status=status)
    query = query.order_by(Patient.created_at.desc(), Patient.id.desc())

    if search:
        matches = search_encrypted(query, Patient, search)
        total = len(matches)
        patients = matches[(page - 1) * limit:page * limit]
    else:
        total = query.count()
        patients = query.offset((page - 1) * limit).limit(limit).all()

    return jsonify({
        'success': True,
        'data': [p.to_dict() for p in patients],
        'pagination': pagination_meta(page, limit, total),
    }), 200


def search_patients():
    data = request.get_json(silent=True) or {}
    term = str(data.get('searchTerm') or '').strip()
    if len(term) < 2:
        return jsonify({'success': False, 'message': 'Search term must be at least 2 characters long'}), 400

    try:
        limit = max(1, min(int(request.args.get('limit', 20)), 100))
    except ValueError:
        limit = 20

    query = Patient.query.filter_by(created_by_id=g.current_user.id, status=STATUS_ACTIVE)
    matches = search_encrypted(query.order_by(Patient.created_at.desc()), Patient, term)[:limit]
    return jsonify({'success': True, 'data': [p.to_dict() for p in matches], 'count': len(matches)}), 200


def get_patient(patient_id):
    patient = _own_patient(patient_id)
    if not patient:
        return jsonify({'success': False, 'message': 'Patient not found'}), 404
    return jsonify({'success': True, 'data': patient.to_dict()}), 200


def update_patient(patient_id):
    patient = _own_patient(patient_id)
    if not patient:
        return jsonify({'success': False, 'message': 'Patient not found'}), 404

    data = request.get_json(silent=True) or {}
    values, error = _parse_patient_fields(data, partial=True)
    if error:
        return jsonify({'success': False, 'message': error}), 400

    email = values.pop('email', None)
    if email and email != (patient.email or '').lower():
        if _email_taken(email, exclude_id=patient.id):
            return jsonify({'success': False, 'message': 'Another patient with this email address already exists'}), 409
        patient.set_email(email)

    for attr, value in values.items():
        setattr(patient, attr, value)
    db.session.commit()
    return jsonify({'success': True, 'message': 'Patient updated successfully', 'data': patient.to_dict()}), 200


def delete_patient(patient_id):
    """Soft delete: the record is marked Inactive, never removed."""
    patient = _own_patient(patient_id)
    if not patient:
        return jsonify({'success': False, 'message': 'Patient not found'}), 404
    if patient.status == STATUS_INACTIVE:
        return jsonify({'success': False, 'message': 'Patient is already deactivated'}), 400

    patient.status = STATUS_INACTIVE
    patient.deactivated_at = datetime.utcnow()
    patient.deactivated_by_id = g.current_user.id
    db.session.commit()
    return jsonify({'success': True, 'message': 'Patient deactivated successfully', 'data': patient.to_dict()}), 200


def reactivate_patient(patient_id):
    patient = _own_patient(patient_id)
    if not patient:
        return jsonify({'success': False, 'message': 'Patient not found'}), 404
    if patient.status == STATUS_ACTIVE:
        return jsonify({'success': False, 'message': 'Patient is already active'}), 400

    patient.status = STATUS_ACTIVE
    patient.deactivated_at = None
    patient.deactivated_by_id = None
    db.session.commit()
    return jsonify({'success': True, 'message': 'Patient reactivated successfully', 'data': patient.to_dict()}), 200
