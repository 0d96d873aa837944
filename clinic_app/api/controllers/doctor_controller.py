from datetime import datetime
from flask import request, jsonify, g
from sqlalchemy.exc import IntegrityError
from clinic_app.extensions import db
from clinic_app.models.doctor_models import Doctor
from clinic_app.models.patient_models import STATUS_ACTIVE, STATUS_INACTIVE
from clinic_app.models.user_models import User
from clinic_app.roles import DOCTOR
from clinic_app.utils.email_util import send_password_email
from clinic_app.utils.encryption_util import encryptor
from clinic_app.utils.query_util import get_pagination_args, pagination_meta, search_encrypted
from clinic_app.utils.security_util import generate_temporary_password

EDITABLE_FIELDS = {'name': 'name', 'phone': 'phone', 'specialty': 'specialty'}


def _own_doctor(doctor_id):
    return Doctor.query.filter_by(id=doctor_id, created_by_id=g.current_user.id).first()


def _email_taken(email, exclude_id=None):
    query = Doctor.query.filter(Doctor.email_index == encryptor.blind_index(email))
    if exclude_id is not None:
        query = query.filter(Doctor.id != exclude_id)
    return db.session.query(query.exists()).scalar()


def create_doctor():
    """Adds a doctor to the clinic roster and creates their Doctor-role login."""
    data = request.get_json(silent=True) or {}
    name = str(data.get('name') or '').strip()
    email = str(data.get('email') or '').strip().lower()
    phone = str(data.get('phone') or '').strip()
    specialty = str(data.get('specialty') or '').strip() or None

    if not name or not email or not phone:
        return jsonify({'success': False, 'message': 'Name, email and phone are required fields'}), 400
    if _email_taken(email) or User.find_by_email(email):
        return jsonify({'success': False, 'message': 'A doctor with this email address already exists'}), 409

    doctor = Doctor(name=name, phone=phone, specialty=specialty, created_by_id=g.current_user.id)
    doctor.set_email(email)

    temp_password = generate_temporary_password()
    doctor_user = User(
        username=doctor.doctor_id,
        role=DOCTOR,
        is_verified=True,
        physician_id=doctor.doctor_id,
        organization_id=g.current_user.organization_id,
    )
    doctor_user.set_email(email)
    doctor_user.set_password(temp_password)

    db.session.add_all([doctor, doctor_user])
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({'success': False, 'message': 'A doctor with this email address already exists'}), 409

    send_password_email(email, name, temp_password)
    g.audit_target_id = doctor.id
    return jsonify({'success': True, 'message': 'Doctor created successfully', 'data': doctor.to_dict()}), 201


def get_doctors():
    page, limit = get_pagination_args()
    status = request.args.get('status', STATUS_ACTIVE)
    search = (request.args.get('search') or '').strip()

    query = Doctor.query.filter_by(created_by_id=g.current_user.id)
    if status != 'All':
        query = query.filter_by(status=status)
    query = query.order_by(Doctor.created_at.desc(), Doctor.id.desc())

    if search:
        matches = search_encrypted(query, Doctor, search)
        total = len(matches)
        doctors = matches[(page - 1) * limit:page * limit]
    else:
        total = query.count()
        doctors = query.offset((page - 1) * limit).limit(limit).all()

    return jsonify({
        'success': True,
        'data': [d.to_dict() for d in doctors],
        'pagination': pagination_meta(page, limit, total),
    }), 200


def get_doctor(doctor_id):
    doctor = _own_doctor(doctor_id)
    if not doctor:
        return jsonify({'success': False, 'message': 'Doctor not found'}), 404
    return jsonify({'success': True, 'data': doctor.to_dict()}), 200


def update_doctor(doctor_id):
    doctor = _own_doctor(doctor_id)
    if not doctor:
        return jsonify({'success': False, 'message': 'Doctor not found'}), 404

    data = request.get_json(silent=True) or {}
    for field, attr in EDITABLE_FIELDS.items():
        if field in data:
            value = str(data[field] or '').strip()
            if not value and field != 'specialty':
                return jsonify({'success': False, 'message': f'{field} cannot be empty'}), 400
            setattr(doctor, attr, value or None)

    if data.get('email'):
        email = str(data['email']).strip().lower()
        if email != (doctor.email or '').lower():
            if _email_taken(email, exclude_id=doctor.id):
                return jsonify({'success': False, 'message': 'Another doctor with this email address already exists'}), 409
            doctor.set_email(email)

    db.session.commit()
    return jsonify({'success': True, 'message': 'Doctor updated successfully', 'data': doctor.to_dict()}), 200


def delete_doctor(doctor_id):
    """Soft delete. The doctor's login is deactivated with the record."""
    doctor = _own_doctor(doctor_id)
    if not doctor:
        return jsonify({'success': False, 'message': 'Doctor not found'}), 404
    if doctor.status == STATUS_INACTIVE:
        return jsonify({'success': False, 'message': 'Doctor is already deactivated'}), 400

    doctor.status = STATUS_INACTIVE
    doctor.deactivated_at = datetime.utcnow()
    doctor.deactivated_by_id = g.current_user.id
    User.query.filter_by(physician_id=doctor.doctor_id).update({'is_active': False})
    db.session.commit()
    return jsonify({'success': True, 'message': 'Doctor deactivated successfully', 'data': doctor.to_dict()}), 200


def reactivate_doctor(doctor_id):
    doctor = _own_doctor(doctor_id)
    if not doctor:
        return jsonify({'success': False, 'message': 'Doctor not found'}), 404
    if doctor.status == STATUS_ACTIVE:
        return jsonify({'success': False, 'message': 'Doctor is already active'}), 400

    doctor.status = STATUS_ACTIVE
    doctor.deactivated_at = None
    doctor.deactivated_by_id = None
    User.query.filter_by(physician_id=doctor.doctor_id).update({'is_active': True})
    db.session.commit()
    return jsonify({'success': True, 'message': 'Doctor reactivated successfully', 'data': doctor.to_dict()}), 200
