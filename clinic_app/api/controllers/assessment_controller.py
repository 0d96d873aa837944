from datetime import date
from flask import request, jsonify, g
from clinic_app.extensions import db
from clinic_app.models.assessment_models import AM_PM, ASSESSMENT_STATUSES, RequestAssessment
from clinic_app.models.doctor_models import Doctor
from clinic_app.roles import DOCTOR
from clinic_app.utils.query_util import get_pagination_args, pagination_meta

REQUIRED_FIELDS = (
    'patientName', 'patientId', 'phoneNumber', 'age', 'gender', 'ethnicity',
    'assessmentType', 'assigningPhysician', 'assessmentDate', 'timezone',
    'timeHour', 'timeMinute', 'timeAmPm',
)


def _visible_requests():
    """Doctors see requests assigned to them; clinics see the requests they created."""
    user = g.current_user
    query = RequestAssessment.query
    if user.role == DOCTOR:
        return query.join(Doctor, RequestAssessment.assigning_physician_id == Doctor.id) \
                    .filter(Doctor.doctor_id == user.physician_id)
    return query.filter(RequestAssessment.created_by_id == user.id)


def _parse_schedule(data):
    try:
        values = {
            'age': int(data['age']),
            'time_hour': int(data['timeHour']),
            'time_minute': int(data['timeMinute']),
            'assessment_date': date.fromisoformat(str(data['assessmentDate'])[:10]),
        }
    except (TypeError, ValueError):
        return None, 'Age, time and assessment date must be valid values'

    if not 1 <= values['time_hour'] <= 12 or not 0 <= values['time_minute'] <= 59:
        return None, 'Time must be a valid 12-hour clock time'
    am_pm = str(data['timeAmPm']).upper()
    if am_pm not in AM_PM:
        return None, 'timeAmPm must be AM or PM'
    values['time_am_pm'] = am_pm
    return values, None


def create_request_assessment():
    data = request.get_json(silent=True) or {}
    missing = [field for field in REQUIRED_FIELDS if data.get(field) in (None, '')]
    if missing:
        return jsonify({'success': False, 'message': f"Missing required fields: {', '.join(missing)}"}), 400
    if data.get('consentAccepted') is not True:
        return jsonify({'success': False, 'message': 'Patient consent must be accepted'}), 400

    values, error = _parse_schedule(data)
    if error:
        return jsonify({'success': False, 'message': error}), 400

    has_caregiver = data.get('hasCaregiver', 'No')
    if has_caregiver not in ('Yes', 'No'):
        return jsonify({'success': False, 'message': 'hasCaregiver must be Yes or No'}), 400

    physician = Doctor.query.filter_by(id=data['assigningPhysician'], created_by_id=g.current_user.id).first()
    if not physician:
        return jsonify({'success': False, 'message': 'Assigning physician not found'}), 404

    assessment = RequestAssessment(
        patient_name=str(data['patientName']).strip(),
        patient_id=str(data['patientId']).strip(),
        phone_number=str(data['phoneNumber']).strip(),
        search_patient=data.get('searchPatient'),
        communication_notes=data.get('communicationNotes'),
        gender=data['gender'],
        ethnicity=data['ethnicity'],
        has_caregiver=has_caregiver,
        assessment_type=data['assessmentType'],
        assigning_physician_id=physician.id,
        timezone=data['timezone'],
        consent_accepted=True,
        created_by_id=g.current_user.id,
        **values,
    )
    db.session.add(assessment)
    db.session.commit()

    g.audit_target_id = assessment.id
    return jsonify({
        'success': True,
        'message': 'Assessment request created successfully',
        'data': assessment.to_dict(),
    }), 201


def get_request_assessments():
    page, limit = get_pagination_args()
    query = _visible_requests()
    status = request.args.get('status')
    if status:
        query = query.filter(RequestAssessment.status == status)

    total = query.count()
    items = (query.order_by(RequestAssessment.created_at.desc(), RequestAssessment.id.desc())
                  .offset((page - 1) * limit).limit(limit).all())
    return jsonify({
        'success': True,
        'data': [item.to_dict() for item in items],
        'pagination': pagination_meta(page, limit, total),
    }), 200


def get_request_assessment(assessment_id):
    assessment = _visible_requests().filter(RequestAssessment.id == assessment_id).first()
    if not assessment:
        return jsonify({'success': False, 'message': 'Assessment request not found'}), 404
    return jsonify({'success': True, 'data': assessment.to_dict()}), 200


def update_request_assessment_status(assessment_id):
    assessment = _visible_requests().filter(RequestAssessment.id == assessment_id).first()
    if not assessment:
        return jsonify({'success': False, 'message': 'Assessment request not found'}), 404

    data = request.get_json(silent=True) or {}
    status = data.get('status')
    if status not in ASSESSMENT_STATUSES:
        return jsonify({
            'success': False,
            'message': f"Status must be one of: {', '.join(ASSESSMENT_STATUSES)}",
        }), 400

    assessment.status = status
    if 'communicationNotes' in data:
        assessment.communication_notes = data['communicationNotes']
    assessment.updated_by_id = g.current_user.id
    db.session.commit()
    return jsonify({'success': True, 'message': 'Assessment request updated', 'data': assessment.to_dict()}), 200


def delete_request_assessment(assessment_id):
    assessment = _visible_requests().filter(RequestAssessment.id == assessment_id).first()
    if not assessment:
        return jsonify({'success': False, 'message': 'Assessment request not found'}), 404

    db.session.delete(assessment)
    db.session.commit()
    return jsonify({'success': True, 'message': 'Assessment request deleted'}), 200
