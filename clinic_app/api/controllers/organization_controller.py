from datetime import datetime
from flask import request, jsonify, g
from clinic_app.extensions import db
from clinic_app.models.organization_models import (
    Organization, RenewalRequest, CONTRACT_EXPIRED, CONTRACT_PENDING_RENEWAL, CONTRACT_STATUSES,
    DEFAULT_DURATION_MONTHS, DEFAULT_GRACE_PERIOD_DAYS, MAX_DURATION_MONTHS, MAX_GRACE_PERIOD_DAYS,
    RENEWAL_APPROVED, RENEWAL_REJECTED, months_to_timedelta
)
from clinic_app.models.user_models import User
from clinic_app.roles import CLINIC, SUPER_ADMIN
from clinic_app.utils.query_util import get_pagination_args, pagination_meta


def _error(message, status):
    return jsonify({'success': False, 'message': message}), status


def _parse_datetime(value):
    return datetime.fromisoformat(str(value).replace('Z', '+00:00')).replace(tzinfo=None)


def _int_in_range(value, low, high, label):
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValueError(f'{label} must be a whole number')
    if not low <= number <= high:
        raise ValueError(f'{label} must be between {low} and {high}')
    return number


def _user_organization(user):
    if user.organization is not None:
        return user.organization
    if user.role == SUPER_ADMIN:
        return Organization.query.filter_by(super_admin_id=user.id).order_by(Organization.id).first()
    return None


def get_organization():
    organization = _user_organization(g.current_user)
    if organization is None:
        return _error('No organization found for this user', 404)
    g.audit_target_id = organization.id
    return jsonify({'success': True, 'data': organization.to_dict(include_history=True)}), 200


def create_organization():
    user = g.current_user
    if _user_organization(user) is not None:
        return _error('You already have an organization', 400)

    data = request.get_json(silent=True) or {}
    try:
        duration = _int_in_range(data.get('contractDurationMonths', DEFAULT_DURATION_MONTHS),
                                 1, MAX_DURATION_MONTHS, 'Contract duration')
        grace = _int_in_range(data.get('gracePeriodDays', DEFAULT_GRACE_PERIOD_DAYS),
                              0, MAX_GRACE_PERIOD_DAYS, 'Grace period')
        start = _parse_datetime(data['contractStartDate']) if data.get('contractStartDate') else datetime.utcnow()
        end = (_parse_datetime(data['contractEndDate']) if data.get('contractEndDate')
               else start + months_to_timedelta(duration))
    except ValueError as e:
        return _error(str(e), 400)
    if end <= start:
        return _error('Contract end date must be after the start date', 400)

    owner_id = user.id
    if user.role == CLINIC:
        owner = (User.query.filter_by(role=SUPER_ADMIN, is_active=True)
                 .order_by(User.created_at.asc(), User.id.asc()).first())
        if owner is None:
            return _error('No SuperAdmin available to own the organization', 400)
        owner_id = owner.id

    organization = Organization(
        organization_name=data.get('organizationName') or f"{user.username}'s Organization",
        email_address=data.get('emailAddress') or user.email,
        phone_number=data.get('phoneNumber') or '',
        address=data.get('address') or '',
        contract_start_date=start,
        contract_end_date=end,
        contract_duration_months=duration,
        grace_period_days=grace,
        contact_person_name=data.get('contactPersonName') or user.username,
        contact_person_email=data.get('contactPersonEmail') or user.email,
        contact_person_phone=data.get('contactPersonPhone') or '',
        super_admin_id=owner_id,
        created_by_id=user.id,
    )
    db.session.add(organization)
    db.session.flush()
    user.organization_id = organization.id
    db.session.commit()

    g.audit_target_id = organization.id
    return jsonify({'success': True, 'message': 'Organization created successfully', 'data': organization.to_dict()}), 201


def update_organization():
    """Updates contact details only; contract fields are managed by SuperAdmin."""
    organization = _user_organization(g.current_user)
    if organization is None:
        return _error('No organization found for this user', 404)

    data = request.get_json(silent=True) or {}
    for field, attr in Organization.EDITABLE_FIELDS.items():
        if field in data:
            setattr(organization, attr, data[field])
    if not organization.organization_name or not organization.email_address:
        db.session.rollback()
        return _error('Organization name and email address cannot be empty', 400)

    organization.updated_by_id = g.current_user.id
    db.session.commit()
    g.audit_target_id = organization.id
    return jsonify({'success': True, 'message': 'Organization updated successfully', 'data': organization.to_dict()}), 200


def update_contract_info(organization_id):
    organization = db.session.get(Organization, organization_id)
    if organization is None:
        return _error('Organization not found', 404)

    data = request.get_json(silent=True) or {}
    try:
        start = _parse_datetime(data['contractStartDate']) if data.get('contractStartDate') else None
        end = _parse_datetime(data['contractEndDate']) if data.get('contractEndDate') else None
        duration = (_int_in_range(data['contractDurationMonths'], 1, MAX_DURATION_MONTHS, 'Contract duration')
                    if data.get('contractDurationMonths') else None)
        grace = (_int_in_range(data['gracePeriodDays'], 0, MAX_GRACE_PERIOD_DAYS, 'Grace period')
                 if data.get('gracePeriodDays') is not None else None)
    except ValueError as e:
        return _error(str(e), 400)

    status = data.get('contractStatus')
    if status is not None and status not in CONTRACT_STATUSES:
        return _error(f"Contract status must be one of: {', '.join(CONTRACT_STATUSES)}", 400)

    if start or end or duration:
        organization.archive_current_contract(g.current_user.id, 'Contract updated by SuperAdmin')
        if start:
            organization.contract_start_date = start
        if duration:
            organization.contract_duration_months = duration
            if not end:
                end = organization.contract_start_date + months_to_timedelta(duration)
        if end:
            organization.contract_end_date = end
        if organization.contract_end_date <= organization.contract_start_date:
            db.session.rollback()
            return _error('Contract end date must be after the start date', 400)

    if status:
        organization.contract_status = status
    if grace is not None:
        organization.grace_period_days = grace
    organization.updated_by_id = g.current_user.id
    db.session.commit()

    g.audit_target_id = organization.id
    return jsonify({
        'success': True,
        'message': 'Contract information updated successfully',
        'data': organization.to_dict(include_history=True),
    }), 200


def get_all_organizations():
    page, limit = get_pagination_args(default_limit=100)
    query = Organization.query.order_by(Organization.created_at.desc(), Organization.id.desc())
    total = query.count()
    organizations = query.offset((page - 1) * limit).limit(limit).all()

    now = datetime.utcnow()
    data = []
    for organization in organizations:
        admins = User.query.filter_by(organization_id=organization.id, role=CLINIC).all()
        item = organization.to_dict(include_history=True)
        item['adminUsers'] = [
            {'id': u.id, 'username': u.username, 'email': u.email, 'isActive': u.is_active,
             'lastLogin': u.last_login.isoformat() if u.last_login else None}
            for u in admins
        ]
        item['adminCount'] = len(admins)
        item['contractValidity'] = {
            'isValid': organization.is_contract_valid(now),
            'isInGracePeriod': organization.is_in_grace_period(now),
            'daysUntilExpiry': organization.get_days_until_expiry(now),
            'pendingRenewalRequests': len(organization.pending_renewal_requests()),
        }
        data.append(item)

    return jsonify({'success': True, 'data': data, 'pagination': pagination_meta(page, limit, total)}), 200


def request_contract_renewal():
    user = g.current_user
    organization = _user_organization(user)
    if organization is None:
        return _error('No organization found for this user', 404)

    data = request.get_json(silent=True) or {}
    try:
        months = _int_in_range(data.get('requestedDurationMonths', DEFAULT_DURATION_MONTHS),
                               1, MAX_DURATION_MONTHS, 'Requested duration')
    except ValueError as e:
        return _error(str(e), 400)

    renewal = RenewalRequest(
        requested_by_id=user.id,
        requested_by_name=user.username,
        requested_by_email=user.email,
        message=data.get('message') or 'Request for contract renewal',
        requested_duration_months=months,
    )
    organization.renewal_requests.append(renewal)
    if organization.contract_status == CONTRACT_EXPIRED:
        organization.contract_status = CONTRACT_PENDING_RENEWAL
    db.session.commit()

    g.audit_target_id = organization.id
    return jsonify({
        'success': True,
        'message': 'Contract renewal request submitted successfully. SuperAdmin will review your request.',
        'data': renewal.to_dict(),
    }), 201


def _find_renewal(organization_id, request_id):
    organization = db.session.get(Organization, organization_id)
    if organization is None:
        return None, None, _error('Organization not found', 404)
    renewal = RenewalRequest.query.filter_by(id=request_id, organization_id=organization.id).first()
    if renewal is None:
        return organization, None, _error('Renewal request not found', 404)
    return organization, renewal, None


def approve_contract_renewal(organization_id, request_id):
    organization, renewal, error = _find_renewal(organization_id, request_id)
    if error:
        return error

    data = request.get_json(silent=True) or {}
    try:
        renewal.review(RENEWAL_APPROVED, g.current_user.id, data.get('reviewNotes'))
    except ValueError:
        return _error('This request has already been processed', 400)

    months = renewal.requested_duration_months or DEFAULT_DURATION_MONTHS
    organization.renew(months, g.current_user.id, f'Renewed via approved request #{renewal.id}')
    db.session.commit()

    g.audit_target_id = organization.id
    return jsonify({
        'success': True,
        'message': 'Contract renewal approved successfully',
        'data': organization.to_dict(include_history=True),
    }), 200


def reject_contract_renewal(organization_id, request_id):
    organization, renewal, error = _find_renewal(organization_id, request_id)
    if error:
        return error

    data = request.get_json(silent=True) or {}
    try:
        renewal.review(RENEWAL_REJECTED, g.current_user.id, data.get('reviewNotes'))
    except ValueError:
        return _error('This request has already been processed', 400)
    db.session.commit()

    g.audit_target_id = organization.id
    return jsonify({'success': True, 'message': 'Contract renewal request rejected', 'data': renewal.to_dict()}), 200


def get_contract_status():
    user = g.current_user
    if user.role == SUPER_ADMIN:
        return _error('SuperAdmin does not have contracts. Use the organization list to manage clinic contracts.', 400)

    organization = _user_organization(user)
    if organization is None:
        return _error('No organization found for this user', 404)

    summary = organization.contract_summary()
    summary['pendingRenewalRequests'] = len(organization.pending_renewal_requests())
    return jsonify({'success': True, 'data': summary}), 200


def extend_contract(organization_id):
    data = request.get_json(silent=True) or {}
    try:
        months = _int_in_range(data.get('additionalMonths'), 1, MAX_DURATION_MONTHS, 'Additional months')
    except ValueError as e:
        return _error(str(e), 400)

    organization = db.session.get(Organization, organization_id)
    if organization is None:
        return _error('Organization not found', 404)

    try:
        organization.extend(months, g.current_user.id, data.get('notes'))
    except OverflowError:
        db.session.rollback()
        return _error('Contract end date is out of range', 400)
    db.session.commit()
    g.audit_target_id = organization.id
    return jsonify({
        'success': True,
        'message': f'Contract extended by {months} months successfully',
        'data': organization.to_dict(include_history=True),
    }), 200


def reduce_contract(organization_id):
    data = request.get_json(silent=True) or {}
    try:
        months = _int_in_range(data.get('reduceMonths'), 1, MAX_DURATION_MONTHS, 'Reduce months')
    except ValueError as e:
        return _error(str(e), 400)

    organization = db.session.get(Organization, organization_id)
    if organization is None:
        return _error('Organization not found', 404)

    try:
        organization.reduce(months, g.current_user.id, data.get('notes'))
    except ValueError:
        return _error('Cannot reduce contract below start date', 400)
    db.session.commit()
    g.audit_target_id = organization.id
    return jsonify({
        'success': True,
        'message': f'Contract reduced by {months} months successfully',
        'data': organization.to_dict(include_history=True),
    }), 200
