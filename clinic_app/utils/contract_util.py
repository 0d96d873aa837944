# /clinic_app/utils/contract_util.py
import json
from collections import namedtuple
from datetime import datetime

from flask import current_app, g

ContractCheck = namedtuple('ContractCheck', 'allowed body warning')

NO_ORGANIZATION = 'NO_ORGANIZATION'
CONTRACT_EXPIRED = 'CONTRACT_EXPIRED'
CONTRACT_GRACE_PERIOD = 'CONTRACT_GRACE_PERIOD'


def check_contract(organization, now=None, warning_days=30):
    """
    Evaluates a clinic's organization against its contract window.

    Returns a ContractCheck: ``allowed`` False carries the 403 body; an allowed
    check may carry an advisory ``warning`` for the response.
    """
    now = now or datetime.utcnow()

    if organization is None:
        return ContractCheck(False, {
            'success': False,
            'message': 'No organization assigned. Please contact SuperAdmin.',
            'contractExpired': True,
            'reason': NO_ORGANIZATION,
        }, None)

    days_until_expiry = organization.get_days_until_expiry(now)
    in_grace = organization.is_in_grace_period(now)
    end_date = organization.contract_end_date.isoformat()

    if not organization.is_contract_valid(now):
        if in_grace:
            message = (f'Your contract has expired. You are in a {organization.grace_period_days}-day '
                       'grace period. Please contact your administrator to renew.')
        else:
            message = 'Your contract has expired. Please renew to continue using the system.'
        return ContractCheck(False, {
            'success': False,
            'message': message,
            'contractExpired': True,
            'reason': CONTRACT_GRACE_PERIOD if in_grace else CONTRACT_EXPIRED,
            'contractInfo': {
                'organizationName': organization.organization_name,
                'contractEndDate': end_date,
                'contractStatus': organization.contract_status,
                'daysUntilExpiry': days_until_expiry,
                'isInGracePeriod': in_grace,
                'gracePeriodDays': organization.grace_period_days,
            },
        }, None)

    warning = None
    if in_grace:
        remaining = (organization.grace_deadline() - now).days
        warning = {
            'message': (f'Your contract has expired. You are in a grace period with {remaining} '
                        'day(s) of access remaining. Please renew your contract.'),
            'daysUntilExpiry': days_until_expiry,
            'contractEndDate': end_date,
            'isInGracePeriod': True,
        }
    elif 0 < days_until_expiry <= warning_days:
        warning = {
            'message': f'Your contract will expire in {days_until_expiry} day(s). Please renew your contract.',
            'daysUntilExpiry': days_until_expiry,
            'contractEndDate': end_date,
        }

    return ContractCheck(True, None, warning)


def register_contract_warning(app):
    """Merges a pending contract warning into successful JSON responses."""
    @app.after_request
    def attach_contract_warning(response):
        warning = g.get('contract_warning')
        if not warning or not response.is_json:
            return response

        body = response.get_json(silent=True)
        if isinstance(body, dict) and body.get('success') is True:
            body['contractWarning'] = warning
            response.set_data(json.dumps(body, default=str))
        return response

    return attach_contract_warning


def contract_warning_days():
    return current_app.config.get('CONTRACT_WARNING_DAYS', 30)
