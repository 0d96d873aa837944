# /clinic_app/roles.py
"""Static role -> capability table. Capabilities are ``resource:action`` strings."""

SUPER_ADMIN = 'SuperAdmin'
CLINIC = 'Clinic'
DOCTOR = 'Doctor'

ROLE_NAMES = frozenset({SUPER_ADMIN, CLINIC, DOCTOR})


def _crud(resource):
    return [f'{resource}:create', f'{resource}:read', f'{resource}:update', f'{resource}:delete']


ROLES = {
    SUPER_ADMIN: frozenset(
        _crud('assessmentTypes')
        + _crud('ethnicities')
        + _crud('genders')
        + ['audit:read']
        + _crud('assessmentRequest')
        + _crud('organizations')
        + _crud('contracts')
    ),
    CLINIC: frozenset(
        _crud('patients')
        + _crud('doctors')
        + _crud('assessmentTypes')
        + _crud('ethnicities')
        + _crud('genders')
        + ['audit:read']
        + _crud('assessmentRequest')
        + ['organizations:create', 'organizations:read', 'organizations:update']
        + ['contracts:read']
    ),
    DOCTOR: frozenset([
        'assessmentRequest:read',
        'audit:read',
    ]),
}


def is_role_name(value):
    return value in ROLE_NAMES


def permissions_for(role):
    """Returns the capability set for a role, or None when the role is unknown."""
    return ROLES.get(role)
