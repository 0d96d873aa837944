# /clinic_app/api/routes.py

from . import api_bp
from clinic_app.extensions import limiter
from clinic_app.roles import CLINIC, SUPER_ADMIN
from clinic_app.utils.decorators import (
    audit_log, auth_audit_log, authenticate, authorize, no_audit, require_permission, require_role,
    validate_contract
)
from .controllers import (
    assessment_controller, audit_controller, auth_controller, doctor_controller, organization_controller,
    patient_controller, superadmin_controller, two_factor_controller
)


# --- Authentication Endpoints ---
@api_bp.route('/auth/signup', methods=['POST'])
@limiter.limit("3 per hour")
@auth_audit_log
def signup():
    return auth_controller.register_user()

@api_bp.route('/auth/verify/<token>', methods=['GET'])
@limiter.limit("10 per hour")
@auth_audit_log
def verify(token):
    return auth_controller.verify_email(token)

@api_bp.route('/auth/login', methods=['POST'])
@limiter.limit("5 per 15 minutes")
@auth_audit_log
def login():
    return auth_controller.login_user()

@api_bp.route('/auth/captcha', methods=['GET'])
@limiter.limit("30 per 15 minutes")
def captcha():
    return auth_controller.get_captcha()

@api_bp.route('/auth/logout', methods=['POST'])
@auth_audit_log
@authenticate
def logout():
    return auth_controller.logout_user()

@api_bp.route('/auth/me', methods=['GET'])
@audit_log("USER_PROFILE_VIEW", "USER")
@authenticate
def get_current_user_route():
    return auth_controller.get_current_user_details()

@api_bp.route('/auth/forgot-password', methods=['POST'])
@limiter.limit("3 per hour")
@auth_audit_log
def forgot_password():
    return auth_controller.forgot_password()

@api_bp.route('/auth/reset-password/<token>', methods=['POST'])
@limiter.limit("3 per hour")
@auth_audit_log
def reset_password(token):
    return auth_controller.reset_password(token)

@api_bp.route('/auth/change-password', methods=['POST'])
@limiter.limit("3 per 15 minutes")
@audit_log("PASSWORD_CHANGE", "SECURITY")
@authenticate
def change_password():
    return auth_controller.change_user_password()

@api_bp.route('/auth/login-history', methods=['GET'])
@audit_log("LOGIN_HISTORY_VIEW", "SECURITY")
@authenticate
def login_history():
    return auth_controller.get_login_history()


# --- Two-Factor Endpoints ---
@api_bp.route('/auth/2fa/setup', methods=['POST'])
@limiter.limit("10 per 15 minutes")
@audit_log("2FA_SETUP", "SECURITY")
@authenticate
def setup_two_factor():
    return two_factor_controller.setup_two_factor()

@api_bp.route('/auth/2fa/verify', methods=['POST'])
@limiter.limit("10 per 15 minutes")
@audit_log("2FA_VERIFY", "SECURITY")
@authenticate
def verify_two_factor():
    return two_factor_controller.verify_and_enable_two_factor()

@api_bp.route('/auth/2fa/disable', methods=['POST'])
@limiter.limit("10 per 15 minutes")
@audit_log("2FA_DISABLE", "SECURITY")
@authenticate
def disable_two_factor():
    return two_factor_controller.disable_two_factor()

@api_bp.route('/auth/2fa/status', methods=['GET'])
@audit_log("2FA_STATUS_VIEW", "SECURITY")
@authenticate
def two_factor_status():
    return two_factor_controller.get_two_factor_status()


# --- Organization Endpoints ---
# Not behind the contract gate: an expired clinic must still be able to renew.
@api_bp.route('/organizations', methods=['GET'])
@audit_log("ORGANIZATION_LIST", "ORGANIZATION")
@authenticate
@require_role(SUPER_ADMIN)
def list_organizations():
    return organization_controller.get_all_organizations()

@api_bp.route('/organizations/contract-status', methods=['GET'])
@audit_log("CONTRACT_STATUS_CHECK", "ORGANIZATION")
@authenticate
def contract_status():
    return organization_controller.get_contract_status()

@api_bp.route('/organizations/my-organization', methods=['GET'])
@audit_log("ORGANIZATION_VIEW", "ORGANIZATION")
@authenticate
def my_organization():
    return organization_controller.get_organization()

@api_bp.route('/organizations', methods=['POST'])
@audit_log("ORGANIZATION_CREATE", "ORGANIZATION")
@authenticate
@authorize([CLINIC, SUPER_ADMIN])
def create_organization():
    return organization_controller.create_organization()

@api_bp.route('/organizations/my-organization', methods=['PUT'])
@audit_log("ORGANIZATION_UPDATE", "ORGANIZATION")
@authenticate
def update_my_organization():
    return organization_controller.update_organization()

@api_bp.route('/organizations/request-renewal', methods=['POST'])
@audit_log("CONTRACT_RENEWAL_REQUEST", "ORGANIZATION")
@authenticate
@require_role(CLINIC)
def request_renewal():
    return organization_controller.request_contract_renewal()

@api_bp.route('/organizations/<int:organization_id>/renewal/<int:request_id>/approve', methods=['POST'])
@audit_log("CONTRACT_RENEWAL_APPROVE", "ORGANIZATION")
@authenticate
@require_role(SUPER_ADMIN)
def approve_renewal(organization_id, request_id):
    return organization_controller.approve_contract_renewal(organization_id, request_id)

@api_bp.route('/organizations/<int:organization_id>/renewal/<int:request_id>/reject', methods=['POST'])
@audit_log("CONTRACT_RENEWAL_REJECT", "ORGANIZATION")
@authenticate
@require_role(SUPER_ADMIN)
def reject_renewal(organization_id, request_id):
    return organization_controller.reject_contract_renewal(organization_id, request_id)

@api_bp.route('/organizations/<int:organization_id>/contract', methods=['PUT'])
@audit_log("ORGANIZATION_CONTRACT_UPDATE", "ORGANIZATION")
@authenticate
@require_role(SUPER_ADMIN)
def update_contract(organization_id):
    return organization_controller.update_contract_info(organization_id)

@api_bp.route('/organizations/<int:organization_id>/extend', methods=['POST'])
@audit_log("CONTRACT_EXTEND", "ORGANIZATION")
@authenticate
@require_role(SUPER_ADMIN)
def extend_contract(organization_id):
    return organization_controller.extend_contract(organization_id)

@api_bp.route('/organizations/<int:organization_id>/reduce', methods=['POST'])
@audit_log("CONTRACT_REDUCE", "ORGANIZATION")
@authenticate
@require_role(SUPER_ADMIN)
def reduce_contract(organization_id):
    return organization_controller.reduce_contract(organization_id)


# --- Patient Endpoints ---
@api_bp.route('/patients', methods=['GET'])
@audit_log("PATIENT_LIST_ACCESS", "PATIENT")
@authenticate
@validate_contract
@require_permission('patients:read')
def get_patients():
    return patient_controller.get_patients()

@api_bp.route('/patients/search', methods=['POST'])
@audit_log("PATIENT_SEARCH", "PATIENT")
@authenticate
@validate_contract
@require_permission('patients:read')
def search_patients():
    return patient_controller.search_patients()

@api_bp.route('/patients/<int:patient_id>', methods=['GET'])
@audit_log("PATIENT_VIEW", "PATIENT")
@authenticate
@validate_contract
@require_permission('patients:read')
def get_patient(patient_id):
    return patient_controller.get_patient(patient_id)

@api_bp.route('/patients', methods=['POST'])
@audit_log("PATIENT_CREATE", "PATIENT")
@authenticate
@validate_contract
@require_permission('patients:create')
def create_patient():
    return patient_controller.create_patient()

@api_bp.route('/patients/<int:patient_id>', methods=['PUT'])
@audit_log("PATIENT_UPDATE", "PATIENT")
@authenticate
@validate_contract
@require_permission('patients:update')
def update_patient(patient_id):
    return patient_controller.update_patient(patient_id)

@api_bp.route('/patients/<int:patient_id>', methods=['DELETE'])
@audit_log("PATIENT_DELETE", "PATIENT")
@authenticate
@validate_contract
@require_permission('patients:delete')
def delete_patient(patient_id):
    return patient_controller.delete_patient(patient_id)

@api_bp.route('/patients/<int:patient_id>/reactivate', methods=['PUT'])
@audit_log("PATIENT_REACTIVATE", "PATIENT")
@authenticate
@validate_contract
@require_permission('patients:update')
def reactivate_patient(patient_id):
    return patient_controller.reactivate_patient(patient_id)


# --- Doctor Endpoints (audit actions come from the path classifier) ---
@api_bp.route('/doctors', methods=['GET'])
@authenticate
@validate_contract
@require_permission('doctors:read')
def get_doctors():
    return doctor_controller.get_doctors()

@api_bp.route('/doctors/<int:doctor_id>', methods=['GET'])
@authenticate
@validate_contract
@require_permission('doctors:read')
def get_doctor(doctor_id):
    return doctor_controller.get_doctor(doctor_id)

@api_bp.route('/doctors', methods=['POST'])
@authenticate
@validate_contract
@require_permission('doctors:create')
def create_doctor():
    return doctor_controller.create_doctor()

@api_bp.route('/doctors/<int:doctor_id>', methods=['PUT'])
@authenticate
@validate_contract
@require_permission('doctors:update')
def update_doctor(doctor_id):
    return doctor_controller.update_doctor(doctor_id)

@api_bp.route('/doctors/<int:doctor_id>', methods=['DELETE'])
@authenticate
@validate_contract
@require_permission('doctors:delete')
def delete_doctor(doctor_id):
    return doctor_controller.delete_doctor(doctor_id)

@api_bp.route('/doctors/<int:doctor_id>/reactivate', methods=['PUT'])
@authenticate
@validate_contract
@require_permission('doctors:update')
def reactivate_doctor(doctor_id):
    return doctor_controller.reactivate_doctor(doctor_id)


# --- Assessment Request Endpoints ---
@api_bp.route('/request-assessments', methods=['GET'])
@authenticate
@validate_contract
@require_permission('assessmentRequest:read')
def get_request_assessments():
    return assessment_controller.get_request_assessments()

@api_bp.route('/request-assessments', methods=['POST'])
@authenticate
@validate_contract
@require_permission('assessmentRequest:create')
def create_request_assessment():
    return assessment_controller.create_request_assessment()

@api_bp.route('/request-assessments/<int:assessment_id>', methods=['GET'])
@authenticate
@validate_contract
@require_permission('assessmentRequest:read')
def get_request_assessment(assessment_id):
    return assessment_controller.get_request_assessment(assessment_id)

@api_bp.route('/request-assessments/<int:assessment_id>/status', methods=['PATCH'])
@authenticate
@validate_contract
@require_permission('assessmentRequest:update')
def update_request_assessment_status(assessment_id):
    return assessment_controller.update_request_assessment_status(assessment_id)

@api_bp.route('/request-assessments/<int:assessment_id>', methods=['DELETE'])
@authenticate
@validate_contract
@require_permission('assessmentRequest:delete')
def delete_request_assessment(assessment_id):
    return assessment_controller.delete_request_assessment(assessment_id)


# --- SuperAdmin User Management Endpoints ---
@api_bp.route('/superadmin/users', methods=['GET'])
@audit_log("USER_MANAGEMENT_LIST", "USER_MANAGEMENT")
@authenticate
@require_role(SUPER_ADMIN)
def superadmin_list_users():
    return superadmin_controller.get_all_users()

@api_bp.route('/superadmin/users', methods=['POST'])
@audit_log("USER_MANAGEMENT_CREATE", "USER_MANAGEMENT")
@authenticate
@require_role(SUPER_ADMIN)
def superadmin_create_user():
    return superadmin_controller.create_user()

@api_bp.route('/superadmin/users/<int:user_id>', methods=['PUT'])
@audit_log("USER_MANAGEMENT_UPDATE", "USER_MANAGEMENT")
@authenticate
@require_role(SUPER_ADMIN)
def superadmin_update_user(user_id):
    return superadmin_controller.update_user(user_id)

@api_bp.route('/superadmin/users/<int:user_id>/toggle-status', methods=['PATCH'])
@audit_log("USER_MANAGEMENT_STATUS_TOGGLE", "USER_MANAGEMENT")
@authenticate
@require_role(SUPER_ADMIN)
def superadmin_toggle_user_status(user_id):
    return superadmin_controller.toggle_user_status(user_id)

@api_bp.route('/superadmin/users/<int:user_id>/2fa/status', methods=['GET'])
@audit_log("USER_2FA_STATUS_VIEW", "USER_MANAGEMENT")
@authenticate
@require_role(SUPER_ADMIN)
def superadmin_user_two_factor_status(user_id):
    return superadmin_controller.get_user_two_factor_status(user_id)

@api_bp.route('/superadmin/users/<int:user_id>/2fa/enable', methods=['POST'])
@limiter.limit("10 per 15 minutes")
@audit_log("USER_2FA_ENABLE", "USER_MANAGEMENT")
@authenticate
@require_role(SUPER_ADMIN)
def superadmin_enable_user_two_factor(user_id):
    return superadmin_controller.enable_user_two_factor(user_id)

@api_bp.route('/superadmin/users/<int:user_id>/2fa/disable', methods=['POST'])
@limiter.limit("10 per 15 minutes")
@audit_log("USER_2FA_DISABLE", "USER_MANAGEMENT")
@authenticate
@require_role(SUPER_ADMIN)
def superadmin_disable_user_two_factor(user_id):
    return superadmin_controller.disable_user_two_factor(user_id)


# --- Audit Log Endpoints ---
@api_bp.route('/audit-logs', methods=['GET'])
@no_audit
@authenticate
@require_permission('audit:read')
def get_audit_logs():
    return audit_controller.get_audit_logs()

@api_bp.route('/audit-logs/stats/summary', methods=['GET'])
@no_audit
@authenticate
@require_permission('audit:read')
def get_audit_log_stats():
    return audit_controller.get_audit_log_stats()

@api_bp.route('/audit-logs/<int:log_id>', methods=['GET'])
@no_audit
@authenticate
@require_permission('audit:read')
def get_audit_log(log_id):
    return audit_controller.get_audit_log(log_id)
