import os
from flask import Flask
from clinic_app.extensions import db, bcrypt, migrate, jwt, limiter, cors
from clinic_app.utils.encryption_util import encryptor
from clinic_app.utils.error_handlers import register_error_handlers
from clinic_app.utils.audit import register_audit_hooks
from clinic_app.utils.contract_util import register_contract_warning
from clinic_app.utils.security_util import register_security_headers
from clinic_app.commands import register_commands
from config import config


def create_app(config_name=None):
    app = Flask(__name__)
    config_class = config[config_name or os.getenv('FLASK_CONFIG', 'default')]
    app.config.from_object(config_class)

    # Logging handlers and app.audit_logger
    config_class.init_app(app)

    # Initialize extensions
    db.init_app(app)
    bcrypt.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    limiter.init_app(app)
    cors.init_app(app, origins=app.config['ALLOWED_ORIGINS'], supports_credentials=True)

    # Fails fast when FIELD_ENC_KEY is missing or malformed
    encryptor.init_app(app)

    # Models must be imported before create_all / migrations see the metadata
    from clinic_app.models import (  # noqa: F401
        assessment_models, doctor_models, organization_models, patient_models, system_models, user_models
    )

    # Register blueprints
    from clinic_app.api import api_bp
    app.register_blueprint(api_bp, url_prefix='/api')

    # Request hooks, error handlers and commands
    register_audit_hooks(app)
    register_contract_warning(app)
    register_security_headers(app)
    register_error_handlers(app)
    register_commands(app)

    # JWT token blocklist checker
    @jwt.token_in_blocklist_loader
    def check_if_token_revoked(jwt_header, jwt_payload):
        from clinic_app.models.system_models import RevokedToken
        jti = jwt_payload['jti']
        return RevokedToken.query.filter_by(jti=jti).first() is not None

    return app
