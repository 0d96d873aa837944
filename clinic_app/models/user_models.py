# /clinic_app/models/user_models.py
from datetime import datetime, timedelta
from sqlalchemy.ext.mutable import MutableList
from clinic_app.extensions import db, bcrypt
from clinic_app.models.types import EncryptedText
from clinic_app.roles import CLINIC, ROLE_NAMES
from clinic_app.utils.encryption_util import encryptor

LOGIN_HISTORY_LIMIT = 50
MAX_FAILED_LOGINS = 5
LOCKOUT_DURATION = timedelta(minutes=30)


class User(db.Model):
    """Application account. Email is stored encrypted with a blind index for lookups."""
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(100), nullable=False)
    email = db.Column(EncryptedText, nullable=False)
    email_index = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False, default=CLINIC)

    is_verified = db.Column(db.Boolean, default=False, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    verification_token = db.Column(db.String(128), index=True)
    reset_password_token = db.Column(db.String(128), index=True)
    reset_password_expires = db.Column(db.DateTime)

    organization_id = db.Column(
        db.Integer,
        db.ForeignKey('organizations.id', use_alter=True, name='fk_users_organization_id'),
    )
    physician_id = db.Column(db.String(32), index=True)

    # Two-factor state
    two_factor_secret = db.Column(EncryptedText)
    two_factor_enabled = db.Column(db.Boolean, default=False, nullable=False)
    backup_codes = db.Column(MutableList.as_mutable(db.JSON), default=list)

    captcha_attempts = db.Column(db.Integer, default=0, nullable=False)
    last_captcha_attempt = db.Column(db.DateTime)

    failed_login_attempts = db.Column(db.Integer, default=0, nullable=False)
    account_locked_until = db.Column(db.DateTime)
    last_login = db.Column(db.DateTime)
    password_changed_at = db.Column(db.DateTime, default=datetime.utcnow)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # --- Relationships ---
    organization = db.relationship('Organization', foreign_keys=[organization_id])
    login_history = db.relationship(
        'LoginHistory',
        back_populates='user',
        order_by='LoginHistory.id',
        cascade='all, delete-orphan',
    )

    @staticmethod
    def create_hash(value: str) -> str:
        """Blind index for an email address."""
        return encryptor.blind_index(value)

    @classmethod
    def find_by_email(cls, email):
        if not email:
            return None
        return cls.query.filter_by(email_index=cls.create_hash(email)).first()

    def set_email(self, email: str) -> None:
        self.email = email.strip()
        self.email_index = self.create_hash(email)

    def set_password(self, password: str) -> None:
        """Hashes and sets the user's password, enforcing complexity rules."""
        if not self._validate_password_strength(password):
            raise ValueError(
                "Password must be at least 12 characters and include upper and lower case "
                "letters, a digit and a special character"
            )
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')
        self.password_changed_at = datetime.utcnow()

    @property
    def is_locked(self) -> bool:
        return bool(self.account_locked_until and datetime.utcnow() < self.account_locked_until)

    def check_password(self, password: str) -> bool:
        """Checks a password and handles the lockout counter."""
        if self.is_locked:
            return False
        if self.account_locked_until:
            self.account_locked_until = None
            self.failed_login_attempts = 0

        is_valid = bcrypt.check_password_hash(self.password_hash, password or '')

        if not is_valid:
            self.failed_login_attempts = (self.failed_login_attempts or 0) + 1
            if self.failed_login_attempts >= MAX_FAILED_LOGINS:
                self.account_locked_until = datetime.utcnow() + LOCKOUT_DURATION
        else:
            self.failed_login_attempts = 0

        db.session.commit()
        return is_valid

    def record_login(self, ip_address, user_agent, success, method):
        """Appends a login-history entry, evicting the oldest beyond the cap."""
        self.login_history.append(LoginHistory(
            ip_address=ip_address,
            user_agent=user_agent,
            success=success,
            method=method,
        ))
        overflow = len(self.login_history) - LOGIN_HISTORY_LIMIT
        if overflow > 0:
            del self.login_history[:overflow]

    def to_dict(self):
        """Serializes the User object to a dictionary for API responses."""
        return {
            'id': self.id,
            'username': self.username,
            'email': self.email,
            'role': self.role,
            'isVerified': self.is_verified,
            'isActive': self.is_active,
            'organization': self.organization_id,
            'physicianId': self.physician_id,
            'twoFactorEnabled': self.two_factor_enabled,
            'lastLogin': self.last_login.isoformat() if self.last_login else None,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }

    @staticmethod
    def _validate_password_strength(password: str) -> bool:
        """Validates that a password meets the required complexity."""
        if not isinstance(password, str):
            return False
        return (len(password) >= 12 and
                any(c.isupper() for c in password) and
                any(c.islower() for c in password) and
                any(c.isdigit() for c in password) and
                any(c in '!@#$%^&*()_+-=[]{}|;:,.<>?' for c in password))

    @staticmethod
    def is_valid_role(role) -> bool:
        return role in ROLE_NAMES


class LoginHistory(db.Model):
    """One login attempt (password, 2fa, captcha or unlock) for a user."""
    __tablename__ = 'login_history'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    timestamp = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(255))
    success = db.Column(db.Boolean, default=True, nullable=False)
    method = db.Column(db.String(20), nullable=False)

    user = db.relationship('User', back_populates='login_history')

    def to_dict(self):
        return {
            'timestamp': self.timestamp.isoformat() if self.timestamp else None,
            'ip': self.ip_address,
            'userAgent': self.user_agent,
            'success': self.success,
            'method': self.method,
        }
