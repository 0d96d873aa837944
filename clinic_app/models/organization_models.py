# /clinic_app/models/organization_models.py
import math
from datetime import datetime, timedelta
from clinic_app.extensions import db

# Contract arithmetic treats one month as a 30-day block.
DAYS_PER_MONTH = 30
DEFAULT_DURATION_MONTHS = 12
DEFAULT_GRACE_PERIOD_DAYS = 7
MAX_DURATION_MONTHS = 120
MAX_GRACE_PERIOD_DAYS = 30

CONTRACT_ACTIVE = 'Active'
CONTRACT_EXPIRED = 'Expired'
CONTRACT_SUSPENDED = 'Suspended'
CONTRACT_PENDING_RENEWAL = 'PendingRenewal'
CONTRACT_STATUSES = (CONTRACT_ACTIVE, CONTRACT_EXPIRED, CONTRACT_SUSPENDED, CONTRACT_PENDING_RENEWAL)

RENEWAL_PENDING = 'Pending'
RENEWAL_APPROVED = 'Approved'
RENEWAL_REJECTED = 'Rejected'


def months_to_timedelta(months):
    return timedelta(days=DAYS_PER_MONTH * months)


def _iso(value):
    return value.isoformat() if value else None


class Organization(db.Model):
    """A tenant and its time-boxed subscription contract."""
    __tablename__ = 'organizations'

    id = db.Column(db.Integer, primary_key=True)
    organization_name = db.Column(db.String(255), nullable=False)
    email_address = db.Column(db.String(255), nullable=False)
    phone_number = db.Column(db.String(50))
    address = db.Column(db.String(500))

    contract_start_date = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    contract_end_date = db.Column(db.DateTime, nullable=False)
    contract_duration_months = db.Column(db.Integer, nullable=False, default=DEFAULT_DURATION_MONTHS)
    contract_status = db.Column(db.String(20), nullable=False, default=CONTRACT_ACTIVE)
    grace_period_days = db.Column(db.Integer, nullable=False, default=DEFAULT_GRACE_PERIOD_DAYS)

    contact_person_name = db.Column(db.String(255))
    contact_person_email = db.Column(db.String(255))
    contact_person_phone = db.Column(db.String(50))

    super_admin_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    created_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    updated_by_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    super_admin = db.relationship('User', foreign_keys=[super_admin_id])
    created_by = db.relationship('User', foreign_keys=[created_by_id])
    renewal_requests = db.relationship(
        'RenewalRequest', back_populates='organization',
        order_by='RenewalRequest.id', cascade='all, delete-orphan',
    )
    contract_history = db.relationship(
        'ContractHistory', back_populates='organization',
        order_by='ContractHistory.id', cascade='all, delete-orphan',
    )

    EDITABLE_FIELDS = {
        'organizationName': 'organization_name',
        'emailAddress': 'email_address',
        'phoneNumber': 'phone_number',
        'address': 'address',
        'contactPersonName': 'contact_person_name',
        'contactPersonEmail': 'contact_person_email',
        'contactPersonPhone': 'contact_person_phone',
    }

    # --- Contract window ---

    def grace_deadline(self):
        return self.contract_end_date + timedelta(days=self.grace_period_days or 0)

    def is_contract_valid(self, now=None) -> bool:
        """True while now is on or before the end date plus the grace period and not suspended."""
        now = now or datetime.utcnow()
        if self.contract_status == CONTRACT_SUSPENDED:
            return False
        return now <= self.grace_deadline()

    def is_in_grace_period(self, now=None) -> bool:
        now = now or datetime.utcnow()
        return self.contract_end_date < now <= self.grace_deadline()

    def get_days_until_expiry(self, now=None) -> int:
        """Whole days until the end date, rounded up. Negative once expired."""
        now = now or datetime.utcnow()
        seconds = (self.contract_end_date - now).total_seconds()
        return math.ceil(seconds / 86400)

    def contract_summary(self, now=None):
        now = now or datetime.utcnow()
        return {
            'organizationName': self.organization_name,
            'contractStartDate': _iso(self.contract_start_date),
            'contractEndDate': _iso(self.contract_end_date),
            'contractStatus': self.contract_status,
            'daysUntilExpiry': self.get_days_until_expiry(now),
            'isValid': self.is_contract_valid(now),
            'isInGracePeriod': self.is_in_grace_period(now),
            'gracePeriodDays': self.grace_period_days,
        }

    # --- Contract changes. Each one archives the current window first. ---

    def archive_current_contract(self, actor_id, notes):
        self.contract_history.append(ContractHistory(
            start_date=self.contract_start_date,
            end_date=self.contract_end_date,
            duration_months=self.contract_duration_months,
            renewed_by_id=actor_id,
            notes=notes,
        ))

    def renew(self, duration_months, actor_id, notes, now=None):
        now = now or datetime.utcnow()
        self.archive_current_contract(actor_id, notes)
        self.contract_start_date = now
        self.contract_end_date = now + months_to_timedelta(duration_months)
        self.contract_duration_months = duration_months
        self.contract_status = CONTRACT_ACTIVE
        self.updated_by_id = actor_id

    def extend(self, additional_months, actor_id, notes=None):
        if additional_months < 1:
            raise ValueError('Additional months must be at least 1')
        self.archive_current_contract(actor_id, notes or f'Contract extended by {additional_months} month(s)')
        self.contract_end_date = self.contract_end_date + months_to_timedelta(additional_months)
        self.contract_duration_months = (self.contract_duration_months or 0) + additional_months
        if self.contract_status in (CONTRACT_EXPIRED, CONTRACT_PENDING_RENEWAL):
            self.contract_status = CONTRACT_ACTIVE
        self.updated_by_id = actor_id

    def reduce(self, reduce_months, actor_id, notes=None, now=None):
        now = now or datetime.utcnow()
        if reduce_months < 1:
            raise ValueError('Reduce months must be at least 1')
        new_end = self.contract_end_date - months_to_timedelta(reduce_months)
        if new_end <= self.contract_start_date:
            raise ValueError('Cannot reduce the contract end date to or before its start date')

        self.archive_current_contract(actor_id, notes or f'Contract reduced by {reduce_months} month(s)')
        self.contract_end_date = new_end
        self.contract_duration_months = max(1, (self.contract_duration_months or 0) - reduce_months)
        if new_end < now:
            self.contract_status = CONTRACT_EXPIRED
        self.updated_by_id = actor_id

    def pending_renewal_requests(self):
        return [r for r in self.renewal_requests if r.status == RENEWAL_PENDING]

    def to_dict(self, include_history=False):
        data = {
            'id': self.id,
            'organizationName': self.organization_name,
            'emailAddress': self.email_address,
            'phoneNumber': self.phone_number,
            'address': self.address,
            'contractStartDate': _iso(self.contract_start_date),
            'contractEndDate': _iso(self.contract_end_date),
            'contractDurationMonths': self.contract_duration_months,
            'contractStatus': self.contract_status,
            'gracePeriodDays': self.grace_period_days,
            'contactPersonName': self.contact_person_name,
            'contactPersonEmail': self.contact_person_email,
            'contactPersonPhone': self.contact_person_phone,
            'superAdmin': self.super_admin_id,
            'isActive': self.is_active,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }
        if include_history:
            data['renewalRequests'] = [r.to_dict() for r in self.renewal_requests]
            data['contractHistory'] = [h.to_dict() for h in self.contract_history]
        return data


class RenewalRequest(db.Model):
    """A tenant's request to renew its contract. Reviewed exactly once."""
    __tablename__ = 'renewal_requests'

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False)
    request_date = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    requested_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    requested_by_name = db.Column(db.String(100))
    requested_by_email = db.Column(db.String(255))
    message = db.Column(db.Text)
    requested_duration_months = db.Column(db.Integer, default=DEFAULT_DURATION_MONTHS, nullable=False)
    status = db.Column(db.String(20), default=RENEWAL_PENDING, nullable=False)
    reviewed_by_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    reviewed_at = db.Column(db.DateTime)
    review_notes = db.Column(db.Text)

    organization = db.relationship('Organization', back_populates='renewal_requests')

    def review(self, status, reviewer_id, notes=None):
        if self.status != RENEWAL_PENDING:
            raise ValueError(f'Renewal request has already been {self.status.lower()}')
        self.status = status
        self.reviewed_by_id = reviewer_id
        self.reviewed_at = datetime.utcnow()
        self.review_notes = notes

    def to_dict(self):
        return {
            'id': self.id,
            'requestDate': _iso(self.request_date),
            'requestedBy': self.requested_by_id,
            'requestedByName': self.requested_by_name,
            'requestedByEmail': self.requested_by_email,
            'message': self.message,
            'requestedDurationMonths': self.requested_duration_months,
            'status': self.status,
            'reviewedBy': self.reviewed_by_id,
            'reviewedAt': _iso(self.reviewed_at),
            'reviewNotes': self.review_notes,
        }


class ContractHistory(db.Model):
    """An archived contract window. Rows are appended, never rewritten."""
    __tablename__ = 'contract_history'

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False)
    start_date = db.Column(db.DateTime, nullable=False)
    end_date = db.Column(db.DateTime, nullable=False)
    duration_months = db.Column(db.Integer)
    renewed_by_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    renewed_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    notes = db.Column(db.Text)

    organization = db.relationship('Organization', back_populates='contract_history')

    def to_dict(self):
        return {
            'startDate': _iso(self.start_date),
            'endDate': _iso(self.end_date),
            'durationMonths': self.duration_months,
            'renewedBy': self.renewed_by_id,
            'renewedAt': _iso(self.renewed_at),
            'notes': self.notes,
        }
