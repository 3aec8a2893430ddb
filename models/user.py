import enum
from datetime import datetime
from extensions import db
from flask_login import UserMixin # For Flask-Login integration (e.g., current_user).


class TierEnum(enum.Enum):
    """
    Legacy flat tier of a user.

    Kept as a denormalized, advisory cache of the user's purchased plan. Entitlement
    resolution only reads it when the user has no active subscription.
    """
    FREE = 'FREE'
    PRO = 'PRO'
    TEAM = 'TEAM'


class User(db.Model, UserMixin):
    """
    Represents a user of the planning app.

    Users are created the first time an identity-provider token is synced
    (see routes/auth.py). The row carries the legacy tier, the AI usage counter
    and the admin role; subscriptions, orders and plans hang off it.
    UserMixin provides the methods Flask-Login expects (is_authenticated, get_id).
    """
    __tablename__ = 'users'

    # --- Basic User Information ---
    id = db.Column(db.Integer, primary_key=True)
    # Subject ("sub" claim) of the identity provider's token. Stable across logins.
    external_id = db.Column(db.String(120), unique=True, nullable=False, index=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    name = db.Column(db.String(100), nullable=True)
    role = db.Column(db.String(20), nullable=False, default='user', server_default='user')

    # --- Billing / Metering ---
    # Advisory cache, see TierEnum. Written by payment reconciliation and admin actions.
    tier = db.Column(db.Enum(TierEnum), nullable=False, default=TierEnum.FREE, server_default=TierEnum.FREE.name)
    # Number of AI generations consumed since the last reset. Only services/metering.py writes it.
    ai_usage_count = db.Column(db.Integer, nullable=False, default=0, server_default='0')

    # --- Timestamps ---
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # --- Relationships ---
    # 'lazy=dynamic' returns queries, so callers can filter/order without loading every row.
    subscriptions = db.relationship('UserSubscription', backref='user', lazy='dynamic')
    orders = db.relationship('Order', backref='user', lazy='dynamic')
    plans = db.relationship('Plan', backref='user', lazy='dynamic')

    @property
    def is_admin(self):
        return self.role == 'admin'

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'name': self.name,
            'role': self.role,
            'tier': self.tier.value,
            'aiUsageCount': self.ai_usage_count,
        }

    def __repr__(self):
        return f'<User {self.email} ({self.tier.value})>'
