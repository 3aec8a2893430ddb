import enum
from datetime import datetime
from extensions import db # Import the SQLAlchemy instance.


class SubscriptionStatusEnum(enum.Enum):
    """
    Enumeration for the possible statuses of a user's subscription.
    ACTIVE and TRIALING both grant the product's features.
    """
    ACTIVE = 'active'
    CANCELED = 'canceled'
    TRIALING = 'trialing'

    @staticmethod
    def entitling():
        """Statuses under which a subscription backs the user's entitlements."""
        return [SubscriptionStatusEnum.ACTIVE, SubscriptionStatusEnum.TRIALING]


# Provider tags written to UserSubscription.provider.
PROVIDER_RAZORPAY = 'razorpay'
PROVIDER_MANUAL_GRANT = 'manual_cms_grant'


class UserSubscription(db.Model):
    """
    One entry in a user's subscription ledger.

    Rows are created when a payment is captured (or an admin grants a plan) and are
    only ever moved to CANCELED afterwards, never deleted. The reconciliation code keeps
    at most one ACTIVE row per user by cancelling the previous ones in the same
    transaction that creates the new row.
    """
    __tablename__ = 'user_subscriptions'

    id = db.Column(db.Integer, primary_key=True)

    # --- Foreign Keys ---
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey('products.id'), nullable=False, index=True)

    # --- Lifecycle ---
    status = db.Column(db.Enum(SubscriptionStatusEnum), nullable=False, default=SubscriptionStatusEnum.ACTIVE, index=True)
    started_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    # End of the granted access window. Nullable for grants without an end.
    current_period_end = db.Column(db.DateTime, nullable=True)

    # --- Provider Identification ---
    # Payment channel that produced this row (PROVIDER_RAZORPAY, PROVIDER_MANUAL_GRANT).
    provider = db.Column(db.String(50), nullable=False, default=PROVIDER_RAZORPAY)
    # Provider transaction id (the captured payment id). Idempotency key for reconciliation:
    # a second delivery of the same payment finds this row and does nothing.
    provider_sub_id = db.Column(db.String(100), unique=True, nullable=True, index=True)

    # --- Timestamps ---
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    product = db.relationship('Product')

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'productId': self.product_id,
            'product': self.product.to_dict() if self.product else None,
            'status': self.status.value,
            'startedAt': self.started_at.isoformat() if self.started_at else None,
            'currentPeriodEnd': self.current_period_end.isoformat() if self.current_period_end else None,
            'provider': self.provider,
            'providerSubId': self.provider_sub_id,
        }

    def __repr__(self):
        return f'<UserSubscription {self.user_id} - Product {self.product_id} - Status {self.status.value}>'
