import enum
from datetime import datetime
from extensions import db


class OrderStatusEnum(enum.Enum):
    """
    Lifecycle of a payment-provider order.

    created -> paid/captured activates a subscription; failed never does.
    """
    CREATED = 'created'
    PAID = 'paid'
    CAPTURED = 'captured'
    FAILED = 'failed'

    @property
    def is_settled(self):
        return self in (OrderStatusEnum.PAID, OrderStatusEnum.CAPTURED)


class Order(db.Model):
    """
    Local record of a checkout started against the payment provider.

    Keyed by the provider's order id so webhook and client verification callbacks can
    find it. The metadata column accumulates raw provider payloads for audit; it is
    merged into, never replaced.
    """
    __tablename__ = 'orders'

    id = db.Column(db.Integer, primary_key=True)
    provider_order_id = db.Column(db.String(100), unique=True, nullable=False, index=True)

    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey('products.id'), nullable=False, index=True)

    amount = db.Column(db.Integer, nullable=False) # Minor currency units, as charged by the provider.
    currency = db.Column(db.String(3), nullable=False)
    status = db.Column(db.Enum(OrderStatusEnum), nullable=False, default=OrderStatusEnum.CREATED, index=True)
    provider_payment_id = db.Column(db.String(100), nullable=True, index=True)
    # "metadata" is reserved on declarative models, hence the attribute name.
    order_metadata = db.Column('metadata', db.JSON, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    product = db.relationship('Product')

    def merge_metadata(self, **entries):
        """Merges entries into the metadata payload. Assigns a new dict so the JSON change is flushed."""
        merged = dict(self.order_metadata or {})
        merged.update(entries)
        self.order_metadata = merged

    def to_dict(self):
        return {
            'id': self.id,
            'providerOrderId': self.provider_order_id,
            'userId': self.user_id,
            'productId': self.product_id,
            'productKey': self.product.key if self.product else None,
            'amount': self.amount,
            'currency': self.currency,
            'status': self.status.value,
            'providerPaymentId': self.provider_payment_id,
            'metadata': self.order_metadata,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<Order {self.provider_order_id} - {self.status.value}>'
