from datetime import datetime
from extensions import db


class Product(db.Model):
    """
    A purchasable plan in the catalog (e.g. "PRO_MONTHLY").

    The price is stored as an integer amount in the currency's minor unit
    (paise for INR), which is also what the payment provider expects.
    Products are never deleted once sold; they are deactivated instead.
    """
    __tablename__ = 'products'

    id = db.Column(db.Integer, primary_key=True)
    # Stable business identifier used by checkout ("productKey") and by the tier mapping.
    key = db.Column(db.String(100), unique=True, nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)
    price = db.Column(db.Integer, nullable=False) # Minor currency units.
    currency = db.Column(db.String(3), nullable=False, default='INR')
    active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Feature overrides attached to this product.
    product_features = db.relationship('ProductFeature', backref='product', lazy='select',
                                       cascade='all, delete-orphan')

    def to_dict(self, include_features=False):
        data = {
            'id': self.id,
            'key': self.key,
            'name': self.name,
            'description': self.description,
            'price': self.price,
            'currency': self.currency,
            'active': self.active,
        }
        if include_features:
            data['features'] = [{'key': pf.feature.key, 'value': pf.value} for pf in self.product_features]
        return data

    def __repr__(self):
        return f'<Product {self.key} - {self.price} {self.currency}>'


class Feature(db.Model):
    """
    A named capability definition (e.g. "AI_PLAN", "MAX_PLANS", "AI_GEN_LIMIT", "MAX_PLAN_DAYS").
    Global registry, rows are created on demand by admins or the seed command.
    """
    __tablename__ = 'features'

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(100), unique=True, nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)

    def __repr__(self):
        return f'<Feature {self.key}>'


class ProductFeature(db.Model):
    """
    Links a Product to a Feature with a JSON value payload.

    Payload shapes seen in the wild:
        {"enabled": true}                 boolean capability
        {"value": 30, "enabled": true}    numeric limit
        {"limit": 3} / {"limit": "Infinity"}  plan-count limit
    Decoding is done defensively by services.entitlements.decode_feature.
    """
    __tablename__ = 'product_features'

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey('products.id'), nullable=False, index=True)
    feature_id = db.Column(db.Integer, db.ForeignKey('features.id'), nullable=False, index=True)
    value = db.Column(db.JSON, nullable=True)

    feature = db.relationship('Feature', lazy='joined')

    # At most one override per (product, feature); writers upsert against this constraint.
    __table_args__ = (
        db.UniqueConstraint('product_id', 'feature_id', name='uq_product_feature'),
    )

    def __repr__(self):
        return f'<ProductFeature product={self.product_id} feature={self.feature_id} value={self.value}>'
