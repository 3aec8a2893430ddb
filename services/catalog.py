"""
Product catalog: products, the feature registry and per-product feature values.

Upserts rely on the unique constraints on Feature.key and
(ProductFeature.product_id, ProductFeature.feature_id).
"""
from flask import current_app
from sqlalchemy.exc import IntegrityError

from extensions import db
from models import Product, Feature, ProductFeature
from services.errors import NotFound, InvalidProduct


def list_active_products():
    """Active products, cheapest first."""
    return Product.query.filter_by(active=True).order_by(Product.price.asc(), Product.id.asc()).all()


def get_active_product(product_key):
    """
    Looks up a purchasable product by key.

    Raises:
        InvalidProduct: If the key is unknown or the product was deactivated.
    """
    product = Product.query.filter_by(key=product_key).first() if product_key else None
    if product is None or not product.active:
        raise InvalidProduct(f"Invalid productKey: {product_key}")
    return product


def get_product(product_id):
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFound(f"Product {product_id} not found.")
    return product


def create_product(key, name, price, currency=None, description=None):
    """Creates an active product. Raises IntegrityError (after rollback) if the key is taken."""
    product = Product(
        key=key,
        name=name,
        price=price,
        currency=(currency or current_app.config['DEFAULT_CURRENCY']).upper(),
        description=description,
        active=True,
    )
    db.session.add(product)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        current_app.logger.warning(f"Product key '{key}' already exists.")
        raise
    current_app.logger.info(f"Product {product.key} created (price {product.price} {product.currency}).")
    return product


def deactivate_product(product_id):
    """Soft-deletes a product: existing subscriptions keep it, new checkouts are refused."""
    product = get_product(product_id)
    if product.active:
        product.active = False
        db.session.commit()
        current_app.logger.info(f"Product {product.key} deactivated.")
    return product


def upsert_feature(key, description=None):
    """Returns the Feature with this key, creating it (or updating its description)."""
    feature = Feature.query.filter_by(key=key).first()
    if feature is None:
        feature = Feature(key=key, description=description)
        db.session.add(feature)
        try:
            db.session.commit()
        except IntegrityError:
            # Lost a race with a concurrent creator; the row exists now.
            db.session.rollback()
            feature = Feature.query.filter_by(key=key).one()
    elif description is not None and feature.description != description:
        feature.description = description
        db.session.commit()
    return feature


def set_product_feature(product_id, feature_key, value):
    """
    Sets the value payload of one feature on one product (insert or update).

    Args:
        product_id (int): Target product.
        feature_key (str): Feature key; the feature is created if it does not exist yet.
        value (dict or bool or None): Stored payload. None means "enabled".

    Returns:
        ProductFeature: The stored row.
    """
    product = get_product(product_id)
    feature = upsert_feature(feature_key)

    product_feature = ProductFeature.query.filter_by(product_id=product.id, feature_id=feature.id).first()
    if product_feature is None:
        product_feature = ProductFeature(product_id=product.id, feature_id=feature.id, value=value)
        db.session.add(product_feature)
    else:
        product_feature.value = value
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        product_feature = ProductFeature.query.filter_by(product_id=product.id, feature_id=feature.id).one()
        product_feature.value = value
        db.session.commit()
    current_app.logger.info(f"Product {product.key}: feature {feature_key} set to {value}.")
    return product_feature


def remove_product_feature(product_id, feature_key):
    """Removes a feature override from a product. Returns True if something was removed."""
    product = get_product(product_id)
    feature = Feature.query.filter_by(key=feature_key).first()
    if feature is None:
        return False
    removed = ProductFeature.query.filter_by(product_id=product.id, feature_id=feature.id).delete(synchronize_session=False)
    db.session.commit()
    if removed:
        db.session.expire(product, ['product_features'])
        current_app.logger.info(f"Product {product.key}: feature {feature_key} removed.")
    return bool(removed)


# --- Default catalog ---
DEFAULT_FEATURES = {
    'AI_PLAN': 'AI plan generation access',
    'MAX_PLANS': 'Maximum number of plans allowed',
}

DEFAULT_PRODUCTS = [
    {
        'key': 'PRO_MONTHLY', 'name': 'Pro (Monthly)', 'description': 'Pro monthly subscription',
        'price': 19900, 'currency': 'INR',
        'features': {'AI_PLAN': {'enabled': True}, 'MAX_PLANS': {'limit': 100}},
    },
    {
        'key': 'TEAM_MONTHLY', 'name': 'Team (Monthly)', 'description': 'Team monthly subscription',
        'price': 49900, 'currency': 'INR',
        'features': {'AI_PLAN': {'enabled': True}},
    },
]


def seed_default_catalog():
    """
    Creates the default features and products. Existing rows are left untouched, so the
    command can be re-run safely.

    Returns:
        list: Keys of the products that were created by this run.
    """
    for key, description in DEFAULT_FEATURES.items():
        upsert_feature(key, description)

    created = []
    for defaults in DEFAULT_PRODUCTS:
        product = Product.query.filter_by(key=defaults['key']).first()
        if product is not None:
            continue
        product = create_product(defaults['key'], defaults['name'], defaults['price'],
                                 currency=defaults['currency'], description=defaults['description'])
        for feature_key, value in defaults['features'].items():
            set_product_feature(product.id, feature_key, value)
        created.append(product.key)
    return created
