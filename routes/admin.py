import re
from flask import Blueprint, request, jsonify, current_app
from flask_login import login_required, current_user
from sqlalchemy.exc import IntegrityError

from extensions import db
from forms import ProductForm, FeatureForm, TierForm, RoleForm, AssignPlanForm, KEY_PATTERN
from models import User, TierEnum, Product, Order
from services import catalog, reconciliation
from services.entitlements import get_active_subscription
from services.metering import reset_ai_usage
from utils.decorators import admin_required

# Blueprint for the back-office API.
# Every route requires a logged-in user with role 'admin'.
admin_bp = Blueprint('admin', __name__, url_prefix='/admin/api')


def _get_user_or_404(user_id):
    user = db.session.get(User, user_id)
    if user is None:
        return None, (jsonify({"error": "User not found"}), 404)
    return user, None


# --- Users ---

@admin_bp.route('/users', methods=['GET'])
@login_required
@admin_required
def list_users():
    """All users, newest first, each with their active subscription (if any)."""
    users = User.query.order_by(User.created_at.desc(), User.id.desc()).all()
    result = []
    for user in users:
        data = user.to_dict()
        active = get_active_subscription(user.id)
        data['activeSubscription'] = active.to_dict() if active else None
        result.append(data)
    return jsonify({"users": result})


@admin_bp.route('/users/<int:user_id>/reset-ai', methods=['POST'])
@login_required
@admin_required
def reset_user_ai(user_id):
    reset_ai_usage(user_id) # NotFound -> 404
    current_app.logger.info(f"Admin {current_user.id} reset AI usage of user {user_id}.")
    return jsonify({"success": True})


@admin_bp.route('/users/<int:user_id>/tier', methods=['PUT'])
@login_required
@admin_required
def update_user_tier(user_id):
    """Overwrites the tier cache. Has no effect on entitlements while a subscription is active."""
    user, error = _get_user_or_404(user_id)
    if error:
        return error
    form = TierForm()
    if not form.validate_on_submit():
        return jsonify({"error": form.first_error()}), 400

    user.tier = TierEnum(form.tier.data)
    db.session.commit()
    current_app.logger.info(f"Admin {current_user.id} set tier of user {user_id} to {user.tier.value}.")
    return jsonify({"user": user.to_dict()})


@admin_bp.route('/users/<int:user_id>/role', methods=['PUT'])
@login_required
@admin_required
def update_user_role(user_id):
    user, error = _get_user_or_404(user_id)
    if error:
        return error
    form = RoleForm()
    if not form.validate_on_submit():
        return jsonify({"error": form.first_error()}), 400
    # An admin demoting themselves could leave nobody able to undo it.
    if user.id == current_user.id and form.role.data != 'admin':
        return jsonify({"error": "You cannot remove your own admin role."}), 400

    user.role = form.role.data
    db.session.commit()
    current_app.logger.info(f"Admin {current_user.id} set role of user {user_id} to {user.role}.")
    return jsonify({"user": user.to_dict()})


@admin_bp.route('/users/<int:user_id>/plan', methods=['POST'])
@login_required
@admin_required
def assign_plan(user_id):
    """Grants a product without payment, replacing the user's current subscription."""
    form = AssignPlanForm()
    if not form.validate_on_submit():
        return jsonify({"error": form.first_error()}), 400

    subscription = reconciliation.assign_product_to_user(user_id, form.productId.data) # NotFound -> 404
    return jsonify({"subscription": subscription.to_dict()}), 201


@admin_bp.route('/users/<int:user_id>/plan', methods=['DELETE'])
@login_required
@admin_required
def revoke_plan(user_id):
    """Cancels the user's subscription(s) and resets the tier cache to FREE."""
    canceled = reconciliation.cancel_subscription(user_id) # NotFound -> 404
    return jsonify({"success": True, "canceled": canceled})


# --- Products & features ---

@admin_bp.route('/products', methods=['GET'])
@login_required
@admin_required
def list_products():
    """All products, including deactivated ones."""
    products = Product.query.order_by(Product.price.asc(), Product.id.asc()).all()
    return jsonify({"products": [p.to_dict(include_features=True) for p in products]})


@admin_bp.route('/products', methods=['POST'])
@login_required
@admin_required
def create_product():
    form = ProductForm()
    if not form.validate_on_submit():
        return jsonify({"error": form.first_error()}), 400

    try:
        product = catalog.create_product(
            key=form.key.data,
            name=form.name.data.strip(),
            price=form.price.data,
            currency=form.currency.data or None,
            description=form.description.data or None,
        )
    except IntegrityError:
        return jsonify({"error": f"Product key '{form.key.data}' already exists."}), 409
    return jsonify({"product": product.to_dict(include_features=True)}), 201


@admin_bp.route('/products/<int:product_id>/deactivate', methods=['POST'])
@login_required
@admin_required
def deactivate_product(product_id):
    product = catalog.deactivate_product(product_id) # NotFound -> 404
    return jsonify({"product": product.to_dict()})


@admin_bp.route('/features', methods=['POST'])
@login_required
@admin_required
def upsert_feature():
    form = FeatureForm()
    if not form.validate_on_submit():
        return jsonify({"error": form.first_error()}), 400
    feature = catalog.upsert_feature(form.key.data, form.description.data or None)
    return jsonify({"feature": {"id": feature.id, "key": feature.key, "description": feature.description}})


@admin_bp.route('/products/<int:product_id>/features/<feature_key>', methods=['PUT'])
@login_required
@admin_required
def set_product_feature(product_id, feature_key):
    """
    Sets one feature value on a product.

    Body: {"value": <payload>} where payload is an object such as {"enabled": true},
    {"limit": 100}, {"limit": "Infinity"} or {"value": 5}, a bare boolean, or null
    (stored as-is; resolves to enabled).
    """
    if not re.match(KEY_PATTERN, feature_key):
        return jsonify({"error": "Invalid feature key."}), 400
    body = request.get_json(silent=True)
    if not isinstance(body, dict) or 'value' not in body:
        return jsonify({"error": "Body must be an object with a 'value' entry."}), 400
    value = body['value']
    if value is not None and not isinstance(value, (dict, bool)):
        return jsonify({"error": "value must be an object, a boolean or null."}), 400

    product_feature = catalog.set_product_feature(product_id, feature_key, value) # NotFound -> 404
    return jsonify({"key": feature_key, "value": product_feature.value})


@admin_bp.route('/products/<int:product_id>/features/<feature_key>', methods=['DELETE'])
@login_required
@admin_required
def remove_product_feature(product_id, feature_key):
    if not catalog.remove_product_feature(product_id, feature_key):
        return jsonify({"error": "Feature not set on this product."}), 404
    return jsonify({"success": True})


# --- Payments ledger ---

@admin_bp.route('/orders', methods=['GET'])
@login_required
@admin_required
def list_orders():
    """Orders newest first. Optional ?limit= (default 100, max 500)."""
    limit = request.args.get('limit', 100, type=int)
    limit = max(1, min(limit, 500))
    orders = Order.query.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).all()
    result = []
    for order in orders:
        data = order.to_dict()
        data['userEmail'] = order.user.email if order.user else None
        result.append(data)
    return jsonify({"orders": result})
