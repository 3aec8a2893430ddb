from flask import Blueprint, request, jsonify, current_app
from flask_login import login_required, current_user
import razorpay # Razorpay SDK, for its error types.

from forms import CreateOrderForm, VerifyPaymentForm
from models import UserSubscription
from services import catalog, reconciliation
from services.entitlements import get_active_subscription
from services.errors import BillingError

# Blueprint for billing-related API routes.
# Groups the catalog, checkout, webhook and subscription endpoints under '/api/billing'.
billing_bp = Blueprint('billing', __name__, url_prefix='/api/billing')

# Note: Razorpay keys (RAZORPAY_KEY_ID / RAZORPAY_KEY_SECRET) and the webhook secret
# (RAZORPAY_WEBHOOK_SECRET) come from the application config. They are read per request
# by the services, so a missing secret surfaces as a 500 on the affected endpoint only.


@billing_bp.route('/products', methods=['GET'])
def list_products():
    """Public catalog: active products ordered by price, with their feature values."""
    products = catalog.list_active_products()
    return jsonify({"products": [p.to_dict(include_features=True) for p in products]})


@billing_bp.route('/create-order', methods=['POST'])
@login_required # Only logged-in users can start a checkout.
def create_order():
    """
    Creates a provider order for the requested product and returns what the
    client-side checkout widget needs (order id, amount, currency, public key id).
    """
    form = CreateOrderForm()
    if not form.validate_on_submit():
        return jsonify({"error": form.first_error()}), 400

    try:
        order = reconciliation.create_order(current_user, form.productKey.data.strip())
    except (razorpay.errors.BadRequestError, razorpay.errors.ServerError, razorpay.errors.GatewayError) as e:
        # Provider rejected or failed the request; nothing was persisted locally.
        current_app.logger.error(f"Razorpay order creation failed for user {current_user.id}: {e}", exc_info=True)
        return jsonify({"error": "Payment provider error. Please try again later."}), 502

    return jsonify(order)


@billing_bp.route('/verify', methods=['POST'])
@login_required
def verify_payment():
    """
    Client-side confirmation of a completed checkout.
    Signature failures raise InvalidSignature (400); an unknown order raises NotFound (404).
    Both are rendered by the application's BillingError handler.
    """
    form = VerifyPaymentForm()
    if not form.validate_on_submit():
        return jsonify({"error": form.first_error()}), 400

    result = reconciliation.verify_checkout(
        current_user,
        form.razorpay_order_id.data,
        form.razorpay_payment_id.data,
        form.razorpay_signature.data,
    )
    return jsonify({"success": True, "result": result})


@billing_bp.route('/webhook', methods=['POST'])
def razorpay_webhook():
    """
    Receives Razorpay webhook events.

    The signature is computed over the raw request body, so the body is read with
    get_data() before anything parses it. Responses:
    200 for processed, duplicate, unknown-order and ignored events; 400 for bad signatures
    or malformed JSON; 500 for anything else, so Razorpay redelivers.
    """
    payload = request.get_data() # Raw bytes, exactly as signed.
    sig_header = request.headers.get('X-Razorpay-Signature', '')

    try:
        result = reconciliation.handle_webhook(payload, sig_header)
    except BillingError:
        # InvalidSignature / ServerConfigurationError are rendered by the app-level handler.
        raise
    except ValueError as e: # Invalid JSON payload.
        current_app.logger.error(f"Razorpay webhook error: {e}")
        return jsonify({"ok": False}), 400
    except Exception as e:
        current_app.logger.error(f"Razorpay webhook handler error: {e}", exc_info=True)
        return jsonify({"ok": False}), 500

    return jsonify({"ok": True, "result": result}), 200


@billing_bp.route('/subscription', methods=['GET'])
@login_required
def subscription_status():
    """Current tier, active subscription and full subscription history of the logged-in user."""
    active = get_active_subscription(current_user.id)
    history = current_user.subscriptions.order_by(UserSubscription.created_at.desc(), UserSubscription.id.desc()).all()
    return jsonify({
        "tier": current_user.tier.value,
        "aiUsageCount": current_user.ai_usage_count,
        "activeSubscription": active.to_dict() if active else None,
        "subscriptions": [s.to_dict() for s in history],
    })


@billing_bp.route('/subscription/cancel', methods=['POST'])
@login_required
def cancel_subscription():
    """Cancels the user's active subscription. Access falls back to the FREE tier immediately."""
    if get_active_subscription(current_user.id) is None:
        return jsonify({"error": "No active subscription to cancel."}), 404
    canceled = reconciliation.cancel_subscription(current_user.id)
    return jsonify({"success": True, "canceled": canceled, "tier": "FREE"})
