"""
Payment reconciliation.

Turns a captured payment into an active subscription. Two independent paths lead
here: the browser's checkout confirmation (verify_checkout) and the provider's webhook
(handle_webhook). Both converge on reconcile_payment, which is idempotent on the
provider payment id, so whichever arrives second is a no-op.
"""
import json
import time
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError

from extensions import db
from models import (
    User, TierEnum, Product, Order, OrderStatusEnum,
    UserSubscription, SubscriptionStatusEnum, PROVIDER_RAZORPAY, PROVIDER_MANUAL_GRANT,
)
from services import catalog, payment_provider
from services.errors import NotFound, InvalidSignature
from utils.security import get_signing_secret, verify_signature

# --- Reconciliation outcomes ---
ACTIVATED = 'activated'
DUPLICATE = 'duplicate'
ORDER_NOT_FOUND = 'order_not_found'
IGNORED = 'ignored'
RECORDED = 'recorded'

# --- Webhook events ---
EVENT_PAYMENT_CAPTURED = 'payment.captured'
EVENT_PAYMENT_AUTHORIZED = 'payment.authorized'
EVENT_PAYMENT_FAILED = 'payment.failed'
EVENT_ORDER_PAID = 'order.paid'

PAYMENT_STATUS_CAPTURED = 'captured'


# --- Checkout ---

def create_order(user, product_key):
    """
    Starts a checkout for one product.

    Args:
        user (User): The buyer.
        product_key (str): Key of an active product.

    Returns:
        dict: {'orderId', 'amount', 'currency', 'provider', 'keyId'} for the client-side checkout widget.

    Raises:
        InvalidProduct: If product_key is unknown or inactive.
        ServerConfigurationError: If the provider keys are missing.
    """
    product = catalog.get_active_product(product_key)

    # Receipt must stay under 40 characters.
    receipt = f"u_{user.id}_{str(int(time.time() * 1000))[-5:]}"
    provider_order = payment_provider.create_provider_order(
        amount=product.price,
        currency=product.currency,
        receipt=receipt,
        notes={'productKey': product.key, 'userId': str(user.id)},
    )
    current_app.logger.info(f"Provider order {provider_order['id']} created for user {user.id} ({product.key}).")

    try:
        order = Order(
            provider_order_id=provider_order['id'],
            user_id=user.id,
            product_id=product.id,
            amount=provider_order.get('amount', product.price),
            currency=provider_order.get('currency', product.currency),
            status=OrderStatusEnum.CREATED,
            order_metadata={'raw': provider_order},
        )
        db.session.add(order)
        db.session.commit()
    except Exception as e:
        # The provider order exists either way; the webhook logs an unknown order and acknowledges it.
        db.session.rollback()
        current_app.logger.error(f"Failed to persist order {provider_order['id']} for user {user.id}: {e}", exc_info=True)

    return {
        'orderId': provider_order['id'],
        'amount': provider_order.get('amount', product.price),
        'currency': provider_order.get('currency', product.currency),
        'provider': payment_provider.PROVIDER_NAME,
        'keyId': current_app.config['RAZORPAY_KEY_ID'],
    }


def verify_checkout(user, provider_order_id, provider_payment_id, signature):
    """
    Confirms a checkout completed in the browser and activates the subscription.

    The signature is the provider's HMAC-SHA256 of "order_id|payment_id" under the key secret.

    Returns:
        str: ACTIVATED or DUPLICATE.

    Raises:
        ServerConfigurationError: If RAZORPAY_KEY_SECRET is missing.
        InvalidSignature: If the signature does not match.
        NotFound: If the order is unknown or belongs to another user.
    """
    secret = get_signing_secret('RAZORPAY_KEY_SECRET')
    if not verify_signature(f"{provider_order_id}|{provider_payment_id}", signature, secret):
        current_app.logger.warning(f"Invalid checkout signature for order {provider_order_id} (user {user.id}).")
        raise InvalidSignature("Invalid payment signature")

    order = Order.query.filter_by(provider_order_id=provider_order_id).first()
    if order is None or order.user_id != user.id:
        raise NotFound("Order record not found")

    result = reconcile_payment(
        provider_order_id,
        provider_payment_id,
        metadata={'verified': True},
    )
    if result == ORDER_NOT_FOUND:
        raise NotFound("Order record not found")
    return result


# --- Webhook ---

def handle_webhook(raw_body, signature):
    """
    Processes one signed provider webhook delivery.

    Args:
        raw_body (bytes): The request body exactly as received.
        signature (str): Value of the X-Razorpay-Signature header.

    Returns:
        str: The outcome (ACTIVATED, DUPLICATE, ORDER_NOT_FOUND, RECORDED or IGNORED).

    Raises:
        ServerConfigurationError: If RAZORPAY_WEBHOOK_SECRET is missing.
        InvalidSignature: On a signature mismatch. Nothing is written.
        ValueError: If the body is not a JSON object.
    """
    secret = get_signing_secret('RAZORPAY_WEBHOOK_SECRET')
    if not verify_signature(raw_body, signature, secret):
        current_app.logger.warning("Invalid Razorpay webhook signature.")
        raise InvalidSignature("Invalid webhook signature")

    try:
        event = json.loads(raw_body)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid JSON payload: {e}")
    if not isinstance(event, dict):
        raise ValueError("Invalid JSON payload: expected an object.")

    event_type = event.get('event')
    payload = event.get('payload') or {}
    current_app.logger.info(f"Razorpay webhook received: {event_type}")
    if not isinstance(payload, dict):
        current_app.logger.warning(f"Razorpay webhook {event_type} has a non-object payload, ignoring.")
        return IGNORED

    if event_type in (EVENT_PAYMENT_CAPTURED, EVENT_PAYMENT_AUTHORIZED):
        return _handle_payment_event(_entity(payload, 'payment'))
    if event_type == EVENT_PAYMENT_FAILED:
        return _handle_payment_failed(_entity(payload, 'payment'))
    if event_type == EVENT_ORDER_PAID:
        return _handle_order_paid(_entity(payload, 'order'), _entity(payload, 'payment'))

    current_app.logger.info(f"Unhandled Razorpay event type: {event_type}")
    return IGNORED


def _entity(payload, name):
    wrapper = payload.get(name)
    entity = wrapper.get('entity') if isinstance(wrapper, dict) else None
    return entity if isinstance(entity, dict) else None


def _handle_payment_event(payment):
    if not payment or not payment.get('id') or not payment.get('order_id'):
        current_app.logger.warning("Payment event without a usable payment entity, ignoring.")
        return IGNORED

    if payment.get('status') == PAYMENT_STATUS_CAPTURED:
        return reconcile_payment(payment['order_id'], payment['id'], metadata={'payment': payment})

    # Authorized but not captured yet: keep the payload, grant nothing.
    order = Order.query.filter_by(provider_order_id=payment['order_id']).first()
    if order is None:
        current_app.logger.warning(f"Order not found for provider order id {payment['order_id']}.")
        return ORDER_NOT_FOUND
    order.merge_metadata(payment=payment)
    _commit()
    return RECORDED


def _handle_payment_failed(payment):
    if not payment or not payment.get('order_id'):
        return IGNORED
    order = Order.query.filter_by(provider_order_id=payment['order_id']).first()
    if order is None:
        current_app.logger.warning(f"Order not found for provider order id {payment['order_id']}.")
        return ORDER_NOT_FOUND

    order.merge_metadata(payment=payment)
    # A late failure for another attempt must not undo a settled order.
    if not order.status.is_settled:
        order.status = OrderStatusEnum.FAILED
    _commit()
    current_app.logger.info(f"Payment failed for order {order.provider_order_id} (order status {order.status.value}).")
    return RECORDED


def _handle_order_paid(order_entity, payment):
    if not order_entity or not order_entity.get('id'):
        return IGNORED
    provider_order_id = order_entity['id']

    if payment and payment.get('id') and payment.get('status') == PAYMENT_STATUS_CAPTURED:
        return reconcile_payment(provider_order_id, payment['id'], metadata={'order': order_entity, 'payment': payment})

    order = Order.query.filter_by(provider_order_id=provider_order_id).first()
    if order is None:
        current_app.logger.warning(f"Order not found for provider order id {provider_order_id}.")
        return ORDER_NOT_FOUND
    order.merge_metadata(order=order_entity)
    order.status = OrderStatusEnum.PAID
    _commit()
    return RECORDED


def _commit():
    try:
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Database error while recording webhook data: {e}", exc_info=True)
        raise


# --- Shared activation step ---

def _subscription_exists(provider_sub_id):
    return db.session.query(
        UserSubscription.query.filter_by(provider_sub_id=provider_sub_id).exists()
    ).scalar()


def _lock_user(user_id):
    return User.query.filter_by(id=user_id).with_for_update().first()


def cancel_active_subscriptions(user_id):
    """
    Marks every active or trialing subscription of the user as canceled.

    Does not commit: callers run it inside their own transaction, holding the user lock.

    Returns:
        int: Number of subscriptions canceled.
    """
    return UserSubscription.query.filter(
        UserSubscription.user_id == user_id,
        UserSubscription.status.in_(SubscriptionStatusEnum.entitling()),
    ).update(
        {UserSubscription.status: SubscriptionStatusEnum.CANCELED, UserSubscription.updated_at: datetime.utcnow()},
        synchronize_session=False,
    )


def tier_for_product(product):
    """Tier cache value implied by a product key: TEAM before PRO, case-insensitive. None if neither."""
    key = (product.key or '').upper()
    if 'TEAM' in key:
        return TierEnum.TEAM
    if 'PRO' in key:
        return TierEnum.PRO
    return None


def _activate(user, product, provider, provider_sub_id):
    """Cancel-then-create under the caller's transaction. Returns the new subscription."""
    canceled = cancel_active_subscriptions(user.id)
    if canceled:
        current_app.logger.info(f"Canceled {canceled} previous subscription(s) for user {user.id}.")

    now = datetime.utcnow()
    subscription = UserSubscription(
        user_id=user.id,
        product_id=product.id,
        status=SubscriptionStatusEnum.ACTIVE,
        started_at=now,
        current_period_end=now + timedelta(days=current_app.config['BILLING_GRANT_PERIOD_DAYS']),
        provider=provider,
        provider_sub_id=provider_sub_id,
    )
    db.session.add(subscription)

    tier = tier_for_product(product)
    if tier is not None:
        user.tier = tier
    return subscription


def reconcile_payment(provider_order_id, payment_id, metadata=None, provider=PROVIDER_RAZORPAY):
    """
    Activates the subscription paid for by one captured payment, exactly once.

    In a single transaction: locks the order and the buyer, returns early if a subscription
    with provider_sub_id == payment_id already exists, cancels the buyer's current
    subscriptions, creates the new active one, refreshes the tier cache and marks the
    order paid with the payment id and the given metadata merged in.

    Args:
        provider_order_id (str): The provider's order id.
        payment_id (str): The provider's payment id, used as the idempotency key.
        metadata (dict, optional): Entries merged into the order metadata.
        provider (str): Provider tag stored on the subscription.

    Returns:
        str: ACTIVATED, DUPLICATE or ORDER_NOT_FOUND.
    """
    try:
        order = Order.query.filter_by(provider_order_id=provider_order_id).with_for_update().first()
        if order is None:
            db.session.rollback()
            current_app.logger.warning(f"Order not found for provider order id {provider_order_id}.")
            return ORDER_NOT_FOUND

        if _subscription_exists(payment_id):
            db.session.rollback()
            current_app.logger.info(f"Payment {payment_id} already reconciled, skipping.")
            return DUPLICATE

        user = _lock_user(order.user_id)
        product = db.session.get(Product, order.product_id)
        if user is None or product is None:
            db.session.rollback()
            raise NotFound(f"Order {provider_order_id} references a missing user or product.")

        subscription = _activate(user, product, provider, payment_id)

        order.status = OrderStatusEnum.PAID
        order.provider_payment_id = payment_id
        order.merge_metadata(**(metadata or {}))

        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        # Another delivery of the same payment committed first.
        if _subscription_exists(payment_id):
            current_app.logger.info(f"Payment {payment_id} reconciled concurrently, reporting duplicate.")
            return DUPLICATE
        current_app.logger.error(f"Integrity error reconciling payment {payment_id}.", exc_info=True)
        raise
    except NotFound:
        raise
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error reconciling payment {payment_id} for order {provider_order_id}: {e}", exc_info=True)
        raise

    current_app.logger.info(
        f"Subscription {subscription.id} activated for user {user.id} ({product.key}) from payment {payment_id}."
    )
    return ACTIVATED


# --- Manual grants and cancellation ---

def assign_product_to_user(user_id, product_id):
    """
    Grants a product to a user without a payment (admin action).

    Same cancel-then-activate as a purchase, tagged PROVIDER_MANUAL_GRANT and without a
    provider transaction id.

    Raises:
        NotFound: If the user or product does not exist.
    """
    try:
        user = _lock_user(user_id)
        if user is None:
            raise NotFound(f"User {user_id} not found.")
        product = db.session.get(Product, product_id)
        if product is None:
            raise NotFound(f"Product {product_id} not found.")

        subscription = _activate(user, product, PROVIDER_MANUAL_GRANT, None)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(f"Product {product.key} manually granted to user {user_id}.")
    return subscription


def cancel_subscription(user_id):
    """
    Cancels the user's current subscription(s) and resets the tier cache to FREE.

    Used by self-service cancellation and by the admin revoke action.

    Returns:
        int: Number of subscriptions canceled (0 if there was nothing to cancel).

    Raises:
        NotFound: If the user does not exist.
    """
    try:
        user = _lock_user(user_id)
        if user is None:
            raise NotFound(f"User {user_id} not found.")
        canceled = cancel_active_subscriptions(user.id)
        user.tier = TierEnum.FREE
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(f"Canceled {canceled} subscription(s) for user {user_id}; tier reset to FREE.")
    return canceled
