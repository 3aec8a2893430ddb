"""
Thin wrapper around the Razorpay SDK.

Only order creation goes through the SDK; signatures are verified locally
(utils/security.py) and everything else arrives through webhooks.
"""
import razorpay
from flask import current_app

from services.errors import ServerConfigurationError

PROVIDER_NAME = 'razorpay'


def get_client():
    """
    Builds a Razorpay client from the application configuration.

    Raises:
        ServerConfigurationError: If the key id or key secret is missing.
    """
    key_id = current_app.config.get('RAZORPAY_KEY_ID')
    key_secret = current_app.config.get('RAZORPAY_KEY_SECRET')
    if not key_id or not key_secret:
        current_app.logger.critical("Razorpay keys are not configured (RAZORPAY_KEY_ID / RAZORPAY_KEY_SECRET).")
        raise ServerConfigurationError("Payment provider is not configured.")
    return razorpay.Client(auth=(key_id, key_secret))


def create_provider_order(amount, currency, receipt, notes=None):
    """
    Creates an order on Razorpay.

    Args:
        amount (int): Amount in the currency's minor unit (paise for INR).
        currency (str): ISO currency code.
        receipt (str): Merchant receipt reference, at most 40 characters.
        notes (dict, optional): Key/value notes echoed back in webhooks.

    Returns:
        dict: The provider order, with at least 'id', 'amount', 'currency' and 'status'.

    Raises:
        razorpay.errors.BadRequestError / razorpay.errors.ServerError: Provider-side failures,
        left for the caller to map to a response.
    """
    client = get_client()
    return client.order.create(data={
        'amount': amount,
        'currency': currency,
        'receipt': receipt[:40],
        'notes': notes or {},
    })
