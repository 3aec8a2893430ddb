import hashlib # SHA-256 digest for the HMAC.
import hmac # Keyed hashing and constant-time comparison.
from flask import current_app # To access application configuration (webhook / key secrets).

from services.errors import ServerConfigurationError


def get_signing_secret(config_key):
    """
    Retrieves a signing secret from the application's configuration.

    Args:
        config_key (str): Name of the config entry, e.g. 'RAZORPAY_WEBHOOK_SECRET'.

    Raises:
        ServerConfigurationError: If the secret is missing or empty. Signed endpoints
                                  must refuse to work rather than accept unverified input.

    Returns:
        bytes: The secret, encoded as UTF-8.
    """
    secret = current_app.config.get(config_key)
    if not secret:
        current_app.logger.critical(f"{config_key} is not configured. Refusing to process signed provider callbacks.")
        raise ServerConfigurationError(f"{config_key} is not configured.")
    # Secrets usually come from environment variables as str; HMAC needs bytes.
    return secret.encode('utf-8') if isinstance(secret, str) else secret


def compute_signature(payload, secret):
    """
    Computes the hex HMAC-SHA256 of a payload, the format Razorpay uses in its signature headers.

    Args:
        payload (bytes or str): The exact bytes that were signed (raw request body,
                                or "order_id|payment_id" for checkout confirmations).
        secret (bytes): The shared secret.

    Returns:
        str: Lower-case hex digest.
    """
    if isinstance(payload, str):
        payload = payload.encode('utf-8')
    return hmac.new(secret, payload, hashlib.sha256).hexdigest()


def verify_signature(payload, signature, secret):
    """
    Checks a provider-supplied signature against the payload.

    The comparison is constant-time and exact: no case folding or whitespace trimming.

    Returns:
        bool: True only if the signature matches.
    """
    if not signature or not isinstance(signature, str):
        return False
    expected = compute_signature(payload, secret)
    return hmac.compare_digest(expected.encode('utf-8'), signature.encode('utf-8'))
