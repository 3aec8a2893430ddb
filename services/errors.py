"""
Error taxonomy shared by the billing and entitlement services.

Every error carries a machine-readable ``code`` and the HTTP status the API layer
answers with. The application factory registers one error handler for
BillingError, so routes can let these propagate.
"""


class BillingError(Exception):
    code = 'BILLING_ERROR'
    status_code = 400
    default_message = 'Billing request could not be processed.'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self):
        return {'error': self.message, 'code': self.code}


class NotFound(BillingError):
    """A referenced user, product or order does not exist."""
    code = 'NOT_FOUND'
    status_code = 404
    default_message = 'Not found.'


class InvalidSignature(BillingError):
    """A provider payload's HMAC signature did not match."""
    code = 'INVALID_SIGNATURE'
    status_code = 400
    default_message = 'Invalid signature.'


class InvalidProduct(BillingError):
    """Checkout was requested for a missing or inactive product."""
    code = 'INVALID_PRODUCT'
    status_code = 400
    default_message = 'Invalid productKey.'


class EntitlementLimitExceeded(BillingError):
    """The user's plan does not allow the requested operation. Mapped to 402 so clients can offer an upgrade."""
    code = 'ENTITLEMENT_LIMIT'
    status_code = 402
    default_message = 'Plan limit reached. Upgrade to continue.'


class ServerConfigurationError(BillingError):
    """A required secret or setting is missing; the endpoint must not degrade to unverified behaviour."""
    code = 'SERVER_CONFIG'
    status_code = 500
    default_message = 'Server configuration error.'
