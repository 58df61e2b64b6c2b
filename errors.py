class SubscriptionError(Exception):
    """
    Base class for errors raised by the subscription services.

    Each subclass carries the HTTP status code the request boundary should answer with,
    so routes can let these propagate and rely on the blueprint's error handler.
    """
    status_code = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {"error": self.message}


class InvalidInput(SubscriptionError):
    """Malformed identifiers or request fields."""
    status_code = 400


class NotFound(SubscriptionError):
    """No subscription matches the given order id."""
    status_code = 404


class Conflict(SubscriptionError):
    """The user already holds an active premium subscription."""
    status_code = 400


class UnsupportedStatus(SubscriptionError):
    """The gateway sent a transaction status we do not know how to map."""
    status_code = 400


class NotConfigured(SubscriptionError):
    """Checkout is unavailable because no payment gateway is configured."""
    status_code = 400


class Forbidden(SubscriptionError):
    """The caller is authenticated but not entitled to the resource."""
    status_code = 403


class Upstream(SubscriptionError):
    """The payment gateway failed to create the transaction."""
    status_code = 500


class Internal(SubscriptionError):
    """Persistence or configuration failure."""
    status_code = 500
