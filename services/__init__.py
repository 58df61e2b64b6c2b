from flask import current_app

from .payment_service import PaymentInitiator, PaymentResult, StripeCheckoutInitiator
from .subscription_service import SubscriptionService


def get_subscription_service():
    """Returns the SubscriptionService built by the application factory for the current app."""
    return current_app.extensions['subscription_service']
