from collections import namedtuple
import stripe # Stripe Python library for payment processing.

from errors import Upstream

# What the gateway hands back for a new transaction: an opaque token and the hosted payment page.
PaymentResult = namedtuple('PaymentResult', ['token', 'redirect_url'])


class PaymentInitiator:
    """
    Starts a payment at the gateway for a given order.

    Implementations must return a PaymentResult or raise errors.Upstream.
    """

    def create_payment(self, order_id, gross_amount, callback_url):
        raise NotImplementedError


class StripeCheckoutInitiator(PaymentInitiator):
    """
    PaymentInitiator backed by a one-off Stripe Checkout Session.

    The session id is used as the payment token and the hosted session URL as the redirect.
    Our order id travels as `client_reference_id` and in the metadata so the
    notification relay can key its callbacks by order.
    """

    def __init__(self, api_key, currency='idr', product_name='Hand Premium (1 month)'):
        self.api_key = api_key
        self.currency = currency
        self.product_name = product_name

    def create_payment(self, order_id, gross_amount, callback_url):
        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                mode='payment', # One charge per month of premium, no Stripe-side recurring subscription.
                client_reference_id=order_id,
                metadata={'order_id': order_id},
                line_items=[{
                    'price_data': {
                        'currency': self.currency,
                        'unit_amount': gross_amount,
                        'product_data': {'name': self.product_name},
                    },
                    'quantity': 1,
                }],
                success_url=callback_url,
                cancel_url=callback_url,
            )
        except stripe.StripeError as e:
            raise Upstream(f"payment gateway error for order {order_id}: {e.user_message or e}") from e

        return PaymentResult(token=session.id, redirect_url=session.url)
