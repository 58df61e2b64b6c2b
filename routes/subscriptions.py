import hmac
from flask import Blueprint, jsonify, request, current_app
from flask_login import login_required, current_user

from services import get_subscription_service

NOTIFICATION_SECRET_HEADER = 'X-Notification-Secret'

# Blueprint for subscription routes.
# Plans and the gateway webhook are public; status and checkout need an authenticated caller.
# Service errors (errors.SubscriptionError) are turned into JSON responses by the handler registered in app.py.
subscriptions_bp = Blueprint('subscriptions', __name__, url_prefix='/api/subscriptions')


@subscriptions_bp.route('/plans', methods=['GET'])
def list_plans():
    return jsonify({"plans": get_subscription_service().list_plans()})


@subscriptions_bp.route('/me', methods=['GET'])
@login_required
def my_subscription():
    """Current subscription view for the caller (free plan if they never subscribed)."""
    status = get_subscription_service().get_status(current_user.user_id)
    return jsonify({"subscription": status})


@subscriptions_bp.route('/checkout', methods=['POST'])
@login_required
def create_premium_checkout():
    """
    Starts a premium checkout and returns the gateway token and redirect URL.
    Repeated calls while the checkout is still pending return the same credentials.
    """
    checkout = get_subscription_service().create_premium_checkout(current_user.user_id)
    current_app.logger.info(f"Checkout {checkout['order_id']} ready for user {current_user.user_id}.")
    return jsonify(checkout)


# Payment gateway webhook.
# This endpoint must be publicly accessible (no @login_required) as the gateway makes POST requests to it.
@subscriptions_bp.route('/payment-notification', methods=['POST'])
def payment_notification():
    """
    Handles the gateway's asynchronous payment notification.
    Expects a JSON object with string fields `order_id` and `transaction_status`;
    `transaction_id` is optional and used to drop replays. Other fields are ignored.
    When PAYMENT_NOTIFICATION_SECRET is configured, the X-Notification-Secret header must match it.
    """
    expected_secret = current_app.config.get('PAYMENT_NOTIFICATION_SECRET')
    if expected_secret:
        provided_secret = request.headers.get(NOTIFICATION_SECRET_HEADER, '')
        if not hmac.compare_digest(provided_secret.encode('utf-8'), expected_secret.encode('utf-8')):
            current_app.logger.warning(f"Payment notification rejected: missing or wrong {NOTIFICATION_SECRET_HEADER} header.")
            return jsonify({"error": "Invalid notification signature"}), 401

    notification = request.get_json(silent=True)
    if not isinstance(notification, dict):
        return jsonify({"error": "Invalid notification payload"}), 400

    order_id = notification.get('order_id')
    if not isinstance(order_id, str) or not order_id:
        return jsonify({"error": "order_id missing"}), 400
    transaction_status = notification.get('transaction_status')
    if not isinstance(transaction_status, str) or not transaction_status:
        return jsonify({"error": "transaction_status missing"}), 400
    transaction_id = notification.get('transaction_id')
    if not isinstance(transaction_id, str) or not transaction_id:
        transaction_id = None

    current_app.logger.info(f"Payment notification received: order {order_id}, status '{transaction_status}', transaction {transaction_id or 'n/a'}.")

    updated = get_subscription_service().handle_notification(order_id, transaction_status, transaction_id=transaction_id)
    if not updated:
        return jsonify({"message": "Notification acknowledged, subscription unchanged"}), 200
    return jsonify({"message": "Subscription payment status updated"}), 200
