from functools import wraps
from flask import current_app
from flask_login import current_user

from errors import Forbidden, SubscriptionError
from models.subscription import SubscriptionPlanEnum, SubscriptionStatusEnum
from services import get_subscription_service


def premium_required(f):
    """
    Decorator to ensure the caller has an active premium subscription.
    Meant for premium-only features (e.g., Emergency or Medical Report endpoints).
    Use it under @login_required; callers without an active premium plan get a 403.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            # This should ideally be handled by @login_required before this decorator runs.
            return current_app.login_manager.unauthorized()

        try:
            subscription = get_subscription_service().get_status(current_user.user_id)
        except SubscriptionError as e:
            current_app.logger.warning(f"Premium check failed for user {current_user.user_id}: {e.message}")
            raise Forbidden("Premium subscription required") from e

        if (subscription["plan"] != SubscriptionPlanEnum.PREMIUM.value
                or subscription["status"] != SubscriptionStatusEnum.ACTIVE.value):
            raise Forbidden("Premium subscription required")

        return f(*args, **kwargs)
    return decorated_function
