from models.subscription import SubscriptionPlanEnum

# Canonical prices and quotas. Prices are in minor currency units.
PREMIUM_MONTHLY_PRICE = 20000
FREE_CHAT_LIMIT_PER_DAY = 30
PLAN_CURRENCY = 'IDR'

_BASE_FEATURES = ["Dashboard", "Journal", "Health Plan", "Mood Tracker"]


def list_plans():
    """
    Returns the static plan catalog as a list of JSON-ready dicts.
    The free plan carries the daily chat quota; premium has no quota and two extra features.
    """
    return [
        {
            "name": "Free",
            "plan": SubscriptionPlanEnum.FREE.value,
            "price": 0,
            "currency": PLAN_CURRENCY,
            "billing_interval": "monthly",
            "features": _BASE_FEATURES + ["Real Time Chat (limited)"],
            "chat_limit_per_day": FREE_CHAT_LIMIT_PER_DAY,
        },
        {
            "name": "Premium",
            "plan": SubscriptionPlanEnum.PREMIUM.value,
            "price": PREMIUM_MONTHLY_PRICE,
            "currency": PLAN_CURRENCY,
            "billing_interval": "monthly",
            "features": _BASE_FEATURES + ["Real Time Chat (unlimited)", "Emergency", "Medical Report"],
        },
    ]


def price_for_plan(plan, stored_price):
    """Price to report for an effective plan: the stored snapshot for premium (canonical price if unset), else 0."""
    if plan == SubscriptionPlanEnum.PREMIUM:
        if stored_price and stored_price > 0:
            return stored_price
        return PREMIUM_MONTHLY_PRICE
    return 0
