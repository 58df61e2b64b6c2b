from .subscription import Subscription, SubscriptionPlanEnum, SubscriptionStatusEnum
