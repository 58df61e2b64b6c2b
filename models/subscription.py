import enum
from datetime import datetime
from extensions import db # Import the SQLAlchemy instance.
from utils.security import encrypt_token, decrypt_token # For encrypting/decrypting payment tokens.

class SubscriptionPlanEnum(enum.Enum):
    """
    Enumeration for the subscription tiers a user can be on.
    """
    FREE = 'free'       # Default tier, rate-limited chat.
    PREMIUM = 'premium' # Paid monthly tier, unlimited chat plus extra features.


class SubscriptionStatusEnum(enum.Enum):
    """
    Enumeration for the lifecycle stage of a subscription row.
    This helps maintain consistency and avoids using raw strings for status values.
    """
    PENDING = 'pending'   # Checkout started, waiting for the payment gateway to confirm.
    ACTIVE = 'active'     # Paid and within its billing window.
    EXPIRED = 'expired'   # Billing window elapsed (set lazily on status queries).
    CANCELED = 'canceled' # Payment denied, cancelled or expired at the gateway.

    @staticmethod
    def from_gateway_status(transaction_status):
        """
        Maps a payment gateway transaction status string to a SubscriptionStatusEnum member.
        Args:
            transaction_status (str): The status string from the gateway (e.g., "settlement", "deny").
        Returns:
            SubscriptionStatusEnum or None: The corresponding enum member, or None if unsupported.
        """
        mapping = {
            'capture': SubscriptionStatusEnum.ACTIVE,
            'settlement': SubscriptionStatusEnum.ACTIVE,
            'success': SubscriptionStatusEnum.ACTIVE,
            'pending': SubscriptionStatusEnum.PENDING,
            'challenge': SubscriptionStatusEnum.PENDING, # Fraud review; still awaiting a final answer.
            'deny': SubscriptionStatusEnum.CANCELED,
            'cancel': SubscriptionStatusEnum.CANCELED,
            'expire': SubscriptionStatusEnum.CANCELED,
            'failure': SubscriptionStatusEnum.CANCELED,
        }
        return mapping.get(transaction_status.strip().lower(), None)

    def can_transition_to(self, new_status):
        """
        Whether a row in this status may be moved to `new_status`.
        Expired and canceled are terminal. Active -> active is a re-settlement of the same order.
        """
        allowed = {
            SubscriptionStatusEnum.PENDING: {
                SubscriptionStatusEnum.PENDING,
                SubscriptionStatusEnum.ACTIVE,
                SubscriptionStatusEnum.CANCELED,
            },
            SubscriptionStatusEnum.ACTIVE: {
                SubscriptionStatusEnum.ACTIVE,
                SubscriptionStatusEnum.EXPIRED,
            },
            SubscriptionStatusEnum.EXPIRED: set(),
            SubscriptionStatusEnum.CANCELED: set(),
        }
        return new_status in allowed[self]


class Subscription(db.Model):
    """
    One checkout attempt by a user for a subscription plan.

    Rows are never deleted: a user's history is the list of their rows, the most recently
    created one being their "current" subscription. The row is created as PENDING when
    checkout starts and is moved along by gateway notifications and lazy expiry.
    """
    __tablename__ = 'subscriptions' # Specifies the database table name.

    # Integer key, also used as the tie-break when two rows share a created_at.
    id = db.Column(db.Integer, primary_key=True)

    # --- Owner and Plan ---
    # The auth service owns users; we only keep their UUID.
    user_id = db.Column(db.Uuid, nullable=False, index=True)
    plan = db.Column(db.Enum(SubscriptionPlanEnum), nullable=False, default=SubscriptionPlanEnum.PREMIUM)
    status = db.Column(db.Enum(SubscriptionStatusEnum), nullable=False, default=SubscriptionStatusEnum.PENDING, index=True)

    # --- Gateway Correlation ---
    # Unique order id sent to the gateway; notifications come back keyed by it.
    order_id = db.Column(db.String(100), unique=True, nullable=False, index=True)
    # Price snapshot in minor currency units at the time of checkout.
    price = db.Column(db.BigInteger, nullable=False, default=0)
    # Gateway token, stored encrypted (see the payment_token property).
    payment_token_encrypted = db.Column(db.Text, nullable=True)
    payment_redirect_url = db.Column(db.String(2048), nullable=True)
    # Last gateway notification applied to this row, used to drop replays.
    last_transaction_id = db.Column(db.String(255), nullable=True)
    last_transaction_status = db.Column(db.String(50), nullable=True)

    # --- Billing Window ---
    # Both are only set once the row becomes ACTIVE.
    starts_at = db.Column(db.DateTime, nullable=True)
    expires_at = db.Column(db.DateTime, nullable=True, index=True)

    # --- Timestamps ---
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        """
        Provides a string representation of the Subscription object, useful for debugging.
        """
        return f'<Subscription {self.id} User:{self.user_id} - Order:{self.order_id} - {self.plan.value}/{self.status.value}>'

    # --- Payment Token Property ---
    @property
    def payment_token(self):
        """
        Decrypts the stored `payment_token_encrypted` value before returning it.

        Returns:
            str or None: The gateway token, or None if checkout never reached the gateway.
        """
        if self.payment_token_encrypted:
            return decrypt_token(self.payment_token_encrypted)
        return None

    @payment_token.setter
    def payment_token(self, value):
        if value:
            self.payment_token_encrypted = encrypt_token(value)
        else:
            self.payment_token_encrypted = None
