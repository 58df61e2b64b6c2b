import secrets
import uuid
from datetime import datetime, timezone
from cryptography.fernet import InvalidToken
from dateutil.relativedelta import relativedelta # Calendar-month arithmetic for billing windows.
from flask import current_app # For logging through the application's logger.
from sqlalchemy.exc import SQLAlchemyError

from errors import Conflict, Internal, InvalidInput, NotConfigured, NotFound, UnsupportedStatus
from models.subscription import Subscription, SubscriptionPlanEnum, SubscriptionStatusEnum
from services.plan_catalog import FREE_CHAT_LIMIT_PER_DAY, PREMIUM_MONTHLY_PRICE, list_plans, price_for_plan

BILLING_PERIOD = relativedelta(months=1)


def generate_order_id(user_uuid, now):
    """
    Builds a gateway order id from the checkout time and the user's UUID.
    A short random suffix keeps two checkouts within the same second distinct.
    """
    timestamp = int(now.replace(tzinfo=timezone.utc).timestamp())
    return f"sub-{timestamp}-{user_uuid.hex}-{secrets.token_hex(4)}"


def _isoformat(value):
    return value.isoformat() if value else None


class SubscriptionService:
    """
    Subscription state manager and payment notification reconciler.

    Everything it touches is handed in at construction: the SQLAlchemy session used for all
    reads and writes, and the PaymentInitiator used to open transactions at the gateway.
    All timestamps are naive UTC, matching the model defaults.
    """

    def __init__(self, session, payment_initiator=None, callback_url=None, clock=None):
        self.session = session
        self.payment_initiator = payment_initiator
        self.callback_url = callback_url
        self._clock = clock or datetime.utcnow

    def now(self):
        return self._clock()

    # --- Plan Catalog ---

    def list_plans(self):
        return list_plans()

    # --- Status ---

    def get_status(self, user_id):
        """
        Returns the user's subscription view after expiring stale active rows.

        Users with no rows are reported on the free plan. A premium row that is not active
        is shown as free (lapsed premium behaves like free) while its stored fields are still reported.

        Raises:
            InvalidInput: If `user_id` is not a UUID.
            Internal: If the store fails.
        """
        user_uuid = self._parse_user_id(user_id)
        self.expire_stale(user_uuid)

        subscription = self._latest_subscription(user_uuid)
        if subscription is None:
            return {
                "plan": SubscriptionPlanEnum.FREE.value,
                "status": SubscriptionStatusEnum.ACTIVE.value,
                "price": 0,
                "chat_limit_per_day": FREE_CHAT_LIMIT_PER_DAY,
            }

        effective_plan = subscription.plan
        if subscription.plan == SubscriptionPlanEnum.PREMIUM and subscription.status != SubscriptionStatusEnum.ACTIVE:
            effective_plan = SubscriptionPlanEnum.FREE

        view = {
            "plan": effective_plan.value,
            "status": subscription.status.value,
            "price": price_for_plan(effective_plan, subscription.price),
            "order_id": subscription.order_id,
            "payment_token": self._read_payment_token(subscription),
            "payment_redirect_url": subscription.payment_redirect_url,
            "starts_at": _isoformat(subscription.starts_at),
            "expires_at": _isoformat(subscription.expires_at),
        }
        if effective_plan == SubscriptionPlanEnum.FREE:
            view["chat_limit_per_day"] = FREE_CHAT_LIMIT_PER_DAY

        # Empty optional fields are left out of the payload.
        return {key: value for key, value in view.items() if value not in (None, "")}

    def expire_stale(self, user_uuid=None):
        """
        Moves ACTIVE rows whose window has ended to EXPIRED with one conditional UPDATE.
        Scoped to one user when `user_uuid` is given, otherwise applied to every user.

        Returns:
            int: Number of rows expired.
        """
        now = self.now()
        query = self.session.query(Subscription).filter(
            Subscription.status == SubscriptionStatusEnum.ACTIVE,
            Subscription.expires_at.isnot(None),
            Subscription.expires_at <= now,
        )
        if user_uuid is not None:
            query = query.filter(Subscription.user_id == user_uuid)

        try:
            expired_count = query.update(
                {Subscription.status: SubscriptionStatusEnum.EXPIRED, Subscription.updated_at: now},
                synchronize_session=False,
            )
        except SQLAlchemyError as e:
            self.session.rollback()
            current_app.logger.error(f"Failed to expire subscriptions (user: {user_uuid or 'all'}): {e}", exc_info=True)
            raise Internal(f"failed to expire subscriptions: {e}") from e
        self._commit("expiring stale subscriptions")

        if expired_count:
            # Rows loaded earlier in this session must not keep showing ACTIVE.
            self.session.expire_all()
            current_app.logger.info(f"Expired {expired_count} subscription(s) (user: {user_uuid or 'all'}).")
        return expired_count

    def prune_pending(self, older_than):
        """
        Cancels PENDING rows created before `now - older_than` (abandoned checkouts).

        Args:
            older_than (datetime.timedelta): Minimum age of the rows to cancel.
        Returns:
            int: Number of rows canceled.
        """
        now = self.now()
        cutoff = now - older_than
        try:
            canceled_count = self.session.query(Subscription).filter(
                Subscription.status == SubscriptionStatusEnum.PENDING,
                Subscription.created_at < cutoff,
            ).update(
                {Subscription.status: SubscriptionStatusEnum.CANCELED, Subscription.updated_at: now},
                synchronize_session=False,
            )
        except SQLAlchemyError as e:
            self.session.rollback()
            current_app.logger.error(f"Failed to prune pending subscriptions older than {cutoff.isoformat()}: {e}", exc_info=True)
            raise Internal(f"failed to prune pending subscriptions: {e}") from e
        self._commit("pruning pending subscriptions")
        if canceled_count:
            self.session.expire_all()
        current_app.logger.info(f"Canceled {canceled_count} pending subscription(s) created before {cutoff.isoformat()}.")
        return canceled_count

    # --- Checkout ---

    def create_premium_checkout(self, user_id):
        """
        Starts (or resumes) a premium checkout for the user.

        If the user's latest pending row already holds an order id and a gateway token, those
        credentials are returned again instead of opening a second transaction at the gateway.

        Returns:
            dict: order_id, subscription_id, token and redirect_url.
        Raises:
            InvalidInput: If `user_id` is not a UUID.
            Conflict: If a premium subscription is still active.
            Upstream: If the gateway rejects the transaction. The pending row is kept.
            NotConfigured: If no payment initiator is configured.
            Internal: If the store fails or the payment token cannot be encrypted/decrypted.
        """
        if self.payment_initiator is None:
            raise NotConfigured("payment service not configured")

        user_uuid = self._parse_user_id(user_id)
        now = self.now()

        active = self._active_subscription(user_uuid, now)
        if active is not None and active.plan == SubscriptionPlanEnum.PREMIUM:
            raise Conflict(f"premium plan already active until {active.expires_at.isoformat()}")

        pending = self._latest_subscription(user_uuid, status=SubscriptionStatusEnum.PENDING)
        if pending is not None and pending.order_id and pending.payment_token_encrypted:
            current_app.logger.info(f"Reusing pending checkout {pending.order_id} for user {user_uuid}.")
            return self._checkout_response(pending)

        subscription = Subscription(
            user_id=user_uuid,
            plan=SubscriptionPlanEnum.PREMIUM,
            status=SubscriptionStatusEnum.PENDING,
            order_id=generate_order_id(user_uuid, now),
            price=PREMIUM_MONTHLY_PRICE,
            created_at=now,
            updated_at=now,
        )
        self.session.add(subscription)
        self._commit(f"creating pending subscription for user {user_uuid}")
        current_app.logger.info(f"Created pending subscription {subscription.id} (order {subscription.order_id}) for user {user_uuid}.")

        # Upstream errors propagate; the pending row stays for a retry or the prune job.
        payment = self.payment_initiator.create_payment(subscription.order_id, PREMIUM_MONTHLY_PRICE, self.callback_url)

        self._store_payment_token(subscription, payment.token)
        subscription.payment_redirect_url = payment.redirect_url
        self._commit(f"saving payment credentials for order {subscription.order_id}")

        return self._checkout_response(subscription)

    # --- Gateway Notifications ---

    def handle_notification(self, order_id, transaction_status, transaction_id=None):
        """
        Applies a gateway notification to the subscription identified by `order_id`.

        Settlement statuses activate the row for one calendar month from now, pending statuses
        keep it pending, and failure statuses cancel it. Notifications that would leave a
        terminal status, or that repeat the last applied transaction id and status, are
        acknowledged without changing the row.

        Returns:
            bool: True if the row was updated, False if the notification was ignored.
        Raises:
            NotFound: If no subscription has this order id.
            UnsupportedStatus: If `transaction_status` is not a known gateway status.
            Internal: If the store fails.
        """
        try:
            subscription = self.session.query(Subscription).filter_by(order_id=order_id).first()
        except SQLAlchemyError as e:
            self.session.rollback()
            current_app.logger.error(f"Lookup of order {order_id} failed: {e}", exc_info=True)
            raise Internal(f"failed to load subscription for order {order_id}: {e}") from e

        if subscription is None:
            raise NotFound(f"subscription not found for order: {order_id}")

        new_status = SubscriptionStatusEnum.from_gateway_status(transaction_status)
        if new_status is None:
            raise UnsupportedStatus(f"unsupported transaction status: {transaction_status}")
        normalized_status = transaction_status.strip().lower()

        log_prefix = f"Order {order_id} (subscription {subscription.id})"

        if (transaction_id and subscription.last_transaction_id == transaction_id
                and subscription.last_transaction_status == normalized_status):
            current_app.logger.info(f"{log_prefix}: transaction {transaction_id} '{normalized_status}' already applied. Skipping.")
            return False

        if not subscription.status.can_transition_to(new_status):
            current_app.logger.warning(f"{log_prefix}: ignoring '{normalized_status}', cannot move from {subscription.status.value} to {new_status.value}.")
            return False

        now = self.now()
        if new_status == SubscriptionStatusEnum.ACTIVE:
            subscription.plan = SubscriptionPlanEnum.PREMIUM
            subscription.starts_at = now
            subscription.expires_at = now + BILLING_PERIOD
        previous_status = subscription.status
        subscription.status = new_status
        subscription.last_transaction_status = normalized_status
        if transaction_id:
            subscription.last_transaction_id = transaction_id

        self._commit(f"applying '{normalized_status}' to order {order_id}")
        current_app.logger.info(f"{log_prefix}: {previous_status.value} -> {new_status.value} ('{normalized_status}').")
        return True

    # --- Helpers ---

    def _parse_user_id(self, user_id):
        if isinstance(user_id, uuid.UUID):
            return user_id
        try:
            return uuid.UUID(str(user_id))
        except (TypeError, ValueError):
            raise InvalidInput("invalid user id") from None

    def _latest_subscription(self, user_uuid, status=None):
        query = self.session.query(Subscription).filter(Subscription.user_id == user_uuid)
        if status is not None:
            query = query.filter(Subscription.status == status)
        return self._first(query.order_by(Subscription.created_at.desc(), Subscription.id.desc()))

    def _active_subscription(self, user_uuid, now):
        query = self.session.query(Subscription).filter(
            Subscription.user_id == user_uuid,
            Subscription.status == SubscriptionStatusEnum.ACTIVE,
            Subscription.expires_at.isnot(None),
            Subscription.expires_at > now,
        ).order_by(Subscription.expires_at.desc(), Subscription.id.desc())
        return self._first(query)

    def _first(self, query):
        try:
            return query.first()
        except SQLAlchemyError as e:
            self.session.rollback()
            current_app.logger.error(f"Subscription lookup failed: {e}", exc_info=True)
            raise Internal(f"failed to load subscription: {e}") from e

    def _commit(self, action):
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            current_app.logger.error(f"Database error while {action}: {e}", exc_info=True)
            raise Internal(f"database error while {action}: {e}") from e

    def _read_payment_token(self, subscription):
        try:
            return subscription.payment_token
        except (InvalidToken, ValueError) as e:
            current_app.logger.error(f"Cannot decrypt payment token of order {subscription.order_id}: {e!r}")
            raise Internal(f"stored payment token for order {subscription.order_id} cannot be read") from e

    def _store_payment_token(self, subscription, token):
        try:
            subscription.payment_token = token
        except ValueError as e:
            self.session.rollback()
            current_app.logger.error(f"Cannot encrypt payment token of order {subscription.order_id}: {e}")
            raise Internal(f"payment token for order {subscription.order_id} cannot be stored") from e

    def _checkout_response(self, subscription):
        return {
            "order_id": subscription.order_id,
            "subscription_id": str(subscription.id),
            "token": self._read_payment_token(subscription),
            "redirect_url": subscription.payment_redirect_url,
        }
