import uuid
import pytest
from authlib.jose import jwt
from cryptography.fernet import Fernet
from app import create_app
from config import Config
from errors import Upstream
from extensions import db as _db # Alias to avoid fixture name conflict
from services import PaymentInitiator, PaymentResult, get_subscription_service

class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:' # Use in-memory SQLite for tests
    SECRET_KEY = 'test-secret-key'
    SERVER_NAME = 'localhost' # Lets url_for build URLs from an app context, outside a request.
    JWT_SECRET_KEY = 'test-jwt-secret'
    STRIPE_SECRET_KEY = None # Tests install a FakePaymentInitiator instead of talking to Stripe.
    SUBSCRIPTION_CALLBACK_URL = 'https://hand.test/subscription'
    PAYMENT_NOTIFICATION_SECRET = None # Individual tests opt in through make_app.
    # Payment tokens are encrypted at rest, so a real Fernet key is needed.
    FERNET_KEY = Fernet.generate_key()


class FakePaymentInitiator(PaymentInitiator):
    """Records calls and hands out tok1/tok2/... with matching redirect URLs."""

    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    def create_payment(self, order_id, gross_amount, callback_url):
        self.calls.append((order_id, gross_amount, callback_url))
        if self.fail:
            raise Upstream(f"payment gateway error for order {order_id}: gateway unavailable")
        n = len(self.calls)
        return PaymentResult(token=f"tok{n}", redirect_url=f"https://pay/{n}")


def make_token(user_id, secret=TestConfig.JWT_SECRET_KEY, claim='user_id', **extra_claims):
    """Signs an HS256 bearer token the way the auth service does."""
    payload = {claim: str(user_id), **extra_claims}
    return jwt.encode({'alg': 'HS256'}, payload, secret).decode('utf-8')


@pytest.fixture(scope='session')
def app():
    """
    Session-wide test Flask application.
    Ensures the app is created once per test session with TestConfig.
    """
    app_instance = create_app(config_class=TestConfig)
    return app_instance

@pytest.fixture
def make_app():
    """
    Factory for a separate app instance, for tests that need extra routes or other settings.
    Keyword arguments override TestConfig attributes.
    """
    def _make_app(payment_initiator=None, **config_overrides):
        config_class = type("OverrideConfig", (TestConfig,), config_overrides) if config_overrides else TestConfig
        return create_app(config_class=config_class, payment_initiator=payment_initiator)
    return _make_app

@pytest.fixture(scope='function')
def app_context(app):
    """
    Function-scoped application context.
    Pushes an app context before each test that needs it and pops it afterwards.
    """
    with app.app_context():
        yield

@pytest.fixture(scope='function')
def db(app_context):
    """
    Function-scoped database fixture.
    Creates all database tables before each test and drops them afterwards,
    so every test starts with no subscriptions.
    """
    _db.create_all()
    yield _db
    _db.session.remove()
    _db.drop_all()

@pytest.fixture(scope='function')
def payment_initiator(app):
    """Installs a FakePaymentInitiator on the app's SubscriptionService for one test."""
    fake = FakePaymentInitiator()
    with app.app_context():
        service = get_subscription_service()
    original = service.payment_initiator
    service.payment_initiator = fake
    yield fake
    service.payment_initiator = original

@pytest.fixture(scope='session') # Client can be session-scoped if app is.
def client(app):
    """
    Test client fixture for making requests to the application.
    """
    return app.test_client()

@pytest.fixture
def user_id():
    return uuid.uuid4()

@pytest.fixture
def auth_headers(user_id):
    """Authorization header for `user_id`."""
    return {'Authorization': f'Bearer {make_token(user_id)}'}
