import logging
from flask import Flask, jsonify # The main Flask class.
from flask_migrate import Migrate # For handling database migrations with Flask-Migrate.
from config import Config # Import the application's configuration class.
from errors import SubscriptionError
from extensions import db, login_manager # Import initialized extensions.

# Application Factory Function
def create_app(config_class=Config, payment_initiator=None):
    """
    Application factory for creating and configuring the Flask app.

    Args:
        config_class: Configuration object loaded with `app.config.from_object`.
        payment_initiator (services.PaymentInitiator, optional): Gateway adapter handed to the
            SubscriptionService. Defaults to Stripe Checkout when STRIPE_SECRET_KEY is set.
    """
    app = Flask(__name__, instance_relative_config=True)

    # Load configuration from the Config object (defined in config.py).
    app.config.from_object(config_class)
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    # Payment tokens are encrypted at rest: refuse to start without a usable key.
    from utils.security import check_fernet_key
    try:
        check_fernet_key(app.config.get('FERNET_KEY'))
    except ValueError as e:
        app.logger.critical(f"Invalid encryption configuration: {e}")
        raise RuntimeError(f"Cannot start without a valid FERNET_KEY: {e}") from e
    if not app.config.get('PAYMENT_NOTIFICATION_SECRET'):
        app.logger.warning("PAYMENT_NOTIFICATION_SECRET not set. Payment notifications are accepted without a shared secret.")

    # --- Initialize Flask Extensions ---
    db.init_app(app)
    # Links the Flask app and SQLAlchemy DB instance to the migration engine (`flask db ...`).
    Migrate(app, db)

    # Identity comes from bearer tokens, resolved on every request; no login view or sessions.
    from utils.identity import load_identity_from_request, unauthorized
    login_manager.init_app(app)
    login_manager.request_loader(load_identity_from_request)
    login_manager.unauthorized_handler(unauthorized)

    # --- Services ---
    # Built once per app and handed their collaborators explicitly.
    from services import StripeCheckoutInitiator, SubscriptionService
    if payment_initiator is None and app.config.get('STRIPE_SECRET_KEY'):
        payment_initiator = StripeCheckoutInitiator(
            api_key=app.config['STRIPE_SECRET_KEY'],
            currency=app.config.get('PAYMENT_CURRENCY', 'idr'),
        )
    if payment_initiator is None:
        app.logger.warning("No payment initiator configured (STRIPE_SECRET_KEY missing). Checkout will be unavailable.")
    app.extensions['subscription_service'] = SubscriptionService(
        session=db.session,
        payment_initiator=payment_initiator,
        callback_url=app.config.get('SUBSCRIPTION_CALLBACK_URL'),
    )

    # --- Error Handling ---
    # Service errors carry their own HTTP status; anything else is left to Flask's 500 handling.
    @app.errorhandler(SubscriptionError)
    def handle_subscription_error(error):
        log = app.logger.error if error.status_code >= 500 else app.logger.warning
        log(f"{type(error).__name__} ({error.status_code}): {error.message}")
        return jsonify(error.to_dict()), error.status_code

    # --- Import and Register Blueprints ---
    from routes.subscriptions import subscriptions_bp
    app.register_blueprint(subscriptions_bp) # Routes under /api/subscriptions/...

    # --- CLI Commands ---
    from commands import subscriptions_cli
    app.cli.add_command(subscriptions_cli)

    return app # Return the configured Flask app instance.

# This block allows running the Flask development server directly using `python app.py`.
if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    app = create_app() # Create an app instance using the factory.
    app.run(debug=True)
