from flask_sqlalchemy import SQLAlchemy # ORM for database interactions.
from flask_login import LoginManager    # Resolves the authenticated caller for each request.

# Initialize SQLAlchemy.
# This instance will be further configured and associated with the Flask app
# in the application factory (create_app function in app.py) using db.init_app(app).
# Services receive `db.session` explicitly instead of reaching for this module.
db = SQLAlchemy()

# Initialize Flask-Login's LoginManager.
# This API has no sessions or login forms: the request_loader registered in
# utils/identity.py turns a bearer token into an Identity on every request,
# and the unauthorized_handler answers with a JSON 401 instead of a redirect.
login_manager = LoginManager()
