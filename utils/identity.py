import uuid
from authlib.jose import jwt # JWT verification for bearer tokens issued by the auth service.
from authlib.jose.errors import JoseError
from flask import current_app, jsonify
from flask_login import UserMixin # Gives Identity the attributes Flask-Login expects (is_authenticated, get_id).


class Identity(UserMixin):
    """
    The authenticated caller, as resolved from a verified bearer token.

    `user_id` is always a uuid.UUID; routes pass it straight to the services.
    """

    def __init__(self, user_id, role=None):
        self.user_id = user_id
        self.role = role

    def get_id(self):
        return str(self.user_id)

    def __repr__(self):
        return f'<Identity {self.user_id} role={self.role}>'


def load_identity_from_request(request):
    """
    Flask-Login request loader: builds an Identity from `Authorization: Bearer <jwt>`.

    The token must be signed with JWT_SECRET_KEY and carry the user's UUID in `user_id`
    (or `sub`). Anything else leaves the request anonymous, so `login_required` answers 401.
    """
    auth_header = request.headers.get('Authorization', '')
    scheme, _, token = auth_header.partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        return None

    try:
        claims = jwt.decode(token.strip(), current_app.config['JWT_SECRET_KEY'])
        claims.validate() # Checks exp/nbf/iat when present.
    except JoseError as e:
        current_app.logger.warning(f"Rejected bearer token: {e}")
        return None
    except ValueError as e: # Malformed token segments.
        current_app.logger.warning(f"Rejected malformed bearer token: {e}")
        return None

    raw_user_id = claims.get('user_id') or claims.get('sub')
    try:
        user_id = uuid.UUID(str(raw_user_id))
    except ValueError:
        current_app.logger.warning(f"Bearer token carries an invalid user id: {raw_user_id!r}")
        return None

    return Identity(user_id, role=claims.get('role'))


def unauthorized():
    """Flask-Login unauthorized handler: JSON 401 instead of a redirect to a login page."""
    return jsonify({"error": "Unauthorized access"}), 401
