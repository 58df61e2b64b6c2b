from cryptography.fernet import Fernet # Symmetric encryption library.
from flask import current_app # To access application configuration (e.g., FERNET_KEY).

def check_fernet_key(key):
    """
    Validates a FERNET_KEY value without an application context.

    Raises:
        ValueError: If the key is empty or not a URL-safe base64-encoded 32-byte key.
    """
    if not key:
        raise ValueError("FERNET_KEY is not set.")
    if isinstance(key, str):
        key = key.encode('utf-8')
    try:
        Fernet(key)
    except (TypeError, ValueError) as e:
        raise ValueError(f"FERNET_KEY is not a valid Fernet key: {e}") from e

def get_fernet():
    """
    Returns a Fernet instance built from the application's FERNET_KEY.

    Raises:
        ValueError: If FERNET_KEY is not configured in the application.
    """
    key = current_app.config.get('FERNET_KEY')
    if not key:
        current_app.logger.critical("FERNET_KEY is not configured. Payment tokens cannot be stored or read.")
        raise ValueError("FERNET_KEY not configured properly. Please set it in your application configuration.")
    # Config stores it as bytes, but accept a str from test/instance overrides too.
    if isinstance(key, str):
        key = key.encode('utf-8')
    return Fernet(key)

def encrypt_token(token):
    """
    Encrypts a gateway payment token for storage.

    Args:
        token (str or None): The plain-text token. None is passed through.

    Returns:
        str or None: The encrypted token as a UTF-8 string, suitable for a Text column.
    """
    if token is None:
        return None
    return get_fernet().encrypt(token.encode('utf-8')).decode('utf-8')

def decrypt_token(encrypted_token):
    """
    Decrypts a token previously produced by `encrypt_token`.

    Raises:
        cryptography.fernet.InvalidToken: If the value was encrypted with another key or is corrupted.
    """
    if encrypted_token is None:
        return None
    return get_fernet().decrypt(encrypted_token.encode('utf-8')).decode('utf-8')
