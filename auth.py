"""
Authentication helpers: password hashing, JWT bearer tokens and the
`protect` route decorator.
"""

import os
from datetime import datetime, timedelta, timezone
from functools import wraps
from pathlib import Path

import jwt
from flask import current_app, g, jsonify, request
from werkzeug.security import generate_password_hash, check_password_hash

JWT_ALGORITHM = "HS256"
DEFAULT_TOKEN_DAYS = 30


def get_jwt_secret():
    """Get JWT secret from environment or .env file."""
    key = os.environ.get("JWT_SECRET")
    if not key:
        env_path = Path(__file__).parent / '.env'
        if env_path.exists():
            for line in env_path.read_text().splitlines():
                line = line.strip()
                if line.startswith('JWT_SECRET='):
                    key = line.split('=', 1)[1].strip().strip('"').strip("'")
                    break
    return key


def hash_password(password):
    return generate_password_hash(password)


def verify_password(user, password):
    """Check a password against the stored hash. Users without a password never match."""
    stored = user.get('password_hash') if user else None
    if not stored or not password:
        return False
    return check_password_hash(stored, password)


def create_token(user_id, secret, days=DEFAULT_TOKEN_DAYS):
    now = datetime.now(timezone.utc)
    payload = {
        "id": user_id,
        "iat": now,
        "exp": now + timedelta(days=days),
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def decode_token(token, secret):
    """Return the token payload. Raises jwt.InvalidTokenError on a bad or expired token."""
    return jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])


def public_user(user):
    """User record without the password hash."""
    if user is None:
        return None
    safe = {k: v for k, v in user.items() if k != 'password_hash'}
    safe['has_password'] = bool(user.get('password_hash'))
    return safe


def _unauthorized(message):
    return jsonify({'success': False, 'error': message}), 401


def protect(view):
    """Require a valid `Authorization: Bearer <token>` header; sets g.user."""
    @wraps(view)
    def wrapper(*args, **kwargs):
        header = request.headers.get('Authorization', '')
        if not header.startswith('Bearer'):
            return _unauthorized('Not authorized, no token')

        parts = header.split(' ', 1)
        token = parts[1].strip() if len(parts) > 1 else ''
        if not token or token in ('undefined', 'null'):
            print(f"Invalid token format received: {token!r}")
            return _unauthorized('Not authorized, invalid token format')

        try:
            payload = decode_token(token, current_app.config['JWT_SECRET'])
        except jwt.InvalidTokenError as e:
            print(f"Token verification error: {e}")
            return _unauthorized('Not authorized, token failed')

        user = current_app.config['STORE'].get_user(payload.get('id'))
        if user is None:
            print(f"User not found for token ID: {payload.get('id')}")
            return _unauthorized('User not found')

        g.user = user
        return view(*args, **kwargs)

    return wrapper
