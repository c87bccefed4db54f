"""Session tokens and role checks for the JSON API."""

from datetime import datetime, timedelta, timezone
from functools import wraps

import jwt
from flask import current_app, g, request
from werkzeug.security import check_password_hash

from api_errors import Forbidden, Unauthorized

TOKEN_ALGORITHM = 'HS256'
ROLES = ('admin', 'school', 'student')


def issue_token(claims, secret, ttl_hours=24):
    now = datetime.now(timezone.utc)
    payload = dict(claims)
    payload['iat'] = now
    payload['exp'] = now + timedelta(hours=ttl_hours)
    return jwt.encode(payload, secret, algorithm=TOKEN_ALGORITHM)


def decode_token(token, secret):
    try:
        return jwt.decode(token, secret, algorithms=[TOKEN_ALGORITHM])
    except jwt.ExpiredSignatureError as exc:
        raise Forbidden('Invalid or expired token') from exc
    except jwt.InvalidTokenError as exc:
        raise Forbidden('Invalid or expired token') from exc


def bearer_token(header):
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    parts = (header or '').strip().split(None, 1)
    if len(parts) != 2 or parts[0].lower() != 'bearer':
        return None
    return parts[1].strip() or None


def verify_admin_password(user, password):
    if not user or not password:
        return False
    return check_password_hash(user['password_hash'], password)


def role_required(*roles):
    """Require a valid token whose role claim is one of ``roles``.

    The decoded claims are available to the view as ``g.claims``.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            token = bearer_token(request.headers.get('Authorization'))
            if not token:
                raise Unauthorized('Access token required')
            claims = decode_token(token, current_app.config['JWT_SECRET'])
            if claims.get('role') not in roles:
                raise Forbidden('Insufficient permissions')
            g.claims = claims
            return f(*args, **kwargs)
        return decorated_function
    return decorator
