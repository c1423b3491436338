"""
API Authentication Module

Bearer capability tokens for the JSON API.

A token only proves *who* the caller is. Whether that identity may act right
now is decided on every request by reading the live block flag from the
store, so blocking a user takes effect on their next call without any token
revocation.
"""

import logging
from functools import wraps
from typing import Any, Callable, Optional

from flask import Flask, current_app, request
from flask_login import current_user
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from .domain.errors import RoleForbiddenError, SuspendedError, UnauthenticatedError
from .domain.models import User

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_MAX_AGE = 30 * 24 * 60 * 60  # 30 days
DEFAULT_TOKEN_SALT = 'folio-capability'


class CapabilityToken:
    """Signed, time-limited proof of identity carrying only the user id."""

    def __init__(self, secret_key: str, salt: str = DEFAULT_TOKEN_SALT,
                 max_age_seconds: int = DEFAULT_TOKEN_MAX_AGE):
        if not secret_key:
            raise ValueError("A secret key is required to sign tokens")
        self.max_age_seconds = max_age_seconds
        self._serializer = URLSafeTimedSerializer(secret_key, salt=salt)

    @classmethod
    def from_app(cls, app: Optional[Flask] = None) -> 'CapabilityToken':
        app = app or current_app
        return cls(
            app.config['SECRET_KEY'],
            salt=app.config.get('TOKEN_SALT', DEFAULT_TOKEN_SALT),
            max_age_seconds=int(app.config.get('TOKEN_MAX_AGE_SECONDS', DEFAULT_TOKEN_MAX_AGE)),
        )

    def issue(self, user: User) -> str:
        return self._serializer.dumps({'id': user.id})

    def read_identity(self, token: Optional[str]) -> str:
        """Return the user id inside a valid token.

        Raises:
            UnauthenticatedError: missing, tampered, malformed or expired token
        """
        if not token:
            raise UnauthenticatedError("Not authorized, no token")
        try:
            payload = self._serializer.loads(token, max_age=self.max_age_seconds)
        except SignatureExpired:
            raise UnauthenticatedError("Session expired, please log in again")
        except BadSignature:
            raise UnauthenticatedError("Not authorized, token failed")
        user_id = payload.get('id') if isinstance(payload, dict) else None
        if not isinstance(user_id, str) or not user_id:
            raise UnauthenticatedError("Not authorized, token failed")
        return user_id


class CredentialValidator:
    """Token check followed by a fresh lookup of the user's current state."""

    def __init__(self, tokens: CapabilityToken, load_user: Callable[[str], Optional[User]]):
        self.tokens = tokens
        self.load_user = load_user

    def validate(self, token: Optional[str]) -> User:
        """
        Raises:
            UnauthenticatedError: bad token, or the user no longer exists
            SuspendedError: token is fine but the user is currently blocked
        """
        user_id = self.tokens.read_identity(token)
        user = self.load_user(user_id)
        if user is None:
            raise UnauthenticatedError("Not authorized, user not found")
        if user.is_blocked:
            raise SuspendedError("Your account has been suspended. Please contact an administrator.")
        return user


def extract_bearer_token(auth_header: Optional[str]) -> Optional[str]:
    """Token from an ``Authorization: Bearer <token>`` header, else None."""
    if not auth_header:
        return None
    parts = auth_header.strip().split(None, 1)
    if len(parts) != 2 or parts[0].lower() != 'bearer':
        return None
    return parts[1].strip() or None


def load_user_from_request(req: Any) -> Optional[User]:
    """
    Flask-Login request loader.

    Returns None when no bearer header is present (anonymous caller). A
    header that is present but fails validation raises, so the caller gets
    the precise 401/403 instead of being treated as anonymous.
    """
    auth_header = req.headers.get('Authorization')
    if not auth_header:
        return None
    token = extract_bearer_token(auth_header)
    if token is None:
        raise UnauthenticatedError("Not authorized, malformed Authorization header")

    from .services import user_service

    validator = CredentialValidator(CapabilityToken.from_app(), user_service.get_user_by_id_sync)
    user = validator.validate(token)
    logger.debug(f"Authenticated API request from user {user.id} to {req.path}")
    return user


def api_token_required(f):
    """
    Decorator for API endpoints that require token authentication.
    Resolving ``current_user`` runs the validator, so a suspended user is
    rejected before the view body executes.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            logger.info(f"Unauthenticated request to {request.path}")
            raise UnauthenticatedError("Not authorized, please login")
        return f(*args, **kwargs)

    return decorated_function


def admin_required(f):
    """
    Decorator to require admin privileges for API access
    Usage: @admin_required
    """
    @wraps(f)
    @api_token_required
    def decorated_function(*args, **kwargs):
        if not current_user.is_admin:
            logger.warning(f"User {current_user.id} denied admin access to {request.path}")
            raise RoleForbiddenError("Not authorized as an admin")
        return f(*args, **kwargs)
    return decorated_function
