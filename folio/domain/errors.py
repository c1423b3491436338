"""
Error taxonomy shared by services and the HTTP layer.

Services raise these; the application factory registers a single error
handler that renders them as JSON with the carried status code.
"""

from typing import Any, Dict, Optional


class LibraryError(Exception):
    """Base class for every expected, client-visible failure."""

    status_code = 500
    code = 'library_error'

    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': 'error',
            'message': self.message,
            'code': self.code,
        }


class UnauthenticatedError(LibraryError):
    """Proof missing, malformed or expired (client should re-login)."""
    status_code = 401
    code = 'unauthenticated'


class SuspendedError(LibraryError):
    """Proof is valid but the identity is currently blocked."""
    status_code = 403
    code = 'account_suspended'


class RoleForbiddenError(LibraryError):
    """Valid identity without the role the operation needs."""
    status_code = 403
    code = 'forbidden_role'


class ConflictError(LibraryError):
    """Duplicate review or duplicate email."""
    status_code = 400
    code = 'conflict'


class NotFoundError(LibraryError):
    status_code = 404
    code = 'not_found'


class ValidationError(LibraryError):
    """Missing or malformed required fields."""
    status_code = 400
    code = 'validation_error'


class UpstreamFailureError(LibraryError):
    """Generation service unreachable or erroring."""
    status_code = 500
    code = 'upstream_failure'
