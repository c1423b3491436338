"""
Python client for the Folio API.

The bearer token and cached identity are held in an explicit ``ClientSession``
rather than in loose globals. The session is torn down on logout, when the
server stops accepting the token (401), and when the account is suspended
(403 ``account_suspended``).
"""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)

TEARDOWN_LOGOUT = 'logout'
TEARDOWN_EXPIRED = 'expired'
TEARDOWN_SUSPENDED = 'suspended'


class ClientError(Exception):
    """Non-2xx answer from the API."""

    def __init__(self, status_code: int, message: str, code: Optional[str] = None):
        self.status_code = status_code
        self.message = message
        self.code = code
        super().__init__(f"{status_code}: {message}")


class SessionExpiredError(ClientError):
    """Token missing, rejected or expired; log in again."""


class AccountSuspendedError(ClientError):
    """The account is blocked; show the notice instead of retrying login."""


@dataclass
class ClientSession:
    """Credential state held by one client, optionally mirrored to a JSON file."""
    token: Optional[str] = None
    user: Dict[str, Any] = field(default_factory=dict)
    storage_path: Optional[str] = None
    last_teardown_reason: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return bool(self.token)

    def establish(self, payload: Dict[str, Any]) -> None:
        """Adopt a login/register response ({id, name, email, role, token})."""
        self.token = payload.get('token')
        self.user = {k: v for k, v in payload.items() if k != 'token'}
        self.last_teardown_reason = None
        self._persist()

    def teardown(self, reason: str) -> None:
        """Forget the token and identity in memory and on disk."""
        self.token = None
        self.user = {}
        self.last_teardown_reason = reason
        if self.storage_path and os.path.exists(self.storage_path):
            os.remove(self.storage_path)
        logger.info(f"Client session torn down ({reason})")

    def _persist(self) -> None:
        if not self.storage_path:
            return
        directory = os.path.dirname(self.storage_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.storage_path, 'w', encoding='utf-8') as fh:
            json.dump({'token': self.token, 'user': self.user}, fh)

    @classmethod
    def load(cls, storage_path: str) -> 'ClientSession':
        """Restore a persisted session; an absent file gives an empty one."""
        session = cls(storage_path=storage_path)
        if os.path.exists(storage_path):
            with open(storage_path, 'r', encoding='utf-8') as fh:
                data = json.load(fh)
            session.token = data.get('token')
            session.user = data.get('user') or {}
        return session


class LibraryClient:
    """Thin wrapper over the JSON API using ``requests``."""

    def __init__(self, base_url: str, session: Optional[ClientSession] = None,
                 timeout: float = 30.0, http: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.session = session or ClientSession()
        self.timeout = timeout
        self.http = http or requests.Session()

    def _request(self, method: str, path: str, json_body: Optional[Dict[str, Any]] = None,
                 authenticated: bool = True) -> Any:
        headers = {'Accept': 'application/json'}
        if authenticated and self.session.token:
            headers['Authorization'] = f"Bearer {self.session.token}"
        response = self.http.request(method, f"{self.base_url}{path}", json=json_body,
                                     headers=headers, timeout=self.timeout)

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code < 400:
            return body

        message = body.get('message', response.reason) if isinstance(body, dict) else str(body)
        code = body.get('code') if isinstance(body, dict) else None
        if response.status_code == 401 and authenticated:
            self.session.teardown(TEARDOWN_EXPIRED)
            raise SessionExpiredError(401, message, code)
        if response.status_code == 403 and code == 'account_suspended':
            self.session.teardown(TEARDOWN_SUSPENDED)
            raise AccountSuspendedError(403, message, code)
        raise ClientError(response.status_code, message, code)

    # Auth
    def register(self, name: str, email: str, password: str, role: str = 'reader',
                 admin_secret: Optional[str] = None) -> Dict[str, Any]:
        body = {'name': name, 'email': email, 'password': password, 'role': role}
        if admin_secret is not None:
            body['adminSecret'] = admin_secret
        payload = self._request('POST', '/api/auth/register', body, authenticated=False)
        self.session.establish(payload)
        return payload

    def login(self, email: str, password: str) -> Dict[str, Any]:
        payload = self._request('POST', '/api/auth/login', {'email': email, 'password': password},
                                authenticated=False)
        self.session.establish(payload)
        return payload

    def logout(self) -> None:
        try:
            self._request('POST', '/api/auth/logout', authenticated=False)
        finally:
            self.session.teardown(TEARDOWN_LOGOUT)

    def me(self) -> Dict[str, Any]:
        return self._request('GET', '/api/auth/me')

    # Reading
    def save_progress(self, book_id: str, current_page: int, total_pages: int) -> Dict[str, Any]:
        return self._request('PUT', '/api/users/progress',
                             {'bookId': book_id, 'currentPage': current_page, 'totalPages': total_pages})

    def toggle_favorite(self, book_id: str) -> Dict[str, Any]:
        return self._request('PUT', f'/api/users/favorites/{book_id}')

    def list_books(self) -> List[Dict[str, Any]]:
        return self._request('GET', '/api/books', authenticated=False)

    def review(self, book_id: str, rating: int, comment: str) -> Dict[str, Any]:
        return self._request('POST', f'/api/books/{book_id}/reviews', {'rating': rating, 'comment': comment})

    def chat(self, message: str, history: List[Dict[str, str]], page_content: str,
             page_number: int, book_title: str, book_author: str) -> str:
        payload = self._request('POST', '/api/ai/chat', {
            'message': message,
            'history': history,
            'pageContent': page_content,
            'pageNumber': page_number,
            'bookTitle': book_title,
            'bookAuthor': book_author,
        })
        return payload.get('reply', '')
