"""
Auth API Endpoints

Registration and login hand out a bearer token; logout is stateless and
only acknowledges, since the client discards its own token.
"""

from flask import Blueprint, request, jsonify, current_app
from flask_login import current_user
from typing import Any, Dict

from ..api_auth import CapabilityToken, api_token_required
from ..domain.models import User
from ..services import user_service
from .users import serialize_profile

auth_api = Blueprint('auth_api', __name__, url_prefix='/api/auth')


def _session_payload(user: User) -> Dict[str, Any]:
    return {
        'id': user.id,
        'name': user.name,
        'email': user.email,
        'role': user.role.value,
        'token': CapabilityToken.from_app().issue(user),
    }


@auth_api.route('/register', methods=['POST'])
def register():
    data = request.get_json(silent=True) or {}
    user = user_service.register(
        data.get('name'),
        data.get('email'),
        data.get('password'),
        role=data.get('role'),
        admin_secret=data.get('adminSecret'),
        required_admin_secret=current_app.config.get('ADMIN_SECRET'),
    )
    return jsonify(_session_payload(user)), 201


@auth_api.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    user = user_service.authenticate(data.get('email'), data.get('password'))
    current_app.logger.info(f"User {user.id} logged in")
    return jsonify(_session_payload(user)), 200


@auth_api.route('/logout', methods=['POST'])
def logout():
    return jsonify({'message': 'Logged out successfully'}), 200


@auth_api.route('/me', methods=['GET'])
@api_token_required
def me():
    """Current identity with favorites and progress, for session restore."""
    return jsonify(serialize_profile(user_service.get_profile(current_user.id))), 200
