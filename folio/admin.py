"""
Admin API for the Folio library.

Dashboard statistics and user management. Every route requires an admin
bearer token.
"""

from flask import Blueprint, jsonify, current_app
from flask_login import current_user

from .api_auth import admin_required
from .domain.models import isoformat
from .services import user_service

admin_api = Blueprint('admin_api', __name__, url_prefix='/api/admin')


@admin_api.route('/stats', methods=['GET'])
@admin_required
def get_system_stats():
    stats = user_service.system_stats()
    for item in stats['recentActivity']:
        item['date'] = isoformat(item['date'])
    return jsonify(stats), 200


@admin_api.route('/users', methods=['GET'])
@admin_required
def list_users():
    """All users, newest first, with per-user reading stats."""
    results = []
    for entry in user_service.list_users_with_stats():
        data = entry['user'].to_public_dict()
        data['stats'] = entry['stats']
        results.append(data)
    return jsonify(results), 200


@admin_api.route('/users/<user_id>/block', methods=['PUT'])
@admin_required
def toggle_block_user(user_id: str):
    blocked = user_service.toggle_block(current_user.id, user_id)
    current_app.logger.info(f"Admin {current_user.id} set is_blocked={blocked} for {user_id}")
    return jsonify({
        'message': 'User Blocked' if blocked else 'User Activated',
        'isBlocked': blocked,
    }), 200


@admin_api.route('/users/<user_id>', methods=['DELETE'])
@admin_required
def delete_user(user_id: str):
    user_service.delete_user(current_user.id, user_id)
    return jsonify({'message': 'User removed'}), 200
