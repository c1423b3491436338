"""
User API Endpoints

Profile, reading progress and favorites for the authenticated reader.
"""

from flask import Blueprint, request, jsonify, current_app
from flask_login import current_user
from typing import Dict, Any

from ..api_auth import api_token_required
from ..domain.errors import NotFoundError
from ..domain.models import isoformat
from ..services import user_service, progress_service, favorites_service
from ..services.kuzu_favorites_service import ADDED_MESSAGE, REMOVED_MESSAGE

# Create API blueprint
users_api = Blueprint('users_api', __name__, url_prefix='/api/users')


def serialize_profile(profile: Dict[str, Any]) -> Dict[str, Any]:
    """User with favorites, progress and counts."""
    user = profile['user']
    data = user.to_public_dict()
    data.update({
        'lastLogin': isoformat(user.last_login),
        'favoritesCount': len(profile['favorites']),
        'booksStarted': len(profile['progress']),
        'reviewsCount': profile['reviews_count'],
        'favorites': [book.to_dict() for book in profile['favorites']],
        'readingProgress': [entry.to_dict() for entry in profile['progress']],
    })
    return data


@users_api.route('/profile', methods=['GET'])
@api_token_required
def get_profile():
    """Get current user's profile."""
    return jsonify(serialize_profile(user_service.get_profile(current_user.id))), 200


@users_api.route('/profile', methods=['PUT'])
@api_token_required
def update_profile():
    """Update name, email or password."""
    data = request.get_json(silent=True) or {}
    user = user_service.update_profile(
        current_user.id,
        name=data.get('name'),
        email=data.get('email'),
        password=data.get('password'),
    )
    current_app.logger.info(f"Profile updated for user {user.id}")
    return jsonify(user.to_public_dict()), 200


@users_api.route('/progress', methods=['PUT'])
@api_token_required
def update_progress():
    """Save the caller's position in a book."""
    data = request.get_json(silent=True) or {}
    progress = progress_service.record_progress(
        current_user.id,
        data.get('bookId'),
        data.get('currentPage'),
        data.get('totalPages'),
    )
    return jsonify({'message': 'Progress saved', 'progress': progress.to_dict()}), 200


@users_api.route('/progress', methods=['GET'])
@api_token_required
def list_progress():
    entries = progress_service.list_progress(current_user.id)
    return jsonify([entry.to_dict() for entry in entries]), 200


@users_api.route('/progress/<book_id>', methods=['GET'])
@api_token_required
def get_progress(book_id: str):
    """Resume position for one book."""
    progress = progress_service.get_progress(current_user.id, book_id)
    if progress is None:
        raise NotFoundError("No progress recorded for this book")
    return jsonify(progress.to_dict()), 200


@users_api.route('/favorites/<book_id>', methods=['PUT'])
@api_token_required
def toggle_favorite(book_id: str):
    added, favorites = favorites_service.toggle(current_user.id, book_id)
    return jsonify({
        'message': ADDED_MESSAGE if added else REMOVED_MESSAGE,
        'favorites': favorites,
    }), 200


@users_api.route('/favorites', methods=['GET'])
@api_token_required
def list_favorites():
    books = favorites_service.list_favorites(current_user.id)
    return jsonify([book.to_dict() for book in books]), 200
