"""
Books API Endpoints

Public catalogue reads; creation, deletion and reviews need a bearer token.
"""

from flask import Blueprint, request, jsonify
from flask_login import current_user

from ..api_auth import api_token_required
from ..services import book_service, review_service

books_api = Blueprint('books_api', __name__, url_prefix='/api/books')


@books_api.route('', methods=['GET'])
def list_books():
    return jsonify([book.to_dict() for book in book_service.list_books()]), 200


@books_api.route('/<book_id>', methods=['GET'])
def get_book(book_id: str):
    book, reviews = book_service.get_book_with_reviews(book_id)
    data = book.to_dict()
    data['reviews'] = [review.to_dict() for review in reviews]
    return jsonify(data), 200


@books_api.route('', methods=['POST'])
@api_token_required
def create_book():
    data = request.get_json(silent=True) or {}
    book = book_service.create_book(current_user._get_current_object(), data)
    return jsonify(book.to_dict()), 201


@books_api.route('/<book_id>', methods=['DELETE'])
@api_token_required
def delete_book(book_id: str):
    book_service.delete_book(book_id, current_user._get_current_object())
    return jsonify({'message': 'Book removed'}), 200


@books_api.route('/<book_id>/reviews', methods=['POST'])
@api_token_required
def create_review(book_id: str):
    data = request.get_json(silent=True) or {}
    review = review_service.submit_review(current_user.id, book_id, data.get('rating'), data.get('comment'))
    return jsonify({'message': 'Review added', 'review': review.to_dict()}), 201


@books_api.route('/<book_id>/reviews', methods=['DELETE'])
@api_token_required
def delete_review(book_id: str):
    aggregate = review_service.delete_review(current_user.id, book_id)
    return jsonify({
        'message': 'Review removed',
        'rating': aggregate['average_rating'],
        'numReviews': aggregate['review_count'],
    }), 200
