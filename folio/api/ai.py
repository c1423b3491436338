"""
AI API Endpoints

Reading-companion chat and synopsis generation. Chat history lives on the
client and is sent in full with every request.
"""

from flask import Blueprint, request, jsonify, current_app

from ..api_auth import api_token_required
from ..domain.errors import ValidationError
from ..services.ai_service import AIService
from ..services.reading_companion_service import ReadingCompanion

ai_api = Blueprint('ai_api', __name__, url_prefix='/api/ai')


def _ai_service() -> AIService:
    return AIService(current_app.config)


@ai_api.route('/chat', methods=['POST'])
@api_token_required
def chat():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("No message provided.")
    message = data.get('message')
    if not isinstance(message, str) or not message.strip():
        raise ValidationError("No message provided.")
    history = data.get('history') or []
    if not isinstance(history, list):
        raise ValidationError("history must be a list of turns.")

    companion = ReadingCompanion.from_config(current_app.config, _ai_service())
    reply = companion.respond(
        history,
        data.get('pageContent'),
        data.get('pageNumber'),
        data.get('bookTitle'),
        data.get('bookAuthor'),
        message,
    )
    return jsonify({'reply': reply}), 200


@ai_api.route('/generate-synopsis', methods=['POST'])
@api_token_required
def generate_synopsis():
    data = request.get_json(silent=True) or {}
    synopsis = _ai_service().generate_synopsis(data.get('title'), data.get('author'))
    return jsonify({'synopsis': synopsis}), 200
