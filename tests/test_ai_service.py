import pytest
import requests

from folio.domain.errors import UpstreamFailureError, ValidationError
from folio.services import ai_service as ai_module
from folio.services.ai_service import AIService


class DummyResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code

    def json(self):
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"status {self.status_code}")


BASE_CONFIG = {
    'AI_PROVIDER': 'openai',
    'OPENAI_API_KEY': 'test-key',
    'OPENAI_BASE_URL': 'https://llm.example.com/v1/',
    'OPENAI_MODEL': 'tiny-model',
    'OLLAMA_BASE_URL': 'http://ollama.local:11434/v1',
    'OLLAMA_MODEL': 'local-model',
    'AI_FALLBACK_ENABLED': 'false',
}


def _config(**overrides):
    config = dict(BASE_CONFIG)
    config.update(overrides)
    return config


def test_openai_chat_returns_first_choice(monkeypatch):
    calls = []

    def fake_post(url, headers=None, json=None, timeout=None):
        calls.append((url, headers, json))
        return DummyResponse({'choices': [{'message': {'content': 'Hello reader'}}]})

    monkeypatch.setattr(ai_module.requests, 'post', fake_post)

    reply = AIService(_config()).generate_chat([{'role': 'user', 'content': 'hi'}])

    assert reply == 'Hello reader'
    url, headers, body = calls[0]
    assert url == 'https://llm.example.com/v1/chat/completions'
    assert headers['Authorization'] == 'Bearer test-key'
    assert body['model'] == 'tiny-model'
    assert body['messages'] == [{'role': 'user', 'content': 'hi'}]


def test_http_error_without_fallback_raises_upstream_failure(monkeypatch):
    monkeypatch.setattr(ai_module.requests, 'post', lambda *a, **k: DummyResponse({}, status_code=503))
    with pytest.raises(UpstreamFailureError):
        AIService(_config()).generate_chat([{'role': 'user', 'content': 'hi'}])


def test_connection_error_raises_upstream_failure(monkeypatch):
    def refuse(*args, **kwargs):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(ai_module.requests, 'post', refuse)
    with pytest.raises(UpstreamFailureError):
        AIService(_config()).generate_chat([{'role': 'user', 'content': 'hi'}])


def test_fallback_to_ollama_when_enabled(monkeypatch):
    urls = []

    def fake_post(url, headers=None, json=None, timeout=None):
        urls.append(url)
        if url.endswith('/chat/completions'):
            return DummyResponse({}, status_code=500)
        return DummyResponse({'message': {'content': 'From ollama'}})

    monkeypatch.setattr(ai_module.requests, 'post', fake_post)

    reply = AIService(_config(AI_FALLBACK_ENABLED='true')).generate_chat([{'role': 'user', 'content': 'hi'}])

    assert reply == 'From ollama'
    assert urls == ['https://llm.example.com/v1/chat/completions', 'http://ollama.local:11434/api/chat']


def test_empty_choices_count_as_failure(monkeypatch):
    monkeypatch.setattr(ai_module.requests, 'post', lambda *a, **k: DummyResponse({'choices': []}))
    with pytest.raises(UpstreamFailureError):
        AIService(_config()).generate_chat([{'role': 'user', 'content': 'hi'}])


def test_max_tokens_is_clamped():
    assert AIService(_config(AI_MAX_TOKENS='5')).max_tokens == 100
    assert AIService(_config(AI_MAX_TOKENS='999999')).max_tokens == 128000
    assert AIService(_config(AI_MAX_TOKENS='lots')).max_tokens == 800


def test_synopsis_requires_title_and_author():
    with pytest.raises(ValidationError):
        AIService(_config()).generate_synopsis('Middlemarch', '')


def test_synopsis_prompt(monkeypatch):
    bodies = []

    def fake_post(url, headers=None, json=None, timeout=None):
        bodies.append(json)
        return DummyResponse({'choices': [{'message': {'content': ' A provincial novel. '}}]})

    monkeypatch.setattr(ai_module.requests, 'post', fake_post)

    synopsis = AIService(_config()).generate_synopsis('Middlemarch', 'George Eliot')

    assert synopsis == 'A provincial novel.'
    assert 'Middlemarch' in bodies[0]['messages'][0]['content']
    assert bodies[0]['temperature'] == 0.6
    assert bodies[0]['max_tokens'] == 300


def test_synopsis_route(client, reader_session, bearer, monkeypatch):
    monkeypatch.setattr(AIService, 'generate_chat', lambda self, messages, temperature=None, max_tokens=None: 'Short.')
    response = client.post('/api/ai/generate-synopsis', json={'title': 'Emma', 'author': 'Jane Austen'},
                           headers=bearer(reader_session['token']))
    assert response.status_code == 200
    assert response.get_json() == {'synopsis': 'Short.'}


@pytest.mark.parametrize('payload', [
    [],
    'not an object',
    {'choices': ['oops']},
    {'choices': {'message': 'hi'}},
    {'choices': [{'message': 'hi'}]},
    {'choices': [{'message': {'content': [{'type': 'text', 'text': 'hi'}]}}]},
])
def test_malformed_openai_body_raises_upstream_failure(monkeypatch, payload):
    monkeypatch.setattr(ai_module.requests, 'post', lambda *a, **k: DummyResponse(payload))
    with pytest.raises(UpstreamFailureError):
        AIService(_config()).generate_chat([{'role': 'user', 'content': 'hi'}])


@pytest.mark.parametrize('payload', [[], {'message': 'hi'}, {'message': {'content': 42}}])
def test_malformed_ollama_body_raises_upstream_failure(monkeypatch, payload):
    monkeypatch.setattr(ai_module.requests, 'post', lambda *a, **k: DummyResponse(payload))
    with pytest.raises(UpstreamFailureError):
        AIService(_config(AI_PROVIDER='ollama')).generate_chat([{'role': 'user', 'content': 'hi'}])


def test_malformed_primary_body_falls_back(monkeypatch):
    def fake_post(url, headers=None, json=None, timeout=None):
        if url.endswith('/chat/completions'):
            return DummyResponse({'choices': ['oops']})
        return DummyResponse({'message': {'content': 'From ollama'}})

    monkeypatch.setattr(ai_module.requests, 'post', fake_post)

    reply = AIService(_config(AI_FALLBACK_ENABLED='true')).generate_chat([{'role': 'user', 'content': 'hi'}])
    assert reply == 'From ollama'


def test_timeout_falls_back_to_default():
    assert AIService(_config(AI_TIMEOUT='12')).timeout == 12
    assert AIService(_config(AI_TIMEOUT='soon')).timeout == 30
    assert AIService(_config(AI_TIMEOUT=None)).timeout == 30


def test_synopsis_rejects_non_text_title():
    with pytest.raises(ValidationError):
        AIService(_config()).generate_synopsis(1984, 'George Orwell')
