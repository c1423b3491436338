"""
AI Service for the reading companion
Handles communication with text-generation providers (OpenAI-compatible, Ollama)
"""

import logging
import requests
from typing import Dict, Any, List, Optional

from ..domain.errors import UpstreamFailureError, ValidationError

logger = logging.getLogger(__name__)


SYNOPSIS_PROMPT = 'Generate a 3-5 sentence synopsis for the book "{title}" by {author}. Return ONLY the synopsis text.'


class AIService:
    """Service for chat completions against the configured provider"""

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self.provider = str(config.get('AI_PROVIDER') or 'openai').lower()
        try:
            self.timeout = int(config.get('AI_TIMEOUT') or '30')
        except (TypeError, ValueError):
            self.timeout = 30
        # Normalize and clamp max tokens (100..128000)
        try:
            requested_max = int(config.get('AI_MAX_TOKENS') or '800')
        except (TypeError, ValueError):
            requested_max = 800
        self.max_tokens = min(max(requested_max, 100), 128000)
        try:
            self.temperature = float(config.get('AI_TEMPERATURE') or '0.3')
        except (TypeError, ValueError):
            self.temperature = 0.3

    def _providers_to_try(self) -> List[str]:
        """Primary provider first, then the alternate when fallback is enabled and it looks configured."""
        primary = self.provider
        secondary = 'ollama' if primary == 'openai' else 'openai'
        providers = [primary]

        fallback_enabled = str(self.config.get('AI_FALLBACK_ENABLED') or 'false').lower() == 'true'
        other_configured = (
            (secondary == 'openai' and bool(self.config.get('OPENAI_API_KEY')))
            or (secondary == 'ollama' and bool(self.config.get('OLLAMA_BASE_URL')))
        )
        if fallback_enabled and other_configured:
            providers.append(secondary)
        return providers

    def generate_chat(self, messages: List[Dict[str, str]], temperature: Optional[float] = None,
                      max_tokens: Optional[int] = None) -> str:
        """
        Send an ordered message list and return the assistant text.

        Raises:
            UpstreamFailureError: when every provider tried fails or returns nothing usable
        """
        temperature = self.temperature if temperature is None else temperature
        max_tokens = self.max_tokens if max_tokens is None else max_tokens

        providers_to_try = self._providers_to_try()
        last_error: Optional[Exception] = None
        for prov in providers_to_try:
            try:
                logger.info(f"AI chat attempting provider: {prov}")
                if prov == 'openai':
                    content = self._chat_with_openai(messages, temperature, max_tokens)
                elif prov == 'ollama':
                    content = self._chat_with_ollama(messages, temperature, max_tokens)
                else:
                    logger.error(f"Unknown AI provider: {prov}")
                    continue
                if content:
                    if prov != providers_to_try[0]:
                        logger.info(f"AI chat succeeded with fallback provider: {prov}")
                    return content
                last_error = ValueError(f"empty completion from {prov}")
            except Exception as e:
                last_error = e
                logger.warning(f"Provider {prov} failed: {e}")

        logger.error(f"AI chat failed after trying providers {providers_to_try}: {last_error}")
        raise UpstreamFailureError("AI Failed.")

    def generate_synopsis(self, title: Optional[str], author: Optional[str]) -> str:
        """Short synopsis for a catalogue entry."""
        title = title.strip() if isinstance(title, str) else ''
        author = author.strip() if isinstance(author, str) else ''
        if not title or not author:
            raise ValidationError("Title and author required.")
        prompt = SYNOPSIS_PROMPT.format(title=title, author=author)
        return self.generate_chat([{'role': 'user', 'content': prompt}], temperature=0.6, max_tokens=300).strip()

    def _chat_with_openai(self, messages: List[Dict[str, str]], temperature: float, max_tokens: int) -> str:
        """OpenAI-compatible /chat/completions (OpenAI, Groq, LM Studio, ...)"""
        headers = {
            'Authorization': f"Bearer {self.config.get('OPENAI_API_KEY') or ''}",
            'Content-Type': 'application/json'
        }
        payload = {
            'model': self.config.get('OPENAI_MODEL') or 'llama-3.1-8b-instant',
            'messages': messages,
            'max_tokens': max_tokens,
            'temperature': temperature,
        }

        base_url = str(self.config.get('OPENAI_BASE_URL') or 'https://api.openai.com/v1').rstrip('/')
        url = f"{base_url}/chat/completions"
        logger.info(f"OpenAI API Request URL: {url} (model={payload['model']}, messages={len(messages)})")

        response = requests.post(url, headers=headers, json=payload, timeout=self.timeout)
        logger.info(f"OpenAI API Response Status: {response.status_code}")
        response.raise_for_status()

        result = response.json()
        choices = result.get('choices') if isinstance(result, dict) else None
        if not choices or not isinstance(choices, list):
            raise ValueError("OpenAI response had no choices")
        message = choices[0].get('message') if isinstance(choices[0], dict) else None
        content = message.get('content') if isinstance(message, dict) else None
        if content is not None and not isinstance(content, str):
            raise ValueError(f"Unexpected OpenAI content type: {type(content).__name__}")
        return content or ''

    def _chat_with_ollama(self, messages: List[Dict[str, str]], temperature: float, max_tokens: int) -> str:
        """Ollama native /api/chat"""
        payload = {
            'model': self.config.get('OLLAMA_MODEL') or 'llama3.1:8b-instruct',
            'messages': messages,
            'stream': False,
            'options': {
                'temperature': temperature,
                'num_predict': max_tokens
            }
        }

        base_url = str(self.config.get('OLLAMA_BASE_URL') or 'http://localhost:11434').rstrip('/')
        # Remove /v1 suffix if present for native API
        if base_url.endswith('/v1'):
            base_url = base_url[:-3]
        url = f"{base_url}/api/chat"
        logger.info(f"Ollama API Request URL: {url} (model={payload['model']})")

        response = requests.post(url, headers={'Content-Type': 'application/json'}, json=payload,
                                 timeout=self.timeout)
        logger.info(f"Ollama API Response Status: {response.status_code}")
        response.raise_for_status()

        result = response.json()
        message = result.get('message') if isinstance(result, dict) else None
        if not isinstance(message, dict) or not isinstance(message.get('content'), str):
            raise ValueError(f"Unexpected Ollama response format: {result}")
        return message['content']
