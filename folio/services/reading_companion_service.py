"""
Reading companion: builds bounded, stateless chat input for the text generator.

Nothing is persisted between calls. The client resupplies the conversation
on every request; this module only decides what goes into the next
generation call and what to answer when that call cannot be made.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Protocol

from ..domain.errors import UpstreamFailureError, ValidationError
from ..domain.models import ChatTurn, GenerationRequest

logger = logging.getLogger(__name__)


PAGE_LOADING_REPLY = (
    "I can't see the text of this page yet. Please wait for the page to finish "
    "loading, then ask me again."
)

UPSTREAM_FAILURE_REPLY = (
    "I'm sorry, I'm having trouble thinking right now. Please try asking again in a moment."
)

_ASSISTANT_ROLES = {'ai', 'assistant', 'model'}

SYSTEM_PROMPT = """You are an expert Academic AI Tutor assisting a student with the book: "{title}" by {author}.
CURRENT CONTEXT: You are looking at Page {page_number}.
PAGE TEXT: "{page_text}"

INSTRUCTIONS:
1. CONTEXT: Always remember you are discussing "{title}". If the page text is vague, use your general knowledge of this book to help.
2. SUMMARIES: If the user asks for a summary, provide a structured breakdown with bold headers and bullet points. Focus on the most important academic takeaways.
3. CONVERSATION: Use the provided chat history to understand follow-up questions.
4. TONE: Be encouraging, concise, and professional.
"""


class TextGenerator(Protocol):
    def generate_chat(self, messages: List[Dict[str, str]], temperature: Optional[float] = None,
                      max_tokens: Optional[int] = None) -> str:
        ...


def normalize_history(history: Optional[Iterable[Any]]) -> List[ChatTurn]:
    """Map client turns onto assistant/user roles, dropping empty or malformed entries.

    Accepts ``{'role', 'text'}`` (the web client's shape) as well as ``{'role', 'content'}``.
    """
    turns: List[ChatTurn] = []
    for item in history or []:
        if not isinstance(item, dict):
            continue
        content = item.get('text')
        if content is None:
            content = item.get('content')
        if not isinstance(content, str) or not content.strip():
            continue
        role = str(item.get('role') or '').strip().lower()
        turns.append(ChatTurn(role='assistant' if role in _ASSISTANT_ROLES else 'user', content=content))
    return turns


def _label(value: Any, default: str) -> str:
    text = str(value).strip() if value is not None else ''
    return text or default


def _config_number(config: Dict[str, Any], key: str, cast, default):
    try:
        return cast(config.get(key) or default)
    except (TypeError, ValueError):
        return default


class ReadingCompanion:
    """Assembles generation requests and turns them into replies."""

    def __init__(self, generator: TextGenerator, max_page_chars: int = 6000,
                 max_history_turns: int = 20, temperature: float = 0.3, max_tokens: int = 800):
        self.generator = generator
        self.max_page_chars = max_page_chars
        self.max_history_turns = max_history_turns
        self.temperature = temperature
        self.max_tokens = max_tokens

    @classmethod
    def from_config(cls, config: Dict[str, Any], generator: TextGenerator) -> 'ReadingCompanion':
        return cls(
            generator,
            max_page_chars=_config_number(config, 'AI_MAX_PAGE_CHARS', int, 6000),
            max_history_turns=_config_number(config, 'AI_MAX_HISTORY_TURNS', int, 20),
            temperature=_config_number(config, 'AI_TEMPERATURE', float, 0.3),
            max_tokens=_config_number(config, 'AI_MAX_TOKENS', int, 800),
        )

    def assemble(self, history: Optional[Iterable[Any]], page_text: str, page_number: Any,
                 book_title: Any, book_author: Any,
                 user_message: str) -> GenerationRequest:
        """System preamble, then the most recent prior turns, then the new user turn."""
        text = page_text.strip()
        if len(text) > self.max_page_chars:
            text = text[:self.max_page_chars]

        preamble = SYSTEM_PROMPT.format(
            title=_label(book_title, 'Unknown title'),
            author=_label(book_author, 'an unknown author'),
            page_number=page_number if page_number not in (None, '') else '?',
            page_text=text,
        )

        turns = normalize_history(history)
        turns = turns[-self.max_history_turns:] if self.max_history_turns > 0 else []

        messages = [{'role': 'system', 'content': preamble}]
        messages.extend({'role': turn.role, 'content': turn.content} for turn in turns)
        messages.append({'role': 'user', 'content': user_message})
        return GenerationRequest(messages=messages, temperature=self.temperature, max_tokens=self.max_tokens)

    def respond(self, history: Optional[Iterable[Any]], page_text: Optional[str], page_number: Any,
                book_title: Any, book_author: Any,
                user_message: Optional[str]) -> str:
        """Reply text for one chat turn.

        Without page text the generator is never called. Generator failures
        come back as a fixed apology so the conversation can continue.
        """
        if not isinstance(user_message, str) or not user_message.strip():
            raise ValidationError("A message is required.")

        if not isinstance(page_text, str) or not page_text.strip():
            logger.debug("Page text not available yet; skipping generation")
            return PAGE_LOADING_REPLY

        request = self.assemble(history, page_text, page_number, book_title, book_author, user_message.strip())
        try:
            reply = self.generator.generate_chat(request.messages, temperature=request.temperature,
                                                 max_tokens=request.max_tokens)
        except UpstreamFailureError as e:
            logger.warning(f"Reading companion upstream failure: {e}")
            return UPSTREAM_FAILURE_REPLY
        if not isinstance(reply, str) or not reply.strip():
            return UPSTREAM_FAILURE_REPLY
        return reply.strip()
