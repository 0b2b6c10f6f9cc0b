"""
Token counting helpers and usage records.

Holds the token-result cache, text extraction for chat messages and the
default response-length estimate used when no measured count exists.
"""

import hashlib
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional, Sequence, Tuple

from .models import Message, PartsContent, TextContent, Tool, ToolChoice
from .rwlock import ReadWriteLock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenUsage:
    """Token usage reported by a vendor SDK response.

    Contains exact token counts as measured by the vendor.
    """
    prompt_tokens: int
    completion_tokens: int
    completion_id: Optional[str] = None
    model: Optional[str] = None
    request_id: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def total_tokens(self) -> int:
        """Total tokens used (prompt + completion)."""
        return self.prompt_tokens + self.completion_tokens


class TokenCache:
    """Cache of token counts for repeated identical inputs.

    Keyed by (provider, model, text). There is no expiry: cleanup() drops
    every entry once the cache grows past a caller-supplied size.
    """

    def __init__(self):
        self._entries: Dict[Tuple[str, str, str], int] = {}
        self._lock = ReadWriteLock()

    @staticmethod
    def _key(provider: str, model: str, text: str) -> Tuple[str, str, str]:
        digest = hashlib.sha256(text.encode("utf-8")).hexdigest()
        return (provider, model, digest)

    def get(self, provider: str, model: str, text: str) -> Optional[int]:
        """Return the cached count, or None on a miss."""
        with self._lock.read():
            return self._entries.get(self._key(provider, model, text))

    def set(self, provider: str, model: str, text: str, count: int) -> None:
        with self._lock.write():
            self._entries[self._key(provider, model, text)] = count

    def cleanup(self, max_size: int) -> bool:
        """Clear the whole cache if it holds more than max_size entries.

        Returns:
            True if the cache was cleared
        """
        with self._lock.write():
            if len(self._entries) <= max_size:
                return False
            dropped = len(self._entries)
            self._entries = {}
        logger.debug("Token cache cleared (%d entries dropped)", dropped)
        return True

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._entries)


def extract_text_from_messages(messages: Sequence[Message]) -> str:
    """Concatenate the text of all messages, one line per text fragment.

    Image parts are skipped.
    """
    lines = []
    for message in messages:
        content = message.content
        if isinstance(content, TextContent):
            lines.append(content.text)
        elif isinstance(content, PartsContent):
            lines.extend(content.texts())
    return "".join(line + "\n" for line in lines)


def messages_to_json(messages: Sequence[Message]) -> str:
    return json.dumps([m.to_dict() for m in messages], separators=(",", ":"))


def format_tools_as_json(tools: Sequence[Tool]) -> str:
    """Serialize tool definitions for token counting; empty string if none."""
    if not tools:
        return ""
    return json.dumps([t.to_dict() for t in tools], separators=(",", ":"))


def format_tool_choice_as_json(tool_choice: Optional[ToolChoice]) -> str:
    if tool_choice is None:
        return ""
    return json.dumps(tool_choice.to_dict(), separators=(",", ":"))


def estimate_response_tokens(model: str, input_tokens: int) -> int:
    """Rough guess of the response length for a model.

    This is a heuristic, not a measurement.

    Args:
        model: Model identifier
        input_tokens: Number of input tokens

    Returns:
        Estimated number of response tokens
    """
    if "gpt-4" in model:
        return input_tokens
    if "gpt-3.5" in model:
        return input_tokens // 2
    if "claude" in model:
        if "opus" in model:
            return input_tokens * 2
        if "sonnet" in model:
            return input_tokens
        return input_tokens // 2
    if "gemini" in model:
        if "ultra" in model:
            return input_tokens * 3 // 2
        return input_tokens // 2
    return input_tokens // 2
