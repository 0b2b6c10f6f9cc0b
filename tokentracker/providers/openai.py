"""OpenAI provider profile.

Text is counted with tiktoken: cl100k_base for chat models, r50k_base for
text-embedding-ada. Chat messages are counted from their JSON
serialization, plus a small fixed overhead for the chat format.
"""

import functools
from typing import Optional

import tiktoken

from ..core.errors import ErrorKind, TokenTrackerError
from ..core.pricing import DEFAULT_PRICING, PricingTable
from ..core.token_counter import TokenCache
from .base import ConfiguredProvider, MessageEncoding, ModelInfo, VendorProfile
from .responses import UsageFieldMap

NAME = "openai"

_CHAT = ("text", "chat", "function-calling")

MODELS = {
    "gpt-3.5-turbo": ModelInfo(NAME, "gpt-3.5-turbo", 4096, "GPT-3.5 Turbo", _CHAT),
    "gpt-3.5-turbo-16k": ModelInfo(NAME, "gpt-3.5-turbo-16k", 16384, "GPT-3.5 Turbo with 16k context", _CHAT),
    "gpt-4": ModelInfo(NAME, "gpt-4", 8192, "GPT-4", _CHAT),
    "gpt-4-turbo": ModelInfo(NAME, "gpt-4-turbo", 128000, "GPT-4 Turbo", _CHAT),
    "gpt-4-32k": ModelInfo(NAME, "gpt-4-32k", 32768, "GPT-4 with 32k context", _CHAT),
    "gpt-4o": ModelInfo(NAME, "gpt-4o", 128000, "GPT-4o multimodal model", _CHAT + ("image-understanding",)),
    "text-embedding-ada": ModelInfo(NAME, "text-embedding-ada", 8191, "Ada text embeddings", ("embedding",)),
}

DEFAULT_ENCODING = "cl100k_base"
EMBEDDING_ENCODING = "r50k_base"


def encoding_name_for_model(model: str) -> str:
    if model == "text-embedding-ada":
        return EMBEDDING_ENCODING
    return DEFAULT_ENCODING


@functools.lru_cache(maxsize=None)
def _load_encoding(name: str) -> tiktoken.Encoding:
    return tiktoken.get_encoding(name)


def approximate_tokens(model: str, text: str) -> int:
    """Number of tokens in text under the model's tiktoken encoding.

    Raises:
        TokenTrackerError: TOKENIZATION_FAILED if the encoding cannot be
            loaded (tiktoken fetches encoding files on first use)
    """
    name = encoding_name_for_model(model)
    try:
        encoding = _load_encoding(name)
    except Exception as e:
        raise TokenTrackerError(
            ErrorKind.TOKENIZATION_FAILED,
            f"failed to get encoding {name}",
            e
        ) from e
    # Special-token text such as <|endoftext|> is counted as plain text
    return len(encoding.encode(text, disallowed_special=()))


PROFILE = VendorProfile(
    name=NAME,
    models=MODELS,
    approximate_tokens=approximate_tokens,
    usage_fields=UsageFieldMap(
        container_key="usage",
        input_key="prompt_tokens",
        output_key="completion_tokens",
        container_attr="usage",
        input_attr="prompt_tokens",
        output_attr="completion_tokens",
    ),
    default_pricing=DEFAULT_PRICING[NAME],
    message_encoding=MessageEncoding.JSON,
    format_overhead=3,
)


def openai_provider(pricing: PricingTable, cache: Optional[TokenCache] = None) -> ConfiguredProvider:
    """Create the OpenAI provider."""
    return ConfiguredProvider(PROFILE, pricing, cache)
