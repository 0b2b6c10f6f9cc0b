"""
SDK client wrappers.

Adapters that connect vendor SDK clients to the token tracker.
"""

from .anthropic_client import AnthropicSDKWrapper
from .base import SDKClientWrapper
from .gemini_client import GeminiSDKWrapper
from .openai_client import OpenAISDKWrapper

__all__ = [
    "SDKClientWrapper",
    "OpenAISDKWrapper",
    "AnthropicSDKWrapper",
    "GeminiSDKWrapper",
]
