"""
LLM vendor providers.

Built-in vendors are ConfiguredProvider instances driven by a VendorProfile.
"""

from .anthropic import anthropic_provider
from .base import ConfiguredProvider, MessageEncoding, ModelInfo, Provider, VendorProfile
from .gemini import gemini_provider
from .openai import openai_provider
from .responses import RawResponse, ResponseKind, UsageFieldMap, classify_response

__all__ = [
    "Provider",
    "ConfiguredProvider",
    "VendorProfile",
    "MessageEncoding",
    "ModelInfo",
    "UsageFieldMap",
    "RawResponse",
    "ResponseKind",
    "classify_response",
    "openai_provider",
    "anthropic_provider",
    "gemini_provider",
]
