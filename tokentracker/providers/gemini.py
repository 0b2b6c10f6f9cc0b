"""Gemini provider profile (Google models).

Usage lives under usageMetadata in REST/JSON responses and under
usage_metadata on SDK response objects.
"""

from typing import Optional

from ..core.pricing import DEFAULT_PRICING, PricingTable
from ..core.token_counter import TokenCache
from .base import ConfiguredProvider, ModelInfo, VendorProfile
from .responses import UsageFieldMap

NAME = "gemini"

_CAPABILITIES = ("text", "chat", "image-understanding")

MODELS = {
    "gemini-pro": ModelInfo(NAME, "gemini-pro", 32760, "Gemini Pro", _CAPABILITIES),
    "gemini-ultra": ModelInfo(NAME, "gemini-ultra", 32760, "Gemini Ultra", _CAPABILITIES),
    "gemini-1.5-pro": ModelInfo(NAME, "gemini-1.5-pro", 1048576, "Gemini 1.5 Pro", _CAPABILITIES),
    "gemini-1.5-flash": ModelInfo(NAME, "gemini-1.5-flash", 1048576, "Gemini 1.5 Flash", _CAPABILITIES),
}


def approximate_tokens(model: str, text: str) -> int:
    """Four characters per token, plus a fixed overhead of 3."""
    return len(text) // 4 + 3


PROFILE = VendorProfile(
    name=NAME,
    models=MODELS,
    approximate_tokens=approximate_tokens,
    usage_fields=UsageFieldMap(
        container_key="usageMetadata",
        input_key="promptTokenCount",
        output_key="candidatesTokenCount",
        container_attr="usage_metadata",
        input_attr="prompt_token_count",
        output_attr="candidates_token_count",
    ),
    default_pricing=DEFAULT_PRICING[NAME],
    per_message_overhead=4,
)


def gemini_provider(pricing: PricingTable, cache: Optional[TokenCache] = None) -> ConfiguredProvider:
    """Create the Gemini provider."""
    return ConfiguredProvider(PROFILE, pricing, cache)
