"""
Anthropic SDK client wrapper.

Reads usage from Messages API responses.
"""

from typing import Optional

import anthropic

from ..core.pricing import ModelPricing, PricingTable
from ..providers import anthropic as anthropic_profile
from .base import SDKClientWrapper

CLAUDE_HAIKU = "claude-3-haiku"
CLAUDE_SONNET = "claude-3-sonnet"
CLAUDE_OPUS = "claude-3-opus"
CLAUDE_HAIKU_20240307 = "claude-3-haiku@20240307"


class AnthropicSDKWrapper(SDKClientWrapper):
    """Wrapper around the Anthropic SDK client.

    Accepts anthropic Message objects or dicts with the same JSON shape.
    """

    PROVIDER_NAME = anthropic_profile.NAME
    USAGE_FIELDS = anthropic_profile.PROFILE.usage_fields
    PRICING = {
        CLAUDE_HAIKU: ModelPricing(0.00000025, 0.00000125, "USD"),
        CLAUDE_SONNET: ModelPricing(0.000003, 0.000015, "USD"),
        CLAUDE_OPUS: ModelPricing(0.000015, 0.000075, "USD"),
        CLAUDE_HAIKU_20240307: ModelPricing(0.00000025, 0.00000125, "USD"),
    }

    def __init__(
        self,
        pricing: Optional[PricingTable] = None,
        client: Optional[anthropic.Anthropic] = None,
        api_key: Optional[str] = None
    ):
        """Initialize Anthropic wrapper.

        Args:
            pricing: Pricing table to push fetched prices into
            client: Existing Anthropic client (created from api_key if omitted)
            api_key: API key for a new client; the SDK reads
                ANTHROPIC_API_KEY when this is None
        """
        super().__init__(pricing)
        self.client = client if client is not None else anthropic.Anthropic(api_key=api_key)

    def get_client(self) -> anthropic.Anthropic:
        return self.client
