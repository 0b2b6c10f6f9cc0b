"""
Gemini SDK client wrapper.

Works with any Gemini client object; responses expose usage under
usage_metadata (SDK objects) or usageMetadata (REST JSON).
"""

from typing import Any, Optional

from ..core.pricing import ModelPricing, PricingTable
from ..providers import gemini as gemini_profile
from .base import SDKClientWrapper

GEMINI_PRO = "gemini-pro"
GEMINI_ULTRA = "gemini-ultra"
GEMINI_15_PRO = "gemini-1.5-pro"
GEMINI_15_FLASH = "gemini-1.5-flash"


class GeminiSDKWrapper(SDKClientWrapper):
    """Wrapper around a caller-supplied Gemini client."""

    PROVIDER_NAME = gemini_profile.NAME
    USAGE_FIELDS = gemini_profile.PROFILE.usage_fields
    ID_FIELD = ("responseId", "response_id")
    MODEL_FIELD = ("modelVersion", "model_version")
    PRICING = {
        GEMINI_PRO: ModelPricing(0.00000025, 0.0000005, "USD"),
        GEMINI_ULTRA: ModelPricing(0.00001, 0.00003, "USD"),
        GEMINI_15_PRO: ModelPricing(0.0000035, 0.0000105, "USD"),
        GEMINI_15_FLASH: ModelPricing(0.00000035, 0.00000105, "USD"),
    }

    def __init__(self, client: Any, pricing: Optional[PricingTable] = None):
        """Initialize Gemini wrapper.

        Args:
            client: Gemini client instance (required)
            pricing: Pricing table to push fetched prices into

        Raises:
            ValueError: If client is None
        """
        if client is None:
            raise ValueError("client is required")
        super().__init__(pricing)
        self.client = client

    def get_client(self) -> Any:
        return self.client
