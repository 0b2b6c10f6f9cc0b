"""
OpenAI SDK client wrapper.

Reads usage from chat completions and can run a tracked chat call.
"""

from typing import Any, Dict, List, Optional, Tuple

from openai import OpenAI

from ..core.models import UsageMetrics
from ..core.pricing import ModelPricing, PricingTable
from ..providers import openai as openai_profile
from ..storage.repository import UsageRepository
from .base import SDKClientWrapper

GPT35_TURBO = "gpt-3.5-turbo"
GPT35_TURBO_16K = "gpt-3.5-turbo-16k"
GPT4 = "gpt-4"
GPT4_TURBO = "gpt-4-turbo"
GPT4O = "gpt-4o"


class OpenAISDKWrapper(SDKClientWrapper):
    """Wrapper around the OpenAI SDK client.

    Accepts ChatCompletion objects or dicts with the same JSON shape.
    """

    PROVIDER_NAME = openai_profile.NAME
    USAGE_FIELDS = openai_profile.PROFILE.usage_fields
    REQUEST_ID_FIELD = ("system_fingerprint", "system_fingerprint")
    PRICING = {
        GPT35_TURBO: ModelPricing(0.0000015, 0.000002, "USD"),
        GPT35_TURBO_16K: ModelPricing(0.000003, 0.000004, "USD"),
        GPT4: ModelPricing(0.00003, 0.00006, "USD"),
        GPT4_TURBO: ModelPricing(0.00001, 0.00003, "USD"),
        GPT4O: ModelPricing(0.00001, 0.00003, "USD"),
    }

    def __init__(
        self,
        pricing: Optional[PricingTable] = None,
        client: Optional[OpenAI] = None,
        api_key: Optional[str] = None,
        repository: Optional[UsageRepository] = None
    ):
        """Initialize OpenAI wrapper.

        Args:
            pricing: Pricing table to push fetched prices into
            client: Existing OpenAI client (created from api_key if omitted)
            api_key: API key for a new client; the SDK reads OPENAI_API_KEY
                when this is None
            repository: Optional usage ledger for tracked chat calls
        """
        super().__init__(pricing)
        self.client = client if client is not None else OpenAI(api_key=api_key)
        self.repository = repository

    def get_client(self) -> OpenAI:
        return self.client

    def chat(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        **kwargs: Any
    ) -> Tuple[Any, UsageMetrics]:
        """Create a chat completion and track its usage.

        Args:
            model: OpenAI model name (required)
            messages: List of message dictionaries (required)
            temperature: Sampling temperature (optional)
            max_tokens: Maximum tokens to generate (optional)
            **kwargs: Additional OpenAI parameters

        Returns:
            The unchanged OpenAI response and its usage metrics

        Raises:
            ValueError: If model or messages is missing
            OpenAI API errors: Propagated without modification
            TokenTrackerError: If usage cannot be read or priced
        """
        if not model or not model.strip():
            raise ValueError("model is required and cannot be empty")
        if not messages:
            raise ValueError("messages is required and cannot be empty")

        response = self.client.chat.completions.create(
            model=model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
            **kwargs
        )

        metrics = self.track_api_call(model, response)
        if self.repository is not None:
            self.repository.record(metrics)

        return response, metrics
