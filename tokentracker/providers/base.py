"""Provider contract and the generic profile-driven provider.

Every vendor is served by a Provider. The built-in vendors share one
implementation, ConfiguredProvider, which reads everything vendor-specific
from a VendorProfile:
- Model allow-list and model metadata
- Token approximation for plain text and chat messages
- Response-length estimate
- Where usage numbers live in a vendor response
- Default pricing
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Mapping, Optional, Tuple

from ..core.errors import ErrorKind, TokenTrackerError
from ..core.models import Price, TokenCount, TokenCountParams
from ..core.pricing import ModelPricing, PricingSource, PricingTable, calculate_price
from ..core.token_counter import (
    TokenCache,
    estimate_response_tokens,
    extract_text_from_messages,
    format_tool_choice_as_json,
    format_tools_as_json,
    messages_to_json,
)
from .responses import UsageFieldMap, classify_response, read_token_count

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelInfo:
    """Descriptive metadata for a model."""
    provider: str
    name: str
    context_window: int
    description: str
    capabilities: Tuple[str, ...] = ()


class Provider(ABC):
    """Abstract base for LLM vendor providers.

    A provider answers whether it supports a model, counts tokens, prices
    calls and reads usage out of vendor responses.
    """

    @abstractmethod
    def name(self) -> str:
        """Stable provider identifier (openai, anthropic, gemini, ...)."""

    @abstractmethod
    def supports_model(self, model: str) -> bool:
        """Whether the model is on this provider's allow-list."""

    @abstractmethod
    def count_tokens(self, params: TokenCountParams) -> TokenCount:
        """Count input tokens, and estimate response tokens if requested.

        Raises:
            TokenTrackerError: INVALID_PARAMS if model is empty or neither
                text nor messages is given
        """

    @abstractmethod
    def calculate_price(self, model: str, input_tokens: int, output_tokens: int) -> Price:
        """Price a call.

        Raises:
            TokenTrackerError: PRICING_NOT_FOUND if the model has no pricing
        """

    @abstractmethod
    def set_sdk_client(self, client: Any) -> None:
        """Store a vendor SDK client handle for later use."""

    @abstractmethod
    def get_model_info(self, model: str) -> ModelInfo:
        """Return model metadata.

        Raises:
            TokenTrackerError: INVALID_MODEL if the model is unknown
        """

    @abstractmethod
    def extract_token_usage_from_response(self, response: Any) -> TokenCount:
        """Read token usage out of a vendor response.

        Raises:
            TokenTrackerError: INVALID_PARAMS if the response is malformed
        """

    @abstractmethod
    def update_pricing(self) -> None:
        """Refresh pricing for all models of this provider.

        Raises:
            TokenTrackerError: PRICING_UPDATE_FAILED; no entry is changed then
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name()}>"


class MessageEncoding(Enum):
    """How chat messages are turned into text before approximation."""
    TEXT = "text"  # message text only, one line per fragment
    JSON = "json"  # full JSON serialization of the messages


def _default_estimate(model: str, input_tokens: int) -> int:
    return estimate_response_tokens(model, input_tokens)


@dataclass(frozen=True)
class VendorProfile:
    """Everything vendor-specific a ConfiguredProvider needs."""
    name: str
    models: Mapping[str, ModelInfo]
    approximate_tokens: Callable[[str, str], int]  # (model, text) -> tokens
    usage_fields: UsageFieldMap
    default_pricing: Mapping[str, ModelPricing] = field(default_factory=dict)
    message_encoding: MessageEncoding = MessageEncoding.TEXT
    per_message_overhead: int = 0
    format_overhead: int = 0
    estimate_response: Callable[[str, int], int] = _default_estimate


class ConfiguredProvider(Provider):
    """Provider whose behavior is entirely described by a VendorProfile."""

    def __init__(
        self,
        profile: VendorProfile,
        pricing: PricingTable,
        cache: Optional[TokenCache] = None
    ):
        """Initialize provider.

        Args:
            profile: Vendor-specific configuration
            pricing: Pricing table holding this provider's model prices
            cache: Optional token-count cache shared between providers
        """
        if not profile.name:
            raise ValueError("profile name is required and cannot be empty")
        self.profile = profile
        self._pricing = pricing.for_provider(profile.name)
        self._cache = cache
        self._sdk_client: Any = None
        self._lock = threading.Lock()

    def name(self) -> str:
        return self.profile.name

    def supports_model(self, model: str) -> bool:
        return bool(model) and model in self.profile.models

    def supported_models(self) -> List[str]:
        return sorted(self.profile.models)

    @property
    def sdk_client(self) -> Any:
        with self._lock:
            return self._sdk_client

    def set_sdk_client(self, client: Any) -> None:
        with self._lock:
            self._sdk_client = client

    def count_tokens(self, params: TokenCountParams) -> TokenCount:
        if not params.model:
            raise TokenTrackerError(ErrorKind.INVALID_PARAMS, "model is required")

        if params.text is not None:
            input_tokens = self._approximate(params.model, params.text)
        elif params.messages:
            input_tokens = self._count_message_tokens(params)
        else:
            raise TokenTrackerError(
                ErrorKind.INVALID_PARAMS,
                "either text or messages must be provided"
            )

        response_tokens = 0
        if params.count_response_tokens:
            response_tokens = self.profile.estimate_response(params.model, input_tokens)

        return TokenCount.of(input_tokens, response_tokens)

    def calculate_price(self, model: str, input_tokens: int, output_tokens: int) -> Price:
        if not model:
            raise TokenTrackerError(ErrorKind.INVALID_PARAMS, "model is required")
        pricing = self._pricing.get(model)
        if pricing is None:
            raise TokenTrackerError(
                ErrorKind.PRICING_NOT_FOUND,
                f"pricing not found for model: {model}"
            )
        return calculate_price(pricing, input_tokens, output_tokens)

    def get_model_info(self, model: str) -> ModelInfo:
        info = self.profile.models.get(model)
        if info is None:
            raise TokenTrackerError(
                ErrorKind.INVALID_MODEL,
                f"model info not found for: {model}"
            )
        return info

    def extract_token_usage_from_response(self, response: Any) -> TokenCount:
        return read_token_count(classify_response(response), self.profile.usage_fields)

    def update_pricing(self) -> None:
        client = self.sdk_client
        if isinstance(client, PricingSource):
            try:
                prices = client.fetch_current_pricing()
            except Exception as e:
                raise TokenTrackerError(
                    ErrorKind.PRICING_UPDATE_FAILED,
                    f"failed to fetch pricing for {self.name()}",
                    e
                ) from e
            source = "sdk client"
        else:
            prices = self.profile.default_pricing
            source = "defaults"

        if not prices:
            raise TokenTrackerError(
                ErrorKind.PRICING_UPDATE_FAILED,
                f"no pricing available for {self.name()}"
            )
        for model, pricing in prices.items():
            if not isinstance(pricing, ModelPricing):
                raise TokenTrackerError(
                    ErrorKind.PRICING_UPDATE_FAILED,
                    f"invalid pricing entry for {self.name()}/{model}"
                )

        self._pricing.replace(prices)
        logger.info("Updated pricing for %s from %s (%d models)", self.name(), source, len(prices))

    def _approximate(self, model: str, text: str) -> int:
        if self._cache is not None:
            cached = self._cache.get(self.name(), model, text)
            if cached is not None:
                logger.debug("Token cache hit for %s/%s", self.name(), model)
                return cached
        count = self.profile.approximate_tokens(model, text)
        if self._cache is not None:
            self._cache.set(self.name(), model, text, count)
        return count

    def _count_message_tokens(self, params: TokenCountParams) -> int:
        try:
            if self.profile.message_encoding == MessageEncoding.JSON:
                message_text = messages_to_json(params.messages)
            else:
                message_text = extract_text_from_messages(params.messages)
            tools_text = format_tools_as_json(params.tools)
            tool_choice_text = format_tool_choice_as_json(params.tool_choice)
        except (TypeError, ValueError) as e:
            raise TokenTrackerError(
                ErrorKind.TOKENIZATION_FAILED,
                "failed to serialize messages or tools",
                e
            ) from e

        tokens = self._approximate(params.model, message_text)
        tokens += len(params.messages) * self.profile.per_message_overhead
        if tools_text:
            tokens += self._approximate(params.model, tools_text)
        if tool_choice_text:
            tokens += self._approximate(params.model, tool_choice_text)
        return tokens + self.profile.format_overhead
