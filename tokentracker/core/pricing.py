"""
Pricing calculations and rate management.

Holds per-token prices for every (provider, model) pair and computes the
cost of a call from its token counts.
"""

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

from .errors import ErrorKind, TokenTrackerError
from .models import Price
from .rwlock import ReadWriteLock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelPricing:
    """Per-token pricing for a specific model."""
    input_price_per_token: float
    output_price_per_token: float
    currency: str = "USD"

    def __post_init__(self):
        """Validate prices are finite and positive, and currency is set."""
        if not math.isfinite(self.input_price_per_token) or self.input_price_per_token <= 0:
            raise ValueError("input_price_per_token must be a finite number > 0")
        if not math.isfinite(self.output_price_per_token) or self.output_price_per_token <= 0:
            raise ValueError("output_price_per_token must be a finite number > 0")
        if not self.currency:
            raise ValueError("currency is required")


class PricingSource(ABC):
    """Anything that can report current prices for a provider's models."""

    @abstractmethod
    def fetch_current_pricing(self) -> Dict[str, ModelPricing]:
        """Current pricing keyed by model identifier."""


class ProviderPricing:
    """Pricing entries of one provider, guarded by their own lock."""

    def __init__(self, provider: str, models: Optional[Mapping[str, ModelPricing]] = None):
        self.provider = provider
        self._models: Dict[str, ModelPricing] = dict(models or {})
        self._lock = ReadWriteLock()

    def get(self, model: str) -> Optional[ModelPricing]:
        with self._lock.read():
            return self._models.get(model)

    def set(self, model: str, pricing: ModelPricing) -> None:
        with self._lock.write():
            self._models[model] = pricing

    def replace(self, models: Mapping[str, ModelPricing]) -> None:
        """Swap in a complete set of model prices in one step."""
        new_models = dict(models)
        with self._lock.write():
            self._models = new_models

    def snapshot(self) -> Dict[str, ModelPricing]:
        with self._lock.read():
            return dict(self._models)


class PricingTable:
    """Runtime-mutable pricing table for all providers.

    Each provider's entries are locked independently so price lookups for
    one provider never wait on updates to another.
    """

    def __init__(self, prices: Optional[Mapping[str, Mapping[str, ModelPricing]]] = None):
        self._providers: Dict[str, ProviderPricing] = {}
        self._lock = ReadWriteLock()
        for provider, models in (prices or {}).items():
            self._providers[provider] = ProviderPricing(provider, models)

    def for_provider(self, provider: str) -> ProviderPricing:
        """Get the pricing entries of a provider, creating them if needed."""
        with self._lock.read():
            entry = self._providers.get(provider)
        if entry is not None:
            return entry
        with self._lock.write():
            return self._providers.setdefault(provider, ProviderPricing(provider))

    def get_model_pricing(self, provider: str, model: str) -> Optional[ModelPricing]:
        """Get pricing for a model, or None if the pair is unknown."""
        with self._lock.read():
            entry = self._providers.get(provider)
        if entry is None:
            return None
        return entry.get(model)

    def set_model_pricing(self, provider: str, model: str, pricing: ModelPricing) -> None:
        self.for_provider(provider).set(model, pricing)

    def replace_provider_pricing(self, provider: str, models: Mapping[str, ModelPricing]) -> None:
        self.for_provider(provider).replace(models)
        logger.info("Pricing replaced for %s (%d models)", provider, len(models))

    def providers(self) -> List[str]:
        with self._lock.read():
            return sorted(self._providers)

    def to_dict(self) -> Dict[str, Dict[str, ModelPricing]]:
        """Copy of the full table, provider -> model -> pricing."""
        with self._lock.read():
            entries = list(self._providers.values())
        return {entry.provider: entry.snapshot() for entry in entries}


# Default prices per token, USD
DEFAULT_PRICING: Dict[str, Dict[str, ModelPricing]] = {
    "openai": {
        "gpt-3.5-turbo": ModelPricing(0.0000015, 0.000002, "USD"),
        "gpt-3.5-turbo-16k": ModelPricing(0.000003, 0.000004, "USD"),
        "gpt-4": ModelPricing(0.00003, 0.00006, "USD"),
        "gpt-4-turbo": ModelPricing(0.00001, 0.00003, "USD"),
        "gpt-4o": ModelPricing(0.00001, 0.00003, "USD"),
    },
    "anthropic": {
        "claude-3-haiku": ModelPricing(0.00000025, 0.00000125, "USD"),
        "claude-3-sonnet": ModelPricing(0.000003, 0.000015, "USD"),
        "claude-3-opus": ModelPricing(0.000015, 0.000075, "USD"),
    },
    "gemini": {
        "gemini-pro": ModelPricing(0.00000025, 0.0000005, "USD"),
        "gemini-ultra": ModelPricing(0.00001, 0.00003, "USD"),
        "gemini-1.5-pro": ModelPricing(0.0000035, 0.0000105, "USD"),
        "gemini-1.5-flash": ModelPricing(0.00000035, 0.00000105, "USD"),
    },
}


def default_pricing_table() -> PricingTable:
    """Create a pricing table pre-filled with the default prices."""
    return PricingTable(DEFAULT_PRICING)


def calculate_price(pricing: ModelPricing, input_tokens: int, output_tokens: int) -> Price:
    """Calculate the cost of a call from its token counts.

    No rounding is applied; callers needing rounding do it themselves.

    Args:
        pricing: Per-token prices of the model
        input_tokens: Number of input tokens
        output_tokens: Number of output tokens

    Returns:
        Price with input, output and total cost
    """
    if input_tokens < 0 or output_tokens < 0:
        raise TokenTrackerError(ErrorKind.INVALID_PARAMS, "token counts must be >= 0")
    input_cost = input_tokens * pricing.input_price_per_token
    output_cost = output_tokens * pricing.output_price_per_token
    return Price.of(input_cost, output_cost, pricing.currency)
