"""
SDK client wrapper contract.

A wrapper adapts one vendor SDK client to the tracker: it names its
provider, reads usage out of SDK responses and supplies current pricing.
"""

import logging
from abc import abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from ..core.errors import ErrorKind, TokenTrackerError
from ..core.models import TokenCount, UsageMetrics
from ..core.pricing import ModelPricing, PricingSource, PricingTable, calculate_price
from ..core.token_counter import TokenUsage
from ..providers.responses import ResponseKind, UsageFieldMap, classify_response, read_token_count

logger = logging.getLogger(__name__)


class SDKClientWrapper(PricingSource):
    """Base class for vendor SDK client wrappers.

    Subclasses set PROVIDER_NAME, USAGE_FIELDS and PRICING, and implement
    get_client(). Fetched prices are pushed into the pricing table given at
    construction.
    """

    PROVIDER_NAME: str = ""
    USAGE_FIELDS: UsageFieldMap
    # Per-token prices, refreshed by hand; there is no vendor pricing API
    PRICING: Mapping[str, ModelPricing] = {}
    # (mapping key, attribute name) of response metadata
    ID_FIELD = ("id", "id")
    MODEL_FIELD = ("model", "model")
    REQUEST_ID_FIELD: Optional[tuple] = None

    def __init__(self, pricing: Optional[PricingTable] = None):
        self.pricing = pricing

    def provider_name(self) -> str:
        return self.PROVIDER_NAME

    @abstractmethod
    def get_client(self) -> Any:
        """The underlying SDK client instance."""

    def get_supported_models(self) -> List[str]:
        return list(self.PRICING)

    def fetch_current_pricing(self) -> Dict[str, ModelPricing]:
        return dict(self.PRICING)

    def extract_token_usage_from_response(self, response: Any) -> TokenUsage:
        """Read token usage and response metadata from an SDK response.

        Accepts the SDK's response object or a plain dict of the same
        JSON shape.

        Raises:
            TokenTrackerError: INVALID_PARAMS if the response is malformed
        """
        raw = classify_response(response)
        count = read_token_count(raw, self.USAGE_FIELDS)
        return TokenUsage(
            prompt_tokens=count.input_tokens,
            completion_tokens=count.response_tokens,
            completion_id=self._read_str(raw.kind, response, self.ID_FIELD),
            model=self._read_str(raw.kind, response, self.MODEL_FIELD),
            request_id=self._read_str(raw.kind, response, self.REQUEST_ID_FIELD),
        )

    @staticmethod
    def _read_str(kind: ResponseKind, response: Any, field: Optional[tuple]) -> Optional[str]:
        if field is None:
            return None
        if kind == ResponseKind.MAPPING:
            value = response.get(field[0])
        else:
            value = getattr(response, field[1], None)
        return value if isinstance(value, str) else None

    def update_provider_pricing(self) -> None:
        """Replace this provider's entries in the pricing table.

        Raises:
            TokenTrackerError: PRICING_UPDATE_FAILED if no pricing table is
                attached or no prices are available
        """
        if self.pricing is None:
            raise TokenTrackerError(
                ErrorKind.PRICING_UPDATE_FAILED,
                f"no pricing table attached to {self.provider_name()} client"
            )
        prices = self.fetch_current_pricing()
        if not prices:
            raise TokenTrackerError(
                ErrorKind.PRICING_UPDATE_FAILED,
                f"no pricing available for {self.provider_name()}"
            )
        self.pricing.replace_provider_pricing(self.provider_name(), prices)

    def track_api_call(self, model: str, response: Any) -> UsageMetrics:
        """Build usage metrics for a completed API call.

        Raises:
            TokenTrackerError: INVALID_PARAMS for a malformed response,
                PRICING_NOT_FOUND if the model has no pricing
        """
        usage = self.extract_token_usage_from_response(response)
        pricing = self.fetch_current_pricing().get(model)
        if pricing is None:
            raise TokenTrackerError(
                ErrorKind.PRICING_NOT_FOUND,
                f"no pricing information found for model: {model}"
            )
        price = calculate_price(pricing, usage.prompt_tokens, usage.completion_tokens)
        logger.debug(
            "Tracked %s call to %s: %d tokens", self.provider_name(), model, usage.total_tokens
        )
        now = datetime.now()
        return UsageMetrics(
            token_count=TokenCount.of(usage.prompt_tokens, usage.completion_tokens),
            price=price,
            duration=now - usage.timestamp,
            timestamp=now,
            model=model,
            provider=self.provider_name()
        )
