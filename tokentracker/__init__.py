"""
Token counting, pricing and usage tracking for LLM provider calls.

Typical use:

    tracker = create_default_tracker()
    count = tracker.count_tokens(TokenCountParams(model="gpt-4", text="Hello"))
    price = tracker.calculate_price("gpt-4", count.input_tokens, 100)
"""

from .config.loader import TrackerConfig, load_tracker_config, save_tracker_config
from .core.errors import ErrorKind, TokenTrackerError, is_kind
from .core.models import (
    CallParams,
    ContentPart,
    Message,
    Price,
    TokenCount,
    TokenCountParams,
    TokenCountSource,
    Tool,
    ToolChoice,
    UsageMetrics,
)
from .core.pricing import ModelPricing, PricingTable
from .core.registry import ProviderRegistry
from .core.token_counter import TokenCache, TokenUsage
from .core.tracker import (
    EstimationFailurePolicy,
    PricingSweepPolicy,
    TokenTracker,
    create_default_tracker,
)
from .providers.base import ConfiguredProvider, ModelInfo, Provider, VendorProfile

__all__ = [
    "TokenTracker",
    "create_default_tracker",
    "EstimationFailurePolicy",
    "PricingSweepPolicy",
    "TrackerConfig",
    "load_tracker_config",
    "save_tracker_config",
    "ErrorKind",
    "TokenTrackerError",
    "is_kind",
    "CallParams",
    "ContentPart",
    "Message",
    "Price",
    "TokenCount",
    "TokenCountParams",
    "TokenCountSource",
    "Tool",
    "ToolChoice",
    "UsageMetrics",
    "ModelPricing",
    "PricingTable",
    "ProviderRegistry",
    "TokenCache",
    "TokenUsage",
    "Provider",
    "ConfiguredProvider",
    "VendorProfile",
    "ModelInfo",
]
