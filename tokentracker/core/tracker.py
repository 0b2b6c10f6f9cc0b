"""
Token tracking orchestration.

The TokenTracker is the single entry point callers use: it resolves a model
to its provider, counts tokens, prices calls and assembles usage metrics.

Pipeline for a tracked call:
1. Count input tokens
2. Take output tokens from the response, or estimate them
3. Price the call
4. Assemble UsageMetrics (and append them to the ledger if enabled)
"""

import logging
import threading
from dataclasses import replace
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, List, Optional, Tuple

from ..config.loader import TrackerConfig
from ..providers.anthropic import anthropic_provider
from ..providers.base import ModelInfo, Provider
from ..providers.gemini import gemini_provider
from ..providers.openai import openai_provider
from ..storage.repository import UsageRepository
from .errors import ErrorKind, TokenTrackerError
from .models import CallParams, Price, TokenCount, TokenCountParams, TokenCountSource, UsageMetrics
from .registry import ProviderRegistry
from .token_counter import TokenCache

if TYPE_CHECKING:
    from ..sdk.base import SDKClientWrapper

logger = logging.getLogger(__name__)


class EstimationFailurePolicy(Enum):
    """What track_usage does when output-token estimation fails."""
    ZERO = "zero"    # Count zero output tokens and carry on
    RAISE = "raise"  # Propagate the estimation error


class PricingSweepPolicy(Enum):
    """How update_all_pricing reports failures."""
    LAST_ERROR = "last_error"  # Keep only the most recent failure as cause
    COLLECT = "collect"        # Also attach every (provider, error) pair


class PricingScheduler:
    """Runs a pricing refresh periodically on a background timer."""

    def __init__(self, refresh: Callable[[], None], interval: timedelta):
        if interval.total_seconds() <= 0:
            raise ValueError("interval must be > 0")
        self._refresh = refresh
        self._interval = interval.total_seconds()
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()
        self._running = False

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            self._running = True
            self._schedule()
        logger.info("Automatic pricing updates every %.0f seconds", self._interval)

    def stop(self) -> None:
        with self._lock:
            self._running = False
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        logger.info("Automatic pricing updates stopped")

    def _schedule(self) -> None:
        self._timer = threading.Timer(self._interval, self._run)
        self._timer.daemon = True
        self._timer.start()

    def _run(self) -> None:
        try:
            self._refresh()
        except TokenTrackerError as e:
            # Background thread: report and keep the schedule alive
            logger.warning("Scheduled pricing update failed: %s", e)
        with self._lock:
            if self._running:
                self._schedule()


class TokenTracker:
    """Counts tokens, prices calls and tracks usage across providers.

    Providers are chosen at runtime through the registry by asking each
    one whether it supports the requested model.
    """

    def __init__(
        self,
        config: Optional[TrackerConfig] = None,
        registry: Optional[ProviderRegistry] = None,
        cache: Optional[TokenCache] = None,
        estimation_policy: EstimationFailurePolicy = EstimationFailurePolicy.ZERO,
        pricing_sweep_policy: PricingSweepPolicy = PricingSweepPolicy.LAST_ERROR,
        repository: Optional[UsageRepository] = None
    ):
        """Initialize token tracker.

        Args:
            config: Tracker configuration (defaults to built-in pricing)
            registry: Provider registry (defaults to an empty one)
            cache: Token-count cache handed to providers built by this tracker
            estimation_policy: Handling of output-token estimation failures
            pricing_sweep_policy: Failure reporting of update_all_pricing
            repository: Usage ledger; giving one enables usage logging
                at its path. Otherwise the ledger follows
                config.usage_log_enabled and config.usage_log_path.
        """
        self.config = config if config is not None else TrackerConfig()
        self.registry = registry if registry is not None else ProviderRegistry()
        self.cache = cache if cache is not None else TokenCache()
        self.estimation_policy = estimation_policy
        self.pricing_sweep_policy = pricing_sweep_policy
        self.repository = repository
        if repository is not None:
            self.config.usage_log_enabled = True
            self.config.usage_log_path = repository.db_path
        self._repository_lock = threading.Lock()
        self._scheduler: Optional[PricingScheduler] = None

    def register_provider(self, provider: Provider) -> None:
        """Register a provider with the tracker."""
        self.registry.register(provider)

    def providers(self) -> List[Provider]:
        return self.registry.all()

    def _resolve(self, model: str) -> Provider:
        if not model:
            raise TokenTrackerError(ErrorKind.INVALID_PARAMS, "model is required")
        provider = self.registry.get_for_model(model)
        if provider is None:
            raise TokenTrackerError(
                ErrorKind.PROVIDER_NOT_FOUND,
                f"no provider found for model: {model}"
            )
        logger.debug("Resolved model %s to provider %s", model, provider.name())
        return provider

    def _get_named(self, provider_name: str) -> Provider:
        provider = self.registry.get(provider_name)
        if provider is None:
            raise TokenTrackerError(
                ErrorKind.PROVIDER_NOT_FOUND,
                f"no provider found with name: {provider_name}"
            )
        return provider

    def count_tokens(self, params: TokenCountParams) -> TokenCount:
        """Count tokens for a text or chat messages.

        Raises:
            TokenTrackerError: INVALID_PARAMS if model is empty,
                PROVIDER_NOT_FOUND if no provider supports the model
        """
        return self._resolve(params.model).count_tokens(params)

    def calculate_price(self, model: str, input_tokens: int, output_tokens: int) -> Price:
        """Calculate price based on token usage."""
        return self._resolve(model).calculate_price(model, input_tokens, output_tokens)

    def get_model_info(self, model: str) -> ModelInfo:
        return self._resolve(model).get_model_info(model)

    def track_usage(self, call_params: CallParams, response: Any = None) -> UsageMetrics:
        """Track full usage for an LLM call.

        Output tokens come from the response when it implements
        TokenCountSource, otherwise they are estimated.

        Args:
            call_params: Model, token count parameters and call start time
            response: The vendor response, if any

        Returns:
            UsageMetrics for the call

        Raises:
            TokenTrackerError: From counting or pricing; no partial metrics
        """
        input_count = self.count_tokens(call_params.params)

        if isinstance(response, TokenCountSource):
            output_tokens = response.get_token_count()
        else:
            output_tokens = self._estimate_output_tokens(call_params.params)

        price = self.calculate_price(call_params.model, input_count.input_tokens, output_tokens)
        duration = datetime.now() - call_params.start_time
        provider = self._resolve(call_params.model)

        metrics = UsageMetrics(
            token_count=TokenCount.of(input_count.input_tokens, output_tokens),
            price=price,
            duration=duration,
            timestamp=datetime.now(),
            model=call_params.model,
            provider=provider.name()
        )

        repository = self._usage_repository()
        if repository is not None:
            repository.record(metrics)

        return metrics

    def _estimate_output_tokens(self, params: TokenCountParams) -> int:
        try:
            estimate = self.count_tokens(replace(params, count_response_tokens=True))
        except TokenTrackerError as e:
            if self.estimation_policy == EstimationFailurePolicy.RAISE:
                raise
            logger.warning("Output token estimation failed, using 0: %s", e)
            return 0
        return estimate.response_tokens

    def _usage_repository(self) -> Optional[UsageRepository]:
        """Ledger matching the current config, or None while logging is off."""
        if not self.config.usage_log_enabled:
            return None
        path = self.config.usage_log_path
        with self._repository_lock:
            if self.repository is None or self.repository.db_path != path:
                logger.info("Recording usage to %s", path)
                self.repository = UsageRepository(path)
            return self.repository

    def enable_usage_logging(self, path: str) -> None:
        """Start recording tracked usage to the ledger at path."""
        self.config.enable_usage_logging(path)

    def disable_usage_logging(self) -> None:
        self.config.disable_usage_logging()

    def register_sdk_client(self, client: "SDKClientWrapper") -> None:
        """Attach an SDK client to its provider and refresh its pricing.

        Raises:
            TokenTrackerError: PROVIDER_NOT_FOUND if no provider has the
                client's name, PRICING_UPDATE_FAILED if pricing refresh fails
        """
        provider = self._get_named(client.provider_name())
        if client.pricing is None:
            client.pricing = self.config.pricing
        provider.set_sdk_client(client.get_client())
        try:
            client.update_provider_pricing()
        except Exception as e:
            raise TokenTrackerError(
                ErrorKind.PRICING_UPDATE_FAILED,
                "failed to update pricing information",
                e
            ) from e

    def update_all_pricing(self) -> None:
        """Update pricing for every registered provider.

        Every provider is attempted even if earlier ones fail.

        Raises:
            TokenTrackerError: PRICING_UPDATE_FAILED if any provider failed
        """
        failures: List[Tuple[str, Exception]] = []
        for provider in self.registry.all():
            try:
                provider.update_pricing()
            except Exception as e:
                logger.warning("Pricing update failed for %s: %s", provider.name(), e)
                failures.append((provider.name(), e))

        if failures:
            error = TokenTrackerError(
                ErrorKind.PRICING_UPDATE_FAILED,
                "failed to update pricing for one or more providers",
                failures[-1][1]
            )
            if self.pricing_sweep_policy == PricingSweepPolicy.COLLECT:
                error.failures = failures
            raise error

    def track_token_usage(self, provider_name: str, response: Any) -> TokenCount:
        """Extract token usage from a response of a named provider."""
        return self._get_named(provider_name).extract_token_usage_from_response(response)

    def cleanup_cache(self, max_size: int) -> bool:
        return self.cache.cleanup(max_size)

    def enable_automatic_pricing_updates(self, interval: Optional[timedelta] = None) -> None:
        """Refresh all pricing periodically on a background timer."""
        self.disable_automatic_pricing_updates()
        if interval is not None:
            self.config.pricing_update_interval = interval
        self.config.auto_update_pricing = True
        self._scheduler = PricingScheduler(self.update_all_pricing, self.config.pricing_update_interval)
        self._scheduler.start()

    def disable_automatic_pricing_updates(self) -> None:
        self.config.auto_update_pricing = False
        if self._scheduler is not None:
            self._scheduler.stop()
            self._scheduler = None

    def close(self) -> None:
        """Stop background pricing updates."""
        self.disable_automatic_pricing_updates()


def create_default_tracker(config: Optional[TrackerConfig] = None, **kwargs: Any) -> TokenTracker:
    """Build a tracker with the OpenAI, Anthropic and Gemini providers registered.

    The providers share the tracker's pricing table and token cache.
    Automatic pricing updates start if the config asks for them.
    """
    tracker = TokenTracker(config=config, **kwargs)
    for factory in (openai_provider, anthropic_provider, gemini_provider):
        tracker.register_provider(factory(tracker.config.pricing, tracker.cache))
    if tracker.config.auto_update_pricing:
        tracker.enable_automatic_pricing_updates()
    return tracker
