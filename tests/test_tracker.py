"""
Unit tests for the token tracker.

Tests provider resolution, usage tracking, SDK client registration,
pricing refresh and background updates.
"""

import json
import os
import shutil
import tempfile
from datetime import datetime, timedelta
from unittest.mock import Mock, patch

import pytest

from tokentracker.config.loader import TrackerConfig
from tokentracker.core.errors import ErrorKind, TokenTrackerError, is_kind
from tokentracker.core.models import CallParams, Price, TokenCount, TokenCountParams, TokenCountSource
from tokentracker.core.pricing import ModelPricing
from tokentracker.core.tracker import (
    EstimationFailurePolicy,
    PricingScheduler,
    PricingSweepPolicy,
    TokenTracker,
    create_default_tracker,
)
from tokentracker.providers.base import ModelInfo, Provider
from tokentracker.sdk.openai_client import OpenAISDKWrapper
from tokentracker.storage.repository import UsageRepository


class MockProvider(Provider):
    """Provider returning fixed counts and prices."""

    def __init__(self, name="mock", models=("mock-model",), update_error=None):
        self._name = name
        self._models = set(models)
        self.update_error = update_error
        self.sdk_client = None
        self.count_calls = []

    def name(self):
        return self._name

    def supports_model(self, model):
        return model in self._models

    def count_tokens(self, params):
        self.count_calls.append(params)
        return TokenCount(100, 50, 150)

    def calculate_price(self, model, input_tokens, output_tokens):
        return Price.of(0.0001, 0.0002, "USD")

    def set_sdk_client(self, client):
        self.sdk_client = client

    def get_model_info(self, model):
        return ModelInfo(self._name, model, 1000, "Mock model")

    def extract_token_usage_from_response(self, response):
        return TokenCount.of(response["in"], response["out"])

    def update_pricing(self):
        if self.update_error is not None:
            raise self.update_error


class CountedResponse(TokenCountSource):
    """Response that knows its own output token count."""

    def __init__(self, tokens):
        self.tokens = tokens

    def get_token_count(self):
        return self.tokens


class TestResolution:
    """Test model to provider resolution."""

    def setup_method(self):
        self.tracker = create_default_tracker()

    def teardown_method(self):
        self.tracker.close()

    def test_default_providers_registered(self):
        assert set(self.tracker.registry.names()) == {"openai", "anthropic", "gemini"}

    @pytest.mark.parametrize("model,expected", [
        ("gpt-4", 4),
        ("claude-3-haiku", 8),
        ("gemini-pro", 6),
    ])
    def test_count_tokens_routes_by_model(self, model, expected):
        """Test each model is counted by its own provider."""
        result = self.tracker.count_tokens(TokenCountParams(model=model, text="This is a test."))
        assert result.input_tokens == expected

    def test_unknown_model(self):
        """Test unknown models raise PROVIDER_NOT_FOUND."""
        with pytest.raises(TokenTrackerError) as exc_info:
            self.tracker.count_tokens(TokenCountParams(model="llama-3", text="hi"))
        assert exc_info.value.kind == ErrorKind.PROVIDER_NOT_FOUND

    def test_empty_model(self):
        with pytest.raises(TokenTrackerError) as exc_info:
            self.tracker.calculate_price("", 1, 1)
        assert exc_info.value.kind == ErrorKind.INVALID_PARAMS

    def test_calculate_price(self):
        price = self.tracker.calculate_price("gpt-4", 1000, 500)
        assert price.total_cost == pytest.approx(0.06)

    def test_config_pricing_change_applies(self):
        """Test prices changed through the config reach the providers."""
        self.tracker.config.set_model_pricing("anthropic", "claude-3-opus", ModelPricing(0.001, 0.001))
        assert self.tracker.calculate_price("claude-3-opus", 1000, 0).input_cost == pytest.approx(1.0)

    def test_get_model_info(self):
        assert self.tracker.get_model_info("gemini-ultra").provider == "gemini"

    def test_track_token_usage(self):
        """Test usage extraction by provider name."""
        response = {"usageMetadata": {"promptTokenCount": 5, "candidatesTokenCount": 6}}
        assert self.tracker.track_token_usage("gemini", response) == TokenCount(5, 6, 11)

    def test_track_token_usage_infinite_count(self):
        """Test a JSON Infinity token count is rejected as invalid params."""
        response = json.loads('{"usage": {"prompt_tokens": Infinity, "completion_tokens": 1}}')

        with pytest.raises(TokenTrackerError) as exc_info:
            self.tracker.track_token_usage("openai", response)

        assert exc_info.value.kind == ErrorKind.INVALID_PARAMS

    def test_track_token_usage_fractional_count(self):
        response = json.loads('{"usage": {"prompt_tokens": 10.7, "completion_tokens": 1}}')
        with pytest.raises(TokenTrackerError) as exc_info:
            self.tracker.track_token_usage("openai", response)
        assert exc_info.value.kind == ErrorKind.INVALID_PARAMS

    def test_track_token_usage_unknown_provider(self):
        with pytest.raises(TokenTrackerError) as exc_info:
            self.tracker.track_token_usage("mistral", {})
        assert exc_info.value.kind == ErrorKind.PROVIDER_NOT_FOUND

    def test_cache_shared_and_cleaned(self):
        """Test counts land in the tracker cache and cleanup clears it."""
        self.tracker.count_tokens(TokenCountParams(model="gpt-4", text="one"))
        self.tracker.count_tokens(TokenCountParams(model="gpt-4", text="two"))
        assert len(self.tracker.cache) == 2
        assert self.tracker.cleanup_cache(10) is False
        assert self.tracker.cleanup_cache(1) is True
        assert len(self.tracker.cache) == 0


class TestTrackUsage:
    """Test full usage tracking."""

    def setup_method(self):
        self.provider = MockProvider()
        self.tracker = TokenTracker()
        self.tracker.register_provider(self.provider)

    def test_end_to_end(self):
        """Test metrics assembled from counts, prices and timing."""
        call = CallParams(
            model="mock-model",
            params=TokenCountParams(model="mock-model", text="hello"),
            start_time=datetime.now() - timedelta(seconds=1)
        )

        metrics = self.tracker.track_usage(call)

        assert metrics.model == "mock-model"
        assert metrics.provider == "mock"
        assert metrics.token_count.input_tokens == 100
        assert metrics.token_count.response_tokens == 50
        assert metrics.token_count.total_tokens == 150
        assert metrics.price.total_cost == pytest.approx(0.0003)
        assert metrics.duration >= timedelta(seconds=1)
        assert metrics.timestamp >= call.start_time

    def test_estimation_requests_response_tokens(self):
        """Test estimation counts again with response tokens requested."""
        call = CallParams(model="mock-model", params=TokenCountParams(model="mock-model", text="hello"))
        self.tracker.track_usage(call)
        assert [p.count_response_tokens for p in self.provider.count_calls] == [False, True]

    def test_response_count_used(self):
        """Test a TokenCountSource response supplies the output count."""
        call = CallParams(model="mock-model", params=TokenCountParams(model="mock-model", text="hello"))
        metrics = self.tracker.track_usage(call, CountedResponse(7))
        assert metrics.token_count.response_tokens == 7
        assert metrics.token_count.total_tokens == 107
        assert len(self.provider.count_calls) == 1

    def test_plain_object_response_is_estimated(self):
        """Test a response without a token count falls back to estimation."""
        call = CallParams(model="mock-model", params=TokenCountParams(model="mock-model", text="hello"))
        metrics = self.tracker.track_usage(call, Mock())
        assert metrics.token_count.response_tokens == 50

    def test_unknown_model_gives_no_metrics(self):
        call = CallParams(model="other", params=TokenCountParams(model="other", text="hello"))
        with pytest.raises(TokenTrackerError) as exc_info:
            self.tracker.track_usage(call)
        assert exc_info.value.kind == ErrorKind.PROVIDER_NOT_FOUND

    def test_estimation_failure_counts_zero(self):
        """Test estimation failures produce zero output tokens by default."""
        self.provider.count_tokens = Mock(side_effect=[
            TokenCount(100, 0, 100),
            TokenTrackerError(ErrorKind.TOKENIZATION_FAILED, "estimate failed"),
        ])
        call = CallParams(model="mock-model", params=TokenCountParams(model="mock-model", text="hello"))

        metrics = self.tracker.track_usage(call)

        assert metrics.token_count == TokenCount(100, 0, 100)

    def test_estimation_failure_raise_policy(self):
        """Test the RAISE policy propagates estimation failures."""
        tracker = TokenTracker(estimation_policy=EstimationFailurePolicy.RAISE)
        provider = MockProvider()
        provider.count_tokens = Mock(side_effect=[
            TokenCount(100, 0, 100),
            TokenTrackerError(ErrorKind.TOKENIZATION_FAILED, "estimate failed"),
        ])
        tracker.register_provider(provider)
        call = CallParams(model="mock-model", params=TokenCountParams(model="mock-model", text="hello"))

        with pytest.raises(TokenTrackerError) as exc_info:
            tracker.track_usage(call)
        assert exc_info.value.kind == ErrorKind.TOKENIZATION_FAILED

    def test_real_provider_end_to_end(self):
        """Test tracking with the built-in Anthropic provider."""
        tracker = create_default_tracker()
        call = CallParams(
            model="claude-3-opus",
            params=TokenCountParams(model="claude-3-opus", text="This is a test.")
        )
        metrics = tracker.track_usage(call)
        assert metrics.provider == "anthropic"
        assert metrics.token_count == TokenCount(8, 16, 24)
        assert metrics.price.input_cost == pytest.approx(8 * 0.000015)
        assert metrics.price.output_cost == pytest.approx(16 * 0.000075)


class TestUsageLedger:
    """Test usage records written by the tracker."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "usage.db")

    def teardown_method(self):
        """Clean up test environment."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_records_when_logging_enabled(self):
        """Test tracked usage is appended to the ledger."""
        config = TrackerConfig()
        config.enable_usage_logging(self.db_path)
        tracker = TokenTracker(config=config)
        tracker.register_provider(MockProvider())

        tracker.track_usage(CallParams(
            model="mock-model", params=TokenCountParams(model="mock-model", text="x")
        ))

        records = UsageRepository(self.db_path).get_recent()
        assert len(records) == 1
        assert records[0].provider == "mock"
        assert records[0].token_count.total_tokens == 150

    def test_no_repository_by_default(self):
        tracker = TokenTracker()
        assert tracker.repository is None

    def _track(self, tracker):
        tracker.track_usage(CallParams(
            model="mock-model", params=TokenCountParams(model="mock-model", text="x")
        ))

    def test_logging_toggled_after_construction(self):
        """Test enabling and disabling logging on a live tracker."""
        tracker = TokenTracker()
        tracker.register_provider(MockProvider())
        self._track(tracker)

        tracker.config.enable_usage_logging(self.db_path)
        self._track(tracker)
        assert len(UsageRepository(self.db_path).get_recent()) == 1

        tracker.config.disable_usage_logging()
        self._track(tracker)
        assert len(UsageRepository(self.db_path).get_recent()) == 1

    def test_tracker_logging_methods(self):
        """Test the tracker's own toggles and a change of ledger path."""
        other_path = os.path.join(self.temp_dir, "other.db")
        tracker = TokenTracker()
        tracker.register_provider(MockProvider())

        tracker.enable_usage_logging(self.db_path)
        self._track(tracker)
        tracker.enable_usage_logging(other_path)
        self._track(tracker)
        self._track(tracker)
        tracker.disable_usage_logging()
        self._track(tracker)

        assert len(UsageRepository(self.db_path).get_recent()) == 1
        assert len(UsageRepository(other_path).get_recent()) == 2
        assert tracker.config.usage_log_enabled is False

    def test_given_repository_enables_logging(self):
        repository = UsageRepository(self.db_path)
        tracker = TokenTracker(repository=repository)
        tracker.register_provider(MockProvider())

        self._track(tracker)

        assert tracker.config.usage_log_enabled is True
        assert tracker.config.usage_log_path == self.db_path
        assert len(repository.get_recent()) == 1


class TestSDKClientRegistration:
    """Test register_sdk_client."""

    def setup_method(self):
        self.provider = MockProvider(name="openai", models=("gpt-4",))
        self.tracker = TokenTracker()
        self.tracker.register_provider(self.provider)

    def _client(self, name="openai", update_error=None):
        client = Mock()
        client.provider_name.return_value = name
        client.get_client.return_value = "raw-sdk-client"
        if update_error is not None:
            client.update_provider_pricing.side_effect = update_error
        return client

    def test_register_attaches_client(self):
        """Test the raw SDK client is handed to the provider."""
        client = self._client()
        self.tracker.register_sdk_client(client)
        assert self.provider.sdk_client == "raw-sdk-client"
        client.update_provider_pricing.assert_called_once()

    def test_register_unknown_provider(self):
        with pytest.raises(TokenTrackerError) as exc_info:
            self.tracker.register_sdk_client(self._client(name="mistral"))
        assert exc_info.value.kind == ErrorKind.PROVIDER_NOT_FOUND

    def test_pricing_failure_is_wrapped(self):
        """Test pricing refresh failures raise PRICING_UPDATE_FAILED."""
        cause = RuntimeError("network down")
        with pytest.raises(TokenTrackerError) as exc_info:
            self.tracker.register_sdk_client(self._client(update_error=cause))
        assert exc_info.value.kind == ErrorKind.PRICING_UPDATE_FAILED
        assert exc_info.value.cause is cause
        # The client stays attached even though pricing failed
        assert self.provider.sdk_client == "raw-sdk-client"

    def test_register_wrapper_without_pricing_table(self):
        """Test a real wrapper built with pricing=None is bound to the config table."""
        client = Mock()
        wrapper = OpenAISDKWrapper(client=client)

        self.tracker.register_sdk_client(wrapper)

        assert wrapper.pricing is self.tracker.config.pricing
        assert self.provider.sdk_client is client
        assert self.tracker.config.get_model_pricing("openai", "gpt-4o") is not None

    def test_register_wrapper_keeps_own_table(self):
        table = TrackerConfig().pricing
        wrapper = OpenAISDKWrapper(pricing=table, client=Mock())
        self.tracker.register_sdk_client(wrapper)
        assert wrapper.pricing is table


class TestUpdateAllPricing:
    """Test the pricing sweep over all providers."""

    def test_all_succeed(self):
        tracker = TokenTracker()
        tracker.register_provider(MockProvider(name="a"))
        tracker.register_provider(MockProvider(name="b"))
        tracker.update_all_pricing()

    def test_continues_past_failures(self):
        """Test every provider is attempted and the last failure is the cause."""
        tracker = TokenTracker()
        first = MockProvider(name="a", update_error=TokenTrackerError(ErrorKind.PRICING_UPDATE_FAILED, "a"))
        second = MockProvider(name="b")
        second.update_pricing = Mock()
        third = MockProvider(name="c", update_error=RuntimeError("c failed"))
        for provider in (first, second, third):
            tracker.register_provider(provider)

        with pytest.raises(TokenTrackerError) as exc_info:
            tracker.update_all_pricing()

        second.update_pricing.assert_called_once()
        assert exc_info.value.kind == ErrorKind.PRICING_UPDATE_FAILED
        assert isinstance(exc_info.value.cause, RuntimeError)
        assert exc_info.value.failures == []

    def test_collect_policy(self):
        """Test the COLLECT policy attaches every failure."""
        tracker = TokenTracker(pricing_sweep_policy=PricingSweepPolicy.COLLECT)
        tracker.register_provider(MockProvider(name="a", update_error=RuntimeError("a failed")))
        tracker.register_provider(MockProvider(name="b", update_error=RuntimeError("b failed")))

        with pytest.raises(TokenTrackerError) as exc_info:
            tracker.update_all_pricing()

        assert sorted(name for name, _ in exc_info.value.failures) == ["a", "b"]

    def test_default_providers_refresh(self):
        """Test built-in providers refresh from their defaults."""
        tracker = create_default_tracker()
        tracker.config.set_model_pricing("openai", "gpt-4", ModelPricing(9.0, 9.0))
        tracker.update_all_pricing()
        assert tracker.config.get_model_pricing("openai", "gpt-4").input_price_per_token == 0.00003


class TestAutomaticUpdates:
    """Test background pricing updates."""

    def test_enable_and_disable(self):
        """Test enabling starts a scheduler and disabling stops it."""
        tracker = create_default_tracker()
        tracker.enable_automatic_pricing_updates(timedelta(hours=1))
        try:
            assert tracker.config.auto_update_pricing is True
            assert tracker.config.pricing_update_interval == timedelta(hours=1)
            assert tracker._scheduler.running
        finally:
            tracker.disable_automatic_pricing_updates()
        assert tracker.config.auto_update_pricing is False
        assert tracker._scheduler is None

    def test_config_starts_updates(self):
        config = TrackerConfig(auto_update_pricing=True)
        tracker = create_default_tracker(config)
        try:
            assert tracker._scheduler is not None
        finally:
            tracker.close()

    def test_scheduler_runs_refresh(self):
        """Test the scheduler calls refresh and keeps running after failures."""
        refresh = Mock(side_effect=TokenTrackerError(ErrorKind.PRICING_UPDATE_FAILED, "down"))
        scheduler = PricingScheduler(refresh, timedelta(hours=1))
        with patch.object(scheduler, "_schedule") as schedule:
            scheduler._running = True
            scheduler._run()
        refresh.assert_called_once()
        schedule.assert_called_once()

    def test_stopped_scheduler_does_not_reschedule(self):
        refresh = Mock()
        scheduler = PricingScheduler(refresh, timedelta(hours=1))
        with patch.object(scheduler, "_schedule") as schedule:
            scheduler._run()
        schedule.assert_not_called()

    def test_invalid_interval(self):
        with pytest.raises(ValueError):
            PricingScheduler(Mock(), timedelta(0))


class TestErrorChain:
    """Test error kinds survive wrapping."""

    def test_wrapped_kind_is_found(self):
        tracker = TokenTracker()
        provider = MockProvider(
            name="openai",
            update_error=TokenTrackerError(ErrorKind.PRICING_NOT_FOUND, "missing")
        )
        tracker.register_provider(provider)
        with pytest.raises(TokenTrackerError) as exc_info:
            tracker.update_all_pricing()
        assert is_kind(exc_info.value, ErrorKind.PRICING_NOT_FOUND)
