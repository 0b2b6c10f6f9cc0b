"""
Configuration management and loading.

Holds the pricing table and tracker settings, and reads/writes them as YAML.
"""

import logging
import math
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ..core.pricing import ModelPricing, PricingTable, default_pricing_table

logger = logging.getLogger(__name__)

DEFAULT_USAGE_LOG_PATH = "tokentracker.db"
DEFAULT_PRICING_UPDATE_INTERVAL = timedelta(hours=24)


class TrackerConfig:
    """Tracker configuration: pricing plus pricing-update and usage-log settings.

    The pricing table is shared with every provider built from this config,
    so set_model_pricing is visible to later price calculations.
    """

    def __init__(
        self,
        pricing: Optional[PricingTable] = None,
        auto_update_pricing: bool = False,
        pricing_update_interval: timedelta = DEFAULT_PRICING_UPDATE_INTERVAL,
        usage_log_enabled: bool = False,
        usage_log_path: str = DEFAULT_USAGE_LOG_PATH
    ):
        if pricing_update_interval.total_seconds() <= 0:
            raise ValueError("pricing_update_interval must be > 0")
        self.pricing = pricing if pricing is not None else default_pricing_table()
        self.auto_update_pricing = auto_update_pricing
        self.pricing_update_interval = pricing_update_interval
        self.usage_log_enabled = usage_log_enabled
        self.usage_log_path = usage_log_path

    def get_model_pricing(self, provider: str, model: str) -> Optional[ModelPricing]:
        return self.pricing.get_model_pricing(provider, model)

    def set_model_pricing(self, provider: str, model: str, pricing: ModelPricing) -> None:
        self.pricing.set_model_pricing(provider, model, pricing)

    def enable_usage_logging(self, path: str) -> None:
        """Enable the usage ledger at path.

        Raises:
            OSError: If the path cannot be opened for writing
        """
        with open(path, "ab"):
            pass
        self.usage_log_enabled = True
        self.usage_log_path = path

    def disable_usage_logging(self) -> None:
        self.usage_log_enabled = False

    def to_dict(self) -> Dict[str, Any]:
        """Plain-data form of the configuration, as written to YAML."""
        providers = {}
        for provider, models in self.pricing.to_dict().items():
            providers[provider] = {
                "models": {
                    model: {
                        "input_price_per_token": pricing.input_price_per_token,
                        "output_price_per_token": pricing.output_price_per_token,
                        "currency": pricing.currency,
                    }
                    for model, pricing in sorted(models.items())
                }
            }
        return {
            "providers": providers,
            "auto_update_pricing": self.auto_update_pricing,
            "pricing_update_interval_hours": self.pricing_update_interval.total_seconds() / 3600,
            "usage_log_enabled": self.usage_log_enabled,
            "usage_log_path": self.usage_log_path,
        }


def load_tracker_config(path: str) -> TrackerConfig:
    """Load and validate tracker configuration from a YAML file.

    Pricing in the file replaces the defaults entirely.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated TrackerConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Tracker config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    allowed_top_keys = {
        'providers', 'auto_update_pricing', 'pricing_update_interval_hours',
        'usage_log_enabled', 'usage_log_path'
    }
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    if 'providers' not in raw_config:
        raise ValueError("Missing required 'providers' section")
    providers_data = raw_config['providers']
    if not isinstance(providers_data, dict):
        raise ValueError("'providers' must be a dictionary")

    prices: Dict[str, Dict[str, ModelPricing]] = {}
    for provider_name, provider_data in providers_data.items():
        prices[str(provider_name)] = _parse_provider_config(provider_data, f"providers.{provider_name}")

    auto_update = raw_config.get('auto_update_pricing', False)
    if not isinstance(auto_update, bool):
        raise ValueError("'auto_update_pricing' must be a boolean")

    interval_hours = raw_config.get('pricing_update_interval_hours', 24)
    if isinstance(interval_hours, bool) or not isinstance(interval_hours, (int, float)) or interval_hours <= 0:
        raise ValueError("'pricing_update_interval_hours' must be > 0")

    usage_log_enabled = raw_config.get('usage_log_enabled', False)
    if not isinstance(usage_log_enabled, bool):
        raise ValueError("'usage_log_enabled' must be a boolean")

    usage_log_path = raw_config.get('usage_log_path', DEFAULT_USAGE_LOG_PATH)
    if not isinstance(usage_log_path, str) or not usage_log_path.strip():
        raise ValueError("'usage_log_path' must be a non-empty string")

    logger.debug("Loaded tracker config from %s (%d providers)", path, len(prices))
    return TrackerConfig(
        pricing=PricingTable(prices),
        auto_update_pricing=auto_update,
        pricing_update_interval=timedelta(hours=float(interval_hours)),
        usage_log_enabled=usage_log_enabled,
        usage_log_path=usage_log_path
    )


def save_tracker_config(config: TrackerConfig, path: str) -> None:
    """Write tracker configuration to a YAML file."""
    with open(path, 'w', encoding='utf-8') as f:
        yaml.safe_dump(config.to_dict(), f, sort_keys=False)
    logger.debug("Saved tracker config to %s", path)


def _parse_provider_config(data: Any, path: str) -> Dict[str, ModelPricing]:
    """Parse and validate one provider's pricing section.

    Args:
        data: Provider configuration data
        path: Path for error messages

    Returns:
        Model pricing keyed by model identifier

    Raises:
        ValueError: If configuration is invalid
    """
    if not isinstance(data, dict):
        raise ValueError(f"'{path}' must be a dictionary")

    unknown_keys = set(data.keys()) - {'models'}
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

    models_data = data.get('models', {})
    if not isinstance(models_data, dict):
        raise ValueError(f"'{path}.models' must be a dictionary")

    models = {}
    for model_name, model_data in models_data.items():
        models[str(model_name)] = _parse_model_pricing(model_data, f"{path}.models.{model_name}")
    return models


def _parse_model_pricing(data: Any, path: str) -> ModelPricing:
    if not isinstance(data, dict):
        raise ValueError(f"'{path}' must be a dictionary")

    allowed_keys = {'input_price_per_token', 'output_price_per_token', 'currency'}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

    for key in ('input_price_per_token', 'output_price_per_token'):
        if key not in data:
            raise ValueError(f"Missing required '{key}' in {path}")
        value = data[key]
        if (isinstance(value, bool) or not isinstance(value, (int, float))
                or not math.isfinite(value) or value <= 0):
            raise ValueError(f"'{key}' in {path} must be a finite number > 0")

    currency = data.get('currency', 'USD')
    if not isinstance(currency, str) or len(currency) != 3:
        raise ValueError(f"'currency' in {path} must be a 3-letter currency code")

    return ModelPricing(
        input_price_per_token=float(data['input_price_per_token']),
        output_price_per_token=float(data['output_price_per_token']),
        currency=currency.upper()
    )
