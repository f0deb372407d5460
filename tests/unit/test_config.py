"""
Unit tests for FulfillmentConfig.

Tests for:
- Defaults and validation
- Page size clamping
- Environment overrides
"""

import pytest

from fulfillment.config import FulfillmentConfig
from fulfillment.retry import RetryConfig


class TestFulfillmentConfigCreation:
    def test_default_values(self):
        config = FulfillmentConfig()
        assert config.retry == RetryConfig()
        assert config.attempt_timeout == 10.0
        assert config.lock_timeout == 5.0
        assert config.default_page_size == 10
        assert config.max_page_size == 100
        assert config.lock_timeout_ms == 5000

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"attempt_timeout": 0},
            {"lock_timeout": -1},
            {"max_page_size": 0},
            {"default_page_size": 0},
            {"default_page_size": 20, "max_page_size": 10},
        ],
    )
    def test_invalid_values_rejected(self, kwargs):
        with pytest.raises(ValueError):
            FulfillmentConfig(**kwargs)

    def test_is_frozen(self):
        config = FulfillmentConfig()
        with pytest.raises(AttributeError):
            config.attempt_timeout = 1.0  # type: ignore[misc]


class TestClampPageSize:
    def test_none_uses_default(self):
        assert FulfillmentConfig().clamp_page_size(None) == 10

    def test_clamps_to_max(self):
        assert FulfillmentConfig().clamp_page_size(500) == 100

    def test_passes_through_in_range(self):
        assert FulfillmentConfig().clamp_page_size(25) == 25


class TestFromEnv:
    def test_unset_variables_keep_defaults(self):
        assert FulfillmentConfig.from_env(environ={}) == FulfillmentConfig()

    def test_reads_overrides(self):
        config = FulfillmentConfig.from_env(
            environ={
                "FULFILLMENT_MAX_RETRIES": "7",
                "FULFILLMENT_RETRY_INITIAL_DELAY": "0.2",
                "FULFILLMENT_RETRY_MAX_DELAY": "2",
                "FULFILLMENT_ATTEMPT_TIMEOUT": "3.5",
                "FULFILLMENT_LOCK_TIMEOUT": "1",
                "FULFILLMENT_DEFAULT_PAGE_SIZE": "20",
                "FULFILLMENT_MAX_PAGE_SIZE": "50",
            }
        )

        assert config.retry.max_retries == 7
        assert config.retry.initial_delay == 0.2
        assert config.retry.max_delay == 2.0
        assert config.attempt_timeout == 3.5
        assert config.lock_timeout == 1.0
        assert config.default_page_size == 20
        assert config.max_page_size == 50

    def test_custom_prefix(self):
        config = FulfillmentConfig.from_env(prefix="SHOP_", environ={"SHOP_MAX_RETRIES": "0"})
        assert config.retry.max_retries == 0

    def test_empty_value_keeps_default(self):
        config = FulfillmentConfig.from_env(environ={"FULFILLMENT_ATTEMPT_TIMEOUT": ""})
        assert config.attempt_timeout == 10.0

    def test_invalid_value_names_variable(self):
        with pytest.raises(ValueError, match="FULFILLMENT_MAX_RETRIES"):
            FulfillmentConfig.from_env(environ={"FULFILLMENT_MAX_RETRIES": "lots"})

    def test_reads_process_environment(self, monkeypatch):
        monkeypatch.setenv("FULFILLMENT_LOCK_TIMEOUT", "2.5")
        assert FulfillmentConfig.from_env().lock_timeout == 2.5
