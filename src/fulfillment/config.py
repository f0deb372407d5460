"""
Configuration for the fulfillment engine and order listing.

This module provides:
- FulfillmentConfig: Timeouts, retry bounds and paging limits
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from fulfillment.retry import RetryConfig


@dataclass(frozen=True)
class FulfillmentConfig:
    """
    Configuration for fulfillment and order listing.

    Attributes:
        retry: Bound and backoff for retrying conflicted fulfillments
        attempt_timeout: Max seconds a single fulfillment attempt may take
            before it is rolled back and surfaced as a timeout
        lock_timeout: Max seconds a store waits for row/database locks
            (SQLite busy_timeout, PostgreSQL lock_timeout)
        default_page_size: Page size used when the caller does not pass one
        max_page_size: Upper clamp for requested page sizes

    Example:
        >>> config = FulfillmentConfig(
        ...     retry=RetryConfig(max_retries=5),
        ...     attempt_timeout=2.0,
        ... )
    """

    retry: RetryConfig = field(default_factory=RetryConfig)
    attempt_timeout: float = 10.0
    lock_timeout: float = 5.0
    default_page_size: int = 10
    max_page_size: int = 100

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.attempt_timeout <= 0:
            raise ValueError(f"attempt_timeout must be positive, got {self.attempt_timeout}.")

        if self.lock_timeout <= 0:
            raise ValueError(f"lock_timeout must be positive, got {self.lock_timeout}.")

        if self.max_page_size < 1:
            raise ValueError(f"max_page_size must be positive, got {self.max_page_size}.")

        if not 1 <= self.default_page_size <= self.max_page_size:
            raise ValueError(
                f"default_page_size must be between 1 and max_page_size ({self.max_page_size}), "
                f"got {self.default_page_size}."
            )

    @property
    def lock_timeout_ms(self) -> int:
        return int(self.lock_timeout * 1000)

    def clamp_page_size(self, page_size: int | None) -> int:
        """Apply the default and the upper bound to a requested page size."""
        if page_size is None:
            return self.default_page_size
        return min(page_size, self.max_page_size)

    @classmethod
    def from_env(
        cls,
        prefix: str = "FULFILLMENT_",
        environ: Mapping[str, str] | None = None,
    ) -> FulfillmentConfig:
        """
        Build a configuration from environment variables.

        Recognised variables (with the default prefix):
        FULFILLMENT_MAX_RETRIES, FULFILLMENT_RETRY_INITIAL_DELAY,
        FULFILLMENT_RETRY_MAX_DELAY, FULFILLMENT_ATTEMPT_TIMEOUT,
        FULFILLMENT_LOCK_TIMEOUT, FULFILLMENT_DEFAULT_PAGE_SIZE,
        FULFILLMENT_MAX_PAGE_SIZE. Unset variables keep their defaults.
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        def _get(name: str, cast: type, default: object) -> object:
            raw = env.get(f"{prefix}{name}")
            if raw is None or raw == "":
                return default
            try:
                return cast(raw)
            except ValueError as e:
                raise ValueError(f"Invalid value for {prefix}{name}: {raw!r}") from e

        retry = RetryConfig(
            max_retries=_get("MAX_RETRIES", int, defaults.retry.max_retries),  # type: ignore[arg-type]
            initial_delay=_get("RETRY_INITIAL_DELAY", float, defaults.retry.initial_delay),  # type: ignore[arg-type]
            max_delay=_get("RETRY_MAX_DELAY", float, defaults.retry.max_delay),  # type: ignore[arg-type]
        )
        return cls(
            retry=retry,
            attempt_timeout=_get("ATTEMPT_TIMEOUT", float, defaults.attempt_timeout),  # type: ignore[arg-type]
            lock_timeout=_get("LOCK_TIMEOUT", float, defaults.lock_timeout),  # type: ignore[arg-type]
            default_page_size=_get("DEFAULT_PAGE_SIZE", int, defaults.default_page_size),  # type: ignore[arg-type]
            max_page_size=_get("MAX_PAGE_SIZE", int, defaults.max_page_size),  # type: ignore[arg-type]
        )


__all__ = ["FulfillmentConfig"]
