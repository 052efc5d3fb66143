"""Settings resource for managing configuration from environment variables."""

import os
from typing import Any, get_type_hints

from dagster import ConfigurableResource

from site_suitability.config.constants import (
    DEFAULT_ANALYSIS_TIMEOUT,
    DEFAULT_CATALOG_TIMEOUT,
    DEFAULT_CLOUD_COVER_THRESHOLD,
    DEFAULT_ENVIRONMENT,
    DEFAULT_RASTER_TIMEOUT,
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_RETRY_BASE_DELAY,
    DEFAULT_SEARCH_LIMIT,
    DEFAULT_STAC_API_URL,
    DEFAULT_STAC_COLLECTION,
    DEFAULT_TITILER_ENDPOINT,
    DEFAULT_TREND_SEARCH_LIMIT,
)
from site_suitability.utils.retry import RetryPolicy

ENVIRONMENTS = ("development", "production", "test")


class SettingsResource(ConfigurableResource[Any]):
    """Process-wide settings, set once at startup and injected into every component."""

    stac_api_url: str = DEFAULT_STAC_API_URL
    titiler_endpoint: str = DEFAULT_TITILER_ENDPOINT
    stac_collection: str = DEFAULT_STAC_COLLECTION
    cloud_cover_threshold: int = DEFAULT_CLOUD_COVER_THRESHOLD
    search_limit: int = DEFAULT_SEARCH_LIMIT
    trend_search_limit: int = DEFAULT_TREND_SEARCH_LIMIT
    catalog_timeout: int = DEFAULT_CATALOG_TIMEOUT
    raster_timeout: int = DEFAULT_RASTER_TIMEOUT
    retry_attempts: int = DEFAULT_RETRY_ATTEMPTS
    retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY
    analysis_timeout: int = DEFAULT_ANALYSIS_TIMEOUT
    environment: str = DEFAULT_ENVIRONMENT

    @staticmethod
    def create(swallow_errors: bool = False) -> "SettingsResource":
        """Create SettingsResource from environment variables.

        Unset variables keep the class defaults.

        :param swallow_errors: If True, ignore validation errors
        :returns: SettingsResource instance
        """
        env_values: dict[str, Any] = {}
        for attr_name, attr_type in get_type_hints(SettingsResource).items():
            raw = os.environ.get(attr_name.upper())
            if raw is None or raw.strip() == "":
                continue
            if attr_type is bool:
                env_values[attr_name] = raw.strip().lower() in ("true", "1", "yes", "y", "on")
            elif attr_type is int:
                env_values[attr_name] = int(raw)
            elif attr_type is float:
                env_values[attr_name] = float(raw)
            else:
                env_values[attr_name] = raw.strip()

        settings = SettingsResource(**env_values)
        try:
            settings.validate_settings()
        except (TypeError, ValueError):
            if not swallow_errors:
                raise
        return settings

    def is_development(self) -> bool:
        """Whether failures may expose tracebacks to the caller."""
        return self.environment.lower() == "development"

    def retry_policy(self) -> RetryPolicy:
        """Build the retry policy shared by catalog searches and band reads.

        :returns: RetryPolicy instance
        """
        return RetryPolicy(attempts=self.retry_attempts, base_delay=self.retry_base_delay)

    def validate_settings(self) -> None:
        """Validate endpoints, thresholds and timeouts."""
        problems = []
        if not self.stac_api_url:
            problems.append("STAC_API_URL must not be empty")
        if not self.titiler_endpoint:
            problems.append("TITILER_ENDPOINT must not be empty")
        if not 0 <= self.cloud_cover_threshold <= 100:
            problems.append(f"CLOUD_COVER_THRESHOLD must be within 0-100, got {self.cloud_cover_threshold}")
        for name in ("catalog_timeout", "raster_timeout", "analysis_timeout", "retry_attempts", "search_limit"):
            if getattr(self, name) <= 0:
                problems.append(f"{name.upper()} must be positive")
        if self.retry_base_delay < 0:
            problems.append("RETRY_BASE_DELAY must not be negative")
        if self.environment.lower() not in ENVIRONMENTS:
            problems.append(f"ENVIRONMENT must be one of {', '.join(ENVIRONMENTS)}")
        if problems:
            raise ValueError(f"Invalid settings: {'; '.join(problems)}")
