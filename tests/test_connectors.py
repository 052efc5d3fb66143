from typing import Any

import pytest

from site_suitability.connectors.settings import SettingsResource
from site_suitability.connectors.stac_client import STACResource
from site_suitability.utils.retry import RetryPolicy


def test_settings_create_from_env_uses_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    """
    Test that SettingsResource falls back to defaults for unset variables.
    """
    for name in ("STAC_API_URL", "TITILER_ENDPOINT", "CLOUD_COVER_THRESHOLD", "RASTER_TIMEOUT", "ENVIRONMENT"):
        monkeypatch.delenv(name, raising=False)

    settings = SettingsResource.create()
    assert settings.stac_api_url == "https://earth-search.aws.element84.com/v1"
    assert settings.titiler_endpoint == "https://titiler.xyz"
    assert settings.stac_collection == "sentinel-2-l2a"
    assert settings.cloud_cover_threshold == 10
    assert settings.raster_timeout == 120
    assert settings.retry_attempts == 3
    assert settings.is_development() is False


def test_settings_create_from_env_reads_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    """
    Test that SettingsResource converts environment values to field types.
    """
    monkeypatch.setenv("STAC_API_URL", "http://stac")
    monkeypatch.setenv("TITILER_ENDPOINT", "http://tiles")
    monkeypatch.setenv("CLOUD_COVER_THRESHOLD", "25")
    monkeypatch.setenv("RETRY_BASE_DELAY", "0.5")
    monkeypatch.setenv("ENVIRONMENT", "development")

    settings = SettingsResource.create()
    assert settings.stac_api_url == "http://stac"
    assert settings.titiler_endpoint == "http://tiles"
    assert settings.cloud_cover_threshold == 25
    assert settings.retry_base_delay == 0.5
    assert settings.is_development() is True


def test_settings_validation_rejects_out_of_range_threshold(monkeypatch: pytest.MonkeyPatch) -> None:
    """
    Test that invalid settings raise unless errors are swallowed.
    """
    monkeypatch.setenv("CLOUD_COVER_THRESHOLD", "150")

    with pytest.raises(ValueError, match="CLOUD_COVER_THRESHOLD"):
        SettingsResource.create()

    settings = SettingsResource.create(swallow_errors=True)
    assert settings.cloud_cover_threshold == 150


def test_settings_retry_policy_uses_configured_values() -> None:
    """
    Test that the retry policy reflects attempts and base delay.
    """
    settings = SettingsResource(retry_attempts=4, retry_base_delay=1.5)
    assert settings.retry_policy() == RetryPolicy(attempts=4, base_delay=1.5)


def test_stac_resource_creates_client(monkeypatch: pytest.MonkeyPatch) -> None:
    """
    Test that STACResource opens the configured URL with the catalog timeout.
    """
    created: dict[str, Any] = {}

    class FakeClient:
        @staticmethod
        def open(url: str, timeout: int | None = None) -> str:
            created["url"] = url
            created["timeout"] = timeout
            return "fake-client"

    monkeypatch.setattr("site_suitability.connectors.stac_client.Client", FakeClient)

    settings = SettingsResource(stac_api_url="http://stac", catalog_timeout=7)
    resource = STACResource(settings=settings)
    client = resource.create_client()
    assert client == "fake-client"
    assert created == {"url": "http://stac", "timeout": 7}
