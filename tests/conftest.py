from collections.abc import Callable
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any

import pytest

from site_suitability.connectors.settings import SettingsResource


def _asset(href: str) -> SimpleNamespace:
    return SimpleNamespace(href=href, media_type="image/tiff; application=geotiff; profile=cloud-optimized")


@pytest.fixture
def make_stac_item() -> Callable[..., SimpleNamespace]:
    """
    Factory for fake pystac items.

    Returns:
      Callable building a SimpleNamespace that mimics pystac.Item
    """

    def _make(
        item_id: str = "S2A_43QCV_20240115_0_L2A",
        cloud_cover: float | None = 5.0,
        captured: datetime | None = datetime(2024, 1, 15, 5, 30, tzinfo=timezone.utc),
        asset_keys: tuple[str, ...] = ("red", "green", "nir", "swir16", "swir22", "visual"),
        bbox: list[float] | None = None,
    ) -> SimpleNamespace:
        properties: dict[str, Any] = {"datetime": captured.isoformat() if captured else None}
        if cloud_cover is not None:
            properties["eo:cloud_cover"] = cloud_cover
        return SimpleNamespace(
            id=item_id,
            bbox=bbox or [73.0, 18.0, 74.5, 19.0],
            geometry={"type": "Polygon", "coordinates": [[[73.0, 18.0], [74.5, 18.0], [74.5, 19.0], [73.0, 18.0]]]},
            datetime=captured,
            properties=properties,
            assets={key: _asset(f"https://data.example.com/{item_id}/{key}.tif") for key in asset_keys},
            collection_id="sentinel-2-l2a",
        )

    return _make


class FakeSearch:
    def __init__(self, items: list[Any]) -> None:
        self._items = items

    def items(self) -> list[Any]:
        return list(self._items)


class FakeStacClient:
    """STAC client returning canned items, optionally chosen by datetime range."""

    def __init__(self, items: list[Any] | None = None, by_datetime: dict[str, list[Any]] | None = None) -> None:
        self.items = items or []
        self.by_datetime = by_datetime or {}
        self.calls: list[dict[str, Any]] = []

    def search(self, **kwargs: Any) -> FakeSearch:
        self.calls.append(kwargs)
        if self.by_datetime:
            return FakeSearch(self.by_datetime.get(kwargs.get("datetime", ""), []))
        return FakeSearch(self.items)


@pytest.fixture
def fake_stac_client_cls() -> type[FakeStacClient]:
    return FakeStacClient


@pytest.fixture
def settings() -> SettingsResource:
    """
    Settings with no backoff delay so retry tests run instantly.
    """
    return SettingsResource(
        stac_api_url="https://stac.example.com/v1",
        titiler_endpoint="https://tiles.example.com",
        retry_base_delay=0.0,
        analysis_timeout=30,
    )
