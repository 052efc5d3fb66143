from collections.abc import Callable
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any

import pytest
import requests

from site_suitability.errors import CatalogUnavailable, InvalidInput
from site_suitability.geospatial import stac_ops
from site_suitability.models.models import BandRole, BBox, CatalogItem, SearchCriteria
from site_suitability.utils.retry import RetryPolicy

NO_DELAY = RetryPolicy(attempts=3, base_delay=0.0)


def test_format_datetime_builds_intervals() -> None:
    """
    Test RFC-3339 interval formatting for closed, open and empty ranges.
    """
    assert stac_ops.format_datetime("2024-01-01", "2024-01-31") == "2024-01-01T00:00:00Z/2024-01-31T23:59:59Z"
    assert stac_ops.format_datetime("2024-01-01") == "2024-01-01T00:00:00Z/.."
    assert stac_ops.format_datetime(end_date="2024-01-31") == "../2024-01-31T23:59:59Z"
    assert stac_ops.format_datetime() is None
    assert stac_ops.format_datetime("2024-01-01T06:00:00Z", "2024-01-02") == "2024-01-01T06:00:00Z/2024-01-02T23:59:59Z"


def test_create_bbox_from_point_contains_centre() -> None:
    """
    Test that the point bbox is centred and buffered by 1.2.
    """
    bbox = stac_ops.create_bbox_from_point(18.5, 73.8, 1000)
    offset = 1000 / 111000 * 1.2
    assert bbox.west == pytest.approx(73.8 - offset)
    assert bbox.north == pytest.approx(18.5 + offset)
    assert bbox.west < 73.8 < bbox.east
    assert bbox.south < 18.5 < bbox.north


def test_create_bbox_from_point_clamps_near_pole_and_antimeridian() -> None:
    """
    Test that boxes around valid points near the edges are clamped and still contain the point.
    """
    polar = stac_ops.create_bbox_from_point(89.99, 0.0, 10000)
    assert polar.north == 90.0
    assert polar.south < 89.99 < polar.north

    dateline = stac_ops.create_bbox_from_point(-16.5, 179.99, 5000)
    assert dateline.east == 180.0
    assert dateline.west < 179.99 < dateline.east

    southern = stac_ops.create_bbox_from_point(-89.99, -179.99, 10000)
    assert southern.south == -90.0
    assert southern.west == -180.0


def test_create_bbox_from_point_rejects_bad_input() -> None:
    """
    Test that non-positive radii and out-of-range points raise InvalidInput.
    """
    with pytest.raises(InvalidInput):
        stac_ops.create_bbox_from_point(18.5, 73.8, 0)
    with pytest.raises(InvalidInput):
        stac_ops.create_bbox_from_point(95.0, 0.0, 1000)


def test_parse_bbox_accepts_strings_and_sequences() -> None:
    """
    Test bbox parsing from strings and lists, with None for bad values.
    """
    assert stac_ops.parse_bbox("73.8, 18.5, 73.9, 18.6") == BBox(west=73.8, south=18.5, east=73.9, north=18.6)
    assert stac_ops.parse_bbox([73.8, 18.5, 73.9, 18.6]) is not None
    assert stac_ops.parse_bbox("1,2,3") is None
    assert stac_ops.parse_bbox("a,b,c,d") is None
    assert stac_ops.parse_bbox([73.9, 18.5, 73.8, 18.6]) is None
    assert stac_ops.parse_bbox(None) is None


def test_build_search_parameters() -> None:
    """
    Test that search parameters carry the cloud cover query and optional datetime.
    """
    bbox = BBox(west=73.8, south=18.5, east=73.9, north=18.6)
    params = stac_ops.build_search_parameters(
        SearchCriteria(bbox=bbox, start_date="2024-01-01", end_date="2024-01-31", cloud_cover_max=20, limit=5)
    )
    assert params["collections"] == ["sentinel-2-l2a"]
    assert params["bbox"] == [73.8, 18.5, 73.9, 18.6]
    assert params["limit"] == 5
    assert params["query"] == {"eo:cloud_cover": {"lt": 20}}
    assert params["datetime"] == "2024-01-01T00:00:00Z/2024-01-31T23:59:59Z"

    assert "datetime" not in stac_ops.build_search_parameters(SearchCriteria(bbox=bbox))


def test_resolve_band_assets_uses_aliases_and_signs(monkeypatch: pytest.MonkeyPatch) -> None:
    """
    Test that Earth Search and band-id asset keys both resolve, and hrefs are signed.
    """
    monkeypatch.setattr(stac_ops, "sign", lambda href: f"{href}?signed")
    assets = {
        "B04": SimpleNamespace(href="https://x/B04.tif", media_type="image/tiff"),
        "nir": SimpleNamespace(href="https://x/nir.tif", media_type=None),
        "B08": SimpleNamespace(href="https://x/B08.tif", media_type=None),
        "thumbnail": SimpleNamespace(href="https://x/thumb.jpg", media_type="image/jpeg"),
    }

    bands = stac_ops.resolve_band_assets(assets)
    assert set(bands) == {BandRole.RED, BandRole.NIR}
    assert bands[BandRole.RED].href == "https://x/B04.tif?signed"
    assert bands[BandRole.NIR].href == "https://x/nir.tif?signed"


def test_search_items_post_filters_cloud_cover(
    make_stac_item: Callable[..., Any], fake_stac_client_cls: type
) -> None:
    """
    Test that items at or above the threshold, or without cloud cover, are dropped.
    """
    client = fake_stac_client_cls(
        items=[
            make_stac_item("clear", cloud_cover=3.0),
            make_stac_item("cloudy", cloud_cover=10.0),
            make_stac_item("unknown", cloud_cover=None),
        ]
    )
    criteria = SearchCriteria(bbox=BBox(west=73.8, south=18.5, east=73.9, north=18.6), cloud_cover_max=10)

    items = stac_ops.search_items(client, criteria, NO_DELAY)
    assert [item.id for item in items] == ["clear"]
    assert BandRole.SWIR1 in items[0].bands
    assert client.calls[0]["max_items"] == criteria.limit
    assert client.calls[0]["query"] == {"eo:cloud_cover": {"lt": 10}}


def test_search_items_raises_catalog_unavailable_after_retries() -> None:
    """
    Test that persistent transport failures become CatalogUnavailable.
    """
    calls: list[dict[str, Any]] = []

    class DownClient:
        def search(self, **kwargs: Any) -> Any:
            calls.append(kwargs)
            raise requests.ConnectionError("connection refused")

    criteria = SearchCriteria(bbox=BBox(west=73.8, south=18.5, east=73.9, north=18.6))
    with pytest.raises(CatalogUnavailable):
        stac_ops.search_items(DownClient(), criteria, NO_DELAY)
    assert len(calls) == 3


def test_search_items_maps_signing_failure_to_catalog_unavailable(
    monkeypatch: pytest.MonkeyPatch, make_stac_item: Callable[..., Any], fake_stac_client_cls: type
) -> None:
    """
    Test that a failing SAS token service surfaces as CatalogUnavailable, not a raw HTTP error.
    """

    def _token_service_down(href: str) -> str:
        raise requests.HTTPError("503 Server Error: Service Unavailable for url: /api/sas/v1/token")

    monkeypatch.setattr(stac_ops, "sign", _token_service_down)
    client = fake_stac_client_cls(items=[make_stac_item()])
    criteria = SearchCriteria(bbox=BBox(west=73.8, south=18.5, east=73.9, north=18.6))

    with pytest.raises(CatalogUnavailable, match="sign"):
        stac_ops.search_items(client, criteria, NO_DELAY)


def test_best_quality_item_prefers_low_cloud_then_recent() -> None:
    """
    Test ranking by cloud cover, with the most recent capture winning ties.
    """
    older = CatalogItem(id="older", cloud_cover=2.0, datetime=datetime(2024, 1, 1, tzinfo=timezone.utc))
    newer = CatalogItem(id="newer", cloud_cover=2.0, datetime=datetime(2024, 1, 20, tzinfo=timezone.utc))
    cloudy = CatalogItem(id="cloudy", cloud_cover=8.0, datetime=datetime(2024, 1, 25, tzinfo=timezone.utc))
    unknown = CatalogItem(id="unknown", datetime=datetime(2024, 1, 30, tzinfo=timezone.utc))

    assert stac_ops.best_quality_item([older, cloudy, newer, unknown]).id == "newer"  # type: ignore[union-attr]
    assert stac_ops.best_quality_item([unknown, cloudy]).id == "cloudy"  # type: ignore[union-attr]
    assert stac_ops.best_quality_item([]) is None
