"""STAC operations for searching and ranking satellite imagery."""

import threading
from collections.abc import Sequence
from typing import Any

import requests
from dagster import get_dagster_logger
from planetary_computer import sign
from pydantic import ValidationError
from pystac_client.exceptions import APIError

from site_suitability.config.constants import (
    BAND_ASSET_ALIASES,
    CLOUD_COVER_PROPERTY,
    METERS_PER_DEGREE,
    POINT_BBOX_BUFFER,
)
from site_suitability.connectors.stac_client import STACResource
from site_suitability.errors import CatalogUnavailable, InvalidInput
from site_suitability.models.models import BandRole, BBox, CatalogItem, RasterReference, SearchCriteria
from site_suitability.utils.retry import RetryPolicy, call_with_retry

logger = get_dagster_logger(__name__)

CATALOG_ERRORS: tuple[type[Exception], ...] = (APIError, requests.RequestException)


def format_datetime(start_date: str | None = None, end_date: str | None = None) -> str | None:
    """Format a date range as an RFC-3339 interval for STAC search.

    Dates without a time part are widened to the start and end of the day.
    A missing bound becomes an open interval.

    :param start_date: Start date (YYYY-MM-DD or RFC-3339)
    :param end_date: End date (YYYY-MM-DD or RFC-3339)
    :returns: Interval string, or None when both bounds are missing
    """
    if not start_date and not end_date:
        return None

    def _to_rfc3339(date: str, is_end: bool = False) -> str:
        if "T" in date:
            return date
        return f"{date}T23:59:59Z" if is_end else f"{date}T00:00:00Z"

    if start_date and end_date:
        return f"{_to_rfc3339(start_date)}/{_to_rfc3339(end_date, is_end=True)}"
    if start_date:
        return f"{_to_rfc3339(start_date)}/.."
    return f"../{_to_rfc3339(end_date, is_end=True)}"  # type: ignore[arg-type]


def create_bbox_from_point(
    latitude: float, longitude: float, radius_meters: float, buffer: float = POINT_BBOX_BUFFER
) -> BBox:
    """Create a square bbox around a point.

    Uses one degree ~ 111 km on both axes, widened by ``buffer``. Edges past
    the poles or the antimeridian are clamped to valid coordinates.

    :param latitude: Centre latitude
    :param longitude: Centre longitude
    :param radius_meters: Radius in metres
    :param buffer: Multiplier applied to the radius
    :returns: BBox instance
    :raises InvalidInput: If the radius is not positive or the point is out of range
    """
    if radius_meters <= 0:
        raise InvalidInput(f"Radius must be positive, got {radius_meters}")

    offset = radius_meters / METERS_PER_DEGREE * buffer
    try:
        return BBox(
            west=max(-180.0, longitude - offset),
            south=max(-90.0, latitude - offset),
            east=min(180.0, longitude + offset),
            north=min(90.0, latitude + offset),
        )
    except ValidationError as e:
        raise InvalidInput(f"Point ({latitude}, {longitude}) with radius {radius_meters}m is out of range: {e}") from e


def parse_bbox(value: str | Sequence[float] | None) -> BBox | None:
    """Parse a bbox from a 4-sequence or a "west,south,east,north" string.

    :param value: Raw bbox value
    :returns: BBox, or None if the value cannot be parsed
    """
    if value is None:
        return None
    if isinstance(value, str):
        parts = [part.strip() for part in value.split(",")]
    else:
        parts = list(value)
    if len(parts) != 4:
        return None
    try:
        return BBox.from_list(parts)
    except (TypeError, ValueError):
        return None


def build_search_parameters(criteria: SearchCriteria) -> dict[str, Any]:
    """Build STAC item-search parameters.

    :param criteria: Search criteria
    :returns: Keyword arguments for ``Client.search``
    """
    params: dict[str, Any] = {
        "collections": [criteria.collection],
        "bbox": criteria.bbox.as_list(),
        "limit": criteria.limit,
        "query": {CLOUD_COVER_PROPERTY: {"lt": criteria.cloud_cover_max}},
    }
    datetime_range = format_datetime(criteria.start_date, criteria.end_date)
    if datetime_range is not None:
        params["datetime"] = datetime_range
    return params


def open_catalog(
    stac: STACResource,
    retry_policy: RetryPolicy,
    cancel_event: threading.Event | None = None,
) -> Any:
    """Open the STAC API client, retrying transient failures.

    :param stac: STAC resource
    :param retry_policy: Retry policy
    :param cancel_event: Optional cancellation event
    :returns: STAC client
    :raises CatalogUnavailable: If the catalog cannot be reached
    """
    try:
        return call_with_retry(
            stac.create_client,
            retry_policy,
            retry_on=CATALOG_ERRORS,
            description="STAC catalog open",
            cancel_event=cancel_event,
        )
    except CATALOG_ERRORS as e:
        raise CatalogUnavailable(f"STAC catalog unavailable at {stac.settings.stac_api_url}: {e}") from e


def resolve_band_assets(assets: dict[str, Any]) -> dict[BandRole, RasterReference]:
    """Resolve asset keys to band roles and sign their URLs.

    :param assets: STAC item assets keyed by asset name
    :returns: Raster references keyed by band role
    """
    bands: dict[BandRole, RasterReference] = {}
    for role, candidates in BAND_ASSET_ALIASES.items():
        for asset_key in candidates:
            asset = assets.get(asset_key)
            if asset is not None and getattr(asset, "href", None):
                bands[BandRole(role)] = RasterReference(
                    href=sign(asset.href),
                    media_type=getattr(asset, "media_type", None),
                )
                break
    return bands


def to_catalog_item(item: Any) -> CatalogItem:
    """Convert a pystac item into a CatalogItem.

    :param item: pystac Item
    :returns: CatalogItem instance
    """
    cloud_cover = item.properties.get(CLOUD_COVER_PROPERTY)
    return CatalogItem(
        id=item.id,
        bbox=list(item.bbox) if item.bbox is not None else None,
        geometry=item.geometry,
        datetime=item.datetime,
        cloud_cover=float(cloud_cover) if cloud_cover is not None else None,
        bands=resolve_band_assets(dict(item.assets)),
        collection=getattr(item, "collection_id", None) or "",
    )


def filter_by_cloud_cover(items: list[CatalogItem], cloud_cover_max: float) -> list[CatalogItem]:
    """Keep items whose reported cloud cover is below the threshold.

    Items without a reported cloud cover are dropped.

    :param items: Catalog items
    :param cloud_cover_max: Exclusive upper bound
    :returns: Filtered items
    """
    return [item for item in items if item.cloud_cover is not None and item.cloud_cover < cloud_cover_max]


def search_items(
    stac_client: Any,
    criteria: SearchCriteria,
    retry_policy: RetryPolicy,
    cancel_event: threading.Event | None = None,
) -> list[CatalogItem]:
    """Search the catalog and re-check the cloud cover filter locally.

    :param stac_client: STAC client
    :param criteria: Search criteria
    :param retry_policy: Retry policy
    :param cancel_event: Optional cancellation event
    :returns: Matching items, possibly empty
    :raises CatalogUnavailable: If the search keeps failing
    """
    params = build_search_parameters(criteria)
    logger.debug(f"Searching STAC items: {params}")

    def _search() -> list[Any]:
        return list(stac_client.search(max_items=criteria.limit, **params).items())

    try:
        raw_items = call_with_retry(
            _search,
            retry_policy,
            retry_on=CATALOG_ERRORS,
            description="STAC search",
            cancel_event=cancel_event,
        )
    except CATALOG_ERRORS as e:
        raise CatalogUnavailable(f"STAC search failed: {e}") from e

    try:
        catalog_items = [to_catalog_item(item) for item in raw_items]
    except CATALOG_ERRORS as e:
        raise CatalogUnavailable(f"Failed to sign STAC asset URLs: {e}") from e

    items = filter_by_cloud_cover(catalog_items, criteria.cloud_cover_max)
    logger.info(f"Found {len(items)} STAC items ({len(raw_items)} before cloud cover check)")
    return items


def best_quality_item(items: Sequence[CatalogItem]) -> CatalogItem | None:
    """Pick the item with the lowest cloud cover, most recent first on ties.

    :param items: Catalog items
    :returns: Best item, or None for an empty sequence
    """
    if not items:
        return None

    def _rank(item: CatalogItem) -> tuple[float, float]:
        cloud_cover = item.cloud_cover if item.cloud_cover is not None else 100.0
        timestamp = item.datetime.timestamp() if item.datetime is not None else float("-inf")
        return cloud_cover, -timestamp

    return min(items, key=_rank)
