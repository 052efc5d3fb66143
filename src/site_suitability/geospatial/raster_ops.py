"""Raster operations for reading single bands from cloud-optimized GeoTIFFs."""

import math
import threading
from collections.abc import Iterable, Sequence

import numpy as np
import rasterio
from dagster import get_dagster_logger
from numpy.typing import NDArray
from rasterio.enums import Resampling
from rasterio.errors import RasterioError
from rasterio.warp import transform_bounds
from rasterio.windows import Window

from site_suitability.config.constants import DEFAULT_RASTER_TIMEOUT, GDAL_REMOTE_READ_OPTIONS
from site_suitability.errors import AnalysisCancelled, RasterFetchError
from site_suitability.models.models import BandRole, BBox, RasterReference, RasterWindow
from site_suitability.utils.retry import RetryPolicy, call_with_retry

logger = get_dagster_logger(__name__)

RASTER_ERRORS: tuple[type[Exception], ...] = (RasterioError, OSError)


def _clamp(value: int, lower: int, upper: int) -> int:
    return max(lower, min(upper, value))


def bbox_to_window(
    bbox: Sequence[float],
    raster_bounds: Sequence[float],
    width: int,
    height: int,
) -> RasterWindow:
    """Map a bbox onto the pixel grid of a raster.

    Both boxes are (west, south, east, north) in the same CRS. Row 0 is the
    northern edge. The result is clamped to the raster and is at least one
    pixel wide and tall.

    :param bbox: Area of interest bounds
    :param raster_bounds: Raster bounds
    :param width: Raster width in pixels
    :param height: Raster height in pixels
    :returns: RasterWindow instance
    :raises ZeroDivisionError: If the raster bounds are degenerate
    """
    west, south, east, north = bbox
    r_west, r_south, r_east, r_north = raster_bounds

    x_min = math.floor((west - r_west) / (r_east - r_west) * width)
    x_max = math.ceil((east - r_west) / (r_east - r_west) * width)
    y_min = math.floor((r_north - north) / (r_north - r_south) * height)
    y_max = math.ceil((r_north - south) / (r_north - r_south) * height)

    x = _clamp(x_min, 0, width - 1)
    y = _clamp(y_min, 0, height - 1)
    return RasterWindow(
        x=x,
        y=y,
        width=max(1, _clamp(x_max, 0, width) - x),
        height=max(1, _clamp(y_max, 0, height) - y),
    )


def _resolve_window(src: rasterio.io.DatasetReader, bbox: BBox | None) -> Window:
    """Resolve the read window, falling back to the full raster.

    :param src: Open raster dataset
    :param bbox: Geographic bbox in EPSG:4326, or None
    :returns: Window in full-resolution pixel space
    """
    full = Window(0, 0, src.width, src.height)
    if bbox is None:
        return full

    try:
        bounds = bbox.as_list()
        if src.crs is not None:
            bounds = list(transform_bounds("EPSG:4326", src.crs, *bounds, densify_pts=21))
        window = bbox_to_window(bounds, tuple(src.bounds), src.width, src.height)
    except Exception as e:
        logger.warning(f"Failed to calculate bbox window: {e}. Using full image.")
        return full

    return Window(window.x, window.y, window.width, window.height)


def _overview_factor(src: rasterio.io.DatasetReader) -> int:
    """Decimation factor of the first overview, 1 when the raster has none."""
    overviews = src.overviews(1)
    return overviews[0] if overviews else 1


def _read_band(href: str, bbox: BBox | None, timeout: int) -> NDArray[np.float64]:
    """Read band 1 of a raster within the bbox.

    :param href: Raster URL or path
    :param bbox: Geographic bbox, or None for the full raster
    :param timeout: GDAL HTTP timeout in seconds
    :returns: Flat row-major pixel values
    """
    with rasterio.Env(GDAL_HTTP_TIMEOUT=str(timeout), **GDAL_REMOTE_READ_OPTIONS):
        with rasterio.open(href) as src:
            window = _resolve_window(src, bbox)
            factor = _overview_factor(src)
            out_shape = (
                max(1, math.ceil(window.height / factor)),
                max(1, math.ceil(window.width / factor)),
            )
            logger.debug(
                f"Reading {src.width}x{src.height} raster, window {window}, "
                f"out_shape {out_shape} (overviews: {factor > 1})"
            )
            data = src.read(1, window=window, out_shape=out_shape, resampling=Resampling.nearest)

    values: NDArray[np.float64] = data.astype("float64").ravel()
    return values


def fetch_band(
    href: str,
    bbox: BBox | None = None,
    timeout: int = DEFAULT_RASTER_TIMEOUT,
    retry_policy: RetryPolicy | None = None,
    cancel_event: threading.Event | None = None,
) -> NDArray[np.float64]:
    """Fetch one band's pixel values from a COG, retrying with backoff.

    :param href: Raster URL or path
    :param bbox: Optional geographic window
    :param timeout: Per-request timeout in seconds
    :param retry_policy: Retry policy, defaults to 3 attempts with 2s/4s/8s delays
    :param cancel_event: Optional cancellation event
    :returns: Flat row-major pixel values
    :raises RasterFetchError: If every attempt fails
    """
    policy = retry_policy or RetryPolicy()
    try:
        values = call_with_retry(
            lambda: _read_band(href, bbox, timeout),
            policy,
            retry_on=RASTER_ERRORS,
            description=f"COG fetch {href[:80]}",
            cancel_event=cancel_event,
        )
    except RASTER_ERRORS as e:
        raise RasterFetchError(
            f"Failed to fetch COG after {policy.attempts} attempts: {e}",
            href=href,
            attempts=policy.attempts,
            last_error=e,
        ) from e

    logger.info(f"Fetched {values.size} pixels from COG")
    return values


def fetch_bands(
    bands: dict[BandRole, RasterReference],
    roles: Iterable[BandRole],
    bbox: BBox | None = None,
    timeout: int = DEFAULT_RASTER_TIMEOUT,
    retry_policy: RetryPolicy | None = None,
    cancel_event: threading.Event | None = None,
) -> dict[BandRole, NDArray[np.float64]]:
    """Fetch several bands one after another.

    Roles absent from ``bands`` are skipped. Fetches never overlap.

    :param bands: Available raster references
    :param roles: Roles to fetch, in order
    :param bbox: Optional geographic window
    :param timeout: Per-request timeout in seconds
    :param retry_policy: Retry policy
    :param cancel_event: Optional cancellation event
    :returns: Pixel values keyed by role
    :raises AnalysisCancelled: If cancelled between fetches
    """
    fetched: dict[BandRole, NDArray[np.float64]] = {}
    for role in roles:
        reference = bands.get(role)
        if reference is None:
            continue
        if cancel_event is not None and cancel_event.is_set():
            raise AnalysisCancelled(f"Band fetch cancelled before {role.value}")
        logger.debug(f"Fetching {role.value.upper()} band...")
        fetched[role] = fetch_band(
            reference.href,
            bbox=bbox,
            timeout=timeout,
            retry_policy=retry_policy,
            cancel_event=cancel_event,
        )
    return fetched
