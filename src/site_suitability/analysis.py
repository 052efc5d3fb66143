"""Site suitability and growth trend analysis entry points.

Both entry points are synchronous and request-scoped, so they can be called
from a request handler or from a queued Dagster run with the same result.
"""

import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from datetime import datetime, timezone
from typing import Any, TypeVar

import numpy as np
from dagster import get_dagster_logger
from pydantic import BaseModel, ValidationError

from site_suitability.config.constants import SATELLITE_RESOLUTION, SATELLITE_SOURCE
from site_suitability.connectors.settings import SettingsResource
from site_suitability.connectors.stac_client import STACResource
from site_suitability.errors import AnalysisTimeout, InvalidInput, MissingBandError, NoImageryFound
from site_suitability.geospatial.raster_ops import fetch_bands
from site_suitability.geospatial.spectral_ops import (
    INDEX_BANDS,
    REQUIRED_BANDS,
    band_average,
    compute_indices,
    estimate_indices,
    interpret_indices,
)
from site_suitability.geospatial.stac_ops import (
    best_quality_item,
    create_bbox_from_point,
    open_catalog,
    parse_bbox,
    search_items,
)
from site_suitability.geospatial.suitability import (
    calculate_confidence,
    detect_change,
    interpret_growth_trends,
    score,
)
from site_suitability.geospatial.visualization import generate_map_visualization, generate_preview_url
from site_suitability.models.models import (
    AnalysisMetadata,
    BBox,
    CatalogItem,
    GrowthTrendsRequest,
    GrowthTrendsResult,
    ProjectType,
    SearchCriteria,
    SiteAnalysisRequest,
    SiteAnalysisResult,
    SpectralAnalysis,
    SpectralMode,
)

T = TypeVar("T")
RequestT = TypeVar("RequestT", bound=BaseModel)

logger = get_dagster_logger(__name__)


def _coerce_request(request: RequestT | dict[str, Any], model: type[RequestT]) -> RequestT:
    """Validate a raw request into its model.

    :param request: Model instance or raw mapping
    :param model: Request model class
    :returns: Validated request
    :raises InvalidInput: If validation fails
    """
    if isinstance(request, model):
        return request
    try:
        return model.model_validate(request)
    except ValidationError as e:
        raise InvalidInput(f"Invalid {model.__name__}: {e}") from e


def _bbox_from_list(values: list[float]) -> BBox:
    bbox = parse_bbox(values)
    if bbox is None:
        raise InvalidInput(
            f"Invalid bbox {values}: expected [west, south, east, north] with west < east and south < north"
        )
    return bbox


def _resolve_bbox(request: SiteAnalysisRequest) -> BBox:
    """Determine the search bbox from an explicit box or a point and radius.

    :param request: Site analysis request
    :returns: BBox instance
    :raises InvalidInput: If neither form is usable
    """
    if request.bbox is not None:
        return _bbox_from_list(request.bbox)
    if request.latitude is not None and request.longitude is not None:
        return create_bbox_from_point(request.latitude, request.longitude, request.radius)
    raise InvalidInput("Either bbox or latitude/longitude must be provided")


def _resolve_stac_client(
    stac_client: Any | None,
    settings: SettingsResource,
    cancel_event: threading.Event | None,
) -> Any:
    if stac_client is not None:
        return stac_client
    return open_catalog(STACResource(settings=settings), settings.retry_policy(), cancel_event)


def _acquisition_date(item: CatalogItem) -> str:
    acquired = item.datetime or datetime.now(timezone.utc)
    return acquired.isoformat()


def measure_spectral_analysis(
    item: CatalogItem,
    bbox: BBox | None,
    settings: SettingsResource,
    cancel_event: threading.Event | None = None,
    detailed_metrics: bool = False,
) -> SpectralAnalysis:
    """Compute indices from the item's pixels.

    Bands are fetched one at a time, each averaged over the bbox.

    :param item: Catalog item to analyse
    :param bbox: Area of interest
    :param settings: Settings resource
    :param cancel_event: Optional cancellation event
    :param detailed_metrics: Include per-band averages in the result
    :returns: Measured SpectralAnalysis
    :raises MissingBandError: If NIR or red is missing
    :raises RasterFetchError: If a band cannot be read
    """
    missing = [role.value for role in REQUIRED_BANDS if role not in item.bands]
    if missing:
        logger.warning(f"Missing required bands for spectral analysis on {item.id}: {missing}")
        raise MissingBandError(missing=missing, available=item.available_bands())

    logger.info(f"Fetching satellite bands for spectral analysis of {item.id}...")
    band_values = fetch_bands(
        item.bands,
        INDEX_BANDS,
        bbox=bbox,
        timeout=settings.raster_timeout,
        retry_policy=settings.retry_policy(),
        cancel_event=cancel_event,
    )
    averages = {role: band_average(values) for role, values in band_values.items()}
    indices = compute_indices(averages)
    logger.info(f"Spectral indices calculated for {item.id}: NDVI={indices.ndvi:.3f}, NDBI={indices.ndbi:.3f}")

    cloud_cover = item.cloud_cover or 0.0
    return SpectralAnalysis(
        mode=SpectralMode.MEASURED,
        indices=indices,
        interpretation=interpret_indices(indices),
        confidence=calculate_confidence(cloud_cover),
        cloud_cover=cloud_cover,
        acquisition_date=_acquisition_date(item),
        item_id=item.id,
        band_averages={role.value: value for role, value in averages.items()} if detailed_metrics else None,
    )


def estimate_spectral_analysis(item: CatalogItem, rng: np.random.Generator | None = None) -> SpectralAnalysis:
    """Produce an estimated analysis without reading pixels.

    Labelled as estimated throughout; never used as a silent substitute.

    :param item: Catalog item
    :param rng: Random generator
    :returns: Estimated SpectralAnalysis
    """
    indices = estimate_indices(rng)
    cloud_cover = item.cloud_cover or 0.0
    return SpectralAnalysis(
        mode=SpectralMode.ESTIMATED,
        indices=indices,
        interpretation=interpret_indices(indices, estimated=True),
        confidence=max(50.0, calculate_confidence(cloud_cover)),
        cloud_cover=cloud_cover,
        acquisition_date=_acquisition_date(item),
        item_id=item.id,
    )


def _search_best_item(
    stac_client: Any,
    criteria: SearchCriteria,
    settings: SettingsResource,
    cancel_event: threading.Event | None,
) -> tuple[CatalogItem | None, int]:
    """Search and rank items.

    :returns: Tuple of (best item or None, number of qualifying items)
    """
    items = search_items(stac_client, criteria, settings.retry_policy(), cancel_event)
    return best_quality_item(items), len(items)


def analyze_site(
    request: SiteAnalysisRequest | dict[str, Any],
    settings: SettingsResource,
    stac_client: Any | None = None,
    cancel_event: threading.Event | None = None,
) -> SiteAnalysisResult:
    """Analyse a site's suitability for a project type.

    :param request: Site analysis request
    :param settings: Settings resource
    :param stac_client: STAC client, opened from settings when omitted
    :param cancel_event: Optional cancellation event
    :returns: SiteAnalysisResult instance
    :raises InvalidInput: For a malformed request
    :raises CatalogUnavailable: If the catalog cannot be searched
    :raises NoImageryFound: If no item qualifies
    :raises MissingBandError: If the best item lacks NIR or red
    :raises RasterFetchError: If a band cannot be read
    """
    request = _coerce_request(request, SiteAnalysisRequest)
    bbox = _resolve_bbox(request)
    logger.info(f"Analyzing site: project_type={request.project_type.value}, bbox={bbox.as_list()}")

    criteria = SearchCriteria(
        bbox=bbox,
        start_date=request.start_date,
        end_date=request.end_date,
        cloud_cover_max=(
            request.cloud_cover_max if request.cloud_cover_max is not None else settings.cloud_cover_threshold
        ),
        limit=settings.search_limit,
        collection=settings.stac_collection,
    )
    client = _resolve_stac_client(stac_client, settings, cancel_event)
    best_item, images_found = _search_best_item(client, criteria, settings, cancel_event)
    if best_item is None:
        raise NoImageryFound("No suitable satellite imagery found for the specified area and time range")

    logger.info(f"Processing image: {best_item.id} (cloud cover {best_item.cloud_cover}%)")
    if request.estimate_only:
        spectral_analysis = estimate_spectral_analysis(best_item)
    else:
        spectral_analysis = measure_spectral_analysis(
            best_item, bbox, settings, cancel_event, detailed_metrics=request.detailed_metrics
        )

    suitability_score, recommendations, warnings = score(
        spectral_analysis.indices, request.project_type, spectral_analysis.cloud_cover
    )

    map_visualization = None
    if request.include_visualization:
        map_visualization = generate_map_visualization(
            best_item,
            request.project_type,
            bbox,
            titiler_endpoint=settings.titiler_endpoint,
            stac_api_url=settings.stac_api_url,
        )

    return SiteAnalysisResult(
        suitability_score=suitability_score,
        spectral_analysis=spectral_analysis,
        recommendations=recommendations,
        warnings=warnings,
        visualization_url=map_visualization.preview_url if map_visualization else None,
        map_url=map_visualization.tile_url if map_visualization else None,
        map_visualization=map_visualization,
        metadata=AnalysisMetadata(
            satellite_source=SATELLITE_SOURCE,
            resolution=SATELLITE_RESOLUTION,
            area_analyzed=bbox.area_m2,
            images_processed=images_found,
        ),
    )


def analyze_growth_trends(
    request: GrowthTrendsRequest | dict[str, Any],
    settings: SettingsResource,
    stac_client: Any | None = None,
    cancel_event: threading.Event | None = None,
) -> GrowthTrendsResult:
    """Compare vegetation and built-up indices between two periods.

    :param request: Growth trends request
    :param settings: Settings resource
    :param stac_client: STAC client, opened from settings when omitted
    :param cancel_event: Optional cancellation event
    :returns: GrowthTrendsResult instance
    :raises NoImageryFound: If either period has no qualifying item
    """
    request = _coerce_request(request, GrowthTrendsRequest)
    bbox = _bbox_from_list(request.bbox)
    cloud_cover_max = (
        request.cloud_cover_max if request.cloud_cover_max is not None else settings.cloud_cover_threshold
    )
    logger.info(
        f"Analyzing growth trends: baseline {request.baseline_start} to {request.baseline_end}, "
        f"current {request.current_start} to {request.current_end}"
    )

    def _criteria(start: str, end: str) -> SearchCriteria:
        return SearchCriteria(
            bbox=bbox,
            start_date=start,
            end_date=end,
            cloud_cover_max=cloud_cover_max,
            limit=settings.trend_search_limit,
            collection=settings.stac_collection,
        )

    client = _resolve_stac_client(stac_client, settings, cancel_event)
    baseline_item, _ = _search_best_item(
        client, _criteria(request.baseline_start, request.baseline_end), settings, cancel_event
    )
    current_item, _ = _search_best_item(
        client, _criteria(request.current_start, request.current_end), settings, cancel_event
    )
    if baseline_item is None or current_item is None:
        raise NoImageryFound("Insufficient imagery for both time periods. Try expanding date ranges.")

    baseline = measure_spectral_analysis(baseline_item, bbox, settings, cancel_event)
    current = measure_spectral_analysis(current_item, bbox, settings, cancel_event)
    change = detect_change(baseline.indices, current.indices)

    return GrowthTrendsResult(
        change_detection=change,
        baseline=baseline,
        current=current,
        interpretation=interpret_growth_trends(change),
        visualization_url=generate_preview_url(current_item, ProjectType.MIXED, settings.titiler_endpoint),
    )


def run_with_timeout(func: Callable[[threading.Event], T], timeout: float) -> T:
    """Run ``func`` on a worker thread under a hard ceiling.

    On timeout the cancel event handed to ``func`` is set, so no further
    band fetch or retry starts, and AnalysisTimeout is raised.

    :param func: Callable receiving the cancel event
    :param timeout: Ceiling in seconds
    :returns: Result of ``func``
    :raises AnalysisTimeout: If the ceiling is reached
    """
    cancel_event = threading.Event()
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="site-analysis")
    future = executor.submit(func, cancel_event)
    try:
        return future.result(timeout=timeout)
    except FuturesTimeoutError as e:
        cancel_event.set()
        logger.error(f"Analysis timed out after {timeout}s")
        raise AnalysisTimeout(f"Analysis timed out after {timeout}s", timeout=timeout) from e
    finally:
        executor.shutdown(wait=False)


def run_site_analysis(
    request: SiteAnalysisRequest | dict[str, Any],
    settings: SettingsResource,
    stac_client: Any | None = None,
) -> SiteAnalysisResult:
    """Run ``analyze_site`` under ``settings.analysis_timeout``."""
    return run_with_timeout(
        lambda cancel_event: analyze_site(request, settings, stac_client, cancel_event),
        settings.analysis_timeout,
    )


def run_growth_trends(
    request: GrowthTrendsRequest | dict[str, Any],
    settings: SettingsResource,
    stac_client: Any | None = None,
) -> GrowthTrendsResult:
    """Run ``analyze_growth_trends`` under ``settings.analysis_timeout``."""
    return run_with_timeout(
        lambda cancel_event: analyze_growth_trends(request, settings, stac_client, cancel_event),
        settings.analysis_timeout,
    )
