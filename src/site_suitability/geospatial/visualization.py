"""TiTiler tile and preview URLs for the analysed item."""

from urllib.parse import urlencode

from dagster import get_dagster_logger

from site_suitability.config.constants import TITILER_PREVIEW_MAX_SIZE
from site_suitability.errors import VisualizationError
from site_suitability.models.models import (
    BandRole,
    BBox,
    CatalogItem,
    MapVisualization,
    ProjectType,
    RasterReference,
)

logger = get_dagster_logger(__name__)

URBAN_PROJECT_TYPES = (ProjectType.RESIDENTIAL, ProjectType.COMMERCIAL, ProjectType.INDUSTRIAL)

FALLBACK_BANDS = (BandRole.VISUAL, BandRole.RED, BandRole.NIR)
FALLBACK_COLORMAP = "viridis"
FALLBACK_ZOOM = 10

# (max span in degrees, zoom); spans at or below the last bound get CLOSE_ZOOM.
ZOOM_STEPS = ((10, 6), (5, 7), (2, 8), (1, 9), (0.5, 10), (0.1, 12))
CLOSE_ZOOM = 14


def _band_style(project_type: ProjectType) -> tuple[tuple[BandRole, ...], str, str, str]:
    """Preferred bands, colormap, rescale range and STAC asset names for a project type."""
    if project_type is ProjectType.AGRICULTURAL:
        return (BandRole.NIR,), "greens", "0,5000", "nir,red,green"
    if project_type in URBAN_PROJECT_TYPES:
        return (BandRole.SWIR1, BandRole.SWIR2), "reds", "0,4000", "swir22,swir16,red"
    return (BandRole.VISUAL, BandRole.RED), "terrain", "0,3000", "red,green,blue"


def select_primary_band(item: CatalogItem, project_type: ProjectType | str) -> tuple[RasterReference, str, str]:
    """Choose the band shown in the preview.

    :param item: Catalog item
    :param project_type: Declared project type
    :returns: Tuple of (raster reference, colormap, rescale)
    :raises VisualizationError: If the item has no displayable band
    """
    preferred, colormap, rescale, _ = _band_style(ProjectType(project_type))

    for role in preferred:
        if role in item.bands:
            return item.bands[role], colormap, rescale

    for role in FALLBACK_BANDS:
        if role in item.bands:
            return item.bands[role], FALLBACK_COLORMAP, rescale

    raise VisualizationError(f"No suitable bands found. Available: {', '.join(item.available_bands())}")


def suggested_zoom(bbox: BBox) -> int:
    """Web map zoom level for the larger side of the bbox."""
    span = bbox.max_span
    for bound, zoom in ZOOM_STEPS:
        if span > bound:
            return zoom
    return CLOSE_ZOOM


def _preview_url(titiler_endpoint: str, reference: RasterReference, colormap: str, rescale: str) -> str:
    params = {
        "url": reference.href,
        "rescale": rescale,
        "colormap_name": colormap,
        "return_mask": "true",
        "max_size": TITILER_PREVIEW_MAX_SIZE,
    }
    return f"{titiler_endpoint}/cog/preview.png?{urlencode(params)}"


def fallback_visualization(titiler_endpoint: str) -> MapVisualization:
    """Inert visualization returned when no URL can be built."""
    return MapVisualization(
        tile_url=f"{titiler_endpoint}/docs",
        preview_url=f"{titiler_endpoint}/docs",
        bounds={"west": 0.0, "south": 0.0, "east": 0.0, "north": 0.0},
        center={"lat": 0.0, "lon": 0.0},
        suggested_zoom=FALLBACK_ZOOM,
        colormap=FALLBACK_COLORMAP,
    )


def generate_map_visualization(
    item: CatalogItem,
    project_type: ProjectType | str,
    bbox: BBox,
    titiler_endpoint: str,
    stac_api_url: str,
) -> MapVisualization:
    """Build tile and preview parameters for interactive maps.

    Never raises; any failure yields the inert fallback.

    :param item: Analysed catalog item
    :param project_type: Declared project type
    :param bbox: Analysed area
    :param titiler_endpoint: TiTiler base URL
    :param stac_api_url: STAC API base URL used in tile requests
    :returns: MapVisualization instance
    """
    try:
        project_type = ProjectType(project_type)
        reference, colormap, rescale = select_primary_band(item, project_type)
        _, _, _, asset_names = _band_style(project_type)

        stac_item_url = f"{stac_api_url.rstrip('/')}/collections/{item.collection}/items/{item.id}"
        tile_params = {
            "url": stac_item_url,
            "assets": asset_names,
            "rescale": rescale,
            "colormap_name": colormap,
            "return_mask": "true",
        }
        tile_url = f"{titiler_endpoint}/stac/tiles/WebMercatorQuad/{{z}}/{{x}}/{{y}}?{urlencode(tile_params)}"

        center_lat, center_lon = bbox.center
        return MapVisualization(
            tile_url=tile_url,
            preview_url=_preview_url(titiler_endpoint, reference, colormap, rescale),
            bounds={"west": bbox.west, "south": bbox.south, "east": bbox.east, "north": bbox.north},
            center={"lat": center_lat, "lon": center_lon},
            suggested_zoom=suggested_zoom(bbox),
            colormap=colormap,
            rescale=rescale,
            assets=asset_names,
        )
    except Exception as e:
        logger.error(f"Failed to generate map visualization: {e}")
        return fallback_visualization(titiler_endpoint)


def generate_preview_url(item: CatalogItem, project_type: ProjectType | str, titiler_endpoint: str) -> str:
    """Build a static preview URL, falling back to the TiTiler docs page.

    :param item: Catalog item
    :param project_type: Declared project type
    :param titiler_endpoint: TiTiler base URL
    :returns: Preview URL
    """
    try:
        reference, colormap, rescale = select_primary_band(item, project_type)
        return _preview_url(titiler_endpoint, reference, colormap, rescale)
    except Exception as e:
        logger.error(f"Failed to generate TiTiler URL: {e}")
        return f"{titiler_endpoint}/docs"
