from urllib.parse import parse_qs, urlparse

import pytest

from site_suitability.errors import VisualizationError
from site_suitability.geospatial import visualization
from site_suitability.models.models import BandRole, BBox, CatalogItem, RasterReference

TITILER = "https://tiles.example.com"
STAC = "https://stac.example.com/v1"


def _item(*roles: BandRole) -> CatalogItem:
    return CatalogItem(
        id="S2B_43QCV_20240120_0_L2A",
        collection="sentinel-2-l2a",
        bands={role: RasterReference(href=f"https://x/{role.value}.tif") for role in roles},
    )


@pytest.mark.parametrize(
    ("span", "zoom"),
    [(12, 6), (6, 7), (3, 8), (1.5, 9), (0.7, 10), (0.2, 12), (0.05, 14)],
)
def test_suggested_zoom_steps(span: float, zoom: int) -> None:
    assert visualization.suggested_zoom(BBox(west=10, south=40, east=10 + span, north=40.01)) == zoom


def test_select_primary_band_prefers_project_bands() -> None:
    """
    Test band selection per project type, with viridis for fallback bands.
    """
    item = _item(BandRole.NIR, BandRole.RED, BandRole.SWIR1, BandRole.VISUAL)

    reference, colormap, rescale = visualization.select_primary_band(item, "agricultural")
    assert reference.href == "https://x/nir.tif"
    assert (colormap, rescale) == ("greens", "0,5000")

    reference, colormap, _ = visualization.select_primary_band(item, "industrial")
    assert reference.href == "https://x/swir1.tif"
    assert colormap == "reds"

    reference, colormap, _ = visualization.select_primary_band(_item(BandRole.RED), "residential")
    assert reference.href == "https://x/red.tif"
    assert colormap == "viridis"

    with pytest.raises(VisualizationError):
        visualization.select_primary_band(_item(BandRole.GREEN), "mixed")


def test_generate_map_visualization_builds_urls() -> None:
    """
    Test tile and preview URLs, bounds, centre and zoom for an agricultural site.
    """
    bbox = BBox(west=73.8, south=18.5, east=74.0, north=18.6)
    result = visualization.generate_map_visualization(_item(BandRole.NIR, BandRole.RED), "agricultural", bbox, TITILER, STAC)

    assert result.tile_url.startswith(f"{TITILER}/stac/tiles/WebMercatorQuad/{{z}}/{{x}}/{{y}}?")
    tile_query = parse_qs(urlparse(result.tile_url).query)
    assert tile_query["url"] == [f"{STAC}/collections/sentinel-2-l2a/items/S2B_43QCV_20240120_0_L2A"]
    assert tile_query["assets"] == ["nir,red,green"]
    assert tile_query["colormap_name"] == ["greens"]

    preview_query = parse_qs(urlparse(result.preview_url).query)
    assert result.preview_url.startswith(f"{TITILER}/cog/preview.png?")
    assert preview_query["url"] == ["https://x/nir.tif"]
    assert preview_query["max_size"] == ["1024"]

    assert result.bounds == {"west": 73.8, "south": 18.5, "east": 74.0, "north": 18.6}
    assert result.center["lat"] == pytest.approx(18.55)
    assert result.center["lon"] == pytest.approx(73.9)
    assert result.suggested_zoom == 12


def test_generate_map_visualization_falls_back_without_bands() -> None:
    """
    Test that an item without displayable bands yields the inert fallback instead of raising.
    """
    bbox = BBox(west=73.8, south=18.5, east=73.9, north=18.6)
    result = visualization.generate_map_visualization(_item(), "commercial", bbox, TITILER, STAC)
    assert result == visualization.fallback_visualization(TITILER)
    assert result.tile_url == f"{TITILER}/docs"
    assert result.suggested_zoom == 10
    assert result.colormap == "viridis"

    assert visualization.generate_preview_url(_item(), "mixed", TITILER) == f"{TITILER}/docs"
