"""Data models for site suitability analysis."""

from datetime import date, datetime as dt
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field as PydanticField, field_validator, model_validator

from site_suitability.config.constants import (
    DEFAULT_CLOUD_COVER_THRESHOLD,
    DEFAULT_RADIUS_METERS,
    DEFAULT_SEARCH_LIMIT,
    DEFAULT_STAC_COLLECTION,
    METERS_PER_DEGREE,
)


def parse_request_date(value: str) -> date:
    """Parse a request date to its calendar day.

    Accepts YYYY-MM-DD or a full RFC-3339 timestamp.

    :param value: Raw date string
    :returns: Calendar date
    :raises ValueError: If the value is not an ISO date
    """
    try:
        if "T" in value:
            return dt.fromisoformat(value.replace("Z", "+00:00")).date()
        return date.fromisoformat(value)
    except ValueError as e:
        raise ValueError(f"Invalid date '{value}', expected YYYY-MM-DD or RFC-3339") from e


def _check_date_order(start: str | None, end: str | None, label: str) -> None:
    if start is not None and end is not None and parse_request_date(start) > parse_request_date(end):
        raise ValueError(f"{label} start date {start} is after end date {end}")


class BandRole(str, Enum):
    """Spectral band roles resolved from catalog asset keys."""

    RED = "red"
    GREEN = "green"
    NIR = "nir"
    SWIR1 = "swir1"
    SWIR2 = "swir2"
    VISUAL = "visual"


class ProjectType(str, Enum):
    """Declared development project type."""

    RESIDENTIAL = "residential"
    COMMERCIAL = "commercial"
    INDUSTRIAL = "industrial"
    MIXED = "mixed"
    AGRICULTURAL = "agricultural"


class SpectralMode(str, Enum):
    """Whether indices come from pixels or from the degraded estimate."""

    MEASURED = "measured"
    ESTIMATED = "estimated"


class BBox(BaseModel):
    """Geographic bounding box in degrees.

    :param west: Minimum longitude
    :param south: Minimum latitude
    :param east: Maximum longitude
    :param north: Maximum latitude
    """

    model_config = ConfigDict(frozen=True)

    west: float = PydanticField(..., ge=-180, le=180, description="Minimum longitude")
    south: float = PydanticField(..., ge=-90, le=90, description="Minimum latitude")
    east: float = PydanticField(..., ge=-180, le=180, description="Maximum longitude")
    north: float = PydanticField(..., ge=-90, le=90, description="Maximum latitude")

    @model_validator(mode="after")
    def _check_ordering(self) -> "BBox":
        if self.west >= self.east:
            raise ValueError(f"west ({self.west}) must be less than east ({self.east})")
        if self.south >= self.north:
            raise ValueError(f"south ({self.south}) must be less than north ({self.north})")
        return self

    @classmethod
    def from_list(cls, values: Any) -> "BBox":
        """Create BBox from a [west, south, east, north] sequence.

        :param values: Four numbers
        :returns: BBox instance
        """
        west, south, east, north = (float(v) for v in values)
        return cls(west=west, south=south, east=east, north=north)

    def as_list(self) -> list[float]:
        return [self.west, self.south, self.east, self.north]

    @property
    def center(self) -> tuple[float, float]:
        """Midpoint as (lat, lon)."""
        return (self.south + self.north) / 2, (self.west + self.east) / 2

    @property
    def max_span(self) -> float:
        return max(self.east - self.west, self.north - self.south)

    @property
    def area_m2(self) -> float:
        """Approximate area, treating a degree as the same length on both axes."""
        return (self.east - self.west) * METERS_PER_DEGREE * (self.north - self.south) * METERS_PER_DEGREE


class SearchCriteria(BaseModel):
    """Catalog search criteria for a single request."""

    model_config = ConfigDict(frozen=True)

    bbox: BBox = PydanticField(..., description="Area of interest")
    start_date: str | None = PydanticField(default=None, description="Start date, YYYY-MM-DD or RFC-3339")
    end_date: str | None = PydanticField(default=None, description="End date, YYYY-MM-DD or RFC-3339")
    cloud_cover_max: float = PydanticField(
        default=DEFAULT_CLOUD_COVER_THRESHOLD, ge=0, le=100, description="Cloud cover must be below this"
    )
    limit: int = PydanticField(default=DEFAULT_SEARCH_LIMIT, gt=0, description="Maximum items requested")
    collection: str = PydanticField(default=DEFAULT_STAC_COLLECTION, description="STAC collection id")


class RasterReference(BaseModel):
    """Remote-readable raster asset."""

    model_config = ConfigDict(frozen=True)

    href: str = PydanticField(..., description="Signed asset URL")
    media_type: str | None = PydanticField(default=None, description="Asset media type")


class CatalogItem(BaseModel):
    """Catalog item reduced to what the analysis needs.

    :param id: Item id
    :param bbox: Item footprint bounds
    :param geometry: Optional GeoJSON footprint
    :param datetime: Capture timestamp
    :param cloud_cover: Cloud cover percentage, None when not reported
    :param bands: Raster references keyed by band role
    :param collection: Collection the item belongs to
    """

    model_config = ConfigDict(frozen=True)

    id: str = PydanticField(..., description="Item id")
    bbox: list[float] | None = PydanticField(default=None, description="Item footprint bounds")
    geometry: dict[str, Any] | None = PydanticField(default=None, description="GeoJSON footprint")
    datetime: dt | None = PydanticField(default=None, description="Capture timestamp")
    cloud_cover: float | None = PydanticField(default=None, description="Cloud cover percentage")
    bands: dict[BandRole, RasterReference] = PydanticField(default_factory=dict, description="Band assets")
    collection: str = PydanticField(default=DEFAULT_STAC_COLLECTION, description="Collection id")

    def available_bands(self) -> list[str]:
        return sorted(role.value for role in self.bands)


class RasterWindow(BaseModel):
    """Pixel-space rectangle within a raster."""

    model_config = ConfigDict(frozen=True)

    x: int = PydanticField(..., ge=0)
    y: int = PydanticField(..., ge=0)
    width: int = PydanticField(..., ge=1)
    height: int = PydanticField(..., ge=1)


class SpectralIndices(BaseModel):
    """Normalized-difference indices averaged over the area of interest.

    :param ndvi: Vegetation index
    :param ndbi: Built-up index
    :param ndwi: Water index
    :param ndmi: Moisture index
    :param evi: Enhanced vegetation index, when green, red and NIR are all available
    """

    model_config = ConfigDict(frozen=True)

    ndvi: float = PydanticField(..., description="Normalized Difference Vegetation Index")
    ndbi: float = PydanticField(..., description="Normalized Difference Built-up Index")
    ndwi: float = PydanticField(..., description="Normalized Difference Water Index")
    ndmi: float = PydanticField(..., description="Normalized Difference Moisture Index")
    evi: float | None = PydanticField(default=None, description="Enhanced Vegetation Index")


class IndexInterpretation(BaseModel):
    model_config = ConfigDict(frozen=True)

    vegetation: str
    urban_development: str
    water_presence: str
    soil_moisture: str


class SpectralAnalysis(BaseModel):
    """Indices with their interpretation and quality figures for one item."""

    model_config = ConfigDict(frozen=True)

    mode: SpectralMode = PydanticField(default=SpectralMode.MEASURED, description="Measured or estimated")
    indices: SpectralIndices
    interpretation: IndexInterpretation
    confidence: float = PydanticField(..., ge=0, le=100, description="Confidence percentage")
    cloud_cover: float = PydanticField(..., description="Cloud cover percentage")
    acquisition_date: str = PydanticField(..., description="Capture timestamp, ISO-8601")
    item_id: str = PydanticField(..., description="Catalog item analysed")
    band_averages: dict[str, float] | None = PydanticField(
        default=None, description="Mean pixel value per band, only with detailed metrics"
    )


class MapVisualization(BaseModel):
    """Tile and preview parameters for interactive maps."""

    tile_url: str = PydanticField(..., description="Tile URL template with {z}/{x}/{y}")
    preview_url: str = PydanticField(..., description="Static preview image URL")
    bounds: dict[str, float] = PydanticField(..., description="west/south/east/north")
    center: dict[str, float] = PydanticField(..., description="lat/lon")
    suggested_zoom: int = PydanticField(..., description="Web map zoom level")
    colormap: str = PydanticField(..., description="Colour ramp name")
    rescale: str | None = PydanticField(default=None, description="Rescale range")
    assets: str | None = PydanticField(default=None, description="Comma-separated STAC asset names")


class AnalysisMetadata(BaseModel):
    satellite_source: str
    resolution: str
    area_analyzed: float = PydanticField(..., description="Square metres")
    images_processed: int


class SiteAnalysisRequest(BaseModel):
    """Inbound site analysis request.

    Either ``bbox`` or ``latitude`` and ``longitude`` must be given.
    """

    project_type: ProjectType
    bbox: list[float] | None = PydanticField(default=None, description="[west, south, east, north]")
    latitude: float | None = PydanticField(default=None, ge=-90, le=90)
    longitude: float | None = PydanticField(default=None, ge=-180, le=180)
    radius: float = PydanticField(default=DEFAULT_RADIUS_METERS, gt=0, description="Radius in metres")
    start_date: str | None = PydanticField(default=None, description="YYYY-MM-DD")
    end_date: str | None = PydanticField(default=None, description="YYYY-MM-DD")
    cloud_cover_max: float | None = PydanticField(default=None, ge=0, le=100, description="0-100")
    include_visualization: bool = False
    detailed_metrics: bool = False
    estimate_only: bool = PydanticField(default=False, description="Skip pixel reads and return estimated indices")

    @field_validator("bbox")
    @classmethod
    def _check_bbox_length(cls, value: list[float] | None) -> list[float] | None:
        if value is not None and len(value) != 4:
            raise ValueError("bbox must contain exactly 4 values [west, south, east, north]")
        return value

    @field_validator("start_date", "end_date")
    @classmethod
    def _check_date_format(cls, value: str | None) -> str | None:
        if value is not None:
            parse_request_date(value)
        return value

    @model_validator(mode="after")
    def _check_date_range(self) -> "SiteAnalysisRequest":
        _check_date_order(self.start_date, self.end_date, "Search")
        return self


class SiteAnalysisResult(BaseModel):
    """Outbound site analysis result."""

    model_config = ConfigDict(frozen=True)

    success: bool = True
    suitability_score: float = PydanticField(..., ge=0, le=100)
    spectral_analysis: SpectralAnalysis
    recommendations: list[str]
    warnings: list[str]
    visualization_url: str | None = None
    map_url: str | None = None
    map_visualization: MapVisualization | None = None
    metadata: AnalysisMetadata


class GrowthTrendsRequest(BaseModel):
    """Inbound request comparing two time periods over the same area."""

    bbox: list[float] = PydanticField(..., description="[west, south, east, north]")
    baseline_start: str
    baseline_end: str
    current_start: str
    current_end: str
    cloud_cover_max: float | None = PydanticField(default=None, ge=0, le=100)

    @field_validator("bbox")
    @classmethod
    def _check_bbox_length(cls, value: list[float]) -> list[float]:
        if len(value) != 4:
            raise ValueError("bbox must contain exactly 4 values [west, south, east, north]")
        return value

    @field_validator("baseline_start", "baseline_end", "current_start", "current_end")
    @classmethod
    def _check_date_format(cls, value: str) -> str:
        parse_request_date(value)
        return value

    @model_validator(mode="after")
    def _check_date_ranges(self) -> "GrowthTrendsRequest":
        _check_date_order(self.baseline_start, self.baseline_end, "Baseline")
        _check_date_order(self.current_start, self.current_end, "Current")
        return self


class ChangeDetection(BaseModel):
    model_config = ConfigDict(frozen=True)

    ndvi_change: float = PydanticField(..., description="Current minus baseline NDVI")
    ndbi_change: float = PydanticField(..., description="Current minus baseline NDBI")
    vegetation_loss: float = PydanticField(..., description="Percentage points of NDVI lost")
    urban_expansion: float = PydanticField(..., description="Percentage points of NDBI gained")


class GrowthTrendsResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    change_detection: ChangeDetection
    baseline: SpectralAnalysis
    current: SpectralAnalysis
    interpretation: str
    visualization_url: str | None = None
