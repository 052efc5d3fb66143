"""Constants for catalog access, raster reads and scoring."""

DEFAULT_STAC_API_URL = "https://earth-search.aws.element84.com/v1"
DEFAULT_TITILER_ENDPOINT = "https://titiler.xyz"
DEFAULT_STAC_COLLECTION = "sentinel-2-l2a"
DEFAULT_ENVIRONMENT = "production"

DEFAULT_CLOUD_COVER_THRESHOLD = 10
DEFAULT_SEARCH_LIMIT = 10
DEFAULT_TREND_SEARCH_LIMIT = 5
DEFAULT_RADIUS_METERS = 1000.0

DEFAULT_CATALOG_TIMEOUT = 20
DEFAULT_RASTER_TIMEOUT = 120
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_BASE_DELAY = 2.0
DEFAULT_ANALYSIS_TIMEOUT = 300

METERS_PER_DEGREE = 111000.0
POINT_BBOX_BUFFER = 1.2

CLOUD_COVER_PROPERTY = "eo:cloud_cover"

SATELLITE_SOURCE = "Sentinel-2 L2A"
SATELLITE_RESOLUTION = "10m"

# Asset keys tried in order for each band role; Earth Search names first, then Sentinel-2 band ids.
BAND_ASSET_ALIASES: dict[str, list[str]] = {
    "red": ["red", "B04"],
    "green": ["green", "B03"],
    "nir": ["nir", "B08"],
    "swir1": ["swir16", "B11"],
    "swir2": ["swir22", "B12"],
    "visual": ["visual", "TCI"],
}

GDAL_REMOTE_READ_OPTIONS: dict[str, str] = {
    "GDAL_DISABLE_READDIR_ON_OPEN": "EMPTY_DIR",
    "CPL_VSIL_CURL_ALLOWED_EXTENSIONS": ".tif,.tiff,.TIF",
    "GDAL_HTTP_MAX_RETRY": "0",
    "VSI_CACHE": "TRUE",
}

TITILER_PREVIEW_MAX_SIZE = "1024"
