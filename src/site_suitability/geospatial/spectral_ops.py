"""Spectral index computation and interpretation."""

import math
from collections.abc import Mapping, Sequence

import numpy as np
from numpy.typing import ArrayLike

from site_suitability.errors import MissingBandError
from site_suitability.models.models import BandRole, IndexInterpretation, SpectralIndices

REQUIRED_BANDS: tuple[BandRole, ...] = (BandRole.NIR, BandRole.RED)
INDEX_BANDS: tuple[BandRole, ...] = (BandRole.RED, BandRole.NIR, BandRole.GREEN, BandRole.SWIR1)

ESTIMATED_SUFFIX = " (estimated)"

# (lower bound, label) pairs checked top-down; the last label applies below every bound.
NDVI_CLASSES: Sequence[tuple[float, str]] = (
    (0.6, "Dense vegetation, healthy crops"),
    (0.3, "Moderate vegetation, grassland"),
    (0.1, "Sparse vegetation"),
    (-0.1, "Bare soil, minimal vegetation"),
)
NDVI_DEFAULT = "Water, built-up areas, or snow"

NDBI_CLASSES: Sequence[tuple[float, str]] = (
    (0.3, "Dense urban development"),
    (0.1, "Moderate urban development"),
    (-0.1, "Mixed urban/vegetation"),
)
NDBI_DEFAULT = "Predominantly vegetation or water"

NDWI_CLASSES: Sequence[tuple[float, str]] = (
    (0.3, "Water body present"),
    (0.1, "Wet soil or shallow water"),
    (-0.1, "Moderate moisture"),
)
NDWI_DEFAULT = "Dry soil or vegetation"

NDMI_CLASSES: Sequence[tuple[float, str]] = (
    (0.4, "High moisture content"),
    (0.2, "Moderate moisture"),
    (0.0, "Low moisture"),
)
NDMI_DEFAULT = "Very dry conditions"


def band_average(values: ArrayLike) -> float:
    """Arithmetic mean of all pixel values, 0.0 for an empty band."""
    array = np.asarray(values, dtype="float64")
    if array.size == 0:
        return 0.0
    return float(np.mean(array))


def normalized_difference(a: float, b: float) -> float:
    """Compute (a - b) / (a + b), 0.0 when undefined.

    :param a: First band average
    :param b: Second band average
    :returns: Index value
    """
    denominator = a + b
    if denominator == 0:
        return 0.0
    value = (a - b) / denominator
    return value if math.isfinite(value) else 0.0


def compute_evi(nir: float, red: float, green: float) -> float:
    """Enhanced Vegetation Index, with green standing in for the blue band.

    :param nir: NIR average
    :param red: Red average
    :param green: Green average
    :returns: EVI value, 0.0 when undefined
    """
    denominator = nir + 6 * red - 7.5 * green + 1
    if denominator == 0:
        return 0.0
    value = 2.5 * (nir - red) / denominator
    return value if math.isfinite(value) else 0.0


def compute_indices(band_averages: Mapping[BandRole, float]) -> SpectralIndices:
    """Compute all indices from per-band averages.

    NIR and red are required. Without SWIR the built-up and moisture indices
    are 0; without green the water index is 0 and EVI is omitted.

    :param band_averages: Average pixel value per band role
    :returns: SpectralIndices instance
    :raises MissingBandError: If NIR or red is missing
    """
    missing = [role.value for role in REQUIRED_BANDS if role not in band_averages]
    if missing:
        raise MissingBandError(missing=missing, available=sorted(role.value for role in band_averages))

    nir = band_averages[BandRole.NIR]
    red = band_averages[BandRole.RED]
    green = band_averages.get(BandRole.GREEN)
    swir = band_averages.get(BandRole.SWIR1)

    return SpectralIndices(
        ndvi=normalized_difference(nir, red),
        ndbi=normalized_difference(swir, nir) if swir is not None else 0.0,
        ndwi=normalized_difference(green, nir) if green is not None else 0.0,
        ndmi=normalized_difference(nir, swir) if swir is not None else 0.0,
        evi=compute_evi(nir, red, green) if green is not None else None,
    )


def _classify(value: float, classes: Sequence[tuple[float, str]], default: str) -> str:
    for lower_bound, label in classes:
        if value >= lower_bound:
            return label
    return default


def interpret_ndvi(ndvi: float) -> str:
    return _classify(ndvi, NDVI_CLASSES, NDVI_DEFAULT)


def interpret_ndbi(ndbi: float) -> str:
    return _classify(ndbi, NDBI_CLASSES, NDBI_DEFAULT)


def interpret_ndwi(ndwi: float) -> str:
    return _classify(ndwi, NDWI_CLASSES, NDWI_DEFAULT)


def interpret_ndmi(ndmi: float) -> str:
    return _classify(ndmi, NDMI_CLASSES, NDMI_DEFAULT)


def interpret_indices(indices: SpectralIndices, estimated: bool = False) -> IndexInterpretation:
    """Interpret every index.

    :param indices: Spectral indices
    :param estimated: Suffix each label with "(estimated)"
    :returns: IndexInterpretation instance
    """
    suffix = ESTIMATED_SUFFIX if estimated else ""
    return IndexInterpretation(
        vegetation=interpret_ndvi(indices.ndvi) + suffix,
        urban_development=interpret_ndbi(indices.ndbi) + suffix,
        water_presence=interpret_ndwi(indices.ndwi) + suffix,
        soil_moisture=interpret_ndmi(indices.ndmi) + suffix,
    )


def estimate_indices(rng: np.random.Generator | None = None) -> SpectralIndices:
    """Draw plausible index values without reading pixels.

    Only for the explicitly requested estimated mode.

    :param rng: Random generator
    :returns: SpectralIndices instance
    """
    rng = rng or np.random.default_rng()
    return SpectralIndices(
        ndvi=float(rng.uniform(0.3, 0.7)),
        ndbi=float(rng.uniform(-0.1, 0.2)),
        ndwi=float(rng.uniform(-0.2, 0.1)),
        ndmi=float(rng.uniform(0.1, 0.4)),
    )
