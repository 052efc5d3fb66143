"""Suitability scoring, recommendations, warnings and change detection."""

from site_suitability.models.models import ChangeDetection, ProjectType, SpectralIndices

BASE_SCORE = 50.0

HIGH_CLOUD_COVER = 20.0
FLOOD_RISK_NDWI = 0.4
ZONING_REVIEW_NDBI = 0.5

STABLE_CHANGE = 0.05
SIGNIFICANT_CHANGE = 0.1


def calculate_suitability(indices: SpectralIndices, project_type: ProjectType | str) -> float:
    """Score a site for a project type.

    :param indices: Spectral indices
    :param project_type: Declared project type
    :returns: Score clamped to [0, 100]
    """
    project_type = ProjectType(project_type)
    score = BASE_SCORE

    if project_type is ProjectType.AGRICULTURAL:
        score += indices.ndvi * 30
        score += indices.ndmi * 20
        score -= abs(indices.ndbi) * 10
    elif project_type in (ProjectType.RESIDENTIAL, ProjectType.COMMERCIAL):
        score += indices.ndbi * 15
        score += (1 - abs(indices.ndvi)) * 10
        score -= indices.ndwi * 10
    elif project_type is ProjectType.INDUSTRIAL:
        score += indices.ndbi * 20
        score -= indices.ndwi * 15
    elif project_type is ProjectType.MIXED:
        score += indices.ndvi * 10
        score += indices.ndbi * 10
        score += indices.ndmi * 10

    return max(0.0, min(100.0, score))


def generate_recommendations(
    indices: SpectralIndices,
    project_type: ProjectType | str,
    suitability: float,
) -> list[str]:
    """Build recommendations in a fixed order.

    :param indices: Spectral indices
    :param project_type: Declared project type
    :param suitability: Suitability score
    :returns: Recommendation messages
    """
    project_type = ProjectType(project_type)
    name = project_type.value
    recommendations = []

    if suitability >= 70:
        recommendations.append(f"Excellent site for {name} development ({suitability:.1f}% suitable)")
    elif suitability >= 50:
        recommendations.append(f"Good site for {name} development with moderate preparation")
    else:
        recommendations.append(f"Site may require significant preparation for {name} development")

    if indices.ndvi > 0.5 and project_type is not ProjectType.AGRICULTURAL:
        recommendations.append("Dense vegetation present - clearing may be required")
    if indices.ndbi > 0.3:
        recommendations.append("Existing development detected - consider infill opportunities")
    if indices.ndwi > 0.2:
        recommendations.append("Water features present - drainage assessment recommended")
    if indices.ndmi < 0:
        recommendations.append("Dry conditions detected - irrigation may be necessary for landscaping")

    return recommendations


def generate_warnings(indices: SpectralIndices, cloud_cover: float) -> list[str]:
    """Build informational warnings.

    :param indices: Spectral indices
    :param cloud_cover: Cloud cover percentage of the analysed item
    :returns: Warning messages
    """
    warnings = []
    if cloud_cover > HIGH_CLOUD_COVER:
        warnings.append(f"High cloud cover ({cloud_cover:.1f}%) may affect accuracy")
    if indices.ndwi > FLOOD_RISK_NDWI:
        warnings.append("Significant water presence - flood risk assessment advised")
    if indices.ndbi > ZONING_REVIEW_NDBI:
        warnings.append("High existing development - zoning and permit review required")
    return warnings


def calculate_confidence(cloud_cover: float) -> float:
    return max(0.0, 100.0 - cloud_cover * 2)


def score(
    indices: SpectralIndices,
    project_type: ProjectType | str,
    cloud_cover: float = 0.0,
) -> tuple[float, list[str], list[str]]:
    """Score a site and derive its recommendations and warnings.

    :param indices: Spectral indices
    :param project_type: Declared project type
    :param cloud_cover: Cloud cover percentage, used for warnings
    :returns: Tuple of (score, recommendations, warnings)
    """
    suitability = calculate_suitability(indices, project_type)
    return (
        suitability,
        generate_recommendations(indices, project_type, suitability),
        generate_warnings(indices, cloud_cover),
    )


def detect_change(baseline: SpectralIndices, current: SpectralIndices) -> ChangeDetection:
    """Compare vegetation and built-up indices between two periods.

    :param baseline: Indices for the earlier period
    :param current: Indices for the later period
    :returns: ChangeDetection instance
    """
    ndvi_change = current.ndvi - baseline.ndvi
    ndbi_change = current.ndbi - baseline.ndbi
    return ChangeDetection(
        ndvi_change=ndvi_change,
        ndbi_change=ndbi_change,
        vegetation_loss=abs(ndvi_change) * 100 if ndvi_change < 0 else 0.0,
        urban_expansion=ndbi_change * 100 if ndbi_change > 0 else 0.0,
    )


def interpret_growth_trends(change: ChangeDetection) -> str:
    """Describe a change detection in one or two sentences.

    :param change: Change detection
    :returns: Interpretation text
    """
    if abs(change.ndvi_change) < STABLE_CHANGE and abs(change.ndbi_change) < STABLE_CHANGE:
        return "Minimal change detected between the two periods. Area remains stable."

    parts = []
    if change.ndvi_change < -SIGNIFICANT_CHANGE:
        parts.append(f"Significant vegetation loss ({change.vegetation_loss:.1f}%)")
    elif change.ndvi_change > SIGNIFICANT_CHANGE:
        parts.append("Vegetation growth detected")

    if change.ndbi_change > SIGNIFICANT_CHANGE:
        parts.append(f"Urban expansion identified ({change.urban_expansion:.1f}% increase)")
    elif change.ndbi_change < -SIGNIFICANT_CHANGE:
        parts.append("Reduction in built-up areas")

    if not parts:
        return "Moderate change detected between the two periods."
    return ". ".join(parts) + "."
