"""Dagster ops and jobs running analyses from a queued run."""

from typing import Any

from dagster import Config, OpExecutionContext, Output, job, op

from site_suitability.analysis import run_growth_trends, run_site_analysis
from site_suitability.config.constants import DEFAULT_RADIUS_METERS
from site_suitability.connectors.settings import SettingsResource
from site_suitability.connectors.stac_client import STACResource
from site_suitability.errors import AnalysisFailure, SiteAnalysisError, failure_from_exception
from site_suitability.geospatial.stac_ops import open_catalog
from site_suitability.models.models import GrowthTrendsResult, SiteAnalysisResult


class SiteAnalysisConfig(Config):
    """Run config mirroring SiteAnalysisRequest."""

    project_type: str
    bbox: list[float] | None = None
    latitude: float | None = None
    longitude: float | None = None
    radius: float = DEFAULT_RADIUS_METERS
    start_date: str | None = None
    end_date: str | None = None
    cloud_cover_max: float | None = None
    include_visualization: bool = True
    detailed_metrics: bool = False
    estimate_only: bool = False


class GrowthTrendsConfig(Config):
    """Run config mirroring GrowthTrendsRequest."""

    bbox: list[float]
    baseline_start: str
    baseline_end: str
    current_start: str
    current_end: str
    cloud_cover_max: float | None = None


def _request_from_config(config: Config, fields: tuple[str, ...]) -> dict[str, Any]:
    """Copy run config fields into a raw request mapping.

    :param config: Op config
    :param fields: Field names to copy
    :returns: Request mapping
    """
    return {name: getattr(config, name) for name in fields}


SITE_REQUEST_FIELDS = (
    "project_type",
    "bbox",
    "latitude",
    "longitude",
    "radius",
    "start_date",
    "end_date",
    "cloud_cover_max",
    "include_visualization",
    "detailed_metrics",
    "estimate_only",
)
GROWTH_REQUEST_FIELDS = ("bbox", "baseline_start", "baseline_end", "current_start", "current_end", "cloud_cover_max")


def _create_error_output(failure: AnalysisFailure) -> Output[dict[str, Any]]:
    """Create error Output for a failed analysis.

    :param failure: Structured failure
    :returns: Output with error metadata
    """
    return Output(
        failure.model_dump(mode="json"),
        metadata={
            "success": False,
            "error": failure.error,
            "message": failure.message,
            "retryable": failure.retryable,
        },
    )


def _create_site_output(result: SiteAnalysisResult) -> Output[dict[str, Any]]:
    """Create success Output for a site analysis.

    :param result: Site analysis result
    :returns: Output with summary metadata
    """
    return Output(
        result.model_dump(mode="json"),
        metadata={
            "success": True,
            "error": None,
            "suitability_score": result.suitability_score,
            "item_id": result.spectral_analysis.item_id,
            "mode": result.spectral_analysis.mode.value,
            "images_processed": result.metadata.images_processed,
            "warnings": len(result.warnings),
        },
    )


def _create_trends_output(result: GrowthTrendsResult) -> Output[dict[str, Any]]:
    """Create success Output for a growth trends analysis.

    :param result: Growth trends result
    :returns: Output with summary metadata
    """
    return Output(
        result.model_dump(mode="json"),
        metadata={
            "success": True,
            "error": None,
            "ndvi_change": result.change_detection.ndvi_change,
            "ndbi_change": result.change_detection.ndbi_change,
            "interpretation": result.interpretation,
        },
    )


@op
def site_analysis_op(
    context: OpExecutionContext,
    config: SiteAnalysisConfig,
    settings: SettingsResource,
    stac: STACResource,
) -> Output[dict[str, Any]]:
    """Run a site analysis from run config."""
    request = _request_from_config(config, SITE_REQUEST_FIELDS)
    try:
        stac_client = open_catalog(stac, settings.retry_policy())
        result = run_site_analysis(request, settings, stac_client)
    except SiteAnalysisError as e:
        failure = failure_from_exception(e, include_traceback=settings.is_development())
        context.log.error(f"Site analysis failed ({failure.error}): {failure.message}")
        return _create_error_output(failure)

    context.log.info(f"Site analysis completed with score {result.suitability_score:.1f}")
    return _create_site_output(result)


@op
def growth_trends_op(
    context: OpExecutionContext,
    config: GrowthTrendsConfig,
    settings: SettingsResource,
    stac: STACResource,
) -> Output[dict[str, Any]]:
    """Run a growth trends analysis from run config."""
    request = _request_from_config(config, GROWTH_REQUEST_FIELDS)
    try:
        stac_client = open_catalog(stac, settings.retry_policy())
        result = run_growth_trends(request, settings, stac_client)
    except SiteAnalysisError as e:
        failure = failure_from_exception(e, include_traceback=settings.is_development())
        context.log.error(f"Growth trends analysis failed ({failure.error}): {failure.message}")
        return _create_error_output(failure)

    context.log.info(f"Growth trends analysis completed: {result.interpretation}")
    return _create_trends_output(result)


@job
def site_analysis_job() -> None:
    site_analysis_op()


@job
def growth_trends_job() -> None:
    growth_trends_op()
