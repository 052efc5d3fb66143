"""Dagster definitions for queued site analyses."""

from dagster import Definitions

from site_suitability.connectors.settings import SettingsResource
from site_suitability.connectors.stac_client import STACResource
from site_suitability.triggers.jobs import growth_trends_job, site_analysis_job

settings = SettingsResource.create(swallow_errors=True)

defs = Definitions(
    jobs=[site_analysis_job, growth_trends_job],
    resources={
        "settings": settings,
        "stac": STACResource(settings=settings),
    },
)
