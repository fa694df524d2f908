"""FastAPI dependencies."""

from fastapi import Request

from hemoscan.services.archive import ReportArchive
from hemoscan.services.pipeline import AnalysisPipeline


def get_pipeline(request: Request) -> AnalysisPipeline:
    """Return the pipeline built during application startup."""
    return request.app.state.pipeline


def get_archive(request: Request) -> ReportArchive:
    """Return the report archive shared by the pipeline."""
    return request.app.state.pipeline.archive
