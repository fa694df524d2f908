"""SQLAlchemy models."""

from hemoscan.models.report import ReportRecordRow

__all__ = ["ReportRecordRow"]
