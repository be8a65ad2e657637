from __future__ import annotations

from .directory import DirectoryGateway, Page
from .errors import ApiError, ApiStatusError, ApiTimeoutError, VersionConflictError
from .reporting import ProgressSink, QueueProgress, ReportExporter, report_progress

__all__ = [
    "ApiError",
    "ApiStatusError",
    "ApiTimeoutError",
    "VersionConflictError",
    "DirectoryGateway",
    "Page",
    "ProgressSink",
    "QueueProgress",
    "ReportExporter",
    "report_progress",
]
