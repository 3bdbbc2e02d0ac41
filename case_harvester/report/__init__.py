"""Report assembly interface and file based implementation."""

from .base import ReportAssembler
from .file_report import FileReportAssembler

__all__ = ["FileReportAssembler", "ReportAssembler"]
