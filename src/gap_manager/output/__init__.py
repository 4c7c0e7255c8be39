"""Output adapters - report file, health monitoring."""

from .report_writer import ReportWriter, ReportReader
from .health_server import HealthServer

__all__ = ['ReportWriter', 'ReportReader', 'HealthServer']
