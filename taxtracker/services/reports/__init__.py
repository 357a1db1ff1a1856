from .service import (
    DashboardStats,
    QuarterlyReport,
    ReportService,
)

__all__ = [
    "DashboardStats",
    "QuarterlyReport",
    "ReportService",
]
