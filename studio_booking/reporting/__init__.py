from studio_booking.reporting.revenue import (
    Bucket,
    RevenueSummary,
    by_date,
    by_hour,
    by_station,
    filter_period,
    summarize,
    total_revenue,
)

__all__ = [
    "Bucket", "RevenueSummary", "by_date", "by_hour", "by_station",
    "filter_period", "summarize", "total_revenue",
]
