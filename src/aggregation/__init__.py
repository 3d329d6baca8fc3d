"""
Aggregation of station series into monthly extremes.
"""

from .monthly_extremes import (
    ANNUAL_COLUMNS,
    MAXIMA_COLUMNS,
    MonthlyExtremes,
    aggregate_monthly_extremes,
    annual_means,
    drop_missing,
    filter_month,
    merge_series,
    round_half_away_from_zero,
    station_year_maxima,
)
from .schemas import AggregatedRecord, StationYearMaximum

__all__ = [
    'ANNUAL_COLUMNS',
    'MAXIMA_COLUMNS',
    'AggregatedRecord',
    'StationYearMaximum',
    'MonthlyExtremes',
    'aggregate_monthly_extremes',
    'annual_means',
    'drop_missing',
    'filter_month',
    'merge_series',
    'round_half_away_from_zero',
    'station_year_maxima',
]
