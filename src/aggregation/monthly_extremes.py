"""
Monthly Extremes Aggregation

Turns per-station fetch results into per-(year, station) monthly maxima and
a cross-station annual mean.

Steps, each a pure DataFrame transformation:
    (a) merge_series         - concatenate successful series, provider-agnostic
    (b) drop_missing         - remove records without a value
    (c) filter_month         - keep one calendar month
    (d) station_year_maxima  - max value per (year, station)
    (e) annual_means         - mean of the maxima per year, rounded
"""

import logging
from typing import Iterable, List

import numpy as np
import pandas as pd
from pydantic import BaseModel

from observations.schemas import (
    CANONICAL_COLUMNS,
    FetchSuccess,
    StationFetchResult,
    empty_observations,
)

from .schemas import AggregatedRecord, StationYearMaximum

logger = logging.getLogger(__name__)

MAXIMA_COLUMNS = ['year', 'station_code', 'provider', 'date', 'value']
ANNUAL_COLUMNS = ['year', 'mean_value', 'station_count']


def round_half_away_from_zero(values: pd.Series) -> pd.Series:
    """
    Round to the nearest whole unit, halves away from zero.

    pandas/numpy round halves to even (30.5 -> 30); a mean of 30.5 degrees
    reads as 31.
    """
    return np.sign(values) * np.floor(np.abs(values) + 0.5)


def merge_series(results: Iterable[StationFetchResult]) -> pd.DataFrame:
    """
    Concatenate successful series into one table.

    FetchFailure markers are dropped by type. Columns only some providers
    produce (e.g. `qc`, `attributes`) are kept and filled with NA for the
    others; canonical columns come first.
    """
    frames = [
        r.data for r in results
        if isinstance(r, FetchSuccess) and not r.data.empty
    ]

    if not frames:
        logger.warning("No successful series to merge")
        return empty_observations()

    merged = pd.concat(frames, ignore_index=True, sort=False)
    extras = [c for c in merged.columns if c not in CANONICAL_COLUMNS]
    merged = merged[CANONICAL_COLUMNS + extras].copy()
    merged['date'] = pd.to_datetime(merged['date'])
    merged['value'] = pd.to_numeric(merged['value'], errors='coerce')

    logger.info(f"Merged {len(frames)} series, {len(merged):,} records")
    return merged


def drop_missing(df: pd.DataFrame, column: str = 'value') -> pd.DataFrame:
    """Drop records with a missing value."""
    cleaned = df.dropna(subset=[column]).reset_index(drop=True)
    dropped = len(df) - len(cleaned)
    if dropped:
        logger.debug(f"Dropped {dropped:,} records with missing {column}")
    return cleaned


def filter_month(df: pd.DataFrame, month: int) -> pd.DataFrame:
    """
    Keep records dated in one calendar month (any year).

    Raises:
        ValueError: month outside 1-12
    """
    if not 1 <= month <= 12:
        raise ValueError(f"month must be in 1-12, got {month}")

    dates = pd.to_datetime(df['date'])
    return df[dates.dt.month == month].reset_index(drop=True)


def station_year_maxima(df: pd.DataFrame) -> pd.DataFrame:
    """
    Highest value per (year, station).

    When several records tie for the maximum the first one is kept.

    Returns:
        DataFrame with MAXIMA_COLUMNS sorted by year, station_code
    """
    df = df.dropna(subset=['value'])
    if df.empty:
        return pd.DataFrame(columns=MAXIMA_COLUMNS)

    df = df.assign(year=pd.to_datetime(df['date']).dt.year)
    idx = df.groupby(['year', 'station_code'])['value'].idxmax()

    maxima = df.loc[idx, MAXIMA_COLUMNS]
    return maxima.sort_values(['year', 'station_code']).reset_index(drop=True)


def annual_means(maxima: pd.DataFrame, min_stations: int = 1) -> pd.DataFrame:
    """
    Mean of the per-station maxima for each year.

    Args:
        maxima: Output of station_year_maxima
        min_stations: Drop years backed by fewer stations

    Returns:
        DataFrame with ANNUAL_COLUMNS; mean_value is a whole number
    """
    if maxima.empty:
        return pd.DataFrame(columns=ANNUAL_COLUMNS)

    grouped = (
        maxima.groupby('year')['value']
        .agg(['mean', 'count'])
        .reset_index()
        .rename(columns={'count': 'station_count'})
    )
    grouped['mean_value'] = round_half_away_from_zero(grouped['mean']).astype(int)

    grouped = grouped[grouped['station_count'] >= min_stations]
    return grouped[ANNUAL_COLUMNS].reset_index(drop=True)


class MonthlyExtremes(BaseModel):
    """Aggregation output for one target month."""
    month: int
    observations: pd.DataFrame
    maxima: pd.DataFrame
    means: pd.DataFrame

    def records(self) -> List[AggregatedRecord]:
        return [
            AggregatedRecord(
                year=int(row.year),
                mean_value=int(row.mean_value),
                station_count=int(row.station_count),
            )
            for row in self.means.itertuples(index=False)
        ]

    def station_maxima(self) -> List[StationYearMaximum]:
        return [
            StationYearMaximum(
                year=int(row.year),
                station_code=str(row.station_code),
                provider=str(row.provider),
                date=pd.Timestamp(row.date).date(),
                value=float(row.value),
            )
            for row in self.maxima.itertuples(index=False)
        ]

    class Config:
        arbitrary_types_allowed = True


def aggregate_monthly_extremes(
    results: Iterable[StationFetchResult],
    month: int = 5,
    min_stations: int = 1
) -> MonthlyExtremes:
    """
    Run steps (a)-(e) over a batch of fetch results.

    Example:
        >>> extremes = aggregate_monthly_extremes(results, month=5)
        >>> extremes.records()[0]
        AggregatedRecord(year=2020, mean_value=32, station_count=3)
    """
    merged = drop_missing(merge_series(results))
    in_month = filter_month(merged, month)
    maxima = station_year_maxima(in_month)
    means = annual_means(maxima, min_stations=min_stations)

    logger.info(
        f"Month {month}: {len(in_month):,} records, {len(maxima)} station-years, "
        f"{len(means)} years"
    )
    return MonthlyExtremes(month=month, observations=in_month, maxima=maxima, means=means)
