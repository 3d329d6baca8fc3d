"""
May Highs Pipeline

Linear run: region -> stations -> filter -> archive link -> fetch -> aggregate
-> charts.

Fatal: AuthenticationError, NotFoundError (region), ConfigurationError.
Per-station fetch failures are logged and excluded from aggregation.
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import requests
from pydantic import BaseModel, Field

from aggregation.monthly_extremes import MonthlyExtremes, aggregate_monthly_extremes
from charts.annual_maxima import plot_annual_maxima, plot_annual_maxima_interactive
from charts.station_map import plot_station_map
from charts.station_spans import plot_station_spans
from common.errors import ConfigurationError
from observations.cimis import CIMISClient
from observations.fetcher import ObservationBackend, WeatherFetcher
from observations.ncei import NCEIClient, is_ghcnd_id
from observations.schemas import FetchSummary, get_variable, summarize_results
from region.loader import load_region
from region.schemas import Region
from stations.catalog import StationCatalogClient
from stations.filters import filter_stations, partition_by_provider
from stations.matching import match_archive_stations
from stations.schemas import Station

from .config import PipelineConfig

logger = logging.getLogger(__name__)


class PipelineResult(BaseModel):
    """Everything a run produced."""
    region: Region
    stations: List[Station]
    fetch_summary: FetchSummary
    extremes: MonthlyExtremes
    artifacts: Dict[str, Path] = Field(default_factory=dict)

    class Config:
        arbitrary_types_allowed = True


def build_backends(
    config: PipelineConfig,
    provider_labels: Iterable[str]
) -> Dict[str, ObservationBackend]:
    """
    Create backend clients for the provider labels present in this run.

    Only backends that are actually needed are created, so a run without
    regional-network stations does not need a CIMIS key.

    Raises:
        AuthenticationError: A needed credential is missing
    """
    credentials = config.credentials
    mapping = config.fetch.providers
    clients: Dict[str, ObservationBackend] = {}
    backends: Dict[str, ObservationBackend] = {}

    for label in sorted(set(provider_labels)):
        backend_name = mapping.get(label)
        if backend_name is None:
            logger.warning(f"Provider '{label}' has no backend mapping, its stations will be skipped")
            continue

        if backend_name not in clients:
            if backend_name == 'cimis':
                clients[backend_name] = CIMISClient(credentials.cimis_app_key)
            elif backend_name == 'ncei':
                clients[backend_name] = NCEIClient(
                    credentials.ncei_token,
                    request_delay=config.fetch.request_delay,
                )
            else:
                raise ConfigurationError(f"Unknown backend '{backend_name}' for provider '{label}'")

        backends[label] = clients[backend_name]

    return backends


def link_archive_stations(
    config: PipelineConfig,
    region: Region,
    stations: List[Station],
    locator: Optional[NCEIClient]
) -> List[Station]:
    """
    Give archive-backed stations their archive identifiers.

    Catalog codes of networks served by the archive (COOP, ASOS, ...) are
    call signs or cooperative IDs, not GHCND IDs. Those stations are matched
    by location against the archive's station list. Stations whose code is
    already a GHCND ID are left as they are, and archive stations the
    catalog already lists under their GHCND ID are not linked again.

    Args:
        config: Run settings (provider mapping, match distance, variable)
        region: Region to search the archive in
        stations: Partitioned stations
        locator: Archive client with find_stations; None skips linking

    Returns:
        Stations in input order
    """
    archive_labels = {
        label for label, backend in config.fetch.providers.items() if backend == 'ncei'
    }
    pending = [
        s for s in stations
        if s.provider in archive_labels and s.remote_id is None and not is_ghcnd_id(s.code)
    ]
    if not pending:
        return stations
    if locator is None:
        logger.warning(f"No archive client to link {len(pending)} stations, they will fail to fetch")
        return stations

    listed = {s.code for s in stations}
    archive = [
        s for s in locator.find_stations(region, variable=get_variable(config.fetch.variable))
        if s.code not in listed
    ]
    linked = {
        s.code: s
        for s in match_archive_stations(pending, archive, max_distance_km=config.stations.archive_match_km)
    }
    return [linked.get(s.code, s) for s in stations]


def write_outputs(
    config: PipelineConfig,
    region: Region,
    stations: List[Station],
    extremes: MonthlyExtremes
) -> Dict[str, Path]:
    """Render charts and tables into the output directory."""
    output_dir = Path(config.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    month = config.aggregate.month

    artifacts = {
        'station_map': plot_station_map(
            stations,
            region,
            output_dir / 'station_map.png',
            lon_window=config.charts.lon_window,
        ),
        'station_spans': plot_station_spans(stations, output_dir / 'station_spans.png'),
        'annual_maxima': plot_annual_maxima(
            extremes.maxima,
            extremes.means,
            output_dir / 'annual_maxima.png',
            month=month,
            region_name=region.name,
        ),
        'annual_maxima_html': plot_annual_maxima_interactive(
            extremes.maxima,
            extremes.means,
            output_dir / 'annual_maxima.html',
            month=month,
            region_name=region.name,
        ),
    }

    means_path = output_dir / 'annual_means.csv'
    extremes.means.to_csv(means_path, index=False)
    artifacts['annual_means'] = means_path

    maxima_path = output_dir / 'station_maxima.csv'
    extremes.maxima.to_csv(maxima_path, index=False)
    artifacts['station_maxima'] = maxima_path

    return artifacts


def run_pipeline(
    config: PipelineConfig,
    catalog: Optional[StationCatalogClient] = None,
    backends: Optional[Dict[str, ObservationBackend]] = None,
    archive: Optional[NCEIClient] = None,
    session: Optional[requests.Session] = None,
    render: bool = True
) -> PipelineResult:
    """
    Run the full analysis.

    Args:
        config: Run settings and credentials
        catalog: Station catalog client (created from credentials if None)
        backends: Provider label -> backend (created from credentials if None)
        archive: Archive client used to link stations to GHCND IDs
                 (defaults to the NCEI backend, if any)
        session: Session used for the boundary download
        render: Write charts and tables

    Returns:
        PipelineResult

    Raises:
        NotFoundError: Region not in the boundary dataset
        AuthenticationError: A credential is missing or rejected
        RemoteServiceError: Boundary download or station search failed
    """
    owned = []

    try:
        # 1. Region
        region = load_region(
            config.region.source,
            config.region.name,
            name_field=config.region.name_field,
            session=session,
        )

        # 2. Stations
        if catalog is None:
            catalog = StationCatalogClient(config.credentials.synoptic_token)
            owned.append(catalog)
        found = catalog.find_stations(region, include_closed=config.stations.include_closed)

        # 3. Quality filter and provider partition
        usable = filter_stations(found, pattern=config.stations.mobile_pattern)
        partitions = partition_by_provider(usable)
        stations = sorted(
            (s for group in partitions.values() for s in group),
            key=lambda s: s.code,
        )
        logger.info(
            f"{len(found)} stations found, {len(usable)} usable: "
            + ", ".join(f"{label}={len(group)}" for label, group in sorted(partitions.items()))
        )

        # 4. Backends and archive identifiers
        if backends is None:
            backends = build_backends(config, partitions.keys())
            for client in backends.values():
                if client not in owned:
                    owned.append(client)
        if archive is None:
            archive = next((b for b in backends.values() if isinstance(b, NCEIClient)), None)
        stations = link_archive_stations(config, region, stations, archive)

        # 5. Fetch
        fetcher = WeatherFetcher(
            backends,
            variable=config.fetch.variable,
            start=config.fetch.start,
            end=config.fetch.end,
            max_workers=config.fetch.max_workers,
        )
        results = fetcher.fetch_all(stations)
        summary = summarize_results(results)

        # 6. Aggregate
        extremes = aggregate_monthly_extremes(
            results,
            month=config.aggregate.month,
            min_stations=config.aggregate.min_stations,
        )

        # 7. Charts
        artifacts = write_outputs(config, region, stations, extremes) if render else {}

    finally:
        for client in owned:
            client.close()

    logger.info(
        f"Run complete: {len(extremes.means)} years of {config.fetch.variable} "
        f"from {summary.successful_stations} stations"
    )
    return PipelineResult(
        region=region,
        stations=stations,
        fetch_summary=summary,
        extremes=extremes,
        artifacts=artifacts,
    )
