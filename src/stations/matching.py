"""
Archive Station Matching

The station catalog and the national archive identify the same instrument
differently (catalog "KSAC" is archive "USW00023232"). Catalog stations are
linked to archive stations by location: nearest archive station within a
distance limit, distances measured in the local UTM projection.
"""

import logging
from typing import Iterable, List

import geopandas as gpd

from .schemas import Station

logger = logging.getLogger(__name__)

DEFAULT_MAX_DISTANCE_KM = 2.0


def _to_frame(stations: List[Station]) -> gpd.GeoDataFrame:
    return gpd.GeoDataFrame(
        {'code': [s.code for s in stations]},
        geometry=gpd.points_from_xy(
            [s.longitude for s in stations],
            [s.latitude for s in stations],
        ),
        crs="EPSG:4326",
    )


def match_archive_stations(
    stations: Iterable[Station],
    archive: Iterable[Station],
    max_distance_km: float = DEFAULT_MAX_DISTANCE_KM
) -> List[Station]:
    """
    Link catalog stations to the nearest archive station.

    Each archive station is linked to at most one catalog station, the
    nearest one, so co-located instruments never share a series.

    Args:
        stations: Catalog stations to link
        archive: Archive stations (code = archive identifier)
        max_distance_km: Largest accepted separation

    Returns:
        Stations in input order; linked ones carry `remote_id`
        (see Station.linked_to), the rest are returned unchanged
    """
    stations = list(stations)
    archive = list(archive)
    if not stations or not archive:
        return stations

    catalog_gdf = _to_frame(stations)
    utm = catalog_gdf.estimate_utm_crs()
    catalog_gdf = catalog_gdf.to_crs(utm)
    archive_gdf = _to_frame(archive).to_crs(utm)

    joined = gpd.sjoin_nearest(
        catalog_gdf,
        archive_gdf,
        how='inner',
        max_distance=max_distance_km * 1000,
        distance_col='distance_m',
        lsuffix='catalog',
        rsuffix='archive',
    )
    joined = joined.sort_values('distance_m', kind='stable')
    # equidistant archive stations yield several rows per catalog station
    joined = joined[~joined.index.duplicated(keep='first')]
    joined = joined.drop_duplicates(subset='code_archive', keep='first')

    links = dict(zip(joined.index, joined['code_archive']))
    by_code = {s.code: s for s in archive}

    linked = [
        station.linked_to(by_code[links[i]]) if i in links else station
        for i, station in enumerate(stations)
    ]

    logger.info(
        f"Linked {len(links)}/{len(stations)} stations to archive stations "
        f"within {max_distance_km:g} km"
    )
    unmatched = [s.code for s in linked if s.remote_id is None]
    if unmatched:
        logger.warning(f"No archive station near: {unmatched}")
    return linked
