"""
Station Filters

Pure functions that drop unusable stations and partition the rest by
provider. No I/O.
"""

import re
from typing import Dict, Iterable, List, Optional, Pattern, Union

from .schemas import Station

# Mobile or portable stations move around and are not comparable year to year
MOBILE_STATION_PATTERN = re.compile(r'\b(mobile|portable|temporary|rover)\b', re.IGNORECASE)

UNKNOWN_PROVIDER = "UNKNOWN"

_PARENTHESIZED = re.compile(r'\(([^()]*)\)')


def _compile(pattern: Union[str, Pattern, None]) -> Pattern:
    if pattern is None:
        return MOBILE_STATION_PATTERN
    if isinstance(pattern, str):
        return re.compile(pattern, re.IGNORECASE)
    return pattern


def is_mobile_station(
    station: Station,
    pattern: Union[str, Pattern, None] = None
) -> bool:
    """True when the station name matches the mobile/portable pattern."""
    return bool(_compile(pattern).search(station.name))


def filter_stations(
    stations: Iterable[Station],
    pattern: Union[str, Pattern, None] = None
) -> List[Station]:
    """
    Remove stations flagged as do-not-use and mobile/portable stations.

    Args:
        stations: Stations to filter
        pattern: Regex for mobile station names (defaults to MOBILE_STATION_PATTERN)

    Returns:
        Remaining stations in input order
    """
    regex = _compile(pattern)
    return [
        s for s in stations
        if not s.qc_flagged and not regex.search(s.name)
    ]


def extract_provider_label(network: Optional[str]) -> Optional[str]:
    """
    Extract the provider label from structured source text.

    The label is the text inside the last pair of parentheses:

        >>> extract_provider_label("California Irrigation Management Information System (CIMIS)")
        'CIMIS'
        >>> extract_provider_label("Cooperative Observer Program") is None
        True
    """
    if not network:
        return None
    labels = [m.strip() for m in _PARENTHESIZED.findall(network) if m.strip()]
    if not labels:
        return None
    return labels[-1].upper()


def partition_by_provider(stations: Iterable[Station]) -> Dict[str, List[Station]]:
    """
    Group stations by provider label.

    Every station lands in exactly one partition; stations without a label
    go under UNKNOWN_PROVIDER. Returned stations carry their provider label.
    """
    partitions: Dict[str, List[Station]] = {}
    for station in stations:
        label = extract_provider_label(station.network) or UNKNOWN_PROVIDER
        partitions.setdefault(label, []).append(station.with_provider(label))
    return partitions
