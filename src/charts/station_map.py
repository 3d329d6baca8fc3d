"""
Station map: region outline with station positions.

Colour encodes status (open/closed), marker shape encodes provider.
"""

import logging
from pathlib import Path
from typing import Iterable, Optional, Tuple

import geopandas as gpd
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt  # noqa: E402  (import after backend selection)
from matplotlib.lines import Line2D  # noqa: E402

from region.schemas import Region  # noqa: E402
from stations.schemas import Station  # noqa: E402

logger = logging.getLogger(__name__)

STATUS_COLORS = {
    'open': '#1f77b4',
    'closed': '#9e9e9e',
}
PROVIDER_MARKERS = ['o', '^', 's', 'D', 'v', 'P', 'X']


def provider_markers(stations: Iterable[Station]) -> dict:
    """Stable provider -> marker assignment (alphabetical)."""
    providers = sorted({s.provider or 'UNKNOWN' for s in stations})
    return {
        provider: PROVIDER_MARKERS[i % len(PROVIDER_MARKERS)]
        for i, provider in enumerate(providers)
    }


def plot_station_map(
    stations: Iterable[Station],
    region: Region,
    output_path: Path,
    lon_window: Optional[Tuple[float, float]] = None,
    title: Optional[str] = None
) -> Path:
    """
    Render the station map to a PNG.

    Args:
        stations: Stations to plot (provider labels set)
        region: Region whose outline is drawn
        output_path: Destination file
        lon_window: (min_lon, max_lon) clip for the x axis
        title: Optional title, defaults to the region name

    Returns:
        output_path
    """
    stations = list(stations)
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    markers = provider_markers(stations)

    fig, ax = plt.subplots(figsize=(10, 8))

    outline = gpd.GeoSeries([region.geometry], crs="EPSG:4326")
    outline.boundary.plot(ax=ax, color='black', linewidth=1.2)

    for provider, marker in markers.items():
        for status, color in STATUS_COLORS.items():
            subset = [
                s for s in stations
                if (s.provider or 'UNKNOWN') == provider and s.status.value == status
            ]
            if not subset:
                continue
            ax.scatter(
                [s.longitude for s in subset],
                [s.latitude for s in subset],
                c=color,
                marker=marker,
                s=50,
                edgecolors='black',
                linewidths=0.5,
                alpha=0.85,
            )

    if lon_window is not None:
        ax.set_xlim(*lon_window)

    status_handles = [
        Line2D([], [], marker='o', linestyle='', color=color, label=status)
        for status, color in STATUS_COLORS.items()
    ]
    provider_handles = [
        Line2D([], [], marker=marker, linestyle='', color='#555555', label=provider)
        for provider, marker in markers.items()
    ]
    status_legend = ax.legend(handles=status_handles, title='Status', loc='upper left')
    ax.add_artist(status_legend)
    ax.legend(handles=provider_handles, title='Provider', loc='lower left')

    ax.set_title(title or f"Weather stations: {region.name}", fontsize=14, fontweight='bold')
    ax.set_xlabel('Longitude')
    ax.set_ylabel('Latitude')
    ax.set_aspect('equal', adjustable='datalim')

    plt.tight_layout()
    plt.savefig(output_path, dpi=150, bbox_inches='tight')
    plt.close(fig)

    logger.info(f"Saved station map: {output_path}")
    return output_path
