"""
Presentation of stations and aggregated temperatures.
"""

from .annual_maxima import (
    build_annual_maxima_figure,
    plot_annual_maxima,
    plot_annual_maxima_interactive,
)
from .station_map import plot_station_map, provider_markers
from .station_spans import plot_station_spans

__all__ = [
    'build_annual_maxima_figure',
    'plot_annual_maxima',
    'plot_annual_maxima_interactive',
    'plot_station_map',
    'provider_markers',
    'plot_station_spans',
]
