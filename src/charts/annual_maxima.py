"""
Annual maxima charts.

Per-station annual maxima in the background, cross-station annual mean in
the foreground. Static PNG (matplotlib) and interactive HTML (plotly).
"""

import calendar
import logging
from pathlib import Path
from typing import Optional

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt  # noqa: E402
import pandas as pd  # noqa: E402
import plotly.graph_objects as go  # noqa: E402

logger = logging.getLogger(__name__)

BACKGROUND_COLOR = '#9e9e9e'
MEAN_COLOR = '#d62728'


def _default_title(month: int, region_name: Optional[str]) -> str:
    where = f" in {region_name}" if region_name else ""
    return f"{calendar.month_name[month]} high temperatures{where}"


def plot_annual_maxima(
    maxima: pd.DataFrame,
    means: pd.DataFrame,
    output_path: Path,
    month: int = 5,
    region_name: Optional[str] = None,
    unit: str = "°C"
) -> Path:
    """
    Render the static annual maxima chart.

    Args:
        maxima: year, station_code, value rows (one per station-year)
        means: year, mean_value rows
        output_path: Destination PNG
        month: Target month, for labels
        region_name: Region name, for the title
        unit: Value unit label

    Returns:
        output_path
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    fig, ax = plt.subplots(figsize=(12, 6))

    for _, group in maxima.groupby('station_code'):
        group = group.sort_values('year')
        ax.plot(
            group['year'],
            group['value'],
            color=BACKGROUND_COLOR,
            linewidth=0.8,
            alpha=0.4,
        )

    if not means.empty:
        ax.plot(
            means['year'],
            means['mean_value'],
            color=MEAN_COLOR,
            linewidth=2.5,
            marker='o',
            markersize=4,
            label='Mean of station maxima',
        )

    month_name = calendar.month_name[month]
    ax.plot([], [], color=BACKGROUND_COLOR, linewidth=0.8, label='Individual station maxima')
    ax.legend(loc='upper left')
    ax.set_title(_default_title(month, region_name), fontsize=14, fontweight='bold')
    ax.set_xlabel('Year')
    ax.set_ylabel(f"Highest {month_name} temperature ({unit})")
    ax.grid(True, alpha=0.3)

    plt.tight_layout()
    plt.savefig(output_path, dpi=150, bbox_inches='tight')
    plt.close(fig)

    logger.info(f"Saved annual maxima chart: {output_path}")
    return output_path


def build_annual_maxima_figure(
    maxima: pd.DataFrame,
    means: pd.DataFrame,
    month: int = 5,
    region_name: Optional[str] = None,
    unit: str = "°C"
) -> go.Figure:
    """Plotly figure with per-point tooltips."""
    fig = go.Figure()

    for station_code, group in maxima.groupby('station_code'):
        group = group.sort_values('year')
        dates = pd.to_datetime(group['date']).dt.strftime('%Y-%m-%d')
        fig.add_trace(
            go.Scatter(
                x=group['year'],
                y=group['value'],
                mode='lines+markers',
                name=str(station_code),
                line=dict(color=BACKGROUND_COLOR, width=1),
                marker=dict(size=4),
                opacity=0.45,
                customdata=list(zip([station_code] * len(group), group['provider'], dates)),
                hovertemplate=(
                    "Station %{customdata[0]} (%{customdata[1]})<br>"
                    "%{customdata[2]}: %{y:.1f}" + unit + "<extra></extra>"
                ),
                showlegend=False,
            )
        )

    if not means.empty:
        fig.add_trace(
            go.Scatter(
                x=means['year'],
                y=means['mean_value'],
                mode='lines+markers',
                name='Mean of station maxima',
                line=dict(color=MEAN_COLOR, width=3),
                marker=dict(size=7),
                customdata=means['station_count'],
                hovertemplate=(
                    "%{x}: %{y}" + unit + "<br>"
                    "%{customdata} stations<extra></extra>"
                ),
            )
        )

    fig.update_layout(
        title=_default_title(month, region_name),
        xaxis_title='Year',
        yaxis_title=f"Highest {calendar.month_name[month]} temperature ({unit})",
        template='plotly_white',
        hovermode='closest',
    )
    return fig


def plot_annual_maxima_interactive(
    maxima: pd.DataFrame,
    means: pd.DataFrame,
    output_path: Path,
    month: int = 5,
    region_name: Optional[str] = None,
    unit: str = "°C"
) -> Path:
    """Write the interactive annual maxima chart as standalone HTML."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    fig = build_annual_maxima_figure(maxima, means, month=month, region_name=region_name, unit=unit)
    fig.write_html(str(output_path), include_plotlyjs='cdn')

    logger.info(f"Saved interactive annual maxima chart: {output_path}")
    return output_path
