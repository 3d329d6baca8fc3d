"""
Station operating spans as horizontal bars.
"""

import logging
from datetime import date
from pathlib import Path
from typing import Iterable, Optional

import matplotlib
matplotlib.use('Agg')
import matplotlib.dates as mdates  # noqa: E402
import matplotlib.pyplot as plt  # noqa: E402
from matplotlib.patches import Patch  # noqa: E402

from stations.schemas import Station  # noqa: E402

logger = logging.getLogger(__name__)


def plot_station_spans(
    stations: Iterable[Station],
    output_path: Path,
    today: Optional[date] = None,
    title: str = "Station periods of record"
) -> Path:
    """
    Render one bar per station from start to end date.

    Open stations run to `today`. Stations without a start date are skipped.

    Returns:
        output_path
    """
    today = today or date.today()
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    spans = sorted(
        (s for s in stations if s.start_date is not None),
        key=lambda s: (s.start_date, s.code),
    )

    providers = sorted({s.provider or 'UNKNOWN' for s in spans})
    cmap = plt.get_cmap('tab10')
    colors = {p: cmap(i % 10) for i, p in enumerate(providers)}

    fig, ax = plt.subplots(figsize=(12, max(3, 0.3 * len(spans) + 1.5)))

    for i, station in enumerate(spans):
        start = mdates.date2num(station.start_date)
        end = mdates.date2num(station.end_date or today)
        ax.barh(
            i,
            width=max(end - start, 1),
            left=start,
            height=0.6,
            color=colors[station.provider or 'UNKNOWN'],
            alpha=0.6 if station.is_open else 0.35,
        )

    ax.set_yticks(range(len(spans)))
    ax.set_yticklabels([f"{s.name} ({s.code})" for s in spans], fontsize=8)
    ax.xaxis_date()
    ax.xaxis.set_major_locator(mdates.YearLocator(base=10))
    ax.xaxis.set_major_formatter(mdates.DateFormatter('%Y'))

    ax.legend(
        handles=[Patch(color=colors[p], label=p) for p in providers],
        title='Provider',
        loc='lower right',
    )
    ax.set_title(title, fontsize=14, fontweight='bold')
    ax.grid(True, axis='x', alpha=0.3)

    plt.tight_layout()
    plt.savefig(output_path, dpi=150, bbox_inches='tight')
    plt.close(fig)

    logger.info(f"Saved station spans chart: {output_path}")
    return output_path
