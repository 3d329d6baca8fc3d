"""
Date window helpers shared by the provider clients.
"""

from datetime import date
from typing import Iterator, Tuple


def year_windows(start: date, end: date) -> Iterator[Tuple[date, date]]:
    """
    Split [start, end] into calendar-year chunks.

    Both services cap the span of a single request (NCEI CDO: one year,
    CIMIS: record count), so requests are issued per calendar year.

        >>> list(year_windows(date(2019, 11, 1), date(2020, 2, 1)))
        [(datetime.date(2019, 11, 1), datetime.date(2019, 12, 31)), (datetime.date(2020, 1, 1), datetime.date(2020, 2, 1))]
    """
    if start > end:
        return

    current = start
    while current <= end:
        chunk_end = min(date(current.year, 12, 31), end)
        yield current, chunk_end
        current = date(current.year + 1, 1, 1)
