"""
Date-range codes used by the dashboards.

"30", "90", "180" are trailing windows in days, "ytd" starts at January 1st
of the reference year. Anything else means no lower bound.
"""

from datetime import datetime, timedelta
from typing import Optional


TRAILING_WINDOWS = {
    "30": 30,
    "90": 90,
    "180": 180,
}
YEAR_TO_DATE = "ytd"


def resolve_date_range(code: Optional[str], now: datetime) -> Optional[datetime]:
    """
    Turn a date-range code into an inclusive lower bound.

    Args:
        code: "30", "90", "180", "ytd", "all" or None
        now: Reference instant. Always passed in, never read from the clock here.

    Returns:
        The cutoff, or None for an unrestricted range
    """
    if code is None:
        return None

    code = str(code).strip().lower()

    if code in TRAILING_WINDOWS:
        return now - timedelta(days=TRAILING_WINDOWS[code])

    if code == YEAR_TO_DATE:
        # Keeps now's tzinfo
        return now.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)

    return None
