"""
Trip archiving and archive queries.
"""

import logging
from datetime import datetime
from typing import List, Optional, Sequence

from .models import (
    ArchivedTrip, Expense, TripMetadata, TripStatus,
    DEFAULT_DEPARTURE_LOCATION, NEW_TRIP_NAME,
)
from .reporting import format_date

logger = logging.getLogger(__name__)


def new_trip(name: str = NEW_TRIP_NAME,
             departure_location: str = DEFAULT_DEPARTURE_LOCATION) -> TripMetadata:
    """Create a fresh active trip with default metadata."""
    return TripMetadata(name=name, departure_location=departure_location)


def archive_name(expenses: Sequence[Expense]) -> str:
    """Display name of an archive, derived from its first expense date."""
    if not expenses:
        return "Voyage - Archive"
    earliest = min(e.date for e in expenses)
    return f"{format_date(earliest)} - Archive"


def build_archive(trip: TripMetadata, expenses: Sequence[Expense],
                  archived_at: Optional[datetime] = None) -> ArchivedTrip:
    """Freeze a trip and its expenses into an archive record.

    Args:
        trip: Active trip metadata
        expenses: Expenses of that trip
        archived_at: Archival timestamp, now if omitted

    Returns:
        ArchivedTrip with status forced to archived
    """
    frozen_trip = trip.model_copy(
        update={"status": TripStatus.ARCHIVED, "name": archive_name(expenses)},
        deep=True,
    )
    archive = ArchivedTrip(
        trip=frozen_trip,
        expenses=[e.model_copy(deep=True) for e in expenses],
        archived_at=archived_at or datetime.now(),
    )
    logger.info(f"Built archive {archive.id} with {len(archive.expenses)} expenses")
    return archive


def search_archives(archives: Sequence[ArchivedTrip], term: str = "") -> List[ArchivedTrip]:
    """Filter archives by a search term, newest first.

    Matches case-insensitively on name, departure location and destination,
    and on the ISO text of the departure and return dates.
    """
    needle = (term or "").strip().lower()

    def matches(archive: ArchivedTrip) -> bool:
        if not needle:
            return True
        trip = archive.trip
        haystack = [
            trip.name,
            trip.departure_location or "",
            trip.destination or "",
            trip.departure_date.isoformat() if trip.departure_date else "",
            trip.return_date.isoformat() if trip.return_date else "",
        ]
        return any(needle in value.lower() for value in haystack)

    return sorted(
        (a for a in archives if matches(a)),
        key=lambda a: a.archived_at,
        reverse=True,
    )
