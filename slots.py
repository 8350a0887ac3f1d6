"""
Booked-slots projection.

Groups booking rows into ``{groundId: {"YYYY-MM-DD": [slot, ...]}}`` so the
front-end can grey out taken slots in its grid.
"""

import json
import logging
from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

BookedSlotsMap = Dict[str, Dict[str, List]]


def utc_date_string(value) -> Optional[str]:
    """Return the UTC calendar date of ``value`` as YYYY-MM-DD, or None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        return value.isoformat()
    elif isinstance(value, (int, float)):
        # epoch milliseconds, as the browser sends Date values
        try:
            dt = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    else:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).date().isoformat()


def ground_key(value) -> Optional[str]:
    """Render a groundId the way it appears as a JSON object key, or None."""
    if isinstance(value, str):
        return value
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, (bool, int, float)):
        return json.dumps(value)
    return None


def group_booked_slots(bookings: Iterable[dict]) -> BookedSlotsMap:
    booked: BookedSlotsMap = {}
    for booking in bookings:
        ground_id = ground_key(booking.get("groundId"))
        slot = booking.get("slot")
        date_string = utc_date_string(booking.get("date"))

        if ground_id is None or slot is None or date_string is None:
            logger.warning(
                "Skipping malformed booking %s (groundId=%r, date=%r, slot=%r)",
                booking.get("_id"),
                booking.get("groundId"),
                booking.get("date"),
                slot,
            )
            continue

        booked.setdefault(ground_id, {}).setdefault(date_string, []).append(slot)
    return booked
