# services/trip_service.py
import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

import pandas as pd

from api_client import ApiClient
from data_integrator import fetch_trips, update_trip_status
from domain.models import InvalidTransitionError, Trip, TripStatus, ensure_transition
from utils.formatting import format_rupee

logger = logging.getLogger(__name__)

ALL = "all"


class TripAction(str, Enum):
    VIEW = "view"
    PRINT = "print"
    START = "start"
    EDIT = "edit"
    MANAGE_PRODUCTS = "manage_products"
    COMPLETE = "complete"
    CANCEL = "cancel"


STATUS_ACTIONS = {
    TripStatus.PLANNED: [TripAction.START, TripAction.EDIT, TripAction.MANAGE_PRODUCTS],
    TripStatus.IN_PROGRESS: [TripAction.COMPLETE, TripAction.MANAGE_PRODUCTS, TripAction.CANCEL],
    TripStatus.COMPLETED: [],
    TripStatus.CANCELLED: [],
}

# target status -> (verb, rejection message shown when the precondition fails)
TRANSITION_TEXT = {
    TripStatus.IN_PROGRESS: ("start", "Only planned trips can be started!"),
    TripStatus.COMPLETED: ("complete", "Only in-progress trips can be completed!"),
    TripStatus.CANCELLED: ("cancel", "Cannot cancel completed or already cancelled trips!"),
}

TRANSITION_PAST_TENSE = {
    TripStatus.IN_PROGRESS: "started",
    TripStatus.COMPLETED: "completed",
    TripStatus.CANCELLED: "cancelled",
}


# ---------------------------------------------------------------------------
# Board
# ---------------------------------------------------------------------------

def count_by_status(trips: List[Trip]) -> Dict[str, int]:
    counts = {"total": len(trips)}
    for status in TripStatus:
        counts[status.value] = sum(1 for t in trips if t.status == status)
    return counts


@dataclass
class TripFilter:
    tab: str = ALL
    search: str = ""
    status: str = ALL
    trip_date: Optional[date] = None


def _matches_search(trip: Trip, term: str) -> bool:
    if not term:
        return True
    term = term.lower()
    return (
        term in trip.truck.vehicle_number.lower()
        or term in trip.route.name.lower()
        or term in trip.driver.full_name.lower()
    )


def filter_trips(trips: List[Trip], trip_filter: TripFilter) -> List[Trip]:
    """All criteria are combined with AND."""
    result = []
    for trip in trips:
        if trip_filter.tab != ALL and trip.status.value != trip_filter.tab:
            continue
        if trip_filter.status != ALL and trip.status.value != trip_filter.status:
            continue
        if trip_filter.trip_date and trip.trip_date != trip_filter.trip_date:
            continue
        if not _matches_search(trip, trip_filter.search.strip()):
            continue
        result.append(trip)
    return result


def available_actions(trip: Trip) -> List[TripAction]:
    return [TripAction.VIEW, TripAction.PRINT] + STATUS_ACTIONS[trip.status]


def trips_to_frame(trips: List[Trip]) -> pd.DataFrame:
    rows = []
    for trip in trips:
        rows.append(
            {
                "Trip": f"#{trip.short_code}",
                "Date": trip.trip_date.isoformat() if trip.trip_date else "-",
                "Start": trip.start_time or "-",
                "Vehicle": trip.truck.vehicle_number or trip.truck.truck_code,
                "Route": trip.route.name,
                "Driver": trip.driver.full_name,
                "Status": trip.status.label,
                "Items": trip.total_items,
                "Value": format_rupee(trip.total_value),
            }
        )
    columns = ["Trip", "Date", "Start", "Vehicle", "Route", "Driver", "Status", "Items", "Value"]
    return pd.DataFrame(rows, columns=columns)


# ---------------------------------------------------------------------------
# Guards for the modal-style pages
# ---------------------------------------------------------------------------

def prepare_trip_edit(trip: Trip) -> Tuple[bool, str]:
    if trip.status != TripStatus.PLANNED:
        return False, "Only planned trips can be edited"
    return True, ""


def prepare_product_management(trip: Trip) -> Tuple[bool, str]:
    if not trip.status.allows_product_changes:
        return False, "Products can only be managed on planned or in-progress trips"
    return True, ""


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------

def confirmation_prompt(trip: Trip, target: TripStatus) -> str:
    verb, _ = TRANSITION_TEXT[target]
    prompt = f"Are you sure you want to {verb} trip #{trip.short_code}?"
    if target == TripStatus.CANCELLED:
        prompt += " This action cannot be undone."
    return prompt


def change_trip_status(
        client: ApiClient,
        trip: Trip,
        target: TripStatus,
        confirm: Callable[[str], bool],
) -> Tuple[bool, str, Optional[List[Trip]]]:
    """
    Request a status change and refetch the board.

    The state machine is checked first and the operator must confirm;
    either failing means no request is sent. The server stays the
    authority, the local trip is never modified.

    Returns (ok, message, refreshed_trips)
    """
    target = TripStatus(target)
    verb, rejection = TRANSITION_TEXT[target]

    try:
        ensure_transition(trip.status, target)
    except InvalidTransitionError as e:
        logger.info("Rejected status change for trip %s: %s", trip.id, e)
        return False, rejection, None

    if not confirm(confirmation_prompt(trip, target)):
        return False, "Action cancelled", None

    ok, msg, _ = update_trip_status(client, trip.id, target)
    if not ok:
        logger.error("Failed to %s trip %s: %s", verb, trip.id, msg)
        return False, f"Error trying to {verb} trip. Please try again.", None

    logger.info("Trip %s moved %s -> %s", trip.id, trip.status.value, target.value)

    ok_list, msg_list, trips = fetch_trips(client)
    message = f"Trip {TRANSITION_PAST_TENSE[target]} successfully!"
    if not ok_list:
        return True, f"{message} ({msg_list})", None
    return True, message, trips


def start_trip(client: ApiClient, trip: Trip, confirm: Callable[[str], bool]):
    return change_trip_status(client, trip, TripStatus.IN_PROGRESS, confirm)


def complete_trip(client: ApiClient, trip: Trip, confirm: Callable[[str], bool]):
    return change_trip_status(client, trip, TripStatus.COMPLETED, confirm)


def cancel_trip(client: ApiClient, trip: Trip, confirm: Callable[[str], bool]):
    return change_trip_status(client, trip, TripStatus.CANCELLED, confirm)
