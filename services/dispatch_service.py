# services/dispatch_service.py

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from api_client import ApiClient
from data_integrator import create_trip, replace_trip_products, update_trip
from domain.models import DispatchItem, Product, Trip, TripStatus
from utils.formatting import format_quantity

logger = logging.getLogger(__name__)

DEFAULT_START_TIME = "06:00"
DEFAULT_START_LOCATION = "Main Warehouse"


# ---------------------------------------------------------------------------
# Form state
# ---------------------------------------------------------------------------

@dataclass
class TripForm:
    truck_id: str = ""
    trip_date: Optional[date] = field(default_factory=date.today)
    route_id: str = ""
    start_time: str = DEFAULT_START_TIME
    start_location: str = DEFAULT_START_LOCATION
    driver_id: str = ""
    salesperson_id: str = ""
    helper_id: str = ""
    fuel_added: float = 0
    trip_notes: str = ""

    @classmethod
    def from_trip(cls, trip: Trip) -> "TripForm":
        return cls(
            truck_id=trip.truck.id,
            trip_date=trip.trip_date,
            route_id=trip.route.id,
            start_time=trip.start_time,
            start_location=trip.start_location,
            driver_id=trip.driver.id,
            salesperson_id=trip.salesperson.id if trip.salesperson else "",
            helper_id=trip.helper.id if trip.helper else "",
            fuel_added=trip.fuel_added,
            trip_notes=trip.trip_notes,
        )


@dataclass
class ScratchRow:
    """An uncommitted line in the "add items" area of a form."""
    product_id: str = ""
    quantity: int = 0
    cost_price: float = 0.0

    @property
    def is_promotable(self) -> bool:
        return bool(self.product_id) and self.quantity > 0 and self.cost_price > 0


def select_product(row: ScratchRow, product: Optional[Product]) -> ScratchRow:
    """Choosing a product snapshots its selling price; the price is not editable."""
    if product is None:
        row.product_id = ""
        row.cost_price = 0.0
    else:
        row.product_id = product.id
        row.cost_price = product.selling_price
    return row


def items_from_trip(trip: Trip) -> List[DispatchItem]:
    return list(trip.dispatch_items)


def promote_scratch_rows(
        rows: List[ScratchRow],
        products_by_id: Dict[str, Product],
) -> List[DispatchItem]:
    """
    Turn the valid scratch rows into committed lines.

    Rows without a product, quantity or price are skipped without comment.
    The unit cost is frozen from the product's selling price at this point.
    """
    committed = []
    for row in rows:
        if not row.is_promotable:
            continue

        product = products_by_id.get(row.product_id)
        cost_price = product.selling_price if product and product.selling_price > 0 else row.cost_price

        committed.append(
            DispatchItem(
                item_id=row.product_id,
                item_name=product.name if product else row.product_id,
                quantity=int(row.quantity),
                cost_price=cost_price,
            )
        )
    return committed


def dispatch_totals(items: List[DispatchItem]) -> Tuple[float, int]:
    """Returns (total_value, total_items)."""
    total_value = sum(item.total_cost for item in items)
    total_items = sum(item.quantity for item in items)
    return total_value, total_items


def update_line_quantity(items: List[DispatchItem], index: int, quantity: int) -> List[DispatchItem]:
    updated = list(items)
    updated[index] = updated[index].with_quantity(int(quantity))
    return updated


def remove_line(items: List[DispatchItem], index: int) -> List[DispatchItem]:
    return [item for i, item in enumerate(items) if i != index]


# ---------------------------------------------------------------------------
# Create / edit trip
# ---------------------------------------------------------------------------

REQUIRED_FORM_FIELDS = [
    ("truck_id", "Truck is required"),
    ("trip_date", "Trip date is required"),
    ("route_id", "Route is required"),
    ("start_time", "Start time is required"),
    ("start_location", "Start location is required"),
    ("driver_id", "Driver is required"),
]


def validate_trip_form(form: TripForm, items: List[DispatchItem]) -> List[str]:
    errors = []
    for attr, message in REQUIRED_FORM_FIELDS:
        value = getattr(form, attr)
        if isinstance(value, str):
            value = value.strip()
        if not value:
            errors.append(message)

    if not items:
        errors.append("At least one dispatch item is required")

    for item in items:
        name = item.item_name or "unnamed item"
        if not item.item_id or not item.item_name:
            errors.append("All dispatch items must have valid product information")
        if item.quantity <= 0:
            errors.append(f"Quantity must be greater than 0 for {name}")
        if item.cost_price <= 0:
            errors.append(f"Cost price must be greater than 0 for {name}")

    return errors


def build_trip_payload(form: TripForm, items: List[DispatchItem]) -> Dict[str, Any]:
    return {
        "truckId": form.truck_id,
        "tripDate": form.trip_date.isoformat() if form.trip_date else None,
        "routeId": form.route_id,
        "startTime": form.start_time,
        "startLocation": form.start_location.strip(),
        "driverId": form.driver_id,
        "salespersonId": form.salesperson_id or None,
        "helperId": form.helper_id or None,
        "fuelAdded": float(form.fuel_added or 0),
        "tripNotes": form.trip_notes or "",
        "dispatchItems": [item.to_payload() for item in items],
    }


def submit_trip(
        client: ApiClient,
        form: TripForm,
        items: List[DispatchItem],
        trip_id: Optional[str] = None,
) -> Tuple[bool, str, Optional[Trip]]:
    """
    Create (trip_id is None) or replace a trip.
    Validation failures return before any request is made.
    """
    errors = validate_trip_form(form, items)
    if errors:
        return False, "Please fix the following errors:\n" + "\n".join(errors), None

    payload = build_trip_payload(form, items)

    if trip_id:
        ok, msg, trip = update_trip(client, trip_id, payload)
        action = "update"
    else:
        ok, msg, trip = create_trip(client, payload)
        action = "create"

    if not ok:
        logger.error("Failed to %s trip: %s", action, msg)
        return False, f"Failed to {action} trip: {msg}", None

    logger.info("Trip %sd with %d dispatch items", action, len(items))
    return True, msg, trip


# ---------------------------------------------------------------------------
# Product manager for an existing trip
# ---------------------------------------------------------------------------

def stock_shortfalls(
        items: List[DispatchItem],
        products_by_id: Dict[str, Product],
) -> List[str]:
    messages = []
    for item in items:
        product = products_by_id.get(item.item_id)
        if product and item.quantity > product.current_stock:
            available = format_quantity(product.current_stock, product.unit_symbol or "units")
            messages.append(
                f"Insufficient stock for {item.item_name}. "
                f"Available: {available}, Requested: {item.quantity}"
            )
    return messages


def validate_trip_products(
        trip: Optional[Trip],
        items: List[DispatchItem],
        products_by_id: Dict[str, Product],
) -> List[str]:
    if trip is None:
        return ["No trip selected"]
    if not trip.status.allows_product_changes:
        return ["Products can only be managed on planned or in-progress trips"]
    if not items:
        return ["At least one dispatch item is required"]

    errors = [
        f"Quantity must be greater than 0 for {item.item_name}"
        for item in items
        if item.quantity <= 0
    ]

    # stock is enforced for in-progress trips only
    if trip.status == TripStatus.IN_PROGRESS:
        errors.extend(stock_shortfalls(items, products_by_id))

    return errors


def submit_trip_products(
        client: ApiClient,
        trip: Trip,
        items: List[DispatchItem],
        products_by_id: Dict[str, Product],
) -> Tuple[bool, str, Optional[Trip]]:
    errors = validate_trip_products(trip, items, products_by_id)
    if errors:
        return False, "\n".join(errors), None

    ok, msg, updated = replace_trip_products(client, trip.id, items)
    if not ok:
        logger.error("Failed to update products for trip %s: %s", trip.id, msg)
        return False, msg or "Failed to update trip products", None

    logger.info(
        "Trip %s (%s) now carries %d lines", trip.id, trip.status.value, len(items)
    )
    return True, msg, updated
