import logging
import os
from typing import Any, Dict, List, Optional, Tuple

from api_client import ApiClient, ApiError
from domain.models import (
    DispatchItem,
    Product,
    Route,
    Sale,
    StaffMember,
    Trip,
    TripStatus,
    Truck,
)

TRIP_FETCH_LIMIT = int(os.getenv("TRIP_FETCH_LIMIT", "500"))

logger = logging.getLogger(__name__)


def _as_list(payload: Any, key: str) -> List[Dict[str, Any]]:
    """Endpoints answer with either a bare list or {key: [...]}."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get(key), list):
        return payload[key]
    return []


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

def login(client: ApiClient, username: str, password: str) -> Tuple[bool, str, Optional[Dict[str, Any]]]:
    """
    Exchange credentials for a bearer token and start the client's session.
    Returns (ok, message, user)
    """
    if not username or not password:
        return False, "Username and password are required", None

    try:
        resp = client.post("/auth/login", {"username": username, "password": password})
    except ApiError as e:
        return False, e.message, None

    token = (resp or {}).get("token")
    if not token:
        return False, "Login failed: no token returned", None

    user = resp.get("user") or {}
    client.session.start(token, user)
    logger.info("Logged in as %s", user.get("username", username))
    return True, "Logged in", user


def fetch_current_user(client: ApiClient) -> Tuple[bool, str, Optional[Dict[str, Any]]]:
    try:
        resp = client.get("/auth/me")
    except ApiError as e:
        return False, e.message, None

    user = (resp or {}).get("user")
    if user:
        # roles and permissions may have changed since login
        client.session.user = user
    return True, "Fetched", user


def logout(client: ApiClient) -> None:
    client.session.clear()


# ---------------------------------------------------------------------------
# Trips
# ---------------------------------------------------------------------------

def fetch_trips(
        client: ApiClient,
        status: Optional[TripStatus] = None,
) -> Tuple[bool, str, List[Trip]]:
    params: Dict[str, Any] = {"limit": TRIP_FETCH_LIMIT}
    if status is not None:
        params["status"] = TripStatus(status).value

    try:
        resp = client.get("/truck-trips", params=params)
    except ApiError as e:
        return False, f"Fetch trips failed: {e.message}", []

    trips = [Trip.from_api(row) for row in _as_list(resp, "trips")]
    if not trips:
        return True, "No trips found", []
    return True, "Fetched", trips


def fetch_trip(client: ApiClient, trip_id: str) -> Tuple[bool, str, Optional[Trip]]:
    try:
        resp = client.get(f"/truck-trips/{trip_id}")
    except ApiError as e:
        return False, e.message, None

    return True, "Fetched", Trip.from_api(resp)


def create_trip(client: ApiClient, payload: Dict[str, Any]) -> Tuple[bool, str, Optional[Trip]]:
    try:
        resp = client.post("/truck-trips", payload)
    except ApiError as e:
        return False, e.message, None

    return True, "Trip created", Trip.from_api(resp) if resp else None


def update_trip(
        client: ApiClient,
        trip_id: str,
        payload: Dict[str, Any],
) -> Tuple[bool, str, Optional[Trip]]:
    try:
        resp = client.put(f"/truck-trips/{trip_id}", payload)
    except ApiError as e:
        return False, e.message, None

    return True, "Trip updated", Trip.from_api(resp) if resp else None


def update_trip_status(
        client: ApiClient,
        trip_id: str,
        status: TripStatus,
) -> Tuple[bool, str, Optional[Dict[str, Any]]]:
    try:
        resp = client.patch(f"/truck-trips/{trip_id}/status", {"status": TripStatus(status).value})
    except ApiError as e:
        return False, e.message, None

    return True, (resp or {}).get("message", "Trip status updated"), resp


def replace_trip_products(
        client: ApiClient,
        trip_id: str,
        items: List[DispatchItem],
) -> Tuple[bool, str, Optional[Trip]]:
    """
    Replace the trip's whole dispatch list in one call.
    The server answers with {message, trip}.
    """
    body = {"dispatchItems": [item.to_payload() for item in items]}
    try:
        resp = client.patch(f"/truck-trips/{trip_id}/products", body)
    except ApiError as e:
        return False, e.message, None

    raw_trip = (resp or {}).get("trip")
    if not raw_trip:
        return False, "Update trip products failed: no trip returned", None

    return True, resp.get("message", "Trip products updated"), Trip.from_api(raw_trip)


# ---------------------------------------------------------------------------
# Reference lists
# ---------------------------------------------------------------------------

def fetch_trucks(client: ApiClient) -> Tuple[bool, str, List[Truck]]:
    try:
        resp = client.get("/trucks")
    except ApiError as e:
        return False, f"Fetch trucks failed: {e.message}", []

    return True, "Fetched", [Truck.from_api(row) for row in _as_list(resp, "trucks")]


def fetch_routes(client: ApiClient) -> Tuple[bool, str, List[Route]]:
    try:
        resp = client.get("/routes")
    except ApiError as e:
        return False, f"Fetch routes failed: {e.message}", []

    return True, "Fetched", [Route.from_api(row) for row in _as_list(resp, "routes")]


def fetch_staff(client: ApiClient) -> Tuple[bool, str, List[StaffMember]]:
    try:
        resp = client.get("/staff")
    except ApiError as e:
        return False, f"Fetch staff failed: {e.message}", []

    return True, "Fetched", [StaffMember.from_api(row) for row in _as_list(resp, "staff")]


def fetch_products(client: ApiClient, active_only: bool = False) -> Tuple[bool, str, List[Product]]:
    params = {"isActive": "true"} if active_only else None
    try:
        resp = client.get("/products", params=params)
    except ApiError as e:
        return False, f"Fetch products failed: {e.message}", []

    return True, "Fetched", [Product.from_api(row) for row in _as_list(resp, "products")]


def adjust_product_stock(
        client: ApiClient,
        product_id: str,
        quantity: float,
        operation: str = "subtract",
) -> Tuple[bool, str, Optional[Dict[str, Any]]]:
    if operation not in ("add", "subtract"):
        return False, f"Invalid stock operation: {operation}", None
    if quantity <= 0:
        return False, "Quantity must be positive", None

    try:
        resp = client.patch(
            f"/products/{product_id}/stock",
            {"quantity": quantity, "operation": operation},
        )
    except ApiError as e:
        return False, e.message, None

    return True, "Stock updated", resp


# ---------------------------------------------------------------------------
# Sales
# ---------------------------------------------------------------------------

def fetch_sales(client: ApiClient) -> Tuple[bool, str, List[Sale]]:
    try:
        resp = client.get("/sales")
    except ApiError as e:
        return False, f"Fetch sales failed: {e.message}", []

    return True, "Fetched", [Sale.from_api(row) for row in _as_list(resp, "sales")]


def create_sale(client: ApiClient, payload: Dict[str, Any]) -> Tuple[bool, str, Optional[Dict[str, Any]]]:
    try:
        resp = client.post("/sales", payload)
    except ApiError as e:
        return False, e.message, None

    return True, "Sale created", resp


def update_sale(
        client: ApiClient,
        sale_id: str,
        payload: Dict[str, Any],
) -> Tuple[bool, str, Optional[Sale]]:
    try:
        resp = client.put(f"/sales/{sale_id}", payload)
    except ApiError as e:
        return False, e.message, None

    return True, "Sale updated", Sale.from_api(resp) if resp else None


def delete_sale(client: ApiClient, sale_id: str) -> Tuple[bool, str]:
    try:
        client.delete(f"/sales/{sale_id}")
    except ApiError as e:
        return False, e.message

    return True, "Sale deleted"
