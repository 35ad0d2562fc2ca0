# domain/models.py

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class TripStatus(str, Enum):
    PLANNED = "planned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def label(self) -> str:
        return {
            TripStatus.PLANNED: "Planned",
            TripStatus.IN_PROGRESS: "In Progress",
            TripStatus.COMPLETED: "Completed",
            TripStatus.CANCELLED: "Cancelled",
        }[self]

    @property
    def is_terminal(self) -> bool:
        return not ALLOWED_TRANSITIONS[self]

    @property
    def allows_product_changes(self) -> bool:
        return self in (TripStatus.PLANNED, TripStatus.IN_PROGRESS)


ALLOWED_TRANSITIONS = {
    TripStatus.PLANNED: {TripStatus.IN_PROGRESS, TripStatus.CANCELLED},
    TripStatus.IN_PROGRESS: {TripStatus.COMPLETED, TripStatus.CANCELLED},
    TripStatus.COMPLETED: set(),
    TripStatus.CANCELLED: set(),
}


class InvalidTransitionError(ValueError):
    def __init__(self, current: TripStatus, target: TripStatus):
        super().__init__(f"Cannot move trip from {current.value} to {target.value}")
        self.current = current
        self.target = target


def can_transition(current: TripStatus, target: TripStatus) -> bool:
    return TripStatus(target) in ALLOWED_TRANSITIONS.get(TripStatus(current), set())


def ensure_transition(current: TripStatus, target: TripStatus) -> None:
    if not can_transition(current, target):
        raise InvalidTransitionError(TripStatus(current), TripStatus(target))


class PaymentMode(str, Enum):
    CASH = "Cash"
    UPI = "UPI"
    CARD = "Card"


class PaymentStatus(str, Enum):
    PAID = "paid"
    PENDING = "pending"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Parsing helpers for server documents
# ---------------------------------------------------------------------------

def _ref(value: Any) -> Dict[str, Any]:
    """
    A reference field is either a populated object or a bare id.
    Normalise both to a dict with at least `_id`.
    """
    if isinstance(value, dict):
        return value
    if value:
        return {"_id": str(value)}
    return {}


def parse_date(value: Any) -> Optional[date]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def parse_time(value: Any) -> str:
    """Return HH:MM from either 'HH:MM' or an ISO datetime string."""
    if not value:
        return ""
    text = str(value)
    if "T" in text:
        text = text.split("T", 1)[1]
    return text[:5]


def _number(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


# ---------------------------------------------------------------------------
# Reference records
# ---------------------------------------------------------------------------

@dataclass
class Truck:
    id: str
    truck_code: str = ""
    vehicle_number: str = ""
    capacity: float = 0
    is_active: bool = True

    @classmethod
    def from_api(cls, raw: Any) -> "Truck":
        raw = _ref(raw)
        return cls(
            id=raw.get("_id", ""),
            truck_code=raw.get("truckId", ""),
            vehicle_number=raw.get("vehicleNumber", ""),
            capacity=_number(raw.get("capacity")),
            is_active=raw.get("isActive", True),
        )


@dataclass
class Route:
    id: str
    name: str = ""
    description: str = ""
    is_active: bool = True

    @classmethod
    def from_api(cls, raw: Any) -> "Route":
        raw = _ref(raw)
        return cls(
            id=raw.get("_id", ""),
            name=raw.get("name", ""),
            description=raw.get("description", ""),
            is_active=raw.get("isActive", True),
        )


@dataclass
class StaffMember:
    id: str
    full_name: str = ""
    employee_id: str = ""
    job_roles: List[str] = field(default_factory=list)
    status: str = "active"

    @classmethod
    def from_api(cls, raw: Any) -> "StaffMember":
        raw = _ref(raw)
        roles = []
        for role in raw.get("jobRoles") or []:
            roles.append(role.get("name", "") if isinstance(role, dict) else str(role))
        return cls(
            id=raw.get("_id", ""),
            full_name=raw.get("fullName", ""),
            employee_id=raw.get("employeeId", ""),
            job_roles=roles,
            status=raw.get("status", "active"),
        )

    def _has_role(self, *needles: str) -> bool:
        return any(n in role.lower() for role in self.job_roles for n in needles)

    @property
    def is_driver(self) -> bool:
        return self._has_role("driver")

    @property
    def is_salesperson(self) -> bool:
        return self._has_role("sales")

    @property
    def is_helper(self) -> bool:
        return self._has_role("helper", "loader")

    @property
    def label(self) -> str:
        return f"{self.full_name} ({self.employee_id})" if self.employee_id else self.full_name


@dataclass
class Product:
    id: str
    name: str
    selling_price: float = 0.0
    purchase_price: float = 0.0
    current_stock: float = 0
    min_stock_level: float = 0
    max_stock_level: float = 0
    unit_symbol: str = ""
    category_name: str = ""
    is_perishable: bool = False
    expiry_date: Optional[date] = None
    is_active: bool = True

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "Product":
        unit = _ref(raw.get("unitId"))
        category = _ref(raw.get("categoryId"))
        return cls(
            id=raw.get("_id", ""),
            name=raw.get("name", ""),
            selling_price=_number(raw.get("sellingPrice")),
            purchase_price=_number(raw.get("purchasePrice")),
            current_stock=_number(raw.get("currentStock")),
            min_stock_level=_number(raw.get("minStockLevel")),
            max_stock_level=_number(raw.get("maxStockLevel")),
            unit_symbol=unit.get("symbol", ""),
            category_name=category.get("name", ""),
            is_perishable=bool(raw.get("isPerishable", False)),
            expiry_date=parse_date(raw.get("expiryDate")),
            is_active=raw.get("isActive", True),
        )

    @property
    def is_low_stock(self) -> bool:
        return self.current_stock <= self.min_stock_level


# ---------------------------------------------------------------------------
# Trips
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DispatchItem:
    """
    One product line on a trip. The unit cost is frozen when the line is
    created; the line total is always derived from it.
    """
    item_id: str
    item_name: str
    quantity: int
    cost_price: float

    @property
    def total_cost(self) -> float:
        return self.quantity * self.cost_price

    def with_quantity(self, quantity: int) -> "DispatchItem":
        return replace(self, quantity=quantity)

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "DispatchItem":
        item_ref = raw.get("itemId")
        item_id = item_ref.get("_id", "") if isinstance(item_ref, dict) else (item_ref or "")
        return cls(
            item_id=str(item_id),
            item_name=raw.get("itemName", ""),
            quantity=int(_number(raw.get("quantity"))),
            cost_price=_number(raw.get("costPrice")),
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "itemId": self.item_id,
            "itemName": self.item_name,
            "quantity": self.quantity,
            "costPrice": self.cost_price,
            "totalCost": self.total_cost,
        }


@dataclass
class Trip:
    id: str
    truck: Truck
    route: Route
    driver: StaffMember
    trip_date: Optional[date]
    start_time: str = ""
    start_location: str = ""
    salesperson: Optional[StaffMember] = None
    helper: Optional[StaffMember] = None
    status: TripStatus = TripStatus.PLANNED
    dispatch_items: List[DispatchItem] = field(default_factory=list)
    fuel_added: float = 0
    trip_notes: str = ""
    created_at: Optional[datetime] = None

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "Trip":
        created = raw.get("createdAt")
        try:
            created_at = datetime.fromisoformat(created.replace("Z", "+00:00")) if created else None
        except (AttributeError, ValueError):
            created_at = None

        return cls(
            id=raw.get("_id", ""),
            truck=Truck.from_api(raw.get("truckId")),
            route=Route.from_api(raw.get("routeId")),
            driver=StaffMember.from_api(raw.get("driverId")),
            salesperson=StaffMember.from_api(raw["salespersonId"]) if raw.get("salespersonId") else None,
            helper=StaffMember.from_api(raw["helperId"]) if raw.get("helperId") else None,
            trip_date=parse_date(raw.get("tripDate")),
            start_time=parse_time(raw.get("startTime")),
            start_location=raw.get("startLocation") or "",
            status=TripStatus(raw.get("status", TripStatus.PLANNED.value)),
            dispatch_items=[DispatchItem.from_api(i) for i in raw.get("dispatchItems") or []],
            fuel_added=_number(raw.get("fuelAdded", raw.get("fuelAddedLiters"))),
            trip_notes=raw.get("tripNotes") or "",
            created_at=created_at,
        )

    @property
    def short_code(self) -> str:
        return self.id[-6:].upper()

    @property
    def total_value(self) -> float:
        return sum(item.total_cost for item in self.dispatch_items)

    @property
    def total_items(self) -> int:
        return sum(item.quantity for item in self.dispatch_items)


# ---------------------------------------------------------------------------
# Point of sale
# ---------------------------------------------------------------------------

@dataclass
class CartLine:
    product: Product
    quantity: int

    @property
    def line_total(self) -> float:
        return self.quantity * self.product.selling_price


@dataclass
class Sale:
    id: str
    product_id: str
    product_name: str
    quantity_sold: float
    unit_price: float
    total_amount: float
    payment_mode: str
    payment_status: str
    customer_name: str = ""
    customer_phone: str = ""
    trip_id: Optional[str] = None
    created_at: Optional[date] = None

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "Sale":
        product = _ref(raw.get("productId"))
        trip = raw.get("tripId")
        trip_id = trip.get("_id") if isinstance(trip, dict) else trip
        return cls(
            id=raw.get("_id", ""),
            product_id=product.get("_id", ""),
            product_name=product.get("name", ""),
            quantity_sold=_number(raw.get("quantitySold")),
            unit_price=_number(raw.get("unitPrice")),
            total_amount=_number(raw.get("totalAmount")),
            payment_mode=raw.get("paymentMode", ""),
            payment_status=raw.get("paymentStatus", ""),
            customer_name=raw.get("customerName") or "",
            customer_phone=raw.get("customerPhone") or "",
            trip_id=trip_id or None,
            created_at=parse_date(raw.get("createdAt")),
        )


# ---------------------------------------------------------------------------
# Reference bundle for the trip form
# ---------------------------------------------------------------------------

@dataclass
class ReferenceData:
    trucks: List[Truck] = field(default_factory=list)
    routes: List[Route] = field(default_factory=list)
    staff: List[StaffMember] = field(default_factory=list)
    products: List[Product] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)  # source -> error message

    @property
    def degraded(self) -> bool:
        return bool(self.failures)

    @property
    def drivers(self) -> List[StaffMember]:
        return [s for s in self.staff if s.is_driver]

    @property
    def salespeople(self) -> List[StaffMember]:
        return [s for s in self.staff if s.is_salesperson]

    @property
    def helpers(self) -> List[StaffMember]:
        return [s for s in self.staff if s.is_helper]

    @property
    def products_by_id(self) -> Dict[str, Product]:
        return {p.id: p for p in self.products}
