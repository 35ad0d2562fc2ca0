# services/sales_service.py
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterator, List, MutableMapping, Optional, Tuple

from api_client import ApiClient
from data_integrator import adjust_product_stock, create_sale, delete_sale, update_sale
from domain.models import CartLine, PaymentMode, PaymentStatus, Product, Sale

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------

class Cart:
    """Cart lines for one checkout session. Nothing here touches the server."""

    def __init__(self):
        self.lines: List[CartLine] = []

    def __iter__(self) -> Iterator[CartLine]:
        return iter(self.lines)

    def __len__(self) -> int:
        return len(self.lines)

    def find(self, product_id: str) -> Optional[CartLine]:
        return next((line for line in self.lines if line.product.id == product_id), None)

    def add(self, product: Product) -> Tuple[bool, str]:
        line = self.find(product.id)

        if line is not None:
            if line.quantity + 1 > product.current_stock:
                return False, "Cannot add more than available stock"
            line.quantity += 1
            line.product = product
            return True, f"{product.name} added to cart"

        if product.current_stock < 1:
            return False, f"{product.name} is out of stock"

        self.lines.append(CartLine(product=product, quantity=1))
        return True, f"{product.name} added to cart"

    def set_quantity(
            self,
            product_id: str,
            quantity: int,
            products_by_id: Dict[str, Product],
    ) -> Tuple[bool, str]:
        if quantity <= 0:
            self.remove(product_id)
            return True, "Removed from cart"

        line = self.find(product_id)
        product = products_by_id.get(product_id)
        if line is None or product is None:
            return False, "Product not in cart"

        if quantity > product.current_stock:
            return False, "Cannot exceed available stock"

        line.quantity = int(quantity)
        line.product = product
        return True, "Quantity updated"

    def remove(self, product_id: str) -> None:
        self.lines = [line for line in self.lines if line.product.id != product_id]

    def clear(self) -> None:
        self.lines = []

    @property
    def total_amount(self) -> float:
        return sum(line.line_total for line in self.lines)

    @property
    def total_items(self) -> int:
        return sum(line.quantity for line in self.lines)


def sellable_products(products: List[Product], search: str = "") -> List[Product]:
    term = search.strip().lower()
    return [
        p for p in products
        if p.is_active and p.current_stock > 0 and term in p.name.lower()
    ]


POS_STATE_KEYS = ("cart", "pos_products", "pos_products_error")


def discard_pos_state(state: MutableMapping) -> None:
    """Drop the cart and the product snapshot it was priced from."""
    cart = state.get("cart")
    if cart is not None and len(cart):
        logger.info("Discarding cart with %d line(s) on leaving the point of sale", len(cart))
    for key in POS_STATE_KEYS:
        state.pop(key, None)


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------

@dataclass
class CheckoutResult:
    sales: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None
    failed_product: Optional[str] = None
    stock_failures: List[Tuple[str, str]] = field(default_factory=list)  # (product name, message)
    compensated: List[str] = field(default_factory=list)  # ids of sales deleted after a failure
    total_amount: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


def validate_checkout(
        cart: Cart,
        products_by_id: Dict[str, Product],
        payment_mode: Any,
) -> List[str]:
    """Checks against the cached product list only; stock is not re-fetched."""
    if len(cart) == 0:
        return ["Cart is empty"]

    errors = []
    for line in cart:
        product = products_by_id.get(line.product.id)
        if product is None:
            errors.append(f"Product {line.product.name} not found")
        elif product.current_stock < line.quantity:
            errors.append(
                f"Insufficient stock for {line.product.name}. "
                f"Available: {product.current_stock:g}, Required: {line.quantity}"
            )

    valid_modes = {m.value for m in PaymentMode}
    mode_value = payment_mode.value if isinstance(payment_mode, PaymentMode) else payment_mode
    if mode_value not in valid_modes:
        errors.append("Invalid payment mode")

    return errors


def build_sale_payload(
        line: CartLine,
        payment_mode: PaymentMode,
        customer_name: str = "",
        customer_phone: str = "",
) -> Dict[str, Any]:
    payment_mode = PaymentMode(payment_mode)
    payload = {
        "productId": line.product.id,
        "quantitySold": line.quantity,
        "unitPrice": line.product.selling_price,
        "totalAmount": line.line_total,
        "paymentMode": payment_mode.value,
        "paymentStatus": (
            PaymentStatus.PAID if payment_mode == PaymentMode.CASH else PaymentStatus.PENDING
        ).value,
    }
    if customer_name.strip():
        payload["customerName"] = customer_name.strip()
    if customer_phone.strip():
        payload["customerPhone"] = customer_phone.strip()
    return payload


def _rollback_sales(client: ApiClient, sales: List[Dict[str, Any]]) -> List[str]:
    deleted = []
    for sale in reversed(sales):
        sale_id = (sale or {}).get("_id")
        if not sale_id:
            continue
        ok, msg = delete_sale(client, sale_id)
        if ok:
            deleted.append(sale_id)
        else:
            logger.error("Could not roll back sale %s: %s", sale_id, msg)
    return deleted


def checkout(
        client: ApiClient,
        cart: Cart,
        products_by_id: Dict[str, Product],
        payment_mode: PaymentMode,
        customer_name: str = "",
        customer_phone: str = "",
        compensate: bool = False,
) -> CheckoutResult:
    """
    Submit the cart as one sale per line, then decrement stock per line.

    Both phases run sequentially. The first failed sale stops phase one
    and nothing after it is sent; sales created before it stay unless
    `compensate` is set, in which case they are deleted again. Phase two
    only runs when every sale succeeded, and a failed stock update is
    recorded without stopping the others.
    """
    result = CheckoutResult(total_amount=cart.total_amount)

    errors = validate_checkout(cart, products_by_id, payment_mode)
    if errors:
        result.error = errors[0]
        return result

    lines = list(cart)

    for line in lines:
        payload = build_sale_payload(line, payment_mode, customer_name, customer_phone)
        ok, msg, sale = create_sale(client, payload)
        if not ok:
            logger.error("Sale failed for %s: %s", line.product.name, msg)
            result.failed_product = line.product.name
            result.error = f"Failed to process sale for {line.product.name}: {msg}"
            if compensate and result.sales:
                result.compensated = _rollback_sales(client, result.sales)
            return result
        result.sales.append(sale)

    logger.info("Created %d sales, updating stock", len(result.sales))

    for line in lines:
        ok, msg, _ = adjust_product_stock(client, line.product.id, line.quantity, "subtract")
        if not ok:
            logger.error("Failed to update stock for product %s: %s", line.product.id, msg)
            result.stock_failures.append((line.product.name, msg))

    cart.clear()
    return result


# ---------------------------------------------------------------------------
# Sales history
# ---------------------------------------------------------------------------

def filter_sales(
        sales: List[Sale],
        search: str = "",
        payment_mode: str = "all",
        payment_status: str = "all",
        sale_type: str = "all",
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
) -> List[Sale]:
    term = search.strip().lower()
    result = []
    for sale in sales:
        if term and not (
                term in sale.product_name.lower()
                or term in sale.customer_name.lower()
                or term in sale.customer_phone
        ):
            continue
        if payment_mode != "all" and sale.payment_mode != payment_mode:
            continue
        if payment_status != "all" and sale.payment_status != payment_status:
            continue
        if sale_type == "standalone" and sale.trip_id:
            continue
        if sale_type == "trip" and not sale.trip_id:
            continue
        if start_date and end_date:
            if sale.created_at is None or not (start_date <= sale.created_at <= end_date):
                continue
        result.append(sale)
    return result


def sales_summary(sales: List[Sale]) -> Dict[str, Any]:
    by_mode: Dict[str, float] = {}
    for sale in sales:
        by_mode[sale.payment_mode] = by_mode.get(sale.payment_mode, 0) + sale.total_amount

    return {
        "count": len(sales),
        "quantity": sum(s.quantity_sold for s in sales),
        "amount": sum(s.total_amount for s in sales),
        "by_payment_mode": by_mode,
    }


def build_sale_update_payload(sale: Sale) -> Dict[str, Any]:
    return {
        "productId": sale.product_id,
        "quantitySold": sale.quantity_sold,
        "unitPrice": sale.unit_price,
        "totalAmount": sale.quantity_sold * sale.unit_price,
        "paymentMode": sale.payment_mode,
        "paymentStatus": sale.payment_status,
        "customerName": sale.customer_name.strip() or None,
        "customerPhone": sale.customer_phone.strip() or None,
        "tripId": sale.trip_id,
    }


def save_sale_edit(client: ApiClient, sale: Sale) -> Tuple[bool, str, Optional[Sale]]:
    if sale.quantity_sold <= 0:
        return False, "Quantity must be greater than 0", None
    if sale.payment_mode not in {m.value for m in PaymentMode}:
        return False, "Invalid payment mode", None
    if sale.payment_status not in {s.value for s in PaymentStatus}:
        return False, "Invalid payment status", None

    return update_sale(client, sale.id, build_sale_update_payload(sale))
