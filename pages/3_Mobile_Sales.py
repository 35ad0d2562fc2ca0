import streamlit as st

from api_client import SessionExpiredError
from domain.models import PaymentMode
from element_component import enter_page, handle_session_expired, require_session, show_messages
from services.reference_service import load_products
from services.sales_service import Cart, checkout, discard_pos_state, sellable_products
from utils.formatting import format_quantity, format_rupee, format_stock

st.set_page_config(page_title="Mobile Sales", page_icon="🛒", layout="centered")
st.sidebar.header("🛒 Mobile Sales")

client = require_session()

if enter_page(st.session_state, "mobile_sales"):
    # a cart never survives leaving the page; stock is fetched fresh
    discard_pos_state(st.session_state)

if "cart" not in st.session_state:
    st.session_state["cart"] = Cart()
cart: Cart = st.session_state["cart"]


def refresh_products() -> None:
    ok, msg, products = load_products(client)
    st.session_state["pos_products"] = products
    st.session_state["pos_products_error"] = None if ok else msg


try:
    if "pos_products" not in st.session_state:
        refresh_products()
except SessionExpiredError as e:
    handle_session_expired(str(e))

products = st.session_state["pos_products"]
products_by_id = {p.id: p for p in products}

st.title("🛒 Point of Sale")

if st.session_state.get("pos_products_error"):
    st.error(st.session_state["pos_products_error"])

last = st.session_state.pop("checkout_result", None)
if last:
    kind, messages = last
    show_messages(kind, messages)
show_messages("warning", st.session_state.pop("checkout_stock_failures", []))

# -----------------------------------------------------------------------------
# Product picker
# -----------------------------------------------------------------------------
search = st.text_input("Search products", placeholder="Type a product name", key="pos_search")
visible = sellable_products(products, search)

if not visible:
    st.info("No products available.")

for product in visible:
    col_name, col_price, col_add = st.columns([3, 1.2, 0.8])
    col_name.markdown(
        f"**{product.name}**  \n"
        f"Stock: {format_stock(product.current_stock, product.unit_symbol, product.is_low_stock)}"
    )
    col_price.write(format_rupee(product.selling_price))
    with col_add:
        if st.button("➕", key=f"pos_add_{product.id}"):
            ok, msg = cart.add(product)
            if ok:
                st.toast(msg)
            else:
                st.warning(msg)

st.divider()

# -----------------------------------------------------------------------------
# Cart
# -----------------------------------------------------------------------------
st.subheader(f"Cart ({cart.total_items} items)")

if len(cart) == 0:
    st.caption("Cart is empty.")

for line in list(cart):
    pid = line.product.id
    col_name, col_minus, col_qty, col_plus, col_total = st.columns([3, 0.6, 0.8, 0.6, 1.2])
    col_name.write(line.product.name)
    with col_minus:
        if st.button("➖", key=f"pos_dec_{pid}"):
            cart.set_quantity(pid, line.quantity - 1, products_by_id)
            st.rerun()
    col_qty.write(format_quantity(line.quantity))
    with col_plus:
        if st.button("➕", key=f"pos_inc_{pid}"):
            ok, msg = cart.set_quantity(pid, line.quantity + 1, products_by_id)
            if not ok:
                st.warning(msg)
            else:
                st.rerun()
    col_total.write(format_rupee(line.line_total))

st.metric("Total", format_rupee(cart.total_amount))

# -----------------------------------------------------------------------------
# Checkout
# -----------------------------------------------------------------------------
with st.expander("Customer (optional)"):
    customer_name = st.text_input("Customer name", key="pos_customer_name")
    customer_phone = st.text_input("Customer phone", key="pos_customer_phone")

payment_mode = st.radio(
    "Payment mode",
    list(PaymentMode),
    format_func=lambda m: m.value,
    horizontal=True,
    key="pos_payment_mode",
)

col_checkout, col_clear = st.columns(2)
with col_clear:
    if st.button("Clear cart", disabled=len(cart) == 0):
        cart.clear()
        st.rerun()

can_sell = client.session.has_permission("sales", "add")
if not can_sell:
    st.warning("You do not have permission to record sales.")

with col_checkout:
    pay = st.button(
        f"Checkout {format_rupee(cart.total_amount)}",
        type="primary",
        disabled=len(cart) == 0 or not can_sell,
    )

if pay:
    try:
        with st.spinner("Processing sale..."):
            result = checkout(
                client,
                cart,
                products_by_id,
                payment_mode,
                customer_name=customer_name,
                customer_phone=customer_phone,
            )
    except SessionExpiredError as e:
        handle_session_expired(str(e))
    else:
        if not result.ok:
            messages = [result.error]
            if result.sales:
                messages.append(
                    f"{len(result.sales)} sale(s) were recorded before the failure; "
                    "check the sales history before retrying."
                )
            st.session_state["checkout_result"] = ("error", messages)
        else:
            messages = [f"Sale completed: {format_rupee(result.total_amount)}"]
            st.session_state["checkout_result"] = ("success", messages)
            if result.stock_failures:
                st.session_state["checkout_stock_failures"] = [
                    f"Stock was not updated for {name}: {msg}" for name, msg in result.stock_failures
                ]
            refresh_products()
        st.rerun()
