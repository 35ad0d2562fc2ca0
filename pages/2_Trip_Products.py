import streamlit as st

from api_client import SessionExpiredError
from data_integrator import fetch_trip
from domain.models import TripStatus
from element_component import (
    enter_page,
    handle_session_expired,
    require_session,
    show_degraded_warning,
    show_messages,
)
from services.dispatch_service import (
    ScratchRow,
    dispatch_totals,
    items_from_trip,
    promote_scratch_rows,
    remove_line,
    select_product,
    stock_shortfalls,
    submit_trip_products,
    update_line_quantity,
)
from services.reference_service import load_reference_data
from services.trip_service import prepare_product_management
from utils.formatting import format_quantity, format_rupee, format_stock

st.set_page_config(page_title="Trip Products", page_icon="📦", layout="wide")
st.sidebar.header("📦 Trip Products")

client = require_session()
enter_page(st.session_state, "trip_products")

trip_id = st.session_state.get("managing_trip_id")
if not trip_id:
    st.info("Select a trip on the board and choose Manage Products.")
    if st.button("Back to trips"):
        st.switch_page("Trip_Board.py")
    st.stop()

if st.session_state.get("products_owner") != trip_id:
    for key in ("products_trip", "products_items", "products_reference", "products_scratch_rows"):
        st.session_state.pop(key, None)
    st.session_state["products_owner"] = trip_id
    st.session_state["products_generation"] = 0

try:
    if "products_trip" not in st.session_state:
        ok, msg, trip = fetch_trip(client, trip_id)
        if not ok:
            st.error(msg)
            st.stop()
        st.session_state["products_trip"] = trip
        st.session_state["products_items"] = items_from_trip(trip)
    if "products_reference" not in st.session_state:
        st.session_state["products_reference"] = load_reference_data(client)
except SessionExpiredError as e:
    handle_session_expired(str(e))

trip = st.session_state["products_trip"]
reference = st.session_state["products_reference"]
products_by_id = reference.products_by_id

ok, msg = prepare_product_management(trip)
if not ok:
    st.error(msg)
    st.stop()

st.title(f"📦 Products for Trip #{trip.short_code}")
st.caption(f"{trip.route.name} | {trip.truck.vehicle_number} | {trip.status.label}")
show_degraded_warning(reference)

# -----------------------------------------------------------------------------
# Current lines
# -----------------------------------------------------------------------------
items = st.session_state["products_items"]
generation = st.session_state["products_generation"]

st.subheader(f"Dispatch Items ({len(items)})")
if not items:
    st.info("No dispatch items on this trip.")

for idx, item in enumerate(items):
    col_name, col_qty, col_price, col_total, col_remove = st.columns([3, 1, 1, 1, 0.6])
    with col_name:
        product = products_by_id.get(item.item_id)
        stock = f" (stock {format_stock(product.current_stock, product.unit_symbol, product.is_low_stock)})" if product else ""
        st.markdown(f"**{item.item_name}**{stock}")
    with col_qty:
        qty = st.number_input(
            "Qty",
            min_value=0,
            step=1,
            value=int(item.quantity),
            key=f"line_qty_{generation}_{idx}",
            label_visibility="collapsed",
        )
        if qty != item.quantity:
            st.session_state["products_items"] = update_line_quantity(items, idx, qty)
            st.rerun()
    col_price.write(format_rupee(item.cost_price))
    col_total.write(format_rupee(item.total_cost))
    with col_remove:
        if st.button("🗑️", key=f"line_remove_{generation}_{idx}"):
            st.session_state["products_items"] = remove_line(items, idx)
            st.session_state["products_generation"] = generation + 1
            st.rerun()

total_value, total_items = dispatch_totals(items)
col_v, col_i = st.columns(2)
col_v.metric("Total Value", format_rupee(total_value))
col_i.metric("Total Items", format_quantity(total_items))

# Planned trips are not blocked on stock; show what would be short.
if trip.status == TripStatus.PLANNED:
    show_messages("warning", stock_shortfalls(items, products_by_id))

st.divider()

# -----------------------------------------------------------------------------
# Add products
# -----------------------------------------------------------------------------
st.subheader("Add Products")

if "products_scratch_rows" not in st.session_state:
    st.session_state["products_scratch_rows"] = 1

product_ids = list(products_by_id.keys())
scratch_rows = []
for i in range(st.session_state["products_scratch_rows"]):
    col_product, col_qty, col_price = st.columns([3, 1, 1])
    with col_product:
        product_id = st.selectbox(
            f"Product {i + 1}",
            product_ids,
            index=None,
            format_func=lambda pid: products_by_id[pid].name,
            placeholder="Select product",
            key=f"add_product_{generation}_{i}",
        )
    row = select_product(ScratchRow(), products_by_id.get(product_id) if product_id else None)
    with col_qty:
        row.quantity = st.number_input("Quantity", min_value=0, step=1, value=0, key=f"add_qty_{generation}_{i}")
    with col_price:
        st.number_input(
            "Unit Price (₹)",
            value=float(row.cost_price),
            disabled=True,
            key=f"add_price_{generation}_{i}_{product_id}",
        )
    scratch_rows.append(row)

col_more, col_add = st.columns([1, 4])
with col_more:
    if st.button("➕ Add Row"):
        st.session_state["products_scratch_rows"] += 1
        st.rerun()
with col_add:
    if st.button("Add to Trip"):
        committed = promote_scratch_rows(scratch_rows, products_by_id)
        if not committed:
            st.warning("Please fill at least one item with valid values")
        else:
            st.session_state["products_items"] = items + committed
            st.session_state["products_scratch_rows"] = 1
            st.session_state["products_generation"] = generation + 1
            st.rerun()

st.divider()

# -----------------------------------------------------------------------------
# Save
# -----------------------------------------------------------------------------
col_save, col_back = st.columns([1, 5])
with col_back:
    if st.button("Back to trips"):
        st.switch_page("Trip_Board.py")

with col_save:
    save = st.button("💾 Save Products", type="primary")

if save:
    try:
        ok, msg, _ = submit_trip_products(client, trip, items, products_by_id)
    except SessionExpiredError as e:
        handle_session_expired(str(e))
    else:
        if not ok:
            show_messages("error", msg.splitlines())
        else:
            for key in ("products_trip", "products_items", "products_reference", "products_owner", "managing_trip_id"):
                st.session_state.pop(key, None)
            st.session_state.pop("trips", None)
            st.session_state["trip_action_result"] = (True, msg or "Trip products updated successfully")
            st.switch_page("Trip_Board.py")
