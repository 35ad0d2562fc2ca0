from datetime import time

import pandas as pd
import streamlit as st

from api_client import SessionExpiredError
from data_integrator import fetch_trip
from element_component import enter_page, handle_session_expired, require_session, show_degraded_warning
from services.dispatch_service import (
    ScratchRow,
    TripForm,
    dispatch_totals,
    items_from_trip,
    promote_scratch_rows,
    remove_line,
    select_product,
    submit_trip,
)
from services.reference_service import load_reference_data
from services.trip_service import prepare_trip_edit
from utils.formatting import format_quantity, format_rupee

st.set_page_config(page_title="Trip Form", page_icon="📝", layout="wide")
st.sidebar.header("📝 Trip Form")

client = require_session()
enter_page(st.session_state, "trip_form")

# -----------------------------------------------------------------------------
# Which trip are we editing (None = new trip)
# -----------------------------------------------------------------------------
editing_trip_id = st.session_state.get("editing_trip_id")
form_owner = editing_trip_id or "new"

if st.session_state.get("trip_form_owner") != form_owner:
    # opened for a different trip: start from a clean form
    stale = [k for k in st.session_state if str(k).startswith(("form_", "scratch_", "trip_form"))]
    for key in stale:
        st.session_state.pop(key, None)
    st.session_state["trip_form_owner"] = form_owner
    st.session_state["scratch_generation"] = 0

try:
    if "trip_form_reference" not in st.session_state:
        st.session_state["trip_form_reference"] = load_reference_data(client)

    if "trip_form" not in st.session_state:
        if editing_trip_id:
            ok, msg, trip = fetch_trip(client, editing_trip_id)
            if not ok:
                st.error(msg)
                st.stop()
            ok, msg = prepare_trip_edit(trip)
            if not ok:
                st.error(msg)
                st.stop()
            st.session_state["trip_form"] = TripForm.from_trip(trip)
            st.session_state["trip_form_items"] = items_from_trip(trip)
        else:
            st.session_state["trip_form"] = TripForm()
            st.session_state["trip_form_items"] = []
except SessionExpiredError as e:
    handle_session_expired(str(e))

reference = st.session_state["trip_form_reference"]
form: TripForm = st.session_state["trip_form"]
products_by_id = reference.products_by_id

st.title("✏️ Edit Trip" if editing_trip_id else "➕ New Trip")
show_degraded_warning(reference)

# -----------------------------------------------------------------------------
# 1) Trip details
# -----------------------------------------------------------------------------


def _select(label, records, current_id, key, describe, optional=False):
    options = [r.id for r in records]
    labels = {r.id: describe(r) for r in records}
    if optional:
        options = [""] + options
        labels[""] = "- None -"
    index = options.index(current_id) if current_id in options else None
    value = st.selectbox(
        label,
        options,
        index=index,
        format_func=lambda v: labels.get(v, v),
        placeholder=f"Select {label.lower()}",
        key=key,
    )
    return value or ""


st.subheader("Trip Details")
col_1, col_2, col_3 = st.columns(3)

with col_1:
    form.truck_id = _select("Truck", reference.trucks, form.truck_id, "form_truck", lambda t: t.vehicle_number or t.truck_code)
    form.route_id = _select("Route", reference.routes, form.route_id, "form_route", lambda r: r.name)
    form.trip_date = st.date_input("Trip Date", value=form.trip_date, key="form_date")

with col_2:
    start = form.start_time or "06:00"
    start_value = time(int(start[:2]), int(start[3:5]))
    form.start_time = st.time_input("Start Time", value=start_value, key="form_time").strftime("%H:%M")
    form.start_location = st.text_input("Start Location", value=form.start_location, key="form_location")
    form.fuel_added = st.number_input(
        "Fuel Added (L)", min_value=0.0, step=1.0, value=float(form.fuel_added or 0), key="form_fuel"
    )

with col_3:
    form.driver_id = _select("Driver", reference.drivers, form.driver_id, "form_driver", lambda s: s.label)
    form.salesperson_id = _select(
        "Salesperson", reference.salespeople, form.salesperson_id, "form_sales", lambda s: s.label, optional=True
    )
    form.helper_id = _select("Helper", reference.helpers, form.helper_id, "form_helper", lambda s: s.label, optional=True)

form.trip_notes = st.text_area("Trip Notes", value=form.trip_notes, key="form_notes")

st.divider()

# -----------------------------------------------------------------------------
# 2) Scratch rows -> dispatch items
# -----------------------------------------------------------------------------
st.subheader("Add Dispatch Items")

if "scratch_rows" not in st.session_state:
    st.session_state["scratch_rows"] = 1

generation = st.session_state["scratch_generation"]
product_ids = list(products_by_id.keys())

scratch_rows = []
for i in range(st.session_state["scratch_rows"]):
    col_product, col_qty, col_price = st.columns([3, 1, 1])

    with col_product:
        product_id = st.selectbox(
            f"Product {i + 1}",
            product_ids,
            index=None,
            format_func=lambda pid: (
                f"{products_by_id[pid].name} "
                f"(stock {format_quantity(products_by_id[pid].current_stock, products_by_id[pid].unit_symbol)})"
            ),
            placeholder="Select product",
            key=f"scratch_product_{generation}_{i}",
        )
    row = select_product(ScratchRow(), products_by_id.get(product_id) if product_id else None)

    with col_qty:
        row.quantity = st.number_input(
            "Quantity", min_value=0, step=1, value=0, key=f"scratch_qty_{generation}_{i}"
        )
    with col_price:
        st.number_input(
            "Unit Price (₹)",
            value=float(row.cost_price),
            disabled=True,
            key=f"scratch_price_{generation}_{i}_{product_id}",
        )
    scratch_rows.append(row)

col_add_row, col_commit = st.columns([1, 4])
with col_add_row:
    if st.button("➕ Add Row"):
        st.session_state["scratch_rows"] += 1
        st.rerun()
with col_commit:
    if st.button("Add to Dispatch", type="primary"):
        committed = promote_scratch_rows(scratch_rows, products_by_id)
        if not committed:
            st.warning("Please fill at least one item with valid values")
        else:
            st.session_state["trip_form_items"] = st.session_state["trip_form_items"] + committed
            st.session_state["scratch_rows"] = 1
            st.session_state["scratch_generation"] = generation + 1
            st.rerun()

st.divider()

# -----------------------------------------------------------------------------
# 3) Committed items + totals
# -----------------------------------------------------------------------------
items = st.session_state["trip_form_items"]
st.subheader(f"Dispatch Items ({len(items)})")

if not items:
    st.info("No dispatch items yet.")
else:
    df_items = pd.DataFrame(
        [
            {
                "Item": item.item_name,
                "Qty": item.quantity,
                "Unit Price": format_rupee(item.cost_price),
                "Total": format_rupee(item.total_cost),
            }
            for item in items
        ]
    )
    st.dataframe(df_items, width="stretch", hide_index=True)

    remove_idx = st.selectbox(
        "Remove item",
        list(range(len(items))),
        index=None,
        format_func=lambda i: items[i].item_name,
        placeholder="Select an item to remove",
        key="remove_item_select",
    )
    if remove_idx is not None and st.button("🗑️ Remove"):
        st.session_state["trip_form_items"] = remove_line(items, remove_idx)
        st.rerun()

total_value, total_items = dispatch_totals(items)
col_v, col_i = st.columns(2)
col_v.metric("Total Value", format_rupee(total_value))
col_i.metric("Total Items", format_quantity(total_items))

st.divider()

# -----------------------------------------------------------------------------
# 4) Submit
# -----------------------------------------------------------------------------
col_submit, col_back = st.columns([1, 5])

with col_back:
    if st.button("Back to trips"):
        st.switch_page("Trip_Board.py")

with col_submit:
    submitted = st.button("Update Trip" if editing_trip_id else "Create Trip", type="primary")

if submitted:
    try:
        ok, msg, _ = submit_trip(client, form, items, trip_id=editing_trip_id)
    except SessionExpiredError as e:
        handle_session_expired(str(e))
    else:
        if not ok:
            st.error(msg)
        else:
            for key in ("trip_form", "trip_form_items", "trip_form_reference", "trip_form_owner", "editing_trip_id"):
                st.session_state.pop(key, None)
            # force the board to refetch
            st.session_state.pop("trips", None)
            st.session_state["trip_action_result"] = (True, msg)
            st.switch_page("Trip_Board.py")
