import pandas as pd
import streamlit as st

from api_client import SessionExpiredError
from data_integrator import fetch_trips
from domain.models import TripStatus
from element_component import confirmation_dialog, enter_page, handle_session_expired, require_session
from services.doc_service import generate_trip_sheet, trip_sheet_filename
from services.trip_service import (
    ALL,
    TripAction,
    TripFilter,
    available_actions,
    change_trip_status,
    confirmation_prompt,
    count_by_status,
    filter_trips,
    prepare_product_management,
    prepare_trip_edit,
    trips_to_frame,
)
from utils.formatting import format_quantity, format_rupee


st.set_page_config(page_title="Trip Dispatch", page_icon="🚚", layout="wide")

client = require_session()
enter_page(st.session_state, "trip_board")

st.title("🚚 Trip Dispatch")

# -----------------------------------------------------------------------------
# Load trips
# -----------------------------------------------------------------------------
if "trip_action_state" not in st.session_state:
    st.session_state["trip_action_state"] = False


def load_trips() -> None:
    ok, msg, trips = fetch_trips(client)
    if not ok:
        st.session_state["trips_error"] = msg
        st.session_state["trips"] = []
    else:
        st.session_state.pop("trips_error", None)
        st.session_state["trips"] = trips


col_new, col_refresh = st.columns([1, 6])
with col_new:
    if st.button("➕ New Trip", type="primary"):
        st.session_state.pop("editing_trip_id", None)
        st.switch_page("pages/1_Trip_Form.py")
with col_refresh:
    refresh = st.button("🔄 Refresh")

try:
    if refresh or "trips" not in st.session_state:
        load_trips()
except SessionExpiredError as e:
    handle_session_expired(str(e))

if st.session_state.get("trips_error"):
    st.error(st.session_state["trips_error"])

trips = st.session_state.get("trips", [])

# Outcome of the last status change (set inside the confirmation dialog)
last_result = st.session_state.pop("trip_action_result", None)
if last_result:
    ok, msg = last_result
    (st.success if ok else st.error)(msg)

# -----------------------------------------------------------------------------
# Stats
# -----------------------------------------------------------------------------
counts = count_by_status(trips)
stat_cols = st.columns(5)
stat_cols[0].metric("Total Trips", counts["total"])
for col, status in zip(stat_cols[1:], TripStatus):
    col.metric(status.label, counts[status.value])

st.divider()

# -----------------------------------------------------------------------------
# Filters
# -----------------------------------------------------------------------------
tab_options = [ALL] + [s.value for s in TripStatus]
status_labels = {ALL: "All"} | {s.value: s.label for s in TripStatus}

tab = st.radio(
    "View",
    tab_options,
    format_func=lambda v: status_labels[v],
    horizontal=True,
    key="trip_tab",
)

col_search, col_status, col_date = st.columns([3, 1.5, 1.5])
with col_search:
    search = st.text_input("Search", placeholder="Vehicle, route or driver", key="trip_search")
with col_status:
    status_filter = st.selectbox(
        "Status",
        tab_options,
        format_func=lambda v: status_labels[v],
        key="trip_status_filter",
    )
with col_date:
    date_filter = st.date_input("Trip date", value=None, key="trip_date_filter")

filtered = filter_trips(
    trips,
    TripFilter(tab=tab, search=search, status=status_filter, trip_date=date_filter),
)

if not filtered:
    st.info("No trips match the current filters.")
    st.stop()

st.dataframe(trips_to_frame(filtered), width="stretch", hide_index=True)

# -----------------------------------------------------------------------------
# Actions on one trip
# -----------------------------------------------------------------------------
st.subheader("Trip Actions")

trip_by_label = {
    f"#{t.short_code} | {t.route.name} | {t.trip_date or '-'} | {t.status.label}": t
    for t in filtered
}
selected_label = st.selectbox("Trip", list(trip_by_label.keys()), key="selected_trip")
trip = trip_by_label[selected_label]

ACTION_LABELS = {
    TripAction.VIEW: "👁️ View",
    TripAction.PRINT: "🖨️ Print",
    TripAction.START: "▶️ Start",
    TripAction.EDIT: "✏️ Edit",
    TripAction.MANAGE_PRODUCTS: "📦 Manage Products",
    TripAction.COMPLETE: "✅ Complete",
    TripAction.CANCEL: "✖️ Cancel",
}

ACTION_TARGETS = {
    TripAction.START: TripStatus.IN_PROGRESS,
    TripAction.COMPLETE: TripStatus.COMPLETED,
    TripAction.CANCEL: TripStatus.CANCELLED,
}


def run_transition(target: TripStatus) -> None:
    try:
        ok, msg, refreshed = change_trip_status(client, trip, target, confirm=lambda _prompt: True)
    except SessionExpiredError as e:
        handle_session_expired(str(e))
        return

    if ok and refreshed is not None:
        st.session_state["trips"] = refreshed
    st.session_state["trip_action_result"] = (ok, msg)


actions = available_actions(trip)
action_cols = st.columns(len(actions))

for col, action in zip(action_cols, actions):
    with col:
        if action == TripAction.PRINT:
            st.download_button(
                ACTION_LABELS[action],
                data=generate_trip_sheet(trip),
                file_name=trip_sheet_filename(trip),
                mime="application/vnd.openxmlformats-officedocument.wordprocessingml.document",
                key=f"print_{trip.id}",
            )
            continue

        if not st.button(ACTION_LABELS[action], key=f"{action.value}_{trip.id}"):
            continue

        if action == TripAction.VIEW:
            st.session_state["viewing_trip_id"] = trip.id
        elif action == TripAction.EDIT:
            ok, msg = prepare_trip_edit(trip)
            if ok:
                st.session_state["editing_trip_id"] = trip.id
                st.switch_page("pages/1_Trip_Form.py")
            else:
                st.error(msg)
        elif action == TripAction.MANAGE_PRODUCTS:
            ok, msg = prepare_product_management(trip)
            if ok:
                st.session_state["managing_trip_id"] = trip.id
                st.switch_page("pages/2_Trip_Products.py")
            else:
                st.error(msg)
        else:
            target = ACTION_TARGETS[action]
            confirmation_dialog(
                confirmation_prompt(trip, target),
                lambda target=target: run_transition(target),
                "trip_action_state",
            )

# -----------------------------------------------------------------------------
# Detail view
# -----------------------------------------------------------------------------
if st.session_state.get("viewing_trip_id") == trip.id:
    with st.expander(f"Trip #{trip.short_code} details", expanded=True):
        col_a, col_b, col_c = st.columns(3)
        col_a.markdown(
            f"**Vehicle:** {trip.truck.vehicle_number}  \n"
            f"**Route:** {trip.route.name}  \n"
            f"**Start:** {trip.start_location} at {trip.start_time}"
        )
        col_b.markdown(
            f"**Driver:** {trip.driver.label}  \n"
            f"**Salesperson:** {trip.salesperson.label if trip.salesperson else '-'}  \n"
            f"**Helper:** {trip.helper.label if trip.helper else '-'}"
        )
        col_c.metric("Total Value", format_rupee(trip.total_value))
        col_c.metric("Total Items", format_quantity(trip.total_items))

        items_df = pd.DataFrame(
            [
                {
                    "Item": item.item_name,
                    "Qty": item.quantity,
                    "Unit Price": format_rupee(item.cost_price),
                    "Total": format_rupee(item.total_cost),
                }
                for item in trip.dispatch_items
            ],
            columns=["Item", "Qty", "Unit Price", "Total"],
        )
        st.dataframe(items_df, width="stretch", hide_index=True)

        if trip.trip_notes:
            st.caption(trip.trip_notes)
