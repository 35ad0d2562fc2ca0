from dataclasses import replace

import pandas as pd
import streamlit as st

from api_client import SessionExpiredError
from data_integrator import fetch_sales
from domain.models import PaymentMode, PaymentStatus
from element_component import enter_page, handle_session_expired, require_session
from services.sales_service import filter_sales, sales_summary, save_sale_edit
from utils.formatting import format_quantity, format_rupee

st.set_page_config(page_title="Sales", page_icon="🧾", layout="wide")
st.sidebar.header("🧾 Sales")
client = require_session()
enter_page(st.session_state, "sales")

st.title("🧾 Sales History")


def load_sales() -> None:
    ok, msg, sales = fetch_sales(client)
    st.session_state["sales"] = sales
    st.session_state["sales_error"] = None if ok else msg


try:
    if st.button("🔄 Refresh") or "sales" not in st.session_state:
        load_sales()
except SessionExpiredError as e:
    handle_session_expired(str(e))

if st.session_state.get("sales_error"):
    st.error(st.session_state["sales_error"])

notice = st.session_state.pop("sales_notice", None)
if notice:
    st.success(notice)

sales = st.session_state["sales"]

# -----------------------------------------------------------------------------
# Filters
# -----------------------------------------------------------------------------
col_search, col_mode, col_status, col_type, col_dates = st.columns([2.5, 1, 1, 1, 2])
with col_search:
    search = st.text_input("Search", placeholder="Product, customer or phone")
with col_mode:
    mode = st.selectbox("Payment mode", ["all"] + [m.value for m in PaymentMode])
with col_status:
    status = st.selectbox("Payment status", ["all"] + [s.value for s in PaymentStatus])
with col_type:
    sale_type = st.selectbox(
        "Type",
        ["all", "standalone", "trip"],
        format_func=lambda v: {"all": "All", "standalone": "Counter", "trip": "Trip"}[v],
    )
with col_dates:
    date_range = st.date_input("Date range", value=())

start_date, end_date = (date_range if len(date_range) == 2 else (None, None))

filtered = filter_sales(
    sales,
    search=search,
    payment_mode=mode,
    payment_status=status,
    sale_type=sale_type,
    start_date=start_date,
    end_date=end_date,
)

summary = sales_summary(filtered)
col_count, col_qty, col_amount = st.columns(3)
col_count.metric("Sales", summary["count"])
col_qty.metric("Quantity", format_quantity(summary["quantity"]))
col_amount.metric("Amount", format_rupee(summary["amount"]))

if summary["by_payment_mode"]:
    st.caption(
        "  |  ".join(
            f"{m}: {format_rupee(amount)}" for m, amount in sorted(summary["by_payment_mode"].items())
        )
    )

if not filtered:
    st.info("No sales match the current filters.")
    st.stop()

df = pd.DataFrame(
    [
        {
            "Date": s.created_at,
            "Product": s.product_name,
            "Qty": s.quantity_sold,
            "Unit Price": s.unit_price,
            "Total": s.total_amount,
            "Payment": s.payment_mode,
            "Status": s.payment_status,
            "Customer": s.customer_name,
            "Phone": s.customer_phone,
            "Trip": "Yes" if s.trip_id else "",
        }
        for s in filtered
    ]
)
st.dataframe(
    df,
    width="stretch",
    hide_index=True,
    column_config={
        "Unit Price": st.column_config.NumberColumn(format="₹%.2f"),
        "Total": st.column_config.NumberColumn(format="₹%.2f"),
    },
)

# -----------------------------------------------------------------------------
# Edit one sale
# -----------------------------------------------------------------------------
st.subheader("Edit Sale")

sale_by_id = {s.id: s for s in filtered}
sale_id = st.selectbox(
    "Sale",
    list(sale_by_id.keys()),
    index=None,
    format_func=lambda sid: (
        f"{sale_by_id[sid].created_at or '-'} | {sale_by_id[sid].product_name} | "
        f"{format_rupee(sale_by_id[sid].total_amount)}"
    ),
    placeholder="Select a sale to edit",
)

if sale_id and not client.session.has_permission("sales", "update"):
    st.warning("You do not have permission to edit sales.")
elif sale_id:
    sale = sale_by_id[sale_id]
    modes = [m.value for m in PaymentMode]
    statuses = [s.value for s in PaymentStatus]

    with st.form(f"edit_sale_{sale_id}"):
        col_a, col_b = st.columns(2)
        with col_a:
            quantity = st.number_input("Quantity", min_value=0.0, step=1.0, value=float(sale.quantity_sold))
            payment_mode = st.selectbox(
                "Payment mode", modes, index=modes.index(sale.payment_mode) if sale.payment_mode in modes else 0
            )
            payment_status = st.selectbox(
                "Payment status",
                statuses,
                index=statuses.index(sale.payment_status) if sale.payment_status in statuses else 0,
            )
        with col_b:
            customer_name = st.text_input("Customer name", value=sale.customer_name)
            customer_phone = st.text_input("Customer phone", value=sale.customer_phone)
            st.caption(f"Unit price {format_rupee(sale.unit_price)}")

        submitted = st.form_submit_button("Save", type="primary")

    if submitted:
        edited = replace(
            sale,
            quantity_sold=quantity,
            payment_mode=payment_mode,
            payment_status=payment_status,
            customer_name=customer_name,
            customer_phone=customer_phone,
        )
        try:
            ok, msg, _ = save_sale_edit(client, edited)
        except SessionExpiredError as e:
            handle_session_expired(str(e))
        else:
            if ok:
                st.session_state["sales_notice"] = msg
                load_sales()
                st.rerun()
            else:
                st.error(msg)
