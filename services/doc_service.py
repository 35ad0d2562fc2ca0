import datetime
import io
import logging

from docx import Document
from docx.shared import Inches, Pt

from domain.models import Trip
from utils.barcode import barcode_png
from utils.docx_helpers import add_grid_table, add_key_value_table
from utils.formatting import format_quantity, format_rupee

logger = logging.getLogger(__name__)

COMPANY_NAME = "Fruit Distribution"


def trip_sheet_filename(trip: Trip) -> str:
    trip_date = trip.trip_date.isoformat() if trip.trip_date else "undated"
    return f"Trip-{trip.short_code}-{trip_date}.docx"


def generate_trip_sheet(trip: Trip) -> bytes:
    """
    Build the printable dispatch sheet for a trip.

    1. Header with trip code barcode
    2. Trip / vehicle / staff details
    3. Dispatch item table with totals
    4. Notes and signature lines

    Returns:
        the .docx file as bytes
    """
    doc = Document()

    style = doc.styles["Normal"]
    style.font.name = "Arial"
    style.font.size = Pt(10)

    _add_header(doc, trip)
    _add_details(doc, trip)
    _add_dispatch_items(doc, trip)
    _add_footer(doc, trip)

    out = io.BytesIO()
    doc.save(out)
    logger.info("Generated trip sheet for %s (%d lines)", trip.id, len(trip.dispatch_items))
    return out.getvalue()


# ---------- Header ----------

def _add_header(doc: Document, trip: Trip) -> None:
    doc.add_heading(f"{COMPANY_NAME} - Trip Dispatch Sheet", level=1)
    doc.add_paragraph(f"Trip #{trip.short_code}  |  Status: {trip.status.label}")

    if trip.id:
        doc.add_picture(barcode_png(trip.short_code), width=Inches(2.0))


# ---------- Details ----------

def _add_details(doc: Document, trip: Trip) -> None:
    doc.add_heading("Trip Details", level=2)

    pairs = [
        ("Trip Date", trip.trip_date.strftime("%d/%m/%Y") if trip.trip_date else "-"),
        ("Start Time", trip.start_time or "-"),
        ("Start Location", trip.start_location or "-"),
        ("Vehicle", trip.truck.vehicle_number or trip.truck.truck_code or "-"),
        ("Route", trip.route.name or "-"),
        ("Driver", trip.driver.label or "-"),
    ]
    if trip.salesperson:
        pairs.append(("Salesperson", trip.salesperson.label))
    if trip.helper:
        pairs.append(("Helper", trip.helper.label))
    if trip.fuel_added:
        pairs.append(("Fuel Added", f"{trip.fuel_added:g} L"))

    add_key_value_table(doc, pairs)


# ---------- Items ----------

def _add_dispatch_items(doc: Document, trip: Trip) -> None:
    doc.add_heading("Dispatch Items", level=2)

    if not trip.dispatch_items:
        doc.add_paragraph("No dispatch items.")
        return

    rows = []
    for idx, item in enumerate(trip.dispatch_items, start=1):
        rows.append(
            [
                str(idx),
                item.item_name,
                format_quantity(item.quantity),
                format_rupee(item.cost_price),
                format_rupee(item.total_cost),
            ]
        )
    rows.append(["", "Total", format_quantity(trip.total_items), "", format_rupee(trip.total_value)])

    add_grid_table(doc, ["No", "Item", "Qty", "Unit Price", "Total"], rows, bold_last_row=True)


# ---------- Notes + signatures ----------

def _add_footer(doc: Document, trip: Trip) -> None:
    if trip.trip_notes:
        doc.add_heading("Notes", level=2)
        for line in trip.trip_notes.splitlines():
            doc.add_paragraph(line)

    doc.add_paragraph("")
    signatures = doc.add_table(rows=2, cols=2)
    signatures.cell(0, 0).text = "\n\n______________________"
    signatures.cell(0, 1).text = "\n\n______________________"
    signatures.cell(1, 0).text = "Driver Signature"
    signatures.cell(1, 1).text = "Supervisor Signature"

    printed = datetime.datetime.now().strftime("%d/%m/%Y %H:%M")
    doc.add_paragraph(f"Printed on {printed}")
