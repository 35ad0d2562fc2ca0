"""
Tests for the printable trip sheet
"""
import io
from unittest import TestCase

from docx import Document

from domain.models import TripStatus
from services.doc_service import generate_trip_sheet, trip_sheet_filename
from tests.factories import TestDataFactory


def document_text(data: bytes) -> str:
    doc = Document(io.BytesIO(data))
    parts = [p.text for p in doc.paragraphs]
    for table in doc.tables:
        for row in table.rows:
            parts.extend(cell.text for cell in row.cells)
    return "\n".join(parts)


class TripSheetTests(TestCase):

    def setUp(self):
        self.trip = TestDataFactory.trip(
            status=TripStatus.IN_PROGRESS,
            items=[
                TestDataFactory.item("p1", "Mango", 5, 60),
                TestDataFactory.item("p2", "Banana", 3, 40),
            ],
        )
        self.trip.trip_notes = "Deliver early\nCollect crates"

    def test_sheet_is_docx(self):
        data = generate_trip_sheet(self.trip)
        self.assertTrue(data.startswith(b"PK"))

    def test_sheet_contents(self):
        """Sheet lists every dispatch line, the totals and the notes"""
        text = document_text(generate_trip_sheet(self.trip))
        self.assertIn("Trip #00ABC1", text)
        self.assertIn("In Progress", text)
        self.assertIn("KA-01-1234", text)
        self.assertIn("Mango", text)
        self.assertIn("Banana", text)
        self.assertIn("₹420", text)
        self.assertIn("Collect crates", text)
        self.assertIn("Driver Signature", text)

    def test_empty_trip(self):
        trip = TestDataFactory.trip(items=[])
        self.assertIn("No dispatch items.", document_text(generate_trip_sheet(trip)))

    def test_filename(self):
        self.assertEqual(trip_sheet_filename(self.trip), "Trip-00ABC1-2024-05-01.docx")
