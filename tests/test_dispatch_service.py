"""
Tests for the trip form and the trip product manager
"""
from datetime import date
from unittest import TestCase

from api_client import ApiError
from domain.models import TripStatus
from services.dispatch_service import (
    DEFAULT_START_LOCATION,
    DEFAULT_START_TIME,
    ScratchRow,
    TripForm,
    build_trip_payload,
    dispatch_totals,
    items_from_trip,
    promote_scratch_rows,
    remove_line,
    select_product,
    stock_shortfalls,
    submit_trip,
    submit_trip_products,
    update_line_quantity,
    validate_trip_form,
    validate_trip_products,
)
from tests.factories import FakeClient, TestDataFactory


def filled_form():
    return TripForm(
        truck_id="t1",
        trip_date=date(2024, 5, 1),
        route_id="r1",
        driver_id="d1",
        salesperson_id="s1",
        fuel_added=20,
        trip_notes="Morning run",
    )


class TripFormTests(TestCase):

    def test_new_form_defaults(self):
        form = TripForm()
        self.assertEqual(form.start_time, DEFAULT_START_TIME)
        self.assertEqual(form.start_location, DEFAULT_START_LOCATION)
        self.assertEqual(form.trip_date, date.today())

    def test_form_from_trip(self):
        trip = TestDataFactory.trip()
        form = TripForm.from_trip(trip)
        self.assertEqual(form.truck_id, "t1")
        self.assertEqual(form.driver_id, "d1")
        self.assertEqual(form.salesperson_id, "")
        self.assertEqual(items_from_trip(trip), trip.dispatch_items)
        self.assertIsNot(items_from_trip(trip), trip.dispatch_items)

    def test_empty_form_collects_every_error(self):
        """Validation reports all problems at once"""
        form = TripForm(trip_date=None, start_time="", start_location="  ")
        errors = validate_trip_form(form, [])
        self.assertEqual(
            errors,
            [
                "Truck is required",
                "Trip date is required",
                "Route is required",
                "Start time is required",
                "Start location is required",
                "Driver is required",
                "At least one dispatch item is required",
            ],
        )

    def test_bad_lines_are_reported(self):
        items = [TestDataFactory.item(quantity=0), TestDataFactory.item(item_id="", name="", cost_price=0)]
        errors = validate_trip_form(filled_form(), items)
        self.assertIn("Quantity must be greater than 0 for Mango", errors)
        self.assertIn("All dispatch items must have valid product information", errors)
        self.assertIn("Cost price must be greater than 0 for unnamed item", errors)

    def test_payload(self):
        payload = build_trip_payload(filled_form(), [TestDataFactory.item(quantity=2)])
        self.assertEqual(payload["tripDate"], "2024-05-01")
        self.assertEqual(payload["startTime"], "06:00")
        self.assertEqual(payload["salespersonId"], "s1")
        self.assertIsNone(payload["helperId"])
        self.assertEqual(payload["fuelAdded"], 20.0)
        self.assertEqual(payload["dispatchItems"][0]["totalCost"], 120)


class ScratchRowTests(TestCase):

    def setUp(self):
        self.mango = TestDataFactory.product("p1", "Mango", price=60)
        self.banana = TestDataFactory.product("p2", "Banana", price=40)
        self.products = {"p1": self.mango, "p2": self.banana}

    def test_selecting_product_snapshots_price(self):
        row = select_product(ScratchRow(), self.mango)
        self.assertEqual((row.product_id, row.cost_price), ("p1", 60))
        select_product(row, None)
        self.assertEqual((row.product_id, row.cost_price), ("", 0.0))

    def test_only_complete_rows_are_promoted(self):
        """Incomplete scratch rows are skipped silently"""
        rows = [
            ScratchRow("p1", 3, 60),
            ScratchRow("", 2, 40),
            ScratchRow("p2", 0, 40),
            ScratchRow("p2", 2, 40),
        ]
        items = promote_scratch_rows(rows, self.products)
        self.assertEqual([(i.item_name, i.quantity) for i in items], [("Mango", 3), ("Banana", 2)])

    def test_price_is_frozen_from_product(self):
        items = promote_scratch_rows([ScratchRow("p1", 2, 999)], self.products)
        self.assertEqual(items[0].cost_price, 60)

        self.mango.selling_price = 75
        self.assertEqual(items[0].total_cost, 120)

    def test_line_edits(self):
        items = [TestDataFactory.item("p1", quantity=5), TestDataFactory.item("p2", "Banana", 3, 40)]
        updated = update_line_quantity(items, 0, 8)
        self.assertEqual(updated[0].quantity, 8)
        self.assertEqual(updated[0].total_cost, 480)
        self.assertEqual(items[0].quantity, 5)
        self.assertEqual([i.item_id for i in remove_line(items, 0)], ["p2"])
        self.assertEqual(dispatch_totals(updated), (600, 11))


class SubmitTripTests(TestCase):

    def test_invalid_form_sends_nothing(self):
        client = FakeClient()
        ok, msg, trip = submit_trip(client, TripForm(), [])
        self.assertFalse(ok)
        self.assertTrue(msg.startswith("Please fix the following errors:\n"))
        self.assertIsNone(trip)
        self.assertEqual(client.calls, [])

    def test_create(self):
        client = FakeClient({("POST", "/truck-trips"): TestDataFactory.raw_trip("new1")})
        ok, msg, trip = submit_trip(client, filled_form(), [TestDataFactory.item()])
        self.assertTrue(ok)
        self.assertEqual(msg, "Trip created")
        self.assertEqual(trip.id, "new1")
        self.assertEqual(client.paths(), [("POST", "/truck-trips")])

    def test_update_replaces_whole_trip(self):
        client = FakeClient({("PUT", "/truck-trips/abc"): TestDataFactory.raw_trip("abc")})
        ok, _, _ = submit_trip(client, filled_form(), [TestDataFactory.item()], trip_id="abc")
        self.assertTrue(ok)
        self.assertEqual(client.paths(), [("PUT", "/truck-trips/abc")])

    def test_server_rejection(self):
        client = FakeClient({("POST", "/truck-trips"): ApiError("Truck is already assigned", 409)})
        ok, msg, _ = submit_trip(client, filled_form(), [TestDataFactory.item()])
        self.assertFalse(ok)
        self.assertEqual(msg, "Failed to create trip: Truck is already assigned")


class TripProductsTests(TestCase):

    def setUp(self):
        self.mango = TestDataFactory.product("p1", "Mango", price=60, stock=6, unit="kg")
        self.products = {"p1": self.mango}

    def client_for(self, trip):
        return FakeClient(
            {
                ("PATCH", f"/truck-trips/{trip.id}/products"): {
                    "message": "Trip products updated successfully",
                    "trip": TestDataFactory.raw_trip(trip.id, trip.status.value),
                }
            }
        )

    def test_in_progress_blocks_on_stock(self):
        """Raising a line above stock on an in-progress trip is refused locally"""
        trip = TestDataFactory.trip(status=TripStatus.IN_PROGRESS, items=[TestDataFactory.item(quantity=5)])
        items = update_line_quantity(items_from_trip(trip), 0, 8)
        client = self.client_for(trip)

        ok, msg, _ = submit_trip_products(client, trip, items, self.products)

        self.assertFalse(ok)
        self.assertEqual(msg, "Insufficient stock for Mango. Available: 6 kg, Requested: 8")
        self.assertEqual(client.calls, [])

    def test_planned_trip_ignores_stock(self):
        trip = TestDataFactory.trip(status=TripStatus.PLANNED, items=[TestDataFactory.item(quantity=5)])
        items = update_line_quantity(items_from_trip(trip), 0, 8)
        client = self.client_for(trip)

        ok, msg, updated = submit_trip_products(client, trip, items, self.products)

        self.assertTrue(ok)
        self.assertEqual(msg, "Trip products updated successfully")
        self.assertEqual(updated.id, trip.id)
        self.assertEqual(client.calls[0][2]["dispatchItems"][0]["quantity"], 8)

    def test_planned_shortfalls_are_advisory(self):
        items = [TestDataFactory.item(quantity=8)]
        self.assertEqual(len(stock_shortfalls(items, self.products)), 1)
        trip = TestDataFactory.trip(status=TripStatus.PLANNED)
        self.assertEqual(validate_trip_products(trip, items, self.products), [])

    def test_closed_trips_are_refused(self):
        trip = TestDataFactory.trip(status=TripStatus.COMPLETED)
        client = self.client_for(trip)
        ok, msg, _ = submit_trip_products(client, trip, trip.dispatch_items, self.products)
        self.assertFalse(ok)
        self.assertEqual(msg, "Products can only be managed on planned or in-progress trips")
        self.assertEqual(client.calls, [])

    def test_empty_list_is_refused(self):
        trip = TestDataFactory.trip(status=TripStatus.PLANNED)
        self.assertEqual(
            validate_trip_products(trip, [], self.products),
            ["At least one dispatch item is required"],
        )
        self.assertEqual(validate_trip_products(None, [], self.products), ["No trip selected"])

    def test_server_failure(self):
        trip = TestDataFactory.trip(status=TripStatus.PLANNED)
        client = FakeClient({("PATCH", f"/truck-trips/{trip.id}/products"): ApiError("Trip not found", 404)})
        ok, msg, _ = submit_trip_products(client, trip, trip.dispatch_items, self.products)
        self.assertFalse(ok)
        self.assertEqual(msg, "Trip not found")
