"""
Tests for the mobile point of sale: cart rules, checkout sequencing and sales history
"""
from datetime import date
from unittest import TestCase

from api_client import ApiError
from domain.models import PaymentMode, Sale
from services.sales_service import (
    Cart,
    build_sale_payload,
    checkout,
    filter_sales,
    sales_summary,
    save_sale_edit,
    sellable_products,
    validate_checkout,
)
from tests.factories import FakeClient, TestDataFactory, replies


class CartTests(TestCase):

    def setUp(self):
        self.mango = TestDataFactory.product("p1", "Mango", price=60, stock=3)
        self.products = {"p1": self.mango}
        self.cart = Cart()

    def test_adding_twice_increments(self):
        """Adding a product already in the cart increments its line"""
        self.cart.add(self.mango)
        self.cart.add(self.mango)
        self.assertEqual(len(self.cart), 1)
        self.assertEqual(self.cart.find("p1").quantity, 2)
        self.assertEqual(self.cart.total_amount, 120)

    def test_cannot_add_beyond_stock(self):
        for _ in range(3):
            self.assertTrue(self.cart.add(self.mango)[0])
        self.assertEqual(self.cart.add(self.mango), (False, "Cannot add more than available stock"))
        self.assertEqual(self.cart.total_items, 3)

    def test_fractional_stock_caps_whole_units(self):
        """With 2.5 kg on hand the cart stops at 2"""
        loose = TestDataFactory.product("p5", "Grapes", stock=2.5)
        self.assertTrue(self.cart.add(loose)[0])
        self.assertTrue(self.cart.add(loose)[0])
        self.assertEqual(self.cart.add(loose), (False, "Cannot add more than available stock"))
        self.assertEqual(self.cart.find("p5").quantity, 2)

    def test_out_of_stock_is_refused(self):
        empty = TestDataFactory.product("p9", "Guava", stock=0)
        ok, _ = self.cart.add(empty)
        self.assertFalse(ok)
        self.assertEqual(len(self.cart), 0)

    def test_zero_quantity_removes_line(self):
        self.cart.add(self.mango)
        self.assertTrue(self.cart.set_quantity("p1", 0, self.products)[0])
        self.assertIsNone(self.cart.find("p1"))

    def test_set_quantity_respects_stock(self):
        self.cart.add(self.mango)
        self.assertEqual(self.cart.set_quantity("p1", 4, self.products), (False, "Cannot exceed available stock"))
        self.assertEqual(self.cart.find("p1").quantity, 1)
        self.assertTrue(self.cart.set_quantity("p1", 3, self.products)[0])
        self.assertEqual(self.cart.total_items, 3)

    def test_sellable_products(self):
        products = [
            self.mango,
            TestDataFactory.product("p2", "Banana", stock=0),
            TestDataFactory.product("p3", "Mango Raw", active=False),
            TestDataFactory.product("p4", "Papaya"),
        ]
        self.assertEqual([p.id for p in sellable_products(products)], ["p1", "p4"])
        self.assertEqual([p.id for p in sellable_products(products, " MAN ")], ["p1"])


class CheckoutTests(TestCase):

    def setUp(self):
        self.apple = TestDataFactory.product("a", "Apple", price=60, stock=10)
        self.banana = TestDataFactory.product("b", "Banana", price=45, stock=10)
        self.products = {"a": self.apple, "b": self.banana}
        self.cart = Cart()
        for _ in range(3):
            self.cart.add(self.apple)
        for _ in range(2):
            self.cart.add(self.banana)

    def test_cart_totals(self):
        self.assertEqual(self.cart.total_amount, 270)
        self.assertEqual(self.cart.total_items, 5)

    def test_sales_then_stock_in_cart_order(self):
        """All sales are created first, then stock is decremented line by line"""
        client = FakeClient(
            {
                ("POST", "/sales"): replies({"_id": "s1"}, {"_id": "s2"}),
                ("PATCH", "/products/a/stock"): {},
                ("PATCH", "/products/b/stock"): {},
            }
        )
        result = checkout(client, self.cart, self.products, PaymentMode.CASH)

        self.assertTrue(result.ok)
        self.assertEqual(result.total_amount, 270)
        self.assertEqual(
            client.paths(),
            [
                ("POST", "/sales"),
                ("POST", "/sales"),
                ("PATCH", "/products/a/stock"),
                ("PATCH", "/products/b/stock"),
            ],
        )
        first_sale = client.calls[0][2]
        self.assertEqual(first_sale["productId"], "a")
        self.assertEqual(first_sale["quantitySold"], 3)
        self.assertEqual(first_sale["totalAmount"], 180)
        self.assertEqual(first_sale["paymentStatus"], "paid")
        self.assertEqual(client.calls[3][2], {"quantity": 2, "operation": "subtract"})
        self.assertEqual(len(self.cart), 0)

    def test_failed_sale_stops_checkout(self):
        """Nothing after the failing sale is sent and earlier sales stay"""
        client = FakeClient({("POST", "/sales"): replies({"_id": "s1"}, ApiError("Payment gateway down", 500))})
        result = checkout(client, self.cart, self.products, PaymentMode.UPI)

        self.assertFalse(result.ok)
        self.assertEqual(result.error, "Failed to process sale for Banana: Payment gateway down")
        self.assertEqual(result.failed_product, "Banana")
        self.assertEqual(result.sales, [{"_id": "s1"}])
        self.assertEqual(result.compensated, [])
        self.assertEqual(client.paths(), [("POST", "/sales"), ("POST", "/sales")])
        self.assertEqual(self.cart.total_items, 5)

    def test_lines_after_failed_sale_are_never_sent(self):
        """A failure on the 2nd of 3 lines leaves the 3rd line and all stock updates unsent"""
        cherry = TestDataFactory.product("c", "Cherry", price=120, stock=10)
        self.products["c"] = cherry
        self.cart.add(cherry)
        client = FakeClient(
            {
                ("POST", "/sales"): replies({"_id": "s1"}, ApiError("Payment gateway down", 500), {"_id": "s3"}),
                ("PATCH", "/products/a/stock"): {},
                ("PATCH", "/products/b/stock"): {},
                ("PATCH", "/products/c/stock"): {},
            }
        )
        result = checkout(client, self.cart, self.products, PaymentMode.CASH)

        self.assertFalse(result.ok)
        self.assertEqual(result.failed_product, "Banana")
        self.assertEqual(client.paths(), [("POST", "/sales"), ("POST", "/sales")])
        self.assertEqual(client.paths("PATCH"), [])
        self.assertNotIn("c", [payload["productId"] for _, _, payload in client.calls])
        self.assertEqual(len(self.cart), 3)

    def test_compensation_deletes_created_sales(self):
        client = FakeClient(
            {
                ("POST", "/sales"): replies({"_id": "s1"}, ApiError("Payment gateway down", 500)),
                ("DELETE", "/sales/s1"): None,
            }
        )
        result = checkout(client, self.cart, self.products, PaymentMode.UPI, compensate=True)

        self.assertFalse(result.ok)
        self.assertEqual(result.compensated, ["s1"])
        self.assertEqual(client.paths()[-1], ("DELETE", "/sales/s1"))

    def test_stock_failure_is_recorded(self):
        """A failed stock update does not undo the sale or stop other updates"""
        client = FakeClient(
            {
                ("POST", "/sales"): replies({"_id": "s1"}, {"_id": "s2"}),
                ("PATCH", "/products/a/stock"): ApiError("Insufficient stock", 400),
                ("PATCH", "/products/b/stock"): {},
            }
        )
        result = checkout(client, self.cart, self.products, PaymentMode.CASH)

        self.assertTrue(result.ok)
        self.assertEqual(result.stock_failures, [("Apple", "Insufficient stock")])
        self.assertIn(("PATCH", "/products/b/stock"), client.paths())
        self.assertEqual(len(self.cart), 0)

    def test_empty_cart_sends_nothing(self):
        client = FakeClient()
        result = checkout(client, Cart(), self.products, PaymentMode.CASH)
        self.assertEqual(result.error, "Cart is empty")
        self.assertEqual(client.calls, [])

    def test_stale_stock_is_rejected_before_sending(self):
        self.banana.current_stock = 1
        errors = validate_checkout(self.cart, self.products, PaymentMode.CASH)
        self.assertEqual(errors, ["Insufficient stock for Banana. Available: 1, Required: 2"])

    def test_invalid_payment_mode(self):
        self.assertEqual(validate_checkout(self.cart, self.products, "Cheque"), ["Invalid payment mode"])

    def test_payload_customer_fields_are_optional(self):
        line = self.cart.find("a")
        payload = build_sale_payload(line, PaymentMode.CARD)
        self.assertEqual(payload["paymentStatus"], "pending")
        self.assertNotIn("customerName", payload)

        payload = build_sale_payload(line, "Cash", customer_name=" Asha ", customer_phone="98450")
        self.assertEqual(payload["customerName"], "Asha")
        self.assertEqual(payload["customerPhone"], "98450")


class SalesHistoryTests(TestCase):

    def setUp(self):
        self.sales = [
            Sale("s1", "a", "Apple", 3, 60, 180, "Cash", "paid", "Asha", "98450", None, date(2024, 5, 1)),
            Sale("s2", "b", "Banana", 2, 45, 90, "UPI", "pending", "", "", "trip1", date(2024, 5, 2)),
            Sale("s3", "a", "Apple", 1, 60, 60, "UPI", "paid", "Ravi", "", None, date(2024, 5, 3)),
        ]

    def test_filters(self):
        self.assertEqual([s.id for s in filter_sales(self.sales, search="apple")], ["s1", "s3"])
        self.assertEqual([s.id for s in filter_sales(self.sales, search="9845")], ["s1"])
        self.assertEqual([s.id for s in filter_sales(self.sales, payment_mode="UPI", payment_status="paid")], ["s3"])
        self.assertEqual([s.id for s in filter_sales(self.sales, sale_type="trip")], ["s2"])
        self.assertEqual([s.id for s in filter_sales(self.sales, sale_type="standalone")], ["s1", "s3"])
        self.assertEqual(
            [s.id for s in filter_sales(self.sales, start_date=date(2024, 5, 2), end_date=date(2024, 5, 3))],
            ["s2", "s3"],
        )

    def test_summary(self):
        summary = sales_summary(self.sales)
        self.assertEqual(summary["count"], 3)
        self.assertEqual(summary["quantity"], 6)
        self.assertEqual(summary["amount"], 330)
        self.assertEqual(summary["by_payment_mode"], {"Cash": 180, "UPI": 150})

    def test_edit_recomputes_total(self):
        client = FakeClient({("PUT", "/sales/s1"): lambda payload: {"_id": "s1", **payload}})
        sale = self.sales[0]
        sale.quantity_sold = 4
        ok, _, updated = save_sale_edit(client, sale)
        self.assertTrue(ok)
        self.assertEqual(client.calls[0][2]["totalAmount"], 240)
        self.assertEqual(updated.total_amount, 240)

    def test_edit_validation(self):
        client = FakeClient()
        sale = self.sales[0]
        sale.quantity_sold = 0
        self.assertEqual(save_sale_edit(client, sale), (False, "Quantity must be greater than 0", None))
        sale.quantity_sold = 1
        sale.payment_status = "refunded"
        self.assertEqual(save_sale_edit(client, sale)[1], "Invalid payment status")
        self.assertEqual(client.calls, [])
