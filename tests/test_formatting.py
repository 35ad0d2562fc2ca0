from unittest import TestCase

from tests.factories import TestDataFactory
from utils.formatting import format_quantity, format_rupee, format_stock


class FormatRupeeTests(TestCase):

    def test_indian_grouping(self):
        self.assertEqual(format_rupee(123456), "₹1,23,456")
        self.assertEqual(format_rupee(12345678), "₹1,23,45,678")
        self.assertEqual(format_rupee(999), "₹999")

    def test_decimals_only_when_needed(self):
        self.assertEqual(format_rupee(270), "₹270")
        self.assertEqual(format_rupee(60.5), "₹60.50")
        self.assertEqual(format_rupee(1234567.891), "₹12,34,567.89")

    def test_zero_and_negative(self):
        self.assertEqual(format_rupee(0), "₹0")
        self.assertEqual(format_rupee(None), "₹0")
        self.assertEqual(format_rupee(-1500), "-₹1,500")


class FormatQuantityTests(TestCase):

    def test_whole_and_fractional(self):
        self.assertEqual(format_quantity(6, "kg"), "6 kg")
        self.assertEqual(format_quantity(6.0), "6")
        self.assertEqual(format_quantity(2.5, "kg"), "2.5 kg")


class FormatStockTests(TestCase):

    def test_low_stock_is_marked(self):
        self.assertEqual(format_stock(2, "kg", low=True), "2 kg ⚠️ low")
        self.assertEqual(format_stock(8.5, "kg"), "8.5 kg")

    def test_marker_follows_product_threshold(self):
        """The factory's products have a minimum stock level of 2"""
        low = TestDataFactory.product(stock=2)
        healthy = TestDataFactory.product(stock=3)
        self.assertEqual(format_stock(low.current_stock, low.unit_symbol, low.is_low_stock), "2 kg ⚠️ low")
        self.assertEqual(format_stock(healthy.current_stock, healthy.unit_symbol, healthy.is_low_stock), "3 kg")
