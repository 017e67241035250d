"""
Tests for the shared Result type and money helpers.
"""

from decimal import Decimal

from django.test import SimpleTestCase

from apps.common.types import Err, Ok, quantize_money, to_decimal


class ResultTypeTestCase(SimpleTestCase):
    """Test Ok / Err behaviour."""

    def test_ok_unwrap(self):
        """Test Ok exposes its value."""
        result = Ok(42)
        self.assertTrue(result.is_ok())
        self.assertFalse(result.is_err())
        self.assertEqual(result.unwrap(), 42)
        self.assertEqual(result.unwrap_or(0), 42)

    def test_err_unwrap_raises(self):
        """Test unwrap on Err raises and unwrap_or falls back."""
        result = Err("boom")
        self.assertTrue(result.is_err())
        self.assertEqual(result.unwrap_err(), "boom")
        self.assertEqual(result.unwrap_or("default"), "default")
        with self.assertRaises(ValueError):
            result.unwrap()

    def test_ok_unwrap_err_raises(self):
        """Test unwrap_err on Ok raises."""
        with self.assertRaises(ValueError):
            Ok(1).unwrap_err()

    def test_map_and_then(self):
        """Test chaining on Ok and short-circuit on Err."""
        self.assertEqual(Ok(2).map(lambda x: x * 3).unwrap(), 6)
        self.assertEqual(Ok(2).and_then(lambda x: Ok(x + 1)).unwrap(), 3)
        self.assertTrue(Ok(2).map(lambda x: x / 0).is_err())
        err = Err("nope")
        self.assertIs(err.map(lambda x: x), err)
        self.assertIs(err.and_then(lambda x: Ok(x)), err)


class MoneyHelpersTestCase(SimpleTestCase):
    """Test to_decimal and quantize_money."""

    def test_to_decimal_accepts_common_inputs(self):
        """Test str, int, float and Decimal inputs."""
        self.assertEqual(to_decimal("299.99"), Decimal("299.99"))
        self.assertEqual(to_decimal(" 10 "), Decimal("10"))
        self.assertEqual(to_decimal(3), Decimal("3"))
        self.assertEqual(to_decimal(0.1), Decimal("0.1"))
        self.assertEqual(to_decimal(Decimal("1.50")), Decimal("1.50"))

    def test_to_decimal_rejects_invalid(self):
        """Test garbage, booleans and non-finite values are refused."""
        for value in ("abc", "", None, True, "NaN", "Infinity", Decimal("NaN"), float("inf")):
            with self.subTest(value=value), self.assertRaises(ValueError):
                to_decimal(value)

    def test_quantize_money_rounds_half_up(self):
        """Test half-up rounding to cents."""
        self.assertEqual(quantize_money(Decimal("89.997")), Decimal("90.00"))
        self.assertEqual(quantize_money(Decimal("22.4985")), Decimal("22.50"))
        self.assertEqual(quantize_money(Decimal("0.005")), Decimal("0.01"))
        self.assertEqual(quantize_money(Decimal("0.004")), Decimal("0.00"))
