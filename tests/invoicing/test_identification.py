"""
Tests for buyer identification classification.
"""

from django.test import SimpleTestCase, override_settings

from apps.invoicing.identification import (
    CedulaValidator,
    IdentificationType,
    classify_identification,
    normalize_identification,
)


class NormalizeIdentificationTestCase(SimpleTestCase):
    """Test normalize_identification."""

    def test_strips_separators_and_uppercases(self):
        """Test spaces, dashes, dots and slashes are removed."""
        self.assertEqual(normalize_identification(" 17-1003.4065 "), "1710034065")
        self.assertEqual(normalize_identification("ab 123/45_6"), "AB123456")
        self.assertEqual(normalize_identification(""), "")


class CedulaValidatorTestCase(SimpleTestCase):
    """Test CedulaValidator."""

    def test_valid_cedula(self):
        """Test a cédula with a matching check digit."""
        result = CedulaValidator.validate("1710034065")
        self.assertTrue(result.is_valid)
        self.assertTrue(result.check_digit_valid)
        self.assertEqual(result.province_code, "17")

    def test_check_digit_calculation(self):
        """Test module-10 check digit over the first nine digits."""
        self.assertEqual(CedulaValidator.calculate_check_digit("171003406"), 5)
        self.assertEqual(CedulaValidator.calculate_check_digit("171234567"), 5)

    def test_bad_check_digit_strict(self):
        """Test strict mode refuses a mismatching check digit."""
        result = CedulaValidator.validate("1712345678", strict=True)
        self.assertFalse(result.is_valid)
        self.assertEqual(result.error_message, "Invalid check digit")

    def test_bad_check_digit_lenient(self):
        """Test lenient mode accepts it but reports the mismatch."""
        result = CedulaValidator.validate("1712345678", strict=False)
        self.assertTrue(result.is_valid)
        self.assertFalse(result.check_digit_valid)

    def test_invalid_province(self):
        """Test province codes outside 01-24 and 30."""
        self.assertFalse(CedulaValidator.validate("2510034065").is_valid)
        self.assertFalse(CedulaValidator.validate("0010034065").is_valid)

    def test_foreign_province_accepted(self):
        """Test province 30 (registered abroad) is structurally valid."""
        self.assertTrue(CedulaValidator.validate("3010034065", strict=False).is_valid)

    def test_third_digit_must_be_natural_person(self):
        """Test third digit 6 or above is refused."""
        result = CedulaValidator.validate("1760034065", strict=False)
        self.assertFalse(result.is_valid)
        self.assertIn("Third digit", result.error_message)

    def test_wrong_length(self):
        """Test only 10 digits are accepted."""
        self.assertFalse(CedulaValidator.validate("171003406").is_valid)


class ClassifyIdentificationTestCase(SimpleTestCase):
    """Test classify_identification."""

    def test_ruc(self):
        """Test 13 digits ending in 001 is a RUC."""
        result = classify_identification("1790012345001")
        self.assertTrue(result.is_ok())
        classified = result.unwrap()
        self.assertEqual(classified.type, IdentificationType.RUC)
        self.assertEqual(classified.type_code, "04")
        self.assertEqual(classified.normalized_value, "1790012345001")

    def test_ruc_with_separators(self):
        """Test a RUC typed with dashes and spaces."""
        classified = classify_identification(" 1790012345-001 ").unwrap()
        self.assertEqual(classified.type, IdentificationType.RUC)
        self.assertEqual(classified.normalized_value, "1790012345001")

    def test_thirteen_digits_without_suffix_is_passport(self):
        """Test 13 digits not ending in 001 fall through to passport."""
        classified = classify_identification("1790012345002").unwrap()
        self.assertEqual(classified.type, IdentificationType.PASSPORT)

    def test_cedula(self):
        """Test valid cédula is type 05."""
        classified = classify_identification("1710034065").unwrap()
        self.assertEqual(classified.type, IdentificationType.CEDULA)
        self.assertEqual(classified.type_code, "05")
        self.assertTrue(classified.check_digit_valid)

    def test_cedula_bad_check_digit_lenient(self):
        """Test lenient mode keeps a cédula with a mismatching check digit."""
        classified = classify_identification("1712345678", strict_cedula=False).unwrap()
        self.assertEqual(classified.type, IdentificationType.CEDULA)
        self.assertFalse(classified.check_digit_valid)

    def test_cedula_bad_check_digit_strict_falls_to_passport(self):
        """Test strict mode classifies a failing cédula as a foreign id."""
        classified = classify_identification("1712345678", strict_cedula=True).unwrap()
        self.assertEqual(classified.type, IdentificationType.PASSPORT)

    @override_settings(INVOICING_STRICT_CEDULA_CHECK=True)
    def test_strictness_from_settings(self):
        """Test strict_cedula defaults to the setting."""
        classified = classify_identification("1712345678").unwrap()
        self.assertEqual(classified.type, IdentificationType.PASSPORT)

    def test_passport(self):
        """Test alphanumeric ids with a digit are passports."""
        for raw, expected in (("AB123456", "AB123456"), ("x1234", "X1234"), ("P-987 654", "P987654")):
            with self.subTest(raw=raw):
                classified = classify_identification(raw).unwrap()
                self.assertEqual(classified.type, IdentificationType.PASSPORT)
                self.assertEqual(classified.type_code, "06")
                self.assertEqual(classified.normalized_value, expected)

    def test_rejects_unclassifiable(self):
        """Test too short, too long, letters only, empty and non-string input."""
        for raw in ("1234", "A" * 10, "1" * 21, "", "   ", "AB#12345", None, 1710034065):
            with self.subTest(raw=raw):
                self.assertTrue(classify_identification(raw).is_err())

    def test_non_ascii_digits_rejected(self):
        """Test unicode digits do not pass as numeric ids."""
        self.assertTrue(classify_identification("١٧١٠٠٣٤٠٦٥").is_err())

    def test_choices(self):
        """Test labels for the admin/API."""
        self.assertEqual(
            IdentificationType.choices(),
            [("04", "RUC"), ("05", "Cédula"), ("06", "Passport/foreign ID")],
        )

    def test_reference_examples(self):
        """Test the documented examples with the default (lenient) cédula check."""
        self.assertEqual(classify_identification("1712345678").unwrap().type_code, "05")
        self.assertEqual(classify_identification("1791234567001").unwrap().type_code, "04")
        self.assertTrue(classify_identification("abc").is_err())
