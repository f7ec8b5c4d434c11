"""Tests for input validation helpers."""

import pytest

from saludlibre.validators import (
    format_argentine_phone,
    validate_argentine_phone,
    validate_name,
    validate_password,
)


class TestPhone:
    """Tests for Argentine phone numbers."""

    @pytest.mark.parametrize("phone", ["1123456789", "11 2345-6789", "+54 11 2345 6789", "541123456789"])
    def test_valid(self, phone):
        assert validate_argentine_phone(phone)

    @pytest.mark.parametrize("phone", ["", "   ", "12345", "+1 555 123 4567", "11234567890123"])
    def test_invalid(self, phone):
        assert not validate_argentine_phone(phone)

    def test_format_local(self):
        assert format_argentine_phone("1123456789") == "+54 11 2345-6789"

    def test_format_with_prefix(self):
        assert format_argentine_phone("+541123456789") == "+54 11 2345-6789"

    def test_format_unknown_shape_untouched(self):
        assert format_argentine_phone("123") == "123"


class TestPassword:
    """Tests for password rules and messages."""

    def test_ok(self):
        assert validate_password("secreta123") == (True, "")

    def test_required(self):
        ok, message = validate_password("")
        assert not ok
        assert message == "La contraseña es requerida"

    def test_too_short(self):
        ok, message = validate_password("abc")
        assert not ok
        assert "6 caracteres" in message

    def test_too_long(self):
        ok, message = validate_password("x" * 129)
        assert not ok
        assert "128" in message


class TestName:
    """Tests for person names."""

    def test_accents_allowed(self):
        assert validate_name("María José Núñez")

    def test_digits_rejected(self):
        assert not validate_name("Juan 2")

    def test_too_short(self):
        assert not validate_name("J")
