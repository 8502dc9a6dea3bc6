"""
Tests for vendor cleanup, store-name normalization and field coercion.
"""
import datetime
from decimal import Decimal

import pytest

from packages.parsers.normalizer import (
    STORE_NAME_RULES,
    clean_vendor_name,
    coerce_currency,
    coerce_date,
    coerce_decimal,
    coerce_time,
    normalize_store_name,
    strip_garbage_prefix,
)


class TestStoreNameNormalization:
    def test_garbled_lidl_header(self):
        assert clean_vendor_name("STOWT LIDL SP. Z O.O.") == "Lidl"

    def test_legal_name_maps_to_brand(self):
        assert normalize_store_name("JERONIMO MARTINS POLSKA S.A.") == "Biedronka"

    def test_unknown_name_unchanged(self):
        assert normalize_store_name("Corner Bakery") == "Corner Bakery"

    @pytest.mark.parametrize("canonical", sorted({name for _, name in STORE_NAME_RULES}))
    def test_canonical_names_are_fixed_points(self, canonical):
        assert normalize_store_name(canonical) == canonical
        assert normalize_store_name(normalize_store_name(canonical)) == canonical

    @pytest.mark.parametrize("raw", ["ZABKA Z1234 K.1", "Rossmann SDP Sp. z o.o.", "Corner Bakery", "ORLEN S.A."])
    def test_normalization_idempotent(self, raw):
        once = normalize_store_name(raw)
        assert normalize_store_name(once) == once

    def test_first_matching_rule_wins(self):
        # "Media Expert" must not be swallowed by the MediaMarkt rule
        assert normalize_store_name("MEDIA EXPERT TERG S.A.") == "Media Expert"
        assert normalize_store_name("MEDIA MARKT POLSKA") == "MediaMarkt"


class TestGarbagePrefix:
    def test_strips_known_tokens(self):
        assert strip_garbage_prefix("PARAGON FISKALNY Corner Bakery") == "Corner Bakery"
        assert strip_garbage_prefix("** Corner Bakery") == "Corner Bakery"

    def test_never_strips_to_empty(self):
        assert strip_garbage_prefix("STOWT") == "STOWT"

    def test_clean_vendor_handles_blank(self):
        assert clean_vendor_name(None) is None
        assert clean_vendor_name("   ") is None

    def test_clean_vendor_collapses_whitespace(self):
        assert clean_vendor_name("  Corner   Bakery \n") == "Corner Bakery"


class TestCoercion:
    @pytest.mark.parametrize("raw, expected", [
        (23.45, Decimal("23.45")),
        (7, Decimal("7")),
        ("23,45", Decimal("23.45")),
        ("23,45 zł", Decimal("23.45")),
        ("1 234,50", Decimal("1234.50")),
        ("1,234.50", Decimal("1234.50")),
        ("1.234,50", Decimal("1234.50")),
        ("PLN 9.99", Decimal("9.99")),
    ])
    def test_decimal(self, raw, expected):
        assert coerce_decimal(raw) == expected

    @pytest.mark.parametrize("raw", [None, True, "", "abc", {"amount": 1}])
    def test_decimal_rejects(self, raw):
        assert coerce_decimal(raw) is None

    def test_date(self):
        assert coerce_date("2024-03-01") == datetime.date(2024, 3, 1)
        assert coerce_date("2024-03-01T10:00:00") == datetime.date(2024, 3, 1)
        assert coerce_date(None) is None

    @pytest.mark.parametrize("text", ["01.03.2024", "1.3.2024", "01-03-2024", "01/03/2024", "01.03.2024 12:34"])
    def test_day_first_date(self, text):
        assert coerce_date(text) == datetime.date(2024, 3, 1)

    @pytest.mark.parametrize("text", ["31.02.2024", "01.13.2024", "01.03.24", "Data: 01.03.2024"])
    def test_unusable_day_first_date(self, text):
        assert coerce_date(text) is None

    def test_time(self):
        assert coerce_time("9:05") == "09:05:00"
        assert coerce_time("12:34:56") == "12:34:56"
        assert coerce_time("25:00") is None
        assert coerce_time(None) is None

    def test_currency(self):
        assert coerce_currency(" pln ") == "PLN"
        assert coerce_currency("zł") is None
        assert coerce_currency(None) is None
