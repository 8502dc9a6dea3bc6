"""
Extraction Engine - AnalysisResult -> ParsedReceipt

Each field is resolved by an ordered list of extractor functions; the first one that
returns a value wins. Cascades:

Total:   reported Total -> Subtotal + TotalTax -> Subtotal -> AmountDue -> None
Vendor:  MerchantName -> first MerchantAddress line -> header-line scan -> None,
         then garbage-prefix strip + store-name normalization, then LLM verification,
         then normalization once more on the surviving name
Items:   name from Description / Name / ProductName, quantity from Quantity,
         price = reported line total verbatim (never unit price x quantity)
"""
import re
from decimal import Decimal
from typing import Callable, List, Optional

import structlog

from packages.common.schemas.receipt_normalized import VENDOR_MAX_LENGTH, LineItem, ParsedReceipt
from packages.parsers.normalizer import (
    clean_vendor_name,
    coerce_currency,
    coerce_date,
    coerce_decimal,
    coerce_time,
    normalize_store_name,
)
from packages.parsers.ocr.base import AnalysisResult, DocumentField
from packages.parsers.vendor_verifier import VendorVerifier

logger = structlog.get_logger()

PLACEHOLDER_ITEM_NAME = "Unknown item"
HEADER_SCAN_LINES = 5
MIN_VENDOR_LEN = 3
MAX_VENDOR_LEN = 60

# Header lines that are never the merchant name
_NOISE_PATTERNS = [
    re.compile(r"\b\d{1,4}[./-]\d{1,2}[./-]\d{1,4}\b"),                  # date
    re.compile(r"\b\d{1,2}:\d{2}(?::\d{2})?\b"),                        # time
    re.compile(r"\b(?:NIP|REGON|KRS|VAT\s*ID|TAX\s*ID)\b", re.IGNORECASE),  # legal id label
    re.compile(r"\b\d{3}-?\d{3}-?\d{2}-?\d{2}\b"),                      # legal id number
    re.compile(r"\b\d{2}-\d{3}\b"),                                     # postal code
    re.compile(r"^(?=[A-Z0-9#/.\-]*\d)[A-Z0-9#/.\-]+$"),                # all-caps code
]


def _field_amount(field: Optional[DocumentField]) -> Optional[Decimal]:
    """Numeric value of a field, falling back to its numeric-string forms"""
    if field is None:
        return None
    if field.amount is not None:
        return field.amount
    parsed = coerce_decimal(field.value_string)
    return parsed if parsed is not None else coerce_decimal(field.content)


def _field_text(field: Optional[DocumentField]) -> Optional[str]:
    if field is None:
        return None
    for variant in (field.value_string, field.content):
        if variant and variant.strip():
            return variant.strip()
    return None


# ---- Total --------------------------------------------------------------------------

def _reported_total(result: AnalysisResult) -> Optional[Decimal]:
    return _field_amount(result.get("Total"))


def _subtotal_plus_tax(result: AnalysisResult) -> Optional[Decimal]:
    subtotal = _field_amount(result.get("Subtotal"))
    tax = _field_amount(result.get("TotalTax"))
    if subtotal is None or tax is None:
        return None
    return subtotal + tax


def _subtotal_only(result: AnalysisResult) -> Optional[Decimal]:
    return _field_amount(result.get("Subtotal"))


def _amount_due(result: AnalysisResult) -> Optional[Decimal]:
    return _field_amount(result.get("AmountDue"))


TOTAL_CASCADE: List[Callable[[AnalysisResult], Optional[Decimal]]] = [
    _reported_total,
    _subtotal_plus_tax,
    _subtotal_only,
    _amount_due,
]


# ---- Vendor -------------------------------------------------------------------------

def _merchant_name(result: AnalysisResult) -> Optional[str]:
    return _field_text(result.get("MerchantName"))


def _merchant_address_first_line(result: AnalysisResult) -> Optional[str]:
    field = result.get("MerchantAddress")
    if field is None:
        return None
    text = field.content or field.value_string or ""
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if lines and MIN_VENDOR_LEN <= len(lines[0]) < MAX_VENDOR_LEN:
        return lines[0]
    return None


def is_noise_line(line: str) -> bool:
    """True for header lines holding a date, time, legal id, postal code or code token"""
    return any(pattern.search(line) for pattern in _NOISE_PATTERNS)


def _header_line_scan(result: AnalysisResult) -> Optional[str]:
    for line in result.lines[:HEADER_SCAN_LINES]:
        if is_noise_line(line):
            continue
        if MIN_VENDOR_LEN <= len(line) < MAX_VENDOR_LEN:
            return line
    return None


VENDOR_CASCADE: List[Callable[[AnalysisResult], Optional[str]]] = [
    _merchant_name,
    _merchant_address_first_line,
    _header_line_scan,
]


# ---- Currency -----------------------------------------------------------------------

def _currency_field(result: AnalysisResult) -> Optional[str]:
    return coerce_currency(_field_text(result.get("Currency")))


def _total_currency(result: AnalysisResult) -> Optional[str]:
    field = result.get("Total")
    return coerce_currency(field.currency_code) if field else None


def _subtotal_currency(result: AnalysisResult) -> Optional[str]:
    field = result.get("Subtotal")
    return coerce_currency(field.currency_code) if field else None


CURRENCY_CASCADE: List[Callable[[AnalysisResult], Optional[str]]] = [
    _currency_field,
    _total_currency,
    _subtotal_currency,
]


def first_match(cascade, result: AnalysisResult):
    """Run extractors in order, return the first non-None value"""
    for extractor in cascade:
        value = extractor(result)
        if value is not None:
            return value
    return None


# ---- Line items ---------------------------------------------------------------------

ITEM_NAME_FIELDS = ("Description", "Name", "ProductName")


def _item_name(item: DocumentField) -> str:
    for name in ITEM_NAME_FIELDS:
        text = _field_text(item.prop(name))
        if text:
            return text
    return PLACEHOLDER_ITEM_NAME


def _item_quantity(item: DocumentField) -> Optional[Decimal]:
    return _field_amount(item.prop("Quantity"))


def _item_price(item: DocumentField) -> Optional[Decimal]:
    """Reported line total; a lone Price is taken as-is when no TotalPrice was reported"""
    line_total = _field_amount(item.prop("TotalPrice"))
    if line_total is not None:
        return line_total
    return _field_amount(item.prop("Price"))


def extract_line_items(result: AnalysisResult) -> List[LineItem]:
    items_field = result.get("Items")
    if items_field is None:
        return []

    items = []
    for element in items_field.items:
        if not element.properties:
            continue
        items.append(LineItem(
            name=_item_name(element),
            quantity=_item_quantity(element),
            price=_item_price(element),
            category_id=None,
        ))
    return items


class ExtractionEngine:
    """
    Maps a completed analysis to a ParsedReceipt.

    Usage:
        engine = ExtractionEngine(VendorVerifier(get_text_generator()), default_currency="PLN")
        parsed = await engine.extract(analysis)
    """

    def __init__(self, verifier: VendorVerifier, default_currency: str = "PLN"):
        self.verifier = verifier
        self.default_currency = default_currency

    async def extract(self, result: AnalysisResult) -> ParsedReceipt:
        total = first_match(TOTAL_CASCADE, result)
        vendor = await self._resolve_vendor(result)
        date_field = result.get("TransactionDate")
        time_field = result.get("TransactionTime")

        parsed = ParsedReceipt(
            vendor=vendor,
            total=total,
            date=coerce_date(date_field.value_date or date_field.content) if date_field else None,
            time=coerce_time(time_field.value_time or time_field.content) if time_field else None,
            currency=first_match(CURRENCY_CASCADE, result) or self.default_currency,
            items=extract_line_items(result),
            ocr_text=result.content,
        )

        logger.info("receipt_extracted",
                    vendor=parsed.vendor,
                    total=float(parsed.total) if parsed.total is not None else None,
                    date=parsed.date.isoformat() if parsed.date else None,
                    currency=parsed.currency,
                    items=len(parsed.items),
                    schema_version=result.schema_version)
        return parsed

    async def _resolve_vendor(self, result: AnalysisResult) -> Optional[str]:
        candidate = clean_vendor_name(first_match(VENDOR_CASCADE, result))

        verified = await self.verifier.verify(result.content, candidate)
        if verified:
            if verified != candidate:
                logger.info("vendor_overridden_by_verification",
                            heuristic=candidate,
                            verified=verified)
            candidate = verified

        if not candidate:
            return None

        vendor = normalize_store_name(candidate)
        if len(vendor) > VENDOR_MAX_LENGTH:
            logger.warning("vendor_truncated", length=len(vendor))
            vendor = vendor[:VENDOR_MAX_LENGTH].rstrip()
        return vendor
