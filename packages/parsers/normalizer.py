"""
Field Normalizer - pure helpers for cleaning OCR output

Covers:
1. Vendor cleanup: strip OCR garbage prefixes, collapse whitespace
2. Store-name normalization: ordered (pattern, canonical) rule table, first match wins
3. Numeric coercion: numbers and numeric strings ("23,45 zł", "1 234.50") to Decimal
4. Date / time / currency coercion

The rule table is plain data. Add a brand by appending a tuple; keep more specific
patterns above broader ones. Every canonical name must match its own rule so that
normalizing twice is a no-op.
"""
import datetime
import re
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional, Pattern, Tuple

# (pattern, canonical name) - matched case-insensitively with re.search
STORE_NAME_RULES: List[Tuple[str, str]] = [
    (r"lidl", "Lidl"),
    (r"biedronka|jer[oó]nimo\s*martins", "Biedronka"),
    (r"[żz]abka", "Żabka"),
    (r"kaufland", "Kaufland"),
    (r"carrefour", "Carrefour"),
    (r"auchan", "Auchan"),
    (r"\baldi\b", "Aldi"),
    (r"\bnetto\b", "Netto"),
    (r"\bdino\b", "Dino"),
    (r"stokrotka", "Stokrotka"),
    (r"lewiatan", "Lewiatan"),
    (r"polo\s*market", "POLOmarket"),
    (r"intermarch", "Intermarché"),
    (r"tesco", "Tesco"),
    (r"rossmann", "Rossmann"),
    (r"\bhebe\b", "Hebe"),
    (r"super[\s-]*pharm", "Super-Pharm"),
    (r"pepco", "Pepco"),
    (r"\bikea\b", "IKEA"),
    (r"leroy\s*merlin", "Leroy Merlin"),
    (r"castorama", "Castorama"),
    (r"obi\s+(?:market|sp\.?)|^obi$", "OBI"),
    (r"media\s*markt", "MediaMarkt"),
    (r"media\s*expert", "Media Expert"),
    (r"empik", "Empik"),
    (r"decathlon", "Decathlon"),
    (r"orlen", "Orlen"),
    (r"\bbp\b", "BP"),
    (r"\bshell\b", "Shell"),
    (r"circle\s*k", "Circle K"),
    (r"mc\s*donald", "McDonald's"),
    (r"\bkfc\b", "KFC"),
    (r"starbucks", "Starbucks"),
]

_COMPILED_RULES: List[Tuple[Pattern[str], str]] = [
    (re.compile(pattern, re.IGNORECASE), canonical) for pattern, canonical in STORE_NAME_RULES
]

# Leading noise tokens that OCR glues in front of the merchant name
GARBAGE_PREFIXES: List[str] = [
    r"stowt",
    r"stow",
    r"paragon\s+fiskalny",
    r"sklep(?:\s+nr\.?\s*\d+)?",
    r"nr\s*\d+",
    r"[^\w\s]+",
]

_GARBAGE_PREFIX_RE = re.compile(
    r"^(?:(?:%s)(?:\s+|$))+" % "|".join(GARBAGE_PREFIXES), re.IGNORECASE
)
_WHITESPACE_RE = re.compile(r"\s+")
_NUMBER_RE = re.compile(r"-?\d[\d\s.,]*")
# Day-first dates as printed on Polish receipts: 01.03.2024, 01-03-2024, 01/03/2024
_DAY_FIRST_DATE_RE = re.compile(r"^(\d{1,2})[.\/-](\d{1,2})[.\/-](\d{4})\b")


def normalize_store_name(name: str) -> str:
    """
    Map a vendor candidate to its canonical brand name.

    Examples:
        "STOWT LIDL SP. Z O.O." -> "Lidl"
        "JERONIMO MARTINS POLSKA" -> "Biedronka"
        "Corner Bakery" -> "Corner Bakery" (no rule, unchanged)
    """
    for pattern, canonical in _COMPILED_RULES:
        if pattern.search(name):
            return canonical
    return name


def strip_garbage_prefix(name: str) -> str:
    """Drop known OCR noise tokens from the start of a vendor candidate"""
    cleaned = _GARBAGE_PREFIX_RE.sub("", name.strip())
    # Never strip a name down to nothing
    return cleaned or name.strip()


def clean_vendor_name(name: Optional[str]) -> Optional[str]:
    """Strip garbage prefixes, collapse whitespace, then normalize the brand"""
    if not name:
        return None
    collapsed = _WHITESPACE_RE.sub(" ", name).strip()
    if not collapsed:
        return None
    return normalize_store_name(strip_garbage_prefix(collapsed))


def coerce_decimal(value: Any) -> Optional[Decimal]:
    """
    Coerce a number or numeric string to Decimal.

    Handles comma decimals ("23,45"), thousands separators ("1 234,50", "1,234.50")
    and trailing currency text ("23,45 zł"). Returns None when nothing numeric is found.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if not isinstance(value, str):
        return None

    match = _NUMBER_RE.search(value)
    if not match:
        return None
    raw = _WHITESPACE_RE.sub("", match.group(0))

    if "," in raw and "." in raw:
        # Whichever separator comes last is the decimal point
        if raw.rfind(",") > raw.rfind("."):
            raw = raw.replace(".", "").replace(",", ".")
        else:
            raw = raw.replace(",", "")
    elif "," in raw:
        head, _, tail = raw.rpartition(",")
        raw = f"{head.replace(',', '')}.{tail}" if len(tail) != 3 else raw.replace(",", "")

    raw = raw.rstrip(".")
    try:
        return Decimal(raw)
    except InvalidOperation:
        return None


def coerce_date(value: Any) -> Optional[datetime.date]:
    """Coerce an ISO (YYYY-MM-DD) or day-first (DD.MM.YYYY) date string, or a date"""
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        return datetime.date.fromisoformat(text[:10])
    except ValueError:
        pass

    match = _DAY_FIRST_DATE_RE.match(text)
    if not match:
        return None
    day, month, year = (int(part) for part in match.groups())
    try:
        return datetime.date(year, month, day)
    except ValueError:
        return None


def coerce_time(value: Any) -> Optional[str]:
    """Coerce HH:MM[:SS] to a zero-padded HH:MM:SS string"""
    if not isinstance(value, str):
        return None
    match = re.match(r"^\s*(\d{1,2}):(\d{2})(?::(\d{2}))?", value)
    if not match:
        return None
    hours, minutes, seconds = match.group(1), match.group(2), match.group(3) or "00"
    if int(hours) > 23 or int(minutes) > 59 or int(seconds) > 59:
        return None
    return f"{int(hours):02d}:{minutes}:{seconds}"


def coerce_currency(value: Any) -> Optional[str]:
    """Accept three-letter ISO 4217 codes only"""
    if not isinstance(value, str):
        return None
    code = value.strip().upper()
    return code if re.fullmatch(r"[A-Z]{3}", code) else None
