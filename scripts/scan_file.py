#!/usr/bin/env python3
"""
Run OCR + extraction on a local receipt file (no database writes).

Useful for checking vendor normalization and total/item cascades against a real
receipt before it goes through the API.

Usage:
    docker compose exec api python scripts/scan_file.py /path/to/receipt.jpg
"""
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from packages.common.config import get_settings
from packages.common.log_config import configure_logging
from packages.common.llm import get_text_generator
from packages.domain.ingestion.validation import validate_upload
from packages.parsers.extraction import ExtractionEngine
from packages.parsers.ocr import get_ocr_provider
from packages.parsers.vendor_verifier import VendorVerifier


async def scan(path: Path):
    settings = get_settings()
    data = path.read_bytes()
    media_type = validate_upload(path.name, None, data, settings.max_upload_bytes)

    print("=" * 80)
    print(f"SCAN {path.name} ({media_type}, {len(data)} bytes)")
    print("=" * 80)
    print()

    analysis = await get_ocr_provider().analyze(data, media_type)
    print(f"Schema version: {analysis.schema_version}")
    print(f"Fields: {', '.join(sorted(analysis.fields))}")
    print(f"Text: {len(analysis.content)} chars")
    print()

    engine = ExtractionEngine(VendorVerifier(get_text_generator()), settings.default_currency)
    parsed = await engine.extract(analysis)

    print(f"Vendor:   {parsed.vendor_or_default}")
    print(f"Date:     {parsed.date} {parsed.time or ''}")
    print(f"Total:    {parsed.total_or_zero} {parsed.currency}")
    print(f"Items:    {len(parsed.items)}")
    print()

    for i, item in enumerate(parsed.items, 1):
        qty = item.quantity if item.quantity is not None else 1
        price = f"{item.price:>8.2f}" if item.price is not None else "     n/a"
        print(f"  {i:2d}. {item.name[:40]:40s} {qty!s:>5} {price}")


def main():
    if len(sys.argv) != 2:
        print(__doc__)
        sys.exit(1)
    configure_logging(get_settings().log_level, json=False)
    asyncio.run(scan(Path(sys.argv[1])))


if __name__ == "__main__":
    main()
