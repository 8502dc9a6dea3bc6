"""
Vendor Verifier - LLM pass over the recognized receipt text

The heuristic cascade picks a vendor candidate from structured fields or the first
lines of text. This pass hands the whole excerpt to the text generator and asks for the
single best merchant name. Its answer overrides the heuristic when it is usable:
non-empty, not the literal "null", shorter than 100 characters.
"""
from typing import Optional

import structlog

from packages.common.llm import TextGenerator

logger = structlog.get_logger()

MAX_EXCERPT_CHARS = 4000
MAX_VENDOR_CHARS = 100


class VendorVerifier:
    """Ask the text generator which merchant issued the receipt"""

    def __init__(self, generator: Optional[TextGenerator]):
        self.generator = generator

    async def verify(self, ocr_text: str, candidate: Optional[str]) -> Optional[str]:
        """
        Return the verified vendor name, or None to keep the heuristic result.

        Args:
            ocr_text: Raw recognized text of the receipt
            candidate: Vendor chosen by the heuristic cascade (may be None)
        """
        if self.generator is None or not ocr_text.strip():
            return None

        prompt = self._build_prompt(ocr_text[:MAX_EXCERPT_CHARS], candidate)

        try:
            answer = await self.generator.generate(prompt, max_tokens=64)
        except Exception as e:
            logger.warning("vendor_verification_failed", error=str(e), exc_info=True)
            return None

        verified = self._parse_answer(answer)
        logger.info("vendor_verification_complete",
                    candidate=candidate,
                    verified=verified)
        return verified

    def _build_prompt(self, excerpt: str, candidate: Optional[str]) -> str:
        return f"""You read OCR text from a shopping receipt and identify the merchant.

OCR TEXT:
{excerpt}

HEURISTIC GUESS: {candidate or "none"}

INSTRUCTIONS:
- Output ONLY the store or merchant name as a customer would know it (e.g. "Lidl", "Biedronka", "Rossmann")
- Drop legal suffixes (SP. Z O.O., S.A., GmbH), addresses, tax ids and branch numbers
- Fix obvious OCR garbage in the name
- If the merchant cannot be identified, output exactly: null
"""

    def _parse_answer(self, answer: Optional[str]) -> Optional[str]:
        if not answer:
            return None
        first_line = answer.strip().splitlines()[0] if answer.strip() else ""
        name = first_line.strip().strip("\"'`").strip()
        if not name or name.lower() == "null" or len(name) >= MAX_VENDOR_CHARS:
            return None
        return name
