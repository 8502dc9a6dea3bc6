"""
OCR Provider Factory

Builds the configured receipt analysis provider from settings.
When the OCR service is not configured the API still starts; each file then fails
with a descriptive error instead of the whole process refusing to boot.
"""
from typing import Optional

import structlog

from packages.common.config import Settings, get_settings
from packages.common.errors import OcrError
from packages.parsers.ocr.base import AnalysisResult, OcrProvider
from packages.parsers.ocr.provider_azure import AzureReceiptProvider

logger = structlog.get_logger()


class UnconfiguredOcrProvider:
    """Stand-in used when AZURE_DOCINT_ENDPOINT / AZURE_DOCINT_KEY are missing"""

    async def analyze(self, buffer: bytes, media_type: str) -> AnalysisResult:
        raise OcrError("OCR service is not configured (set AZURE_DOCINT_ENDPOINT and AZURE_DOCINT_KEY)")


_provider: Optional[OcrProvider] = None


def build_ocr_provider(settings: Settings) -> OcrProvider:
    """Create a provider from explicit settings"""
    if not settings.ocr_configured:
        logger.warning("ocr_provider_not_configured",
                       message="Receipt scans will fail until OCR credentials are set")
        return UnconfiguredOcrProvider()

    return AzureReceiptProvider(
        endpoint=settings.ocr_endpoint,
        api_key=settings.ocr_api_key,
        model_id=settings.ocr_model_id,
        api_version=settings.ocr_api_version,
        poll_interval=settings.ocr_poll_interval_seconds,
        max_attempts=settings.ocr_max_poll_attempts,
        request_timeout=settings.ocr_request_timeout_seconds,
    )


def get_ocr_provider() -> OcrProvider:
    """Get the process-wide provider (built lazily from cached settings)"""
    global _provider
    if _provider is None:
        _provider = build_ocr_provider(get_settings())
    return _provider
