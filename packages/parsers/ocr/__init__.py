"""
OCR Package

Receipt analysis through an external async-job OCR service.

Main entry point:
    from packages.parsers.ocr import get_ocr_provider

    result = await get_ocr_provider().analyze(image_bytes, "image/jpeg")

Available providers:
    - AzureReceiptProvider: Azure Document Intelligence prebuilt-receipt model

Configuration via environment:
    - AZURE_DOCINT_ENDPOINT / AZURE_DOCINT_KEY: service credentials
    - AZURE_DOCINT_MODEL / AZURE_DOCINT_API_VERSION: model and REST version
    - OCR_POLL_INTERVAL_SECONDS / OCR_MAX_POLL_ATTEMPTS: polling budget
"""
from packages.parsers.ocr.base import (
    SUPPORTED_MEDIA_TYPES,
    AnalysisResult,
    DocumentField,
    OcrProvider,
)
from packages.parsers.ocr.factory import build_ocr_provider, get_ocr_provider
from packages.parsers.ocr.provider_azure import AzureReceiptProvider

__all__ = [
    "SUPPORTED_MEDIA_TYPES",
    "AnalysisResult",
    "DocumentField",
    "OcrProvider",
    "AzureReceiptProvider",
    "build_ocr_provider",
    "get_ocr_provider",
]
