"""
Azure Document Intelligence OCR Provider

Async-job protocol:
1. POST the document bytes (Content-Type = detected media type) to the analyze endpoint
2. Read the job URL from the Operation-Location response header
3. GET the job URL on a fixed interval until status is succeeded/failed,
   giving up after max_attempts polls (ocr_timeout)

interval x max_attempts is kept under the API request budget (1s x 50 by default).
No state is kept between documents.
"""
import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
import structlog

from packages.common.errors import ErrorKind, FileValidationError, OcrError
from packages.parsers.ocr.base import SUPPORTED_MEDIA_TYPES, AnalysisResult

logger = structlog.get_logger()

# Vendor error codes meaning "the document itself is malformed or unsupported"
INVALID_FORMAT_CODES = frozenset({
    "InvalidRequest",
    "InvalidArgument",
    "InvalidContent",
    "InvalidContentLength",
    "InvalidImage",
    "InvalidImageSize",
    "UnsupportedMediaType",
    "UnsupportedContent",
})


def classify_vendor_error(error: Optional[Dict[str, Any]], status_code: Optional[int] = None) -> ErrorKind:
    """Map a vendor error payload to azure_invalid_format or unknown"""
    if status_code == 415:
        return ErrorKind.AZURE_INVALID_FORMAT
    if not isinstance(error, dict):
        return ErrorKind.UNKNOWN

    codes = {error.get("code")}
    inner = error.get("innererror")
    if isinstance(inner, dict):
        codes.add(inner.get("code"))

    if codes & INVALID_FORMAT_CODES and status_code in (None, 400):
        return ErrorKind.AZURE_INVALID_FORMAT
    return ErrorKind.UNKNOWN


def _error_message(error: Optional[Dict[str, Any]], fallback: str) -> str:
    if not isinstance(error, dict):
        return fallback
    inner = error.get("innererror")
    if isinstance(inner, dict) and inner.get("message"):
        return f"{error.get('message') or fallback}: {inner['message']}"
    return error.get("message") or fallback


def _json_or_empty(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


class AzureReceiptProvider:
    """
    Azure Document Intelligence prebuilt-receipt provider.

    Usage:
        provider = AzureReceiptProvider(endpoint="https://x.cognitiveservices.azure.com",
                                        api_key="...")
        result = await provider.analyze(image_bytes, "image/jpeg")
        print(result.get("Total").amount)
    """

    def __init__(
        self,
        endpoint: str,
        api_key: str,
        model_id: str = "prebuilt-receipt",
        api_version: str = "2023-07-31",
        poll_interval: float = 1.0,
        max_attempts: int = 50,
        request_timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize Azure provider.

        Args:
            endpoint: Resource endpoint, e.g. https://<name>.cognitiveservices.azure.com
            api_key: Subscription key
            model_id: Analysis model
            api_version: REST api-version query parameter
            poll_interval: Seconds between polls
            max_attempts: Poll ceiling before ocr_timeout
            request_timeout: Timeout of each individual HTTP call
            transport: Optional httpx transport (tests use httpx.MockTransport)
            sleep: Awaitable sleep used between polls
        """
        self.endpoint = endpoint.rstrip("/")
        self.api_key = api_key
        self.model_id = model_id
        self.api_version = api_version
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.request_timeout = request_timeout
        self._transport = transport
        self._sleep = sleep

        logger.info("azure_ocr_provider_initialized",
                    endpoint=self.endpoint,
                    model=model_id,
                    api_version=api_version,
                    max_attempts=max_attempts)

    @property
    def analyze_url(self) -> str:
        return (
            f"{self.endpoint}/formrecognizer/documentModels/{self.model_id}:analyze"
            f"?api-version={self.api_version}"
        )

    async def analyze(self, buffer: bytes, media_type: str) -> AnalysisResult:
        """
        Submit a document and wait for its analysis.

        Raises:
            FileValidationError: Unsupported media type (nothing is sent)
            OcrError: missing_job_reference, ocr_timeout, azure_invalid_format or unknown
        """
        if media_type not in SUPPORTED_MEDIA_TYPES:
            raise FileValidationError(
                f"Unsupported media type: {media_type}", ErrorKind.INVALID_TYPE
            )

        async with httpx.AsyncClient(
            timeout=self.request_timeout,
            transport=self._transport,
            headers={"Ocp-Apim-Subscription-Key": self.api_key},
        ) as client:
            job_url = await self._submit(client, buffer, media_type)
            payload = await self._poll(client, job_url)

        result = AnalysisResult.from_payload(payload)
        logger.info("azure_analysis_decoded",
                    schema_version=result.schema_version,
                    fields=sorted(result.fields),
                    chars=len(result.content))
        return result

    async def _submit(self, client: httpx.AsyncClient, buffer: bytes, media_type: str) -> str:
        logger.info("ocr_job_submitting", media_type=media_type, size_bytes=len(buffer))

        try:
            response = await client.post(
                self.analyze_url,
                content=buffer,
                headers={"Content-Type": media_type},
            )
        except httpx.HTTPError as e:
            logger.error("ocr_submit_transport_failed", error=str(e), exc_info=True)
            raise OcrError(f"OCR submission failed: {e}") from e

        if response.status_code >= 400:
            error = _json_or_empty(response).get("error")
            kind = classify_vendor_error(error, response.status_code)
            message = _error_message(error, f"OCR submission rejected with HTTP {response.status_code}")
            logger.warning("ocr_submit_rejected",
                           status_code=response.status_code,
                           kind=kind.value,
                           error=error)
            raise OcrError(message, kind, status_code=response.status_code, payload=error)

        job_url = response.headers.get("Operation-Location")
        if not job_url:
            logger.error("ocr_job_reference_missing", status_code=response.status_code)
            raise OcrError(
                "OCR service did not return an Operation-Location header",
                ErrorKind.MISSING_JOB_REFERENCE,
                status_code=response.status_code,
            )

        logger.info("ocr_job_submitted", job_url=job_url)
        return job_url

    async def _poll(self, client: httpx.AsyncClient, job_url: str) -> Dict[str, Any]:
        for attempt in range(1, self.max_attempts + 1):
            await self._sleep(self.poll_interval)

            try:
                response = await client.get(job_url)
            except httpx.HTTPError as e:
                logger.error("ocr_poll_transport_failed", attempt=attempt, error=str(e))
                raise OcrError(f"OCR polling failed: {e}") from e

            body = _json_or_empty(response)
            if response.status_code >= 400:
                error = body.get("error")
                raise OcrError(
                    _error_message(error, f"OCR polling failed with HTTP {response.status_code}"),
                    classify_vendor_error(error, response.status_code),
                    status_code=response.status_code,
                    payload=error,
                )

            status = body.get("status")
            if status == "succeeded":
                logger.info("ocr_job_succeeded", attempt=attempt)
                return body

            if status == "failed":
                error = body.get("error") or (body.get("analyzeResult") or {}).get("errors")
                if isinstance(error, list):
                    error = error[0] if error else None
                logger.warning("ocr_job_failed", attempt=attempt, error=error)
                raise OcrError(
                    _error_message(error, "OCR analysis failed"),
                    classify_vendor_error(error),
                    payload=error,
                )

            logger.debug("ocr_job_pending", attempt=attempt, status=status)

        logger.error("ocr_job_timed_out", attempts=self.max_attempts, job_url=job_url)
        raise OcrError(
            f"OCR analysis did not finish after {self.max_attempts} attempts",
            ErrorKind.OCR_TIMEOUT,
        )
