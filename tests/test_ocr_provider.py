"""
Tests for the OCR async-job protocol (httpx.MockTransport, no network).
"""
import asyncio
from decimal import Decimal

import httpx
import pytest

from packages.common.errors import ErrorKind, FileValidationError, OcrError
from packages.parsers.ocr.provider_azure import AzureReceiptProvider, classify_vendor_error

JOB_URL = "https://ocr.test/formrecognizer/documentModels/prebuilt-receipt/analyzeResults/job-1"

SUCCEEDED_BODY = {
    "status": "succeeded",
    "analyzeResult": {
        "content": "LIDL\n2024-03-01",
        "documents": [{"fields": {"Total": {"type": "currency", "valueCurrency": {"amount": 23.45}}}}],
    },
}


class PollScript:
    """MockTransport handler: accepts the submission, then replays poll statuses"""

    def __init__(self, statuses, submit_status=202, submit_headers=None, submit_body=None):
        self.statuses = list(statuses)
        self.submit_status = submit_status
        self.submit_headers = {"Operation-Location": JOB_URL} if submit_headers is None else submit_headers
        self.submit_body = submit_body
        self.polls = 0
        self.submitted = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            self.submitted.append(request)
            return httpx.Response(self.submit_status, headers=self.submit_headers, json=self.submit_body)

        self.polls += 1
        body = self.statuses.pop(0)
        return httpx.Response(200, json=body if isinstance(body, dict) else {"status": body})


def make_provider(script, max_attempts=50):
    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    provider = AzureReceiptProvider(
        endpoint="https://ocr.test/",
        api_key="secret",
        max_attempts=max_attempts,
        transport=httpx.MockTransport(script),
        sleep=fake_sleep,
    )
    return provider, sleeps


class TestPolling:
    def test_succeeds_on_last_allowed_attempt(self):
        script = PollScript(["running"] * 49 + [SUCCEEDED_BODY])
        provider, sleeps = make_provider(script)

        result = asyncio.run(provider.analyze(b"jpeg-bytes", "image/jpeg"))

        assert script.polls == 50
        assert len(sleeps) == 50
        assert result.get("Total").amount == Decimal("23.45")
        assert result.content.startswith("LIDL")

    def test_times_out_after_ceiling(self):
        script = PollScript(["running"] * 50)
        provider, _ = make_provider(script)

        with pytest.raises(OcrError) as exc:
            asyncio.run(provider.analyze(b"jpeg-bytes", "image/jpeg"))

        assert exc.value.kind == ErrorKind.OCR_TIMEOUT
        assert script.polls == 50
        assert not exc.value.critical

    def test_not_started_then_succeeded(self):
        script = PollScript(["notStarted", "running", SUCCEEDED_BODY])
        provider, _ = make_provider(script)

        asyncio.run(provider.analyze(b"%PDF-1.7", "application/pdf"))

        assert script.polls == 3

    def test_failed_job_carries_vendor_payload(self):
        error = {"code": "InvalidRequest", "innererror": {"code": "InvalidContent", "message": "corrupt"}}
        script = PollScript([{"status": "failed", "error": error}])
        provider, _ = make_provider(script)

        with pytest.raises(OcrError) as exc:
            asyncio.run(provider.analyze(b"png", "image/png"))

        assert exc.value.kind == ErrorKind.AZURE_INVALID_FORMAT
        assert exc.value.payload == error
        assert exc.value.critical


class TestSubmission:
    def test_sends_declared_media_type_and_key(self):
        script = PollScript([SUCCEEDED_BODY])
        provider, _ = make_provider(script)

        asyncio.run(provider.analyze(b"webp-bytes", "image/webp"))

        request = script.submitted[0]
        assert request.headers["Content-Type"] == "image/webp"
        assert request.headers["Ocp-Apim-Subscription-Key"] == "secret"
        assert request.url.path.endswith("/documentModels/prebuilt-receipt:analyze")
        assert request.content == b"webp-bytes"

    def test_missing_job_reference(self):
        script = PollScript([], submit_headers={})
        provider, _ = make_provider(script)

        with pytest.raises(OcrError) as exc:
            asyncio.run(provider.analyze(b"jpeg-bytes", "image/jpeg"))

        assert exc.value.kind == ErrorKind.MISSING_JOB_REFERENCE
        assert script.polls == 0

    def test_rejected_as_invalid_format(self):
        script = PollScript([], submit_status=400, submit_body={
            "error": {"code": "InvalidRequest", "message": "Invalid request.",
                      "innererror": {"code": "InvalidContent", "message": "The file is corrupted."}},
        })
        provider, _ = make_provider(script)

        with pytest.raises(OcrError) as exc:
            asyncio.run(provider.analyze(b"jpeg-bytes", "image/jpeg"))

        assert exc.value.kind == ErrorKind.AZURE_INVALID_FORMAT
        assert exc.value.status_code == 400
        assert "corrupted" in exc.value.message

    def test_server_error_is_generic(self):
        script = PollScript([], submit_status=500, submit_body={"error": {"code": "InternalServerError"}})
        provider, _ = make_provider(script)

        with pytest.raises(OcrError) as exc:
            asyncio.run(provider.analyze(b"jpeg-bytes", "image/jpeg"))

        assert exc.value.kind == ErrorKind.UNKNOWN

    def test_unsupported_type_never_submitted(self):
        script = PollScript([])
        provider, _ = make_provider(script)

        with pytest.raises(FileValidationError) as exc:
            asyncio.run(provider.analyze(b"GIF89a", "image/gif"))

        assert exc.value.kind == ErrorKind.INVALID_TYPE
        assert script.submitted == []


class TestClassification:
    @pytest.mark.parametrize("error, status_code, expected", [
        ({"code": "InvalidImage"}, 400, ErrorKind.AZURE_INVALID_FORMAT),
        ({"code": "InvalidRequest", "innererror": {"code": "InvalidContentLength"}}, 400, ErrorKind.AZURE_INVALID_FORMAT),
        (None, 415, ErrorKind.AZURE_INVALID_FORMAT),
        ({"code": "InvalidImage"}, 500, ErrorKind.UNKNOWN),
        ({"code": "Unauthorized"}, 401, ErrorKind.UNKNOWN),
        (None, None, ErrorKind.UNKNOWN),
    ])
    def test_classify(self, error, status_code, expected):
        assert classify_vendor_error(error, status_code) == expected
