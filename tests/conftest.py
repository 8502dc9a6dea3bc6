"""
Shared pytest fixtures: temp-file SQLite (aiosqlite) plus fakes for OCR, LLM and dispatch.

Async code is driven with asyncio.run from plain test functions; NullPool keeps every
connection inside the event loop that opened it.
"""
import asyncio
import os

os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("DATABASE_URL", "sqlite:///./receipt_scan_test.db")
os.environ.setdefault("SKIP_AUTH_VALIDATION", "false")
os.environ.setdefault("METRICS_ENABLED", "true")
# Never reach the real text-generation or OCR services from tests
os.environ["ANTHROPIC_API_KEY"] = ""
os.environ["AZURE_DOCINT_KEY"] = ""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from packages.common import models  # noqa: F401  register tables
from packages.common.database import Base
from packages.common.errors import ErrorKind, OcrError
from packages.parsers.ocr.base import AnalysisResult


@pytest.fixture()
def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'scan.db'}", poolclass=NullPool)

    async def _create():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(_create())
    yield engine
    asyncio.run(engine.dispose())


@pytest.fixture()
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture()
def run_db(session_factory):
    """Run `fn(db)` in a fresh session on a fresh event loop and return its result"""
    def _run(fn):
        async def _scenario():
            async with session_factory() as db:
                return await fn(db)
        return asyncio.run(_scenario())
    return _run


# ---- OCR payloads ----------------------------------------------------------------------

def _currency(amount, code=None, content=None):
    field = {"type": "currency", "valueCurrency": {"amount": amount}}
    if code:
        field["valueCurrency"]["currencyCode"] = code
    if content is not None:
        field["content"] = content
    return field


def _item(description=None, quantity=None, price=None, total_price=None, content=None):
    props = {}
    if description is not None:
        props["Description"] = {"type": "string", "valueString": description, "content": content or description}
    if quantity is not None:
        props["Quantity"] = {"type": "number", "valueNumber": quantity}
    if price is not None:
        props["Price"] = _currency(price)
    if total_price is not None:
        props["TotalPrice"] = _currency(total_price)
    return {"type": "object", "valueObject": props}


def _v3_payload(fields, content=""):
    return {
        "status": "succeeded",
        "analyzeResult": {
            "apiVersion": "2023-07-31",
            "content": content,
            "documents": [{"docType": "receipt.retailMeal", "fields": fields}],
        },
    }


@pytest.fixture()
def ocr_payload():
    """Build OCR vendor payloads: ocr_payload.receipt(...), .v3(fields), .item(...), .currency(...)"""
    class _Builder:
        currency = staticmethod(_currency)
        item = staticmethod(_item)
        v3 = staticmethod(_v3_payload)

        @staticmethod
        def receipt(merchant="STOWT LIDL SP. Z O.O.", total=23.45, date="2024-03-01",
                    items=None, currency_code="PLN", content=None):
            fields = {}
            if merchant is not None:
                fields["MerchantName"] = {"type": "string", "valueString": merchant, "content": merchant}
            if total is not None:
                fields["Total"] = _currency(total, currency_code)
            if date is not None:
                fields["TransactionDate"] = {"type": "date", "valueDate": date, "content": date}
            fields["TransactionTime"] = {"type": "time", "valueTime": "12:34:00", "content": "12:34"}
            fields["Items"] = {
                "type": "array",
                "valueArray": items if items is not None else [
                    _item("Mleko 2% 1L", quantity=2, price=3.99, total_price=7.98),
                    _item("Chleb", quantity=1, total_price=4.49),
                ],
            }
            text = content if content is not None else f"{merchant or ''}\nNIP 123-456-78-90\n{date or ''}"
            return _v3_payload(fields, text)

    return _Builder()


# ---- Fakes -----------------------------------------------------------------------------

class FakeOcrProvider:
    """Returns a canned analysis per exact file content; unknown content -> OcrError"""

    def __init__(self, results=None):
        self.results = dict(results or {})
        self.calls = []

    async def analyze(self, buffer, media_type):
        self.calls.append((buffer, media_type))
        outcome = self.results.get(buffer)
        if outcome is None:
            raise OcrError("OCR analysis did not finish after 50 attempts", ErrorKind.OCR_TIMEOUT)
        if isinstance(outcome, Exception):
            raise outcome
        return AnalysisResult.from_payload(outcome)


class FakeTextGenerator:
    """Replies with canned responses in order (last one repeats); records prompts"""

    def __init__(self, *responses, error=None):
        self.responses = list(responses)
        self.error = error
        self.prompts = []

    async def generate(self, prompt, max_tokens=256):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0] if self.responses else ""


class RecordingDispatch:
    def __init__(self, error=None):
        self.requests = []
        self.error = error

    def __call__(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error


@pytest.fixture()
def fake_ocr():
    return FakeOcrProvider


@pytest.fixture()
def fake_generator():
    return FakeTextGenerator


@pytest.fixture()
def dispatch():
    return RecordingDispatch()
