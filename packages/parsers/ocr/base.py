"""
OCR Provider Base Interface

Defines the contract for receipt analysis providers and the typed result they return.
The vendor JSON is decoded exactly once into DocumentField / AnalysisResult so the
extraction cascades work on attributes instead of nested optional lookups.

Supported payload schema versions:
- v3+   : analyzeResult.documents[0].fields, analyzeResult.content
- v2.1  : analyzeResult.documentResults[0].fields, analyzeResult.readResults[].lines[].text
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Protocol

SUPPORTED_MEDIA_TYPES = frozenset({
    "image/jpeg",
    "image/png",
    "image/webp",
    "application/pdf",
})


@dataclass
class DocumentField:
    """
    One extracted field from the analysis result.

    Attributes:
        kind: Vendor field type (string, number, currency, date, time, array, object, address)
        content: Text span the field was read from
        value_string: Structured string value
        value_number: Structured numeric value
        value_date: ISO date string
        value_time: HH:MM:SS string
        currency_amount: Amount of a currency-typed field
        currency_code: ISO 4217 code of a currency-typed field, if reported
        items: Elements of an array field
        properties: Members of an object field
    """
    kind: Optional[str] = None
    content: Optional[str] = None
    value_string: Optional[str] = None
    value_number: Optional[Decimal] = None
    value_date: Optional[str] = None
    value_time: Optional[str] = None
    currency_amount: Optional[Decimal] = None
    currency_code: Optional[str] = None
    items: List["DocumentField"] = field(default_factory=list)
    properties: Dict[str, "DocumentField"] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, data: Optional[Dict[str, Any]]) -> Optional["DocumentField"]:
        """Decode one vendor field (either schema version)"""
        if not isinstance(data, dict):
            return None

        currency = data.get("valueCurrency") or {}
        items = [
            decoded for decoded in (cls.from_payload(v) for v in data.get("valueArray") or [])
            if decoded is not None
        ]
        properties = {
            name: decoded
            for name, decoded in (
                (k, cls.from_payload(v)) for k, v in (data.get("valueObject") or {}).items()
            )
            if decoded is not None
        }

        return cls(
            kind=data.get("type"),
            # v3 names it "content", v2.1 names it "text"
            content=data.get("content", data.get("text")),
            value_string=data.get("valueString"),
            value_number=_number(data.get("valueNumber", data.get("valueInteger"))),
            value_date=data.get("valueDate"),
            value_time=data.get("valueTime"),
            currency_amount=_number(currency.get("amount")),
            currency_code=currency.get("currencyCode"),
            items=items,
            properties=properties,
        )

    @property
    def amount(self) -> Optional[Decimal]:
        """Numeric value of a number or currency field"""
        if self.currency_amount is not None:
            return self.currency_amount
        return self.value_number

    def prop(self, name: str) -> Optional["DocumentField"]:
        return self.properties.get(name)


def _number(value: Any) -> Optional[Decimal]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return Decimal(str(value))
    return None


@dataclass
class AnalysisResult:
    """
    Completed analysis of one document.

    Attributes:
        content: Raw recognized text (all lines, newline separated)
        fields: Top-level fields of the first analyzed document
        schema_version: "v3" or "v2.1"
        raw: The untouched vendor payload
    """
    content: str
    fields: Dict[str, DocumentField] = field(default_factory=dict)
    schema_version: str = "v3"
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "AnalysisResult":
        """Decode a 'succeeded' poll response body"""
        analyze = payload.get("analyzeResult") or {}

        if "documentResults" in analyze:
            documents = analyze.get("documentResults") or []
            lines = [
                line.get("text", "")
                for page in analyze.get("readResults") or []
                for line in page.get("lines") or []
            ]
            content = "\n".join(lines)
            version = "v2.1"
        else:
            documents = analyze.get("documents") or []
            content = analyze.get("content") or ""
            version = "v3"

        raw_fields = (documents[0].get("fields") if documents else None) or {}
        fields = {
            name: decoded
            for name, decoded in ((k, DocumentField.from_payload(v)) for k, v in raw_fields.items())
            if decoded is not None
        }

        return cls(content=content, fields=fields, schema_version=version, raw=payload)

    def get(self, name: str) -> Optional[DocumentField]:
        return self.fields.get(name)

    @property
    def lines(self) -> List[str]:
        return [line.strip() for line in self.content.splitlines() if line.strip()]


class OcrProvider(Protocol):
    """
    Protocol for receipt analysis providers.

    Implementations submit the document, wait for the analysis to reach a terminal
    state and return the decoded result.
    """

    async def analyze(self, buffer: bytes, media_type: str) -> AnalysisResult:
        """
        Analyze a receipt document.

        Args:
            buffer: Raw file bytes
            media_type: One of SUPPORTED_MEDIA_TYPES

        Returns:
            Decoded AnalysisResult

        Raises:
            OcrError: On protocol failure, vendor failure or timeout
            FileValidationError: If media_type is not supported
        """
        ...
