"""
Prometheus metrics for the scan pipeline (exposed by the API at /metrics)
"""
from prometheus_client import Counter, Histogram

SCAN_FILES_TOTAL = Counter(
    "receipt_scan_files_total",
    "Uploaded receipt files by outcome",
    ["outcome"],
)

OCR_ANALYSIS_SECONDS = Histogram(
    "receipt_ocr_analysis_seconds",
    "Wall time of one OCR submit-and-poll cycle",
    buckets=(0.5, 1, 2, 5, 10, 20, 30, 45, 60),
)


def record_file_outcome(outcome: str) -> None:
    """outcome is 'success' or an error kind value"""
    SCAN_FILES_TOTAL.labels(outcome=outcome).inc()
