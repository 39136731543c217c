"""Destinations for extraction results.

Every result is written once per target table of its company. Writes are
independent: one failing table is logged and reported without stopping
the others.
"""

import csv
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

import boto3

from docfields.ocr.provider import DocumentLocation
from docfields.pipeline.models import ExtractionResult, StorageFailure, StorageReport
from docfields.utils.config import StorageConfig
from docfields.utils.logger import get_logger

logger = get_logger(__name__)

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")

_META_COLUMNS = ["documentId", "table", "company", "pageNumber", "processedAt", "lineItems"]


def make_document_id(location: DocumentLocation) -> str:
    """Stable identifier of a source document, safe to use as a table key."""
    return f"{location.bucket}-{_NON_ALNUM.sub('-', location.key)}"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ResultSink(Protocol):
    """Writes one result into one target table."""

    def write(self, result: ExtractionResult, document_id: str, table: str) -> None: ...


class DynamoSink:
    """Puts results into DynamoDB tables named by the company record.

    Args:
        resource: DynamoDB service resource; created from the default
            session when omitted.
        region_name: Region for the default resource.
    """

    def __init__(self, resource: Any | None = None, region_name: str | None = None) -> None:
        self._resource = resource or boto3.resource("dynamodb", region_name=region_name)

    def write(self, result: ExtractionResult, document_id: str, table: str) -> None:
        self._resource.Table(table).put_item(Item=result.to_item(document_id, _utc_now()))


class MemorySink:
    """Collects written records in memory, keyed by table."""

    def __init__(self) -> None:
        self.records: dict[str, list[dict[str, Any]]] = {}

    def write(self, result: ExtractionResult, document_id: str, table: str) -> None:
        self.records.setdefault(table, []).append(result.to_item(document_id, _utc_now()))


class CsvSink:
    """Appends one row per result and table to a CSV file.

    Meta columns come first, followed by the extracted field names in
    sorted order. A header is written when the file is new; rows with
    fields the header lacks drop those extra fields.

    Args:
        path: CSV file to append to.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def write(self, result: ExtractionResult, document_id: str, table: str) -> None:
        row: dict[str, Any] = result.to_item(document_id, _utc_now())
        fields = row.pop("extractedFields")
        row["table"] = table
        if "lineItems" in row:
            row["lineItems"] = len(row["lineItems"])
        row.update(fields)

        columns = [c for c in _META_COLUMNS if c in row] + sorted(fields)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        new_file = not self.path.exists() or self.path.stat().st_size == 0
        if not new_file:
            with open(self.path, newline="") as f:
                columns = next(csv.reader(f), columns)

        with open(self.path, "a", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=columns, extrasaction="ignore")
            if new_file:
                writer.writeheader()
            writer.writerow(row)


def store_results(
    results: list[ExtractionResult], document_id: str, sink: ResultSink
) -> StorageReport:
    """Write every result to each of its target tables.

    Args:
        results: Results of one document.
        document_id: Identifier from :func:`make_document_id`.
        sink: Destination.

    Returns:
        Counts of written and skipped results plus each failed write.
    """
    report = StorageReport()
    for result in results:
        if not result.target_tables:
            logger.warning("No target tables specified for company %s", result.company)
            report.skipped += 1
            continue

        for table in result.target_tables:
            try:
                sink.write(result, document_id, table)
            except Exception as exc:
                logger.error(
                    "Error storing page %d of %s in table %s: %s",
                    result.page_number,
                    document_id,
                    table,
                    exc,
                )
                report.failures.append(StorageFailure(table, result.page_number, str(exc)))
                continue
            report.written += 1
            logger.info("Stored page %d in table %s", result.page_number, table)

    logger.info(
        "Results storage completed: %d written, %d failed", report.written, len(report.failures)
    )
    return report


def build_sink(config: StorageConfig, region_name: str | None = None) -> ResultSink | None:
    """Create the sink selected by the configuration, or ``None`` to skip storage."""
    if config.backend == "dynamodb":
        return DynamoSink(region_name=region_name)
    if config.backend == "csv":
        return CsvSink(Path(config.csv_path))
    return None
