"""Tests for result sinks and storage reporting."""

import csv
from pathlib import Path
from unittest.mock import MagicMock, patch

from botocore.exceptions import ClientError

from docfields.extraction.table_zone import LineItem
from docfields.ocr.provider import DocumentLocation
from docfields.pipeline.models import ExtractionResult
from docfields.storage.sinks import (
    CsvSink,
    DynamoSink,
    MemorySink,
    build_sink,
    make_document_id,
    store_results,
)
from docfields.utils.config import StorageConfig


def _result(tables: list[str], page_number: int = 1, **fields: str | None) -> ExtractionResult:
    return ExtractionResult(
        company="Acme",
        page_number=page_number,
        extracted_fields=fields or {"Date": "01/01/2024"},
        target_tables=tables,
    )


class TestMakeDocumentId:
    """Tests for deterministic document identifiers."""

    def test_non_alphanumeric_replaced(self) -> None:
        assert make_document_id(DocumentLocation("bucket", "in/po_1.pdf")) == "bucket-in-po-1-pdf"

    def test_deterministic(self) -> None:
        location = DocumentLocation("b", "k.pdf")
        assert make_document_id(location) == make_document_id(location)


class TestExtractionResultItem:
    """Tests for the stored record shape."""

    def test_without_line_items(self) -> None:
        item = _result(["t"]).to_item("doc", "2024-01-01T00:00:00+00:00")
        assert item == {
            "documentId": "doc",
            "company": "Acme",
            "pageNumber": 1,
            "extractedFields": {"Date": "01/01/2024"},
            "processedAt": "2024-01-01T00:00:00+00:00",
        }

    def test_with_line_items(self) -> None:
        result = _result(["t"])
        result.line_items = [LineItem("1", "500", "ea")]
        item = result.to_item("doc", "now")
        assert item["lineItems"][0]["itemNo"] == "1"


class TestStoreResults:
    """Tests for the store_results function."""

    def test_one_write_per_table(self) -> None:
        sink = MemorySink()
        report = store_results([_result(["a", "b"]), _result(["a"], page_number=2)], "doc", sink)

        assert report.written == 3
        assert report.all_written
        assert [r["pageNumber"] for r in sink.records["a"]] == [1, 2]
        assert len(sink.records["b"]) == 1

    def test_result_without_tables_skipped(self) -> None:
        sink = MemorySink()
        report = store_results([_result([])], "doc", sink)
        assert report.skipped == 1
        assert report.written == 0
        assert sink.records == {}

    def test_failure_does_not_block_other_tables(self) -> None:
        sink = MagicMock()
        sink.write.side_effect = [RuntimeError("denied"), None]
        report = store_results([_result(["bad", "good"])], "doc", sink)

        assert report.written == 1
        assert not report.all_written
        (failure,) = report.failures
        assert failure.table == "bad"
        assert failure.page_number == 1
        assert "denied" in failure.error
        assert sink.write.call_count == 2


class TestDynamoSink:
    """Tests for the DynamoDB sink."""

    def test_put_item(self) -> None:
        resource = MagicMock()
        DynamoSink(resource=resource).write(_result(["orders"]), "doc", "orders")

        resource.Table.assert_called_once_with("orders")
        item = resource.Table.return_value.put_item.call_args.kwargs["Item"]
        assert item["documentId"] == "doc"
        assert item["extractedFields"] == {"Date": "01/01/2024"}
        assert "processedAt" in item

    def test_client_error_reported(self) -> None:
        resource = MagicMock()
        resource.Table.return_value.put_item.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "no"}}, "PutItem"
        )
        report = store_results([_result(["orders"])], "doc", DynamoSink(resource=resource))
        assert len(report.failures) == 1


class TestCsvSink:
    """Tests for the CSV sink."""

    def test_header_then_rows(self, tmp_path: Path) -> None:
        path = tmp_path / "out" / "results.csv"
        sink = CsvSink(path)
        sink.write(_result(["a"]), "doc", "a")
        sink.write(_result(["b"], page_number=2), "doc", "b")

        with open(path, newline="") as f:
            rows = list(csv.DictReader(f))
        assert [r["table"] for r in rows] == ["a", "b"]
        assert rows[1]["pageNumber"] == "2"
        assert rows[0]["Date"] == "01/01/2024"

    def test_meta_columns_first(self, tmp_path: Path) -> None:
        path = tmp_path / "results.csv"
        CsvSink(path).write(_result(["a"], Zeta="z", Alpha="a"), "doc", "a")
        header = path.read_text().splitlines()[0].split(",")
        assert header == ["documentId", "table", "company", "pageNumber", "processedAt", "Alpha", "Zeta"]


class TestBuildSink:
    """Tests for sink selection."""

    def test_none_backend(self) -> None:
        assert build_sink(StorageConfig()) is None

    def test_csv_backend(self, tmp_path: Path) -> None:
        sink = build_sink(StorageConfig(backend="csv", csv_path=str(tmp_path / "r.csv")))
        assert isinstance(sink, CsvSink)

    @patch("docfields.storage.sinks.boto3")
    def test_dynamodb_backend(self, mock_boto3: MagicMock) -> None:
        assert isinstance(build_sink(StorageConfig(backend="dynamodb")), DynamoSink)
