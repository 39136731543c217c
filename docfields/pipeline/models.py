"""Result types produced by the orchestrators."""

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, Field

from docfields.extraction.table_zone import LineItem


class ExtractionResult(BaseModel):
    """Fields extracted from one page for one matched company."""

    company: str
    page_number: int = Field(..., ge=1)
    extracted_fields: dict[str, str | None]
    extraction_methods: dict[str, str | None] = Field(default_factory=dict)
    target_tables: list[str] = Field(default_factory=list)
    line_items: list[LineItem] = Field(default_factory=list)

    def to_item(self, document_id: str, processed_at: str) -> dict[str, Any]:
        """Record written to a target table."""
        item: dict[str, Any] = {
            "documentId": document_id,
            "company": self.company,
            "pageNumber": self.page_number,
            "extractedFields": dict(self.extracted_fields),
            "processedAt": processed_at,
        }
        if self.line_items:
            item["lineItems"] = [li.to_item() for li in self.line_items]
        return item


@dataclass
class StorageFailure:
    """A single failed write."""

    table: str
    page_number: int
    error: str


@dataclass
class StorageReport:
    """Outcome of writing all results of a document."""

    written: int = 0
    skipped: int = 0
    failures: list[StorageFailure] = field(default_factory=list)

    @property
    def all_written(self) -> bool:
        return not self.failures


@dataclass
class ProcessingOutcome:
    """Everything produced for one document."""

    document_id: str
    page_count: int
    results: list[ExtractionResult]
    storage: StorageReport | None = None
