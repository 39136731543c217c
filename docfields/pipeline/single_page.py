"""Synchronous pipeline for one-page documents."""

from docfields.exceptions import CompanyNotRecognizedError
from docfields.extraction.company_matcher import CompanyMatcher
from docfields.extraction.field_extractor import FieldExtractor
from docfields.extraction.table_zone import TableZoneExtractor
from docfields.ocr.blocks import BlockGraph
from docfields.ocr.provider import DocumentLocation, OCRProvider
from docfields.registry.models import CompanyRecord
from docfields.registry.store import CompanyRegistry
from docfields.storage.sinks import make_document_id
from docfields.utils.config import AppConfig
from docfields.utils.logger import get_logger

from .models import ExtractionResult

logger = get_logger(__name__)


class SinglePageProcessor:
    """Analyze, identify the company, extract its fields.

    A document in which no registered company name occurs cannot be
    routed anywhere and fails as a whole.

    Args:
        provider: Analysis service.
        registry: Company rules.
        config: Application configuration.
    """

    def __init__(
        self,
        provider: OCRProvider,
        registry: CompanyRegistry,
        config: AppConfig | None = None,
        field_extractor: FieldExtractor | None = None,
        matcher: CompanyMatcher | None = None,
        table_extractor: TableZoneExtractor | None = None,
    ) -> None:
        self.provider = provider
        self.registry = registry
        self.config = config or AppConfig()
        self.field_extractor = field_extractor or FieldExtractor()
        self.matcher = matcher or CompanyMatcher()
        self.table_extractor = table_extractor or TableZoneExtractor.from_config(
            self.config.table
        )

    def process(
        self, location: DocumentLocation, document_id: str | None = None
    ) -> list[ExtractionResult]:
        """Run the whole flow on a stored document.

        Raises:
            CompanyNotRecognizedError: No registered company in the text.
            ProviderError: The analysis call failed.
        """
        logger.info("Processing single page document %s", location.uri)
        graph = self.provider.analyze(location)
        return self.extract(graph, document_id or make_document_id(location))

    def extract(
        self,
        graph: BlockGraph,
        document_id: str,
        companies: list[CompanyRecord] | None = None,
    ) -> list[ExtractionResult]:
        """Extract from an already analyzed document.

        Args:
            graph: Blocks of the document.
            document_id: Identifier used in errors and logs.
            companies: Records to match against; read from the registry when
                omitted.

        Returns:
            A single result for page 1.
        """
        text = graph.text()
        logger.debug("Document text length: %d characters", len(text))

        if companies is None:
            companies = self.registry.list_all()
        record = self.matcher.match(text, companies)
        if record is None:
            logger.error("Company identification failed for %s", document_id)
            raise CompanyNotRecognizedError(document_id)

        resolved = self.field_extractor.extract_fields(graph, list(record.fields))
        line_items = (
            self.table_extractor.extract(graph)
            if self.config.extraction.extract_line_items
            else []
        )

        result = ExtractionResult(
            company=record.company,
            page_number=1,
            extracted_fields={f.field_name: f.value for f in resolved},
            extraction_methods={f.field_name: f.extraction_method for f in resolved},
            target_tables=self.registry.get_target_tables(record.company),
            line_items=line_items,
        )
        logger.info("Single page processing completed for %s", record.company)
        return [result]
