"""Routes a stored document to the single-page or multi-page pipeline."""

from docfields.exceptions import DocfieldsError, DocumentProcessingError
from docfields.ocr.blocks import BlockGraph
from docfields.ocr.provider import DocumentLocation, OCRProvider
from docfields.registry.store import CompanyRegistry
from docfields.storage.sinks import ResultSink, make_document_id, store_results
from docfields.utils.config import AppConfig
from docfields.utils.logger import get_logger

from .async_job import AsyncJobProcessor
from .models import ExtractionResult, ProcessingOutcome
from .single_page import SinglePageProcessor

logger = get_logger(__name__)


class DocumentProcessor:
    """End-to-end processing of one stored document.

    One-page documents go through the synchronous pipeline, anything longer
    through an asynchronous job. Results are written to ``sink`` when one
    is given.

    Args:
        provider: Analysis service.
        registry: Company rules.
        config: Application configuration.
        sink: Optional result destination.
    """

    def __init__(
        self,
        provider: OCRProvider,
        registry: CompanyRegistry,
        config: AppConfig | None = None,
        sink: ResultSink | None = None,
    ) -> None:
        self.provider = provider
        self.registry = registry
        self.config = config or AppConfig()
        self.sink = sink
        self.single_page = SinglePageProcessor(provider, registry, self.config)
        self.async_job = AsyncJobProcessor(provider, self.config)

    def process(self, location: DocumentLocation) -> ProcessingOutcome:
        """Process and optionally store one document.

        Raises:
            DocumentProcessingError: The document could not be processed;
                the original error is chained as ``__cause__``.
        """
        document_id = make_document_id(location)
        logger.info("Processing document %s (%s)", location.uri, document_id)

        try:
            page_count = self.provider.count_pages(location)
            logger.info(
                "%d page(s) detected, using %s processing",
                page_count,
                "async" if page_count > 1 else "sync",
            )
            if page_count > 1:
                companies = self.registry.list_all()
                logger.info("Loaded %d company configurations", len(companies))
                results = self.async_job.process(location, companies)
            else:
                results = self.single_page.process(location, document_id)
        except DocfieldsError as exc:
            logger.error("Processing of %s failed: %s", location.uri, exc)
            raise DocumentProcessingError(document_id, str(exc)) from exc

        storage = None
        if self.sink is not None:
            storage = store_results(results, document_id, self.sink)

        logger.info("Processing completed, %d results for %s", len(results), document_id)
        return ProcessingOutcome(
            document_id=document_id,
            page_count=page_count,
            results=results,
            storage=storage,
        )

    def extract_graph(self, graph: BlockGraph, document_id: str) -> list[ExtractionResult]:
        """Extract from a document that was analyzed elsewhere.

        A graph with more than one PAGE block is handled page by page like
        an asynchronous job batch; otherwise the single-page rules apply,
        including the failure on an unrecognized company.
        """
        if len(graph.pages()) > 1:
            return self.async_job.extract_pages(graph, self.registry.list_all())
        return self.single_page.extract(graph, document_id)
