"""Asynchronous pipeline for multi-page documents.

The analysis job is submitted once and then polled. Each poll returns a
batch of blocks, the job status and, while more batches remain, a
continuation token. Every PAGE block of every batch is matched against the
registry on its own, so one file may hold pages from several companies;
pages without a match are skipped.
"""

import time
from collections.abc import Callable

from docfields.exceptions import JobFailedError, PollingTimeoutError
from docfields.extraction.company_matcher import CompanyMatcher
from docfields.extraction.field_extractor import FieldExtractor
from docfields.extraction.table_zone import TableZoneExtractor
from docfields.ocr.blocks import BlockGraph, PageBlock
from docfields.ocr.provider import DocumentLocation, JobStatus, OCRProvider
from docfields.registry.models import CompanyRecord
from docfields.utils.config import AppConfig
from docfields.utils.logger import get_logger

from .models import ExtractionResult

logger = get_logger(__name__)


class AsyncJobProcessor:
    """Submit, poll and paginate an analysis job, extracting page by page.

    Args:
        provider: Analysis service.
        config: Application configuration; ``polling`` bounds the loop.
        sleep: Called with the configured interval while the job is still
            running and no batch is available.
        clock: Monotonic time source for the elapsed-time bound.
    """

    def __init__(
        self,
        provider: OCRProvider,
        config: AppConfig | None = None,
        field_extractor: FieldExtractor | None = None,
        matcher: CompanyMatcher | None = None,
        table_extractor: TableZoneExtractor | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.provider = provider
        self.config = config or AppConfig()
        self.field_extractor = field_extractor or FieldExtractor()
        self.matcher = matcher or CompanyMatcher()
        self.table_extractor = table_extractor or TableZoneExtractor.from_config(
            self.config.table
        )
        self.sleep = sleep
        self.clock = clock

    def process(
        self, location: DocumentLocation, companies: list[CompanyRecord]
    ) -> list[ExtractionResult]:
        """Submit a job for ``location`` and collect its results."""
        logger.info("Processing multi-page document %s", location.uri)
        job_id = self.provider.submit_async(location)
        return self.collect(job_id, companies)

    def collect(
        self, job_id: str, companies: list[CompanyRecord]
    ) -> list[ExtractionResult]:
        """Poll a submitted job until it is done.

        The loop ends once a response carries no continuation token and the
        job is no longer in progress, or as soon as the job reports FAILED.
        Page numbers count PAGE blocks across all batches, starting at 1.

        Args:
            job_id: Id returned by the provider on submission.
            companies: Registry records, in registry order.

        Returns:
            One result per page with a recognized company, in page order.

        Raises:
            JobFailedError: The job reported FAILED and
                ``polling.raise_on_failure`` is set.
            PollingTimeoutError: ``polling.max_attempts`` or
                ``polling.max_elapsed_seconds`` was exceeded.
        """
        polling = self.config.polling
        results: list[ExtractionResult] = []
        cursor: str | None = None
        page_number = 1
        attempts = 0
        started = self.clock()

        while True:
            elapsed = self.clock() - started
            if attempts >= polling.max_attempts or elapsed > polling.max_elapsed_seconds:
                logger.error("Giving up on job %s after %d polls", job_id, attempts)
                raise PollingTimeoutError(job_id, attempts, elapsed)

            response = self.provider.poll(job_id, cursor)
            attempts += 1

            pages = response.blocks.pages()
            logger.info("Processing %d pages in batch %d", len(pages), attempts)
            results.extend(self.extract_pages(response.blocks, companies, page_number))
            page_number += len(pages)

            if response.status == JobStatus.FAILED:
                if polling.raise_on_failure:
                    logger.error("Job %s failed: %s", job_id, response.status_message)
                    raise JobFailedError(job_id, response.status_message)
                logger.warning(
                    "Job %s failed (%s), keeping %d partial results",
                    job_id,
                    response.status_message,
                    len(results),
                )
                break
            elif response.status == JobStatus.PARTIAL_SUCCESS:
                logger.warning("Job %s only partially succeeded", job_id)

            if response.next_token is None and response.status != JobStatus.IN_PROGRESS:
                break

            cursor = response.next_token
            if cursor is None:
                self.sleep(polling.interval_seconds)

        logger.info(
            "Multi-page processing completed after %d polls, %d results", attempts, len(results)
        )
        return results

    def extract_pages(
        self,
        blocks: BlockGraph,
        companies: list[CompanyRecord],
        first_page_number: int = 1,
    ) -> list[ExtractionResult]:
        """Extract every PAGE of one batch, numbering from ``first_page_number``."""
        results = []
        for offset, page in enumerate(blocks.pages()):
            result = self._process_page(blocks, page, first_page_number + offset, companies)
            if result is not None:
                results.append(result)
        return results

    def _process_page(
        self,
        blocks: BlockGraph,
        page: PageBlock,
        page_number: int,
        companies: list[CompanyRecord],
    ) -> ExtractionResult | None:
        scope = blocks.page_scope(page.id)
        record = self.matcher.match(scope.text(), companies)
        if record is None:
            logger.info("No company match found for page %d", page_number)
            return None

        logger.info("Processing page %d for company %s", page_number, record.company)
        resolved = self.field_extractor.extract_fields(scope, list(record.fields))
        line_items = (
            self.table_extractor.extract(scope)
            if self.config.extraction.extract_line_items
            else []
        )
        return ExtractionResult(
            company=record.company,
            page_number=page_number,
            extracted_fields={f.field_name: f.value for f in resolved},
            extraction_methods={f.field_name: f.extraction_method for f in resolved},
            target_tables=list(record.target_tables),
            line_items=line_items,
        )
