"""FastAPI application for the document field extraction service.

Provides endpoints to process stored documents, extract from uploaded
analysis responses, list registered companies and check health.
"""

import json
import time
from typing import Annotated

from fastapi import FastAPI, File, HTTPException, Query, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware

from docfields import __version__
from docfields.exceptions import (
    CompanyNotRecognizedError,
    DocfieldsError,
    DocumentProcessingError,
    JobFailedError,
    PollingTimeoutError,
    ProviderError,
    RegistryError,
)
from docfields.ocr.blocks import BlockGraph
from docfields.ocr.provider import DocumentLocation, OCRProvider, TextractProvider
from docfields.pipeline.processor import DocumentProcessor
from docfields.registry.store import CompanyRegistry, build_registry
from docfields.storage.sinks import ResultSink, build_sink, make_document_id
from docfields.utils.config import AppConfig, load_config
from docfields.utils.logger import get_logger

from .schemas import (
    CompaniesResponse,
    CompanyInfo,
    ExtractResponse,
    HealthResponse,
    ProcessRequest,
    ProcessResponse,
    StorageFailureResponse,
)

logger = get_logger(__name__)

app = FastAPI(
    title="Document Field Extraction API",
    description="Extract per-company fields and line items from purchase orders and invoices",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_ERROR_STATUS: list[tuple[type[Exception], int]] = [
    (CompanyNotRecognizedError, 422),
    (PollingTimeoutError, 504),
    (JobFailedError, 502),
    (ProviderError, 502),
    (RegistryError, 503),
]


def _get_components() -> tuple[AppConfig, CompanyRegistry, OCRProvider, ResultSink | None]:
    """Initialize and return the processing collaborators.

    Returns:
        Tuple of (config, registry, provider, sink). The sink is ``None``
        when storage is disabled.
    """
    config = load_config()
    region = config.provider.region_name
    registry = build_registry(config.registry, region)
    provider = TextractProvider(config.provider)
    sink = build_sink(config.storage, region)
    return config, registry, provider, sink


def _http_error(exc: DocfieldsError) -> HTTPException:
    """Map a pipeline error, or the cause of a wrapped one, to an HTTP error."""
    cause = exc.__cause__ if isinstance(exc, DocumentProcessingError) else exc
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(cause, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Return service health and configured backends."""
    config = load_config()
    return HealthResponse(
        status="healthy",
        version=__version__,
        registry_backend=config.registry.backend,
        storage_backend=config.storage.backend,
    )


@app.get("/companies", response_model=CompaniesResponse)
def list_companies() -> CompaniesResponse:
    """List registered companies in registry order."""
    _, registry, _, _ = _get_components()
    try:
        records = registry.list_all()
    except DocfieldsError as exc:
        raise _http_error(exc) from exc
    return CompaniesResponse(
        companies=[
            CompanyInfo(
                company=r.company,
                fields=list(r.fields),
                target_tables=list(r.target_tables),
            )
            for r in records
        ]
    )


@app.post("/process", response_model=ProcessResponse)
def process_document(request: ProcessRequest) -> ProcessResponse:
    """Process a stored document and optionally store the results.

    Runs in the threadpool: analysis calls and job polling block.

    Args:
        request: Bucket and key of the document, and whether to write the
            results to the company's target tables.

    Returns:
        Extraction results and storage outcome.
    """
    start_time = time.time()
    config, registry, provider, sink = _get_components()
    processor = DocumentProcessor(
        provider, registry, config, sink=sink if request.store else None
    )

    try:
        outcome = processor.process(DocumentLocation(request.bucket, request.key))
    except DocfieldsError as exc:
        raise _http_error(exc) from exc

    storage = outcome.storage
    return ProcessResponse(
        success=storage is None or storage.all_written,
        document_id=outcome.document_id,
        page_count=outcome.page_count,
        results=outcome.results,
        stored=storage.written if storage else 0,
        storage_failures=[
            StorageFailureResponse(table=f.table, page_number=f.page_number, error=f.error)
            for f in (storage.failures if storage else [])
        ],
        processing_time_ms=(time.time() - start_time) * 1000,
    )


@app.post("/extract", response_model=ExtractResponse)
async def extract_document(
    file: Annotated[UploadFile, File(...)],
    line_items: Annotated[bool | None, Query()] = None,
) -> ExtractResponse:
    """Extract fields from an uploaded analysis response.

    Args:
        file: JSON analysis response (an object with ``Blocks`` or the bare
            block list).
        line_items: Override for table line item extraction.

    Returns:
        Extraction results for the uploaded document.
    """
    start_time = time.time()

    content = await file.read()
    try:
        data = json.loads(content)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid JSON: {exc}") from exc
    if isinstance(data, list):
        data = {"Blocks": data}
    if not isinstance(data, dict) or not isinstance(data.get("Blocks"), list):
        raise HTTPException(status_code=400, detail="Analysis response has no Blocks list")

    config, registry, provider, _ = _get_components()
    if line_items is not None:
        config.extraction.extract_line_items = line_items

    graph = BlockGraph.from_response(data)
    document_id = make_document_id(DocumentLocation("upload", file.filename or "document"))
    processor = DocumentProcessor(provider, registry, config)

    try:
        results = await run_in_threadpool(processor.extract_graph, graph, document_id)
    except DocfieldsError as exc:
        logger.error("Extraction failed for %s: %s", document_id, exc)
        raise _http_error(exc) from exc

    return ExtractResponse(
        success=True,
        document_id=document_id,
        page_count=max(len(graph.pages()), 1),
        results=results,
        processing_time_ms=(time.time() - start_time) * 1000,
    )
