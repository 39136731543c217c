"""Pydantic request/response schemas for the FastAPI endpoints."""

from pydantic import BaseModel, Field

from docfields.pipeline.models import ExtractionResult


class ProcessRequest(BaseModel):
    """Request to process a document stored in a bucket."""

    bucket: str = Field(..., min_length=1)
    key: str = Field(..., min_length=1)
    store: bool = False


class StorageFailureResponse(BaseModel):
    """A target table write that failed."""

    table: str
    page_number: int
    error: str


class ProcessResponse(BaseModel):
    """Response schema for a stored-document processing request."""

    success: bool
    document_id: str
    page_count: int
    results: list[ExtractionResult]
    stored: int = 0
    storage_failures: list[StorageFailureResponse] = Field(default_factory=list)
    processing_time_ms: float


class ExtractResponse(BaseModel):
    """Response schema for extraction from an uploaded analysis response."""

    success: bool
    document_id: str
    page_count: int
    results: list[ExtractionResult]
    processing_time_ms: float


class CompanyInfo(BaseModel):
    """A registered company and what is extracted for it."""

    company: str
    fields: list[str]
    target_tables: list[str]


class CompaniesResponse(BaseModel):
    """Response schema listing registered companies."""

    companies: list[CompanyInfo]


class HealthResponse(BaseModel):
    """Response schema for the health check endpoint."""

    status: str
    version: str
    registry_backend: str
    storage_backend: str
