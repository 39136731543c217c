"""Domain exceptions for the extraction pipeline.

Only document-level failures are raised. Missing fields and pages without
a recognized company are recorded in the results instead.
"""


class DocfieldsError(Exception):
    """Base class for all pipeline errors."""


class ProviderError(DocfieldsError):
    """The OCR/layout provider call failed (network, auth, quota, missing file)."""


class RegistryError(DocfieldsError):
    """The company registry could not be read."""


class CompanyNotRecognizedError(DocfieldsError):
    """No registered company name occurs in a single-page document."""

    def __init__(self, document_id: str) -> None:
        super().__init__(f"Company not recognized in single page document {document_id}")
        self.document_id = document_id


class JobFailedError(DocfieldsError):
    """The provider reported an asynchronous analysis job as FAILED."""

    def __init__(self, job_id: str, message: str | None = None) -> None:
        detail = f": {message}" if message else ""
        super().__init__(f"Analysis job {job_id} failed{detail}")
        self.job_id = job_id
        self.message = message


class PollingTimeoutError(DocfieldsError):
    """Polling gave up before the job reached a terminal state."""

    def __init__(self, job_id: str, attempts: int, elapsed: float) -> None:
        super().__init__(
            f"Analysis job {job_id} not finished after {attempts} polls ({elapsed:.1f}s)"
        )
        self.job_id = job_id
        self.attempts = attempts
        self.elapsed = elapsed


class DocumentProcessingError(DocfieldsError):
    """Fatal failure for one document, carrying the document identifier."""

    def __init__(self, document_id: str, reason: str) -> None:
        super().__init__(f"Document {document_id} failed: {reason}")
        self.document_id = document_id
        self.reason = reason
