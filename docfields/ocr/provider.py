"""OCR/layout analysis providers.

The pipeline treats the analysis service as a black box that returns block
graphs, either in one call or through a submitted job that is polled page
batch by page batch.
"""

import json
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any, Protocol

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from docfields.exceptions import ProviderError
from docfields.utils.config import ProviderConfig
from docfields.utils.logger import get_logger

from .blocks import BlockGraph, BlockType, parse_blocks

logger = get_logger(__name__)

PAGE_COUNT_METADATA_KEYS = ("page-count", "x-amz-meta-page-count")


class JobStatus(StrEnum):
    """Status of an asynchronous analysis job."""

    IN_PROGRESS = "IN_PROGRESS"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    PARTIAL_SUCCESS = "PARTIAL_SUCCESS"


@dataclass(frozen=True)
class DocumentLocation:
    """Where a source document is stored."""

    bucket: str
    key: str

    @property
    def uri(self) -> str:
        return f"s3://{self.bucket}/{self.key}"


@dataclass
class PollResponse:
    """One batch of results from an asynchronous job."""

    status: JobStatus
    blocks: BlockGraph = field(default_factory=BlockGraph)
    next_token: str | None = None
    status_message: str | None = None


class OCRProvider(Protocol):
    """Operations the pipeline needs from the analysis service."""

    def analyze(self, location: DocumentLocation) -> BlockGraph: ...

    def submit_async(self, location: DocumentLocation) -> str: ...

    def poll(self, job_id: str, cursor: str | None = None) -> PollResponse: ...

    def count_pages(self, location: DocumentLocation) -> int: ...


class TextractProvider:
    """Amazon Textract through boto3.

    Args:
        config: Provider settings (region, features, page size).
        client: Textract client; created from the default session when
            omitted.
        s3_client: S3 client used to read page-count metadata.
    """

    def __init__(
        self,
        config: ProviderConfig | None = None,
        client: Any | None = None,
        s3_client: Any | None = None,
    ) -> None:
        self.config = config or ProviderConfig()
        self._client = client
        self._s3_client = s3_client

    def _boto_client(self, service: str) -> Any:
        return boto3.client(
            service,
            region_name=self.config.region_name,
            config=BotoConfig(retries={"max_attempts": 3, "mode": "standard"}),
        )

    @property
    def client(self) -> Any:
        """Textract client, created on first use."""
        if self._client is None:
            self._client = self._boto_client("textract")
        return self._client

    @property
    def s3(self) -> Any:
        """S3 client, created on first use."""
        if self._s3_client is None:
            self._s3_client = self._boto_client("s3")
        return self._s3_client

    @staticmethod
    def _s3_document(location: DocumentLocation) -> dict[str, Any]:
        return {"S3Object": {"Bucket": location.bucket, "Name": location.key}}

    def analyze(self, location: DocumentLocation) -> BlockGraph:
        """Synchronous forms and tables analysis of a stored document."""
        logger.info("Analyzing document %s", location.uri)
        try:
            response = self.client.analyze_document(
                Document=self._s3_document(location),
                FeatureTypes=self.config.feature_types,
            )
        except (BotoCoreError, ClientError) as exc:
            raise ProviderError(f"Analysis of {location.uri} failed: {exc}") from exc
        graph = BlockGraph.from_response(response)
        logger.info("Document analysis completed, %d blocks", len(graph))
        return graph

    def analyze_bytes(self, content: bytes) -> BlockGraph:
        """Synchronous analysis of an in-memory single-page document."""
        if not content:
            raise ProviderError("Document is empty")
        try:
            response = self.client.analyze_document(
                Document={"Bytes": content},
                FeatureTypes=self.config.feature_types,
            )
        except (BotoCoreError, ClientError) as exc:
            raise ProviderError(f"Analysis failed: {exc}") from exc
        return BlockGraph.from_response(response)

    def submit_async(self, location: DocumentLocation) -> str:
        """Start an asynchronous analysis job and return its id."""
        try:
            response = self.client.start_document_analysis(
                DocumentLocation=self._s3_document(location),
                FeatureTypes=self.config.feature_types,
            )
        except (BotoCoreError, ClientError) as exc:
            raise ProviderError(f"Cannot start analysis of {location.uri}: {exc}") from exc
        job_id = response["JobId"]
        logger.info("Async analysis job %s started for %s", job_id, location.uri)
        return job_id

    def poll(self, job_id: str, cursor: str | None = None) -> PollResponse:
        """Fetch the next batch of an asynchronous job."""
        params: dict[str, Any] = {"JobId": job_id}
        if cursor:
            params["NextToken"] = cursor
        if self.config.max_results:
            params["MaxResults"] = self.config.max_results
        try:
            response = self.client.get_document_analysis(**params)
        except (BotoCoreError, ClientError) as exc:
            raise ProviderError(f"Polling job {job_id} failed: {exc}") from exc

        result = PollResponse(
            status=JobStatus(response["JobStatus"]),
            blocks=BlockGraph.from_response(response),
            next_token=response.get("NextToken"),
            status_message=response.get("StatusMessage"),
        )
        logger.info("Job %s status %s, %d blocks received", job_id, result.status, len(result.blocks))
        return result

    def count_pages(self, location: DocumentLocation) -> int:
        """Page count from object metadata, else from a layout analysis.

        Any failure falls back to treating the document as a single page.
        """
        try:
            head = self.s3.head_object(Bucket=location.bucket, Key=location.key)
            metadata = head.get("Metadata") or {}
            for key in PAGE_COUNT_METADATA_KEYS:
                if metadata.get(key):
                    pages = int(metadata[key])
                    logger.info("Page count from object metadata: %d", pages)
                    return pages

            response = self.client.analyze_document(
                Document=self._s3_document(location), FeatureTypes=["LAYOUT"]
            )
            pages = sum(
                1
                for block in parse_blocks(response.get("Blocks") or [])
                if block.block_type == BlockType.PAGE
            )
            logger.info("Page count from layout analysis: %d", pages)
            return max(pages, 1)
        except (BotoCoreError, ClientError, ValueError) as exc:
            logger.warning("Cannot determine page count of %s (%s), assuming 1", location.uri, exc)
            return 1


class LocalJsonProvider:
    """Serves previously saved analysis responses from a directory.

    Each document is a JSON file holding the provider response (an object
    with a ``Blocks`` list, or the bare list). The bucket part of a
    location is ignored; the key is the path below ``root``.

    Args:
        root: Directory holding the saved responses.
    """

    def __init__(self, root: Path = Path("samples")) -> None:
        self.root = root

    def _load(self, key: str) -> BlockGraph:
        path = self.root / key
        if not path.is_file():
            raise ProviderError(f"File not found: {path}")
        try:
            with open(path) as f:
                data = json.load(f)
        except json.JSONDecodeError as exc:
            raise ProviderError(f"{path} is not a valid analysis response: {exc}") from exc
        if isinstance(data, list):
            data = {"Blocks": data}
        return BlockGraph.from_response(data)

    def analyze(self, location: DocumentLocation) -> BlockGraph:
        return self._load(location.key)

    def submit_async(self, location: DocumentLocation) -> str:
        self._load(location.key)
        return location.key

    def poll(self, job_id: str, cursor: str | None = None) -> PollResponse:
        return PollResponse(status=JobStatus.SUCCEEDED, blocks=self._load(job_id))

    def count_pages(self, location: DocumentLocation) -> int:
        return max(len(self._load(location.key).pages()), 1)


def build_provider(config: ProviderConfig, backend: str = "textract") -> OCRProvider:
    """Create the provider for ``backend`` (``"textract"`` or ``"local"``)."""
    if backend == "local":
        return LocalJsonProvider(Path(config.local_root))
    return TextractProvider(config)
