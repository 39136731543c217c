"""Tests for the FastAPI REST endpoints."""

import json
import threading
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from docfields.api.app import app
from docfields.exceptions import JobFailedError, ProviderError, RegistryError
from docfields.ocr.blocks import BlockGraph
from docfields.ocr.provider import JobStatus, PollResponse
from docfields.registry.models import CompanyRecord
from docfields.registry.store import YamlCompanyRegistry
from docfields.storage.sinks import MemorySink
from docfields.utils.config import AppConfig
from tests.builders import line


@pytest.fixture
def client() -> TestClient:
    """Create a FastAPI test client."""
    return TestClient(app)


@pytest.fixture
def components(registry: YamlCompanyRegistry) -> tuple:
    """Config, registry, mocked provider and an in-memory sink."""
    return AppConfig(), registry, MagicMock(), MemorySink()


class TestHealthEndpoint:
    """Tests for GET /health."""

    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data
        assert data["registry_backend"] in ("yaml", "dynamodb")


class TestCompaniesEndpoint:
    """Tests for GET /companies."""

    def test_lists_registry(self, client: TestClient, components: tuple) -> None:
        with patch("docfields.api.app._get_components", return_value=components):
            response = client.get("/companies")
        assert response.status_code == 200
        companies = response.json()["companies"]
        assert [c["company"] for c in companies] == ["Northwind Packaging", "Contoso Components"]
        assert companies[1]["target_tables"] == ["contoso-orders", "purchase-orders-archive"]

    def test_registry_error(self, client: TestClient) -> None:
        registry = MagicMock()
        registry.list_all.side_effect = RegistryError("table missing")
        with patch(
            "docfields.api.app._get_components",
            return_value=(AppConfig(), registry, MagicMock(), None),
        ):
            response = client.get("/companies")
        assert response.status_code == 503


class TestProcessEndpoint:
    """Tests for POST /process."""

    def test_single_page_stored(
        self, client: TestClient, components: tuple, sample_response: dict
    ) -> None:
        _, _, provider, sink = components
        provider.count_pages.return_value = 1
        provider.analyze.return_value = BlockGraph.from_response(sample_response)

        with patch("docfields.api.app._get_components", return_value=components):
            response = client.post(
                "/process", json={"bucket": "inbox", "key": "po.pdf", "store": True}
            )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["document_id"] == "inbox-po-pdf"
        assert data["stored"] == 1
        assert data["results"][0]["company"] == "Northwind Packaging"
        assert data["results"][0]["extracted_fields"]["Your Order No"] == "PO-7731"
        assert len(sink.records["northwind-orders"]) == 1

    def test_not_stored_by_default(
        self, client: TestClient, components: tuple, sample_response: dict
    ) -> None:
        _, _, provider, sink = components
        provider.count_pages.return_value = 1
        provider.analyze.return_value = BlockGraph.from_response(sample_response)

        with patch("docfields.api.app._get_components", return_value=components):
            response = client.post("/process", json={"bucket": "inbox", "key": "po.pdf"})

        assert response.status_code == 200
        assert response.json()["stored"] == 0
        assert sink.records == {}

    def test_unrecognized_company(self, client: TestClient, components: tuple) -> None:
        _, _, provider, _ = components
        provider.count_pages.return_value = 1
        provider.analyze.return_value = BlockGraph.from_response(
            {"Blocks": [line("l1", "Fabrikam")]}
        )
        with patch("docfields.api.app._get_components", return_value=components):
            response = client.post("/process", json={"bucket": "inbox", "key": "po.pdf"})
        assert response.status_code == 422
        assert "inbox-po-pdf" in response.json()["detail"]

    @pytest.mark.parametrize(
        ("error", "status_code"),
        [(ProviderError("throttled"), 502), (JobFailedError("job-1", "bad"), 502)],
    )
    def test_provider_failures(
        self, client: TestClient, components: tuple, error: Exception, status_code: int
    ) -> None:
        _, _, provider, _ = components
        provider.count_pages.return_value = 1
        provider.analyze.side_effect = error
        with patch("docfields.api.app._get_components", return_value=components):
            response = client.post("/process", json={"bucket": "inbox", "key": "po.pdf"})
        assert response.status_code == status_code

    def test_health_answers_while_job_polls(self, components: tuple) -> None:
        _, _, provider, _ = components
        polling = threading.Event()
        release = threading.Event()

        def slow_poll(job_id: str, cursor: str | None = None) -> PollResponse:
            polling.set()
            release.wait(5)
            return PollResponse(JobStatus.SUCCEEDED)

        provider.count_pages.return_value = 3
        provider.submit_async.return_value = "job-1"
        provider.poll.side_effect = slow_poll
        responses = []

        with TestClient(app) as client, patch(
            "docfields.api.app._get_components", return_value=components
        ):
            worker = threading.Thread(
                target=lambda: responses.append(
                    client.post("/process", json={"bucket": "inbox", "key": "po.pdf"})
                )
            )
            worker.start()
            assert polling.wait(5)

            health = client.get("/health")
            still_polling = worker.is_alive()
            release.set()
            worker.join(5)

        assert health.status_code == 200
        assert still_polling
        assert responses[0].status_code == 200
        assert responses[0].json()["page_count"] == 3

    def test_empty_key_rejected(self, client: TestClient) -> None:
        response = client.post("/process", json={"bucket": "inbox", "key": ""})
        assert response.status_code == 422


class TestExtractEndpoint:
    """Tests for POST /extract."""

    def test_extract_upload(
        self, client: TestClient, components: tuple, sample_response: dict
    ) -> None:
        with patch("docfields.api.app._get_components", return_value=components):
            response = client.post(
                "/extract",
                files={"file": ("po.json", json.dumps(sample_response), "application/json")},
                params={"line_items": "true"},
            )

        assert response.status_code == 200
        data = response.json()
        assert data["document_id"] == "upload-po-json"
        assert data["page_count"] == 1
        result = data["results"][0]
        assert result["extracted_fields"]["Date"] == "05/01/2024"
        assert [item["item_no"] for item in result["line_items"]] == ["1", "2"]

    def test_invalid_json(self, client: TestClient, components: tuple) -> None:
        with patch("docfields.api.app._get_components", return_value=components):
            response = client.post(
                "/extract", files={"file": ("po.json", b"{oops", "application/json")}
            )
        assert response.status_code == 400

    def test_missing_blocks(self, client: TestClient, components: tuple) -> None:
        with patch("docfields.api.app._get_components", return_value=components):
            response = client.post(
                "/extract", files={"file": ("po.json", b'{"Pages": 1}', "application/json")}
            )
        assert response.status_code == 400

    def test_no_company(self, client: TestClient) -> None:
        registry = MagicMock()
        registry.list_all.return_value = [CompanyRecord("Acme")]
        components = (AppConfig(), registry, MagicMock(), None)
        body = json.dumps([line("l1", "Globex")])
        with patch("docfields.api.app._get_components", return_value=components):
            response = client.post(
                "/extract", files={"file": ("g.json", body, "application/json")}
            )
        assert response.status_code == 422
