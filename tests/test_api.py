"""Tests for API endpoints."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from cre_docs.api.v1.endpoints.documents import get_classification_service, get_extraction_service
from cre_docs.api.v1.endpoints.fine_tuning import get_fine_tuning_service
from cre_docs.api.v1.endpoints.training import get_training_service
from cre_docs.core.exceptions import (
    ConcurrentModificationError,
    DocumentNotFoundError,
    DocumentTooLargeForNativeProcessing,
    JobNotFoundError,
    UpstreamServerError,
)
from cre_docs.main import app
from cre_docs.schemas.documents import Classification, DeploymentStatus, DocumentType
from cre_docs.services.export import XLSX_MEDIA_TYPE
from cre_docs.services.fine_tuning import TriggerCheckResult
from cre_docs.services.training import BatchItemResult, BatchResult, VerificationResult


def _training_document(**values) -> SimpleNamespace:
    defaults = {
        "id": uuid4(),
        "file_name": "harbor.pdf",
        "file_path": "rent_roll/harbor.pdf",
        "file_url": None,
        "file_size": 1024,
        "file_type": "application/pdf",
        "document_type": "rent_roll",
        "upload_date": None,
        "processing_status": "completed",
        "processed_date": None,
        "error_message": None,
        "retry_count": 0,
        "raw_extraction": None,
        "verified_extraction": None,
        "extraction_confidence": 0.7,
        "verification_status": "verified",
        "is_verified": True,
        "verified_by": "ana",
        "verified_date": None,
        "verification_notes": None,
        "dataset_split": "train",
        "include_in_training": True,
        "quality_score": 0.9,
        "version": 2,
        "created_by": None,
    }
    defaults.update(values)
    return SimpleNamespace(**defaults)


class TestDocumentEndpoints:
    """Test suite for classification, extraction and export endpoints.

    Services are replaced through dependency overrides; these tests cover
    request parsing, response envelopes and error mapping.
    """

    def test_classify_success(self, test_client: TestClient, png_bytes: bytes) -> None:
        """Test successful classification of a single page image."""
        mock_service = AsyncMock()
        mock_service.classify_document.return_value = Classification(
            type=DocumentType.RENT_ROLL, confidence=0.93, reasoning="Tenant table with suites"
        )
        app.dependency_overrides[get_classification_service] = lambda: mock_service

        response = test_client.post(
            "/api/v1/documents/classify",
            files=[("images", ("page1.png", png_bytes, "image/png"))],
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["type"] == "rent_roll"
        assert body["data"]["confidence"] == 0.93
        pages = mock_service.classify_document.call_args.args[0]
        assert len(pages) == 1

    def test_classify_rejects_non_image(self, test_client: TestClient) -> None:
        app.dependency_overrides[get_classification_service] = lambda: AsyncMock()

        response = test_client.post(
            "/api/v1/documents/classify",
            files=[("images", ("notes.txt", b"hello", "text/plain"))],
        )

        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_classify_upstream_failure(self, test_client: TestClient, png_bytes: bytes) -> None:
        mock_service = AsyncMock()
        mock_service.classify_document.side_effect = UpstreamServerError("model overloaded", status_code=529)
        app.dependency_overrides[get_classification_service] = lambda: mock_service

        response = test_client.post(
            "/api/v1/documents/classify",
            files=[("images", ("page1.png", png_bytes, "image/png"))],
        )

        assert response.status_code == 502
        assert response.json() == {"success": False, "error": "model overloaded"}

    def test_extract_success(self, test_client: TestClient, rent_roll_extraction: dict) -> None:
        mock_service = AsyncMock()
        mock_service.extract_document_data.return_value = rent_roll_extraction
        app.dependency_overrides[get_extraction_service] = lambda: mock_service

        response = test_client.post(
            "/api/v1/documents/extract",
            files={"file": ("harbor.pdf", b"%PDF-1.4", "application/pdf")},
            data={"documentType": "rent_roll"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["data"]["documentType"] == "rent_roll"
        assert len(body["data"]["data"]["tenants"]) == 2
        args = mock_service.extract_document_data.call_args.args
        assert args[0].name == "harbor.pdf"
        assert args[1] == DocumentType.RENT_ROLL

    def test_extract_invalid_document_type(self, test_client: TestClient) -> None:
        mock_service = AsyncMock()
        app.dependency_overrides[get_extraction_service] = lambda: mock_service

        response = test_client.post(
            "/api/v1/documents/extract",
            files={"file": ("harbor.pdf", b"%PDF-1.4", "application/pdf")},
            data={"documentType": "lease_abstract"},
        )

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Invalid document type: lease_abstract"}
        mock_service.extract_document_data.assert_not_awaited()

    def test_extract_oversized_pdf(self, test_client: TestClient) -> None:
        mock_service = AsyncMock()
        mock_service.extract_document_data.side_effect = DocumentTooLargeForNativeProcessing(8, 5)
        app.dependency_overrides[get_extraction_service] = lambda: mock_service

        response = test_client.post(
            "/api/v1/documents/extract",
            files={"file": ("big.pdf", b"%PDF-1.4", "application/pdf")},
            data={"documentType": "rent_roll"},
        )

        assert response.status_code == 400
        assert "8 estimated pages" in response.json()["error"]

    def test_transform(self, test_client: TestClient, rent_roll_extraction: dict) -> None:
        response = test_client.post(
            "/api/v1/documents/transform", json={"extractedData": rent_roll_extraction}
        )

        assert response.status_code == 200
        assert response.json()["data"]["documentType"] == "rent_roll"

    def test_export_returns_workbook(self, test_client: TestClient, rent_roll_extraction: dict) -> None:
        response = test_client.post(
            "/api/v1/documents/export",
            json={"documents": [rent_roll_extraction], "fileNames": ["harbor.pdf"]},
        )

        assert response.status_code == 200
        assert response.headers["content-type"] == XLSX_MEDIA_TYPE
        disposition = response.headers["content-disposition"]
        assert disposition.startswith('attachment; filename="extraction_rent_roll_')
        assert response.content[:2] == b"PK"


class TestTrainingEndpoints:
    """Test suite for the training pipeline endpoints."""

    @pytest.fixture
    def training_service(self) -> AsyncMock:
        mock_service = AsyncMock()
        app.dependency_overrides[get_training_service] = lambda: mock_service
        return mock_service

    def test_get_document_not_found(self, test_client: TestClient, training_service: AsyncMock) -> None:
        document_id = uuid4()
        training_service.get_document.side_effect = DocumentNotFoundError(
            f"Document not found: {document_id}"
        )

        response = test_client.get(f"/api/v1/training/document/{document_id}")

        assert response.status_code == 404
        assert response.json()["success"] is False

    def test_verify_success(self, test_client: TestClient, training_service: AsyncMock, rent_roll_extraction: dict) -> None:
        document = _training_document()
        training_service.verify_document.return_value = VerificationResult(
            document=document,
            message="Document verified successfully",
            feedback_categories=["date_format_error"],
        )

        response = test_client.post(
            f"/api/v1/training/verify/{document.id}",
            json={"verified_extraction": rent_roll_extraction, "quality_score": 0.9, "expected_version": 1},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Document verified successfully"
        assert body["data"]["document"]["version"] == 2
        assert body["data"]["fine_tuning_triggered"] is False
        assert body["data"]["feedback_categories"] == ["date_format_error"]
        assert training_service.verify_document.call_args.kwargs["expected_version"] == 1

    def test_verify_conflict(self, test_client: TestClient, training_service: AsyncMock, rent_roll_extraction: dict) -> None:
        training_service.verify_document.side_effect = ConcurrentModificationError(
            "Document was modified since it was loaded"
        )

        response = test_client.post(
            f"/api/v1/training/verify/{uuid4()}",
            json={"verified_extraction": rent_roll_extraction, "quality_score": 0.9, "expected_version": 1},
        )

        assert response.status_code == 409
        assert response.json()["error"] == "Document was modified since it was loaded"

    def test_process_batch_reports_partial_failure(self, test_client: TestClient, training_service: AsyncMock) -> None:
        first, second = uuid4(), uuid4()
        training_service.process_batch.return_value = BatchResult(
            processed=1,
            failed=1,
            results=[
                BatchItemResult(str(first), True),
                BatchItemResult(str(second), False, "Unsupported file type: text/plain"),
            ],
        )

        response = test_client.post(
            "/api/v1/training/process-batch",
            json={"document_ids": [str(first), str(second)]},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["processed"] == 1
        assert body["data"]["results"][1]["error"] == "Unsupported file type: text/plain"

    def test_differences(self, test_client: TestClient) -> None:
        response = test_client.post(
            "/api/v1/training/differences",
            json={
                "raw_extraction": {"data": {"baseRent": 1000}},
                "verified_extraction": {"data": {"baseRent": 1200}},
            },
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["differences"][0]["path"] == "data.baseRent"
        assert data["error_patterns"][0]["field_path"] == "data.baseRent"


class TestFineTuningEndpoints:
    """Test suite for fine-tuning endpoints."""

    @pytest.fixture
    def fine_tuning_service(self) -> AsyncMock:
        mock_service = AsyncMock()
        app.dependency_overrides[get_fine_tuning_service] = lambda: mock_service
        return mock_service

    def test_status_unknown_job(self, test_client: TestClient, fine_tuning_service: AsyncMock) -> None:
        fine_tuning_service.update_fine_tuning_job_status.side_effect = JobNotFoundError("Job not found")

        response = test_client.get(f"/api/v1/fine-tuning/status/{uuid4()}")

        assert response.status_code == 404

    def test_trigger_check(self, test_client: TestClient, fine_tuning_service: AsyncMock) -> None:
        fine_tuning_service.check_fine_tuning_trigger.return_value = TriggerCheckResult(
            should_trigger=False,
            document_type="rent_roll",
            current_count=4,
            trigger_threshold=10,
            reason="Current count: 4, next trigger at: 10",
        )

        response = test_client.get("/api/v1/fine-tuning/trigger/rent_roll")

        assert response.status_code == 200
        body = response.json()
        assert body["data"]["should_trigger"] is False
        assert body["message"] == "Current count: 4, next trigger at: 10"

    def test_trigger_check_invalid_type(self, test_client: TestClient, fine_tuning_service: AsyncMock) -> None:
        response = test_client.get("/api/v1/fine-tuning/trigger/lease_abstract")

        assert response.status_code == 400
        fine_tuning_service.check_fine_tuning_trigger.assert_not_awaited()

    def test_deploy_rejects_unknown_status(self, test_client: TestClient, fine_tuning_service: AsyncMock) -> None:
        response = test_client.post(
            f"/api/v1/fine-tuning/deploy/{uuid4()}", json={"deployment_status": "ACTIVE"}
        )

        assert response.status_code == 422
        fine_tuning_service.deploy_fine_tuned_model.assert_not_awaited()

    def test_deploy_passes_testing_status(self, test_client: TestClient, fine_tuning_service: AsyncMock) -> None:
        fine_tuning_service.deploy_fine_tuned_model.return_value = SimpleNamespace(
            id=uuid4(),
            document_type="rent_roll",
            version_number=2,
            model_id="ft:gpt-4o:cre:abc",
            model_type="fine_tuned",
            fine_tuning_job_id=uuid4(),
            deployment_status="testing",
            traffic_percentage=10,
            deployed_at=None,
            created_at=None,
            notes=None,
        )

        response = test_client.post(
            f"/api/v1/fine-tuning/deploy/{uuid4()}",
            json={"deployment_status": "testing", "traffic_percentage": 10},
        )

        assert response.status_code == 201
        kwargs = fine_tuning_service.deploy_fine_tuned_model.call_args.kwargs
        assert kwargs["deployment_status"] == DeploymentStatus.TESTING


class TestHealthEndpoints:
    """Test suite for health and root endpoints."""

    def test_root(self, test_client: TestClient) -> None:
        response = test_client.get("/")
        assert response.status_code == 200
        assert response.json()["health"] == "/health"

    def test_health_degraded_without_database(self, test_client: TestClient) -> None:
        with patch(
            "cre_docs.api.v1.endpoints.health.db_client.health_check",
            AsyncMock(return_value={"status": "unhealthy", "connected": False}),
        ):
            response = test_client.get("/health/")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "degraded"
        assert body["database"] == "unhealthy"

    def test_correlation_id_is_echoed(self, test_client: TestClient) -> None:
        response = test_client.get("/", headers={"X-Correlation-ID": "abc-123"})
        assert response.headers["X-Correlation-ID"] == "abc-123"

    def test_health_reports_database_latency(self, test_client: TestClient) -> None:
        with patch(
            "cre_docs.api.v1.endpoints.health.db_client.health_check",
            AsyncMock(return_value={"status": "healthy", "connected": True, "latency_ms": 1.8}),
        ):
            response = test_client.get("/health/")

        body = response.json()
        assert body["status"] == "healthy"
        assert body["database_latency_ms"] == 1.8
