"""Pytest configuration and shared fixtures."""

import base64
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from cre_docs.core.anthropic_client import ModelResponse
from cre_docs.main import app
from cre_docs.schemas.documents import PageImage

# 1x1 transparent PNG
PNG_BYTES = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="
)


@pytest.fixture
def test_client() -> TestClient:
    """Create FastAPI test client.

    Returns:
        TestClient: FastAPI test client instance
    """
    return TestClient(app)


@pytest.fixture(autouse=True)
def clear_dependency_overrides():
    """Ensure FastAPI dependency overrides are reset between tests."""
    app.dependency_overrides = {}
    yield
    app.dependency_overrides = {}


@pytest.fixture
def mock_session() -> MagicMock:
    """Stand-in for an AsyncSession; repositories are replaced per test."""
    return MagicMock()


@pytest.fixture
def png_bytes() -> bytes:
    return PNG_BYTES


@pytest.fixture
def page_image() -> PageImage:
    return PageImage.from_bytes(PNG_BYTES, "image/png", page_number=1)


@pytest.fixture
def model_reply():
    """Factory for an AsyncMock Anthropic client answering with the given payload."""

    def build(payload) -> AsyncMock:
        text = payload if isinstance(payload, str) else json.dumps(payload)
        client = AsyncMock()
        client.create_message = AsyncMock(
            return_value=ModelResponse(text=text, input_tokens=120, output_tokens=40)
        )
        return client

    return build


@pytest.fixture
def rent_roll_extraction() -> dict:
    return {
        "documentType": "rent_roll",
        "metadata": {
            "propertyName": "Harbor Point",
            "propertyAddress": "12 Pier Rd, Boston, MA",
            "totalSquareFeet": 48000,
            "extractedDate": "2025-01-15",
        },
        "data": {
            "tenants": [
                {
                    "tenantName": "Blue Fin Cafe",
                    "suiteUnit": "101",
                    "squareFeet": 2400,
                    "leaseStart": "2021-03-01",
                    "leaseEnd": "2031-02-28",
                    "baseRent": 96000,
                },
                {
                    "tenantName": "Harbor Dental",
                    "suiteUnit": "205",
                    "squareFeet": 3100,
                    "leaseStart": "2022-07-01",
                    "leaseEnd": "2027-06-30",
                    "baseRent": 124000,
                },
            ],
            "summary": {"totalUnits": 2, "occupiedUnits": 2, "occupancyRate": 100},
        },
    }
