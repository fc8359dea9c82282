"""Client for the OpenAI files and fine-tuning REST endpoints."""

from typing import Any, Dict, Optional

from cre_docs.core.base_api_client import BaseAPIClient
from cre_docs.core.config import settings
from cre_docs.utils.logging import get_logger

LOGGER = get_logger(__name__)


class OpenAIFineTuningClient(BaseAPIClient):
    """Thin wrapper over ``/files`` and ``/fine_tuning/jobs``."""

    service_name = "OpenAI API"

    async def upload_file(
        self,
        content: bytes,
        filename: str = "training.jsonl",
        purpose: str = "fine-tune",
    ) -> Dict[str, Any]:
        """Upload a JSONL training file.

        Returns:
            The file object; its ``id`` is used when creating jobs.
        """
        LOGGER.info(f"Uploading {filename} to OpenAI", extra={"bytes": len(content)})
        result = await self.call_api(
            endpoint="/files",
            method="POST",
            files={"file": (filename, content, "application/jsonl")},
            data={"purpose": purpose},
        )
        LOGGER.info(f"File uploaded to OpenAI: {result.get('id')}")
        return result

    async def create_fine_tuning_job(
        self,
        training_file: str,
        model: str,
        hyperparameters: Optional[Dict[str, Any]] = None,
        validation_file: Optional[str] = None,
        suffix: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"training_file": training_file, "model": model}
        if hyperparameters:
            payload["hyperparameters"] = hyperparameters
        if validation_file:
            payload["validation_file"] = validation_file
        if suffix:
            payload["suffix"] = suffix
        return await self.call_api(endpoint="/fine_tuning/jobs", method="POST", payload=payload)

    async def retrieve_fine_tuning_job(self, job_id: str) -> Dict[str, Any]:
        return await self.call_api(endpoint=f"/fine_tuning/jobs/{job_id}", method="GET")

    async def cancel_fine_tuning_job(self, job_id: str) -> Dict[str, Any]:
        return await self.call_api(endpoint=f"/fine_tuning/jobs/{job_id}/cancel", method="POST")


def get_openai_client() -> OpenAIFineTuningClient:
    """Build a client from application settings."""
    cfg = settings.openai
    return OpenAIFineTuningClient(
        api_key=cfg.api_key,
        base_url=cfg.base_url,
        timeout=cfg.timeout,
        max_retries=cfg.max_retries,
        retry_delay=cfg.retry_delay,
    )
