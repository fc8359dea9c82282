"""Client for the Claude Messages API."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from cre_docs.core.base_api_client import BaseAPIClient
from cre_docs.core.config import settings
from cre_docs.core.exceptions import APIClientError
from cre_docs.schemas.documents import PageImage
from cre_docs.utils.logging import get_logger

LOGGER = get_logger(__name__)


def image_block(image: PageImage) -> Dict[str, Any]:
    """Content block for a base64 page image."""
    return {
        "type": "image",
        "source": {"type": "base64", "media_type": image.media_type, "data": image.data},
    }


def pdf_block(pdf_base64: str) -> Dict[str, Any]:
    """Content block for a natively processed PDF."""
    return {
        "type": "document",
        "source": {"type": "base64", "media_type": "application/pdf", "data": pdf_base64},
    }


def text_block(text: str) -> Dict[str, Any]:
    return {"type": "text", "text": text}


@dataclass
class ModelResponse:
    """Text content and usage counters of a model reply."""

    text: str
    model: Optional[str] = None
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    stop_reason: Optional[str] = None


class AnthropicClient(BaseAPIClient):
    """Vision-capable model invoker.

    Sends one user message made of ordered content blocks (page images or a
    native PDF, followed by the prompt text) and returns the concatenated text.
    """

    service_name = "Claude API"

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.anthropic.com/v1",
        model: str = "claude-sonnet-4-5-20250929",
        api_version: str = "2023-06-01",
        timeout: int = 600,
        max_retries: int = 3,
        retry_delay: int = 2,
    ):
        super().__init__(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=max_retries,
            retry_delay=retry_delay,
        )
        self.model = model
        self.api_version = api_version

    def _auth_headers(self) -> Dict[str, str]:
        return {"x-api-key": self.api_key, "anthropic-version": self.api_version}

    async def create_message(
        self,
        content: List[Dict[str, Any]],
        system: Optional[str] = None,
        max_tokens: int = 4096,
        temperature: float = 0.1,
    ) -> ModelResponse:
        """Send a single-turn message.

        Args:
            content: Ordered user content blocks
            system: Optional system prompt
            max_tokens: Output token budget
            temperature: Sampling temperature

        Returns:
            ModelResponse with the concatenated text blocks

        Raises:
            APIClientError: If the reply carries no text content
        """
        payload: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": content}],
        }
        if system:
            payload["system"] = system

        result = await self.call_api(endpoint="/messages", method="POST", payload=payload)

        text = "".join(
            block.get("text", "")
            for block in result.get("content", [])
            if block.get("type") == "text"
        )
        if not text:
            raise APIClientError(f"{self.service_name} returned no text content")

        usage = result.get("usage") or {}
        return ModelResponse(
            text=text,
            model=result.get("model"),
            input_tokens=usage.get("input_tokens"),
            output_tokens=usage.get("output_tokens"),
            stop_reason=result.get("stop_reason"),
        )


def get_anthropic_client() -> AnthropicClient:
    """Build a client from application settings."""
    cfg = settings.anthropic
    return AnthropicClient(
        api_key=cfg.api_key,
        base_url=cfg.base_url,
        model=cfg.model,
        api_version=cfg.api_version,
        timeout=cfg.timeout,
        max_retries=cfg.max_retries,
        retry_delay=cfg.retry_delay,
    )
