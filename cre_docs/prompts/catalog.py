"""Prompt catalog loaded from ``prompt_catalog.yaml``.

Prompts are configuration data. The catalog is loaded once, exposed through
read-only mappings, and every augmentation returns a new string so the stored
base prompts are never rewritten.
"""

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional, Union

import yaml

from cre_docs.core.exceptions import ConfigurationError
from cre_docs.schemas.documents import DocumentType
from cre_docs.utils.logging import get_logger

LOGGER = get_logger(__name__)

# Path to the YAML resource shipped with the package
CATALOG_PATH = Path(__file__).parent / "prompt_catalog.yaml"


def _key(document_type: Union[DocumentType, str]) -> str:
    return document_type.value if isinstance(document_type, DocumentType) else str(document_type)


@dataclass(frozen=True)
class PromptCatalog:
    """Immutable set of prompts keyed by document type."""

    version: str
    classification_prompt: str
    classification_system: str
    image_extraction_system: str
    native_pdf_system: str
    multi_page_template: str
    extraction_prompts: Mapping[str, str]
    training_system_prompts: Mapping[str, str]
    training_instructions: Mapping[str, str]

    @classmethod
    def from_dict(cls, raw: dict) -> "PromptCatalog":
        """Build a catalog from the parsed YAML document.

        Raises:
            ConfigurationError: If a required section is missing.
        """
        try:
            classification = raw["classification"]
            extraction = raw["extraction"]
            training = raw["training"]
            return cls(
                version=str(raw.get("version", "unversioned")),
                classification_prompt=classification["prompt"],
                classification_system=classification["system"],
                image_extraction_system=extraction["image_system"],
                native_pdf_system=extraction["native_pdf_system"],
                multi_page_template=extraction["multi_page_instructions"],
                extraction_prompts=MappingProxyType(dict(extraction["prompts"])),
                training_system_prompts=MappingProxyType(dict(training["system_prompts"])),
                training_instructions=MappingProxyType(dict(training["instructions"])),
            )
        except (KeyError, TypeError) as e:
            raise ConfigurationError(f"Prompt catalog is missing a required section: {e}", e)

    def extraction_prompt(self, document_type: Union[DocumentType, str]) -> str:
        """Return the extraction prompt for a document type.

        Raises:
            ConfigurationError: If the catalog has no prompt for the type.
        """
        key = _key(document_type)
        prompt = self.extraction_prompts.get(key)
        if prompt is None:
            raise ConfigurationError(f"No extraction prompt configured for document type: {key}")
        return prompt

    def training_system_prompt(self, document_type: Union[DocumentType, str]) -> str:
        # Unknown types fall back to the rent roll framing
        key = _key(document_type)
        return self.training_system_prompts.get(key) or self.training_system_prompts["rent_roll"]

    def training_instruction(self, document_type: Union[DocumentType, str]) -> str:
        key = _key(document_type)
        return self.training_instructions.get(key) or self.training_instructions["unknown"]

    def multi_page_prompt(self, prompt: str, page_count: int) -> str:
        """Append the multi-page consolidation instructions when there is more than one page."""
        if page_count <= 1:
            return prompt
        instructions = self.multi_page_template.replace("{page_count}", str(page_count))
        return f"{prompt}\n\n{instructions}"

    @staticmethod
    def augment(base_prompt: str, section: Optional[str]) -> str:
        """Compose a base prompt with an extra section without touching the base."""
        if not section:
            return base_prompt
        return f"{base_prompt}{section}"


def load_prompt_catalog(path: Path = CATALOG_PATH) -> PromptCatalog:
    """Load a prompt catalog from a YAML file.

    Raises:
        ConfigurationError: If the file is missing or cannot be parsed.
    """
    if not path.exists():
        raise ConfigurationError(f"Prompt catalog not found at {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Prompt catalog at {path} is not valid YAML", e)

    catalog = PromptCatalog.from_dict(raw or {})
    LOGGER.info(
        f"Loaded prompt catalog version {catalog.version}",
        extra={"document_types": len(catalog.extraction_prompts)},
    )
    return catalog


@lru_cache(maxsize=1)
def get_prompt_catalog() -> PromptCatalog:
    """Process-wide catalog instance, loaded on first use."""
    return load_prompt_catalog()
