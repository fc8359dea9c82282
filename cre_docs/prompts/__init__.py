"""Prompt catalog package."""

from cre_docs.prompts.catalog import PromptCatalog, get_prompt_catalog, load_prompt_catalog

__all__ = ["PromptCatalog", "get_prompt_catalog", "load_prompt_catalog"]
