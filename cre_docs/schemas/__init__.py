"""Pydantic models for documents, extraction results and API payloads."""
