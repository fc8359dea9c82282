from cre_docs.services.extraction.extraction_service import (
    ExtractionService,
    estimate_pdf_page_count,
    parse_multi_page_bundle,
)

__all__ = ["ExtractionService", "estimate_pdf_page_count", "parse_multi_page_bundle"]
