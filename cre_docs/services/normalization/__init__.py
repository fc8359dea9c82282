"""Canonicalization of extraction payloads."""

from cre_docs.services.normalization.data_normalizer import (
    calculate_average,
    calculate_range,
    flatten_sales_comparable,
    normalize,
    transform_extracted_data,
)

__all__ = [
    "calculate_average",
    "calculate_range",
    "flatten_sales_comparable",
    "normalize",
    "transform_extracted_data",
]
