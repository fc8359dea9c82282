"""Normalization of extraction payloads into their canonical per-type shape.

Every rule is pure and idempotent: normalizing a canonical payload returns it
unchanged. Rules only add defaults and flatten known nestings, so every key of
the input survives in the output.
"""

import copy
import math
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from cre_docs.schemas.documents import DocumentType
from cre_docs.schemas.extracted import (
    EXTRACTED_DOCUMENT_ADAPTER,
    AnyExtraction,
    GenericExtraction,
)
from cre_docs.utils.logging import get_logger

LOGGER = get_logger(__name__)

Payload = Dict[str, Any]

SALES_SUMMARY_KEYS = ("averagePricePerSF", "averageCapRate", "priceRange")
LEASE_SUMMARY_KEYS = ("averageBaseRent", "averageEffectiveRent", "rentRange")
_NESTED_SALE_KEYS = ("transactionDetails", "pricingMetrics", "propertyCharacteristics")


def _to_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return None if math.isnan(number) else number


def _values(items: Any, field: str) -> List[float]:
    if not isinstance(items, list):
        return []
    values = []
    for item in items:
        if isinstance(item, dict):
            number = _to_number(item.get(field))
            if number is not None:
                values.append(number)
    return values


def calculate_average(items: Any, field: str) -> float:
    """Mean of ``field`` across items, ignoring missing, NaN and non-numeric values.

    Returns 0 when nothing usable is present.
    """
    values = _values(items, field)
    if not values:
        return 0
    return sum(values) / len(values)


def calculate_range(items: Any, field: str) -> Dict[str, float]:
    """Min/max of ``field`` across items; ``{"min": 0, "max": 0}`` when empty."""
    values = _values(items, field)
    if not values:
        return {"min": 0, "max": 0}
    return {"min": min(values), "max": max(values)}


def _first(*values: Any) -> Any:
    """First truthy value, else the last one."""
    for value in values:
        if value:
            return value
    return values[-1] if values else None


def _sub(record: Payload, key: str) -> Payload:
    value = record.get(key)
    return value if isinstance(value, dict) else {}


def _has_keys(value: Any, keys: tuple) -> bool:
    return isinstance(value, dict) and all(key in value for key in keys)


def flatten_sales_comparable(comp: Any) -> Any:
    """Lift fields out of the nested transaction/pricing/characteristics objects.

    Records without any nested sub-object are returned unchanged. The nested
    sub-objects themselves are kept.
    """
    if not isinstance(comp, dict) or not any(key in comp for key in _NESTED_SALE_KEYS):
        return comp

    transaction = _sub(comp, "transactionDetails")
    pricing = _sub(comp, "pricingMetrics")
    characteristics = _sub(comp, "propertyCharacteristics")
    performance = _sub(comp, "financialPerformance")
    parties = _sub(comp, "transactionParties")

    flat = {
        "propertyAddress": _first(
            comp.get("propertyAddress"), characteristics.get("propertyAddress"), "N/A"
        ),
        "propertyType": _first(characteristics.get("propertyType"), comp.get("propertyType"), "N/A"),
        "saleDate": _first(transaction.get("saleDate"), comp.get("saleDate"), ""),
        "salePrice": _first(transaction.get("salePrice"), comp.get("salePrice"), 0),
        "pricePerSF": _first(pricing.get("pricePerSquareFoot"), comp.get("pricePerSF"), 0),
        "pricePerUnit": _first(pricing.get("pricePerUnit"), comp.get("pricePerUnit")),
        "buildingSize": _first(
            characteristics.get("totalBuildingSquareFeet"), comp.get("buildingSize"), 0
        ),
        "landSize": _first(characteristics.get("landAreaSquareFeet"), comp.get("landSize")),
        "yearBuilt": _first(characteristics.get("yearBuilt"), comp.get("yearBuilt")),
        "yearRenovated": _first(characteristics.get("yearRenovated"), comp.get("yearRenovated")),
        "occupancyAtSale": _first(
            performance.get("occupancyRateAtSale"), comp.get("occupancyAtSale"), 0
        ),
        "capRate": _first(performance.get("capRateAtSale"), comp.get("capRate")),
        "noiAtSale": _first(performance.get("noiAtSale"), comp.get("noiAtSale")),
        "buyer": _first(parties.get("buyerName"), comp.get("buyer")),
        "seller": _first(parties.get("sellerName"), comp.get("seller")),
    }
    return {**comp, **{key: value for key, value in flat.items() if value is not None}}


def normalize_broker_sales_comparables(data: Payload) -> Payload:
    comparables = data.get("comparables")
    source = comparables if isinstance(comparables, list) else data.get("comparableSales")
    flattened = [flatten_sales_comparable(comp) for comp in source] if isinstance(source, list) else []

    summary = data.get("summary")
    if not _has_keys(summary, SALES_SUMMARY_KEYS):
        market = _sub(data, "marketAnalysis")
        pricing = _sub(market, "pricingAnalysis")
        cap_rates = _sub(market, "capRateAnalysis")
        computed = {
            "averagePricePerSF": _first(
                pricing.get("averagePricePerSF"), calculate_average(flattened, "pricePerSF")
            ),
            "averageCapRate": _first(
                cap_rates.get("averageCapRate"), calculate_average(flattened, "capRate")
            ),
            "priceRange": _first(
                pricing.get("pricePerSFRange"), calculate_range(flattened, "pricePerSF")
            ),
        }
        summary = {**computed, **summary} if isinstance(summary, dict) else computed

    return {**data, "comparables": flattened, "summary": summary}


def normalize_broker_lease_comparables(data: Payload) -> Payload:
    comparables = data.get("comparables")
    if isinstance(comparables, list) and _has_keys(data.get("summary"), LEASE_SUMMARY_KEYS):
        return data

    comparables = comparables if isinstance(comparables, list) else []
    summary = data.get("summary")
    if not _has_keys(summary, LEASE_SUMMARY_KEYS):
        computed = {
            "averageBaseRent": calculate_average(comparables, "baseRent"),
            "averageEffectiveRent": calculate_average(comparables, "effectiveRent"),
            "rentRange": calculate_range(comparables, "baseRent"),
        }
        summary = {**computed, **summary} if isinstance(summary, dict) else computed

    return {**data, "comparables": comparables, "summary": summary}


OFFERING_MEMO_DEFAULTS: Payload = {
    "propertyOverview": {"name": "", "address": "", "propertyType": "", "totalSquareFeet": 0},
    "investmentHighlights": [],
    "marketOverview": "",
    "rentRollSummary": {"totalUnits": 0, "occupancyRate": 0, "averageRent": 0},
    "operatingStatement": {"grossIncome": 0, "operatingExpenses": 0, "noi": 0},
    "leaseTerms": [],
    "comparables": [],
    "pricing": {"askingPrice": 0},
    "locationData": {"neighborhood": ""},
}

FINANCIAL_STATEMENTS_DEFAULTS: Payload = {
    "period": "",
    "operatingIncome": {
        "rentalIncome": 0,
        "otherIncome": 0,
        "totalIncome": 0,
        "vacancyLoss": 0,
        "effectiveGrossIncome": 0,
    },
    "operatingExpenses": {
        "propertyTaxes": 0,
        "insurance": 0,
        "utilities": 0,
        "maintenance": 0,
        "management": 0,
        "professionalFees": 0,
        "otherExpenses": 0,
        "totalExpenses": 0,
    },
    "noi": 0,
}


def _fill_defaults(data: Payload, defaults: Payload) -> Payload:
    result = dict(data)
    for key, default in defaults.items():
        value = data.get(key)
        if value is None:
            result[key] = copy.deepcopy(default)
        elif isinstance(default, dict) and isinstance(value, dict):
            result[key] = {**default, **value}
    return result


def normalize_offering_memo(data: Payload) -> Payload:
    return _fill_defaults(data, OFFERING_MEMO_DEFAULTS)


def normalize_financial_statements(data: Payload) -> Payload:
    return _fill_defaults(data, FINANCIAL_STATEMENTS_DEFAULTS)


_RULES: Dict[str, Callable[[Payload], Payload]] = {
    DocumentType.BROKER_SALES_COMPARABLES.value: normalize_broker_sales_comparables,
    DocumentType.BROKER_LEASE_COMPARABLES.value: normalize_broker_lease_comparables,
    DocumentType.OFFERING_MEMO.value: normalize_offering_memo,
    DocumentType.FINANCIAL_STATEMENTS.value: normalize_financial_statements,
}


def normalize(document_type: Union[DocumentType, str, None], payload: Any) -> Any:
    """Reshape a type-specific ``data`` payload into its canonical form.

    Never raises: unexpected shapes pass through unchanged.
    """
    key = document_type.value if isinstance(document_type, DocumentType) else document_type
    rule = _RULES.get(key) if key else None
    if rule is None or not isinstance(payload, dict):
        return payload
    try:
        return rule(payload)
    except (TypeError, ValueError, AttributeError, KeyError) as e:
        LOGGER.warning(
            f"Normalization failed for {key}, passing payload through",
            extra={"error": str(e)},
        )
        return payload


def transform_extracted_data(extracted: Payload) -> AnyExtraction:
    """Normalize an extraction and validate it into its typed variant.

    Payloads that do not fit their declared variant come back as
    ``GenericExtraction`` carrying the normalized dict.
    """
    if not isinstance(extracted, dict):
        return GenericExtraction(data=extracted)

    document_type = extracted.get("documentType")
    normalized = {**extracted, "data": normalize(document_type, extracted.get("data"))}

    try:
        return EXTRACTED_DOCUMENT_ADAPTER.validate_python(normalized)
    except PydanticValidationError as e:
        LOGGER.warning(
            f"Extraction for {document_type} does not match its schema, using generic shape",
            extra={"errors": e.error_count()},
        )
        return GenericExtraction.model_validate(
            {**normalized, "documentType": str(document_type or "unknown")}
        )
