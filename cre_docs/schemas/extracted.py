"""Typed extraction results, one variant per document type.

The variants are discriminated on ``documentType``. Leaf values stay lenient
because the model may emit "N/A" where a number is expected, and unknown keys
are kept so that nothing the model returned is lost.
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

Scalar = Optional[Union[str, int, float, bool]]
Numeric = Optional[Union[int, float, str]]


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


class ValueRange(_Record):
    min: Numeric = None
    max: Numeric = None


class ExtractionMetadata(_Record):
    property_name: Scalar = None
    property_address: Scalar = None
    total_square_feet: Numeric = None
    total_units: Numeric = None
    extracted_date: Scalar = None


# Rent roll

class RentRollTenant(_Record):
    tenant_name: Scalar = None
    suite_unit: Scalar = None
    lease_start: Scalar = None
    lease_end: Scalar = None
    rent_commencement_date: Scalar = None
    base_rent: Numeric = None
    rent_escalations: Scalar = None
    lease_type: Scalar = None
    cam_reimbursements: Numeric = None
    security_deposit: Numeric = None
    renewal_options: Scalar = None
    free_rent_concessions: Scalar = None
    square_footage: Numeric = None
    occupancy_status: Scalar = None


class RentRollSummary(_Record):
    total_rent: Numeric = None
    occupancy_rate: Numeric = None
    total_square_feet: Numeric = None
    average_rent_psf: Numeric = None
    total_units: Numeric = None
    vacant_units: Numeric = None


class RentRollData(_Record):
    tenants: List[RentRollTenant] = Field(default_factory=list)
    summary: Optional[RentRollSummary] = None


# Operating budget

class BudgetIncome(_Record):
    gross_rental_income: Numeric = None
    vacancy_allowance: Numeric = None
    effective_gross_income: Numeric = None
    other_income: Numeric = None
    total_income: Numeric = None


class BudgetExpenses(_Record):
    property_taxes: Numeric = None
    insurance: Numeric = None
    utilities: Numeric = None
    maintenance: Numeric = None
    management: Numeric = None
    marketing: Numeric = None
    total_operating_expenses: Numeric = None


class OperatingBudgetData(_Record):
    period: Scalar = None
    income: Optional[BudgetIncome] = None
    expenses: Optional[BudgetExpenses] = None
    noi: Numeric = None
    capex_forecast: Numeric = None
    cash_flow: Numeric = None


# Broker sales comparables

class SalesComparable(_Record):
    property_address: Scalar = None
    property_type: Scalar = None
    sale_date: Scalar = None
    sale_price: Numeric = None
    price_per_sf: Numeric = Field(default=None, alias="pricePerSF")
    price_per_unit: Numeric = None
    building_size: Numeric = None
    land_size: Numeric = None
    year_built: Numeric = None
    year_renovated: Numeric = None
    occupancy_at_sale: Numeric = None
    cap_rate: Numeric = None
    noi_at_sale: Numeric = None
    buyer: Scalar = None
    seller: Scalar = None


class SalesComparablesSummary(_Record):
    average_price_per_sf: Numeric = Field(default=None, alias="averagePricePerSF")
    average_cap_rate: Numeric = None
    price_range: Optional[ValueRange] = None


class BrokerSalesComparablesData(_Record):
    comparables: List[SalesComparable] = Field(default_factory=list)
    summary: Optional[SalesComparablesSummary] = None


# Broker lease comparables

class LeaseComparable(_Record):
    property_address: Scalar = None
    property_type: Scalar = None
    lease_commencement_date: Scalar = None
    tenant_industry: Scalar = None
    lease_term: Numeric = None
    square_footage: Numeric = None
    base_rent: Numeric = None
    rent_escalations: Scalar = None
    lease_type: Scalar = None
    concessions: Scalar = None
    effective_rent: Numeric = None


class LeaseComparablesSummary(_Record):
    average_base_rent: Numeric = None
    average_effective_rent: Numeric = None
    rent_range: Optional[ValueRange] = None


class BrokerLeaseComparablesData(_Record):
    comparables: List[LeaseComparable] = Field(default_factory=list)
    summary: Optional[LeaseComparablesSummary] = None


# Broker listing

class ListingDetails(_Record):
    property_owner: Scalar = None
    broker_firm: Scalar = None
    broker_name: Scalar = None
    listing_price: Numeric = None
    asking_rent: Numeric = None
    listing_type: Scalar = None
    commission_structure: Scalar = None
    listing_term: Scalar = None
    listing_date: Scalar = None
    expiration_date: Scalar = None


class ListingPropertyDetails(_Record):
    address: Scalar = None
    property_type: Scalar = None
    square_footage: Numeric = None
    lot_size: Numeric = None
    year_built: Numeric = None
    parking: Scalar = None
    zoning: Scalar = None


class BrokerListingData(_Record):
    listing_details: Optional[ListingDetails] = None
    property_details: Optional[ListingPropertyDetails] = None
    broker_duties: List[Scalar] = Field(default_factory=list)
    termination_provisions: List[Scalar] = Field(default_factory=list)


# Offering memorandum

class PropertyOverview(_Record):
    name: Scalar = None
    address: Scalar = None
    property_type: Scalar = None
    year_built: Numeric = None
    total_square_feet: Numeric = None
    lot_size: Numeric = None


class RentRollOverview(_Record):
    total_units: Numeric = None
    occupancy_rate: Numeric = None
    average_rent: Numeric = None


class OperatingStatement(_Record):
    gross_income: Numeric = None
    operating_expenses: Numeric = None
    noi: Numeric = None


class MemoComparable(_Record):
    address: Scalar = None
    sale_price: Numeric = None
    cap_rate: Numeric = None


class Pricing(_Record):
    asking_price: Numeric = None
    cap_rate: Numeric = None
    price_per_sf: Numeric = Field(default=None, alias="pricePerSF")


class LocationData(_Record):
    neighborhood: Scalar = None
    demographics: Scalar = None
    transportation: Scalar = None


class OfferingMemoData(_Record):
    property_overview: PropertyOverview = Field(default_factory=PropertyOverview)
    investment_highlights: List[Scalar] = Field(default_factory=list)
    market_overview: Scalar = ""
    rent_roll_summary: RentRollOverview = Field(default_factory=RentRollOverview)
    operating_statement: OperatingStatement = Field(default_factory=OperatingStatement)
    lease_terms: List[Scalar] = Field(default_factory=list)
    comparables: List[MemoComparable] = Field(default_factory=list)
    pricing: Pricing = Field(default_factory=Pricing)
    location_data: LocationData = Field(default_factory=LocationData)


# Lease agreement

class LeaseParties(_Record):
    tenant: Scalar = None
    landlord: Scalar = None


class LeasePremises(_Record):
    property_address: Scalar = None
    square_feet: Numeric = None
    description: Scalar = None


class LeaseTerm(_Record):
    start_date: Scalar = None
    end_date: Scalar = None
    term_months: Numeric = None


class RentSchedule(_Record):
    base_rent: Numeric = None
    rent_escalations: Scalar = None
    rent_per_sq_ft: Numeric = None


class LeaseOperatingExpenses(_Record):
    responsibility_type: Scalar = None
    cam_charges: Numeric = None
    utilities: Scalar = None
    taxes: Scalar = None
    insurance: Scalar = None


class MaintenanceObligations(_Record):
    landlord: List[Scalar] = Field(default_factory=list)
    tenant: List[Scalar] = Field(default_factory=list)


class LeaseAgreementData(_Record):
    parties: Optional[LeaseParties] = None
    premises: Optional[LeasePremises] = None
    lease_term: Optional[LeaseTerm] = None
    rent_schedule: Optional[RentSchedule] = None
    operating_expenses: Optional[LeaseOperatingExpenses] = None
    security_deposit: Numeric = None
    renewal_options: Union[List[Scalar], Scalar] = None
    maintenance_obligations: Optional[MaintenanceObligations] = None
    assignment_provisions: Scalar = None
    default_remedies: List[Scalar] = Field(default_factory=list)
    insurance_requirements: List[Scalar] = Field(default_factory=list)


# Financial statements

class OperatingIncome(_Record):
    rental_income: Numeric = 0
    other_income: Numeric = 0
    total_income: Numeric = 0
    vacancy_loss: Numeric = 0
    effective_gross_income: Numeric = 0


class StatementExpenses(_Record):
    property_taxes: Numeric = 0
    insurance: Numeric = 0
    utilities: Numeric = 0
    maintenance: Numeric = 0
    management: Numeric = 0
    professional_fees: Numeric = 0
    other_expenses: Numeric = 0
    total_expenses: Numeric = 0


class Assets(_Record):
    real_estate: Numeric = None
    cash: Numeric = None
    other_assets: Numeric = None
    total_assets: Numeric = None


class Liabilities(_Record):
    mortgage: Numeric = None
    other_liabilities: Numeric = None
    total_liabilities: Numeric = None


class BalanceSheet(_Record):
    assets: Optional[Assets] = None
    liabilities: Optional[Liabilities] = None
    equity: Numeric = None


class Capex(_Record):
    current_year: Numeric = None
    forecast: List[Numeric] = Field(default_factory=list)


class FinancialStatementsData(_Record):
    period: Scalar = ""
    operating_income: OperatingIncome = Field(default_factory=OperatingIncome)
    operating_expenses: StatementExpenses = Field(default_factory=StatementExpenses)
    noi: Numeric = 0
    debt_service: Numeric = None
    cash_flow: Numeric = None
    balance_sheet: Optional[BalanceSheet] = None
    capex: Optional[Capex] = None


# Deprecated shapes

class LegacyComparableProperty(_Record):
    address: Scalar = None
    sale_price: Numeric = None
    sale_date: Scalar = None
    square_feet: Numeric = None
    price_per_sq_ft: Numeric = None
    property_type: Scalar = None
    year_built: Numeric = None


class ComparableSalesData(_Record):
    properties: List[LegacyComparableProperty] = Field(default_factory=list)


class LegacyRevenue(_Record):
    gross_rent: Numeric = None
    other_income: Numeric = None
    total_revenue: Numeric = None


class LegacyExpenses(_Record):
    operating_expenses: Numeric = None
    maintenance: Numeric = None
    insurance: Numeric = None
    taxes: Numeric = None
    utilities: Numeric = None
    management: Numeric = None
    total_expenses: Numeric = None


class FinancialStatementData(_Record):
    period: Scalar = None
    revenue: Optional[LegacyRevenue] = None
    expenses: Optional[LegacyExpenses] = None
    net_operating_income: Numeric = None


# Variants

class _Extraction(_Record):
    metadata: ExtractionMetadata = Field(default_factory=ExtractionMetadata)

    def to_payload(self) -> Dict[str, Any]:
        """Serialize back to the camelCase wire shape."""
        return self.model_dump(by_alias=True, exclude_unset=True, mode="json")


class RentRollExtraction(_Extraction):
    document_type: Literal["rent_roll"]
    data: RentRollData


class OperatingBudgetExtraction(_Extraction):
    document_type: Literal["operating_budget"]
    data: OperatingBudgetData


class BrokerSalesComparablesExtraction(_Extraction):
    document_type: Literal["broker_sales_comparables"]
    data: BrokerSalesComparablesData


class BrokerLeaseComparablesExtraction(_Extraction):
    document_type: Literal["broker_lease_comparables"]
    data: BrokerLeaseComparablesData


class BrokerListingExtraction(_Extraction):
    document_type: Literal["broker_listing"]
    data: BrokerListingData


class OfferingMemoExtraction(_Extraction):
    document_type: Literal["offering_memo"]
    data: OfferingMemoData


class LeaseAgreementExtraction(_Extraction):
    document_type: Literal["lease_agreement"]
    data: LeaseAgreementData


class FinancialStatementsExtraction(_Extraction):
    document_type: Literal["financial_statements"]
    data: FinancialStatementsData


class ComparableSalesExtraction(_Extraction):
    document_type: Literal["comparable_sales"]
    data: ComparableSalesData


class FinancialStatementExtraction(_Extraction):
    document_type: Literal["financial_statement"]
    data: FinancialStatementData


class GenericExtraction(_Extraction):
    """Passthrough for payloads that do not fit their declared variant."""

    document_type: str = "unknown"
    metadata: Any = None
    data: Any = None


ExtractedDocument = Annotated[
    Union[
        RentRollExtraction,
        OperatingBudgetExtraction,
        BrokerSalesComparablesExtraction,
        BrokerLeaseComparablesExtraction,
        BrokerListingExtraction,
        OfferingMemoExtraction,
        LeaseAgreementExtraction,
        FinancialStatementsExtraction,
        ComparableSalesExtraction,
        FinancialStatementExtraction,
    ],
    Field(discriminator="document_type"),
]

AnyExtraction = Union[ExtractedDocument, GenericExtraction]

EXTRACTED_DOCUMENT_ADAPTER: TypeAdapter = TypeAdapter(ExtractedDocument)
