"""Document inputs, enumerations and classification results."""

import base64
import re
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cre_docs.core.exceptions import ValidationError


class DocumentType(str, Enum):
    """Commercial real-estate document categories."""

    RENT_ROLL = "rent_roll"
    OPERATING_BUDGET = "operating_budget"
    BROKER_SALES_COMPARABLES = "broker_sales_comparables"
    BROKER_LEASE_COMPARABLES = "broker_lease_comparables"
    BROKER_LISTING = "broker_listing"
    OFFERING_MEMO = "offering_memo"
    LEASE_AGREEMENT = "lease_agreement"
    FINANCIAL_STATEMENTS = "financial_statements"
    # Deprecated aliases kept for stored records
    COMPARABLE_SALES = "comparable_sales"
    FINANCIAL_STATEMENT = "financial_statement"
    UNKNOWN = "unknown"

    @classmethod
    def primary_types(cls) -> List["DocumentType"]:
        """The eight categories the classifier chooses from."""
        return [
            cls.RENT_ROLL,
            cls.OPERATING_BUDGET,
            cls.BROKER_SALES_COMPARABLES,
            cls.BROKER_LEASE_COMPARABLES,
            cls.BROKER_LISTING,
            cls.OFFERING_MEMO,
            cls.LEASE_AGREEMENT,
            cls.FINANCIAL_STATEMENTS,
        ]

    @classmethod
    def is_valid(cls, value: str) -> bool:
        return value in cls._value2member_map_


class ProcessingStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class VerificationStatus(str, Enum):
    UNVERIFIED = "unverified"
    IN_REVIEW = "in_review"
    VERIFIED = "verified"
    REJECTED = "rejected"


class DatasetSplit(str, Enum):
    TRAIN = "train"
    VALIDATION = "validation"
    TEST = "test"


class DeploymentStatus(str, Enum):
    INACTIVE = "inactive"
    TESTING = "testing"
    ACTIVE = "active"
    ARCHIVED = "archived"


class VerificationAction(str, Enum):
    VERIFY = "verify"
    REJECT = "reject"


_DATA_URL_PATTERN = re.compile(r"^data:(image/[a-z]+);base64,(.+)$", re.DOTALL)

SUPPORTED_IMAGE_TYPES = ("image/png", "image/jpeg", "image/gif", "image/webp")


class PageImage(BaseModel):
    """A single rasterized page, base64 encoded without a data URL prefix."""

    data: str = Field(..., description="Base64 image payload")
    media_type: str = Field(..., description="Image MIME type, e.g. image/png")
    page_number: Optional[int] = Field(default=None, description="1-based page number")

    @classmethod
    def from_data_url(cls, data_url: str, page_number: Optional[int] = None) -> "PageImage":
        """Build a page image from a ``data:image/...;base64,`` URL.

        Raises:
            ValidationError: If the URL is not a base64 image data URL.
        """
        match = _DATA_URL_PATTERN.match(data_url.strip())
        if not match:
            suffix = f" for page {page_number}" if page_number else ""
            raise ValidationError(f"Invalid image data URL format{suffix}")
        return cls(data=match.group(2), media_type=match.group(1), page_number=page_number)

    @classmethod
    def from_bytes(
        cls, content: bytes, media_type: str, page_number: Optional[int] = None
    ) -> "PageImage":
        return cls(
            data=base64.b64encode(content).decode("ascii"),
            media_type=media_type,
            page_number=page_number,
        )

    def to_data_url(self) -> str:
        return f"data:{self.media_type};base64,{self.data}"


class DocumentFile(BaseModel):
    """Uploaded file as received from the caller."""

    name: str
    mime_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def is_multi_page_bundle(self) -> bool:
        return self.mime_type == "application/json" and "multipage" in self.name


class BundlePage(BaseModel):
    """One page of a client-side rasterized document."""

    model_config = ConfigDict(populate_by_name=True)

    image_base64: str = Field(..., alias="imageBase64")
    mime_type: str = Field(default="image/png", alias="mimeType")
    page_number: Optional[int] = Field(default=None, alias="pageNumber")


class MultiPageBundle(BaseModel):
    """Explicit multi-page marker object produced by client-side PDF rasterization."""

    type: Literal["multi-page"]
    pages: List[BundlePage] = Field(..., min_length=1)

    def to_page_images(self) -> List[PageImage]:
        return [
            PageImage(
                data=page.image_base64,
                media_type=page.mime_type,
                page_number=page.page_number or index + 1,
            )
            for index, page in enumerate(self.pages)
        ]


class Classification(BaseModel):
    """Classification triple returned by the model."""

    type: DocumentType
    confidence: float = Field(..., ge=0.0, le=1.0)
    reasoning: str = Field(..., min_length=1)

    @field_validator("type", mode="before")
    @classmethod
    def _lowercase_type(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value
