"""
Customer record models: raw input rows and transformed, strongly-typed records.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Mapping

from pydantic import BaseModel, Field

# A row as read from the source: string keys to string values.
RawRecord = Mapping[str, str]


class RevenueTier(str, Enum):
    """Classification of a customer by annual revenue magnitude."""

    LOW = "Low"
    MID = "Mid"
    HIGH = "High"
    ENTERPRISE = "Enterprise"


class TransformedRecord(BaseModel):
    """
    A customer record that passed validation, with derived business fields.

    Only accepted records are ever represented by this type; rejected rows
    become RejectedRecord instead.

    Attributes:
        customer_id: Business key, unique within a run
        name: Customer name (whitespace trimmed)
        email: Contact email as provided
        region: Sales region
        segment: Customer segment (e.g. "SMB", "Enterprise")
        status: Account status
        signup_date: Date the customer signed up
        annual_revenue: Annual revenue, never negative
        revenue_tier: Tier derived from annual_revenue
        customer_lifetime_value: revenue x tenure factor, rounded to cents
        days_since_signup: Days between signup_date and the run date
        data_quality_score: 0-100 score computed from validation results
        processed_at: When the record was transformed
    """

    customer_id: int = Field(..., gt=0)
    name: str
    email: str
    region: str = ""
    segment: str = ""
    status: str = ""
    signup_date: date
    annual_revenue: Decimal = Field(..., ge=0)
    revenue_tier: RevenueTier
    customer_lifetime_value: Decimal = Field(..., ge=0)
    days_since_signup: int = Field(..., ge=0)
    data_quality_score: int = Field(..., ge=0, le=100)
    processed_at: datetime

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "customer_id": 1042,
                "name": "Acme Corp",
                "email": "billing@acme.example",
                "region": "EMEA",
                "segment": "Enterprise",
                "status": "active",
                "signup_date": "2024-09-14",
                "annual_revenue": "200000.00",
                "revenue_tier": "High",
                "customer_lifetime_value": "528767.12",
                "days_since_signup": 400,
                "data_quality_score": 100,
                "processed_at": "2025-10-19T06:00:00Z"
            }
        }

    def to_row(self) -> dict:
        """Flatten to a JSON-compatible dict for sinks and logs."""
        return self.model_dump(mode="json")
