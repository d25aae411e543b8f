"""Request/response schemas for the HTTP surface."""
from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from followup.models.models import LedgerKind

Language = Literal["sk", "en", "cs", "de", "pl", "hu", "es"]
TemplateType = Literal["generic", "meeting", "quote", "cold", "reminder", "thankyou"]


class SubmitRequest(BaseModel):
    """Validated once at the boundary; the workflow never re-checks fields."""

    name: str = Field(..., min_length=1, max_length=120)
    email: EmailStr
    business_type: str = Field(..., min_length=1, max_length=120)
    language: Language
    client_info: str = Field(..., min_length=1, max_length=5000)
    client_name: str | None = Field(default=None, max_length=120)
    template_type: TemplateType = "generic"

    @field_validator("name", "business_type", "client_info", mode="before")
    @classmethod
    def strip_required(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("client_name", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v.strip() if isinstance(v, str) else v


class SubmitResponse(BaseModel):
    """Caller-facing result of one submission attempt."""

    model_config = ConfigDict(populate_by_name=True)

    status: Literal["allowed", "payment_required"]
    is_free_trial_used: bool = Field(serialization_alias="isFreeTrialUsed")
    remaining_credits: int = Field(serialization_alias="remainingCredits")
    submission_id: int | None = Field(default=None, serialization_alias="submissionId")
    submission_status: str | None = Field(default=None, serialization_alias="submissionStatus")
    message: str | None = None


class BalanceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    email: str
    credits: int
    free_trial_used: bool
    total_followups_created: int
    total_spent: Decimal


class LedgerEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    delta: int
    balance_after: int
    kind: LedgerKind
    reference_id: str | None = None
    description: str | None = None
    created_at: dt.datetime | None = None


class PackageOut(BaseModel):
    package_type: str
    price: Decimal
    credits: int


class WebhookAck(BaseModel):
    received: bool = True
    status: str
    balance: int | None = None
    credits_granted: int | None = None
