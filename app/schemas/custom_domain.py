"""Custom domain schemas."""
from typing import List, Optional
from uuid import UUID
from datetime import datetime
from pydantic import BaseModel, Field


# ─── Requests ───

class DomainCreate(BaseModel):
    domain: str
    include_www: bool = True  # also register www.<apex> for two-label domains


# ─── Responses ───

class DomainInfo(BaseModel):
    id: UUID
    profile_id: UUID
    domain: str
    status: str
    is_primary: bool
    ssl_status: str
    dns_verified: bool
    verification_token: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class DnsRecordInstruction(BaseModel):
    type: str  # "A" | "TXT"
    name: str
    value: str
    description: str


class DnsInstructions(BaseModel):
    domain: str
    records: List[DnsRecordInstruction]


class VerificationResult(BaseModel):
    domain_id: UUID
    domain: str
    success: bool
    status: str
    dns_verified: bool
    a_record_valid: bool
    txt_record_valid: bool
    errors: List[str] = Field(default_factory=list)
    message: str
    next_step: str


class RecheckItem(BaseModel):
    domain: str
    status: str
    verified: bool


class RecheckFailure(BaseModel):
    domain: str
    error: str


class RecheckSummary(BaseModel):
    checked: int = 0
    results: List[RecheckItem] = Field(default_factory=list)
    errors: List[RecheckFailure] = Field(default_factory=list)
