from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from app.schemas.provisioning import DealerMemberIn, ProvisionResponse


class SignupRequestCreate(BaseModel):
    dealership_name: str | None = Field(default=None, max_length=200)
    contact_person: str = Field(min_length=1, max_length=200)
    email: EmailStr
    phone: str | None = Field(default=None, max_length=32)
    tier: str = Field(max_length=32)
    dealership_count: int | None = Field(default=None, ge=1, le=500)


class SignupRequestRead(BaseModel):
    id: str
    dealership_name: str | None = None
    contact_person: str
    email: str
    phone: str | None = None
    tier: str
    dealership_count: int | None = None
    status: str
    rejection_reason: str | None = None
    processed_at: datetime | None = None
    processed_by: str | None = None
    dealership_id: int | None = None
    created_at: datetime | None = None


class SignupApproveRequest(BaseModel):
    admin_email: EmailStr | None = None
    admin_name: str | None = Field(default=None, max_length=200)
    phone: str | None = Field(default=None, max_length=32)
    temp_password: str | None = Field(default=None, max_length=128)
    members: list[DealerMemberIn] = Field(default_factory=list)
    dealership_count: int | None = Field(default=None, ge=1, le=500)


class SignupRejectRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=2000)


class SignupApprovalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    request_id: str
    approved: bool
    status: str
    provision: ProvisionResponse | None = None
    error: str | None = None
    warnings: list[str] = Field(default_factory=list)
