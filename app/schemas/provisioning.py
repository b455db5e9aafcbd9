from __future__ import annotations

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from app.services.provisioning_service import DealerMember, ProvisionRequest


class DealerMemberIn(BaseModel):
    name: str = Field(max_length=200)
    manufacturer: str = Field(max_length=120)
    tier: str | None = Field(default=None, max_length=20)
    brands: list[str] = Field(default_factory=list)

    def to_member(self) -> DealerMember:
        return DealerMember(name=self.name, manufacturer=self.manufacturer, tier=self.tier, brands=list(self.brands))


class ProvisionCreate(BaseModel):
    name: str = Field(max_length=200)
    email: EmailStr
    role: str = Field(max_length=40)
    temp_password: str = Field(max_length=128)
    phone: str = Field(max_length=32)
    dealership_name: str | None = Field(default=None, max_length=200)
    manufacturer: str | None = Field(default=None, max_length=120)
    group_name: str | None = Field(default=None, max_length=200)
    members: list[DealerMemberIn] = Field(default_factory=list)
    num_dealerships: int | None = Field(default=None, ge=1, le=500)
    dealership_id: int | None = None

    def to_request(self) -> ProvisionRequest:
        return ProvisionRequest(
            name=self.name,
            email=str(self.email),
            role=self.role,
            temp_password=self.temp_password,
            phone=self.phone,
            dealership_name=self.dealership_name,
            manufacturer=self.manufacturer,
            group_name=self.group_name,
            members=[member.to_member() for member in self.members],
            num_dealerships=self.num_dealerships,
            dealership_id=self.dealership_id,
        )


class ProvisionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    success: bool
    dealership_id: int | None = None
    user_id: str | None = None
    schema_name: str | None = None
    warnings: list[str] = Field(default_factory=list)
    needs_manual_admin_assignment: bool = False
    updated_existing_user: bool = False
    reused_dealership: bool = False
    duplicate_name_detected: bool = False
    is_degraded: bool = False
    failed_stage: str | None = None
    error: str | None = None
