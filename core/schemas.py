"""Validation schemas for records written by external collaborators."""
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator


class CommunicationCreate(BaseModel):
    """Validated broadcast history entry."""

    recipient_type: Literal["all", "active", "specific"] = Field(
        ..., description="Audience of the broadcast"
    )
    recipient_count: int = Field(default=0, ge=0, description="Number of recipients reached")
    selected_tenants: Optional[List[str]] = Field(
        default=None, description="Recipient user IDs (only for recipient_type='specific')"
    )
    subject: str = Field(..., min_length=1, max_length=255, description="Email subject")
    message: str = Field(..., min_length=1, description="Email body")

    @model_validator(mode="after")
    def validate_selected_tenants(self) -> "CommunicationCreate":
        """Selected tenants are required for, and only allowed with, 'specific'."""
        if self.recipient_type == "specific":
            if not self.selected_tenants:
                raise ValueError("selected_tenants is required when recipient_type is 'specific'")
        elif self.selected_tenants:
            raise ValueError("selected_tenants is only allowed when recipient_type is 'specific'")
        else:
            self.selected_tenants = None
        return self


class VirtualAccountCreate(BaseModel):
    """Validated virtual account as issued by the provider."""

    user_id: UUID = Field(..., description="Owner user ID")
    account_number: str = Field(..., min_length=10, max_length=20, description="NUBAN")
    account_name: str = Field(..., min_length=1, max_length=255)
    bank_name: str = Field(..., min_length=1, max_length=255)
    bank_type: str = Field(..., min_length=1, max_length=50)
    email: EmailStr = Field(..., description="Account holder email")
    alias: Optional[str] = Field(default=None, max_length=255)
    reference: Optional[str] = Field(default=None, max_length=255)
    status: Literal["active", "inactive"] = Field(default="active")

    @field_validator("account_number")
    @classmethod
    def validate_account_number(cls, v: str) -> str:
        """Account numbers are digits only."""
        if not v.isdigit():
            raise ValueError("Account number must contain digits only")
        return v
