from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Literal
from datetime import datetime
from decimal import Decimal


class Account(BaseModel):
    model_config = ConfigDict(frozen=True)

    accountId: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Unique account identifier"
    )
    balance: Decimal = Field(
        ...,
        ge=0,
        description="Current account balance, never negative"
    )

    @field_validator('accountId')
    @classmethod
    def validate_account_id(cls, v):
        if not v.strip():
            raise ValueError('Account ID must not be blank')
        return v


class TransferResponse(BaseModel):
    status: Literal["completed"] = Field(..., description="Transfer status")
    accountFromId: str = Field(..., description="Debited account")
    accountToId: str = Field(..., description="Credited account")
    amount: Decimal = Field(..., description="Transferred amount")
    timestamp: datetime = Field(default_factory=datetime.now, description="Transfer timestamp")


class ErrorResponse(BaseModel):
    detail: str = Field(..., description="Error description")
    error_code: str = Field(..., description="Machine-readable error code")
    timestamp: datetime = Field(default_factory=datetime.now, description="Error timestamp")


class HealthResponse(BaseModel):
    status: str = Field(..., description="Service health status")
    timestamp: datetime = Field(default_factory=datetime.now)
    accounts_count: int = Field(..., description="Number of accounts in system")
