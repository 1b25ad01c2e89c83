"""
Data models for premium users and gift codes.
"""

from typing import Dict, Any, List, Optional, TypeVar, Union
from datetime import datetime

from pydantic import BaseModel, Field

ModelT = TypeVar("ModelT", bound=BaseModel)


class PremiumUser(BaseModel):
    """Premium entitlement record for a user."""
    id: str = Field(..., description="External user identity")
    tier: str = Field(..., description="Configured tier name")
    expires_at: Optional[datetime] = Field(None, description="When the tier lapses; None means permanent")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Open key-value bag")
    created_at: Optional[datetime] = Field(None, description="Set by the storage driver")
    updated_at: Optional[datetime] = Field(None, description="Set by the storage driver")


class UserUpdate(BaseModel):
    """Full replacement payload for a user's entitlement."""
    tier: str = Field(..., description="Configured tier name")
    expires_at: Optional[datetime] = Field(None, description="When the tier lapses; None means permanent")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Replaces existing metadata")


class GiftCode(BaseModel):
    """Redeemable gift code record."""
    code: str
    tier: str
    duration: Optional[str] = Field(None, description="Duration granted on redemption, e.g. '30d'")
    max_uses: int = Field(1, ge=1)
    used_count: int = Field(0, ge=0)
    disabled: bool = False
    expires_at: Optional[datetime] = Field(None, description="After this instant the code cannot be redeemed")
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class GiftCodeOptions(BaseModel):
    """Options for creating a gift code."""
    tier: str = Field(..., description="Tier granted on redemption")
    duration: Optional[str] = Field(None, description="Duration granted on redemption")
    max_uses: Optional[int] = Field(None, ge=1, description="Defaults to 1")
    expires_at: Optional[datetime] = Field(None, description="Code expiration")
    metadata: Dict[str, Any] = Field(default_factory=dict)


class RedemptionResult(BaseModel):
    """Outcome of a gift code redemption."""
    success: bool
    tier: str = ""
    expires_at: Optional[datetime] = None
    error: Optional[str] = None

    @classmethod
    def failure(cls, reason: str) -> "RedemptionResult":
        return cls(success=False, tier="", expires_at=None, error=reason)


def detached(value: Union[ModelT, List[ModelT]]) -> Union[ModelT, List[ModelT]]:
    """Deep copy of a record or list of records passing through the cache."""
    if isinstance(value, list):
        return [item.model_copy(deep=True) for item in value]
    return value.model_copy(deep=True)
