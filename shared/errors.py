"""
Shared error handling for the premium tiers system.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = {}


class PremiumError(Exception):
    """Base exception for the premium tiers system."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details
        )


class ConfigurationError(PremiumError):
    """Invalid or missing configuration."""

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_INVALID", message, details)


class TierError(PremiumError):
    """Unknown tier name."""

    def __init__(self, tier: str, details: Optional[Dict[str, Any]] = None):
        self.tier = tier
        super().__init__("TIER_INVALID", f"Invalid tier: {tier}", details)


class FeatureError(PremiumError):
    """Unknown feature name."""

    def __init__(self, feature: str, details: Optional[Dict[str, Any]] = None):
        self.feature = feature
        super().__init__("FEATURE_INVALID", f"Invalid feature: {feature}", details)


class DurationFormatError(PremiumError):
    """Malformed duration string."""

    def __init__(self, value: str, details: Optional[Dict[str, Any]] = None):
        self.value = value
        message = (
            f"Invalid time format: {value!r}. "
            "Expected format like '30d', '24h', '60m', '30s' or '1d12h30m'"
        )
        super().__init__("DURATION_FORMAT_INVALID", message, details)


class GiftCodeError(PremiumError):
    """Gift code operation errors."""

    def __init__(self, message: str = "Gift code error", details: Optional[Dict[str, Any]] = None):
        super().__init__("GIFT_CODE_ERROR", message, details)


class GiftCodeCollisionError(GiftCodeError):
    """A generated gift code already exists in the store."""

    def __init__(self, code: str):
        self.gift_code = code
        super().__init__(f"Gift code already exists: {code}", {"code": code})


class StorageError(PremiumError):
    """Storage backend errors."""

    def __init__(self, message: str = "Storage error", details: Optional[Dict[str, Any]] = None):
        super().__init__("STORAGE_ERROR", message, details)


class StorageUnavailableError(PremiumError):
    """Storage backend is not ready."""

    def __init__(self, message: str = "Database not initialized", details: Optional[Dict[str, Any]] = None):
        super().__init__("STORAGE_UNAVAILABLE", message, details)
