"""
Custom exceptions for quota enforcement and tier management.
"""

from typing import Optional, Dict, Any


class QuotaError(Exception):
    """Base exception for quota errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class UnknownTier(QuotaError):
    """
    Raised when a tier name does not resolve in the catalog.

    On the admission path this is a data-integrity fault: the ledger row
    references a tier that was never seeded or has been renamed.
    """

    def __init__(self, tier_name: Optional[str], user_id: Optional[str] = None):
        self.tier_name = tier_name
        self.user_id = user_id
        details: Dict[str, Any] = {"tier_name": tier_name}
        if user_id:
            details["user_id"] = user_id
        super().__init__(
            message=f"Subscription tier not found: {tier_name!r}",
            details=details,
        )


class StorageUnavailable(QuotaError):
    """Raised when the usage store cannot be reached (transient)."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        reason = f"{type(cause).__name__}: {cause}" if cause else "unknown error"
        super().__init__(
            message=f"Usage store unavailable during {operation} ({reason})",
            details={"operation": operation},
        )


class InvalidAllowance(QuotaError):
    """Raised when a tier is written with a negative, non-sentinel allowance."""

    def __init__(self, tier_name: str, allowance: int):
        self.tier_name = tier_name
        self.allowance = allowance
        super().__init__(
            message=f"Invalid monthly allowance for tier {tier_name}: {allowance}",
            details={"tier_name": tier_name, "allowance": allowance},
        )


class QuotaExceededException(QuotaError):
    """
    Raised when a user has used their monthly message allowance.

    Contains details needed for HTTP 402 response with upgrade CTA.
    """

    def __init__(
        self,
        user_id: str,
        tier_name: str,
        messages_used: int,
        limit: int,
        upgrade_tier: Optional[str] = None,
        upgrade_message: Optional[str] = None,
        upgrade_url: Optional[str] = None,
    ):
        self.user_id = user_id
        self.tier_name = tier_name
        self.messages_used = messages_used
        self.limit = limit
        self.upgrade_tier = upgrade_tier
        self.upgrade_message = upgrade_message
        self.upgrade_url = upgrade_url

        super().__init__(
            message=f"Monthly message limit reached. Used: {messages_used:,} / {limit:,}",
            details={
                "user_id": user_id,
                "tier": tier_name,
                "messages_used": messages_used,
                "limit": limit,
                "upgrade_tier": upgrade_tier,
            },
        )

    def to_response_dict(self) -> Dict[str, Any]:
        """Convert to HTTP 402 response body."""
        response = {
            "error": "message_limit_exceeded",
            "tier": self.tier_name,
            "messages_used": self.messages_used,
            "limit": self.limit,
            "message": self.message,
        }

        if self.upgrade_tier:
            response["upgrade"] = {
                "tier": self.upgrade_tier,
                "message": self.upgrade_message or f"Upgrade to {self.upgrade_tier.title()} for unlimited messages",
                "url": self.upgrade_url or f"/settings/billing?upgrade={self.upgrade_tier}",
            }

        return response


__all__ = [
    "QuotaError",
    "UnknownTier",
    "StorageUnavailable",
    "InvalidAllowance",
    "QuotaExceededException",
]
