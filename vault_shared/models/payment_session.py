"""
PaymentSession model: a read-only view of a checkout session record
returned by the payment processor.
"""

from enum import Enum
from typing import Optional, Dict
from pydantic import BaseModel, ConfigDict, Field, field_validator


class PaymentStatus(str, Enum):
    """Checkout session payment status values reported by the processor."""
    PAID = "paid"
    UNPAID = "unpaid"
    NO_PAYMENT_REQUIRED = "no_payment_required"


class PaymentSession(BaseModel):
    """
    Snapshot of a checkout session.

    Attributes:
        id: Checkout session identifier (cs_test_... / cs_live_...)
        payment_status: Payment status string as reported by the processor
        metadata: Server-side key/value metadata attached at checkout time
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: Optional[str] = Field(None, description="Checkout session identifier")
    payment_status: Optional[str] = Field(None, description="Payment status")
    metadata: Dict[str, str] = Field(default_factory=dict, description="Checkout metadata")

    @field_validator("id", "payment_status", mode="before")
    @classmethod
    def _drop_non_string(cls, value):
        # Anything but a string is never "paid"
        return value if isinstance(value, str) else None

    @field_validator("metadata", mode="before")
    @classmethod
    def _coerce_metadata(cls, value):
        if not isinstance(value, dict):
            return {}
        return {str(k): "" if v is None else str(v) for k, v in value.items()}

    @property
    def is_paid(self) -> bool:
        """Whether the session represents a completed payment."""
        return self.payment_status == PaymentStatus.PAID.value

    @property
    def product_slug(self) -> Optional[str]:
        """Product slug pinned at checkout, or None when absent or empty."""
        return self.metadata.get("product_slug") or None
