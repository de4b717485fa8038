# app/x402/models.py
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from app.x402.errors import PaymentErrorCode

# Enough for any uint256 value
MAX_INTEGER_DIGITS = 78


class PaymentRequirement(BaseModel):
    """
    What a protected resource demands before it will run.

    Built fresh for every 402 response, since `resource` follows the request path.
    """
    scheme: str = Field(..., description="Payment scheme the client must sign with.")
    network: str = Field(..., description="Network the asset lives on, e.g. 'base'.")
    max_amount_required: str = Field(..., alias="maxAmountRequired", description="Price in the asset's smallest unit.")
    resource: str = Field(..., description="Path of the protected resource.")
    description: str = Field(..., description="Human readable description of what is being bought.")
    mime_type: str = Field("application/json", alias="mimeType")
    pay_to: str = Field(..., alias="payTo", description="Receiving address.")
    max_timeout_seconds: int = Field(..., alias="maxTimeoutSeconds")
    asset: str = Field(..., description="Token contract address.")
    output_schema: Optional[Dict[str, Any]] = Field(None, alias="outputSchema")
    extra: Optional[Dict[str, Any]] = None

    class Config:
        frozen = True
        populate_by_name = True


class PaymentAuthorization(BaseModel):
    """A signed transfer authorization decoded from the X-PAYMENT header."""
    scheme: str = Field(..., min_length=1)
    signature: str = Field(..., min_length=1)
    from_address: str = Field(..., alias="from", min_length=1)
    to: str = Field(..., min_length=1)
    value: str = Field(..., description="Amount in the asset's smallest unit, as an integer string.")
    valid_after: str = Field(..., alias="validAfter", description="Unix seconds.")
    valid_before: str = Field(..., alias="validBefore", description="Unix seconds.")
    nonce: str = Field(..., min_length=1)

    class Config:
        frozen = True
        populate_by_name = True

    @field_validator("value", "valid_after", "valid_before", mode="before")
    @classmethod
    def _require_integer_string(cls, v: Any) -> str:
        if isinstance(v, bool):
            raise ValueError("must be an integer string")
        if isinstance(v, int):
            v = str(v)
        if not isinstance(v, str):
            raise ValueError("must be an integer string")
        v = v.strip()
        if not (v.isascii() and v.isdigit()):
            raise ValueError("must be a non-negative integer string")
        if len(v) > MAX_INTEGER_DIGITS:
            raise ValueError(f"must have at most {MAX_INTEGER_DIGITS} digits")
        return v


class VerificationResult(BaseModel):
    """Outcome of the verification pipeline. Never partially populated."""
    valid: bool
    transaction_hash: Optional[str] = Field(None, alias="transactionHash")
    error: Optional[str] = None
    error_code: Optional[PaymentErrorCode] = Field(None, alias="errorCode")

    class Config:
        frozen = True
        populate_by_name = True

    @model_validator(mode="after")
    def _check_consistency(self) -> "VerificationResult":
        if self.valid and (self.error is not None or self.error_code is not None):
            raise ValueError("a valid result cannot carry an error")
        if not self.valid and self.transaction_hash is not None:
            raise ValueError("an invalid result cannot carry a transaction hash")
        return self

    @classmethod
    def success(cls, transaction_hash: Optional[str] = None) -> "VerificationResult":
        return cls(valid=True, transaction_hash=transaction_hash)

    @classmethod
    def failure(cls, code: PaymentErrorCode, error: str) -> "VerificationResult":
        return cls(valid=False, error=error, error_code=code)


class PaymentContext(BaseModel):
    """
    Request-scoped payment state handed to downstream handlers.

    Handlers read it and never re-verify payment themselves.
    """
    verified: bool
    amount: Decimal = Decimal("0")
    transaction_hash: Optional[str] = None
    payer: Optional[str] = None

    class Config:
        frozen = True

    @classmethod
    def unverified(cls) -> "PaymentContext":
        return cls(verified=False, amount=Decimal("0"))
