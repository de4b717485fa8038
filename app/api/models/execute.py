# app/api/models/execute.py
from decimal import Decimal
from pydantic import BaseModel, Field
from typing import Optional, Literal


class ExecuteRequest(BaseModel):
    """Request model for running code in the sandbox."""
    code: str = Field(
        ...,
        min_length=1,
        max_length=10000,
        description="Source code to execute",
        examples=["console.log(1 + 1)"]
    )
    language: Literal["javascript", "python"] = Field(..., description="Programming language")
    tier: Literal["basic", "standard", "premium"] = Field(..., description="Execution tier")
    timeout: Optional[int] = Field(None, gt=0, description="Optional timeout in milliseconds")


class ExecutionResult(BaseModel):
    """What the execution engine reports back for one run."""
    success: bool
    output: str = ""
    error: Optional[str] = None
    executionTime: int = Field(..., description="Time taken to execute in milliseconds")
    memoryUsed: Optional[int] = Field(None, description="Memory used in bytes")
    executionId: str
    tier: str
    proof: Optional[str] = Field(None, description="Proof of execution (SHA-256 hash)")


class PaymentSummary(BaseModel):
    """The payment that bought an execution, as recorded by the x402 gate."""
    amount: Decimal
    payer: Optional[str] = None
    transactionHash: Optional[str] = None
    network: str
    token: str = "USDC"


class ExecuteResponse(ExecutionResult):
    """Response model for a paid execution."""
    payment: PaymentSummary
    timestamp: int = Field(..., description="Unix time in milliseconds")


class StatusResponse(BaseModel):
    """Response model for the service status endpoint."""
    status: str
    network: str
    payment_enabled: bool
    payment_verified: bool = Field(..., description="Whether this request carried a valid X-PAYMENT header")
    pricing: dict
