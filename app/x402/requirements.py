# app/x402/requirements.py
"""
Payment requirement construction for HTTP 402 responses.

A requirement is a pure function of configuration and the request being
priced; nothing here performs I/O.
"""
import logging
from typing import Any, Dict, Optional

from starlette.responses import JSONResponse

from app.core.config import settings
from app.x402.models import PaymentRequirement
from app.x402.pricing import Amount, EXECUTION_TIERS, get_asset_address, get_tier_prices, to_smallest_unit

logger = logging.getLogger(__name__)

X402_VERSION = 1
PLACEHOLDER_ADDRESS = "0x0000000000000000000000000000000000000000"

# Describes POST /api/execute so automated payers know what they are buying
EXECUTE_OUTPUT_SCHEMA: Dict[str, Any] = {
    "input": {
        "type": "http",
        "method": "POST",
        "bodyType": "json",
        "bodyFields": {
            "code": {"type": "string", "required": True, "description": "Source code to execute"},
            "language": {
                "type": "string",
                "required": True,
                "description": "Programming language",
                "enum": ["javascript", "python"],
            },
            "tier": {
                "type": "string",
                "required": True,
                "description": "Execution tier",
                "enum": list(EXECUTION_TIERS),
            },
            "timeout": {"type": "number", "required": False, "description": "Optional timeout in milliseconds"},
        },
    },
    "output": {
        "type": "object",
        "properties": {
            "success": {"type": "boolean", "description": "Whether execution succeeded"},
            "output": {"type": "string", "description": "Console output from code execution"},
            "executionTime": {"type": "number", "description": "Time taken to execute in milliseconds"},
            "memoryUsed": {"type": "number", "description": "Memory used in bytes"},
            "proof": {"type": "string", "description": "Proof of execution (SHA-256 hash)"},
            "executionId": {"type": "string", "description": "Unique execution identifier"},
        },
    },
}


def get_pay_to_address() -> str:
    pay_to = settings.X402_PAY_TO_ADDRESS
    if not pay_to:
        logger.warning("X402_PAY_TO_ADDRESS not configured")
        return PLACEHOLDER_ADDRESS
    return pay_to


def create_payment_requirement(
    amount: Amount,
    resource: str,
    description: str,
    output_schema: Optional[Dict[str, Any]] = None,
) -> PaymentRequirement:
    """
    Create the PaymentRequirement for a 402 response.

    Args:
        amount: Price in USDC (converted to smallest units, truncated)
        resource: Path of the protected resource
        description: Description of the resource/operation
        output_schema: Request/response shape of the resource

    Returns:
        PaymentRequirement for the x402 response
    """
    return PaymentRequirement(
        scheme=settings.X402_SCHEME,
        network=settings.X402_NETWORK,
        max_amount_required=str(to_smallest_unit(amount)),
        resource=resource,
        description=description,
        mime_type="application/json",
        pay_to=get_pay_to_address(),
        max_timeout_seconds=settings.X402_MAX_TIMEOUT_SECONDS,
        asset=get_asset_address(),
        output_schema=output_schema if output_schema is not None else EXECUTE_OUTPUT_SCHEMA,
        extra={"pricing": {tier: str(price) for tier, price in get_tier_prices().items()}},
    )


def create_payment_required_body(
    payment_requirement: PaymentRequirement,
    error_message: str = "Payment Required",
) -> Dict[str, Any]:
    return {
        "x402Version": X402_VERSION,
        "error": error_message,
        "message": payment_requirement.description,
        "accepts": [payment_requirement.model_dump(by_alias=True)],
    }


def create_402_response(
    payment_requirement: PaymentRequirement,
    amount: Amount,
    error_message: str = "Payment Required",
) -> JSONResponse:
    """
    Create an HTTP 402 Payment Required response.

    Besides the JSON body, plain headers advertise the price for clients that
    do not parse x402 bodies.
    """
    return JSONResponse(
        status_code=402,
        content=create_payment_required_body(payment_requirement, error_message),
        headers={
            "X-Payment-Required": str(amount),
            "X-Payment-Token": "USDC",
            "X-Payment-Address": payment_requirement.pay_to,
            "X-Payment-Network": payment_requirement.network,
        },
    )
