# app/api/endpoints/execute.py
import logging
import time
from typing import Any

from fastapi import APIRouter, HTTPException, Request, status

from app.api.models.execute import ExecuteRequest, ExecuteResponse, PaymentSummary
from app.core.config import settings
from app.services.execution import get_execution_engine
from app.x402.middleware import DEFAULT_PAYMENT_ROUTES, get_payment_context, match_payment_route
from app.x402.requirements import create_402_response, create_payment_requirement

logger = logging.getLogger(__name__)
router = APIRouter()

EXECUTE_ROUTE = match_payment_route(DEFAULT_PAYMENT_ROUTES, "POST", "/api/execute")


@router.get("", summary="Payment requirements for code execution", status_code=402)
async def execute_info(request: Request) -> Any:
    """
    Always answers 402 with the payment requirement for POST /api/execute.

    Lets x402 crawlers and automated payers discover the price without
    sending code first.
    """
    amount = EXECUTE_ROUTE.price()
    requirement = create_payment_requirement(
        amount=amount,
        resource=request.url.path,
        description=EXECUTE_ROUTE.description,
    )
    return create_402_response(requirement, amount)


@router.post("", response_model=ExecuteResponse, summary="Execute code in the sandbox")
async def execute_code(request: Request, body: ExecuteRequest) -> Any:
    """
    Runs code that has been paid for.

    The x402 gate has already verified payment by the time this runs; the
    handler only checks that it did.

    Raises:
        HTTPException: 500 if no verified payment is attached, 503 if no
            execution engine is configured, 500 if execution fails
    """
    payment = get_payment_context(request)
    if payment is None or not payment.verified:
        logger.error("Execute reached without a verified payment context")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Payment verification state invalid"
        )

    engine = get_execution_engine(request)
    if engine is None:
        logger.error("No execution engine configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Execution engine unavailable"
        )

    logger.info(f"Executing {body.language} code for {payment.payer} (tier: {body.tier})")

    try:
        result = await engine.execute(body)
    except Exception as e:
        logger.error(f"Execution failed for {payment.payer}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred during execution"
        )

    logger.info(f"Execution {result.executionId} completed in {result.executionTime}ms")

    return ExecuteResponse(
        **result.model_dump(),
        payment=PaymentSummary(
            amount=payment.amount,
            payer=payment.payer,
            transactionHash=payment.transaction_hash,
            network=settings.X402_NETWORK,
        ),
        timestamp=int(time.time() * 1000),
    )
