# app/x402/middleware.py
"""
FastAPI middleware gating paid routes behind x402 payments.

Every paid request runs through one state machine:

    Start -> NoHeader  -> RequirementEmitted                      (402)
          -> HasHeader -> ParseFailed                             (400)
                       -> Parsed -> VerificationFailed            (402)
                                 -> Verified -> ContextAttached -> downstream

The route's PaymentMode decides what the failure states do. MANDATORY routes
answer with the status shown; OPTIONAL routes attach an unverified
PaymentContext and always continue downstream.

Downstream handlers read the context with get_payment_context(request).
"""
import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Callable, List, Optional, Sequence

from fastapi import Request, Response
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from app.core.config import settings
from app.x402.audit import (
    generate_request_id,
    log_error,
    log_payment_failed,
    log_payment_received,
    log_payment_required_sent,
    log_payment_settled,
    log_payment_verified,
    log_request_received,
)
from app.x402.errors import MalformedPayloadError, NoPaymentError
from app.x402.facilitator import HttpFacilitatorClient
from app.x402.models import PaymentAuthorization, PaymentContext, PaymentRequirement, VerificationResult
from app.x402.payload import X_PAYMENT_HEADER, parse_payment_header
from app.x402.pricing import Amount, get_asset_address, get_tier_price, to_decimal
from app.x402.replay import NonceRegistry
from app.x402.requirements import (
    X402_VERSION,
    create_402_response,
    create_payment_requirement,
    get_pay_to_address,
)
from app.x402.verification import PaymentVerifier

logger = logging.getLogger(__name__)

X_PAYMENT_RESPONSE_HEADER = "X-Payment-Response"
PAYMENT_STATE_ATTR = "x402_payment"


class PaymentMode(str, Enum):
    """What the gate does when payment is missing or invalid."""
    MANDATORY = "mandatory"  # reject the request
    OPTIONAL = "optional"    # continue with verified=False


class GateState(Enum):
    REQUIREMENT_EMITTED = "requirement_emitted"
    PARSE_FAILED = "parse_failed"
    VERIFICATION_FAILED = "verification_failed"
    VERIFIED = "verified"


@dataclass(frozen=True)
class PaymentRoute:
    """
    A route that takes payment.

    amount is the price in USDC; None prices the route at the standard tier
    as configured when the request arrives.
    """
    method: str
    path: str
    description: str
    mode: PaymentMode = PaymentMode.MANDATORY
    amount: Optional[Amount] = None

    def matches(self, method: str, path: str) -> bool:
        return method == self.method and path.rstrip("/") == self.path.rstrip("/")

    def price(self) -> Decimal:
        if self.amount is None:
            return get_tier_price("standard")
        return to_decimal(self.amount)


# These routes take payment when X402_ENABLED=true
DEFAULT_PAYMENT_ROUTES = [
    PaymentRoute("POST", "/api/execute", "Code execution in secure sandbox"),
    PaymentRoute("GET", "/api/status", "Service status", mode=PaymentMode.OPTIONAL),
]


@dataclass
class GateOutcome:
    state: GateState
    requirement: PaymentRequirement
    amount: Decimal
    authorization: Optional[PaymentAuthorization] = None
    result: Optional[VerificationResult] = None
    error: Optional[str] = None

    def payment_context(self) -> PaymentContext:
        # The only place a verified context is created
        if self.state is not GateState.VERIFIED:
            return PaymentContext.unverified()
        return PaymentContext(
            verified=True,
            amount=self.amount,
            transaction_hash=self.result.transaction_hash,
            payer=self.authorization.from_address,
        )


def match_payment_route(routes: Sequence[PaymentRoute], method: str, path: str) -> Optional[PaymentRoute]:
    for route in routes:
        if route.matches(method, path):
            return route
    return None


def get_client_ip(request: Request) -> str:
    """Extract client IP from request, handling proxies."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    if request.client:
        return request.client.host

    return "unknown"


def set_payment_context(request: Request, context: PaymentContext) -> None:
    setattr(request.state, PAYMENT_STATE_ATTR, context)


def get_payment_context(request: Request) -> Optional[PaymentContext]:
    """The PaymentContext the gate attached, or None if the gate did not run."""
    return getattr(request.state, PAYMENT_STATE_ATTR, None)


def encode_payment_response(context: PaymentContext, network: str) -> str:
    """JSON value for the X-Payment-Response header."""
    return json.dumps({
        "transactionHash": context.transaction_hash,
        "network": network,
        "amount": str(context.amount),
    })


def build_default_verifier() -> PaymentVerifier:
    """PaymentVerifier wired to the HTTP facilitator from settings."""
    # A facilitator call may never outlive the requirement's own timeout
    timeout = min(settings.X402_FACILITATOR_TIMEOUT_SECONDS, settings.X402_MAX_TIMEOUT_SECONDS)
    facilitator = HttpFacilitatorClient(
        base_url=str(settings.X402_FACILITATOR_URL),
        network=settings.X402_NETWORK,
        asset=get_asset_address(),
        timeout=timeout,
    )
    nonce_registry = None
    if settings.X402_REPLAY_PROTECTION_ENABLED:
        nonce_registry = NonceRegistry(max_entries=settings.X402_REPLAY_MAX_ENTRIES)

    return PaymentVerifier(
        facilitator=facilitator,
        pay_to=get_pay_to_address(),
        scheme=settings.X402_SCHEME,
        simulate_settlement=settings.simulate_settlement,
        nonce_registry=nonce_registry,
    )


class X402Middleware(BaseHTTPMiddleware):
    """
    x402 payment gate for FastAPI.

    When X402_ENABLED=true, requests matching a PaymentRoute are priced,
    their X-PAYMENT header parsed and verified, and the resulting
    PaymentContext attached to request.state before the route runs.

    When X402_ENABLED=false, all requests pass through unchanged.
    """

    def __init__(
        self,
        app,
        routes: Optional[List[PaymentRoute]] = None,
        verifier: Optional[PaymentVerifier] = None,
    ):
        super().__init__(app)
        self.routes = list(routes) if routes is not None else list(DEFAULT_PAYMENT_ROUTES)
        self._verifier = verifier

    @property
    def verifier(self) -> PaymentVerifier:
        """Lazy initialization so settings are read at first paid request."""
        if self._verifier is None:
            self._verifier = build_default_verifier()
        return self._verifier

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Response]
    ) -> Response:
        if not settings.X402_ENABLED:
            return await call_next(request)

        route = match_payment_route(self.routes, request.method, request.url.path)
        if route is None:
            return await call_next(request)

        client_ip = get_client_ip(request)
        request_id = generate_request_id()
        logger.info(f"x402: Processing paid request from {client_ip}: {request.method} {request.url.path}")
        log_request_received(client_ip, request.method, request.url.path, request_id=request_id)

        try:
            outcome = await self.evaluate(request, route, client_ip, request_id)
        except Exception as e:
            logger.error(f"x402: Payment processing failed: {e}", exc_info=True)
            log_error(
                client_ip,
                error_type=type(e).__name__,
                error_message=str(e),
                context={"path": request.url.path, "mode": route.mode.value},
                request_id=request_id,
            )
            if route.mode is PaymentMode.OPTIONAL:
                set_payment_context(request, PaymentContext.unverified())
                return await call_next(request)
            return JSONResponse(
                status_code=500,
                content={"error": "Internal Server Error", "message": "Payment processing failed"}
            )

        context = outcome.payment_context()

        if outcome.state is GateState.VERIFIED:
            set_payment_context(request, context)
            response = await call_next(request)
            if context.transaction_hash:
                response.headers[X_PAYMENT_RESPONSE_HEADER] = encode_payment_response(
                    context, outcome.requirement.network
                )
            return response

        if route.mode is PaymentMode.OPTIONAL:
            set_payment_context(request, context)
            return await call_next(request)

        return self.reject(outcome, client_ip, request_id)

    async def evaluate(
        self,
        request: Request,
        route: PaymentRoute,
        client_ip: str,
        request_id: str
    ) -> GateOutcome:
        """Run the gate state machine up to its decision, without responding."""
        amount = route.price()
        requirement = create_payment_requirement(
            amount=amount,
            resource=request.url.path,
            description=route.description,
        )

        try:
            authorization = parse_payment_header(request.headers.get(X_PAYMENT_HEADER))
        except NoPaymentError:
            logger.info(f"x402: No X-PAYMENT header, payment of ${amount} required")
            return GateOutcome(GateState.REQUIREMENT_EMITTED, requirement, amount)
        except MalformedPayloadError as e:
            logger.warning(f"x402: Invalid X-PAYMENT header from {client_ip}: {e}")
            log_payment_failed(client_ip, str(e), "parse", e.code.value, request_id=request_id)
            return GateOutcome(GateState.PARSE_FAILED, requirement, amount, error=str(e))

        log_payment_received(
            client_ip, authorization.from_address, authorization.value, authorization.nonce, request_id=request_id
        )

        # The facilitator call blocks, keep it off the event loop
        result = await run_in_threadpool(self.verifier.verify, authorization, amount)

        if not result.valid:
            logger.warning(f"x402: Payment verification failed for {authorization.from_address}: {result.error}")
            log_payment_failed(
                client_ip,
                result.error or "unknown",
                "verify",
                result.error_code.value if result.error_code else None,
                wallet_address=authorization.from_address,
                request_id=request_id,
            )
            return GateOutcome(GateState.VERIFICATION_FAILED, requirement, amount, authorization, result)

        logger.info(f"x402: Payment verified for payer {authorization.from_address}")
        log_payment_verified(client_ip, authorization.from_address, str(amount), request_id=request_id)
        log_payment_settled(
            client_ip, authorization.from_address, result.transaction_hash, requirement.network, request_id=request_id
        )
        return GateOutcome(GateState.VERIFIED, requirement, amount, authorization, result)

    def reject(self, outcome: GateOutcome, client_ip: str, request_id: str) -> JSONResponse:
        """Terminal responses of a MANDATORY route."""
        if outcome.state is GateState.REQUIREMENT_EMITTED:
            log_payment_required_sent(
                client_ip,
                amount=outcome.requirement.max_amount_required,
                network=outcome.requirement.network,
                pay_to=outcome.requirement.pay_to,
                resource=outcome.requirement.resource,
                request_id=request_id,
            )
            return create_402_response(outcome.requirement, outcome.amount)

        if outcome.state is GateState.PARSE_FAILED:
            return JSONResponse(
                status_code=400,
                content={
                    "error": "Invalid Payment",
                    "message": "Could not parse X-PAYMENT header",
                    "detail": outcome.error,
                    "code": MalformedPayloadError.code.value,
                }
            )

        result = outcome.result
        return JSONResponse(
            status_code=402,
            content={
                "x402Version": X402_VERSION,
                "error": "Payment Verification Failed",
                "message": result.error or "Payment could not be verified",
                "code": result.error_code.value if result.error_code else None,
                "accepts": [outcome.requirement.model_dump(by_alias=True)],
            }
        )
