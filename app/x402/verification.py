# app/x402/verification.py
"""
Payment verification pipeline.

Runs the local checks in strict order and only calls the facilitator once
every one of them has passed:
1. Scheme matches the deployment's scheme
2. Recipient matches the configured pay-to address (case-insensitive)
3. Paid value covers the required amount (smallest units, floor-truncated)
4. Current time lies within [validAfter, validBefore], both inclusive
5. Nonce has not been spent before (when replay protection is on)
6. Facilitator verifies the signature and settles the transfer

The first failing check decides the result. Failures are returned as
VerificationResult values; only unexpected faults raise.
"""
import logging
import time
from typing import Callable, Optional

from app.x402.errors import FacilitatorUnavailableError, PaymentErrorCode
from app.x402.facilitator import FacilitatorClient
from app.x402.models import PaymentAuthorization, VerificationResult
from app.x402.pricing import Amount, to_smallest_unit
from app.x402.replay import NonceRegistry

logger = logging.getLogger(__name__)

DEFAULT_SCHEME = "eip3009"


def simulated_transaction_hash(nonce: str) -> str:
    """Deterministic stand-in hash for development settlement."""
    digits = nonce[2:] if nonce.lower().startswith("0x") else nonce
    return "0x" + digits.ljust(64, "0")


class PaymentVerifier:
    """
    Verifies a parsed authorization against the price of a resource.

    Holds only read-only configuration plus the thread-safe nonce registry,
    so a single instance serves concurrent requests.
    """

    def __init__(
        self,
        facilitator: FacilitatorClient,
        pay_to: str,
        scheme: str = DEFAULT_SCHEME,
        simulate_settlement: bool = False,
        nonce_registry: Optional[NonceRegistry] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Args:
            facilitator: Performs signature verification and settlement
            pay_to: Address payments must be sent to
            scheme: The one payment scheme this deployment accepts
            simulate_settlement: When the facilitator is unreachable, return a
                simulated success instead of failing. Development only.
            nonce_registry: Rejects reused nonces when given
            clock: Returns the current Unix time in seconds
        """
        self.facilitator = facilitator
        self.pay_to = pay_to
        self.scheme = scheme
        self.simulate_settlement = simulate_settlement
        self.nonce_registry = nonce_registry
        self._clock = clock or time.time

    def verify(self, authorization: PaymentAuthorization, required_amount: Amount) -> VerificationResult:
        """
        Run the full pipeline.

        Args:
            authorization: Parsed X-PAYMENT payload
            required_amount: Price in USDC, e.g. Decimal("0.02")

        Returns:
            VerificationResult, valid with a transaction hash or invalid with an error
        """
        for check in (
            self.check_scheme,
            self.check_recipient,
            lambda auth: self.check_amount(auth, required_amount),
            self.check_time_window,
            self.check_nonce,
        ):
            failure = check(authorization)
            if failure is not None:
                logger.warning(f"Payment from {authorization.from_address} rejected: {failure.error}")
                return failure

        return self.settle(authorization)

    def check_scheme(self, authorization: PaymentAuthorization) -> Optional[VerificationResult]:
        if authorization.scheme != self.scheme:
            return VerificationResult.failure(PaymentErrorCode.UNSUPPORTED_SCHEME, "unsupported scheme")
        return None

    def check_recipient(self, authorization: PaymentAuthorization) -> Optional[VerificationResult]:
        if not self.pay_to or authorization.to.lower() != self.pay_to.lower():
            return VerificationResult.failure(PaymentErrorCode.RECIPIENT_MISMATCH, "invalid recipient")
        return None

    def check_amount(self, authorization: PaymentAuthorization, required_amount: Amount) -> Optional[VerificationResult]:
        required = to_smallest_unit(required_amount)
        paid = int(authorization.value)
        # Overpayment is accepted and not refunded
        if paid < required:
            return VerificationResult.failure(
                PaymentErrorCode.INSUFFICIENT_AMOUNT,
                f"insufficient payment: required {required}, paid {paid}",
            )
        return None

    def check_time_window(self, authorization: PaymentAuthorization) -> Optional[VerificationResult]:
        now = int(self._clock())
        if now < int(authorization.valid_after) or now > int(authorization.valid_before):
            return VerificationResult.failure(
                PaymentErrorCode.EXPIRED_AUTHORIZATION,
                "authorization expired or not yet valid",
            )
        return None

    def check_nonce(self, authorization: PaymentAuthorization) -> Optional[VerificationResult]:
        if self.nonce_registry is None:
            return None
        # Consumed before settlement so two concurrent submissions cannot both reach the facilitator
        if not self.nonce_registry.consume(
            authorization.from_address,
            authorization.nonce,
            int(authorization.valid_before),
        ):
            return VerificationResult.failure(PaymentErrorCode.NONCE_REUSED, "nonce already used")
        return None

    def settle(self, authorization: PaymentAuthorization) -> VerificationResult:
        try:
            result = self.facilitator.verify(authorization)
        except FacilitatorUnavailableError as e:
            if self.simulate_settlement:
                logger.warning(f"Development mode: simulating settlement after facilitator error: {e}")
                return VerificationResult.success(simulated_transaction_hash(authorization.nonce))
            logger.error(f"Facilitator unavailable, rejecting payment: {e}")
            return VerificationResult.failure(PaymentErrorCode.FACILITATOR_UNAVAILABLE, "facilitator unavailable")

        if result.valid:
            logger.info(f"Payment from {authorization.from_address} settled: {result.transaction_hash}")
        elif result.error_code is None:
            result = VerificationResult.failure(
                PaymentErrorCode.FACILITATOR_REJECTED,
                result.error or "Facilitator verification failed",
            )
        return result
