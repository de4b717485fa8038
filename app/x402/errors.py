# app/x402/errors.py
"""
Error taxonomy for the x402 payment gate.

Only the parser and the facilitator transport raise; every check in the
verification pipeline reports its failure as a VerificationResult carrying
one of the codes below.
"""
from enum import Enum


class PaymentErrorCode(str, Enum):
    """Machine-readable reasons a payment was not accepted."""
    NO_PAYMENT = "no_payment"
    MALFORMED_PAYLOAD = "malformed_payload"
    UNSUPPORTED_SCHEME = "unsupported_scheme"
    RECIPIENT_MISMATCH = "recipient_mismatch"
    INSUFFICIENT_AMOUNT = "insufficient_amount"
    EXPIRED_AUTHORIZATION = "expired_authorization"
    NONCE_REUSED = "nonce_reused"
    FACILITATOR_UNAVAILABLE = "facilitator_unavailable"
    FACILITATOR_REJECTED = "facilitator_rejected"
    INTERNAL_FAULT = "internal_fault"


class X402Error(Exception):
    """Base class for payment errors raised inside the gate."""
    code = PaymentErrorCode.INTERNAL_FAULT


class NoPaymentError(X402Error):
    """The request carried no X-PAYMENT header; payment was not attempted."""
    code = PaymentErrorCode.NO_PAYMENT


class MalformedPayloadError(X402Error):
    """The X-PAYMENT header could not be decoded into an authorization."""
    code = PaymentErrorCode.MALFORMED_PAYLOAD


class FacilitatorUnavailableError(X402Error):
    """The facilitator could not be reached or answered with garbage."""
    code = PaymentErrorCode.FACILITATOR_UNAVAILABLE
