# app/x402/facilitator.py
"""
Client for the external x402 facilitator.

The facilitator checks the authorization signature and settles the transfer
on-chain. It is the only network dependency of the payment gate, so it sits
behind a one-method protocol that tests can replace with a fake.

Failed calls are never retried: resubmitting a signed authorization risks
settling it twice. A payer who wants to retry sends a new request with a
fresh nonce.
"""
import logging
from typing import Optional, Protocol

import requests
from requests.exceptions import RequestException

from app.x402.errors import FacilitatorUnavailableError, PaymentErrorCode
from app.x402.models import PaymentAuthorization, VerificationResult

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


class FacilitatorClient(Protocol):
    def verify(self, authorization: PaymentAuthorization) -> VerificationResult:
        """
        Verify the signature and settle the transfer.

        Returns a valid result with the settlement transaction hash, or an
        invalid result carrying the facilitator's error string.

        Raises:
            FacilitatorUnavailableError: If no usable answer was obtained
        """
        ...


class HttpFacilitatorClient:
    """Facilitator reached over HTTP at POST {base_url}/verify."""

    def __init__(
        self,
        base_url: str,
        network: str,
        asset: str,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = str(base_url).rstrip("/")
        self.network = network
        self.asset = asset
        self.timeout = timeout if timeout is not None else DEFAULT_TIMEOUT_SECONDS
        self._session = session or requests.Session()

    @property
    def verify_url(self) -> str:
        return f"{self.base_url}/verify"

    def verify(self, authorization: PaymentAuthorization) -> VerificationResult:
        body = {
            "payment": authorization.model_dump(by_alias=True),
            "network": self.network,
            "asset": self.asset,
        }

        try:
            response = self._session.post(self.verify_url, json=body, timeout=self.timeout)
        except RequestException as e:
            logger.error(f"Facilitator communication error ({self.verify_url}): {e}")
            raise FacilitatorUnavailableError(str(e)) from e

        if not response.ok:
            try:
                error_body = response.json()
            except ValueError:
                error_body = {"error": "Unknown facilitator error"}

            error = None
            if isinstance(error_body, dict):
                error = error_body.get("error")
            if not isinstance(error, str) or not error:
                error = "Facilitator verification failed"

            logger.warning(f"Facilitator rejected payment ({response.status_code}): {error}")
            return VerificationResult.failure(PaymentErrorCode.FACILITATOR_REJECTED, error)

        try:
            result = response.json()
        except ValueError as e:
            logger.error(f"Facilitator returned non-JSON success body: {e}")
            raise FacilitatorUnavailableError("malformed facilitator response") from e

        transaction_hash = result.get("transactionHash") if isinstance(result, dict) else None
        if not isinstance(transaction_hash, str) or not transaction_hash:
            logger.error("Facilitator success response is missing transactionHash")
            raise FacilitatorUnavailableError("malformed facilitator response")

        return VerificationResult.success(transaction_hash)
