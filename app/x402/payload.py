# app/x402/payload.py
import json
import logging
from typing import Optional

from pydantic import ValidationError

from app.x402.errors import MalformedPayloadError, NoPaymentError
from app.x402.models import PaymentAuthorization

logger = logging.getLogger(__name__)

X_PAYMENT_HEADER = "X-PAYMENT"


def parse_payment_header(header_value: Optional[str]) -> PaymentAuthorization:
    """
    Decode the X-PAYMENT header into a PaymentAuthorization.

    Args:
        header_value: JSON-encoded payment authorization, or None

    Returns:
        The parsed authorization with all eight fields present

    Raises:
        NoPaymentError: If the header is absent or blank
        MalformedPayloadError: If the JSON is invalid or any field is missing or out of range
    """
    if header_value is None or not header_value.strip():
        raise NoPaymentError("X-PAYMENT header is missing")

    try:
        payload_dict = json.loads(header_value)
    except ValueError as e:
        logger.warning(f"Failed to parse X-PAYMENT header JSON: {e}")
        raise MalformedPayloadError("X-PAYMENT header is not valid JSON") from e

    if not isinstance(payload_dict, dict):
        logger.warning(f"X-PAYMENT header is a JSON {type(payload_dict).__name__}, not an object")
        raise MalformedPayloadError("X-PAYMENT header must be a JSON object")

    try:
        return PaymentAuthorization.model_validate(payload_dict)
    except ValidationError as e:
        logger.warning(f"X-PAYMENT header failed validation: {e.error_count()} error(s)")
        raise MalformedPayloadError("Missing or invalid payment fields") from e
