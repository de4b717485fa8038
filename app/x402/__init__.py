# app/x402/__init__.py
"""
x402 Payment Protocol Integration Module.

This module gates the sandbox's code execution behind per-request HTTP 402
micropayments settled in USDC.

Key components:
- requirements: PaymentRequirement construction and 402 responses
- payload: X-PAYMENT header parsing
- verification: Ordered local checks followed by facilitator settlement
- facilitator: HTTP client for the external settlement facilitator
- replay: Consumed nonce registry
- middleware: FastAPI middleware running the payment gate
- audit: Payment audit logging

Configuration is loaded from environment variables via app.core.config.
"""

__version__ = "0.1.0"
