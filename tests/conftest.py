# tests/conftest.py
"""
Shared fixtures for x402 gate tests.

Settings are patched on the shared settings object so every module that
reads configuration sees the same test values.
"""
from decimal import Decimal

import pytest

from app.core.config import settings
from app.x402.models import VerificationResult

NOW = 1_700_000_000
PAY_TO = "0xAbCdEf0123456789aBcDeF0123456789AbCdEf01"
PAYER = "0x1234567890abcdef1234567890abcdef12345678"


@pytest.fixture(autouse=True)
def x402_settings(monkeypatch, tmp_path):
    """Known x402 configuration with the audit log in a temp dir."""
    monkeypatch.setattr(settings, "ENVIRONMENT", "production")
    monkeypatch.setattr(settings, "X402_ENABLED", True)
    monkeypatch.setattr(settings, "X402_NETWORK", "base")
    monkeypatch.setattr(settings, "X402_SCHEME", "eip3009")
    monkeypatch.setattr(settings, "X402_PAY_TO_ADDRESS", PAY_TO)
    monkeypatch.setattr(settings, "X402_ASSET_ADDRESS", None)
    monkeypatch.setattr(settings, "X402_FACILITATOR_URL", "https://facilitator.example.com")
    monkeypatch.setattr(settings, "X402_FACILITATOR_TIMEOUT_SECONDS", 30.0)
    monkeypatch.setattr(settings, "X402_MAX_TIMEOUT_SECONDS", 60)
    monkeypatch.setattr(settings, "X402_PRICE_BASIC", Decimal("0.01"))
    monkeypatch.setattr(settings, "X402_PRICE_STANDARD", Decimal("0.02"))
    monkeypatch.setattr(settings, "X402_PRICE_PREMIUM", Decimal("0.05"))
    monkeypatch.setattr(settings, "X402_REPLAY_PROTECTION_ENABLED", True)
    monkeypatch.setattr(settings, "X402_AUDIT_ENABLED", True)
    monkeypatch.setattr(settings, "X402_AUDIT_LOG_PATH", str(tmp_path / "audit" / "x402_audit.jsonl"))
    return settings


@pytest.fixture
def make_authorization():
    """Factory for X-PAYMENT payload dicts; keyword overrides replace fields, None drops them."""
    def _make(**overrides):
        payload = {
            "scheme": "eip3009",
            "signature": "0x" + "ab" * 65,
            "from": PAYER,
            "to": PAY_TO.lower(),
            "value": "20000",
            "validAfter": str(NOW - 60),
            "validBefore": str(NOW + 300),
            "nonce": "0x" + "11" * 32,
        }
        for key, value in overrides.items():
            if value is None:
                payload.pop(key, None)
            else:
                payload[key] = value
        return payload
    return _make


class FakeFacilitator:
    """Stands in for the HTTP facilitator and records every call."""

    def __init__(self, result=None, exc=None):
        self.result = result if result is not None else VerificationResult.success("0xabc")
        self.exc = exc
        self.calls = []

    def verify(self, authorization):
        self.calls.append(authorization)
        if self.exc is not None:
            raise self.exc
        return self.result


@pytest.fixture
def make_facilitator():
    def _make(result=None, exc=None):
        return FakeFacilitator(result=result, exc=exc)
    return _make


@pytest.fixture
def now():
    """Fixed Unix time the default authorization is valid at."""
    return NOW


@pytest.fixture
def payer():
    return PAYER
