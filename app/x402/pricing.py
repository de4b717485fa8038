# app/x402/pricing.py
"""
Price handling for x402 payment responses.

Prices are configured per execution tier in USDC and converted to the
token's smallest unit before they appear on the wire:
1. Look up the tier price from config
2. Convert USDC to smallest units (6 decimals), truncating toward zero
3. Never round up, since that would overcharge the payer

Configuration is loaded from app/core/config.py:
- X402_PRICE_BASIC / X402_PRICE_STANDARD / X402_PRICE_PREMIUM
- X402_NETWORK and X402_ASSET_ADDRESS for the asset being charged
"""
from decimal import Decimal, InvalidOperation, ROUND_FLOOR
from typing import Dict, Union

from app.core.config import settings


# USDC has 6 decimals, so $1.00 = 1,000,000 smallest units
USDC_DECIMALS = 6
USDC_SCALE = Decimal(10) ** USDC_DECIMALS

# USDC contract addresses by network
USDC_ADDRESSES = {
    "base": "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
    "base-sepolia": "0x036CbD53842c5426634e7929541eC2318f3dCF7e",
}

EXECUTION_TIERS = ("basic", "standard", "premium")

Amount = Union[Decimal, str, int, float]


def to_decimal(amount: Amount) -> Decimal:
    """
    Coerce a configured amount to Decimal.

    Floats go through str() first so 0.29 stays 0.29 rather than
    0.28999999999999998002.

    Raises:
        ValueError: If the amount is negative, NaN/infinite or not a number
    """
    if isinstance(amount, bool):
        raise ValueError(f"Invalid amount: {amount!r}")
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount).strip())
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {amount!r}")

    if not value.is_finite() or value < 0:
        raise ValueError(f"Invalid amount: {amount!r}")
    return value


def to_smallest_unit(amount: Amount) -> int:
    """
    Convert a USDC amount to integer smallest units.

    floor(amount * 10^6); any fractional remainder below one unit is dropped.

    Args:
        amount: Amount in USDC, e.g. "0.02"

    Returns:
        Amount in smallest units, e.g. 20000
    """
    scaled = to_decimal(amount) * USDC_SCALE
    return int(scaled.to_integral_value(rounding=ROUND_FLOOR))


def get_asset_address(network: str = None) -> str:
    """Return the USDC contract address for the configured network."""
    if settings.X402_ASSET_ADDRESS:
        return settings.X402_ASSET_ADDRESS
    network = network or settings.X402_NETWORK
    return USDC_ADDRESSES.get(network, USDC_ADDRESSES["base-sepolia"])


def get_tier_prices() -> Dict[str, Decimal]:
    """Current price for every execution tier, in USDC."""
    return {
        "basic": to_decimal(settings.X402_PRICE_BASIC),
        "standard": to_decimal(settings.X402_PRICE_STANDARD),
        "premium": to_decimal(settings.X402_PRICE_PREMIUM),
    }


def get_tier_price(tier: str) -> Decimal:
    """
    Get the USDC price of an execution tier.

    Raises:
        ValueError: If the tier is unknown
    """
    prices = get_tier_prices()
    if tier not in prices:
        raise ValueError(f"Unknown execution tier: {tier}")
    return prices[tier]
