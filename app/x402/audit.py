# app/x402/audit.py
"""
Audit logging for x402 payments.

This module logs every payment decision made by the gate for:
- Dispute resolution with payers
- Reconciliation against on-chain settlements
- Operator visibility into internal faults

Log format: JSON lines (one event per line)
Log location: Configured via X402_AUDIT_LOG_PATH

Events logged:
- Request received (timestamp, client IP, endpoint, method)
- 402 returned (amount, network, pay_to, resource)
- Payment received (payer, value, nonce)
- Payment verified / failed (error code, reason)
- Payment settled (transaction hash, network)
- Error (type, message, context)

Writing to the audit log never raises into the request path.
"""
import json
import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from app.core.config import settings

logger = logging.getLogger(__name__)


class AuditEventType(Enum):
    """Types of audit events that can be logged."""
    REQUEST_RECEIVED = "request_received"
    PAYMENT_REQUIRED_SENT = "payment_required_sent"
    PAYMENT_RECEIVED = "payment_received"
    PAYMENT_VERIFIED = "payment_verified"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_SETTLED = "payment_settled"
    ERROR = "error"


def generate_request_id() -> str:
    """Generate a short unique request ID for tracking."""
    return str(uuid.uuid4())[:8]


def get_audit_log_path() -> Path:
    return Path(settings.X402_AUDIT_LOG_PATH)


def create_audit_event(
    event_type: AuditEventType,
    data: Dict[str, Any],
    client_ip: Optional[str] = None,
    wallet_address: Optional[str] = None,
    request_id: Optional[str] = None
) -> Dict[str, Any]:
    """
    Create an audit event dictionary.

    Args:
        event_type: Type of event to log
        data: Event-specific data
        client_ip: Client IP address (if available)
        wallet_address: Payer wallet address (if available)
        request_id: Unique request identifier (if available)
    """
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event_type": event_type.value,
        "request_id": request_id or generate_request_id(),
        "client_ip": client_ip,
        "wallet_address": wallet_address,
        "data": data
    }


def log_audit_event(
    event_type: AuditEventType,
    data: Dict[str, Any],
    client_ip: Optional[str] = None,
    wallet_address: Optional[str] = None,
    request_id: Optional[str] = None
) -> Optional[str]:
    """
    Append an audit event to the x402 audit log.

    Returns:
        The request_id used for this event, or None if disabled or on error
    """
    if not settings.X402_AUDIT_ENABLED:
        return None

    event = create_audit_event(
        event_type=event_type,
        data=data,
        client_ip=client_ip,
        wallet_address=wallet_address,
        request_id=request_id
    )

    try:
        log_path = get_audit_log_path()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        with open(log_path, "a") as f:
            f.write(json.dumps(event, default=str) + "\n")

        logger.debug(f"Audit event logged: {event_type.value} [{event['request_id']}]")
        return event["request_id"]

    except OSError as e:
        logger.error(f"Failed to write audit event: {e}")
        return None


# Convenience functions for specific event types

def log_request_received(
    client_ip: str,
    method: str,
    path: str,
    request_id: Optional[str] = None
) -> Optional[str]:
    """Log a request received on a paid route."""
    return log_audit_event(
        event_type=AuditEventType.REQUEST_RECEIVED,
        data={"method": method, "path": path},
        client_ip=client_ip,
        request_id=request_id
    )


def log_payment_required_sent(
    client_ip: str,
    amount: str,
    network: str,
    pay_to: str,
    resource: str,
    request_id: Optional[str] = None
) -> Optional[str]:
    """Log a 402 Payment Required response."""
    return log_audit_event(
        event_type=AuditEventType.PAYMENT_REQUIRED_SENT,
        data={
            "amount": amount,
            "network": network,
            "pay_to": pay_to,
            "resource": resource,
        },
        client_ip=client_ip,
        request_id=request_id
    )


def log_payment_received(
    client_ip: str,
    payer: str,
    value: str,
    nonce: str,
    request_id: Optional[str] = None
) -> Optional[str]:
    """Log a parsed payment authorization."""
    return log_audit_event(
        event_type=AuditEventType.PAYMENT_RECEIVED,
        data={"value": value, "nonce": nonce},
        client_ip=client_ip,
        wallet_address=payer,
        request_id=request_id
    )


def log_payment_verified(
    client_ip: str,
    payer: str,
    amount: str,
    request_id: Optional[str] = None
) -> Optional[str]:
    """Log a payment that passed the whole pipeline."""
    return log_audit_event(
        event_type=AuditEventType.PAYMENT_VERIFIED,
        data={"amount": amount},
        client_ip=client_ip,
        wallet_address=payer,
        request_id=request_id
    )


def log_payment_failed(
    client_ip: str,
    reason: str,
    stage: str,
    error_code: Optional[str] = None,
    wallet_address: Optional[str] = None,
    request_id: Optional[str] = None
) -> Optional[str]:
    """Log a rejected payment (stage is 'parse' or 'verify')."""
    return log_audit_event(
        event_type=AuditEventType.PAYMENT_FAILED,
        data={
            "reason": reason,
            "stage": stage,
            "error_code": error_code,
        },
        client_ip=client_ip,
        wallet_address=wallet_address,
        request_id=request_id
    )


def log_payment_settled(
    client_ip: str,
    payer: str,
    transaction_hash: Optional[str],
    network: str,
    request_id: Optional[str] = None
) -> Optional[str]:
    """Log a facilitator settlement."""
    return log_audit_event(
        event_type=AuditEventType.PAYMENT_SETTLED,
        data={
            "transaction_hash": transaction_hash,
            "network": network,
        },
        client_ip=client_ip,
        wallet_address=payer,
        request_id=request_id
    )


def log_error(
    client_ip: str,
    error_type: str,
    error_message: str,
    context: Optional[Dict[str, Any]] = None,
    request_id: Optional[str] = None
) -> Optional[str]:
    """Log an internal fault."""
    return log_audit_event(
        event_type=AuditEventType.ERROR,
        data={
            "error_type": error_type,
            "error_message": error_message,
            "context": context or {},
        },
        client_ip=client_ip,
        request_id=request_id
    )


def read_audit_log(
    max_entries: int = 100,
    event_type: Optional[AuditEventType] = None,
    client_ip: Optional[str] = None
) -> list:
    """
    Read entries from the audit log.

    Args:
        max_entries: Maximum number of entries to return
        event_type: Filter by event type (optional)
        client_ip: Filter by client IP (optional)

    Returns:
        List of audit events (most recent first)
    """
    log_path = get_audit_log_path()
    if not log_path.exists():
        return []

    events = []
    try:
        with open(log_path, "r") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    event = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if event_type and event.get("event_type") != event_type.value:
                    continue
                if client_ip and event.get("client_ip") != client_ip:
                    continue
                events.append(event)
    except OSError as e:
        logger.error(f"Failed to read audit log: {e}")
        return []

    return list(reversed(events))[:max_entries]


def get_audit_stats() -> Dict[str, Any]:
    """
    Get statistics from the audit log.

    Returns:
        Dict with event counts and first/last timestamps
    """
    log_path = get_audit_log_path()
    stats: Dict[str, Any] = {
        "total_events": 0,
        "events_by_type": {},
        "first_event": None,
        "last_event": None,
        "log_path": str(log_path),
        "log_exists": log_path.exists(),
    }
    if not stats["log_exists"]:
        return stats

    for event in reversed(read_audit_log(max_entries=10**9)):
        stats["total_events"] += 1
        event_type = event.get("event_type", "unknown")
        stats["events_by_type"][event_type] = stats["events_by_type"].get(event_type, 0) + 1

        timestamp = event.get("timestamp")
        if timestamp:
            if stats["first_event"] is None:
                stats["first_event"] = timestamp
            stats["last_event"] = timestamp

    return stats
