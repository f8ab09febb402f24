"""Diagnostic tools for spotting tokens stuck behind unanswered oracle requests."""
import logging
from typing import Optional

from weather_token_service import WeatherTokenService


def capture_engine_snapshot(service: WeatherTokenService, max_age: float) -> dict:
    """
    Capture the liveness state of the engine.

    Args:
        service: Service to inspect
        max_age: Seconds after which an unanswered request counts as stuck

    Returns:
        Dictionary with request, token and funding statistics
    """
    unfulfilled = service.unfulfilled_requests()
    stalled = service.stalled_tokens(max_age)
    return {
        "tokens": len(service.tokens),
        "active_tokens": sum(1 for r in service.tokens.values() if r.target.active),
        "due_tokens": len(service.scan()),
        "issued_requests": len(service.store),
        "fulfilled_requests": len(service.store.fulfillment_log),
        "unfulfilled_requests": len(unfulfilled),
        "oldest_unfulfilled_age": service.oldest_unfulfilled_age(),
        "stalled_tokens": stalled,
        "evicted_requests": service.store.evicted_count,
        "balance": service.ledger.balance,
        "paused": service.gate.paused,
    }


def log_liveness(service: WeatherTokenService, max_age: float) -> list:
    """Log a warning for every stuck token and return their ids."""
    stalled = service.stalled_tokens(max_age)
    for token_id in stalled:
        record = service.tokens[token_id]
        request = service.store.get_request(record.awaiting_request)
        age = service.clock() - request.issued_at
        logging.warning(
            f"Token {token_id} ({record.target.location_name}) stuck: request "
            f"{request.request_id[:12]} unanswered for {age:.0f}s"
        )
    return stalled


def create_liveness_report(service: WeatherTokenService, max_age: float) -> str:
    """
    Create a text report of liveness information.

    Args:
        service: Service to analyze
        max_age: Seconds after which an unanswered request counts as stuck

    Returns:
        Formatted report string
    """
    snapshot = capture_engine_snapshot(service, max_age)
    oldest: Optional[float] = snapshot["oldest_unfulfilled_age"]

    report = []
    report.append("=" * 60)
    report.append("Weather Token Liveness Report")
    report.append("=" * 60)
    report.append(f"Paused: {snapshot['paused']}")
    report.append(f"Tokens: {snapshot['tokens']} ({snapshot['active_tokens']} active, {snapshot['due_tokens']} due)")
    report.append(f"Requests: {snapshot['issued_requests']} issued, {snapshot['fulfilled_requests']} fulfilled, "
                  f"{snapshot['unfulfilled_requests']} unanswered")
    report.append(f"Oldest unanswered request: {'none' if oldest is None else f'{oldest:.0f}s'}")
    report.append(f"Balance: {snapshot['balance']}")

    if snapshot["stalled_tokens"]:
        report.append(f"\nStuck tokens (no answer within {max_age:.0f}s):")
        for token_id in snapshot["stalled_tokens"]:
            record = service.tokens[token_id]
            report.append(f"  #{token_id} {record.target.location_name}: awaiting {record.awaiting_request[:12]}")

    report.append("=" * 60)
    return "\n".join(report)
