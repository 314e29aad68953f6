"""Ready-made trigger documents for demos, the worker loop and tests."""

from __future__ import annotations

from datetime import UTC, datetime

SCHEDULED_CHECKS = ("morning_routine", "evening_analysis", "weekly_report")


def message_received_example(business_id: str = "cafe-aurora") -> dict[str, object]:
    """Customer asking about opening hours on WhatsApp."""
    return {
        "type": "message_received",
        "business_id": business_id,
        "data": {
            "id": "msg-001",
            "sender": "+5491155550000",
            "content": "Hi! Are you open on Sunday? I love your croissants",
            "platform": "whatsapp",
        },
    }


def content_request_example(business_id: str = "cafe-aurora") -> dict[str, object]:
    """Instagram post promoting a seasonal product."""
    return {
        "type": "content_request",
        "business_id": business_id,
        "data": {
            "content_type": "post",
            "platform": "instagram",
            "objective": "sales",
            "topic": "Pumpkin spice latte",
        },
    }


def scheduled_check_example(check: str, business_id: str = "cafe-aurora") -> dict[str, object]:
    return {
        "type": "scheduled_check",
        "business_id": business_id,
        "data": {"check": check, "period": "7d" if check == "weekly_report" else "1d"},
    }


def due_checks(now: datetime | None = None) -> list[str]:
    """Scheduled checks due at ``now``: 09:00 morning, 19:00 evening, Monday 09:00 weekly."""
    now = now or datetime.now(UTC)
    due: list[str] = []
    if now.hour == 9:
        due.append("morning_routine")
        if now.weekday() == 0:
            due.append("weekly_report")
    if now.hour == 19:
        due.append("evening_analysis")
    return due
