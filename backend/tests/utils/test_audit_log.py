import json
from datetime import date
from typing import Any, List

import pytest
from reservation_engine.models import ReservationStatus
from reservation_engine.utils import audit_log
from reservation_engine.utils.request_log import set_request_id


def test_emit_audit_log_outputs_json(monkeypatch: pytest.MonkeyPatch) -> None:
    messages: List[str] = []

    class DummyLogger:
        def info(self, message: str) -> None:
            messages.append(message)

    monkeypatch.setattr(audit_log, "_audit_logger", DummyLogger())

    set_request_id("req-123")
    audit_log.emit_audit_log(
        action="reservation.created",
        initiator="customer",
        reservation_id=1,
        restaurant_id=3,
        user_id=4,
        reservation_date=date(2026, 3, 6),
        time_slot="19:00",
        party_size=2,
        status_from=None,
        status_to=ReservationStatus.CONFIRMED,
        version=1,
    )
    set_request_id(None)

    assert len(messages) == 1
    payload = json.loads(messages[0])
    assert payload["action"] == "reservation.created"
    assert payload["initiator"] == "customer"
    assert payload["request_id"] == "req-123"
    assert payload["status_to"] == "confirmed"
    assert payload["reservation_date"] == "2026-03-06"
    assert payload["level"] == "info"
    assert "status_from" not in payload
    assert "timestamp" in payload


def test_emit_audit_log_flags_warning(monkeypatch: pytest.MonkeyPatch) -> None:
    messages: List[str] = []

    class DummyLogger:
        def info(self, message: str) -> None:
            messages.append(message)

    monkeypatch.setattr(audit_log, "_audit_logger", DummyLogger())

    audit_log.emit_audit_log(
        action="reservation.created",
        initiator="staff",
        reservation_id=1,
        restaurant_id=3,
        user_id=1,
        reservation_date=date(2026, 3, 6),
        time_slot="19:00",
        party_size=6,
        status_from=None,
        status_to=ReservationStatus.CONFIRMED,
        version=1,
        warning="capacity_override",
    )

    payload = json.loads(messages[0])
    assert payload["level"] == "warning"
    assert payload["warning"] == "capacity_override"


def test_emit_audit_log_raises_on_logger_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    class DummyLogger:
        def info(self, _: Any) -> None:
            raise ValueError("fail")

    monkeypatch.setattr(audit_log, "_audit_logger", DummyLogger())

    with pytest.raises(RuntimeError):
        audit_log.emit_audit_log(
            action="reservation.cancelled",
            initiator="customer",
            reservation_id=1,
            restaurant_id=3,
            user_id=4,
            reservation_date=None,
            time_slot=None,
            party_size=2,
            status_from=ReservationStatus.CONFIRMED,
            status_to=ReservationStatus.CANCELLED,
            version=2,
        )
